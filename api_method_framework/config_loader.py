from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from api_method_framework.descriptors import ContentKind, DescriptorRegistry, MethodDescriptor
from api_method_framework.errors import ConfigurationError
from api_method_framework.json_compare import ARRAY_CONTAINS, JsonCompareMode
from api_method_framework.poller import LogStrategy
from api_method_framework.xml_compare import XmlCompareMode


_ALLOWED_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}


@dataclass
class PollDefaults:
    interval_seconds: float = 1.0
    timeout_seconds: float = 60.0


@dataclass
class RetryStep:
    interval_seconds: float
    timeout_seconds: float
    status: int | None = None
    body_contains: str | None = None
    log_strategy: LogStrategy = LogStrategy.ALL


@dataclass
class ValidateStep:
    mode: JsonCompareMode = JsonCompareMode.NON_EXTENSIBLE
    xml_mode: XmlCompareMode = XmlCompareMode.STRICT
    flags: List[str] = field(default_factory=list)


@dataclass
class SuiteStep:
    method: str
    properties: Dict[str, Any] = field(default_factory=dict)
    expect_success: bool = False
    retry: RetryStep | None = None
    validate: ValidateStep | None = None
    schema: str | None = None
    schema_file: str | None = None


@dataclass
class EngineSpec:
    base_url: str
    methods: DescriptorRegistry
    timeout_seconds: float = 5.0
    template_dirs: List[Path] = field(default_factory=list)
    properties: str | None = None
    crypto_key_env: str = "API_CRYPTO_KEY"
    poll: PollDefaults = field(default_factory=PollDefaults)
    suite: List[SuiteStep] = field(default_factory=list)


class SpecValidationError(ConfigurationError, ValueError):
    pass


def load_engine_spec(path: str | Path) -> EngineSpec:
    spec_path = Path(path)
    if not spec_path.exists():
        raise SpecValidationError(f"Spec file not found: {spec_path}")

    try:
        raw = yaml.safe_load(spec_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise SpecValidationError(f"Spec file is not valid YAML: {exc}") from exc
    if not isinstance(raw, dict):
        raise SpecValidationError("Spec root must be a YAML mapping")

    base_url = raw.get("base_url")
    if not isinstance(base_url, str) or not base_url.strip():
        raise SpecValidationError("`base_url` is required and must be a non-empty string")

    methods_raw = raw.get("methods")
    if not isinstance(methods_raw, dict) or not methods_raw:
        raise SpecValidationError("`methods` is required and must be a non-empty mapping")

    registry = DescriptorRegistry()
    for name, conf in methods_raw.items():
        registry.register(_parse_method(str(name), conf))

    template_dirs_raw = raw.get("template_dirs", ["."])
    if isinstance(template_dirs_raw, str):
        template_dirs_raw = [template_dirs_raw]
    if not isinstance(template_dirs_raw, list) or not all(isinstance(d, str) for d in template_dirs_raw):
        raise SpecValidationError("`template_dirs` must be a string or a list of strings")
    # Relative template roots are anchored at the spec file, not the cwd.
    template_dirs = [(spec_path.parent / d).resolve() for d in template_dirs_raw]

    properties = raw.get("properties")
    if properties is not None and not isinstance(properties, str):
        raise SpecValidationError("`properties` must be a path string when provided")

    poll_raw = raw.get("poll", {})
    if not isinstance(poll_raw, dict):
        raise SpecValidationError("`poll` must be a mapping")
    poll = PollDefaults(
        interval_seconds=_non_negative(poll_raw.get("interval_seconds", 1.0), "poll.interval_seconds"),
        timeout_seconds=_non_negative(poll_raw.get("timeout_seconds", 60.0), "poll.timeout_seconds"),
    )

    suite_raw = raw.get("suite", [])
    if not isinstance(suite_raw, list):
        raise SpecValidationError("`suite` must be a list")
    suite = [_parse_step(idx, step, registry, poll) for idx, step in enumerate(suite_raw)]

    return EngineSpec(
        base_url=base_url.rstrip("/"),
        methods=registry,
        timeout_seconds=_non_negative(raw.get("timeout_seconds", 5.0), "timeout_seconds"),
        template_dirs=template_dirs,
        properties=properties,
        crypto_key_env=str(raw.get("crypto_key_env", "API_CRYPTO_KEY")),
        poll=poll,
        suite=suite,
    )


def _parse_method(name: str, conf: Any) -> MethodDescriptor:
    if not isinstance(conf, dict):
        raise SpecValidationError(f"Method `{name}` must be a mapping")

    http_method = conf.get("method", "GET")
    path = conf.get("path")

    if not isinstance(http_method, str):
        raise SpecValidationError(f"Method `{name}` has non-string `method`")
    if not isinstance(path, str):
        raise SpecValidationError(f"Method `{name}` is missing string `path`")

    http_method = http_method.upper()
    if http_method not in _ALLOWED_METHODS:
        raise SpecValidationError(
            f"Method `{name}` has unsupported HTTP method `{http_method}`. "
            f"Allowed: {', '.join(sorted(_ALLOWED_METHODS))}"
        )
    if not path.startswith(("/", "http://", "https://", "${")):
        raise SpecValidationError(f"Method `{name}` path must start with '/' or be an absolute URL")

    for key in ("request_template", "response_template"):
        if conf.get(key) is not None and not isinstance(conf.get(key), str):
            raise SpecValidationError(f"Method `{name}` {key} must be a path string")

    try:
        content_kind = ContentKind.parse(conf.get("content_type"))
    except ValueError as exc:
        raise SpecValidationError(f"Method `{name}`: {exc}") from exc

    successful_status = conf.get("successful_status")
    if successful_status is not None and (
        not isinstance(successful_status, int) or not 100 <= successful_status <= 599
    ):
        raise SpecValidationError(f"Method `{name}` successful_status must be an HTTP status code")

    headers = conf.get("headers", {})
    if not isinstance(headers, dict):
        raise SpecValidationError(f"Method `{name}` headers must be a mapping when provided")

    return MethodDescriptor(
        name=name,
        http_method=http_method,
        path=path,
        request_template=conf.get("request_template"),
        response_template=conf.get("response_template"),
        content_kind=content_kind,
        successful_status=successful_status,
        headers={str(k): str(v) for k, v in headers.items()},
    )


def _parse_step(idx: int, step: Any, registry: DescriptorRegistry, poll: PollDefaults) -> SuiteStep:
    where = f"suite[{idx}]"
    if not isinstance(step, dict):
        raise SpecValidationError(f"{where} must be a mapping")

    method = step.get("method")
    if not isinstance(method, str) or method not in registry:
        raise SpecValidationError(f"{where}.method must reference a known method")

    properties = step.get("properties", {})
    if not isinstance(properties, dict):
        raise SpecValidationError(f"{where}.properties must be a mapping")

    retry = None
    retry_raw = step.get("retry")
    if retry_raw is not None:
        if not isinstance(retry_raw, dict):
            raise SpecValidationError(f"{where}.retry must be a mapping")
        try:
            log_strategy = LogStrategy(str(retry_raw.get("log_strategy", "all")).lower())
        except ValueError:
            raise SpecValidationError(
                f"{where}.retry.log_strategy must be one of: {', '.join(s.value for s in LogStrategy)}"
            ) from None
        retry = RetryStep(
            interval_seconds=_non_negative(
                retry_raw.get("interval_seconds", poll.interval_seconds), f"{where}.retry.interval_seconds"
            ),
            timeout_seconds=_non_negative(
                retry_raw.get("timeout_seconds", poll.timeout_seconds), f"{where}.retry.timeout_seconds"
            ),
            status=retry_raw.get("status"),
            body_contains=retry_raw.get("body_contains"),
            log_strategy=log_strategy,
        )

    validate = None
    validate_raw = step.get("validate")
    if validate_raw is True:
        validate = ValidateStep()
    elif isinstance(validate_raw, dict):
        flags = validate_raw.get("flags", [])
        if not isinstance(flags, list) or not all(isinstance(f, str) for f in flags):
            raise SpecValidationError(f"{where}.validate.flags must be a list of strings")
        for flag in flags:
            if flag.partition(":")[0] != ARRAY_CONTAINS:
                raise SpecValidationError(f"{where}.validate.flags has unsupported flag `{flag}`")
        try:
            validate = ValidateStep(
                mode=JsonCompareMode.parse(validate_raw.get("mode", "non_extensible")),
                xml_mode=XmlCompareMode.parse(validate_raw.get("xml_mode", "strict")),
                flags=flags,
            )
        except ConfigurationError as exc:
            raise SpecValidationError(f"{where}.validate: {exc}") from exc
    elif validate_raw not in (None, False):
        raise SpecValidationError(f"{where}.validate must be a boolean or a mapping")

    for key in ("schema", "schema_file"):
        if step.get(key) is not None and not isinstance(step.get(key), str):
            raise SpecValidationError(f"{where}.{key} must be a path string")

    return SuiteStep(
        method=method,
        properties=properties,
        expect_success=bool(step.get("expect_success", False)),
        retry=retry,
        validate=validate,
        schema=step.get("schema"),
        schema_file=step.get("schema_file"),
    )


def _non_negative(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise SpecValidationError(f"`{name}` must be a number") from None
    if number < 0:
        raise SpecValidationError(f"`{name}` must be non-negative")
    return number
