from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List

from api_method_framework.api_method import ApiMethod
from api_method_framework.config_loader import EngineSpec, SuiteStep
from api_method_framework.errors import ApiMethodError, ConfigurationError
from api_method_framework.poller import PollSpec
from api_method_framework.properties import default_processors, load_properties
from api_method_framework.templates import TemplateRenderer
from api_method_framework.transport import RequestsTransport, Transport, TransportResponse

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    index: int
    method: str
    passed: bool
    message: str
    status_code: int | None = None
    latency_ms: float | None = None


class SuiteRunner:
    def __init__(
        self,
        spec: EngineSpec,
        transport: Transport | None = None,
        crypto_key: str | None = None,
    ) -> None:
        self.spec = spec
        self.transport = transport or RequestsTransport(timeout_seconds=spec.timeout_seconds)
        self.renderer = TemplateRenderer(spec.template_dirs)
        key = crypto_key if crypto_key is not None else os.environ.get(spec.crypto_key_env)
        self.processors = default_processors(key)
        self.base_properties: Dict[str, Any] = {}
        if spec.properties:
            self.base_properties = load_properties(spec.properties, self.renderer.roots)

    def method(self, name: str, properties: Dict[str, Any] | None = None) -> ApiMethod:
        descriptor = self.spec.methods.get(name)
        if descriptor is None:
            raise ConfigurationError(f"Unknown API method `{name}`")
        values = dict(self.base_properties)
        values.update(properties or {})
        return ApiMethod(
            descriptor,
            self.transport,
            self.renderer,
            base_url=self.spec.base_url,
            properties=values,
            processors=self.processors,
            poll_defaults=PollSpec(
                interval=self.spec.poll.interval_seconds,
                timeout=self.spec.poll.timeout_seconds,
            ),
        )

    def run(self) -> List[StepResult]:
        return [self.run_step(index, step) for index, step in enumerate(self.spec.suite, start=1)]

    def run_step(self, index: int, step: SuiteStep) -> StepResult:
        method: ApiMethod | None = None
        checks: List[str] = []
        try:
            method = self.method(step.method, step.properties)
            self._execute(method, step)
            if step.validate is not None:
                method.validate(*step.validate.flags, mode=step.validate.mode, xml_mode=step.validate.xml_mode)
                checks.append("body matches template")
            if step.schema:
                method.validate_against_schema(step.schema)
                checks.append("body matches schema")
            if step.schema_file:
                method.validate_against_schema_file(step.schema_file)
                checks.append("body matches schema file")
        except ApiMethodError as exc:
            logger.debug("Step %d (%s) failed", index, step.method, exc_info=True)
            response = method.last_response if method is not None else None
            return _result(index, step, response, False, f"{type(exc).__name__}: {exc}")

        return _result(index, step, method.last_response, True, ", ".join(checks) or "call completed")

    def _execute(self, method: ApiMethod, step: SuiteStep) -> TransportResponse:
        if step.retry is None:
            if step.expect_success:
                return method.call_expecting_success()
            return method.call()

        handle = (
            method.call_with_retry()
            .poll_every(step.retry.interval_seconds)
            .stop_after(step.retry.timeout_seconds)
            .with_log_strategy(step.retry.log_strategy)
        )
        if step.retry.status is not None:
            handle = handle.until_status(step.retry.status)
        elif step.retry.body_contains is not None:
            handle = handle.until_body_contains(step.retry.body_contains)
        elif step.expect_success and method.descriptor.successful_status is not None:
            handle = handle.until_status(method.descriptor.successful_status)
        return handle.execute()


def _result(
    index: int,
    step: SuiteStep,
    response: TransportResponse | None,
    passed: bool,
    message: str,
) -> StepResult:
    return StepResult(
        index=index,
        method=step.method,
        passed=passed,
        message=message,
        status_code=response.status_code if response is not None else None,
        latency_ms=response.elapsed_ms if response is not None else None,
    )
