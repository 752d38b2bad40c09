from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Mapping, Sequence

from api_method_framework.descriptors import ContentKind, MethodDescriptor
from api_method_framework.errors import (
    ConfigurationError,
    MissingResponseTemplateError,
    PreconditionError,
    StatusMismatchError,
)
from api_method_framework.json_compare import JsonComparatorContext, JsonCompareMode
from api_method_framework.negotiator import ComparisonSpec, ContentNegotiator
from api_method_framework.poller import PollHandle, PollSpec
from api_method_framework.properties import (
    ProcessorKind,
    PropertyProcessor,
    PropertyStore,
    default_processors,
    load_properties,
    locate_resource,
)
from api_method_framework.templates import TemplateRenderer
from api_method_framework.transport import Transport, TransportResponse
from api_method_framework.xml_compare import XmlCompareMode

logger = logging.getLogger(__name__)

PropertiesSource = PropertyStore | Mapping[str, object] | str | Path | None

_CONTENT_TYPES = {
    ContentKind.JSON: "application/json",
    ContentKind.XML: "application/xml",
}


class ApiMethod:
    """One callable API method: templates, properties and the last response.

    Typical use::

        method = ApiMethod(descriptor, transport, renderer, base_url=url)
        method.add_property("user.name", "alice")
        method.call_expecting_success()
        method.validate(ARRAY_CONTAINS)

    The captured response body is overwritten on every call, so a single
    instance must not be called and validated from several threads at once.
    """

    def __init__(
        self,
        descriptor: MethodDescriptor,
        transport: Transport,
        renderer: TemplateRenderer,
        *,
        base_url: str = "",
        properties: PropertiesSource = None,
        processors: Sequence[PropertyProcessor] | None = None,
        poll_defaults: PollSpec = PollSpec(),
    ) -> None:
        self.descriptor = descriptor
        self.transport = transport
        self.renderer = renderer
        self.base_url = base_url.rstrip("/")
        self.poll_defaults = poll_defaults
        self.negotiator = ContentNegotiator(descriptor.content_kind)

        self.request_template: str | None = descriptor.request_template
        self.response_template: str | None = descriptor.response_template
        self.headers: Dict[str, str] = {"Accept": "*/*"}
        self.headers.update(descriptor.headers)
        self.cookies: Dict[str, str] = {}
        self.expected_status: int | None = None

        self._processors = list(processors) if processors is not None else default_processors()
        self._properties: PropertyStore | None = None
        self.request_body: str | None = None
        self.last_response: TransportResponse | None = None
        self.actual_body: str | None = None

        self.set_properties(properties if properties is not None else {})

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def content_kind(self) -> ContentKind:
        return self.descriptor.content_kind

    # ---- configuration -------------------------------------------------

    def set_request_template(self, path: str | None) -> None:
        self.request_template = path

    def set_response_template(self, path: str | None) -> None:
        self.response_template = path

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def add_cookie(self, name: str, value: str) -> None:
        self.cookies[name] = value

    def set_auth(self, session_id: str, cookie_name: str = "pfJSESSIONID") -> None:
        self.add_cookie(cookie_name, session_id)

    def expect_response_status(self, status_code: int) -> None:
        self.expected_status = status_code

    @property
    def properties(self) -> PropertyStore | None:
        return self._properties

    def set_properties(self, source: PropertiesSource) -> None:
        """Replaces the property store.

        ``source`` may be a ready store (used as-is), a mapping, or a path
        to a ``.properties``/``.yaml`` resource under the template roots.
        """
        if source is None:
            return
        if isinstance(source, PropertyStore):
            self._properties = source
            return

        ignored = self._properties.ignored_kinds if self._properties is not None else ()
        if isinstance(source, (str, Path)):
            source = load_properties(source, self.renderer.roots)
        self._properties = PropertyStore(source, processors=self._processors, ignored=ignored)

    def ignore_processor(self, kind: ProcessorKind) -> None:
        self._require_properties().ignore(kind)

    def add_property(self, key: str, value: object) -> None:
        self._require_properties().set(key, value)

    def remove_property(self, key: str) -> None:
        self._require_properties().remove(key)

    def _require_properties(self) -> PropertyStore:
        if self._properties is None:
            raise ConfigurationError(f"API method `{self.name}` properties are not initialized")
        return self._properties

    # ---- execution -----------------------------------------------------

    def call(self) -> TransportResponse:
        response = self._execute()
        self._capture(response)
        if self.expected_status is not None and response.status_code != self.expected_status:
            raise StatusMismatchError(self.expected_status, response.status_code, response.text)
        return response

    def call_expecting_success(self) -> TransportResponse:
        if self.descriptor.successful_status is None:
            raise ConfigurationError(
                f"To use call_expecting_success declare successful_status for method `{self.name}`"
            )
        self.expect_response_status(self.descriptor.successful_status)
        return self.call()

    def call_with_retry(self) -> PollHandle:
        """Returns a poll session around this method; nothing is sent yet.

        The session captures the body of every attempt, so validation after
        ``execute()`` sees the last response even when polling timed out.
        """
        spec = replace(self.poll_defaults, after_execute=(self._capture,))
        return PollHandle(lambda quiet: self._execute(quiet=quiet), spec)

    def _execute(self, quiet: bool = False) -> TransportResponse:
        store = self._require_properties()
        body = None
        if self.request_template:
            body = self.renderer.render(self.request_template, store)
        self.request_body = body
        return self.transport.execute(
            self.descriptor.http_method,
            self._build_url(store),
            headers=self._request_headers(body),
            body=body,
            quiet=quiet,
        )

    def _capture(self, response: TransportResponse) -> None:
        self.last_response = response
        self.actual_body = response.text

    def _build_url(self, store: PropertyStore) -> str:
        path = self.descriptor.path
        if "${" in path:
            path = self.renderer.render_string(path, store)
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}{path}"

    def _request_headers(self, body: str | None) -> Dict[str, str]:
        headers = dict(self.headers)
        if body is not None and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = _CONTENT_TYPES[self.content_kind]
        if self.cookies:
            headers["Cookie"] = "; ".join(f"{k}={v}" for k, v in self.cookies.items())
        return headers

    # ---- validation ----------------------------------------------------

    def validate(
        self,
        *flags: str,
        mode: JsonCompareMode = JsonCompareMode.NON_EXTENSIBLE,
        context: JsonComparatorContext | None = None,
        xml_mode: XmlCompareMode = XmlCompareMode.STRICT,
    ) -> None:
        """Compares the captured body with the rendered response template.

        JSON responses use ``mode``, ``context`` and array ``flags``
        (``ARRAY_CONTAINS``); XML responses use ``xml_mode`` and reject flags.
        """
        spec = ComparisonSpec(json_mode=mode, xml_mode=xml_mode, flags=tuple(flags), context=context)
        self._validate_exemplar(spec)

    def validate_json(
        self,
        mode: JsonCompareMode = JsonCompareMode.NON_EXTENSIBLE,
        context: JsonComparatorContext | None = None,
        *flags: str,
    ) -> None:
        if self.content_kind is not ContentKind.JSON:
            raise PreconditionError(f"API method `{self.name}` is not declared with JSON content type")
        self._validate_exemplar(ComparisonSpec(json_mode=mode, flags=tuple(flags), context=context))

    def validate_xml(self, mode: XmlCompareMode = XmlCompareMode.STRICT) -> None:
        if self.content_kind is not ContentKind.XML:
            raise PreconditionError(f"API method `{self.name}` is not declared with XML content type")
        self._validate_exemplar(ComparisonSpec(xml_mode=mode))

    def _validate_exemplar(self, spec: ComparisonSpec) -> None:
        if self.response_template is None:
            raise MissingResponseTemplateError(self.name)
        actual = self._require_body()
        expected = self.renderer.render(self.response_template, self._require_properties())
        self.negotiator.validate_exemplar(expected, actual, spec)
        logger.info("Response of `%s` matches %s", self.name, self.response_template)

    def validate_against_schema(self, schema_path: str) -> None:
        """Validates the body against a schema rendered through the template engine."""
        actual = self._require_body()
        schema = self.renderer.render(schema_path, self._require_properties())
        self._validate_schema(schema_path, schema, actual)

    def validate_against_schema_file(self, schema_path: str) -> None:
        """Validates the body against a schema read verbatim, with no rendering."""
        actual = self._require_body()
        schema = self.renderer.read(schema_path)
        self._validate_schema(schema_path, schema, actual)

    def _validate_schema(self, schema_path: str, schema: str, actual: str) -> None:
        base_url = str(locate_resource(schema_path, self.renderer.roots))
        self.negotiator.validate_schema(schema, actual, base_url=base_url)
        logger.info("Response of `%s` conforms to schema %s", self.name, schema_path)

    def _require_body(self) -> str:
        if self.actual_body is None:
            raise PreconditionError(
                f"Actual response body of `{self.name}` is empty. Please make API call before validation"
            )
        return self.actual_body
