from __future__ import annotations

from typing import Any


class ApiMethodError(Exception):
    pass


class ConfigurationError(ApiMethodError):
    pass


class ResourceNotFoundError(ApiMethodError):
    def __init__(self, path: str, roots: list | None = None) -> None:
        searched = f" (searched: {', '.join(str(r) for r in roots)})" if roots else ""
        super().__init__(f"Resource can't be found by path: {path}{searched}")
        self.path = path


class ResourceLoadError(ApiMethodError):
    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Resource can't be loaded by path: {path}: {reason}")
        self.path = path


class TemplateRenderError(ApiMethodError):
    pass


class PreconditionError(ApiMethodError):
    pass


class MissingResponseTemplateError(ConfigurationError, PreconditionError):
    def __init__(self, method_name: str) -> None:
        super().__init__(f"Please specify response template for `{method_name}` to make response body validation")


class ResponseMismatchError(ApiMethodError, AssertionError):
    """Raised when an actual response body does not satisfy the expectation.

    ``diff`` holds one line per mismatching location so that a failing test
    can be diagnosed from the report alone.
    """

    def __init__(
        self,
        message: str,
        *,
        diff: list | None = None,
        expected: Any = None,
        actual: Any = None,
    ) -> None:
        self.diff = list(diff or [])
        self.expected = expected
        self.actual = actual
        text = message
        if self.diff:
            text += "\n" + "\n".join(f"  {line}" for line in self.diff)
        super().__init__(text)


class StatusMismatchError(ResponseMismatchError):
    def __init__(self, expected: int, actual: int, body: str = "") -> None:
        super().__init__(
            f"Expected HTTP status {expected} but got {actual}",
            diff=[f"body: {body[:500]}"] if body else None,
            expected=expected,
            actual=actual,
        )


class PollTimeoutError(ApiMethodError):
    def __init__(self, timeout: float, attempts: int, last_response: Any = None) -> None:
        status = getattr(last_response, "status_code", None)
        super().__init__(
            f"Condition not satisfied after {attempts} attempt(s) within {timeout:g}s "
            f"(last status={status})"
        )
        self.timeout = timeout
        self.attempts = attempts
        self.last_response = last_response
