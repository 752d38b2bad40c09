from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Mapping

import requests

logger = logging.getLogger(__name__)

_SENSITIVE_HEADERS = {"authorization", "cookie", "x-api-key", "x-auth-token", "proxy-authorization"}


@dataclass
class TransportResponse:
    method: str
    url: str
    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300


class Transport:
    """Executes one HTTP exchange. Implementations never raise for HTTP or
    connection failures; they report them on the returned response."""

    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: str | None = None,
        *,
        quiet: bool = False,
    ) -> TransportResponse:
        raise NotImplementedError


class RequestsTransport(Transport):
    def __init__(self, timeout_seconds: float = 5.0, session: requests.Session | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()

    def execute(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: str | None = None,
        *,
        quiet: bool = False,
    ) -> TransportResponse:
        started = time.perf_counter()
        data = body.encode("utf-8") if body is not None else None

        try:
            response = self.session.request(
                method=method.upper(),
                url=url,
                data=data,
                headers=dict(headers or {}),
                timeout=self.timeout_seconds,
            )
            latency_ms = (time.perf_counter() - started) * 1000
            result = TransportResponse(
                method=method.upper(),
                url=url,
                status_code=response.status_code,
                text=response.text,
                headers=dict(response.headers),
                elapsed_ms=latency_ms,
            )
        except requests.RequestException as exc:
            latency_ms = (time.perf_counter() - started) * 1000
            result = TransportResponse(
                method=method.upper(),
                url=url,
                status_code=0,
                text="",
                elapsed_ms=latency_ms,
                error=str(exc),
            )

        if not quiet:
            log_exchange(result, headers=headers, body=body)
        return result

    def close(self) -> None:
        self.session.close()


def log_exchange(
    response: TransportResponse,
    headers: Mapping[str, str] | None = None,
    body: str | None = None,
) -> None:
    if response.error is not None:
        logger.warning(
            "%s %s failed after %.1fms: %s", response.method, response.url, response.elapsed_ms, response.error
        )
    else:
        logger.info(
            "%s %s -> HTTP %s (%.1fms)", response.method, response.url, response.status_code, response.elapsed_ms
        )
    if headers:
        logger.debug("Request headers: %s", mask_headers(headers))
    if body is not None:
        logger.debug("Request body: %s", body)
    logger.debug("Response body: %s", response.text)


def mask_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    return {k: ("***" if k.lower() in _SENSITIVE_HEADERS else v) for k, v in headers.items()}
