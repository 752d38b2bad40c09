from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Tuple

from api_method_framework.errors import ConfigurationError, PollTimeoutError
from api_method_framework.transport import TransportResponse, log_exchange

logger = logging.getLogger(__name__)

Attempt = Callable[[bool], Any]


class LogStrategy(Enum):
    ALL = "all"
    LAST_ONLY = "last_only"
    NONE = "none"


def is_successful(response: Any) -> bool:
    status = getattr(response, "status_code", 0) or 0
    return 200 <= status < 300


@dataclass(frozen=True)
class PollSpec:
    interval: float = 1.0
    timeout: float = 60.0
    predicate: Callable[[Any], bool] = is_successful
    after_execute: Tuple[Callable[[Any], None], ...] = ()
    log_strategy: LogStrategy = LogStrategy.ALL


def poll(
    spec: PollSpec,
    attempt: Attempt,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """Runs ``attempt`` until ``spec.predicate`` accepts its result.

    ``attempt`` receives ``quiet=True`` when transport logging should be
    suppressed. After-execute callbacks run for every attempt before the
    predicate is checked. Exceptions raised by an attempt abort the session.
    """
    if spec.interval < 0 or spec.timeout < 0:
        raise ConfigurationError("Poll interval and timeout must be non-negative")

    quiet = spec.log_strategy is not LogStrategy.ALL
    deadline = clock() + spec.timeout
    attempts = 0

    while True:
        response = attempt(quiet)
        attempts += 1
        for callback in spec.after_execute:
            callback(response)

        if spec.predicate(response):
            logger.info("Poll condition satisfied on attempt %d", attempts)
            _log_last(spec, response)
            return response

        if clock() + spec.interval > deadline:
            logger.warning("Poll condition not satisfied after %d attempt(s) in %gs", attempts, spec.timeout)
            _log_last(spec, response)
            raise PollTimeoutError(spec.timeout, attempts, response)

        logger.debug("Attempt %d did not satisfy condition, retrying in %gs", attempts, spec.interval)
        sleep(spec.interval)


def _log_last(spec: PollSpec, response: Any) -> None:
    if spec.log_strategy is LogStrategy.LAST_ONLY and isinstance(response, TransportResponse):
        log_exchange(response)


class PollHandle:
    """A not-yet-started poll session.

    Every builder step returns a new handle, so a partially configured handle
    can be shared and specialised without affecting other sessions.
    """

    def __init__(self, attempt: Attempt, spec: PollSpec = PollSpec()) -> None:
        self._attempt = attempt
        self.spec = spec

    def _with(self, **changes: Any) -> "PollHandle":
        return PollHandle(self._attempt, replace(self.spec, **changes))

    def poll_every(self, seconds: float) -> "PollHandle":
        return self._with(interval=seconds)

    def stop_after(self, seconds: float) -> "PollHandle":
        return self._with(timeout=seconds)

    def until(self, predicate: Callable[[Any], bool]) -> "PollHandle":
        return self._with(predicate=predicate)

    def until_status(self, status_code: int) -> "PollHandle":
        return self.until(lambda response: getattr(response, "status_code", None) == status_code)

    def until_body_contains(self, text: str) -> "PollHandle":
        return self.until(lambda response: text in (getattr(response, "text", "") or ""))

    def do_after_execute(self, callback: Callable[[Any], None]) -> "PollHandle":
        return self._with(after_execute=self.spec.after_execute + (callback,))

    def with_log_strategy(self, strategy: LogStrategy) -> "PollHandle":
        return self._with(log_strategy=strategy)

    def execute(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Any:
        return poll(self.spec, self._attempt, clock=clock, sleep=sleep)
