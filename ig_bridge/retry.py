"""
Retry policy for single HTTP requests.

Only one failure class is retried: libcurl's operation timeout (error 28)
raised before any response arrived, i.e. the connection was never
established. Everything else, including 5xx replies, goes straight back to
the caller; POSTs here are not idempotent.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable

from .config import BridgeSettings
from .errors import TransportFailure
from .logger import logger
from .request import RequestDescriptor

CURLE_OPERATION_TIMEDOUT = 28
MAX_RETRIES = 10

DelayFunction = Callable[[int], int]


def constant_delay(ms: int = 1000) -> DelayFunction:
    return lambda retries: ms


def escalating_delay(step_ms: int = 1000) -> DelayFunction:
    """Wait `step_ms` times the number of the upcoming retry."""
    return lambda retries: step_ms * retries


def no_delay(retries: int) -> int:
    return 0


@dataclass(frozen=True)
class Outcome:
    response: Any = None
    failure: TransportFailure | None = None


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay_ms: int = 0


def is_connect_timeout(failure: TransportFailure) -> bool:
    return failure.curl_code == CURLE_OPERATION_TIMEDOUT and not failure.response_received


def decide(
    retries: int,
    outcome: Outcome,
    max_retries: int = MAX_RETRIES,
    delay: DelayFunction = constant_delay(),
) -> RetryDecision:
    """`retries` is how many retries already happened for this request."""
    if retries >= max_retries:
        return RetryDecision(False)
    if outcome.failure is not None and is_connect_timeout(outcome.failure):
        return RetryDecision(True, delay(retries + 1))
    return RetryDecision(False)


class RetryMiddleware:
    def __init__(
        self,
        max_retries: int = MAX_RETRIES,
        delay: DelayFunction = constant_delay(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_retries = max_retries
        self.delay = delay
        self.sleep = sleep

    @classmethod
    def from_settings(cls, settings: BridgeSettings) -> "RetryMiddleware":
        if not settings.retry_delay_enabled:
            delay = no_delay
        elif settings.retry_escalating:
            delay = escalating_delay(settings.retry_delay_ms)
        else:
            delay = constant_delay(settings.retry_delay_ms)
        return cls(max_retries=settings.retry_max, delay=delay)

    def __call__(self, request: RequestDescriptor, send: Callable[[], Any]) -> Any:
        retries = 0
        while True:
            try:
                outcome = Outcome(response=send())
            except TransportFailure as e:
                outcome = Outcome(failure=e)

            decision = decide(retries, outcome, self.max_retries, self.delay)
            if not decision.retry:
                if outcome.failure is not None:
                    raise outcome.failure
                return outcome.response

            if outcome.response is not None:
                detail = f"status code: {outcome.response.status_code}"
            else:
                detail = outcome.failure.message
            logger.warning(
                f"Retrying {request.method} {request.uri} {retries + 1}/{self.max_retries}, {detail}"
            )
            if decision.delay_ms > 0:
                self.sleep(decision.delay_ms / 1000)
            retries += 1
