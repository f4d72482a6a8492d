"""Retry and circuit-breaker policies for outbound upstream calls.

Every call goes through an explicit chain ``retry -> breaker -> transport``. The
transport layer turns transient HTTP statuses into ``httpx.HTTPStatusError`` so both
outer layers only have to reason about exceptions. Breaker state is an immutable
snapshot per upstream, replaced with a compare-and-set so concurrent callers never
need a lock.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, Dict, Optional, Sequence

import httpx

from hotel_broker.errors import CircuitOpenError, UpstreamUnavailable
from hotel_broker.utils.throttling import exponential_backoff, fixed_delay

logger = logging.getLogger(__name__)

Send = Callable[[], Awaitable[httpx.Response]]
Handler = Callable[[Send], Awaitable[httpx.Response]]
Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]

HANDLED_ERRORS = (httpx.TransportError, httpx.HTTPStatusError)


class CallClass(str, Enum):
    STANDARD = "standard"
    PAYMENT = "payment"


@dataclass(frozen=True, slots=True)
class ResilienceOptions:
    """Tuning shared by every policy handed out by a registry."""

    retry_attempts: int = 3
    base_delay_s: float = 0.2
    payment_delay_s: float = 0.1
    failure_threshold: int = 5
    break_seconds: float = 30.0


def is_transient_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 408


def is_transient_or_throttled(status_code: int) -> bool:
    return is_transient_status(status_code) or status_code == 429


def _describe(exc: BaseException) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__


@dataclass(frozen=True, slots=True)
class BreakerState:
    failures: int = 0
    opened_at: Optional[float] = None
    probing: bool = False

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None


class CircuitBreaker:
    """Consecutive-failure breaker for a single upstream."""

    def __init__(
        self,
        upstream: str,
        *,
        failure_threshold: int = 5,
        break_seconds: float = 30.0,
        clock: Clock = time.monotonic,
        event_logger: Optional[logging.Logger] = None,
    ) -> None:
        self.upstream = upstream
        self.failure_threshold = failure_threshold
        self.break_seconds = break_seconds
        self._clock = clock
        self._log = event_logger or logger
        self._state = BreakerState()

    @property
    def state(self) -> BreakerState:
        return self._state

    def _compare_and_set(self, expected: BreakerState, new: BreakerState) -> bool:
        if self._state is not expected:
            return False
        self._state = new
        return True

    def acquire(self) -> BreakerState:
        """Admit a call or raise ``CircuitOpenError``; returns the snapshot the call was admitted under."""
        while True:
            current = self._state
            if not current.is_open:
                return current
            remaining = self.break_seconds - (self._clock() - current.opened_at)
            if remaining > 0 or current.probing:
                raise CircuitOpenError(self.upstream, max(remaining, 0.0))
            probe = replace(current, probing=True)
            if self._compare_and_set(current, probe):
                self._log.info(
                    "Circuit breaker for %s half-open; probing upstream",
                    self.upstream,
                    extra={"event": "breaker_half_open", "upstream": self.upstream, "attempt": None, "cause": None},
                )
                return probe

    def record_success(self) -> None:
        while True:
            current = self._state
            if current.failures == 0 and not current.is_open:
                return
            if self._compare_and_set(current, BreakerState()):
                if current.is_open:
                    self._log.info(
                        "Circuit breaker RESET for %s",
                        self.upstream,
                        extra={"event": "breaker_reset", "upstream": self.upstream, "attempt": None, "cause": None},
                    )
                return

    def record_failure(self, cause: BaseException) -> None:
        while True:
            current = self._state
            failures = current.failures + 1
            reopen = current.probing or (not current.is_open and failures >= self.failure_threshold)
            if reopen:
                new = BreakerState(failures=failures, opened_at=self._clock(), probing=False)
            else:
                new = replace(current, failures=failures)
            if self._compare_and_set(current, new):
                if reopen:
                    self._log.warning(
                        "Circuit breaker OPEN for %s for %.0fs after %s failures: %s",
                        self.upstream,
                        self.break_seconds,
                        failures,
                        _describe(cause),
                        extra={
                            "event": "breaker_open",
                            "upstream": self.upstream,
                            "attempt": failures,
                            "cause": _describe(cause),
                        },
                    )
                return

    def release_probe(self, admitted: BreakerState) -> None:
        """Give the probe slot back when the admitted call ended without an upstream outcome."""
        if admitted.probing:
            self._compare_and_set(admitted, replace(admitted, probing=False))

    def wrap(self, inner: Handler) -> Handler:
        async def handler(send: Send) -> httpx.Response:
            admitted = self.acquire()
            try:
                response = await inner(send)
            except httpx.HTTPError as exc:
                self.record_failure(exc)
                raise
            except BaseException:
                self.release_probe(admitted)
                raise
            self.record_success()
            return response

        return handler


class RetryPolicy:
    """Re-issues a call on handled failures, sleeping per ``delay_for`` between attempts."""

    def __init__(
        self,
        upstream: str,
        *,
        retries: int,
        delay_for: Callable[[int], float],
        sleep: Sleep = asyncio.sleep,
        event_logger: Optional[logging.Logger] = None,
    ) -> None:
        self.upstream = upstream
        self.retries = retries
        self.delay_for = delay_for
        self._sleep = sleep
        self._log = event_logger or logger

    def wrap(self, inner: Handler) -> Handler:
        async def handler(send: Send) -> httpx.Response:
            attempt = 0
            while True:
                try:
                    return await inner(send)
                except CircuitOpenError:
                    raise
                except HANDLED_ERRORS as exc:
                    attempt += 1
                    if attempt > self.retries:
                        raise UpstreamUnavailable(self.upstream, exc) from exc
                    delay = self.delay_for(attempt)
                    self._log.warning(
                        "Retrying %s call (attempt %s) in %.0fms: %s",
                        self.upstream,
                        attempt,
                        delay * 1000,
                        _describe(exc),
                        extra={
                            "event": "retry",
                            "upstream": self.upstream,
                            "attempt": attempt,
                            "cause": _describe(exc),
                            "delay_ms": round(delay * 1000),
                        },
                    )
                    await self._sleep(delay)

        return handler


def transport_layer(is_handled_status: Callable[[int], bool]) -> Handler:
    async def handler(send: Send) -> httpx.Response:
        response = await send()
        if is_handled_status(response.status_code):
            raise httpx.HTTPStatusError(
                f"Transient status {response.status_code}",
                request=response.request,
                response=response,
            )
        return response

    return handler


class CallPolicy:
    """Composed middleware chain governing one outbound call."""

    def __init__(
        self,
        upstream: str,
        call_class: CallClass,
        layers: Sequence[RetryPolicy | CircuitBreaker],
        is_handled_status: Callable[[int], bool],
    ) -> None:
        self.upstream = upstream
        self.call_class = call_class
        self.layers = tuple(layers)
        handler = transport_layer(is_handled_status)
        for layer in reversed(self.layers):
            handler = layer.wrap(handler)
        self._handler = handler

    async def execute(self, send: Send) -> httpx.Response:
        return await self._handler(send)


class ResilienceRegistry:
    """Hands out call policies and owns the per-upstream breaker state."""

    def __init__(
        self,
        options: ResilienceOptions | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        event_logger: Optional[logging.Logger] = None,
    ) -> None:
        self.options = options or ResilienceOptions()
        self._clock = clock
        self._sleep = sleep
        self._log = event_logger or logger
        self._breakers: Dict[str, CircuitBreaker] = {}

    def breaker_for(self, upstream: str) -> CircuitBreaker:
        breaker = self._breakers.get(upstream)
        if breaker is None:
            breaker = self._breakers.setdefault(
                upstream,
                CircuitBreaker(
                    upstream,
                    failure_threshold=self.options.failure_threshold,
                    break_seconds=self.options.break_seconds,
                    clock=self._clock,
                    event_logger=self._log,
                ),
            )
        return breaker

    def policy_for(self, call_class: CallClass, upstream: str) -> CallPolicy:
        if call_class is CallClass.PAYMENT:
            retry = RetryPolicy(
                upstream,
                retries=1,
                delay_for=partial(fixed_delay, seconds=self.options.payment_delay_s),
                sleep=self._sleep,
                event_logger=self._log,
            )
            return CallPolicy(upstream, call_class, [retry], is_transient_status)

        retry = RetryPolicy(
            upstream,
            retries=self.options.retry_attempts,
            delay_for=partial(exponential_backoff, base_seconds=self.options.base_delay_s),
            sleep=self._sleep,
            event_logger=self._log,
        )
        return CallPolicy(
            upstream,
            call_class,
            [retry, self.breaker_for(upstream)],
            is_transient_or_throttled,
        )
