"""Error taxonomy shared by the adapters, builders and the settlement verifier."""
from __future__ import annotations

from typing import Mapping, Optional


class HotelBrokerError(RuntimeError):
    """Base class for every failure raised by hotel_broker."""


class UpstreamUnavailable(HotelBrokerError):
    """Raised when an upstream stays unreachable after the call policy is exhausted."""

    def __init__(self, upstream: str, cause: Optional[BaseException] = None, message: str | None = None) -> None:
        detail = message or (f"{type(cause).__name__}: {cause}" if cause is not None else "unavailable")
        super().__init__(f"Upstream '{upstream}' unavailable ({detail})")
        self.upstream = upstream
        self.cause = cause


class CircuitOpenError(UpstreamUnavailable):
    """Raised without touching the network while an upstream's breaker is open."""

    def __init__(self, upstream: str, retry_after: float) -> None:
        super().__init__(upstream, message=f"circuit open, retry in {retry_after:.1f}s")
        self.retry_after = retry_after


class UpstreamProtocolError(HotelBrokerError):
    """Raised when an upstream payload carries a token of an unexpected shape."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Unexpected value for '{field}': {value!r}")
        self.field = field
        self.value = value


class ValidationError(HotelBrokerError, ValueError):
    """Raised at the boundary where malformed input is detected."""


class SettlementMismatch(HotelBrokerError):
    """Raised when a settlement decision is rejected and the caller wants an exception."""

    def __init__(self, order_code: str, checks: Mapping[str, bool], reason: str) -> None:
        super().__init__(f"Settlement for order {order_code} rejected: {reason}")
        self.order_code = order_code
        self.checks = dict(checks)
        self.reason = reason
