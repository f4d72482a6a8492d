"""Decoders for the loosely typed tokens upstream payloads send."""
from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from hotel_broker.errors import UpstreamProtocolError


def decode_int_lenient(value: Any, *, field: str = "value") -> int:
    """Number or numeric string to ``int``; null and blank strings decode to 0."""
    if value is None:
        return 0
    if isinstance(value, bool):
        raise UpstreamProtocolError(field, value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise UpstreamProtocolError(field, value)
        return int(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0
        try:
            return int(stripped)
        except ValueError as exc:
            raise UpstreamProtocolError(field, value) from exc
    raise UpstreamProtocolError(field, value)


def decode_id_string(value: Any, *, field: str = "id") -> str:
    """Number or string identifier to ``str``; any other token is a protocol error."""
    if isinstance(value, bool) or value is None:
        raise UpstreamProtocolError(field, value)
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return str(int(value)) if value.is_integer() else str(value)
    raise UpstreamProtocolError(field, value)


def decode_nullable_datetime(value: Any, *, field: str = "datetime") -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise UpstreamProtocolError(field, value)
    stripped = value.strip()
    if not stripped:
        return None
    if stripped.endswith("Z"):
        stripped = stripped[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(stripped)
    except ValueError as exc:
        raise UpstreamProtocolError(field, value) from exc


def encode_nullable_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def decode_decimal(value: Any, *, field: str = "amount", default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Number or numeric string to ``Decimal`` through its text form."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise UpstreamProtocolError(field, value)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            decoded = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise UpstreamProtocolError(field, value) from exc
        if not decoded.is_finite():
            raise UpstreamProtocolError(field, value)
        return decoded
    raise UpstreamProtocolError(field, value)
