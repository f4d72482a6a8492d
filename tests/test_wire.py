from __future__ import annotations

from datetime import timezone
from decimal import Decimal

import pytest

from hotel_broker.errors import UpstreamProtocolError
from hotel_broker.hotels.wire import (
    decode_decimal,
    decode_id_string,
    decode_int_lenient,
    decode_nullable_datetime,
    encode_nullable_datetime,
)


@pytest.mark.parametrize("raw, expected", [(None, 0), ("", 0), ("  ", 0), ("3", 3), (" 7 ", 7), (4, 4), (2.0, 2)])
def test_decode_int_lenient_accepts_numbers_and_numeric_strings(raw, expected):
    assert decode_int_lenient(raw, field="min_stay") == expected


@pytest.mark.parametrize("raw", ["abc", True, 2.5, [1], {"n": 1}])
def test_decode_int_lenient_rejects_other_tokens(raw):
    with pytest.raises(UpstreamProtocolError) as excinfo:
        decode_int_lenient(raw, field="min_stay")
    assert excinfo.value.field == "min_stay"


def test_decode_id_string_handles_numbers_and_strings():
    assert decode_id_string(123, field="orderCode") == "123"
    assert decode_id_string(1234567890123456.0, field="orderCode") == "1234567890123456"
    assert decode_id_string("A1", field="orderCode") == "A1"
    with pytest.raises(UpstreamProtocolError):
        decode_id_string(None, field="orderCode")
    with pytest.raises(UpstreamProtocolError):
        decode_id_string(["A1"], field="orderCode")


def test_blank_datetime_decodes_to_none_and_encodes_back_to_none():
    decoded = decode_nullable_datetime("", field="cancellation_expiry")
    assert decoded is None
    assert encode_nullable_datetime(decoded) is None


def test_datetime_with_zulu_suffix_is_utc():
    decoded = decode_nullable_datetime("2030-05-01T10:00:00Z")
    assert decoded.tzinfo == timezone.utc
    assert encode_nullable_datetime(decoded) == "2030-05-01T10:00:00+00:00"


def test_malformed_datetime_is_protocol_error():
    with pytest.raises(UpstreamProtocolError):
        decode_nullable_datetime("next tuesday")
    with pytest.raises(UpstreamProtocolError):
        decode_nullable_datetime(20300501)


def test_decode_decimal_goes_through_text_form():
    assert decode_decimal("12.50") == Decimal("12.50")
    assert decode_decimal(0.1) == Decimal("0.1")
    assert decode_decimal("", default=Decimal("0")) == Decimal("0")
    with pytest.raises(UpstreamProtocolError):
        decode_decimal("NaN")
    with pytest.raises(UpstreamProtocolError):
        decode_decimal("twelve")
