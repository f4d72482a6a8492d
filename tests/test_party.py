from __future__ import annotations

import pytest

from hotel_broker.errors import ValidationError
from hotel_broker.hotels.models import CompositeId, PartyItem
from hotel_broker.hotels.party import build_party, parse_party, parse_rate_party, total_rooms


def test_identical_rooms_are_grouped_with_multiplicity():
    party = parse_party('[{"adults":2,"children":[2,6]},{"adults":3},{"adults":2,"children":[2,6]}]')

    assert party == [PartyItem(2, (2, 6)), PartyItem(3)]
    assert [item.rooms for item in party] == [2, 1]
    assert total_rooms(party) == 3


def test_party_equality_ignores_rooms_but_respects_child_order():
    assert PartyItem(2, (2, 6)) == PartyItem(2, (2, 6), rooms=3)
    assert hash(PartyItem(2, (2, 6))) == hash(PartyItem(2, (2, 6), rooms=3))
    assert PartyItem(2, (2, 6)) != PartyItem(2, (6, 2))


def test_party_wire_and_suffix_forms():
    item = PartyItem(2, (5, 9))
    assert item.to_wire() == '[{"adults":2,"children":[5,9]}]'
    assert PartyItem(1).to_wire() == '[{"adults":1}]'
    assert item.suffix() == "2_5_9"
    assert parse_rate_party("2_5_9") == item


def test_single_room_object_is_accepted():
    assert parse_party('{"adults": 1}') == [PartyItem(1)]


@pytest.mark.parametrize(
    "raw",
    ["", "not json", "[]", '[{"adults":0}]', '[{"adults":2,"children":[18]}]', '[{"adults":true}]', '["x"]'],
)
def test_invalid_parties_are_rejected(raw):
    with pytest.raises(ValidationError):
        parse_party(raw)


def test_build_party_from_adults_and_child_ages():
    assert build_party(2, "5, 9") == '[{"adults":2,"children":[5,9]}]'
    assert build_party(2) == '[{"adults":2}]'
    with pytest.raises(ValidationError):
        build_party(2, "five")


def test_composite_id_round_trip_and_errors():
    hotel_id = CompositeId.parse("1-ABC-7")
    assert hotel_id.provider == 1
    assert hotel_id.value == "ABC-7"
    assert str(hotel_id) == "1-ABC-7"
    assert str(CompositeId.for_inventory("H1")) == "1-H1"
    for raw in ("", "ABC", "x-ABC", "1-"):
        with pytest.raises(ValidationError):
            CompositeId.parse(raw)
