from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from hotel_broker.errors import UpstreamProtocolError, UpstreamUnavailable
from hotel_broker.facets.filters import RangeSelection
from hotel_broker.hotels.boards import board_name
from hotel_broker.hotels.models import Board, CompositeId, Hotel, Location, LocationCandidate, PartyItem, Rate
from hotel_broker.hotels.normalizer import CalendarDay, map_categories
from hotel_broker.pricing.engine import PricingEngine, PricingOptions
from hotel_broker.tasks.search import AutocompleteTask, HotelAvailabilityTask, SearchTask
from hotel_broker.tasks.search_payloads import SearchParams

COUPLE = PartyItem(2)
SINGLES = PartyItem(1, rooms=2)


def make_hotel(code, party, net, *, rating=4, board=3, type_text="Hotel", photo="l.jpg", distance=1.0):
    rate = Rate(
        id=f"{code}-{party.suffix()}",
        hotel_id=f"1-{code}",
        room_type="DBL",
        room_name="Double",
        rate_name="Standard",
        board=Board(board, board_name(board)),
        net_price=Decimal(net),
        remaining=5,
        party=party,
    )
    return Hotel(
        id=CompositeId.for_inventory(code),
        name=f"Hotel {code}",
        rating=rating,
        location=Location(37.9, 23.7),
        categories=map_categories(type_text),
        type_text=type_text,
        photo_l=photo,
        distance=distance,
        rates=(rate,),
        party=party,
    )


class StubInventory:
    def __init__(self, by_adults=None, properties=(), error=None, hotel=None, calendar=()):
        self.by_adults = by_adults or {}
        self.properties = list(properties)
        self.error = error
        self.hotel = hotel
        self.calendar = list(calendar)
        self.calls = []

    async def get_availability(self, params, party):
        self.calls.append(("availability", party))
        if self.error is not None:
            raise self.error
        return self.by_adults.get(party.adults, [])

    async def search_properties(self, name):
        self.calls.append(("properties", name))
        if self.error is not None:
            raise self.error
        return self.properties

    async def get_hotel_availability(self, code, check_in, check_out, party):
        self.calls.append(("hotel", party))
        return self.hotel(party) if self.hotel else None

    async def get_flexible_calendar(self, code, party, start, end):
        self.calls.append(("calendar", start, end))
        return self.calendar


class StubLookup:
    def __init__(self, candidates=(), error=None):
        self.candidates = list(candidates)
        self.error = error
        self.queries = []

    async def search(self, query, lang=None):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.candidates


def _params(**overrides) -> SearchParams:
    fields = dict(
        check_in=date(2030, 6, 1),
        check_out=date(2030, 6, 3),
        bbox=(23.6, 37.9, 23.8, 38.1),
        latitude=37.98,
        longitude=23.72,
        party=[COUPLE, SINGLES],
    )
    fields.update(overrides)
    return SearchParams(**fields)


def _inventory() -> StubInventory:
    return StubInventory(
        by_adults={
            2: [
                make_hotel("H1", COUPLE, "100"),
                make_hotel("H2", COUPLE, "200", rating=5, board=12, type_text="Villa"),
                make_hotel("H3", COUPLE, "90"),
            ],
            1: [
                make_hotel("H1", SINGLES, "50"),
                make_hotel("H2", SINGLES, "60", rating=5, board=12, type_text="Villa"),
            ],
        }
    )


@pytest.fixture
def engine() -> PricingEngine:
    return PricingEngine(PricingOptions())


@pytest.mark.asyncio
async def test_search_merges_parties_prices_and_orders(engine):
    inventory = _inventory()

    result = await SearchTask(inventory, engine).run(_params())

    assert [hotel.code for hotel in result.hotels] == ["H1", "H2"]
    assert result.total == 2
    h1, h2 = result.hotels
    assert h1.min_price == Decimal("220")
    assert h1.min_price_per_night == Decimal("109")
    assert h2.min_price == Decimal("352")
    assert h1.board_text == "Board:"
    assert [board.name for board in h2.boards] == ["Half Board"]
    assert sorted(call[1].adults for call in inventory.calls) == [1, 2]

    rating = next(item for item in result.filters if item.id == "rating")
    assert [(value.id, value.name, value.count) for value in rating.values] == [("5", "5 stars", 1), ("4", "4 stars", 1)]


@pytest.mark.asyncio
async def test_search_applies_selections_and_reports_facets(engine):
    result = await SearchTask(_inventory(), engine).run(_params(sort_order="desc"), {"rating": ["5"]})
    assert [hotel.code for hotel in result.hotels] == ["H2"]
    assert result.total == 2
    rating = next(item for item in result.filters if item.id == "rating")
    assert {value.id: value.filtered_count for value in rating.values} == {"5": 1, "4": 0}

    cheap = await SearchTask(_inventory(), engine).run(_params(), {"price": RangeSelection(maximum=Decimal("150"))})
    assert [hotel.code for hotel in cheap.hotels] == ["H1"]

    villas = await SearchTask(_inventory(), engine).run(_params(), {"hotelTypes": ["Villa"], "boardTypes": ["12"]})
    assert [hotel.code for hotel in villas.hotels] == ["H2"]

    ordered = await SearchTask(_inventory(), engine).run(_params(sort_by="rating", sort_order="desc"))
    assert [hotel.code for hotel in ordered.hotels] == ["H2", "H1"]
    assert result.to_dict()["hotels"][0]["id"] == "1-H2"


@pytest.mark.asyncio
async def test_search_propagates_inventory_outage(engine):
    inventory = StubInventory(error=UpstreamUnavailable("inventory"))
    with pytest.raises(UpstreamUnavailable):
        await SearchTask(inventory, engine).run(_params())


@pytest.mark.asyncio
async def test_autocomplete_degrades_when_a_geocoder_is_down():
    athens = LocationCandidate(id="[23.6,37.9,23.8,38.1]-37.98-23.72", name="Athens", source="geocode-b")
    hotel = LocationCandidate(id="1-H1", name="Athens Sea View", source="inventory")
    down = StubLookup(error=UpstreamUnavailable("geocode-a"))
    up = StubLookup([athens])

    found = await AutocompleteTask(StubInventory(properties=[hotel]), [down, up]).run("Athens", "en")

    assert found == {"hotels": [hotel], "locations": [athens]}
    assert down.queries == ["Athens"]


@pytest.mark.asyncio
async def test_autocomplete_propagates_inventory_outage():
    inventory = StubInventory(error=UpstreamUnavailable("inventory"))
    with pytest.raises(UpstreamUnavailable):
        await AutocompleteTask(inventory, [StubLookup()]).run("Athens")


@pytest.mark.asyncio
async def test_autocomplete_ignores_short_queries():
    inventory = StubInventory()
    lookup = StubLookup()

    assert await AutocompleteTask(inventory, [lookup]).run("at") == {"hotels": [], "locations": []}
    assert await AutocompleteTask(inventory, [lookup]).run(None) == {"hotels": [], "locations": []}
    assert inventory.calls == []
    assert lookup.queries == []


@pytest.mark.asyncio
async def test_hotel_availability_prices_found_rates(engine):
    inventory = StubInventory(hotel=lambda party: make_hotel("H1", party, "100"))

    availability = await HotelAvailabilityTask(inventory, engine).run(
        "H1", date(2030, 6, 1), date(2030, 6, 3), [COUPLE]
    )

    assert availability.hotel is not None
    assert availability.hotel.min_price == Decimal("110")
    assert availability.hotel.board_text == "Board:"
    assert availability.alternatives == []


@pytest.mark.asyncio
async def test_hotel_availability_suggests_alternative_dates(engine):
    calendar = [
        CalendarDay(date(2030, 6, 5), "AVL", Decimal("40"), Decimal("50"), 0),
        CalendarDay(date(2030, 6, 6), "AVL", Decimal("40"), Decimal("50"), 0),
    ]
    inventory = StubInventory(calendar=calendar)

    availability = await HotelAvailabilityTask(inventory, engine).run(
        "H1", date(2030, 6, 1), date(2030, 6, 3), [COUPLE], today=date(2030, 5, 25)
    )

    assert availability.hotel is None
    assert [(stay.check_in, stay.check_out, stay.min_price) for stay in availability.alternatives] == [
        (date(2030, 6, 5), date(2030, 6, 7), Decimal("100"))
    ]
    calendar_call = next(call for call in inventory.calls if call[0] == "calendar")
    assert calendar_call[1:] == (date(2030, 5, 26), date(2030, 6, 17))
    assert availability.to_dict()["alternatives"][0]["nights"] == 2


class BackingOffInventory(StubInventory):
    """Couples fail outright while the single-room call is still waiting to retry."""

    def __init__(self):
        super().__init__()
        self.cancelled = []
        self.retried = []

    async def get_availability(self, params, party):
        if party.adults == 2:
            await asyncio.sleep(0)
            raise UpstreamUnavailable("inventory")
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            self.cancelled.append(party)
            raise
        self.retried.append(party)
        return []


@pytest.mark.asyncio
async def test_failed_party_cancels_calls_still_backing_off(engine):
    inventory = BackingOffInventory()

    with pytest.raises(UpstreamUnavailable):
        await SearchTask(inventory, engine).run(_params())

    assert inventory.cancelled == [SINGLES]
    assert inventory.retried == []


@pytest.mark.asyncio
async def test_autocomplete_skips_a_geocoder_returning_garbage():
    athens = LocationCandidate(id="[23.6,37.9,23.8,38.1]-37.98-23.72", name="Athens", source="geocode-a")
    garbled = StubLookup(error=UpstreamProtocolError("geocode-b response body", "<html>"))

    found = await AutocompleteTask(StubInventory(), [StubLookup([athens]), garbled]).run("Athens")

    assert found == {"hotels": [], "locations": [athens]}
