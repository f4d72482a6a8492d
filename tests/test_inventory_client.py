from __future__ import annotations

from datetime import date
from decimal import Decimal

import httpx
import pytest

from hotel_broker.errors import UpstreamProtocolError, UpstreamUnavailable
from hotel_broker.hotels.models import PartyItem
from hotel_broker.services.search_client import InventoryClient
from hotel_broker.tasks.search_payloads import SearchParams

AVAILABILITY = {
    "http_code": 200,
    "data": {
        "hotels": [
            {
                "code": "H1",
                "name": "Sea View",
                "rating": "4",
                "type": "Boutique Hotel",
                "photoM": "m.jpg",
                "photoL": "l.jpg",
                "distance": 1.5,
                "location": {"lat": "37.9", "lon": "23.7", "name": "Athens", "country": "GR"},
                "rates": [
                    {
                        "rate": 11,
                        "type": "DBL",
                        "room": "Double",
                        "board": 3,
                        "price": "100.00",
                        "retail": "120.00",
                        "discount": "",
                        "remaining": "2",
                        "cancellation_expiry": "",
                        "cancellation_fees": [],
                        "payments": [{"due": "2030-01-01", "amount": "50"}, {"due": "2030-02-01", "amount": 50}],
                    }
                ],
            }
        ]
    },
}

PROPERTIES = {
    "data": {
        "hotels": [
            {"code": "H1", "name": "Sea View", "location": {"name": "Athens", "country": "GR"}},
            {"code": "", "name": "Broken"},
        ]
    }
}


def _params(party):
    return SearchParams(
        check_in=date(2030, 6, 1),
        check_out=date(2030, 6, 3),
        bbox=(23.6, 37.9, 23.8, 38.1),
        latitude=37.98,
        longitude=23.72,
        party=party,
    )


class Recorder:
    def __init__(self, payload: dict, status: int = 200) -> None:
        self.payload = payload
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.payload)


@pytest.mark.asyncio
async def test_availability_builds_canonical_hotels(make_client):
    upstream = Recorder(AVAILABILITY)
    inventory = InventoryClient(make_client("inventory", upstream))
    party = PartyItem(2, (5,))

    hotels = await inventory.get_availability(_params([party]), party)

    assert len(hotels) == 1
    hotel = hotels[0]
    assert str(hotel.id) == "1-H1"
    assert hotel.rating == 4
    assert hotel.categories == ("Hotel",)
    assert hotel.location.name == "Athens"
    rate = hotel.rates[0]
    assert rate.id == "11-2_5"
    assert rate.net_price == Decimal("100.00")
    assert rate.upstream_retail == Decimal("120.00")
    assert rate.upstream_discount == Decimal("0")
    assert rate.remaining == 2
    assert rate.board.name == "Bed & Breakfast"
    assert rate.cancellation.label == "Non-refundable"
    assert rate.payments.total == Decimal("100")
    assert rate.party == party

    query = upstream.requests[0].url.params
    assert upstream.requests[0].url.path == "/availability"
    assert query["party"] == '[{"adults":2,"children":[5]}]'
    assert (query["checkin"], query["checkout"]) == ("2030-06-01", "2030-06-03")
    assert (query["lat1"], query["lat2"], query["lon1"], query["lon2"]) == ("37.9", "38.1", "23.6", "23.8")
    assert query["payments"] == "1"


@pytest.mark.asyncio
async def test_error_envelope_means_no_results(make_client):
    upstream = Recorder({"http_code": 500, "error_code": "E1", "error_msg": "Upstream failure"})
    inventory = InventoryClient(make_client("inventory", upstream))
    party = PartyItem(2)

    assert await inventory.get_availability(_params([party]), party) == []


@pytest.mark.asyncio
async def test_property_search_maps_candidates(make_client):
    upstream = Recorder(PROPERTIES)
    inventory = InventoryClient(make_client("inventory", upstream))

    candidates = await inventory.search_properties("Sea")

    assert [(candidate.id, candidate.name, candidate.source) for candidate in candidates] == [
        ("1-H1", "Sea View", "inventory")
    ]
    assert upstream.requests[0].url.params["name"] == "Sea"
    assert await inventory.search_properties("  ") == []
    assert len(upstream.requests) == 1


@pytest.mark.asyncio
async def test_malformed_tokens_are_protocol_errors(make_client):
    broken = {"data": {"hotels": [{**AVAILABILITY["data"]["hotels"][0], "rating": "four"}]}}
    inventory = InventoryClient(make_client("inventory", Recorder(broken)))
    party = PartyItem(2)

    with pytest.raises(UpstreamProtocolError):
        await inventory.get_availability(_params([party]), party)


@pytest.mark.asyncio
async def test_unreachable_inventory_raises_after_retries(make_client, sleep):
    inventory = InventoryClient(make_client("inventory", Recorder({}, status=503)))
    party = PartyItem(2)

    with pytest.raises(UpstreamUnavailable):
        await inventory.get_availability(_params([party]), party)
    assert len(sleep.delays) == 3


@pytest.mark.asyncio
async def test_single_hotel_availability_and_calendar(make_client):
    payload = {
        "data": {
            "code": "H1",
            "name": "Sea View",
            "rating": 5,
            "type": "Villa",
            "rates": [
                {
                    "id": 7,
                    "type": "VIL",
                    "room": "Villa",
                    "rate": "Flexible",
                    "board": None,
                    "pricing": {"price": "300", "margin": "30", "taxes": "12.5", "excluded_charges": "4"},
                    "retail": {"price": "360", "discount": "40"},
                    "status": "AVL",
                    "status_descr": "Available",
                    "remaining": 1,
                    "cancellation_expiry": "2030-05-20T00:00:00Z",
                    "cancellation_fees": [{"after": "2030-05-20T00:00:00Z", "fee": "150"}],
                }
            ],
        }
    }
    inventory = InventoryClient(make_client("inventory", Recorder(payload)))
    party = PartyItem(2)

    hotel = await inventory.get_hotel_availability("H1", date(2030, 6, 1), date(2030, 6, 3), party)

    rate = hotel.rates[0]
    assert rate.id == "7-2"
    assert rate.board.id == 14
    assert rate.taxes == Decimal("12.5")
    assert rate.excluded_charges == Decimal("4")
    assert rate.upstream_discount == Decimal("40")
    assert rate.status_text == "Available"
    assert rate.cancellation.label == "Free cancellation"

    calendar = {"data": {"days": [{"date": "2030-06-01", "status": "AVL", "price": "80", "retail": "100", "min_stay": ""}]}}
    inventory = InventoryClient(make_client("inventory", Recorder(calendar)))
    days = await inventory.get_flexible_calendar("H1", party, date(2030, 6, 1), date(2030, 6, 10))
    assert [(day.day, day.min_stay, day.retail_price) for day in days] == [(date(2030, 6, 1), 0, Decimal("100"))]

    empty = InventoryClient(make_client("inventory", Recorder({"data": {}})))
    assert await empty.get_hotel_availability("H1", date(2030, 6, 1), date(2030, 6, 3), party) is None
