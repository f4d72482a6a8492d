"""Search workflows: availability search, single-hotel availability and autocomplete."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Coroutine, Dict, List, Optional, Sequence

from hotel_broker.errors import UpstreamProtocolError, UpstreamUnavailable
from hotel_broker.facets.filters import Filter, Selections, apply_selections, build_facets
from hotel_broker.facets.hotel_facets import hotel_facets
from hotel_broker.hotels.models import Hotel, LocationCandidate, PartyItem
from hotel_broker.hotels.normalizer import (
    AlternativeStay,
    alternative_stays,
    common_alternatives,
    covers_request,
    merge_party_results,
    price_hotel,
    with_board_summary,
)
from hotel_broker.pricing.engine import Coupon, PricingEngine
from hotel_broker.services.location_client import LocationLookup
from hotel_broker.services.search_client import InventoryClient

from .search_payloads import SearchParams

logger = logging.getLogger(__name__)

MIN_AUTOCOMPLETE_LENGTH = 3
ALTERNATIVES_WINDOW_DAYS = 14


async def gather_or_cancel(*calls: Coroutine[Any, Any, Any]) -> List[Any]:
    """Await every call; the first failure cancels the rest and is raised as-is."""
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(call) for call in calls]
    except BaseExceptionGroup as failed:
        raise failed.exceptions[0]
    return [task.result() for task in tasks]


@dataclass(slots=True)
class SearchResult:
    hotels: List[Hotel]
    filters: List[Filter]
    total: int

    def to_dict(self) -> dict[str, object]:
        return {
            "total": self.total,
            "hotels": [hotel.to_dict() for hotel in self.hotels],
            "filters": [item.to_dict() for item in self.filters],
        }


def _sort_hotels(hotels: List[Hotel], params: SearchParams) -> List[Hotel]:
    keys = {
        "price": lambda hotel: hotel.min_price,
        "distance": lambda hotel: hotel.distance if hotel.distance is not None else float("inf"),
        "rating": lambda hotel: hotel.rating,
    }
    return sorted(hotels, key=keys[params.sort_by], reverse=params.sort_order == "desc")


class SearchTask:
    """Fan out one availability call per party, then merge, price, facet and order the results."""

    def __init__(self, inventory: InventoryClient, engine: PricingEngine, *, coupon: Optional[Coupon] = None) -> None:
        self.inventory = inventory
        self.engine = engine
        self.coupon = coupon

    async def run(self, params: SearchParams, selections: Selections | None = None) -> SearchResult:
        logger.info(
            "Executing search %s -> %s for %s room group(s)", params.check_in, params.check_out, len(params.party)
        )
        responses = await gather_or_cancel(
            *(self.inventory.get_availability(params, party) for party in params.party)
        )
        per_party: Dict[PartyItem, List[Hotel]] = {
            party: [price_hotel(hotel, self.engine, nights=params.nights, coupon=self.coupon) for hotel in hotels]
            for party, hotels in zip(params.party, responses)
        }
        merged = merge_party_results(per_party)
        hotels = [with_board_summary(hotel, params.lang) for hotel in merged if covers_request(hotel, params.party)]
        logger.debug("Search kept %s of %s merged hotels after coverage check", len(hotels), len(merged))

        facets = hotel_facets(params.lang)
        filters = build_facets(hotels, facets, selections)
        visible = apply_selections(hotels, facets, selections or {})
        return SearchResult(hotels=_sort_hotels(visible, params), filters=filters, total=len(hotels))


@dataclass(slots=True)
class HotelAvailability:
    hotel: Optional[Hotel]
    alternatives: List[AlternativeStay] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "hotel": self.hotel.to_dict() if self.hotel else None,
            "alternatives": [
                {
                    "check_in": stay.check_in.isoformat(),
                    "check_out": stay.check_out.isoformat(),
                    "nights": stay.nights,
                    "min_price": str(stay.min_price),
                }
                for stay in self.alternatives
            ],
        }


class HotelAvailabilityTask:
    """Rates for one hotel across every party; suggests nearby dates when nothing is bookable."""

    def __init__(self, inventory: InventoryClient, engine: PricingEngine, *, coupon: Optional[Coupon] = None) -> None:
        self.inventory = inventory
        self.engine = engine
        self.coupon = coupon

    async def run(
        self,
        hotel_code: str,
        check_in: date,
        check_out: date,
        party: Sequence[PartyItem],
        *,
        lang: str = "en",
        today: Optional[date] = None,
    ) -> HotelAvailability:
        nights = (check_out - check_in).days
        responses = await gather_or_cancel(
            *(self.inventory.get_hotel_availability(hotel_code, check_in, check_out, item) for item in party)
        )
        found = [hotel for hotel in responses if hotel is not None]
        if found:
            base = found[0]
            combined = replace(base, rates=tuple(rate for hotel in found for rate in hotel.rates))
            priced = price_hotel(combined, self.engine, nights=nights, coupon=self.coupon)
            if priced.rates and covers_request(priced, party):
                return HotelAvailability(hotel=with_board_summary(priced, lang))

        logger.info("No bookable rates for hotel %s; looking for alternative dates", hotel_code)
        start = max(check_in - timedelta(days=ALTERNATIVES_WINDOW_DAYS), (today or date.today()) + timedelta(days=1))
        end = check_out + timedelta(days=ALTERNATIVES_WINDOW_DAYS)
        calendars = await gather_or_cancel(
            *(self.inventory.get_flexible_calendar(hotel_code, item, start, end) for item in party)
        )
        per_party = {item: alternative_stays(days, nights) for item, days in zip(party, calendars)}
        return HotelAvailability(hotel=None, alternatives=common_alternatives(per_party))


class AutocompleteTask:
    """Property names and places for a free-text query; geocoder outages degrade to no suggestions."""

    def __init__(self, inventory: InventoryClient, lookups: Sequence[LocationLookup]) -> None:
        self.inventory = inventory
        self.lookups = list(lookups)

    async def _safe_lookup(self, lookup: LocationLookup, query: str, lang: Optional[str]) -> List[LocationCandidate]:
        try:
            return await lookup.search(query, lang)
        except (UpstreamUnavailable, UpstreamProtocolError):
            logger.warning("Location lookup %s failed; continuing without it", type(lookup).__name__, exc_info=True)
            return []

    async def run(self, query: Optional[str], lang: Optional[str] = None) -> Dict[str, List[LocationCandidate]]:
        if query is None or len(query.strip()) < MIN_AUTOCOMPLETE_LENGTH:
            return {"hotels": [], "locations": []}
        query = query.strip()
        hotels, *locations = await gather_or_cancel(
            self.inventory.search_properties(query),
            *(self._safe_lookup(lookup, query, lang) for lookup in self.lookups),
        )
        return {"hotels": hotels, "locations": [candidate for batch in locations for candidate in batch]}
