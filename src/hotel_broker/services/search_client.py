"""Client for the hotel inventory and availability API."""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from hotel_broker.core.http import ResilientClient
from hotel_broker.hotels.models import CompositeId, Hotel, LocationCandidate, PartyItem
from hotel_broker.hotels.normalizer import CalendarDay, build_calendar_days, build_hotels, build_single_hotel
from hotel_broker.hotels.wire import decode_int_lenient
from hotel_broker.tasks.search_payloads import SearchParams

logger = logging.getLogger(__name__)

PROPERTY_PATH = "property"
AVAILABILITY_PATH = "availability"


def _envelope_ok(payload: Dict[str, Any], what: str) -> bool:
    """Inventory responses carry their own status; a non-2xx ``http_code`` means no data."""
    if "http_code" not in payload:
        return True
    code = decode_int_lenient(payload.get("http_code"), field="http_code")
    if code == 0 or 200 <= code < 300:
        return True
    logger.warning(
        "Inventory %s returned http_code=%s error_code=%s: %s",
        what,
        code,
        payload.get("error_code"),
        payload.get("error_msg"),
    )
    return False


class InventoryClient:
    """Wraps the inventory endpoints and hands back canonical records."""

    def __init__(self, client: ResilientClient, *, lang: str = "en") -> None:
        self._client = client
        self.lang = lang

    async def _get(self, path: str, *, params: Optional[Dict[str, str]] = None, what: str) -> Dict[str, Any]:
        payload = await self._client.request_json("GET", path, params=params) or {}
        return payload if _envelope_ok(payload, what) else {}

    async def search_properties(self, name: Optional[str]) -> List[LocationCandidate]:
        if name is None or not name.strip():
            return []
        logger.debug("Property lookup name='%s'", name)
        payload = await self._get(PROPERTY_PATH, params={"name": name.strip()}, what="property search")
        return list(self.iter_properties(payload))

    async def get_all_properties(self) -> List[LocationCandidate]:
        payload = await self._get(PROPERTY_PATH, what="property list")
        return list(self.iter_properties(payload))

    async def get_availability(self, params: SearchParams, party: PartyItem) -> List[Hotel]:
        logger.info(
            "Fetching availability for party %s (%s -> %s)",
            party.to_wire(),
            params.check_in,
            params.check_out,
        )
        payload = await self._get(AVAILABILITY_PATH, params=params.to_query(party), what="availability")
        return build_hotels(payload, party=party, lang=self.lang)

    async def get_hotel_availability(
        self,
        hotel_code: str,
        check_in: date,
        check_out: date,
        party: PartyItem,
    ) -> Optional[Hotel]:
        params = {"party": party.to_wire(), "checkin": check_in.isoformat(), "checkout": check_out.isoformat()}
        payload = await self._get(f"{AVAILABILITY_PATH}/{hotel_code}", params=params, what="hotel availability")
        if not payload.get("data"):
            return None
        return build_single_hotel(payload, party=party, lang=self.lang)

    async def get_flexible_calendar(
        self,
        hotel_code: str,
        party: PartyItem,
        start: date,
        end: date,
    ) -> List[CalendarDay]:
        params = {"party": party.to_wire(), "startDate": start.isoformat(), "endDate": end.isoformat()}
        payload = await self._get(
            f"{AVAILABILITY_PATH}/{hotel_code}/flexible-calendar", params=params, what="flexible calendar"
        )
        return build_calendar_days(payload)

    @staticmethod
    def iter_properties(payload: Dict[str, Any]) -> Iterable[LocationCandidate]:
        data: Dict[str, Any] = payload.get("data") or {}
        for hotel in data.get("hotels") or []:
            code = hotel.get("code")
            if not code:
                continue
            location: Dict[str, Any] = hotel.get("location") or {}
            yield LocationCandidate(
                id=str(CompositeId.for_inventory(str(code))),
                name=hotel.get("name") or "",
                region=location.get("name"),
                country_code=location.get("country"),
                kind=hotel.get("type") or "hotel",
                source="inventory",
            )
