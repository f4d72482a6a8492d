"""Location autocomplete clients for the two geocoding upstreams."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol

from hotel_broker.core.http import ResilientClient
from hotel_broker.hotels.models import LocationCandidate

logger = logging.getLogger(__name__)

MAPBOX_FORWARD_PATH = "search/geocode/v6/forward"
MAPBOX_TYPES = "neighborhood,region,country,place,district,locality"
HERE_AUTOCOMPLETE_PATH = "autocomplete"


class LocationLookup(Protocol):
    async def search(self, query: Optional[str], lang: Optional[str] = None) -> List[LocationCandidate]:
        ...


def _format_coordinate(value: Any) -> str:
    return f"{float(value):g}"


def location_id(bbox: Iterable[Any], latitude: Any, longitude: Any) -> str:
    """Render the ``[w,s,e,n]-lat-lon`` id search requests parse back into a bounding box."""
    box = ",".join(_format_coordinate(value) for value in bbox)
    return f"[{box}]-{_format_coordinate(latitude)}-{_format_coordinate(longitude)}"


class MapboxLocationClient:
    """Forward geocoding against the primary (Mapbox-style) upstream."""

    source = "geocode-a"

    def __init__(
        self,
        client: ResilientClient,
        *,
        api_key: Optional[str],
        countries: str = "gr,cy",
        limit: int = 10,
        default_lang: str = "el",
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._countries = countries
        self._limit = limit
        self._default_lang = default_lang

    async def lookup(self, query: str, *, lang: Optional[str] = None) -> Dict[str, Any]:
        params = {
            "q": query,
            "country": self._countries,
            "limit": str(self._limit),
            "types": MAPBOX_TYPES,
            "language": lang or self._default_lang,
            "autocomplete": "true",
            "access_token": self._api_key or "",
            "permanent": "false",
        }
        logger.debug("Geocode lookup query='%s' lang=%s", query, params["language"])
        return await self._client.request_json("GET", MAPBOX_FORWARD_PATH, params=params) or {}

    async def search(self, query: Optional[str], lang: Optional[str] = None) -> List[LocationCandidate]:
        if query is None or not query.strip():
            return []
        payload = await self.lookup(query.strip(), lang=lang)
        return list(self.iter_candidates(payload))

    @classmethod
    def iter_candidates(cls, payload: Dict[str, Any]) -> Iterable[LocationCandidate]:
        for feature in payload.get("features") or []:
            properties: Dict[str, Any] = feature.get("properties") or {}
            if properties.get("feature_type") == "country":
                continue
            coordinates: Dict[str, Any] = properties.get("coordinates") or {}
            bbox = properties.get("bbox") or []
            if len(bbox) != 4 or "latitude" not in coordinates or "longitude" not in coordinates:
                logger.debug("Skipping geocode feature without bbox/coordinates: %s", properties.get("name_preferred"))
                continue
            context: Dict[str, Any] = properties.get("context") or {}
            yield LocationCandidate(
                id=location_id(bbox, coordinates["latitude"], coordinates["longitude"]),
                name=properties.get("name_preferred") or properties.get("name") or "",
                region=(context.get("region") or {}).get("name"),
                country_code=(context.get("country") or {}).get("country_code"),
                kind=properties.get("feature_type"),
                source=cls.source,
            )


class HereLocationClient:
    """Address autocomplete against the secondary (HERE-style) upstream."""

    source = "geocode-b"

    def __init__(
        self,
        client: ResilientClient,
        *,
        api_key: Optional[str],
        countries: str = "CYP,GRC",
        limit: int = 20,
    ) -> None:
        self._client = client
        self._api_key = api_key
        self._countries = countries
        self._limit = limit

    async def lookup(self, query: str, *, lang: Optional[str] = None) -> Dict[str, Any]:
        params = {
            "q": query,
            "in": f"countryCode:{self._countries}",
            "limit": str(self._limit),
            "apiKey": self._api_key or "",
        }
        if lang:
            params["lang"] = lang
        logger.debug("Autocomplete lookup query='%s'", query)
        return await self._client.request_json("GET", HERE_AUTOCOMPLETE_PATH, params=params) or {}

    async def search(self, query: Optional[str], lang: Optional[str] = None) -> List[LocationCandidate]:
        if query is None or not query.strip():
            return []
        payload = await self.lookup(query.strip(), lang=lang)
        return list(self.iter_candidates(payload))

    @classmethod
    def iter_candidates(cls, payload: Dict[str, Any]) -> Iterable[LocationCandidate]:
        for item in payload.get("items") or []:
            address: Dict[str, Any] = item.get("address") or {}
            label = address.get("label") or item.get("title")
            if not label:
                continue
            yield LocationCandidate(
                id=str(item.get("id") or label),
                name=label,
                region=address.get("state") or address.get("city"),
                country_code=address.get("countryCode"),
                kind=item.get("resultType"),
                source=cls.source,
            )
