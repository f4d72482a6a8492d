"""Search request parameters and their inventory query form."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Tuple

from hotel_broker.errors import ValidationError
from hotel_broker.hotels.models import PartyItem
from hotel_broker.hotels.party import parse_party

LOCATION_ID_PATTERN = re.compile(
    r"^\[(?P<bbox>[^\]]+)\]-(?P<lat>-?\d+(?:\.\d+)?)-(?P<lon>-?\d+(?:\.\d+)?)$"
)
DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d")
SORT_FIELDS = ("price", "distance", "rating")


def parse_date(value: str | date, *, field: str = "date") -> date:
    if isinstance(value, date):
        return value
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(str(value).strip(), fmt).date()
        except ValueError:
            continue
    raise ValidationError(f"Invalid {field} '{value}': expected dd/mm/yyyy")


def parse_location_id(location_id: str) -> Tuple[Tuple[float, float, float, float], float, float]:
    """Split ``[w,s,e,n]-lat-lon`` into its bounding box and centre point."""
    match = LOCATION_ID_PATTERN.match((location_id or "").strip())
    if match is None:
        raise ValidationError(f"Invalid location id '{location_id}': expected [w,s,e,n]-lat-lon")
    try:
        west, south, east, north = (float(part) for part in match.group("bbox").split(","))
    except ValueError as exc:
        raise ValidationError(f"Invalid bounding box in location id '{location_id}'") from exc
    return (west, south, east, north), float(match.group("lat")), float(match.group("lon"))


@dataclass
class SearchParams:
    check_in: date
    check_out: date
    bbox: Tuple[float, float, float, float]
    latitude: float
    longitude: float
    party: List[PartyItem] = field(default_factory=list)
    sort_by: str = "price"
    sort_order: str = "asc"
    lang: str = "en"

    def __post_init__(self) -> None:
        if self.check_out <= self.check_in:
            raise ValidationError("check-out must be after check-in")
        if not self.party:
            raise ValidationError("search needs at least one room")
        if self.sort_by not in SORT_FIELDS:
            raise ValidationError(f"Unsupported sort field '{self.sort_by}'")
        if self.sort_order not in ("asc", "desc"):
            raise ValidationError(f"Unsupported sort order '{self.sort_order}'")

    @classmethod
    def from_request(
        cls,
        *,
        location_id: str,
        check_in: str | date,
        check_out: str | date,
        party: str,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        lang: str = "en",
    ) -> "SearchParams":
        bbox, latitude, longitude = parse_location_id(location_id)
        return cls(
            check_in=parse_date(check_in, field="check-in"),
            check_out=parse_date(check_out, field="check-out"),
            bbox=bbox,
            latitude=latitude,
            longitude=longitude,
            party=parse_party(party),
            sort_by=sort_by or "price",
            sort_order=(sort_order or "asc").lower(),
            lang=lang,
        )

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days

    def to_query(self, party: PartyItem) -> Dict[str, str]:
        west, south, east, north = self.bbox
        return {
            "party": party.to_wire(),
            "checkin": self.check_in.isoformat(),
            "checkout": self.check_out.isoformat(),
            "lat": f"{self.latitude:g}",
            "lon": f"{self.longitude:g}",
            "lat1": f"{south:g}",
            "lat2": f"{north:g}",
            "lon1": f"{west:g}",
            "lon2": f"{east:g}",
            "sort_by": self.sort_by,
            "sort_order": self.sort_order,
            "payments": "1",
        }
