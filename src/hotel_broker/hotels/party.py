"""Parsing and grouping of multi-room guest parties."""
from __future__ import annotations

import json
from collections import OrderedDict
from typing import Any, Iterable, List, Sequence, Tuple

from hotel_broker.errors import ValidationError

from .models import PartyItem

MAX_CHILD_AGE = 17


def _parse_room(entry: Any) -> Tuple[int, Tuple[int, ...]]:
    if not isinstance(entry, dict):
        raise ValidationError(f"Party room must be an object, got {entry!r}")
    adults = entry.get("adults")
    if isinstance(adults, bool) or not isinstance(adults, int) or adults < 1:
        raise ValidationError(f"Party room needs at least one adult, got {adults!r}")
    children = entry.get("children") or []
    if not isinstance(children, list):
        raise ValidationError(f"Party children must be a list, got {children!r}")
    ages: List[int] = []
    for age in children:
        if isinstance(age, bool) or not isinstance(age, int) or not 0 <= age <= MAX_CHILD_AGE:
            raise ValidationError(f"Child age must be an integer between 0 and {MAX_CHILD_AGE}, got {age!r}")
        ages.append(age)
    return adults, tuple(ages)


def group_rooms(rooms: Iterable[Tuple[int, Sequence[int]]]) -> List[PartyItem]:
    """Collapse identical rooms into one ``PartyItem`` each, keeping first-seen order."""
    grouped: "OrderedDict[PartyItem, int]" = OrderedDict()
    for adults, children in rooms:
        key = PartyItem(adults=adults, children=tuple(children))
        grouped[key] = grouped.get(key, 0) + 1
    return [PartyItem(adults=item.adults, children=item.children, rooms=count) for item, count in grouped.items()]


def parse_party(raw: str) -> List[PartyItem]:
    """Parse ``[{"adults":2,"children":[2,6]},{"adults":3}]`` into grouped party items."""
    if raw is None or not str(raw).strip():
        raise ValidationError("Party cannot be empty")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Party is not valid JSON: {raw!r}") from exc
    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list) or not payload:
        raise ValidationError("Party must contain at least one room")
    return group_rooms(_parse_room(entry) for entry in payload)


def build_party(adults: int, children: str | None = None) -> str:
    """Single-room party JSON from an adult count and comma-separated child ages."""
    ages: List[int] = []
    for part in (children or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ages.append(int(part))
        except ValueError as exc:
            raise ValidationError(f"Invalid child age '{part}'") from exc
    adults_value, ages_value = _parse_room({"adults": adults, "children": ages})
    return PartyItem(adults=adults_value, children=ages_value).to_wire()


def parse_rate_party(suffix: str) -> PartyItem:
    """Rebuild the party from a rate id suffix such as ``2_5_9``."""
    parts = [part for part in suffix.split("_") if part]
    try:
        numbers = [int(part) for part in parts]
    except ValueError as exc:
        raise ValidationError(f"Invalid party suffix '{suffix}'") from exc
    if not numbers:
        raise ValidationError("Party suffix cannot be empty")
    adults, ages = _parse_room({"adults": numbers[0], "children": numbers[1:]})
    return PartyItem(adults=adults, children=ages)


def total_rooms(party: Iterable[PartyItem]) -> int:
    return sum(item.rooms for item in party)
