"""Facet construction with per-facet AND/OR semantics.

For every facet two counts are reported per value: ``count`` over the items that
match every *other* active selection, and ``filtered_count`` over the items that
match every active selection including this facet's own.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import (
    Callable,
    Collection,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from hotel_broker.errors import ValidationError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RangeSelection:
    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None

    def __post_init__(self) -> None:
        if self.minimum is not None and self.maximum is not None and self.minimum > self.maximum:
            raise ValidationError(f"Range minimum {self.minimum} exceeds maximum {self.maximum}")

    def contains(self, value: Optional[Decimal]) -> bool:
        if value is None:
            return False
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True


Selection = Union[Collection[str], RangeSelection]
Selections = Mapping[str, Selection]


@dataclass(slots=True)
class FilterValue:
    id: str
    name: str
    count: int = 0
    filtered_count: int = 0
    selected: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "count": self.count,
            "filtered_count": self.filtered_count,
            "selected": self.selected,
        }


@dataclass(slots=True)
class Filter:
    """A range filter (``minimum``/``maximum``) or a values filter (``values``)."""

    id: str
    name: str
    is_multiple_and: bool
    values: Optional[List[FilterValue]] = None
    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None
    selected_minimum: Optional[Decimal] = None
    selected_maximum: Optional[Decimal] = None

    @property
    def is_range(self) -> bool:
        return self.values is None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"id": self.id, "name": self.name, "is_multiple_and": self.is_multiple_and}
        if self.is_range:
            payload.update(
                {
                    "min": str(self.minimum) if self.minimum is not None else None,
                    "max": str(self.maximum) if self.maximum is not None else None,
                    "selected_min": str(self.selected_minimum) if self.selected_minimum is not None else None,
                    "selected_max": str(self.selected_maximum) if self.selected_maximum is not None else None,
                }
            )
        else:
            payload["values"] = [value.to_dict() for value in self.values or []]
        return payload


@dataclass(frozen=True)
class ValuesFacet(Generic[T]):
    id: str
    name: str
    extract: Callable[[T], Iterable[str]]
    is_multiple_and: bool = False
    label: Callable[[str], str] = str
    sort_key: Optional[Callable[[FilterValue], object]] = None
    parse: Optional[Callable[[str], object]] = None

    def validate(self, selection: Optional[Selection]) -> None:
        if not selection or self.parse is None or isinstance(selection, RangeSelection):
            return
        for value_id in selection:
            try:
                self.parse(value_id)
            except (TypeError, ValueError) as exc:
                raise ValidationError(f"Invalid value {value_id!r} for filter '{self.id}'") from exc

    def matches(self, item: T, selection: Optional[Selection]) -> bool:
        if not selection:
            return True
        if isinstance(selection, RangeSelection):
            raise ValidationError(f"Facet '{self.id}' expects values, got a range")
        values = set(self.extract(item))
        wanted = set(selection)
        if self.is_multiple_and:
            return wanted <= values
        return bool(values & wanted)


@dataclass(frozen=True)
class RangeFacet(Generic[T]):
    id: str
    name: str
    extract: Callable[[T], Optional[Decimal]]
    is_multiple_and: bool = True

    def matches(self, item: T, selection: Optional[Selection]) -> bool:
        if selection is None:
            return True
        if not isinstance(selection, RangeSelection):
            raise ValidationError(f"Facet '{self.id}' expects a range selection")
        return selection.contains(self.extract(item))


Facet = Union[ValuesFacet[T], RangeFacet[T]]


def _validate(facets: Sequence[Facet], selections: Selections) -> None:
    unknown = set(selections) - {facet.id for facet in facets}
    if unknown:
        raise ValidationError(f"Unknown filter(s): {', '.join(sorted(unknown))}")
    for facet in facets:
        if isinstance(facet, ValuesFacet):
            facet.validate(selections.get(facet.id))


def _matches_all(item: T, facets: Sequence[Facet], selections: Selections, *, skip: Optional[str] = None) -> bool:
    return all(facet.matches(item, selections.get(facet.id)) for facet in facets if facet.id != skip)


def apply_selections(items: Iterable[T], facets: Sequence[Facet], selections: Selections) -> List[T]:
    """Items matching every active selection, in their original order."""
    _validate(facets, selections)
    return [item for item in items if _matches_all(item, facets, selections)]


def _by_count(value: FilterValue) -> Tuple[int, str]:
    return (-value.count, value.name)


def _build_values_filter(facet: ValuesFacet[T], candidates: List[T], selection: Optional[Selection]) -> Filter:
    selected = set(selection or ())
    values: Dict[str, FilterValue] = {}
    for item in candidates:
        item_values = set(facet.extract(item))
        for value_id in item_values:
            entry = values.setdefault(value_id, FilterValue(id=value_id, name=facet.label(value_id)))
            entry.count += 1
        if facet.matches(item, selection):
            for value_id in item_values:
                values[value_id].filtered_count += 1
    for value_id in selected:
        values.setdefault(value_id, FilterValue(id=value_id, name=facet.label(value_id)))
    for value_id, entry in values.items():
        entry.selected = value_id in selected
    ordered = sorted(values.values(), key=facet.sort_key or _by_count)
    return Filter(id=facet.id, name=facet.name, is_multiple_and=facet.is_multiple_and, values=ordered)


def _build_range_filter(facet: RangeFacet[T], candidates: List[T], selection: Optional[Selection]) -> Filter:
    points = [value for value in (facet.extract(item) for item in candidates) if value is not None]
    chosen = selection if isinstance(selection, RangeSelection) else RangeSelection()
    return Filter(
        id=facet.id,
        name=facet.name,
        is_multiple_and=facet.is_multiple_and,
        minimum=min(points) if points else None,
        maximum=max(points) if points else None,
        selected_minimum=chosen.minimum,
        selected_maximum=chosen.maximum,
    )


def build_facets(items: Sequence[T], facets: Sequence[Facet], selections: Selections | None = None) -> List[Filter]:
    selections = selections or {}
    _validate(facets, selections)
    filters: List[Filter] = []
    for facet in facets:
        candidates = [item for item in items if _matches_all(item, facets, selections, skip=facet.id)]
        selection = selections.get(facet.id)
        if isinstance(facet, RangeFacet):
            filters.append(_build_range_filter(facet, candidates, selection))
        else:
            filters.append(_build_values_filter(facet, candidates, selection))
    return filters
