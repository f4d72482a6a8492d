"""Facet definitions for hotel search results."""
from __future__ import annotations

from typing import Iterable, List, Tuple

from hotel_broker.hotels.boards import NO_BOARD, ROOM_ONLY, board_name
from hotel_broker.hotels.models import Hotel

from .filters import FilterValue, RangeFacet, ValuesFacet

PRICE = "price"
RATING = "rating"
HOTEL_TYPE = "hotelTypes"
BOARD_TYPE = "boardTypes"


def _rating_values(hotel: Hotel) -> Iterable[str]:
    return (str(hotel.rating),)


def _rating_label(value: str) -> str:
    rating = int(value)
    if rating <= 0:
        return "No stars"
    return "1 star" if rating == 1 else f"{rating} stars"


def _rating_order(value: FilterValue) -> Tuple[int]:
    return (-int(value.id),)


def _board_values(hotel: Hotel) -> Iterable[str]:
    return {str(ROOM_ONLY if rate.board.id == NO_BOARD else rate.board.id) for rate in hotel.rates}


def hotel_facets(lang: str = "en") -> List[RangeFacet[Hotel] | ValuesFacet[Hotel]]:
    return [
        RangeFacet(PRICE, "Price per night", lambda hotel: hotel.min_price_per_night),
        ValuesFacet(RATING, "Rating", _rating_values, label=_rating_label, sort_key=_rating_order, parse=int),
        ValuesFacet(HOTEL_TYPE, "Property type", lambda hotel: hotel.categories),
        ValuesFacet(
            BOARD_TYPE, "Board", _board_values, label=lambda value: board_name(int(value), lang), parse=int
        ),
    ]
