"""Canonical hotel domain models and normalization helpers."""

from .boards import BoardSummary, describe_boards, map_boards
from .models import (
    Board,
    CancellationFee,
    CancellationPolicy,
    CompositeId,
    Hotel,
    Installment,
    Location,
    LocationCandidate,
    PartyItem,
    PaymentSchedule,
    Provider,
    Rate,
)
from .normalizer import (
    build_hotel,
    build_hotels,
    build_single_hotel,
    cancellation_timeline,
    covers_request,
    map_categories,
    merge_party_results,
    price_hotel,
    with_board_summary,
)
from .party import build_party, parse_party

__all__ = [
    "Board",
    "BoardSummary",
    "CancellationFee",
    "CancellationPolicy",
    "CompositeId",
    "Hotel",
    "Installment",
    "Location",
    "LocationCandidate",
    "PartyItem",
    "PaymentSchedule",
    "Provider",
    "Rate",
    "build_hotel",
    "build_hotels",
    "build_party",
    "build_single_hotel",
    "cancellation_timeline",
    "covers_request",
    "describe_boards",
    "map_boards",
    "map_categories",
    "merge_party_results",
    "parse_party",
    "price_hotel",
    "with_board_summary",
]
