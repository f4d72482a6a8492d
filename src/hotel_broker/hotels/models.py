"""Dataclasses for the canonical hotel, rate, party and location records."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from hotel_broker.errors import ValidationError
from hotel_broker.hotels.wire import encode_nullable_datetime
from hotel_broker.pricing.engine import PricedRate


class Provider(IntEnum):
    INVENTORY = 1


@dataclass(frozen=True, slots=True)
class CompositeId:
    """``{provider}-{value}`` identifier used for hotels and rates across providers."""

    provider: int
    value: str

    def __str__(self) -> str:
        return f"{self.provider}-{self.value}"

    @classmethod
    def parse(cls, raw: str) -> "CompositeId":
        if raw is None or not str(raw).strip():
            raise ValidationError("Composite id cannot be empty")
        provider, sep, value = str(raw).strip().partition("-")
        if not sep or not value:
            raise ValidationError(f"Invalid composite id '{raw}': expected '{{provider}}-{{value}}'")
        try:
            provider_id = int(provider)
        except ValueError as exc:
            raise ValidationError(f"Invalid provider in composite id '{raw}'") from exc
        return cls(provider=provider_id, value=value)

    @classmethod
    def for_inventory(cls, code: str) -> "CompositeId":
        return cls(provider=int(Provider.INVENTORY), value=code)


@dataclass(frozen=True, slots=True, eq=False)
class PartyItem:
    """Guest composition for one room plus how many identical rooms were requested.

    Equality and hashing only look at adults and the ordered child ages; ``rooms``
    is multiplicity, not identity.
    """

    adults: int
    children: Tuple[int, ...] = ()
    rooms: int = 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PartyItem):
            return NotImplemented
        return self.adults == other.adults and self.children == other.children

    def __hash__(self) -> int:
        value = self.adults
        for age in self.children:
            value = value * 31 + age
        return value

    @property
    def total_guests(self) -> int:
        return self.adults + len(self.children)

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"adults": self.adults}
        if self.children:
            payload["children"] = list(self.children)
        return payload

    def to_wire(self) -> str:
        """Single-room party JSON in the form the inventory API expects."""
        return json.dumps([self.to_payload()], separators=(",", ":"))

    def suffix(self) -> str:
        """Short form appended to rate ids, e.g. ``2_5_9`` for two adults and two children."""
        return "_".join(str(part) for part in (self.adults, *self.children))


@dataclass(frozen=True, slots=True)
class Location:
    latitude: Optional[float]
    longitude: Optional[float]
    name: Optional[str] = None
    country: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "name": self.name,
            "country": self.country,
        }


@dataclass(frozen=True, slots=True)
class LocationCandidate:
    """Autocomplete suggestion returned by a location lookup."""

    id: str
    name: str
    region: Optional[str] = None
    country_code: Optional[str] = None
    kind: Optional[str] = None
    source: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "region": self.region,
            "country_code": self.country_code,
            "kind": self.kind,
            "source": self.source,
        }


@dataclass(frozen=True, slots=True)
class Board:
    id: int
    name: str


@dataclass(frozen=True, slots=True)
class CancellationFee:
    after: Optional[datetime]
    fee: Decimal


@dataclass(frozen=True, slots=True)
class CancellationStep:
    """Amount charged when cancelling up to ``until`` (``None`` for the check-out bound)."""

    until: Optional[date]
    amount: Decimal

    def to_dict(self) -> dict[str, object]:
        return {"until": self.until.isoformat() if self.until else None, "amount": str(self.amount)}


@dataclass(frozen=True, slots=True)
class CancellationPolicy:
    expiry: Optional[datetime] = None
    fees: Tuple[CancellationFee, ...] = ()

    @property
    def has_free_cancellation(self) -> bool:
        return self.expiry is not None

    @property
    def label(self) -> str:
        return "Free cancellation" if self.has_free_cancellation else "Non-refundable"

    def ordered_fees(self) -> List[CancellationFee]:
        return sorted(self.fees, key=lambda fee: fee.after or datetime.min)

    def to_dict(self) -> dict[str, object]:
        return {
            "expiry": encode_nullable_datetime(self.expiry),
            "label": self.label,
            "fees": [
                {"after": encode_nullable_datetime(fee.after), "fee": str(fee.fee)} for fee in self.ordered_fees()
            ],
        }


@dataclass(frozen=True, slots=True)
class Installment:
    due: Optional[date]
    amount: Decimal


@dataclass(frozen=True, slots=True)
class PaymentSchedule:
    installments: Tuple[Installment, ...] = ()

    @property
    def total(self) -> Decimal:
        return sum((item.amount for item in self.installments), Decimal("0"))

    def check_total(self, expected: Decimal) -> "PaymentSchedule":
        if self.installments and self.total != expected:
            raise ValidationError(f"Payment schedule sums to {self.total}, expected {expected}")
        return self

    def split(self, as_of: date) -> Tuple[Decimal, Tuple[Installment, ...]]:
        """Return the amount due by ``as_of`` and the installments still to come."""
        prepay = Decimal("0")
        remaining: List[Installment] = []
        for item in sorted(self.installments, key=lambda entry: entry.due or date.min):
            if item.due is None or item.due <= as_of:
                prepay += item.amount
            else:
                remaining.append(item)
        return prepay, tuple(remaining)

    @classmethod
    def full_prepayment(cls, total: Decimal) -> "PaymentSchedule":
        return cls((Installment(due=None, amount=total),))

    def to_dict(self) -> list[dict[str, object]]:
        return [
            {"due": item.due.isoformat() if item.due else None, "amount": str(item.amount)}
            for item in self.installments
        ]


@dataclass(frozen=True, slots=True)
class Rate:
    """Canonical rate; ``pricing`` is filled once the pricing engine has run."""

    id: str
    hotel_id: str
    room_type: str
    room_name: Optional[str]
    rate_name: Optional[str]
    board: Board
    net_price: Decimal
    upstream_retail: Optional[Decimal] = None
    upstream_margin: Optional[Decimal] = None
    upstream_discount: Decimal = Decimal("0")
    taxes: Decimal = Decimal("0")
    excluded_charges: Decimal = Decimal("0")
    remaining: int = 0
    min_stay: int = 0
    status: Optional[str] = None
    status_text: Optional[str] = None
    cancellation: CancellationPolicy = field(default_factory=CancellationPolicy)
    payments: PaymentSchedule = field(default_factory=PaymentSchedule)
    party: Optional[PartyItem] = None
    pricing: Optional[PricedRate] = None

    @property
    def has_board(self) -> bool:
        return self.board.id not in (0, 14)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "hotel_id": self.hotel_id,
            "room_type": self.room_type,
            "room_name": self.room_name,
            "rate_name": self.rate_name,
            "board": {"id": self.board.id, "name": self.board.name},
            "has_board": self.has_board,
            "net_price": str(self.net_price),
            "taxes": str(self.taxes),
            "excluded_charges": str(self.excluded_charges),
            "remaining": self.remaining,
            "min_stay": self.min_stay,
            "status": self.status,
            "status_text": self.status_text,
            "cancellation": self.cancellation.to_dict(),
            "payments": self.payments.to_dict(),
            "party": self.party.to_payload() if self.party else None,
            "pricing": self.pricing.to_dict() if self.pricing else None,
        }


@dataclass(frozen=True, slots=True)
class Hotel:
    """Canonical hotel built from one search response cycle."""

    id: CompositeId
    name: str
    rating: int
    location: Location
    categories: Tuple[str, ...] = ("Other",)
    type_text: Optional[str] = None
    photo_m: Optional[str] = None
    photo_l: Optional[str] = None
    distance: Optional[float] = None
    rates: Tuple[Rate, ...] = ()
    min_price: Decimal = Decimal("0")
    min_price_per_night: Decimal = Decimal("0")
    sale_price: Decimal = Decimal("0")
    boards: Tuple[Board, ...] = ()
    board_text: str = ""
    has_board: bool = False
    party: Optional[PartyItem] = None

    @property
    def code(self) -> str:
        return self.id.value

    def to_dict(self) -> dict[str, Any]:
        summary: Dict[str, Any] = {
            "name": self.name,
            "rating": self.rating,
            "categories": list(self.categories),
            "type": self.type_text,
            "photo_m": self.photo_m,
            "photo_l": self.photo_l,
            "distance": self.distance,
            "location": self.location.to_dict(),
            "min_price": str(self.min_price),
            "min_price_per_night": str(self.min_price_per_night),
            "sale_price": str(self.sale_price),
            "board_text": self.board_text,
            "has_board": self.has_board,
            "boards": [{"id": board.id, "name": board.name} for board in self.boards],
        }
        return {
            "id": str(self.id),
            "summary": summary,
            "rates": [rate.to_dict() for rate in self.rates],
        }
