"""Margin and discount pricing over fixed-point decimals."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Iterable, Optional

from hotel_broker.errors import ValidationError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
PROFIT_PLACES = Decimal("0.000001")


def quantize(value: Decimal, rounding: str = ROUND_HALF_UP) -> Decimal:
    return value.quantize(CENT, rounding=rounding)


def floor_units(value: Decimal) -> Decimal:
    """Floor to whole currency units, the precision used for headline hotel prices."""
    return value.to_integral_value(rounding=ROUND_FLOOR)


def validate_money(value: object, field: str = "amount") -> Decimal:
    """Coerce ``value`` to a finite, non-negative ``Decimal`` or raise ``ValidationError``."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number, got {value!r}")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"{field} must be a number, got {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}")
    if amount < 0:
        raise ValidationError(f"{field} must not be negative, got {value!r}")
    return amount


@dataclass(frozen=True, slots=True)
class PricingOptions:
    """Pricing configuration; built once at startup and passed by handle."""

    minimum_margin_percent: int = 10
    special_discount_percent: int = 5

    def __post_init__(self) -> None:
        for name in ("minimum_margin_percent", "special_discount_percent"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValidationError(f"{name} must be between 0 and 100, got {value}")

    @property
    def minimum_margin(self) -> Decimal:
        return Decimal(self.minimum_margin_percent) / 100

    @property
    def special_multiplier(self) -> Decimal:
        return 1 - Decimal(self.special_discount_percent) / 100


class CouponKind(str, Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


@dataclass(frozen=True, slots=True)
class Coupon:
    kind: CouponKind
    value: Decimal

    def __post_init__(self) -> None:
        validate_money(self.value, "coupon value")
        if self.kind is CouponKind.PERCENTAGE and self.value > 100:
            raise ValidationError("percentage coupons cannot exceed 100")

    def apply(self, amount: Decimal) -> Decimal:
        if self.kind is CouponKind.PERCENTAGE:
            return amount * (1 - self.value / 100)
        return max(amount - self.value, ZERO)


@dataclass(frozen=True, slots=True)
class PricedRate:
    net_price: Decimal
    retail_price: Decimal
    margin_amount: Decimal
    discount_amount: Decimal
    total_price: Decimal
    sale_price: Decimal = ZERO

    @property
    def profit_percentage(self) -> Decimal:
        if not self.net_price:
            return ZERO
        return ((self.retail_price - self.net_price) / self.net_price).quantize(PROFIT_PLACES, rounding=ROUND_HALF_UP)

    def for_rooms(self, rooms: int) -> "PricedRate":
        if rooms < 1:
            raise ValidationError(f"room count must be positive, got {rooms}")
        return PricedRate(
            net_price=self.net_price * rooms,
            retail_price=self.retail_price * rooms,
            margin_amount=self.margin_amount * rooms,
            discount_amount=self.discount_amount * rooms,
            total_price=self.total_price * rooms,
            sale_price=self.sale_price * rooms,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "net_price": str(self.net_price),
            "retail_price": str(self.retail_price),
            "margin_amount": str(self.margin_amount),
            "discount_amount": str(self.discount_amount),
            "total_price": str(self.total_price),
            "sale_price": str(self.sale_price),
            "profit_percentage": str(self.profit_percentage),
        }


class PricingEngine:
    """Applies the margin floor, the special-hotel discount and coupons to net prices."""

    def __init__(self, options: PricingOptions, special_hotel_codes: Iterable[str] = ()) -> None:
        self.options = options
        self.special_hotel_codes = frozenset(special_hotel_codes)

    def is_special(self, hotel_code: str) -> bool:
        return hotel_code in self.special_hotel_codes

    def margin_floor(self, net: Decimal) -> Decimal:
        # Rounded up so the cent-quantized floor never dips under net * (1 + margin).
        return quantize(net * (1 + self.options.minimum_margin), ROUND_CEILING)

    def price(
        self,
        net: object,
        *,
        upstream_retail: object = None,
        special: bool = False,
        coupon: Optional[Coupon] = None,
        proposed_sale: object = None,
    ) -> PricedRate:
        net_price = validate_money(net, "net price")
        floor = self.margin_floor(net_price)

        retail = floor
        if upstream_retail is not None:
            candidate = validate_money(upstream_retail, "upstream retail")
            if candidate >= floor:
                retail = quantize(candidate)

        total = retail * self.options.special_multiplier if special else retail
        if coupon is not None:
            total = coupon.apply(total)
        total = quantize(total)

        sale = ZERO
        if proposed_sale is not None:
            sale = self.effective_sale_price(total, validate_money(proposed_sale, "sale price"))

        return PricedRate(
            net_price=net_price,
            retail_price=retail,
            margin_amount=retail - net_price,
            discount_amount=retail - total,
            total_price=total,
            sale_price=sale,
        )

    @staticmethod
    def effective_sale_price(min_price: Decimal, proposed: Decimal) -> Decimal:
        """A sale price only counts when it strictly exceeds the minimum price."""
        return proposed if proposed > min_price else ZERO
