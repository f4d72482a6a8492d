"""Utilities to transform raw inventory payloads into canonical hotel and rate records."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from hotel_broker.errors import ValidationError
from hotel_broker.pricing.engine import CENT, ZERO, Coupon, PricingEngine, floor_units

from .boards import ROOM_ONLY, board_name, describe_boards, map_boards
from .models import (
    Board,
    CancellationFee,
    CancellationPolicy,
    CancellationStep,
    CompositeId,
    Hotel,
    Installment,
    Location,
    PartyItem,
    PaymentSchedule,
    Rate,
)
from .wire import decode_decimal, decode_id_string, decode_int_lenient, decode_nullable_datetime

logger = logging.getLogger(__name__)

CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("Glamping & Unique Stays", ("cave", "luxury glamping resort", "traditional windmill")),
    ("Guesthouse", ("guesthouse", "guest house", "pension")),
    ("Chalet", ("chalet", "challet")),
    ("Bed & Breakfast", ("bed & breakfast", "bed and breakfast", "bnb")),
    ("Bungalow", ("bungalow",)),
    ("Resort", ("resort",)),
    ("Villa", ("villa", "vila")),
    ("Rooms", ("room",)),
    ("Apartments & Houses", ("apartment", "studio", "αpartment", "aparments", "apartmenst", "appartment")),
    ("Houses", ("house", "home", "residence", "cottage", "vacation rental", "mansion", "maisonette")),
    ("Suites", ("suite",)),
    ("Hotel", ("hotel",)),
)
DEFAULT_CATEGORY = "Other"
AVAILABLE_DAY_STATUSES = ("AVL", "MIN")


def map_categories(type_text: Optional[str]) -> Tuple[str, ...]:
    """Map the free-text property type onto the category tags used for faceting."""
    normalized = (type_text or "").strip().lower()
    if not normalized:
        return (DEFAULT_CATEGORY,)
    matched = tuple(
        category for category, keywords in CATEGORY_KEYWORDS if any(keyword in normalized for keyword in keywords)
    )
    return matched or (DEFAULT_CATEGORY,)


def _to_date(value: Optional[datetime]) -> Optional[date]:
    return value.date() if value is not None else None


def _extract_location(hotel: Dict[str, Any]) -> Location:
    location: Dict[str, Any] = hotel.get("location") or {}
    lat = decode_decimal(location.get("lat"), field="location.lat")
    lon = decode_decimal(location.get("lon"), field="location.lon")
    return Location(
        latitude=float(lat) if lat is not None else None,
        longitude=float(lon) if lon is not None else None,
        name=location.get("name"),
        country=location.get("country"),
    )


def _extract_cancellation(rate: Dict[str, Any]) -> CancellationPolicy:
    fees = []
    for entry in rate.get("cancellation_fees") or []:
        fees.append(
            CancellationFee(
                after=decode_nullable_datetime(entry.get("after"), field="cancellation_fees.after"),
                fee=decode_decimal(entry.get("fee"), field="cancellation_fees.fee", default=ZERO),
            )
        )
    return CancellationPolicy(
        expiry=decode_nullable_datetime(rate.get("cancellation_expiry"), field="cancellation_expiry"),
        fees=tuple(fees),
    )


def _extract_payments(rate: Dict[str, Any]) -> PaymentSchedule:
    installments = []
    for entry in rate.get("payments") or []:
        amount = decode_decimal(entry.get("amount"), field="payments.amount")
        if amount is None:
            continue
        installments.append(
            Installment(due=_to_date(decode_nullable_datetime(entry.get("due"), field="payments.due")), amount=amount)
        )
    return PaymentSchedule(tuple(installments))


def _extract_board(rate: Dict[str, Any], lang: str) -> Board:
    raw = rate.get("board")
    board_id = ROOM_ONLY if raw is None else decode_int_lenient(raw, field="board")
    return Board(id=board_id, name=board_name(board_id, lang))


def _rate_id(base: str, party: Optional[PartyItem]) -> str:
    return f"{base}-{party.suffix()}" if party is not None else base


def build_rate(
    rate: Dict[str, Any],
    *,
    hotel_id: str,
    party: Optional[PartyItem] = None,
    lang: str = "en",
) -> Rate:
    """Canonical rate from a multi-property availability entry (flat price fields)."""
    rate_name = decode_id_string(rate.get("rate"), field="rate") if rate.get("rate") is not None else ""
    net = decode_decimal(rate.get("price"), field="price")
    if net is None:
        raise ValidationError(f"Rate {rate_name or '?'} of hotel {hotel_id} has no net price")
    return Rate(
        id=_rate_id(rate_name or str(rate.get("type") or ""), party),
        hotel_id=hotel_id,
        room_type=str(rate.get("type") or ""),
        room_name=rate.get("room"),
        rate_name=rate_name or None,
        board=_extract_board(rate, lang),
        net_price=net,
        upstream_retail=decode_decimal(rate.get("retail"), field="retail"),
        upstream_margin=decode_decimal(rate.get("margin"), field="margin"),
        upstream_discount=decode_decimal(rate.get("discount"), field="discount", default=ZERO),
        remaining=decode_int_lenient(rate.get("remaining"), field="remaining"),
        cancellation=_extract_cancellation(rate),
        payments=_extract_payments(rate),
        party=party,
    )


def build_single_rate(
    rate: Dict[str, Any],
    *,
    hotel_id: str,
    party: Optional[PartyItem] = None,
    lang: str = "en",
) -> Rate:
    """Canonical rate from a single-property availability entry (nested pricing blocks)."""
    rate_id = decode_id_string(rate.get("id"), field="id")
    pricing: Dict[str, Any] = rate.get("pricing") or {}
    retail: Dict[str, Any] = rate.get("retail") or {}
    net = decode_decimal(pricing.get("price"), field="pricing.price")
    if net is None:
        raise ValidationError(f"Rate {rate_id} of hotel {hotel_id} has no net price")
    return Rate(
        id=_rate_id(rate_id, party),
        hotel_id=hotel_id,
        room_type=str(rate.get("type") or ""),
        room_name=rate.get("room"),
        rate_name=rate.get("rate") or None,
        board=_extract_board(rate, lang),
        net_price=net,
        upstream_retail=decode_decimal(retail.get("price"), field="retail.price"),
        upstream_margin=decode_decimal(pricing.get("margin"), field="pricing.margin"),
        upstream_discount=decode_decimal(retail.get("discount"), field="retail.discount", default=ZERO),
        taxes=decode_decimal(pricing.get("taxes"), field="pricing.taxes", default=ZERO),
        excluded_charges=decode_decimal(pricing.get("excluded_charges"), field="pricing.excluded_charges", default=ZERO),
        remaining=decode_int_lenient(rate.get("remaining"), field="remaining"),
        status=rate.get("status") or None,
        status_text=rate.get("status_descr") or None,
        cancellation=_extract_cancellation(rate),
        payments=_extract_payments(rate),
        party=party,
    )


def build_hotel(hotel: Dict[str, Any], *, party: Optional[PartyItem] = None, lang: str = "en") -> Hotel:
    code = decode_id_string(hotel.get("code"), field="code")
    hotel_id = CompositeId.for_inventory(code)
    rates = tuple(
        build_rate(rate, hotel_id=str(hotel_id), party=party, lang=lang) for rate in hotel.get("rates") or []
    )
    distance = decode_decimal(hotel.get("distance"), field="distance")
    return Hotel(
        id=hotel_id,
        name=hotel.get("name") or "",
        rating=decode_int_lenient(hotel.get("rating"), field="rating"),
        location=_extract_location(hotel),
        categories=map_categories(hotel.get("type")),
        type_text=hotel.get("type") or None,
        photo_m=hotel.get("photoM") or None,
        photo_l=hotel.get("photoL") or None,
        distance=float(distance) if distance is not None else None,
        rates=rates,
        party=party,
    )


def build_hotels(payload: Dict[str, Any], *, party: Optional[PartyItem] = None, lang: str = "en") -> List[Hotel]:
    data: Dict[str, Any] = payload.get("data") or {}
    return [build_hotel(hotel, party=party, lang=lang) for hotel in data.get("hotels") or []]


def build_single_hotel(payload: Dict[str, Any], *, party: Optional[PartyItem] = None, lang: str = "en") -> Hotel:
    data: Dict[str, Any] = payload.get("data") or {}
    code = decode_id_string(data.get("code"), field="code")
    hotel_id = CompositeId.for_inventory(code)
    rates = tuple(
        build_single_rate(rate, hotel_id=str(hotel_id), party=party, lang=lang) for rate in data.get("rates") or []
    )
    return Hotel(
        id=hotel_id,
        name=data.get("name") or "",
        rating=decode_int_lenient(data.get("rating"), field="rating"),
        location=_extract_location(data),
        categories=map_categories(data.get("type")),
        type_text=data.get("type") or None,
        rates=rates,
        party=party,
    )


def rescale_payments(schedule: PaymentSchedule, total: Decimal) -> PaymentSchedule:
    """Scale upstream installments onto ``total``; rounding remainder lands on the last one."""
    if not schedule.installments:
        return schedule
    upstream_total = schedule.total
    if upstream_total <= 0:
        logger.warning("Payment schedule sums to %s; falling back to full prepayment", upstream_total)
        return PaymentSchedule.full_prepayment(total)
    scaled: List[Installment] = []
    running = ZERO
    for item in schedule.installments[:-1]:
        amount = (item.amount * total / upstream_total).quantize(CENT, rounding=ROUND_HALF_UP)
        scaled.append(Installment(due=item.due, amount=amount))
        running += amount
    last = schedule.installments[-1]
    scaled.append(Installment(due=last.due, amount=total - running))
    return PaymentSchedule(tuple(scaled)).check_total(total)


def price_rate(rate: Rate, engine: PricingEngine, *, special: bool, coupon: Optional[Coupon] = None) -> Rate:
    proposed_sale = None
    if rate.upstream_retail is not None and rate.upstream_discount > 0:
        proposed_sale = rate.upstream_retail + rate.upstream_discount
    priced = engine.price(
        rate.net_price,
        upstream_retail=rate.upstream_retail,
        special=special,
        coupon=coupon,
        proposed_sale=proposed_sale,
    )
    return replace(rate, pricing=priced, payments=rescale_payments(rate.payments, priced.total_price))


def price_hotel(
    hotel: Hotel,
    engine: PricingEngine,
    *,
    nights: int,
    coupon: Optional[Coupon] = None,
) -> Hotel:
    """Price every rate and derive the hotel's headline minimum and sale prices."""
    if nights < 1:
        raise ValidationError(f"Stay must be at least one night, got {nights}")
    special = engine.is_special(hotel.code)
    rates = tuple(price_rate(rate, engine, special=special, coupon=coupon) for rate in hotel.rates)
    if not rates:
        return replace(hotel, rates=rates)
    cheapest = min(rates, key=lambda rate: rate.pricing.total_price)
    min_price = floor_units(cheapest.pricing.total_price)
    sale = engine.effective_sale_price(min_price, floor_units(cheapest.pricing.sale_price))
    return replace(
        hotel,
        rates=rates,
        min_price=min_price,
        min_price_per_night=floor_units(min_price / nights),
        sale_price=sale,
    )


def with_board_summary(hotel: Hotel, lang: str = "en") -> Hotel:
    boards = map_boards((rate.board.id for rate in hotel.rates), lang)
    summary = describe_boards(boards, lang)
    return replace(hotel, boards=summary.boards, board_text=summary.text, has_board=summary.has_boards)


def _is_listable(hotel: Hotel) -> bool:
    return bool(hotel.photo_l) and hotel.min_price > 0


def merge_party_results(results: Mapping[PartyItem, Sequence[Hotel]]) -> List[Hotel]:
    """Combine priced per-party results into hotels that can host every party.

    A hotel survives only if it appears in every party's result; its rates are
    concatenated and its headline prices are summed over parties, weighted by
    each party's room multiplicity.
    """
    if not results:
        return []
    parties = list(results)
    by_party: Dict[PartyItem, Dict[str, Hotel]] = {
        party: {str(hotel.id): hotel for hotel in hotels} for party, hotels in results.items()
    }
    first = by_party[parties[0]]
    merged: List[Hotel] = []
    for hotel_id, base in first.items():
        if not all(hotel_id in by_party[party] for party in parties[1:]):
            continue
        members = [(party, by_party[party][hotel_id]) for party in parties]
        merged.append(
            replace(
                base,
                rates=tuple(rate for _, hotel in members for rate in hotel.rates),
                min_price=sum((hotel.min_price * party.rooms for party, hotel in members), ZERO),
                min_price_per_night=sum((hotel.min_price_per_night * party.rooms for party, hotel in members), ZERO),
                sale_price=sum((hotel.sale_price * party.rooms for party, hotel in members), ZERO),
                party=None if len(parties) > 1 else parties[0],
            )
        )
    return [hotel for hotel in merged if _is_listable(hotel)]


def _remaining_by_type(rates: Iterable[Rate]) -> int:
    seen: Dict[str, int] = {}
    for rate in rates:
        seen.setdefault(rate.room_type, rate.remaining)
    return sum(seen.values())


def covers_request(hotel: Hotel, party: Sequence[PartyItem]) -> bool:
    """True when the offered room types have enough inventory for every requested room."""
    if _remaining_by_type(hotel.rates) < sum(item.rooms for item in party):
        return False
    for item in party:
        rates = [rate for rate in hotel.rates if rate.party == item]
        if _remaining_by_type(rates) < item.rooms:
            return False
    return True


def cancellation_timeline(
    policy: CancellationPolicy,
    *,
    check_out: date,
    today: Optional[date] = None,
) -> List[CancellationStep]:
    """Fee owed when cancelling up to each step's date, ending at check-out."""
    fees = policy.ordered_fees()
    if not fees:
        return []
    today = today or date.today()
    steps: List[CancellationStep] = []
    first_after = _to_date(fees[0].after)
    if first_after is not None and first_after > today:
        steps.append(CancellationStep(until=first_after, amount=ZERO))
    previous: Optional[CancellationFee] = None
    for fee in fees:
        if previous is not None:
            steps.append(CancellationStep(until=_to_date(fee.after), amount=previous.fee))
        previous = fee
    last = fees[-1]
    if _to_date(last.after) != check_out and last.fee > 0:
        steps.append(CancellationStep(until=check_out, amount=last.fee))
    return steps


@dataclass(frozen=True, slots=True)
class CalendarDay:
    day: date
    status: str
    net_price: Decimal
    retail_price: Decimal
    min_stay: int


@dataclass(frozen=True, slots=True)
class AlternativeStay:
    check_in: date
    check_out: date
    min_price: Decimal
    net_price: Decimal

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


def build_calendar_days(payload: Dict[str, Any]) -> List[CalendarDay]:
    data: Dict[str, Any] = payload.get("data") or {}
    days: List[CalendarDay] = []
    for entry in data.get("days") or []:
        try:
            day = date.fromisoformat(str(entry.get("date")))
        except ValueError:
            logger.warning("Skipping calendar day with invalid date %r", entry.get("date"))
            continue
        days.append(
            CalendarDay(
                day=day,
                status=str(entry.get("status") or ""),
                net_price=decode_decimal(entry.get("price"), field="price", default=ZERO),
                retail_price=decode_decimal(entry.get("retail"), field="retail", default=ZERO),
                min_stay=decode_int_lenient(entry.get("min_stay"), field="min_stay"),
            )
        )
    return days


def alternative_stays(days: Sequence[CalendarDay], nights: int) -> List[AlternativeStay]:
    """Stays of ``nights`` (or the day's minimum stay, if longer) over consecutive bookable days."""
    bookable = sorted((day for day in days if day.status in AVAILABLE_DAY_STATUSES), key=lambda day: day.day)
    if not bookable:
        return []
    by_day = {day.day: day for day in bookable}
    last_checkout = bookable[-1].day + timedelta(days=1)
    stays: List[AlternativeStay] = []
    for start in bookable:
        duration = max(nights, start.min_stay)
        if start.day + timedelta(days=duration) > last_checkout:
            continue
        retail = net = ZERO
        for offset in range(duration):
            current = by_day.get(start.day + timedelta(days=offset))
            if current is None or current.min_stay > duration:
                break
            retail += current.retail_price
            net += current.net_price
        else:
            stays.append(AlternativeStay(start.day, start.day + timedelta(days=duration), retail, net))
    return stays


def common_alternatives(per_party: Mapping[PartyItem, Sequence[AlternativeStay]]) -> List[AlternativeStay]:
    """Stays offered to every party, priced for all requested rooms."""
    if not per_party:
        return []
    windows = [{(stay.check_in, stay.check_out) for stay in stays} for stays in per_party.values()]
    common = set.intersection(*windows)
    totals: Dict[Tuple[date, date], Tuple[Decimal, Decimal]] = {}
    for party, stays in per_party.items():
        for stay in stays:
            key = (stay.check_in, stay.check_out)
            if key not in common:
                continue
            retail, net = totals.get(key, (ZERO, ZERO))
            totals[key] = (retail + stay.min_price * party.rooms, net + stay.net_price * party.rooms)
    return [
        AlternativeStay(check_in, check_out, retail, net)
        for (check_in, check_out), (retail, net) in sorted(totals.items())
    ]
