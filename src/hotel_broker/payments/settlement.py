"""Payment order creation and settlement verification."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Mapping, Optional

from hotel_broker.errors import SettlementMismatch, ValidationError
from hotel_broker.pricing.engine import validate_money
from hotel_broker.services.payment_client import OrderRequest, PaymentGatewayClient

logger = logging.getLogger(__name__)

SUCCESS_STATUS = "F"


class SettlementState(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


@dataclass(frozen=True, slots=True)
class PaymentOrder:
    order_code: str
    amount: Decimal
    source_code: str
    merchant_reference: str
    state: SettlementState = SettlementState.CREATED

    def mark_pending(self) -> "PaymentOrder":
        if self.state is not SettlementState.CREATED:
            raise ValidationError(f"Order {self.order_code} is {self.state.value}, cannot move to pending")
        return replace(self, state=SettlementState.PENDING)

    def settle(self, state: SettlementState) -> "PaymentOrder":
        if self.state is SettlementState.CREATED:
            raise ValidationError(f"Order {self.order_code} was never submitted for payment, cannot settle")
        if state not in (SettlementState.CONFIRMED, SettlementState.REJECTED):
            raise ValidationError(f"{state.value} is not a settlement decision")
        return replace(self, state=state)


@dataclass(frozen=True, slots=True)
class SettlementResult:
    order_code: str
    transaction_id: str
    state: SettlementState
    checks: Mapping[str, bool] = field(default_factory=dict)
    amount: Optional[Decimal] = None
    reason: Optional[str] = None
    order: Optional[PaymentOrder] = None

    @property
    def confirmed(self) -> bool:
        return self.state is SettlementState.CONFIRMED

    def raise_for_status(self) -> "SettlementResult":
        if not self.confirmed:
            raise SettlementMismatch(self.order_code, self.checks, self.reason or "rejected")
        return self


@dataclass(frozen=True, slots=True)
class CheckoutCustomer:
    email: str
    full_name: str
    phone: Optional[str] = None
    country_code: str = "GR"
    lang: str = "el-GR"


def select_source_code(
    origin: Optional[str],
    referer: Optional[str],
    *,
    partner_source_codes: Mapping[str, str],
    default: str,
) -> str:
    """Route a checkout to the partner's source code when its domain appears in origin or referer."""
    headers = [value.lower() for value in (origin, referer) if value]
    for domain, code in partner_source_codes.items():
        if code and any(domain.lower() in header for header in headers):
            return code
    return default


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class SettlementVerifier:
    """Creates gateway orders and decides whether a completed transaction settles one."""

    def __init__(
        self,
        gateway: PaymentGatewayClient,
        *,
        default_source_code: str,
        partner_source_codes: Mapping[str, str] | None = None,
        event_logger: Optional[logging.Logger] = None,
    ) -> None:
        self._gateway = gateway
        self.default_source_code = default_source_code
        self.partner_source_codes: Dict[str, str] = dict(partner_source_codes or {})
        self._log = event_logger or logger

    async def create_order(
        self,
        *,
        amount: object,
        customer: CheckoutCustomer,
        description: str,
        merchant_reference: str,
        origin: Optional[str] = None,
        referer: Optional[str] = None,
    ) -> PaymentOrder:
        total = validate_money(amount, "order amount")
        if total == 0:
            raise ValidationError("order amount must be positive")
        source_code = select_source_code(
            origin,
            referer,
            partner_source_codes=self.partner_source_codes,
            default=self.default_source_code,
        )
        request = OrderRequest(
            amount_cents=to_cents(total),
            email=customer.email,
            full_name=customer.full_name,
            phone=customer.phone,
            customer_description=description,
            merchant_reference=merchant_reference,
            source_code=source_code,
            country_code=customer.country_code,
            lang=customer.lang,
            tags=(merchant_reference,),
        )
        order_code = await self._gateway.create_order(request)
        logger.info("Created payment order %s for %s (source %s)", order_code, total, source_code)
        return PaymentOrder(
            order_code=order_code,
            amount=total,
            source_code=source_code,
            merchant_reference=merchant_reference,
        )

    async def verify(
        self,
        order: PaymentOrder | str,
        transaction_id: str,
        total: object,
        prepay: object = None,
    ) -> SettlementResult:
        """Fetch the transaction once and confirm it only if order code, amount and status all match.

        A ``PaymentOrder`` must have left ``CREATED``; the result carries it moved to the decided state.
        Re-verifying an already settled order fetches again and decides afresh.
        """
        if isinstance(order, PaymentOrder):
            if order.state is SettlementState.CREATED:
                raise ValidationError(f"Order {order.order_code} is not pending payment")
            order_code = order.order_code
        else:
            order_code = str(order)
        expected_total = validate_money(total, "expected total")
        expected_prepay = validate_money(prepay, "prepay amount") if prepay is not None else None

        transaction = await self._gateway.get_transaction(transaction_id)
        checks = {
            "order_code": transaction.order_code == order_code,
            "amount": transaction.amount == expected_total
            or (expected_prepay is not None and transaction.amount == expected_prepay),
            "status": transaction.status_id == SUCCESS_STATUS,
        }
        failed = [name for name, passed in checks.items() if not passed]
        state = SettlementState.REJECTED if failed else SettlementState.CONFIRMED
        reason = f"mismatched {', '.join(failed)}" if failed else None

        self._log.log(
            logging.WARNING if failed else logging.INFO,
            "Settlement %s for order %s (transaction %s)%s",
            state.value,
            order_code,
            transaction_id,
            f": {reason}" if reason else "",
            extra={
                "event": "settlement",
                "upstream": "payment",
                "attempt": 1,
                "cause": reason,
                "decision": state.value,
            },
        )
        return SettlementResult(
            order_code=order_code,
            transaction_id=transaction_id,
            state=state,
            checks=checks,
            amount=transaction.amount,
            reason=reason,
            order=order.settle(state) if isinstance(order, PaymentOrder) else None,
        )
