"""Client for the payment gateway's order and transaction endpoints."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from hotel_broker.core.http import ResilientClient
from hotel_broker.errors import UpstreamProtocolError
from hotel_broker.hotels.wire import decode_decimal, decode_id_string

logger = logging.getLogger(__name__)

ORDERS_PATH = "checkout/v2/orders"
TRANSACTIONS_PATH = "checkout/v2/transactions"
TOKEN_EXPIRY_MARGIN_S = 60
PAYMENT_TIMEOUT_S = 300


@dataclass(frozen=True, slots=True)
class AccessToken:
    value: str
    expires_at: float


@dataclass(frozen=True, slots=True)
class OrderRequest:
    amount_cents: int
    email: str
    full_name: str
    phone: Optional[str]
    customer_description: str
    merchant_reference: str
    source_code: str
    country_code: str = "GR"
    lang: str = "el-GR"
    tags: tuple[str, ...] = ()

    def to_payload(self) -> Dict[str, Any]:
        return {
            "amount": self.amount_cents,
            "customerTrns": self.customer_description,
            "customer": {
                "email": self.email,
                "fullName": self.full_name,
                "phone": self.phone,
                "countryCode": self.country_code,
                "requestLang": self.lang,
            },
            "paymentTimeout": PAYMENT_TIMEOUT_S,
            "sourceCode": self.source_code,
            "merchantTrns": self.merchant_reference,
            "tags": list(self.tags),
        }


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    order_code: str
    amount: Decimal
    status_id: str


class PaymentGatewayClient:
    """Authenticates with client credentials and caches the bearer token until shortly before expiry."""

    def __init__(
        self,
        client: ResilientClient,
        *,
        auth_url: str,
        client_id: Optional[str],
        client_secret: Optional[str],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._auth_url = auth_url
        self._client_id = client_id or ""
        self._client_secret = client_secret or ""
        self._clock = clock
        self._token: Optional[AccessToken] = None

    async def _access_token(self) -> str:
        token = self._token
        if token is not None and self._clock() < token.expires_at:
            return token.value
        payload = await self._client.request_json(
            "POST",
            self._auth_url,
            data={"grant_type": "client_credentials"},
            auth=(self._client_id, self._client_secret),
        )
        value = payload.get("access_token") if isinstance(payload, dict) else None
        if not value:
            raise UpstreamProtocolError("access_token", payload)
        expires_in = float(payload.get("expires_in") or 0)
        self._token = AccessToken(value=value, expires_at=self._clock() + expires_in - TOKEN_EXPIRY_MARGIN_S)
        logger.debug("Obtained payment gateway token valid for %.0fs", expires_in)
        return value

    async def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {await self._access_token()}"}

    async def create_order(self, request: OrderRequest) -> str:
        payload = await self._client.request_json(
            "POST", ORDERS_PATH, json=request.to_payload(), headers=await self._headers()
        )
        order_code = payload.get("orderCode") if isinstance(payload, dict) else None
        return decode_id_string(order_code, field="orderCode")

    async def get_transaction(self, transaction_id: str) -> TransactionRecord:
        payload = await self._client.request_json(
            "GET", f"{TRANSACTIONS_PATH}/{transaction_id}", headers=await self._headers()
        )
        if not isinstance(payload, dict):
            raise UpstreamProtocolError("transaction", payload)
        amount = decode_decimal(payload.get("amount"), field="amount")
        if amount is None:
            raise UpstreamProtocolError("amount", payload.get("amount"))
        return TransactionRecord(
            order_code=decode_id_string(payload.get("orderCode"), field="orderCode"),
            amount=amount,
            status_id=str(payload.get("statusId") or ""),
        )
