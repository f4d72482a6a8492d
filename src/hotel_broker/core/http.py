"""Named upstream HTTP clients wrapped in their call policies."""
from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from typing import Any, Dict, Optional

import httpx

from hotel_broker.config.settings import Settings
from hotel_broker.core.resilience import CallClass, CallPolicy, ResilienceRegistry
from hotel_broker.errors import UpstreamProtocolError, UpstreamUnavailable

logger = logging.getLogger(__name__)

INVENTORY = "inventory"
GEOCODE_A = "geocode-a"
GEOCODE_B = "geocode-b"
PAYMENT = "payment"

USER_AGENT = "hotel-broker/0.1.0"


class ResilientClient(AbstractAsyncContextManager["ResilientClient"]):
    """``httpx.AsyncClient`` whose requests all pass through one call policy."""

    def __init__(self, name: str, client: httpx.AsyncClient, policy: CallPolicy) -> None:
        self.name = name
        self._client = client
        self._policy = policy

    @property
    def policy(self) -> CallPolicy:
        return self._policy

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        logger.debug("%s %s %s", self.name, method, url)
        try:
            return await self._policy.execute(lambda: self._client.request(method, url, **kwargs))
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable(self.name, exc) from exc

    async def request_json(self, method: str, url: str, **kwargs: Any) -> Any:
        """Issue a request and decode its JSON body, mapping failures onto the broker taxonomy."""
        response = await self.request(method, url, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise UpstreamUnavailable(self.name, exc) from exc
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamProtocolError(f"{self.name} response body", response.text[:200]) from exc

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aexit__(self, exc_type, exc, exc_tb) -> None:
        await self.aclose()


class ClientFactory:
    """Builds the named clients from settings; a transport can be injected for tests."""

    def __init__(
        self,
        settings: Settings,
        registry: ResilienceRegistry,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self._transport = transport

    def _client_kwargs(self, name: str) -> Dict[str, Any]:
        settings = self.settings
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if name == INVENTORY:
            return {
                "base_url": settings.inventory_base_url,
                "auth": settings.inventory_auth(),
                "headers": {**headers, "Accept-Language": "el"},
            }
        if name == GEOCODE_A:
            return {"base_url": settings.geocode_a_base_url, "headers": headers}
        if name == GEOCODE_B:
            return {"base_url": settings.geocode_b_base_url, "headers": headers}
        if name == PAYMENT:
            return {"base_url": settings.payment_base_url, "headers": headers}
        raise KeyError(f"Unknown upstream client '{name}'")

    def create(self, name: str) -> ResilientClient:
        kwargs = self._client_kwargs(name)
        if kwargs.get("auth") is None:
            kwargs.pop("auth", None)
        client = httpx.AsyncClient(timeout=self.settings.http_timeout_s, transport=self._transport, **kwargs)
        call_class = CallClass.PAYMENT if name == PAYMENT else CallClass.STANDARD
        return ResilientClient(name, client, self.registry.policy_for(call_class, name))
