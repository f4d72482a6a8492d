from __future__ import annotations

from typing import Callable, List, Optional

import httpx
import pytest

from hotel_broker.core.http import PAYMENT, ResilientClient
from hotel_broker.core.resilience import CallClass, ResilienceOptions, ResilienceRegistry


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def registry(clock: FakeClock, sleep: RecordingSleep) -> ResilienceRegistry:
    return ResilienceRegistry(clock=clock, sleep=sleep)


@pytest.fixture
def make_client(registry: ResilienceRegistry) -> Callable[..., ResilientClient]:
    """Build a policy-wrapped client whose requests are answered by ``handler``."""

    def factory(
        name: str,
        handler: Callable[[httpx.Request], httpx.Response],
        *,
        base_url: str = "https://upstream.test/",
        options: Optional[ResilienceOptions] = None,
    ) -> ResilientClient:
        policies = registry if options is None else ResilienceRegistry(options, clock=registry._clock, sleep=registry._sleep)
        call_class = CallClass.PAYMENT if name == PAYMENT else CallClass.STANDARD
        http = httpx.AsyncClient(base_url=base_url, transport=httpx.MockTransport(handler))
        return ResilientClient(name, http, policies.policy_for(call_class, name))

    return factory
