"""
SuperStock - Test Configuration
Shared fixtures and test configuration.
"""
import asyncio
import os
import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
import pytest

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment
os.environ["APP_ENV"] = "testing"
os.environ["LOG_TO_FILE"] = "false"
os.environ["TWELVE_DATA_API_KEY"] = "test-twelve-data-key"

from superstock.data_providers.adapters.base import BaseAdapter, ProviderConfig, Quote  # noqa: E402


# =========================
# Time Fixtures
# =========================

class FakeClock:
    """Settable UTC wall clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 6, 9, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, minutes: float = 0) -> None:
        self.now += timedelta(seconds=seconds, minutes=minutes)


class FakeMonotonic:
    """Settable monotonic clock (float seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that records each delay and moves a fake clock forward instead of waiting."""

    def __init__(self, clock: Optional[FakeMonotonic] = None):
        self.delays: list[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)
        await asyncio.sleep(0)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def recording_sleep(monotonic) -> RecordingSleep:
    return RecordingSleep(monotonic)


# =========================
# Quote / Provider Fixtures
# =========================

def build_quote(symbol: str, price: str = "100.00", **kwargs) -> Quote:
    return Quote(
        symbol=symbol,
        price=Decimal(price),
        day_high=kwargs.pop("day_high", Decimal(price) + 2),
        day_low=kwargs.pop("day_low", Decimal(price) - 2),
        day_open=kwargs.pop("day_open", Decimal(price) - 1),
        prev_close=kwargs.pop("prev_close", Decimal(price) - 1),
        **kwargs,
    )


class FakeProvider(BaseAdapter):
    """
    In-memory provider with call-count instrumentation.

    Set `error` to make every call fail, or `gate` (an asyncio.Event) to hold
    calls in flight until it is set.
    """

    def __init__(
        self,
        name: str,
        quotes: Optional[list[Quote]] = None,
        error: Optional[Exception] = None,
        healthy=True,
    ):
        super().__init__(ProviderConfig(name=name))
        self.quotes = {q.symbol: q for q in quotes or []}
        self.error = error
        self.healthy = healthy
        self.gate: Optional[asyncio.Event] = None
        self.calls: list[list[str]] = []
        self.initialized = False
        self.closed = False

    async def initialize(self) -> None:
        self.initialized = True

    async def close(self) -> None:
        self.closed = True

    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        self.calls.append(list(symbols))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [replace(self.quotes[s]) for s in symbols if s in self.quotes]

    async def health_check(self) -> bool:
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return self.healthy


@pytest.fixture
def make_quote():
    """Factory for Quote objects with plausible OHLC values."""
    return build_quote


@pytest.fixture
def make_provider():
    """Factory for FakeProvider instances."""
    return FakeProvider
