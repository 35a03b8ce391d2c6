"""
Integration Tests - Stock Data Service
Cache, circuit breaker and fallback behaviour of StockDataService with in-memory providers.
"""
import asyncio
from datetime import timedelta
from decimal import Decimal
import pytest

from superstock.data_providers.adapters.base import (
    AllProvidersFailedError,
    AuthenticationError,
    CircuitBreakerOpenError,
    NetworkError,
    ProviderUnavailableError,
)
from superstock.data_providers.circuit_breaker import CircuitState
from superstock.data_providers.config import StockDataConfig
from superstock.data_providers.orchestrator import (
    PROVIDER_PRIORITIES,
    StockDataService,
    get_provider_priority,
)


def build_service(providers, clock, **overrides) -> StockDataService:
    config = StockDataConfig(**overrides)
    return StockDataService(providers, config, clock=clock)


@pytest.fixture
def primary(make_provider, make_quote):
    return make_provider("primary", [make_quote("AAPL", "190.50"), make_quote("MSFT", "410.25")])


@pytest.fixture
def secondary(make_provider, make_quote):
    return make_provider("secondary", [make_quote("AAPL", "190.40"), make_quote("MSFT", "410.00")])


class TestProviderOrdering:

    def test_priority_table(self):
        assert PROVIDER_PRIORITIES == {"twelve_data": 1, "yfinance": 2}
        assert get_provider_priority("something_else") == 999

    def test_sorted_by_priority(self, make_provider, clock):
        yf = make_provider("yfinance")
        td = make_provider("twelve_data")
        other = make_provider("custom")
        service = build_service([other, yf, td], clock)
        assert [p.name for p in service.providers] == ["twelve_data", "yfinance", "custom"]

    def test_breakers_registered(self, primary, secondary, clock):
        service = build_service([primary, secondary], clock)
        assert set(service.get_circuit_breaker_status()) == {"primary", "secondary"}


class TestCaching:

    @pytest.mark.asyncio
    async def test_empty_request(self, primary, clock):
        service = build_service([primary], clock)
        assert await service.get_quotes([]) == []
        assert await service.get_quotes(["", "A$"]) == []
        assert primary.calls == []

    @pytest.mark.asyncio
    async def test_two_provider_scenario(self, primary, secondary, clock):
        service = build_service(
            [primary, secondary],
            clock,
            circuit_breaker_failure_threshold=2,
            circuit_breaker_timeout_seconds=30,
            cache_duration_minutes=5,
            max_requests_per_minute=8,
        )

        first = await service.get_quotes(["AAPL", "MSFT"])

        assert len(first) == 2
        assert all(q.provider == "primary" for q in first)
        assert len(service.cache) == 2
        assert len(primary.calls) == 1

        clock.advance(minutes=1)
        second = await service.get_quotes(["AAPL", "MSFT"])

        assert len(primary.calls) == 1
        assert secondary.calls == []
        assert {q.symbol: q.price for q in second} == {q.symbol: q.price for q in first}

    @pytest.mark.asyncio
    async def test_refresh_after_ttl(self, primary, clock):
        service = build_service([primary], clock, cache_duration_minutes=5)
        await service.get_quotes(["AAPL"])

        clock.advance(minutes=5, seconds=1)
        refreshed = await service.get_quotes(["AAPL"])

        assert len(primary.calls) == 2
        assert refreshed[0].last_updated == clock.now
        assert service.cache.get("AAPL").last_updated == clock.now

    @pytest.mark.asyncio
    async def test_only_uncached_symbols_fetched(self, primary, clock):
        service = build_service([primary], clock)
        await service.get_quotes(["AAPL"])

        quotes = await service.get_quotes(["AAPL", "MSFT"])

        assert primary.calls == [["AAPL"], ["MSFT"]]
        assert {q.symbol for q in quotes} == {"AAPL", "MSFT"}

    @pytest.mark.asyncio
    async def test_cache_disabled(self, primary, clock):
        service = build_service([primary], clock, cache_duration_minutes=0)
        await service.get_quotes(["AAPL"])
        await service.get_quotes(["AAPL"])
        assert len(primary.calls) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, primary, clock):
        service = build_service([primary], clock)
        await service.get_quotes(["AAPL", "MSFT"])

        assert service.clear_cache() == 2
        await service.get_quotes(["AAPL"])
        assert len(primary.calls) == 2

    @pytest.mark.asyncio
    async def test_symbols_canonicalized(self, primary, clock):
        service = build_service([primary], clock)
        quotes = await service.get_quotes(["aapl", "AAPL.NS", " msft "])

        assert primary.calls == [["AAPL", "MSFT"]]
        assert len(quotes) == 2

    @pytest.mark.asyncio
    async def test_repeated_suffix_requested_once(self, primary, clock):
        service = build_service([primary], clock)
        quotes = await service.get_quotes(["AAPL.NS.NS"])

        assert primary.calls == [["AAPL"]]
        assert [q.symbol for q in quotes] == ["AAPL"]
        assert service.cache.get("AAPL") is not None


class TestQuoteStamping:

    @pytest.mark.asyncio
    async def test_provider_time_and_staleness_stamped(self, make_provider, make_quote, clock):
        stale = make_quote("AAPL", last_updated=clock.now - timedelta(days=2), provider="", is_stale=True)
        provider = make_provider("primary", [stale])
        service = build_service([provider], clock)

        quote = (await service.get_quotes(["AAPL"]))[0]

        assert quote.provider == "primary"
        assert quote.last_updated == clock.now
        assert quote.is_stale is False

    @pytest.mark.asyncio
    async def test_unknown_symbol_absent(self, primary, clock):
        service = build_service([primary], clock)
        quotes = await service.get_quotes(["AAPL", "NOPE"])
        assert [q.symbol for q in quotes] == ["AAPL"]

    @pytest.mark.asyncio
    async def test_get_quote(self, primary, clock):
        service = build_service([primary], clock)
        quote = await service.get_quote("msft")
        assert quote.price == Decimal("410.25")
        assert await service.get_quote("NOPE") is None


class TestFallback:

    @pytest.mark.asyncio
    async def test_falls_back_to_secondary(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "connection refused")
        service = build_service([primary, secondary], clock)

        quotes = await service.get_quotes(["AAPL", "MSFT"])

        assert {q.provider for q in quotes} == {"secondary"}
        assert {q.price for q in quotes} == {Decimal("190.40"), Decimal("410.00")}
        status = service.get_circuit_breaker_status()
        assert status["primary"]["failure_count"] == 1
        assert status["secondary"]["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_first_success_wins(self, primary, secondary, clock):
        service = build_service([primary, secondary], clock)
        await service.get_quotes(["AAPL"])
        assert secondary.calls == []

    @pytest.mark.asyncio
    async def test_authentication_error_falls_back(self, primary, secondary, clock):
        primary.error = AuthenticationError("primary", "bad key")
        service = build_service([primary, secondary], clock)

        quotes = await service.get_quotes(["AAPL"])

        assert quotes[0].provider == "secondary"

    @pytest.mark.asyncio
    async def test_fallback_disabled(self, primary, secondary, clock):
        cause = NetworkError("primary", "connection refused")
        primary.error = cause
        service = build_service([primary, secondary], clock, enable_fallback=False)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await service.get_quotes(["AAPL"])

        assert secondary.calls == []
        assert exc_info.value.last_error is cause
        assert exc_info.value.__cause__ is cause

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        secondary.error = ProviderUnavailableError("secondary", "also down")
        service = build_service([primary, secondary], clock)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await service.get_quotes(["AAPL", "MSFT"])

        error = exc_info.value
        assert isinstance(error, ProviderUnavailableError)
        assert error.symbols == ["AAPL", "MSFT"]
        assert error.last_error is secondary.error
        assert "AAPL, MSFT" in str(error)

    @pytest.mark.asyncio
    async def test_failed_fetch_not_cached(self, primary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service([primary], clock)
        with pytest.raises(AllProvidersFailedError):
            await service.get_quotes(["AAPL"])
        assert len(service.cache) == 0


class TestCircuitBreaking:

    @pytest.mark.asyncio
    async def test_threshold_opens_and_skips(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service(
            [primary, secondary], clock, circuit_breaker_failure_threshold=3, cache_duration_minutes=0
        )

        for _ in range(3):
            await service.get_quotes(["AAPL"])
        assert service.get_circuit_breaker_status()["primary"]["state"] == "open"

        quotes = await service.get_quotes(["AAPL"])

        assert len(primary.calls) == 3
        assert quotes[0].provider == "secondary"

    @pytest.mark.asyncio
    async def test_skipped_provider_count_unchanged(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service(
            [primary, secondary], clock, circuit_breaker_failure_threshold=1, cache_duration_minutes=0
        )
        await service.get_quotes(["AAPL"])
        await service.get_quotes(["AAPL"])
        assert service.get_circuit_breaker_status()["primary"]["failure_count"] == 1

    @pytest.mark.asyncio
    async def test_only_open_provider_fails_fast(self, primary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service([primary], clock, circuit_breaker_failure_threshold=1)
        with pytest.raises(AllProvidersFailedError):
            await service.get_quotes(["AAPL"])

        clock.advance(seconds=15)
        with pytest.raises(AllProvidersFailedError) as exc_info:
            await service.get_quotes(["AAPL"])

        cause = exc_info.value.last_error
        assert isinstance(cause, CircuitBreakerOpenError)
        assert cause.provider == "primary"
        assert cause.retry_after == 45
        assert exc_info.value.__cause__ is cause
        assert len(primary.calls) == 1

    @pytest.mark.asyncio
    async def test_real_failure_preferred_over_open_breaker(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        secondary.error = ProviderUnavailableError("secondary", "down")
        service = build_service([primary, secondary], clock, circuit_breaker_failure_threshold=1)
        with pytest.raises(AllProvidersFailedError):
            await service.get_quotes(["AAPL"])

        # Primary stays open and is skipped; secondary is tried again and fails
        service.reset_circuit_breaker("secondary")
        with pytest.raises(AllProvidersFailedError) as exc_info:
            await service.get_quotes(["AAPL"])

        assert len(primary.calls) == 1
        assert len(secondary.calls) == 2
        assert exc_info.value.last_error is secondary.error

    @pytest.mark.asyncio
    async def test_cooldown_boundaries(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service(
            [primary, secondary],
            clock,
            circuit_breaker_failure_threshold=1,
            circuit_breaker_timeout_seconds=60,
            cache_duration_minutes=0,
        )
        await service.get_quotes(["AAPL"])
        assert len(primary.calls) == 1

        clock.advance(seconds=59)
        await service.get_quotes(["AAPL"])
        assert len(primary.calls) == 1

        clock.advance(seconds=2)
        await service.get_quotes(["AAPL"])
        assert len(primary.calls) == 2

    @pytest.mark.asyncio
    async def test_exactly_one_trial_under_concurrency(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service(
            [primary, secondary],
            clock,
            circuit_breaker_failure_threshold=1,
            circuit_breaker_timeout_seconds=60,
            cache_duration_minutes=0,
        )
        await service.get_quotes(["AAPL"])
        clock.advance(seconds=61)

        primary.error = None
        primary.gate = asyncio.Event()
        tasks = [asyncio.create_task(service.get_quotes(["AAPL"])) for _ in range(5)]
        for _ in range(3):
            await asyncio.sleep(0)
        primary.gate.set()
        results = await asyncio.gather(*tasks)

        # One initial failure plus the single half-open trial
        assert len(primary.calls) == 2
        providers = sorted(r[0].provider for r in results)
        assert providers == ["primary", "secondary", "secondary", "secondary", "secondary"]
        assert service.get_circuit_breaker_status()["primary"]["state"] == "closed"

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service(
            [primary, secondary], clock, circuit_breaker_failure_threshold=1, cache_duration_minutes=0
        )
        await service.get_quotes(["AAPL"])
        clock.advance(seconds=61)
        primary.error = None

        quotes = await service.get_quotes(["AAPL"])

        assert quotes[0].provider == "primary"
        status = service.get_circuit_breaker_status()["primary"]
        assert status["state"] == "closed"
        assert status["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service(
            [primary, secondary], clock, circuit_breaker_failure_threshold=1, cache_duration_minutes=0
        )
        await service.get_quotes(["AAPL"])
        clock.advance(seconds=61)

        await service.get_quotes(["AAPL"])

        info = service.circuit_breakers.snapshot()["primary"]
        assert info.state == CircuitState.OPEN
        assert info.next_retry_time == clock.now + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_cancelled_trial_released(self, primary, secondary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service(
            [primary, secondary], clock, circuit_breaker_failure_threshold=1, cache_duration_minutes=0
        )
        await service.get_quotes(["AAPL"])
        clock.advance(seconds=61)

        primary.gate = asyncio.Event()
        task = asyncio.create_task(service.get_quotes(["AAPL"]))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert service.circuit_breakers.state("primary") == CircuitState.HALF_OPEN
        assert service.circuit_breakers.allow_request("primary") is True

    @pytest.mark.asyncio
    async def test_reset_circuit_breaker(self, primary, clock):
        primary.error = NetworkError("primary", "down")
        service = build_service([primary], clock, circuit_breaker_failure_threshold=1)
        with pytest.raises(AllProvidersFailedError):
            await service.get_quotes(["AAPL"])

        assert service.reset_circuit_breaker("primary") is True
        assert service.reset_circuit_breaker("unknown") is False
        status = service.get_circuit_breaker_status()["primary"]
        assert status == {
            "state": "closed",
            "failure_count": 0,
            "last_failure_time": None,
            "next_retry_time": None,
        }


class TestHealthAndLifecycle:

    @pytest.mark.asyncio
    async def test_health_tolerates_failures(self, make_provider, clock):
        providers = [
            make_provider("twelve_data", healthy=True),
            make_provider("yfinance", healthy=False),
            make_provider("custom", healthy=RuntimeError("health check crashed")),
        ]
        service = build_service(providers, clock)

        health = await service.get_provider_health()

        assert health == {"twelve_data": True, "yfinance": False, "custom": False}

    @pytest.mark.asyncio
    async def test_initialize_and_shutdown(self, primary, secondary, clock):
        service = build_service([primary, secondary], clock)
        await service.initialize()
        assert primary.initialized and secondary.initialized

        await service.shutdown()
        assert primary.closed and secondary.closed

    @pytest.mark.asyncio
    async def test_initialize_failure_counts_against_provider(self, primary, clock):
        async def broken():
            raise RuntimeError("no session")

        primary.initialize = broken
        service = build_service([primary], clock)
        await service.initialize()
        assert service.get_circuit_breaker_status()["primary"]["failure_count"] == 1

    @pytest.mark.asyncio
    async def test_stats(self, primary, secondary, clock):
        service = build_service([primary, secondary], clock)
        await service.get_quotes(["AAPL"])
        stats = service.get_stats()
        assert [p["name"] for p in stats["providers"]] == ["primary", "secondary"]
        assert stats["cache"]["size"] == 1
        assert stats["fallback_enabled"] is True
