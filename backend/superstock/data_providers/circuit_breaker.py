"""
Circuit Breaker

Per-provider failure tracking. A provider whose consecutive failures reach
the threshold is skipped for a cooldown window, then admitted for exactly
one trial call before it is trusted again.

All breakers share one lock. It is held only for the synchronous
read-modify-write of a breaker, never across I/O.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional
from loguru import logger


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation, requests allowed
    OPEN = "open"            # Failures exceeded threshold, requests blocked
    HALF_OPEN = "half_open"  # One trial request allowed


@dataclass
class CircuitBreakerState:
    """Mutable breaker state for one provider."""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_time: Optional[datetime] = None
    next_retry_time: Optional[datetime] = None
    trial_in_flight: bool = False


@dataclass(frozen=True)
class CircuitBreakerInfo:
    """Read-only breaker snapshot for status reporting."""
    state: CircuitState
    failure_count: int
    last_failure_time: Optional[datetime]
    next_retry_time: Optional[datetime]

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
            "next_retry_time": self.next_retry_time.isoformat() if self.next_retry_time else None,
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CircuitBreakerRegistry:
    """
    Circuit breakers for a fixed set of providers.

    Transitions:
        CLOSED    -> OPEN       failure_count reaches failure_threshold
        OPEN      -> HALF_OPEN  checked at or after next_retry_time (lazy)
        HALF_OPEN -> CLOSED     trial call succeeded
        HALF_OPEN -> OPEN       trial call failed, cooldown restarts
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout_seconds: float = 60,
        clock: Callable[[], datetime] = _utc_now,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.timeout = timedelta(seconds=timeout_seconds)
        self._clock = clock
        self._breakers: dict[str, CircuitBreakerState] = {}
        self._lock = threading.Lock()

    def register(self, provider: str) -> None:
        with self._lock:
            self._breakers.setdefault(provider, CircuitBreakerState())

    @property
    def providers(self) -> list[str]:
        with self._lock:
            return list(self._breakers)

    def _transition(self, provider: str, breaker: CircuitBreakerState, new_state: CircuitState) -> None:
        old_state = breaker.state
        breaker.state = new_state
        if old_state == new_state:
            return
        retry_info = f", next retry at {breaker.next_retry_time.isoformat()}" if new_state == CircuitState.OPEN else ""
        message = (
            f"Circuit breaker for {provider} changed from {old_state.value} to {new_state.value} "
            f"(failures: {breaker.failure_count}){retry_info}"
        )
        if new_state == CircuitState.OPEN:
            logger.warning(message)
        else:
            logger.info(message)

    def allow_request(self, provider: str) -> bool:
        """
        Check, and lazily advance, a provider's availability.

        Returns True when the caller may call the provider. When this call
        moves the breaker to HALF_OPEN, the caller holds the single trial
        slot and must report the outcome via record_success,
        record_failure or release_trial.
        """
        now = self._clock()
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                return True

            if breaker.state == CircuitState.CLOSED:
                return True

            if breaker.state == CircuitState.OPEN:
                if breaker.next_retry_time is not None and now >= breaker.next_retry_time:
                    self._transition(provider, breaker, CircuitState.HALF_OPEN)
                    breaker.trial_in_flight = True
                    return True
                return False

            # HALF_OPEN: only one trial at a time
            if breaker.trial_in_flight:
                return False
            breaker.trial_in_flight = True
            return True

    def record_success(self, provider: str) -> None:
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                return
            breaker.failure_count = 0
            breaker.trial_in_flight = False
            breaker.next_retry_time = None
            self._transition(provider, breaker, CircuitState.CLOSED)

    def record_failure(self, provider: str) -> None:
        now = self._clock()
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                return
            breaker.failure_count += 1
            breaker.last_failure_time = now

            if breaker.state == CircuitState.HALF_OPEN:
                breaker.trial_in_flight = False
                breaker.next_retry_time = now + self.timeout
                self._transition(provider, breaker, CircuitState.OPEN)
                return

            if breaker.state == CircuitState.CLOSED and breaker.failure_count >= self.failure_threshold:
                breaker.next_retry_time = now + self.timeout
                self._transition(provider, breaker, CircuitState.OPEN)

    def release_trial(self, provider: str) -> None:
        """Give back a HALF_OPEN trial slot whose call never completed."""
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is not None and breaker.state == CircuitState.HALF_OPEN:
                breaker.trial_in_flight = False

    def reset(self, provider: str) -> bool:
        """Force a breaker CLOSED with a zero count. False if unknown."""
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None:
                return False
            breaker.failure_count = 0
            breaker.last_failure_time = None
            breaker.next_retry_time = None
            breaker.trial_in_flight = False
            self._transition(provider, breaker, CircuitState.CLOSED)
        logger.info(f"Circuit breaker for {provider} manually reset")
        return True

    def state(self, provider: str) -> Optional[CircuitState]:
        with self._lock:
            breaker = self._breakers.get(provider)
            return breaker.state if breaker else None

    def retry_after(self, provider: str) -> float:
        """Seconds until an OPEN breaker admits a trial (0 otherwise)."""
        now = self._clock()
        with self._lock:
            breaker = self._breakers.get(provider)
            if breaker is None or breaker.state != CircuitState.OPEN or breaker.next_retry_time is None:
                return 0.0
            return max(0.0, (breaker.next_retry_time - now).total_seconds())

    def snapshot(self) -> dict[str, CircuitBreakerInfo]:
        with self._lock:
            return {
                name: CircuitBreakerInfo(
                    state=breaker.state,
                    failure_count=breaker.failure_count,
                    last_failure_time=breaker.last_failure_time,
                    next_retry_time=breaker.next_retry_time,
                )
                for name, breaker in self._breakers.items()
            }
