"""Circuit breaker pattern for adapter fault tolerance."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from adapter_relay.config import CircuitBreakerConfig
from adapter_relay.metrics import MetricsExporter
from adapter_relay.utils import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # Single trial in flight


@dataclass(frozen=True)
class Admission:
    """Ticket handed out by ``allow_request``.

    Outcomes are attributed through the ticket: only the holder of the
    current HALF_OPEN trial can close or reopen the breaker, and calls
    admitted before the last state change only update the totals.
    """

    generation: int
    trial: bool = False


@dataclass(frozen=True)
class CircuitBreakerStats:
    """Snapshot of circuit breaker state."""

    state: CircuitState
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float = 0.0
    total_failures: int = 0
    total_successes: int = 0
    state_changes: int = 0


class CircuitBreaker:
    """Circuit breaker for one adapter.

    Rejects calls once ``failure_threshold`` consecutive failures are seen,
    then admits exactly one trial call after ``recovery_timeout`` seconds.
    All state is guarded by a lock so concurrent callers and the health
    monitor observe consistent transitions.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        on_state_change: Callable[[CircuitState, CircuitState], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Adapter id guarded by this breaker
            config: Configuration parameters
            on_state_change: Callback when state changes
            clock: Time source in seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._on_state_change = on_state_change
        self._clock = clock
        self._lock = threading.RLock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = 0.0
        self._total_failures = 0
        self._total_successes = 0
        self._state_changes = 0
        self._trial_in_flight = False
        # Bumped on every transition; tickets from older generations are stale
        self._generation = 0

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        with self._lock:
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Current statistics."""
        with self._lock:
            return self._snapshot()

    def allow_request(self) -> Admission | None:
        """Check if a call may proceed.

        In OPEN state past the cooldown this claims the single trial slot
        and moves to HALF_OPEN.

        Returns:
            Admission ticket to hand back with the outcome, or None if
            the call is rejected
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return Admission(self._generation)

            if self._state == CircuitState.OPEN:
                if self._clock() - self._last_failure_time < self.config.recovery_timeout:
                    return None
                self._transition_to(CircuitState.HALF_OPEN)
                self._trial_in_flight = True
                return Admission(self._generation, trial=True)

            # HALF_OPEN
            if self._trial_in_flight:
                return None
            self._trial_in_flight = True
            return Admission(self._generation, trial=True)

    def _is_current(self, admission: Admission | None) -> bool:
        """Whether an outcome may move the state. Caller holds the lock."""
        if admission is None:
            return True
        if admission.generation != self._generation:
            return False
        # Only the trial holder decides a HALF_OPEN breaker
        return admission.trial or self._state != CircuitState.HALF_OPEN

    def record_success(self, admission: Admission | None = None) -> None:
        """Record successful execution.

        Args:
            admission: Ticket from ``allow_request``; None for outcomes not
                tied to an admission
        """
        with self._lock:
            self._total_successes += 1
            if not self._is_current(admission):
                return
            self._success_count += 1

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
                logger.info("circuit.recovered", name=self.name)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self, admission: Admission | None = None) -> None:
        """Record failed execution.

        Args:
            admission: Ticket from ``allow_request``; None for outcomes not
                tied to an admission
        """
        with self._lock:
            self._total_failures += 1
            if not self._is_current(admission):
                return
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
                logger.warning(
                    "circuit.reopened",
                    name=self.name,
                    failures=self._failure_count,
                )
            elif self._state == CircuitState.CLOSED:
                if self._failure_count >= self.config.failure_threshold:
                    self._transition_to(CircuitState.OPEN)
                    logger.error(
                        "circuit.opened",
                        name=self.name,
                        threshold=self.config.failure_threshold,
                        failures=self._failure_count,
                    )

    def release_trial(self, admission: Admission | None = None) -> None:
        """Free the HALF_OPEN trial slot when a trial ends without an outcome.

        Only the current trial's ticket (or None) releases the slot.
        """
        with self._lock:
            if self._state != CircuitState.HALF_OPEN:
                return
            if self._is_current(admission):
                self._trial_in_flight = False

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to new state. Caller holds the lock.

        Args:
            new_state: Target state
        """
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        self._state_changes += 1
        self._generation += 1
        self._trial_in_flight = False

        # Reset counters on state change
        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
        elif new_state == CircuitState.OPEN:
            self._success_count = 0

        logger.info(
            "circuit.state_changed",
            name=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
        )
        MetricsExporter.record_circuit_state(self.name, new_state.value)

        if self._on_state_change:
            try:
                self._on_state_change(old_state, new_state)
            except Exception as e:
                logger.error("circuit.callback_error", name=self.name, error=str(e))

    def _snapshot(self) -> CircuitBreakerStats:
        return CircuitBreakerStats(
            state=self._state,
            failure_count=self._failure_count,
            success_count=self._success_count,
            last_failure_time=self._last_failure_time,
            total_failures=self._total_failures,
            total_successes=self._total_successes,
            state_changes=self._state_changes,
        )

    def get_stats_dict(self) -> dict:
        """Get statistics as dictionary.

        Returns:
            Statistics dictionary
        """
        stats = self.stats
        return {
            "name": self.name,
            "state": stats.state.value,
            "failure_count": stats.failure_count,
            "success_count": stats.success_count,
            "total_failures": stats.total_failures,
            "total_successes": stats.total_successes,
            "state_changes": stats.state_changes,
            "last_failure_time": stats.last_failure_time,
            "config": self.config.model_dump(),
        }


class CircuitBreakerRegistry:
    """Keyed store of circuit breakers, one per adapter id."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        """Initialize registry.

        Args:
            clock: Time source handed to every breaker
        """
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get_or_create(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get existing or create new circuit breaker.

        Args:
            name: Adapter id
            config: Configuration used when the breaker is created

        Returns:
            Circuit breaker instance
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name, config, clock=self._clock)
                self._breakers[name] = breaker
            return breaker

    def get(self, name: str) -> CircuitBreaker | None:
        """Get circuit breaker by name.

        Args:
            name: Adapter id

        Returns:
            Circuit breaker or None
        """
        with self._lock:
            return self._breakers.get(name)

    def remove(self, name: str) -> bool:
        """Remove circuit breaker.

        Returns:
            True if removed, False if not found
        """
        with self._lock:
            return self._breakers.pop(name, None) is not None

    def list_all(self) -> list[dict]:
        """List all circuit breakers.

        Returns:
            List of statistics dictionaries
        """
        with self._lock:
            breakers = list(self._breakers.values())
        return [cb.get_stats_dict() for cb in breakers]

    def reset_all(self) -> None:
        """Reset all circuit breakers to CLOSED state."""
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()


# Global registry instance
_global_registry: CircuitBreakerRegistry | None = None


def get_circuit_breaker_registry() -> CircuitBreakerRegistry:
    """Get global circuit breaker registry."""
    global _global_registry
    if _global_registry is None:
        _global_registry = CircuitBreakerRegistry()
    return _global_registry
