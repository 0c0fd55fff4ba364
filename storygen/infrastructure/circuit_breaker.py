"""Circuit breaker pattern for upstream generation calls.

This module implements the circuit breaker pattern to stop hammering an
operation that is known to be failing. When an operation fails repeatedly,
its circuit "opens" and calls are rejected without being attempted until a
recovery timeout has elapsed.

States:
    CLOSED: Normal operation, calls pass through
    OPEN: Operation is failing, calls are rejected immediately
    HALF_OPEN: One trial call is allowed to test recovery

Transitions:
    CLOSED -> OPEN: When consecutive failures reach the threshold
    OPEN -> HALF_OPEN: After recovery timeout expires
    HALF_OPEN -> CLOSED: When the trial call succeeds
    HALF_OPEN -> OPEN: When the trial call fails

State is kept per operation name. Every read-modify-write of a breaker's
state happens under that breaker's lock, so the registry is safe to share
between threads as well as between tasks on one event loop.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

StateChangeListener = Callable[[str, "CircuitState", "CircuitState", str], None]


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    failure_threshold: int = 5
    """Number of consecutive failures before opening the circuit."""

    recovery_timeout_ms: int = 60_000
    """Milliseconds to wait before transitioning from OPEN to HALF_OPEN."""

    enabled: bool = True
    """Whether circuit breaker is enabled."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout_ms < 0:
            raise ValueError("recovery_timeout_ms must be non-negative")


MAX_STATE_CHANGES_HISTORY = 50


@dataclass
class CircuitBreakerStats:
    """Statistics and state for a single operation's circuit."""

    operation_name: str
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    total_calls: int = 0
    total_failures: int = 0
    total_successes: int = 0
    rejected_calls: int = 0
    state_changes: Deque[Dict[str, Any]] = field(
        default_factory=lambda: deque(maxlen=MAX_STATE_CHANGES_HISTORY)
    )
    last_failure_time: Optional[float] = None
    last_state_change_time: Optional[float] = None

    def record_call(self, success: bool, now: float) -> None:
        """Record a call result.

        Args:
            success: Whether the call succeeded
            now: Current clock reading in seconds
        """
        self.total_calls += 1
        if success:
            self.total_successes += 1
            self.consecutive_failures = 0
        else:
            self.total_failures += 1
            self.consecutive_failures += 1
            self.last_failure_time = now

    def record_state_change(
        self, from_state: CircuitState, to_state: CircuitState, reason: str, now: float
    ) -> None:
        """Record a state transition.

        Args:
            from_state: Previous state
            to_state: New state
            reason: Reason for the transition
            now: Current clock reading in seconds
        """
        self.state = to_state
        self.last_state_change_time = now
        self.state_changes.append(
            {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "from_state": from_state.value,
                "to_state": to_state.value,
                "reason": reason,
                "consecutive_failures": self.consecutive_failures,
            }
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary.

        Returns:
            Dictionary representation of stats
        """
        return {
            "operation_name": self.operation_name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "total_calls": self.total_calls,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "rejected_calls": self.rejected_calls,
            "state_changes_count": len(self.state_changes),
            "recent_state_changes": list(self.state_changes)[-5:],
        }


class CircuitBreaker:
    """Circuit breaker for a single operation name.

    Thread-safe implementation using locks. The clock is injectable so
    recovery timing can be driven deterministically.
    """

    def __init__(
        self,
        operation_name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateChangeListener] = None,
    ):
        """Initialize circuit breaker.

        Args:
            operation_name: Name of the operation this breaker protects
            config: Circuit breaker configuration (uses defaults if not provided)
            clock: Monotonic clock returning seconds
            on_state_change: Called as (operation_name, from, to, reason) after
                every transition
        """
        self.operation_name = operation_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._on_state_change = on_state_change
        self._lock = threading.RLock()
        self._stats = CircuitBreakerStats(operation_name=operation_name)
        self._trial_in_flight = False

        logger.debug(
            f"CircuitBreaker initialized for {operation_name} "
            f"(threshold={self.config.failure_threshold}, "
            f"recovery={self.config.recovery_timeout_ms}ms)"
        )

    @property
    def state(self) -> CircuitState:
        """Get current circuit state.

        Returns:
            Current circuit state
        """
        with self._lock:
            return self._stats.state

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._stats.consecutive_failures

    def allow(self) -> bool:
        """Decide whether a call may be attempted now.

        An OPEN circuit whose recovery timeout has elapsed moves to HALF_OPEN
        and admits exactly one trial call. Further calls are rejected until
        that trial reports success or failure.

        Returns:
            True if the caller may invoke the operation
        """
        if not self.config.enabled:
            return True

        with self._lock:
            if self._stats.state == CircuitState.CLOSED:
                return True

            if self._stats.state == CircuitState.OPEN:
                if self._recovery_elapsed():
                    self._transition_to(
                        CircuitState.HALF_OPEN,
                        f"Recovery timeout "
                        f"({self.config.recovery_timeout_ms}ms) elapsed",
                    )
                    self._trial_in_flight = True
                    return True
                self._stats.rejected_calls += 1
                return False

            # HALF_OPEN: only one trial at a time
            if self._trial_in_flight:
                self._stats.rejected_calls += 1
                return False
            self._trial_in_flight = True
            return True

    def time_until_retry_ms(self) -> float:
        """Milliseconds until an OPEN circuit admits a trial call (0 otherwise)."""
        with self._lock:
            if (
                self._stats.state != CircuitState.OPEN
                or self._stats.last_state_change_time is None
            ):
                return 0.0
            elapsed_ms = (self._clock() - self._stats.last_state_change_time) * 1000
            return max(0.0, self.config.recovery_timeout_ms - elapsed_ms)

    def _recovery_elapsed(self) -> bool:
        """Check whether the OPEN recovery window has passed.

        Must be called while holding the lock.
        """
        opened_at = self._stats.last_state_change_time
        if opened_at is None:
            return True
        elapsed_ms = (self._clock() - opened_at) * 1000
        return elapsed_ms >= self.config.recovery_timeout_ms

    def _transition_to(self, new_state: CircuitState, reason: str) -> None:
        """Transition to a new state.

        Must be called while holding the lock.

        Args:
            new_state: Target state
            reason: Reason for transition
        """
        old_state = self._stats.state
        if old_state == new_state:
            return

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker [{self.operation_name}]: "
            f"{old_state.value} -> {new_state.value} ({reason})"
        )
        self._stats.record_state_change(old_state, new_state, reason, self._clock())

        if new_state == CircuitState.CLOSED:
            self._stats.consecutive_failures = 0
        if new_state != CircuitState.HALF_OPEN:
            self._trial_in_flight = False

        if self._on_state_change is not None:
            try:
                self._on_state_change(self.operation_name, old_state, new_state, reason)
            except Exception as e:
                logger.warning(
                    f"State change listener failed for {self.operation_name}: {e}"
                )

    def record_success(self) -> None:
        """Record a successful call."""
        if not self.config.enabled:
            return

        with self._lock:
            self._stats.record_call(success=True, now=self._clock())

            if self._stats.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED, "Trial call succeeded")

    def release_trial(self) -> None:
        """Give back a half-open trial whose call never reported an outcome.

        The circuit stays HALF_OPEN and the next caller is admitted as the
        trial.
        """
        with self._lock:
            if self._stats.state == CircuitState.HALF_OPEN and self._trial_in_flight:
                self._trial_in_flight = False
                logger.info(
                    f"Circuit breaker [{self.operation_name}]: "
                    f"trial call abandoned, admitting a new trial"
                )

    def record_failure(self) -> None:
        """Record a failed call."""
        if not self.config.enabled:
            return

        with self._lock:
            self._stats.record_call(success=False, now=self._clock())

            if self._stats.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN, "Trial call failed")
            elif self._stats.state == CircuitState.CLOSED:
                if self._stats.consecutive_failures >= self.config.failure_threshold:
                    self._transition_to(
                        CircuitState.OPEN,
                        f"Failure threshold reached "
                        f"(consecutive={self._stats.consecutive_failures})",
                    )

    def get_stats(self) -> Dict[str, Any]:
        """Get circuit breaker statistics.

        Returns:
            Dictionary with circuit breaker stats
        """
        with self._lock:
            return self._stats.to_dict()

    def reset(self) -> None:
        """Reset circuit breaker to initial state."""
        with self._lock:
            old_state = self._stats.state
            self._stats = CircuitBreakerStats(operation_name=self.operation_name)
            self._trial_in_flight = False
            logger.info(
                f"Circuit breaker [{self.operation_name}] reset from {old_state.value}"
            )


class CircuitBreakerRegistry:
    """Per-operation-name circuit breakers sharing one configuration.

    This is the component the retry executor consults: ``allow``,
    ``record_success`` and ``record_failure`` take the operation name and
    lazily create the breaker for it.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateChangeListener] = None,
    ):
        """Initialize the registry.

        Args:
            config: Configuration for every breaker created by this registry
            clock: Monotonic clock returning seconds, shared by all breakers
            on_state_change: Listener attached to every breaker
        """
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._on_state_change = on_state_change

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    def get_or_create(self, operation_name: str) -> CircuitBreaker:
        """Get or create the circuit breaker for an operation.

        Args:
            operation_name: Name of the operation

        Returns:
            CircuitBreaker for the operation
        """
        with self._lock:
            if operation_name not in self._breakers:
                self._breakers[operation_name] = CircuitBreaker(
                    operation_name=operation_name,
                    config=self._config,
                    clock=self._clock,
                    on_state_change=self._on_state_change,
                )
            return self._breakers[operation_name]

    def get(self, operation_name: str) -> Optional[CircuitBreaker]:
        """Get a circuit breaker if it exists.

        Args:
            operation_name: Name of the operation

        Returns:
            CircuitBreaker if exists, None otherwise
        """
        with self._lock:
            return self._breakers.get(operation_name)

    def allow(self, operation_name: str) -> bool:
        return self.get_or_create(operation_name).allow()

    def record_success(self, operation_name: str) -> None:
        self.get_or_create(operation_name).record_success()

    def record_failure(self, operation_name: str) -> None:
        self.get_or_create(operation_name).record_failure()

    def release_trial(self, operation_name: str) -> None:
        self.get_or_create(operation_name).release_trial()

    def state(self, operation_name: str) -> CircuitState:
        """Current state for an operation (CLOSED if never called)."""
        breaker = self.get(operation_name)
        return breaker.state if breaker is not None else CircuitState.CLOSED

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get statistics for all circuit breakers.

        Returns:
            Dictionary mapping operation names to their stats
        """
        with self._lock:
            breakers = dict(self._breakers)
        return {name: cb.get_stats() for name, cb in breakers.items()}

    def get_unavailable_operations(self) -> List[str]:
        """Get operation names whose circuits are currently open."""
        with self._lock:
            breakers = dict(self._breakers)
        return [
            name for name, cb in breakers.items() if cb.state == CircuitState.OPEN
        ]

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        with self._lock:
            for cb in self._breakers.values():
                cb.reset()
            logger.info("All circuit breakers reset")

    def reset(self, operation_name: str) -> bool:
        """Reset a specific circuit breaker.

        Args:
            operation_name: Name of the operation

        Returns:
            True if reset was performed, False if operation not found
        """
        with self._lock:
            if operation_name in self._breakers:
                self._breakers[operation_name].reset()
                return True
            return False
