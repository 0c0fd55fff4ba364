"""Retry execution with exponential backoff, jitter and per-attempt timeout.

The executor wraps one asynchronous operation, consults the circuit breaker
before every attempt, classifies every failure and decides whether to try
again. It never raises for upstream failures: the outcome is always an
``OperationResult``.
"""

import asyncio
import logging
import random
import threading
import time
from dataclasses import dataclass, field
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from ..error_classifier import ErrorClassifier
from ..errors import (
    EnhancedError,
    GenerationCancelledError,
    RateLimitError,
    ServiceUnavailableError,
)
from ..events import EventSink, NullEventSink, safe_emit
from .circuit_breaker import CircuitBreakerRegistry, CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    """Total attempts, including the first one."""

    base_delay_ms: int = 1000
    """Delay before the second attempt; doubles on each further attempt."""

    max_delay_ms: int = 30_000
    """Upper bound for the exponential delay (before jitter)."""

    jitter_factor: float = 0.1
    """Random jitter added on top of the delay, as a fraction of it."""

    timeout_ms: Optional[int] = 60_000
    """Per-attempt timeout. None disables the timeout."""

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be non-negative")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        if not 0.0 <= self.jitter_factor <= 1.0:
            raise ValueError("jitter_factor must be between 0.0 and 1.0")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive or None")


@dataclass(frozen=True)
class OperationMetadata:
    """Resilience metadata attached to every operation result."""

    attempt_count: int
    circuit_breaker_state: CircuitState
    correlation_id: str
    fallback_used: bool = False
    total_duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_count": self.attempt_count,
            "circuit_breaker_state": self.circuit_breaker_state.value,
            "correlation_id": self.correlation_id,
            "fallback_used": self.fallback_used,
            "total_duration_ms": self.total_duration_ms,
        }


@dataclass(frozen=True)
class RetryAttemptRecord:
    """One attempt made by the executor. Never persisted."""

    attempt: int
    elapsed_ms: float
    succeeded: bool
    error: Optional[EnhancedError] = None
    delay_ms: Optional[float] = None


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """Outcome of one resilient call.

    Attributes:
        success: Whether the call produced a payload
        data: Payload on success
        error: Terminal classified error on failure
        metadata: Attempt count, breaker state, correlation id, fallback flag
        attempts: Per-attempt detail, in invocation order
    """

    success: bool
    metadata: OperationMetadata
    data: Optional[T] = None
    error: Optional[EnhancedError] = None
    attempts: Tuple[RetryAttemptRecord, ...] = ()


class RetryMetrics:
    """Counters for retry behavior.

    A retry is any attempt after the first. Thread-safe.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total_retries = 0
        self.successful_retries = 0
        self.exhausted_operations = 0
        self.retries_by_operation: Dict[str, int] = {}

    def record_retry(self, operation_name: str, success: bool) -> None:
        """Record one retry attempt.

        Args:
            operation_name: Operation that was retried
            success: Whether the retry attempt succeeded
        """
        with self._lock:
            self.total_retries += 1
            if success:
                self.successful_retries += 1
            self.retries_by_operation[operation_name] = (
                self.retries_by_operation.get(operation_name, 0) + 1
            )

    def record_exhausted(self, operation_name: str) -> None:
        """Record an operation that failed after using every attempt."""
        with self._lock:
            self.exhausted_operations += 1
            self.retries_by_operation.setdefault(operation_name, 0)

    def get_summary(self) -> Dict[str, Any]:
        """Get a snapshot of the counters.

        Returns:
            Dictionary with totals, success rate and per-operation retries
        """
        with self._lock:
            success_rate = (
                self.successful_retries / self.total_retries
                if self.total_retries
                else 0.0
            )
            return {
                "total_retries": self.total_retries,
                "successful_retries": self.successful_retries,
                "exhausted_operations": self.exhausted_operations,
                "success_rate": success_rate,
                "retries_by_operation": dict(self.retries_by_operation),
            }


def calculate_backoff_delay(
    attempt: int,
    base_delay_ms: float,
    max_delay_ms: float,
    jitter_factor: float = 0.0,
    rng: Optional[random.Random] = None,
) -> float:
    """Calculate the delay after a failed attempt.

    The exponential part is ``base_delay_ms * 2^(attempt-1)`` capped at
    ``max_delay_ms``; jitter drawn uniformly from ``[0, delay*jitter_factor]``
    is then added.

    Args:
        attempt: The attempt that just failed (1-indexed)
        base_delay_ms: Delay after the first attempt
        max_delay_ms: Cap for the exponential part
        jitter_factor: Fraction of the delay used as jitter range
        rng: Random source (module ``random`` if not provided)

    Returns:
        Delay in milliseconds
    """
    delay = min(base_delay_ms * (2 ** (attempt - 1)), max_delay_ms)
    if jitter_factor > 0 and delay > 0:
        source = rng or random
        delay += source.uniform(0, delay * jitter_factor)
    return delay


class RetryExecutor:
    """Runs an async operation with bounded retries under a circuit breaker."""

    def __init__(
        self,
        circuit_breakers: CircuitBreakerRegistry,
        config: Optional[RetryConfig] = None,
        classifier: Optional[ErrorClassifier] = None,
        event_sink: Optional[EventSink] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the executor.

        Args:
            circuit_breakers: Registry consulted before each attempt
            config: Default retry configuration
            classifier: Error classifier (default instance if not provided)
            event_sink: Observability sink
            sleep: Awaitable sleep taking seconds
            rng: Random source for jitter
            clock: Monotonic clock returning seconds
        """
        self.circuit_breakers = circuit_breakers
        self.config = config or RetryConfig()
        self.classifier = classifier or ErrorClassifier()
        self.event_sink = event_sink or NullEventSink()
        self.metrics = RetryMetrics()
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._clock = clock

    async def execute_with_retry(
        self,
        operation: Operation[T],
        operation_name: str,
        config: Optional[RetryConfig] = None,
        correlation_id: str = "",
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OperationResult[T]:
        """Execute an operation with retries.

        Args:
            operation: Zero-argument coroutine function performing the call
            operation_name: Circuit breaker key and metrics label
            config: Retry configuration for this call (executor default if None)
            correlation_id: Identifier tagging events of this invocation
            cancel_event: Optional event; when set, no further attempt or delay
                is started

        Returns:
            OperationResult with success payload or the terminal classified error

        Raises:
            GenerationCancelledError: If ``cancel_event`` is set
        """
        cfg = config or self.config
        started = self._clock()
        records: List[RetryAttemptRecord] = []
        invocations = 0
        last_error: Optional[EnhancedError] = None

        for attempt in range(1, cfg.max_attempts + 1):
            self._check_cancelled(cancel_event, operation_name)

            if not self.circuit_breakers.allow(operation_name):
                breaker = self.circuit_breakers.get_or_create(operation_name)
                last_error = ServiceUnavailableError(
                    f"Circuit breaker is open for {operation_name}",
                    context={
                        "operation_name": operation_name,
                        "retry_after_ms": breaker.time_until_retry_ms(),
                    },
                )
                logger.warning(
                    f"[{operation_name}] attempt {attempt} rejected: circuit open"
                )
                safe_emit(
                    self.event_sink,
                    "circuit:rejected",
                    {
                        "operation_name": operation_name,
                        "attempt": attempt,
                        "correlation_id": correlation_id,
                    },
                )
                break

            invocations += 1
            attempt_started = self._clock()
            try:
                data = await self._invoke(operation, cfg)
            except asyncio.CancelledError:
                self.circuit_breakers.release_trial(operation_name)
                raise
            except Exception as e:
                error = self.classifier.classify(e)
                last_error = error
                self.circuit_breakers.record_failure(operation_name)
                if attempt > 1:
                    self.metrics.record_retry(operation_name, success=False)

                is_last = attempt >= cfg.max_attempts
                if not error.retryable or is_last:
                    records.append(
                        RetryAttemptRecord(
                            attempt=attempt,
                            elapsed_ms=self._elapsed_ms(attempt_started),
                            succeeded=False,
                            error=error,
                        )
                    )
                    if not error.retryable:
                        logger.warning(
                            f"[{operation_name}] non-retryable {error.code} "
                            f"on attempt {attempt}: {error.message}"
                        )
                    else:
                        self.metrics.record_exhausted(operation_name)
                        logger.error(
                            f"[{operation_name}] failed after {attempt} attempts: "
                            f"{error}"
                        )
                    break

                delay_ms = self._delay_for(error, attempt, cfg)
                records.append(
                    RetryAttemptRecord(
                        attempt=attempt,
                        elapsed_ms=self._elapsed_ms(attempt_started),
                        succeeded=False,
                        error=error,
                        delay_ms=delay_ms,
                    )
                )
                logger.warning(
                    f"[{operation_name}] attempt {attempt}/{cfg.max_attempts} "
                    f"failed with {error.code}, retrying in {delay_ms:.0f}ms"
                )
                safe_emit(
                    self.event_sink,
                    "retry:attempt",
                    {
                        "operation_name": operation_name,
                        "attempt": attempt,
                        "error_code": error.code,
                        "delay_ms": delay_ms,
                        "correlation_id": correlation_id,
                    },
                )
                self._check_cancelled(cancel_event, operation_name)
                await self._sleep(delay_ms / 1000)
                continue

            self.circuit_breakers.record_success(operation_name)
            if attempt > 1:
                self.metrics.record_retry(operation_name, success=True)
            records.append(
                RetryAttemptRecord(
                    attempt=attempt,
                    elapsed_ms=self._elapsed_ms(attempt_started),
                    succeeded=True,
                )
            )
            logger.debug(f"[{operation_name}] succeeded on attempt {attempt}")
            return OperationResult(
                success=True,
                data=data,
                attempts=tuple(records),
                metadata=self._metadata(
                    operation_name, invocations, correlation_id, started
                ),
            )

        logger.debug(
            f"[{operation_name}] attempts: "
            + ", ".join(
                f"#{r.attempt} {r.error.code if r.error else 'ok'}" for r in records
            )
        )
        return OperationResult(
            success=False,
            error=last_error,
            attempts=tuple(records),
            metadata=self._metadata(
                operation_name, invocations, correlation_id, started
            ),
        )

    async def _invoke(self, operation: Operation[T], cfg: RetryConfig) -> T:
        if cfg.timeout_ms is None:
            return await operation()
        return await asyncio.wait_for(operation(), timeout=cfg.timeout_ms / 1000)

    def _delay_for(
        self, error: EnhancedError, attempt: int, cfg: RetryConfig
    ) -> float:
        if isinstance(error, RateLimitError) and error.retry_after_ms is not None:
            return float(error.retry_after_ms)
        return calculate_backoff_delay(
            attempt,
            cfg.base_delay_ms,
            cfg.max_delay_ms,
            cfg.jitter_factor,
            self._rng,
        )

    def _check_cancelled(
        self, cancel_event: Optional[asyncio.Event], operation_name: str
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelledError(f"{operation_name} was cancelled")

    def _elapsed_ms(self, since: float) -> float:
        return (self._clock() - since) * 1000

    def _metadata(
        self,
        operation_name: str,
        attempt_count: int,
        correlation_id: str,
        started: float,
    ) -> OperationMetadata:
        return OperationMetadata(
            attempt_count=attempt_count,
            circuit_breaker_state=self.circuit_breakers.state(operation_name),
            correlation_id=correlation_id,
            total_duration_ms=self._elapsed_ms(started),
        )
