"""Resilient call orchestration: retries, circuit breaking and fallback.

``ResilientCallOrchestrator`` is the single "execute with full resilience"
entry point used by the text generator. Each invocation gets its own
correlation id, which is published through ``correlation_id_context`` so
every log line emitted during the call carries it.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import replace
from typing import Callable, Optional

from ..events import EventSink, NullEventSink, safe_emit
from ..logging_config import correlation_id_context
from .retry import Operation, OperationResult, RetryConfig, RetryExecutor, T

logger = logging.getLogger(__name__)

FALLBACK_SUFFIX = ":fallback"


def fallback_operation_name(operation_name: str) -> str:
    """Circuit breaker key used for an operation's fallback."""
    return f"{operation_name}{FALLBACK_SUFFIX}"


class ResilientCallOrchestrator:
    """Composes the retry executor, circuit breakers and an optional fallback."""

    def __init__(
        self,
        executor: RetryExecutor,
        event_sink: Optional[EventSink] = None,
        clock: Callable[[], float] = time.monotonic,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        """Initialize the orchestrator.

        Args:
            executor: Retry executor shared by primary and fallback calls
            event_sink: Observability sink
            clock: Monotonic clock returning seconds
            id_factory: Produces correlation ids
        """
        self.executor = executor
        self.event_sink = event_sink or NullEventSink()
        self._clock = clock
        self._id_factory = id_factory

    async def execute_with_retry_and_circuit_breaker(
        self,
        operation: Operation[T],
        operation_name: str,
        fallback_operation: Optional[Operation[T]] = None,
        config: Optional[RetryConfig] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OperationResult[T]:
        """Run an operation with full resilience.

        The fallback, if supplied, runs only after the primary's retry budget
        is exhausted, with the same retry configuration and its own circuit
        breaker key.

        Args:
            operation: Primary zero-argument coroutine function
            operation_name: Name used for the circuit breaker and events
            fallback_operation: Secondary coroutine function (optional)
            config: Retry configuration override
            cancel_event: Optional cancellation event

        Returns:
            The first successful OperationResult, or the last failing one.
            Upstream failures never raise.

        Raises:
            GenerationCancelledError: If ``cancel_event`` is set
        """
        correlation_id = self._id_factory()
        token = correlation_id_context.set(correlation_id)
        started = self._clock()
        try:
            safe_emit(
                self.event_sink,
                "operation:started",
                {"operation_name": operation_name, "correlation_id": correlation_id},
            )
            logger.info(f"Starting {operation_name}")

            result = await self.executor.execute_with_retry(
                operation,
                operation_name,
                config=config,
                correlation_id=correlation_id,
                cancel_event=cancel_event,
            )
            attempts = result.metadata.attempt_count

            if not result.success and fallback_operation is not None:
                fallback_name = fallback_operation_name(operation_name)
                logger.warning(
                    f"{operation_name} exhausted after {attempts} attempts "
                    f"({result.error.code if result.error else 'unknown'}), "
                    f"switching to fallback"
                )
                safe_emit(
                    self.event_sink,
                    "operation:fallback",
                    {
                        "operation_name": operation_name,
                        "correlation_id": correlation_id,
                        "primary_attempts": attempts,
                        "primary_error": (
                            result.error.code if result.error else None
                        ),
                    },
                )
                primary_records = result.attempts
                result = await self.executor.execute_with_retry(
                    fallback_operation,
                    fallback_name,
                    config=config,
                    correlation_id=correlation_id,
                    cancel_event=cancel_event,
                )
                attempts += result.metadata.attempt_count
                result = replace(
                    result,
                    attempts=primary_records + result.attempts,
                    metadata=replace(
                        result.metadata, attempt_count=attempts, fallback_used=True
                    ),
                )

            result = replace(
                result,
                metadata=replace(
                    result.metadata,
                    total_duration_ms=(self._clock() - started) * 1000,
                ),
            )
            self._report(operation_name, result)
            return result
        finally:
            correlation_id_context.reset(token)

    def _report(self, operation_name: str, result: OperationResult) -> None:
        payload = {"operation_name": operation_name, **result.metadata.to_dict()}
        if result.success:
            logger.info(
                f"{operation_name} succeeded "
                f"(attempts={result.metadata.attempt_count}, "
                f"fallback={result.metadata.fallback_used})"
            )
            safe_emit(self.event_sink, "operation:succeeded", payload)
        else:
            payload["error"] = result.error.to_dict() if result.error else None
            logger.error(
                f"{operation_name} failed "
                f"(attempts={result.metadata.attempt_count}): {result.error}"
            )
            safe_emit(self.event_sink, "operation:failed", payload)
