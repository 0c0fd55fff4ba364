"""Resilience infrastructure for upstream generation calls."""

from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from .resilience import ResilientCallOrchestrator, fallback_operation_name
from .retry import (
    OperationMetadata,
    OperationResult,
    RetryAttemptRecord,
    RetryConfig,
    RetryExecutor,
    RetryMetrics,
    calculate_backoff_delay,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    "OperationMetadata",
    "OperationResult",
    "ResilientCallOrchestrator",
    "RetryAttemptRecord",
    "RetryConfig",
    "RetryExecutor",
    "RetryMetrics",
    "calculate_backoff_delay",
    "fallback_operation_name",
]
