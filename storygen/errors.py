"""Error taxonomy for upstream generation failures.

Every failure that crosses the resilience layer is represented by an
``EnhancedError`` subclass. The classes form a closed set; each one carries a
stable ``code`` discriminant, a category, a severity and whether retrying can
help.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """Categories of upstream errors."""

    NETWORK = "network"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    VALIDATION = "validation"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    CRITICAL = "critical"  # Requires immediate attention (e.g., credentials)
    HIGH = "high"  # Important but not blocking (e.g., provider outage)
    MEDIUM = "medium"  # Should be addressed (e.g., rate limits)
    LOW = "low"  # Informational (e.g., rejected input)


class EnhancedError(Exception):
    """A classified upstream failure.

    Attributes:
        code: Stable machine-readable discriminant (e.g. ``"RATE_LIMIT_ERROR"``)
        category: Error category
        severity: Error severity
        retryable: Whether the failure is transient
        original_error: The exception this error was classified from, if any
        context: Free-form structured context for logging
    """

    code = "ENHANCED_ERROR"
    category = ErrorCategory.SERVICE_UNAVAILABLE
    severity = ErrorSeverity.MEDIUM
    retryable = True

    def __init__(
        self,
        message: str,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the error.

        Args:
            message: Human-readable error message
            original_error: The underlying exception (optional)
            context: Additional structured context (optional)
        """
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.context: Dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        """String representation of the error."""
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "code": self.code,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "message": self.message,
            "original_error": (
                type(self.original_error).__name__ if self.original_error else None
            ),
            "context": self.context,
        }


class NetworkError(EnhancedError):
    """Connection-level failure reaching the provider."""

    code = "NETWORK_ERROR"
    category = ErrorCategory.NETWORK
    severity = ErrorSeverity.MEDIUM
    retryable = True


class AuthenticationError(EnhancedError):
    """Credentials were rejected. Retrying cannot fix this."""

    code = "AUTHENTICATION_ERROR"
    category = ErrorCategory.AUTHENTICATION
    severity = ErrorSeverity.CRITICAL
    retryable = False


class RateLimitError(EnhancedError):
    """Provider throttled the request.

    Attributes:
        retry_after_ms: Server-supplied wait hint in milliseconds, if any
    """

    code = "RATE_LIMIT_ERROR"
    category = ErrorCategory.RATE_LIMIT
    severity = ErrorSeverity.MEDIUM
    retryable = True

    def __init__(
        self,
        message: str,
        retry_after_ms: Optional[int] = None,
        original_error: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, original_error=original_error, context=context)
        self.retry_after_ms = retry_after_ms

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after_ms"] = self.retry_after_ms
        return data


class RequestTimeoutError(EnhancedError):
    """The upstream call did not complete within its timeout."""

    code = "TIMEOUT_ERROR"
    category = ErrorCategory.TIMEOUT
    severity = ErrorSeverity.MEDIUM
    retryable = True


class ServiceUnavailableError(EnhancedError):
    """Provider is down, erroring, or the circuit is open."""

    code = "SERVICE_UNAVAILABLE"
    category = ErrorCategory.SERVICE_UNAVAILABLE
    severity = ErrorSeverity.HIGH
    retryable = True


class RequestValidationError(EnhancedError):
    """The request itself was rejected as invalid. Retrying cannot fix this."""

    code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW
    retryable = False


class GenerationCancelledError(Exception):
    """Raised when a caller-supplied cancellation event is set mid-request."""

    code = "GENERATION_CANCELLED"


class QualityValidationError(Exception):
    """Generated content stayed below the quality gate on every attempt.

    Attributes:
        validation_result: The last QualityValidationResult
        content: The last rejected raw content
        attempts: Number of generation attempts made
        improvement_recommendations: Recommendations accumulated across attempts
    """

    code = "QUALITY_BELOW_THRESHOLD"

    def __init__(
        self,
        message: str,
        validation_result: Any,
        content: str,
        attempts: int,
        improvement_recommendations: Optional[list[str]] = None,
    ):
        super().__init__(message)
        self.validation_result = validation_result
        self.content = content
        self.attempts = attempts
        self.improvement_recommendations = list(improvement_recommendations or [])

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "code": self.code,
            "message": str(self),
            "attempts": self.attempts,
            "overall_score": self.validation_result.quality_score.overall,
            "improvement_recommendations": self.improvement_recommendations,
        }
