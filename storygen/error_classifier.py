"""Error classification for upstream generation failures.

This module maps raw exceptions raised by provider SDKs or generation
callables onto the closed ``EnhancedError`` taxonomy. Classification is a
best-effort heuristic over the lower-cased error message; a miss only changes
retry behavior, never the correctness of a returned result.
"""

import asyncio
import re
from typing import Optional

from .errors import (
    AuthenticationError,
    EnhancedError,
    ErrorSeverity,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    RequestValidationError,
    ServiceUnavailableError,
)

# Extracts the numeric part of "retry after 5", "retry-after: 2.5", "retry after 300ms"
RETRY_AFTER_PATTERN = re.compile(
    r"retry[\s_-]*after[\s:=]*(\d+(?:\.\d+)?)\s*(ms|milliseconds?|s|sec|seconds?)?"
)


class ErrorClassifier:
    """Classifies raw failures into EnhancedError instances."""

    # Patterns for authentication errors
    AUTH_PATTERNS = [
        r"unauthorized",
        r"invalid.*api.*key",
        r"authentication.*failed",
        r"api.*key.*expired",
        r"invalid.*credentials",
        r"forbidden",
        r"access.*denied",
        r"\b401\b",  # Unauthorized HTTP status
        r"\b403\b",  # Forbidden HTTP status
    ]

    # Patterns for rate limit errors
    RATE_LIMIT_PATTERNS = [
        r"rate.*limit",
        r"too.*many.*requests",
        r"throttl",
        r"quota.*exceeded",
        r"\b429\b",  # Too Many Requests HTTP status
    ]

    # Patterns for timeout errors
    TIMEOUT_PATTERNS = [
        r"timeout",
        r"timed.*out",
        r"etimedout",
    ]

    # Patterns for network errors
    NETWORK_PATTERNS = [
        r"network",
        r"connection",
        r"econnrefused",
        r"econnreset",
        r"enotfound",
        r"dns.*error",
        r"fetch.*failed",
    ]

    # Patterns for validation errors
    VALIDATION_PATTERNS = [
        r"validation",
        r"invalid.*input",
        r"bad.*request",
        r"\b400\b",  # Bad Request HTTP status
    ]

    # Patterns for server errors
    SERVICE_UNAVAILABLE_PATTERNS = [
        r"service.*unavailable",
        r"server.*error",
        r"upstream.*error",
        r"\b50[234]\b",  # Gateway/availability HTTP statuses
    ]

    @staticmethod
    def classify(error: BaseException, provider: Optional[str] = None) -> EnhancedError:
        """Classify a raw failure.

        Args:
            error: The exception that was raised
            provider: Provider name to attach as context (optional)

        Returns:
            EnhancedError subclass instance wrapping the original error
        """
        if isinstance(error, EnhancedError):
            return error

        message = str(error) or type(error).__name__
        error_str = message.lower()
        context = {"original_error_type": type(error).__name__}
        if provider:
            context["provider"] = provider

        if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
            return RequestTimeoutError(
                message if str(error) else "Upstream call timed out",
                original_error=error,
                context=context,
            )

        if ErrorClassifier._match_patterns(error_str, ErrorClassifier.AUTH_PATTERNS):
            return AuthenticationError(message, original_error=error, context=context)

        if ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.RATE_LIMIT_PATTERNS
        ):
            return RateLimitError(
                message,
                retry_after_ms=ErrorClassifier.extract_retry_after_ms(error_str),
                original_error=error,
                context=context,
            )

        if ErrorClassifier._match_patterns(error_str, ErrorClassifier.TIMEOUT_PATTERNS):
            return RequestTimeoutError(message, original_error=error, context=context)

        if isinstance(error, ConnectionError) or ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.NETWORK_PATTERNS
        ):
            return NetworkError(message, original_error=error, context=context)

        if ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.VALIDATION_PATTERNS
        ):
            return RequestValidationError(
                message, original_error=error, context=context
            )

        if ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.SERVICE_UNAVAILABLE_PATTERNS
        ):
            return ServiceUnavailableError(
                message, original_error=error, context=context
            )

        # Unknown errors land in the retryable service-unavailable bucket
        context["unclassified"] = True
        return ServiceUnavailableError(message, original_error=error, context=context)

    @staticmethod
    def extract_retry_after_ms(text: str) -> Optional[int]:
        """Extract a retry-after hint from an error message.

        Bare numbers are seconds; an explicit ``ms`` suffix is honored.

        Args:
            text: Error message (any case)

        Returns:
            Wait time in milliseconds, or None if no hint is present
        """
        match = RETRY_AFTER_PATTERN.search(text.lower())
        if match is None:
            return None
        value = float(match.group(1))
        unit = match.group(2) or "s"
        if unit.startswith("m"):
            return int(value)
        return int(value * 1000)

    @staticmethod
    def _match_patterns(text: str, patterns: list[str]) -> bool:
        """Check if text matches any of the given regex patterns.

        Args:
            text: Text to search
            patterns: List of regex patterns

        Returns:
            True if any pattern matches
        """
        for pattern in patterns:
            if re.search(pattern, text, re.IGNORECASE):
                return True
        return False

    @staticmethod
    def should_alert(classified_error: EnhancedError) -> bool:
        """Determine if an error should trigger an alert.

        Args:
            classified_error: The classified error

        Returns:
            True if alert should be sent
        """
        if classified_error.severity == ErrorSeverity.CRITICAL:
            return True

        if (
            classified_error.severity == ErrorSeverity.HIGH
            and not classified_error.retryable
        ):
            return True

        return False
