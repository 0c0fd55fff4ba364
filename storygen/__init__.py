"""Resilient AI story generation with quality-gated regeneration."""

__version__ = "0.1.0"

from .errors import (
    AuthenticationError,
    EnhancedError,
    GenerationCancelledError,
    NetworkError,
    QualityValidationError,
    RateLimitError,
    RequestTimeoutError,
    RequestValidationError,
    ServiceUnavailableError,
)
from .service import StoryGenerationService, build_story_service

__all__ = [
    "AuthenticationError",
    "EnhancedError",
    "GenerationCancelledError",
    "NetworkError",
    "QualityValidationError",
    "RateLimitError",
    "RequestTimeoutError",
    "RequestValidationError",
    "ServiceUnavailableError",
    "StoryGenerationService",
    "build_story_service",
]
