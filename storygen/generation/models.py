"""Result types for story generation."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..infrastructure.retry import OperationMetadata
from ..quality.models import QualityValidationResult
from .content import StoryVariant


@dataclass(frozen=True)
class TokenUsage:
    """Token usage for a single API call.

    Attributes:
        prompt_tokens: Number of tokens in the prompt/input
        completion_tokens: Number of tokens in the completion/output
    """

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Get total tokens used."""
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class RawGenerationResult:
    """What one upstream generation call returns.

    Attributes:
        content: Raw generated text
        provider: Provider name (e.g., "openai", "anthropic")
        model: Model identifier that produced the text
        usage: Token usage, when the provider reports it
    """

    content: str
    provider: str
    model: str
    usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class EnhancedGenerationResult:
    """Accepted generation plus its quality validation.

    Attributes:
        content: Raw generated text
        parsed_content: Typed content variant built from ``content``
        provider: Provider that produced the accepted text
        model: Model that produced the accepted text
        usage: Token usage of the accepted call
        content_id: Stored content id, or a ``temp_`` id when not stored
        regeneration_attempts: Generation attempts made, including the accepted one
        quality_score: Overall score of the accepted content, if validated
        quality_validation: Full validation result, if validated
        improvement_recommendations: Recommendations from the accepted validation
        metadata: Resilience metadata of the accepted upstream call
    """

    content: str
    parsed_content: StoryVariant
    provider: str
    model: str
    content_id: str
    regeneration_attempts: int
    usage: Optional[TokenUsage] = None
    quality_score: Optional[float] = None
    quality_validation: Optional[QualityValidationResult] = None
    improvement_recommendations: List[str] = field(default_factory=list)
    metadata: Optional[OperationMetadata] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "content_id": self.content_id,
            "content_type": self.parsed_content.content_type,
            "provider": self.provider,
            "model": self.model,
            "regeneration_attempts": self.regeneration_attempts,
            "quality_score": self.quality_score,
            "passes_threshold": (
                self.quality_validation.passes_threshold
                if self.quality_validation
                else None
            ),
            "improvement_recommendations": self.improvement_recommendations,
            "usage": (
                {
                    "prompt_tokens": self.usage.prompt_tokens,
                    "completion_tokens": self.usage.completion_tokens,
                    "total_tokens": self.usage.total_tokens,
                }
                if self.usage
                else None
            ),
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }
