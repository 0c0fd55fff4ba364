"""Quality validation: scoring plus threshold gating."""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ..generation.content import GenerationMetadata, StoryVariant
from .models import QualityThresholds, QualityValidationResult
from .scorer import (
    QualityScorer,
    check_thresholds,
    generate_feedback,
    generate_recommendations,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QualityValidator:
    """Scores content and decides whether it passes the configured thresholds."""

    def __init__(
        self,
        thresholds: Optional[QualityThresholds] = None,
        scorer: Optional[QualityScorer] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the validator.

        Args:
            thresholds: Minimums content must meet (defaults if not provided)
            scorer: Rubric scorer (default instance if not provided)
            clock: Source of the ``validated_at`` timestamp
        """
        self.thresholds = thresholds or QualityThresholds()
        self.scorer = scorer or QualityScorer()
        self._clock = clock

    def validate(
        self,
        content_id: str,
        raw_text: str,
        content: StoryVariant,
        metadata: Optional[GenerationMetadata] = None,
        thresholds: Optional[QualityThresholds] = None,
    ) -> QualityValidationResult:
        """Validate one piece of content.

        Args:
            content_id: Identifier of the stored (or temporary) content
            raw_text: Raw model output
            content: Parsed content variant
            metadata: Declared generation intent (defaults if not provided)
            thresholds: Per-call override of the configured minimums

        Returns:
            A new QualityValidationResult
        """
        scores = self.scorer.score(raw_text, content, metadata or GenerationMetadata())
        passes = check_thresholds(
            scores.quality,
            scores.relevance,
            scores.educational,
            thresholds or self.thresholds,
        )

        result = QualityValidationResult(
            content_id=content_id,
            quality_score=scores.quality,
            relevance_score=scores.relevance,
            educational_score=scores.educational,
            feedback=generate_feedback(
                scores.quality, scores.relevance, scores.educational
            ),
            recommendations=generate_recommendations(
                scores.quality, scores.relevance, scores.educational
            ),
            passes_threshold=passes,
            validated_at=self._clock(),
        )

        logger.debug(
            f"Validated {content_id}: overall={scores.quality.overall} "
            f"passes_threshold={passes}"
        )
        return result
