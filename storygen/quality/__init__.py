"""Quality scoring and validation for generated stories."""

from .models import (
    QUALITY_DIMENSIONS,
    QUALITY_WEIGHTS,
    ContentRelevanceScore,
    EducationalValueScore,
    QualityScore,
    QualityThresholds,
    QualityValidationResult,
)
from .scorer import QualityScorer, ScoreBundle, check_thresholds
from .validator import QualityValidator

__all__ = [
    "QUALITY_DIMENSIONS",
    "QUALITY_WEIGHTS",
    "ContentRelevanceScore",
    "EducationalValueScore",
    "QualityScore",
    "QualityScorer",
    "QualityThresholds",
    "QualityValidationResult",
    "QualityValidator",
    "ScoreBundle",
    "check_thresholds",
]
