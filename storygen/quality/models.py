"""Rubric models for generated-content quality validation."""

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

QUALITY_DIMENSIONS = (
    "coherence",
    "creativity",
    "engagement",
    "educational_value",
    "age_appropriateness",
    "language_quality",
    "story_structure",
    "character_development",
)

# Weights of each dimension in the overall score; they sum to 1.0
QUALITY_WEIGHTS = {
    "coherence": 0.15,
    "creativity": 0.12,
    "engagement": 0.15,
    "educational_value": 0.18,
    "age_appropriateness": 0.15,
    "language_quality": 0.10,
    "story_structure": 0.08,
    "character_development": 0.07,
}


class QualityScore(BaseModel):
    """Eight rubric dimensions plus the weighted overall score."""

    model_config = ConfigDict(frozen=True)

    overall: float = Field(..., ge=0.0, le=10.0)
    coherence: float = Field(..., ge=0.0, le=10.0)
    creativity: float = Field(..., ge=0.0, le=10.0)
    engagement: float = Field(..., ge=0.0, le=10.0)
    educational_value: float = Field(..., ge=0.0, le=10.0)
    age_appropriateness: float = Field(..., ge=0.0, le=10.0)
    language_quality: float = Field(..., ge=0.0, le=10.0)
    story_structure: float = Field(..., ge=0.0, le=10.0)
    character_development: float = Field(..., ge=0.0, le=10.0)


class ContentRelevanceScore(BaseModel):
    """How well content matches its declared theme, traits and goals."""

    model_config = ConfigDict(frozen=True)

    theme_adherence: float = Field(..., ge=0.0, le=10.0)
    character_consistency: float = Field(..., ge=0.0, le=10.0)
    user_preference_alignment: float = Field(..., ge=0.0, le=10.0)
    educational_goal_achievement: float = Field(..., ge=0.0, le=10.0)
    cultural_sensitivity: float = Field(..., ge=0.0, le=10.0)


class EducationalValueScore(BaseModel):
    """Educational sub-scores."""

    model_config = ConfigDict(frozen=True)

    learning_objectives: float = Field(..., ge=0.0, le=10.0)
    skill_development: float = Field(..., ge=0.0, le=10.0)
    concept_introduction: float = Field(..., ge=0.0, le=10.0)
    moral_lessons: float = Field(..., ge=0.0, le=10.0)
    cognitive_development: float = Field(..., ge=0.0, le=10.0)


class QualityThresholds(BaseModel):
    """Minimums a piece of content must meet to pass validation.

    Attributes:
        minimum_overall: Minimum weighted overall score
        minimum_educational: Minimum learning-objectives score
        minimum_age_appropriate: Minimum age-appropriateness score
        minimum_coherence: Minimum coherence score
        required_categories: Quality dimensions that must each reach
            ``minimum_category_score``
        minimum_category_score: Floor applied to every required category
    """

    minimum_overall: float = Field(default=6.0, ge=0.0, le=10.0)
    minimum_educational: float = Field(default=5.0, ge=0.0, le=10.0)
    minimum_age_appropriate: float = Field(default=7.0, ge=0.0, le=10.0)
    minimum_coherence: float = Field(default=6.0, ge=0.0, le=10.0)
    required_categories: List[str] = Field(
        default_factory=lambda: ["educational_value", "age_appropriateness"]
    )
    minimum_category_score: float = Field(default=5.0, ge=0.0, le=10.0)

    @field_validator("required_categories")
    @classmethod
    def validate_categories(cls, v: List[str]) -> List[str]:
        """Validate that every required category is a quality dimension."""
        unknown = [name for name in v if name not in QUALITY_DIMENSIONS]
        if unknown:
            raise ValueError(
                f"Unknown quality categories {unknown}, "
                f"expected names from {list(QUALITY_DIMENSIONS)}"
            )
        return v


class QualityValidationResult(BaseModel):
    """Outcome of validating one piece of content."""

    model_config = ConfigDict(frozen=True)

    content_id: str
    quality_score: QualityScore
    relevance_score: ContentRelevanceScore
    educational_score: EducationalValueScore
    feedback: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    passes_threshold: bool
    validated_at: datetime
