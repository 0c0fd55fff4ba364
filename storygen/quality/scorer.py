"""Rule-based quality scoring for generated children's stories.

Every score here is a pure function of its inputs: keyword presence,
sentence-length statistics, vocabulary diversity and structure markers.
No clock, randomness or I/O is involved, so identical input always yields
identical scores.

Individual heuristics are clamped to [1, 10]. The overall score is the
weighted sum from ``QUALITY_WEIGHTS`` rounded half-up to one decimal.
"""

import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence

from ..generation.content import (
    GenerationMetadata,
    StoryPage,
    StoryVariant,
    extract_full_text,
)
from .models import (
    QUALITY_WEIGHTS,
    ContentRelevanceScore,
    EducationalValueScore,
    QualityScore,
    QualityThresholds,
)

MIN_SCORE = 1.0
MAX_SCORE = 10.0

SENTENCE_SPLIT = re.compile(r"[.!?]+")
COMPLEX_WORD = re.compile(r"\b\w{8,}\b")
DIALOGUE = re.compile(r"[\"'].*?[\"']")
DESCRIPTIVE_ADJECTIVE = re.compile(
    r"\b(beautiful|colorful|bright|dark|loud|quiet|big|small|happy|sad)\b",
    re.IGNORECASE,
)
CAPITALIZED_WORD = re.compile(r"\b[A-Z][a-z]+\b")

TRANSITION_WORDS = (
    "then", "next", "after", "because", "so", "but", "however", "meanwhile",
)
CREATIVE_WORDS = (
    "magical", "wonderful", "amazing", "incredible", "fantastic", "mysterious",
    "adventure",
)
ENGAGING_WORDS = ("exciting", "fun", "surprise", "discover", "explore", "play", "laugh")
ACTION_WORDS = ("run", "jump", "dance", "sing", "play", "explore", "discover")
EDUCATIONAL_WORDS = (
    "learn", "teach", "understand", "remember", "practice", "try", "think",
)
PROBLEM_WORDS = ("problem", "solve", "figure out", "find a way", "help")
SOCIAL_WORDS = ("kind", "share", "help", "friend", "care", "respect", "honest")
EMOTION_WORDS = ("happy", "sad", "excited", "worried", "proud", "scared", "surprised")
SENSITIVE_WORDS = ("weird", "strange", "ugly", "stupid", "dumb")
INCLUSIVE_WORDS = ("different", "unique", "special", "diverse", "everyone")
SKILL_WORDS = ("practice", "learn", "try", "improve", "develop", "grow")
CONCEPT_WORDS = ("number", "color", "shape", "letter", "sound", "animal", "plant")
MORAL_WORDS = ("kind", "share", "help", "honest", "brave", "patient", "respectful")
COGNITIVE_WORDS = ("think", "remember", "understand", "solve", "figure out", "wonder")

# Capitalized words that start sentences rather than name characters
NON_NAME_WORDS = frozenset(
    {"The", "And", "But", "So", "Then", "When", "Where", "What", "Who", "How"}
)


@dataclass(frozen=True)
class ScoreBundle:
    """The three score groups computed for one piece of content."""

    quality: QualityScore
    relevance: ContentRelevanceScore
    educational: EducationalValueScore


def clamp(score: float, low: float = MIN_SCORE, high: float = MAX_SCORE) -> float:
    return max(low, min(high, score))


def round_half_up(value: float, digits: int = 1) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def split_sentences(text: str) -> List[str]:
    return [s for s in SENTENCE_SPLIT.split(text) if s.strip()]


def count_present(text_lower: str, words: Iterable[str]) -> int:
    """Count how many of ``words`` occur in the text (substring match)."""
    return sum(1 for word in words if word in text_lower)


def _match_ratio(text_lower: str, items: Sequence[str]) -> float:
    matches = sum(1 for item in items if item.lower() in text_lower)
    return matches / len(items)


class QualityScorer:
    """Computes rubric, relevance and educational scores for story content."""

    def score(
        self,
        raw_text: str,
        content: StoryVariant,
        metadata: GenerationMetadata,
    ) -> ScoreBundle:
        """Score one piece of content.

        Args:
            raw_text: Raw model output
            content: Parsed content variant
            metadata: Declared generation intent

        Returns:
            ScoreBundle with quality, relevance and educational scores
        """
        full_text = extract_full_text(content)
        return ScoreBundle(
            quality=self.assess_quality(raw_text, content, metadata),
            relevance=self.assess_relevance(full_text, metadata),
            educational=self.assess_educational_value(full_text, metadata),
        )

    def assess_quality(
        self, raw_text: str, content: StoryVariant, metadata: GenerationMetadata
    ) -> QualityScore:
        dimensions = {
            "coherence": self.score_coherence(raw_text),
            "creativity": self.score_creativity(raw_text),
            "engagement": self.score_engagement(raw_text),
            "educational_value": self.score_educational_value(raw_text),
            "age_appropriateness": self.score_age_appropriateness(
                raw_text, metadata.target_age
            ),
            "language_quality": self.score_language_quality(raw_text),
            "story_structure": self.score_story_structure(content.pages),
            "character_development": self.score_character_development(
                extract_full_text(content)
            ),
        }
        return QualityScore(overall=calculate_overall_score(dimensions), **dimensions)

    def assess_relevance(
        self, full_text: str, metadata: GenerationMetadata
    ) -> ContentRelevanceScore:
        text_lower = full_text.lower()
        return ContentRelevanceScore(
            theme_adherence=self.score_theme_adherence(text_lower, metadata.theme),
            character_consistency=self.score_character_consistency(
                text_lower, metadata.character_traits
            ),
            # Preference data is not modelled yet; neutral-good default
            user_preference_alignment=6.0,
            educational_goal_achievement=self.score_educational_goal_achievement(
                text_lower, metadata.educational_goals
            ),
            cultural_sensitivity=self.score_cultural_sensitivity(text_lower),
        )

    def assess_educational_value(
        self, full_text: str, metadata: GenerationMetadata
    ) -> EducationalValueScore:
        text_lower = full_text.lower()
        return EducationalValueScore(
            learning_objectives=self.score_learning_objectives(
                text_lower, metadata.learning_objectives
            ),
            skill_development=clamp(
                5 + min(3, count_present(text_lower, SKILL_WORDS) * 0.5)
            ),
            concept_introduction=clamp(
                5 + min(3, count_present(text_lower, CONCEPT_WORDS) * 0.4)
            ),
            moral_lessons=clamp(
                4 + min(4, count_present(text_lower, MORAL_WORDS) * 0.6)
            ),
            cognitive_development=clamp(
                5 + min(3, count_present(text_lower, COGNITIVE_WORDS) * 0.5)
            ),
        )

    # Quality dimensions

    def score_coherence(self, text: str) -> float:
        """Score narrative flow from transitions and vocabulary variety."""
        sentences = split_sentences(text)
        if len(sentences) < 3:
            return 3.0  # Too short to judge flow

        score = 5.0
        transitions = sum(
            1
            for sentence in sentences
            if any(word in sentence.lower() for word in TRANSITION_WORDS)
        )
        score += min(2, transitions * 0.5)

        words = text.split()
        unique_ratio = len(set(text.lower().split())) / len(words)
        if unique_ratio < 0.3:
            score -= 2  # Repetitive
        if unique_ratio > 0.7:
            score += 1

        return clamp(score)

    def score_creativity(self, text: str) -> float:
        text_lower = text.lower()
        score = 5.0
        score += min(2, count_present(text_lower, CREATIVE_WORDS) * 0.3)
        if DIALOGUE.search(text):
            score += 1
        score += min(1.5, len(DESCRIPTIVE_ADJECTIVE.findall(text)) * 0.1)
        return clamp(score)

    def score_engagement(self, text: str) -> float:
        text_lower = text.lower()
        score = 5.0
        score += min(2, count_present(text_lower, ENGAGING_WORDS) * 0.4)
        score += min(1, text.count("?") * 0.3)
        score += min(1.5, count_present(text_lower, ACTION_WORDS) * 0.2)
        return clamp(score)

    def score_educational_value(self, text: str) -> float:
        text_lower = text.lower()
        score = 5.0
        score += min(2, count_present(text_lower, EDUCATIONAL_WORDS) * 0.3)
        score += min(1.5, count_present(text_lower, PROBLEM_WORDS) * 0.4)
        score += min(1.5, count_present(text_lower, SOCIAL_WORDS) * 0.3)
        return clamp(score)

    def score_age_appropriateness(self, text: str, target_age: int) -> float:
        """Start high and deduct for vocabulary and sentence complexity.

        Args:
            text: Raw story text
            target_age: Reader age in years

        Returns:
            Score in [1, 10]
        """
        score = 8.0
        words = text.split()
        if words:
            complex_ratio = len(COMPLEX_WORD.findall(text)) / len(words)
            if target_age < 6 and complex_ratio > 0.1:
                score -= 2
            if target_age < 8 and complex_ratio > 0.15:
                score -= 1

        sentences = split_sentences(text)
        if sentences:
            avg_length = sum(len(s.split()) for s in sentences) / len(sentences)
            if target_age < 6 and avg_length > 10:
                score -= 1
            if target_age < 8 and avg_length > 15:
                score -= 1

        return clamp(score)

    def score_language_quality(self, text: str) -> float:
        score = 7.0
        sentences = [s.strip() for s in split_sentences(text)]

        if sentences:
            capitalized = sum(1 for s in sentences if s[0] == s[0].upper())
            if capitalized / len(sentences) < 0.8:
                score -= 1

        if not any(mark in text for mark in ".!?"):
            score -= 2

        if sentences:
            lengths = [len(s.split()) for s in sentences]
            medium = sum(1 for n in lengths if 5 <= n <= 12)
            if medium / len(sentences) > 0.6:
                score += 1  # Varied, readable sentences

        return clamp(score)

    def score_story_structure(self, pages: Sequence[StoryPage]) -> float:
        """Score beginning/middle/end structure from the page sequence."""
        score = 5.0
        if not pages:
            return score

        if len(pages) >= 3:
            score += 2
        if len(pages) >= 5:
            score += 1

        first_page = pages[0].text.lower()
        last_page = pages[-1].text.lower()
        if "once" in first_page or "there was" in first_page:
            score += 1
        if "end" in last_page or "happy" in last_page:
            score += 1

        return clamp(score)

    def score_character_development(self, full_text: str) -> float:
        score = 5.0
        names = {
            name
            for name in CAPITALIZED_WORD.findall(full_text)
            if name not in NON_NAME_WORDS
        }
        if len(names) >= 1:
            score += 1
        if len(names) >= 2:
            score += 1
        score += min(2, count_present(full_text.lower(), EMOTION_WORDS) * 0.3)
        return clamp(score)

    # Relevance

    def score_theme_adherence(self, text_lower: str, theme: str) -> float:
        if not theme:
            return 5.0
        theme_words = theme.lower().split()
        matches = sum(1 for word in theme_words if word in text_lower)
        return clamp(5 + min(3, matches * 1.5))

    def score_character_consistency(
        self, text_lower: str, traits: Sequence[str]
    ) -> float:
        if not traits:
            return 7.0
        return clamp(5 + min(4, _match_ratio(text_lower, traits) * 4))

    def score_educational_goal_achievement(
        self, text_lower: str, goals: Sequence[str]
    ) -> float:
        if not goals:
            return 6.0
        return clamp(4 + min(5, _match_ratio(text_lower, goals) * 5))

    def score_cultural_sensitivity(self, text_lower: str) -> float:
        score = 8.0
        score -= count_present(text_lower, SENSITIVE_WORDS) * 1.5
        score += min(2, count_present(text_lower, INCLUSIVE_WORDS) * 0.5)
        return clamp(score)

    # Educational value

    def score_learning_objectives(
        self, text_lower: str, objectives: Sequence[str]
    ) -> float:
        if not objectives:
            return 5.0
        return clamp(3 + min(6, _match_ratio(text_lower, objectives) * 6))


def calculate_overall_score(dimensions: Dict[str, float]) -> float:
    """Weighted sum of the eight dimensions, rounded half-up to one decimal."""
    weighted = sum(
        dimensions[name] * weight for name, weight in QUALITY_WEIGHTS.items()
    )
    return round_half_up(weighted, 1)


def generate_feedback(
    quality: QualityScore,
    relevance: ContentRelevanceScore,
    educational: EducationalValueScore,
) -> List[str]:
    """Build ordered feedback from fixed below-threshold rules."""
    rules = [
        (
            quality.coherence < 6,
            "Story flow could be improved with better transitions between ideas",
        ),
        (
            quality.creativity < 6,
            "Consider adding more imaginative elements and creative descriptions",
        ),
        (
            quality.engagement < 6,
            "Story could be more engaging with interactive elements or questions",
        ),
        (
            quality.educational_value < 6,
            "Educational content could be enhanced with learning opportunities",
        ),
        (
            relevance.theme_adherence < 6,
            "Story should better align with the specified theme",
        ),
        (
            relevance.character_consistency < 6,
            "Character traits should be more consistently represented",
        ),
        (
            educational.learning_objectives < 6,
            "Learning objectives could be more clearly integrated",
        ),
        (
            educational.moral_lessons < 6,
            "Consider adding positive moral or social lessons",
        ),
    ]
    return [message for triggered, message in rules if triggered]


def generate_recommendations(
    quality: QualityScore,
    relevance: ContentRelevanceScore,
    educational: EducationalValueScore,
) -> List[str]:
    """Build ordered high-impact recommendations."""
    recommendations: List[str] = []
    if quality.overall < 7:
        recommendations.append(
            "Consider regenerating with improved prompts focusing on story quality"
        )
    if educational.learning_objectives < 6:
        recommendations.append(
            "Enhance educational content with specific learning goals"
        )
    if quality.age_appropriateness < 7:
        recommendations.append(
            "Adjust vocabulary and complexity for target age group"
        )
    return recommendations


def check_thresholds(
    quality: QualityScore,
    relevance: ContentRelevanceScore,
    educational: EducationalValueScore,
    thresholds: QualityThresholds,
) -> bool:
    """Check every configured minimum; all must hold.

    Args:
        quality: Rubric scores
        relevance: Relevance scores (not gated today)
        educational: Educational sub-scores
        thresholds: Configured minimums

    Returns:
        True only if every minimum and every required category is met
    """
    if quality.overall < thresholds.minimum_overall:
        return False
    if educational.learning_objectives < thresholds.minimum_educational:
        return False
    if quality.age_appropriateness < thresholds.minimum_age_appropriate:
        return False
    if quality.coherence < thresholds.minimum_coherence:
        return False
    return all(
        getattr(quality, category) >= thresholds.minimum_category_score
        for category in thresholds.required_categories
    )
