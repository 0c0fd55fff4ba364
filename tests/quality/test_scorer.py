"""Tests for the rule-based quality scorer."""

import pytest

from storygen.generation.content import (
    GenerationMetadata,
    StoryPage,
    parse_content,
)
from storygen.quality.models import (
    QUALITY_DIMENSIONS,
    ContentRelevanceScore,
    EducationalValueScore,
    QualityScore,
    QualityThresholds,
)
from storygen.quality.scorer import (
    QualityScorer,
    calculate_overall_score,
    check_thresholds,
    generate_feedback,
    generate_recommendations,
    round_half_up,
)


def make_quality(value: float = 7.0, **overrides) -> QualityScore:
    scores = {name: value for name in QUALITY_DIMENSIONS}
    scores.update(overrides)
    overall = scores.pop("overall", value)
    return QualityScore(overall=overall, **scores)


def make_relevance(value: float = 7.0) -> ContentRelevanceScore:
    return ContentRelevanceScore(
        theme_adherence=value,
        character_consistency=value,
        user_preference_alignment=value,
        educational_goal_achievement=value,
        cultural_sensitivity=value,
    )


def make_educational(value: float = 7.0, **overrides) -> EducationalValueScore:
    scores = {
        "learning_objectives": value,
        "skill_development": value,
        "concept_introduction": value,
        "moral_lessons": value,
        "cognitive_development": value,
    }
    scores.update(overrides)
    return EducationalValueScore(**scores)


@pytest.fixture
def scorer():
    """Fixture providing a scorer."""
    return QualityScorer()


class TestRounding:
    """Tests for overall score arithmetic."""

    def test_round_half_up(self):
        """Test that halves round away from zero."""
        assert round_half_up(7.25) == pytest.approx(7.3)
        assert round_half_up(7.24) == pytest.approx(7.2)

    def test_uniform_dimensions_give_same_overall(self):
        """Test that the weights sum to one."""
        dimensions = {name: 7.0 for name in QUALITY_DIMENSIONS}
        assert calculate_overall_score(dimensions) == pytest.approx(7.0)

    def test_weighted_overall(self):
        """Test that dimensions contribute by their weights."""
        dimensions = {name: 5.0 for name in QUALITY_DIMENSIONS}
        dimensions["educational_value"] = 10.0
        # 5.0 + 0.18 * 5.0
        assert calculate_overall_score(dimensions) == pytest.approx(5.9)


class TestQualityDimensions:
    """Tests for individual rubric heuristics."""

    def test_short_text_has_low_coherence(self, scorer):
        """Test that fewer than three sentences cannot show flow."""
        assert scorer.score_coherence("Hi. Bye.") == 3.0

    def test_transitions_improve_coherence(self, scorer):
        """Test that transition words raise coherence."""
        plain = "Mia sat down. Leo came over. They looked up."
        linked = "Mia sat down. Then Leo came over. So they looked up."
        assert scorer.score_coherence(linked) > scorer.score_coherence(plain)

    def test_simple_text_is_age_appropriate(self, scorer):
        """Test that short sentences with simple words keep the top score."""
        text = "The cat sat. The dog ran."
        assert scorer.score_age_appropriateness(text, 4) == 8.0

    def test_complex_text_penalized_for_young_readers(self, scorer):
        """Test that long words and sentences lower the score for age 4."""
        text = (
            "Extraordinary circumstances necessitated comprehensive deliberation "
            "regarding unprecedented interplanetary expeditions throughout "
            "civilization."
        )
        assert scorer.score_age_appropriateness(text, 4) == 4.0
        assert scorer.score_age_appropriateness(text, 10) == 8.0

    def test_story_structure_without_pages(self, scorer):
        """Test the neutral structure score for empty content."""
        assert scorer.score_story_structure([]) == 5.0

    def test_story_structure_full_marks(self, scorer):
        """Test five pages with an opening and an ending."""
        pages = [
            StoryPage(text="Once upon a time"),
            StoryPage(text="middle"),
            StoryPage(text="middle"),
            StoryPage(text="middle"),
            StoryPage(text="The end"),
        ]
        assert scorer.score_story_structure(pages) == 10.0

    def test_scores_are_clamped(self, scorer):
        """Test that deductions never go below 1."""
        text = "weird strange ugly stupid dumb"
        assert scorer.score_cultural_sensitivity(text) == 1.0


class TestRelevanceAndEducation:
    """Tests for relevance and educational sub-scores."""

    def test_theme_adherence(self, scorer):
        """Test theme word matching."""
        assert scorer.score_theme_adherence("any text", "") == 5.0
        text = "a space adventure"
        assert scorer.score_theme_adherence(text, "space adventure") == 8.0

    def test_character_consistency(self, scorer):
        """Test trait matching."""
        assert scorer.score_character_consistency("text", []) == 7.0
        traits = ["brave", "kind"]
        assert scorer.score_character_consistency("brave and kind", traits) == 9.0

    def test_educational_goal_achievement(self, scorer):
        """Test goal matching."""
        assert scorer.score_educational_goal_achievement("text", []) == 6.0
        score = scorer.score_educational_goal_achievement(
            "we learn counting", ["counting"]
        )
        assert score == 9.0

    def test_learning_objectives(self, scorer):
        """Test objective matching."""
        assert scorer.score_learning_objectives("text", []) == 5.0
        assert scorer.score_learning_objectives("colors", ["colors", "shapes"]) == 6.0

    def test_user_preference_alignment_is_neutral(self, scorer):
        """Test the fixed preference score."""
        relevance = scorer.assess_relevance("anything", GenerationMetadata())
        assert relevance.user_preference_alignment == 6.0


class TestScore:
    """Tests for QualityScorer.score."""

    def test_deterministic(self, scorer, high_quality_story):
        """Test that identical input yields identical scores."""
        content = parse_content(high_quality_story, "story_content")
        metadata = GenerationMetadata(theme="garden", character_traits=["brave"])

        first = scorer.score(high_quality_story, content, metadata)
        second = scorer.score(high_quality_story, content, metadata)

        assert first.quality.model_dump() == second.quality.model_dump()
        assert first.relevance.model_dump() == second.relevance.model_dump()
        assert first.educational.model_dump() == second.educational.model_dump()

    def test_high_quality_story(self, scorer, high_quality_story):
        """Test that a well-formed story scores well on every gated dimension."""
        content = parse_content(high_quality_story, "story_content")
        bundle = scorer.score(high_quality_story, content, GenerationMetadata())

        assert bundle.quality.overall >= 7.0
        assert bundle.quality.coherence >= 6.0
        assert bundle.quality.age_appropriateness == 8.0
        assert bundle.quality.story_structure == 10.0

    def test_low_quality_story(self, scorer, low_quality_story):
        """Test that a fragment scores poorly."""
        content = parse_content(low_quality_story, "story_content")
        bundle = scorer.score(low_quality_story, content, GenerationMetadata())

        assert bundle.quality.coherence == 3.0
        assert bundle.quality.overall < 6.0

    def test_outline_scored_from_chapters(self, scorer):
        """Test that outlines use chapters as their pages."""
        raw = (
            "Title: Garden Day\n"
            "Chapters:\n- Once there was a seed\n- It grew\n- The end"
        )
        content = parse_content(raw, "story_outline")
        bundle = scorer.score(raw, content, GenerationMetadata())
        assert bundle.quality.story_structure == 9.0


class TestCheckThresholds:
    """Tests for check_thresholds function."""

    def test_all_minimums_met(self):
        """Test that content meeting every minimum passes."""
        assert check_thresholds(
            make_quality(), make_relevance(), make_educational(), QualityThresholds()
        )

    @pytest.mark.parametrize(
        "quality_overrides",
        [
            {"overall": 5.9},
            {"age_appropriateness": 6.9},
            {"coherence": 5.9},
            {"educational_value": 4.9},
        ],
    )
    def test_any_minimum_missed_fails(self, quality_overrides):
        """Test that lowering one gated score below its minimum flips the result."""
        quality = make_quality(**quality_overrides)
        assert not check_thresholds(
            quality, make_relevance(), make_educational(), QualityThresholds()
        )

    def test_learning_objectives_minimum(self):
        """Test the educational minimum."""
        educational = make_educational(learning_objectives=4.9)
        assert not check_thresholds(
            make_quality(), make_relevance(), educational, QualityThresholds()
        )

    def test_required_categories(self):
        """Test that every required category must reach the category floor."""
        thresholds = QualityThresholds(
            required_categories=["creativity"], minimum_category_score=6.5
        )
        assert check_thresholds(
            make_quality(), make_relevance(), make_educational(), thresholds
        )
        assert not check_thresholds(
            make_quality(creativity=6.0),
            make_relevance(),
            make_educational(),
            thresholds,
        )

    def test_raising_scores_keeps_passing(self):
        """Test that improving any score never flips a pass to a fail."""
        thresholds = QualityThresholds()
        base = make_quality()
        for name in QUALITY_DIMENSIONS:
            improved = make_quality(**{name: 9.5})
            assert check_thresholds(
                base, make_relevance(), make_educational(), thresholds
            )
            assert check_thresholds(
                improved, make_relevance(), make_educational(), thresholds
            )


class TestFeedback:
    """Tests for feedback and recommendation generation."""

    def test_no_feedback_for_strong_content(self):
        """Test that strong scores produce no feedback or recommendations."""
        scores = (make_quality(), make_relevance(), make_educational())
        assert generate_feedback(*scores) == []
        assert generate_recommendations(*scores) == []

    def test_feedback_order(self):
        """Test that feedback follows the fixed rule order."""
        feedback = generate_feedback(
            make_quality(coherence=4.0, engagement=4.0),
            make_relevance(),
            make_educational(moral_lessons=3.0),
        )
        assert feedback == [
            "Story flow could be improved with better transitions between ideas",
            "Story could be more engaging with interactive elements or questions",
            "Consider adding positive moral or social lessons",
        ]

    def test_recommendations(self):
        """Test the high-impact recommendations."""
        recommendations = generate_recommendations(
            make_quality(value=6.0),
            make_relevance(),
            make_educational(learning_objectives=5.0),
        )
        assert recommendations == [
            "Consider regenerating with improved prompts focusing on story quality",
            "Enhance educational content with specific learning goals",
            "Adjust vocabulary and complexity for target age group",
        ]
