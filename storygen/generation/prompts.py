"""Prompt templates for personalized story generation.

This module contains the system prompt shared by every request and the
builders for the three generation operations: outline, full story and
revision.
"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

AgeRange = Literal["toddler", "preschool", "early-elementary", "elementary"]
StoryLength = Literal["short", "medium", "long"]

SYSTEM_PROMPT = """You are an expert children's book author and educational content creator specializing in personalized, age-appropriate storytelling.
Your task is to write magical, engaging stories that make each child feel seen, celebrated and inspired.

CORE PRINCIPLES:
- The child is always the protagonist and hero of their story
- Stories promote confidence, kindness, curiosity and growth
- Language and concepts match the child's developmental stage
- Stories are culturally sensitive and celebrate diversity
- Learning opportunities and life lessons are woven in naturally

CONTENT SAFETY:
✗ No violence, scary situations or inappropriate themes
✗ No stereotypes or biased representations
✗ No negative traits for the main character
✓ Positive role models and healthy relationships
✓ Problems solved through creativity and kindness
✓ Uniqueness and differences are celebrated

STORY STRUCTURE:
- A clear beginning, middle and end
- An opening that introduces the child character
- A problem or adventure that showcases the child's strengths
- A resolution that reinforces the positive message
"""

AGE_GUIDELINES: Dict[str, Dict[str, str]] = {
    "toddler": {
        "age_range": "1-3 years",
        "vocabulary": "Very simple words (1-2 syllables), basic concepts",
        "sentence_length": "3-5 words per sentence",
        "concepts": "Colors, shapes, animals, family, basic emotions",
        "complexity": "Extremely simple cause-and-effect, repetitive patterns",
    },
    "preschool": {
        "age_range": "3-5 years",
        "vocabulary": "Simple words, some descriptive language",
        "sentence_length": "5-8 words per sentence",
        "concepts": "Friendship, sharing, basic problem-solving, emotions",
        "complexity": "Simple storylines, clear beginning-middle-end",
    },
    "early-elementary": {
        "age_range": "5-7 years",
        "vocabulary": "Expanding vocabulary, some complex words with context",
        "sentence_length": "8-12 words per sentence",
        "concepts": "School, community, more complex emotions, basic morals",
        "complexity": "Multi-step problems, character development",
    },
    "elementary": {
        "age_range": "7-12 years",
        "vocabulary": "Rich vocabulary, descriptive language, some advanced concepts",
        "sentence_length": "10-15 words per sentence",
        "concepts": "Complex relationships, abstract thinking, detailed problem-solving",
        "complexity": "Sophisticated plots, multiple characters, deeper themes",
    },
}

STORY_LENGTH_SPECS: Dict[str, str] = {
    "short": "8-12 pages, 300-500 words, simple 3-act structure",
    "medium": "16-20 pages, 600-1000 words, extended 3-act with character development",
    "long": "24-32 pages, 1000-1500 words, complex multi-act with subplots",
}


class ChildProfile(BaseModel):
    """The child the story is written for."""

    name: str = Field(..., min_length=1, max_length=50)
    age: Optional[int] = Field(default=None, ge=1, le=12)
    age_range: Optional[AgeRange] = None
    personality_traits: List[str] = Field(default_factory=list)
    hobbies: List[str] = Field(default_factory=list)
    interests: List[str] = Field(default_factory=list)

    def resolved_age_range(self) -> str:
        """Explicit age range, or one derived from ``age`` (preschool if unknown)."""
        if self.age_range:
            return self.age_range
        if self.age is None:
            return "preschool"
        if self.age <= 3:
            return "toddler"
        if self.age <= 5:
            return "preschool"
        if self.age <= 7:
            return "early-elementary"
        return "elementary"


class StoryConfiguration(BaseModel):
    """What kind of story to write."""

    theme: str = Field(..., min_length=1)
    story_arc: str = "adventure"
    story_length: StoryLength = "short"
    educational_focus: Optional[str] = None
    moral_lesson: Optional[str] = None


class StoryContext(BaseModel):
    """Everything the prompt builders personalize with."""

    child: ChildProfile
    story: StoryConfiguration
    custom_instructions: Optional[str] = None


def _join(items: List[str], empty: str = "none specified") -> str:
    return ", ".join(items) if items else empty


def _child_details(context: StoryContext) -> str:
    child = context.child
    age_range = child.resolved_age_range()
    guidelines = AGE_GUIDELINES[age_range]
    return f"""CHILD DETAILS:
- Name: {child.name}
- Age/Stage: {age_range} ({guidelines["age_range"]})
- Personality Traits: {_join(child.personality_traits)}
- Hobbies: {_join(child.hobbies)}
- Interests: {_join(child.interests)}"""


def build_outline_prompt(context: StoryContext) -> str:
    """Build the prompt for a story outline.

    The requested format matches what ``parse_outline`` reads back:
    ``Title:``, ``Summary:`` and ``Setting:`` lines plus ``-`` lists.

    Args:
        context: Child profile and story configuration

    Returns:
        Complete user prompt string for the LLM
    """
    story = context.story
    age_range = context.child.resolved_age_range()
    prompt = f"""Create a detailed story outline for a personalized children's book.

{_child_details(context)}

STORY CONFIGURATION:
- Theme: {story.theme}
- Story Arc: {story.story_arc}
- Length: {story.story_length} ({STORY_LENGTH_SPECS[story.story_length]})
- Educational Focus: {story.educational_focus or "general learning"}
- Moral Lesson: {story.moral_lesson or "kindness and curiosity"}

REQUIREMENTS:
- Use {age_range} appropriate language and concepts
- Meaningfully integrate every personality trait and hobby
- Follow the "{story.story_arc}" narrative structure
- Keep the "{story.theme}" theme present throughout

Respond in exactly this format:
Title: <story title>
Summary: <two or three sentences>
Setting: <where the story happens>
Characters:
- <character name and short description>
Chapters:
- <one line per chapter with its key event>
Themes:
- <theme>
Educational Goals:
- <goal>
"""
    if context.custom_instructions:
        prompt += f"\nADDITIONAL INSTRUCTIONS:\n{context.custom_instructions}\n"
    return prompt.strip()


def build_story_prompt(context: StoryContext, outline: Optional[str] = None) -> str:
    """Build the prompt for the full story text.

    Args:
        context: Child profile and story configuration
        outline: Previously generated outline to follow (optional)

    Returns:
        Complete user prompt string for the LLM
    """
    child = context.child
    story = context.story
    guidelines = AGE_GUIDELINES[child.resolved_age_range()]
    prompt = f"""Write a complete personalized children's story.

{_child_details(context)}

STORY OUTLINE:
{outline or f"Theme: {story.theme}. Arc: {story.story_arc}."}

WRITING GUIDELINES:
- Target length: {story.story_length} ({STORY_LENGTH_SPECS[story.story_length]})
- Vocabulary: {guidelines["vocabulary"]}
- Sentence length: {guidelines["sentence_length"]}
- Concepts: {guidelines["concepts"]}
- Complexity: {guidelines["complexity"]}
{f"- Teach about: {story.educational_focus}" if story.educational_focus else ""}
{f"- Reinforce the lesson: {story.moral_lesson}" if story.moral_lesson else ""}

PERSONALIZATION:
- Use {child.name}'s name often and naturally
- Show {child.name} being {_join(child.personality_traits, "themselves")}
- Make {child.name} the hero who solves problems and grows

FORMAT:
- Engaging narrative prose with natural dialogue
- Separate pages with a blank line
- End with a warm, happy conclusion
"""
    if context.custom_instructions:
        prompt += f"\nADDITIONAL INSTRUCTIONS:\n{context.custom_instructions}\n"
    return prompt.strip()


def build_revision_prompt(
    context: StoryContext,
    original_story: str,
    revision_instructions: str,
    improvement_areas: Optional[List[str]] = None,
) -> str:
    """Build the prompt for revising an existing story.

    Args:
        context: Child profile and story configuration
        original_story: Story text to revise
        revision_instructions: What the reviewer asked for
        improvement_areas: Specific areas to improve (optional)

    Returns:
        Complete user prompt string for the LLM
    """
    areas = "\n".join(f"- {area}" for area in improvement_areas or []) or (
        "- General readability and engagement"
    )
    prompt = f"""Revise and improve this children's story.

ORIGINAL STORY:
{original_story}

{_child_details(context)}

REVISION INSTRUCTIONS:
{revision_instructions}

SPECIFIC AREAS TO IMPROVE:
{areas}

REQUIREMENTS:
- Keep the core story structure and positive message
- Keep {context.child.name} as the central hero
- Keep every change age-appropriate
- Address every feedback point

Respond with the complete revised story only.
"""
    return prompt.strip()
