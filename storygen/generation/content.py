"""Typed content variants produced by the three generation operations.

Raw model output is parsed into exactly one of ``StoryOutline``,
``StoryContent`` or ``StoryRevision``. The variants share a narrow surface
used by the quality scorer: ``pages`` (ordered text units) and
``extract_full_text``.
"""

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, Field

ContentType = Literal["story_outline", "story_content", "story_revision"]

CONTENT_TYPES: tuple[str, ...] = get_args(ContentType)

DEFAULT_TITLE = "Untitled Story"

# "Chapter 2: The Lost Key", "Chapter Three - Home Again"
CHAPTER_PATTERN = re.compile(r"^\s*chapter\s+[\w-]+\s*[:.\-]\s*(.+)$", re.IGNORECASE)

# Blank-line separated paragraphs become pages
PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


class StoryPage(BaseModel):
    """One ordered unit of story text."""

    text: str


class StoryOutline(BaseModel):
    """Parsed story outline."""

    content_type: Literal["story_outline"] = "story_outline"
    title: str = DEFAULT_TITLE
    summary: str = ""
    characters: List[str] = Field(default_factory=list)
    setting: str = ""
    chapters: List[str] = Field(default_factory=list)
    themes: List[str] = Field(default_factory=list)
    educational_goals: List[str] = Field(default_factory=list)

    @property
    def pages(self) -> List[StoryPage]:
        """Chapters act as the outline's pages."""
        return [StoryPage(text=chapter) for chapter in self.chapters]


class StoryContent(BaseModel):
    """Full story text."""

    content_type: Literal["story_content"] = "story_content"
    text: str
    word_count: int = 0
    pages: List[StoryPage] = Field(default_factory=list)


class StoryRevision(BaseModel):
    """Revised story text with the areas the revision targeted."""

    content_type: Literal["story_revision"] = "story_revision"
    text: str
    word_count: int = 0
    pages: List[StoryPage] = Field(default_factory=list)
    improvement_areas: List[str] = Field(default_factory=list)


StoryVariant = Annotated[
    Union[StoryOutline, StoryContent, StoryRevision],
    Field(discriminator="content_type"),
]


class GenerationMetadata(BaseModel):
    """Declared intent the scorer measures generated content against.

    Attributes:
        target_age: Age of the reader in years
        theme: Story theme, matched word by word
        character_traits: Traits expected to appear in the text
        educational_goals: Goals expected to appear in the text
        learning_objectives: Objectives expected to appear in the text
        user_preferences: Free-form preference data
    """

    target_age: int = 5
    theme: str = ""
    character_traits: List[str] = Field(default_factory=list)
    educational_goals: List[str] = Field(default_factory=list)
    learning_objectives: List[str] = Field(default_factory=list)
    user_preferences: Dict[str, Any] = Field(default_factory=dict)


def count_words(text: str) -> int:
    return len(text.split())


def split_pages(text: str) -> List[StoryPage]:
    """Split story text into pages on blank lines."""
    return [
        StoryPage(text=paragraph.strip())
        for paragraph in PARAGRAPH_SPLIT.split(text)
        if paragraph.strip()
    ]


def _extract_section(lines: List[str], section_name: str) -> Optional[str]:
    pattern = re.compile(rf"^[#*\s]*{section_name}[*\s]*:\s*(.+)$", re.IGNORECASE)
    for line in lines:
        match = pattern.match(line)
        if match:
            return match.group(1).strip().strip("*").strip()
    return None


def _extract_list(lines: List[str], section_name: str) -> List[str]:
    """Collect ``-`` items following a header line that mentions the section."""
    items: List[str] = []
    in_section = False
    for line in lines:
        stripped = line.strip()
        if not in_section:
            if section_name in stripped.lower() and not stripped.startswith("-"):
                in_section = True
            continue
        if stripped.startswith(("-", "*")):
            items.append(stripped[1:].strip())
        elif not line.startswith(" "):
            break
    return items


def parse_outline(raw: str) -> StoryOutline:
    """Parse ``Title:`` / ``Summary:`` / ``Setting:`` sections and list sections.

    Args:
        raw: Outline text as returned by the model

    Returns:
        Parsed outline; missing sections are left empty
    """
    lines = [line for line in raw.splitlines() if line.strip()]

    chapters = [
        match.group(1).strip()
        for match in (CHAPTER_PATTERN.match(line) for line in lines)
        if match
    ]
    if not chapters:
        chapters = _extract_list(lines, "chapters")

    return StoryOutline(
        title=_extract_section(lines, "title") or DEFAULT_TITLE,
        summary=_extract_section(lines, "summary") or "",
        characters=_extract_list(lines, "characters"),
        setting=_extract_section(lines, "setting") or "",
        chapters=chapters,
        themes=_extract_list(lines, "themes"),
        educational_goals=_extract_list(lines, "educational"),
    )


def parse_content(
    raw: str,
    content_type: ContentType,
    improvement_areas: Optional[List[str]] = None,
) -> StoryVariant:
    """Build the content variant for a raw model response.

    Args:
        raw: Raw model output
        content_type: One of ``story_outline``, ``story_content``,
            ``story_revision``
        improvement_areas: Areas a revision was asked to address

    Returns:
        The parsed content variant

    Raises:
        ValueError: If the content type is unknown
    """
    if content_type == "story_outline":
        return parse_outline(raw)
    if content_type == "story_content":
        return StoryContent(
            text=raw, word_count=count_words(raw), pages=split_pages(raw)
        )
    if content_type == "story_revision":
        return StoryRevision(
            text=raw,
            word_count=count_words(raw),
            pages=split_pages(raw),
            improvement_areas=list(improvement_areas or []),
        )
    raise ValueError(
        f"Unknown content type '{content_type}', expected one of {CONTENT_TYPES}"
    )


def extract_full_text(
    content: Union[StoryOutline, StoryContent, StoryRevision, str],
) -> str:
    """Flatten a content variant into the text the scorer reads."""
    if isinstance(content, str):
        return content
    if isinstance(content, StoryOutline):
        parts = [content.title, content.summary, content.setting]
        parts.extend(content.characters)
        parts.extend(content.chapters)
        parts.extend(content.themes)
        parts.extend(content.educational_goals)
        return " ".join(part for part in parts if part)
    if isinstance(content, (StoryContent, StoryRevision)):
        if content.pages:
            return " ".join(page.text for page in content.pages)
        return content.text
    raise TypeError(f"Unsupported content type: {type(content).__name__}")
