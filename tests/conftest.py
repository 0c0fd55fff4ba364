"""Pytest configuration and shared fixtures for storygen tests."""

from typing import Any, Dict, List, Tuple, Union
from unittest.mock import AsyncMock

import pytest

from storygen.generation.models import RawGenerationResult
from storygen.generation.prompts import (
    ChildProfile,
    StoryConfiguration,
    StoryContext,
)
from storygen.providers.base import BaseLLMProvider

HIGH_QUALITY_STORY = (
    "Once upon a time there was a happy girl named Mia. "
    "She liked to explore the big garden with her friend Leo.\n"
    "\n"
    "One day they found a magical door. "
    'Then Mia asked, "What is behind it?" '
    "Leo was excited to discover the answer.\n"
    "\n"
    "They had to solve a problem because the door was stuck. "
    "So they decided to think and try again together.\n"
    "\n"
    "Mia learned to share and help her friend. "
    "They were kind and brave, and they played and laughed all day.\n"
    "\n"
    "At the end, Mia was proud and happy. The end."
)

LOW_QUALITY_STORY = "bad."


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingEventSink:
    """Event sink that keeps every event in memory."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((event, payload))

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def payloads(self, event: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event]


class FakeProvider(BaseLLMProvider):
    """Provider that replays scripted responses.

    Each call consumes the next response; the last one repeats. Exceptions in
    the script are raised instead of returned.
    """

    def __init__(
        self,
        responses: List[Union[str, BaseException]],
        model: str = "fake-model",
    ):
        super().__init__(api_key="test-key", model=model)
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        **kwargs: Any,
    ) -> RawGenerationResult:
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "temperature": temperature,
                "max_tokens": max_tokens,
            }
        )
        if len(self.responses) > 1:
            response = self.responses.pop(0)
        else:
            response = self.responses[0]
        if isinstance(response, BaseException):
            raise response
        return RawGenerationResult(
            content=response, provider=self.get_provider_name(), model=self.model
        )


@pytest.fixture
def high_quality_story() -> str:
    """Fixture providing story text that clears the default quality gate."""
    return HIGH_QUALITY_STORY


@pytest.fixture
def low_quality_story() -> str:
    """Fixture providing story text that fails the default quality gate."""
    return LOW_QUALITY_STORY


@pytest.fixture
def fake_clock() -> FakeClock:
    """Fixture providing a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def fake_sleep() -> AsyncMock:
    """Fixture providing an awaitable sleep that returns immediately."""
    return AsyncMock(return_value=None)


@pytest.fixture
def event_sink() -> RecordingEventSink:
    """Fixture providing an in-memory event sink."""
    return RecordingEventSink()


@pytest.fixture
def make_provider():
    """Fixture providing a factory for scripted providers."""

    def _make(*responses: Union[str, BaseException], model: str = "fake-model"):
        return FakeProvider(list(responses), model=model)

    return _make


@pytest.fixture
def story_context() -> StoryContext:
    """Fixture providing a typical story request."""
    return StoryContext(
        child=ChildProfile(
            name="Mia",
            age=5,
            personality_traits=["brave", "kind"],
            hobbies=["gardening"],
            interests=["animals"],
        ),
        story=StoryConfiguration(
            theme="garden adventure",
            educational_focus="sharing",
            moral_lesson="helping friends",
        ),
    )
