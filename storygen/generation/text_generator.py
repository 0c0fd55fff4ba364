"""Story text generation through the resilience layer.

Each public method is one orchestrated call: the primary provider is retried
under its circuit breaker and, once exhausted, the fallback provider (if
configured) gets its own retry budget.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from ..infrastructure.resilience import ResilientCallOrchestrator
from ..infrastructure.retry import OperationResult
from ..providers.base import BaseLLMProvider
from .models import RawGenerationResult
from .prompts import (
    SYSTEM_PROMPT,
    StoryContext,
    build_outline_prompt,
    build_revision_prompt,
    build_story_prompt,
)

logger = logging.getLogger(__name__)

OUTLINE_OPERATION = "generate_story_outline"
STORY_OPERATION = "generate_story"
REVISION_OPERATION = "revise_story"


class StoryTextGenerator:
    """Generates outlines, stories and revisions with provider failover."""

    def __init__(
        self,
        orchestrator: ResilientCallOrchestrator,
        primary: BaseLLMProvider,
        fallback: Optional[BaseLLMProvider] = None,
        temperature: float = 0.7,
        max_tokens: int = 4000,
    ):
        """Initialize the generator.

        Args:
            orchestrator: Resilient call orchestrator
            primary: Provider tried first
            fallback: Provider used once the primary is exhausted (optional)
            temperature: Sampling temperature for every request
            max_tokens: Token limit for every request
        """
        self.orchestrator = orchestrator
        self.primary = primary
        self.fallback = fallback
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate_story_outline(
        self, context: StoryContext, cancel_event: Optional[asyncio.Event] = None
    ) -> OperationResult[RawGenerationResult]:
        """Generate a story outline.

        Args:
            context: Child profile and story configuration
            cancel_event: Optional cancellation event

        Returns:
            OperationResult carrying the raw outline on success
        """
        return await self._run(
            OUTLINE_OPERATION, build_outline_prompt(context), cancel_event
        )

    async def generate_story(
        self,
        context: StoryContext,
        outline: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OperationResult[RawGenerationResult]:
        """Generate the full story text, optionally following an outline."""
        return await self._run(
            STORY_OPERATION, build_story_prompt(context, outline), cancel_event
        )

    async def revise_story(
        self,
        context: StoryContext,
        original_story: str,
        revision_instructions: str,
        improvement_areas: Optional[List[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> OperationResult[RawGenerationResult]:
        """Revise an existing story.

        Args:
            context: Child profile and story configuration
            original_story: Story text to revise
            revision_instructions: What the reviewer asked for
            improvement_areas: Specific areas to improve
            cancel_event: Optional cancellation event

        Returns:
            OperationResult carrying the raw revised story on success
        """
        prompt = build_revision_prompt(
            context, original_story, revision_instructions, improvement_areas
        )
        return await self._run(REVISION_OPERATION, prompt, cancel_event)

    async def _run(
        self,
        operation_name: str,
        user_prompt: str,
        cancel_event: Optional[asyncio.Event],
    ) -> OperationResult[RawGenerationResult]:
        fallback_operation = (
            self._call(self.fallback, user_prompt) if self.fallback else None
        )
        return await self.orchestrator.execute_with_retry_and_circuit_breaker(
            self._call(self.primary, user_prompt),
            operation_name,
            fallback_operation=fallback_operation,
            cancel_event=cancel_event,
        )

    def _call(
        self, provider: BaseLLMProvider, user_prompt: str
    ) -> Callable[[], Awaitable[RawGenerationResult]]:
        async def operation() -> RawGenerationResult:
            logger.debug(
                f"Calling {provider.get_provider_name()} ({provider.model})"
            )
            return await provider.generate(
                SYSTEM_PROMPT,
                user_prompt,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )

        return operation
