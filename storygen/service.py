"""Story generation service and its assembly function.

``build_story_service`` constructs every collaborator explicitly (circuit
breakers, retry executor, orchestrator, providers, validator, regeneration
controller) and hands them to ``StoryGenerationService``. Nothing here is a
module-level singleton; callers own the returned instance.
"""

import asyncio
import logging
from typing import List, Optional

from .config import GenerationConfig, GenerationConfigLoader, Settings
from .events import EventSink, LoggingEventSink, safe_emit
from .generation.content import GenerationMetadata
from .generation.models import EnhancedGenerationResult
from .generation.prompts import StoryContext
from .generation.regeneration import ContentStore, RegenerationController
from .generation.text_generator import StoryTextGenerator
from .infrastructure.circuit_breaker import CircuitBreakerRegistry, CircuitState
from .infrastructure.resilience import ResilientCallOrchestrator
from .infrastructure.retry import RetryExecutor
from .providers.anthropic_provider import AnthropicProvider
from .providers.base import BaseLLMProvider
from .providers.openai_provider import OpenAIProvider
from .quality.models import QualityThresholds
from .quality.validator import QualityValidator

logger = logging.getLogger(__name__)


class StoryGenerationService:
    """Quality-validated outline, story and revision generation."""

    def __init__(
        self,
        text_generator: StoryTextGenerator,
        regeneration: RegenerationController,
        circuit_breakers: CircuitBreakerRegistry,
    ):
        self.text_generator = text_generator
        self.regeneration = regeneration
        self.circuit_breakers = circuit_breakers

    async def generate_story_outline(
        self,
        context: StoryContext,
        skip_quality_validation: bool = False,
        quality_threshold: Optional[float] = None,
        thresholds: Optional[QualityThresholds] = None,
        metadata: Optional[GenerationMetadata] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EnhancedGenerationResult:
        """Generate a quality-validated story outline.

        Args:
            context: Child profile and story configuration
            skip_quality_validation: Accept the first successful generation
            quality_threshold: Overall score required for this request
            thresholds: Quality minimums for this request
            metadata: Scoring intent (derived from ``context`` if not provided)
            cancel_event: Optional cancellation event

        Returns:
            The accepted outline

        Raises:
            QualityValidationError: If no attempt reached the quality gate
            EnhancedError: If generation itself kept failing
        """
        return await self.regeneration.generate_with_quality_validation(
            lambda: self.text_generator.generate_story_outline(
                context, cancel_event=cancel_event
            ),
            "story_outline",
            thresholds=thresholds,
            metadata=metadata or metadata_from_context(context),
            quality_threshold=quality_threshold,
            skip_quality_validation=skip_quality_validation,
            cancel_event=cancel_event,
        )

    async def generate_story(
        self,
        context: StoryContext,
        outline: Optional[str] = None,
        skip_quality_validation: bool = False,
        quality_threshold: Optional[float] = None,
        thresholds: Optional[QualityThresholds] = None,
        metadata: Optional[GenerationMetadata] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EnhancedGenerationResult:
        """Generate a quality-validated full story, optionally from an outline."""
        return await self.regeneration.generate_with_quality_validation(
            lambda: self.text_generator.generate_story(
                context, outline=outline, cancel_event=cancel_event
            ),
            "story_content",
            thresholds=thresholds,
            metadata=metadata or metadata_from_context(context),
            quality_threshold=quality_threshold,
            skip_quality_validation=skip_quality_validation,
            cancel_event=cancel_event,
        )

    async def revise_story(
        self,
        context: StoryContext,
        original_story: str,
        revision_instructions: str,
        improvement_areas: Optional[List[str]] = None,
        skip_quality_validation: bool = False,
        quality_threshold: Optional[float] = None,
        thresholds: Optional[QualityThresholds] = None,
        metadata: Optional[GenerationMetadata] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EnhancedGenerationResult:
        """Generate a quality-validated revision of an existing story."""
        return await self.regeneration.generate_with_quality_validation(
            lambda: self.text_generator.revise_story(
                context,
                original_story,
                revision_instructions,
                improvement_areas,
                cancel_event=cancel_event,
            ),
            "story_revision",
            thresholds=thresholds,
            metadata=metadata or metadata_from_context(context),
            quality_threshold=quality_threshold,
            skip_quality_validation=skip_quality_validation,
            improvement_areas=improvement_areas,
            cancel_event=cancel_event,
        )

    def get_health(self) -> dict:
        """Circuit and retry statistics for monitoring."""
        executor = self.text_generator.orchestrator.executor
        return {
            "circuit_breakers": self.circuit_breakers.get_all_stats(),
            "unavailable_operations": (
                self.circuit_breakers.get_unavailable_operations()
            ),
            "retry_metrics": executor.metrics.get_summary(),
        }


def metadata_from_context(context: StoryContext) -> GenerationMetadata:
    """Derive the scoring intent from a story context."""
    child = context.child
    story = context.story
    return GenerationMetadata(
        target_age=child.age if child.age is not None else 5,
        theme=story.theme,
        character_traits=list(child.personality_traits),
        educational_goals=(
            [story.educational_focus] if story.educational_focus else []
        ),
    )


def create_provider(
    provider_name: str, model: Optional[str], settings: Settings
) -> BaseLLMProvider:
    """Create a provider from settings.

    Args:
        provider_name: "openai" or "anthropic"
        model: Model override (provider default if None)
        settings: Settings holding the API keys

    Returns:
        Configured provider

    Raises:
        ValueError: If the provider is unknown or its API key is missing
    """
    if provider_name == "openai":
        if not settings.openai_api_key:
            raise ValueError("OPENAI_API_KEY is required for the openai provider")
        if model:
            return OpenAIProvider(api_key=settings.openai_api_key, model=model)
        return OpenAIProvider(api_key=settings.openai_api_key)
    if provider_name == "anthropic":
        if not settings.anthropic_api_key:
            raise ValueError(
                "ANTHROPIC_API_KEY is required for the anthropic provider"
            )
        if model:
            return AnthropicProvider(
                api_key=settings.anthropic_api_key, model=model
            )
        return AnthropicProvider(api_key=settings.anthropic_api_key)
    raise ValueError(f"Unknown provider '{provider_name}'")


def build_story_service(
    settings: Optional[Settings] = None,
    generation_config: Optional[GenerationConfig] = None,
    event_sink: Optional[EventSink] = None,
    content_store: Optional[ContentStore] = None,
    primary: Optional[BaseLLMProvider] = None,
    fallback: Optional[BaseLLMProvider] = None,
) -> StoryGenerationService:
    """Assemble a story generation service.

    Args:
        settings: Environment settings (loaded from the environment if None)
        generation_config: Resilience and quality config (loaded from
            ``settings.generation_config_path`` if None)
        event_sink: Observability sink (logging sink if None)
        content_store: Persists each generation attempt (optional)
        primary: Primary provider (built from settings if None)
        fallback: Fallback provider (built from settings if None and configured)

    Returns:
        A fully wired StoryGenerationService

    Raises:
        ValueError: If configuration or provider settings are invalid
        FileNotFoundError: If the generation config file is missing
    """
    settings = settings or Settings()
    if generation_config is None:
        generation_config = GenerationConfigLoader(
            settings.generation_config_path
        ).load()
    sink = event_sink or LoggingEventSink()

    def on_state_change(
        operation_name: str, old: CircuitState, new: CircuitState, reason: str
    ) -> None:
        safe_emit(
            sink,
            "circuit:state_changed",
            {
                "operation_name": operation_name,
                "from_state": old.value,
                "to_state": new.value,
                "reason": reason,
            },
        )

    circuit_breakers = CircuitBreakerRegistry(
        config=generation_config.circuit_breaker, on_state_change=on_state_change
    )
    executor = RetryExecutor(
        circuit_breakers, config=generation_config.retry, event_sink=sink
    )
    orchestrator = ResilientCallOrchestrator(executor, event_sink=sink)

    primary = primary or create_provider(
        settings.primary_provider, settings.primary_model, settings
    )
    if fallback is None and settings.fallback_provider:
        fallback = create_provider(
            settings.fallback_provider, settings.fallback_model, settings
        )

    text_generator = StoryTextGenerator(
        orchestrator,
        primary,
        fallback=fallback,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )
    regeneration = RegenerationController(
        QualityValidator(thresholds=generation_config.thresholds),
        settings=generation_config.regeneration,
        event_sink=sink,
        content_store=content_store,
    )

    logger.info(
        f"Story service ready "
        f"(primary={primary.get_provider_name()}/{primary.model}, "
        f"fallback={fallback.get_provider_name() if fallback else None})"
    )
    return StoryGenerationService(text_generator, regeneration, circuit_breakers)
