"""Quality-gated regeneration loop.

The controller drives up to ``max_regeneration_attempts`` generation calls.
Each successful call is parsed, optionally stored, and validated; the first
result that clears both the overall quality threshold and every configured
minimum is returned. This loop is coarser than transport retries: each
attempt is a complete orchestrated call with its own retry budget.

Outcomes:
    - accepted content: ``EnhancedGenerationResult``
    - quality never good enough: ``QualityValidationError``
    - last attempt failed to generate, parse or store: the last
      ``EnhancedError`` unchanged (other exceptions are classified first)
"""

import asyncio
import logging
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    NoReturn,
    Optional,
    Protocol,
)

from ..config import RegenerationSettings
from ..error_classifier import ErrorClassifier
from ..errors import (
    GenerationCancelledError,
    QualityValidationError,
    ServiceUnavailableError,
)
from ..events import EventSink, NullEventSink, safe_emit
from ..infrastructure.retry import OperationMetadata, OperationResult
from ..quality.models import QualityThresholds, QualityValidationResult
from ..quality.validator import QualityValidator
from .content import (
    GenerationMetadata,
    ContentType,
    StoryVariant,
    parse_content,
)
from .models import EnhancedGenerationResult, RawGenerationResult

logger = logging.getLogger(__name__)

GenerationFn = Callable[[], Awaitable[OperationResult[RawGenerationResult]]]


@dataclass(frozen=True)
class GeneratedContentRecord:
    """One generation attempt handed to the content store."""

    content_type: ContentType
    raw_content: str
    parsed_content: StoryVariant
    provider: str
    model: str
    attempt: int
    metadata: GenerationMetadata


class ContentStore(Protocol):
    """Persists generated content and returns its id."""

    async def store_content(self, content: GeneratedContentRecord) -> str:
        ...


def temporary_content_id() -> str:
    return f"temp_{uuid.uuid4().hex}"


def aggregate_recommendations(
    results: List[QualityValidationResult],
) -> List[str]:
    """Merge recommendations and feedback from every attempt.

    Items are de-duplicated and ordered by how many attempts raised them,
    ties broken by first appearance.
    """
    counts: Counter = Counter()
    first_seen: Dict[str, int] = {}
    for result in results:
        for item in dict.fromkeys(result.recommendations + result.feedback):
            counts[item] += 1
            first_seen.setdefault(item, len(first_seen))
    return sorted(counts, key=lambda item: (-counts[item], first_seen[item]))


class RegenerationController:
    """Runs generate-and-validate attempts until content passes or attempts run out."""

    def __init__(
        self,
        validator: QualityValidator,
        settings: Optional[RegenerationSettings] = None,
        event_sink: Optional[EventSink] = None,
        content_store: Optional[ContentStore] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the controller.

        Args:
            validator: Quality validator applied to each attempt
            settings: Regeneration loop settings
            event_sink: Observability sink
            content_store: Persists each attempt before scoring (optional)
            sleep: Awaitable sleep taking seconds
            clock: Monotonic clock returning seconds
        """
        self.validator = validator
        self.settings = settings or RegenerationSettings()
        self.event_sink = event_sink or NullEventSink()
        self.content_store = content_store
        self._sleep = sleep
        self._clock = clock

    async def generate_with_quality_validation(
        self,
        generation_fn: GenerationFn,
        content_type: ContentType,
        thresholds: Optional[QualityThresholds] = None,
        metadata: Optional[GenerationMetadata] = None,
        quality_threshold: Optional[float] = None,
        skip_quality_validation: bool = False,
        improvement_areas: Optional[List[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EnhancedGenerationResult:
        """Generate content and regenerate until it passes the quality gate.

        Args:
            generation_fn: Zero-argument coroutine function performing one
                orchestrated generation call
            content_type: ``story_outline``, ``story_content`` or ``story_revision``
            thresholds: Quality minimums for this request (validator default if None)
            metadata: Declared intent the content is scored against
            quality_threshold: Overall score required for this request
            skip_quality_validation: Return the first successful generation as is
            improvement_areas: Areas a revision targets (revisions only)
            cancel_event: Optional cancellation event

        Returns:
            The accepted generation with its validation

        Raises:
            QualityValidationError: If no attempt reached the quality gate
            EnhancedError: If the final attempt failed to generate, parse or
                store its content
            GenerationCancelledError: If ``cancel_event`` is set
        """
        settings = self.settings
        metadata = metadata or GenerationMetadata()
        threshold = (
            quality_threshold
            if quality_threshold is not None
            else settings.quality_threshold
        )
        max_attempts = settings.max_regeneration_attempts
        validate = settings.enabled and not skip_quality_validation
        started = self._clock()

        validations: List[QualityValidationResult] = []
        last_raw: Optional[RawGenerationResult] = None

        safe_emit(
            self.event_sink,
            "generation:started",
            {"content_type": content_type, "max_attempts": max_attempts},
        )

        for attempt in range(1, max_attempts + 1):
            self._check_cancelled(cancel_event, content_type)

            try:
                raw, op_metadata, parsed, content_id = await self._attempt(
                    generation_fn,
                    content_type,
                    attempt,
                    metadata,
                    improvement_areas,
                )
            except GenerationCancelledError:
                raise
            except Exception as e:
                error = ErrorClassifier.classify(e)
                safe_emit(
                    self.event_sink,
                    "generation:error",
                    {
                        "content_type": content_type,
                        "attempt": attempt,
                        "error": error.to_dict(),
                    },
                )
                if attempt >= max_attempts:
                    logger.error(
                        f"{content_type} generation failed on final attempt "
                        f"{attempt}: {error}"
                    )
                    safe_emit(
                        self.event_sink,
                        "generation:failed",
                        {
                            "content_type": content_type,
                            "attempts": attempt,
                            "error": error.to_dict(),
                            "total_time_ms": self._elapsed_ms(started),
                        },
                    )
                    if error is e:
                        raise
                    raise error from e
                logger.warning(
                    f"{content_type} generation attempt {attempt} failed "
                    f"({error.code}), regenerating from scratch"
                )
                await self._pause(
                    settings.generation_retry_delay_ms, cancel_event, content_type
                )
                continue

            last_raw = raw

            if not validate:
                return EnhancedGenerationResult(
                    content=raw.content,
                    parsed_content=parsed,
                    provider=raw.provider,
                    model=raw.model,
                    usage=raw.usage,
                    content_id=content_id,
                    regeneration_attempts=attempt,
                    metadata=op_metadata,
                )

            validation = self.validator.validate(
                content_id, raw.content, parsed, metadata, thresholds
            )
            validations.append(validation)
            overall = validation.quality_score.overall
            safe_emit(
                self.event_sink,
                "quality:checked",
                {
                    "content_id": content_id,
                    "quality_score": overall,
                    "passes_threshold": validation.passes_threshold,
                    "attempt": attempt,
                },
            )

            if overall >= threshold and validation.passes_threshold:
                logger.info(
                    f"{content_type} accepted on attempt {attempt} "
                    f"(score {overall}/{threshold})"
                )
                safe_emit(
                    self.event_sink,
                    "generation:success",
                    {
                        "content_id": content_id,
                        "quality_score": overall,
                        "attempts": attempt,
                        "total_time_ms": self._elapsed_ms(started),
                    },
                )
                return EnhancedGenerationResult(
                    content=raw.content,
                    parsed_content=parsed,
                    provider=raw.provider,
                    model=raw.model,
                    usage=raw.usage,
                    content_id=content_id,
                    regeneration_attempts=attempt,
                    quality_score=overall,
                    quality_validation=validation,
                    improvement_recommendations=list(validation.recommendations),
                    metadata=op_metadata,
                )

            if not settings.auto_regenerate or attempt >= max_attempts:
                break

            logger.warning(
                f"{content_type} attempt {attempt} below quality gate "
                f"(score {overall}/{threshold}), regenerating"
            )
            safe_emit(
                self.event_sink,
                "quality:regenerating",
                {
                    "attempt": attempt,
                    "quality_score": overall,
                    "issues": validation.quality_score.model_dump(),
                },
            )
            await self._pause(
                settings.regeneration_delay_ms, cancel_event, content_type
            )

        self._raise_exhausted(
            content_type, attempt, validations, last_raw, threshold, started
        )

    def _raise_exhausted(
        self,
        content_type: ContentType,
        attempts: int,
        validations: List[QualityValidationResult],
        last_raw: Optional[RawGenerationResult],
        threshold: float,
        started: float,
    ) -> NoReturn:
        """Raise the terminal error once the loop ends without accepted content."""
        if not validations or last_raw is None:
            # Unreachable with max_regeneration_attempts >= 1
            raise ServiceUnavailableError(
                f"{content_type} generation produced no content"
            )

        last = validations[-1]
        recommendations = aggregate_recommendations(validations)
        overall = last.quality_score.overall

        logger.error(
            f"{content_type} below quality threshold after {attempts} attempts "
            f"(score {overall}/{threshold})"
        )
        safe_emit(
            self.event_sink,
            "generation:failed",
            {
                "content_type": content_type,
                "attempts": attempts,
                "quality_score": overall,
                "total_time_ms": self._elapsed_ms(started),
            },
        )
        raise QualityValidationError(
            f"Content quality below threshold after {attempts} attempts. "
            f"Score: {overall}/{threshold}",
            validation_result=last,
            content=last_raw.content,
            attempts=attempts,
            improvement_recommendations=recommendations,
        )

    async def _attempt(
        self,
        generation_fn: GenerationFn,
        content_type: ContentType,
        attempt: int,
        metadata: GenerationMetadata,
        improvement_areas: Optional[List[str]],
    ) -> tuple[
        RawGenerationResult,
        OperationMetadata,
        StoryVariant,
        str,
    ]:
        """Generate, parse and store one attempt."""
        raw, op_metadata = await self._generate(generation_fn)
        safe_emit(
            self.event_sink,
            "generation:completed",
            {
                "content_type": content_type,
                "attempt": attempt,
                "provider": raw.provider,
                "fallback_used": op_metadata.fallback_used,
            },
        )
        parsed = parse_content(raw.content, content_type, improvement_areas)
        content_id = await self._content_id(
            raw, parsed, content_type, attempt, metadata
        )
        return raw, op_metadata, parsed, content_id

    async def _generate(
        self, generation_fn: GenerationFn
    ) -> tuple[RawGenerationResult, OperationMetadata]:
        result = await generation_fn()
        if not result.success or result.data is None:
            raise result.error or ServiceUnavailableError(
                "Generation failed without a classified error"
            )
        return result.data, result.metadata

    async def _content_id(
        self,
        raw: RawGenerationResult,
        parsed: StoryVariant,
        content_type: ContentType,
        attempt: int,
        metadata: GenerationMetadata,
    ) -> str:
        if not self.settings.store_content or self.content_store is None:
            return temporary_content_id()
        record = GeneratedContentRecord(
            content_type=content_type,
            raw_content=raw.content,
            parsed_content=parsed,
            provider=raw.provider,
            model=raw.model,
            attempt=attempt,
            metadata=metadata,
        )
        return await self.content_store.store_content(record)

    async def _pause(
        self,
        delay_ms: int,
        cancel_event: Optional[asyncio.Event],
        content_type: ContentType,
    ) -> None:
        self._check_cancelled(cancel_event, content_type)
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    def _check_cancelled(
        self, cancel_event: Optional[asyncio.Event], content_type: str
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelledError(
                f"{content_type} generation was cancelled"
            )

    def _elapsed_ms(self, since: float) -> float:
        return (self._clock() - since) * 1000
