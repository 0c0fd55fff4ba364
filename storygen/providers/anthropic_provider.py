"""Anthropic LLM provider integration."""

import logging
from typing import Any, Optional

import anthropic
from anthropic import AsyncAnthropic

from ..generation.models import RawGenerationResult, TokenUsage
from .base import BaseLLMProvider

logger = logging.getLogger(__name__)


class AnthropicProvider(BaseLLMProvider):
    """Anthropic API integration for story generation."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-5-20250929",
        client: Optional[AsyncAnthropic] = None,
    ):
        """
        Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key
            model: Model to use (default: claude-sonnet-4-5-20250929)
            client: Preconfigured async client (optional)
        """
        super().__init__(api_key, model)
        # Retries are owned by the resilience layer, not the SDK
        self.client = client or AsyncAnthropic(api_key=api_key, max_retries=0)

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        **kwargs: Any,
    ) -> RawGenerationResult:
        """
        Generate a story completion using the Anthropic messages API.

        Args:
            system_prompt: Instructions shared by every request
            user_prompt: The request-specific prompt
            temperature: Sampling temperature (0.0 to 1.0)
            max_tokens: Maximum tokens to generate (required by Anthropic)
            **kwargs: Additional Anthropic-specific parameters

        Returns:
            Raw generated text with token usage

        Raises:
            EnhancedError: If the API call fails or returns no content
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except anthropic.AnthropicError as e:
            raise self._handle_api_error(e) from e

        content = "".join(
            getattr(block, "text", "") for block in response.content or []
        )
        if not content:
            raise self._empty_response_error()

        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            )
        logger.debug(
            f"Anthropic {self.model} returned {len(content)} chars"
            f"{f' ({usage.total_tokens} tokens)' if usage else ''}"
        )
        return RawGenerationResult(
            content=content,
            provider=self.get_provider_name(),
            model=self.model,
            usage=usage,
        )
