"""OpenAI LLM provider integration."""

import logging
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from ..generation.models import RawGenerationResult, TokenUsage
from .base import BaseLLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI API integration for story generation."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        organization: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model: Model to use (default: gpt-4o-mini)
            organization: Optional organization ID
            client: Preconfigured async client (optional)
        """
        super().__init__(api_key, model)
        # Retries are owned by the resilience layer, not the SDK
        self.client = client or AsyncOpenAI(
            api_key=api_key, organization=organization, max_retries=0
        )

    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        **kwargs: Any,
    ) -> RawGenerationResult:
        """
        Generate a story completion using the OpenAI chat API.

        Args:
            system_prompt: Instructions shared by every request
            user_prompt: The request-specific prompt
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate
            **kwargs: Additional OpenAI-specific parameters

        Returns:
            Raw generated text with token usage

        Raises:
            EnhancedError: If the API call fails or returns no content
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs,
            )
        except openai.OpenAIError as e:
            raise self._handle_api_error(e) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise self._empty_response_error()

        usage = None
        if response.usage:
            usage = TokenUsage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )
        logger.debug(
            f"OpenAI {self.model} returned {len(content)} chars"
            f"{f' ({usage.total_tokens} tokens)' if usage else ''}"
        )
        return RawGenerationResult(
            content=content,
            provider=self.get_provider_name(),
            model=self.model,
            usage=usage,
        )
