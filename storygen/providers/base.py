"""Base class for LLM providers."""

from abc import ABC, abstractmethod
from typing import Any

from ..error_classifier import ErrorClassifier
from ..errors import EnhancedError, ServiceUnavailableError
from ..generation.models import RawGenerationResult


class BaseLLMProvider(ABC):
    """Abstract base class for LLM provider integrations."""

    def __init__(self, api_key: str, model: str):
        """
        Initialize the LLM provider.

        Args:
            api_key: API key for the provider
            model: Model identifier to use
        """
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 4000,
        **kwargs: Any,
    ) -> RawGenerationResult:
        """
        Generate a completion from the LLM.

        Args:
            system_prompt: Instructions shared by every request
            user_prompt: The request-specific prompt
            temperature: Sampling temperature
            max_tokens: Maximum number of tokens to generate
            **kwargs: Additional provider-specific parameters

        Returns:
            Raw generated text with provider, model and usage

        Raises:
            EnhancedError: If the API call fails or returns no content
        """
        pass

    def get_provider_name(self) -> str:
        """
        Get the name of this provider.

        Returns:
            Provider name (e.g., "openai", "anthropic")
        """
        return self.__class__.__name__.replace("Provider", "").lower()

    def _handle_api_error(self, error: Exception) -> EnhancedError:
        """Classify an SDK error.

        Args:
            error: The exception that was raised

        Returns:
            EnhancedError tagged with this provider
        """
        return ErrorClassifier.classify(error, provider=self.get_provider_name())

    def _empty_response_error(self) -> ServiceUnavailableError:
        return ServiceUnavailableError(
            f"No content generated by {self.get_provider_name()} ({self.model})",
            context={"provider": self.get_provider_name(), "model": self.model},
        )
