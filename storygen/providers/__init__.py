"""LLM provider integrations."""

from .anthropic_provider import AnthropicProvider
from .base import BaseLLMProvider
from .openai_provider import OpenAIProvider

__all__ = ["AnthropicProvider", "BaseLLMProvider", "OpenAIProvider"]
