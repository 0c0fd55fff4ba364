"""Tests for OpenAI provider integration."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from storygen.errors import RateLimitError, ServiceUnavailableError
from storygen.providers.openai_provider import OpenAIProvider


def chat_response(content, prompt_tokens=12, completion_tokens=30):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens, completion_tokens=completion_tokens
        ),
    )


@pytest.fixture
def client():
    """Mock AsyncOpenAI client."""
    mock_client = MagicMock()
    mock_client.chat.completions.create = AsyncMock()
    return mock_client


@pytest.fixture
def provider(client):
    """OpenAI provider using the mock client."""
    return OpenAIProvider(api_key="sk-test", model="gpt-4o-mini", client=client)


class TestOpenAIProvider:
    """Tests for OpenAIProvider class."""

    def test_provider_name(self, provider):
        """Test the provider name used in results and error context."""
        assert provider.get_provider_name() == "openai"
        assert provider.model == "gpt-4o-mini"

    def test_default_client_disables_sdk_retries(self):
        """Test that the SDK client does not retry on its own."""
        provider = OpenAIProvider(api_key="sk-test")
        assert provider.client.max_retries == 0

    @pytest.mark.asyncio
    async def test_generate(self, provider, client):
        """Test a successful completion."""
        client.chat.completions.create.return_value = chat_response("A story.")

        result = await provider.generate(
            "system", "user", temperature=0.3, max_tokens=500
        )

        assert result.content == "A story."
        assert result.provider == "openai"
        assert result.model == "gpt-4o-mini"
        assert result.usage.total_tokens == 42
        client.chat.completions.create.assert_awaited_once_with(
            model="gpt-4o-mini",
            messages=[
                {"role": "system", "content": "system"},
                {"role": "user", "content": "user"},
            ],
            temperature=0.3,
            max_tokens=500,
        )

    @pytest.mark.asyncio
    async def test_empty_content(self, provider, client):
        """Test that an empty completion is a service failure."""
        client.chat.completions.create.return_value = chat_response("")

        with pytest.raises(ServiceUnavailableError, match="No content generated"):
            await provider.generate("system", "user")

    @pytest.mark.asyncio
    async def test_no_choices(self, provider, client):
        """Test that a response without choices is a service failure."""
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[], usage=None
        )

        with pytest.raises(ServiceUnavailableError):
            await provider.generate("system", "user")

    @pytest.mark.asyncio
    async def test_sdk_error_is_classified(self, provider, client):
        """Test that SDK errors become classified errors tagged with the provider."""
        sdk_error = openai.OpenAIError("Rate limit reached, retry after 2")
        client.chat.completions.create.side_effect = sdk_error

        with pytest.raises(RateLimitError) as exc_info:
            await provider.generate("system", "user")

        assert exc_info.value.retry_after_ms == 2000
        assert exc_info.value.context["provider"] == "openai"
        assert exc_info.value.original_error is sdk_error
        assert exc_info.value.__cause__ is sdk_error
