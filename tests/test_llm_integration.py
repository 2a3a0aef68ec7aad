"""Integration tests for the LLM adapter layer."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.adapters.llm import OpenAIClient, create_llm_client
from app.adapters.llm.openai_client import DEFAULT_SYSTEM_PROMPT
from app.core.config import LLMSettings
from app.core.errors import LLMAppError, ValidationAppError


def _completion(content: str | None) -> MagicMock:
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=content))]
    return response


class TestOpenAIClientIntegration:
    """Test OpenAI client integration with mocked API calls."""

    @pytest.mark.asyncio
    async def test_generate_json_success(self) -> None:
        client = OpenAIClient(api_key="test-key-123", model="gpt-4o-mini", temperature=0.8)

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion('{"sections": []}'),
        ) as mock_create:
            result = await client.generate_json("Produce the JSON now.", system_prompt="Write a zine.", max_tokens=900)

        assert result == {"sections": []}
        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["response_format"] == {"type": "json_object"}
        assert call_kwargs["temperature"] == 0.8
        assert call_kwargs["max_tokens"] == 900
        assert call_kwargs["messages"][0] == {"role": "system", "content": "Write a zine."}

    @pytest.mark.asyncio
    async def test_default_system_prompt(self) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion('{"ok": true}'),
        ) as mock_create:
            await client.generate_json("Test", temperature=0.1)

        call_kwargs = mock_create.call_args.kwargs
        assert call_kwargs["messages"][0]["content"] == DEFAULT_SYSTEM_PROMPT
        assert call_kwargs["temperature"] == 0.1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "content,code",
        [
            ("This is not JSON", "llm_invalid_json"),
            ('["a", "list"]', "llm_invalid_json"),
            ("   ", "llm_empty_response"),
            (None, "llm_empty_response"),
        ],
    )
    async def test_unusable_content_raises(self, content: str | None, code: str) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion(content),
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await client.generate_json("Test")

        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_provider_failure_is_wrapped(self) -> None:
        client = OpenAIClient(api_key="test-key", model="gpt-4o")

        with patch.object(
            client.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=TimeoutError("slow"),
        ):
            with pytest.raises(LLMAppError) as exc_info:
                await client.generate_json("Test")

        assert exc_info.value.code == "llm_request_failed"
        assert exc_info.value.details["context"]["error_type"] == "TimeoutError"


class TestLLMFactory:
    """Test LLM client factory pattern."""

    def test_create_llm_client_with_settings(self) -> None:
        client = create_llm_client(
            LLMSettings(provider="openai", api_key="test-key", model="gpt-4o-mini", temperature=0.5)
        )

        assert isinstance(client, OpenAIClient)
        assert client.model == "gpt-4o-mini"
        assert client.temperature == 0.5

    def test_create_llm_client_missing_api_key_raises_error(self) -> None:
        with pytest.raises(ValidationAppError, match="requires LLM_API_KEY") as exc:
            create_llm_client(LLMSettings(provider="openai", api_key=None))
        assert exc.value.code == "llm_missing_api_key"

    def test_create_llm_client_unknown_provider_raises_error(self) -> None:
        with pytest.raises(ValidationAppError, match="Unknown LLM provider") as exc:
            create_llm_client(LLMSettings(provider="unknown-provider", api_key="test-key"))
        assert exc.value.code == "llm_unknown_provider"
