"""OpenAI LLM client adapter."""

import json
import logging
from typing import Any

from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient
from app.core.errors import LLMAppError

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "Output JSON only. No extra text or markdown formatting."

_PASSTHROUGH_PARAMS = {
    "max_tokens",
    "top_p",
    "frequency_penalty",
    "presence_penalty",
    "seed",
}


class OpenAIClient(AbstractLLMClient):
    """Client for OpenAI chat completions returning JSON objects."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
        temperature: float = 0.8,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Model name (e.g., "gpt-4o-mini").
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for requests in seconds.
            temperature: Default sampling temperature.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model
        self.temperature = temperature

    async def generate_json(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate a JSON object using OpenAI chat completions.

        Raises:
            LLMAppError: If the API call fails or the response is not a JSON object.
        """
        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": kwargs.pop("temperature", self.temperature),
            "response_format": {"type": "json_object"},
        }
        for param in _PASSTHROUGH_PARAMS:
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except Exception as exc:
            raise LLMAppError(
                code="llm_request_failed",
                message="The language model request failed",
                details={"model": self.model, "context": {"error_type": type(exc).__name__}},
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise LLMAppError(
                code="llm_empty_response",
                message="The language model returned no content",
                details={"model": self.model},
            )

        try:
            parsed = json.loads(content.strip())
        except json.JSONDecodeError as exc:
            logger.warning("llm.invalid_json", extra={"model": self.model, "error_msg": str(exc)})
            raise LLMAppError(
                code="llm_invalid_json",
                message="The language model returned invalid JSON",
                details={"model": self.model},
            ) from exc

        if not isinstance(parsed, dict):
            raise LLMAppError(
                code="llm_invalid_json",
                message="The language model returned JSON that is not an object",
                details={"model": self.model},
            )
        return parsed
