"""OpenAI chat completion helpers shared by handlers, detectors and the reporter."""

import json
import logging
import time

from openai import APITimeoutError, OpenAI, RateLimitError

from autopilot.core.config import settings
from autopilot.core.errors import CapabilityUnavailableError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY = 2  # seconds

_client: OpenAI | None = None


class LLMService:
    """Thin wrapper around the OpenAI chat completions API."""

    @staticmethod
    def is_available() -> bool:
        """Whether an API key is configured."""
        return bool(settings.openai_api_key)

    @staticmethod
    def get_client() -> OpenAI:
        """Get the shared client, bounded by the configured timeout.

        Raises:
            CapabilityUnavailableError: If no API key is configured
        """
        global _client

        if not settings.openai_api_key:
            raise CapabilityUnavailableError("OPENAI_API_KEY is not configured")

        if _client is None:
            _client = OpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.llm_timeout,
                max_retries=0,
            )
        return _client

    @staticmethod
    def chat(
        system: str,
        user: str,
        json_mode: bool = False,
        temperature: float = 0.2,
        max_tokens: int = 2048,
    ) -> str:
        """Send a chat completion request and return the assistant message.

        Retries on rate limits with exponential backoff. Timeouts are not
        retried so a single call stays within the handler's time budget.
        """
        client = LLMService.get_client()
        kwargs: dict = {
            "model": settings.openai_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        for attempt in range(MAX_RETRIES):
            try:
                response = client.chat.completions.create(**kwargs)
                return response.choices[0].message.content or ""
            except RateLimitError as e:
                if attempt == MAX_RETRIES - 1:
                    raise
                delay = BASE_DELAY * (2**attempt)
                logger.warning(
                    f"Rate limited (attempt {attempt + 1}/{MAX_RETRIES}), "
                    f"retrying in {delay}s: {e}"
                )
                time.sleep(delay)
            except APITimeoutError:
                logger.warning(f"LLM request timed out after {settings.llm_timeout}s")
                raise

        return ""

    @staticmethod
    def chat_json(system: str, user: str, **kwargs) -> dict:
        """Send a chat completion and parse the JSON response.

        Raises:
            ValueError: If the response is not a JSON object
        """
        raw = LLMService.chat(system, user, json_mode=True, **kwargs)
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse LLM JSON response: {raw[:500]}")
            raise ValueError("LLM returned invalid JSON") from e

        if not isinstance(data, dict):
            raise ValueError("LLM returned JSON that is not an object")
        return data
