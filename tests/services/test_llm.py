"""Tests for LLMService and CodeGenerationService."""

import httpx
import pytest
from openai import RateLimitError

from autopilot.core.config import settings
from autopilot.core.errors import CapabilityUnavailableError
from autopilot.services.code_generation import CodeGenerationService
from autopilot.services.llm import LLMService


def completion(mocker, content):
    response = mocker.Mock()
    response.choices = [mocker.Mock(message=mocker.Mock(content=content))]
    return response


def rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return RateLimitError(
        "slow down", response=httpx.Response(429, request=request), body=None
    )


def test_get_client_requires_key(mocker):
    mocker.patch.object(settings, "openai_api_key", "")

    assert LLMService.is_available() is False
    with pytest.raises(CapabilityUnavailableError):
        LLMService.get_client()


def test_chat_retries_rate_limits(mocker):
    """Test exponential backoff on rate limits."""
    client = mocker.Mock()
    client.chat.completions.create.side_effect = [
        rate_limit_error(),
        completion(mocker, "hello"),
    ]
    mocker.patch.object(LLMService, "get_client", return_value=client)
    sleep = mocker.patch("autopilot.services.llm.time.sleep")

    assert LLMService.chat("system", "user") == "hello"
    sleep.assert_called_once_with(2)


def test_chat_json_uses_json_mode(mocker):
    client = mocker.Mock()
    client.chat.completions.create.return_value = completion(mocker, '{"summary": "ok"}')
    mocker.patch.object(LLMService, "get_client", return_value=client)

    assert LLMService.chat_json("system", "user") == {"summary": "ok"}
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}


def test_chat_json_rejects_non_object(mocker):
    client = mocker.Mock()
    client.chat.completions.create.return_value = completion(mocker, "[1, 2]")
    mocker.patch.object(LLMService, "get_client", return_value=client)

    with pytest.raises(ValueError):
        LLMService.chat_json("system", "user")


def test_propose_returns_validated_plan(mocker):
    """Test that a well-formed response becomes a CodeChangePlan."""
    mocker.patch.object(
        LLMService,
        "chat_json",
        return_value={
            "summary": "Add index",
            "changes": [
                {
                    "path": "models/order.py",
                    "action": "modify",
                    "description": "index created_at",
                    "risk": "high",
                }
            ],
            "testing_notes": "Run the order tests",
        },
    )

    plan = CodeGenerationService.propose({"title": "Slow endpoint: /orders"})

    assert plan.highest_risk == "high"
    assert plan.changes[0].path == "models/order.py"
