"""
Unit tests for LiteLLMClient (acompletion is patched out).
"""

import asyncio
from types import SimpleNamespace

import litellm
import pytest

from relaybot.errors import UpstreamError, UpstreamKind
from relaybot.providers import litellm_provider
from relaybot.providers.litellm_provider import LiteLLMClient
from relaybot.session.manager import Role, Session


def _response(content="Hello there", usage=True, model="gpt-3.5-turbo"):
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=7, completion_tokens=3, total_tokens=10) if usage else None,
        model=model,
    )


@pytest.fixture
def turns(key):
    session = Session(key=key)
    session.append_turn(Role.USER, "hi")
    session.append_turn(Role.ASSISTANT, "hello")
    session.append_turn(Role.USER, "how are you?")
    return session.history


@pytest.fixture
def patch_acompletion(monkeypatch):
    """Replace acompletion with a stub that records kwargs and returns/raises `outcome`."""
    calls = []

    def _patch(outcome):
        async def fake_acompletion(**kwargs):
            calls.append(kwargs)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome

        monkeypatch.setattr(litellm_provider, "acompletion", fake_acompletion)
        return calls

    return _patch


class TestComplete:

    async def test_successful_completion(self, patch_acompletion, turns):
        calls = patch_acompletion(_response())
        client = LiteLLMClient(model="openai/gpt-3.5-turbo", api_key="sk-test")

        completion = await client.complete(turns, system_prompt="Be brief.", user="u1")

        assert completion.text == "Hello there"
        assert completion.usage == {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10}
        assert completion.model == "gpt-3.5-turbo"

        kwargs = calls[0]
        assert kwargs["model"] == "openai/gpt-3.5-turbo"
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["max_tokens"] == 300
        assert kwargs["temperature"] == 0.5
        assert kwargs["user"] == "u1"
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "user", "content": "how are you?"},
        ]

    async def test_optional_kwargs_are_omitted(self, patch_acompletion, turns):
        calls = patch_acompletion(_response(usage=False))
        completion = await LiteLLMClient().complete(turns)

        assert completion.usage == {}
        assert "api_key" not in calls[0]
        assert "api_base" not in calls[0]
        assert "user" not in calls[0]
        assert calls[0]["messages"][0]["role"] == "user"

    @pytest.mark.parametrize("response", [
        SimpleNamespace(choices=[], usage=None, model="m"),
        _response(content=None),
        _response(content="   "),
    ])
    async def test_invalid_response(self, patch_acompletion, turns, response):
        patch_acompletion(response)
        with pytest.raises(UpstreamError) as exc_info:
            await LiteLLMClient().complete(turns)
        assert exc_info.value.kind is UpstreamKind.INVALID_RESPONSE

    async def test_timeout(self, patch_acompletion, turns):
        patch_acompletion(asyncio.TimeoutError())
        with pytest.raises(UpstreamError) as exc_info:
            await LiteLLMClient().complete(turns)
        assert exc_info.value.kind is UpstreamKind.TIMEOUT

    async def test_rate_limited(self, patch_acompletion, turns):
        patch_acompletion(litellm.RateLimitError(message="slow down", llm_provider="openai", model="gpt-3.5-turbo"))
        with pytest.raises(UpstreamError) as exc_info:
            await LiteLLMClient().complete(turns)
        assert exc_info.value.kind is UpstreamKind.RATE_LIMITED

    async def test_other_errors_are_transport(self, patch_acompletion, turns):
        patch_acompletion(ConnectionError("connection reset"))
        with pytest.raises(UpstreamError) as exc_info:
            await LiteLLMClient().complete(turns)
        assert exc_info.value.kind is UpstreamKind.TRANSPORT
        assert "connection reset" in exc_info.value.message

    def test_default_model(self):
        assert LiteLLMClient(model="anthropic/claude-3-haiku").get_default_model() == "anthropic/claude-3-haiku"
