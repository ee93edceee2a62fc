"""
Tests for structured and free-text generation over a mocked Anthropic client.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import pytest

from afilli.agents.contracts import OfferScoringResult
from afilli.config.schema import LLMConfig
from afilli.exceptions import DependencyError, TaskExecutionError
from afilli.llm.generator import TextGenerator, extract_json


def _client(text: str) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(
        content=[SimpleNamespace(text=text)],
        usage=SimpleNamespace(input_tokens=10, output_tokens=20),
    ))
    return client


class TestExtractJson:

    def test_fenced_block(self):
        assert extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_surrounding_prose(self):
        assert extract_json('Here you go: {"a": 1} hope it helps') == '{"a": 1}'

    def test_plain_text_passthrough(self):
        assert extract_json("  nothing here ") == "nothing here"


class TestTextGenerator:

    @pytest.mark.asyncio
    async def test_generate_text_uses_config(self):
        client = _client("hello")
        generator = TextGenerator(client, LLMConfig(max_tokens=123))

        assert await generator.generate_text("Say hi") == "hello"
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["max_tokens"] == 123
        assert kwargs["messages"] == [{"role": "user", "content": "Say hi"}]

    @pytest.mark.asyncio
    async def test_generate_object_validates_reply(self):
        client = _client(
            '```json\n{"scores": [{"offerId": "o-1", "newCps": 140, '
            '"recommendAction": "promote"}]}\n```'
        )
        result = await TextGenerator(client).generate_object("Score these", OfferScoringResult)

        assert result.scores[0].offer_id == "o-1"
        assert result.scores[0].new_cps == 100.0
        assert result.scores[0].recommend_action == "promote"
        prompt = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert "Score these" in prompt
        assert "JSON object matching this schema" in prompt

    @pytest.mark.asyncio
    async def test_custom_system_prompt_is_prepended(self):
        client = _client('{"scores": []}')
        await TextGenerator(client).generate_object("x", OfferScoringResult, system="Be terse.")
        assert client.messages.create.call_args.kwargs["system"].startswith("Be terse.")

    @pytest.mark.asyncio
    async def test_invalid_reply_raises_task_execution_error(self):
        client = _client('{"scores": [{"newCps": "lots"}]}')
        with pytest.raises(TaskExecutionError):
            await TextGenerator(client).generate_object("x", OfferScoringResult)

    @pytest.mark.asyncio
    async def test_api_error_becomes_dependency_error(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=anthropic.APIConnectionError(
            request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"),
        ))
        with pytest.raises(DependencyError) as exc_info:
            await TextGenerator(client).generate_text("x")
        assert exc_info.value.service == "anthropic"

    @pytest.mark.asyncio
    async def test_empty_content_gives_empty_text(self):
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[], usage=SimpleNamespace(input_tokens=0, output_tokens=0),
        ))
        assert await TextGenerator(client).generate_text("x") == ""
