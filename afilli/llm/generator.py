"""
Text and structured generation over the Anthropic Messages API.

Two calls cover every task handler:
- generate_text(prompt, system): free text
- generate_object(prompt, schema): a reply validated into a Pydantic model

Structured generation asks for a single JSON object matching the model's
JSON schema, strips any Markdown code fence around the reply, and
validates it. A reply that does not validate raises TaskExecutionError,
so the task fails instead of writing partial data.

Usage:
    generator = TextGenerator(anthropic.AsyncAnthropic(), config.llm)
    result = await generator.generate_object(prompt, OfferScoringResult)
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Optional, Type, TypeVar

import anthropic
from pydantic import BaseModel, ValidationError

from afilli.config.schema import LLMConfig
from afilli.exceptions import DependencyError, TaskExecutionError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

STRUCTURED_SYSTEM_PROMPT = (
    "You produce machine-readable output. Reply with exactly one JSON "
    "object that satisfies the JSON schema you are given. Do not add "
    "commentary before or after the JSON."
)


def extract_json(text: str) -> str:
    """Pull the JSON object out of a model reply."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1)
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return text


class TextGenerator:
    """Thin async wrapper over an Anthropic client."""

    def __init__(
        self,
        client: Any,
        config: Optional[LLMConfig] = None,
    ):
        self._client = client
        self._config = config or LLMConfig()

    async def _call(self, system: str, prompt: str) -> str:
        start = time.monotonic()
        try:
            response = await self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            raise DependencyError(
                f"LLM request failed: {e.message}",
                service="anthropic",
                status_code=e.status_code,
            ) from e
        except anthropic.APIError as e:
            raise DependencyError(
                f"LLM request failed: {e}", service="anthropic"
            ) from e

        logger.debug(
            "llm_call_completed",
            extra={
                "model": self._config.model,
                "duration_ms": round((time.monotonic() - start) * 1000),
                "input_tokens": getattr(response.usage, "input_tokens", 0),
                "output_tokens": getattr(response.usage, "output_tokens", 0),
            },
        )
        return response.content[0].text if response.content else ""

    async def generate_text(
        self, prompt: str, system: Optional[str] = None
    ) -> str:
        return await self._call(system or "You are a helpful assistant.", prompt)

    async def generate_object(
        self,
        prompt: str,
        schema: Type[T],
        system: Optional[str] = None,
    ) -> T:
        schema_json = json.dumps(schema.model_json_schema(), indent=2)
        full_prompt = (
            f"{prompt}\n\n"
            f"Respond with a JSON object matching this schema:\n{schema_json}"
        )
        system_prompt = STRUCTURED_SYSTEM_PROMPT
        if system:
            system_prompt = f"{system}\n\n{STRUCTURED_SYSTEM_PROMPT}"

        text = await self._call(system_prompt, full_prompt)
        try:
            return schema.model_validate_json(extract_json(text))
        except ValidationError as e:
            logger.warning(
                "llm_structured_reply_invalid",
                extra={"schema": schema.__name__, "error": str(e)[:500]},
            )
            raise TaskExecutionError(
                f"LLM reply did not match {schema.__name__}",
                details={"errors": e.errors(include_url=False)[:5]},
            ) from e
