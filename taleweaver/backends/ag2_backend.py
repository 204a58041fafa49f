from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Literal

from autogen import ConversableAgent
from pydantic import TypeAdapter, ValidationError

from taleweaver.backends.autogen_config import (
    GENERATION_PARAMS,
    NARRATION_PARAMS,
    SamplingParams,
    llm_configs_from_env,
)
from taleweaver.backends.base import PROBE_SENTINEL, TokenCallback
from taleweaver.backends.json_schema import JsonSchema, wrapped_schema_for
from taleweaver.errors import BackendAbortError, BackendError
from taleweaver.prompts import Prompt
from taleweaver.settings import EngineSettings


logger = logging.getLogger(__name__)


def _extract_last_content(messages: object) -> str:
    """Extract the last message content from AG2 chat history."""

    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


@dataclass(slots=True)
class Ag2Backend:
    """Backend on the documented AG2 (`autogen`) API.

    Each request is a one-turn chat with a fresh ConversableAgent whose system
    message is the prompt's system part. AG2 calls block, so they run in a
    worker thread; `abort()` cancels the awaiting side and the caller sees
    BackendAbortError.

    Environment variables supported:
    - OPENAI_MODEL
    - OPENAI_API_KEY (optional if OPENAI_BASE_URL is set)
    - OPENAI_BASE_URL (for OpenAI-compatible servers like Ollama, e.g. http://127.0.0.1:11434/v1)

    Structured calls use the `generation` sampling params, narration uses
    `narration`; each kind gets its own LLMConfig.
    """

    name: str
    model: str
    settings: EngineSettings = field(default_factory=EngineSettings)
    generation: SamplingParams = GENERATION_PARAMS
    narration: SamplingParams = NARRATION_PARAMS
    _inflight: set[asyncio.Future[str]] = field(default_factory=set)
    _abort_requested: bool = False

    def _complete(self, prompt: Prompt, params: SamplingParams, structured_output: JsonSchema | None) -> str:
        configs = llm_configs_from_env(default_model=self.model, generation=self.generation, narration=self.narration)
        llm_config = configs.narration if structured_output is None else configs.generation

        agent = ConversableAgent(
            name=self.name,
            system_message=prompt.system,
            llm_config=llm_config,
            human_input_mode="NEVER",
        )

        # OpenAI-style structured outputs: AG2 forwards unknown kwargs to the client.
        extra: dict[str, Any] = {}
        if structured_output is not None:
            extra["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": structured_output.name,
                    "schema": structured_output.schema,
                    "strict": structured_output.strict,
                },
            }
        if params.extra:
            extra["extra_body"] = dict(params.extra)

        result = agent.run(message=prompt.user, max_turns=1, **extra)
        result.process()

        text = _extract_last_content(list(result.messages))
        if not text:
            summary = result.summary
            if isinstance(summary, str):
                text = summary.strip()
        return text

    async def _request(self, prompt: Prompt, structured_output: JsonSchema | None = None) -> str:
        params = self.narration if structured_output is None else self.generation
        if self.settings.log_prompts:
            logger.info("prompt:\n%s", prompt.user)
        if self.settings.log_params:
            logger.info("params: %s", params.as_dict())

        task = asyncio.ensure_future(asyncio.to_thread(self._complete, prompt, params, structured_output))
        self._inflight.add(task)
        try:
            text = await task
        except asyncio.CancelledError as e:
            if self._abort_requested:
                raise BackendAbortError("Generation aborted") from e
            raise
        except Exception as e:
            raise BackendError(f"Backend request failed: {e}") from e
        finally:
            self._inflight.discard(task)
            if not self._inflight:
                self._abort_requested = False

        if self.settings.log_responses:
            logger.info("response:\n%s", text)
        return text

    async def narrate(self, prompt: Prompt) -> AsyncIterator[str]:
        # AG2's run() returns the whole reply; it arrives as a single chunk.
        text = await self._request(prompt)
        if text:
            yield text

    async def structured_generate(
        self,
        prompt: Prompt,
        schema: Any,
        on_token: TokenCallback | None = None,
    ) -> Any:
        if on_token is not None:
            on_token("", 0)

        response_schema = wrapped_schema_for("response", schema)
        text = await self._request(prompt, response_schema)

        if on_token is not None:
            on_token(text, 1)

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise BackendError(f"Backend returned invalid JSON: {text[:200]!r}") from e
        if not isinstance(payload, dict) or "value" not in payload:
            raise BackendError("Backend response is missing the 'value' field")

        try:
            return TypeAdapter(schema).validate_python(payload["value"])
        except ValidationError as e:
            raise BackendError(f"Backend response does not match schema: {e}") from e

    async def probe(self) -> str:
        return await self.structured_generate(
            Prompt(system="test", user="test"),
            Literal[PROBE_SENTINEL],  # type: ignore[valid-type]
        )

    def abort(self) -> None:
        if not self._inflight:
            return
        self._abort_requested = True
        for task in list(self._inflight):
            task.cancel()

    def is_abort_error(self, error: BaseException) -> bool:
        return isinstance(error, BackendAbortError)
