from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any

import pytest

import taleweaver.backends.ag2_backend as ag2_backend
from taleweaver.backends.ag2_backend import Ag2Backend
from taleweaver.backends.autogen_config import (
    GENERATION_PARAMS,
    NARRATION_PARAMS,
    EndpointSettings,
    LLMConfigs,
    llm_config_for,
    sampling_from_env,
)
from taleweaver.backends.base import PROBE_SENTINEL
from taleweaver.errors import BackendAbortError, BackendError
from taleweaver.models import World
from taleweaver.prompts import Prompt
from taleweaver.settings import EngineSettings


class _FakeResult:
    def __init__(self, content: str):
        self.messages = [{"role": "user", "content": "ignored"}, {"role": "assistant", "content": content}]
        self.summary = content

    def process(self) -> None:
        return None


class _FakeAgent:
    reply: str = ""
    calls: list[dict[str, Any]] = []
    entered: threading.Event | None = None
    release: threading.Event | None = None

    def __init__(self, *, name: str, system_message: str, llm_config: Any, human_input_mode: str):
        self.name = name
        self.system_message = system_message
        self.llm_config = llm_config

    def run(self, *, message: str, max_turns: int, **kwargs: Any) -> _FakeResult:
        _FakeAgent.calls.append(
            {
                "system": self.system_message,
                "llm_config": self.llm_config,
                "message": message,
                "max_turns": max_turns,
                **kwargs,
            }
        )
        if _FakeAgent.entered is not None:
            _FakeAgent.entered.set()
        if _FakeAgent.release is not None:
            _FakeAgent.release.wait(timeout=5)
        return _FakeResult(_FakeAgent.reply)


@pytest.fixture()
def fake_agent(monkeypatch: pytest.MonkeyPatch) -> type[_FakeAgent]:
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.delenv("OPENAI_BASE_URL", raising=False)
    monkeypatch.setattr(ag2_backend, "ConversableAgent", _FakeAgent)
    monkeypatch.setattr(
        ag2_backend,
        "llm_configs_from_env",
        lambda **_: LLMConfigs(generation="generation-config", narration="narration-config"),
    )
    _FakeAgent.reply = ""
    _FakeAgent.calls = []
    _FakeAgent.entered = None
    _FakeAgent.release = None
    return _FakeAgent


def _backend(settings: EngineSettings | None = None) -> Ag2Backend:
    return Ag2Backend(name="narrator", model="gpt-4o-mini", settings=settings or EngineSettings())


async def test_structured_generate_requests_wrapped_json_schema(fake_agent: type[_FakeAgent]) -> None:
    fake_agent.reply = json.dumps({"value": {"name": "Thornvale", "description": "Misty."}})
    tokens: list[tuple[str, int]] = []

    world = await _backend().structured_generate(
        Prompt(system="You are a game master.", user="Make a world."),
        World,
        lambda token, count: tokens.append((token, count)),
    )

    assert world == World(name="Thornvale", description="Misty.")
    call = fake_agent.calls[0]
    assert call["system"] == "You are a game master."
    assert call["message"] == "Make a world."
    assert call["max_turns"] == 1
    response_format = call["response_format"]
    assert response_format["type"] == "json_schema"
    assert response_format["json_schema"]["name"] == "response"
    schema = response_format["json_schema"]["schema"]
    assert schema["required"] == ["value"]
    assert schema["properties"]["value"]["title"] == "World"
    assert tokens[0] == ("", 0)
    assert tokens[-1][1] == 1


async def test_probe_returns_sentinel(fake_agent: type[_FakeAgent]) -> None:
    fake_agent.reply = json.dumps({"value": PROBE_SENTINEL})

    assert await _backend().probe() == PROBE_SENTINEL


@pytest.mark.parametrize("reply", ["not json", json.dumps({"answer": 1}), json.dumps({"value": {"name": "x"}})])
async def test_bad_structured_replies_become_backend_errors(fake_agent: type[_FakeAgent], reply: str) -> None:
    fake_agent.reply = reply

    with pytest.raises(BackendError):
        await _backend().structured_generate(Prompt(system="s", user="u"), World)


async def test_narrate_yields_whole_reply(fake_agent: type[_FakeAgent]) -> None:
    fake_agent.reply = "The fire crackles."

    chunks = [chunk async for chunk in _backend().narrate(Prompt(system="s", user="u"))]

    assert chunks == ["The fire crackles."]
    assert "response_format" not in fake_agent.calls[0]


async def test_abort_cancels_inflight_call(fake_agent: type[_FakeAgent]) -> None:
    fake_agent.reply = json.dumps({"value": "late"})
    fake_agent.entered = threading.Event()
    fake_agent.release = threading.Event()
    backend = _backend()

    task = asyncio.create_task(backend.structured_generate(Prompt(system="s", user="u"), str))
    while not fake_agent.entered.is_set():
        await asyncio.sleep(0.01)
    backend.abort()

    try:
        with pytest.raises(BackendAbortError) as info:
            await task
    finally:
        fake_agent.release.set()

    assert backend.is_abort_error(info.value)
    assert not backend.is_abort_error(BackendError("other"))


async def test_each_kind_of_call_gets_its_own_sampling_params(fake_agent: type[_FakeAgent]) -> None:
    backend = _backend()

    fake_agent.reply = json.dumps({"value": "yes"})
    await backend.structured_generate(Prompt(system="s", user="u"), str)
    fake_agent.reply = "You wait."
    _ = [chunk async for chunk in backend.narrate(Prompt(system="s", user="u"))]

    structured, narration = fake_agent.calls
    assert structured["llm_config"] == "generation-config"
    assert "extra_body" not in structured
    assert narration["llm_config"] == "narration-config"
    assert narration["extra_body"] == {"min_p": 0.03, "dry_multiplier": 0.8}


async def test_sampling_params_are_logged_when_enabled(
    fake_agent: type[_FakeAgent],
    caplog: pytest.LogCaptureFixture,
) -> None:
    fake_agent.reply = "You wait."
    backend = _backend(EngineSettings(log_params=True))

    with caplog.at_level(logging.INFO, logger="taleweaver.backends.ag2_backend"):
        _ = [chunk async for chunk in backend.narrate(Prompt(system="s", user="u"))]

    assert "'temperature': 0.6" in caplog.text
    assert "'min_p': 0.03" in caplog.text


def test_default_sampling_params() -> None:
    assert GENERATION_PARAMS.as_dict() == {"temperature": 0.5}
    assert NARRATION_PARAMS.as_dict() == {"temperature": 0.6, "min_p": 0.03, "dry_multiplier": 0.8}


def test_sampling_temperatures_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TALEWEAVER_GENERATION_TEMPERATURE", "0.1")
    monkeypatch.setenv("TALEWEAVER_NARRATION_TEMPERATURE", "0.9")

    generation, narration = sampling_from_env()

    assert generation.temperature == 0.1
    assert narration.temperature == 0.9
    assert narration.extra == NARRATION_PARAMS.extra


def test_llm_config_needs_a_key_or_local_endpoint() -> None:
    endpoint = EndpointSettings(model="gpt-4o-mini", base_url=None, api_key=None)

    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        llm_config_for(endpoint, GENERATION_PARAMS)
