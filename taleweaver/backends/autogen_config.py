from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

from autogen import LLMConfig


@dataclass(frozen=True, slots=True)
class SamplingParams:
    """Sampler settings for one kind of call."""

    temperature: float
    # Samplers outside the OpenAI API (llama.cpp, vLLM, ...); sent as `extra_body`.
    extra: dict[str, float] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"temperature": self.temperature, **self.extra}


GENERATION_PARAMS = SamplingParams(temperature=0.5)
NARRATION_PARAMS = SamplingParams(temperature=0.6, extra={"min_p": 0.03, "dry_multiplier": 0.8})


@dataclass(frozen=True, slots=True)
class EndpointSettings:
    model: str
    base_url: str | None
    api_key: str | None


def endpoint_from_env(*, default_model: str) -> EndpointSettings:
    base_url = os.environ.get("OPENAI_BASE_URL")
    return EndpointSettings(
        model=os.environ.get("OPENAI_MODEL", default_model),
        base_url=base_url,
        # Local OpenAI-compatible servers (Ollama, llama.cpp) ignore the key but the client wants one.
        api_key=os.environ.get("OPENAI_API_KEY") or ("ollama" if base_url else None),
    )


def sampling_from_env() -> tuple[SamplingParams, SamplingParams]:
    """(generation, narration) params, temperatures overridable from the environment."""

    generation = SamplingParams(
        temperature=float(os.environ.get("TALEWEAVER_GENERATION_TEMPERATURE", GENERATION_PARAMS.temperature)),
        extra=dict(GENERATION_PARAMS.extra),
    )
    narration = SamplingParams(
        temperature=float(os.environ.get("TALEWEAVER_NARRATION_TEMPERATURE", NARRATION_PARAMS.temperature)),
        extra=dict(NARRATION_PARAMS.extra),
    )
    return generation, narration


def llm_config_for(endpoint: EndpointSettings, params: SamplingParams) -> LLMConfig:
    if not endpoint.api_key:
        raise RuntimeError(
            "Set OPENAI_API_KEY for hosted OpenAI, or set OPENAI_BASE_URL for a local OpenAI-compatible server"
        )

    entry: dict[str, Any] = {"model": endpoint.model, "api_key": endpoint.api_key}
    if endpoint.base_url:
        entry["base_url"] = endpoint.base_url
    return LLMConfig(config_list=[entry], temperature=params.temperature)


@dataclass(frozen=True, slots=True)
class LLMConfigs:
    """One AG2 config per kind of call."""

    generation: LLMConfig
    narration: LLMConfig


def llm_configs_from_env(
    *,
    default_model: str,
    generation: SamplingParams = GENERATION_PARAMS,
    narration: SamplingParams = NARRATION_PARAMS,
) -> LLMConfigs:
    endpoint = endpoint_from_env(default_model=default_model)
    return LLMConfigs(
        generation=llm_config_for(endpoint, generation),
        narration=llm_config_for(endpoint, narration),
    )
