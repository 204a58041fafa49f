from __future__ import annotations

import os
from dataclasses import dataclass


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().casefold() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class EngineSettings:
    # Upper bound on the estimated size of the story history in each prompt.
    context_token_budget: int = 6000
    # Minimum spacing of streaming progress updates.
    update_interval_ms: int = 200
    log_prompts: bool = False
    log_responses: bool = False
    # Sampling params sent with each backend call.
    log_params: bool = False
    log_level: str = "INFO"


def settings_from_env() -> EngineSettings:
    return EngineSettings(
        context_token_budget=int(os.environ.get("TALEWEAVER_CONTEXT_TOKEN_BUDGET", "6000")),
        update_interval_ms=int(os.environ.get("TALEWEAVER_UPDATE_INTERVAL_MS", "200")),
        log_prompts=_env_flag("TALEWEAVER_LOG_PROMPTS"),
        log_responses=_env_flag("TALEWEAVER_LOG_RESPONSES"),
        log_params=_env_flag("TALEWEAVER_LOG_PARAMS"),
        log_level=os.environ.get("TALEWEAVER_LOG_LEVEL", "INFO").upper(),
    )
