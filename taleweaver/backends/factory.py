from __future__ import annotations

import os
from typing import cast

from taleweaver.backends.ag2_backend import Ag2Backend
from taleweaver.backends.autogen_config import sampling_from_env
from taleweaver.backends.base import Backend
from taleweaver.settings import EngineSettings, settings_from_env


def create_default_backend(*, settings: EngineSettings | None = None) -> Backend:
    """Create the default LLM backend (AG2, model from OPENAI_MODEL)."""

    model = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    generation, narration = sampling_from_env()
    backend = Ag2Backend(
        name="narrator",
        model=model,
        settings=settings or settings_from_env(),
        generation=generation,
        narration=narration,
    )
    return cast(Backend, backend)
