from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import pytest

from scripted import ScriptedBackend
from taleweaver.settings import EngineSettings


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    This makes OPENAI_BASE_URL / OPENAI_MODEL available to the env-gated AG2
    test without exporting them in your shell.

    In CI, we *don't* auto-load `.env` by default, so integration tests that need
    a live model stay skipped unless explicitly opted-in.
    """

    # Opt-in on CI with: TALEWEAVER_LOAD_DOTENV_FOR_TESTS=1
    if os.environ.get("CI") and os.environ.get("TALEWEAVER_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)

    # If using a local OpenAI-compatible endpoint, some clients require a key string.
    if os.environ.get("OPENAI_BASE_URL") and not os.environ.get("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = "ollama"


@pytest.fixture()
def settings() -> EngineSettings:
    # No throttling: every progress update is observable.
    return EngineSettings(update_interval_ms=0)


@pytest.fixture()
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture()
def client_and_redis(backend: ScriptedBackend, settings: EngineSettings):
    """FastAPI TestClient on fakeredis, with every session using `backend`."""

    import fakeredis
    from fastapi.testclient import TestClient

    from taleweaver.api.deps import get_redis, get_sessions
    from taleweaver.main import app
    from taleweaver.sessions import SessionManager

    r = fakeredis.FakeRedis(decode_responses=True)
    sessions = SessionManager(backend_factory=lambda: backend, settings=settings)

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    app.dependency_overrides[get_sessions] = lambda: sessions
    with TestClient(app) as c:
        yield c, r
    app.dependency_overrides.clear()
