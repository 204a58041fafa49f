from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import UUID

import redis

from taleweaver.backends.base import Backend
from taleweaver.backends.factory import create_default_backend
from taleweaver.contexts import make_session_context
from taleweaver.engine import SessionEngine
from taleweaver.rules.registry import ProviderRegistry
from taleweaver.session_store import require_session
from taleweaver.settings import EngineSettings, settings_from_env


logger = logging.getLogger(__name__)


class SessionManager:
    """In-process cache of one SessionEngine per session.

    Redis holds the committed state; the engine (and with it the session's
    transaction lock and backend) lives here so concurrent requests for one
    session serialize on the same store.
    """

    def __init__(
        self,
        *,
        backend_factory: Callable[[], Backend] | None = None,
        registry_factory: Callable[[], ProviderRegistry] = ProviderRegistry,
        settings: EngineSettings | None = None,
    ):
        self.settings = settings or settings_from_env()
        self._backend_factory = backend_factory or (lambda: create_default_backend(settings=self.settings))
        self._registry_factory = registry_factory
        self._engines: dict[UUID, SessionEngine] = {}

    def engine_for(self, *, r: redis.Redis, session_id: UUID) -> SessionEngine:
        engine = self._engines.get(session_id)
        if engine is not None:
            return engine

        record = require_session(r=r, session_id=session_id)
        ctx = make_session_context(
            backend=self._backend_factory(),
            state=record.state,
            providers=self._registry_factory(),
            settings=self.settings,
        )
        engine = SessionEngine(ctx)
        self._engines[session_id] = engine
        logger.info("loaded session %s at '%s'", session_id, record.state.view.value)
        return engine

    def forget(self, session_id: UUID) -> None:
        """Drop the cached engine, cancelling any turn it is running."""

        engine = self._engines.pop(session_id, None)
        if engine is not None:
            engine.abort()
            logger.info("forgot session %s", session_id)
