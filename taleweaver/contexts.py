from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from taleweaver.backends.base import Backend
from taleweaver.models import GameState, Location
from taleweaver.rules.registry import ProviderRegistry
from taleweaver.settings import EngineSettings, settings_from_env
from taleweaver.state_store import StateStore


class LocationChangeListener(Protocol):
    async def on_location_change(self, location: Location, state: GameState) -> None:  # pragma: no cover
        """Called inside the running transaction; may mutate the draft `state`."""
        ...


@dataclass(slots=True)
class SessionContext:
    """Everything one session's engine works with, passed in explicitly."""

    store: StateStore
    backend: Backend
    providers: ProviderRegistry = field(default_factory=ProviderRegistry)
    location_listeners: list[LocationChangeListener] = field(default_factory=list)
    settings: EngineSettings = field(default_factory=EngineSettings)


def make_session_context(
    *,
    backend: Backend,
    state: GameState | None = None,
    providers: ProviderRegistry | None = None,
    location_listeners: list[LocationChangeListener] | None = None,
    settings: EngineSettings | None = None,
) -> SessionContext:
    """Construct a session context; settings default to the environment."""

    return SessionContext(
        store=StateStore(state),
        backend=backend,
        providers=providers if providers is not None else ProviderRegistry(),
        location_listeners=list(location_listeners or []),
        settings=settings or settings_from_env(),
    )
