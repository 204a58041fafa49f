from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from taleweaver.models import GameState


logger = logging.getLogger(__name__)

Updater = Callable[[GameState], Awaitable[None]]


class StateStore:
    """Holds the single committed GameState and serializes changes to it.

    `run_exclusive` is the transactional path: the updater gets a private deep
    copy (the draft) and may await freely between mutations. Only a completed
    updater publishes; anything else puts back the state from before the call.

    `set` is the immediate, non-transactional path. A `set` that lands while a
    transaction is in flight is overwritten when that transaction commits or
    rolls back, so a turn's outcome never depends on such interleaving.
    """

    def __init__(self, initial: GameState | None = None):
        self._state = (initial or GameState()).model_copy(deep=True)
        self._lock = asyncio.Lock()

    @property
    def state(self) -> GameState:
        """The committed snapshot. Treat as read-only."""

        return self._state

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def set(self, update: GameState | Callable[[GameState], None]) -> None:
        if isinstance(update, GameState):
            self._state = update.model_copy(deep=True)
            return
        draft = self._state.model_copy(deep=True)
        update(draft)
        self._state = draft

    async def run_exclusive(self, updater: Updater) -> None:
        async with self._lock:
            before = self._state
            draft = before.model_copy(deep=True)
            try:
                await updater(draft)
            except BaseException:
                # Cancellation included: the draft never becomes visible.
                self._state = before
                logger.debug("transaction rolled back (view=%s)", before.view)
                raise
            # Snapshot so a draft reference kept by the updater can't leak writes.
            self._state = draft.model_copy(deep=True)
            logger.debug("transaction committed (view=%s)", self._state.view)
