from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any


class Throttle:
    """Rate-limit a callback to one call per `interval_ms`.

    The first call goes through immediately; calls arriving inside the interval
    only replace the pending arguments. `flush()` delivers the pending call (if
    any) so the last update is never lost; `cancel()` drops it.
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        interval_ms: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fn = fn
        self._interval = interval_ms / 1000
        self._clock = clock
        self._last: float | None = None
        self._pending: tuple[Any, ...] | None = None

    def __call__(self, *args: Any) -> None:
        now = self._clock()
        if self._last is None or now - self._last >= self._interval:
            self._pending = None
            self._last = now
            self._fn(*args)
        else:
            self._pending = args

    def flush(self) -> None:
        if self._pending is None:
            return
        args, self._pending = self._pending, None
        self._last = self._clock()
        self._fn(*args)

    def cancel(self) -> None:
        self._pending = None
