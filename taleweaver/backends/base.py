from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

from taleweaver.prompts import Prompt


# Reply a backend must give to the connection probe.
PROBE_SENTINEL = "taleweaver"

TokenCallback = Callable[[str, int], None]


class Backend(Protocol):
    name: str

    def narrate(self, prompt: Prompt) -> AsyncIterator[str]:  # pragma: no cover
        """Stream narration text chunk by chunk."""
        ...

    async def structured_generate(
        self,
        prompt: Prompt,
        schema: Any,
        on_token: TokenCallback | None = None,
    ) -> Any:  # pragma: no cover
        """Return an object already validated against `schema` (a type pydantic can validate)."""
        ...

    async def probe(self) -> str:  # pragma: no cover
        ...

    def abort(self) -> None:  # pragma: no cover
        ...

    def is_abort_error(self, error: BaseException) -> bool:  # pragma: no cover
        ...
