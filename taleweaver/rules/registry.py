from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class ProviderRegistration:
    name: str
    provider: Any
    enabled: bool = True
    # Marks the provider the player selected for this session.
    active: bool = False


class ProviderRegistry:
    """Rule providers in registration order.

    Loading/discovering providers happens elsewhere; this only records them and
    their enabled/active flags.
    """

    def __init__(self) -> None:
        self._entries: list[ProviderRegistration] = []

    def __iter__(self) -> Iterator[ProviderRegistration]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def register(self, name: str, provider: Any, *, enabled: bool = True, active: bool = False) -> ProviderRegistration:
        if any(e.name == name for e in self._entries):
            raise ValueError(f"Rule provider already registered: {name}")
        entry = ProviderRegistration(name=name, provider=provider, enabled=enabled, active=active)
        self._entries.append(entry)
        return entry

    def get(self, name: str) -> ProviderRegistration:
        for entry in self._entries:
            if entry.name == name:
                return entry
        raise KeyError(f"Rule provider not found: {name}")

    def set_active(self, name: str, active: bool) -> None:
        self.get(name).active = active

    def set_enabled(self, name: str, enabled: bool) -> None:
        self.get(name).enabled = enabled
