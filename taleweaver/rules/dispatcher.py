from __future__ import annotations

import inspect
import logging
from collections.abc import Sequence
from typing import Any

from pydantic import TypeAdapter

from taleweaver.errors import BackendAbortError, ProviderCapabilityError
from taleweaver.models import Character, GameState
from taleweaver.prompts import Prompt
from taleweaver.rules.base import (
    CheckDefinition,
    CheckResolutionResult,
    ClassDefinition,
    RaceDefinition,
    RuleProvider,
)
from taleweaver.rules.default import DEFAULT_PROVIDER
from taleweaver.rules.registry import ProviderRegistration, ProviderRegistry


logger = logging.getLogger(__name__)


_ADAPTERS: dict[str, TypeAdapter[Any]] = {
    "biography_guidance": TypeAdapter(str),
    "list_races": TypeAdapter(list[RaceDefinition]),
    "list_classes": TypeAdapter(list[ClassDefinition]),
    "derive_checks": TypeAdapter(list[CheckDefinition]),
    "resolve_check": TypeAdapter(CheckResolutionResult),
    "narrative_guidance": TypeAdapter(list[str]),
    "available_actions": TypeAdapter(list[str]),
}


def _coerce(capability: str, value: Any) -> Any:
    if capability == "modify_protagonist_prompt":
        if not isinstance(value, Prompt):
            raise TypeError(f"expected Prompt, got {type(value).__name__}")
        return value
    return _ADAPTERS[capability].validate_python(value)


def _select_registration(registry: ProviderRegistry) -> ProviderRegistration | None:
    for entry in registry:
        if entry.enabled and entry.active:
            return entry
    return None


def select_provider(registry: ProviderRegistry) -> RuleProvider:
    """First enabled+active provider in registration order, else the neutral default."""

    entry = _select_registration(registry)
    return entry.provider if entry is not None else DEFAULT_PROVIDER


class RuleDispatcher:
    """Calls rule capabilities without ever letting a provider break a turn.

    A capability the provider lacks, raises from, or answers with a value of
    the wrong shape yields the neutral default for that call. Only
    BackendAbortError is let through so cancellation stays clean.
    """

    def __init__(self, provider: RuleProvider, *, name: str = "default"):
        self.provider = provider
        self.name = name

    @classmethod
    def for_registry(cls, registry: ProviderRegistry) -> "RuleDispatcher":
        entry = _select_registration(registry)
        if entry is None:
            logger.info("Using default rule logic")
            return cls(DEFAULT_PROVIDER)
        logger.info("Using rule logic from provider: %s", entry.name)
        return cls(entry.provider, name=entry.name)

    @property
    def is_default(self) -> bool:
        return self.provider is DEFAULT_PROVIDER

    async def _invoke(self, capability: str, *args: Any) -> Any:
        fallback = getattr(DEFAULT_PROVIDER, capability)
        method = getattr(self.provider, capability, None)
        if method is None or not callable(method):
            return fallback(*args)

        try:
            result = method(*args)
            if inspect.isawaitable(result):
                result = await result
            return _coerce(capability, result)
        except BackendAbortError:
            raise
        except Exception as e:
            err = ProviderCapabilityError(provider=self.name, capability=capability, cause=e)
            logger.warning("%s; using neutral default", err, exc_info=e)
            return fallback(*args)

    async def biography_guidance(self) -> str:
        return await self._invoke("biography_guidance")

    async def modify_protagonist_prompt(self, prompt: Prompt) -> Prompt:
        return await self._invoke("modify_protagonist_prompt", prompt)

    async def list_races(self) -> list[RaceDefinition]:
        return await self._invoke("list_races")

    async def list_classes(self) -> list[ClassDefinition]:
        return await self._invoke("list_classes")

    async def derive_checks(self, action: str, state: GameState) -> list[CheckDefinition]:
        return await self._invoke("derive_checks", action, state)

    async def resolve_check(
        self,
        check: CheckDefinition,
        character: Character,
        state: GameState,
        action: str | None = None,
    ) -> CheckResolutionResult:
        result = await self._invoke("resolve_check", check, character, state, action)
        logger.debug("check %s resolved: %s", check.type, result.result_statement)
        return result

    async def narrative_guidance(
        self,
        event_type: str,
        state: GameState,
        results: Sequence[CheckResolutionResult],
        action: str | None = None,
    ) -> list[str]:
        return await self._invoke("narrative_guidance", event_type, state, list(results), action)

    async def available_actions(self) -> list[str]:
        return await self._invoke("available_actions")
