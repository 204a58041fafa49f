from __future__ import annotations

from collections.abc import Sequence

from taleweaver.models import Character, GameState
from taleweaver.prompts import Prompt
from taleweaver.rules.base import CheckDefinition, CheckResolutionResult, ClassDefinition, RaceDefinition


class DefaultRuleProvider:
    """Neutral rules: no checks, no extra guidance, prompts pass through."""

    name = "default"

    def biography_guidance(self) -> str:
        return ""

    def modify_protagonist_prompt(self, prompt: Prompt) -> Prompt:
        return prompt

    def list_races(self) -> list[RaceDefinition]:
        return []

    def list_classes(self) -> list[ClassDefinition]:
        return []

    def derive_checks(self, action: str, state: GameState) -> list[CheckDefinition]:
        return []

    def resolve_check(
        self,
        check: CheckDefinition,
        character: Character,
        state: GameState,
        action: str | None = None,
    ) -> CheckResolutionResult:
        return CheckResolutionResult(success=True, result_statement="", consequences_applied=[])

    def narrative_guidance(
        self,
        event_type: str,
        state: GameState,
        results: Sequence[CheckResolutionResult],
        action: str | None = None,
    ) -> list[str]:
        return [r.result_statement for r in results if r.result_statement]

    def available_actions(self) -> list[str]:
        return []


DEFAULT_PROVIDER = DefaultRuleProvider()
