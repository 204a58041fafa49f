from __future__ import annotations

from typing import TypeAlias

from pydantic import BaseModel, Field


class CheckDefinition(BaseModel):
    """A mechanical check requested for an action (skill, attribute, ...)."""

    type: str
    difficulty_class: int
    modifiers: list[str] = Field(default_factory=list)


class CheckResolutionResult(BaseModel):
    success: bool
    # Factual outcome to fold into the narration prompt.
    result_statement: str = ""
    consequences_applied: list[str] = Field(default_factory=list)


class RaceDefinition(BaseModel):
    name: str
    description: str = ""


class ClassDefinition(BaseModel):
    name: str
    description: str = ""


# Any object can act as a rule provider. Each capability below is optional,
# looked up by name, and may be a plain or an async method:
#
#   biography_guidance() -> str
#   modify_protagonist_prompt(prompt) -> Prompt
#   list_races() -> list[RaceDefinition]
#   list_classes() -> list[ClassDefinition]
#   derive_checks(action, state) -> list[CheckDefinition]
#   resolve_check(check, character, state, action) -> CheckResolutionResult
#   narrative_guidance(event_type, state, results, action) -> list[str]
#   available_actions() -> list[str]
#
# `state` is the transaction draft. Providers may keep private state of their
# own (combat mode, encounters, ...); the engine never reads it.
RuleProvider: TypeAlias = object

CAPABILITIES: tuple[str, ...] = (
    "biography_guidance",
    "modify_protagonist_prompt",
    "list_races",
    "list_classes",
    "derive_checks",
    "resolve_check",
    "narrative_guidance",
    "available_actions",
)


class CharacterOptions(BaseModel):
    """Races and classes offered on the character screen."""

    races: list[RaceDefinition] = Field(default_factory=list)
    classes: list[ClassDefinition] = Field(default_factory=list)
