from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import get_args

from taleweaver.core.context import assemble_context
from taleweaver.models import GameState, LocationChangeEvent, LocationType


class PromptLoadError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Prompt:
    system: str
    user: str


_SINGLE_NEWLINE = re.compile(r"(?<!\n)\n(?!\n)")


def templates_dir() -> Path:
    return Path(__file__).resolve().parent / "templates"


@lru_cache(maxsize=None)
def load_prompt(name: str) -> str:
    """Load a prompt template from `taleweaver/templates/`.

    Example:
        load_prompt("narrate.txt")
    """

    path = templates_dir() / name
    try:
        return path.read_text(encoding="utf-8").strip() + "\n"
    except FileNotFoundError as e:
        raise PromptLoadError(f"Prompt not found: {path}") from e


def normalize(text: str) -> str:
    """Fold hard-wrapped lines into spaces; blank lines stay paragraph breaks."""

    return _SINGLE_NEWLINE.sub(" ", text).strip()


def render_prompt(name: str, **fields: object) -> str:
    # Normalize the template before substitution so inserted text stays verbatim.
    return normalize(load_prompt(name)).format(**fields).strip()


def make_prompt(user: str) -> Prompt:
    return Prompt(system=load_prompt("system.txt").strip(), user=user)


def location_change_text(state: GameState, event: LocationChangeEvent) -> str:
    location = state.locations[event.location_index]
    present = "\n\n".join(
        f"{state.characters[i].name}: {state.characters[i].biography}" for i in event.present_character_indices
    )
    return (
        load_prompt("location_change.txt")
        .format(
            protagonist_name=state.protagonist.name,
            location_name=location.name,
            location_description=location.description,
            present_characters=present,
        )
        .strip()
    )


def story_context(state: GameState, *, token_budget: int) -> str:
    return assemble_context(
        state.events,
        token_budget,
        describe_location_change=lambda event: location_change_text(state, event),
    )


def _main_prompt(state: GameState, instructions: str, *, token_budget: int) -> Prompt:
    return make_prompt(
        render_prompt(
            "main.txt",
            world_name=state.world.name,
            world_description=state.world.description,
            protagonist_name=state.protagonist.name,
            protagonist_biography=state.protagonist.biography,
            history=story_context(state, token_budget=token_budget),
            instructions=instructions,
        )
    )


def world_prompt() -> Prompt:
    return make_prompt(render_prompt("world.txt"))


def protagonist_prompt(state: GameState, guidance: str = "") -> Prompt:
    return make_prompt(
        render_prompt(
            "protagonist.txt",
            gender=state.protagonist.gender,
            race=state.protagonist.race,
            world_name=state.world.name,
            world_description=state.world.description,
            guidance=guidance.strip(),
        )
    )


def starting_location_prompt(state: GameState) -> Prompt:
    return make_prompt(
        render_prompt(
            "starting_location.txt",
            world_name=state.world.name,
            world_description=state.world.description,
            location_types=", ".join(get_args(LocationType)),
        )
    )


def starting_characters_prompt(state: GameState, *, count: int) -> Prompt:
    location = state.current_location
    return make_prompt(
        render_prompt(
            "starting_characters.txt",
            world_name=state.world.name,
            world_description=state.world.description,
            protagonist_name=state.protagonist.name,
            protagonist_biography=state.protagonist.biography,
            location_name=location.name,
            location_description=location.description,
            count=count,
        )
    )


def narrate_prompt(
    state: GameState,
    *,
    token_budget: int,
    action: str | None = None,
    guidance: Sequence[str] = (),
) -> Prompt:
    action_line = (
        f"The protagonist ({state.protagonist.name}) has chosen to do the following: {action}." if action else ""
    )
    guidance_block = "\n\nCheck Results:\n" + "\n".join(guidance) if guidance else ""
    instructions = render_prompt(
        "narrate.txt",
        action_line=action_line,
        guidance_block=guidance_block,
        protagonist_name=state.protagonist.name,
    )
    return _main_prompt(state, instructions, token_budget=token_budget)


def actions_prompt(
    state: GameState,
    *,
    token_budget: int,
    count: int,
    available_actions: Sequence[str] = (),
) -> Prompt:
    rule_actions = ""
    if available_actions:
        listed = "\n".join(f"- {a}" for a in available_actions)
        rule_actions = f"Here are the available actions from the game rules:\n{listed}\n\n"
    instructions = render_prompt(
        "actions.txt",
        rule_actions=rule_actions,
        count=count,
        protagonist_name=state.protagonist.name,
    )
    return _main_prompt(state, instructions, token_budget=token_budget)


def same_location_prompt(state: GameState, *, token_budget: int) -> Prompt:
    instructions = render_prompt(
        "same_location.txt",
        protagonist_name=state.protagonist.name,
        location_name=state.current_location.name,
    )
    return _main_prompt(state, instructions, token_budget=token_budget)


def new_location_prompt(state: GameState, *, token_budget: int) -> Prompt:
    instructions = render_prompt(
        "new_location.txt",
        protagonist_name=state.protagonist.name,
        location_name=state.current_location.name,
    )
    return _main_prompt(state, instructions, token_budget=token_budget)


def new_characters_prompt(
    state: GameState,
    *,
    token_budget: int,
    count: int,
    companions: Sequence[str] = (),
) -> Prompt:
    location = state.current_location
    companions_line = (
        f"{state.protagonist.name} is accompanied by the following characters: {', '.join(companions)}."
        if companions
        else ""
    )
    instructions = render_prompt(
        "new_characters.txt",
        protagonist_name=state.protagonist.name,
        location_name=location.name,
        location_description=location.description,
        companions=companions_line,
        count=count,
    )
    return _main_prompt(state, instructions, token_budget=token_budget)
