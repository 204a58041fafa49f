from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from taleweaver.errors import BudgetExceededError
from taleweaver.models import Event, LocationChangeEvent, NarrationEvent


UNIT_SEPARATOR = "\n\n"


class UnitKind(StrEnum):
    location_change = "location_change"
    narration = "narration"
    summary = "summary"


@dataclass(frozen=True, slots=True)
class ContextUnit:
    kind: UnitKind
    text: str
    tokens: int
    # Index (into the full event list) of the event this unit starts at.
    event_index: int


def estimate_tokens(text: str) -> int:
    """Rough token estimate: three characters per token, rounded up."""

    return math.ceil(len(text) / 3)


def _default_location_change_text(event: LocationChangeEvent) -> str:
    return f"-----\n\nLOCATION CHANGE ({event.location_index})\n\n-----"


def _total(units: Sequence[ContextUnit]) -> int:
    return sum(u.tokens for u in units)


def _render(units: Sequence[ContextUnit]) -> str:
    return UNIT_SEPARATOR.join(u.text for u in units)


def _initial_units(
    events: Sequence[Event],
    describe: Callable[[LocationChangeEvent], str],
) -> list[ContextUnit]:
    # Other event types (actions, introductions) are implied by the narration.
    units: list[ContextUnit] = []
    for i, event in enumerate(events):
        if isinstance(event, NarrationEvent):
            units.append(ContextUnit(UnitKind.narration, event.text, estimate_tokens(event.text), i))
        elif isinstance(event, LocationChangeEvent):
            text = describe(event)
            units.append(ContextUnit(UnitKind.location_change, text, estimate_tokens(text), i))
    return units


def _summarize_scenes(units: list[ContextUnit], events: Sequence[Event], budget: int) -> list[ContextUnit]:
    units = list(units)
    pos = 0
    while pos < len(units) and _total(units) > budget:
        if units[pos].kind is not UnitKind.location_change:
            pos += 1
            continue

        end = next((j for j in range(pos + 1, len(units)) if units[j].kind is UnitKind.location_change), None)
        if end is None:
            # Open scene.
            break

        closing = events[units[end].event_index]
        assert isinstance(closing, LocationChangeEvent)
        if closing.summary:
            summary = ContextUnit(
                UnitKind.summary,
                closing.summary,
                estimate_tokens(closing.summary),
                units[pos].event_index,
            )
            units[pos:end] = [summary]

        # After a replacement pos + 1 is the closing event, i.e. the next scene.
        pos += 1
    return units


def _open_scene_start(units: Sequence[ContextUnit]) -> int:
    for i in range(len(units) - 1, -1, -1):
        if units[i].kind is UnitKind.location_change:
            return i
    return 0


def _drop_oldest(units: list[ContextUnit], budget: int) -> list[ContextUnit]:
    units = list(units)
    keep_from = _open_scene_start(units)
    while keep_from > 0 and _total(units) > budget:
        units.pop(0)
        keep_from -= 1
    return units


def assemble_context(
    events: Sequence[Event],
    token_budget: int,
    *,
    describe_location_change: Callable[[LocationChangeEvent], str] | None = None,
) -> str:
    """Render the story history so it fits `token_budget`.

    Degrades in fixed order until the estimate fits:
    1. everything verbatim,
    2. closed scenes (oldest first) replaced by the summary stored on the
       LocationChange that closes them,
    3. oldest units dropped one by one, never touching the open scene.

    Raises BudgetExceededError when the open scene alone does not fit.
    Never calls a model; summaries must already be attached to the events.
    """

    describe = describe_location_change or _default_location_change_text
    units = _initial_units(events, describe)
    if not units:
        return ""

    if _total(units) <= token_budget:
        return _render(units)

    units = _summarize_scenes(units, events, token_budget)
    if _total(units) <= token_budget:
        return _render(units)

    units = _drop_oldest(units, token_budget)
    if _total(units) <= token_budget:
        return _render(units)

    raise BudgetExceededError(tokens=_total(units), budget=token_budget)
