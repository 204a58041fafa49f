from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, ValidationError, create_model

from taleweaver.backends.base import PROBE_SENTINEL
from taleweaver.contexts import SessionContext
from taleweaver.core.names import extract_referenced_characters
from taleweaver.core.throttle import Throttle
from taleweaver.errors import BackendAbortError, BackendError, StateValidationError
from taleweaver.fsm import SessionFSM
from taleweaver.models import (
    ActionEvent,
    ActionText,
    Character,
    CharacterIntroductionEvent,
    CharacterProfile,
    Gender,
    GameState,
    Location,
    LocationChangeEvent,
    NarrationEvent,
    Race,
    View,
    World,
    validate_state,
)
from taleweaver.prompts import (
    Prompt,
    actions_prompt,
    narrate_prompt,
    new_characters_prompt,
    new_location_prompt,
    protagonist_prompt,
    same_location_prompt,
    starting_characters_prompt,
    starting_location_prompt,
    world_prompt,
)
from taleweaver.rules.base import CharacterOptions, CheckDefinition, CheckResolutionResult
from taleweaver.rules.dispatcher import RuleDispatcher


logger = logging.getLogger(__name__)

# (title, message, token_count)
ProgressCallback = Callable[[str, str, int], None]

NEW_CHARACTER_COUNT = 5
SUGGESTED_ACTION_COUNT = 3

CharacterBatch = Annotated[
    list[CharacterProfile], Field(min_length=NEW_CHARACTER_COUNT, max_length=NEW_CHARACTER_COUNT)
]
ActionBatch = Annotated[list[ActionText], Field(min_length=SUGGESTED_ACTION_COUNT, max_length=SUGGESTED_ACTION_COUNT)]
YesNo = Literal["yes", "no"]


def new_location_schema(character_names: Sequence[str]) -> type[BaseModel]:
    """Schema for a new location plus the (known) characters coming along."""

    companions: Any
    if character_names:
        companions = list[Literal[tuple(character_names)]]  # type: ignore[misc]
    else:
        companions = Annotated[list[str], Field(max_length=0)]
    return create_model(
        "NewLocationInfo",
        new_location=(Location, ...),
        accompanying_characters=(companions, ...),
    )


class _Turn:
    """One `advance` call: the draft, the rule logic chosen for it, progress plumbing."""

    def __init__(self, ctx: SessionContext, draft: GameState, on_progress: ProgressCallback | None):
        self.ctx = ctx
        self.draft = draft
        self.backend = ctx.backend
        self.budget = ctx.settings.context_token_budget
        self.rules = RuleDispatcher.for_registry(ctx.providers)
        self._on_progress = on_progress
        self._step: tuple[str, str] = ("", "")
        self.on_token = Throttle(self._report_tokens, ctx.settings.update_interval_ms)

        self._handlers: dict[View, Callable[[str | None], Awaitable[None]]] = {
            View.welcome: self._pass,
            View.connection: self._check_connection,
            View.genre: self._pass,
            View.character: self._create_protagonist,
            View.scenario: self._create_scenario,
            View.chat: self._play_turn,
        }

    def _report_tokens(self, _token: str, count: int) -> None:
        if self._on_progress is not None:
            self._on_progress(self._step[0], self._step[1], count)

    def step(self, title: str, message: str = "") -> None:
        self._step = (title, message)

    async def run(self, action: str | None) -> None:
        fsm = SessionFSM(self.draft)
        # Don't spend tokens on a state that is already broken.
        validate_state(self.draft)

        logger.info("advancing from '%s'", fsm.view.value)
        try:
            await self._handlers[fsm.view](action)
        except ValidationError as e:
            raise StateValidationError(f"Invalid game state: {e}") from e

        fsm.advance()
        fsm.sync_view_to_model()
        validate_state(self.draft)
        logger.info("now at '%s' (%d events)", fsm.view.value, len(self.draft.events))

    async def generate(self, prompt: Prompt, schema: Any) -> Any:
        value = await self.backend.structured_generate(prompt, schema, self.on_token)
        self.on_token.flush()
        return value

    async def stream_narration(self, prompt: Prompt) -> str:
        chunks: list[str] = []
        # Empty update first so progress indicators can show up right away.
        self.on_token("", 0)
        async for chunk in self.backend.narrate(prompt):
            chunks.append(chunk)
            self.on_token(chunk, len(chunks))
        self.on_token.flush()
        return "".join(chunks)

    async def notify_location_change(self, location: Location) -> None:
        for listener in self.ctx.location_listeners:
            await listener.on_location_change(location, self.draft)

    async def _pass(self, action: str | None) -> None:
        return None

    async def _check_connection(self, action: str | None) -> None:
        self.step("Checking connection", "If this takes longer than a few seconds, there is probably something wrong")
        reply = await self.backend.probe()
        if reply != PROBE_SENTINEL:
            raise BackendError("Backend does not support schema constraints")

    async def _create_protagonist(self, action: str | None) -> None:
        d = self.draft

        self.step("Generating world", "This typically takes between 10 and 30 seconds")
        d.world = await self.generate(world_prompt(), World)

        self.step("Generating protagonist", "This typically takes between 10 and 30 seconds")
        guidance = await self.rules.biography_guidance()
        prompt = await self.rules.modify_protagonist_prompt(protagonist_prompt(d, guidance))
        profile = await self.generate(prompt, CharacterProfile)
        d.protagonist = Character.placed(profile, location_index=0)

    async def _create_scenario(self, action: str | None) -> None:
        d = self.draft

        self.step("Generating starting location", "This typically takes between 10 and 30 seconds")
        location = await self.generate(starting_location_prompt(d), Location)
        await self.notify_location_change(location)

        d.locations = [location]
        location_index = len(d.locations) - 1
        d.protagonist.location_index = location_index

        self.step("Generating characters", "This typically takes between 30 seconds and 1 minute")
        profiles = await self.generate(starting_characters_prompt(d, count=NEW_CHARACTER_COUNT), CharacterBatch)
        d.characters = [Character.placed(p, location_index=location_index) for p in profiles]

        d.events = [
            LocationChangeEvent(
                location_index=location_index,
                present_character_indices=list(range(len(d.characters))),
            )
        ]

    async def _play_turn(self, action: str | None) -> None:
        d = self.draft

        d.actions = []
        await asyncio.sleep(0)

        if action:
            d.events.append(ActionEvent(action=action))

        await self._narrate(action)

        self.step("Checking for location change", "This typically takes a few seconds")
        still_here = await self.generate(same_location_prompt(d, token_budget=self.budget), YesNo)
        if still_here != "yes":
            await self._change_location()

        self.step("Generating actions", "This typically takes a few seconds")
        available = await self.rules.available_actions()
        prompt = actions_prompt(
            d,
            token_budget=self.budget,
            count=SUGGESTED_ACTION_COUNT,
            available_actions=available,
        )
        d.actions = list(await self.generate(prompt, ActionBatch))

    async def _resolve_checks(self, action: str | None) -> list[CheckResolutionResult]:
        d = self.draft

        previous = next((e.text for e in reversed(d.events) if isinstance(e, NarrationEvent)), "")
        checks: list[CheckDefinition] = []
        if previous:
            checks.extend(await self.rules.derive_checks(previous, d))
        if action:
            checks.extend(await self.rules.derive_checks(action, d))

        results: list[CheckResolutionResult] = []
        for check in checks:
            results.append(await self.rules.resolve_check(check, d.protagonist, d, action))
        return results

    async def _narrate(self, action: str | None = None) -> None:
        d = self.draft

        results = await self._resolve_checks(action)
        guidance = await self.rules.narrative_guidance("general", d, results, action)

        self.step("Narrating")
        prompt = narrate_prompt(d, token_budget=self.budget, action=action, guidance=guidance)
        text = await self.stream_narration(prompt)

        referenced = extract_referenced_characters(text, d.characters)
        d.events.append(
            NarrationEvent(
                text=text,
                location_index=d.protagonist.location_index,
                referenced_character_indices=referenced,
            )
        )

        introduced = {e.character_index for e in d.events if isinstance(e, CharacterIntroductionEvent)}
        for index in referenced:
            if index not in introduced:
                d.events.append(CharacterIntroductionEvent(character_index=index))

    async def _change_location(self) -> None:
        d = self.draft

        self.step("Generating location", "This typically takes between 10 and 30 seconds")
        schema = new_location_schema([c.name for c in d.characters])
        info = await self.generate(new_location_prompt(d, token_budget=self.budget), schema)
        await self.notify_location_change(info.new_location)

        d.locations.append(info.new_location)
        location_index = len(d.locations) - 1
        d.protagonist.location_index = location_index

        companions = [i for i, c in enumerate(d.characters) if c.name in info.accompanying_characters]
        for index in companions:
            d.characters[index].location_index = location_index

        # Must be built before the LocationChange below is appended.
        prompt = new_characters_prompt(
            d,
            token_budget=self.budget,
            count=NEW_CHARACTER_COUNT,
            companions=list(info.accompanying_characters),
        )

        event = LocationChangeEvent(location_index=location_index, present_character_indices=companions)
        d.events.append(event)

        self.step("Generating characters", "This typically takes between 30 seconds and 1 minute")
        profiles = await self.generate(prompt, CharacterBatch)
        first_new = len(d.characters)
        d.characters.extend(Character.placed(p, location_index=location_index) for p in profiles)
        event.present_character_indices.extend(range(first_new, len(d.characters)))

        await self._narrate()


class SessionEngine:
    """Drives one session: setup steps, then the repeating chat turn.

    Every `advance` runs as a single transaction on the session's StateStore:
    it either commits completely or leaves the previous state in place and
    re-raises.
    """

    def __init__(self, ctx: SessionContext):
        self.ctx = ctx

    @property
    def state(self) -> GameState:
        return self.ctx.store.state

    async def advance(self, action: str | None = None, *, on_progress: ProgressCallback | None = None) -> GameState:
        async def updater(draft: GameState) -> None:
            turn = _Turn(self.ctx, draft, on_progress)
            try:
                await turn.run(action)
            finally:
                # A failed turn must not emit stale progress later.
                turn.on_token.cancel()

        await self.ctx.store.run_exclusive(updater)
        return self.state

    def back(self) -> GameState:
        self.ctx.store.set(lambda draft: SessionFSM(draft).step_back())
        return self.state

    def reset(self) -> GameState:
        self.ctx.store.set(GameState())
        return self.state

    def abort(self) -> None:
        logger.info("abort requested")
        self.ctx.backend.abort()

    def is_abort_error(self, error: BaseException) -> bool:
        return isinstance(error, BackendAbortError) or self.ctx.backend.is_abort_error(error)

    def configure_protagonist(self, *, gender: Gender | None = None, race: Race | None = None) -> GameState:
        def update(draft: GameState) -> None:
            if gender is not None:
                draft.protagonist.gender = gender
            if race is not None:
                draft.protagonist.race = race
            validate_state(draft)

        self.ctx.store.set(update)
        return self.state

    async def character_options(self) -> CharacterOptions:
        rules = RuleDispatcher.for_registry(self.ctx.providers)
        return CharacterOptions(races=await rules.list_races(), classes=await rules.list_classes())
