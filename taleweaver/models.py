from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, StringConstraints, ValidationError, model_validator

from taleweaver.errors import StateValidationError


Text = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
Name = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Description = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=2000)]
ActionText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=200)]
NarrationText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=5000)]

Gender = Literal["male", "female"]
Race = Literal["human", "elf", "dwarf"]
LocationType = Literal["tavern", "market", "road"]


class View(StrEnum):
    welcome = "welcome"
    connection = "connection"
    genre = "genre"
    character = "character"
    scenario = "scenario"
    chat = "chat"


class World(BaseModel):
    name: Name
    description: Description


class CharacterProfile(BaseModel):
    """A character as the backend generates it (not yet placed anywhere)."""

    name: Name
    gender: Gender
    race: Race
    biography: Description


class Character(CharacterProfile):
    location_index: int = 0

    @classmethod
    def placed(cls, profile: CharacterProfile, *, location_index: int) -> "Character":
        return cls(**profile.model_dump(exclude={"location_index"}), location_index=location_index)


class Location(BaseModel):
    name: Name
    type: LocationType
    description: Description


class ActionEvent(BaseModel):
    type: Literal["action"] = "action"
    action: ActionText


class NarrationEvent(BaseModel):
    type: Literal["narration"] = "narration"
    text: NarrationText
    location_index: int
    referenced_character_indices: list[int] = Field(default_factory=list)
    summary: str | None = None


class CharacterIntroductionEvent(BaseModel):
    type: Literal["character_introduction"] = "character_introduction"
    character_index: int


class LocationChangeEvent(BaseModel):
    type: Literal["location_change"] = "location_change"
    location_index: int
    present_character_indices: list[int] = Field(default_factory=list)
    # Summary of the scene this event closes (the one before it).
    summary: str | None = None


Event = Annotated[
    Union[ActionEvent, NarrationEvent, CharacterIntroductionEvent, LocationChangeEvent],
    Field(discriminator="type"),
]


def _default_world() -> World:
    return World(name="[name]", description="[description]")


def _default_protagonist() -> Character:
    return Character(name="[name]", gender="male", race="human", biography="[biography]", location_index=0)


class GameState(BaseModel):
    view: View = View.welcome

    world: World = Field(default_factory=_default_world)
    locations: list[Location] = Field(default_factory=list)
    characters: list[Character] = Field(default_factory=list)
    protagonist: Character = Field(default_factory=_default_protagonist)

    # Append-only; insertion order is the story timeline.
    events: list[Event] = Field(default_factory=list)

    # Suggested next actions for the player.
    actions: list[ActionText] = Field(default_factory=list)

    @model_validator(mode="after")
    def _event_indices_in_range(self) -> "GameState":
        n_locations = len(self.locations)
        n_characters = len(self.characters)

        def check_location(idx: int, seq: int) -> None:
            if not 0 <= idx < n_locations:
                raise ValueError(f"event {seq}: location index {idx} out of range")

        def check_character(idx: int, seq: int) -> None:
            if not 0 <= idx < n_characters:
                raise ValueError(f"event {seq}: character index {idx} out of range")

        for seq, event in enumerate(self.events):
            if isinstance(event, (NarrationEvent, LocationChangeEvent)):
                check_location(event.location_index, seq)
            if isinstance(event, NarrationEvent):
                for idx in event.referenced_character_indices:
                    check_character(idx, seq)
            elif isinstance(event, LocationChangeEvent):
                for idx in event.present_character_indices:
                    check_character(idx, seq)
            elif isinstance(event, CharacterIntroductionEvent):
                check_character(event.character_index, seq)
        return self

    @property
    def current_location(self) -> Location:
        return self.locations[self.protagonist.location_index]


def validate_state(state: GameState) -> GameState:
    """Re-validate a (possibly hand-mutated) state against the schema."""

    try:
        return GameState.model_validate(state.model_dump())
    except ValidationError as e:
        raise StateValidationError(f"Invalid game state: {e}") from e
