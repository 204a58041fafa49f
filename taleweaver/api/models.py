from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from taleweaver.models import ActionText, GameState, Gender, Race
from taleweaver.rules.base import CharacterOptions


class SessionRecord(BaseModel):
    session_id: UUID
    created_at: datetime
    last_updated_at: datetime

    state: GameState = Field(default_factory=GameState)


class SessionResponse(SessionRecord):
    # True when the request was cut short by /abort; `state` is then unchanged.
    aborted: bool = False


class SessionListResponse(BaseModel):
    sessions: list[SessionRecord]


class AdvanceRequest(BaseModel):
    action: ActionText | None = None


class ProtagonistRequest(BaseModel):
    gender: Gender | None = None
    race: Race | None = None


class CharacterOptionsResponse(CharacterOptions):
    pass


class ErrorDetail(BaseModel):
    error: str
    message: str
    retryable: bool
