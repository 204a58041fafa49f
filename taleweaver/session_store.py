from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

import redis

from taleweaver.api.models import SessionRecord
from taleweaver.models import GameState
from taleweaver.streams import publish_state_changed


SESSIONS_SET_KEY = "taleweaver:sessions"
SESSION_KEY_PREFIX = "taleweaver:session:"  # + {uuid}


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _session_key(session_id: UUID) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def create_session(*, r: redis.Redis, state: GameState | None = None) -> SessionRecord:
    now = _now()
    record = SessionRecord(
        session_id=uuid4(),
        created_at=now,
        last_updated_at=now,
        state=state if state is not None else GameState(),
    )

    r.set(_session_key(record.session_id), record.model_dump_json())
    r.sadd(SESSIONS_SET_KEY, str(record.session_id))
    publish_state_changed(r=r, session_id=str(record.session_id), view=record.state.view.value)
    return record


def save_session(*, r: redis.Redis, session_id: UUID, state: GameState) -> SessionRecord:
    record = require_session(r=r, session_id=session_id)
    record.state = state
    record.last_updated_at = _now()

    r.set(_session_key(session_id), record.model_dump_json())
    publish_state_changed(r=r, session_id=str(session_id), view=state.view.value)
    return record


def get_session(*, r: redis.Redis, session_id: UUID) -> SessionRecord | None:
    raw = r.get(_session_key(session_id))
    if not raw:
        return None
    return SessionRecord.model_validate_json(raw)


def require_session(*, r: redis.Redis, session_id: UUID) -> SessionRecord:
    record = get_session(r=r, session_id=session_id)
    if record is None:
        raise ValueError("Session not found")
    return record


def list_sessions(*, r: redis.Redis) -> list[SessionRecord]:
    ids = sorted(r.smembers(SESSIONS_SET_KEY))
    out: list[SessionRecord] = []
    for sid in ids:
        try:
            session_id = UUID(sid)
        except ValueError:
            continue
        record = get_session(r=r, session_id=session_id)
        if record is not None:
            out.append(record)
    out.sort(key=lambda s: s.created_at, reverse=True)
    return out


def delete_session(*, r: redis.Redis, session_id: UUID) -> None:
    require_session(r=r, session_id=session_id)
    r.delete(_session_key(session_id))
    r.srem(SESSIONS_SET_KEY, str(session_id))
