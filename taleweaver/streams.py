from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Mapping, cast

import redis


@dataclass(frozen=True, slots=True)
class SessionStream:
    session_id: str

    @property
    def key(self) -> str:
        return f"updates:{self.session_id}"


def publish_to_stream(*, r: redis.Redis, stream: SessionStream, fields: Mapping[str, str]) -> str:
    """Append an entry to a session's update stream."""

    # redis-py stubs expect field/value unions; we only use string fields/values.
    stream_id = r.xadd(stream.key, {str(k): str(v) for k, v in fields.items()})
    return cast(str, stream_id)


def publish_state_changed(*, r: redis.Redis, session_id: str, view: str) -> str:
    return publish_to_stream(
        r=r,
        stream=SessionStream(session_id=session_id),
        fields={
            "type": "state_changed",
            "session_id": session_id,
            "view": view,
            "ts": datetime.now(tz=UTC).isoformat(),
        },
    )


def publish_progress(*, r: redis.Redis, session_id: str, title: str, message: str, tokens: int) -> str:
    return publish_to_stream(
        r=r,
        stream=SessionStream(session_id=session_id),
        fields={
            "type": "progress",
            "session_id": session_id,
            "title": title,
            "message": message,
            "tokens": str(tokens),
        },
    )
