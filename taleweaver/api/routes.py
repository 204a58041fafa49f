from __future__ import annotations

import logging
from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, Response, status

from taleweaver.api.deps import get_redis, get_sessions
from taleweaver.api.models import (
    AdvanceRequest,
    CharacterOptionsResponse,
    ErrorDetail,
    ProtagonistRequest,
    SessionListResponse,
    SessionRecord,
    SessionResponse,
)
from taleweaver.errors import BackendError, EngineError, TransitionNotAllowedError
from taleweaver.engine import SessionEngine
from taleweaver.session_store import create_session, delete_session, get_session, list_sessions, save_session
from taleweaver.sessions import SessionManager
from taleweaver.streams import publish_progress


logger = logging.getLogger(__name__)

router = APIRouter()


def _http_error(e: EngineError) -> HTTPException:
    if isinstance(e, BackendError):
        code = status.HTTP_502_BAD_GATEWAY
    elif isinstance(e, TransitionNotAllowedError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    detail = ErrorDetail(error=type(e).__name__, message=str(e), retryable=e.retryable)
    return HTTPException(status_code=code, detail=detail.model_dump())


def _engine(sessions: SessionManager, r: redis.Redis, session_id: UUID) -> SessionEngine:
    try:
        return sessions.engine_for(r=r, session_id=session_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


def _save(r: redis.Redis, session_id: UUID, engine: SessionEngine, *, aborted: bool = False) -> SessionResponse:
    try:
        record = save_session(r=r, session_id=session_id, state=engine.state)
    except ValueError as e:
        # Deleted while the request was running.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return SessionResponse(**record.model_dump(), aborted=aborted)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/session", response_model=SessionRecord, status_code=status.HTTP_201_CREATED)
async def create_session_route(r: redis.Redis = Depends(get_redis)) -> SessionRecord:
    return create_session(r=r)


@router.get("/session", response_model=SessionListResponse)
async def list_sessions_route(r: redis.Redis = Depends(get_redis)) -> SessionListResponse:
    return SessionListResponse(sessions=list_sessions(r=r))


@router.get("/session/{session_id}", response_model=SessionRecord)
async def get_session_route(session_id: UUID, r: redis.Redis = Depends(get_redis)) -> SessionRecord:
    record = get_session(r=r, session_id=session_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return record


@router.delete("/session/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionManager = Depends(get_sessions),
) -> Response:
    try:
        delete_session(r=r, session_id=session_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    sessions.forget(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/session/{session_id}/advance", response_model=SessionResponse)
async def advance_route(
    session_id: UUID,
    payload: AdvanceRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionManager = Depends(get_sessions),
) -> SessionResponse:
    engine = _engine(sessions, r, session_id)
    action = payload.action if payload is not None else None

    def on_progress(title: str, message: str, tokens: int) -> None:
        publish_progress(r=r, session_id=str(session_id), title=title, message=message, tokens=tokens)

    try:
        await engine.advance(action, on_progress=on_progress)
    except EngineError as e:
        if engine.is_abort_error(e):
            logger.info("session %s: advance aborted", session_id)
            return _save(r, session_id, engine, aborted=True)
        logger.warning("session %s: advance failed: %s", session_id, e)
        raise _http_error(e) from e
    return _save(r, session_id, engine)


@router.post("/session/{session_id}/back", response_model=SessionResponse)
async def back_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionManager = Depends(get_sessions),
) -> SessionResponse:
    engine = _engine(sessions, r, session_id)
    try:
        engine.back()
    except EngineError as e:
        raise _http_error(e) from e
    return _save(r, session_id, engine)


@router.post("/session/{session_id}/reset", response_model=SessionResponse)
async def reset_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionManager = Depends(get_sessions),
) -> SessionResponse:
    engine = _engine(sessions, r, session_id)
    engine.reset()
    return _save(r, session_id, engine)


@router.post("/session/{session_id}/abort", status_code=status.HTTP_202_ACCEPTED)
async def abort_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionManager = Depends(get_sessions),
) -> dict[str, str]:
    engine = _engine(sessions, r, session_id)
    engine.abort()
    return {"status": "abort requested"}


@router.post("/session/{session_id}/protagonist", response_model=SessionResponse)
async def protagonist_route(
    session_id: UUID,
    payload: ProtagonistRequest,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionManager = Depends(get_sessions),
) -> SessionResponse:
    engine = _engine(sessions, r, session_id)
    try:
        engine.configure_protagonist(gender=payload.gender, race=payload.race)
    except EngineError as e:
        raise _http_error(e) from e
    return _save(r, session_id, engine)


@router.get("/session/{session_id}/character-options", response_model=CharacterOptionsResponse)
async def character_options_route(
    session_id: UUID,
    r: redis.Redis = Depends(get_redis),
    sessions: SessionManager = Depends(get_sessions),
) -> CharacterOptionsResponse:
    engine = _engine(sessions, r, session_id)
    options = await engine.character_options()
    return CharacterOptionsResponse(**options.model_dump())
