from __future__ import annotations

import uuid

import fakeredis
from fastapi.testclient import TestClient

from scripted import ScriptedBackend, profile, world


def _create(client: TestClient) -> str:
    resp = client.post("/session")
    assert resp.status_code == 201
    return resp.json()["session_id"]


def test_healthcheck(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis

    resp = client.get("/healthcheck")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_create_list_and_get_session(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, r = client_and_redis

    sid = _create(client)

    resp = client.get(f"/session/{sid}")
    assert resp.status_code == 200
    assert resp.json()["state"]["view"] == "welcome"
    assert resp.json()["state"]["world"] == {"name": "[name]", "description": "[description]"}

    listed = client.get("/session").json()["sessions"]
    assert [s["session_id"] for s in listed] == [sid]

    assert r.sismember("taleweaver:sessions", sid)
    entries = r.xrange(f"updates:{sid}")
    assert entries[-1][1]["type"] == "state_changed"
    assert entries[-1][1]["view"] == "welcome"


def test_unknown_session_is_404(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    missing = uuid.uuid4()

    assert client.get(f"/session/{missing}").status_code == 404
    assert client.post(f"/session/{missing}/advance", json={}).status_code == 404


def test_advance_and_back_persist_and_publish(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, r = client_and_redis
    sid = _create(client)

    resp = client.post(f"/session/{sid}/advance", json={})
    assert resp.status_code == 200
    assert resp.json()["state"]["view"] == "connection"
    assert resp.json()["aborted"] is False

    resp = client.post(f"/session/{sid}/advance", json={"action": None})
    assert resp.json()["state"]["view"] == "genre"

    resp = client.post(f"/session/{sid}/back")
    assert resp.status_code == 200
    assert resp.json()["state"]["view"] == "connection"

    assert client.get(f"/session/{sid}").json()["state"]["view"] == "connection"
    views = [fields["view"] for _, fields in r.xrange(f"updates:{sid}") if fields["type"] == "state_changed"]
    assert views == ["welcome", "connection", "genre", "connection"]


def test_backend_failure_maps_to_502_with_retry_hint(
    client_and_redis: tuple[TestClient, fakeredis.FakeRedis],
    backend: ScriptedBackend,
) -> None:
    client, _ = client_and_redis
    backend.probe_reply = "hello"
    sid = _create(client)
    client.post(f"/session/{sid}/advance", json={})

    resp = client.post(f"/session/{sid}/advance", json={})

    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["error"] == "BackendError"
    assert detail["retryable"] is True
    assert client.get(f"/session/{sid}").json()["state"]["view"] == "connection"


def test_back_from_welcome_is_409(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    sid = _create(client)

    resp = client.post(f"/session/{sid}/back")

    assert resp.status_code == 409
    assert resp.json()["detail"]["error"] == "TransitionNotAllowedError"
    assert resp.json()["detail"]["retryable"] is False


def test_protagonist_reset_and_character_options(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    sid = _create(client)

    resp = client.post(f"/session/{sid}/protagonist", json={"gender": "female", "race": "elf"})
    assert resp.status_code == 200
    assert resp.json()["state"]["protagonist"]["gender"] == "female"
    assert resp.json()["state"]["protagonist"]["race"] == "elf"

    assert client.post(f"/session/{sid}/protagonist", json={"race": "orc"}).status_code == 422

    resp = client.post(f"/session/{sid}/reset")
    assert resp.json()["state"]["protagonist"]["race"] == "human"

    resp = client.get(f"/session/{sid}/character-options")
    assert resp.status_code == 200
    assert resp.json() == {"races": [], "classes": []}


def test_abort_without_running_turn_is_harmless(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    sid = _create(client)

    resp = client.post(f"/session/{sid}/abort")

    assert resp.status_code == 202
    assert client.get(f"/session/{sid}").json()["state"]["view"] == "welcome"


def test_generation_progress_is_published_to_updates_stream(
    client_and_redis: tuple[TestClient, fakeredis.FakeRedis],
    backend: ScriptedBackend,
) -> None:
    client, r = client_and_redis
    backend.structured = [world(), profile("Aldric Fenn")]
    sid = _create(client)

    for _ in range(4):
        assert client.post(f"/session/{sid}/advance", json={}).status_code == 200

    progress = [fields for _, fields in r.xrange(f"updates:{sid}") if fields["type"] == "progress"]
    titles = [p["title"] for p in progress]
    assert "Generating world" in titles
    assert "Generating protagonist" in titles
    assert progress[0]["tokens"] == "0"
    assert progress[0]["session_id"] == sid
    assert progress[0]["message"].startswith("This typically takes")


def test_delete_session_drops_record_and_cached_engine(
    client_and_redis: tuple[TestClient, fakeredis.FakeRedis],
) -> None:
    client, r = client_and_redis
    sid = _create(client)
    assert client.post(f"/session/{sid}/advance", json={}).status_code == 200

    resp = client.delete(f"/session/{sid}")

    assert resp.status_code == 204
    assert client.get(f"/session/{sid}").status_code == 404
    # The cached engine is gone too, so the session cannot be driven any more.
    assert client.post(f"/session/{sid}/advance", json={}).status_code == 404
    assert client.get("/session").json()["sessions"] == []
    assert not r.sismember("taleweaver:sessions", sid)
    assert client.delete(f"/session/{sid}").status_code == 404
