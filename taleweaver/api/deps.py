from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache

import redis

from taleweaver.infra.redis_client import create_redis
from taleweaver.sessions import SessionManager


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


@lru_cache(maxsize=1)
def get_sessions() -> SessionManager:
    return SessionManager()
