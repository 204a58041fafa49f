from __future__ import annotations

import os

import redis


DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def redis_url_from_env() -> str:
    return os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)


def create_redis(url: str | None = None) -> redis.Redis:
    """Client for session records and update streams.

    Strings in/out: records are JSON and stream fields are plain text.
    """

    return redis.Redis.from_url(
        url or redis_url_from_env(),
        decode_responses=True,
        # Requests can sit idle for a whole model call between commands.
        health_check_interval=30,
    )
