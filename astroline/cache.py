"""
cache.py — Redis layer for Astroline quiz sessions.

Namespace conventions:
  quiz:{session_id}   → versioned quiz payload {"version": N, "state": {...}}   TTL 24h

Design:
  - Uses redis.asyncio (async client from redis-py; no separate aioredis)
  - Pool created once in lifespan, stored on app.state.redis
  - Helper functions take the client as a param — no module-level global state
  - Payload shape (versioning, migration) belongs to quiz_agent/session_store.py;
    this module only moves JSON in and out
  - Logs only session_id, never answers
"""
import json
import logging
from typing import Optional

import redis.asyncio as aioredis

from astroline.config import settings

logger = logging.getLogger(__name__)

QUIZ_TTL: int = 86400   # 24 hours
QUIZ_PREFIX = "quiz"


def make_quiz_key(session_id: str) -> str:
    """Build Redis key for a quiz session: quiz:{session_id}"""
    return f"{QUIZ_PREFIX}:{session_id}"


async def create_redis_pool() -> aioredis.Redis:
    """
    Create an async Redis client and verify connectivity with PING.
    Called once in FastAPI lifespan startup — stored on app.state.redis.
    """
    client = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
    )
    await client.ping()
    logger.info("Redis connection pool established at %s", settings.redis_url)
    return client


async def get_quiz_payload(client: aioredis.Redis, session_id: str) -> Optional[dict]:
    """Raw quiz payload dict, or None when expired / never stored / unparseable."""
    raw = await client.get(make_quiz_key(session_id))
    if raw is None:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding unparseable quiz payload session_id=%s", session_id)
        return None
    return payload if isinstance(payload, dict) else None


async def set_quiz_payload(client: aioredis.Redis, session_id: str, payload: dict) -> None:
    """Overwrite the quiz payload and reset its 24h TTL."""
    await client.setex(make_quiz_key(session_id), QUIZ_TTL, json.dumps(payload))
    logger.debug("Quiz payload written session_id=%s ttl=%ds", session_id, QUIZ_TTL)


async def delete_quiz_payload(client: aioredis.Redis, session_id: str) -> None:
    await client.delete(make_quiz_key(session_id))
