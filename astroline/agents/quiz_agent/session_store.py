"""
session_store.py — Versioned quiz session persistence over Redis.

Payload shape:  {"version": QUIZ_SCHEMA_VERSION, "state": QuizSession.to_state()}

Migration policy: a payload older than QUIZ_SCHEMA_VERSION (or one that no
longer validates) is discarded and a fresh session is returned. There is no
field-level migration.
"""
import logging
import secrets
from typing import Optional

import redis.asyncio as aioredis
from pydantic import ValidationError

from astroline.agents.quiz_agent.state_machine import QuizSession
from astroline.cache import delete_quiz_payload, get_quiz_payload, set_quiz_payload

logger = logging.getLogger(__name__)

QUIZ_SCHEMA_VERSION = 2


def wrap_state(session: QuizSession) -> dict:
    return {"version": QUIZ_SCHEMA_VERSION, "state": session.to_state()}


def unwrap_state(payload: Optional[dict]) -> Optional[QuizSession]:
    """Rebuild a session from a stored payload; None when it must be discarded."""
    if not payload:
        return None
    version = payload.get("version")
    if not isinstance(version, int) or version < QUIZ_SCHEMA_VERSION:
        logger.info("Discarding quiz payload with schema version %r", version)
        return None
    try:
        return QuizSession.from_state(payload.get("state") or {})
    except (ValidationError, ValueError, TypeError) as exc:
        logger.warning("Discarding invalid quiz payload: %s", exc)
        return None


class QuizSessionStore:

    def __init__(self, client: aioredis.Redis):
        self._client = client

    @staticmethod
    def new_session_id() -> str:
        return secrets.token_hex(16)

    async def load(self, session_id: str) -> Optional[QuizSession]:
        """Stored session, or None when absent, expired or outdated."""
        payload = await get_quiz_payload(self._client, session_id)
        session = unwrap_state(payload)
        if session is None and payload is not None:
            await delete_quiz_payload(self._client, session_id)
        return session

    async def load_or_new(self, session_id: str) -> QuizSession:
        session = await self.load(session_id)
        return session if session is not None else QuizSession()

    async def save(self, session_id: str, session: QuizSession) -> None:
        await set_quiz_payload(self._client, session_id, wrap_state(session))
