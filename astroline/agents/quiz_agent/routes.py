"""
QuizAgent HTTP routes — /api/quiz/sessions

  POST  /api/quiz/sessions                 → new session at step 1
  GET   /api/quiz/sessions/{id}            → current state
  POST  /api/quiz/sessions/{id}/advance    → next step (saturates at the last step)
  POST  /api/quiz/sessions/{id}/retreat    → previous step (saturates at step 1)
  POST  /api/quiz/sessions/{id}/jump       → {step}; out-of-range is ignored
  PATCH /api/quiz/sessions/{id}/answers    → partial answers merge
  POST  /api/quiz/sessions/{id}/reset      → back to step 1, answers cleared

Sessions live in Redis (app.state.redis) under the versioned wrapper from
session_store.py. An outdated payload reads as "not found".
"""
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from astroline.agents.quiz_agent.schemas import (
    JumpRequest,
    QuizAnswers,
    QuizProgress,
    QuizSessionResponse,
)
from astroline.agents.quiz_agent.session_store import QuizSessionStore
from astroline.agents.quiz_agent.state_machine import QuizSession

router = APIRouter(prefix="/api/quiz", tags=["quiz_agent"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _store(request: Request) -> QuizSessionStore:
    return QuizSessionStore(request.app.state.redis)


def _response(session_id: str, session: QuizSession, status_code: int = 200) -> JSONResponse:
    body = QuizSessionResponse(
        session_id=session_id,
        current_step=session.current_step,
        step_name=session.step_name,
        answers=session.answers,
        report_id=session.report_id,
        progress=QuizProgress(**session.progress()),
        is_complete=session.is_complete,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def _load(store: QuizSessionStore, session_id: str) -> QuizSession:
    session = await store.load(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Quiz session '{session_id}' not found")
    return session


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/sessions")
async def create_session(request: Request) -> JSONResponse:
    store = _store(request)
    session_id = store.new_session_id()
    session = QuizSession()
    await store.save(session_id, session)
    logger.info("Quiz session created session_id=%s", session_id)
    return _response(session_id, session, status_code=201)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, request: Request) -> JSONResponse:
    session = await _load(_store(request), session_id)
    return _response(session_id, session)


@router.post("/sessions/{session_id}/advance")
async def advance(session_id: str, request: Request) -> JSONResponse:
    store = _store(request)
    session = await _load(store, session_id)
    session.advance()
    await store.save(session_id, session)
    return _response(session_id, session)


@router.post("/sessions/{session_id}/retreat")
async def retreat(session_id: str, request: Request) -> JSONResponse:
    store = _store(request)
    session = await _load(store, session_id)
    session.retreat()
    await store.save(session_id, session)
    return _response(session_id, session)


@router.post("/sessions/{session_id}/jump")
async def jump(session_id: str, body: JumpRequest, request: Request) -> JSONResponse:
    store = _store(request)
    session = await _load(store, session_id)
    if session.jump_to(body.step):
        await store.save(session_id, session)
    else:
        logger.debug("Ignored out-of-range jump session_id=%s step=%d", session_id, body.step)
    return _response(session_id, session)


@router.patch("/sessions/{session_id}/answers")
async def update_answers(session_id: str, body: QuizAnswers, request: Request) -> JSONResponse:
    store = _store(request)
    session = await _load(store, session_id)
    session.merge(body)
    await store.save(session_id, session)
    return _response(session_id, session)


@router.post("/sessions/{session_id}/reset")
async def reset(session_id: str, request: Request) -> JSONResponse:
    store = _store(request)
    session = await _load(store, session_id)
    session.reset()
    await store.save(session_id, session)
    logger.info("Quiz session reset session_id=%s", session_id)
    return _response(session_id, session)
