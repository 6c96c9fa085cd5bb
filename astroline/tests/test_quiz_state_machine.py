"""
Unit tests for the quiz state machine and its versioned Redis persistence.

No Redis needed: session_store tests run against FakeRedis.
Run: pytest astroline/tests/test_quiz_state_machine.py -v
"""
import json

import pytest

from astroline.agents.quiz_agent.schemas import QuizAnswers
from astroline.agents.quiz_agent.session_store import (
    QUIZ_SCHEMA_VERSION,
    QuizSessionStore,
    unwrap_state,
    wrap_state,
)
from astroline.agents.quiz_agent.state_machine import TOTAL_STEPS, QuizSession
from astroline.cache import QUIZ_TTL, make_quiz_key
from astroline.tests.helpers import FakeRedis


class TestNavigation:

    def test_new_session_starts_at_first_step(self):
        session = QuizSession()
        assert session.current_step == 1
        assert session.step_name == "gender"
        assert session.progress() == {"current": 1, "total": 13, "percentage": 8}

    def test_advance_saturates_at_last_step(self):
        session = QuizSession(current_step=TOTAL_STEPS - 1)
        session.advance()
        session.advance()
        assert session.current_step == TOTAL_STEPS
        assert session.step_name == "paywall"

    def test_retreat_saturates_at_first_step(self):
        session = QuizSession()
        session.retreat()
        assert session.current_step == 1

    @pytest.mark.parametrize("step", [0, -1, TOTAL_STEPS + 1, 99])
    def test_jump_out_of_range_is_ignored(self, step):
        session = QuizSession(current_step=4)
        assert session.jump_to(step) is False
        assert session.current_step == 4

    def test_jump_in_range(self):
        session = QuizSession()
        assert session.jump_to(12) is True
        assert session.step_name == "email"

    @pytest.mark.parametrize("step", [0, TOTAL_STEPS + 1])
    def test_constructor_rejects_out_of_range_step(self, step):
        with pytest.raises(ValueError):
            QuizSession(current_step=step)

    def test_reset_clears_answers_and_report(self):
        session = QuizSession(current_step=9, answers=QuizAnswers(gender="female"), report_id="abc")
        session.reset()
        assert session.current_step == 1
        assert session.answers == QuizAnswers()
        assert session.report_id is None


class TestAnswers:

    def test_merge_keeps_earlier_answers(self):
        session = QuizSession()
        session.merge({"gender": "female"})
        session.merge(QuizAnswers(birth_date="1990-08-15"))
        assert session.answers.gender == "female"
        assert session.answers.birth_date == "1990-08-15"

    def test_merge_ignores_none_values(self):
        session = QuizSession()
        session.merge({"birth_time": "14:30"})
        session.merge({"birth_time": None, "birth_place": "Kyiv"})
        assert session.answers.birth_time == "14:30"
        assert session.answers.birth_place == "Kyiv"

    def test_merge_overwrites_supplied_key(self):
        session = QuizSession()
        session.merge({"goals": ["love"]})
        session.merge({"goals": ["career", "health"]})
        assert session.answers.goals == ["career", "health"]

    def test_is_complete_needs_last_step_and_report(self):
        session = QuizSession(current_step=TOTAL_STEPS)
        assert session.is_complete is False
        session.attach_report("abcd1234")
        assert session.is_complete is True


class TestPersistence:

    def test_state_round_trip_keeps_nested_palm_reading(self):
        session = QuizSession(current_step=11)
        session.merge({"palm_reading": {
            "children_count": "2",
            "marriages_count": "1",
            "big_changes": True,
            "wealth_indicator": "high",
        }})
        restored = unwrap_state(wrap_state(session))
        assert restored is not None
        assert restored.current_step == 11
        assert restored.answers.palm_reading.big_changes is True

    @pytest.mark.parametrize("payload", [
        {"version": QUIZ_SCHEMA_VERSION - 1, "state": {"current_step": 3}},
        {"version": "2", "state": {"current_step": 3}},
        {"state": {"current_step": 3}},
        {"version": QUIZ_SCHEMA_VERSION, "state": {"current_step": 42}},
        {"version": QUIZ_SCHEMA_VERSION, "state": {"answers": {"unknown_field": 1}}},
    ])
    def test_outdated_or_invalid_payload_is_discarded(self, payload):
        assert unwrap_state(payload) is None

    @pytest.mark.asyncio
    async def test_store_save_sets_ttl_and_loads_back(self):
        redis = FakeRedis()
        store = QuizSessionStore(redis)
        session = QuizSession(current_step=5)
        await store.save("s1", session)

        assert redis.ttls[make_quiz_key("s1")] == QUIZ_TTL
        loaded = await store.load("s1")
        assert loaded is not None and loaded.current_step == 5

    @pytest.mark.asyncio
    async def test_store_deletes_outdated_payload_and_starts_fresh(self):
        redis = FakeRedis()
        key = make_quiz_key("old")
        redis.data[key] = json.dumps({"version": 1, "state": {"current_step": 7}})
        store = QuizSessionStore(redis)

        assert await store.load("old") is None
        assert key not in redis.data
        fresh = await store.load_or_new("old")
        assert fresh.current_step == 1

    @pytest.mark.asyncio
    async def test_store_ignores_unparseable_payload(self):
        redis = FakeRedis()
        redis.data[make_quiz_key("junk")] = "{not json"
        assert await QuizSessionStore(redis).load("junk") is None
