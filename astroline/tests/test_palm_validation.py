"""
Tests for palm-photo validation: response normalisation, the Mistral vision
call (MagicMock client) and POST /api/palm/validate.

Run: pytest astroline/tests/test_palm_validation.py -v
"""
import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from astroline.agents.palm_agent.validator import (
    PalmServiceUnavailable,
    PalmValidator,
    parse_validation_response,
)
from astroline.agents.report_agent.schemas import Language

IMAGE = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAgGBgcGBQgHBwcJCQgKDBQNDAsLDBkSEw8UHRofHh0aHBwg"

GOOD_PALM = {
    "is_valid": True,
    "confidence": 88,
    "feedback": "Clear open palm, lines are visible.",
    "details": {
        "is_open_palm": True,
        "is_palm_visible": True,
        "are_lines_visible": True,
        "is_good_lighting": True,
        "is_palm_large_enough": True,
    },
    "suggestions": [],
}


def _mistral_returning(text: str) -> MagicMock:
    mock = MagicMock()
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = text
    mock.chat.complete_async = AsyncMock(return_value=response)
    return mock


def _mistral_raising(exc: Exception) -> MagicMock:
    mock = MagicMock()
    mock.chat.complete_async = AsyncMock(side_effect=exc)
    return mock


# ---------------------------------------------------------------------------
# Response normalisation
# ---------------------------------------------------------------------------

class TestParseValidationResponse:

    def test_fenced_json_is_parsed(self):
        result = parse_validation_response(f"```json\n{json.dumps(GOOD_PALM)}\n```")
        assert result.is_valid is True
        assert result.confidence == 88
        assert result.details.is_good_lighting is True
        assert result.service_unavailable is False

    def test_camel_case_keys_are_accepted(self):
        text = json.dumps({
            "isValid": False,
            "confidence": 40,
            "feedback": "Too dark",
            "details": {"isOpenPalm": True, "isPalmVisible": True, "areLinesVisible": False},
            "suggestions": ["Use daylight"],
        })
        result = parse_validation_response(text)
        assert result.is_valid is False
        assert result.details.is_open_palm is True
        assert result.details.are_lines_visible is False
        assert result.suggestions == ["Use daylight"]

    def test_negative_verdict_overturned_when_critical_checks_pass(self):
        text = json.dumps({**GOOD_PALM, "is_valid": False, "details": {
            "is_open_palm": True, "is_palm_visible": True, "are_lines_visible": True,
            "is_good_lighting": False, "is_palm_large_enough": False,
        }})
        assert parse_validation_response(text).is_valid is True

    @pytest.mark.parametrize("confidence,expected", [(150, 100), (-3, 0), ("high", 50), (None, 50), (True, 50)])
    def test_confidence_is_clamped(self, confidence, expected):
        text = json.dumps({**GOOD_PALM, "confidence": confidence})
        assert parse_validation_response(text).confidence == expected

    def test_missing_feedback_gets_default(self):
        text = json.dumps({k: v for k, v in GOOD_PALM.items() if k != "feedback"})
        assert parse_validation_response(text).feedback == "Palm photo accepted!"

    def test_non_string_suggestions_are_dropped(self):
        text = json.dumps({**GOOD_PALM, "suggestions": ["Move closer", 3, None]})
        assert parse_validation_response(text).suggestions == ["Move closer"]

    @pytest.mark.parametrize("text", ["", "not json at all", "[1, 2]"])
    def test_unreadable_output_asks_for_retake(self, text):
        result = parse_validation_response(text, Language.uk)
        assert result.is_valid is False
        assert result.confidence == 0
        assert result.service_unavailable is False
        assert "долоні" in result.feedback
        assert len(result.suggestions) == 3


# ---------------------------------------------------------------------------
# Vision call
# ---------------------------------------------------------------------------

class TestPalmValidator:

    @pytest.mark.asyncio
    async def test_sends_image_and_prompt_to_vision_model(self):
        client = _mistral_returning(json.dumps(GOOD_PALM))
        validator = PalmValidator(client, model="pixtral-test")

        result = await validator.validate(IMAGE, Language.uk)

        assert result.is_valid is True
        kwargs = client.chat.complete_async.await_args.kwargs
        assert kwargs["model"] == "pixtral-test"
        content = kwargs["messages"][0]["content"]
        assert content[1] == {"type": "image_url", "image_url": IMAGE}
        assert "Ukrainian" in content[0]["text"]

    @pytest.mark.asyncio
    async def test_model_error_returns_unavailable_verdict(self):
        validator = PalmValidator(_mistral_raising(RuntimeError("503 from upstream")))
        result = await validator.validate(IMAGE)
        assert result.is_valid is False
        assert result.service_unavailable is True
        assert result.suggestions

    @pytest.mark.asyncio
    async def test_timeout_returns_unavailable_verdict(self):
        async def slow(**kwargs):
            await asyncio.sleep(1)

        client = MagicMock()
        client.chat.complete_async = slow
        result = await PalmValidator(client, timeout_seconds=0.01).validate(IMAGE)
        assert result.service_unavailable is True

    @pytest.mark.asyncio
    async def test_without_client_raises(self):
        with pytest.raises(PalmServiceUnavailable):
            await PalmValidator(None).validate(IMAGE)


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_validate_endpoint_returns_verdict(client: AsyncClient, app_state) -> None:
    app_state(palm_validator=PalmValidator(_mistral_returning(json.dumps(GOOD_PALM))))

    response = await client.post("/api/palm/validate", json={"image": IMAGE})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["is_valid"] is True
    assert body["confidence"] == 88
    assert set(body["details"]) == {
        "is_open_palm", "is_palm_visible", "are_lines_visible", "is_good_lighting", "is_palm_large_enough",
    }


@pytest.mark.asyncio
async def test_validate_endpoint_without_model_is_503(client: AsyncClient, app_state) -> None:
    app_state(palm_validator=PalmValidator(None))

    response = await client.post("/api/palm/validate", json={"image": IMAGE, "language": "uk"})

    assert response.status_code == 503
    body = response.json()
    assert body["service_unavailable"] is True
    assert body["is_valid"] is False


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"image": ""}, {"image": "https://example.com/palm.jpg"}])
async def test_validate_endpoint_rejects_non_image_payload(client: AsyncClient, payload: dict) -> None:
    response = await client.post("/api/palm/validate", json=payload)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
