"""
validator.py — Palm-photo suitability check via a Mistral vision model.

Entry point: PalmValidator.validate(image_data_url, language) -> PalmValidationResult

Flow:
  1. No Mistral client configured   → PalmServiceUnavailable (route answers 503)
  2. Vision call fails or times out → "cannot validate" verdict, service_unavailable=True
  3. Unparseable model output       → "cannot read the photo" verdict
  4. Otherwise the model's verdict, normalised:
       confidence clamped to 0..100 (50 when missing)
       a negative verdict is overturned when the three critical checks pass

The user can always skip the palm step, so every fallback is a normal
result rather than an error.
"""
import asyncio
import json
import logging
from typing import Any, Optional

from astroline.agents.palm_agent.schemas import PalmCheckDetails, PalmValidationResult
from astroline.agents.report_agent.llm_service import LANGUAGE_NAMES, strip_code_fences
from astroline.agents.report_agent.schemas import Language

logger = logging.getLogger(__name__)

PALM_VISION_MODEL = "pixtral-12b-latest"
PALM_TEMPERATURE = 0.1
PALM_MAX_TOKENS = 600
DEFAULT_CONFIDENCE = 50

PALM_VALIDATION_PROMPT = """You are an expert palm reader's assistant. Decide whether this photo is suitable for a palm reading.

Check each criterion:
- is_open_palm: an open palm faces the camera (not a fist, not the back of the hand)
- is_palm_visible: the palm is clearly visible, not covered or cut off by the frame
- are_lines_visible: the heart, head and life lines can be seen, even if faint
- is_good_lighting: the photo is neither too dark nor overexposed
- is_palm_large_enough: the palm fills at least 40% of the image

If the image is not a palm at all, mark every criterion false.
If the palm is acceptable but could be better, mark it valid and still add suggestions.

Write feedback and suggestions in {language}.
Respond ONLY with JSON in exactly this shape:
{{
  "is_valid": true,
  "confidence": 0,
  "feedback": "one short sentence",
  "details": {{
    "is_open_palm": true,
    "is_palm_visible": true,
    "are_lines_visible": true,
    "is_good_lighting": true,
    "is_palm_large_enough": true
  }},
  "suggestions": ["improvement tips, empty when the photo is fine"]
}}"""

MESSAGES = {
    Language.en: {
        "accepted": "Palm photo accepted!",
        "retake": "Please upload a clear photo of your open palm.",
        "unreadable": "We could not recognise the image. Make sure it is a photo of an open palm.",
        "unreadable_tips": [
            "Open your palm fully",
            "Make sure your palm is well lit",
            "Take the photo closer to your palm",
        ],
        "unavailable": "We could not check the photo. You can try again or skip this step.",
        "unavailable_tips": [
            "Try uploading a different photo",
            "Or skip this step and continue without a palm reading",
        ],
    },
    Language.uk: {
        "accepted": "Зображення долоні прийнято!",
        "retake": "Будь ласка, завантажте чітке фото відкритої долоні.",
        "unreadable": "Не вдалося розпізнати зображення. Переконайтеся, що це фото відкритої долоні.",
        "unreadable_tips": [
            "Розкрийте долоню повністю",
            "Переконайтеся, що долоня добре освітлена",
            "Зробіть фото ближче до долоні",
        ],
        "unavailable": "Не вдалося перевірити зображення. Ви можете спробувати ще раз або пропустити цей крок.",
        "unavailable_tips": [
            "Спробуйте завантажити інше зображення",
            "Або пропустіть цей крок і продовжіть без аналізу долоні",
        ],
    },
}


class PalmServiceUnavailable(Exception):
    """No vision model configured."""


def unavailable_result(language: Language) -> PalmValidationResult:
    text = MESSAGES[language]
    return PalmValidationResult(
        is_valid=False,
        confidence=0,
        feedback=text["unavailable"],
        suggestions=list(text["unavailable_tips"]),
        service_unavailable=True,
    )


def unreadable_result(language: Language) -> PalmValidationResult:
    text = MESSAGES[language]
    return PalmValidationResult(
        is_valid=False,
        confidence=0,
        feedback=text["unreadable"],
        suggestions=list(text["unreadable_tips"]),
    )


def _clamp_confidence(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return int(round(max(0, min(100, value))))


def parse_validation_response(text: Optional[str], language: Language = Language.en) -> PalmValidationResult:
    """Normalise the model's JSON verdict; unreadable output becomes the retake verdict."""
    if not text:
        return unreadable_result(language)
    try:
        raw = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as exc:
        logger.warning("Palm validation response is not valid JSON: %s", exc)
        return unreadable_result(language)
    if not isinstance(raw, dict):
        logger.warning("Palm validation response is not a JSON object")
        return unreadable_result(language)

    raw_details = raw.get("details")
    if not isinstance(raw_details, dict):
        raw_details = {}
    details = PalmCheckDetails.model_validate({k: bool(v) for k, v in raw_details.items()})

    is_valid = bool(raw.get("is_valid", raw.get("isValid", False)))
    if not is_valid:
        is_valid = details.critical_checks_pass

    feedback = raw.get("feedback")
    if not isinstance(feedback, str) or not feedback.strip():
        feedback = MESSAGES[language]["accepted" if is_valid else "retake"]

    suggestions = raw.get("suggestions")
    if not isinstance(suggestions, list):
        suggestions = []

    return PalmValidationResult(
        is_valid=is_valid,
        confidence=_clamp_confidence(raw.get("confidence")),
        feedback=feedback,
        details=details,
        suggestions=[s for s in suggestions if isinstance(s, str)],
    )


class PalmValidator:

    def __init__(
        self,
        client: Any,
        model: str = PALM_VISION_MODEL,
        timeout_seconds: float = 25.0,
    ):
        self._client = client
        self._model = model
        self.timeout_seconds = timeout_seconds

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def validate(self, image_data_url: str, language: Language = Language.en) -> PalmValidationResult:
        if not self.enabled:
            raise PalmServiceUnavailable("Palm validation model is not configured")

        prompt = PALM_VALIDATION_PROMPT.format(language=LANGUAGE_NAMES[language])
        logger.info("Calling Mistral vision model=%s for palm validation", self._model)
        try:
            response = await asyncio.wait_for(
                self._client.chat.complete_async(
                    model=self._model,
                    messages=[{
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": image_data_url},
                        ],
                    }],
                    temperature=PALM_TEMPERATURE,
                    max_tokens=PALM_MAX_TOKENS,
                ),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Palm validation timed out after %.1fs", self.timeout_seconds)
            return unavailable_result(language)
        except Exception as exc:
            logger.error("Palm validation call failed: %s", exc)
            return unavailable_result(language)

        text = response.choices[0].message.content or ""
        result = parse_validation_response(text, language)
        logger.info(
            "Palm validation is_valid=%s confidence=%d", result.is_valid, result.confidence,
        )
        return result
