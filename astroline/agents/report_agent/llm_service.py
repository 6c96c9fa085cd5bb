"""
llm_service.py — Prompting and response handling shared by the AI providers.

Components:
  SYSTEM_PROMPT          — tone/format constraints (JSON only, no markdown)
  build_user_prompt()    — PII-free astro profile (no email, no place name)
  parse_ai_response()    — strip ``` fences, json.loads, validate required keys
  merge_ai_content()     — overlay AI narrative onto the static base report

Compatibility matches and lucky days always stay static; the model only
writes narrative text.

No HTTP calls here — transport lives in providers.py.
"""
import json
import logging
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from astroline.agents.report_agent.schemas import (
    CareerSection,
    FullReport,
    Language,
    LoveSection,
    PersonalityTrait,
    QuarterlyForecast,
    UserInput,
)

logger = logging.getLogger(__name__)

AI_TEMPERATURE = 0.7
AI_MAX_TOKENS = 4096

LANGUAGE_NAMES = {Language.en: "English", Language.uk: "Ukrainian"}

SYSTEM_PROMPT = """You are Astroline, a warm and insightful professional astrologer.

Rules you MUST follow:
1. Respond with a single JSON object and nothing else. No markdown, no commentary.
2. Use exactly the keys of the schema you are given. Every key is required.
3. Write in the language you are asked to write in.
4. Be specific to the person's placements; avoid generic horoscope filler.
5. Never give medical, legal or financial guarantees."""

RESPONSE_SCHEMA = """{
  "sun_description": "string",
  "moon_description": "string",
  "rising_description": "string",
  "hidden_talents": ["string", "string"],
  "forecast": {
    "q1": {"title": "string", "description": "string", "focus": ["string"]},
    "q2": {"title": "string", "description": "string", "focus": ["string"]},
    "q3": {"title": "string", "description": "string", "focus": ["string"]},
    "q4": {"title": "string", "description": "string", "focus": ["string"]}
  },
  "love": {"overview": "string", "strengths": ["string"], "challenges": ["string"], "advice": "string"},
  "career": {"overview": "string", "strengths": ["string"], "ideal_careers": ["string"],
             "finance_tips": ["string"], "year_focus": "string"}
}"""


# ---------------------------------------------------------------------------
# AI response contract
# ---------------------------------------------------------------------------

class AIQuarter(BaseModel):
    title: str
    description: str
    focus: List[str] = []


class AIForecast(BaseModel):
    q1: AIQuarter
    q2: AIQuarter
    q3: AIQuarter
    q4: AIQuarter


class AILove(BaseModel):
    overview: str
    strengths: List[str] = []
    challenges: List[str] = []
    advice: str = ""


class AICareer(BaseModel):
    overview: str
    strengths: List[str] = []
    ideal_careers: List[str] = []
    finance_tips: List[str] = []
    year_focus: str = ""


class AIReportContent(BaseModel):
    sun_description: str
    moon_description: Optional[str] = None
    rising_description: Optional[str] = None
    hidden_talents: List[str] = []
    forecast: AIForecast
    love: AILove
    career: AICareer


# ---------------------------------------------------------------------------
# Prompt builders
# ---------------------------------------------------------------------------

def build_user_prompt(user: UserInput, language: Language, forecast_year: int) -> str:
    """
    Build the user-turn prompt.
    Only astrological facts and preferences go to the model — no email, no
    birth place name.
    """
    lines = [
        f"Gender: {user.gender.value}",
        f"Birth date: {user.birth_date.isoformat()}",
        f"Birth time: {user.birth_time or 'unknown'}",
        f"Sun sign: {user.sun_sign}",
        f"Moon sign: {user.moon_sign or 'unknown'}",
        f"Rising sign: {user.rising_sign or 'unknown'}",
    ]
    if user.relationship_status:
        lines.append(f"Relationship status: {user.relationship_status}")
    if user.goals:
        lines.append(f"Goals: {', '.join(user.goals)}")
    if user.element:
        lines.append(f"Feels closest to element: {user.element}")
    if user.favorite_color:
        lines.append(f"Favourite colour: {user.favorite_color}")

    profile = "\n".join(lines)
    return (
        f"Write a personal astrology report for {forecast_year}.\n"
        f"Language: {LANGUAGE_NAMES[language]}\n\n"
        f"Profile:\n{profile}\n\n"
        f"Return JSON matching this schema:\n{RESPONSE_SCHEMA}"
    )


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def strip_code_fences(text: str) -> str:
    clean = text.strip()
    if clean.startswith("```json"):
        clean = clean[7:]
    elif clean.startswith("```"):
        clean = clean[3:]
    if clean.endswith("```"):
        clean = clean[:-3]
    return clean.strip()


def parse_ai_response(text: Optional[str]) -> Optional[AIReportContent]:
    """Parsed content, or None when the text is not valid JSON or lacks required keys."""
    if not text:
        return None
    try:
        raw = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as exc:
        logger.warning("AI response is not valid JSON: %s", exc)
        return None
    try:
        return AIReportContent.model_validate(raw)
    except ValidationError as exc:
        logger.warning("AI response missing required fields: %d errors", exc.error_count())
        return None


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def merge_ai_content(base: FullReport, content: AIReportContent) -> FullReport:
    """Overlay AI narrative onto the static report. Matches and lucky days stay static."""
    chart = base.natal_chart.model_copy(update={
        "sun_description": content.sun_description,
        "moon_description": content.moon_description or base.natal_chart.moon_description,
        "rising_description": content.rising_description or base.natal_chart.rising_description,
    })

    talents = [
        PersonalityTrait(
            title=talent,
            description="A hidden talent revealed by your natal chart.",
            strength=75 + i * 5,
            icon="✨",
        )
        for i, talent in enumerate(content.hidden_talents[:2])
    ]

    quarters = (content.forecast.q1, content.forecast.q2, content.forecast.q3, content.forecast.q4)
    forecast = [
        QuarterlyForecast(
            quarter=static.quarter,
            title=ai.title,
            description=ai.description,
            focus=ai.focus or static.focus,
            lucky_days=static.lucky_days,
        )
        for static, ai in zip(base.forecast, quarters)
    ]

    love = LoveSection(
        overview=content.love.overview,
        strengths=content.love.strengths or base.love.strengths,
        challenges=content.love.challenges or base.love.challenges,
        advice=content.love.advice or base.love.advice,
        top_matches=base.love.top_matches,
    )
    career = CareerSection(
        overview=content.career.overview,
        strengths=content.career.strengths or base.career.strengths,
        ideal_careers=content.career.ideal_careers or base.career.ideal_careers,
        finance_tips=content.career.finance_tips or base.career.finance_tips,
        year_focus=content.career.year_focus or base.career.year_focus,
    )

    return base.model_copy(update={
        "natal_chart": chart,
        "personality": base.personality + talents,
        "forecast": forecast,
        "love": love,
        "career": career,
    })
