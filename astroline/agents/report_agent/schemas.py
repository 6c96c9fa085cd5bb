"""
schemas.py — ReportAgent Pydantic v2 data contracts.

Defines:
  - UserInput / ReportRequest     (report creation payload)
  - ZodiacSign / UnknownSign      (natal chart placements)
  - FullReport and its sections   (the durable report body)
  - PaidStatusUpdate              (PATCH /api/reports/{id})
  - public_view()                 (premium sections redacted until paid)

Moon and rising placements are either a ZodiacSign or an UnknownSign with a
reason — never a guessed value. Gating happens in generator.py.
"""
import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from astroline.agents.report_agent.zodiac import resolve_sign

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Gender(str, Enum):
    female = "female"
    male = "male"
    non_binary = "non-binary"


class Language(str, Enum):
    en = "en"
    uk = "uk"


# ---------------------------------------------------------------------------
# Request contracts
# ---------------------------------------------------------------------------

class PalmReadingInput(BaseModel):
    """Palm analysis answers collected at the palm-upload step."""
    model_config = ConfigDict(extra="forbid")

    children_count: str
    marriages_count: str
    big_changes: bool
    wealth_indicator: str


class UserInput(BaseModel):
    """
    Person-level inputs the generator works from.

    Required: email, birth_date, sun_sign. Everything else is optional and
    absence is meaningful — no birth_time means moon and rising are unknown.
    """
    model_config = ConfigDict(extra="forbid")

    email: str = Field(..., max_length=320)
    gender: Gender = Gender.female
    birth_date: date
    birth_time: Optional[str] = Field(default=None, description="Local birth time, HH:MM")
    birth_place: Optional[str] = Field(default=None, max_length=200)
    birth_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    birth_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    sun_sign: str
    moon_sign: Optional[str] = None
    rising_sign: Optional[str] = None
    goals: List[str] = Field(default_factory=list)
    relationship_status: Optional[str] = None
    favorite_color: Optional[str] = None
    element: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not _EMAIL_RE.match(value):
            raise ValueError("email is not a valid address")
        return value

    @field_validator("birth_time", "birth_place", "moon_sign", "rising_sign", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("birth_time")
    @classmethod
    def validate_birth_time(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _TIME_RE.match(value.strip()):
            raise ValueError("birth_time must be HH:MM (24h)")
        return value.strip() if value else value

    @field_validator("sun_sign")
    @classmethod
    def validate_sun_sign(cls, value: str) -> str:
        sign = resolve_sign(value)
        if sign is None:
            raise ValueError(f"Unknown zodiac sign '{value}'")
        return sign.slug

    @field_validator("moon_sign", "rising_sign")
    @classmethod
    def validate_optional_sign(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        sign = resolve_sign(value)
        if sign is None:
            raise ValueError(f"Unknown zodiac sign '{value}'")
        return sign.slug


class ReportRequest(UserInput):
    """
    POST /api/reports body — UserInput plus palm data, locale and quiz session.

    Extra quiz answers (modality, polarity, palm_image_url) are tolerated and dropped.
    """
    model_config = ConfigDict(extra="ignore")

    palm_reading: Optional[PalmReadingInput] = None
    language: Language = Language.en
    session_id: Optional[str] = Field(
        default=None,
        description="Quiz session id. When it already owns a report, that report is returned.",
    )


class PaidStatusUpdate(BaseModel):
    """PATCH /api/reports/{id} — strict boolean, "true"/1 are rejected."""
    model_config = ConfigDict(extra="forbid")

    is_paid: StrictBool


# ---------------------------------------------------------------------------
# Report body
# ---------------------------------------------------------------------------

class ZodiacSign(BaseModel):
    name: str
    symbol: str
    element: Literal["fire", "earth", "air", "water"]
    modality: Literal["cardinal", "fixed", "mutable"]
    ruling_planet: str
    date_range: str


class UnknownSign(BaseModel):
    """
    Placeholder for a placement that cannot be computed from the inputs.

    not_computed: birth time/place were given but no placement came with them.
    """
    is_unknown: Literal[True] = True
    reason: Literal["no_birth_time", "no_birth_place", "not_computed"]


class NatalChart(BaseModel):
    sun_sign: ZodiacSign
    moon_sign: Union[UnknownSign, ZodiacSign]
    rising_sign: Union[UnknownSign, ZodiacSign]
    sun_description: str
    moon_description: Optional[str] = None
    rising_description: Optional[str] = None


class NumerologyData(BaseModel):
    life_path_number: int
    life_path_meaning: str
    birthday_number: int
    birthday_meaning: str
    is_master_number: bool
    forecast_year: int
    personal_year: int
    personal_year_meaning: str


class PersonalityTrait(BaseModel):
    title: str
    description: str
    strength: int = Field(..., ge=1, le=100)
    icon: str


class QuarterlyForecast(BaseModel):
    quarter: str
    title: str
    description: str
    focus: List[str]
    lucky_days: List[str] = Field(default_factory=list)


class Compatibility(BaseModel):
    sign: str
    symbol: str
    percentage: int = Field(..., ge=0, le=100)
    description: str


class LoveSection(BaseModel):
    overview: str
    strengths: List[str]
    challenges: List[str]
    advice: str
    top_matches: List[Compatibility]


class CareerSection(BaseModel):
    overview: str
    strengths: List[str]
    ideal_careers: List[str]
    finance_tips: List[str]
    year_focus: str


class PalmReading(PalmReadingInput):
    life_line_interpretation: str
    heart_line_interpretation: str
    head_line_interpretation: str


class LuckyAttributes(BaseModel):
    numbers: List[int]
    days: List[str]
    colors: List[str]
    gems: List[str]
    direction: str


class UserSnapshot(BaseModel):
    email: str
    gender: str
    birth_date: str
    birth_time: Optional[str] = None
    birth_place: Optional[str] = None


class FullReport(BaseModel):
    """
    The durable report body stored under reports.report_data.

    Only is_paid may change after creation.
    """
    id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    language: Language = Language.en
    user_data: UserSnapshot
    natal_chart: NatalChart
    numerology: Optional[NumerologyData] = None
    personality: List[PersonalityTrait]
    forecast: List[QuarterlyForecast]
    love: LoveSection
    career: CareerSection
    palm_reading: Optional[PalmReading] = None
    lucky: LuckyAttributes
    is_paid: bool = False


# Sections hidden from the public view until the report is unlocked
PREMIUM_SECTIONS: tuple[str, ...] = ("forecast", "love", "career", "palm_reading", "lucky")


def public_view(report: FullReport) -> dict[str, Any]:
    """JSON-ready report with premium sections nulled out while unpaid."""
    data = report.model_dump(mode="json")
    locked: list[str] = []
    if not report.is_paid:
        for section in PREMIUM_SECTIONS:
            if data.get(section) is not None:
                locked.append(section)
            data[section] = None
    data["locked_sections"] = locked
    return data
