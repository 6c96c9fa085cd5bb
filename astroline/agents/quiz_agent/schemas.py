"""
schemas.py — QuizAgent Pydantic v2 data contracts.

QuizAnswers is deliberately all-optional: the quiz fills it one step at a
time and PATCH bodies are partial updates.
"""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from astroline.agents.report_agent.schemas import PalmReadingInput


class QuizAnswers(BaseModel):
    model_config = ConfigDict(extra="forbid")

    gender: Optional[str] = None
    birth_date: Optional[str] = Field(default=None, description="ISO date YYYY-MM-DD")
    birth_time: Optional[str] = Field(default=None, description="HH:MM, absent when unknown")
    birth_place: Optional[str] = None
    birth_lat: Optional[float] = None
    birth_lng: Optional[float] = None
    relationship_status: Optional[str] = None
    goals: Optional[List[str]] = None
    favorite_color: Optional[str] = None
    element: Optional[str] = None
    sun_sign: Optional[str] = None
    moon_sign: Optional[str] = None
    rising_sign: Optional[str] = None
    modality: Optional[str] = None
    polarity: Optional[str] = None
    palm_image_url: Optional[str] = None
    palm_reading: Optional[PalmReadingInput] = None
    email: Optional[str] = None


class QuizProgress(BaseModel):
    current: int
    total: int
    percentage: int


class JumpRequest(BaseModel):
    step: int


class QuizSessionResponse(BaseModel):
    session_id: str
    current_step: int
    step_name: str
    answers: QuizAnswers
    report_id: Optional[str] = None
    progress: QuizProgress
    is_complete: bool
