"""
providers.py — Report content providers, tried in order by the generator.

  MistralProvider  — primary, mistralai SDK (client created once in lifespan)
  GroqProvider     — secondary, OpenAI-compatible chat completions over httpx
  StaticProvider   — backstop, returns the static template, never fails

Each provider exposes `name`, `enabled` and `attempt(context)`. A provider
signals failure by raising; the generator catches and moves on.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
from mistralai import Mistral

from astroline.agents.report_agent.llm_service import (
    AI_MAX_TOKENS,
    AI_TEMPERATURE,
    SYSTEM_PROMPT,
    build_user_prompt,
    merge_ai_content,
    parse_ai_response,
)
from astroline.agents.report_agent.schemas import FullReport, Language, PalmReadingInput, UserInput

logger = logging.getLogger(__name__)

MISTRAL_MODEL = "mistral-small-latest"
GROQ_MODEL = "llama-3.3-70b-versatile"


class ProviderError(Exception):
    """A provider could not produce usable content."""


@dataclass
class GenerationContext:
    report_id: str
    user: UserInput
    palm_reading: Optional[PalmReadingInput]
    is_paid: bool
    language: Language
    forecast_year: int
    base_report: FullReport   # static template, the starting point for every provider


class ReportProvider(ABC):
    name: str = ""

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def attempt(self, context: GenerationContext) -> FullReport:
        """Return a full report or raise."""


class StaticProvider(ReportProvider):
    name = "static"

    async def attempt(self, context: GenerationContext) -> FullReport:
        return context.base_report


class MistralProvider(ReportProvider):
    name = "mistral"

    def __init__(self, client: Optional[Mistral], model: str = MISTRAL_MODEL):
        self._client = client
        self._model = model

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def attempt(self, context: GenerationContext) -> FullReport:
        logger.info("Calling Mistral API model=%s report_id=%s", self._model, context.report_id)
        response = await self._client.chat.complete_async(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(context.user, context.language, context.forecast_year)},
            ],
            temperature=AI_TEMPERATURE,
            max_tokens=AI_MAX_TOKENS,
        )
        text: str = response.choices[0].message.content or ""
        content = parse_ai_response(text)
        if content is None:
            raise ProviderError("Mistral returned unusable content")
        return merge_ai_content(context.base_report, content)


class GroqProvider(ReportProvider):
    name = "groq"

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float,
        model: str = GROQ_MODEL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._model = model
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def attempt(self, context: GenerationContext) -> FullReport:
        logger.info("Calling Groq API model=%s report_id=%s", self._model, context.report_id)
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"Authorization": f"Bearer {self._api_key}"},
            transport=self._transport,
        ) as client:
            response = await client.post(
                "/chat/completions",
                json={
                    "model": self._model,
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": build_user_prompt(context.user, context.language, context.forecast_year)},
                    ],
                    "temperature": AI_TEMPERATURE,
                    "max_tokens": AI_MAX_TOKENS,
                },
            )
            response.raise_for_status()
            data = response.json()

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ProviderError(f"Unexpected Groq response shape: {exc}") from exc
        content = parse_ai_response(text)
        if content is None:
            raise ProviderError("Groq returned unusable content")
        return merge_ai_content(context.base_report, content)
