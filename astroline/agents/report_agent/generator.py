"""
generator.py — ReportGenerator: ordered provider chain + placement gating.

generate() is total: providers are tried one at a time in priority order,
each bounded by a timeout; any exception or timeout moves on to the next,
and the static provider is always last. Moon/rising gating runs after a
provider returns, so no provider can leak a placement the inputs do not
support.

No persistence here — the caller saves the report through ReportStore.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from astroline.agents.report_agent.providers import (
    GenerationContext,
    ReportProvider,
    StaticProvider,
)
from astroline.agents.report_agent.schemas import (
    FullReport,
    Language,
    PalmReadingInput,
    UnknownSign,
    UserInput,
)
from astroline.agents.report_agent.static_report import build_static_report

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    report: FullReport
    provider_used: str


def apply_placement_gating(report: FullReport, user: UserInput) -> FullReport:
    """
    Replace moon/rising with UnknownSign when the inputs cannot support them.
      moon   — needs birth_time
      rising — needs birth_time and birth_place
    """
    chart = report.natal_chart
    updates = {}
    if not user.birth_time:
        updates["moon_sign"] = UnknownSign(reason="no_birth_time")
        updates["moon_description"] = None
        updates["rising_sign"] = UnknownSign(reason="no_birth_time")
        updates["rising_description"] = None
    elif not user.birth_place:
        updates["rising_sign"] = UnknownSign(reason="no_birth_place")
        updates["rising_description"] = None

    # A placement the chart could not compute carries no description
    if isinstance(updates.get("moon_sign", chart.moon_sign), UnknownSign):
        updates["moon_description"] = None
    if isinstance(updates.get("rising_sign", chart.rising_sign), UnknownSign):
        updates["rising_description"] = None

    if not updates:
        return report
    return report.model_copy(update={"natal_chart": chart.model_copy(update=updates)})


class ReportGenerator:

    def __init__(
        self,
        providers: Sequence[ReportProvider],
        timeout_seconds: float,
        forecast_year: int,
    ):
        chain = [p for p in providers if p.enabled]
        if not any(isinstance(p, StaticProvider) for p in chain):
            chain.append(StaticProvider())
        self.providers = chain
        self.timeout_seconds = timeout_seconds
        self.forecast_year = forecast_year

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    async def generate(
        self,
        report_id: str,
        user_input: UserInput,
        palm_reading: Optional[PalmReadingInput] = None,
        is_paid_hint: bool = False,
        language: Language = Language.en,
    ) -> GenerationResult:
        base = build_static_report(
            report_id, user_input, palm_reading, is_paid_hint, language, self.forecast_year
        )
        context = GenerationContext(
            report_id=report_id,
            user=user_input,
            palm_reading=palm_reading,
            is_paid=is_paid_hint,
            language=language,
            forecast_year=self.forecast_year,
            base_report=base,
        )

        for provider in self.providers:
            try:
                report = await asyncio.wait_for(provider.attempt(context), timeout=self.timeout_seconds)
            except asyncio.TimeoutError:
                logger.warning(
                    "Provider %s timed out after %.1fs report_id=%s",
                    provider.name, self.timeout_seconds, report_id,
                )
                continue
            except Exception as exc:
                logger.warning("Provider %s failed report_id=%s: %s", provider.name, report_id, exc)
                continue

            logger.info("Report generated report_id=%s provider=%s", report_id, provider.name)
            return GenerationResult(
                report=apply_placement_gating(report, user_input),
                provider_used=provider.name,
            )

        # Only reachable when a custom chain's static provider raised
        logger.error("All providers failed report_id=%s, using static template", report_id)
        return GenerationResult(report=apply_placement_gating(base, user_input), provider_used="static")
