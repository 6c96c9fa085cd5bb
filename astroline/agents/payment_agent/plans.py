"""
plans.py — Fixed price-plan table and merchant reference format.

Amounts are in kopecks (UAH, ISO 4217 numeric 980).
Reference format: ASTRO-<reportId>-<epochMillis>
"""
import time
from dataclasses import dataclass
from typing import Optional

CURRENCY_UAH = 980
REFERENCE_PREFIX = "ASTRO"


@dataclass(frozen=True)
class PricePlan:
    plan_id: str
    name: str
    amount: int


PRICE_PLANS: dict[str, PricePlan] = {
    "trial_1w": PricePlan("trial_1w", "1-Week Trial", 4200),
    "trial_2w": PricePlan("trial_2w", "2-Week Plan", 22900),
    "trial_4w": PricePlan("trial_4w", "4-Week Plan", 41900),
}


def get_plan(plan_id: str) -> Optional[PricePlan]:
    return PRICE_PLANS.get(plan_id)


def build_reference(report_id: str, now_ms: Optional[int] = None) -> str:
    """ASTRO-<reportId>-<epochMillis>; now_ms is injectable for tests."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{REFERENCE_PREFIX}-{report_id}-{now_ms}"


def parse_reference(reference: Optional[str]) -> Optional[str]:
    """
    Extract the report id from a merchant reference.

    Returns None when the reference does not follow the ASTRO format.
    Report ids are hex so they never contain '-'; split from the right anyway.
    """
    if not reference or not reference.startswith(f"{REFERENCE_PREFIX}-"):
        return None
    body = reference[len(REFERENCE_PREFIX) + 1:]
    report_id, sep, stamp = body.rpartition("-")
    if not sep or not report_id or not stamp.isdigit():
        return None
    return report_id
