"""
static_report.py — Deterministic template report (the backstop provider).

build_static_report() never fails for a valid UserInput: every section is
assembled from the zodiac table plus small element/modality templates.
AI providers start from this report and overwrite the narrative fields,
so compatibility matches and lucky days always come from here.
"""
from datetime import date
from typing import Optional, Union

from astroline.agents.report_agent.numerology import calculate_numerology
from astroline.agents.report_agent.schemas import (
    CareerSection,
    Compatibility,
    FullReport,
    Language,
    LoveSection,
    LuckyAttributes,
    NatalChart,
    PalmReading,
    PalmReadingInput,
    PersonalityTrait,
    QuarterlyForecast,
    UnknownSign,
    UserInput,
    UserSnapshot,
    ZodiacSign,
)
from astroline.agents.report_agent.zodiac import ZodiacSignData, compatible_signs, resolve_sign

# ---------------------------------------------------------------------------
# Template tables
# ---------------------------------------------------------------------------

ELEMENT_ICONS = {"fire": "🔥", "earth": "🌿", "air": "💨", "water": "🌊"}

ELEMENT_LOVE = {
    "fire": (
        "You love boldly and openly. Passion and shared adventure keep your relationships alive.",
        ["Warm and generous affection", "Courage to make the first move", "Playful energy"],
        ["Impatience when things move slowly", "Flaring up in arguments"],
        "Let your partner set the pace now and then; steadiness deepens the spark.",
    ),
    "earth": (
        "You love through loyalty and care. Trust is built slowly and then held for good.",
        ["Dependable devotion", "Practical acts of care", "Sensual presence"],
        ["Reluctance to show vulnerability", "Resistance to change"],
        "Say what you feel out loud; your partner cannot read your quiet gestures every time.",
    ),
    "air": (
        "You love through connection of minds. Conversation and shared ideas are your love language.",
        ["Open communication", "Lightness and humour", "Respect for freedom"],
        ["Detachment when emotions run high", "Overthinking instead of feeling"],
        "Stay present in emotional moments instead of analysing them from a distance.",
    ),
    "water": (
        "You love deeply and intuitively. Emotional safety matters more to you than grand gestures.",
        ["Deep empathy", "Emotional loyalty", "Intuitive understanding"],
        ["Taking things personally", "Withdrawing when hurt"],
        "Protect your boundaries; caring for yourself makes you a better partner.",
    ),
}

ELEMENT_CAREER = {
    "fire": (
        "You thrive where you can lead, compete and see fast results.",
        ["Initiative", "Leadership", "Motivating others"],
        ["Entrepreneur", "Sales director", "Coach", "Creative director"],
    ),
    "earth": (
        "You thrive where effort compounds into tangible, lasting results.",
        ["Reliability", "Attention to detail", "Long-term planning"],
        ["Financial analyst", "Architect", "Project manager", "Operations lead"],
    ),
    "air": (
        "You thrive where ideas, people and information move quickly.",
        ["Communication", "Strategic thinking", "Networking"],
        ["Product manager", "Journalist", "Consultant", "UX researcher"],
    ),
    "water": (
        "You thrive where intuition and empathy make a real difference to people.",
        ["Empathy", "Creativity", "Reading people"],
        ["Psychologist", "Designer", "Healthcare professional", "Writer"],
    ),
}

MODALITY_FINANCE = {
    "cardinal": ["Set one clear savings goal per quarter", "Invest in skills that open new doors"],
    "fixed": ["Automate your savings", "Review long-held commitments once a year"],
    "mutable": ["Keep a flexible emergency fund", "Avoid impulse purchases during busy periods"],
}

QUARTER_THEMES = (
    ("Q1", "Fresh Starts", ["New goals", "Self-care", "Planning"]),
    ("Q2", "Growth and Momentum", ["Career moves", "Networking", "Learning"]),
    ("Q3", "Harvest and Balance", ["Relationships", "Finances", "Rest"]),
    ("Q4", "Completion and Vision", ["Reflection", "Letting go", "Next year's plans"]),
)

ELEMENT_QUARTER_TONE = {
    "fire": "Your fire energy pushes you to act first and refine later.",
    "earth": "Your earth energy rewards patient, consistent steps.",
    "air": "Your air energy brings new contacts and sudden ideas.",
    "water": "Your water energy asks you to follow intuition over logic.",
}

ELEMENT_LUCKY = {
    # colors, gems, direction
    "fire": (["Red", "Gold", "Orange"], ["Ruby", "Carnelian"], "South"),
    "earth": (["Green", "Brown", "Cream"], ["Emerald", "Jade"], "North"),
    "air": (["Sky blue", "Silver", "Yellow"], ["Aquamarine", "Citrine"], "East"),
    "water": (["Sea green", "Deep blue", "Lavender"], ["Moonstone", "Pearl"], "West"),
}

PLANET_DAYS = {
    "Sun": "Sunday",
    "Moon": "Monday",
    "Mars": "Tuesday",
    "Mercury": "Wednesday",
    "Jupiter": "Thursday",
    "Venus": "Friday",
    "Saturn": "Saturday",
    "Uranus": "Saturday",
    "Neptune": "Thursday",
    "Pluto": "Tuesday",
}

MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

MATCH_PERCENTAGES = (95, 89, 84)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def to_zodiac_sign(sign: ZodiacSignData) -> ZodiacSign:
    return ZodiacSign(
        name=sign.name,
        symbol=sign.symbol,
        element=sign.element,
        modality=sign.modality,
        ruling_planet=sign.ruling_planet,
        date_range=sign.date_range,
    )


def _placement(slug: Optional[str]) -> Union[ZodiacSign, UnknownSign]:
    sign = resolve_sign(slug)
    if sign is None:
        return UnknownSign(reason="not_computed")
    return to_zodiac_sign(sign)


def moon_description(sign: ZodiacSignData) -> str:
    return (
        f"Moon in {sign.name}: your emotional world runs on {sign.element} energy. "
        f"You feel most secure when you can be {sign.traits[0].lower()}."
    )


def rising_description(sign: ZodiacSignData) -> str:
    return (
        f"{sign.name} rising: people first meet you as {sign.traits[1].lower()} "
        f"and {sign.traits[2].lower()}, often before they know your sun sign."
    )


def _build_natal_chart(user: UserInput, sun: ZodiacSignData) -> NatalChart:
    moon = resolve_sign(user.moon_sign)
    rising = resolve_sign(user.rising_sign)
    return NatalChart(
        sun_sign=to_zodiac_sign(sun),
        moon_sign=_placement(user.moon_sign),
        rising_sign=_placement(user.rising_sign),
        sun_description=sun.summary,
        moon_description=moon_description(moon) if moon else None,
        rising_description=rising_description(rising) if rising else None,
    )


def _build_personality(sun: ZodiacSignData, life_path: int) -> list[PersonalityTrait]:
    icon = ELEMENT_ICONS[sun.element]
    traits = [
        PersonalityTrait(
            title=trait,
            description=f"As a {sun.name}, being {trait.lower()} comes naturally and shapes how you handle challenges.",
            strength=strength,
            icon=icon,
        )
        for trait, strength in zip(sun.traits, (92, 86, 80))
    ]
    traits.append(PersonalityTrait(
        title=f"Life Path {life_path}",
        description="Your life path number colours how your sign's gifts show up over the long run.",
        strength=78,
        icon="🔢",
    ))
    return traits


def _lucky_days_for_quarter(birth_date: date, quarter_index: int) -> list[str]:
    first_month = quarter_index * 3
    days = []
    for offset in (0, 2):
        month = first_month + offset
        day = (birth_date.day + quarter_index * 7 + offset * 3) % 28 + 1
        days.append(f"{MONTH_ABBR[month]} {day}")
    return days


def _build_forecast(sun: ZodiacSignData, birth_date: date, year: int) -> list[QuarterlyForecast]:
    tone = ELEMENT_QUARTER_TONE[sun.element]
    return [
        QuarterlyForecast(
            quarter=f"{quarter} {year}",
            title=title,
            description=f"{title} for {sun.name}. {tone}",
            focus=list(focus),
            lucky_days=_lucky_days_for_quarter(birth_date, i),
        )
        for i, (quarter, title, focus) in enumerate(QUARTER_THEMES)
    ]


def _build_love(sun: ZodiacSignData) -> LoveSection:
    overview, strengths, challenges, advice = ELEMENT_LOVE[sun.element]
    matches = [
        Compatibility(
            sign=match.name,
            symbol=match.symbol,
            percentage=pct,
            description=f"{match.name} shares your {match.element} rhythm and understands your needs.",
        )
        for match, pct in zip(compatible_signs(sun), MATCH_PERCENTAGES)
    ]
    return LoveSection(
        overview=overview,
        strengths=list(strengths),
        challenges=list(challenges),
        advice=advice,
        top_matches=matches,
    )


def _build_career(sun: ZodiacSignData, personal_year_meaning: str) -> CareerSection:
    overview, strengths, careers = ELEMENT_CAREER[sun.element]
    return CareerSection(
        overview=overview,
        strengths=list(strengths),
        ideal_careers=list(careers),
        finance_tips=list(MODALITY_FINANCE[sun.modality]),
        year_focus=personal_year_meaning,
    )


def build_palm_reading(palm: PalmReadingInput) -> PalmReading:
    life = (
        "A line marked by major turning points: you reinvent yourself more than once."
        if palm.big_changes
        else "A steady, unbroken life line: consistency and resilience carry you."
    )
    heart = (
        f"Your heart line suggests {palm.marriages_count} significant partnership(s) "
        f"and {palm.children_count} child(ren) in your story."
    )
    head = f"Your head line points to {palm.wealth_indicator} material prospects when you trust your own judgement."
    return PalmReading(
        **palm.model_dump(),
        life_line_interpretation=life,
        heart_line_interpretation=heart,
        head_line_interpretation=head,
    )


def _build_lucky(sun: ZodiacSignData, numbers: list[int], favorite_color: Optional[str]) -> LuckyAttributes:
    colors, gems, direction = ELEMENT_LUCKY[sun.element]
    colors = list(colors)
    if favorite_color and favorite_color.capitalize() not in colors:
        colors.insert(0, favorite_color.capitalize())
    unique_numbers = list(dict.fromkeys(numbers))
    return LuckyAttributes(
        numbers=unique_numbers,
        days=[PLANET_DAYS.get(sun.ruling_planet, "Sunday")],
        colors=colors,
        gems=list(gems),
        direction=direction,
    )


def build_static_report(
    report_id: str,
    user: UserInput,
    palm_reading: Optional[PalmReadingInput],
    is_paid: bool,
    language: Language,
    forecast_year: int,
) -> FullReport:
    sun = resolve_sign(user.sun_sign)
    if sun is None:   # UserInput already validated sun_sign
        raise ValueError(f"Unknown zodiac sign '{user.sun_sign}'")
    numerology = calculate_numerology(user.birth_date, forecast_year)

    return FullReport(
        id=report_id,
        language=language,
        user_data=UserSnapshot(
            email=user.email,
            gender=user.gender.value,
            birth_date=user.birth_date.isoformat(),
            birth_time=user.birth_time,
            birth_place=user.birth_place,
        ),
        natal_chart=_build_natal_chart(user, sun),
        numerology=numerology,
        personality=_build_personality(sun, numerology.life_path_number),
        forecast=_build_forecast(sun, user.birth_date, forecast_year),
        love=_build_love(sun),
        career=_build_career(sun, numerology.personal_year_meaning),
        palm_reading=build_palm_reading(palm_reading) if palm_reading else None,
        lucky=_build_lucky(
            sun,
            [numerology.life_path_number, numerology.birthday_number, numerology.personal_year],
            user.favorite_color,
        ),
        is_paid=is_paid,
    )
