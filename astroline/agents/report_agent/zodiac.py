"""
zodiac.py — Sign/placement oracle for Astroline.

Pure lookups only:
  - ZODIAC_SIGNS        — the twelve signs with element, modality, ruler, dates
  - resolve_sign()      — name / slug / Ukrainian name → ZodiacSignData
  - sun_sign_for()      — birth date → sun sign (tropical date ranges)

Moon and rising placements need an ephemeris plus birth time/place; they are
computed client-side and arrive as inputs. This module never guesses them.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class ZodiacSignData:
    slug: str
    name: str
    name_uk: str
    symbol: str
    element: str            # fire | earth | air | water
    modality: str           # cardinal | fixed | mutable
    ruling_planet: str
    start: tuple[int, int]  # (month, day) inclusive
    end: tuple[int, int]    # (month, day) inclusive
    summary: str
    traits: tuple[str, ...] = field(default_factory=tuple)

    @property
    def date_range(self) -> str:
        return f"{self.start[0]:02d}-{self.start[1]:02d} – {self.end[0]:02d}-{self.end[1]:02d}"


ZODIAC_SIGNS: tuple[ZodiacSignData, ...] = (
    ZodiacSignData(
        "aries", "Aries", "Овен", "♈", "fire", "cardinal", "Mars", (3, 21), (4, 19),
        "Aries opens the zodiac with raw initiative: bold, direct and happiest when starting something new.",
        ("Courageous", "Energetic", "Independent"),
    ),
    ZodiacSignData(
        "taurus", "Taurus", "Телець", "♉", "earth", "fixed", "Venus", (4, 20), (5, 20),
        "Taurus builds slowly and keeps what it builds: patient, sensual and deeply loyal.",
        ("Reliable", "Patient", "Grounded"),
    ),
    ZodiacSignData(
        "gemini", "Gemini", "Близнюки", "♊", "air", "mutable", "Mercury", (5, 21), (6, 20),
        "Gemini lives through ideas and conversation: curious, quick and endlessly adaptable.",
        ("Curious", "Witty", "Versatile"),
    ),
    ZodiacSignData(
        "cancer", "Cancer", "Рак", "♋", "water", "cardinal", "Moon", (6, 21), (7, 22),
        "Cancer leads with feeling: protective of its people and guided by strong intuition.",
        ("Nurturing", "Intuitive", "Protective"),
    ),
    ZodiacSignData(
        "leo", "Leo", "Лев", "♌", "fire", "fixed", "Sun", (7, 23), (8, 22),
        "Leo shines on purpose: generous, expressive and made to lead from the heart.",
        ("Confident", "Generous", "Creative"),
    ),
    ZodiacSignData(
        "virgo", "Virgo", "Діва", "♍", "earth", "mutable", "Mercury", (8, 23), (9, 22),
        "Virgo improves everything it touches: precise, helpful and quietly perfectionist.",
        ("Analytical", "Diligent", "Practical"),
    ),
    ZodiacSignData(
        "libra", "Libra", "Терези", "♎", "air", "cardinal", "Venus", (9, 23), (10, 22),
        "Libra seeks balance and beauty: diplomatic, charming and drawn to partnership.",
        ("Diplomatic", "Fair-minded", "Social"),
    ),
    ZodiacSignData(
        "scorpio", "Scorpio", "Скорпіон", "♏", "water", "fixed", "Pluto", (10, 23), (11, 21),
        "Scorpio goes deep or not at all: intense, perceptive and fiercely loyal.",
        ("Passionate", "Perceptive", "Resolute"),
    ),
    ZodiacSignData(
        "sagittarius", "Sagittarius", "Стрілець", "♐", "fire", "mutable", "Jupiter", (11, 22), (12, 21),
        "Sagittarius chases the horizon: optimistic, honest and hungry for meaning.",
        ("Adventurous", "Optimistic", "Philosophical"),
    ),
    ZodiacSignData(
        "capricorn", "Capricorn", "Козеріг", "♑", "earth", "cardinal", "Saturn", (12, 22), (1, 19),
        "Capricorn climbs steadily: disciplined, responsible and built for the long game.",
        ("Disciplined", "Ambitious", "Responsible"),
    ),
    ZodiacSignData(
        "aquarius", "Aquarius", "Водолій", "♒", "air", "fixed", "Uranus", (1, 20), (2, 18),
        "Aquarius thinks ahead of its time: inventive, independent and community-minded.",
        ("Innovative", "Independent", "Humanitarian"),
    ),
    ZodiacSignData(
        "pisces", "Pisces", "Риби", "♓", "water", "mutable", "Neptune", (2, 19), (3, 20),
        "Pisces feels everything: imaginative, compassionate and tuned to the unseen.",
        ("Empathetic", "Imaginative", "Spiritual"),
    ),
)

_BY_KEY: dict[str, ZodiacSignData] = {}
for _sign in ZODIAC_SIGNS:
    for _key in (_sign.slug, _sign.name.lower(), _sign.name_uk.lower(), _sign.symbol):
        _BY_KEY[_key] = _sign

# Signs sharing an element get on best; complementary elements next
_ELEMENT_AFFINITY: dict[str, tuple[str, ...]] = {
    "fire": ("fire", "air"),
    "air": ("air", "fire"),
    "earth": ("earth", "water"),
    "water": ("water", "earth"),
}


def resolve_sign(value: Optional[str]) -> Optional[ZodiacSignData]:
    """Look up a sign by slug, English name, Ukrainian name or glyph."""
    if not value:
        return None
    return _BY_KEY.get(value.strip().lower())


def sun_sign_for(birth_date: date) -> ZodiacSignData:
    """Tropical sun sign for a calendar date."""
    md = (birth_date.month, birth_date.day)
    for sign in ZODIAC_SIGNS:
        if sign.start <= sign.end:
            if sign.start <= md <= sign.end:
                return sign
        elif md >= sign.start or md <= sign.end:   # Capricorn wraps the new year
            return sign
    raise ValueError(f"No sign covers {birth_date.isoformat()}")  # unreachable with a full table


def compatible_signs(sign: ZodiacSignData) -> list[ZodiacSignData]:
    """Other signs ordered by elemental affinity (same element first)."""
    primary, secondary = _ELEMENT_AFFINITY[sign.element]
    same = [s for s in ZODIAC_SIGNS if s.element == primary and s.slug != sign.slug]
    complement = [s for s in ZODIAC_SIGNS if s.element == secondary]
    return same + complement
