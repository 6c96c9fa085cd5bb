"""
numerology.py — Pythagorean numerology for the report's numerology section.

  life path      — every digit of YYYY-MM-DD summed, reduced; 11/22/33 kept
  birthday       — day of month reduced to 1..9 (master numbers not kept)
  personal year  — month + day + digit sum of the forecast year, reduced to 1..9

Pure functions, no I/O.
"""
from datetime import date

from astroline.agents.report_agent.schemas import NumerologyData

MASTER_NUMBERS = frozenset({11, 22, 33})


def _digit_sum(value: int) -> int:
    return sum(int(d) for d in str(value))


def reduce_number(value: int, keep_master: bool = True) -> int:
    """Reduce to a single digit, stopping early at a master number when keep_master."""
    if keep_master and value in MASTER_NUMBERS:
        return value
    while value > 9:
        value = _digit_sum(value)
        if keep_master and value in MASTER_NUMBERS:
            return value
    return value


def life_path_number(birth_date: date) -> int:
    """1990-08-15 → 1+9+9+0+0+8+1+5 = 33 (kept as a master number)."""
    digits = birth_date.strftime("%Y%m%d")
    return reduce_number(sum(int(d) for d in digits), keep_master=True)


def birthday_number(birth_date: date) -> int:
    return reduce_number(birth_date.day, keep_master=False)


def personal_year_number(birth_date: date, year: int) -> int:
    return reduce_number(birth_date.month + birth_date.day + _digit_sum(year), keep_master=False)


LIFE_PATH_MEANINGS: dict[int, str] = {
    1: "A natural leader and pioneer. Your path is to open new trails, stay independent and lead others by example.",
    2: "A diplomat and peacemaker. Your path is to create harmony, support others and trust your intuition about people.",
    3: "A creative communicator. Your path is self-expression through art and words, lifting others with optimism.",
    4: "A builder and organizer. Your path is to lay stable foundations, work methodically and reach long-term goals.",
    5: "A seeker of freedom. Your path is exploration, embracing change and showing others how varied life can be.",
    6: "A caretaker and healer. Your path is devotion to family and community, bringing beauty and balance to others.",
    7: "A seeker of truth. Your path is deep study, inner growth and uncovering what is hidden.",
    8: "A master of the material world. Your path is achievement, stewardship of resources and power used well.",
    9: "A humanitarian and sage. Your path is service, closing cycles and passing wisdom on.",
    11: "Master Number 11: a spiritual messenger. You are here to inspire and illuminate through intuition and creative vision.",
    22: "Master Number 22: the master builder. You are here to turn large visions into something real and lasting.",
    33: "Master Number 33: the master teacher. You are here to raise others through compassion and service.",
}

BIRTHDAY_MEANINGS: dict[int, str] = {
    1: "Born to go first: initiative, original thinking and a knack for starting things.",
    2: "Born for partnership: tact, diplomacy and the ability to see both sides.",
    3: "Born to create: artistry, optimism and an easy gift for expression.",
    4: "Born to build: practicality, order and structures others can rely on.",
    5: "Born for freedom: adaptability, curiosity and a love of variety.",
    6: "Born to care: responsibility, an eye for beauty and a talent for harmony.",
    7: "Born to investigate: an analytical mind, intuition and a pull toward life's mysteries.",
    8: "Born to achieve: ambition, business sense and natural authority.",
    9: "Born to serve: compassion, open-mindedness and an urge to help.",
}

PERSONAL_YEAR_THEMES: dict[int, str] = {
    1: "a year of new beginnings. Set fresh goals, start projects and take the initiative.",
    2: "a year of partnership. Relationships, cooperation and patience bring results.",
    3: "a year of self-expression. Creativity, communication and joy take centre stage.",
    4: "a year of foundations. Steady work and organization build a stable base.",
    5: "a year of change. Expect surprises, travel and new experiences; stay flexible.",
    6: "a year of responsibility. Home, family and caring for loved ones come first.",
    7: "a year of reflection. Study, self-analysis and inner growth are favoured.",
    8: "a year of achievement. Career, finances and material progress are in focus.",
    9: "a year of completion. Release the old, close cycles and make room for what is next.",
}


def personal_year_meaning(number: int, year: int) -> str:
    return f"{year} is {PERSONAL_YEAR_THEMES.get(number, 'a year of steady personal growth.')}"


def calculate_numerology(birth_date: date, forecast_year: int) -> NumerologyData:
    life_path = life_path_number(birth_date)
    birthday = birthday_number(birth_date)
    personal_year = personal_year_number(birth_date, forecast_year)
    return NumerologyData(
        life_path_number=life_path,
        life_path_meaning=LIFE_PATH_MEANINGS.get(life_path, "A unique path of self-discovery and growth."),
        birthday_number=birthday,
        birthday_meaning=BIRTHDAY_MEANINGS.get(birthday, ""),
        is_master_number=life_path in MASTER_NUMBERS,
        forecast_year=forecast_year,
        personal_year=personal_year,
        personal_year_meaning=personal_year_meaning(personal_year, forecast_year),
    )
