"""
Clinical date parsing.

Supported renderings:
    03/15/2024, 3/15/24, 2024-03-15, 03-15-2024,
    March 15, 2024 / Mar 15 2024, 15 March 2024 / 15-Mar-2024

``parse_clinical_date`` raises TemporalResolutionFailure for text that looks
like a date but does not name a real calendar day; callers decide how to
degrade.
"""

import re
from datetime import date
from typing import List, Optional

from src.shared.exceptions import TemporalResolutionFailure


MONTHS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

_MONTH_NAMES = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sept?(?:ember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\.?"
)

# Regex fragment matching any supported rendering (used inside field patterns)
DATE_PATTERN = (
    r"(?:\d{4}-\d{1,2}-\d{1,2}"
    r"|\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2})"
    rf"|{_MONTH_NAMES}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}"
    rf"|\d{{1,2}}(?:st|nd|rd|th)?[\s-]+{_MONTH_NAMES}[\s-]+\d{{4}})"
)

DATE_REGEX = re.compile(DATE_PATTERN, re.IGNORECASE)

_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_NUMERIC = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})$")
_MONTH_FIRST = re.compile(rf"^({_MONTH_NAMES})\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})$", re.IGNORECASE)
_DAY_FIRST = re.compile(rf"^(\d{{1,2}})(?:st|nd|rd|th)?[\s-]+({_MONTH_NAMES})[\s-]+(\d{{4}})$", re.IGNORECASE)


def parse_clinical_date(text: str) -> date:
    """
    Parse one date rendering.

    Two-digit years pivot at 50 (``24`` -> 2024, ``87`` -> 1987).

    Raises:
        TemporalResolutionFailure: unrecognized format or impossible date
    """
    raw = (text or "").strip().rstrip(".,;")
    if not raw:
        raise TemporalResolutionFailure(text or "", "empty date text")

    match = _ISO.match(raw)
    if match:
        return _build(raw, int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _NUMERIC.match(raw)
    if match:
        year = int(match.group(3))
        if len(match.group(3)) == 2:
            year += 2000 if year < 50 else 1900
        return _build(raw, year, int(match.group(1)), int(match.group(2)))

    match = _MONTH_FIRST.match(raw)
    if match:
        return _build(raw, int(match.group(3)), _month(match.group(1)), int(match.group(2)))

    match = _DAY_FIRST.match(raw)
    if match:
        return _build(raw, int(match.group(3)), _month(match.group(2)), int(match.group(1)))

    raise TemporalResolutionFailure(raw, "unrecognized date format")


def try_parse_date(text: str) -> Optional[date]:
    """``parse_clinical_date`` returning None instead of raising."""
    try:
        return parse_clinical_date(text)
    except TemporalResolutionFailure:
        return None


def find_dates(text: str) -> List[re.Match]:
    """All date-like substrings, in order."""
    return list(DATE_REGEX.finditer(text))


def date_renderings(value: date) -> List[str]:
    """Common renderings of a date, for verbatim lookups in source text."""
    month_name = value.strftime("%B")
    return [
        value.isoformat(),
        f"{value.month:02d}/{value.day:02d}/{value.year}",
        f"{value.month}/{value.day}/{value.year}",
        f"{value.month:02d}/{value.day:02d}/{value.year % 100:02d}",
        f"{value.month}/{value.day}/{value.year % 100:02d}",
        f"{value.month:02d}-{value.day:02d}-{value.year}",
        f"{month_name} {value.day}, {value.year}",
        f"{month_name[:3]} {value.day}, {value.year}",
        f"{month_name} {value.day} {value.year}",
        f"{value.day} {month_name} {value.year}",
    ]


def _month(name: str) -> int:
    return MONTHS[name.lower().rstrip(".")]


def _build(raw: str, year: int, month: int, day: int) -> date:
    try:
        return date(year, month, day)
    except ValueError as e:
        raise TemporalResolutionFailure(raw, str(e)) from e
