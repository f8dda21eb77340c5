"""Resolve free-text event dates into absolute datetimes."""
import logging
import re
from datetime import date, datetime
from typing import Callable, List, Optional, Tuple

from processor.models import UNRESOLVED_DATE

logger = logging.getLogger(__name__)

MONTH_PATTERN = (
    r'(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|'
    r'Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\.?'
)
WEEKDAY_PATTERN = r'(Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday)'
ORDINAL_PATTERN = r'(?:st|nd|rd|th)?'

MONTH_DAY_RE = re.compile(
    rf'\b{MONTH_PATTERN}\s+(\d{{1,2}}){ORDINAL_PATTERN}\b(?!,?\s*\d{{4}})',
    re.IGNORECASE
)
MONTH_DAY_YEAR_RE = re.compile(
    rf'\b{MONTH_PATTERN}\s+(\d{{1,2}}){ORDINAL_PATTERN},?\s*(\d{{4}})\b',
    re.IGNORECASE
)
WEEKDAY_DATE_RE = re.compile(
    rf'\b{WEEKDAY_PATTERN},?\s+{MONTH_PATTERN}\s+(\d{{1,2}}){ORDINAL_PATTERN},?\s+(\d{{4}})\b',
    re.IGNORECASE
)
TIME_RE = re.compile(r'(\d{1,2}):(\d{2})\s*(am|pm)', re.IGNORECASE)

MONTHS = {
    'jan': 1, 'feb': 2, 'mar': 3, 'apr': 4, 'may': 5, 'jun': 6,
    'jul': 7, 'aug': 8, 'sep': 9, 'oct': 10, 'nov': 11, 'dec': 12
}
WEEKDAYS = {
    'monday': 0, 'tuesday': 1, 'wednesday': 2, 'thursday': 3,
    'friday': 4, 'saturday': 5, 'sunday': 6
}

# Years searched past the stated one when the weekday contradicts the date
WEEKDAY_SEARCH_YEARS = 2

DateHandler = Callable[[str, date], Optional[datetime]]


def is_unresolved(value: datetime) -> bool:
    """Return True when value is the placeholder for an unparseable date."""
    return value == UNRESOLVED_DATE


def start_of_day(now: datetime) -> datetime:
    return datetime(now.year, now.month, now.day)


def is_upcoming(value: datetime, now: datetime) -> bool:
    """
    Check whether a resolved date is today or later.

    Unresolved dates count as upcoming so that events with an unknown
    date are kept rather than dropped.
    """
    if is_unresolved(value):
        return True
    return value >= start_of_day(now)


def _month_number(name: str) -> int:
    return MONTHS[name.lower()[:3]]


def _build_date(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def match_month_day(text: str, today: date) -> Optional[datetime]:
    """Month and day with no year; assume the next upcoming occurrence."""
    match = MONTH_DAY_RE.search(text)
    if not match:
        return None

    month = _month_number(match.group(1))
    day = int(match.group(2))

    resolved = _build_date(today.year, month, day)
    if resolved is None or resolved.date() < today:
        resolved = _build_date(today.year + 1, month, day)
    return resolved


def match_weekday_date(text: str, today: date) -> Optional[datetime]:
    """
    Weekday, month, day and year, e.g. "Tuesday, February 04, 2025".

    Recurring-event templates often carry a stale year. When the stated
    weekday does not fit the stated date, the same month/day is looked up
    in the following years and the first one falling on the stated weekday
    wins. Without such a year the date is kept as written.
    """
    match = WEEKDAY_DATE_RE.search(text)
    if not match:
        return None

    weekday = WEEKDAYS[match.group(1).lower()]
    month = _month_number(match.group(2))
    day = int(match.group(3))
    year = int(match.group(4))

    stated = _build_date(year, month, day)
    if stated is None or stated.weekday() == weekday:
        return stated

    for offset in range(1, WEEKDAY_SEARCH_YEARS + 1):
        candidate = _build_date(year + offset, month, day)
        if candidate is not None and candidate.weekday() == weekday:
            logger.debug(
                f"Corrected '{match.group(0)}' to {candidate.date().isoformat()}"
            )
            return candidate

    return stated


def match_month_day_year(text: str, today: date) -> Optional[datetime]:
    """Month, day and year; the year is taken as written."""
    match = MONTH_DAY_YEAR_RE.search(text)
    if not match:
        return None

    month = _month_number(match.group(1))
    day = int(match.group(2))
    year = int(match.group(3))
    return _build_date(year, month, day)


def apply_time_of_day(text: str, resolved: datetime) -> datetime:
    """
    Apply the first "H:MM am/pm" found in text to a resolved date.

    Args:
        text: Original date text
        resolved: Date to adjust (midnight)

    Returns:
        Datetime with the time applied, or resolved unchanged when no
        usable time is present
    """
    match = TIME_RE.search(text)
    if not match:
        return resolved

    hours = int(match.group(1))
    minutes = int(match.group(2))
    meridiem = match.group(3).lower()

    if not 1 <= hours <= 12 or minutes > 59:
        return resolved

    if meridiem == 'pm' and hours != 12:
        hours += 12
    if meridiem == 'am' and hours == 12:
        hours = 0

    return resolved.replace(hour=hours, minute=minutes)


class DateResolver:
    """Ordered cascade of date pattern handlers."""

    def __init__(self, handlers: Optional[List[Tuple[str, DateHandler]]] = None):
        # The weekday handler runs before the generic full-date handler,
        # whose pattern is a suffix of it.
        self.handlers = handlers or [
            ('month_day', match_month_day),
            ('weekday_date', match_weekday_date),
            ('month_day_year', match_month_day_year),
        ]

    def resolve(self, text: Optional[str], now: datetime) -> datetime:
        """
        Resolve date text to a datetime.

        Args:
            text: Free-text date fragment, possibly empty
            now: Reference time of the run

        Returns:
            Resolved datetime, or UNRESOLVED_DATE when nothing matches
        """
        if not text or not text.strip():
            return UNRESOLVED_DATE

        today = now.date()
        for name, handler in self.handlers:
            try:
                resolved = handler(text, today)
            except (ValueError, KeyError) as e:
                logger.debug(f"Date handler {name} failed on '{text}': {e}")
                continue
            if resolved is not None:
                return apply_time_of_day(text, resolved)

        return UNRESOLVED_DATE
