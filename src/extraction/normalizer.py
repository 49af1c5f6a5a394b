"""Caption text, date and time normalizers.

Cleans OCR and typography artifacts from captions and converts the
informal date and time references found in event posts ("Dec 5",
"this Saturday", "7PM", "midnight") into ISO dates and 24-hour times.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, timedelta

# Month name → number mapping
MONTH_MAP: dict[str, int] = {
    "january": 1, "february": 2, "march": 3, "april": 4,
    "may": 5, "june": 6, "july": 7, "august": 8,
    "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4,
    "jun": 6, "jul": 7, "aug": 8, "sep": 9,
    "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

WEEKDAY_MAP: dict[str, int] = {
    "monday": 0, "mon": 0, "tuesday": 1, "tue": 1, "tues": 1,
    "wednesday": 2, "wed": 2, "thursday": 3, "thu": 3, "thur": 3, "thurs": 3,
    "friday": 4, "fri": 4, "saturday": 5, "sat": 5, "sunday": 6, "sun": 6,
}

MONTH_ALTERNATION = (
    r"jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sept?(?:ember)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?"
)

_QUOTE_TRANSLATION = str.maketrans({
    "\u201c": '"', "\u201d": '"', "\u201e": '"', "\u201f": '"', "\u2033": '"',
    "\u2018": "'", "\u2019": "'", "\u201a": "'", "\u201b": "'", "\u2032": "'",
    "\u2013": "-", "\u2014": "-", "\u2015": "-", "\u2012": "-", "\u2212": "-",
    "\u00a0": " ", "\u2009": " ", "\u202f": " ",
    "\u200b": None, "\u200c": None, "\u200d": None, "\ufeff": None,
})

# "1O:00" / "O7:30" style OCR confusions inside times
_OCR_ZERO = re.compile(r"(?<=\d)[Oo](?=[:.]?\d)|(?<=[:.])[Oo](?=\d)|[Oo](?=\d:\d)")
_SPACES = re.compile(r"[ \t]+")

# Within this many days in the past, a yearless date stays in the reference year
_PAST_GRACE_DAYS = 30


def pre_normalize_text(text: str | None) -> str:
    """
    Clean caption text before any pattern runs.

    Folds stylized Unicode letters to plain text, unifies quotes and
    dashes, fixes letter-O-for-zero OCR errors in times, and collapses
    runs of spaces while keeping line breaks.
    """
    if not text:
        return ""
    cleaned = unicodedata.normalize("NFKC", text)
    cleaned = cleaned.translate(_QUOTE_TRANSLATION)
    cleaned = cleaned.replace("\u2026", "...")
    cleaned = _OCR_ZERO.sub("0", cleaned)
    lines = [_SPACES.sub(" ", line).strip() for line in cleaned.splitlines()]
    return "\n".join(lines).strip()


def month_number(name: str) -> int | None:
    """Map a month name or abbreviation (with optional trailing period) to 1-12."""
    key = name.strip().rstrip(".").lower()
    if key in MONTH_MAP:
        return MONTH_MAP[key]
    return MONTH_MAP.get(key[:3]) if len(key) >= 3 else None


def format_time(hour: int, minute: int = 0) -> str | None:
    """Format a 24-hour time as HH:MM, or None when out of range."""
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return f"{hour:02d}:{minute:02d}"
    return None


def to_24_hour(hour: int, minute: int = 0, meridiem: str | None = None) -> str | None:
    """
    Convert a clock reading to HH:MM.

    Args:
        hour: Hour as written (1-12 with a meridiem, 0-23 without).
        minute: Minutes.
        meridiem: "am"/"pm" in any case or dotted form, or None.
    """
    if meridiem:
        marker = meridiem.replace(".", "").strip().lower()
        if not 1 <= hour <= 12:
            return None
        if marker == "pm" and hour != 12:
            hour += 12
        elif marker == "am" and hour == 12:
            hour = 0
    return format_time(hour, minute)


_TIME_STRING = re.compile(
    r"^\s*(?P<hour>\d{1,2})(?:[:.h](?P<minute>\d{2}))?\s*(?P<meridiem>[ap]\.?m\.?)?\s*$",
    re.IGNORECASE,
)


def parse_time_string(value: str | None) -> str | None:
    """
    Normalize a free-form time string to HH:MM.

    Accepts "19:00", "7pm", "7:30 PM", "7.30pm", "noon" and "midnight".
    Seconds on an ISO time ("19:00:00") are dropped.
    """
    if not value:
        return None
    text = value.strip().lower()
    if text == "noon":
        return "12:00"
    if text == "midnight":
        return "00:00"
    if re.fullmatch(r"\d{1,2}:\d{2}:\d{2}", text):
        text = text[:-3]
    match = _TIME_STRING.match(text)
    if not match:
        return None
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    return to_24_hour(hour, minute, match.group("meridiem"))


class DateNormalizer:
    """
    Resolves date references against a reference date.

    Args:
        reference_date: The "today" used for relative phrases and year
            inference. Defaults to the current date.
    """

    def __init__(self, reference_date: date | None = None):
        self._ref = reference_date or date.today()

    @property
    def reference_date(self) -> date:
        return self._ref

    def resolve_month_day(
        self,
        month: int,
        day: int,
        year: int | None = None,
    ) -> str | None:
        """
        Build an ISO date from month/day and an optional year.

        A yearless date more than a month in the past rolls to next year.
        Two-digit years are read as 20xx. Impossible dates return None.
        """
        if year is not None and year < 100:
            year += 2000
        try:
            if year is not None:
                return date(year, month, day).isoformat()
            candidate = date(self._ref.year, month, day)
            if candidate < self._ref - timedelta(days=_PAST_GRACE_DAYS):
                candidate = date(self._ref.year + 1, month, day)
            return candidate.isoformat()
        except ValueError:
            return None

    def resolve_weekday(self, weekday: int, *, skip_this_week: bool = False) -> str:
        """Next occurrence of a weekday, today included unless skip_this_week."""
        days_ahead = (weekday - self._ref.weekday()) % 7
        if skip_this_week and days_ahead == 0:
            days_ahead = 7
        elif skip_this_week:
            days_ahead += 7 if days_ahead < 7 - self._ref.weekday() else 0
        return (self._ref + timedelta(days=days_ahead)).isoformat()

    def resolve_relative(self, text: str) -> str | None:
        """
        Resolve relative phrases ("tonight", "tomorrow", "this weekend",
        "this Friday") to an ISO date.
        """
        lowered = text.lower()
        if "tonight" in lowered or "today" in lowered:
            return self._ref.isoformat()
        if "tomorrow" in lowered:
            return (self._ref + timedelta(days=1)).isoformat()
        if "this weekend" in lowered:
            # Weekend events are anchored on Friday; on Sat/Sun that is today
            if self._ref.weekday() >= 5:
                return self._ref.isoformat()
            return self.resolve_weekday(4)
        match = re.search(
            r"\b(?P<qualifier>this|next|on|every)?\s*(?P<day>mon|tues?|wed|thu(?:rs?)?|fri|sat|sun)(?:day|nesday|urday|sday)?\b",
            lowered,
        )
        if match and match.group("qualifier") != "every":
            weekday = WEEKDAY_MAP.get(match.group("day"))
            if weekday is not None:
                return self.resolve_weekday(
                    weekday, skip_this_week=match.group("qualifier") == "next"
                )
        return None

    def parse(self, value: str | None) -> str | None:
        """
        Normalize a date string to YYYY-MM-DD.

        Handles ISO dates, "Month Day[, Year]", "Day Month [Year]",
        MM/DD[/YYYY], DD-MM-YYYY and relative phrases. Returns None when
        nothing parses.
        """
        if not value or not value.strip():
            return None
        text = value.strip()

        for fn in (
            self._try_iso,
            self._try_month_first,
            self._try_day_first,
            self._try_slash,
            self._try_dash,
        ):
            result = fn(text)
            if result is not None:
                return result
        return self.resolve_relative(text)

    def _try_iso(self, text: str) -> str | None:
        match = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?", text)
        if not match:
            return None
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3))).isoformat()
        except ValueError:
            return None

    def _try_month_first(self, text: str) -> str | None:
        match = re.search(
            rf"\b(?P<month>{MONTH_ALTERNATION})\.?\s*(?P<day>\d{{1,2}})(?:st|nd|rd|th)?\b(?:,?\s*(?P<year>\d{{4}}))?",
            text,
            re.IGNORECASE,
        )
        if not match:
            return None
        month = month_number(match.group("month"))
        if month is None:
            return None
        year = int(match.group("year")) if match.group("year") else None
        return self.resolve_month_day(month, int(match.group("day")), year)

    def _try_day_first(self, text: str) -> str | None:
        match = re.search(
            rf"\b(?P<day>\d{{1,2}})(?:st|nd|rd|th)?\s*(?:of\s+)?(?P<month>{MONTH_ALTERNATION})\b\.?(?:,?\s*(?P<year>\d{{4}}))?",
            text,
            re.IGNORECASE,
        )
        if not match:
            return None
        month = month_number(match.group("month"))
        if month is None:
            return None
        year = int(match.group("year")) if match.group("year") else None
        return self.resolve_month_day(month, int(match.group("day")), year)

    def _try_slash(self, text: str) -> str | None:
        match = re.search(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{2,4}))?\b", text)
        if not match:
            return None
        year = int(match.group(3)) if match.group(3) else None
        return self.resolve_month_day(int(match.group(1)), int(match.group(2)), year)

    def _try_dash(self, text: str) -> str | None:
        match = re.search(r"\b(\d{1,2})-(\d{1,2})-(\d{2,4})\b", text)
        if not match:
            return None
        return self.resolve_month_day(int(match.group(2)), int(match.group(1)), int(match.group(3)))
