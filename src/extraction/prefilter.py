"""Pre-filter and post classification for captions.

Pure functions over normalized caption text: hard-reject checks for
vendor/merchant and recurring-schedule posts, exclusion phrases, event
signals, category inference, lifecycle signals, and the historical-post
and event-in-past date checks. No I/O.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time

from src.extraction.normalizer import MONTH_ALTERNATION
from src.extraction.schemas import REJECT_EVENT_BEFORE_POST, REJECT_OLD_POST

# Hard merchant signals. Two or more distinct hits is a vendor post.
_VENDOR_STRICT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"\bshop\s+now\b",
        r"\border\s+now\b",
        r"\b(?:dm|pm|message\s+us)\s+(?:to|for)\s+(?:order|orders|price|prices|inquiries)\b",
        r"\bfree\s+shipping\b",
        r"\b(?:cash\s+on\s+delivery|cod\s+available)\b",
        r"\badd\s+to\s+cart\b",
        r"\b(?:now\s+)?available\s+(?:in|at)\s+(?:all\s+)?(?:stores|branches|outlets)\b",
        r"\blink\s+in\s+bio\s+to\s+(?:shop|order|buy)\b",
        r"\b(?:on|for)\s+sale\b",
        r"\brestock(?:ed)?\b",
        r"\bprice\s+list\b",
        r"\b(?:per|a)\s+(?:piece|pc|pack|box|bottle)\b",
        r"\bshopee\b|\blazada\b",
        r"\bdelivery\s+(?:available|via|through)\b",
    ]
]

# Soft merchant signals: a single hit on an otherwise event-like post means review.
_VENDOR_SOFT_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"\bsale\b",
        r"\bdiscount\b",
        r"\d+\s*%\s*off\b",
        r"\bpromo(?:tion)?\b",
        r"\border(?:s|ing)?\b",
        r"\bnew\s+arrivals?\b",
        r"\bshop\b",
        r"\bbuy\s+\d+\s+take\s+\d+\b",
        r"\bvoucher\b",
    ]
]

# Events framed around vendors are events, not merchant posts.
_MARKET_FRAMING = re.compile(
    r"\b(?:market|bazaar|fair|pop[\s-]?up|flea|vendors?\s+wanted|call\s+for\s+vendors)\b",
    re.IGNORECASE,
)

_RECURRING_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"\bevery\s+(?:day|night|weekend|(?:mon|tues|wednes|thurs|fri|satur|sun)day)s?\b",
        r"\bopen\s+(?:daily|everyday|every\s+day|24/7|7\s+days)\b",
        r"\b(?:operating|opening|store|business|shop)\s+hours\b",
        r"\b(?:mon|tue|tues|wed|thu|thurs|fri|sat|sun)[a-z]*\.?\s*(?:-|to|thru|through)\s*"
        r"(?:mon|tue|tues|wed|thu|thurs|fri|sat|sun)[a-z]*\b.{0,40}?\b\d{1,2}(?::\d{2})?\s*[ap]m\b",
        r"\b\d{1,2}(?::\d{2})?\s*[ap]m\s*-?\s*(?:mon|tue|tues|wed|thu|thurs|fri|sat|sun)[a-z]*\.?\s*"
        r"(?:-|to|thru|through)\s*(?:mon|tue|tues|wed|thu|thurs|fri|sat|sun)[a-z]*\b",
        r"\bwe(?:'re|\s+are)\s+open\s+(?:from|on|mon|tue|wed|thu|fri|sat|sun)",
    ]
]

_EXPLICIT_CALENDAR_DATE = re.compile(
    rf"\b(?:{MONTH_ALTERNATION})\.?\s*\d{{1,2}}\b|\b\d{{1,2}}(?:st|nd|rd|th)?\s*(?:{MONTH_ALTERNATION})\b|\b\d{{1,2}}/\d{{1,2}}\b",
    re.IGNORECASE,
)

EXCLUSION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"happy\s+birthday(?!\s+(?:party|celebration|bash|event))",
        r"#tbt\b",
        r"#throwback",
        r"thank\s+you\s+(?:to|for)",
        r"congratulations(?!\s+on\s+.*?\s+(?:opening|launch|event))",
        r"welcome\s+to\s+the\s+team",
    ]
]

EVENT_KEYWORDS: tuple[str, ...] = (
    "party", "event", "happening", "tonight", "tomorrow", "this weekend",
    "join us", "rsvp", "free entry", "entrance", "tickets", "doors open",
    "gig", "concert", "show", "performance", "dj", "live music",
    "workshop", "seminar", "meetup", "gathering", "celebration",
    "anniversary", "opening", "launch", "festival", "market",
    "book now", "reservations", "save the date", "see you", "come by",
    "drop by", "visit us", "limited slots", "register", "sign up",
    "admission", "cover charge", "entry fee", "open to public",
    "flea market", "fleamarket", "bazaar", "fair", "pop-up", "popup",
    "coming to", "for the first time", "community market", "night market",
)

_DATE_RANGE = re.compile(
    rf"\b(?:{MONTH_ALTERNATION})\.?\s*\d{{1,2}}\s*(?:-|to|until|&|and)\s*(?:(?:{MONTH_ALTERNATION})\.?\s*)?\d{{1,2}}\b"
    rf"|\b\d{{1,2}}\s*(?:-|to|&)\s*\d{{1,2}}\s*(?:{MONTH_ALTERNATION})\b",
    re.IGNORECASE,
)
_TEMPORAL_EVENT_WORDS = re.compile(
    r"\b(?:market|fair|bazaar|pop[\s-]?up|expo|festival|fest|exhibit(?:ion)?|run)\b",
    re.IGNORECASE,
)

_ANNIVERSARY = re.compile(r"anniversary", re.IGNORECASE)

# Keyword lists per category, checked in order; first category with a hit wins
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "nightlife": ("party", "club", "dj", "rave", "techno", "house music", "afterparty", "bar crawl"),
    "music": ("gig", "concert", "live music", "band", "acoustic", "jazz", "open mic", "lineup", "album launch"),
    "art_culture": ("exhibit", "exhibition", "gallery", "art", "theater", "theatre", "film", "screening", "poetry", "museum"),
    "markets": ("market", "bazaar", "fair", "pop-up", "popup", "flea", "vendors"),
    "food_drink": ("food", "tasting", "brunch", "dinner", "wine", "beer", "coffee", "cocktail", "buffet"),
    "workshops": ("workshop", "class", "seminar", "masterclass", "bootcamp", "learn", "talk"),
    "fitness": ("run", "yoga", "fitness", "marathon", "workout", "pilates", "hike", "cycling", "zumba"),
    "community": ("meetup", "volunteer", "cleanup", "community", "fundraiser", "charity", "gathering"),
}

_EVENT_STATUS_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("cancelled", re.compile(r"\b(?:cancel+ed|cancel+ation|called\s+off)\b", re.IGNORECASE)),
    ("postponed", re.compile(r"\bpostponed\b", re.IGNORECASE)),
    ("rescheduled", re.compile(r"\b(?:rescheduled|moved\s+to|new\s+date)\b", re.IGNORECASE)),
    ("tentative", re.compile(r"\b(?:tentative|tbc|to\s+be\s+confirmed)\b", re.IGNORECASE)),
]

_AVAILABILITY_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("sold_out", re.compile(r"\bsold[\s-]?out\b", re.IGNORECASE)),
    ("waitlist", re.compile(r"\bwait[\s-]?list(?:ed)?\b", re.IGNORECASE)),
    ("few_left", re.compile(r"\b(?:few|last)\s+(?:slots?|seats?|tickets?)\s+left\b", re.IGNORECASE)),
    ("limited", re.compile(r"\blimited\s+(?:slots?|seats?|tickets?|capacity)\b", re.IGNORECASE)),
]

_LOCATION_STATUS_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("tba", re.compile(r"\b(?:venue|location)\s*(?::|-|is)?\s*(?:tba|tbd|to\s+be\s+announced)\b", re.IGNORECASE)),
    ("secret", re.compile(r"\bsecret\s+(?:location|venue)\b", re.IGNORECASE)),
    ("dm_for_details", re.compile(r"\bdm\s+(?:us\s+)?for\s+(?:the\s+)?(?:location|venue|address|details)\b", re.IGNORECASE)),
]


def is_vendor_post_strict(text: str) -> bool:
    """
    Hard vendor/merchant check.

    Two or more distinct merchant signals reject the post, unless the
    caption frames itself as a market, bazaar or pop-up event.
    """
    hits = sum(1 for p in _VENDOR_STRICT_PATTERNS if p.search(text))
    if hits < 2:
        return False
    return not _MARKET_FRAMING.search(text)


def is_possibly_vendor_post(text: str) -> bool:
    """Soft merchant signal used to route event-like posts to review."""
    if any(p.search(text) for p in _VENDOR_STRICT_PATTERNS):
        return True
    return any(p.search(text) for p in _VENDOR_SOFT_PATTERNS)


def is_recurring_schedule_post(text: str) -> bool:
    """
    Operating hours and standing weekly schedules ("Open daily",
    "6PM - Tues to Sat", "Every Friday night") are not events.

    A caption that also names an explicit calendar date is kept.
    """
    if not any(p.search(text) for p in _RECURRING_PATTERNS):
        return False
    return not _EXPLICIT_CALENDAR_DATE.search(text)


def matches_exclusion(text: str) -> bool:
    """Greetings, throwbacks and thank-you posts are not events."""
    return any(p.search(text) for p in EXCLUSION_PATTERNS)


def mentions_anniversary(text: str) -> bool:
    return bool(_ANNIVERSARY.search(text))


def has_event_keyword(text: str) -> bool:
    lowered = text.lower()
    return any(keyword in lowered for keyword in EVENT_KEYWORDS)


def has_temporal_event_indicators(text: str) -> bool:
    """A date range together with market/fair/pop-up wording."""
    return bool(_DATE_RANGE.search(text) and _TEMPORAL_EVENT_WORDS.search(text))


def infer_category(text: str) -> str:
    """Keyword-based category; "other" when nothing matches."""
    lowered = text.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        for keyword in keywords:
            if re.search(rf"\b{re.escape(keyword)}\b", lowered):
                return category
    return "other"


def _first_label(text: str, patterns: list[tuple[str, re.Pattern[str]]]) -> str | None:
    for label, pattern in patterns:
        if pattern.search(text):
            return label
    return None


def detect_event_status(text: str) -> str:
    return _first_label(text, _EVENT_STATUS_PATTERNS) or "confirmed"


def detect_availability(text: str) -> str:
    return _first_label(text, _AVAILABILITY_PATTERNS) or "available"


def detect_location_status(text: str, has_venue: bool) -> str:
    label = _first_label(text, _LOCATION_STATUS_PATTERNS)
    if label:
        return label
    return "confirmed" if has_venue else "tba"


def historical_reject_reason(
    event_date: str | None,
    posted_at: datetime | None,
    today: date,
    max_age_days: int = 45,
) -> str | None:
    """
    Classify a post as historical.

    Returns a reject reason when the event date precedes the post date,
    or when the post is older than ``max_age_days`` and the event date
    has already passed. Returns None otherwise, including when either
    date is unknown.
    """
    if not event_date or posted_at is None:
        return None
    try:
        event_day = date.fromisoformat(event_date)
    except ValueError:
        return None
    post_day = posted_at.date()

    if event_day < post_day:
        return REJECT_EVENT_BEFORE_POST
    if (today - post_day).days > max_age_days and event_day < today:
        return REJECT_OLD_POST
    return None


def is_event_in_past(
    event_date: str | None,
    now: datetime,
    event_end_date: str | None = None,
    end_time: str | None = None,
) -> bool:
    """
    Whether the event has ended as of ``now`` (local time).

    Uses the end date when present. An event on today's date counts as
    past only once its end time has passed; with no end time it stays
    current until midnight.
    """
    target = event_end_date or event_date
    if not target:
        return False
    try:
        target_day = date.fromisoformat(target)
    except ValueError:
        return False

    today = now.date()
    if target_day == today:
        if not end_time:
            return False
        try:
            hours, minutes = (int(part) for part in end_time.split(":")[:2])
            end_at = time(hours, minutes)
        except ValueError:
            return False
        return now.time() > end_at
    return target_day < today
