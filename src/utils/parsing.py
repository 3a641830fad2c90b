import calendar
import math
import re
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import NamedTuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

import dateparser
from thefuzz import fuzz, process

from constants import RANK_SCALE, TIMEZONE_AUTOCOMPLETE_LIMIT
from utils.errors import UserInputError


class RankRange(NamedTuple):
    """Inclusive rank interval, start == end for a single rank."""
    start: int
    end: int

    @property
    def midpoint(self):
        return (self.start + self.end) / 2

    def __str__(self):
        if self.start == self.end:
            return f"{self.start / RANK_SCALE:g}k"
        return f"{self.start / RANK_SCALE:g}k-{self.end / RANK_SCALE:g}k"


def parse_rank(text: str, original: str = None) -> int:
    err = f"Invalid rank range. Must be formatted like `4.3k` or `4k-4.5k`. You entered: `{original if original is not None else text}`"
    s = text.strip().rstrip('kK')
    try:
        rank = float(s)
    except ValueError:
        raise UserInputError(err) from None
    if not math.isfinite(rank) or rank < 0:
        raise UserInputError(err)
    return round(rank * RANK_SCALE)


def parse_rank_range(text: str) -> RankRange:
    """Parse `4.3k` or `4k-4.5k` into a RankRange. Reversed bounds are swapped."""
    s = text.strip()
    if '-' in s:
        low, high = s.split('-', 1)
        start, end = parse_rank(low, text), parse_rank(high, text)
    else:
        start = end = parse_rank(s, text)
    if start > end:
        start, end = end, start
    return RankRange(start, end)


def parse_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        raise UserInputError("Invalid timezone") from None


@lru_cache(maxsize=1)
def timezone_names():
    return sorted(available_timezones())


def complete_timezone(partial: str, limit: int = TIMEZONE_AUTOCOMPLETE_LIMIT):
    partial = partial.strip()
    if not partial:
        return timezone_names()[:limit]
    return [name for name, _score in process.extract(partial, timezone_names(), scorer=fuzz.partial_ratio, limit=limit)]


_MONTHS = {name.lower() for name in calendar.month_name[1:]} | {name.lower() for name in calendar.month_abbr[1:]}
_WEEKDAYS = {name.lower() for name in calendar.day_name} | {name.lower() for name in calendar.day_abbr}
_RELATIVE_UNITS = {"min", "mins", "minute", "minutes", "h", "hr", "hrs", "hour", "hours",
                   "day", "days", "week", "weeks", "month", "months"}


def normalize_time_text(text: str) -> str:
    """Turn bare hour numbers into `HH:00` so "20 monday" means 8pm and not the 20th.

    A number right after a month name is left alone, it's the day ("july 4 20").
    So are counts in relative phrases ("in 2 hours", "3 days").
    """
    words = text.split()
    for idx, word in enumerate(words):
        if re.fullmatch(r"\d{1,2}", word) and int(word) <= 23:
            previous = words[idx - 1].lower().rstrip('.,') if idx > 0 else ""
            following = words[idx + 1].lower().rstrip('.,') if idx + 1 < len(words) else ""
            if previous in _MONTHS or previous == "in" or following in _RELATIVE_UNITS:
                continue
            words[idx] = f"{int(word):02d}:00"
    return " ".join(words)


def parse_scheduled_time(text: str, zone: ZoneInfo, now: datetime = None) -> int:
    """Resolve a time like `8:30pm` or `tomorrow 20` in the user's zone to a UTC unix timestamp."""
    if not re.search(r"\d", text):
        raise UserInputError("No time specified. Please try again")

    now = now or datetime.now(timezone.utc)
    local_now = now.astimezone(zone)
    settings = {
        "TIMEZONE": zone.key,
        "TO_TIMEZONE": "UTC",
        "RETURN_AS_TIMEZONE_AWARE": True,
        "RELATIVE_BASE": local_now.replace(tzinfo=None),
        "PREFER_DATES_FROM": "future",
    }
    parsed = dateparser.parse(normalize_time_text(text), languages=["en"], settings=settings)
    if parsed is None:
        raise UserInputError("Invalid time")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)

    # Naming today's weekday jumps a week ahead even when the time today is still to come
    words = {word.lower().rstrip('.,') for word in text.split()}
    if words & _WEEKDAYS and "next" not in words and parsed - timedelta(days=7) >= now:
        parsed -= timedelta(days=7)

    timestamp = int(parsed.timestamp())
    if timestamp < int(now.timestamp()):
        raise UserInputError(f"<t:{timestamp}:F> is in the past. Please pick a time that hasn't happened yet")
    return timestamp
