"""
Site Migration Orchestrator
Copyright (C) 2024 HOMESERVER LLC

Time Resolver

Turns an operator-supplied schedule string into an absolute UTC instant. The
strategies are tried in a fixed order and the first one that recognises the
input wins:

1. natural language ("tomorrow 9am", "in 2 hours", "next friday")
2. "now" and duration offsets ("in 15m", "now+2h", "now-30m", "+1h30m", "-5m", "45m")
3. epoch seconds (10+ digits) or milliseconds (13+ digits)
4. a fixed list of common absolute layouts (RFC 3339, RFC 1123, ISO dates, ...)

Naive results are interpreted in the local timezone before being normalised to
UTC, so "2025-09-01 10:00" means ten o'clock on the machine running the tool.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

import dateparser

from sitemigrate.utils.errors import InvalidScheduleFormat, ScheduleNotDue
from sitemigrate.utils.index import log_message

# Go-style duration units, plus days; no "ns", timedelta stops at microseconds
_DURATION_UNITS = {
    "us": timedelta(microseconds=1),
    "µs": timedelta(microseconds=1),
    "μs": timedelta(microseconds=1),
    "ms": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(us|µs|μs|ms|s|m|h|d)")
_WORD = re.compile(r"[^\W\d_]{3,}")

# Tried in order; %Z only accepts UTC/GMT and the local zone names.
LAYOUTS = [
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%a, %d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%A, %d-%b-%y %H:%M:%S %Z",
    "%a %b %d %H:%M:%S %Y",
    "%a %b %d %H:%M:%S %Z %Y",
    "%a %b %d %H:%M:%S %z %Y",
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S %Z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%d %b %Y %H:%M:%S %Z",
    "%d %b %Y %H:%M %Z",
    "%d %b %Y",
    "%b %d %Y %H:%M:%S",
    "%b %d %Y %I:%M%p",
    "%b %d %Y",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
]


def parse_duration(text: str) -> timedelta:
    """
    Parse a Go-style duration such as "90s", "1h30m", "-2.5h" or "+45m".

    Raises:
        ValueError: if the text is not a duration
    """
    s = text.strip()
    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError(f"invalid duration {text!r}")

    total = timedelta(0)
    pos = 0
    for match in _DURATION_PART.finditer(s):
        if match.start() != pos:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(s) or pos == 0:
        raise ValueError(f"invalid duration {text!r}")
    return sign * total


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        # naive means local wall-clock time
        value = value.astimezone()
    return value.astimezone(timezone.utc)


class TimeResolver:
    """Resolve schedule strings into UTC instants."""

    def __init__(self, languages: Optional[List[str]] = None):
        self.languages = languages or ["en"]
        self.strategies: List[Callable[[str, datetime], Optional[datetime]]] = [
            self._natural_language,
            self._duration_offset,
            self._epoch,
            self._layouts,
        ]

    def resolve(self, text: str, now: Optional[datetime] = None) -> datetime:
        """
        Resolve a schedule string relative to now.

        Args:
            text: the schedule string; must not be empty
            now: reference instant, defaults to the current time

        Returns:
            datetime: timezone-aware UTC instant

        Raises:
            InvalidScheduleFormat: when the input is empty or no strategy matches
        """
        if text is None or not str(text).strip():
            raise InvalidScheduleFormat("Schedule string is empty; omit the field for no delay")
        s = str(text).strip()
        now = _to_utc(now) if now is not None else datetime.now(timezone.utc)

        for strategy in self.strategies:
            result = strategy(s, now)
            if result is not None:
                log_message(f"[SCHEDULE] '{s}' resolved by {strategy.__name__.strip('_')} -> {result.isoformat()}", "DEBUG")
                return result

        raise InvalidScheduleFormat(
            f"Unable to parse time '{s}' as natural language, duration, epoch, or known layout"
        )

    def _natural_language(self, s: str, now: datetime) -> Optional[datetime]:
        # Only phrases with real words; "now+15m" and "in 2h" belong to the duration grammar.
        words = [w.lower() for w in _WORD.findall(s)]
        if not [w for w in words if w != "now"]:
            return None
        local_now = now.astimezone().replace(tzinfo=None)
        try:
            parsed = dateparser.parse(
                s,
                languages=self.languages,
                settings={
                    "RELATIVE_BASE": local_now,
                    "PREFER_DATES_FROM": "future",
                },
            )
        except Exception as e:
            log_message(f"[SCHEDULE] natural language parser rejected '{s}': {e}", "DEBUG")
            return None
        if parsed is None:
            return None
        return _to_utc(parsed)

    def _duration_offset(self, s: str, now: datetime) -> Optional[datetime]:
        lower = s.lower()
        if lower == "now":
            return now
        candidates = []
        if lower.startswith("in "):
            candidates.append((lower[3:].strip(), 1))
        elif lower.startswith("now+"):
            candidates.append((lower[4:], 1))
        elif lower.startswith("now-"):
            candidates.append((lower[4:], -1))
        else:
            # signed or bare: the sign is part of the duration itself
            candidates.append((lower, 1))

        for body, direction in candidates:
            try:
                return now + direction * parse_duration(body)
            except ValueError:
                continue
        return None

    def _epoch(self, s: str, now: datetime) -> Optional[datetime]:
        if not s.isdigit() or not s.isascii():
            return None
        if len(s) >= 13:
            return datetime.fromtimestamp(int(s) / 1000, tz=timezone.utc)
        if len(s) >= 10:
            return datetime.fromtimestamp(int(s[:10]), tz=timezone.utc)
        return None

    def _layouts(self, s: str, now: datetime) -> Optional[datetime]:
        for layout in LAYOUTS:
            try:
                parsed = datetime.strptime(s, layout)
            except ValueError:
                continue
            return _to_utc(parsed)
        return None


@dataclass(frozen=True)
class DelayGate:
    """A not-before instant attached to one plan entry."""
    raw: str
    when: datetime

    def is_due(self, now: Optional[datetime] = None) -> bool:
        now = _to_utc(now) if now is not None else datetime.now(timezone.utc)
        return now >= self.when

    def check(self, domain: str, now: Optional[datetime] = None) -> None:
        """Raise ScheduleNotDue when the gate lies in the future."""
        if not self.is_due(now):
            raise ScheduleNotDue(f"scheduled for {self.when.isoformat()}", when=self.when, domain=domain)


def build_gate(raw: Optional[str], resolver: Optional[TimeResolver] = None,
               now: Optional[datetime] = None) -> Optional[DelayGate]:
    """Resolve a delayUntil value into a DelayGate; None when there is no delay."""
    if raw is None:
        return None
    resolver = resolver or TimeResolver()
    return DelayGate(raw=raw, when=resolver.resolve(raw, now))
