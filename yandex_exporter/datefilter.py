"""Date labels and the inclusive date range filter.

Labels look like ``"12 January"`` or ``"12 January 2023"`` (Russian
genitive month names are accepted too). A label without a year is read
as the current calendar year.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum

from .faults import ConfigurationError, LabelParseError

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "января": 1, "февраля": 2, "марта": 3, "апреля": 4, "мая": 5, "июня": 6,
    "июля": 7, "августа": 8, "сентября": 9, "октября": 10, "ноября": 11, "декабря": 12,
}

LABEL_PATTERN = re.compile(r"^(\d{1,2})\s+([^\W\d_]+)(?:\s+(\d{4}))?$")

ISO_FORMAT = "%Y-%m-%d"


class Placement(Enum):
    BEFORE = "before"
    WITHIN = "within"
    AFTER = "after"


def parse_label(label: str, today: date | None = None) -> date:
    text = (label or "").replace("\xa0", " ").strip()
    m = LABEL_PATTERN.match(text)
    if not m:
        raise LabelParseError(f"invalid date label: {label!r}")
    month = MONTHS.get(m.group(2).lower())
    if month is None:
        raise LabelParseError(f"invalid month in label: {label!r}")
    year = int(m.group(3)) if m.group(3) else (today or date.today()).year
    try:
        return date(year, month, int(m.group(1)))
    except ValueError as e:
        raise LabelParseError(f"invalid date label: {label!r} ({e})") from e


def _parse_bound(value: str, name: str) -> date:
    try:
        return datetime.strptime(value, ISO_FORMAT).date()
    except ValueError as e:
        raise ConfigurationError(f"invalid '{name}' date {value!r} (use YYYY-MM-DD)") from e


@dataclass(frozen=True)
class DateRange:
    """Inclusive ``[start, end]`` window; disabled means "everything"."""

    start: date = date.min
    end: date = date.max
    enabled: bool = False

    def __post_init__(self) -> None:
        if self.enabled and self.start > self.end:
            raise ConfigurationError(
                f"'from' date ({self.start.isoformat()}) is after 'to' date ({self.end.isoformat()})"
            )

    @classmethod
    def from_strings(cls, start: str = "", end: str = "", today: date | None = None) -> "DateRange":
        start, end = (start or "").strip(), (end or "").strip()
        if not start and not end:
            return cls()
        lo = _parse_bound(start, "from") if start else date.min
        hi = _parse_bound(end, "to") if end else (today or date.today())
        return cls(start=lo, end=hi, enabled=True)

    def placement(self, day: date) -> Placement:
        if day < self.start:
            return Placement.BEFORE
        if day > self.end:
            return Placement.AFTER
        return Placement.WITHIN

    def classify(self, label: str, today: date | None = None) -> Placement:
        """Place a label relative to the range. Raises LabelParseError."""
        if not self.enabled:
            return Placement.WITHIN
        return self.placement(parse_label(label, today))

    def __str__(self) -> str:
        if not self.enabled:
            return "all dates"
        lo = "beginning" if self.start == date.min else self.start.isoformat()
        return f"{lo} to {self.end.isoformat()}"


def classify(label: str, date_range: DateRange, today: date | None = None) -> Placement:
    return date_range.classify(label, today)
