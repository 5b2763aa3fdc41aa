from __future__ import annotations

import datetime
import itertools
import re
from dataclasses import dataclass
from typing import List, Optional

from dateutil.rrule import rrulestr

from ..errors import ValidationError

MAX_OCCURRENCES = 100
EXPANSION_HORIZON_YEARS = 100
_GREGORIAN_CYCLE_YEARS = 400
_INTERVAL_RE = re.compile(r"(?:^|;)\s*INTERVAL\s*=\s*(-?\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class Occurrence:
    start: datetime.datetime
    end: datetime.datetime

    @property
    def duration(self) -> datetime.timedelta:
        return self.end - self.start


def _normalize_rule(rule: str) -> str:
    body = rule.strip()
    if body[:6].upper() == "RRULE:":
        body = body[6:].strip()
    if "\n" in body or "\r" in body or ":" in body:
        raise ValidationError("rrule must be a single RRULE property", field="rrule")
    if "FREQ=" not in body.upper():
        raise ValidationError("rrule must specify FREQ", field="rrule")
    if "BYEASTER" in body.upper():
        raise ValidationError("rrule BYEASTER is not supported", field="rrule")
    interval = _INTERVAL_RE.search(body)
    if interval and int(interval.group(1)) < 1:
        raise ValidationError("rrule INTERVAL must be at least 1", field="rrule")
    return body


def _check_interval(start: datetime.datetime, end: datetime.datetime) -> None:
    if start.tzinfo is None:
        raise ValidationError("start_time must include a UTC offset", field="start_time")
    if end.tzinfo is None:
        raise ValidationError("end_time must include a UTC offset", field="end_time")
    if end <= start:
        raise ValidationError("end_time must be after start_time", field="end_time")


def _calendar_shift(year: int) -> int:
    """Whole 400-year cycles that move ``year`` to within reach of the calendar end."""
    cycles = (datetime.MAXYEAR - EXPANSION_HORIZON_YEARS - year) // _GREGORIAN_CYCLE_YEARS
    return max(0, cycles) * _GREGORIAN_CYCLE_YEARS


def _shift_years(value: datetime.datetime, years: int) -> Optional[datetime.datetime]:
    if value.year + years > datetime.MAXYEAR:
        return None
    return value.replace(year=value.year + years)


def _iterate_bounded(parsed, start: datetime.datetime, limit: int) -> List[datetime.datetime]:
    # dateutil only stops scanning at MAXYEAR, so a rule whose BY* parts never
    # match (BYMONTH=2;BYMONTHDAY=30) walks every period up to year 9999. The
    # Gregorian calendar repeats every 400 years, so the rule is expanded a
    # whole number of cycles later and the results are moved back.
    shift = _calendar_shift(start.year)
    until = parsed._until
    bounded = parsed.replace(
        dtstart=_shift_years(start, shift),
        until=_shift_years(until, shift) if until is not None else None,
    )
    starts: List[datetime.datetime] = []
    for value in itertools.islice(iter(bounded), max(0, limit)):
        starts.append(value.replace(year=value.year - shift))
    return starts


def expand_occurrences(
    rule: Optional[str],
    start: datetime.datetime,
    end: datetime.datetime,
    *,
    limit: int = MAX_OCCURRENCES,
) -> List[Occurrence]:
    """Expand ``rule`` from the template interval [start, end).

    The rule only moves starts; every occurrence keeps the template duration.
    An absent rule is a one-off shift. A rule with no occurrence on or after
    ``start`` yields an empty list. At most ``limit`` occurrences are produced
    even for unbounded rules, and only occurrences within
    ``EXPANSION_HORIZON_YEARS`` of ``start`` are guaranteed to be found.
    """
    _check_interval(start, end)
    duration = end - start
    if not (rule or "").strip():
        return [Occurrence(start=start, end=end)]

    body = _normalize_rule(rule)
    try:
        parsed = rrulestr(body, dtstart=start)
        starts = _iterate_bounded(parsed, start, limit)
    except (ValueError, TypeError, OverflowError) as exc:
        raise ValidationError(f"Invalid rrule: {exc}", field="rrule") from None

    occurrences: List[Occurrence] = []
    for occurrence_start in sorted(set(starts)):
        occurrences.append(Occurrence(start=occurrence_start, end=occurrence_start + duration))
    return occurrences
