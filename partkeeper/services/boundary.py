"""
Boundary arithmetic for range partitions.

Sequence keys advance by a fixed integer width. Timestamp keys advance by
calendar periods: month and year steps use real calendar arithmetic and the
result is snapped forward to the next period start, so a partition starting
on Jan 31 with a one-month width ends on Mar 1, never on Mar 3.
"""
from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta
from typing import Callable, Dict, Sequence

from ..errors import EmptyCatalog, InvalidScheme
from ..models import (
    KeyKind,
    KeyValue,
    PartitionBound,
    PartitioningScheme,
    Period,
    PeriodUnit,
    RangeWidth,
)

# Postgres truncates identifiers longer than NAMEDATALEN - 1
MAX_IDENTIFIER_LENGTH = 63

_UNIT_ALIASES: Dict[str, PeriodUnit] = {
    "h": PeriodUnit.HOUR, "hr": PeriodUnit.HOUR, "hour": PeriodUnit.HOUR, "hours": PeriodUnit.HOUR,
    "d": PeriodUnit.DAY, "day": PeriodUnit.DAY, "days": PeriodUnit.DAY,
    "w": PeriodUnit.WEEK, "week": PeriodUnit.WEEK, "weeks": PeriodUnit.WEEK,
    "mon": PeriodUnit.MONTH, "month": PeriodUnit.MONTH, "months": PeriodUnit.MONTH,
    "y": PeriodUnit.YEAR, "year": PeriodUnit.YEAR, "years": PeriodUnit.YEAR,
}

_PERIOD_RE = re.compile(r"^\s*(-?\d+)\s*([A-Za-z]+)\s*$")

DEFAULT_TEMPLATES: Dict[PeriodUnit, str] = {
    PeriodUnit.HOUR: "{table}_p{start:%Y%m%d%H}",
    PeriodUnit.DAY: "{table}_p{start:%Y_%m_%d}",
    PeriodUnit.WEEK: "{table}_p{start:%Y_%m_%d}",
    PeriodUnit.MONTH: "{table}_p{start:%Y_%m}",
    PeriodUnit.YEAR: "{table}_p{start:%Y}",
}
DEFAULT_SEQUENCE_TEMPLATE = "{table}_p{index}"


# ---------------------------------------------------------
# PERIODS
# ---------------------------------------------------------

def parse_period(text: str) -> Period:
    """Parse ``"1 month"``, ``"7 days"``, ``"1d"`` and friends."""
    match = _PERIOD_RE.match(str(text))
    if not match:
        raise InvalidScheme(f"cannot parse period {text!r}; expected '<count> <unit>'")
    unit = _UNIT_ALIASES.get(match.group(2).lower())
    if unit is None:
        raise InvalidScheme(f"unknown period unit {match.group(2)!r} in {text!r}")
    return Period(count=int(match.group(1)), unit=unit)


def parse_range_width(value, key_kind: KeyKind) -> RangeWidth:
    """Turn a configured width into an int (sequence) or a Period (timestamp)."""
    if key_kind == KeyKind.TIMESTAMP:
        if isinstance(value, Period):
            return value
        return parse_period(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise InvalidScheme(f"range width {value!r} is not an integer") from None


def _add_months(value: datetime, months: int) -> datetime:
    total = value.year * 12 + (value.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_period(value: datetime, period: Period, times: int = 1) -> datetime:
    """Calendar-aware ``value + times * period`` (day of month clamped)."""
    count = period.count * times
    if period.unit == PeriodUnit.HOUR:
        return value + timedelta(hours=count)
    if period.unit == PeriodUnit.DAY:
        return value + timedelta(days=count)
    if period.unit == PeriodUnit.WEEK:
        return value + timedelta(weeks=count)
    if period.unit == PeriodUnit.MONTH:
        return _add_months(value, count)
    return _add_months(value, count * 12)


def truncate(value: datetime, unit: PeriodUnit) -> datetime:
    """Floor ``value`` to the start of its hour/day/ISO week/month/year."""
    value = value.replace(minute=0, second=0, microsecond=0)
    if unit == PeriodUnit.HOUR:
        return value
    value = value.replace(hour=0)
    if unit == PeriodUnit.DAY:
        return value
    if unit == PeriodUnit.WEEK:
        return value - timedelta(days=value.weekday())
    if unit == PeriodUnit.MONTH:
        return value.replace(day=1)
    return value.replace(month=1, day=1)


def start_of_next_period(start: datetime, period: Period) -> datetime:
    """
    End of the partition beginning at ``start``.

    ``start + period`` when that lands on a period boundary, otherwise the
    first boundary after it.
    """
    candidate = add_period(start, period)
    floor = truncate(candidate, period.unit)
    if floor == candidate:
        return candidate
    return add_period(floor, Period(1, period.unit))


# ---------------------------------------------------------
# NAMING
# ---------------------------------------------------------

def default_template(key_kind: KeyKind, range_width: RangeWidth) -> str:
    if key_kind == KeyKind.SEQUENCE:
        return DEFAULT_SEQUENCE_TEMPLATE
    return DEFAULT_TEMPLATES[range_width.unit]


def template_naming_rule(
    template: str,
    table: str,
    key_kind: KeyKind,
    range_width: RangeWidth,
) -> Callable[[KeyValue], str]:
    """
    Build a naming rule from a ``str.format`` template.

    Fields: ``table``, ``start`` and, for sequence keys, ``index``
    (``start // range_width``) and ``ordinal`` (``index + 1``).
    """
    def rule(start: KeyValue) -> str:
        fields = {"table": table, "start": start}
        if key_kind == KeyKind.SEQUENCE:
            index = start // range_width
            fields["index"] = index
            fields["ordinal"] = index + 1
        return template.format(**fields)

    return rule


def check_naming_rule(scheme: PartitioningScheme) -> None:
    """Render the naming rule once so bad templates fail before any I/O."""
    try:
        name = scheme.naming_rule(scheme.minimum_value)
    except (KeyError, IndexError, ValueError, TypeError, AttributeError) as exc:
        raise InvalidScheme(f"naming rule cannot render a name: {exc}") from exc
    if not name:
        raise InvalidScheme("naming rule produced an empty name")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidScheme(f"partition name {name!r} exceeds {MAX_IDENTIFIER_LENGTH} characters")


# ---------------------------------------------------------
# BOUNDARIES
# ---------------------------------------------------------

def check_range_width(scheme: PartitioningScheme) -> None:
    width = scheme.range_width
    if scheme.key_kind == KeyKind.SEQUENCE:
        if isinstance(width, bool) or not isinstance(width, int):
            raise InvalidScheme(f"sequence range width must be an integer, got {width!r}")
        if width <= 0:
            raise InvalidScheme(f"range width must be positive, got {width}")
        return
    if not isinstance(width, Period):
        raise InvalidScheme(f"timestamp range width must be a calendar period, got {width!r}")
    if width.count <= 0:
        raise InvalidScheme(f"range width must be positive, got {width}")


def boundary_end(start: KeyValue, scheme: PartitioningScheme) -> KeyValue:
    if scheme.key_kind == KeyKind.SEQUENCE:
        return start + scheme.range_width
    return start_of_next_period(start, scheme.range_width)


def next_boundary(bounds: Sequence[PartitionBound], scheme: PartitioningScheme) -> PartitionBound:
    """The partition that starts at the current frontier."""
    check_range_width(scheme)
    if not bounds:
        raise EmptyCatalog(
            f"{scheme.qualified_table} has no partitions; "
            "the initial partition must exist before maintenance can run"
        )
    start = bounds[-1].end
    name = scheme.naming_rule(start)
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidScheme(
            f"partition name {name!r} for [{start}, ...) exceeds {MAX_IDENTIFIER_LENGTH} characters"
        )
    return PartitionBound(
        name=name,
        start=start,
        end=boundary_end(start, scheme),
    )
