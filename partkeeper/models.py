"""
Core data model for partition maintenance.

- PartitioningScheme: how the parent table is partitioned (immutable)
- PartitionBound: one attached child partition and its [start, end) range
- CatalogSnapshot: what the target looked like at the start of a cycle
- Violation: one integrity problem found in a snapshot
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, FrozenSet, Optional, Tuple, Union


class KeyKind(str, Enum):
    """Domain of the partitioning key."""
    SEQUENCE = "sequence"
    TIMESTAMP = "timestamp"


class KeyEncoding(str, Enum):
    """How a timestamp key is stored in the column."""
    NATIVE = "native"   # timestamp / timestamptz
    EPOCH = "epoch"     # integer seconds since 1970-01-01 UTC


class PeriodUnit(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class ViolationKind(str, Enum):
    GAP = "Gap"
    OVERLAP = "Overlap"
    NAME_MISMATCH = "NameMismatch"
    DUPLICATE_NAME = "DuplicateName"
    UNRECOGNIZED_BOUND = "UnrecognizedBound"


class CycleStatus(str, Enum):
    NO_ACTION_NEEDED = "NoActionNeeded"
    CREATED = "Created"
    FAILED = "Failed"


class MaintainerState(str, Enum):
    IDLE = "Idle"
    CHECKING = "Checking"
    NO_ACTION_NEEDED = "NoActionNeeded"
    CREATING = "Creating"
    VERIFYING = "Verifying"
    FAILED = "Failed"


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Period:
    """A calendar period such as ``1 month`` or ``7 day``."""
    count: int
    unit: PeriodUnit

    def __str__(self) -> str:
        suffix = "" if self.count == 1 else "s"
        return f"{self.count} {self.unit.value}{suffix}"


KeyValue = Union[int, datetime]
RangeWidth = Union[int, Period]


@dataclass(frozen=True)
class PartitioningScheme:
    table: str
    key_column: str
    key_kind: KeyKind
    range_width: RangeWidth
    naming_rule: Callable[[Any], str] = field(compare=False, repr=False)
    schema: str = "public"
    key_encoding: KeyEncoding = KeyEncoding.NATIVE
    # partitions from the one-time conversion that predate the naming rule
    legacy_names: FrozenSet[str] = frozenset()

    @property
    def minimum_value(self) -> KeyValue:
        """Value used as the high-water mark of an empty table."""
        if self.key_kind == KeyKind.TIMESTAMP:
            return EPOCH
        return 0

    @property
    def qualified_table(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True)
class PartitionBound:
    name: str
    start: KeyValue
    end: KeyValue

    def __post_init__(self):
        if not self.start < self.end:
            raise ValueError(f"partition {self.name}: start {self.start!r} must be below end {self.end!r}")


@dataclass(frozen=True)
class CatalogSnapshot:
    high_water_mark: KeyValue
    bounds: Tuple[PartitionBound, ...]
    default_partition: Optional[str] = None
    # (name, raw bound expression) for partitions whose bounds are not a plain [start, end)
    unrecognized: Tuple[Tuple[str, str], ...] = ()

    @property
    def frontier(self) -> Optional[KeyValue]:
        if not self.bounds:
            return None
        return self.bounds[-1].end

    def find(self, name: str) -> Optional[PartitionBound]:
        for bound in self.bounds:
            if bound.name == name:
                return bound
        return None


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    detail: str
    partitions: Tuple[str, ...] = ()
