from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from .models import CycleStatus, MaintainerState, PartitionBound, Violation


# ------------------------------------------------------
# PARTITIONS
# ------------------------------------------------------

class PartitionBoundOut(BaseModel):
    name: str
    start: Union[int, datetime]
    end: Union[int, datetime]

    @classmethod
    def from_bound(cls, bound: PartitionBound) -> "PartitionBoundOut":
        return cls(name=bound.name, start=bound.start, end=bound.end)


class ViolationOut(BaseModel):
    kind: str
    detail: str
    partitions: List[str] = Field(default_factory=list)

    @classmethod
    def from_violation(cls, violation: Violation) -> "ViolationOut":
        return cls(
            kind=violation.kind.value,
            detail=violation.detail,
            partitions=list(violation.partitions),
        )


class ErrorOut(BaseModel):
    kind: str
    message: str
    detail: Optional[str] = None
    retryable: bool = False


# ------------------------------------------------------
# MAINTENANCE CYCLE RESULT
# ------------------------------------------------------

class MaintenanceResult(BaseModel):
    """One structured result per maintainer invocation."""
    table: str
    status: CycleStatus = CycleStatus.NO_ACTION_NEEDED
    partition_name: Optional[str] = None
    partition: Optional[PartitionBoundOut] = None
    outcome: Optional[str] = None  # Created | AlreadyExists
    due: bool = False
    dry_run: bool = False
    high_water_mark: Optional[Union[int, datetime]] = None
    frontier: Optional[Union[int, datetime]] = None
    violation: Optional[ViolationOut] = None
    violations: List[ViolationOut] = Field(default_factory=list)
    error: Optional[ErrorOut] = None
    retryable: bool = False
    warnings: List[str] = Field(default_factory=list)
    states: List[MaintainerState] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    duration_ms: Optional[float] = None

    @property
    def exit_code(self) -> int:
        """0 = nothing to do or created, 1 = operator action required, 2 = transient."""
        if self.status != CycleStatus.FAILED:
            return 0
        return 2 if self.retryable else 1


# ------------------------------------------------------
# CATALOG STATUS
# ------------------------------------------------------

class CatalogStatus(BaseModel):
    table: str
    high_water_mark: Union[int, datetime]
    frontier: Optional[Union[int, datetime]] = None
    headroom: Optional[str] = None
    default_partition: Optional[str] = None
    partitions: List[PartitionBoundOut] = Field(default_factory=list)
    violations: List[ViolationOut] = Field(default_factory=list)
    next_partition: Optional[PartitionBoundOut] = None
    due: bool = False
