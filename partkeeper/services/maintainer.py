"""
Maintainer loop: one stateless cycle per invocation.

    Idle -> Checking -> NoActionNeeded -> Idle
    Idle -> Checking -> Creating -> Verifying -> Idle
    any step -> Failed

A cycle creates at most one partition. When the high-water mark has run
ahead by several widths, successive cycles each add the next partition
until the frontier is far enough ahead again.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..errors import CatalogUnreachable, CatalogViolation, InvalidScheme, PartitionKeeperError
from ..logging_config import get_logger
from ..models import (
    CatalogSnapshot,
    CycleStatus,
    KeyKind,
    KeyValue,
    MaintainerState,
    PartitionBound,
    PartitioningScheme,
    Period,
    RangeWidth,
)
from ..schemas import (
    CatalogStatus,
    ErrorOut,
    MaintenanceResult,
    PartitionBoundOut,
    ViolationOut,
)
from ..targets.base import PartitionTarget
from .boundary import add_period, check_naming_rule, check_range_width, next_boundary
from .catalog import CatalogReader
from .creator import CreateOutcome, PartitionCreator
from .validator import find_violations

logger = get_logger(__name__)


@dataclass(frozen=True)
class LookAhead:
    """
    How close the high-water mark may get to the frontier before the next
    partition is pre-created: an absolute ``margin`` (int, or Period for
    timestamp keys) or, without one, ``fraction`` of the last partition's width.
    """
    margin: Optional[RangeWidth] = None
    fraction: float = 1.0

    def check(self, scheme: PartitioningScheme) -> None:
        if self.margin is None:
            if self.fraction < 0:
                raise InvalidScheme(f"look-ahead fraction must not be negative, got {self.fraction}")
            return
        if scheme.key_kind == KeyKind.SEQUENCE:
            if isinstance(self.margin, bool) or not isinstance(self.margin, int) or self.margin < 0:
                raise InvalidScheme(f"look-ahead margin must be a non-negative integer, got {self.margin!r}")
        elif not isinstance(self.margin, Period) or self.margin.count < 0:
            raise InvalidScheme(f"look-ahead margin must be a calendar period, got {self.margin!r}")

    def threshold(self, last: PartitionBound) -> KeyValue:
        """High-water marks at or above this value make the next partition due."""
        frontier = last.end
        if self.margin is None:
            width = last.end - last.start
            if isinstance(width, int):
                return frontier - int(width * self.fraction)
            return frontier - width * self.fraction
        if isinstance(self.margin, Period):
            return add_period(frontier, self.margin, times=-1)
        return frontier - self.margin


@dataclass
class MaintainerOptions:
    look_ahead: LookAhead = field(default_factory=LookAhead)
    verify: bool = True
    dry_run: bool = False


class Maintainer:
    """Keeps the partition after the frontier provisioned for one table."""

    def __init__(self, target: PartitionTarget, options: Optional[MaintainerOptions] = None):
        self.target = target
        self.scheme = target.scheme
        self.options = options or MaintainerOptions()
        self.reader = CatalogReader(target)
        self.creator = PartitionCreator(target)

    # -----------------------------------------------------
    # DECISION
    # -----------------------------------------------------

    def is_due(self, snapshot: CatalogSnapshot) -> bool:
        if not snapshot.bounds:
            return False
        return snapshot.high_water_mark >= self.options.look_ahead.threshold(snapshot.bounds[-1])

    def _check_configuration(self) -> None:
        check_range_width(self.scheme)
        check_naming_rule(self.scheme)
        self.options.look_ahead.check(self.scheme)

    # -----------------------------------------------------
    # CYCLE
    # -----------------------------------------------------

    def run_cycle(self, dry_run: Optional[bool] = None) -> MaintenanceResult:
        """Run one Idle -> ... -> Idle cycle and report what happened."""
        dry_run = self.options.dry_run if dry_run is None else dry_run
        log = logger.bind(table=self.scheme.qualified_table)
        started = time.monotonic()
        result = MaintenanceResult(
            table=self.scheme.qualified_table,
            dry_run=dry_run,
            started_at=datetime.now(timezone.utc),
            states=[MaintainerState.IDLE],
        )

        def enter(state: MaintainerState, **extra) -> None:
            result.states.append(state)
            log.info("maintainer_state", state=state.value, **extra)

        try:
            enter(MaintainerState.CHECKING)
            self._check_configuration()
            snapshot = self.reader.read_snapshot()
            result.high_water_mark = snapshot.high_water_mark
            result.frontier = snapshot.frontier

            violations = find_violations(snapshot.bounds, self.scheme, snapshot.unrecognized)
            if violations:
                raise CatalogViolation(violations)

            bound = next_boundary(snapshot.bounds, self.scheme)
            if snapshot.high_water_mark >= snapshot.frontier:
                result.warnings.append(
                    f"high-water mark {snapshot.high_water_mark} has reached the frontier "
                    f"{snapshot.frontier}; rows beyond it have no partition"
                )

            result.due = self.is_due(snapshot)
            if not result.due:
                enter(MaintainerState.NO_ACTION_NEEDED)
                result.status = CycleStatus.NO_ACTION_NEEDED
                return self._finish(result, started, log)

            result.partition = PartitionBoundOut.from_bound(bound)
            if snapshot.default_partition:
                result.warnings.append(
                    f"attaching {bound.name} locks and scans the default partition "
                    f"{snapshot.default_partition}; writes to it wait until the attach commits"
                )
                log.warning("default_partition_lock", partition=bound.name,
                            default_partition=snapshot.default_partition)
            if dry_run:
                result.warnings.append(f"dry run: {bound.name} was not created")
                result.status = CycleStatus.NO_ACTION_NEEDED
                return self._finish(result, started, log)

            enter(MaintainerState.CREATING, partition=bound.name)
            outcome = self.creator.ensure_partition(bound)
            result.partition_name = bound.name
            result.outcome = outcome.value
            if outcome == CreateOutcome.ALREADY_EXISTS:
                result.status = CycleStatus.NO_ACTION_NEEDED
                return self._finish(result, started, log)

            result.status = CycleStatus.CREATED
            if self.options.verify:
                enter(MaintainerState.VERIFYING, partition=bound.name)
                self._verify(bound, result, log)
        except PartitionKeeperError as exc:
            return self._fail(result, exc, started, log)

        return self._finish(result, started, log)

    def _verify(self, bound: PartitionBound, result: MaintenanceResult, log) -> None:
        """Re-read the catalog; an unreachable catalog only downgrades to a warning."""
        try:
            snapshot = self.reader.read_snapshot()
        except CatalogUnreachable as exc:
            message = f"verification could not complete: {exc.message}"
            result.warnings.append(message)
            log.warning("verification_warning", partition=bound.name, detail=exc.detail)
            return

        found = snapshot.find(bound.name)
        if found is None or found != bound:
            raise CatalogViolation([], message=(
                f"{bound.name} is not attached with [{bound.start}, {bound.end}) after creation"
            ))
        violations = find_violations(snapshot.bounds, self.scheme, snapshot.unrecognized)
        if violations:
            raise CatalogViolation(violations)
        result.frontier = snapshot.frontier
        if snapshot.high_water_mark >= self.options.look_ahead.threshold(snapshot.bounds[-1]):
            result.warnings.append(
                "next partition is already due again; following cycles will add one partition each"
            )

    def _finish(self, result: MaintenanceResult, started: float, log) -> MaintenanceResult:
        result.states.append(MaintainerState.IDLE)
        result.duration_ms = round((time.monotonic() - started) * 1000, 1)
        log.info(
            "cycle_finished",
            status=result.status.value,
            partition=result.partition_name,
            due=result.due,
            dry_run=result.dry_run,
            warnings=result.warnings or None,
        )
        return result

    def _fail(self, result: MaintenanceResult, exc: PartitionKeeperError,
              started: float, log) -> MaintenanceResult:
        result.states.append(MaintainerState.FAILED)
        result.status = CycleStatus.FAILED
        result.retryable = exc.retryable
        result.error = ErrorOut(**exc.to_dict())
        if isinstance(exc, CatalogViolation):
            result.violations = [ViolationOut.from_violation(v) for v in exc.violations]
            result.violation = result.violations[0] if result.violations else None
            log.error("catalog_violation", violations=[v.model_dump() for v in result.violations])
        result.duration_ms = round((time.monotonic() - started) * 1000, 1)

        log_method = log.warning if exc.retryable else log.error
        log_method("cycle_failed", kind=exc.kind, message=exc.message, detail=exc.detail)
        return result

    # -----------------------------------------------------
    # STATUS
    # -----------------------------------------------------

    def status(self) -> CatalogStatus:
        """Read-only view of the catalog and what the next cycle would do."""
        self._check_configuration()
        snapshot = self.reader.read_snapshot()
        violations = find_violations(snapshot.bounds, self.scheme, snapshot.unrecognized)
        status = CatalogStatus(
            table=self.scheme.qualified_table,
            high_water_mark=snapshot.high_water_mark,
            frontier=snapshot.frontier,
            default_partition=snapshot.default_partition,
            partitions=[PartitionBoundOut.from_bound(b) for b in snapshot.bounds],
            violations=[ViolationOut.from_violation(v) for v in violations],
        )
        if snapshot.bounds:
            status.headroom = str(snapshot.frontier - snapshot.high_water_mark)
            if not violations:
                status.next_partition = PartitionBoundOut.from_bound(next_boundary(snapshot.bounds, self.scheme))
                status.due = self.is_due(snapshot)
        return status
