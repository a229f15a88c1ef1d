"""
Error taxonomy for the partition maintainer.

Every error carries a ``retryable`` flag: transient failures are safe to retry
on the next scheduled cycle, everything else needs an operator.
"""
from typing import List, Optional


class PartitionKeeperError(Exception):
    """Base class for all maintainer errors."""

    kind = "error"
    retryable = False

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self):
        data = {"kind": self.kind, "message": self.message, "retryable": self.retryable}
        if self.detail:
            data["detail"] = self.detail
        return data


class InvalidScheme(PartitionKeeperError):
    """The partitioning scheme cannot produce valid boundaries."""

    kind = "InvalidScheme"


class EmptyCatalog(PartitionKeeperError):
    """No partition exists yet; the initial partition must come from the conversion."""

    kind = "EmptyCatalog"


class CatalogUnreachable(PartitionKeeperError):
    """The target could not be read (connection failure, query failure, timeout)."""

    kind = "CatalogUnreachable"
    retryable = True


class CatalogViolation(PartitionKeeperError):
    """The existing partition set breaks contiguity, uniqueness or naming."""

    kind = "Violation"

    def __init__(self, violations: List, message: Optional[str] = None):
        first = violations[0] if violations else None
        super().__init__(message or (first.detail if first else "catalog violation"))
        self.violations = list(violations)


class CreateConflict(PartitionKeeperError):
    """The partition was attached concurrently by someone else."""

    kind = "CreateConflict"


class CreateRejected(PartitionKeeperError):
    """The target refused the attach for a reason we did not anticipate."""

    kind = "CreateRejected"


class CreateTimedOut(PartitionKeeperError):
    """
    The attach did not complete in time or the connection dropped mid-way.

    The outcome is ambiguous; the next cycle's existence check reconciles it.
    """

    kind = "CreateTimedOut"
    retryable = True
