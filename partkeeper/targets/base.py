"""
Partition Target Base Class and Interface.
Provides the uniform interface the maintainer needs from a range-partitioned table.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..models import KeyValue, PartitionBound, PartitioningScheme


class PartitionPresence(str, Enum):
    """What exists under a partition name."""
    ABSENT = "absent"
    ATTACHED = "attached"      # attached to this parent
    DETACHED = "detached"      # a relation with that name exists but is not our partition


@dataclass
class PartitionListing:
    bounds: List[PartitionBound] = field(default_factory=list)
    default_partition: Optional[str] = None
    unrecognized: List[Tuple[str, str]] = field(default_factory=list)


class PartitionTarget(ABC):
    """
    Base adapter for a range-partitioned parent table.
    All target implementations must inherit from this class.

    Read methods raise ``CatalogUnreachable``. ``attach_partition`` raises
    ``CreateConflict``, ``CreateRejected`` or ``CreateTimedOut``.
    """

    def __init__(self, scheme: PartitioningScheme):
        self.scheme = scheme

    @abstractmethod
    def max_key(self) -> Optional[KeyValue]:
        """
        Largest key currently stored in the parent table.

        Returns:
            The high-water mark, or None when the table holds no rows
        """
        pass

    @abstractmethod
    def list_partitions(self) -> PartitionListing:
        """
        Attached child partitions with their declared bounds.

        Returns:
            PartitionListing; bounds need not be sorted
        """
        pass

    @abstractmethod
    def partition_presence(self, name: str) -> PartitionPresence:
        """
        Look up a partition by name.

        Args:
            name: Unqualified partition name
        """
        pass

    @abstractmethod
    def attach_partition(self, bound: PartitionBound) -> None:
        """
        Create ``bound.name`` and attach it to the parent for ``[start, end)``.

        Args:
            bound: The partition to create
        """
        pass

    def close(self) -> None:
        """Release connections held by the target."""
        pass
