from enum import Enum

from ..errors import CreateConflict, CreateRejected
from ..logging_config import get_logger
from ..models import PartitionBound
from ..targets.base import PartitionPresence, PartitionTarget

logger = get_logger(__name__)


class CreateOutcome(str, Enum):
    CREATED = "Created"
    ALREADY_EXISTS = "AlreadyExists"


class PartitionCreator:
    """Idempotently attaches one partition to the parent table."""

    def __init__(self, target: PartitionTarget):
        self.target = target
        self.scheme = target.scheme

    def ensure_partition(self, bound: PartitionBound) -> CreateOutcome:
        """
        Create ``bound`` unless a partition with that name is already attached.

        A concurrent attach by another maintainer between the existence check
        and our attach counts as AlreadyExists. Any other refusal is raised
        as ``CreateRejected`` and never corrected automatically.
        """
        presence = self.target.partition_presence(bound.name)
        if presence == PartitionPresence.ATTACHED:
            logger.info("partition_exists", table=self.scheme.qualified_table, partition=bound.name)
            return CreateOutcome.ALREADY_EXISTS
        if presence == PartitionPresence.DETACHED:
            raise self._name_taken(bound)

        try:
            self.target.attach_partition(bound)
        except CreateConflict as exc:
            logger.info(
                "partition_create_conflict",
                table=self.scheme.qualified_table,
                partition=bound.name,
                detail=exc.detail,
            )
            # the conflicting relation may be a plain table created in the meantime
            if self.target.partition_presence(bound.name) != PartitionPresence.ATTACHED:
                raise self._name_taken(bound, detail=exc.detail) from exc
            return CreateOutcome.ALREADY_EXISTS

        logger.info(
            "partition_created",
            table=self.scheme.qualified_table,
            partition=bound.name,
            start=bound.start,
            end=bound.end,
        )
        return CreateOutcome.CREATED

    def _name_taken(self, bound: PartitionBound, detail: str = None) -> CreateRejected:
        return CreateRejected(
            f"a relation named {bound.name} exists but is not a partition of "
            f"{self.scheme.qualified_table}",
            detail=detail,
        )
