import time

from ..logging_config import get_logger
from ..models import CatalogSnapshot
from ..targets.base import PartitionTarget

logger = get_logger(__name__)


class CatalogReader:
    """
    Reads the high-water mark and the attached partitions in one go.

    Nothing is cached between calls: the table can change between cycles.
    Failures surface as ``CatalogUnreachable``; retrying is the caller's job.
    """

    def __init__(self, target: PartitionTarget):
        self.target = target
        self.scheme = target.scheme

    def read_snapshot(self) -> CatalogSnapshot:
        started = time.monotonic()

        high_water_mark = self.target.max_key()
        if high_water_mark is None:
            # empty parent table
            high_water_mark = self.scheme.minimum_value

        listing = self.target.list_partitions()
        bounds = tuple(sorted(listing.bounds, key=lambda b: b.start))

        snapshot = CatalogSnapshot(
            high_water_mark=high_water_mark,
            bounds=bounds,
            default_partition=listing.default_partition,
            unrecognized=tuple(listing.unrecognized),
        )
        logger.debug(
            "catalog_read",
            table=self.scheme.qualified_table,
            partitions=len(bounds),
            high_water_mark=high_water_mark,
            frontier=snapshot.frontier,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return snapshot
