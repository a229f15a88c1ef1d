from .base import PartitionListing, PartitionPresence, PartitionTarget
from .postgres import PostgresTarget

__all__ = ["PartitionListing", "PartitionPresence", "PartitionTarget", "PostgresTarget"]
