from .boundary import next_boundary, parse_period, start_of_next_period, template_naming_rule
from .catalog import CatalogReader
from .creator import CreateOutcome, PartitionCreator
from .maintainer import LookAhead, Maintainer, MaintainerOptions
from .validator import find_violations, validate

__all__ = [
    "CatalogReader",
    "CreateOutcome",
    "LookAhead",
    "Maintainer",
    "MaintainerOptions",
    "PartitionCreator",
    "find_violations",
    "next_boundary",
    "parse_period",
    "start_of_next_period",
    "template_naming_rule",
    "validate",
]
