"""
Integrity checks over the attached partition set.

The maintainer refuses to create anything on top of a catalog that fails any
of these checks; an operator has to repair it first.
"""
from collections import Counter
from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import PartitionBound, PartitioningScheme, Violation, ViolationKind


def _check_contiguity(bounds: Sequence[PartitionBound]) -> List[Violation]:
    violations = []
    for left, right in zip(bounds, bounds[1:]):
        if left.end == right.start:
            continue
        if left.end < right.start:
            kind = ViolationKind.GAP
            detail = f"gap between {left.name} (ends {left.end}) and {right.name} (starts {right.start})"
        else:
            kind = ViolationKind.OVERLAP
            detail = f"{left.name} (ends {left.end}) overlaps {right.name} (starts {right.start})"
        violations.append(Violation(kind=kind, detail=detail, partitions=(left.name, right.name)))
    return violations


def _check_names(bounds: Sequence[PartitionBound], scheme: PartitioningScheme) -> List[Violation]:
    violations = []

    counts = Counter(bound.name for bound in bounds)
    for name, count in sorted(counts.items()):
        if count > 1:
            violations.append(Violation(
                kind=ViolationKind.DUPLICATE_NAME,
                detail=f"{count} partitions share the name {name}",
                partitions=(name,),
            ))

    for bound in bounds:
        if bound.name in scheme.legacy_names:
            continue
        try:
            expected = scheme.naming_rule(bound.start)
        except (KeyError, IndexError, ValueError, TypeError) as exc:
            expected = f"<unrenderable: {exc}>"
        if expected != bound.name:
            violations.append(Violation(
                kind=ViolationKind.NAME_MISMATCH,
                detail=f"partition {bound.name} starting at {bound.start} should be named {expected}",
                partitions=(bound.name,),
            ))
    return violations


def find_violations(
    bounds: Sequence[PartitionBound],
    scheme: PartitioningScheme,
    unrecognized: Iterable[Tuple[str, str]] = (),
) -> List[Violation]:
    """All integrity violations, in catalog order."""
    ordered = sorted(bounds, key=lambda b: b.start)
    violations = [
        Violation(
            kind=ViolationKind.UNRECOGNIZED_BOUND,
            detail=f"partition {name} has a bound the maintainer cannot manage: {expr}",
            partitions=(name,),
        )
        for name, expr in unrecognized
    ]
    violations.extend(_check_contiguity(ordered))
    violations.extend(_check_names(ordered, scheme))
    return violations


def validate(
    bounds: Sequence[PartitionBound],
    scheme: PartitioningScheme,
    unrecognized: Iterable[Tuple[str, str]] = (),
) -> Optional[Violation]:
    """None when the catalog is sound, otherwise the first violation."""
    violations = find_violations(bounds, scheme, unrecognized)
    return violations[0] if violations else None
