"""
Postgres implementation of the partition target.

Partitions are created as standalone tables cloned from the parent and then
attached with ``ALTER TABLE ... ATTACH PARTITION``, which only takes a
SHARE UPDATE EXCLUSIVE lock on the parent, so writers on sibling partitions
keep running. Both statements run in one transaction under ``lock_timeout``.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Tuple, Union

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from ..errors import (
    CatalogUnreachable,
    CreateConflict,
    CreateRejected,
    CreateTimedOut,
    InvalidScheme,
    PartitionKeeperError,
)
from ..logging_config import get_logger
from ..models import KeyEncoding, KeyKind, KeyValue, PartitionBound, PartitioningScheme
from .base import PartitionListing, PartitionPresence, PartitionTarget

logger = get_logger(__name__)

_RX_RANGE_BOUND = re.compile(r"^FOR VALUES FROM \((.+)\) TO \((.+)\)$", re.IGNORECASE)
_RX_SHORT_OFFSET = re.compile(r"([+-]\d{2})$")

DEFAULT_BOUND = "DEFAULT"

# SQLSTATE codes
DUPLICATE_TABLE = "42P07"
UNIQUE_VIOLATION = "23505"
QUERY_CANCELED = "57014"
LOCK_NOT_AVAILABLE = "55P03"

PARTITIONS_SQL = """
    SELECT child.relname, pg_get_expr(child.relpartbound, child.oid) AS bound
    FROM pg_inherits
    JOIN pg_class parent ON parent.oid = pg_inherits.inhparent
    JOIN pg_class child ON child.oid = pg_inherits.inhrelid
    JOIN pg_namespace ns ON ns.oid = parent.relnamespace
    WHERE ns.nspname = :schema AND parent.relname = :table
    ORDER BY child.relname
"""

PARTITION_STRATEGY_SQL = """
    SELECT pt.partstrat, pt.partnatts
    FROM pg_partitioned_table pt
    JOIN pg_class c ON c.oid = pt.partrelid
    JOIN pg_namespace ns ON ns.oid = c.relnamespace
    WHERE ns.nspname = :schema AND c.relname = :table
"""

PRESENCE_SQL = """
    SELECT to_regclass(:child) IS NOT NULL AS present,
           EXISTS (
               SELECT 1 FROM pg_inherits
               WHERE inhrelid = to_regclass(:child) AND inhparent = to_regclass(:parent)
           ) AS attached
"""


# ---------------------------------------------------------
# LITERALS
# ---------------------------------------------------------

def _unquote(token: str) -> str:
    token = token.strip()
    if len(token) >= 2 and token[0] == "'" and token[-1] == "'":
        return token[1:-1].replace("''", "'")
    return token


def parse_bound_expression(expr: Optional[str]) -> Union[str, Tuple[str, str], None]:
    """
    Split a ``pg_get_expr(relpartbound)`` string.

    Returns:
        ``DEFAULT_BOUND`` for the default partition, ``(start, end)`` raw
        literals for a single-column range, None for anything else
        (MINVALUE/MAXVALUE, multi-column, list or hash bounds)
    """
    expr = (expr or "").strip()
    if expr.upper() == DEFAULT_BOUND:
        return DEFAULT_BOUND
    match = _RX_RANGE_BOUND.match(expr)
    if not match:
        return None
    start, end = match.group(1).strip(), match.group(2).strip()
    for token in (start, end):
        if token.upper() in ("MINVALUE", "MAXVALUE"):
            return None
        if not token.startswith("'") and "," in token:
            return None
        if token.startswith("'") and not token.endswith("'"):
            return None
    return _unquote(start), _unquote(end)


def parse_timestamp(raw: str) -> datetime:
    """Parse a Postgres timestamp rendering into an aware UTC datetime."""
    raw = _RX_SHORT_OFFSET.sub(r"\1:00", raw.strip())
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def decode_key(raw, scheme: PartitioningScheme) -> KeyValue:
    """Convert a stored or rendered key into the scheme's domain (int or UTC datetime)."""
    if scheme.key_kind == KeyKind.SEQUENCE:
        return int(raw) if not isinstance(raw, str) else int(_unquote(raw))
    if scheme.key_encoding == KeyEncoding.EPOCH:
        if isinstance(raw, str):
            raw = _unquote(raw)
        return datetime.fromtimestamp(int(Decimal(raw)), tz=timezone.utc)
    if isinstance(raw, datetime):
        if raw.tzinfo is None:
            return raw.replace(tzinfo=timezone.utc)
        return raw.astimezone(timezone.utc)
    return parse_timestamp(_unquote(str(raw)))


def render_key_literal(value: KeyValue, scheme: PartitioningScheme) -> str:
    """SQL literal for a bound value, in the column's storage encoding."""
    if scheme.key_kind == KeyKind.SEQUENCE:
        return str(int(value))
    if scheme.key_encoding == KeyEncoding.EPOCH:
        return str(int(value.timestamp()))
    return "'" + value.astimezone(timezone.utc).isoformat() + "'"


def classify_create_error(exc: DBAPIError, bound: PartitionBound) -> PartitionKeeperError:
    """Map a failed create/attach onto the maintainer's error taxonomy."""
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig if orig is not None else exc).strip()

    if sqlstate in (DUPLICATE_TABLE, UNIQUE_VIOLATION):
        return CreateConflict(f"partition {bound.name} was created concurrently", detail=message)
    if sqlstate in (QUERY_CANCELED, LOCK_NOT_AVAILABLE):
        return CreateTimedOut(f"attaching {bound.name} timed out", detail=message)
    if exc.connection_invalidated or sqlstate is None:
        return CreateTimedOut(f"connection lost while attaching {bound.name}", detail=message)
    return CreateRejected(f"attaching {bound.name} was rejected", detail=message)


# ---------------------------------------------------------
# TARGET
# ---------------------------------------------------------

class PostgresTarget(PartitionTarget):
    """Range-partitioned Postgres table reached through a SQLAlchemy engine."""

    def __init__(self, engine: Engine, scheme: PartitioningScheme):
        super().__init__(scheme)
        self.engine = engine

    def _quote(self, name: str) -> str:
        return self.engine.dialect.identifier_preparer.quote_identifier(name)

    @property
    def parent_ident(self) -> str:
        return f"{self._quote(self.scheme.schema)}.{self._quote(self.scheme.table)}"

    def child_ident(self, name: str) -> str:
        return f"{self._quote(self.scheme.schema)}.{self._quote(name)}"

    def max_key(self) -> Optional[KeyValue]:
        sql = text(f"SELECT MAX({self._quote(self.scheme.key_column)}) FROM {self.parent_ident}")
        try:
            with self.engine.connect() as conn:
                value = conn.execute(sql).scalar()
        except SQLAlchemyError as exc:
            raise CatalogUnreachable(
                f"cannot read high-water mark of {self.scheme.qualified_table}", detail=str(exc)
            ) from exc
        if value is None:
            return None
        return decode_key(value, self.scheme)

    def list_partitions(self) -> PartitionListing:
        params = {"schema": self.scheme.schema, "table": self.scheme.table}
        try:
            with self.engine.connect() as conn:
                strategy = conn.execute(text(PARTITION_STRATEGY_SQL), params).first()
                rows = conn.execute(text(PARTITIONS_SQL), params).fetchall()
        except SQLAlchemyError as exc:
            raise CatalogUnreachable(
                f"cannot list partitions of {self.scheme.qualified_table}", detail=str(exc)
            ) from exc

        if strategy is None:
            raise InvalidScheme(f"{self.scheme.qualified_table} is not a partitioned table")
        if strategy[0] != "r" or strategy[1] != 1:
            raise InvalidScheme(
                f"{self.scheme.qualified_table} must be range-partitioned on a single column"
            )

        listing = PartitionListing()
        for relname, expr in rows:
            parsed = parse_bound_expression(expr)
            if parsed == DEFAULT_BOUND:
                listing.default_partition = relname
                continue
            if parsed is None:
                listing.unrecognized.append((relname, expr or ""))
                continue
            try:
                start = decode_key(parsed[0], self.scheme)
                end = decode_key(parsed[1], self.scheme)
                listing.bounds.append(PartitionBound(name=relname, start=start, end=end))
            except ValueError:
                logger.warning("partition_bound_unparsed", partition=relname, bound=expr)
                listing.unrecognized.append((relname, expr or ""))
        return listing

    def partition_presence(self, name: str) -> PartitionPresence:
        params = {"child": self.child_ident(name), "parent": self.parent_ident}
        try:
            with self.engine.connect() as conn:
                present, attached = conn.execute(text(PRESENCE_SQL), params).one()
        except SQLAlchemyError as exc:
            raise CatalogUnreachable(f"cannot look up partition {name}", detail=str(exc)) from exc
        if not present:
            return PartitionPresence.ABSENT
        return PartitionPresence.ATTACHED if attached else PartitionPresence.DETACHED

    def attach_partition(self, bound: PartitionBound) -> None:
        child = self.child_ident(bound.name)
        lo = render_key_literal(bound.start, self.scheme)
        hi = render_key_literal(bound.end, self.scheme)
        create_sql = f"CREATE TABLE {child} (LIKE {self.parent_ident} INCLUDING DEFAULTS INCLUDING CONSTRAINTS)"
        attach_sql = f"ALTER TABLE {self.parent_ident} ATTACH PARTITION {child} FOR VALUES FROM ({lo}) TO ({hi})"

        try:
            with self.engine.begin() as conn:
                conn.execute(text(create_sql))
                conn.execute(text(attach_sql))
        except DBAPIError as exc:
            raise classify_create_error(exc, bound) from exc
        except SQLAlchemyError as exc:
            raise CreateTimedOut(f"attaching {bound.name} did not complete", detail=str(exc)) from exc

    def close(self) -> None:
        self.engine.dispose()
