import unittest
from unittest.mock import MagicMock

from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DBAPIError, OperationalError

from partkeeper.errors import (
    CatalogUnreachable,
    CreateConflict,
    CreateRejected,
    CreateTimedOut,
    InvalidScheme,
)
from partkeeper.models import KeyEncoding
from partkeeper.targets.base import PartitionPresence
from partkeeper.targets.postgres import (
    DEFAULT_BOUND,
    PostgresTarget,
    classify_create_error,
    decode_key,
    parse_bound_expression,
    render_key_literal,
)
from tests.fakes import WIDTH, bound, monthly_scheme, sequence_scheme, utc


class FakePgError(Exception):
    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


def db_error(pgcode, message="boom"):
    return DBAPIError("ALTER TABLE ...", None, FakePgError(message, pgcode))


def mock_engine():
    engine = MagicMock()
    engine.dialect = postgresql.dialect()
    conn = MagicMock()
    engine.connect.return_value.__enter__.return_value = conn
    engine.begin.return_value.__enter__.return_value = conn
    return engine, conn


class TestBoundExpressions(unittest.TestCase):
    def test_timestamp_range(self):
        parsed = parse_bound_expression(
            "FOR VALUES FROM ('2025-11-01 00:00:00+00') TO ('2025-12-01 00:00:00+00')"
        )
        self.assertEqual(parsed, ("2025-11-01 00:00:00+00", "2025-12-01 00:00:00+00"))

    def test_integer_range(self):
        self.assertEqual(parse_bound_expression("FOR VALUES FROM (0) TO (100000000)"), ("0", "100000000"))

    def test_default(self):
        self.assertEqual(parse_bound_expression("DEFAULT"), DEFAULT_BOUND)

    def test_unmanageable_bounds(self):
        for expr in (
            "FOR VALUES FROM (MINVALUE) TO (100)",
            "FOR VALUES FROM (100) TO (MAXVALUE)",
            "FOR VALUES FROM (1, 2) TO (3, 4)",
            "FOR VALUES IN ('a', 'b')",
            "FOR VALUES WITH (modulus 4, remainder 0)",
            None,
        ):
            self.assertIsNone(parse_bound_expression(expr), expr)


class TestKeyEncoding(unittest.TestCase):
    def test_decode_timestamps_to_utc(self):
        scheme = monthly_scheme()
        self.assertEqual(decode_key("2025-11-01 00:00:00+00", scheme), utc(2025, 11, 1))
        self.assertEqual(decode_key("2025-11-01 05:30:00+05:30", scheme), utc(2025, 11, 1))
        self.assertEqual(decode_key("'2025-11-01 00:00:00'", scheme), utc(2025, 11, 1))

    def test_decode_epoch(self):
        scheme = monthly_scheme(key_encoding=KeyEncoding.EPOCH)
        self.assertEqual(decode_key("1735689600", scheme), utc(2025, 1, 1))
        self.assertEqual(decode_key(1735689600, scheme), utc(2025, 1, 1))

    def test_decode_sequence(self):
        self.assertEqual(decode_key("'42'", sequence_scheme()), 42)

    def test_render_literals(self):
        self.assertEqual(render_key_literal(WIDTH, sequence_scheme()), "100000000")
        self.assertEqual(render_key_literal(utc(2025, 1, 1), monthly_scheme()), "'2025-01-01T00:00:00+00:00'")
        epoch = monthly_scheme(key_encoding=KeyEncoding.EPOCH)
        self.assertEqual(render_key_literal(utc(2025, 1, 1), epoch), "1735689600")


class TestErrorMapping(unittest.TestCase):
    def setUp(self):
        self.p3 = bound("p3", 2 * WIDTH, 3 * WIDTH)

    def test_duplicates_are_conflicts(self):
        self.assertIsInstance(classify_create_error(db_error("42P07"), self.p3), CreateConflict)
        self.assertIsInstance(classify_create_error(db_error("23505"), self.p3), CreateConflict)

    def test_timeouts_are_ambiguous(self):
        self.assertIsInstance(classify_create_error(db_error("57014"), self.p3), CreateTimedOut)
        self.assertIsInstance(classify_create_error(db_error("55P03"), self.p3), CreateTimedOut)
        self.assertIsInstance(classify_create_error(db_error(None, "server closed the connection"), self.p3),
                              CreateTimedOut)

    def test_other_errors_are_rejections(self):
        message = 'partition "p3" would overlap partition "p2"'
        error = classify_create_error(db_error("42P17", message), self.p3)
        self.assertIsInstance(error, CreateRejected)
        self.assertEqual(error.detail, message)


class TestPostgresTarget(unittest.TestCase):
    def test_attach_statements(self):
        engine, conn = mock_engine()
        target = PostgresTarget(engine, sequence_scheme(template="history_p{index}"))
        target.attach_partition(bound("history_p2", 2 * WIDTH, 3 * WIDTH))

        statements = [str(call.args[0]) for call in conn.execute.call_args_list]
        self.assertEqual(statements, [
            'CREATE TABLE "public"."history_p2" (LIKE "public"."history" INCLUDING DEFAULTS INCLUDING CONSTRAINTS)',
            'ALTER TABLE "public"."history" ATTACH PARTITION "public"."history_p2" '
            'FOR VALUES FROM (200000000) TO (300000000)',
        ])

    def test_attach_conflict(self):
        engine, conn = mock_engine()
        conn.execute.side_effect = db_error("42P07", 'relation "history_p2" already exists')
        target = PostgresTarget(engine, sequence_scheme())
        with self.assertRaises(CreateConflict):
            target.attach_partition(bound("p3", 2 * WIDTH, 3 * WIDTH))

    def test_list_partitions(self):
        engine, conn = mock_engine()
        strategy, rows = MagicMock(), MagicMock()
        strategy.first.return_value = ("r", 1)
        rows.fetchall.return_value = [
            ("history_default", "DEFAULT"),
            ("history_old", "FOR VALUES FROM (MINVALUE) TO (0)"),
            ("p1", "FOR VALUES FROM (0) TO (100000000)"),
            ("p2", "FOR VALUES FROM (100000000) TO (200000000)"),
        ]
        conn.execute.side_effect = [strategy, rows]

        listing = PostgresTarget(engine, sequence_scheme()).list_partitions()
        self.assertEqual(listing.bounds, [bound("p1", 0, WIDTH), bound("p2", WIDTH, 2 * WIDTH)])
        self.assertEqual(listing.default_partition, "history_default")
        self.assertEqual(listing.unrecognized, [("history_old", "FOR VALUES FROM (MINVALUE) TO (0)")])

    def test_list_partitions_requires_range_parent(self):
        engine, conn = mock_engine()
        strategy = MagicMock()
        strategy.first.return_value = None
        conn.execute.side_effect = [strategy, MagicMock()]
        with self.assertRaises(InvalidScheme):
            PostgresTarget(engine, sequence_scheme()).list_partitions()

    def test_max_key(self):
        engine, conn = mock_engine()
        conn.execute.return_value.scalar.return_value = None
        target = PostgresTarget(engine, sequence_scheme())
        self.assertIsNone(target.max_key())

        conn.execute.return_value.scalar.return_value = 195_000_000
        self.assertEqual(target.max_key(), 195_000_000)

    def test_read_failure_is_unreachable(self):
        engine, conn = mock_engine()
        conn.execute.side_effect = OperationalError("SELECT", None, Exception("connection refused"))
        with self.assertRaises(CatalogUnreachable):
            PostgresTarget(engine, sequence_scheme()).max_key()

    def test_presence(self):
        engine, conn = mock_engine()
        target = PostgresTarget(engine, sequence_scheme())
        for row, expected in (
            ((False, False), PartitionPresence.ABSENT),
            ((True, True), PartitionPresence.ATTACHED),
            ((True, False), PartitionPresence.DETACHED),
        ):
            conn.execute.return_value.one.return_value = row
            self.assertEqual(target.partition_presence("p3"), expected)


if __name__ == "__main__":
    unittest.main()
