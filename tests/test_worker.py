import unittest
from unittest.mock import patch

from partkeeper.errors import CreateRejected
from partkeeper.services import LookAhead, Maintainer, MaintainerOptions
from partkeeper.worker import run_once, start_worker
from tests.fakes import WIDTH, InMemoryTarget, bound, sequence_scheme


def maintainer(high_water_mark):
    target = InMemoryTarget(
        sequence_scheme(),
        [bound("p1", 0, WIDTH), bound("p2", WIDTH, 2 * WIDTH)],
        high_water_mark=high_water_mark,
    )
    return Maintainer(target, MaintainerOptions(look_ahead=LookAhead(margin=10_000_000)))


class TestWorker(unittest.TestCase):
    def test_operator_failures_outrank_transient(self):
        transient, rejected, healthy = maintainer(195_000_000), maintainer(195_000_000), maintainer(0)
        transient.target.fail_reads = True
        rejected.target.attach_error = CreateRejected("attaching p3 was rejected")
        self.assertEqual(run_once([healthy]), 0)
        self.assertEqual(run_once([transient, healthy]), 2)
        self.assertEqual(run_once([transient, rejected, healthy]), 1)

    @patch("partkeeper.worker.time.sleep")
    def test_loop_keeps_running_after_crashes(self, sleep):
        crashing, steady = maintainer(0), maintainer(450_000_000)
        with patch.object(crashing, "run_cycle", side_effect=RuntimeError("bug")):
            cycles = start_worker([crashing, steady], interval_seconds=60, max_cycles=3)

        self.assertEqual(cycles, 3)
        self.assertEqual(sleep.call_count, 2)
        # the crash in the first maintainer aborts that tick before the second runs
        self.assertEqual(steady.target.attach_calls, [])
        self.assertTrue(crashing.target.closed and steady.target.closed)

    @patch("partkeeper.worker.time.sleep")
    def test_loop_converges_one_partition_per_tick(self, sleep):
        steady = maintainer(450_000_000)
        start_worker([steady], interval_seconds=60, max_cycles=4)
        self.assertEqual(steady.target.names(), ["p1", "p2", "p3", "p4", "p5"])


if __name__ == "__main__":
    unittest.main()
