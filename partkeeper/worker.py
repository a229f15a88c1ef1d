import time
from typing import Sequence

from .logging_config import get_logger
from .services import Maintainer

logger = get_logger(__name__)


def run_once(maintainers: Sequence[Maintainer]) -> int:
    """
    One cycle per maintainer; returns the worst exit code.

    Operator-action failures (1) outrank transient ones (2).
    """
    worst = 0
    for maintainer in maintainers:
        result = maintainer.run_cycle()
        code = result.exit_code
        if code == 1 or (code == 2 and worst == 0):
            worst = code
    return worst


def start_worker(maintainers: Sequence[Maintainer], interval_seconds: float, max_cycles: int = None):
    """
    Timer-driven loop. Each tick is independent and stateless; a failed or
    crashed tick is logged and the next tick simply re-reads the catalog.
    """
    logger.info(
        "worker_started",
        tables=[m.scheme.qualified_table for m in maintainers],
        interval_seconds=interval_seconds,
    )

    cycles = 0
    try:
        while max_cycles is None or cycles < max_cycles:
            try:
                run_once(maintainers)
            except Exception:
                logger.exception("worker_cycle_crashed")
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            time.sleep(interval_seconds)
    except KeyboardInterrupt:
        logger.info("worker_stopping")
    finally:
        for maintainer in maintainers:
            maintainer.target.close()
    return cycles


if __name__ == "__main__":
    from .cli import main
    main(["watch"])
