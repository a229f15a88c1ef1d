"""
Command line entry point.

Exit codes: 0 = no action needed or partition created, 1 = operator action
required (catalog violation, rejected attach, bad configuration),
2 = transient failure, safe to retry on the next cycle.
"""
from typing import List, Optional, Sequence

import click
from pydantic import ValidationError

from . import __version__
from .config import Settings, load_settings
from .deps import build_maintainer
from .errors import PartitionKeeperError
from .logging_config import configure_logging, get_logger
from .services import Maintainer

EXIT_OK = 0
EXIT_OPERATOR = 1
EXIT_TRANSIENT = 2

logger = get_logger(__name__)


def _load(env_file: Optional[str]) -> Settings:
    try:
        settings = load_settings(env_file)
    except ValidationError as exc:
        click.echo(f"Invalid configuration: {exc}", err=True)
        raise SystemExit(EXIT_OPERATOR)
    configure_logging(settings.LOG_LEVEL, settings.ENVIRONMENT)
    return settings


def _maintainer(settings: Settings, dry_run: bool = False) -> Maintainer:
    try:
        return build_maintainer(settings, dry_run=dry_run)
    except PartitionKeeperError as exc:
        click.echo(f"{exc.kind}: {exc.message}", err=True)
        raise SystemExit(EXIT_OPERATOR)
    except RuntimeError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(EXIT_OPERATOR)


@click.group()
@click.version_option(__version__, prog_name="partkeeper")
def cli():
    """Keep the next range partition provisioned ahead of incoming data."""


@cli.command()
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Settings file for the table.")
@click.option("--dry-run", is_flag=True, help="Decide and report without creating anything.")
def run(env_file: Optional[str], dry_run: bool):
    """Run one maintenance cycle."""
    maintainer = _maintainer(_load(env_file), dry_run=dry_run)
    try:
        result = maintainer.run_cycle()
    finally:
        maintainer.target.close()
    click.echo(result.model_dump_json(indent=2))
    raise SystemExit(result.exit_code)


@cli.command()
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Settings file for the table.")
@click.pass_context
def plan(ctx: click.Context, env_file: Optional[str]):
    """Show what the next cycle would create (same as run --dry-run)."""
    ctx.invoke(run, env_file=env_file, dry_run=True)


@cli.command()
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Settings file for the table.")
def status(env_file: Optional[str]):
    """Print the catalog snapshot, headroom and validation result."""
    maintainer = _maintainer(_load(env_file))
    try:
        report = maintainer.status()
    except PartitionKeeperError as exc:
        click.echo(f"{exc.kind}: {exc.message}", err=True)
        raise SystemExit(EXIT_TRANSIENT if exc.retryable else EXIT_OPERATOR)
    finally:
        maintainer.target.close()
    click.echo(report.model_dump_json(indent=2))
    raise SystemExit(EXIT_OPERATOR if report.violations else EXIT_OK)


@cli.command()
@click.option(
    "--env-file", "env_files", multiple=True, type=click.Path(dir_okay=False),
    help="Settings file per table; repeat to maintain several tables.",
)
@click.option("--interval", type=float, default=None, help="Seconds between cycles.")
@click.option("--once", is_flag=True, help="Run a single cycle for every table and exit.")
def watch(env_files: Sequence[str], interval: Optional[float], once: bool):
    """Run cycles on a timer until interrupted."""
    from .worker import run_once, start_worker

    all_settings: List[Settings] = [_load(path) for path in env_files] or [_load(None)]
    maintainers = [_maintainer(settings) for settings in all_settings]

    if once:
        try:
            code = run_once(maintainers)
        finally:
            for maintainer in maintainers:
                maintainer.target.close()
        raise SystemExit(code)

    every = interval or min(s.SCHEDULE_INTERVAL_SECONDS for s in all_settings)
    start_worker(maintainers, every)


@cli.command()
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Settings file for the table.")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(env_file: Optional[str], host: str, port: int):
    """Serve the HTTP status and on-demand trigger endpoints."""
    import uvicorn

    from .main import create_app

    uvicorn.run(create_app(_load(env_file)), host=host, port=port, log_config=None)


def main(argv: Optional[Sequence[str]] = None):
    cli.main(args=argv, prog_name="partkeeper")


if __name__ == "__main__":
    main()
