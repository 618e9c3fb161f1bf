"""Click-based CLI for the scope profiler."""

import time

import click
from pydantic import ValidationError

from . import __version__
from .config import ProfilerSettings, load_settings
from .errors import ProfilerError
from .format import PRESETS, get_format
from .formatter import NS_PER_MS, get_report
from .measurement import MeasurementArena, MeasurementTree
from .profiler_logging import LogCategory, get_category_logger, setup_logging

logger = get_category_logger(LogCategory.CLI)


def run_demo_workload(arena: MeasurementArena, iterations: int, sleep_s: float) -> None:
    """Nested loops with a known shape, measured into `arena`.

    Each iteration of "main" runs "inner operations" twice, each doing
    one "processing" step, and then one more "processing" step directly.
    """

    def process() -> None:
        with arena.enter("processing"):
            time.sleep(sleep_s)

    for _ in range(iterations):
        with arena.enter("main"):
            for _ in range(2):
                with arena.enter("inner operations"):
                    process()
            process()


def sample_tree() -> MeasurementTree:
    """A small two-frame game loop measured on a simulated clock."""
    now = 0

    def clock() -> int:
        return now

    def spend(ms: int) -> None:
        nonlocal now
        now += ms * NS_PER_MS

    arena = MeasurementArena(clock=clock)
    for _ in range(2):
        with arena.enter("main"):
            with arena.enter("physics simulation"):
                with arena.enter("moving things"):
                    spend(100)
                with arena.enter("resolving collisions"):
                    spend(100)
            with arena.enter("rendering"):
                spend(100)
    return arena.snapshot()


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only log errors")
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Log output format",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, log_format: str | None) -> None:
    """Scope profiler - call-tree timing reports for nested code regions."""
    if quiet and verbose:
        click.echo("Error: --quiet and --verbose are mutually exclusive", err=True)
        ctx.exit(1)

    try:
        settings = load_settings(log_format=log_format)
    except ValidationError as e:
        click.echo(f"Error: invalid profiler settings: {e}", err=True)
        ctx.exit(1)

    setup_logging(verbose=verbose, quiet=quiet, log_format=settings.log_format)
    ctx.obj = settings


@cli.command()
@click.option("--format", "format_name", default=None, help="Glyph preset name")
@click.option(
    "--precision", type=click.IntRange(0, 9), default=None, help="Decimals of ms/loop"
)
@click.option(
    "--iterations", type=click.IntRange(min=1), default=2, show_default=True
)
@click.option(
    "--sleep-ms",
    type=click.FloatRange(min=0),
    default=100.0,
    show_default=True,
    help="Duration of one processing step",
)
@click.pass_context
def demo(
    ctx: click.Context,
    format_name: str | None,
    precision: int | None,
    iterations: int,
    sleep_ms: float,
) -> None:
    """Profile a small nested-loop workload and print the report."""
    settings: ProfilerSettings = ctx.obj
    try:
        options = get_format(format_name or settings.format)
    except ProfilerError as e:
        click.echo(e.format(), err=True)
        ctx.exit(e.exit_code)

    arena = MeasurementArena()
    logger.debug(f"Running demo workload: {iterations} iterations, {sleep_ms}ms steps")
    run_demo_workload(arena, iterations, sleep_ms / 1000)

    if precision is None:
        precision = settings.precision
    click.echo(get_report(arena.snapshot(), options, precision), nl=False)


@cli.command()
@click.pass_context
def formats(ctx: click.Context) -> None:
    """List the glyph presets with a sample report for each."""
    settings: ProfilerSettings = ctx.obj
    tree = sample_tree()
    for name, options in PRESETS.items():
        click.echo(f"{name}:")
        click.echo(get_report(tree, options, settings.precision))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
