"""Render a measurement tree as an aligned text report.

    ╶──┬╼ main                 - 100.0%, 300.00 ms/loop, 2 samples
       ├──┬╼ inner operations  -  66.7%, 200.00 ms/loop, 4 samples
       │  └───╼ processing     - 100.0%, 200.00 ms/loop, 4 samples
       └───╼ processing        -  33.3%, 100.00 ms/loop, 2 samples

How to read the report:

- The percentage is the share of the parent scope's time.
- ms/loop is the scope's total time divided by the number of times its
  top-level scope ran. "processing" above takes 100ms per call but runs
  twice per "main", so it shows 200 ms/loop.
- samples is the number of times the scope was entered and exited.

Durations are corrected for the profiler's own overhead, so the most
useful numbers are the percentages rather than the absolute timings.
"""

import logging
from dataclasses import dataclass
from typing import Any

import click

from .config import get_settings
from .format import FormattingOptions, get_format
from .measurement import MeasurementTree, ScopeNode, get_arena
from .profiler_logging import LogCategory, get_category_logger

NS_PER_MS = 1_000_000


@dataclass
class ReportRow:
    """One line of the report.

    Attributes:
        name: Scope name.
        depth: Depth in the tree (top-level scopes are 1).
        prefix: Tree glyphs followed by the name.
        count: Number of recorded samples.
        duration_ns: Overhead-corrected total duration, None without samples.
        percentage: Share of the parent's corrected duration.
        ms_per_loop: Corrected duration per run of the top-level scope.
    """

    name: str
    depth: int
    prefix: str
    count: int
    duration_ns: int | None = None
    percentage: float | None = None
    ms_per_loop: float | None = None

    @property
    def has_data(self) -> bool:
        return self.duration_ns is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "depth": self.depth,
            "count": self.count,
            "duration_ms": (
                round(self.duration_ns / NS_PER_MS, 6) if self.has_data else None
            ),
            "percentage": (
                round(self.percentage, 2) if self.percentage is not None else None
            ),
            "ms_per_loop": (
                round(self.ms_per_loop, 6) if self.ms_per_loop is not None else None
            ),
        }


def build_branch(
    tree: MeasurementTree, node: ScopeNode, options: FormattingOptions
) -> str:
    """Build the tree glyphs and name shown at the start of a row."""
    continuing = f"{options.continuing_branch}  "
    blank = " " * len(continuing)

    branch = []
    for column in range(node.depth):
        if column == node.depth - 1:
            if node.depth == 1:
                branch.append(options.starting_branch)
            elif tree.is_last_child(node):
                branch.append(options.turning_branch)
            else:
                branch.append(options.branching_branch)
        elif column == 0:
            # Top-level scopes are never joined to each other.
            branch.append(blank)
        else:
            ancestor = tree.ancestor_at(node, column + 1)
            branch.append(blank if tree.is_last_child(ancestor) else continuing)

    if node.has_children():
        branch.append(options.turning_ending_branch)
    else:
        branch.append(options.ending_branch)
    branch.append(f" {node.name}")
    return "".join(branch)


def collect_rows(tree: MeasurementTree, options: FormattingOptions) -> list[ReportRow]:
    """Compute the report rows of `tree` in depth-first order."""
    rows = []
    for node in tree.walk():
        row = ReportRow(
            name=node.name,
            depth=node.depth,
            prefix=build_branch(tree, node, options),
            count=node.count,
        )
        duration = tree.true_duration_ns(node)
        if duration is not None:
            parent_duration = None
            if node.depth > 1:
                parent_duration = tree.true_duration_ns(tree.parent_of(node))

            if parent_duration is None:
                percentage = 100.0
            elif parent_duration == 0:
                percentage = 0.0
            else:
                percentage = 100.0 * duration / parent_duration

            # Each top-level scope is the loop count for its own subtree.
            loops = tree.ancestor_at(node, 1).count or 1

            row.duration_ns = duration
            row.percentage = percentage
            row.ms_per_loop = duration / loops / NS_PER_MS
        rows.append(row)
    return rows


def format_row(row: ReportRow, width: int, precision: int) -> str:
    if not row.has_data:
        return f"{row.prefix:<{width}} - no data"
    return (
        f"{row.prefix:<{width}} - {row.percentage:5.1f}%, "
        f"{row.ms_per_loop:.{precision}f} ms/loop, {row.count} samples"
    )


def get_report(
    tree: MeasurementTree, options: FormattingOptions, precision: int = 2
) -> str:
    """Render `tree` as text, one line per scope.

    Args:
        tree: Snapshot to render; the root itself is not shown.
        options: Glyphs used to draw the tree.
        precision: Decimals shown for ms/loop.

    Returns:
        The report, each line terminated by a newline. Empty if no
        scope has been entered.
    """
    rows = collect_rows(tree, options)
    if not rows:
        return ""
    width = max(len(row.prefix) for row in rows) + 1
    return "".join(f"{format_row(row, width, precision)}\n" for row in rows)


def _resolve(
    options: FormattingOptions | None, precision: int | None
) -> tuple[FormattingOptions, int]:
    settings = get_settings()
    if options is None:
        options = get_format(settings.format)
    if precision is None:
        precision = settings.precision
    return options, precision


def get_formatted_string(
    options: FormattingOptions | None = None, precision: int | None = None
) -> str:
    """Render the process-wide measurements.

    Args:
        options: Glyphs to use (defaults to the configured preset).
        precision: Decimals for ms/loop (defaults to the configured value).
    """
    options, precision = _resolve(options, precision)
    return get_report(get_arena().snapshot(), options, precision)


def print_report(
    options: FormattingOptions | None = None, precision: int | None = None
) -> None:
    """Print the process-wide measurements to stdout."""
    click.echo(get_formatted_string(options, precision), nl=False)


def log_report(
    logger: logging.Logger | None = None,
    options: FormattingOptions | None = None,
    precision: int | None = None,
) -> None:
    """Log the process-wide measurements, one INFO record per scope."""
    logger = logger or get_category_logger(LogCategory.REPORT)
    options, precision = _resolve(options, precision)
    rows = collect_rows(get_arena().snapshot(), options)

    if not rows:
        logger.info("[PERF] No scopes measured")
        return

    width = max(len(row.prefix) for row in rows) + 1
    for row in rows:
        logger.info(
            format_row(row, width, precision),
            extra={
                "scope": row.name,
                "depth": row.depth,
                "duration_ms": row.to_dict()["duration_ms"],
            },
        )
