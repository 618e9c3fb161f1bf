"""Call-tree profiler for single-threaded programs.

Mark regions of code with named scopes; every scope entered inside
another becomes its child. Repeated entries of the same scope on the
same call path are merged, so loop bodies show up once with a sample
count. The report shows each scope's share of its parent and its time
per run of the enclosing top-level scope.

- **measurement**: scope tracking
  - `measure()` context manager and `@measured` decorator
  - `MeasurementArena` for explicit, per-thread measurement trees
  - `reset()` to drop collected data

- **formatter**: report rendering
  - `get_report()` for any tree snapshot
  - `get_formatted_string()`, `print_report()`, `log_report()`

- **format**: glyph presets (`STREAMLINED`, `COMPATIBLE`, ...)

Example usage:

    from scope_profiler import measure, print_report, reset

    for _ in range(2):
        with measure("main"):
            for _ in range(2):
                with measure("inner operations"):
                    process()
            process()

    print_report()
    reset()
"""

from .config import ProfilerSettings, configure, get_settings, load_settings
from .errors import (
    ConcurrentAccessError,
    ErrorCategory,
    ProfilerError,
    ScopeStackError,
    UnknownFormatError,
)
from .format import (
    COMPATIBLE,
    DEBUGGING,
    DOUBLED,
    PRESETS,
    STREAMLINED,
    STREAMLINED_ROUNDED,
    FormattingOptions,
    get_format,
)
from .formatter import (
    ReportRow,
    collect_rows,
    get_formatted_string,
    get_report,
    log_report,
    print_report,
)
from .measurement import (
    MeasurementArena,
    MeasurementTree,
    NullTracker,
    ScopeNode,
    ScopeTracker,
    get_arena,
    measure,
    measured,
    reset,
    set_arena,
)

__version__ = "0.3.0"

__all__ = [
    # Measurement
    "ScopeNode",
    "ScopeTracker",
    "NullTracker",
    "MeasurementArena",
    "MeasurementTree",
    "get_arena",
    "set_arena",
    "measure",
    "measured",
    "reset",
    # Report
    "ReportRow",
    "collect_rows",
    "get_report",
    "get_formatted_string",
    "print_report",
    "log_report",
    # Formats
    "FormattingOptions",
    "STREAMLINED",
    "STREAMLINED_ROUNDED",
    "COMPATIBLE",
    "DOUBLED",
    "DEBUGGING",
    "PRESETS",
    "get_format",
    # Settings
    "ProfilerSettings",
    "load_settings",
    "get_settings",
    "configure",
    # Errors
    "ProfilerError",
    "ErrorCategory",
    "ScopeStackError",
    "ConcurrentAccessError",
    "UnknownFormatError",
]
