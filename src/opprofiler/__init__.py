"""opprofiler: Operation counting and timing for algorithm benchmarks.

Provides:
- Profiler: Session manager with operation counters, timers and groups
- Operation: Scoped counter bound to one (series, size) point
- Report: Size-ordered series and groups, handed to a renderer
- LoggingRenderer / JsonRenderer: Report output via loguru or a JSON file

Usage:
    from opprofiler import Profiler

    profiler = Profiler("demo-power")

    def slow_pow(x, n):
        p = 1
        with profiler.create_operation("slow_pow", n) as op:
            for _ in range(n):
                op.count()
                p *= x
        return p

    for n in range(0, 200, 10):
        slow_pow(5, n)
    profiler.create_group("power", "slow_pow", "fast_pow")
    profiler.show_report()
"""

from opprofiler._core import (
    Operation,
    OperationClosedError,
    Profiler,
    ProfilerError,
    SeriesStore,
    SessionState,
    TimerNotStartedError,
)
from opprofiler._logging import setup_logging
from opprofiler._report import (
    GroupReport,
    JsonRenderer,
    LoggingRenderer,
    Report,
    SeriesReport,
)

__all__ = [
    "GroupReport",
    "JsonRenderer",
    "LoggingRenderer",
    "Operation",
    "OperationClosedError",
    "Profiler",
    "ProfilerError",
    "Report",
    "SeriesReport",
    "SeriesStore",
    "SessionState",
    "TimerNotStartedError",
    "setup_logging",
]

__version__ = "0.1.0"
