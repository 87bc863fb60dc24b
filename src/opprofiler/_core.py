"""Core instrumentation: series store, operation counters, timers, groups.

Design by Contract:
- Sizes MUST be non-negative (crash if negative)
- Stored values MUST be non-negative (crash if negative)
- Count deltas MUST be positive
- One value per (series, size); later writes replace earlier ones
- Fail-fast on caller misuse, never on missing data

Public methods use beartype for runtime type enforcement.
"""

import threading
import time
from collections.abc import Callable, Generator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import psutil
from beartype import beartype
from loguru import logger

from opprofiler._report import GroupReport, LoggingRenderer, Report, SeriesReport, Value

Clock = Callable[[], float]
Renderer = Callable[[Report], None]


class ProfilerError(RuntimeError):
    """Base class for instrumentation misuse."""


class TimerNotStartedError(ProfilerError):
    """stop_timer() was called for a key with no pending start_timer()."""


class OperationClosedError(ProfilerError):
    """An Operation was used after its scope ended."""


def _rss_gb() -> float:
    return psutil.Process().memory_info().rss / 1024**3


class SeriesStore:
    """Per-series ordered mapping from input size to measured value.

    Series appear in first-write order; all_series() sorts points by size so
    reports are deterministic regardless of measurement order.

    Thread-safe: writes and reads are serialised through one lock.
    """

    def __init__(self) -> None:
        self._series: dict[str, dict[int, Value]] = {}
        self._lock = threading.Lock()

    @beartype
    def set_value(self, series: str, size: int, value: Value) -> None:
        """Insert or overwrite the value at (series, size)."""
        assert series, "Series name must be non-empty"
        assert size >= 0, f"Size must be non-negative: {size}"
        assert value >= 0, f"Value must be non-negative: {value}"

        with self._lock:
            self._series.setdefault(series, {})[size] = value

    @beartype
    def get_value(self, series: str, size: int) -> Value | None:
        with self._lock:
            points = self._series.get(series)
            if points is None:
                return None
            return points.get(size)

    def series_names(self) -> list[str]:
        with self._lock:
            return list(self._series)

    def points(self, series: str) -> list[tuple[int, Value]]:
        with self._lock:
            return sorted(self._series.get(series, {}).items())

    def all_series(self) -> list[tuple[str, list[tuple[int, Value]]]]:
        with self._lock:
            return [(name, sorted(points.items())) for name, points in self._series.items()]

    def clear(self) -> None:
        with self._lock:
            self._series.clear()

    def __contains__(self, series: object) -> bool:
        return series in self._series

    def __len__(self) -> int:
        return len(self._series)


class GroupRegistry:
    """Named groups of series names, kept for combined display only."""

    def __init__(self) -> None:
        self._groups: dict[str, tuple[str, ...]] = {}

    def create(self, name: str, series: tuple[str, ...]) -> None:
        assert name, "Group name must be non-empty"
        # re-creating moves the group to the end
        self._groups.pop(name, None)
        self._groups[name] = series

    def members(self, name: str) -> list[str] | None:
        series = self._groups.get(name)
        return list(series) if series is not None else None

    def items(self) -> list[tuple[str, tuple[str, ...]]]:
        return list(self._groups.items())

    def clear(self) -> None:
        self._groups.clear()

    def __len__(self) -> int:
        return len(self._groups)


class TimerSession:
    """Start/stop wall-clock bracket for one (series, size) point.

    Args:
        series: Series the elapsed time is written to
        size: Input size of the measured point
        clock: Monotonic clock returning seconds
        track_memory: If True, sample process RSS via psutil at start and stop

    Design by Contract:
        - elapsed >= 0 (crashes if negative - clock went backwards)
        - memory_delta can be negative (memory released)
    """

    def __init__(self, series: str, size: int, clock: Clock, track_memory: bool) -> None:
        self.series = series
        self.size = size
        self._clock = clock
        self._start_memory: float | None = _rss_gb() if track_memory else None
        self._start: float = clock()

    def stop(self) -> tuple[float, float | None]:
        """Return (elapsed seconds, RSS delta in GB or None)."""
        elapsed = self._clock() - self._start

        assert elapsed >= 0, (
            f"Elapsed time cannot be negative: {elapsed:.6f}s. "
            f"Clock went backwards or timing bug."
        )

        memory_delta = None
        if self._start_memory is not None:
            memory_delta = _rss_gb() - self._start_memory
        return elapsed, memory_delta


class SessionState(Enum):
    ACTIVE = "active"
    REPORTED = "reported"


@dataclass
class Session:
    """All series, groups and pending timers of one benchmarking run."""

    name: str
    generation: int
    store: SeriesStore = field(default_factory=SeriesStore)
    groups: GroupRegistry = field(default_factory=GroupRegistry)
    timers: dict[tuple[str, int], TimerSession] = field(default_factory=dict)
    memory: dict[tuple[str, int], float] = field(default_factory=dict)
    state: SessionState = SessionState.ACTIVE
    warned_after_report: bool = False


class Operation:
    """Counter for one (series, size) point, written through on every count.

    Obtain via Profiler.create_operation(). The zero value is stored at
    creation, so a point whose code path never counts still reads 0.

    Usage:
        with profiler.create_operation("slow_pow", n) as op:
            for _ in range(n):
                op.count()
                p *= x

    The handle remembers the session generation it was created in. Once the
    profiler is reset, every write from this handle is skipped so it can never
    touch the new session's data.
    """

    def __init__(self, profiler: "Profiler", series: str, size: int) -> None:
        self.series = series
        self.size = size
        self._profiler = profiler
        self._generation = profiler.generation
        self._value = 0
        self._closed = False
        self._write()

    @property
    def value(self) -> int:
        return self._value

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stale(self) -> bool:
        return self._generation != self._profiler.generation

    @beartype
    def count(self, delta: int = 1) -> None:
        """Add delta units of work and store the new total immediately."""
        if self._closed:
            raise OperationClosedError(
                f"Operation '{self.series}' at size {self.size} is closed"
            )
        assert delta > 0, f"Count delta must be positive: {delta}"

        if not self._profiler.counters_enabled:
            return
        self._value += delta
        self._write()

    def close(self) -> None:
        """Flush the final total and end the handle. Idempotent."""
        if self._closed:
            return
        self._write()
        self._closed = True

    def _write(self) -> None:
        if not self._profiler.counters_enabled:
            return
        self._profiler._write(self._generation, self.series, self.size, self._value)

    def __enter__(self) -> "Operation":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Operation(series={self.series!r}, size={self.size}, value={self._value})"


class Profiler:
    """Session manager and instrumentation entry point.

    Holds exactly one active Session. Construct once and pass it to the
    instrumented code; reset() starts the next session in place.

    Args:
        name: Name of the initial session (default: "profiler")
        clock: Monotonic clock for timers, in seconds (default: time.perf_counter)
        track_memory: If True, timers also record process RSS deltas via psutil

    Example:
        profiler = Profiler("demo-power")
        for n in range(0, 200, 10):
            slow_pow(profiler, 5, n)
            profiler.count_operation("fast_pow", n, 2)
        profiler.create_group("power", "slow_pow", "fast_pow")
        profiler.show_report()

    Design by Contract:
        - unmatched stop_timer() raises TimerNotStartedError
        - empty sessions and absent series never raise
    """

    @beartype
    def __init__(
        self,
        name: str = "profiler",
        *,
        clock: Clock = time.perf_counter,
        track_memory: bool = False,
    ) -> None:
        assert name, "Session name must be non-empty"
        self._clock = clock
        self.track_memory = track_memory
        self.counters_enabled = True
        self._generation = 0
        self._session = Session(name=name, generation=self._generation)
        logger.debug(f"Profiling session '{name}' started (generation 0)")

    @property
    def session_name(self) -> str:
        return self._session.name

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> SessionState:
        return self._session.state

    @beartype
    def reset(self, name: str) -> None:
        """Discard all series, groups and pending timers and start session `name`."""
        assert name, "Session name must be non-empty"
        old = self._session
        logger.debug(
            f"Resetting profiling session '{old.name}' -> '{name}' "
            f"(dropping {len(old.store)} series, {len(old.groups)} groups, "
            f"{len(old.timers)} pending timers)"
        )
        old.store.clear()
        old.groups.clear()
        old.timers.clear()
        old.memory.clear()

        self._generation += 1
        self._session = Session(name=name, generation=self._generation)

    # -- operation counting ------------------------------------------------

    @beartype
    def create_operation(self, series: str, size: int) -> Operation:
        """Bind a fresh zero counter to (series, size) and store the zero."""
        assert series, "Series name must be non-empty"
        assert size >= 0, f"Size must be non-negative: {size}"
        return Operation(self, series, size)

    @beartype
    def count_operation(self, series: str, size: int, delta: int = 1) -> None:
        """Record a single measurement of `delta` units at (series, size).

        Overwrites whatever the key held; repeated calls do not add up.
        """
        assert series, "Series name must be non-empty"
        assert size >= 0, f"Size must be non-negative: {size}"
        assert delta > 0, f"Count delta must be positive: {delta}"
        if not self.counters_enabled:
            return
        self._write(self._generation, series, size, delta)

    def disable_counters(self) -> None:
        """Stop all operation counting until enable_counters()."""
        self.counters_enabled = False

    def enable_counters(self) -> None:
        self.counters_enabled = True

    # -- timers ------------------------------------------------------------

    @beartype
    def start_timer(self, series: str, size: int) -> None:
        """Start (or restart) the wall-clock timer for (series, size)."""
        assert series, "Series name must be non-empty"
        assert size >= 0, f"Size must be non-negative: {size}"
        self._session.timers[(series, size)] = TimerSession(
            series, size, self._clock, self.track_memory
        )

    @beartype
    def stop_timer(self, series: str, size: int) -> float:
        """Store the elapsed seconds since start_timer() at (series, size).

        Returns:
            The elapsed time in seconds.

        Raises:
            TimerNotStartedError: No pending start_timer() for this key.
        """
        timer = self._session.timers.pop((series, size), None)
        if timer is None:
            raise TimerNotStartedError(
                f"stop_timer('{series}', {size}) without a matching start_timer() "
                f"in session '{self._session.name}'"
            )

        elapsed, memory_delta = timer.stop()
        self._write(self._generation, series, size, elapsed)
        if memory_delta is not None:
            self._session.memory[(series, size)] = memory_delta
        return elapsed

    @beartype
    @contextmanager
    def timed(self, series: str, size: int) -> Generator[None, None, None]:
        """Context manager bracketing start_timer() / stop_timer().

        The timer is stopped and recorded even if the body raises. A reset()
        inside the block abandons the timer; nothing is recorded.
        """
        self.start_timer(series, size)
        generation = self._generation
        try:
            yield
        finally:
            if generation != self._generation:
                logger.debug(
                    f"Skipping stale timer stop for '{series}' at size {size} "
                    f"(generation {generation}, current {self._generation})"
                )
            else:
                self.stop_timer(series, size)

    # -- groups and derived series -------------------------------------------

    @beartype
    def create_group(self, group: str, *series: str) -> None:
        """Register (or replace) a named group of series for combined display."""
        self._session.groups.create(group, series)

    @beartype
    def group_members(self, group: str) -> list[str] | None:
        return self._session.groups.members(group)

    @beartype
    def add_series(self, name: str, first: str, second: str) -> None:
        """Write series `name` as first + second at every size both contain."""
        store = self._session.store
        second_points = dict(store.points(second))
        for size, value in store.points(first):
            if size in second_points:
                self._write(self._generation, name, size, value + second_points[size])

    @beartype
    def divide_values(self, series: str, divisor: int | float) -> None:
        """Divide every value of `series` by `divisor` in place."""
        assert divisor > 0, f"Divisor must be positive: {divisor}"
        memory = self._session.memory
        for size, value in self._session.store.points(series):
            # the memory delta still describes the rescaled measurement
            memory_delta = memory.get((series, size))
            self._write(self._generation, series, size, value / divisor)
            if memory_delta is not None:
                memory[(series, size)] = memory_delta

    # -- queries and reporting -----------------------------------------------

    @beartype
    def get_value(self, series: str, size: int) -> Value | None:
        return self._session.store.get_value(series, size)

    def report(self) -> Report:
        """Build the structured report for the active session."""
        session = self._session
        series_reports = tuple(
            SeriesReport(
                name=name,
                points=tuple(points),
                memory=tuple(
                    sorted(
                        (size, delta)
                        for (series, size), delta in session.memory.items()
                        if series == name
                    )
                ),
            )
            for name, points in session.store.all_series()
        )

        by_name = {series.name: series for series in series_reports}
        groups = tuple(
            GroupReport(
                name=group,
                members=tuple(by_name.get(member, SeriesReport(member)) for member in members),
            )
            for group, members in session.groups.items()
        )
        return Report(session=session.name, series=series_reports, groups=groups)

    def show_report(self, renderer: Renderer | None = None) -> Report:
        """Render the active session and mark it reported.

        Args:
            renderer: Callable receiving the Report (default: LoggingRenderer())

        Returns:
            The rendered Report.
        """
        report = self.report()
        if renderer is None:
            renderer = LoggingRenderer()
        renderer(report)
        self._session.state = SessionState.REPORTED
        return report

    @beartype
    def log_checkpoint(self, checkpoint_name: str) -> None:
        """Log a condensed one-line-per-series snapshot via loguru."""
        session = self._session
        if not len(session.store):
            logger.info(f"[CHECKPOINT: {checkpoint_name}] Session '{session.name}': no data yet")
            return

        logger.info(
            f"[CHECKPOINT: {checkpoint_name}] Session '{session.name}': "
            f"{len(session.store)} series, {len(session.groups)} groups"
        )
        for name, points in session.store.all_series():
            first_size, _ = points[0]
            last_size, last_value = points[-1]
            logger.info(
                f"  {name}: {len(points)} points, sizes {first_size}..{last_size}, "
                f"last={last_value}"
            )

    def _write(self, generation: int, series: str, size: int, value: Value) -> None:
        if generation != self._generation:
            logger.debug(
                f"Skipping stale write to '{series}' at size {size} "
                f"(generation {generation}, current {self._generation})"
            )
            return

        session = self._session
        if session.state is SessionState.REPORTED and not session.warned_after_report:
            logger.warning(
                f"Recording into session '{session.name}' after its report was shown"
            )
            session.warned_after_report = True
        session.memory.pop((series, size), None)
        session.store.set_value(series, size, value)
