"""Report model and renderers.

A Report is the finished, deterministic view of one profiling session: every
series as size-ordered (size, value) points plus the comparison groups. It has
no back-reference to the Profiler, so renderers can be written and tested in
isolation.

Renderers are plain callables taking a Report. Two ship with the package:
- LoggingRenderer: fixed-width tables via loguru
- JsonRenderer: JSON file export
"""

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from beartype import beartype
from loguru import logger

Value = int | float


@dataclass(frozen=True)
class SeriesReport:
    """One series with its points sorted by size.

    Attributes:
        name: Series name
        points: (size, value) pairs, size ascending
        memory: (size, RSS delta in GB) pairs for memory-tracked timers
    """

    name: str
    points: tuple[tuple[int, Value], ...] = ()
    memory: tuple[tuple[int, float], ...] = ()

    @property
    def sizes(self) -> list[int]:
        return [size for size, _ in self.points]

    def value_at(self, size: int) -> Value | None:
        for point_size, value in self.points:
            if point_size == size:
                return value
        return None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "points": [{"size": size, "value": value} for size, value in self.points],
        }
        if self.memory:
            result["memory_delta_gb"] = {str(size): delta for size, delta in self.memory}
        return result


@dataclass(frozen=True)
class GroupReport:
    """A comparison group. Members missing from the session are empty series."""

    name: str
    members: tuple[SeriesReport, ...] = ()

    @property
    def sizes(self) -> list[int]:
        return sorted({size for member in self.members for size in member.sizes})


@dataclass(frozen=True)
class Report:
    session: str
    series: tuple[SeriesReport, ...] = ()
    groups: tuple[GroupReport, ...] = field(default=())

    @property
    def is_empty(self) -> bool:
        return not self.series and not self.groups

    def get(self, name: str) -> SeriesReport | None:
        for series in self.series:
            if series.name == name:
                return series
        return None

    def ungrouped(self) -> list[SeriesReport]:
        """Series not listed by any group, in report order."""
        grouped = {member.name for group in self.groups for member in group.members}
        return [series for series in self.series if series.name not in grouped]

    def rows(self) -> Iterator[tuple[str, int, Value]]:
        """Yield (series name, size, value) triples in report order."""
        for series in self.series:
            for size, value in series.points:
                yield series.name, size, value

    def to_dict(self) -> dict[str, Any]:
        return {
            "session": self.session,
            "series": [series.to_dict() for series in self.series],
            "groups": {
                group.name: [member.name for member in group.members]
                for group in self.groups
            },
        }


def _format_value(value: Value | None) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.6f}"
    return str(value)


class LoggingRenderer:
    """Render a Report as fixed-width tables through loguru.

    Groups come first, one table per group with a column per member series.
    Ungrouped series follow with one table each. An empty session renders a
    header and a "no data" line.

    Args:
        title: Header prefix for the report (default: "PROFILING REPORT")
        width: Total table width in characters (default: 90)
    """

    @beartype
    def __init__(self, title: str = "PROFILING REPORT", width: int = 90) -> None:
        assert width >= 40, f"Table width must be at least 40: {width}"
        self.title = title
        self.width = width

    def __call__(self, report: Report) -> None:
        logger.info("")
        logger.info("=" * self.width)
        logger.info(f"{self.title + ': ' + report.session:^{self.width}}")
        logger.info("=" * self.width)

        if report.is_empty:
            logger.info("No profiling data recorded")
            logger.info("=" * self.width)
            return

        for group in report.groups:
            self._render_group(group)
        for series in report.ungrouped():
            self._render_series(series)
        logger.info("")

    def _render_group(self, group: GroupReport) -> None:
        logger.info(f"GROUP: {group.name}")
        logger.info("-" * self.width)
        if not group.members:
            logger.info("  (no series)")
            return

        header = f"{'Size':>10}" + "".join(
            f" {member.name:>{self._column(member.name)}}" for member in group.members
        )
        logger.info(header)
        sizes = group.sizes
        if not sizes:
            logger.info("  (no data)")
        for size in sizes:
            line = f"{size:>10}" + "".join(
                f" {_format_value(member.value_at(size)):>{self._column(member.name)}}"
                for member in group.members
            )
            logger.info(line)
        logger.info("-" * self.width)

    def _render_series(self, series: SeriesReport) -> None:
        has_memory = bool(series.memory)
        memory = dict(series.memory)

        logger.info(f"SERIES: {series.name}")
        logger.info("-" * self.width)
        header = f"{'Size':>10} {'Value':>20}"
        if has_memory:
            header += f" {'Mem Δ':>12}"
        logger.info(header)

        for size, value in series.points:
            line = f"{size:>10} {_format_value(value):>20}"
            if has_memory:
                delta = memory.get(size)
                if delta is None:
                    line += f" {'-':>12}"
                else:
                    sign = "+" if delta >= 0 else ""
                    line += f" {sign + format(delta, '.3f') + 'G':>12}"
            logger.info(line)
        logger.info("-" * self.width)

    @staticmethod
    def _column(name: str) -> int:
        return max(14, len(name))


class JsonRenderer:
    """Write a Report to a JSON file.

    Args:
        path: Output file path (created/overwritten, parent dirs created)
    """

    @beartype
    def __init__(self, path: Path) -> None:
        self.path = path

    def __call__(self, report: Report) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(report.to_dict(), f, indent=2, default=str)
        logger.debug(f"Wrote report for session '{report.session}' to {self.path}")
