"""Tests for the report model and renderers."""

import json
from pathlib import Path

import pytest

from opprofiler import (
    GroupReport,
    JsonRenderer,
    LoggingRenderer,
    Profiler,
    Report,
    SeriesReport,
)


def _power_profiler() -> Profiler:
    profiler = Profiler("demo-power")
    for n in (10, 2, 5):
        with profiler.create_operation("slow_pow", n) as op:
            for _ in range(n):
                op.count()
        profiler.count_operation("fast_pow", n, 2)
    profiler.count_operation("standalone", 7, 1)
    profiler.create_group("power", "slow_pow", "fast_pow")
    return profiler


# ---------------------------------------------------------------------------
# Report structure
# ---------------------------------------------------------------------------

class TestReport:
    def test_points_sorted_by_size(self):
        report = _power_profiler().report()
        assert report.get("slow_pow").points == ((2, 2), (5, 5), (10, 10))

    def test_series_in_first_write_order(self):
        report = _power_profiler().report()
        assert [s.name for s in report.series] == ["slow_pow", "fast_pow", "standalone"]

    def test_group_members_resolved(self):
        report = _power_profiler().report()
        (group,) = report.groups
        assert group.name == "power"
        assert [m.name for m in group.members] == ["slow_pow", "fast_pow"]
        assert group.sizes == [2, 5, 10]

    def test_absent_group_member_is_empty_series(self):
        profiler = Profiler("demo")
        profiler.create_group("g", "never_recorded")
        (group,) = profiler.report().groups
        assert group.members == (SeriesReport("never_recorded"),)

    def test_ungrouped(self):
        report = _power_profiler().report()
        assert [s.name for s in report.ungrouped()] == ["standalone"]

    def test_rows(self):
        profiler = Profiler("demo")
        profiler.count_operation("b", 3, 1)
        profiler.count_operation("a", 2, 4)
        profiler.count_operation("b", 1, 2)
        assert list(profiler.report().rows()) == [
            ("b", 1, 2),
            ("b", 3, 1),
            ("a", 2, 4),
        ]

    def test_empty_session(self):
        report = Profiler("empty").report()
        assert report.is_empty
        assert report.session == "empty"
        assert list(report.rows()) == []

    def test_value_at(self):
        series = SeriesReport("s", points=((1, 3), (4, 9)))
        assert series.value_at(4) == 9
        assert series.value_at(2) is None

    def test_to_dict(self):
        data = _power_profiler().report().to_dict()
        assert data["session"] == "demo-power"
        assert data["groups"] == {"power": ["slow_pow", "fast_pow"]}
        assert data["series"][0]["points"][0] == {"size": 2, "value": 2}

    def test_show_report_returns_rendered_report(self):
        profiler = _power_profiler()
        seen: list[Report] = []
        returned = profiler.show_report(renderer=seen.append)
        assert seen == [returned]
        assert returned.session == "demo-power"

    def test_report_after_reset_only_has_new_session(self):
        profiler = _power_profiler()
        profiler.reset("demo-factorial")
        profiler.count_operation("factorial_iter", 1000, 999)
        report = profiler.report()
        assert report.session == "demo-factorial"
        assert [s.name for s in report.series] == ["factorial_iter"]
        assert report.groups == ()


# ---------------------------------------------------------------------------
# LoggingRenderer
# ---------------------------------------------------------------------------

class TestLoggingRenderer:
    def test_renders_groups_then_ungrouped(self, log_messages):
        _power_profiler().show_report(renderer=LoggingRenderer(title="RESULTS"))

        group_line = next(i for i, m in enumerate(log_messages) if m == "GROUP: power")
        series_line = next(
            i for i, m in enumerate(log_messages) if m == "SERIES: standalone"
        )
        assert group_line < series_line
        assert not any(m == "SERIES: slow_pow" for m in log_messages)
        assert any("RESULTS: demo-power" in m for m in log_messages)

    def test_empty_session_renders_placeholder(self, log_messages):
        Profiler("empty").show_report()
        assert "No profiling data recorded" in log_messages

    def test_group_with_no_data(self, log_messages):
        profiler = Profiler("demo")
        profiler.create_group("g", "missing_a", "missing_b")
        profiler.show_report()
        assert "  (no data)" in log_messages

    def test_group_missing_values_render_dash(self, log_messages):
        profiler = Profiler("demo")
        profiler.count_operation("a", 1, 5)
        profiler.count_operation("b", 2, 6)
        profiler.create_group("g", "a", "b")
        profiler.show_report()

        row = next(m for m in log_messages if m.strip().startswith("1 "))
        assert row.split() == ["1", "5", "-"]

    def test_memory_column(self, log_messages):
        report = Report(
            session="mem",
            series=(SeriesReport("alloc", points=((1, 0.5), (2, 0.7)), memory=((1, -0.25),)),),
        )
        LoggingRenderer()(report)
        assert any("Mem Δ" in m for m in log_messages)
        assert any(m.split() == ["1", "0.500000", "-0.250G"] for m in log_messages)
        assert any(m.split() == ["2", "0.700000", "-"] for m in log_messages)

    def test_empty_group(self, log_messages):
        report = Report(session="s", groups=(GroupReport("nothing"),))
        LoggingRenderer()(report)
        assert "  (no series)" in log_messages

    def test_narrow_width_raises(self):
        with pytest.raises(AssertionError, match="at least 40"):
            LoggingRenderer(width=10)


# ---------------------------------------------------------------------------
# JsonRenderer
# ---------------------------------------------------------------------------

class TestJsonRenderer:
    def test_writes_json(self, tmp_path: Path):
        out = tmp_path / "report.json"
        _power_profiler().show_report(renderer=JsonRenderer(out))

        data = json.loads(out.read_text())
        assert data["session"] == "demo-power"
        assert [s["name"] for s in data["series"]] == ["slow_pow", "fast_pow", "standalone"]

    def test_creates_parent_dirs(self, tmp_path: Path):
        out = tmp_path / "a" / "b" / "report.json"
        Profiler("empty").show_report(renderer=JsonRenderer(out))
        assert json.loads(out.read_text()) == {"session": "empty", "series": [], "groups": {}}

    def test_memory_exported(self, tmp_path: Path):
        out = tmp_path / "report.json"
        report = Report(
            session="mem",
            series=(SeriesReport("alloc", points=((1, 0.5),), memory=((1, 0.125),)),),
        )
        JsonRenderer(out)(report)
        data = json.loads(out.read_text())
        assert data["series"][0]["memory_delta_gb"] == {"1": 0.125}
