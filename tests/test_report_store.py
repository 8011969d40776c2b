import json
from datetime import datetime, timedelta, timezone

import pytest

from contract_monitor.monitor.models import Report, ReportPeriod, ReportSummary, Trend, ViolationCounts
from contract_monitor.monitor.store import ReportStore, write_json_atomic

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _report(i: int) -> Report:
    return Report(
        id=f"report_{i:02d}",
        frequency="hourly",
        period=ReportPeriod(start=NOW - timedelta(hours=1), end=NOW + timedelta(minutes=i)),
        generated_at=NOW + timedelta(minutes=i),
        summary=ReportSummary(
            violation_counts=ViolationCounts(), alert_count=0,
            health_score=100, health_status="excellent",
        ),
        trend=Trend(trend="stable", first_half_count=0, second_half_count=0, change_percent=0.0),
    )


class TestWriteJsonAtomic:
    def test_writes_and_creates_parents(self, tmp_path):
        path = tmp_path / "nested" / "state.json"
        write_json_atomic(path, {"a": 1})
        assert json.loads(path.read_text()) == {"a": 1}
        assert [p.name for p in path.parent.iterdir()] == ["state.json"]

    def test_unserialisable_data_leaves_no_temp_file(self, tmp_path):
        path = tmp_path / "state.json"
        with pytest.raises(TypeError):
            write_json_atomic(path, {"a": object()})
        assert list(tmp_path.iterdir()) == []


class TestReportStore:
    def test_state_roundtrip(self, tmp_path):
        store = ReportStore(tmp_path, background=False)
        assert store.load_state() is None
        store.save_state({"violations": [], "metrics": {"total_checks": 2}})
        assert store.load_state()["metrics"]["total_checks"] == 2
        assert store.state_path == tmp_path / "contract-monitoring.json"

    def test_background_writes_are_flushed(self, tmp_path):
        store = ReportStore(tmp_path)
        for i in range(5):
            store.save_state({"n": i})
        store.flush()
        assert store.load_state() == {"n": 4}
        store.close()

    def test_report_file_name(self, tmp_path):
        store = ReportStore(tmp_path, background=False)
        store.save_report(_report(1))
        assert (tmp_path / "reports" / "hourly-report-report_01.json").exists()

    def test_keeps_most_recent_reports(self, tmp_path):
        store = ReportStore(tmp_path, max_reports=3, background=False)
        for i in range(5):
            store.save_report(_report(i))
        assert len(list(store.reports_dir.glob("*.json"))) == 3

    def test_load_reports_roundtrip(self, tmp_path):
        store = ReportStore(tmp_path, background=False)
        reports = [_report(2), _report(1)]
        for r in reports:
            store.save_report(r)
        assert store.load_reports() == [reports[1], reports[0]]

    def test_load_reports_without_directory(self, tmp_path):
        assert ReportStore(tmp_path, background=False).load_reports() == []
