"""Persistence of monitoring state and generated reports."""

import json
import logging
import os
import tempfile
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path

from .models import Report

logger = logging.getLogger(__name__)

STATE_FILE = "contract-monitoring.json"
REPORTS_DIR = "reports"
DEFAULT_MAX_REPORTS = 10


def write_json_atomic(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class ReportStore:
    """Writes ``contract-monitoring.json`` and per-report files under ``data_dir``.

    With ``background=True`` writes are queued on a single worker thread so
    the monitor never blocks on disk; ``flush()`` waits for them.
    """

    def __init__(self, data_dir: Path, max_reports: int = DEFAULT_MAX_REPORTS, background: bool = True):
        self.data_dir = Path(data_dir)
        self.max_reports = max_reports
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="report-store") if background else None
        self._pending: list[Future] = []

    @property
    def state_path(self) -> Path:
        return self.data_dir / STATE_FILE

    @property
    def reports_dir(self) -> Path:
        return self.data_dir / REPORTS_DIR

    def save_state(self, state: dict) -> None:
        self._submit(write_json_atomic, self.state_path, state)

    def save_report(self, report: Report) -> None:
        self._submit(self._write_report, report)

    def load_state(self) -> dict | None:
        if not self.state_path.exists():
            return None
        with open(self.state_path, encoding="utf-8") as f:
            return json.load(f)

    def load_reports(self) -> list[Report]:
        if not self.reports_dir.is_dir():
            return []
        reports = []
        for path in self.reports_dir.glob("*-report-*.json"):
            with open(path, encoding="utf-8") as f:
                reports.append(Report.model_validate_json(f.read()))
        return sorted(reports, key=lambda r: r.generated_at)

    def flush(self) -> None:
        pending, self._pending = self._pending, []
        wait(pending)

    def close(self) -> None:
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    def _submit(self, fn, *args) -> None:
        if self._executor is None:
            fn(*args)
            return
        self._pending = [f for f in self._pending if not f.done()]
        future = self._executor.submit(fn, *args)
        future.add_done_callback(_log_failure)
        self._pending.append(future)

    def _write_report(self, report: Report) -> None:
        path = self.reports_dir / f"{report.frequency}-report-{report.id}.json"
        write_json_atomic(path, report.model_dump(mode="json"))
        self._prune_reports()

    def _prune_reports(self) -> None:
        files = sorted(self.reports_dir.glob("*-report-*.json"), key=lambda p: (p.stat().st_mtime_ns, p.name))
        for stale in files[:-self.max_reports] if self.max_reports > 0 else files:
            stale.unlink(missing_ok=True)
            logger.debug("Removed old report %s", stale.name)


def _log_failure(future: Future) -> None:
    error = future.exception()
    if error is not None:
        logger.error("Failed to persist monitoring data: %s", error)
