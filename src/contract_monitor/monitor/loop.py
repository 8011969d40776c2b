"""Periodic monitoring: sub-checks, history, alerts, reports and persistence."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Protocol

from contract_monitor.validation.runtime import ValidationStats

from .alerts import AlertPolicy, AlertSink, dispatch
from .checks import failed_result
from .health import (
    calculate_health,
    calculate_trend,
    generate_recommendations,
    is_report_due,
    report_period,
)
from .models import (
    Alert,
    CheckResult,
    MonitorMetrics,
    MonitorStatus,
    Report,
    ReportSummary,
    SubCheckResult,
    Violation,
    ViolationCounts,
    new_id,
    utcnow,
)
from .store import DEFAULT_MAX_REPORTS, ReportStore

logger = logging.getLogger(__name__)

DEFAULT_SUB_CHECK_TIMEOUT = 30.0
STATUS_RECENT_VIOLATIONS = 5
STATUS_RECENT_ALERTS = 3
STATUS_HEALTH_WINDOW = 50


class MonitorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class SubCheck(Protocol):
    name: str
    source: str

    def run(self) -> SubCheckResult: ...


class MonitorLoop:
    """Runs the consistency, validation and schema checks on an interval."""

    def __init__(
        self,
        consistency: SubCheck,
        validation: SubCheck,
        schema: SubCheck,
        policy: AlertPolicy | None = None,
        sinks: Iterable[AlertSink] = (),
        store: ReportStore | None = None,
        stats: ValidationStats | None = None,
        check_interval: float = 300.0,
        retention_days: int = 7,
        max_reports: int = DEFAULT_MAX_REPORTS,
        enable_alerts: bool = True,
        enable_reports: bool = True,
        report_frequency: str = "daily",
        sub_check_timeout: float = DEFAULT_SUB_CHECK_TIMEOUT,
    ):
        self.consistency = consistency
        self.validation = validation
        self.schema = schema
        self.policy = policy or AlertPolicy()
        self.sinks = list(sinks)
        self.store = store
        self.stats = stats
        self.check_interval = check_interval
        self.retention = timedelta(days=retention_days)
        self.max_reports = max_reports
        self.enable_alerts = enable_alerts
        self.enable_reports = enable_reports
        self.report_frequency = report_frequency
        self.sub_check_timeout = sub_check_timeout

        self.state = MonitorState.IDLE
        self.violations: list[Violation] = []
        self.alerts: list[Alert] = []
        self.reports: list[Report] = []
        self.metrics = MonitorMetrics()
        self.last_check: datetime | None = None
        self.last_report_at: datetime | None = None

        self._history_lock = threading.Lock()
        self._in_flight = threading.Lock()
        self._state_lock = threading.Lock()
        self._wakeup = threading.Event()
        self._thread: threading.Thread | None = None
        # sub-check name -> worker that outlived its timeout
        self._hung: dict[str, Future] = {}

    @property
    def is_running(self) -> bool:
        return self.state is MonitorState.RUNNING

    def start(self) -> None:
        with self._state_lock:
            if self.state is MonitorState.RUNNING:
                logger.warning("Contract monitoring is already running")
                return
            self.state = MonitorState.RUNNING
            self._wakeup.clear()

        logger.info("Starting contract monitoring (interval: %ss)", self.check_interval)
        try:
            self.perform_check()
        except Exception:
            logger.exception("Initial monitoring check crashed")

        self._thread = threading.Thread(target=self._run, name="contract-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        with self._state_lock:
            if self.state is not MonitorState.RUNNING:
                return
            self.state = MonitorState.STOPPED
            self._wakeup.set()

        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        if self.store is not None:
            self.store.flush()
        logger.info("Contract monitoring stopped")

    def _run(self) -> None:
        while not self._wakeup.wait(self.check_interval):
            try:
                self.perform_check()
            except Exception:
                logger.exception("Monitoring check crashed")

    def perform_check(self) -> CheckResult | None:
        """Run one monitoring cycle; returns ``None`` if a cycle is already in flight."""
        if not self._in_flight.acquire(blocking=False):
            logger.warning("Monitoring check already in progress, skipping")
            with self._history_lock:
                self.metrics.skipped_checks += 1
            return None

        try:
            result = self._check()
        finally:
            self._in_flight.release()
        return result

    def _check(self) -> CheckResult:
        check_id = new_id("check")
        now = utcnow()
        logger.debug("Performing contract monitoring check %s", check_id)

        consistency, validation, schema = self._run_sub_checks(check_id)
        result = CheckResult(
            check_id=check_id,
            timestamp=now,
            consistency=consistency,
            validation=validation,
            schema_check=schema,
        )

        violations = result.violations
        with self._history_lock:
            self.violations.extend(violations)
            self._prune_history(now)
            self.metrics.total_checks += 1
            self.metrics.violations_detected += len(violations)
            self.last_check = now

        if self.enable_alerts:
            for alert in self.policy.evaluate(result):
                self.send_alert(alert)

        if self.enable_reports and is_report_due(self.last_report_at, now, self.report_frequency):
            self.generate_report(self.report_frequency, now)

        self._persist()
        logger.info(
            "Check %s completed: %d violations (%d critical, %d warning)",
            check_id, len(violations), result.critical_count, result.warning_count,
        )
        return result

    def _run_sub_checks(self, check_id: str) -> list[SubCheckResult]:
        checks = (self.consistency, self.validation, self.schema)
        executor = ThreadPoolExecutor(max_workers=len(checks), thread_name_prefix=f"{check_id}-")
        try:
            futures: dict[str, Future] = {}
            for check in checks:
                hung = self._hung.get(check.name)
                if hung is not None and not hung.done():
                    continue
                self._hung.pop(check.name, None)
                futures[check.name] = executor.submit(check.run)

            results = []
            for check in checks:
                future = futures.get(check.name)
                if future is None:
                    logger.error("%s check is still running from an earlier cycle, skipping", check.name)
                    results.append(failed_result(
                        check.name, check.source,
                        TimeoutError("previous run has not finished"),
                    ))
                    continue
                try:
                    results.append(future.result(timeout=self.sub_check_timeout))
                except FutureTimeout:
                    logger.error("%s check timed out after %ss", check.name, self.sub_check_timeout)
                    self._hung[check.name] = future
                    results.append(failed_result(
                        check.name, check.source,
                        TimeoutError(f"timed out after {self.sub_check_timeout}s"),
                    ))
                except Exception as e:
                    logger.error("%s check failed: %s", check.name, e)
                    results.append(failed_result(check.name, check.source, e))
            return results
        finally:
            # A timed-out check keeps its worker; do not wait for it.
            executor.shutdown(wait=False)

    def _prune_history(self, now: datetime) -> None:
        cutoff = now - self.retention
        self.violations = [v for v in self.violations if v.timestamp >= cutoff]
        self.alerts = [a for a in self.alerts if a.timestamp >= cutoff]

    def send_alert(self, alert: Alert) -> None:
        with self._history_lock:
            self.alerts.append(alert)
            self.metrics.alerts_sent += 1

        log = logger.error if alert.severity == "critical" else logger.warning
        log("CONTRACT ALERT [%s] %s: %s", alert.type, alert.title, alert.message)
        dispatch(alert, self.sinks)

    def generate_report(self, frequency: str = "daily", now: datetime | None = None) -> Report:
        now = now or utcnow()
        period = report_period(frequency, now)

        with self._history_lock:
            violations = [v for v in self.violations if period.start <= v.timestamp <= period.end]
            alerts = [a for a in self.alerts if period.start <= a.timestamp <= period.end]
            total_checks = self.metrics.total_checks

        health = calculate_health(violations)
        report = Report(
            id=new_id("report"),
            frequency=frequency,
            period=period,
            generated_at=now,
            summary=ReportSummary(
                violation_counts=ViolationCounts(
                    total=len(violations),
                    critical=sum(1 for v in violations if v.severity == "critical"),
                    warning=sum(1 for v in violations if v.severity == "warning"),
                ),
                alert_count=len(alerts),
                health_score=health.score,
                health_status=health.status,
                monitoring_checks=total_checks,
            ),
            violations=violations,
            alerts=alerts,
            trend=calculate_trend(violations, period),
            recommendations=generate_recommendations(violations),
        )

        with self._history_lock:
            self.reports.append(report)
            self.reports = self.reports[-self.max_reports:]
            self.metrics.reports_generated += 1
            self.last_report_at = now

        if self.store is not None:
            self.store.save_report(report)
        logger.info("Generated %s report %s (health: %s)", frequency, report.id, health.status)
        return report

    def status(self) -> MonitorStatus:
        with self._history_lock:
            violations = list(self.violations)
            alerts = list(self.alerts)
            metrics = self.metrics.model_copy()
            last_check = self.last_check

        return MonitorStatus(
            is_running=self.is_running,
            state=self.state.value,
            last_check=last_check,
            metrics=metrics,
            validation_stats=self.stats.snapshot() if self.stats is not None else None,
            recent_violations=violations[-STATUS_RECENT_VIOLATIONS:],
            recent_alerts=alerts[-STATUS_RECENT_ALERTS:],
            health=calculate_health(violations[-STATUS_HEALTH_WINDOW:]),
        )

    def state_snapshot(self) -> dict:
        with self._history_lock:
            return {
                "violations": [v.model_dump(mode="json") for v in self.violations],
                "alerts": [a.model_dump(mode="json") for a in self.alerts],
                "reports": [r.model_dump(mode="json") for r in self.reports[-self.max_reports:]],
                "metrics": self.metrics.model_dump(mode="json"),
                "last_check": self.last_check.isoformat() if self.last_check else None,
                "last_updated": utcnow().isoformat(),
            }

    def restore(self, state: dict) -> None:
        """Load history previously written by ``state_snapshot``."""
        with self._history_lock:
            self.violations = [Violation.model_validate(v) for v in state.get("violations", [])]
            self.alerts = [Alert.model_validate(a) for a in state.get("alerts", [])]
            self.reports = [Report.model_validate(r) for r in state.get("reports", [])]
            self.metrics = MonitorMetrics.model_validate(state.get("metrics", {}))
            last_check = state.get("last_check")
            self.last_check = datetime.fromisoformat(last_check) if last_check else None
            if self.reports:
                self.last_report_at = self.reports[-1].generated_at

    def _persist(self) -> None:
        if self.store is not None:
            self.store.save_state(self.state_snapshot())
