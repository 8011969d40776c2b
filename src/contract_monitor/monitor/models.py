"""Data models produced by the monitoring loop."""

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from contract_monitor.validation.runtime import ValidationStatsSnapshot

Severity = Literal["critical", "warning"]
SubCheckStatus = Literal["healthy", "issues_detected", "check_failed"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


class Violation(BaseModel):
    """One detected instance of contract non-conformance."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: str  # api_consistency / runtime_validation / schema_synchronization / monitoring_error
    subtype: str | None = None
    severity: Severity
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
    source: str


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: str  # critical / threshold / monitoring_failure
    severity: Severity
    title: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


class SubCheckResult(BaseModel):
    name: str  # consistency / validation / schema
    status: SubCheckStatus
    violations: list[Violation] = Field(default_factory=list)
    summary: dict[str, Any] = Field(default_factory=dict)


class CheckResult(BaseModel):
    """Outcome of one monitoring cycle."""

    check_id: str
    timestamp: datetime
    consistency: SubCheckResult
    validation: SubCheckResult
    schema_check: SubCheckResult

    @property
    def sub_checks(self) -> list[SubCheckResult]:
        return [self.consistency, self.validation, self.schema_check]

    @property
    def violations(self) -> list[Violation]:
        return [v for sub in self.sub_checks for v in sub.violations]

    @property
    def critical_count(self) -> int:
        return sum(1 for v in self.violations if v.severity == "critical")

    @property
    def warning_count(self) -> int:
        return sum(1 for v in self.violations if v.severity == "warning")

    @property
    def failed_checks(self) -> list[str]:
        return [sub.name for sub in self.sub_checks if sub.status == "check_failed"]

    def summary(self) -> dict[str, Any]:
        return {
            "check_id": self.check_id,
            "timestamp": self.timestamp.isoformat(),
            "total_violations": len(self.violations),
            "critical_violations": self.critical_count,
            "warning_violations": self.warning_count,
            "statuses": {sub.name: sub.status for sub in self.sub_checks},
        }


class HealthScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int
    status: str  # excellent / good / fair / poor / critical


class ReportPeriod(BaseModel):
    start: datetime
    end: datetime


class ViolationCounts(BaseModel):
    total: int = 0
    critical: int = 0
    warning: int = 0


class ReportSummary(BaseModel):
    violation_counts: ViolationCounts
    alert_count: int
    health_score: int
    health_status: str
    monitoring_checks: int = 0


class Trend(BaseModel):
    trend: Literal["increasing", "decreasing", "stable"]
    first_half_count: int
    second_half_count: int
    change_percent: float


class Recommendation(BaseModel):
    type: str
    priority: Literal["high", "medium", "low"]
    message: str


class Report(BaseModel):
    id: str
    frequency: str  # hourly / daily / weekly
    period: ReportPeriod
    generated_at: datetime
    summary: ReportSummary
    violations: list[Violation] = Field(default_factory=list)
    alerts: list[Alert] = Field(default_factory=list)
    trend: Trend
    recommendations: list[Recommendation] = Field(default_factory=list)


class MonitorMetrics(BaseModel):
    total_checks: int = 0
    skipped_checks: int = 0
    violations_detected: int = 0
    alerts_sent: int = 0
    reports_generated: int = 0


class MonitorStatus(BaseModel):
    is_running: bool
    state: str
    last_check: datetime | None = None
    metrics: MonitorMetrics
    validation_stats: ValidationStatsSnapshot | None = None
    recent_violations: list[Violation] = Field(default_factory=list)
    recent_alerts: list[Alert] = Field(default_factory=list)
    health: HealthScore
