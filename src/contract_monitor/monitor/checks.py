"""The three independent monitoring sub-checks.

Each check returns a SubCheckResult or raises; the monitor loop turns a
raised error into a ``check_failed`` result so one failing check never
aborts the others.
"""

from pathlib import Path
from typing import Callable

from contract_monitor.drift.analyzer import ConsistencyAnalyzer
from contract_monitor.drift.scanner import SourceScanner
from contract_monitor.spec.openapi import HTTP_METHODS
from contract_monitor.spec.store import SchemaSpecStore
from contract_monitor.validation.runtime import ValidationStats

from .models import SubCheckResult, Violation, new_id

REQUEST_FAILURE_THRESHOLD = 10.0  # percent
RESPONSE_FAILURE_THRESHOLD = 5.0  # percent


def _result(name: str, violations: list[Violation], summary: dict) -> SubCheckResult:
    return SubCheckResult(
        name=name,
        status="issues_detected" if violations else "healthy",
        violations=violations,
        summary=summary,
    )


def failed_result(name: str, source: str, error: BaseException) -> SubCheckResult:
    """A ``check_failed`` outcome carrying one ``monitoring_error`` violation."""
    message = str(error) or type(error).__name__
    return SubCheckResult(
        name=name,
        status="check_failed",
        violations=[
            Violation(
                id=new_id(f"{name}_error"),
                type="monitoring_error",
                subtype=type(error).__name__,
                severity="critical",
                message=f"{name.capitalize()} check failed: {message}",
                details={"error": message},
                source=source,
            )
        ],
        summary={"error": message},
    )


class ConsistencyCheck:
    """Fresh source scan diffed against the declared endpoints."""

    name = "consistency"
    source = "consistency_analyzer"

    def __init__(
        self,
        store: SchemaSpecStore,
        source_root: Path,
        scanner: SourceScanner | None = None,
        analyzer: ConsistencyAnalyzer | None = None,
    ):
        self.store = store
        self.source_root = Path(source_root)
        self.scanner = scanner or SourceScanner()
        self.analyzer = analyzer or ConsistencyAnalyzer()

    def run(self) -> SubCheckResult:
        calls = self.scanner.scan_tree(self.source_root)
        inconsistencies = self.analyzer.diff(calls, self.store.endpoints)

        violations = [
            Violation(
                id=new_id("consistency"),
                type="api_consistency",
                subtype=issue.type,
                severity="critical" if issue.severity == "error" else "warning",
                message=issue.message,
                details=issue.model_dump(mode="json"),
                source=self.source,
            )
            for issue in inconsistencies
        ]
        return _result(self.name, violations, {
            "frontend_api_calls": len(calls),
            "backend_endpoints": len(self.store.endpoints),
            "inconsistencies": len(inconsistencies),
        })


class ValidationHealthCheck:
    """Failure-rate thresholds over the runtime validation counters."""

    name = "validation"
    source = "runtime_validation"

    def __init__(
        self,
        stats: ValidationStats,
        error_threshold: int = 5,
        request_failure_threshold: float = REQUEST_FAILURE_THRESHOLD,
        response_failure_threshold: float = RESPONSE_FAILURE_THRESHOLD,
    ):
        self.stats = stats
        self.error_threshold = error_threshold
        self.request_failure_threshold = request_failure_threshold
        self.response_failure_threshold = response_failure_threshold

    def run(self) -> SubCheckResult:
        stats = self.stats.snapshot()
        request_rate = stats.request_failure_rate
        response_rate = stats.response_failure_rate
        counters = stats.model_dump(mode="json", exclude={"recent_errors"})
        violations = []

        if request_rate > self.request_failure_threshold:
            violations.append(Violation(
                id=new_id("validation_request"),
                type="runtime_validation",
                subtype="high_request_failure_rate",
                severity="warning",
                message=f"High request validation failure rate: {request_rate:.2f}%",
                details={"failure_rate": request_rate, "stats": counters},
                source=self.source,
            ))

        if response_rate > self.response_failure_threshold:
            violations.append(Violation(
                id=new_id("validation_response"),
                type="runtime_validation",
                subtype="high_response_failure_rate",
                severity="critical",
                message=f"High response validation failure rate: {response_rate:.2f}%",
                details={"failure_rate": response_rate, "stats": counters},
                source=self.source,
            ))

        recent = stats.recent_errors
        if len(recent) > self.error_threshold:
            violations.append(Violation(
                id=new_id("validation_errors"),
                type="runtime_validation",
                subtype="high_error_volume",
                severity="warning",
                message=f"High volume of validation errors: {len(recent)} recent errors",
                details={"recent_errors": [e.model_dump(mode="json") for e in recent[:5]]},
                source=self.source,
            ))

        return _result(self.name, violations, {
            "request_failure_rate": round(request_rate, 2),
            "response_failure_rate": round(response_rate, 2),
            "total_requests": stats.total_requests,
            "total_responses": stats.total_responses,
            "recent_error_count": len(recent),
        })


class SpecHealthCheck:
    """Structure, documentation completeness and version of the contract document."""

    name = "schema"
    source = "schema_validator"

    def __init__(self, document: Callable[[], dict | None], expected_version: str):
        self.document = document
        self.expected_version = expected_version

    def run(self) -> SubCheckResult:
        doc = self.document()
        violations = []
        paths = doc.get("paths") if isinstance(doc, dict) else None
        spec_valid = isinstance(paths, dict)

        if not spec_valid:
            violations.append(Violation(
                id=new_id("schema_invalid"),
                type="schema_synchronization",
                subtype="invalid_spec",
                severity="critical",
                message="Contract document is invalid or missing its paths",
                source=self.source,
            ))
            paths = {}

        undocumented = [
            f"{method.upper()} {pattern}"
            for pattern, item in paths.items() if isinstance(item, dict)
            for method, operation in item.items()
            if method.upper() in HTTP_METHODS and isinstance(operation, dict)
            and not (operation.get("summary") or operation.get("description"))
        ]
        if undocumented:
            violations.append(Violation(
                id=new_id("schema_docs"),
                type="schema_synchronization",
                subtype="missing_documentation",
                severity="warning",
                message=f"{len(undocumented)} endpoints are missing documentation",
                details={"missing_descriptions": len(undocumented), "endpoints": undocumented},
                source=self.source,
            ))

        info = doc.get("info") if isinstance(doc, dict) else None
        current_version = (info or {}).get("version")
        if current_version != self.expected_version:
            violations.append(Violation(
                id=new_id("schema_version"),
                type="schema_synchronization",
                subtype="version_mismatch",
                severity="warning",
                message=f"Schema version mismatch: expected {self.expected_version}, got {current_version}",
                details={"current_version": current_version, "expected_version": self.expected_version},
                source=self.source,
            ))

        schemas = (doc or {}).get("schemas") or ((doc or {}).get("components") or {}).get("schemas") or {}
        return _result(self.name, violations, {
            "spec_valid": spec_valid,
            "path_count": len(paths),
            "schema_count": len(schemas),
            "current_version": current_version,
        })
