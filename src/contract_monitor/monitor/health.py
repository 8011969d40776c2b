"""Health scoring, trend and recommendation rules for monitoring reports."""

from collections import Counter
from datetime import datetime, timedelta

from .models import HealthScore, Recommendation, ReportPeriod, Trend, Violation

CRITICAL_PENALTY = 20
WARNING_PENALTY = 5

# (lower bound, tier), checked top-down
HEALTH_TIERS = (
    (90, "excellent"),
    (75, "good"),
    (50, "fair"),
    (25, "poor"),
)

REPORT_WINDOWS = {
    "hourly": timedelta(hours=1),
    "daily": timedelta(days=1),
    "weekly": timedelta(days=7),
}

FREQUENT_VIOLATION_COUNT = 3
HIGH_VIOLATION_COUNT = 10


def health_score(critical_count: int, warning_count: int) -> int:
    return max(0, 100 - CRITICAL_PENALTY * critical_count - WARNING_PENALTY * warning_count)


def health_tier(score: int) -> str:
    for lower_bound, tier in HEALTH_TIERS:
        if score >= lower_bound:
            return tier
    return "critical"


def calculate_health(violations: list[Violation]) -> HealthScore:
    critical = sum(1 for v in violations if v.severity == "critical")
    warning = sum(1 for v in violations if v.severity == "warning")
    score = health_score(critical, warning)
    return HealthScore(score=score, status=health_tier(score))


def report_window(frequency: str) -> timedelta:
    if frequency not in REPORT_WINDOWS:
        raise ValueError(f"Unknown report frequency: {frequency!r}")
    return REPORT_WINDOWS[frequency]


def report_period(frequency: str, end: datetime) -> ReportPeriod:
    return ReportPeriod(start=end - report_window(frequency), end=end)


def is_report_due(last_report_at: datetime | None, now: datetime, frequency: str) -> bool:
    return last_report_at is None or now - last_report_at >= report_window(frequency)


def calculate_trend(violations: list[Violation], period: ReportPeriod) -> Trend:
    """Compare violation counts in the first and second halves of ``period``."""
    midpoint = period.start + (period.end - period.start) / 2
    first = sum(1 for v in violations if v.timestamp < midpoint)
    second = len(violations) - first

    if second > first:
        trend = "increasing"
    elif second < first:
        trend = "decreasing"
    else:
        trend = "stable"

    change = round((second - first) / first * 100, 1) if first else 0.0
    return Trend(trend=trend, first_half_count=first, second_half_count=second, change_percent=change)


def generate_recommendations(violations: list[Violation]) -> list[Recommendation]:
    recommendations = []

    by_kind = Counter(f"{v.type}/{v.subtype}" if v.subtype else v.type for v in violations)
    for kind, count in by_kind.items():
        if count >= FREQUENT_VIOLATION_COUNT:
            recommendations.append(
                Recommendation(
                    type="frequent_violation",
                    priority="high",
                    message=f"Frequent {kind} violations detected ({count} occurrences). "
                            "Review and fix the root cause.",
                )
            )

    if len(violations) > HIGH_VIOLATION_COUNT:
        recommendations.append(
            Recommendation(
                type="high_violation_count",
                priority="medium",
                message="High number of violations detected. Run contract validation in CI "
                        "before deploying.",
            )
        )

    critical = sum(1 for v in violations if v.severity == "critical")
    if critical:
        recommendations.append(
            Recommendation(
                type="critical_violations",
                priority="high",
                message=f"{critical} critical violations require immediate attention.",
            )
        )

    return recommendations
