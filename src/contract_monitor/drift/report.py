"""Consistency reports in machine (JSON) and human (Markdown) form."""

from datetime import datetime, timezone
from typing import Mapping

from contract_monitor.spec.base import EndpointDescriptor

from .analyzer import CallKey, Inconsistency
from .scanner import ApiCallSite


def build_consistency_report(
    frontend_calls: Mapping[CallKey, list[ApiCallSite]],
    backend_endpoints: Mapping[CallKey, EndpointDescriptor],
    inconsistencies: list[Inconsistency],
) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": {
            "total_frontend_calls": len(frontend_calls),
            "total_backend_endpoints": len(backend_endpoints),
            "total_inconsistencies": len(inconsistencies),
            "error_count": sum(1 for i in inconsistencies if i.severity == "error"),
            "warning_count": sum(1 for i in inconsistencies if i.severity == "warning"),
        },
        "inconsistencies": [i.model_dump(mode="json") for i in inconsistencies],
        "frontend_api_calls": [
            {
                "endpoint": f"{method} {path}",
                "call_count": len(sites),
                "files": sorted({site.file for site in sites}),
            }
            for (method, path), sites in frontend_calls.items()
        ],
        "backend_endpoints": [
            {"endpoint": f"{method} {pattern}", "operation_id": ep.operation_id, "tags": ep.tags}
            for (method, pattern), ep in backend_endpoints.items()
        ],
    }


def render_markdown(report: dict) -> str:
    summary = report["summary"]
    lines = [
        "# API Consistency Report",
        "",
        f"Generated: {report['timestamp']}",
        "",
        "## Summary",
        f"- Frontend API calls: {summary['total_frontend_calls']}",
        f"- Backend endpoints: {summary['total_backend_endpoints']}",
        f"- Total issues: {summary['total_inconsistencies']}",
        f"- Errors: {summary['error_count']}",
        f"- Warnings: {summary['warning_count']}",
        "",
    ]

    if not report["inconsistencies"]:
        lines.append("## No consistency issues found")
        return "\n".join(lines) + "\n"

    lines += ["## Issues", ""]
    for issue in report["inconsistencies"]:
        lines.append(f"### {issue['severity'].upper()}: {issue['type']}")
        lines.append(issue["message"])
        lines.append("")
        if issue["call_sites"]:
            lines.append("**Frontend calls:**")
            lines += [f"- {site['file']}:{site['line']}" for site in issue["call_sites"]]
            lines.append("")
        if issue["suggestions"]:
            lines.append("**Suggestions:**")
            lines += [
                f"- {s['endpoint']} (similarity: {s['similarity'] * 100:.1f}%)"
                for s in issue["suggestions"]
            ]
            lines.append("")
    return "\n".join(lines) + "\n"
