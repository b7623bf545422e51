"""Plain markdown rendering of an aggregated report."""

from __future__ import annotations

from typing import List

from quorum.review.contracts import AggregatedReport, Finding, Severity, Verdict

VERDICT_HEADINGS = {
    Verdict.APPROVE: "Approve",
    Verdict.COMMENT: "Comment",
    Verdict.REQUEST_CHANGES: "Request changes",
}


def render_finding(finding: Finding) -> str:
    line = f"- **{finding.severity.value.upper()}** `{finding.location}` {finding.message}"
    if finding.suggested_fix:
        fixes = finding.suggested_fix.split("\n")
        line += "\n" + "\n".join(f"  - Suggested fix: {fix}" for fix in fixes)
    return line


def render_report(report: AggregatedReport) -> str:
    """Render the report as the body posted to the review host."""
    parts: List[str] = [f"## Review: {VERDICT_HEADINGS[report.verdict]}", ""]

    if not report.findings:
        parts.append("No issues found.")
        return "\n".join(parts)

    counts = ", ".join(
        f"{report.count(severity)} {severity.value}"
        for severity in Severity
        if report.count(severity)
    )
    parts.append(f"{len(report.findings)} finding(s): {counts}")
    parts.append("")
    parts.extend(render_finding(finding) for finding in report.findings)
    return "\n".join(parts)
