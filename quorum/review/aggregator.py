"""Merge per-task findings into one deduplicated, ranked report.

Aggregation runs once, single-threaded, after the dispatch barrier. It is a
pure function of the collected findings: input is put into a canonical order
before clustering, so the result does not depend on which reviewer finished
first.
"""

from __future__ import annotations

import logging
import re
from difflib import SequenceMatcher
from typing import Iterable, List, Sequence

from quorum.review.contracts import AggregatedReport, Finding, ReviewTask, compute_verdict
from quorum.review.errors import AggregationInvariantViolation

logger = logging.getLogger(__name__)

__all__ = [
    "Aggregator",
    "compute_verdict",
    "dedupe_findings",
    "findings_similar",
    "rank_findings",
    "text_similarity",
]

_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_text(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text.strip().lower())


def text_similarity(text1: str, text2: str) -> float:
    """Symmetric text similarity in [0.0, 1.0]."""
    a, b = sorted((_normalize_text(text1), _normalize_text(text2)))
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return SequenceMatcher(None, a, b, autojunk=False).ratio()


def findings_similar(first: Finding, second: Finding, threshold: float) -> bool:
    """Check if two findings describe the same issue.

    Same file, overlapping line ranges, and message similarity at or above
    ``threshold``.
    """
    if not first.location.overlaps(second.location):
        return False
    return text_similarity(first.message, second.message) >= threshold


def rank_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Sort by severity (most severe first), then file path, then line."""
    return sorted(findings, key=lambda f: f.sort_key())


def _merge_cluster(cluster: Sequence[Finding]) -> Finding:
    representative = cluster[0]
    if len(cluster) == 1:
        return representative

    severity = min((f.severity for f in cluster), key=lambda s: s.rank)

    fixes: List[str] = []
    for finding in cluster:
        for fix in (finding.suggested_fix or "").split("\n"):
            fix = fix.strip()
            if fix and fix not in fixes:
                fixes.append(fix)

    sources = {representative.source_task_id}
    merged_from = set(representative.merged_from)
    for finding in cluster[1:]:
        merged_from.add(finding.source_task_id)
        merged_from.update(finding.merged_from)
    merged_from -= sources

    return representative.model_copy(
        update={
            "severity": severity,
            "suggested_fix": "\n".join(fixes) or None,
            "merged_from": tuple(sorted(merged_from)),
        }
    )


def dedupe_findings(findings: Iterable[Finding], threshold: float) -> List[Finding]:
    """Collapse duplicate findings.

    Findings are visited in canonical order. Each one joins the first existing
    cluster whose representative it duplicates, otherwise it starts a new
    cluster. Representatives keep their location and message, so no two
    output findings are duplicates of each other and a second pass is a
    no-op. A merged finding carries the highest severity in its cluster and
    the distinct suggested fixes joined by newlines.

    Args:
        findings: Raw findings from all tasks
        threshold: Message similarity threshold in [0, 1]

    Returns:
        Deduplicated findings in ranked order
    """
    clusters: List[List[Finding]] = []
    for finding in rank_findings(findings):
        for cluster in clusters:
            if findings_similar(cluster[0], finding, threshold):
                cluster.append(finding)
                break
        else:
            clusters.append([finding])

    return rank_findings(_merge_cluster(cluster) for cluster in clusters)


class Aggregator:
    """Build the AggregatedReport from terminal review tasks."""

    def __init__(self, similarity_threshold: float) -> None:
        self.similarity_threshold = similarity_threshold

    def aggregate(self, tasks: Sequence[ReviewTask]) -> AggregatedReport:
        """Flatten, deduplicate and rank findings from every task.

        Args:
            tasks: Review tasks from the dispatcher

        Returns:
            AggregatedReport; its verdict follows from the surviving severities

        Raises:
            AggregationInvariantViolation: If any task is not terminal
        """
        unfinished = [task.id for task in tasks if not task.is_terminal]
        if unfinished:
            raise AggregationInvariantViolation(
                f"Cannot aggregate before the barrier: non-terminal tasks {unfinished}"
            )

        all_findings = [finding for task in tasks for finding in task.findings]
        deduped = dedupe_findings(all_findings, self.similarity_threshold)

        report = AggregatedReport(findings=tuple(deduped))
        logger.info(
            f"[aggregator] {len(all_findings)} findings from {len(tasks)} tasks -> "
            f"{len(deduped)} after dedup, verdict {report.verdict.value}"
        )
        return report
