"""Reviewer capability interface and reviewer output parsing."""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional

import pydantic as pd

from quorum.review.contracts import ContextBundle, Finding, Location, Severity

logger = logging.getLogger(__name__)

# [MAJOR] path/to/file.py:10-12 message || fix: suggestion
FINDING_LINE_RE = re.compile(
    r"""^\s*(?:[-*]\s+)?
    \[?(?P<severity>major|minor|nit)\]?\s+
    (?P<file>[^\s:]+):(?P<line>\d+)(?:-(?P<end_line>\d+))?
    \s*[:\-]?\s+
    (?P<message>.+?)
    (?:\s*\|\|\s*fix:\s*(?P<fix>.+?))?
    \s*$""",
    re.IGNORECASE | re.VERBOSE,
)


def parse_finding_line(line: str, source_task_id: str) -> Optional[Finding]:
    """Parse one reviewer output line into a Finding.

    Returns:
        The Finding, or None when the line does not match the finding format.
    """
    match = FINDING_LINE_RE.match(line)
    if not match:
        return None

    end_line = match.group("end_line")
    try:
        return Finding(
            source_task_id=source_task_id,
            severity=Severity(match.group("severity").lower()),
            location=Location(
                file=match.group("file"),
                line=int(match.group("line")),
                end_line=int(end_line) if end_line else None,
            ),
            message=match.group("message").strip(),
            suggested_fix=(match.group("fix") or "").strip() or None,
        )
    except pd.ValidationError:
        return None


def parse_finding_lines(text: str, source_task_id: str) -> List[Finding]:
    """Parse reviewer output, one finding per line.

    Blank lines and ``#`` comments are skipped. Any other line that does not
    parse is dropped with a warning rather than failing the task.

    Args:
        text: Raw reviewer output
        source_task_id: Provenance stamped on each parsed finding

    Returns:
        Findings in output order
    """
    findings: List[Finding] = []
    for raw_line in text.splitlines():
        stripped = raw_line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        finding = parse_finding_line(stripped, source_task_id)
        if finding is None:
            logger.warning(f"[{source_task_id}] Dropping malformed reviewer line: {stripped[:200]!r}")
            continue
        findings.append(finding)

    return findings


class BaseReviewer(ABC):
    """Abstract base class for reviewer capabilities.

    A reviewer is invoked once per focus with the same immutable diff and
    context bundle. It may be slow, non-deterministic or fail; the dispatcher
    bounds and absorbs all of that.
    """

    @abstractmethod
    async def analyze(self, focus: str, diff: str, bundle: ContextBundle) -> List[Finding]:
        """Analyze the diff for one area of concern.

        Args:
            focus: Area of concern (e.g. "security")
            diff: Unified diff under review
            bundle: Shared read-only context

        Returns:
            Findings for this focus
        """
        pass

    def get_reviewer_name(self) -> str:
        """Get reviewer identifier for logging."""
        return self.__class__.__name__


class FunctionReviewer(BaseReviewer):
    """Adapt a plain callable ``fn(focus, diff, bundle)`` into a reviewer.

    Coroutine functions are awaited; synchronous functions run in a worker
    thread. The callable may return Finding objects or raw text lines.
    """

    def __init__(self, fn: Callable[[str, str, ContextBundle], Any], name: str | None = None):
        self._fn = fn
        self._name = name or getattr(fn, "__name__", "function_reviewer")

    def get_reviewer_name(self) -> str:
        return self._name

    async def analyze(self, focus: str, diff: str, bundle: ContextBundle) -> List[Finding]:
        if inspect.iscoroutinefunction(self._fn):
            result = await self._fn(focus, diff, bundle)
        else:
            result = await asyncio.to_thread(self._fn, focus, diff, bundle)
        return _coerce_findings(result, focus)


def _coerce_findings(result: Any, focus: str) -> List[Finding]:
    if result is None:
        return []
    if isinstance(result, str):
        return parse_finding_lines(result, focus)

    findings: List[Finding] = []
    text_lines: List[str] = []
    for item in _iter_items(result):
        if isinstance(item, Finding):
            findings.append(item)
        elif isinstance(item, str):
            text_lines.append(item)
        else:
            logger.warning(f"[{focus}] Dropping unsupported reviewer output item: {item!r}")
    if text_lines:
        findings.extend(parse_finding_lines("\n".join(text_lines), focus))
    return findings


def _iter_items(result: Any) -> Iterable[Any]:
    if isinstance(result, Iterable):
        return result
    return [result]
