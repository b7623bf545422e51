"""Pydantic contracts for review sessions."""

from __future__ import annotations

import time
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import pydantic as pd

from quorum.fsm.errors import InvalidTransitionError
from quorum.fsm.task_state import TASK_TRANSITIONS, TaskStatus


class Severity(str, Enum):
    """Finding severity. Lower rank is more severe."""

    MAJOR = "major"
    MINOR = "minor"
    NIT = "nit"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.MAJOR: 0, Severity.MINOR: 1, Severity.NIT: 2}


class Verdict(str, Enum):
    APPROVE = "approve"
    COMMENT = "comment"
    REQUEST_CHANGES = "request_changes"


class FindingCategory(str, Enum):
    """Where a finding came from.

    REVIEW findings are produced by a reviewer; the other two are synthesized
    by the dispatcher in place of a failed or timed-out task.
    """

    REVIEW = "review"
    REVIEWER_ERROR = "reviewer_error"
    REVIEWER_TIMEOUT = "reviewer_timeout"


class ConfirmationOutcome(str, Enum):
    APPROVED = "approved"
    EDITED = "edited"
    CANCELLED = "cancelled"


class SessionStatus(str, Enum):
    POSTED = "posted"
    CANCELLED = "cancelled"


class Location(pd.BaseModel):
    """A file position; ``end_line`` makes it a closed range."""

    file: str = pd.Field(min_length=1)
    line: int = pd.Field(ge=0)
    end_line: Optional[int] = None

    model_config = pd.ConfigDict(extra="forbid", frozen=True)

    @pd.model_validator(mode="after")
    def _check_range(self) -> "Location":
        if self.end_line is not None and self.end_line < self.line:
            raise ValueError(f"end_line {self.end_line} precedes line {self.line}")
        return self

    @property
    def last_line(self) -> int:
        return self.end_line if self.end_line is not None else self.line

    def overlaps(self, other: "Location") -> bool:
        """True when both locations name the same file and their line ranges intersect."""
        if normalize_path(self.file) != normalize_path(other.file):
            return False
        return self.line <= other.last_line and other.line <= self.last_line

    def __str__(self) -> str:
        if self.end_line is not None and self.end_line != self.line:
            return f"{self.file}:{self.line}-{self.end_line}"
        return f"{self.file}:{self.line}"


def normalize_path(path: str) -> str:
    """Normalize file path for comparison."""
    path = path.strip().replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


class Finding(pd.BaseModel):
    source_task_id: str
    severity: Severity
    location: Location
    message: str = pd.Field(min_length=1)
    suggested_fix: Optional[str] = None
    category: FindingCategory = FindingCategory.REVIEW
    merged_from: Tuple[str, ...] = pd.Field(
        default=(),
        description="Task ids of other findings folded into this one during dedup",
    )

    model_config = pd.ConfigDict(extra="forbid", frozen=True)

    def sort_key(self) -> tuple:
        """Total order: severity, file, line, then content for stable ties."""
        return (
            self.severity.rank,
            normalize_path(self.location.file),
            self.location.line,
            self.location.last_line,
            self.message,
            self.suggested_fix or "",
            self.category.value,
            self.source_task_id,
            self.merged_from,
        )


class TicketInfo(pd.BaseModel):
    ref: str
    title: str = ""
    status: str = ""
    description: str = ""

    model_config = pd.ConfigDict(extra="ignore", frozen=True)


class ContextQueryResult(pd.BaseModel):
    """What a context store client returns for one query."""

    summaries: List[str] = pd.Field(default_factory=list)
    ticket: Optional[TicketInfo] = None
    degraded: bool = False

    model_config = pd.ConfigDict(extra="ignore")


class ContextBundle(pd.BaseModel):
    """Ticket metadata and historical summaries shared read-only by every task."""

    ticket: Optional[TicketInfo] = None
    summaries: Tuple[str, ...] = ()
    changed_files: Tuple[str, ...] = ()
    degraded: bool = False

    model_config = pd.ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def empty(cls, changed_files: Iterable[str] = (), degraded: bool = True) -> "ContextBundle":
        return cls(changed_files=tuple(changed_files), degraded=degraded)


class ReviewTask(pd.BaseModel):
    """One reviewer invocation inside a dispatch.

    Status only moves forward along TASK_TRANSITIONS; use ``advance``.
    """

    id: str
    focus: str
    status: TaskStatus = TaskStatus.PENDING
    findings: Tuple[Finding, ...] = ()
    error: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    model_config = pd.ConfigDict(extra="forbid")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    def advance(
        self,
        status: TaskStatus,
        *,
        findings: Iterable[Finding] = (),
        error: Optional[str] = None,
    ) -> None:
        """Move the task to ``status``.

        Raises:
            InvalidTransitionError: For backward moves or moves out of a terminal state.
        """
        if status not in TASK_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                self.status.value,
                status.value,
                sorted(s.value for s in TASK_TRANSITIONS[self.status]),
            )
        now = time.monotonic()
        if status == TaskStatus.RUNNING:
            self.started_at = now
        if status.is_terminal:
            self.findings = tuple(findings)
            self.error = error
            self.finished_at = now
        self.status = status


def compute_verdict(severities: Iterable[Severity]) -> Verdict:
    """Verdict rule over a severity multiset.

    - any MAJOR -> REQUEST_CHANGES
    - else any MINOR -> COMMENT
    - else -> APPROVE
    """
    seen = set(severities)
    if Severity.MAJOR in seen:
        return Verdict.REQUEST_CHANGES
    if Severity.MINOR in seen:
        return Verdict.COMMENT
    return Verdict.APPROVE


class AggregatedReport(pd.BaseModel):
    """Deduplicated, ranked findings. The verdict is derived, never stored."""

    findings: Tuple[Finding, ...] = ()

    model_config = pd.ConfigDict(extra="ignore", frozen=True)

    @pd.computed_field  # type: ignore[prop-decorator]
    @property
    def verdict(self) -> Verdict:
        return compute_verdict(f.severity for f in self.findings)

    def count(self, severity: Severity) -> int:
        return sum(1 for f in self.findings if f.severity == severity)


class ConfirmationDecision(pd.BaseModel):
    outcome: ConfirmationOutcome
    final_body: Optional[str] = None

    model_config = pd.ConfigDict(extra="forbid", frozen=True)

    @pd.model_validator(mode="after")
    def _check_body(self) -> "ConfirmationDecision":
        if self.outcome == ConfirmationOutcome.CANCELLED:
            if self.final_body is not None:
                raise ValueError("a cancelled decision carries no body")
        elif not (self.final_body and self.final_body.strip()):
            raise ValueError(f"{self.outcome.value} decision requires a non-empty body")
        return self


class HostReceipt(pd.BaseModel):
    """What a review host returns for one approve/comment/request_changes call."""

    ok: bool
    receipt: str = ""
    error: Optional[str] = None

    model_config = pd.ConfigDict(extra="ignore")


class PostResult(pd.BaseModel):
    session_id: str
    change_id: str
    verdict: Verdict
    receipt: str
    idempotency_key: str
    attempts: int = pd.Field(ge=0)
    cached: bool = False

    model_config = pd.ConfigDict(extra="forbid", frozen=True)


class SessionConfig(pd.BaseModel):
    """Externally supplied session configuration. Every field is required."""

    foci: List[str]
    task_timeout_seconds: float = pd.Field(gt=0)
    session_timeout_seconds: float = pd.Field(gt=0)
    context_timeout_seconds: float = pd.Field(gt=0)
    similarity_threshold: float = pd.Field(ge=0.0, le=1.0)
    post_max_attempts: int = pd.Field(ge=1)
    post_backoff_seconds: float = pd.Field(ge=0.0)

    model_config = pd.ConfigDict(extra="forbid", frozen=True)

    @pd.field_validator("foci")
    @classmethod
    def _check_foci(cls, value: List[str]) -> List[str]:
        cleaned = [focus.strip() for focus in value]
        if any(not focus for focus in cleaned):
            raise ValueError("focus names must be non-empty")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError(f"duplicate focus names: {cleaned}")
        return cleaned


class SessionOutcome(pd.BaseModel):
    session_id: str
    status: SessionStatus
    bundle: Optional[ContextBundle] = None
    tasks: List[ReviewTask] = pd.Field(default_factory=list)
    report: Optional[AggregatedReport] = None
    decision: Optional[ConfirmationDecision] = None
    post_result: Optional[PostResult] = None
    notice: str = ""

    model_config = pd.ConfigDict(extra="ignore")
