"""Exception taxonomy for review sessions.

Failures below the aggregator (context lookup, reviewer invocations) are
absorbed into data; these exceptions are raised there only to be caught and
converted. Failures at or above the confirmation gate propagate to the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from quorum.fsm.errors import InvalidTransitionError

if TYPE_CHECKING:
    from quorum.review.contracts import AggregatedReport, Verdict


class ReviewSessionError(Exception):
    """Base exception for review session errors."""


class ConfigError(ReviewSessionError):
    """Raised when session configuration is missing or invalid."""


class ContextUnavailable(ReviewSessionError):
    """Raised by a context store client that cannot be reached.

    The gatherer catches it and returns a degraded, empty bundle.
    """


class ReviewerFailed(ReviewSessionError):
    """Raised by a reviewer that could not complete its analysis."""


class ReviewerTimedOut(ReviewSessionError):
    """Raised when a reviewer exceeds its time bound."""


class AggregationInvariantViolation(ReviewSessionError):
    """Raised when aggregation is attempted before every task is terminal.

    Indicates a barrier bug; not recoverable by the user.
    """


class TransientHostError(ReviewSessionError):
    """Raised by a review host for failures worth retrying."""


class ActionPostFailed(ReviewSessionError):
    """Raised when posting the review fails definitively or retries run out.

    Carries the fully formed report so the caller can retry manually without
    re-running the pipeline.
    """

    def __init__(
        self,
        message: str,
        *,
        session_id: str,
        verdict: "Verdict",
        body: str,
        attempts: int,
        report: Optional["AggregatedReport"] = None,
    ) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.verdict = verdict
        self.body = body
        self.attempts = attempts
        self.report = report


PostFailed = ActionPostFailed


class DuplicateActionError(ReviewSessionError):
    """Raised when a session that already posted tries to post different content."""


__all__ = [
    "ReviewSessionError",
    "ConfigError",
    "ContextUnavailable",
    "ReviewerFailed",
    "ReviewerTimedOut",
    "AggregationInvariantViolation",
    "TransientHostError",
    "ActionPostFailed",
    "PostFailed",
    "DuplicateActionError",
    "InvalidTransitionError",
]
