"""Review session engine: context gathering, parallel reviewers, aggregation, confirmation, posting."""

# Public API
from quorum.review.orchestrator import ReviewOrchestrator
from quorum.review.base import BaseReviewer, FunctionReviewer, parse_finding_lines
from quorum.review.reviewers import CommandReviewer
from quorum.review.context_gatherer import ContextGatherer, ContextStoreClient, LocalContextStore
from quorum.review.dispatcher import Dispatcher
from quorum.review.aggregator import Aggregator, dedupe_findings, rank_findings
from quorum.review.gate import ConfirmationGate, ConfirmationSignal, Confirmer, StaticConfirmer
from quorum.review.executor import ActionExecutor, FileReviewHost, ReviewHost
from quorum.review.config import load_session_config

# Contracts
from quorum.review.contracts import (
    AggregatedReport,
    ConfirmationDecision,
    ConfirmationOutcome,
    ContextBundle,
    Finding,
    Location,
    PostResult,
    ReviewTask,
    SessionConfig,
    SessionOutcome,
    Severity,
    Verdict,
    compute_verdict,
)

__all__ = [
    "ReviewOrchestrator",
    "BaseReviewer",
    "FunctionReviewer",
    "parse_finding_lines",
    "CommandReviewer",
    "ContextGatherer",
    "ContextStoreClient",
    "LocalContextStore",
    "Dispatcher",
    "Aggregator",
    "dedupe_findings",
    "rank_findings",
    "ConfirmationGate",
    "ConfirmationSignal",
    "Confirmer",
    "StaticConfirmer",
    "ActionExecutor",
    "FileReviewHost",
    "ReviewHost",
    "load_session_config",
    "AggregatedReport",
    "ConfirmationDecision",
    "ConfirmationOutcome",
    "ContextBundle",
    "Finding",
    "Location",
    "PostResult",
    "ReviewTask",
    "SessionConfig",
    "SessionOutcome",
    "Severity",
    "Verdict",
    "compute_verdict",
]
