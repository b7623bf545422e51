"""Orchestrator for a single review session.

ContextGatherer -> Dispatcher -> Aggregator -> ConfirmationGate -> ActionExecutor.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Awaitable, Optional, Sequence, Tuple, TypeVar

from quorum.review.aggregator import Aggregator
from quorum.review.base import BaseReviewer
from quorum.review.constants import DISCARD_NOTICE
from quorum.review.context_gatherer import ContextGatherer, ContextStoreClient
from quorum.review.contracts import (
    AggregatedReport,
    ConfirmationOutcome,
    SessionConfig,
    SessionOutcome,
    SessionStatus,
)
from quorum.review.dispatcher import Dispatcher, ProgressCallback
from quorum.review.executor import ActionExecutor
from quorum.review.gate import ConfirmationGate, Confirmer
from quorum.review.render import render_report

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReviewOrchestrator:
    def __init__(
        self,
        config: SessionConfig,
        reviewer: BaseReviewer,
        executor: ActionExecutor,
        confirmer: Confirmer,
        context_client: ContextStoreClient | None = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Initialize the review orchestrator.

        Args:
            config: Session configuration (foci, timeouts, threshold, retries)
            reviewer: Reviewer capability invoked once per focus
            executor: Action executor that posts the confirmed review
            confirmer: Source of the human approve / edit / cancel decision
            context_client: Optional context store client
            progress_callback: Optional async callback for per-task progress
        """
        self.config = config
        self.gatherer = ContextGatherer(context_client, config.context_timeout_seconds)
        self.dispatcher = Dispatcher(
            reviewer,
            task_timeout_seconds=config.task_timeout_seconds,
            session_timeout_seconds=config.session_timeout_seconds,
            progress_callback=progress_callback,
        )
        self.aggregator = Aggregator(config.similarity_threshold)
        self.executor = executor
        self.confirmer = confirmer

    async def run_session(
        self,
        diff: str,
        changed_files: Sequence[str],
        ticket_ref: Optional[str] = None,
        session_id: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
        claim_ticket: bool = False,
    ) -> SessionOutcome:
        """Run one full review session.

        A cancellation signal at any point before posting ends the session as
        CANCELLED with no external side effect.

        Args:
            diff: Unified diff under review
            changed_files: Files touched by the change
            ticket_ref: Optional ticket reference for context lookup
            session_id: Session identifier; generated when omitted
            cancel_event: Optional session cancellation signal
            claim_ticket: Mark the ticket in progress before reviewing

        Returns:
            SessionOutcome, POSTED or CANCELLED

        Raises:
            ActionPostFailed: Posting failed; the exception carries the report
            AggregationInvariantViolation: Barrier bug
        """
        session_id = session_id or uuid.uuid4().hex[:16]
        logger.info(f"[session {session_id}] Starting review with {len(self.config.foci)} foci")

        if claim_ticket:
            cancelled, _ = await _race_cancel(self.gatherer.claim_ticket(ticket_ref), cancel_event)
            if cancelled:
                return self._cancelled(session_id)

        cancelled, bundle = await _race_cancel(
            self.gatherer.gather(ticket_ref, changed_files), cancel_event
        )
        if cancelled:
            return self._cancelled(session_id)

        tasks = await self.dispatcher.dispatch(diff, bundle, self.config.foci, cancel_event)
        if _is_cancelled(cancel_event):
            return self._cancelled(session_id, bundle=bundle, tasks=tasks)

        report = self.aggregator.aggregate(tasks)
        body = render_report(report)

        gate = ConfirmationGate(report, body)
        decision = await gate.wait(self.confirmer, cancel_event)
        if decision.outcome == ConfirmationOutcome.CANCELLED:
            return self._cancelled(session_id, bundle=bundle, tasks=tasks, report=report, decision=decision)

        post_result = await self.executor.post(
            session_id, report.verdict, decision.final_body or body, report=report
        )

        return SessionOutcome(
            session_id=session_id,
            status=SessionStatus.POSTED,
            bundle=bundle,
            tasks=tasks,
            report=report,
            decision=decision,
            post_result=post_result,
            notice=f"Posted {report.verdict.value}: {post_result.receipt}",
        )

    def _cancelled(
        self,
        session_id: str,
        bundle=None,
        tasks=None,
        report: Optional[AggregatedReport] = None,
        decision=None,
    ) -> SessionOutcome:
        logger.info(f"[session {session_id}] Cancelled; nothing posted")
        return SessionOutcome(
            session_id=session_id,
            status=SessionStatus.CANCELLED,
            bundle=bundle,
            tasks=tasks or [],
            report=report,
            decision=decision,
            notice=DISCARD_NOTICE,
        )


def _is_cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


async def _race_cancel(
    awaitable: Awaitable[T], cancel_event: Optional[asyncio.Event]
) -> Tuple[bool, Optional[T]]:
    """Await ``awaitable`` unless the session is cancelled first.

    Returns:
        ``(True, None)`` when cancelled (the work is cancelled too),
        otherwise ``(False, result)``
    """
    if cancel_event is None:
        return False, await awaitable

    work = asyncio.ensure_future(awaitable)
    cancel_waiter = asyncio.create_task(cancel_event.wait())
    try:
        await asyncio.wait({work, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for pending in (work, cancel_waiter):
            if not pending.done():
                pending.cancel()

    if cancel_event.is_set():
        await asyncio.gather(work, return_exceptions=True)
        return True, None
    return False, work.result()
