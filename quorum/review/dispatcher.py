"""Fan-out of reviewer tasks over shared immutable input, with a completion barrier."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from quorum.fsm.task_state import TaskStatus
from quorum.review.base import BaseReviewer
from quorum.review.contracts import (
    ContextBundle,
    Finding,
    FindingCategory,
    Location,
    ReviewTask,
    Severity,
)
from quorum.review.errors import AggregationInvariantViolation, ReviewerFailed, ReviewerTimedOut

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, str, Dict], Awaitable[None]]

SYNTHETIC_FILE_TEMPLATE = "<reviewer:{task_id}>"


def synthetic_location(task: ReviewTask) -> Location:
    """Location of a finding that stands in for a task's missing output.

    Unique per task: stand-ins for two different tasks never overlap.
    """
    return Location(file=SYNTHETIC_FILE_TEMPLATE.format(task_id=task.id), line=0)


def timed_out_finding(task: ReviewTask) -> Finding:
    return Finding(
        source_task_id=task.id,
        severity=Severity.MINOR,
        location=synthetic_location(task),
        message=f"reviewer {task.focus} timed out",
        category=FindingCategory.REVIEWER_TIMEOUT,
    )


def failed_finding(task: ReviewTask, error: str) -> Finding:
    return Finding(
        source_task_id=task.id,
        severity=Severity.MINOR,
        location=synthetic_location(task),
        message=f"reviewer {task.focus} failed: {error}",
        category=FindingCategory.REVIEWER_ERROR,
    )


class Dispatcher:
    """Run one reviewer invocation per focus concurrently and wait for all of them.

    Every invocation receives the same ``(diff, bundle)`` by reference; tasks
    share no mutable state. A task that raises becomes FAILED and a task that
    exceeds its bound becomes TIMED_OUT; both leave a synthesized finding in
    place of their output. Nothing a reviewer does escapes the barrier.
    """

    def __init__(
        self,
        reviewer: BaseReviewer,
        task_timeout_seconds: float,
        session_timeout_seconds: float,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            reviewer: Reviewer capability invoked once per focus
            task_timeout_seconds: Bound on a single reviewer invocation
            session_timeout_seconds: Bound on the whole fan-out
            progress_callback: Optional async callback(task_id, status, data)
        """
        self.reviewer = reviewer
        self.task_timeout_seconds = task_timeout_seconds
        self.session_timeout_seconds = session_timeout_seconds
        self.progress_callback = progress_callback

    async def dispatch(
        self,
        diff: str,
        bundle: ContextBundle,
        foci: Sequence[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[ReviewTask]:
        """Fan out one task per focus and block until every task is terminal.

        Returns early only through the global session timeout or
        ``cancel_event``; in both cases unfinished tasks are cancelled and
        given a terminal status before returning.

        Args:
            diff: Unified diff, shared read-only
            bundle: ContextBundle, shared read-only
            foci: One focus per task, in order
            cancel_event: Optional session cancellation signal

        Returns:
            Tasks in focus order, all in a terminal state
        """
        tasks = [ReviewTask(id=f"review_{focus}_{i}", focus=focus) for i, focus in enumerate(foci)]
        if not tasks:
            return tasks

        logger.info(
            f"[dispatcher] Starting {len(tasks)} reviewers "
            f"(task timeout {self.task_timeout_seconds}s, session timeout {self.session_timeout_seconds}s)"
        )

        runners: Dict[asyncio.Task, ReviewTask] = {
            asyncio.create_task(self._run_task(task, diff, bundle), name=task.id): task
            for task in tasks
        }
        cancel_waiter: Optional[asyncio.Task] = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.session_timeout_seconds
        pending = set(runners)
        cancelled = False

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break

                wait_set = set(pending)
                if cancel_waiter is not None:
                    wait_set.add(cancel_waiter)

                done, _ = await asyncio.wait(
                    wait_set, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if cancel_waiter is not None and cancel_waiter in done:
                    cancelled = True
                    break
                pending -= done
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()

        if pending:
            reason = "session cancelled" if cancelled else "session timeout"
            logger.warning(f"[dispatcher] Stopping {len(pending)} unfinished reviewers: {reason}")
            for runner in pending:
                runner.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task in tasks:
            if task.is_terminal:
                continue
            if cancelled:
                task.advance(TaskStatus.FAILED, findings=[failed_finding(task, "cancelled")], error="cancelled")
                await self._notify(task, "failed", {"error": "cancelled"})
            else:
                task.advance(TaskStatus.TIMED_OUT, findings=[timed_out_finding(task)], error="session timeout")
                await self._notify(task, "timed_out", {"error": "session timeout"})

        terminal = sum(1 for task in tasks if task.is_terminal)
        if terminal != len(tasks):
            raise AggregationInvariantViolation(
                f"Barrier released with {terminal}/{len(tasks)} terminal tasks"
            )

        logger.info(
            "[dispatcher] Barrier released: "
            + ", ".join(f"{task.focus}={task.status.value}" for task in tasks)
        )
        return tasks

    async def _run_task(self, task: ReviewTask, diff: str, bundle: ContextBundle) -> None:
        """Execute a single reviewer invocation and record its terminal state."""
        task.advance(TaskStatus.RUNNING)
        await self._notify(task, "started", {})

        try:
            raw_findings = await self._analyze_bounded(task, diff, bundle)
        except ReviewerTimedOut as e:
            logger.warning(f"[{task.focus}] Reviewer timed out: {e}")
            task.advance(TaskStatus.TIMED_OUT, findings=[timed_out_finding(task)], error="task timeout")
            await self._notify(task, "timed_out", {"error": "task timeout"})
            return
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error_msg = str(e) or e.__class__.__name__
            logger.error(f"[{task.focus}] Reviewer failed: {error_msg}", exc_info=True)
            task.advance(TaskStatus.FAILED, findings=[failed_finding(task, error_msg)], error=error_msg)
            await self._notify(task, "failed", {"error": error_msg})
            return

        findings = [
            finding.model_copy(update={"source_task_id": task.id})
            for finding in raw_findings or []
        ]
        task.advance(TaskStatus.DONE, findings=findings)
        logger.info(f"[{task.focus}] Reviewer completed with {len(findings)} findings")
        await self._notify(task, "completed", {"findings": len(findings)})

    async def _analyze_bounded(self, task: ReviewTask, diff: str, bundle: ContextBundle) -> List[Finding]:
        """Run the reviewer under the per-task bound.

        Raises:
            ReviewerTimedOut: The bound elapsed
            ReviewerFailed: The reviewer raised its own TimeoutError before the bound
        """
        deadline = asyncio.timeout(self.task_timeout_seconds)
        try:
            async with deadline:
                return await self.reviewer.analyze(task.focus, diff, bundle)
        except TimeoutError as e:
            if not deadline.expired():
                raise ReviewerFailed(str(e) or "reviewer raised TimeoutError") from e
            raise ReviewerTimedOut(f"exceeded {self.task_timeout_seconds}s") from e

    async def _notify(self, task: ReviewTask, status: str, data: Dict) -> None:
        if self.progress_callback is None:
            return
        try:
            await self.progress_callback(task.focus, status, data)
        except Exception as e:
            logger.warning(f"[{task.focus}] Progress callback failed: {e}")
