"""Posting the confirmed review to a code-review host, at most once per session."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import random
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from quorum.review.contracts import AggregatedReport, HostReceipt, PostResult, Verdict
from quorum.review.errors import ActionPostFailed, DuplicateActionError, TransientHostError

logger = logging.getLogger(__name__)

# ConnectionError and TimeoutError are OSError subclasses.
RETRYABLE_ERRORS = (TransientHostError, OSError)

MAX_BACKOFF_SECONDS = 60.0


class ReviewHost(ABC):
    """Code-review host boundary. All three operations are idempotent per change."""

    @abstractmethod
    async def approve(self, change_id: str, body: str) -> HostReceipt:
        pass

    @abstractmethod
    async def comment(self, change_id: str, body: str) -> HostReceipt:
        pass

    @abstractmethod
    async def request_changes(self, change_id: str, body: str) -> HostReceipt:
        pass

    async def submit(self, change_id: str, verdict: Verdict, body: str) -> HostReceipt:
        """Route to the operation matching ``verdict``."""
        if verdict == Verdict.APPROVE:
            return await self.approve(change_id, body)
        if verdict == Verdict.COMMENT:
            return await self.comment(change_id, body)
        return await self.request_changes(change_id, body)


class FileReviewHost(ReviewHost):
    """Host that records each review as a markdown file under a reports directory.

    Re-posting the same change overwrites the same file.
    """

    def __init__(self, reports_dir: Path) -> None:
        self.reports_dir = Path(reports_dir)

    async def approve(self, change_id: str, body: str) -> HostReceipt:
        return await asyncio.to_thread(self._write, change_id, Verdict.APPROVE, body)

    async def comment(self, change_id: str, body: str) -> HostReceipt:
        return await asyncio.to_thread(self._write, change_id, Verdict.COMMENT, body)

    async def request_changes(self, change_id: str, body: str) -> HostReceipt:
        return await asyncio.to_thread(self._write, change_id, Verdict.REQUEST_CHANGES, body)

    def _write(self, change_id: str, verdict: Verdict, body: str) -> HostReceipt:
        safe_id = "".join(c if c.isalnum() or c in "-_." else "_" for c in change_id)
        path = self.reports_dir / f"{safe_id}.md"
        header = (
            f"<!-- change: {change_id} | verdict: {verdict.value} | "
            f"posted: {datetime.now(timezone.utc).isoformat()} -->\n\n"
        )
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(header + body + "\n", encoding="utf-8")
        except OSError as e:
            raise TransientHostError(f"Failed to write review to {path}: {e}") from e
        digest = hashlib.sha256(body.encode("utf-8")).hexdigest()[:12]
        return HostReceipt(ok=True, receipt=f"{path}#{digest}")


def compute_idempotency_key(session_id: str, verdict: Verdict, body: str) -> str:
    """SHA-256 over session id, verdict and body."""
    content = "\0".join((session_id, verdict.value, body))
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class ActionExecutor:
    """Post a review exactly once per session, retrying transient failures.

    A successful post is cached by session. Posting again with the same
    ``(session_id, verdict, body)`` returns the cached result without calling
    the host; posting different content for a session that already posted
    raises DuplicateActionError.
    """

    def __init__(
        self,
        host: ReviewHost,
        change_id: str,
        max_attempts: int,
        backoff_seconds: float,
    ) -> None:
        """Initialize the executor.

        Args:
            host: Review host to post to
            change_id: PR/change identifier on the host
            max_attempts: Total attempts including the first (>= 1)
            backoff_seconds: Base delay for exponential backoff
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.host = host
        self.change_id = change_id
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._posted: Dict[str, PostResult] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def cached_result(self, session_id: str) -> Optional[PostResult]:
        return self._posted.get(session_id)

    async def post(
        self,
        session_id: str,
        verdict: Verdict,
        body: str,
        report: Optional[AggregatedReport] = None,
    ) -> PostResult:
        """Post the review.

        Args:
            session_id: Review session identifier
            verdict: Verdict selecting approve / comment / request_changes
            body: Final review body, posted verbatim
            report: Report preserved on failure for manual retry

        Returns:
            PostResult (``cached=True`` when served from the idempotency cache)

        Raises:
            ActionPostFailed: Host rejected the post or retries were exhausted
            DuplicateActionError: Session already posted different content
        """
        key = compute_idempotency_key(session_id, verdict, body)
        lock = self._locks.setdefault(session_id, asyncio.Lock())

        async with lock:
            previous = self._posted.get(session_id)
            if previous is not None:
                if previous.idempotency_key == key:
                    logger.info(f"[executor] Session {session_id} already posted; returning cached receipt")
                    return previous.model_copy(update={"cached": True})
                raise DuplicateActionError(
                    f"Session {session_id} already posted a review ({previous.receipt})"
                )

            receipt, attempts = await self._submit_with_retry(session_id, verdict, body, report)
            result = PostResult(
                session_id=session_id,
                change_id=self.change_id,
                verdict=verdict,
                receipt=receipt.receipt,
                idempotency_key=key,
                attempts=attempts,
            )
            self._posted[session_id] = result
            logger.info(
                f"[executor] Posted {verdict.value} for {self.change_id} "
                f"after {result.attempts} attempt(s): {result.receipt}"
            )
            return result

    async def _submit_with_retry(
        self,
        session_id: str,
        verdict: Verdict,
        body: str,
        report: Optional[AggregatedReport],
    ) -> tuple[HostReceipt, int]:
        last_error = ""
        for attempt in range(self.max_attempts):
            try:
                receipt = await self.host.submit(self.change_id, verdict, body)
            except RETRYABLE_ERRORS as e:
                last_error = str(e) or e.__class__.__name__
                if attempt + 1 < self.max_attempts:
                    backoff = self._calculate_backoff(attempt)
                    logger.warning(
                        f"[executor] Post failed (attempt {attempt + 1}/{self.max_attempts}): "
                        f"{last_error}; retrying in {backoff:.1f}s..."
                    )
                    await asyncio.sleep(backoff)
                    continue
                break

            if not receipt.ok:
                raise ActionPostFailed(
                    f"Review host rejected the post: {receipt.error or 'unknown error'}",
                    session_id=session_id,
                    verdict=verdict,
                    body=body,
                    attempts=attempt + 1,
                    report=report,
                )
            return receipt, attempt + 1

        logger.error(f"[executor] Giving up after {self.max_attempts} attempts: {last_error}")
        raise ActionPostFailed(
            f"Posting failed after {self.max_attempts} attempts: {last_error}",
            session_id=session_id,
            verdict=verdict,
            body=body,
            attempts=self.max_attempts,
            report=report,
        )

    def _calculate_backoff(self, attempt: int) -> float:
        """Calculate exponential backoff with jitter.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Backoff time in seconds
        """
        if self.backoff_seconds <= 0:
            return 0.0
        jitter = random.uniform(0, 0.5 * self.backoff_seconds)
        return min(self.backoff_seconds * (2**attempt) + jitter, MAX_BACKOFF_SECONDS)
