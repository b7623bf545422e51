"""Shared pytest fixtures for quorum tests."""

from typing import List, Optional

import pytest

from quorum.review.contracts import (
    ContextBundle,
    Finding,
    HostReceipt,
    Location,
    SessionConfig,
    Severity,
    TicketInfo,
)
from quorum.review.executor import ReviewHost


def make_finding(
    severity: Severity = Severity.MINOR,
    file: str = "app/models/user.rb",
    line: int = 10,
    end_line: Optional[int] = None,
    message: str = "Possible nil dereference",
    suggested_fix: Optional[str] = None,
    source_task_id: str = "review_correctness_0",
) -> Finding:
    """Build a Finding with sensible defaults for tests."""
    return Finding(
        source_task_id=source_task_id,
        severity=severity,
        location=Location(file=file, line=line, end_line=end_line),
        message=message,
        suggested_fix=suggested_fix,
    )


class RecordingHost(ReviewHost):
    """Review host that records calls and can fail a number of times first.

    Args:
        failures: Exceptions raised by the first len(failures) calls, in order
        ok: Value of HostReceipt.ok returned on success
    """

    def __init__(self, failures: Optional[List[Exception]] = None, ok: bool = True) -> None:
        self.failures = list(failures or [])
        self.ok = ok
        self.calls: List[tuple] = []

    async def _record(self, op: str, change_id: str, body: str) -> HostReceipt:
        self.calls.append((op, change_id, body))
        if self.failures:
            raise self.failures.pop(0)
        if not self.ok:
            return HostReceipt(ok=False, error="permission denied")
        return HostReceipt(ok=True, receipt=f"{op}-{len(self.calls)}")

    async def approve(self, change_id: str, body: str) -> HostReceipt:
        return await self._record("approve", change_id, body)

    async def comment(self, change_id: str, body: str) -> HostReceipt:
        return await self._record("comment", change_id, body)

    async def request_changes(self, change_id: str, body: str) -> HostReceipt:
        return await self._record("request_changes", change_id, body)


@pytest.fixture
def session_config() -> SessionConfig:
    """SessionConfig with short timeouts suitable for tests."""
    return SessionConfig(
        foci=["correctness", "security", "performance"],
        task_timeout_seconds=1.0,
        session_timeout_seconds=2.0,
        context_timeout_seconds=0.5,
        similarity_threshold=0.85,
        post_max_attempts=3,
        post_backoff_seconds=0.0,
    )


@pytest.fixture
def context_bundle() -> ContextBundle:
    """Standard ContextBundle fixture for testing."""
    return ContextBundle(
        ticket=TicketInfo(ref="PROJ-42", title="Add user avatars", status="in progress"),
        summaries=("avatars.md: Avatars are stored on S3 behind a signed URL.",),
        changed_files=("app/models/user.rb", "app/controllers/users_controller.rb"),
    )


@pytest.fixture
def sample_diff() -> str:
    return (
        "--- a/app/models/user.rb\n"
        "+++ b/app/models/user.rb\n"
        "@@ -8,3 +8,4 @@ class User < ApplicationRecord\n"
        "+  has_one_attached :avatar\n"
    )


@pytest.fixture
def recording_host() -> RecordingHost:
    return RecordingHost()


@pytest.fixture
def finding_factory():
    """Fixture factory returning make_finding."""
    return make_finding


@pytest.fixture
def host_factory():
    """Fixture factory returning the RecordingHost class."""
    return RecordingHost
