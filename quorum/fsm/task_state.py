"""Review task status enumeration.

This module provides TaskStatus enum for tracking the lifecycle of a single
reviewer invocation inside a dispatch, and the forward-only transition map.
"""

from enum import Enum
from typing import Dict


class TaskStatus(str, Enum):
    """Review task lifecycle states.

    States represent the execution phase of one reviewer task:
    - PENDING: Task created at fan-out time, not yet started
    - RUNNING: Reviewer invocation in flight
    - DONE: Reviewer returned findings
    - FAILED: Reviewer raised, or the session was cancelled
    - TIMED_OUT: Per-task or global session bound elapsed

    Enum values are lowercase strings.
    """

    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        """True for DONE, FAILED and TIMED_OUT."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.DONE, TaskStatus.FAILED, TaskStatus.TIMED_OUT})

# Transitions only move forward; terminal states have no exits.
TASK_TRANSITIONS: Dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.RUNNING, TaskStatus.FAILED, TaskStatus.TIMED_OUT}
    ),
    TaskStatus.RUNNING: TERMINAL_STATUSES,
    TaskStatus.DONE: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.TIMED_OUT: frozenset(),
}
