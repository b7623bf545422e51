"""Finite state machine package for quorum.

This package provides the task lifecycle and confirmation gate state machines.
"""

from quorum.fsm.errors import InvalidTransitionError
from quorum.fsm.task_state import TASK_TRANSITIONS, TERMINAL_STATUSES, TaskStatus
from quorum.fsm.gate_state import GateState
from quorum.fsm.gate_fsm import GATE_TRANSITIONS, GateFSM

__all__ = [
    "InvalidTransitionError",
    "TASK_TRANSITIONS",
    "TERMINAL_STATUSES",
    "TaskStatus",
    "GateState",
    "GATE_TRANSITIONS",
    "GateFSM",
]
