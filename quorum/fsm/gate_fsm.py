"""GateFSM: finite state machine for the human confirmation step.

The gate starts in DRAFTED once a report is aggregated and accepts exactly one
confirmation signal, moving to APPROVED, EDITED or CANCELLED.
"""

import threading
from typing import Dict, Optional

from quorum.fsm.errors import InvalidTransitionError
from quorum.fsm.gate_state import GateState


GATE_TRANSITIONS: Dict[GateState, set[GateState]] = {
    GateState.DRAFTED: {GateState.APPROVED, GateState.EDITED, GateState.CANCELLED},
    GateState.APPROVED: set(),  # Terminal state
    GateState.EDITED: set(),  # Terminal state
    GateState.CANCELLED: set(),  # Terminal state
}


class GateFSM:
    """State machine for a single confirmation decision.

    Locking Strategy:
        - Uses threading.RLock so a confirmer running in a worker thread and the
          event loop cannot both resolve the gate
        - Property getters do not acquire the lock

    Example:
        >>> fsm = GateFSM()
        >>> fsm.current_state
        <GateState.DRAFTED: 'drafted'>
        >>> fsm.transition_to(GateState.APPROVED)
        <GateState.APPROVED: 'approved'>
        >>> fsm.is_terminal
        True
    """

    def __init__(self, transitions: Optional[Dict[GateState, set[GateState]]] = None) -> None:
        self._current_state = GateState.DRAFTED
        self._transitions = transitions if transitions is not None else GATE_TRANSITIONS
        self._state_lock = threading.RLock()

    @property
    def current_state(self) -> GateState:
        """Get the current state (read-only)."""
        return self._current_state

    @property
    def is_terminal(self) -> bool:
        """True once the gate has been resolved."""
        return not self._transitions.get(self._current_state)

    def can_transition_to(self, next_state: GateState) -> bool:
        """Check if a transition would be valid without changing state."""
        return next_state in self._transitions.get(self._current_state, set())

    def transition_to(self, next_state: GateState) -> GateState:
        """Move to ``next_state``.

        Args:
            next_state: The target state.

        Returns:
            The new state.

        Raises:
            InvalidTransitionError: If the transition map forbids it. State is unchanged.
        """
        with self._state_lock:
            if not self.can_transition_to(next_state):
                raise InvalidTransitionError(
                    self._current_state.value,
                    next_state.value,
                    sorted(s.value for s in self._transitions.get(self._current_state, set())),
                )
            self._current_state = next_state
            return next_state
