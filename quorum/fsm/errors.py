"""Errors raised by quorum state machines."""


class InvalidTransitionError(Exception):
    """Raised when a state machine is asked for a transition its map forbids."""

    def __init__(self, current: str, requested: str, valid: list[str]) -> None:
        self.current = current
        self.requested = requested
        self.valid = valid
        super().__init__(
            f"Invalid transition: {current} -> {requested}. "
            f"Valid transitions from {current}: {valid}"
        )
