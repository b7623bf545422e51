"""Confirmation gate state enumeration."""

from enum import Enum


class GateState(str, Enum):
    """Confirmation gate states.

    - DRAFTED: Report aggregated, awaiting a human decision
    - APPROVED: Post the rendered report unchanged
    - EDITED: Post a caller-supplied replacement body verbatim
    - CANCELLED: Discard; nothing further runs
    """

    DRAFTED = "drafted"
    APPROVED = "approved"
    EDITED = "edited"
    CANCELLED = "cancelled"
