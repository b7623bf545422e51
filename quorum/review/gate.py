"""Human confirmation gate in front of every externally visible side effect."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

import pydantic as pd

from quorum.fsm.gate_fsm import GateFSM
from quorum.fsm.gate_state import GateState
from quorum.review.contracts import AggregatedReport, ConfirmationDecision, ConfirmationOutcome

logger = logging.getLogger(__name__)


class GateAction(str, Enum):
    APPROVE = "approve"
    EDIT = "edit"
    CANCEL = "cancel"


class ConfirmationSignal(pd.BaseModel):
    """The single external signal that resolves a gate."""

    action: GateAction
    body: Optional[str] = None

    model_config = pd.ConfigDict(extra="forbid", frozen=True)

    @classmethod
    def approve(cls) -> "ConfirmationSignal":
        return cls(action=GateAction.APPROVE)

    @classmethod
    def edit(cls, body: str) -> "ConfirmationSignal":
        return cls(action=GateAction.EDIT, body=body)

    @classmethod
    def cancel(cls) -> "ConfirmationSignal":
        return cls(action=GateAction.CANCEL)


class Confirmer(ABC):
    """Source of the human decision for a drafted report."""

    @abstractmethod
    async def ask(self, report: AggregatedReport, body: str) -> ConfirmationSignal:
        """Present the report and return the human's decision.

        Args:
            report: The aggregated report
            body: Its rendering, as it would be posted on approval
        """
        pass


class StaticConfirmer(Confirmer):
    """Confirmer that always answers with the same signal."""

    def __init__(self, signal: ConfirmationSignal) -> None:
        self.signal = signal

    async def ask(self, report: AggregatedReport, body: str) -> ConfirmationSignal:
        return self.signal


_ACTION_STATES = {
    GateAction.APPROVE: GateState.APPROVED,
    GateAction.EDIT: GateState.EDITED,
    GateAction.CANCEL: GateState.CANCELLED,
}

_STATE_OUTCOMES = {
    GateState.APPROVED: ConfirmationOutcome.APPROVED,
    GateState.EDITED: ConfirmationOutcome.EDITED,
    GateState.CANCELLED: ConfirmationOutcome.CANCELLED,
}


class ConfirmationGate:
    """Drafted -> Approved | Edited | Cancelled, driven by exactly one signal.

    Approved carries the unmodified rendering of the report, Edited carries
    the replacement body verbatim, Cancelled carries nothing.
    """

    def __init__(self, report: AggregatedReport, rendered_body: str) -> None:
        self.report = report
        self.rendered_body = rendered_body
        self._fsm = GateFSM()
        self._decision: Optional[ConfirmationDecision] = None

    @property
    def state(self) -> GateState:
        return self._fsm.current_state

    @property
    def decision(self) -> Optional[ConfirmationDecision]:
        return self._decision

    def resolve(self, signal: ConfirmationSignal) -> ConfirmationDecision:
        """Apply the confirmation signal.

        Raises:
            InvalidTransitionError: If the gate was already resolved
            ValueError: If an edit carries an empty body (gate stays DRAFTED)
        """
        if signal.action == GateAction.EDIT and not (signal.body and signal.body.strip()):
            raise ValueError("An edited review requires a non-empty replacement body")

        target = _ACTION_STATES[signal.action]
        self._fsm.transition_to(target)

        if target == GateState.APPROVED:
            final_body: Optional[str] = self.rendered_body
        elif target == GateState.EDITED:
            final_body = signal.body
        else:
            final_body = None

        self._decision = ConfirmationDecision(outcome=_STATE_OUTCOMES[target], final_body=final_body)
        logger.info(f"[gate] Resolved as {target.value}")
        return self._decision

    async def wait(
        self, confirmer: Confirmer, cancel_event: Optional[asyncio.Event] = None
    ) -> ConfirmationDecision:
        """Suspend until the confirmer answers or the session is cancelled."""
        ask = asyncio.create_task(confirmer.ask(self.report, self.rendered_body))
        if cancel_event is None:
            return self.resolve(await ask)

        cancel_waiter = asyncio.create_task(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {ask, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for pending in (ask, cancel_waiter):
                if not pending.done():
                    pending.cancel()

        if cancel_waiter in done:
            logger.info("[gate] Session cancelled while awaiting confirmation")
            return self.resolve(ConfirmationSignal.cancel())
        return self.resolve(ask.result())
