"""Guards and helpers shared by the operation rules."""

from __future__ import annotations

from typing import Optional, TypeVar

from ..errors import ErrorCode, EscrowError
from ..types import (
    AllStakedAndPending,
    Call,
    CancelRequested,
    DISPUTED_STATES,
    EscrowAgreement,
    EscrowState,
    Event,
    EventType,
    FlowState,
    PendingClientConfirmation,
    Role,
)


def require_payload(call: Call) -> dict:
    p = call.payload
    if not isinstance(p, dict):
        raise EscrowError(ErrorCode.INVALID_PAYLOAD, f"{call.op.value} payload must be dict")
    return p


def require_no_value(call: Call) -> None:
    if call.value != 0:
        raise EscrowError(ErrorCode.INVALID_AMOUNT, f"{call.op.value} does not accept funds")


def require_open(agreement: EscrowAgreement) -> None:
    """Fail if the agreement already reached a terminal state."""
    state = agreement.current_state
    if state == EscrowState.JOB_COMPLETED:
        raise EscrowError(ErrorCode.JOB_ALREADY_COMPLETED, "job already completed")
    if state == EscrowState.DEAL_BROKEN:
        raise EscrowError(ErrorCode.DEAL_ALREADY_BROKEN, "deal already broken")


def require_no_escape(agreement: EscrowAgreement) -> None:
    """Fail while a cancellation request or a dispute suspends normal flow."""
    if isinstance(agreement.state, CancelRequested):
        raise EscrowError(ErrorCode.CANCEL_ACTIVE, "cancellation request pending")
    if agreement.current_state in DISPUTED_STATES:
        raise EscrowError(ErrorCode.DISPUTE_ACTIVE, "dispute in progress")


def require_state(agreement: EscrowAgreement, op_name: str, *allowed: EscrowState) -> None:
    if agreement.current_state not in allowed:
        expected = ", ".join(s.value for s in allowed)
        raise EscrowError(
            ErrorCode.WRONG_STATE,
            f"{op_name} requires {expected}, currently {agreement.current_state.value}",
        )


_S = TypeVar("_S")


def expect_state(agreement: EscrowAgreement, kind: type[_S]) -> _S:
    """Return the current state, which verification already pinned to ``kind``."""
    state = agreement.state
    if not isinstance(state, kind):
        raise EscrowError(
            ErrorCode.INTERNAL_ERROR,
            f"expected {kind.__name__}, found {agreement.current_state.value}",
        )
    return state


def restore_flow(previous: FlowState) -> FlowState:
    """State to resume after an escape is withdrawn.

    A pending confirmation is not resumed: the confirmation window starts
    over only if the freelancer requests completion again.
    """
    if isinstance(previous, PendingClientConfirmation):
        return AllStakedAndPending()
    return previous


def emit(
    agreement: EscrowAgreement,
    event_type: EventType,
    call: Call,
    now: int,
    role: Optional[Role] = None,
    **amounts: int,
) -> Event:
    return Event(
        event_type=event_type,
        job_id=agreement.job_id,
        actor=call.caller,
        state=agreement.current_state,
        timestamp=now,
        role=role,
        amounts=dict(amounts),
    )
