"""Two-phase break-deal (mutual cancellation) rules.

The first participant to call ``break_deal`` only records the request. The
deal is broken, and both stakes refunded, when the other participant calls
``break_deal`` as well. Either participant may withdraw the request first.
"""

from __future__ import annotations

from .. import custody
from ..auth import require_participant
from ..errors import ErrorCode, EscrowError
from ..types import (
    Call,
    CancelRequested,
    DISPUTED_STATES,
    DealBroken,
    Effects,
    EscrowAgreement,
    EventType,
    Operation,
    Role,
)
from .common import emit, expect_state, require_no_value, require_open, restore_flow


def verify(agreement: EscrowAgreement, call: Call, now: int) -> None:
    require_no_value(call)
    if call.op == Operation.BREAK_DEAL:
        _verify_break_deal(agreement, call)
    elif call.op == Operation.CANCEL_DEAL_BREAK:
        _verify_cancel_deal_break(agreement, call)
    else:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported cancellation op: {call.op}")


def apply(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    if call.op == Operation.BREAK_DEAL:
        return _apply_break_deal(agreement, call, now)
    elif call.op == Operation.CANCEL_DEAL_BREAK:
        return _apply_cancel_deal_break(agreement, call, now)
    raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported cancellation op: {call.op}")


# --- BREAK_DEAL ---

def _verify_break_deal(agreement: EscrowAgreement, call: Call) -> None:
    require_participant(agreement, call.caller)
    require_open(agreement)
    if agreement.current_state in DISPUTED_STATES:
        raise EscrowError(ErrorCode.DISPUTE_ACTIVE, "cannot break deal during a dispute")
    state = agreement.state
    if isinstance(state, CancelRequested) and state.initiator == call.caller:
        raise EscrowError(
            ErrorCode.PROCESS_NOT_ALLOWED,
            "break-deal must be confirmed by the other participant",
        )


def _apply_break_deal(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    role = require_participant(agreement, call.caller)
    state = agreement.state

    if not isinstance(state, CancelRequested):
        agreement.state = CancelRequested(initiator=call.caller, previous=state)
        event = emit(agreement, EventType.DEAL_BREAK_REQUESTED, call, now, role=role)
        return Effects(events=[event])

    client_refund = agreement.client_stake
    freelancer_refund = agreement.freelancer_stake
    transfers = custody.refund_all(agreement)
    agreement.state = DealBroken()
    event = emit(
        agreement,
        EventType.DEAL_BROKEN,
        call,
        now,
        role=role,
        client_refund=client_refund,
        freelancer_refund=freelancer_refund,
    )
    return Effects(transfers=transfers, events=[event])


# --- CANCEL_DEAL_BREAK ---

def _verify_cancel_deal_break(agreement: EscrowAgreement, call: Call) -> None:
    require_participant(agreement, call.caller)
    if not isinstance(agreement.state, CancelRequested):
        raise EscrowError(ErrorCode.NO_CANCEL_PENDING, "no break-deal request pending")


def _apply_cancel_deal_break(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    role: Role = require_participant(agreement, call.caller)
    state = expect_state(agreement, CancelRequested)
    agreement.state = restore_flow(state.previous)
    event = emit(agreement, EventType.DEAL_BREAK_CANCELLED, call, now, role=role)
    return Effects(events=[event])
