"""Job completion rules: unilateral, bilateral, accept and reject."""

from __future__ import annotations

from .. import custody, timer
from ..auth import require_role
from ..errors import ErrorCode, EscrowError
from ..types import (
    AllStakedAndPending,
    Call,
    Effects,
    EscrowAgreement,
    EscrowState,
    EventType,
    JobCompleted,
    Operation,
    PaymentDisputed,
    PendingClientConfirmation,
    Role,
)
from .common import emit, expect_state, require_no_escape, require_no_value, require_state

_COMPLETION_OPS = frozenset({
    Operation.REQUEST_UNILATERAL_COMPLETION,
    Operation.FINALIZE_UNILATERAL,
    Operation.ACCEPT_COMPLETION,
    Operation.REJECT_COMPLETION,
    Operation.COMPLETE_BILATERALLY,
})


def verify(agreement: EscrowAgreement, call: Call, now: int) -> None:
    op = call.op
    if op not in _COMPLETION_OPS:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported completion op: {op}")
    require_no_value(call)

    if op == Operation.REQUEST_UNILATERAL_COMPLETION:
        _verify_request_unilateral(agreement, call)
    elif op == Operation.FINALIZE_UNILATERAL:
        _verify_finalize_unilateral(agreement, call, now)
    elif op in (Operation.ACCEPT_COMPLETION, Operation.REJECT_COMPLETION):
        _verify_client_decision(agreement, call)
    elif op == Operation.COMPLETE_BILATERALLY:
        _verify_complete_bilaterally(agreement, call)


def apply(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    op = call.op
    if op == Operation.REQUEST_UNILATERAL_COMPLETION:
        return _apply_request_unilateral(agreement, call, now)
    elif op == Operation.FINALIZE_UNILATERAL:
        return _apply_pay_freelancer(agreement, call, now, EventType.UNILATERAL_COMPLETION_FINALIZED)
    elif op == Operation.ACCEPT_COMPLETION:
        return _apply_pay_freelancer(agreement, call, now, EventType.COMPLETION_ACCEPTED)
    elif op == Operation.REJECT_COMPLETION:
        return _apply_reject(agreement, call, now)
    elif op == Operation.COMPLETE_BILATERALLY:
        return _apply_pay_freelancer(agreement, call, now, EventType.COMPLETED_BILATERALLY)
    raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported completion op: {op}")


# --- REQUEST_UNILATERAL_COMPLETION ---

def _verify_request_unilateral(agreement: EscrowAgreement, call: Call) -> None:
    require_role(agreement, call.caller, Role.FREELANCER)
    require_no_escape(agreement)
    require_state(agreement, "unilateral completion request", EscrowState.ALL_STAKED_AND_PENDING)


def _apply_request_unilateral(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    agreement.state = timer.start(now)
    event = emit(
        agreement,
        EventType.UNILATERAL_COMPLETION_REQUESTED,
        call,
        now,
        role=Role.FREELANCER,
        deadline=timer.deadline(agreement.state, agreement.confirmation_period),
    )
    return Effects(events=[event])


# --- FINALIZE_UNILATERAL ---

def _verify_finalize_unilateral(agreement: EscrowAgreement, call: Call, now: int) -> None:
    # Anyone may finalize once the window has elapsed.
    require_no_escape(agreement)
    require_state(agreement, "unilateral finalization", EscrowState.PENDING_CLIENT_CONFIRMATION)
    state = expect_state(agreement, PendingClientConfirmation)
    if not timer.is_expired(state, agreement.confirmation_period, now):
        left = timer.remaining(state, agreement.confirmation_period, now)
        raise EscrowError(
            ErrorCode.ACTIVE_CONFIRMATION_PERIOD,
            f"confirmation period active for another {left}s",
        )


# --- ACCEPT_COMPLETION / REJECT_COMPLETION ---

def _verify_client_decision(agreement: EscrowAgreement, call: Call) -> None:
    require_role(agreement, call.caller, Role.CLIENT)
    require_no_escape(agreement)
    require_state(agreement, call.op.value, EscrowState.PENDING_CLIENT_CONFIRMATION)


def _apply_reject(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    pending = expect_state(agreement, PendingClientConfirmation)
    if agreement.dispute_enabled:
        agreement.state = PaymentDisputed(raised_by=call.caller, previous=pending)
    else:
        agreement.state = AllStakedAndPending()
    event = emit(agreement, EventType.COMPLETION_REJECTED, call, now, role=Role.CLIENT)
    return Effects(events=[event])


# --- COMPLETE_BILATERALLY ---

def _verify_complete_bilaterally(agreement: EscrowAgreement, call: Call) -> None:
    require_role(agreement, call.caller, Role.CLIENT)
    require_no_escape(agreement)
    require_state(agreement, "bilateral completion", EscrowState.ALL_STAKED_AND_PENDING)


# --- payout to freelancer ---

def _apply_pay_freelancer(
    agreement: EscrowAgreement, call: Call, now: int, event_type: EventType
) -> Effects:
    transfers = custody.pay_out_all(agreement, agreement.freelancer)
    agreement.state = JobCompleted()
    paid = sum(t.amount for t in transfers)
    event = emit(agreement, event_type, call, now, payout=paid)
    return Effects(transfers=transfers, events=[event])
