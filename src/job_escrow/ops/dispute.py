"""Arbitrated dispute rules.

Only available when the agreement names an arbitrator. A dispute suspends
normal flow until the arbitrator resolves it with one of three outcomes:

- ``(0, 0)``: nothing moves, the interrupted flow state resumes;
- ``(client_stake, 0)`` or ``(client_stake, freelancer_stake)``: both stakes
  go back to their owners and the deal is broken;
- ``(0, freelancer_stake)`` or ``(0, custody)``: the freelancer receives the
  whole custody balance and the job completes. If only the freelancer had
  staked, the stake is refunded instead and the deal is broken.

Any other split is rejected.
"""

from __future__ import annotations

from enum import Enum

from .. import custody
from ..auth import require_participant, require_role
from ..errors import ErrorCode, EscrowError
from ..types import (
    Call,
    DISPUTED_STATES,
    DealBroken,
    Effects,
    EscrowAgreement,
    EscrowState,
    EventType,
    JobCompleted,
    Operation,
    PaymentDisputed,
    RandomDisputed,
    Role,
)
from .common import (
    emit,
    require_no_escape,
    require_no_value,
    require_open,
    require_payload,
    restore_flow,
)

# Flow states in which both stakes are in custody.
_FULLY_STAKED = frozenset({
    EscrowState.ALL_STAKED_AND_PENDING,
    EscrowState.PENDING_CLIENT_CONFIRMATION,
})


class Resolution(Enum):
    RESTORE = "restore"
    BREAK = "break"
    COMPLETE = "complete"


def verify(agreement: EscrowAgreement, call: Call, now: int) -> None:
    require_no_value(call)
    if call.op == Operation.RAISE_DISPUTE:
        _verify_raise_dispute(agreement, call)
    elif call.op == Operation.RESOLVE_DISPUTE:
        _verify_resolve_dispute(agreement, call)
    else:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported dispute op: {call.op}")


def apply(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    if call.op == Operation.RAISE_DISPUTE:
        return _apply_raise_dispute(agreement, call, now)
    elif call.op == Operation.RESOLVE_DISPUTE:
        return _apply_resolve_dispute(agreement, call, now)
    raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported dispute op: {call.op}")


def _require_dispute_enabled(agreement: EscrowAgreement) -> None:
    if not agreement.dispute_enabled:
        raise EscrowError(ErrorCode.DISPUTE_UNAVAILABLE, "agreement has no arbitrator")


# --- RAISE_DISPUTE ---

def _verify_raise_dispute(agreement: EscrowAgreement, call: Call) -> None:
    _require_dispute_enabled(agreement)
    require_participant(agreement, call.caller)
    require_open(agreement)
    require_no_escape(agreement)


def _apply_raise_dispute(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    role = require_participant(agreement, call.caller)
    agreement.state = RandomDisputed(raised_by=call.caller, previous=agreement.state)
    event = emit(agreement, EventType.DISPUTE_RAISED, call, now, role=role)
    return Effects(events=[event])


# --- RESOLVE_DISPUTE ---

def _portions(call: Call) -> tuple[int, int]:
    p = require_payload(call)
    missing = [k for k in ("client_portion", "freelancer_portion") if k not in p]
    if missing:
        raise EscrowError(ErrorCode.INVALID_PAYLOAD, f"missing {', '.join(missing)}")
    client_portion = p["client_portion"]
    freelancer_portion = p["freelancer_portion"]
    for value in (client_portion, freelancer_portion):
        if not isinstance(value, int) or isinstance(value, bool):
            raise EscrowError(ErrorCode.INVALID_PAYLOAD, "portions must be integers")
        if value < 0:
            raise EscrowError(ErrorCode.INVALID_AMOUNT, "portions must be >= 0")
    return client_portion, freelancer_portion


def classify(agreement: EscrowAgreement, client_portion: int, freelancer_portion: int) -> Resolution:
    """Map an arbitrator's split onto one of the three allowed outcomes."""
    if client_portion == 0 and freelancer_portion == 0:
        return Resolution.RESTORE

    if client_portion != 0:
        if client_portion == agreement.client_stake and freelancer_portion in (
            0,
            agreement.freelancer_stake,
        ):
            return Resolution.BREAK
    elif freelancer_portion in (agreement.freelancer_stake, agreement.custody):
        if agreement.previous_state in _FULLY_STAKED:
            return Resolution.COMPLETE
        if agreement.previous_state == EscrowState.FREELANCER_STAKED:
            # The lone stake goes back to the freelancer.
            return Resolution.BREAK
        raise EscrowError(
            ErrorCode.INVALID_FUNDS_DISTRIBUTION,
            "freelancer can only be paid once both parties have staked",
        )

    raise EscrowError(
        ErrorCode.INVALID_FUNDS_DISTRIBUTION,
        f"split ({client_portion}, {freelancer_portion}) does not match stakes "
        f"({agreement.client_stake}, {agreement.freelancer_stake})",
    )


def _verify_resolve_dispute(agreement: EscrowAgreement, call: Call) -> None:
    _require_dispute_enabled(agreement)
    require_role(agreement, call.caller, Role.ARBITRATOR)
    client_portion, freelancer_portion = _portions(call)
    if agreement.current_state not in DISPUTED_STATES:
        raise EscrowError(ErrorCode.NO_DISPUTE, "no dispute to resolve")
    classify(agreement, client_portion, freelancer_portion)


def _apply_resolve_dispute(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    client_portion, freelancer_portion = _portions(call)
    resolution = classify(agreement, client_portion, freelancer_portion)
    state = agreement.state
    if not isinstance(state, (RandomDisputed, PaymentDisputed)):
        raise EscrowError(ErrorCode.NO_DISPUTE, "no dispute to resolve")

    if resolution == Resolution.RESTORE:
        transfers = []
        agreement.state = restore_flow(state.previous)
    elif resolution == Resolution.BREAK:
        transfers = custody.refund_all(agreement)
        agreement.state = DealBroken()
    else:
        transfers = custody.pay_out_all(agreement, agreement.freelancer)
        agreement.state = JobCompleted()

    client_received = sum(t.amount for t in transfers if t.party == agreement.client)
    freelancer_received = sum(t.amount for t in transfers if t.party == agreement.freelancer)
    event = emit(
        agreement,
        EventType.DISPUTE_RESOLVED,
        call,
        now,
        role=Role.ARBITRATOR,
        client_portion=client_portion,
        freelancer_portion=freelancer_portion,
        client_received=client_received,
        freelancer_received=freelancer_received,
    )
    return Effects(transfers=transfers, events=[event])
