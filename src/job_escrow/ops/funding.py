"""Stake funding rules."""

from __future__ import annotations

from .. import custody
from ..auth import require_role
from ..errors import ErrorCode, EscrowError
from ..types import (
    AllStakedAndPending,
    Call,
    ClientStaked,
    Effects,
    EscrowAgreement,
    EscrowState,
    EventType,
    FreelancerStaked,
    Operation,
    Role,
)
from .common import emit, require_no_escape, require_payload

# Staked state reached by each role from AGREED, and the state the other
# role must be in for this funding to complete the pair.
_FIRST_STAKE = {
    Role.CLIENT: ClientStaked,
    Role.FREELANCER: FreelancerStaked,
}
_PAIR_STATE = {
    Role.CLIENT: EscrowState.FREELANCER_STAKED,
    Role.FREELANCER: EscrowState.CLIENT_STAKED,
}


def _parse_role(value: object) -> Role:
    if isinstance(value, Role):
        role = value
    else:
        try:
            role = Role(value)
        except ValueError:
            raise EscrowError(ErrorCode.INVALID_ROLE, f"unknown role: {value!r}") from None
    if role not in _FIRST_STAKE:
        raise EscrowError(ErrorCode.INVALID_ROLE, f"{role.value} cannot stake")
    return role


def verify(agreement: EscrowAgreement, call: Call, now: int) -> None:
    if call.op != Operation.FUND_STAKE:
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unsupported funding op: {call.op}")
    p = require_payload(call)
    role = _parse_role(p.get("role"))
    if call.value <= 0:
        raise EscrowError(ErrorCode.INVALID_AMOUNT, "stake must be > 0")

    require_role(agreement, call.caller, role)
    require_no_escape(agreement)

    if agreement.current_state not in (EscrowState.AGREED, _PAIR_STATE[role]):
        raise EscrowError(
            ErrorCode.ALREADY_STAKED,
            f"{role.value} cannot stake in state {agreement.current_state.value}",
        )


def apply(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    role = _parse_role(call.payload.get("role"))
    deposit = custody.credit(agreement, role, call.value)

    if agreement.current_state == EscrowState.AGREED:
        agreement.state = _FIRST_STAKE[role]()
    else:
        agreement.state = AllStakedAndPending()

    event = emit(
        agreement,
        EventType.STAKE_FUNDED,
        call,
        now,
        role=role,
        stake=call.value,
        custody=agreement.custody,
    )
    return Effects(transfers=[deposit], events=[event])
