"""Caller authorization checks."""

from __future__ import annotations

from typing import Optional

from .errors import ErrorCode, EscrowError
from .types import EscrowAgreement, Role

_ROLE_ERRORS = {
    Role.CLIENT: ErrorCode.NOT_CLIENT,
    Role.FREELANCER: ErrorCode.NOT_FREELANCER,
    Role.ARBITRATOR: ErrorCode.NOT_ARBITRATOR,
}

PARTICIPANTS = (Role.CLIENT, Role.FREELANCER)


def role_of(agreement: EscrowAgreement, caller: bytes) -> Optional[Role]:
    if caller == agreement.client:
        return Role.CLIENT
    if caller == agreement.freelancer:
        return Role.FREELANCER
    if agreement.arbitrator is not None and caller == agreement.arbitrator:
        return Role.ARBITRATOR
    return None


def require_role(agreement: EscrowAgreement, caller: bytes, role: Role) -> Role:
    """Fail unless ``caller`` holds ``role`` in this agreement."""
    identity = agreement.identity_of(role)
    if identity is None or caller != identity:
        raise EscrowError(_ROLE_ERRORS[role], f"caller is not the {role.value}")
    return role


def require_participant(agreement: EscrowAgreement, caller: bytes) -> Role:
    """Fail unless ``caller`` is the client or the freelancer."""
    role = role_of(agreement, caller)
    if role not in PARTICIPANTS:
        raise EscrowError(ErrorCode.NOT_PARTICIPANT, "caller is not a participant")
    return role

