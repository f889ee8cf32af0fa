"""State transition entrypoints for job escrow agreements."""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Optional

from .config import (
    DEFAULT_CONFIRMATION_PERIOD,
    MAX_CONFIRMATION_PERIOD,
    MAX_IDENTITY_LEN,
    MAX_JOB_ID_LEN,
    MIN_CONFIRMATION_PERIOD,
)
from .digest import custody_account
from .env import TransferSubstrate
from .errors import ErrorCode, EscrowError
from .ops import cancellation as op_cancellation
from .ops import completion as op_completion
from .ops import dispute as op_dispute
from .ops import funding as op_funding
from .types import (
    Agreed,
    Call,
    Effects,
    EscrowAgreement,
    Event,
    Operation,
    Transfer,
    TransferKind,
)

logger = logging.getLogger(__name__)

_COMPLETION_OPS = frozenset({
    Operation.REQUEST_UNILATERAL_COMPLETION,
    Operation.FINALIZE_UNILATERAL,
    Operation.ACCEPT_COMPLETION,
    Operation.REJECT_COMPLETION,
    Operation.COMPLETE_BILATERALLY,
})

_CANCELLATION_OPS = frozenset({
    Operation.BREAK_DEAL,
    Operation.CANCEL_DEAL_BREAK,
})

_DISPUTE_OPS = frozenset({
    Operation.RAISE_DISPUTE,
    Operation.RESOLVE_DISPUTE,
})


class TransitionResult:
    """Thin wrapper for verify/apply results."""

    def __init__(
        self,
        ok: bool,
        error: Optional[EscrowError] = None,
        events: Optional[list[Event]] = None,
        transfers: Optional[list[Transfer]] = None,
    ):
        self.ok = ok
        self.error = error
        self.events = events or []
        self.transfers = transfers or []

    @classmethod
    def success(cls, effects: Optional[Effects] = None) -> "TransitionResult":
        if effects is None:
            return cls(True)
        return cls(True, None, effects.events, effects.transfers)

    @classmethod
    def failure(cls, error: EscrowError) -> "TransitionResult":
        return cls(False, error)


def _check_identity(name: str, identity: Optional[bytes]) -> None:
    if not isinstance(identity, bytes) or not identity or len(identity) > MAX_IDENTITY_LEN:
        raise EscrowError(ErrorCode.INVALID_ADDRESS, f"invalid {name} identity")


def create_agreement(
    job_id: str,
    client: bytes,
    freelancer: bytes,
    arbitrator: Optional[bytes] = None,
    confirmation_period: int = DEFAULT_CONFIRMATION_PERIOD,
    now: int = 0,
) -> EscrowAgreement:
    """Validate creation parameters and return a fresh agreement in AGREED."""
    if not isinstance(job_id, str) or not job_id or len(job_id) > MAX_JOB_ID_LEN:
        raise EscrowError(ErrorCode.INVALID_PAYLOAD, "invalid job_id")

    _check_identity("client", client)
    _check_identity("freelancer", freelancer)
    if client == freelancer:
        raise EscrowError(ErrorCode.SELF_OPERATION, "client cannot be freelancer")
    if arbitrator is not None:
        _check_identity("arbitrator", arbitrator)
        if arbitrator in (client, freelancer):
            raise EscrowError(ErrorCode.SELF_OPERATION, "arbitrator must be a third party")

    if (
        not isinstance(confirmation_period, int)
        or confirmation_period < MIN_CONFIRMATION_PERIOD
        or confirmation_period > MAX_CONFIRMATION_PERIOD
    ):
        raise EscrowError(ErrorCode.INVALID_PAYLOAD, "confirmation_period out of range")

    return EscrowAgreement(
        job_id=job_id,
        client=client,
        freelancer=freelancer,
        arbitrator=arbitrator,
        confirmation_period=confirmation_period,
        state=Agreed(),
        created_at=now,
        updated_at=now,
    )


def _dispatch_verify(agreement: EscrowAgreement, call: Call, now: int) -> None:
    op = call.op
    if op == Operation.FUND_STAKE:
        return op_funding.verify(agreement, call, now)
    if op in _COMPLETION_OPS:
        return op_completion.verify(agreement, call, now)
    if op in _CANCELLATION_OPS:
        return op_cancellation.verify(agreement, call, now)
    if op in _DISPUTE_OPS:
        return op_dispute.verify(agreement, call, now)

    raise EscrowError(ErrorCode.INVALID_OPERATION, f"verify not implemented for {op}")


def _dispatch_apply(agreement: EscrowAgreement, call: Call, now: int) -> Effects:
    op = call.op
    if op == Operation.FUND_STAKE:
        return op_funding.apply(agreement, call, now)
    if op in _COMPLETION_OPS:
        return op_completion.apply(agreement, call, now)
    if op in _CANCELLATION_OPS:
        return op_cancellation.apply(agreement, call, now)
    if op in _DISPUTE_OPS:
        return op_dispute.apply(agreement, call, now)

    raise EscrowError(ErrorCode.INVALID_OPERATION, f"apply not implemented for {op}")


def _verify_common(call: Call) -> None:
    if not isinstance(call.op, Operation):
        raise EscrowError(ErrorCode.INVALID_OPERATION, f"unknown operation: {call.op!r}")
    if not isinstance(call.caller, bytes) or not call.caller:
        raise EscrowError(ErrorCode.INVALID_ADDRESS, "caller identity required")
    if not isinstance(call.value, int) or call.value < 0:
        raise EscrowError(ErrorCode.INVALID_AMOUNT, "attached value must be >= 0")


def verify_call(agreement: EscrowAgreement, call: Call, now: int) -> TransitionResult:
    """Check whether ``call`` would be accepted at time ``now``."""
    try:
        _verify_common(call)
        _dispatch_verify(agreement, call, now)
        return TransitionResult.success()
    except EscrowError as exc:
        return TransitionResult.failure(exc)


def _transfer_error(transfers: list[Transfer]) -> EscrowError:
    kinds = {t.kind for t in transfers}
    if TransferKind.DEPOSIT in kinds:
        return EscrowError(ErrorCode.DEPOSIT_ERROR, "stake deposit could not be collected")
    if TransferKind.PAYMENT in kinds:
        return EscrowError(ErrorCode.PAYMENT_ERROR, "payment to freelancer failed")
    return EscrowError(ErrorCode.REFUND_ERROR, "stake refund failed")


def apply_call(
    agreement: EscrowAgreement,
    call: Call,
    substrate: TransferSubstrate,
    now: int,
) -> tuple[EscrowAgreement, TransitionResult]:
    """Apply ``call`` to ``agreement`` after verification.

    Failed-call semantics: the original agreement is returned untouched and
    no transfer is made. The new agreement is only returned once the
    substrate has executed every transfer the call produced.
    """
    try:
        _verify_common(call)
        _dispatch_verify(agreement, call, now)
    except EscrowError as exc:
        return agreement, TransitionResult.failure(exc)

    working = deepcopy(agreement)
    try:
        effects = _dispatch_apply(working, call, now)
    except EscrowError as exc:
        return agreement, TransitionResult.failure(exc)
    working.updated_at = now

    if effects.transfers:
        if not substrate.execute(custody_account(agreement.job_id), effects.transfers):
            error = _transfer_error(effects.transfers)
            logger.warning(
                "job %s: %s rejected by substrate (%s)",
                agreement.job_id,
                call.op.value,
                error.code.name,
            )
            return agreement, TransitionResult.failure(error)

    return working, TransitionResult.success(effects)


def apply_calls(
    agreement: EscrowAgreement,
    calls: list[tuple[int, Call]],
    substrate: TransferSubstrate,
) -> tuple[EscrowAgreement, list[TransitionResult]]:
    """Apply timestamped calls in order; failed calls leave the agreement as it was."""
    results = []
    working = agreement
    for now, call in calls:
        working, result = apply_call(working, call, substrate, now)
        results.append(result)
    return working, results
