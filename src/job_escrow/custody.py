"""Stake custody ledger.

These helpers only touch the working copy of an agreement. The copy is
committed after the substrate confirms the resulting transfers, so a stake
is never zeroed for a transfer that did not happen.
"""

from __future__ import annotations

from typing import Optional

from .config import MAX_STAKE, MIN_STAKE
from .errors import ErrorCode, EscrowError
from .types import EscrowAgreement, Role, Transfer, TransferKind


def credit(agreement: EscrowAgreement, role: Role, amount: int) -> Transfer:
    """Record ``amount`` as the stake of ``role`` and take it into custody."""
    if amount < MIN_STAKE or amount > MAX_STAKE:
        raise EscrowError(ErrorCode.INVALID_AMOUNT, "stake out of range")
    if role == Role.CLIENT:
        if agreement.client_stake:
            raise EscrowError(ErrorCode.ALREADY_STAKED, "client already staked")
        agreement.client_stake = amount
        depositor = agreement.client
    elif role == Role.FREELANCER:
        if agreement.freelancer_stake:
            raise EscrowError(ErrorCode.ALREADY_STAKED, "freelancer already staked")
        agreement.freelancer_stake = amount
        depositor = agreement.freelancer
    else:
        raise EscrowError(ErrorCode.INVALID_ROLE, f"{role.value} cannot stake")
    agreement.custody += amount
    return Transfer(party=depositor, amount=amount, kind=TransferKind.DEPOSIT)


def pay_out(agreement: EscrowAgreement, recipient: bytes, amount: int) -> Transfer:
    if amount <= 0:
        raise EscrowError(ErrorCode.INVALID_AMOUNT, "payout must be > 0")
    if amount > agreement.custody:
        raise EscrowError(ErrorCode.INSUFFICIENT_CUSTODY, "payout exceeds custody balance")
    agreement.custody -= amount
    return Transfer(party=recipient, amount=amount, kind=TransferKind.PAYMENT)


def pay_out_all(agreement: EscrowAgreement, recipient: bytes) -> list[Transfer]:
    """Pay the entire custody balance to ``recipient`` and zero both stakes."""
    amount = agreement.custody
    agreement.client_stake = 0
    agreement.freelancer_stake = 0
    if amount == 0:
        return []
    return [pay_out(agreement, recipient, amount)]


def refund(agreement: EscrowAgreement, role: Role) -> Optional[Transfer]:
    """Zero the stake of ``role`` and return the transfer giving it back."""
    amount = agreement.stake_of(role)
    if amount == 0:
        return None
    if amount > agreement.custody:
        raise EscrowError(ErrorCode.INSUFFICIENT_CUSTODY, "refund exceeds custody balance")
    if role == Role.CLIENT:
        agreement.client_stake = 0
        recipient = agreement.client
    else:
        agreement.freelancer_stake = 0
        recipient = agreement.freelancer
    agreement.custody -= amount
    return Transfer(party=recipient, amount=amount, kind=TransferKind.REFUND)


def refund_all(agreement: EscrowAgreement) -> list[Transfer]:
    transfers = []
    for role in (Role.CLIENT, Role.FREELANCER):
        t = refund(agreement, role)
        if t is not None:
            transfers.append(t)
    return transfers
