"""Job escrow error codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCategory(IntEnum):
    SUCCESS = 0x00
    VALIDATION = 0x01
    AUTHORIZATION = 0x02
    STATE = 0x04
    TIMING = 0x05
    TRANSFER = 0x06
    DISTRIBUTION = 0x07
    INTERNAL = 0xFF


class ErrorCode(IntEnum):
    # Success
    SUCCESS = 0x0000

    # Validation
    INVALID_AMOUNT = 0x0105
    INVALID_ADDRESS = 0x0106
    INVALID_PAYLOAD = 0x0107
    INVALID_ROLE = 0x0108
    INVALID_OPERATION = 0x0109
    SELF_OPERATION = 0x010A

    # Authorization
    NOT_CLIENT = 0x0201
    NOT_FREELANCER = 0x0202
    NOT_ARBITRATOR = 0x0205
    NOT_PARTICIPANT = 0x0206

    # State
    WRONG_STATE = 0x0403
    ALREADY_STAKED = 0x0410
    PROCESS_NOT_ALLOWED = 0x0411
    DEAL_ALREADY_BROKEN = 0x0412
    JOB_ALREADY_COMPLETED = 0x0413
    CANCEL_ACTIVE = 0x0414
    DISPUTE_ACTIVE = 0x0415
    NO_CANCEL_PENDING = 0x0416
    NO_DISPUTE = 0x0417
    DISPUTE_UNAVAILABLE = 0x0418
    REENTRANT_CALL = 0x0419
    INSUFFICIENT_CUSTODY = 0x041A

    # Timing
    ACTIVE_CONFIRMATION_PERIOD = 0x0500

    # Transfer
    PAYMENT_ERROR = 0x0600
    REFUND_ERROR = 0x0601
    DEPOSIT_ERROR = 0x0602

    # Distribution
    INVALID_FUNDS_DISTRIBUTION = 0x0700

    # Internal
    INTERNAL_ERROR = 0xFF00
    UNKNOWN = 0xFFFF

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self.value >> 8)


@dataclass(frozen=True)
class EscrowError(Exception):
    code: ErrorCode
    message: str

    @property
    def category(self) -> ErrorCategory:
        return self.code.category

    @property
    def retriable(self) -> bool:
        """Whether re-invoking the same call later may succeed."""
        return self.category in (ErrorCategory.TIMING, ErrorCategory.TRANSFER)

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen.
_EXCEPTION_ATTRS = frozenset(("__traceback__", "__context__", "__cause__"))
_frozen_setattr = EscrowError.__setattr__


def _escrow_error_setattr(self: EscrowError, name: str, value: object) -> None:
    if name in _EXCEPTION_ATTRS:
        object.__setattr__(self, name, value)
    else:
        _frozen_setattr(self, name, value)


EscrowError.__setattr__ = _escrow_error_setattr  # type: ignore[method-assign]
