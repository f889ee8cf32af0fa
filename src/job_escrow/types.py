"""Core types for the job escrow state machine.

Agreement states are modelled as one frozen dataclass per state. Only the
variants that need extra data carry it: the pending-confirmation state holds
the timer start, escape states hold the flow state they interrupted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Optional, Union

from .config import DEFAULT_CONFIRMATION_PERIOD


class Role(Enum):
    CLIENT = "client"
    FREELANCER = "freelancer"
    ARBITRATOR = "arbitrator"


class EscrowState(Enum):
    AGREED = "agreed"
    CLIENT_STAKED = "client_staked"
    FREELANCER_STAKED = "freelancer_staked"
    ALL_STAKED_AND_PENDING = "all_staked_and_pending"
    PENDING_CLIENT_CONFIRMATION = "pending_client_confirmation"
    JOB_COMPLETED = "job_completed"
    DEAL_BROKEN = "deal_broken"
    CANCEL_REQUESTED = "cancel_requested"
    RANDOM_DISPUTED = "random_disputed"
    PAYMENT_DISPUTED = "payment_disputed"


TERMINAL_STATES = frozenset({EscrowState.JOB_COMPLETED, EscrowState.DEAL_BROKEN})
DISPUTED_STATES = frozenset({EscrowState.RANDOM_DISPUTED, EscrowState.PAYMENT_DISPUTED})
ESCAPE_STATES = DISPUTED_STATES | {EscrowState.CANCEL_REQUESTED}
FLOW_STATES = frozenset(EscrowState) - TERMINAL_STATES - ESCAPE_STATES


class Operation(Enum):
    FUND_STAKE = "fund_stake"
    REQUEST_UNILATERAL_COMPLETION = "request_unilateral_completion"
    FINALIZE_UNILATERAL = "finalize_unilateral"
    ACCEPT_COMPLETION = "accept_completion"
    REJECT_COMPLETION = "reject_completion"
    COMPLETE_BILATERALLY = "complete_bilaterally"
    BREAK_DEAL = "break_deal"
    CANCEL_DEAL_BREAK = "cancel_deal_break"
    RAISE_DISPUTE = "raise_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"


# --- Flow states ---


@dataclass(frozen=True)
class Agreed:
    kind: ClassVar[EscrowState] = EscrowState.AGREED


@dataclass(frozen=True)
class ClientStaked:
    kind: ClassVar[EscrowState] = EscrowState.CLIENT_STAKED


@dataclass(frozen=True)
class FreelancerStaked:
    kind: ClassVar[EscrowState] = EscrowState.FREELANCER_STAKED


@dataclass(frozen=True)
class AllStakedAndPending:
    kind: ClassVar[EscrowState] = EscrowState.ALL_STAKED_AND_PENDING


@dataclass(frozen=True)
class PendingClientConfirmation:
    kind: ClassVar[EscrowState] = EscrowState.PENDING_CLIENT_CONFIRMATION
    requested_at: int


# --- Terminal states ---


@dataclass(frozen=True)
class JobCompleted:
    kind: ClassVar[EscrowState] = EscrowState.JOB_COMPLETED


@dataclass(frozen=True)
class DealBroken:
    kind: ClassVar[EscrowState] = EscrowState.DEAL_BROKEN


FlowState = Union[
    Agreed, ClientStaked, FreelancerStaked, AllStakedAndPending, PendingClientConfirmation
]


def _require_flow(previous: object) -> None:
    if getattr(previous, "kind", None) not in FLOW_STATES:
        raise ValueError(f"escape states must interrupt a flow state, got {previous!r}")


# --- Escape states ---


@dataclass(frozen=True)
class CancelRequested:
    kind: ClassVar[EscrowState] = EscrowState.CANCEL_REQUESTED
    initiator: bytes
    previous: FlowState

    def __post_init__(self) -> None:
        _require_flow(self.previous)


@dataclass(frozen=True)
class RandomDisputed:
    kind: ClassVar[EscrowState] = EscrowState.RANDOM_DISPUTED
    raised_by: bytes
    previous: FlowState

    def __post_init__(self) -> None:
        _require_flow(self.previous)


@dataclass(frozen=True)
class PaymentDisputed:
    kind: ClassVar[EscrowState] = EscrowState.PAYMENT_DISPUTED
    raised_by: bytes
    previous: FlowState

    def __post_init__(self) -> None:
        _require_flow(self.previous)


AgreementState = Union[
    Agreed,
    ClientStaked,
    FreelancerStaked,
    AllStakedAndPending,
    PendingClientConfirmation,
    JobCompleted,
    DealBroken,
    CancelRequested,
    RandomDisputed,
    PaymentDisputed,
]

STATE_CLASSES: dict[EscrowState, type] = {
    cls.kind: cls
    for cls in (
        Agreed,
        ClientStaked,
        FreelancerStaked,
        AllStakedAndPending,
        PendingClientConfirmation,
        JobCompleted,
        DealBroken,
        CancelRequested,
        RandomDisputed,
        PaymentDisputed,
    )
}


# --- Agreement ---


@dataclass
class EscrowAgreement:
    job_id: str
    client: bytes
    freelancer: bytes
    arbitrator: Optional[bytes] = None
    confirmation_period: int = DEFAULT_CONFIRMATION_PERIOD
    client_stake: int = 0
    freelancer_stake: int = 0
    custody: int = 0
    state: AgreementState = field(default_factory=Agreed)
    created_at: int = 0
    updated_at: int = 0

    @property
    def current_state(self) -> EscrowState:
        return self.state.kind

    @property
    def previous_state(self) -> Optional[EscrowState]:
        previous = getattr(self.state, "previous", None)
        return previous.kind if previous is not None else None

    @property
    def cancel_initiator(self) -> Optional[bytes]:
        if isinstance(self.state, CancelRequested):
            return self.state.initiator
        return None

    @property
    def unilateral_request_time(self) -> Optional[int]:
        if isinstance(self.state, PendingClientConfirmation):
            return self.state.requested_at
        return None

    @property
    def is_terminal(self) -> bool:
        return self.current_state in TERMINAL_STATES

    @property
    def dispute_enabled(self) -> bool:
        return self.arbitrator is not None

    def identity_of(self, role: Role) -> Optional[bytes]:
        if role == Role.CLIENT:
            return self.client
        if role == Role.FREELANCER:
            return self.freelancer
        return self.arbitrator

    def stake_of(self, role: Role) -> int:
        if role == Role.CLIENT:
            return self.client_stake
        if role == Role.FREELANCER:
            return self.freelancer_stake
        return 0


# --- Calls and effects ---


@dataclass
class Call:
    caller: bytes
    op: Operation
    payload: dict = field(default_factory=dict)
    value: int = 0


class TransferKind(Enum):
    DEPOSIT = "deposit"  # party -> custody
    PAYMENT = "payment"  # custody -> party
    REFUND = "refund"  # custody -> party


@dataclass(frozen=True)
class Transfer:
    party: bytes
    amount: int
    kind: TransferKind

    @property
    def outbound(self) -> bool:
        return self.kind != TransferKind.DEPOSIT


class EventType(Enum):
    STAKE_FUNDED = "stake_funded"
    UNILATERAL_COMPLETION_REQUESTED = "unilateral_completion_requested"
    UNILATERAL_COMPLETION_FINALIZED = "unilateral_completion_finalized"
    COMPLETION_ACCEPTED = "completion_accepted"
    COMPLETION_REJECTED = "completion_rejected"
    COMPLETED_BILATERALLY = "completed_bilaterally"
    DEAL_BREAK_REQUESTED = "deal_break_requested"
    DEAL_BREAK_CANCELLED = "deal_break_cancelled"
    DEAL_BROKEN = "deal_broken"
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESOLVED = "dispute_resolved"


@dataclass(frozen=True)
class Event:
    event_type: EventType
    job_id: str
    actor: bytes
    state: EscrowState
    timestamp: int
    role: Optional[Role] = None
    amounts: dict[str, int] = field(default_factory=dict)


@dataclass
class Effects:
    """Transfers to execute and events to emit for one accepted call."""

    transfers: list[Transfer] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)


# --- Transfer substrate accounts ---


@dataclass
class AccountState:
    address: bytes
    balance: int = 0
    rejects_transfers: bool = False
