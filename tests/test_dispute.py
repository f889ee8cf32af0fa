"""Arbitrated disputes."""

from __future__ import annotations

import pytest

from conftest import BALANCE, STAKE, stake_both

from job_escrow.accounts import ARBITRATOR, CLIENT, FREELANCER, MALLORY
from job_escrow.errors import ErrorCategory, ErrorCode, EscrowError
from job_escrow.ops.dispute import Resolution, classify
from job_escrow.types import (
    AllStakedAndPending,
    Call,
    ClientStaked,
    EscrowAgreement,
    EscrowState,
    EventType,
    FreelancerStaked,
    Operation,
    RandomDisputed,
    Role,
    TransferKind,
)


def _disputed(client_stake: int, freelancer_stake: int, previous=None) -> EscrowAgreement:
    return EscrowAgreement(
        job_id="job-1",
        client=CLIENT,
        freelancer=FREELANCER,
        arbitrator=ARBITRATOR,
        client_stake=client_stake,
        freelancer_stake=freelancer_stake,
        custody=client_stake + freelancer_stake,
        state=RandomDisputed(raised_by=CLIENT, previous=previous or AllStakedAndPending()),
    )


# --- raise_dispute ---

@pytest.mark.parametrize("caller,role", [(CLIENT, "client"), (FREELANCER, "freelancer")])
def test_either_participant_raises(staked, caller, role) -> None:
    events = staked.raise_dispute(caller)
    assert events[0].event_type == EventType.DISPUTE_RAISED
    assert events[0].role.value == role
    assert staked.current_state == EscrowState.RANDOM_DISPUTED
    assert staked.previous_state == EscrowState.ALL_STAKED_AND_PENDING
    assert staked.custody == 2 * STAKE


def test_raise_from_agreed(controller) -> None:
    controller.raise_dispute(CLIENT)
    assert controller.current_state == EscrowState.RANDOM_DISPUTED
    assert controller.previous_state == EscrowState.AGREED


def test_raise_without_arbitrator(simple_controller) -> None:
    stake_both(simple_controller)
    with pytest.raises(EscrowError) as exc:
        simple_controller.raise_dispute(CLIENT)
    assert exc.value.code == ErrorCode.DISPUTE_UNAVAILABLE


@pytest.mark.parametrize("caller", [ARBITRATOR, MALLORY])
def test_raise_requires_participant(staked, caller) -> None:
    with pytest.raises(EscrowError) as exc:
        staked.raise_dispute(caller)
    assert exc.value.code == ErrorCode.NOT_PARTICIPANT


def test_raise_twice(staked) -> None:
    staked.raise_dispute(CLIENT)
    with pytest.raises(EscrowError) as exc:
        staked.raise_dispute(FREELANCER)
    assert exc.value.code == ErrorCode.DISPUTE_ACTIVE


def test_raise_after_deal_broken(staked) -> None:
    staked.break_deal(CLIENT)
    staked.break_deal(FREELANCER)
    with pytest.raises(EscrowError) as exc:
        staked.raise_dispute(CLIENT)
    assert exc.value.code == ErrorCode.DEAL_ALREADY_BROKEN


def test_flow_ops_blocked_during_dispute(pending) -> None:
    pending.raise_dispute(FREELANCER)
    for call in (
        Call(CLIENT, Operation.ACCEPT_COMPLETION),
        Call(MALLORY, Operation.FINALIZE_UNILATERAL),
        Call(CLIENT, Operation.COMPLETE_BILATERALLY),
    ):
        with pytest.raises(EscrowError) as exc:
            pending.submit(call)
        assert exc.value.code == ErrorCode.DISPUTE_ACTIVE


# --- resolve_dispute ---

def test_payment_dispute_resolved_for_freelancer(pending, ledger) -> None:
    pending.reject_completion(CLIENT)
    assert pending.current_state == EscrowState.PAYMENT_DISPUTED

    events = pending.resolve_dispute(ARBITRATOR, 0, 2 * STAKE)
    assert events[0].event_type == EventType.DISPUTE_RESOLVED
    assert events[0].amounts["freelancer_received"] == 2 * STAKE
    assert events[0].amounts["client_received"] == 0
    assert pending.current_state == EscrowState.JOB_COMPLETED
    assert pending.client_stake == 0
    assert pending.freelancer_stake == 0
    assert ledger.balance_of(FREELANCER) == BALANCE + STAKE
    assert ledger.balance_of(CLIENT) == BALANCE - STAKE


def test_freelancer_stake_split_pays_whole_custody(staked, ledger) -> None:
    staked.raise_dispute(FREELANCER)
    staked.resolve_dispute(ARBITRATOR, 0, STAKE)
    assert staked.current_state == EscrowState.JOB_COMPLETED
    assert ledger.balance_of(FREELANCER) == BALANCE + STAKE


@pytest.mark.parametrize("freelancer_portion", [0, STAKE])
def test_client_split_breaks_deal(staked, ledger, freelancer_portion) -> None:
    staked.raise_dispute(CLIENT)
    events = staked.resolve_dispute(ARBITRATOR, STAKE, freelancer_portion)
    assert staked.current_state == EscrowState.DEAL_BROKEN
    assert events[0].amounts["client_received"] == STAKE
    assert events[0].amounts["freelancer_received"] == STAKE
    assert ledger.balance_of(CLIENT) == BALANCE
    assert ledger.balance_of(FREELANCER) == BALANCE
    assert ledger.balance_of(staked.custody_account) == 0


def test_zero_split_restores_flow(staked, ledger) -> None:
    staked.raise_dispute(CLIENT)
    staked.resolve_dispute(ARBITRATOR, 0, 0)
    assert staked.current_state == EscrowState.ALL_STAKED_AND_PENDING
    assert staked.custody == 2 * STAKE
    assert ledger.balance_of(staked.custody_account) == 2 * STAKE


def test_zero_split_after_rejection_requires_new_request(pending) -> None:
    pending.reject_completion(CLIENT)
    pending.resolve_dispute(ARBITRATOR, 0, 0)
    assert pending.current_state == EscrowState.ALL_STAKED_AND_PENDING
    assert pending.unilateral_request_time is None


def test_unequal_stakes(controller, ledger) -> None:
    stake_both(controller, client=STAKE, freelancer=40)
    controller.raise_dispute(CLIENT)
    with pytest.raises(EscrowError) as exc:
        controller.resolve_dispute(ARBITRATOR, 0, STAKE)
    assert exc.value.code == ErrorCode.INVALID_FUNDS_DISTRIBUTION

    controller.resolve_dispute(ARBITRATOR, 0, 40)
    assert ledger.balance_of(FREELANCER) == BALANCE - 40 + STAKE + 40


def test_single_stake_dispute_can_only_refund(controller, ledger) -> None:
    controller.fund_stake(CLIENT, Role.CLIENT, STAKE)
    controller.raise_dispute(FREELANCER)
    with pytest.raises(EscrowError) as exc:
        controller.resolve_dispute(ARBITRATOR, 0, STAKE)
    assert exc.value.code == ErrorCode.INVALID_FUNDS_DISTRIBUTION

    controller.resolve_dispute(ARBITRATOR, STAKE, 0)
    assert controller.current_state == EscrowState.DEAL_BROKEN
    assert ledger.balance_of(CLIENT) == BALANCE
    assert list(ledger.transfers_to(FREELANCER)) == []


def test_lone_freelancer_stake_is_refunded(controller, ledger) -> None:
    controller.fund_stake(FREELANCER, Role.FREELANCER, STAKE)
    controller.raise_dispute(FREELANCER)
    with pytest.raises(EscrowError) as exc:
        controller.resolve_dispute(ARBITRATOR, STAKE, 0)
    assert exc.value.code == ErrorCode.INVALID_FUNDS_DISTRIBUTION

    events = controller.resolve_dispute(ARBITRATOR, 0, STAKE)
    assert events[0].amounts["freelancer_received"] == STAKE
    assert controller.current_state == EscrowState.DEAL_BROKEN
    assert controller.freelancer_stake == 0
    assert controller.custody == 0
    assert ledger.balance_of(FREELANCER) == BALANCE
    assert ledger.balance_of(controller.custody_account) == 0
    assert [t.kind for t in ledger.transfers_to(FREELANCER)] == [TransferKind.REFUND]


@pytest.mark.parametrize(
    "client_portion,freelancer_portion",
    [
        (STAKE // 2, STAKE // 2),
        (STAKE, STAKE // 2),
        (0, 3 * STAKE // 2),
        (2 * STAKE, 0),
        (STAKE, 2 * STAKE),
        (1, 0),
    ],
)
def test_invalid_splits_rejected(staked, client_portion, freelancer_portion) -> None:
    staked.raise_dispute(CLIENT)
    before = staked.digest()
    with pytest.raises(EscrowError) as exc:
        staked.resolve_dispute(ARBITRATOR, client_portion, freelancer_portion)
    assert exc.value.code == ErrorCode.INVALID_FUNDS_DISTRIBUTION
    assert exc.value.category == ErrorCategory.DISTRIBUTION
    assert staked.digest() == before


@pytest.mark.parametrize("caller", [CLIENT, FREELANCER, MALLORY])
def test_resolve_requires_arbitrator(staked, caller) -> None:
    staked.raise_dispute(CLIENT)
    with pytest.raises(EscrowError) as exc:
        staked.resolve_dispute(caller, 0, 0)
    assert exc.value.code == ErrorCode.NOT_ARBITRATOR


def test_resolve_without_dispute(staked) -> None:
    with pytest.raises(EscrowError) as exc:
        staked.resolve_dispute(ARBITRATOR, 0, 0)
    assert exc.value.code == ErrorCode.NO_DISPUTE


def test_resolve_negative_portion(staked) -> None:
    staked.raise_dispute(CLIENT)
    with pytest.raises(EscrowError) as exc:
        staked.resolve_dispute(ARBITRATOR, -1, 0)
    assert exc.value.code == ErrorCode.INVALID_AMOUNT


def test_resolve_non_integer_portion(staked) -> None:
    staked.raise_dispute(CLIENT)
    call = Call(
        ARBITRATOR,
        Operation.RESOLVE_DISPUTE,
        {"client_portion": "100", "freelancer_portion": 0},
    )
    with pytest.raises(EscrowError) as exc:
        staked.submit(call)
    assert exc.value.code == ErrorCode.INVALID_PAYLOAD


@pytest.mark.parametrize(
    "payload",
    [{}, {"client_portion": 0}, {"freelancer_portion": 0}],
)
def test_resolve_requires_both_portions(staked, payload) -> None:
    staked.raise_dispute(CLIENT)
    with pytest.raises(EscrowError) as exc:
        staked.submit(Call(ARBITRATOR, Operation.RESOLVE_DISPUTE, payload))
    assert exc.value.code == ErrorCode.INVALID_PAYLOAD
    assert staked.current_state == EscrowState.RANDOM_DISPUTED


def test_resolve_payment_failure(staked, ledger) -> None:
    staked.raise_dispute(CLIENT)
    ledger.reject_transfers(FREELANCER)
    with pytest.raises(EscrowError) as exc:
        staked.resolve_dispute(ARBITRATOR, 0, STAKE)
    assert exc.value.code == ErrorCode.PAYMENT_ERROR
    assert staked.current_state == EscrowState.RANDOM_DISPUTED
    assert staked.custody == 2 * STAKE


# --- classify ---

def test_classify_outcomes() -> None:
    agreement = _disputed(STAKE, 40)
    assert classify(agreement, 0, 0) == Resolution.RESTORE
    assert classify(agreement, STAKE, 0) == Resolution.BREAK
    assert classify(agreement, STAKE, 40) == Resolution.BREAK
    assert classify(agreement, 0, 40) == Resolution.COMPLETE
    assert classify(agreement, 0, STAKE + 40) == Resolution.COMPLETE


def test_classify_complete_needs_both_stakes() -> None:
    agreement = _disputed(STAKE, 0, previous=ClientStaked())
    with pytest.raises(EscrowError) as exc:
        classify(agreement, 0, STAKE)
    assert exc.value.code == ErrorCode.INVALID_FUNDS_DISTRIBUTION


def test_classify_lone_freelancer_stake_breaks() -> None:
    agreement = _disputed(0, STAKE, previous=FreelancerStaked())
    assert classify(agreement, 0, STAKE) == Resolution.BREAK
    with pytest.raises(EscrowError):
        classify(agreement, STAKE, 0)
