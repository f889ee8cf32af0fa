"""Job completion: unilateral, bilateral, accept and reject."""

from __future__ import annotations

import pytest

from conftest import BALANCE, PERIOD, START_TIME, STAKE, stake_both

from job_escrow.accounts import ARBITRATOR, CLIENT, FREELANCER, MALLORY
from job_escrow.errors import ErrorCategory, ErrorCode, EscrowError
from job_escrow.types import Call, EscrowState, EventType, Operation, Role


def _assert_freelancer_paid(ctrl, ledger, payout: int) -> None:
    assert ctrl.current_state == EscrowState.JOB_COMPLETED
    assert ctrl.client_stake == 0
    assert ctrl.freelancer_stake == 0
    assert ctrl.custody == 0
    assert ledger.balance_of(ctrl.custody_account) == 0
    assert ledger.balance_of(FREELANCER) == BALANCE - STAKE + payout
    assert ledger.balance_of(CLIENT) == BALANCE - STAKE


# --- request_unilateral_completion ---

def test_request_starts_confirmation_window(staked, clock) -> None:
    clock.advance(10)
    events = staked.request_unilateral_completion(FREELANCER)
    assert staked.current_state == EscrowState.PENDING_CLIENT_CONFIRMATION
    assert staked.unilateral_request_time == START_TIME + 10
    assert staked.confirmation_deadline == START_TIME + 10 + PERIOD
    assert events[0].event_type == EventType.UNILATERAL_COMPLETION_REQUESTED
    assert events[0].amounts == {"deadline": START_TIME + 10 + PERIOD}


def test_request_by_client_rejected(staked) -> None:
    with pytest.raises(EscrowError) as exc:
        staked.request_unilateral_completion(CLIENT)
    assert exc.value.code == ErrorCode.NOT_FREELANCER


@pytest.mark.parametrize("client_stakes", [False, True])
def test_request_before_both_staked(controller, client_stakes) -> None:
    if client_stakes:
        controller.fund_stake(CLIENT, Role.CLIENT, STAKE)
    with pytest.raises(EscrowError) as exc:
        controller.request_unilateral_completion(FREELANCER)
    assert exc.value.code == ErrorCode.WRONG_STATE


def test_request_twice_rejected(pending) -> None:
    with pytest.raises(EscrowError) as exc:
        pending.request_unilateral_completion(FREELANCER)
    assert exc.value.code == ErrorCode.WRONG_STATE


# --- finalize_unilateral ---

def test_finalize_before_deadline(pending, clock) -> None:
    clock.advance(PERIOD - 1)
    with pytest.raises(EscrowError) as exc:
        pending.finalize_unilateral(FREELANCER)
    assert exc.value.code == ErrorCode.ACTIVE_CONFIRMATION_PERIOD
    assert exc.value.category == ErrorCategory.TIMING
    assert exc.value.retriable
    assert pending.current_state == EscrowState.PENDING_CLIENT_CONFIRMATION


def test_finalize_exactly_at_deadline(pending, clock, ledger) -> None:
    clock.advance(PERIOD)
    events = pending.finalize_unilateral(FREELANCER)
    assert events[0].event_type == EventType.UNILATERAL_COMPLETION_FINALIZED
    assert events[0].amounts == {"payout": 2 * STAKE}
    _assert_freelancer_paid(pending, ledger, 2 * STAKE)


@pytest.mark.parametrize("caller", [CLIENT, ARBITRATOR, MALLORY])
def test_anyone_may_finalize(pending, clock, ledger, caller) -> None:
    clock.advance(PERIOD + 1)
    pending.finalize_unilateral(caller)
    _assert_freelancer_paid(pending, ledger, 2 * STAKE)


def test_finalize_without_request(staked, clock) -> None:
    clock.advance(PERIOD)
    with pytest.raises(EscrowError) as exc:
        staked.finalize_unilateral(FREELANCER)
    assert exc.value.code == ErrorCode.WRONG_STATE


def test_finalize_payment_failure_keeps_window(pending, clock, ledger) -> None:
    clock.advance(PERIOD)
    ledger.reject_transfers(FREELANCER)
    with pytest.raises(EscrowError) as exc:
        pending.finalize_unilateral(MALLORY)
    assert exc.value.code == ErrorCode.PAYMENT_ERROR
    assert pending.current_state == EscrowState.PENDING_CLIENT_CONFIRMATION
    assert pending.custody == 2 * STAKE
    assert pending.freelancer_stake == STAKE
    assert ledger.balance_of(pending.custody_account) == 2 * STAKE

    ledger.reject_transfers(FREELANCER, False)
    pending.finalize_unilateral(MALLORY)
    _assert_freelancer_paid(pending, ledger, 2 * STAKE)


# --- accept / reject ---

def test_accept_pays_freelancer(pending, ledger) -> None:
    events = pending.accept_completion(CLIENT)
    assert events[0].event_type == EventType.COMPLETION_ACCEPTED
    _assert_freelancer_paid(pending, ledger, 2 * STAKE)


def test_accept_inside_window(pending, clock, ledger) -> None:
    clock.advance(1)
    pending.accept_completion(CLIENT)
    _assert_freelancer_paid(pending, ledger, 2 * STAKE)


@pytest.mark.parametrize("caller", [FREELANCER, ARBITRATOR, MALLORY])
def test_accept_requires_client(pending, caller) -> None:
    with pytest.raises(EscrowError) as exc:
        pending.accept_completion(caller)
    assert exc.value.code == ErrorCode.NOT_CLIENT


def test_accept_without_request(staked) -> None:
    with pytest.raises(EscrowError) as exc:
        staked.accept_completion(CLIENT)
    assert exc.value.code == ErrorCode.WRONG_STATE


def test_reject_with_arbitrator_opens_payment_dispute(pending, ledger) -> None:
    events = pending.reject_completion(CLIENT)
    assert events[0].event_type == EventType.COMPLETION_REJECTED
    assert pending.current_state == EscrowState.PAYMENT_DISPUTED
    assert pending.previous_state == EscrowState.PENDING_CLIENT_CONFIRMATION
    assert pending.custody == 2 * STAKE
    assert ledger.balance_of(pending.custody_account) == 2 * STAKE


def test_reject_without_arbitrator_returns_to_staked(simple_controller, ledger) -> None:
    stake_both(simple_controller)
    simple_controller.request_unilateral_completion(FREELANCER)
    simple_controller.reject_completion(CLIENT)
    assert simple_controller.current_state == EscrowState.ALL_STAKED_AND_PENDING
    assert simple_controller.unilateral_request_time is None
    assert simple_controller.custody == 2 * STAKE

    # The freelancer may ask again; a fresh window starts.
    simple_controller.request_unilateral_completion(FREELANCER)
    assert simple_controller.current_state == EscrowState.PENDING_CLIENT_CONFIRMATION


def test_reject_requires_client(pending) -> None:
    with pytest.raises(EscrowError) as exc:
        pending.reject_completion(FREELANCER)
    assert exc.value.code == ErrorCode.NOT_CLIENT


# --- complete_bilaterally ---

def test_bilateral_completion(staked, ledger) -> None:
    events = staked.complete_bilaterally(CLIENT)
    assert events[0].event_type == EventType.COMPLETED_BILATERALLY
    assert events[0].amounts == {"payout": 2 * STAKE}
    _assert_freelancer_paid(staked, ledger, 2 * STAKE)


def test_bilateral_completion_requires_client(staked) -> None:
    with pytest.raises(EscrowError) as exc:
        staked.complete_bilaterally(FREELANCER)
    assert exc.value.code == ErrorCode.NOT_CLIENT


def test_bilateral_completion_not_while_pending(pending) -> None:
    with pytest.raises(EscrowError) as exc:
        pending.complete_bilaterally(CLIENT)
    assert exc.value.code == ErrorCode.WRONG_STATE


def test_completion_ops_refuse_funds(pending) -> None:
    with pytest.raises(EscrowError) as exc:
        pending.submit(Call(CLIENT, Operation.ACCEPT_COMPLETION, value=1))
    assert exc.value.code == ErrorCode.INVALID_AMOUNT
    assert pending.current_state == EscrowState.PENDING_CLIENT_CONFIRMATION


# --- exactly one payout ---

@pytest.mark.parametrize(
    "caller,op,payload",
    [
        (CLIENT, Operation.ACCEPT_COMPLETION, {}),
        (CLIENT, Operation.COMPLETE_BILATERALLY, {}),
        (MALLORY, Operation.FINALIZE_UNILATERAL, {}),
        (FREELANCER, Operation.BREAK_DEAL, {}),
        (CLIENT, Operation.RAISE_DISPUTE, {}),
        (ARBITRATOR, Operation.RESOLVE_DISPUTE, {"client_portion": 0, "freelancer_portion": STAKE}),
    ],
)
def test_completed_job_pays_out_once(pending, clock, ledger, caller, op, payload) -> None:
    clock.advance(PERIOD)
    pending.accept_completion(CLIENT)
    paid = list(ledger.transfers_to(FREELANCER))
    assert len(paid) == 1

    with pytest.raises(EscrowError) as exc:
        pending.submit(Call(caller, op, payload))
    assert exc.value.category == ErrorCategory.STATE
    assert list(ledger.transfers_to(FREELANCER)) == paid
    assert ledger.balance_of(FREELANCER) == BALANCE + STAKE
