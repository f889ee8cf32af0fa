"""Pytest hooks and shared fixtures; optionally writes fixture JSON (EEST-style)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from job_escrow.accounts import ARBITRATOR, CLIENT, FREELANCER
from job_escrow.controller import EscrowController
from job_escrow.env import InMemoryLedger, ManualClock
from job_escrow.replay import build_case
from job_escrow.types import Call, EscrowAgreement, Role

START_TIME = 1_000
PERIOD = 3_600
STAKE = 100
BALANCE = 1_000

_STATE_CASES: dict[str, list[dict[str, Any]]] = {}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated fixtures",
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_TIME)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger({CLIENT: BALANCE, FREELANCER: BALANCE})


@pytest.fixture
def make_controller(
    ledger: InMemoryLedger, clock: ManualClock
) -> Callable[..., EscrowController]:
    def _make(
        arbitrator: Optional[bytes] = ARBITRATOR,
        period: int = PERIOD,
        job_id: str = "job-1",
    ) -> EscrowController:
        return EscrowController.create(
            job_id,
            CLIENT,
            FREELANCER,
            substrate=ledger,
            clock=clock,
            arbitrator=arbitrator,
            confirmation_period=period,
        )

    return _make


@pytest.fixture
def controller(make_controller: Callable[..., EscrowController]) -> EscrowController:
    """Agreement with an arbitrator, in AGREED."""
    return make_controller()


@pytest.fixture
def simple_controller(make_controller: Callable[..., EscrowController]) -> EscrowController:
    """Agreement without an arbitrator, in AGREED."""
    return make_controller(arbitrator=None)


def stake_both(ctrl: EscrowController, client: int = STAKE, freelancer: int = STAKE) -> None:
    ctrl.fund_stake(CLIENT, Role.CLIENT, client)
    ctrl.fund_stake(FREELANCER, Role.FREELANCER, freelancer)


@pytest.fixture
def staked(controller: EscrowController) -> EscrowController:
    """Agreement with an arbitrator, both parties staked."""
    stake_both(controller)
    return controller


@pytest.fixture
def pending(staked: EscrowController) -> EscrowController:
    """Both staked and the freelancer asked for unilateral completion."""
    staked.request_unilateral_completion(FREELANCER)
    return staked


@pytest.fixture
def escrow_test_group() -> Callable[..., dict[str, Any]]:
    """Collect a state transition case under a specific fixture path."""

    def _escrow_test_group(
        rel_path: str,
        name: str,
        pre_state: EscrowAgreement,
        ledger: InMemoryLedger,
        call: Call,
        now: int,
    ) -> dict[str, Any]:
        case = build_case(name, pre_state, ledger, call, now)
        _STATE_CASES.setdefault(rel_path, []).append(case)
        return case

    return _escrow_test_group


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    for rel_path, cases in _STATE_CASES.items():
        if not cases:
            continue
        target = out / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"cases": cases}, indent=2))
