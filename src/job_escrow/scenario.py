"""YAML scenario runner.

A scenario names the parties by seed name, gives them starting balances
and lists the steps to replay against a fresh agreement::

    job_id: logo-design
    confirmation_period: 3600
    arbitrator: arbitrator
    balances: {client: 500, freelancer: 500}
    steps:
      - {call: fund_stake, caller: client, payload: {role: client}, value: 100}
      - {advance: 3600}
      - {reject_transfers: freelancer}
      - {call: finalize_unilateral, caller: mallory, expect: PAYMENT_ERROR}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .accounts import identity_from_name
from .config import DEFAULT_CONFIRMATION_PERIOD
from .controller import EscrowController
from .env import InMemoryLedger, ManualClock
from .errors import EscrowError
from .fixtures_io import agreement_to_json, event_to_json
from .types import Call, Operation
from .yaml_dump import load_yaml

logger = logging.getLogger(__name__)


class ScenarioError(ValueError):
    """Malformed scenario file."""


@dataclass
class StepResult:
    index: int
    action: str
    caller: Optional[str] = None
    ok: bool = True
    error: Optional[str] = None
    state: Optional[str] = None
    events: list[dict[str, Any]] = field(default_factory=list)
    expected: Optional[str] = None

    @property
    def matched(self) -> bool:
        if self.expected is None:
            return True
        actual = "ok" if self.ok else self.error
        return actual == self.expected


@dataclass
class ScenarioReport:
    steps: list[StepResult]
    agreement: dict[str, Any]
    digest: str
    balances: dict[str, int]

    @property
    def mismatches(self) -> list[StepResult]:
        return [s for s in self.steps if not s.matched]

    def to_json(self) -> dict[str, Any]:
        return {
            "steps": [
                {
                    "index": s.index,
                    "action": s.action,
                    "caller": s.caller,
                    "ok": s.ok,
                    "error": s.error,
                    "state": s.state,
                    "expected": s.expected,
                    "events": s.events,
                }
                for s in self.steps
            ],
            "agreement": self.agreement,
            "digest": self.digest,
            "balances": self.balances,
            "mismatches": [s.index for s in self.mismatches],
        }


def load_scenario(path: Path) -> dict[str, Any]:
    data = load_yaml(path)
    if not isinstance(data, dict):
        raise ScenarioError(f"{path}: scenario must be a mapping")
    if not isinstance(data.get("steps"), list):
        raise ScenarioError(f"{path}: scenario needs a list of steps")
    return data


def _parse_call(step: dict[str, Any], index: int) -> Call:
    try:
        op = Operation(step["call"])
    except ValueError:
        raise ScenarioError(f"step {index}: unknown operation {step['call']!r}") from None
    caller = step.get("caller")
    if not caller:
        raise ScenarioError(f"step {index}: call needs a caller")
    payload = step.get("payload") or {}
    if not isinstance(payload, dict):
        raise ScenarioError(f"step {index}: payload must be a mapping")
    return Call(
        caller=identity_from_name(str(caller)),
        op=op,
        payload=dict(payload),
        value=int(step.get("value", 0)),
    )


def run_scenario(
    data: dict[str, Any],
    start_time: int = 0,
    default_period: int = DEFAULT_CONFIRMATION_PERIOD,
) -> ScenarioReport:
    names = {
        "client": str(data.get("client", "client")),
        "freelancer": str(data.get("freelancer", "freelancer")),
    }
    arbitrator_name = data.get("arbitrator")
    clock = ManualClock(start_time)

    known: dict[str, bytes] = {}
    ledger = InMemoryLedger()
    for name, balance in (data.get("balances") or {}).items():
        known[str(name)] = identity_from_name(str(name))
        ledger.open_account(known[str(name)], int(balance))

    try:
        controller = EscrowController.create(
            job_id=str(data.get("job_id", "scenario")),
            client=identity_from_name(names["client"]),
            freelancer=identity_from_name(names["freelancer"]),
            substrate=ledger,
            clock=clock,
            arbitrator=identity_from_name(str(arbitrator_name)) if arbitrator_name else None,
            confirmation_period=int(data.get("confirmation_period", default_period)),
        )
    except EscrowError as exc:
        raise ScenarioError(f"invalid agreement: {exc}") from exc

    results: list[StepResult] = []
    for index, step in enumerate(data["steps"]):
        if not isinstance(step, dict):
            raise ScenarioError(f"step {index}: expected a mapping")
        expected = step.get("expect")
        expected = str(expected) if expected is not None else None

        if "advance" in step:
            clock.advance(int(step["advance"]))
            results.append(StepResult(index, f"advance {step['advance']}", expected=expected))
            continue

        if "reject_transfers" in step:
            name = str(step["reject_transfers"])
            enabled = bool(step.get("enabled", True))
            ledger.reject_transfers(identity_from_name(name), enabled)
            results.append(StepResult(index, f"reject_transfers {name}={enabled}", expected=expected))
            continue

        if "call" not in step:
            raise ScenarioError(f"step {index}: expected call, advance or reject_transfers")

        call = _parse_call(step, index)
        result = StepResult(index, call.op.value, caller=str(step["caller"]), expected=expected)
        try:
            events = controller.submit(call)
            result.events = [event_to_json(e) for e in events]
        except EscrowError as exc:
            result.ok = False
            result.error = exc.code.name
        result.state = controller.current_state.value
        if not result.matched:
            logger.warning(
                "step %d (%s): expected %s, got %s",
                index,
                result.action,
                expected,
                "ok" if result.ok else result.error,
            )
        results.append(result)

    known.update(_names_to_ids(names, arbitrator_name))
    balances = {name: ledger.balance_of(identity) for name, identity in sorted(known.items())}
    balances["custody"] = ledger.balance_of(controller.custody_account)
    return ScenarioReport(
        steps=results,
        agreement=agreement_to_json(controller.agreement),
        digest=controller.digest(),
        balances=balances,
    )


def _names_to_ids(names: dict[str, str], arbitrator_name: Optional[str]) -> dict[str, bytes]:
    out = {name: identity_from_name(name) for name in names.values()}
    if arbitrator_name:
        out[str(arbitrator_name)] = identity_from_name(str(arbitrator_name))
    return out
