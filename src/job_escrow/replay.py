"""Build and replay state-transition fixture cases."""

from __future__ import annotations

import json
from copy import deepcopy
from pathlib import Path
from typing import Any

from .digest import compute_agreement_digest
from .env import InMemoryLedger
from .fixtures_io import (
    agreement_from_json,
    agreement_to_json,
    call_from_json,
    call_to_json,
    event_to_json,
)
from .state_transition import apply_call
from .types import Call, EscrowAgreement


def ledger_to_json(ledger: InMemoryLedger) -> list[dict[str, Any]]:
    return [
        {
            "address": a.address.hex(),
            "balance": a.balance,
            "rejects_transfers": a.rejects_transfers,
        }
        for a in ledger.accounts.values()
    ]


def ledger_from_json(data: list[dict[str, Any]]) -> InMemoryLedger:
    ledger = InMemoryLedger()
    for a in data:
        address = bytes.fromhex(a["address"])
        ledger.open_account(address, a.get("balance", 0))
        if a.get("rejects_transfers"):
            ledger.reject_transfers(address)
    return ledger


def build_case(
    name: str,
    pre_state: EscrowAgreement,
    ledger: InMemoryLedger,
    call: Call,
    now: int,
) -> dict[str, Any]:
    """Run ``call`` and record inputs and expected outputs as a fixture case.

    ``pre_state`` and ``ledger`` are not modified.
    """
    working_ledger = deepcopy(ledger)
    pre_json = agreement_to_json(pre_state)
    pre_ledger = ledger_to_json(working_ledger)
    post_state, result = apply_call(pre_state, call, working_ledger, now)
    post_json = agreement_to_json(post_state)
    return {
        "name": name,
        "now": now,
        "pre_state": pre_json,
        "balances": pre_ledger,
        "call": call_to_json(call),
        "expected": {
            "ok": result.ok,
            "error": result.error.code.name if result.error else None,
            "post_state": post_json,
            "post_balances": ledger_to_json(working_ledger),
            "events": [event_to_json(e) for e in result.events],
            "digest": compute_agreement_digest(post_json),
        },
    }


def check_case(case: dict[str, Any]) -> list[str]:
    failures: list[str] = []
    name = case.get("name", "<unnamed>")
    pre_state = agreement_from_json(case["pre_state"])
    ledger = ledger_from_json(case.get("balances", []))
    call = call_from_json(case["call"])
    post_state, result = apply_call(pre_state, call, ledger, case.get("now", 0))

    expected = case["expected"]
    if result.ok != expected["ok"]:
        return [f"{name}: ok_mismatch"]

    actual_err = result.error.code.name if result.error else None
    if actual_err != expected["error"]:
        return [f"{name}: error_mismatch"]

    digest = compute_agreement_digest(agreement_to_json(post_state))
    if digest != expected["digest"]:
        failures.append(f"{name}: digest_mismatch")

    expected_balances = {
        a["address"]: a["balance"] for a in expected.get("post_balances", [])
    }
    actual_balances = {a["address"]: a["balance"] for a in ledger_to_json(ledger)}
    for address, balance in expected_balances.items():
        if actual_balances.get(address, 0) != balance:
            failures.append(f"{name}: balance_mismatch")
            break

    return failures


def check_fixture_file(path: Path) -> list[str]:
    data = json.loads(Path(path).read_text())
    failures: list[str] = []
    for case in data.get("cases", []):
        failures.extend(check_case(case))
    return failures


def find_fixture_files(root: Path) -> list[Path]:
    root = Path(root)
    if root.is_file():
        return [root]
    return sorted(root.rglob("*.json"))
