"""Helpers to serialize/deserialize agreements, calls and events as JSON."""

from __future__ import annotations

from typing import Any, Optional

from .types import (
    STATE_CLASSES,
    AgreementState,
    Call,
    CancelRequested,
    EscrowAgreement,
    EscrowState,
    Event,
    EventType,
    Operation,
    PaymentDisputed,
    PendingClientConfirmation,
    RandomDisputed,
    Role,
    Transfer,
    TransferKind,
)


def _hex_to_bytes(v: str) -> bytes:
    return bytes.fromhex(v)


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def _opt_hex(v: Optional[bytes]) -> Optional[str]:
    return _bytes_to_hex(v) if v is not None else None


def state_to_json(state: AgreementState) -> dict[str, Any]:
    out: dict[str, Any] = {"kind": state.kind.value}
    if isinstance(state, PendingClientConfirmation):
        out["requested_at"] = state.requested_at
    elif isinstance(state, CancelRequested):
        out["initiator"] = _bytes_to_hex(state.initiator)
        out["previous"] = state_to_json(state.previous)
    elif isinstance(state, (RandomDisputed, PaymentDisputed)):
        out["raised_by"] = _bytes_to_hex(state.raised_by)
        out["previous"] = state_to_json(state.previous)
    return out


def state_from_json(data: dict[str, Any]) -> AgreementState:
    kind = EscrowState(data["kind"])
    cls = STATE_CLASSES[kind]
    if cls is PendingClientConfirmation:
        return PendingClientConfirmation(requested_at=int(data["requested_at"]))
    if cls is CancelRequested:
        return CancelRequested(
            initiator=_hex_to_bytes(data["initiator"]),
            previous=state_from_json(data["previous"]),  # type: ignore[arg-type]
        )
    if cls in (RandomDisputed, PaymentDisputed):
        return cls(
            raised_by=_hex_to_bytes(data["raised_by"]),
            previous=state_from_json(data["previous"]),
        )
    return cls()


def agreement_to_json(agreement: EscrowAgreement) -> dict[str, Any]:
    return {
        "job_id": agreement.job_id,
        "client": _bytes_to_hex(agreement.client),
        "freelancer": _bytes_to_hex(agreement.freelancer),
        "arbitrator": _opt_hex(agreement.arbitrator),
        "confirmation_period": agreement.confirmation_period,
        "client_stake": agreement.client_stake,
        "freelancer_stake": agreement.freelancer_stake,
        "custody": agreement.custody,
        "state": state_to_json(agreement.state),
        "created_at": agreement.created_at,
        "updated_at": agreement.updated_at,
    }


def agreement_from_json(data: dict[str, Any]) -> EscrowAgreement:
    arbitrator = data.get("arbitrator")
    return EscrowAgreement(
        job_id=data["job_id"],
        client=_hex_to_bytes(data["client"]),
        freelancer=_hex_to_bytes(data["freelancer"]),
        arbitrator=_hex_to_bytes(arbitrator) if arbitrator else None,
        confirmation_period=data["confirmation_period"],
        client_stake=data.get("client_stake", 0),
        freelancer_stake=data.get("freelancer_stake", 0),
        custody=data.get("custody", 0),
        state=state_from_json(data.get("state", {"kind": EscrowState.AGREED.value})),
        created_at=data.get("created_at", 0),
        updated_at=data.get("updated_at", 0),
    )


def call_to_json(call: Call) -> dict[str, Any]:
    payload = {
        k: (v.value if isinstance(v, Role) else v) for k, v in (call.payload or {}).items()
    }
    return {
        "caller": _bytes_to_hex(call.caller),
        "op": call.op.value,
        "payload": payload,
        "value": call.value,
    }


def call_from_json(data: dict[str, Any]) -> Call:
    return Call(
        caller=_hex_to_bytes(data["caller"]),
        op=Operation(data["op"]),
        payload=dict(data.get("payload") or {}),
        value=data.get("value", 0),
    )


def event_to_json(event: Event) -> dict[str, Any]:
    return {
        "event_type": event.event_type.value,
        "job_id": event.job_id,
        "actor": _bytes_to_hex(event.actor),
        "state": event.state.value,
        "timestamp": event.timestamp,
        "role": event.role.value if event.role is not None else None,
        "amounts": dict(event.amounts),
    }


def event_from_json(data: dict[str, Any]) -> Event:
    role = data.get("role")
    return Event(
        event_type=EventType(data["event_type"]),
        job_id=data["job_id"],
        actor=_hex_to_bytes(data["actor"]),
        state=EscrowState(data["state"]),
        timestamp=data["timestamp"],
        role=Role(role) if role else None,
        amounts=dict(data.get("amounts") or {}),
    )


def transfer_to_json(transfer: Transfer) -> dict[str, Any]:
    return {
        "party": _bytes_to_hex(transfer.party),
        "amount": transfer.amount,
        "kind": transfer.kind.value,
    }


def transfer_from_json(data: dict[str, Any]) -> Transfer:
    return Transfer(
        party=_hex_to_bytes(data["party"]),
        amount=data["amount"],
        kind=TransferKind(data["kind"]),
    )
