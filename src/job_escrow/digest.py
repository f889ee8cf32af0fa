"""Canonical agreement digest and identifier derivation (v1)."""
from __future__ import annotations

from typing import Any

from blake3 import blake3

_CUSTODY_DOMAIN = b"job-escrow/custody/v1:"


def _hex_to_bytes(value: str | None) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise TypeError("hex value must be string")
    v = value[2:] if value.startswith(("0x", "0X")) else value
    if v == "":
        return b""
    return bytes.fromhex(v)


def _u64_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u64 must be non-negative")
    return int(value).to_bytes(8, "big", signed=False)


def _var_bytes(data: bytes) -> bytes:
    return _u64_be(len(data)) + data


def derive_job_id(client: bytes, freelancer: bytes, nonce: int) -> str:
    """Job id for the ``nonce``-th agreement between two parties."""
    buf = bytearray()
    buf += _var_bytes(client)
    buf += _var_bytes(freelancer)
    buf += _u64_be(nonce)
    return blake3(buf).hexdigest()


def custody_account(job_id: str) -> bytes:
    """Address of the neutral custody account holding an agreement's stakes."""
    return blake3(_CUSTODY_DOMAIN + job_id.encode("utf-8")).digest()


def _encode_state(buf: bytearray, state: dict[str, Any]) -> None:
    buf += _var_bytes(str(state.get("kind", "")).encode("utf-8"))
    buf += _u64_be(int(state.get("requested_at", 0)))
    buf += _var_bytes(_hex_to_bytes(state.get("initiator")))
    buf += _var_bytes(_hex_to_bytes(state.get("raised_by")))
    previous = state.get("previous")
    if previous is None:
        buf += b"\x00"
    else:
        buf += b"\x01"
        _encode_state(buf, previous)


def compute_agreement_digest(agreement: dict[str, Any]) -> str:
    """Compute agreement digest v1 from its JSON form.

    Fields are encoded in canonical order and hashed with BLAKE3-256.
    """
    buf = bytearray()
    buf += _var_bytes(str(agreement.get("job_id", "")).encode("utf-8"))
    for field in ("client", "freelancer", "arbitrator"):
        buf += _var_bytes(_hex_to_bytes(agreement.get(field)))
    for field in (
        "confirmation_period",
        "client_stake",
        "freelancer_stake",
        "custody",
        "created_at",
        "updated_at",
    ):
        buf += _u64_be(int(agreement.get(field, 0)))
    _encode_state(buf, agreement.get("state", {}))
    return blake3(buf).hexdigest()
