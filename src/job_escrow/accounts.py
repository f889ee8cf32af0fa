"""Named identities for tests and scenario files.

Identities are opaque 32-byte tokens; here they are derived from a seed name
with BLAKE3 so fixtures stay stable across runs.
"""

from __future__ import annotations

from blake3 import blake3

_DOMAIN = b"job-escrow/identity/v1:"


def identity_from_name(name: str) -> bytes:
    """Derive a stable 32-byte identity token from a seed name."""
    if not name:
        raise ValueError("identity seed name must be non-empty")
    return blake3(_DOMAIN + name.encode("utf-8")).digest()


# Named constants
CLIENT = identity_from_name("client")
FREELANCER = identity_from_name("freelancer")
ARBITRATOR = identity_from_name("arbitrator")
MALLORY = identity_from_name("mallory")

NAME_MAP: dict[bytes, str] = {
    CLIENT: "client",
    FREELANCER: "freelancer",
    ARBITRATOR: "arbitrator",
    MALLORY: "mallory",
}


def display_name(identity: bytes) -> str:
    """Short label for logs: the seed name when known, else a hex prefix."""
    return NAME_MAP.get(identity, identity.hex()[:12])
