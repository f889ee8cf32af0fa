"""Confirmation-window timer for unilateral completion.

There is one timer per agreement and it lives inside the pending-confirmation
state. Leaving that state drops it; nothing clears it explicitly.
"""

from __future__ import annotations

from .types import PendingClientConfirmation


def start(now: int) -> PendingClientConfirmation:
    return PendingClientConfirmation(requested_at=now)


def deadline(state: PendingClientConfirmation, period: int) -> int:
    return state.requested_at + period


def is_expired(state: PendingClientConfirmation, period: int, now: int) -> bool:
    return now >= deadline(state, period)


def remaining(state: PendingClientConfirmation, period: int, now: int) -> int:
    return max(0, deadline(state, period) - now)
