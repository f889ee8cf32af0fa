"""Environment collaborators: clock and value-transfer substrate.

The escrow rules never read wall-clock time or move funds themselves. The
controller asks a ``Clock`` for the current time and hands a batch of
transfers to a ``TransferSubstrate``, which must apply all of them or none.
"""

from __future__ import annotations

import logging
import time
from copy import deepcopy
from typing import Iterable, Optional, Protocol

from .types import AccountState, Transfer

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> int:
        """Current time in seconds; never decreases between calls."""
        ...


class TransferSubstrate(Protocol):
    def execute(self, custody_account: bytes, transfers: list[Transfer]) -> bool:
        """Atomically apply ``transfers`` against ``custody_account``.

        Returns False, with nothing moved, if any transfer cannot be made.
        """
        ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Clock driven by tests and scenario files."""

    def __init__(self, start: int = 0):
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        self._now += seconds
        return self._now

    def set(self, timestamp: int) -> int:
        if timestamp < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = timestamp
        return self._now


class InMemoryLedger:
    """Account-balance substrate with per-account transfer rejection."""

    def __init__(self, balances: Optional[dict[bytes, int]] = None):
        self.accounts: dict[bytes, AccountState] = {}
        self.history: list[tuple[bytes, Transfer]] = []
        for address, balance in (balances or {}).items():
            self.open_account(address, balance)

    def open_account(self, address: bytes, balance: int = 0) -> AccountState:
        if balance < 0:
            raise ValueError("balance must be >= 0")
        acct = self.accounts.get(address)
        if acct is None:
            acct = AccountState(address=address, balance=balance)
            self.accounts[address] = acct
        else:
            acct.balance = balance
        return acct

    def balance_of(self, address: bytes) -> int:
        acct = self.accounts.get(address)
        return acct.balance if acct is not None else 0

    def reject_transfers(self, address: bytes, rejects: bool = True) -> None:
        """Make every transfer touching ``address`` fail (or succeed again)."""
        acct = self.accounts.get(address) or self.open_account(address)
        acct.rejects_transfers = rejects

    def total_supply(self) -> int:
        return sum(a.balance for a in self.accounts.values())

    def execute(self, custody_account: bytes, transfers: list[Transfer]) -> bool:
        working = deepcopy(self.accounts)
        for t in transfers:
            if t.amount <= 0:
                logger.warning("rejecting non-positive transfer of %d", t.amount)
                return False
            if t.outbound:
                source, target = custody_account, t.party
            else:
                source, target = t.party, custody_account

            src = working.get(source)
            if src is None or src.rejects_transfers or src.balance < t.amount:
                logger.warning("transfer of %d from %s refused", t.amount, source.hex()[:12])
                return False
            dst = working.setdefault(target, AccountState(address=target))
            if dst.rejects_transfers:
                logger.warning("transfer of %d to %s refused", t.amount, target.hex()[:12])
                return False
            src.balance -= t.amount
            dst.balance += t.amount

        self.accounts = working
        self.history.extend((custody_account, t) for t in transfers)
        return True

    def transfers_to(self, address: bytes) -> Iterable[Transfer]:
        return (t for _, t in self.history if t.outbound and t.party == address)
