"""Stateful owner of a single escrow agreement.

``EscrowController`` wraps the pure transition functions with the pieces a
live agreement needs: the clock, the transfer substrate, a reentrancy
guard and notification observers. Every public operation either commits
its new state together with its transfers or raises ``EscrowError`` and
leaves the agreement untouched.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from copy import deepcopy
from typing import Callable, Iterator, Optional

from . import timer
from .accounts import display_name
from .config import DEFAULT_CONFIRMATION_PERIOD
from .digest import compute_agreement_digest, custody_account
from .env import Clock, TransferSubstrate
from .errors import ErrorCode, EscrowError
from .fixtures_io import agreement_to_json
from .state_transition import apply_call, create_agreement, verify_call
from .types import (
    TERMINAL_STATES,
    Call,
    EscrowAgreement,
    EscrowState,
    Event,
    Operation,
    PendingClientConfirmation,
    Role,
)

logger = logging.getLogger(__name__)

Observer = Callable[[Event], None]


class EscrowController:
    def __init__(
        self,
        agreement: EscrowAgreement,
        substrate: TransferSubstrate,
        clock: Clock,
    ):
        self._agreement = agreement
        self._substrate = substrate
        self._clock = clock
        self._observers: list[Observer] = []
        self._executing = False

    @classmethod
    def create(
        cls,
        job_id: str,
        client: bytes,
        freelancer: bytes,
        substrate: TransferSubstrate,
        clock: Clock,
        arbitrator: Optional[bytes] = None,
        confirmation_period: int = DEFAULT_CONFIRMATION_PERIOD,
    ) -> "EscrowController":
        agreement = create_agreement(
            job_id,
            client,
            freelancer,
            arbitrator=arbitrator,
            confirmation_period=confirmation_period,
            now=clock.now(),
        )
        logger.info(
            "job %s: agreement created (client=%s freelancer=%s arbitrator=%s)",
            job_id,
            display_name(client),
            display_name(freelancer),
            display_name(arbitrator) if arbitrator is not None else "-",
        )
        return cls(agreement, substrate, clock)

    # --- read-only accessors ---

    @property
    def agreement(self) -> EscrowAgreement:
        """Snapshot of the agreement; mutating it has no effect."""
        return deepcopy(self._agreement)

    @property
    def job_id(self) -> str:
        return self._agreement.job_id

    @property
    def current_state(self) -> EscrowState:
        return self._agreement.current_state

    @property
    def previous_state(self) -> Optional[EscrowState]:
        return self._agreement.previous_state

    @property
    def client_stake(self) -> int:
        return self._agreement.client_stake

    @property
    def freelancer_stake(self) -> int:
        return self._agreement.freelancer_stake

    @property
    def custody(self) -> int:
        return self._agreement.custody

    @property
    def custody_account(self) -> bytes:
        return custody_account(self._agreement.job_id)

    @property
    def confirmation_period(self) -> int:
        return self._agreement.confirmation_period

    @property
    def cancel_initiator(self) -> Optional[bytes]:
        return self._agreement.cancel_initiator

    @property
    def unilateral_request_time(self) -> Optional[int]:
        return self._agreement.unilateral_request_time

    @property
    def confirmation_deadline(self) -> Optional[int]:
        state = self._agreement.state
        if isinstance(state, PendingClientConfirmation):
            return timer.deadline(state, self._agreement.confirmation_period)
        return None

    @property
    def is_terminal(self) -> bool:
        return self._agreement.current_state in TERMINAL_STATES

    def digest(self) -> str:
        return compute_agreement_digest(agreement_to_json(self._agreement))

    # --- observers ---

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register ``observer`` for events; returns an unsubscribe callback."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _notify(self, events: list[Event]) -> None:
        for event in events:
            for observer in list(self._observers):
                try:
                    observer(event)
                except Exception:
                    # The call is already committed; report and keep notifying.
                    logger.exception(
                        "job %s: observer failed on %s", event.job_id, event.event_type.value
                    )

    # --- execution ---

    def _now(self) -> int:
        # Never record a time earlier than the last committed update.
        return max(self._clock.now(), self._agreement.updated_at)

    @contextmanager
    def _exclusive(self, op: Operation) -> Iterator[None]:
        if self._executing:
            logger.warning("job %s: reentrant %s refused", self._agreement.job_id, op.value)
            raise EscrowError(ErrorCode.REENTRANT_CALL, f"{op.value} entered while another call is executing")
        self._executing = True
        try:
            yield
        finally:
            self._executing = False

    def check(self, call: Call) -> Optional[EscrowError]:
        """Return the error ``call`` would fail with now, or None."""
        result = verify_call(self._agreement, call, self._now())
        return result.error

    def submit(self, call: Call) -> list[Event]:
        """Run ``call`` to completion, committing state and transfers together."""
        with self._exclusive(call.op):
            before = self._agreement.current_state
            new_agreement, result = apply_call(
                self._agreement, call, self._substrate, self._now()
            )
            error = result.error
            if error is not None:
                logger.debug(
                    "job %s: %s by %s rejected: %s",
                    self._agreement.job_id,
                    call.op.value,
                    display_name(call.caller),
                    error,
                )
                raise error
            self._agreement = new_agreement

        after = new_agreement.current_state
        logger.debug(
            "job %s: %s by %s: %s -> %s",
            new_agreement.job_id,
            call.op.value,
            display_name(call.caller),
            before.value,
            after.value,
        )
        if after in TERMINAL_STATES:
            logger.info("job %s: reached %s", new_agreement.job_id, after.value)
        self._notify(result.events)
        return result.events

    # --- named operations ---

    def fund_stake(self, caller: bytes, role: Role, amount: int) -> list[Event]:
        return self.submit(Call(caller, Operation.FUND_STAKE, {"role": role.value}, amount))

    def request_unilateral_completion(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.REQUEST_UNILATERAL_COMPLETION))

    def finalize_unilateral(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.FINALIZE_UNILATERAL))

    def accept_completion(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.ACCEPT_COMPLETION))

    def reject_completion(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.REJECT_COMPLETION))

    def complete_bilaterally(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.COMPLETE_BILATERALLY))

    def break_deal(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.BREAK_DEAL))

    def cancel_deal_break(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.CANCEL_DEAL_BREAK))

    def raise_dispute(self, caller: bytes) -> list[Event]:
        return self.submit(Call(caller, Operation.RAISE_DISPUTE))

    def resolve_dispute(
        self, caller: bytes, client_portion: int, freelancer_portion: int
    ) -> list[Event]:
        return self.submit(
            Call(
                caller,
                Operation.RESOLVE_DISPUTE,
                {"client_portion": client_portion, "freelancer_portion": freelancer_portion},
            )
        )
