"""Round store contract and the in-process implementation."""

from __future__ import annotations

import asyncio
import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from .exceptions import (
    InvalidResultError,
    RoundNotExpiredError,
    RoundNotFoundError,
    SettlementError,
)
from .ledger import NullLedger, PayoutLedger
from .models import COIN_SIDES, Round, SettlementOutcome

logger = logging.getLogger(__name__)


def draw_result(round_id: UUID | str, forced: str | None = None) -> str:
    """Pick the coin side for a round, or validate an admin-forced one."""
    if forced is None:
        return secrets.choice(COIN_SIDES)
    if forced not in COIN_SIDES:
        raise InvalidResultError(
            f"Invalid result {forced!r} for round {round_id}: expected heads or tails",
            round_id=round_id,
        )
    return forced


class RoundStore(ABC):
    """Durable table of rounds.

    Every exclusivity guarantee lives here: ``resolve`` settles a round at most
    once and ``get_or_create_current`` creates at most one current round, even
    when called concurrently from independent processes.
    """

    backend: str = "abstract"

    @abstractmethod
    async def list_expired_unsettled(self, now: datetime) -> list[Round]:
        """Unsettled rounds with ``ends_at <= now``, oldest ``ends_at`` first."""

    @abstractmethod
    async def resolve(
        self, round_id: UUID, now: datetime, result: str | None = None
    ) -> SettlementOutcome:
        """Atomically record the outcome, flag the round settled and pay out."""

    @abstractmethod
    async def get_or_create_current(self, now: datetime, duration: timedelta) -> Round:
        """Return the open round, creating the next one when none exists."""

    @abstractmethod
    async def get_round(self, round_id: UUID) -> Round:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class InMemoryRoundStore(RoundStore):
    """Single-process store used by the memory backend and the test suite.

    Atomicity comes from one asyncio lock guarding every read-modify-write, the
    in-process equivalent of a conditional row update.
    """

    backend = "memory"

    def __init__(self, ledger: PayoutLedger | None = None, rounds: list[Round] | None = None):
        self.ledger = ledger or NullLedger()
        self._rounds: dict[UUID, Round] = {r.id: r for r in rounds or []}
        self._lock = asyncio.Lock()

    @property
    def rounds(self) -> list[Round]:
        return sorted(self._rounds.values(), key=lambda r: r.round_number)

    def add(self, round_: Round) -> Round:
        self._rounds[round_.id] = round_
        return round_

    async def list_expired_unsettled(self, now: datetime) -> list[Round]:
        expired = [r for r in self._rounds.values() if r.is_expired(now)]
        return sorted(expired, key=lambda r: r.ends_at)

    async def get_round(self, round_id: UUID) -> Round:
        round_ = self._rounds.get(round_id)
        if round_ is None:
            raise RoundNotFoundError(f"Round {round_id} not found", round_id=round_id)
        return round_

    async def resolve(
        self, round_id: UUID, now: datetime, result: str | None = None
    ) -> SettlementOutcome:
        async with self._lock:
            round_ = await self.get_round(round_id)

            if round_.is_settled:
                logger.info(f"Round #{round_.round_number} already settled ({round_.result})")
                return SettlementOutcome(
                    round_id=round_.id,
                    round_number=round_.round_number,
                    result=round_.result,
                    settled=False,
                )

            if round_.ends_at > now:
                raise RoundNotExpiredError(
                    f"Round {round_id} is still open until {round_.ends_at.isoformat()}",
                    round_id=round_id,
                )

            outcome = draw_result(round_id, result)
            try:
                payouts = await self.ledger.distribute(round_, outcome)
            except Exception as e:
                raise SettlementError(
                    f"Payout failed for round {round_id}: {e}", round_id=round_id
                ) from e

            self._rounds[round_id] = round_.model_copy(
                update={"is_settled": True, "result": outcome}
            )

        return SettlementOutcome(
            round_id=round_.id,
            round_number=round_.round_number,
            result=outcome,
            settled=True,
            **payouts.model_dump(),
        )

    async def get_or_create_current(self, now: datetime, duration: timedelta) -> Round:
        async with self._lock:
            for round_ in self._rounds.values():
                if round_.is_open(now):
                    return round_

            next_number = max((r.round_number for r in self._rounds.values()), default=0) + 1
            round_ = Round(
                id=uuid4(),
                round_number=next_number,
                starts_at=now,
                ends_at=now + duration,
                is_settled=False,
                created_at=now,
            )
            self._rounds[round_.id] = round_
            logger.info(f"Opened round #{next_number} until {round_.ends_at.isoformat()}")
            return round_
