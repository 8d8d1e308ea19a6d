"""Postgres-backed round store (Supabase database)."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import func, select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from coinflip.database import coinflip_rounds

from .exceptions import (
    RoundNotExpiredError,
    RoundNotFoundError,
    RoundStoreError,
    SettlementError,
)
from .ledger import PayoutLedger
from .models import Round, SettlementOutcome
from .store import RoundStore, draw_result

logger = logging.getLogger(__name__)

CREATE_ATTEMPTS = 3

# pg_advisory_xact_lock key serializing round creation across processes
CONTINUITY_LOCK_KEY = 0x636F696E


class PostgresRoundStore(RoundStore):
    """Round store whose guarantees are conditional updates on ``coinflip_rounds``.

    - settle-once: ``UPDATE ... WHERE is_settled = false`` takes the row lock, so
      a concurrent resolver blocks, re-evaluates the predicate and matches nothing.
    - create-once: the open-round check, the next number and the insert all run
      under a transaction-scoped advisory lock, so a second creator waits and then
      sees the committed round. ``round_number`` is also unique and the insert is
      ``ON CONFLICT DO NOTHING``.
    """

    backend = "postgres"

    def __init__(self, engine: AsyncEngine, ledger: PayoutLedger):
        self.engine = engine
        self.ledger = ledger

    async def list_expired_unsettled(self, now: datetime) -> list[Round]:
        query = (
            select(coinflip_rounds)
            .where(
                coinflip_rounds.c.is_settled.is_(False),
                coinflip_rounds.c.ends_at <= now,
            )
            .order_by(coinflip_rounds.c.ends_at.asc())
        )
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(query)).all()
        except SQLAlchemyError as e:
            raise RoundStoreError(
                f"Failed to list expired rounds: {e}", operation="list_expired_unsettled"
            ) from e
        return [Round.from_row(row) for row in rows]

    async def get_round(self, round_id: UUID) -> Round:
        try:
            async with self.engine.connect() as conn:
                row = (
                    await conn.execute(
                        select(coinflip_rounds).where(coinflip_rounds.c.id == round_id)
                    )
                ).first()
        except SQLAlchemyError as e:
            raise RoundStoreError(f"Failed to load round {round_id}: {e}", operation="get_round") from e
        if row is None:
            raise RoundNotFoundError(f"Round {round_id} not found", round_id=round_id)
        return Round.from_row(row)

    async def resolve(
        self, round_id: UUID, now: datetime, result: str | None = None
    ) -> SettlementOutcome:
        outcome = draw_result(round_id, result)

        try:
            async with self.engine.begin() as conn:
                flipped = (
                    await conn.execute(
                        update(coinflip_rounds)
                        .where(
                            coinflip_rounds.c.id == round_id,
                            coinflip_rounds.c.is_settled.is_(False),
                            coinflip_rounds.c.ends_at <= now,
                        )
                        .values(is_settled=True, result=outcome)
                        .returning(*coinflip_rounds.c)
                    )
                ).first()

                if flipped is None:
                    return await self._explain_noop(conn, round_id)

                round_ = Round.from_row(flipped)
                payouts = await self.ledger.distribute(round_, outcome, conn)

        except SettlementError:
            raise
        except Exception as e:
            # engine.begin() has rolled back: the round is still unsettled
            raise SettlementError(
                f"Settlement of round {round_id} rolled back: {e}", round_id=round_id
            ) from e

        logger.info(f"Settled round #{round_.round_number}: {outcome}")
        return SettlementOutcome(
            round_id=round_.id,
            round_number=round_.round_number,
            result=outcome,
            settled=True,
            **payouts.model_dump(),
        )

    async def _explain_noop(self, conn, round_id: UUID) -> SettlementOutcome:
        row = (
            await conn.execute(select(coinflip_rounds).where(coinflip_rounds.c.id == round_id))
        ).first()
        if row is None:
            raise RoundNotFoundError(f"Round {round_id} not found", round_id=round_id)

        existing = Round.from_row(row)
        if not existing.is_settled:
            raise RoundNotExpiredError(
                f"Round {round_id} is still open until {existing.ends_at.isoformat()}",
                round_id=round_id,
            )

        logger.info(f"Round #{existing.round_number} already settled ({existing.result})")
        return SettlementOutcome(
            round_id=existing.id,
            round_number=existing.round_number,
            result=existing.result,
            settled=False,
        )

    async def get_or_create_current(self, now: datetime, duration: timedelta) -> Round:
        current_query = (
            select(coinflip_rounds)
            .where(
                coinflip_rounds.c.is_settled.is_(False),
                coinflip_rounds.c.ends_at > now,
            )
            .order_by(coinflip_rounds.c.round_number.desc())
            .limit(1)
        )

        try:
            for attempt in range(1, CREATE_ATTEMPTS + 1):
                async with self.engine.begin() as conn:
                    await conn.execute(select(func.pg_advisory_xact_lock(CONTINUITY_LOCK_KEY)))
                    current = (await conn.execute(current_query)).first()
                    if current is not None:
                        return Round.from_row(current)

                    next_number = (
                        await conn.execute(
                            select(func.coalesce(func.max(coinflip_rounds.c.round_number), 0) + 1)
                        )
                    ).scalar_one()

                    created = (
                        await conn.execute(
                            insert(coinflip_rounds)
                            .values(
                                id=uuid4(),
                                round_number=next_number,
                                starts_at=now,
                                ends_at=now + duration,
                                is_settled=False,
                            )
                            .on_conflict_do_nothing(index_elements=["round_number"])
                            .returning(*coinflip_rounds.c)
                        )
                    ).first()

                if created is not None:
                    round_ = Round.from_row(created)
                    logger.info(
                        f"Opened round #{round_.round_number} until {round_.ends_at.isoformat()}"
                    )
                    return round_

                logger.info(
                    f"Round #{next_number} created concurrently, re-reading "
                    f"(attempt {attempt}/{CREATE_ATTEMPTS})"
                )

        except SQLAlchemyError as e:
            raise RoundStoreError(
                f"Failed to get or create current round: {e}", operation="get_or_create_current"
            ) from e

        raise RoundStoreError(
            f"No current round after {CREATE_ATTEMPTS} attempts",
            operation="get_or_create_current",
        )

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    async def close(self) -> None:
        await self.engine.dispose()
