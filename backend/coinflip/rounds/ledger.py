"""Payout ledger collaborators invoked inside the resolver's unit of work."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, case, update
from sqlalchemy.ext.asyncio import AsyncConnection

from coinflip.database import coinflip_bets, profiles

from .models import PayoutSummary, Round

logger = logging.getLogger(__name__)


class PayoutLedger(ABC):
    """Distributes payouts for a round that is being settled.

    Implementations must not commit: they run on the caller's transaction so a
    failure here rolls back the settlement flag as well.
    """

    @abstractmethod
    async def distribute(
        self, round_: Round, result: str, connection: Any = None
    ) -> PayoutSummary:
        ...


class NullLedger(PayoutLedger):
    """Ledger for deployments without bets (dev / memory backend)."""

    async def distribute(
        self, round_: Round, result: str, connection: Any = None
    ) -> PayoutSummary:
        return PayoutSummary()


class CoinflipBetLedger(PayoutLedger):
    """Settles ``coinflip_bets`` rows and credits winners' wallet balances."""

    def __init__(self, payout_multiplier: float = 2.0):
        self.payout_multiplier = Decimal(str(payout_multiplier))

    async def distribute(
        self, round_: Round, result: str, connection: AsyncConnection | None = None
    ) -> PayoutSummary:
        if connection is None:
            raise ValueError("CoinflipBetLedger requires the resolver's connection")

        pending = and_(
            coinflip_bets.c.round_id == round_.id,
            coinflip_bets.c.status == "pending",
        )
        won = coinflip_bets.c.choice == result

        settled = await connection.execute(
            update(coinflip_bets)
            .where(pending)
            .values(
                status=case((won, "won"), else_="lost"),
                payout=case((won, coinflip_bets.c.amount * self.payout_multiplier), else_=0),
            )
            .returning(
                coinflip_bets.c.user_id,
                coinflip_bets.c.status,
                coinflip_bets.c.payout,
            )
        )
        rows = settled.all()

        credits: dict[Any, Decimal] = {}
        for row in rows:
            if row.status == "won":
                credits[row.user_id] = credits.get(row.user_id, Decimal("0")) + Decimal(row.payout)

        for user_id, amount in credits.items():
            await connection.execute(
                update(profiles)
                .where(profiles.c.user_id == user_id)
                .values(wallet_balance=profiles.c.wallet_balance + amount)
            )

        summary = PayoutSummary(
            bets_settled=len(rows),
            winners=sum(1 for r in rows if r.status == "won"),
            total_payout=sum(credits.values(), Decimal("0")),
        )
        logger.info(
            f"Round #{round_.round_number} payouts: {summary.bets_settled} bets, "
            f"{summary.winners} winners, {summary.total_payout} paid"
        )
        return summary
