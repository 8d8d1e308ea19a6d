"""Settlement driver: settle every expired round, then guarantee a current one."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union
from uuid import UUID

from coinflip.database import create_engine_from_settings
from coinflip.rounds import (
    CoinflipBetLedger,
    CycleReport,
    InMemoryRoundStore,
    Round,
    RoundFailure,
    RoundStore,
    RoundStoreError,
    SettlementCycleError,
    SettlementError,
    SettlementOutcome,
)
from coinflip.rounds.postgres import PostgresRoundStore

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SettlementDriver:
    """
    Stateless settlement cycle over a round store.

    Holds no lock and remembers nothing between cycles: settle-once and
    create-once are enforced by the store, so overlapping cycles are safe.
    """

    def __init__(
        self,
        store: RoundStore,
        round_duration: timedelta,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.round_duration = round_duration
        self.clock = clock

    async def run_settlement_cycle(self) -> CycleReport:
        """
        Run one settlement cycle.

        Process:
        1. List unsettled rounds whose window has elapsed (oldest first)
        2. Resolve each one in turn; a failed round is recorded and skipped
        3. Ensure a current round exists, whether or not anything was settled
        4. Report per-round results and the current round

        Raises:
            SettlementCycleError: the store could not be listed or no current
                round could be obtained.
        """
        started_at = self.clock()

        try:
            expired = await self.store.list_expired_unsettled(started_at)
        except RoundStoreError as e:
            logger.error(f"Settlement cycle failed listing expired rounds: {e}")
            raise SettlementCycleError(str(e), operation="list_expired_unsettled") from e

        logger.info(f"Found {len(expired)} rounds to settle")

        results: list[Union[SettlementOutcome, RoundFailure]] = []
        for round_ in expired:
            results.append(await self._settle(round_))

        current = await self.ensure_current_round()

        report = CycleReport(
            settled_count=sum(1 for r in results if isinstance(r, SettlementOutcome)),
            results=results,
            current_round=current,
            started_at=started_at,
            finished_at=self.clock(),
        )
        if report.failures:
            logger.warning(
                f"Settlement cycle finished with {len(report.failures)} failed rounds; "
                "they stay unsettled for the next cycle"
            )
        return report

    async def _settle(self, round_: Round) -> Union[SettlementOutcome, RoundFailure]:
        logger.info(f"Settling round {round_.id} (Round #{round_.round_number})")
        try:
            outcome = await self.store.resolve(round_.id, self.clock())
        except SettlementError as e:
            logger.error(f"Error settling round {round_.id}: {e}")
            return RoundFailure(
                round_id=round_.id,
                round_number=round_.round_number,
                error=str(e),
            )

        if not outcome.settled:
            logger.info(f"Round {round_.id} was settled by a concurrent cycle")
        return outcome

    async def ensure_current_round(self) -> Round:
        """Return the open round, creating the next one if none is open."""
        try:
            current = await self.store.get_or_create_current(self.clock(), self.round_duration)
        except RoundStoreError as e:
            logger.error(f"Error getting/creating current round: {e}")
            raise SettlementCycleError(str(e), operation="ensure_current_round") from e

        logger.info(f"Current active round: #{current.round_number} ({current.id})")
        return current

    async def settle_round(
        self, round_id: UUID, result: Optional[str] = None
    ) -> SettlementOutcome:
        """Settle one round on demand, optionally with an admin-chosen result."""
        outcome = await self.store.resolve(round_id, self.clock(), result=result)
        logger.info(
            f"Manual settlement of round #{outcome.round_number}: {outcome.result} "
            f"(settled={outcome.settled})"
        )
        return outcome


def create_round_store(settings) -> RoundStore:
    """Build the round store selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        logger.warning("Using in-memory round store; rounds are lost on restart")
        return InMemoryRoundStore()

    engine = create_engine_from_settings(settings)
    return PostgresRoundStore(engine, CoinflipBetLedger(settings.rounds.payout_multiplier))


def create_settlement_driver(settings, store: Optional[RoundStore] = None) -> SettlementDriver:
    return SettlementDriver(
        store=store or create_round_store(settings),
        round_duration=timedelta(seconds=settings.rounds.duration_seconds),
    )
