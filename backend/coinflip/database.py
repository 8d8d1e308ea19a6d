"""
Postgres schema and async engine management.

Tables mirror the Supabase schema the frontend reads:
- coinflip_rounds: betting windows, settled exactly once
- coinflip_bets: wagers on a round, settled by the payout ledger
- profiles: per-user wallet balance credited on wins
"""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from coinflip.config import Settings

Base = declarative_base()


class CoinflipRound(Base):
    """Coinflip betting round."""

    __tablename__ = "coinflip_rounds"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    round_number = Column(Integer, nullable=False, unique=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    is_settled = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    result = Column(String(5), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("starts_at < ends_at", name="valid_round_window"),
        CheckConstraint(
            "result IS NULL OR result IN ('heads', 'tails')",
            name="valid_round_result",
        ),
        CheckConstraint(
            "is_settled = (result IS NOT NULL)",
            name="result_set_with_settlement",
        ),
        Index("idx_coinflip_rounds_unsettled", "is_settled", "ends_at"),
    )

    def __repr__(self) -> str:
        return f"<CoinflipRound #{self.round_number} settled={self.is_settled}>"


class CoinflipBet(Base):
    """Wager on a coinflip round."""

    __tablename__ = "coinflip_bets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    round_id = Column(
        UUID(as_uuid=True),
        ForeignKey("coinflip_rounds.id"),
        nullable=False,
        index=True,
    )
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    choice = Column(String(5), nullable=False)
    status = Column(String(16), nullable=False, default="pending", server_default="pending")
    payout = Column(Numeric(12, 2), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("choice IN ('heads', 'tails')", name="valid_bet_choice"),
        CheckConstraint("amount > 0", name="positive_amount"),
    )


class Profile(Base):
    """User profile holding the wallet balance."""

    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, unique=True)
    username = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    wallet_balance = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


coinflip_rounds = CoinflipRound.__table__
coinflip_bets = CoinflipBet.__table__
profiles = Profile.__table__


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create the asyncpg engine with pool and statement timeout settings."""
    db = settings.database
    return create_async_engine(
        settings.async_database_url,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_pre_ping=True,
        pool_recycle=db.pool_recycle_seconds,
        connect_args={
            "server_settings": {"statement_timeout": str(db.statement_timeout_ms)},
        },
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
