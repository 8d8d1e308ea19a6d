from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator

CoinSide = Literal["heads", "tails"]
COIN_SIDES: tuple[str, str] = ("heads", "tails")


class Round(BaseModel):
    """A fixed-duration betting window."""

    id: UUID
    round_number: int
    starts_at: datetime
    ends_at: datetime
    is_settled: bool = False
    result: CoinSide | None = None
    created_at: datetime | None = None

    @field_validator("starts_at", "ends_at", "created_at", mode="after")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        if v is None:
            return None
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    def is_open(self, now: datetime) -> bool:
        return not self.is_settled and now < self.ends_at

    def is_expired(self, now: datetime) -> bool:
        return not self.is_settled and self.ends_at <= now

    @classmethod
    def from_row(cls, row: Any) -> Round:
        data = dict(row._mapping) if hasattr(row, "_mapping") else dict(row)
        return cls(
            id=data["id"],
            round_number=data["round_number"],
            starts_at=data["starts_at"],
            ends_at=data["ends_at"],
            is_settled=data["is_settled"],
            result=data.get("result"),
            created_at=data.get("created_at"),
        )


class PayoutSummary(BaseModel):
    """What the ledger did for one settled round."""

    bets_settled: int = 0
    winners: int = 0
    total_payout: Decimal = Decimal("0")


class SettlementOutcome(BaseModel):
    """Resolver result for one round.

    ``settled`` is true only for the call that actually flipped the round; a
    repeated call reports the recorded result with ``settled=False``.
    """

    round_id: UUID
    round_number: int
    result: CoinSide
    settled: bool
    bets_settled: int = 0
    winners: int = 0
    total_payout: Decimal = Decimal("0")

    @field_serializer("total_payout")
    def serialize_payout(self, v: Decimal) -> float:
        return float(v)


class RoundFailure(BaseModel):
    """A round whose settlement failed in this cycle; retried on the next."""

    round_id: UUID
    round_number: int | None = None
    error: str


class CycleReport(BaseModel):
    success: bool = True
    settled_count: int
    results: list[Union[SettlementOutcome, RoundFailure]] = Field(default_factory=list)
    current_round: Round
    started_at: datetime
    finished_at: datetime

    @property
    def failures(self) -> list[RoundFailure]:
        return [r for r in self.results if isinstance(r, RoundFailure)]

    def to_response(self) -> dict[str, Any]:
        """JSON body returned by the settlement trigger."""
        return {
            "success": self.success,
            "settled_count": self.settled_count,
            "results": [r.model_dump(mode="json") for r in self.results],
            "current_round": self.current_round.model_dump(mode="json"),
        }
