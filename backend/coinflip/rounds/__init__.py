"""Round lifecycle: models, stores and the payout ledger."""

from .exceptions import (
    InvalidResultError,
    RoundNotExpiredError,
    RoundNotFoundError,
    RoundStoreError,
    SettlementCycleError,
    SettlementError,
)
from .ledger import CoinflipBetLedger, NullLedger, PayoutLedger
from .models import (
    COIN_SIDES,
    CycleReport,
    PayoutSummary,
    Round,
    RoundFailure,
    SettlementOutcome,
)
from .store import InMemoryRoundStore, RoundStore, draw_result

__all__ = [
    "RoundStore",
    "InMemoryRoundStore",
    "draw_result",
    "PayoutLedger",
    "NullLedger",
    "CoinflipBetLedger",
    "COIN_SIDES",
    "Round",
    "PayoutSummary",
    "SettlementOutcome",
    "RoundFailure",
    "CycleReport",
    "RoundStoreError",
    "SettlementError",
    "RoundNotFoundError",
    "RoundNotExpiredError",
    "InvalidResultError",
    "SettlementCycleError",
]
