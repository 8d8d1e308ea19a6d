from uuid import UUID


class RoundStoreError(Exception):
    """Base exception for round store failures."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class SettlementError(RoundStoreError):
    """Settling a single round failed. The round stays eligible for retry."""

    def __init__(self, message: str, round_id: UUID | str):
        super().__init__(message, operation="resolve")
        self.round_id = round_id


class RoundNotFoundError(SettlementError):
    """No round with the given id."""

    pass


class RoundNotExpiredError(SettlementError):
    """Round is still open for wagers."""

    pass


class InvalidResultError(SettlementError):
    """Forced result is not a coin side."""

    pass


class SettlementCycleError(Exception):
    """A whole settlement cycle failed; the next scheduled tick retries."""

    def __init__(self, message: str, operation: str):
        super().__init__(message)
        self.operation = operation
