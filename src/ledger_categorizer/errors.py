class CategorizerError(Exception):
    """Base class for errors raised by the categorization core."""


class ScheduleError(CategorizerError, ValueError):
    """A schedule expression is malformed or never fires within the search horizon."""


class TransactionNotFoundError(CategorizerError, LookupError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"Transaction {transaction_id} not found")
        self.transaction_id = transaction_id


class UndoError(CategorizerError):
    """Base class for rejected undo requests."""


class AuditEntryNotFoundError(UndoError, LookupError):
    def __init__(self, transaction_id: str) -> None:
        super().__init__(f"No auto-applied assignment recorded for transaction {transaction_id}")
        self.transaction_id = transaction_id


class UndoExpiredError(UndoError):
    def __init__(self, transaction_id: str, retention_days: int) -> None:
        super().__init__(
            f"Auto-applied assignment for transaction {transaction_id} is older than "
            f"the {retention_days}-day undo window"
        )
        self.transaction_id = transaction_id
        self.retention_days = retention_days


class UndoConflictError(UndoError):
    def __init__(self, transaction_id: str, reason: str) -> None:
        super().__init__(f"Cannot undo transaction {transaction_id}: {reason}")
        self.transaction_id = transaction_id
        self.reason = reason
