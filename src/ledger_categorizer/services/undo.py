from datetime import timedelta

from ledger_categorizer.errors import (
    AuditEntryNotFoundError,
    TransactionNotFoundError,
    UndoConflictError,
    UndoError,
    UndoExpiredError,
)
from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import AuditAction, AuditEntry, utcnow
from ledger_categorizer.services.auto_apply import Clock
from ledger_categorizer.services.categorization import assignment_state
from ledger_categorizer.services.learning import LearningService
from ledger_categorizer.storage.base import AuditStore, TransactionRepository

logger = get_logger(__name__)


class UndoService:
    """Reverts auto-applied assignments inside the retention window."""

    def __init__(
        self,
        transactions: TransactionRepository,
        audit: AuditStore,
        learning: LearningService,
        retention_days: int,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.transactions = transactions
        self.audit = audit
        self.learning = learning
        self.retention = timedelta(days=retention_days)
        self.retention_days = retention_days
        self._clock = clock or utcnow

    def _find_undoable(self, transaction_id: str) -> AuditEntry:
        history = self.audit.get_by_transaction(transaction_id)
        auto_indexes = [i for i, entry in enumerate(history) if entry.action == AuditAction.AUTO_APPLY]
        if not auto_indexes:
            raise AuditEntryNotFoundError(transaction_id)

        index = auto_indexes[-1]
        entry = history[index]
        if entry.created_at < self._clock() - self.retention:
            raise UndoExpiredError(transaction_id, self.retention_days)

        for later in history[index + 1:]:
            if later.action == AuditAction.UNDO and later.reverts == entry.id:
                raise UndoConflictError(transaction_id, "already undone")
            if later.action in (AuditAction.MANUAL_ASSIGN, AuditAction.CORRECTION):
                raise UndoConflictError(transaction_id, "changed manually after the auto-apply")
        return entry

    def can_undo(self, transaction_id: str) -> bool:
        try:
            self._find_undoable(transaction_id)
        except UndoError:
            return False
        return self.transactions.get(transaction_id) is not None

    def undo_auto_apply(self, transaction_id: str, *, actor: str = "user") -> AuditEntry:
        entry = self._find_undoable(transaction_id)
        transaction = self.transactions.get(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)

        restored = self.transactions.save_assignment(
            transaction_id,
            entry.before.category_id,
            list(entry.before.labels),
        )
        undo_entry = AuditEntry(
            transaction_id=transaction_id,
            action=AuditAction.UNDO,
            actor=actor,
            before=assignment_state(transaction),
            after=assignment_state(restored),
            reason=(
                f"Reverted auto-applied assignment ({entry.model_version}, "
                f"confidence: {entry.confidence:.4f})"
            ),
            reverts=entry.id,
        )
        self.audit.append(undo_entry)

        if entry.after.category_id is not None:
            self.learning.learn_from_undo(transaction, entry.after.category_id)

        logger.info(
            "[UNDO] Transaction %s: reverted auto-applied category %s (%s, confidence: %.4f)",
            transaction_id,
            entry.after.category_id,
            entry.model_version,
            entry.confidence,
        )
        return undo_entry
