from datetime import timedelta

from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import (
    AuditAction,
    AutoApplyHistoryItem,
    AutoApplyStats,
    utcnow,
)
from ledger_categorizer.services.auto_apply import Clock
from ledger_categorizer.storage.base import AuditStore, TransactionRepository

logger = get_logger(__name__)


class MonitoringService:
    def __init__(
        self,
        audit: AuditStore,
        transactions: TransactionRepository,
        *,
        retention_days: int,
        undo_rate_alert_threshold: float,
        clock: Clock | None = None,
    ) -> None:
        self.audit = audit
        self.transactions = transactions
        self.retention = timedelta(days=retention_days)
        self.undo_rate_alert_threshold = undo_rate_alert_threshold
        self._clock = clock or utcnow

    def get_stats(self, window_days: int = 7) -> AutoApplyStats:
        since = self._clock() - timedelta(days=window_days)
        recent = [entry for entry in self.audit.get_all() if entry.created_at >= since]
        applied = [entry for entry in recent if entry.action == AuditAction.AUTO_APPLY]
        undone = [entry for entry in recent if entry.action == AuditAction.UNDO and entry.reverts]

        undo_rate = len(undone) / len(applied) if applied else 0.0
        confidences = [entry.confidence for entry in applied if entry.confidence is not None]
        stats = AutoApplyStats(
            window_days=window_days,
            total_auto_applied=len(applied),
            total_undone=len(undone),
            undo_rate=undo_rate,
            average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
            undo_rate_above_threshold=undo_rate > self.undo_rate_alert_threshold,
            last_run_at=max((entry.created_at for entry in applied), default=None),
        )

        if stats.undo_rate_above_threshold:
            logger.warning(
                "[MONITOR] Undo rate %.2f%% exceeds threshold %.2f%% in %s-day window "
                "(%s/%s auto-applied assignments undone)",
                undo_rate * 100,
                self.undo_rate_alert_threshold * 100,
                window_days,
                len(undone),
                len(applied),
            )
        return stats

    def get_history(self, limit: int = 50) -> list[AutoApplyHistoryItem]:
        reverted = {
            entry.reverts
            for entry in self.audit.get_all()
            if entry.action == AuditAction.UNDO and entry.reverts
        }
        cutoff = self._clock() - self.retention

        history: list[AutoApplyHistoryItem] = []
        for entry in self.audit.get_recent(limit, action=AuditAction.AUTO_APPLY):
            transaction = self.transactions.get(entry.transaction_id)
            if transaction is None:
                continue
            was_undone = entry.id in reverted
            history.append(AutoApplyHistoryItem(
                transaction_id=entry.transaction_id,
                description=transaction.description,
                amount=transaction.amount,
                category_id=entry.after.category_id,
                confidence=entry.confidence or 0.0,
                auto_applied_at=entry.created_at,
                status="undone" if was_undone else "accepted",
                can_undo=not was_undone and entry.created_at >= cutoff,
            ))
        return history
