import asyncio

from ledger_categorizer.domain.labels import merge_labels
from ledger_categorizer.errors import TransactionNotFoundError
from ledger_categorizer.logger import get_logger
from ledger_categorizer.manager import CategorizerService
from ledger_categorizer.models import (
    AssignmentState,
    AuditAction,
    AuditEntry,
    CategorizationResult,
    CategorySuggestion,
    Transaction,
)
from ledger_categorizer.storage.base import AuditStore, TransactionRepository

logger = get_logger(__name__)

AUTO_APPLY_ACTOR = "auto-apply"


def assignment_state(transaction: Transaction) -> AssignmentState:
    return AssignmentState(category_id=transaction.category_id, labels=list(transaction.labels))


class CategorizationPipeline:
    def __init__(
        self,
        service: CategorizerService,
        transactions: TransactionRepository,
        audit: AuditStore,
    ) -> None:
        self.service = service
        self.transactions = transactions
        self.audit = audit

    def _require(self, transaction_id: str) -> Transaction:
        transaction = self.transactions.get(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id)
        return transaction

    async def predict(self, transaction: Transaction, *, threshold: float = 0.0) -> CategorizationResult:
        return await asyncio.to_thread(self.service.categorize, transaction, threshold)

    async def suggest(self, transaction_id: str) -> list[CategorySuggestion]:
        transaction = self._require(transaction_id)
        return await asyncio.to_thread(self.service.suggest, transaction)

    def auto_approval_reason(
        self,
        transaction_id: str,
        prediction: CategorizationResult,
        *,
        threshold: float,
        excluded_category_ids: list[int] | None = None,
    ) -> str | None:
        """Why a prediction must not be applied unattended, or None when it may be."""
        if prediction.source == "none":
            return "no_suggestion"
        if prediction.category_id is None:
            logger.debug("[AUTO-APPLY] Rule %s for transaction %s sets no category.", prediction.rule_id, transaction_id)
            return "no_category"
        if excluded_category_ids and prediction.category_id in excluded_category_ids:
            logger.debug(
                "[AUTO-APPLY] Category %s is excluded; transaction %s left for review.",
                prediction.category_id,
                transaction_id,
            )
            return "excluded"
        if prediction.confidence < threshold:
            logger.debug(
                "[AUTO-APPLY] Confidence %.4f below threshold %.4f for transaction %s.",
                prediction.confidence,
                threshold,
                transaction_id,
            )
            return "low_confidence"
        return None

    def apply_auto_approval(self, transaction: Transaction, prediction: CategorizationResult) -> AuditEntry:
        """Write the assignment and its audit entry together. Safe to repeat after a failure.

        ``transaction`` is the state the batch fetched and is always recorded as
        the before-state, even when an earlier attempt already wrote the
        assignment. If the audit entry cannot be stored the assignment is
        reverted, so no automated change exists without its entry.
        """
        current = self._require(transaction.id)
        before = assignment_state(transaction)
        labels = merge_labels(transaction.labels, prediction.labels)
        if current.category_id == prediction.category_id and current.labels == labels:
            updated = current
        else:
            updated = self.transactions.save_assignment(current.id, prediction.category_id, labels)

        entry = AuditEntry(
            transaction_id=current.id,
            action=AuditAction.AUTO_APPLY,
            actor=AUTO_APPLY_ACTOR,
            before=before,
            after=assignment_state(updated),
            confidence=prediction.confidence,
            model_version=prediction.model_version,
            reason=prediction.explain(),
        )
        try:
            self.audit.append(entry)
        except Exception:
            logger.warning(
                "[AUTO-APPLY] Audit write failed for transaction %s; reverting assignment.",
                current.id,
            )
            self.transactions.save_assignment(current.id, before.category_id, list(before.labels))
            raise
        logger.info(
            "[AUTO-APPLY] Transaction %s: category %s (confidence: %.4f, %s)",
            current.id,
            prediction.category_id,
            prediction.confidence,
            entry.reason,
        )
        return entry

    def assign(
        self,
        transaction_id: str,
        category_id: int,
        *,
        actor: str = "user",
        labels: list[str] | None = None,
    ) -> AuditEntry:
        """Manual assignment. A change of an existing category counts as a correction."""
        current = self._require(transaction_id)
        previous = current.category_id
        merged = merge_labels(current.labels, labels or [])
        updated = self.transactions.save_assignment(transaction_id, category_id, merged)

        is_correction = previous is not None and previous != category_id
        entry = AuditEntry(
            transaction_id=transaction_id,
            action=AuditAction.CORRECTION if is_correction else AuditAction.MANUAL_ASSIGN,
            actor=actor,
            before=assignment_state(current),
            after=assignment_state(updated),
            reason=f"Changed from category {previous}" if is_correction else "Assigned manually",
        )
        self.audit.append(entry)
        self.service.learn(updated, previous_category_id=previous)

        logger.info(
            "[CATEGORIZE] Transaction %s -> category %s (%s by %s)",
            transaction_id,
            category_id,
            entry.action.value,
            actor,
        )
        return entry
