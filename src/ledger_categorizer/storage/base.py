"""Persistence seams of the categorization core.

Everything the engines and services read or write goes through one of these
classes. Concrete stores decide how the data is kept; the core assumes
read-committed reads and read-modify-write updates and does no locking.
"""
from abc import ABC, abstractmethod
from datetime import datetime

from ledger_categorizer.models import (
    AuditAction,
    AuditEntry,
    AutoApplySettings,
    Category,
    CategoryLearningProfile,
    Rule,
    Transaction,
)


class TransactionRepository(ABC):
    @abstractmethod
    def get(self, transaction_id: str) -> Transaction | None:
        pass

    @abstractmethod
    def get_all(self) -> list[Transaction]:
        pass

    @abstractmethod
    def save_assignment(
        self,
        transaction_id: str,
        category_id: int | None,
        labels: list[str],
    ) -> Transaction:
        """Persist the category/labels of a transaction and return the updated copy."""
        pass

    def get_by_account(self, account_id: int) -> list[Transaction]:
        return [tx for tx in self.get_all() if tx.account_id == account_id]

    def get_by_date_range(self, start: datetime, end: datetime) -> list[Transaction]:
        return [tx for tx in self.get_all() if start <= tx.date <= end]

    def get_by_category(self, category_id: int) -> list[Transaction]:
        return [tx for tx in self.get_all() if tx.category_id == category_id]

    def get_unassigned(
        self,
        limit: int,
        account_ids: list[int] | None = None,
    ) -> list[Transaction]:
        """Oldest first; an empty or missing ``account_ids`` means every account."""
        candidates = [
            tx
            for tx in self.get_all()
            if tx.category_id is None and (not account_ids or tx.account_id in account_ids)
        ]
        candidates.sort(key=lambda tx: tx.date)
        return candidates[:limit]


class CategoryRepository(ABC):
    @abstractmethod
    def get_all(self) -> list[Category]:
        pass

    def get(self, category_id: int) -> Category | None:
        for category in self.get_all():
            if category.id == category_id:
                return category
        return None


class RuleStore(ABC):
    @abstractmethod
    def get_all(self) -> list[Rule]:
        """Rules in authoring order."""
        pass

    @abstractmethod
    def add(self, rule: Rule) -> Rule:
        pass

    @abstractmethod
    def update(self, rule: Rule) -> Rule:
        pass

    @abstractmethod
    def delete(self, rule_id: int) -> bool:
        pass

    def get(self, rule_id: int) -> Rule | None:
        for rule in self.get_all():
            if rule.id == rule_id:
                return rule
        return None

    def get_ordered_by_priority(self) -> list[Rule]:
        # sorted() is stable, so equal priorities keep authoring order
        return sorted(self.get_all(), key=lambda rule: rule.priority, reverse=True)


class ProfileStore(ABC):
    @abstractmethod
    def get(self, category_id: int) -> CategoryLearningProfile | None:
        pass

    @abstractmethod
    def get_all(self) -> list[CategoryLearningProfile]:
        pass

    @abstractmethod
    def update(self, profile: CategoryLearningProfile) -> None:
        pass

    def get_or_create(self, category_id: int) -> CategoryLearningProfile:
        profile = self.get(category_id)
        if profile is None:
            profile = CategoryLearningProfile(category_id=category_id)
            self.update(profile)
        return profile


class AuditStore(ABC):
    @abstractmethod
    def append(self, entry: AuditEntry) -> None:
        pass

    @abstractmethod
    def get_all(self) -> list[AuditEntry]:
        """Entries in the order they were appended."""
        pass

    def get_by_transaction(self, transaction_id: str) -> list[AuditEntry]:
        return [entry for entry in self.get_all() if entry.transaction_id == transaction_id]

    def get_recent(
        self,
        limit: int = 50,
        *,
        since: datetime | None = None,
        action: AuditAction | None = None,
    ) -> list[AuditEntry]:
        entries = [
            entry
            for entry in self.get_all()
            if (since is None or entry.created_at >= since)
            and (action is None or entry.action == action)
        ]
        entries.reverse()
        return entries[:limit]

    def get_latest(
        self,
        transaction_id: str,
        action: AuditAction | None = None,
    ) -> AuditEntry | None:
        for entry in reversed(self.get_by_transaction(transaction_id)):
            if action is None or entry.action == action:
                return entry
        return None


class SettingsStore(ABC):
    @abstractmethod
    def get(self) -> AutoApplySettings:
        """Stored settings, or the static defaults when nothing was saved yet."""
        pass

    @abstractmethod
    def set(self, settings: AutoApplySettings) -> AutoApplySettings:
        pass
