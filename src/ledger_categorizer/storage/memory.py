from ledger_categorizer.core import settings as config
from ledger_categorizer.errors import TransactionNotFoundError
from ledger_categorizer.models import (
    AuditEntry,
    AutoApplySettings,
    Category,
    CategoryLearningProfile,
    Rule,
    Transaction,
)
from ledger_categorizer.storage.base import (
    AuditStore,
    CategoryRepository,
    ProfileStore,
    RuleStore,
    SettingsStore,
    TransactionRepository,
)

# Stores hand out deep copies so callers go through update() like they would
# against a real database.


class InMemoryTransactionRepository(TransactionRepository):
    def __init__(self, transactions: list[Transaction] | None = None) -> None:
        self.transactions: dict[str, Transaction] = {}
        for transaction in transactions or []:
            self.add(transaction)

    def add(self, transaction: Transaction) -> None:
        self.transactions[transaction.id] = transaction.model_copy(deep=True)

    def get(self, transaction_id: str) -> Transaction | None:
        transaction = self.transactions.get(transaction_id)
        return transaction.model_copy(deep=True) if transaction else None

    def get_all(self) -> list[Transaction]:
        return [tx.model_copy(deep=True) for tx in self.transactions.values()]

    def save_assignment(
        self,
        transaction_id: str,
        category_id: int | None,
        labels: list[str],
    ) -> Transaction:
        current = self.transactions.get(transaction_id)
        if current is None:
            raise TransactionNotFoundError(transaction_id)
        updated = current.model_copy(update={"category_id": category_id, "labels": list(labels)})
        self.transactions[transaction_id] = updated
        return updated.model_copy(deep=True)


class InMemoryCategoryRepository(CategoryRepository):
    def __init__(self, categories: list[Category] | None = None) -> None:
        self.categories = list(categories or [])

    def get_all(self) -> list[Category]:
        return list(self.categories)


class InMemoryRuleStore(RuleStore):
    def __init__(self, rules: list[Rule] | None = None) -> None:
        self.rules: list[Rule] = []
        for rule in rules or []:
            self.add(rule)

    def _next_id(self) -> int:
        return max((rule.id or 0 for rule in self.rules), default=0) + 1

    def get_all(self) -> list[Rule]:
        return [rule.model_copy(deep=True) for rule in self.rules]

    def add(self, rule: Rule) -> Rule:
        stored = rule.model_copy(deep=True)
        if stored.id is None:
            stored.id = self._next_id()
        self.rules.append(stored)
        return stored.model_copy(deep=True)

    def update(self, rule: Rule) -> Rule:
        for index, existing in enumerate(self.rules):
            if existing.id == rule.id:
                self.rules[index] = rule.model_copy(deep=True)
                return rule
        raise KeyError(f"Rule {rule.id} not found")

    def delete(self, rule_id: int) -> bool:
        before = len(self.rules)
        self.rules = [rule for rule in self.rules if rule.id != rule_id]
        return len(self.rules) < before


class InMemoryProfileStore(ProfileStore):
    def __init__(self, profiles: list[CategoryLearningProfile] | None = None) -> None:
        self.profiles: dict[int, CategoryLearningProfile] = {}
        for profile in profiles or []:
            self.update(profile)

    def get(self, category_id: int) -> CategoryLearningProfile | None:
        profile = self.profiles.get(category_id)
        return profile.model_copy(deep=True) if profile else None

    def get_all(self) -> list[CategoryLearningProfile]:
        return [profile.model_copy(deep=True) for profile in self.profiles.values()]

    def update(self, profile: CategoryLearningProfile) -> None:
        self.profiles[profile.category_id] = profile.model_copy(deep=True)


class InMemoryAuditStore(AuditStore):
    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def append(self, entry: AuditEntry) -> None:
        # Entries are frozen models, no copy needed
        self.entries.append(entry)

    def get_all(self) -> list[AuditEntry]:
        return list(self.entries)


class InMemorySettingsStore(SettingsStore):
    def __init__(self, settings: AutoApplySettings | None = None) -> None:
        self.settings = settings

    def get(self) -> AutoApplySettings:
        if self.settings is None:
            return AutoApplySettings(**config.default_auto_apply_values())
        return self.settings.model_copy(deep=True)

    def set(self, settings: AutoApplySettings) -> AutoApplySettings:
        self.settings = settings.model_copy(deep=True)
        return settings
