import json
import os
from typing import Any

from pydantic import BaseModel, ValidationError

from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import (
    AuditEntry,
    AutoApplySettings,
    Category,
    CategoryLearningProfile,
    Rule,
    Transaction,
)
from ledger_categorizer.storage.memory import (
    InMemoryAuditStore,
    InMemoryCategoryRepository,
    InMemoryProfileStore,
    InMemoryRuleStore,
    InMemorySettingsStore,
    InMemoryTransactionRepository,
)

logger = get_logger(__name__)


class JsonFile:
    """A JSON document on disk, rewritten whole on every save."""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self, default: Any) -> Any:
        if not os.path.exists(self.path):
            return default
        try:
            with open(self.path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError:
            logger.warning("[STORE] %s is not valid JSON, starting empty.", self.path)
            return default

    def save(self, data: Any) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, self.path)


def _dump_all(models: list[BaseModel]) -> list[dict[str, Any]]:
    return [model.model_dump(mode="json") for model in models]


def _load_models(file: JsonFile, model: type[BaseModel]) -> list[Any]:
    raw = file.load([])
    try:
        return [model.model_validate(item) for item in raw]
    except ValidationError as e:
        logger.error("[STORE] %s holds invalid %s records: %s", file.path, model.__name__, e)
        raise


class JsonTransactionRepository(InMemoryTransactionRepository):
    def __init__(self, data_path: str = "transactions.json") -> None:
        self.file = JsonFile(data_path)
        super().__init__()
        for transaction in _load_models(self.file, Transaction):
            self.transactions[transaction.id] = transaction

    def save(self) -> None:
        self.file.save(_dump_all(list(self.transactions.values())))

    def add(self, transaction: Transaction) -> None:
        super().add(transaction)
        self.save()

    def save_assignment(
        self,
        transaction_id: str,
        category_id: int | None,
        labels: list[str],
    ) -> Transaction:
        updated = super().save_assignment(transaction_id, category_id, labels)
        self.save()
        return updated


class JsonCategoryRepository(InMemoryCategoryRepository):
    def __init__(self, data_path: str = "categories.json") -> None:
        self.file = JsonFile(data_path)
        super().__init__(_load_models(self.file, Category))


class JsonRuleStore(InMemoryRuleStore):
    def __init__(self, data_path: str = "rules.json") -> None:
        self.file = JsonFile(data_path)
        super().__init__()
        # Loaded rules already carry ids, bypass add() so nothing is renumbered
        self.rules = _load_models(self.file, Rule)

    def save(self) -> None:
        self.file.save(_dump_all(self.rules))

    def add(self, rule: Rule) -> Rule:
        stored = super().add(rule)
        self.save()
        return stored

    def update(self, rule: Rule) -> Rule:
        updated = super().update(rule)
        self.save()
        return updated

    def delete(self, rule_id: int) -> bool:
        deleted = super().delete(rule_id)
        if deleted:
            self.save()
        return deleted


class JsonProfileStore(InMemoryProfileStore):
    def __init__(self, data_path: str = "profiles.json") -> None:
        self.file = JsonFile(data_path)
        super().__init__()
        for profile in _load_models(self.file, CategoryLearningProfile):
            self.profiles[profile.category_id] = profile

    def update(self, profile: CategoryLearningProfile) -> None:
        super().update(profile)
        self.file.save(_dump_all(list(self.profiles.values())))


class JsonAuditStore(InMemoryAuditStore):
    def __init__(self, data_path: str = "audit.json") -> None:
        self.file = JsonFile(data_path)
        super().__init__()
        self.entries = _load_models(self.file, AuditEntry)

    def append(self, entry: AuditEntry) -> None:
        self.file.save(_dump_all([*self.entries, entry]))
        super().append(entry)


class JsonSettingsStore(InMemorySettingsStore):
    def __init__(self, data_path: str = "settings.json") -> None:
        self.file = JsonFile(data_path)
        raw = self.file.load(None)
        super().__init__(AutoApplySettings.model_validate(raw) if raw else None)

    def set(self, settings: AutoApplySettings) -> AutoApplySettings:
        self.file.save(settings.model_dump(mode="json"))
        return super().set(settings)
