import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from ledger_categorizer.errors import TransactionNotFoundError
from ledger_categorizer.models import (
    AssignmentState,
    AuditAction,
    AuditEntry,
    AutoApplySettings,
    CategoryLearningProfile,
    MatchKind,
    Rule,
)
from ledger_categorizer.storage.json_store import (
    JsonAuditStore,
    JsonCategoryRepository,
    JsonProfileStore,
    JsonRuleStore,
    JsonSettingsStore,
    JsonTransactionRepository,
)
from ledger_categorizer.storage.memory import InMemoryRuleStore, InMemoryTransactionRepository

from conftest import make_transaction


def test_transactions_persist_assignments(tmp_path: Path) -> None:
    path = str(tmp_path / "transactions.json")
    repo = JsonTransactionRepository(path)
    repo.add(make_transaction("1"))
    repo.save_assignment("1", 2, ["coffee"])

    reloaded = JsonTransactionRepository(path).get("1")

    assert reloaded is not None
    assert reloaded.category_id == 2
    assert reloaded.labels == ["coffee"]


def test_save_assignment_unknown_transaction() -> None:
    with pytest.raises(TransactionNotFoundError):
        InMemoryTransactionRepository().save_assignment("nope", 1, [])


def test_repository_returns_copies() -> None:
    repo = InMemoryTransactionRepository([make_transaction("1")])
    fetched = repo.get("1")
    fetched.category_id = 5

    assert repo.get("1").category_id is None


def test_rules_keep_ids_and_priority_order(tmp_path: Path) -> None:
    path = str(tmp_path / "rules.json")
    store = JsonRuleStore(path)
    low = store.add(Rule(match_kind=MatchKind.CONTAINS, pattern="a", target_category_id=1))
    high = store.add(Rule(match_kind=MatchKind.EXACT, pattern="b", target_category_id=2, priority=3))

    reloaded = JsonRuleStore(path)

    assert [rule.id for rule in reloaded.get_ordered_by_priority()] == [high.id, low.id]
    assert reloaded.get(low.id).pattern == "a"
    assert reloaded.add(Rule(match_kind=MatchKind.CONTAINS, pattern="c")).id == 3


def test_rule_update_and_delete() -> None:
    store = InMemoryRuleStore([Rule(match_kind=MatchKind.CONTAINS, pattern="a")])
    rule = store.get(1)
    rule.priority = 9

    store.update(rule)
    assert store.get(1).priority == 9

    assert store.delete(1) is True
    assert store.delete(1) is False
    with pytest.raises(KeyError):
        store.update(rule)


def test_profiles_persist(tmp_path: Path) -> None:
    path = str(tmp_path / "profiles.json")
    JsonProfileStore(path).update(CategoryLearningProfile(category_id=4, word_frequency={"rent": 2}))

    reloaded = JsonProfileStore(path)

    assert reloaded.get(4).word_frequency == {"rent": 2}
    assert reloaded.get_or_create(5).word_frequency == {}


def test_audit_log_is_append_only(tmp_path: Path) -> None:
    path = str(tmp_path / "audit.json")
    store = JsonAuditStore(path)
    entry = AuditEntry(
        transaction_id="1",
        action=AuditAction.MANUAL_ASSIGN,
        actor="user",
        before=AssignmentState(),
        after=AssignmentState(category_id=1),
    )
    store.append(entry)

    reloaded = JsonAuditStore(path)

    assert [e.model_dump() for e in reloaded.get_all()] == [entry.model_dump()]
    assert reloaded.get_latest("1", AuditAction.MANUAL_ASSIGN).id == entry.id
    assert reloaded.get_latest("1", AuditAction.UNDO) is None


def test_auto_apply_entry_requires_traceability() -> None:
    with pytest.raises(ValueError):
        AuditEntry(
            transaction_id="1",
            action=AuditAction.AUTO_APPLY,
            actor="auto-apply",
            before=AssignmentState(),
            after=AssignmentState(category_id=1),
        )


def test_settings_default_then_persisted(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AUTO_APPLY_ENABLED", raising=False)
    monkeypatch.delenv("AUTO_APPLY_MIN_CONFIDENCE", raising=False)
    path = str(tmp_path / "settings.json")
    store = JsonSettingsStore(path)

    assert store.get().enabled is False
    assert store.get().min_confidence == 0.85

    store.set(AutoApplySettings(enabled=True, min_confidence=0.9, updated_by="alice"))
    reloaded = JsonSettingsStore(path).get()

    assert reloaded.enabled is True
    assert reloaded.min_confidence == 0.9
    assert reloaded.updated_by == "alice"


def test_categories_loaded_from_file(tmp_path: Path) -> None:
    path = tmp_path / "categories.json"
    path.write_text(json.dumps([{"id": 1, "name": "Groceries"}]), encoding="utf-8")

    repo = JsonCategoryRepository(str(path))

    assert repo.get(1).name == "Groceries"
    assert repo.get(2) is None


def test_corrupt_file_starts_empty(tmp_path: Path) -> None:
    path = tmp_path / "profiles.json"
    path.write_text("{not json", encoding="utf-8")

    assert JsonProfileStore(str(path)).get_all() == []


def test_transaction_lookups() -> None:
    repo = InMemoryTransactionRepository([
        make_transaction("1", account_id=1, date=datetime(2024, 1, 5, tzinfo=timezone.utc)),
        make_transaction("2", account_id=2, date=datetime(2024, 1, 2, tzinfo=timezone.utc), category_id=3),
        make_transaction("3", account_id=1, date=datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ])

    assert {tx.id for tx in repo.get_by_account(1)} == {"1", "3"}
    assert [tx.id for tx in repo.get_by_category(3)] == ["2"]
    in_range = repo.get_by_date_range(
        datetime(2024, 1, 2, tzinfo=timezone.utc),
        datetime(2024, 1, 5, tzinfo=timezone.utc),
    )
    assert {tx.id for tx in in_range} == {"1", "2"}
    assert [tx.id for tx in repo.get_unassigned(10)] == ["3", "1"]
    assert [tx.id for tx in repo.get_unassigned(1)] == ["3"]
