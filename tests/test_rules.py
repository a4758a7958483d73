import logging
from unittest.mock import MagicMock

import pytest

from ledger_categorizer.classifiers import rules as rules_module
from ledger_categorizer.classifiers.rules import RuleEngine, rule_matches
from ledger_categorizer.models import MatchKind, Rule
from ledger_categorizer.storage.memory import InMemoryRuleStore, InMemoryTransactionRepository

from conftest import make_transaction


def test_contains_is_case_insensitive() -> None:
    rule = Rule(match_kind=MatchKind.CONTAINS, pattern="COFFEE", target_category_id=2)
    assert rule_matches(rule, make_transaction(description="Morning coffee run"))
    assert not rule_matches(rule, make_transaction(description="Tea"))


def test_exact_match() -> None:
    rule = Rule(match_kind=MatchKind.EXACT, pattern="netflix", target_category_id=3)
    assert rule_matches(rule, make_transaction(description="NETFLIX"))
    assert not rule_matches(rule, make_transaction(description="Netflix.com"))


def test_counter_account_match_is_normalized() -> None:
    rule = Rule(match_kind=MatchKind.COUNTER_ACCOUNT, pattern="nl01 bank 0001", target_category_id=3)
    assert rule_matches(rule, make_transaction(counter_account="NL01BANK0001"))
    assert not rule_matches(rule, make_transaction(counter_account=None))


def test_regex_match() -> None:
    rule = Rule(match_kind=MatchKind.REGEX, pattern=r"^albert\s+heijn", target_category_id=1)
    assert rule_matches(rule, make_transaction(description="Albert  Heijn 1234"))
    assert not rule_matches(rule, make_transaction(description="Not Albert Heijn"))


def test_invalid_regex_never_matches() -> None:
    rule = Rule(match_kind=MatchKind.REGEX, pattern="([unclosed", target_category_id=1)
    assert not rule_matches(rule, make_transaction(description="[unclosed"))


def test_empty_pattern_never_matches() -> None:
    rule = Rule(match_kind=MatchKind.CONTAINS, pattern="", target_category_id=1)
    assert not rule_matches(rule, make_transaction())


def test_highest_priority_wins() -> None:
    store = InMemoryRuleStore([
        Rule(match_kind=MatchKind.CONTAINS, pattern="coffee", target_category_id=2, priority=1),
        Rule(match_kind=MatchKind.CONTAINS, pattern="corner", target_category_id=1, priority=5, labels=["shop"]),
    ])
    engine = RuleEngine(store, InMemoryTransactionRepository())

    result = engine.classify(make_transaction(description="Coffee Corner"), threshold=0.99)

    assert result is not None
    assert result.source == "rule"
    assert result.category_id == 1
    assert result.confidence == 1.0
    assert result.labels == ["shop"]
    assert result.rule_id == 2
    assert result.model_version == RuleEngine.VERSION


def test_equal_priority_keeps_insertion_order() -> None:
    store = InMemoryRuleStore([
        Rule(match_kind=MatchKind.CONTAINS, pattern="coffee", target_category_id=2),
        Rule(match_kind=MatchKind.CONTAINS, pattern="corner", target_category_id=1),
    ])
    engine = RuleEngine(store, InMemoryTransactionRepository())

    match = engine.apply_rules(make_transaction(description="Coffee Corner"))

    assert match.matched
    assert match.category_id == 2


def test_no_match() -> None:
    engine = RuleEngine(InMemoryRuleStore(), InMemoryTransactionRepository())
    assert engine.classify(make_transaction()) is None
    assert not engine.apply_rules(make_transaction()).matched


def test_preview_rule_filters_by_account() -> None:
    transactions = InMemoryTransactionRepository([
        make_transaction("1", description="Coffee Corner", account_id=1),
        make_transaction("2", description="Coffee Bar", account_id=2),
        make_transaction("3", description="Rent", account_id=1),
    ])
    engine = RuleEngine(InMemoryRuleStore(), transactions)
    rule = Rule(match_kind=MatchKind.CONTAINS, pattern="coffee", target_category_id=2)

    assert {tx.id for tx in engine.preview_rule(rule)} == {"1", "2"}
    assert [tx.id for tx in engine.preview_rule(rule, account_id=1)] == ["1"]
    # Preview never writes
    assert all(tx.category_id is None for tx in transactions.get_all())


def test_catastrophic_regex_is_no_match(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(rules_module, "REGEX_TIMEOUT_SECONDS", 0.05)
    rule = Rule(match_kind=MatchKind.REGEX, pattern=r"(a+)+$", target_category_id=1)

    assert not rule_matches(rule, make_transaction(description="a" * 40 + "!"))


def test_regex_timeout_is_logged_and_treated_as_no_match(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    compiled = MagicMock()
    compiled.search.side_effect = TimeoutError("regex timed out")
    monkeypatch.setattr(rules_module, "_compile", lambda pattern: compiled)
    store = InMemoryRuleStore([
        Rule(match_kind=MatchKind.REGEX, pattern="slow", target_category_id=1, priority=5),
        Rule(match_kind=MatchKind.CONTAINS, pattern="coffee", target_category_id=2),
    ])
    engine = RuleEngine(store, InMemoryTransactionRepository())

    with caplog.at_level(logging.WARNING):
        result = engine.classify(make_transaction(description="Coffee"))

    assert result is not None
    assert result.category_id == 2
    assert compiled.search.call_args.kwargs["timeout"] == rules_module.REGEX_TIMEOUT_SECONDS
    assert "timed out" in caplog.text
