from collections.abc import Callable
from functools import lru_cache

import regex

from ledger_categorizer.domain.features import normalize_counter_account
from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import (
    CategorizationResult,
    MatchKind,
    Rule,
    RuleMatchResult,
    Transaction,
)
from ledger_categorizer.storage.base import RuleStore, TransactionRepository

from .base import Classifier

logger = get_logger(__name__)

REGEX_TIMEOUT_SECONDS = 1.0


@lru_cache(maxsize=256)
def _compile(pattern: str):
    return regex.compile(pattern, regex.IGNORECASE)


def _matches_contains(pattern: str, transaction: Transaction) -> bool:
    return pattern.casefold() in (transaction.description or "").casefold()


def _matches_regex(pattern: str, transaction: Transaction) -> bool:
    try:
        compiled = _compile(pattern)
        return compiled.search(transaction.description or "", timeout=REGEX_TIMEOUT_SECONDS) is not None
    except TimeoutError:
        logger.warning("[RULES] Pattern '%s' timed out, treating as no match.", pattern)
        return False
    except regex.error as e:
        logger.warning("[RULES] Pattern '%s' is not a valid regex (%s), treating as no match.", pattern, e)
        return False


def _matches_counter_account(pattern: str, transaction: Transaction) -> bool:
    account = normalize_counter_account(transaction.counter_account)
    return account is not None and account == normalize_counter_account(pattern)


def _matches_exact(pattern: str, transaction: Transaction) -> bool:
    return (transaction.description or "").casefold() == pattern.casefold()


MATCHERS: dict[MatchKind, Callable[[str, Transaction], bool]] = {
    MatchKind.CONTAINS: _matches_contains,
    MatchKind.REGEX: _matches_regex,
    MatchKind.COUNTER_ACCOUNT: _matches_counter_account,
    MatchKind.EXACT: _matches_exact,
}


def rule_matches(rule: Rule, transaction: Transaction) -> bool:
    if not rule.pattern:
        return False
    matcher = MATCHERS.get(rule.match_kind)
    if matcher is None:
        return False
    return matcher(rule.pattern, transaction)


class RuleEngine(Classifier):
    VERSION = "rules-1"

    def __init__(self, rules: RuleStore, transactions: TransactionRepository) -> None:
        self.rules = rules
        self.transactions = transactions

    def apply_rules(self, transaction: Transaction) -> RuleMatchResult:
        for rule in self.rules.get_ordered_by_priority():
            if rule_matches(rule, transaction):
                logger.debug(
                    "[RULES] Rule %s (%s '%s', priority %s) matched transaction %s",
                    rule.id,
                    rule.match_kind.value,
                    rule.pattern,
                    rule.priority,
                    transaction.id,
                )
                return RuleMatchResult(
                    matched=True,
                    rule=rule,
                    category_id=rule.target_category_id,
                    labels=list(rule.labels),
                )
        return RuleMatchResult(matched=False)

    def preview_rule(self, rule: Rule, account_id: int | None = None) -> list[Transaction]:
        """Transactions the rule would match, without changing anything."""
        if account_id is not None:
            candidates = self.transactions.get_by_account(account_id)
        else:
            candidates = self.transactions.get_all()
        return [tx for tx in candidates if rule_matches(rule, tx)]

    def classify(
        self, transaction: Transaction, threshold: float = 0.0
    ) -> CategorizationResult | None:
        # Rules are authoritative, the threshold does not apply
        match = self.apply_rules(transaction)
        if not match.matched or match.rule is None:
            return None
        return CategorizationResult(
            source="rule",
            category_id=match.category_id,
            confidence=1.0,
            labels=match.labels,
            rule_id=match.rule.id,
            model_version=self.VERSION,
        )
