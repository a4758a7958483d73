from ledger_categorizer.domain.features import (
    amount_bucket,
    extract_words,
    normalize_counter_account,
)
from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import (
    CategorizationResult,
    CategoryLearningProfile,
    CategorySuggestion,
    ScoreBreakdown,
    Transaction,
)
from ledger_categorizer.storage.base import CategoryRepository, ProfileStore

from .base import Classifier

logger = get_logger(__name__)

WORD_WEIGHT = 0.4
COUNTER_ACCOUNT_WEIGHT = 0.3
AMOUNT_WEIGHT = 0.2
RECURRENCE_WEIGHT = 0.1


def _ratio(matched: int, frequency: dict[str, int]) -> float:
    total = sum(frequency.values())
    if total <= 0:
        return 0.0
    return min(1.0, matched / total)


def word_score(description: str, frequency: dict[str, int]) -> float:
    if not frequency:
        return 0.0
    matched = sum(frequency.get(word, 0) for word in extract_words(description))
    return _ratio(matched, frequency)


def counter_account_score(counter_account: str | None, frequency: dict[str, int]) -> float:
    account = normalize_counter_account(counter_account)
    if account is None or account not in frequency:
        return 0.0
    return _ratio(frequency[account], frequency)


def amount_score(amount: float, frequency: dict[str, int]) -> float:
    bucket = amount_bucket(amount)
    if bucket not in frequency:
        return 0.0
    return _ratio(frequency[bucket], frequency)


def score_profile(
    transaction: Transaction, profile: CategoryLearningProfile
) -> tuple[float, ScoreBreakdown]:
    """Weighted score of a transaction against one category's profile.

    Each signal is the matched count divided by the category's own total for
    that signal, so a category is not favoured just for having seen more data.
    """
    breakdown = ScoreBreakdown(
        word=word_score(transaction.description, profile.word_frequency),
        counter_account=counter_account_score(
            transaction.counter_account, profile.counter_account_frequency
        ),
        amount=amount_score(transaction.amount, profile.amount_bucket_frequency),
        recurrence=0.0,
    )
    total = (
        breakdown.word * WORD_WEIGHT
        + breakdown.counter_account * COUNTER_ACCOUNT_WEIGHT
        + breakdown.amount * AMOUNT_WEIGHT
        + breakdown.recurrence * RECURRENCE_WEIGHT
    )
    return total, breakdown


class ScoringEngine(Classifier):
    VERSION = "profiles-1"

    def __init__(self, profiles: ProfileStore, categories: CategoryRepository) -> None:
        self.profiles = profiles
        self.categories = categories

    def get_suggestions(self, transaction: Transaction) -> list[CategorySuggestion]:
        categories = self.categories.get_all()
        names = {category.id: category.name for category in categories}

        suggestions: list[CategorySuggestion] = []
        for profile in self.profiles.get_all():
            score, breakdown = score_profile(transaction, profile)
            if score > 0:
                suggestions.append(CategorySuggestion(
                    category_id=profile.category_id,
                    category_name=names.get(profile.category_id, "Unknown"),
                    score=score,
                    breakdown=breakdown,
                ))

        if not suggestions:
            # Callers always get the category list back, just unranked
            suggestions = [
                CategorySuggestion(category_id=category.id, category_name=category.name, score=0.0)
                for category in categories
            ]

        suggestions.sort(key=lambda s: s.score, reverse=True)
        return suggestions

    def get_best_suggestion(
        self, transaction: Transaction, threshold: float
    ) -> CategorySuggestion | None:
        suggestions = self.get_suggestions(transaction)
        if not suggestions:
            return None
        best = suggestions[0]
        if best.score >= threshold:
            return best
        logger.debug(
            "Best score %.4f for transaction %s below threshold %.4f",
            best.score,
            transaction.id,
            threshold,
        )
        return None

    def classify(
        self, transaction: Transaction, threshold: float = 0.0
    ) -> CategorizationResult | None:
        best = self.get_best_suggestion(transaction, threshold)
        # A zero score is the "no signal" fallback, never an answer
        if best is None or best.score <= 0:
            return None
        return CategorizationResult(
            source="score",
            category_id=best.category_id,
            confidence=best.score,
            breakdown=best.breakdown,
            model_version=self.VERSION,
        )
