from ledger_categorizer.classifiers.base import Classifier
from ledger_categorizer.classifiers.rules import RuleEngine
from ledger_categorizer.classifiers.scoring import ScoringEngine
from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import CategorizationResult, CategorySuggestion, Transaction
from ledger_categorizer.services.learning import LearningService
from ledger_categorizer.storage.base import (
    CategoryRepository,
    ProfileStore,
    RuleStore,
    TransactionRepository,
)

logger = get_logger(__name__)


class CategorizerService:
    def __init__(
        self,
        rules: RuleStore,
        profiles: ProfileStore,
        categories: CategoryRepository,
        transactions: TransactionRepository,
    ) -> None:
        # 1. Rule engine: authoritative, first match wins
        self.rule_engine = RuleEngine(rules, transactions)
        # 2. Scoring engine: learned profiles, gated by the caller's threshold
        self.scoring = ScoringEngine(profiles, categories)
        self.learning = LearningService(profiles)

        self.classifiers: list[Classifier] = [self.rule_engine, self.scoring]

    def categorize(self, transaction: Transaction, threshold: float = 0.0) -> CategorizationResult:
        for classifier in self.classifiers:
            classifier_name = classifier.__class__.__name__
            result = classifier.classify(transaction, threshold=threshold)
            if result:
                logger.debug(
                    "%s suggested category %s for transaction %s (confidence: %.4f)",
                    classifier_name,
                    result.category_id,
                    transaction.id,
                    result.confidence,
                )
                return result

        logger.debug("No classifier matched transaction %s", transaction.id)
        return CategorizationResult(source="none")

    def suggest(self, transaction: Transaction) -> list[CategorySuggestion]:
        return self.scoring.get_suggestions(transaction)

    def learn(self, transaction: Transaction, previous_category_id: int | None = None) -> None:
        """
        Feed a confirmed category back into the profiles.

        A differing previous category makes this a correction.
        """
        if previous_category_id is not None and previous_category_id != transaction.category_id:
            self.learning.learn_from_correction(transaction, previous_category_id)
        else:
            self.learning.learn_from_assignment(transaction)
