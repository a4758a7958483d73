from abc import ABC, abstractmethod

from ledger_categorizer.models import CategorizationResult, Transaction


class Classifier(ABC):
    VERSION: str = "unversioned"

    @abstractmethod
    def classify(
        self, transaction: Transaction, threshold: float = 0.0
    ) -> CategorizationResult | None:
        """Categorize the transaction, or return None when this classifier has no answer."""
        pass
