from ledger_categorizer.domain.features import (
    amount_bucket,
    extract_words,
    normalize_counter_account,
)
from ledger_categorizer.logger import get_logger
from ledger_categorizer.models import CategoryLearningProfile, Transaction
from ledger_categorizer.storage.base import ProfileStore

logger = get_logger(__name__)

ASSIGNMENT_WEIGHT = 1
CORRECTION_WEIGHT = 2
PENALTY_WEIGHT = -1


def _bump(frequency: dict[str, int], key: str, delta: int) -> None:
    if key in frequency:
        frequency[key] = max(0, frequency[key] + delta)
    elif delta > 0:
        frequency[key] = delta


def update_profile(profile: CategoryLearningProfile, transaction: Transaction, delta: int) -> None:
    """Apply ``delta`` to every feature the transaction exhibits.

    Counts never drop below zero and negative deltas never create keys.
    """
    for word in extract_words(transaction.description):
        _bump(profile.word_frequency, word, delta)

    account = normalize_counter_account(transaction.counter_account)
    if account is not None:
        _bump(profile.counter_account_frequency, account, delta)

    _bump(profile.amount_bucket_frequency, amount_bucket(transaction.amount), delta)


class LearningService:
    """Keeps category profiles in step with what users confirm, correct and undo.

    Calls are not deduplicated; the caller decides when an event counts.
    """

    def __init__(self, profiles: ProfileStore) -> None:
        self.profiles = profiles

    def learn_from_assignment(self, transaction: Transaction) -> None:
        if transaction.category_id is None:
            raise ValueError(f"Transaction {transaction.id} has no category to learn from")
        profile = self.profiles.get_or_create(transaction.category_id)
        update_profile(profile, transaction, ASSIGNMENT_WEIGHT)
        self.profiles.update(profile)
        logger.debug("[LEARN] Transaction %s reinforced category %s", transaction.id, transaction.category_id)

    def learn_from_correction(self, transaction: Transaction, previous_category_id: int | None) -> None:
        if transaction.category_id is None:
            raise ValueError(f"Transaction {transaction.id} has no category to learn from")

        if previous_category_id is not None:
            old_profile = self.profiles.get(previous_category_id)
            if old_profile is not None:
                update_profile(old_profile, transaction, PENALTY_WEIGHT)
                self.profiles.update(old_profile)

        new_profile = self.profiles.get_or_create(transaction.category_id)
        update_profile(new_profile, transaction, CORRECTION_WEIGHT)
        self.profiles.update(new_profile)
        logger.info(
            "[LEARN] Transaction %s corrected: category %s -> %s",
            transaction.id,
            previous_category_id,
            transaction.category_id,
        )

    def learn_from_undo(self, transaction: Transaction, overridden_category_id: int) -> None:
        profile = self.profiles.get(overridden_category_id)
        if profile is None:
            return
        update_profile(profile, transaction, PENALTY_WEIGHT)
        self.profiles.update(profile)
        logger.info(
            "[LEARN] Undo on transaction %s penalised category %s",
            transaction.id,
            overridden_category_id,
        )
