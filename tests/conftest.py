from datetime import datetime, timezone

import pytest

from ledger_categorizer.manager import CategorizerService
from ledger_categorizer.models import Category, Transaction
from ledger_categorizer.services.categorization import CategorizationPipeline
from ledger_categorizer.storage.memory import (
    InMemoryAuditStore,
    InMemoryCategoryRepository,
    InMemoryProfileStore,
    InMemoryRuleStore,
    InMemoryTransactionRepository,
)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_transaction(tx_id: str = "1", **overrides) -> Transaction:
    values = {
        "id": tx_id,
        "account_id": 1,
        "date": datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc),
        "amount": 4.5,
        "description": "Coffee Corner",
    }
    values.update(overrides)
    return Transaction(**values)


@pytest.fixture
def categories() -> InMemoryCategoryRepository:
    return InMemoryCategoryRepository([
        Category(id=1, name="Groceries"),
        Category(id=2, name="Coffee"),
        Category(id=3, name="Rent"),
    ])


@pytest.fixture
def transactions() -> InMemoryTransactionRepository:
    return InMemoryTransactionRepository()


@pytest.fixture
def rules() -> InMemoryRuleStore:
    return InMemoryRuleStore()


@pytest.fixture
def profiles() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def audit() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def service(
    rules: InMemoryRuleStore,
    profiles: InMemoryProfileStore,
    categories: InMemoryCategoryRepository,
    transactions: InMemoryTransactionRepository,
) -> CategorizerService:
    return CategorizerService(
        rules=rules,
        profiles=profiles,
        categories=categories,
        transactions=transactions,
    )


@pytest.fixture
def pipeline(
    service: CategorizerService,
    transactions: InMemoryTransactionRepository,
    audit: InMemoryAuditStore,
) -> CategorizationPipeline:
    return CategorizationPipeline(service=service, transactions=transactions, audit=audit)
