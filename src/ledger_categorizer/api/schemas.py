from pydantic import BaseModel, Field

from ledger_categorizer.models import Rule, Transaction


class CategorizeRequest(BaseModel):
    transaction: Transaction
    threshold: float = Field(default=0.0, ge=0.0, le=1.0)


class PreviewRequest(BaseModel):
    rule: Rule
    account_id: int | None = None


class LearnRequest(BaseModel):
    transaction_id: str
    category_id: int
    labels: list[str] | None = None
    actor: str = "user"


class UndoRequest(BaseModel):
    actor: str = "user"
