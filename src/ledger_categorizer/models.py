from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ledger_categorizer.domain.schedule import next_occurrence


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transaction(BaseModel):
    id: str
    account_id: Optional[int] = None
    date: datetime
    amount: float
    description: str = ""
    counter_account: Optional[str] = None
    # Assignment, the only part this core writes
    category_id: Optional[int] = None
    labels: list[str] = Field(default_factory=list)


class Category(BaseModel):
    id: int
    name: str


class MatchKind(str, Enum):
    CONTAINS = "contains"
    REGEX = "regex"
    COUNTER_ACCOUNT = "counter_account"
    EXACT = "exact"


class Rule(BaseModel):
    id: Optional[int] = None
    match_kind: MatchKind
    pattern: str
    target_category_id: Optional[int] = None
    labels: list[str] = Field(default_factory=list)
    priority: int = 0


class RuleMatchResult(BaseModel):
    matched: bool
    rule: Optional[Rule] = None
    category_id: Optional[int] = None
    labels: list[str] = Field(default_factory=list)


class CategoryLearningProfile(BaseModel):
    category_id: int
    word_frequency: dict[str, int] = Field(default_factory=dict)
    counter_account_frequency: dict[str, int] = Field(default_factory=dict)
    amount_bucket_frequency: dict[str, int] = Field(default_factory=dict)


class ScoreBreakdown(BaseModel):
    word: float = 0.0
    counter_account: float = 0.0
    amount: float = 0.0
    recurrence: float = 0.0


class CategorySuggestion(BaseModel):
    category_id: int
    category_name: str
    score: float
    breakdown: ScoreBreakdown = Field(default_factory=ScoreBreakdown)


CategorizationSource = Literal["rule", "score", "none"]


class CategorizationResult(BaseModel):
    source: CategorizationSource
    category_id: Optional[int] = None
    confidence: float = 0.0  # 0.0 to 1.0
    labels: list[str] = Field(default_factory=list)
    rule_id: Optional[int] = None
    breakdown: Optional[ScoreBreakdown] = None
    model_version: Optional[str] = None

    def explain(self) -> str:
        if self.source == "rule":
            return f"Matched rule {self.rule_id}"
        if self.source == "score" and self.breakdown is not None:
            b = self.breakdown
            return (
                f"Score {self.confidence:.4f} (word {b.word:.2f}, counter-account "
                f"{b.counter_account:.2f}, amount {b.amount:.2f}, recurrence {b.recurrence:.2f})"
            )
        return "No suggestion"


class AuditAction(str, Enum):
    MANUAL_ASSIGN = "manual_assign"
    CORRECTION = "correction"
    AUTO_APPLY = "auto_apply"
    UNDO = "undo"


class AssignmentState(BaseModel):
    model_config = ConfigDict(frozen=True)

    category_id: Optional[int] = None
    labels: list[str] = Field(default_factory=list)


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    transaction_id: str
    action: AuditAction
    actor: str
    created_at: datetime = Field(default_factory=utcnow)
    before: AssignmentState
    after: AssignmentState
    confidence: Optional[float] = None
    model_version: Optional[str] = None
    reason: Optional[str] = None
    reverts: Optional[str] = None

    @model_validator(mode="after")
    def _auto_apply_is_traceable(self) -> "AuditEntry":
        if self.action == AuditAction.AUTO_APPLY:
            if self.confidence is None or not self.model_version:
                raise ValueError("auto-applied entries need a confidence and a model version")
        return self


class AutoApplySettings(BaseModel):
    enabled: bool = False
    min_confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    schedule: Optional[str] = None
    interval_minutes: int = Field(default=15, gt=0, le=1440)
    account_ids: list[int] = Field(default_factory=list)
    excluded_category_ids: list[int] = Field(default_factory=list)
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    @field_validator("schedule")
    @classmethod
    def _schedule_fires(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        # Raises ScheduleError (a ValueError) for bad or never-firing expressions
        next_occurrence(value, utcnow())
        return value.strip()


class AutoApplyRunSummary(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    average_confidence: float = 0.0
    cancelled: bool = False
    enabled: bool = True

    @property
    def processed(self) -> int:
        return self.applied + self.skipped


class AutoApplyStats(BaseModel):
    window_days: int
    total_auto_applied: int
    total_undone: int
    undo_rate: float
    average_confidence: float
    undo_rate_above_threshold: bool
    last_run_at: Optional[datetime] = None


class AutoApplyHistoryItem(BaseModel):
    transaction_id: str
    description: str
    amount: float
    category_id: Optional[int]
    confidence: float
    auto_applied_at: datetime
    status: Literal["accepted", "undone"]
    can_undo: bool
