from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, computed_field, field_serializer, model_validator

Frequency = Literal["weekly", "biweekly", "monthly", "quarterly", "yearly"]
TransactionType = Literal["income", "expense", "transfer"]
BudgetType = Literal["needs", "wants", "savings"]
SuggestionConfidence = Literal["confirmed", "estimated"]

ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
MONTH_PATTERN = r"^\d{4}-\d{2}$"


# ─────────────────────────────────────────────────────────────────────────────
# Health
# ─────────────────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    version: str


# ─────────────────────────────────────────────────────────────────────────────
# Category rules
# ─────────────────────────────────────────────────────────────────────────────


class CategoryRule(BaseModel):
    model_config = {"frozen": True}
    category: str
    keywords: tuple[str, ...]
    min_amount: Optional[float] = None
    max_amount: Optional[float] = None
    subcategory: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> "CategoryRule":
        if not self.keywords:
            raise ValueError(f"rule {self.category!r} has no keywords")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError(f"rule {self.category!r}: min_amount exceeds max_amount")
        return self

    @property
    def has_amount_range(self) -> bool:
        return self.min_amount is not None or self.max_amount is not None


class CategorizationResult(BaseModel):
    model_config = {"frozen": True}
    category: str
    subcategory: Optional[str] = None
    confidence: int = Field(ge=0, le=100)
    reason: str
    matched_keywords: tuple[str, ...] = ()


# ─────────────────────────────────────────────────────────────────────────────
# Transactions
# ─────────────────────────────────────────────────────────────────────────────


class RecurringPattern(BaseModel):
    model_config = {"frozen": True}
    frequency: Frequency
    expected_amount: float
    amount_tolerance: float          # coefficient of variation of amounts, in %
    next_expected_date: str
    last_occurrence: str
    occurrence_count: int = Field(ge=2)
    confidence: int = Field(ge=0, le=100)


class Transaction(BaseModel):
    model_config = {"frozen": True}
    id: str
    date: str = Field(pattern=ISO_DATE_PATTERN)
    description: str
    notes: Optional[str] = None
    amount: float                    # signed, negative = money out
    type: TransactionType = "expense"
    category: str = "uncategorized"
    subcategory: Optional[str] = None
    categorization_confidence: int = Field(default=0, ge=0, le=100)
    categorization_reason: str = ""
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None
    recurring_group_id: Optional[str] = None
    recurring_confidence: Optional[int] = None
    recurring_type: Optional[Literal["weekly", "monthly", "yearly"]] = None
    account_id: str
    transfer_account_id: Optional[str] = None
    tags: frozenset[str] = frozenset()
    import_batch: Optional[str] = None
    is_paid: bool = True

    @field_serializer("tags")
    def _serialize_tags(self, tags: frozenset[str]) -> list[str]:
        return sorted(tags)

    @property
    def duplicate_key(self) -> tuple[str, str, float]:
        return (self.description, self.date, self.amount)


class Account(BaseModel):
    model_config = {"frozen": True}
    id: str
    name: str
    type: Literal["checking", "savings", "other"] = "checking"
    starting_balance: float = 0.0


class SavingsGoal(BaseModel):
    model_config = {"frozen": True}
    id: str
    name: str
    target_amount: float = Field(gt=0)
    current_amount: float = Field(default=0.0, ge=0)
    monthly_contribution: float = Field(default=0.0, ge=0)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    account_id: Optional[str] = None
    spent_date: Optional[str] = None


class Dataset(BaseModel):
    """Immutable snapshot of everything a pipeline run reads."""

    model_config = {"frozen": True}
    accounts: tuple[Account, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    savings_goals: tuple[SavingsGoal, ...] = ()


# ─────────────────────────────────────────────────────────────────────────────
# Financial configuration
# ─────────────────────────────────────────────────────────────────────────────


class IncomeSource(BaseModel):
    id: str
    name: str
    amount: float = Field(ge=0)
    frequency: Frequency = "monthly"
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: str = Field(pattern=ISO_DATE_PATTERN)
    end_date: Optional[str] = Field(default=None, pattern=ISO_DATE_PATTERN)
    is_active: bool = True
    category: str = "salary"
    account_id: Optional[str] = None
    notes: Optional[str] = None
    linked_transaction_ids: list[str] = []


class RecurringExpense(BaseModel):
    id: str
    name: str
    amount: float = Field(ge=0)
    frequency: Frequency = "monthly"
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    start_date: str = Field(pattern=ISO_DATE_PATTERN)
    end_date: Optional[str] = Field(default=None, pattern=ISO_DATE_PATTERN)
    is_active: bool = True
    category: str = "uncategorized"
    budget_type: Optional[BudgetType] = None
    is_essential: bool = False
    is_variable: bool = False
    account_id: Optional[str] = None
    notes: Optional[str] = None
    linked_transaction_ids: list[str] = []


class OneTimeExpense(BaseModel):
    id: str
    name: str
    category: str = "uncategorized"
    amount: float = Field(ge=0)
    date: str = Field(pattern=ISO_DATE_PATTERN)
    is_paid: bool = False
    account_id: Optional[str] = None
    notes: Optional[str] = None


class IncomeSourceSuggestion(IncomeSource):
    type: Literal["salary", "other"] = "other"
    monthly_amount: float
    confidence: SuggestionConfidence
    taxable: bool = True


class RecurringExpenseSuggestion(RecurringExpense):
    monthly_amount: float
    confidence: SuggestionConfidence
    pattern_confidence: int
    can_reduce: bool
    reduction_potential: int


class BudgetPercentages(BaseModel):
    needs: float = Field(default=0.5, ge=0, le=1)
    wants: float = Field(default=0.3, ge=0, le=1)
    savings: float = Field(default=0.2, ge=0, le=1)

    @model_validator(mode="after")
    def _check_sum(self) -> "BudgetPercentages":
        total = self.needs + self.wants + self.savings
        if abs(total - 1.0) > 0.0001:
            raise ValueError(f"budget percentages must sum to 1.0 (got {total:.4f})")
        return self


class ConfigSettings(BaseModel):
    default_currency: Literal["EUR", "USD", "GBP"] = "EUR"
    projection_months: int = Field(default=36, ge=1, le=120)
    conservative_mode: bool = False
    budget_percentages: BudgetPercentages = Field(default_factory=BudgetPercentages)


class FinancialConfiguration(BaseModel):
    version: str = "3.0"
    last_updated: Optional[datetime] = None
    income_sources: list[IncomeSource] = []
    recurring_expenses: list[RecurringExpense] = []
    one_time_expenses: list[OneTimeExpense] = []
    settings: ConfigSettings = Field(default_factory=ConfigSettings)

    def linked_transaction_ids(self) -> set[str]:
        """Ids of transactions already represented by an active configured item."""
        linked: set[str] = set()
        for item in [*self.income_sources, *self.recurring_expenses]:
            if item.is_active:
                linked.update(item.linked_transaction_ids)
        return linked


# ─────────────────────────────────────────────────────────────────────────────
# Projection
# ─────────────────────────────────────────────────────────────────────────────


class BreakdownItem(BaseModel):
    name: str
    amount: float
    account_id: Optional[str] = None
    is_goal_purchase: bool = False


class TransferItem(BaseModel):
    name: str
    amount: float
    from_account_id: str
    to_account_id: str


class MonthlyProjection(BaseModel):
    month: str
    configured_income: float
    configured_expenses: float
    projected_balance: float
    account_balances: dict[str, float]
    income_breakdown: list[BreakdownItem]
    expense_breakdown: list[BreakdownItem]
    savings_breakdown: list[BreakdownItem]
    transfer_breakdown: list[TransferItem] = []
    completed_goal_ids: list[str] = []
    goal_purchases: float = 0.0
    confidence: int = 100

    @computed_field
    @property
    def net_flow(self) -> float:
        return round(self.configured_income - self.configured_expenses, 2)


class CurrentMonthSummary(BaseModel):
    month: str
    configured_income: float
    configured_expenses: float
    actual_income: float
    actual_expenses: float
    remaining_income: float          # negative once actual exceeds configured
    remaining_expenses: float
    days_in_month: int
    days_elapsed: int

    @computed_field
    @property
    def configured_net(self) -> float:
        return round(self.configured_income - self.configured_expenses, 2)

    @computed_field
    @property
    def actual_net(self) -> float:
        return round(self.actual_income - self.actual_expenses, 2)


# ─────────────────────────────────────────────────────────────────────────────
# Budget
# ─────────────────────────────────────────────────────────────────────────────


class BudgetTargets(BaseModel):
    needs: float
    wants: float
    savings: float


class BudgetItem(BaseModel):
    name: str
    amount: float
    category: str


class BudgetBucket(BaseModel):
    budgeted: float
    spent: float = 0.0
    items: list[BudgetItem] = []

    @computed_field
    @property
    def remaining(self) -> float:
        return round(self.budgeted - self.spent, 2)


class BudgetBreakdown(BaseModel):
    month: str
    total_income: float
    needs: BudgetBucket
    wants: BudgetBucket
    savings: BudgetBucket


# ─────────────────────────────────────────────────────────────────────────────
# Import
# ─────────────────────────────────────────────────────────────────────────────


class PreviewResponse(BaseModel):
    filename: str
    layout: Literal["savings", "main"]
    headers: list[str]
    rows: list[dict[str, str]]
    total_rows_previewed: int
    total_rows: int


class DateRange(BaseModel):
    start: str
    end: str


class ConfidenceDistribution(BaseModel):
    high: int = 0
    medium: int = 0
    low: int = 0


class ImportWarning(BaseModel):
    type: Literal["low-confidence", "unusual-amount"]
    message: str
    transaction_ids: list[str]


class ImportResult(BaseModel):
    batch_id: str
    import_date: datetime
    file_name: str
    account_id: str
    transactions: list[Transaction]
    # Previously stored transactions whose recurring fields changed because
    # the new rows joined (or broke up) their group.
    updated_transactions: list[Transaction] = []
    total_rows: int
    imported: int
    skipped: int
    needs_review: int
    date_range: Optional[DateRange] = None
    total_income: float
    total_expenses: float
    category_breakdown: dict[str, int]
    confidence_distribution: ConfidenceDistribution
    recurring_detected: int
    recurring_confirmed: int
    detected_income_sources: list[IncomeSourceSuggestion]
    detected_recurring_expenses: list[RecurringExpenseSuggestion]
    warnings: list[ImportWarning]
