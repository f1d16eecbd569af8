"""Budget service: 50/30/20 targets, category normalization and monthly breakdowns."""

import logging
import re
from typing import Iterable, Optional

from ..schemas import (
    BudgetBreakdown,
    BudgetBucket,
    BudgetItem,
    BudgetPercentages,
    BudgetTargets,
    FinancialConfiguration,
    RecurringExpense,
    SavingsGoal,
    Transaction,
)
from .schedule import collapse_recurring, convert_to_monthly, month_key, occurs_in_month

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Category tables
# ─────────────────────────────────────────────────────────────────────────────

BUDGET_CATEGORIES = (
    "housing",
    "insurance",
    "transport",
    "groceries",
    "food",
    "entertainment",
    "shopping",
    "vacation",
    "savings",
)

# Checked in order: exact hit first, then the first key that contains or is
# contained in the normalized category.
DUTCH_TO_ENGLISH_CATEGORIES: dict[str, str] = {
    "boodschappen": "groceries",
    "eten drinken": "food",
    "eten en drinken": "food",
    "entertainment": "entertainment",
    "verzekeringen": "insurance",
    "verzekering": "insurance",
    "belastingdienst": "housing",
    "belasting": "housing",
    "onbekend": "shopping",
    "klarna": "shopping",
    "sparen": "vacation",
    "saving": "vacation",
    "savings": "vacation",
    "health insurance": "insurance",
    "healthinsurance": "insurance",
    "gezondheid": "insurance",
    "voorschieten": "shopping",
    "winkelen": "shopping",
    "shopping": "shopping",
    "motor": "transport",
    "auto": "transport",
    "car": "transport",
    "wonen": "housing",
    "living": "housing",
    "transport": "transport",
    "vervoer": "transport",
    "dining": "food",
    "fuel": "transport",
    "brandstof": "transport",
    "public transport": "transport",
    "ov": "transport",
    "subscriptions": "entertainment",
    "abonnementen": "entertainment",
    "bank fees": "shopping",
    "rent": "housing",
    "huur": "housing",
    "utilities": "housing",
    "energie": "housing",
    "water": "housing",
    "telefoon": "housing",
    "phone": "housing",
    "schuld": "housing",
    "debt": "housing",
}

CATEGORY_TO_BUDGET_TYPE: dict[str, str] = {
    "housing": "needs",
    "insurance": "needs",
    "transport": "needs",
    "groceries": "wants",
    "food": "wants",
    "entertainment": "wants",
    "shopping": "wants",
    "vacation": "wants",
    "savings": "savings",
}

GROCERY_KEYWORDS = ("boodschappen", "groceries", "supermarkt", "albert heijn", "jumbo", "lidl", "aldi")

SAVINGS_KEYWORDS = ("spaardoel", "savings goal")
SAVINGS_SHORT_KEYWORD = "sparen"
SAVINGS_SHORT_MAX_LENGTH = 20

# Substrings of a transaction category that send it to the savings bucket
_SAVINGS_CATEGORY_MARKERS = ("spar", "saving", "besparing")

GOAL_ITEM_CATEGORY = "Spaardoel"


def normalize_category(category: Optional[str]) -> str:
    """Map a free-form (often Dutch) category onto a budget category.

    Unknown categories are returned unchanged; empty input means shopping.
    """
    if not category:
        return "shopping"

    normalized = re.sub(r"\s+", " ", re.sub(r"[&\-_]", " ", category.lower())).strip()

    if normalized in DUTCH_TO_ENGLISH_CATEGORIES:
        return DUTCH_TO_ENGLISH_CATEGORIES[normalized]

    for dutch, english in DUTCH_TO_ENGLISH_CATEGORIES.items():
        if dutch in normalized or normalized in dutch:
            return english

    if normalized in BUDGET_CATEGORIES:
        return normalized
    return category


def budget_type_for_category(category: Optional[str]) -> str:
    return CATEGORY_TO_BUDGET_TYPE.get(normalize_category(category), "wants")


def is_grocery_item(name: Optional[str]) -> bool:
    if not name:
        return False
    lowered = name.lower()
    return any(kw in lowered for kw in GROCERY_KEYWORDS)


def is_savings_transaction(description: Optional[str]) -> bool:
    """Transfers into savings that a savings goal already accounts for."""
    if not description:
        return False
    desc = description.lower()
    if any(kw in desc for kw in SAVINGS_KEYWORDS):
        return True
    return SAVINGS_SHORT_KEYWORD in desc and len(desc) < SAVINGS_SHORT_MAX_LENGTH


def calculate_targets(total_income: float, percentages: Optional[BudgetPercentages] = None) -> BudgetTargets:
    p = percentages or BudgetPercentages()
    return BudgetTargets(
        needs=total_income * p.needs,
        wants=total_income * p.wants,
        savings=total_income * p.savings,
    )


def configured_income_for_month(config: FinancialConfiguration, year: int, month: int) -> float:
    return sum(
        convert_to_monthly(source.amount, source.frequency)
        for source in config.income_sources
        if source.is_active and occurs_in_month(source.start_date, source.end_date, year, month)
    )


# ─────────────────────────────────────────────────────────────────────────────
# Allocator
# ─────────────────────────────────────────────────────────────────────────────


class BudgetAllocator:
    def __init__(self, percentages: Optional[BudgetPercentages] = None):
        self.percentages = percentages or BudgetPercentages()

    def targets(self, total_income: float) -> BudgetTargets:
        return calculate_targets(total_income, self.percentages)

    def classify_expense(self, expense: RecurringExpense) -> str:
        """Explicit budget_type, then the grocery override, then the category table."""
        if expense.budget_type:
            return expense.budget_type
        if is_grocery_item(expense.name):
            return "wants"
        return budget_type_for_category(expense.category)

    def classify_transaction(self, description: str, category: Optional[str]) -> str:
        lowered = (category or "").lower()
        if any(marker in lowered for marker in _SAVINGS_CATEGORY_MARKERS):
            return "savings"
        if is_grocery_item(description):
            return "wants"
        return budget_type_for_category(category)

    def breakdown(
        self,
        total_income: float,
        expenses: Iterable[RecurringExpense],
        transactions: Iterable[Transaction],
        goals: Iterable[SavingsGoal],
        year: int,
        month: int,
        linked_ids: Optional[set[str]] = None,
    ) -> BudgetBreakdown:
        buckets: dict[str, list[BudgetItem]] = {"needs": [], "wants": [], "savings": []}

        for expense in expenses:
            if not expense.is_active or not occurs_in_month(expense.start_date, expense.end_date, year, month):
                continue
            buckets[self.classify_expense(expense)].append(BudgetItem(
                name=expense.name,
                amount=convert_to_monthly(expense.amount, expense.frequency),
                category=expense.category,
            ))

        recurring = [
            tx for tx in transactions
            if tx.type == "expense" and not is_savings_transaction(tx.description)
        ]
        for item in collapse_recurring(recurring, exclude_ids=linked_ids):
            buckets[self.classify_transaction(item.name, item.category)].append(BudgetItem(
                name=item.name,
                amount=convert_to_monthly(abs(item.amount), item.frequency or "monthly"),
                category=item.category,
            ))

        for goal in goals:
            if goal.monthly_contribution > 0 and goal.spent_date is None:
                buckets["savings"].append(BudgetItem(
                    name=goal.name,
                    amount=goal.monthly_contribution,
                    category=GOAL_ITEM_CATEGORY,
                ))

        targets = self.targets(total_income)
        logger.debug(
            "Budget %s: %d needs, %d wants, %d savings items",
            month_key(year, month), len(buckets["needs"]), len(buckets["wants"]), len(buckets["savings"]),
        )
        return BudgetBreakdown(
            month=month_key(year, month),
            total_income=total_income,
            needs=BudgetBucket(budgeted=targets.needs, spent=sum(i.amount for i in buckets["needs"]), items=buckets["needs"]),
            wants=BudgetBucket(budgeted=targets.wants, spent=sum(i.amount for i in buckets["wants"]), items=buckets["wants"]),
            savings=BudgetBucket(budgeted=targets.savings, spent=sum(i.amount for i in buckets["savings"]), items=buckets["savings"]),
        )
