"""Configuration extraction: turn detected recurring groups into suggestions.

Positive groups become IncomeSource suggestions, negative groups become
RecurringExpense suggestions. One suggestion is produced per recurring group,
linked to every member transaction so accepting it prevents double counting
in the projection.
"""

import logging
from collections import defaultdict
from typing import Iterable

from ..schemas import IncomeSourceSuggestion, RecurringExpenseSuggestion, Transaction
from .schedule import convert_to_monthly

logger = logging.getLogger(__name__)

ESSENTIAL_CATEGORIES = frozenset({
    "rent",
    "mortgage",
    "utilities",
    "health-insurance",
    "loan-payment",
})

CONFIRMED_THRESHOLD = 70
REDUCTION_POTENTIAL = 20            # percent, for non-essential expenses

# Frequencies a suggestion keeps as-is; anything else is expressed monthly.
_INCOME_FREQUENCIES = {"weekly", "biweekly"}
_EXPENSE_FREQUENCIES = {"weekly", "quarterly", "yearly"}


def _recurring_groups(transactions: Iterable[Transaction]) -> list[list[Transaction]]:
    """Recurring members per (group, sign).

    Groups are keyed on absolute amounts, so a charge and its refund can share
    one; money in and money out still become separate suggestions.
    """
    groups: dict[tuple[str, bool], list[Transaction]] = defaultdict(list)
    for tx in transactions:
        if tx.is_recurring and tx.recurring_pattern is not None:
            groups[(tx.recurring_group_id or tx.id, tx.amount > 0)].append(tx)
    return [sorted(members, key=lambda t: (t.date, t.id)) for members in groups.values()]


class ConfigurationExtractor:
    def __init__(self, confirmed_threshold: int = CONFIRMED_THRESHOLD):
        self.confirmed_threshold = confirmed_threshold

    def _confidence(self, tx: Transaction) -> str:
        return "confirmed" if tx.recurring_pattern.confidence >= self.confirmed_threshold else "estimated"

    def income_sources(self, transactions: Iterable[Transaction]) -> list[IncomeSourceSuggestion]:
        suggestions = []
        for members in _recurring_groups(transactions):
            latest = members[-1]
            if latest.amount <= 0:
                continue
            pattern = latest.recurring_pattern
            monthly = convert_to_monthly(pattern.expected_amount, pattern.frequency)
            keep = pattern.frequency in _INCOME_FREQUENCIES
            suggestions.append(IncomeSourceSuggestion(
                id=f"income-{latest.recurring_group_id or latest.id}",
                name=latest.description,
                amount=round(pattern.expected_amount if keep else monthly, 2),
                frequency=pattern.frequency if keep else "monthly",
                day_of_month=int(latest.date[8:10]),
                start_date=members[0].date,
                category=latest.category,
                account_id=latest.account_id,
                linked_transaction_ids=[t.id for t in members],
                type="salary" if latest.category == "salary" else "other",
                monthly_amount=round(monthly, 2),
                confidence=self._confidence(latest),
            ))
        return suggestions

    def recurring_expenses(self, transactions: Iterable[Transaction]) -> list[RecurringExpenseSuggestion]:
        suggestions = []
        for members in _recurring_groups(transactions):
            latest = members[-1]
            if latest.amount >= 0:
                continue
            pattern = latest.recurring_pattern
            monthly = convert_to_monthly(pattern.expected_amount, pattern.frequency)
            keep = pattern.frequency in _EXPENSE_FREQUENCIES
            essential = latest.category in ESSENTIAL_CATEGORIES
            suggestions.append(RecurringExpenseSuggestion(
                id=f"expense-{latest.recurring_group_id or latest.id}",
                name=latest.description,
                amount=round(pattern.expected_amount if keep else monthly, 2),
                frequency=pattern.frequency if keep else "monthly",
                day_of_month=int(latest.date[8:10]),
                start_date=members[0].date,
                category=latest.category,
                is_essential=essential,
                is_variable=pattern.amount_tolerance > 0,
                account_id=latest.account_id,
                linked_transaction_ids=[t.id for t in members],
                monthly_amount=round(monthly, 2),
                confidence=self._confidence(latest),
                pattern_confidence=pattern.confidence,
                can_reduce=not essential,
                reduction_potential=0 if essential else REDUCTION_POTENTIAL,
            ))
        return suggestions

    def extract(
        self, transactions: Iterable[Transaction]
    ) -> tuple[list[IncomeSourceSuggestion], list[RecurringExpenseSuggestion]]:
        transactions = list(transactions)
        income = self.income_sources(transactions)
        expenses = self.recurring_expenses(transactions)
        logger.info("Extracted %d income and %d expense suggestions", len(income), len(expenses))
        return income, expenses
