"""Projection engine: month-by-month balance simulation.

The engine states what the configuration implies; it does not predict.
Each month is produced from the previous SimulationState plus that month's
flows, so a run is a fold over immutable snapshots:

    state = engine.initial_state()
    for index in range(months):
        projection, state = engine.advance(state, index)

Per month, in order: income, expenses, unpaid one-time expenses, savings
goal contributions, goal completion, total balance, per-account posting
(including transfers), goal purchases.
"""

import logging
from dataclasses import dataclass
from datetime import date as _date
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from ..schemas import (
    BreakdownItem,
    CurrentMonthSummary,
    Dataset,
    FinancialConfiguration,
    MonthlyProjection,
    SavingsGoal,
    Transaction,
    TransferItem,
)
from .budget import is_savings_transaction
from .schedule import (
    RecurringItem,
    add_months,
    collapse_recurring,
    convert_to_monthly,
    days_in_month,
    month_key,
    occurs_in_month,
    recurring_occurs_in_month,
)

logger = logging.getLogger(__name__)

# Account used when the dataset has none at all
FALLBACK_ACCOUNT_ID = "checking"
GOAL_PURCHASE_PREFIX = "Goal purchase: "


@dataclass(frozen=True)
class SimulationState:
    total_balance: float
    account_balances: Mapping[str, float]
    goal_accumulated: Mapping[str, float]
    spent_goal_ids: frozenset[str]


class ProjectionEngine:
    def __init__(
        self,
        config: FinancialConfiguration,
        dataset: Dataset,
        today: Optional[_date] = None,
    ):
        self.config = config
        self.accounts = list(dataset.accounts)
        self.goals = list(dataset.savings_goals)
        self.today = today or _date.today()

        checking = [a.id for a in self.accounts if a.type == "checking"]
        savings = [a.id for a in self.accounts if a.type == "savings"]
        self.checking_id: Optional[str] = checking[0] if checking else None
        self.savings_id: Optional[str] = savings[0] if savings else None
        if self.checking_id:
            self.default_account_id = self.checking_id
        elif self.accounts:
            self.default_account_id = self.accounts[0].id
        else:
            self.default_account_id = FALLBACK_ACCOUNT_ID

        self.transfers_enabled = self.checking_id is not None and self.savings_id is not None
        if not self.transfers_enabled:
            logger.info("Savings transfers disabled: need both a checking and a savings account")

        self._known_accounts = {a.id for a in self.accounts} or {FALLBACK_ACCOUNT_ID}
        self._warned: set[str] = set()
        self._recurring: list[RecurringItem] = collapse_recurring(
            dataset.transactions, exclude_ids=config.linked_transaction_ids()
        )

    # ── Accounts ──────────────────────────────────────────────────────────────

    def _resolve_account(self, account_id: Optional[str], label: str) -> str:
        if account_id is None:
            return self.default_account_id
        if account_id in self._known_accounts:
            return account_id
        if account_id not in self._warned:
            self._warned.add(account_id)
            logger.warning(
                "Unknown account %r on %r; posting to %r instead",
                account_id, label, self.default_account_id,
            )
        return self.default_account_id

    def _goal_account(self, goal: SavingsGoal) -> str:
        if goal.account_id is None:
            return self.savings_id or self.default_account_id
        if goal.account_id in self._known_accounts:
            return goal.account_id
        fallback = self.savings_id or self.default_account_id
        if goal.account_id not in self._warned:
            self._warned.add(goal.account_id)
            logger.warning(
                "Unknown account %r on goal %r; using %r instead",
                goal.account_id, goal.name, fallback,
            )
        return fallback

    # ── State ─────────────────────────────────────────────────────────────────

    def initial_state(self) -> SimulationState:
        balances = {a.id: a.starting_balance for a in self.accounts} or {FALLBACK_ACCOUNT_ID: 0.0}
        return SimulationState(
            total_balance=sum(balances.values()),
            account_balances=MappingProxyType(balances),
            goal_accumulated=MappingProxyType({}),
            spent_goal_ids=frozenset(),
        )

    def month_for(self, index: int) -> tuple[int, int]:
        return add_months(self.today.year, self.today.month, index)

    # ── Flows ─────────────────────────────────────────────────────────────────

    def _income_items(self, year: int, month: int) -> list[BreakdownItem]:
        items = []
        for source in self.config.income_sources:
            if source.is_active and occurs_in_month(source.start_date, source.end_date, year, month):
                items.append(BreakdownItem(
                    name=source.name,
                    amount=convert_to_monthly(source.amount, source.frequency),
                    account_id=self._resolve_account(source.account_id, source.name),
                ))
        for item in self._recurring:
            if item.type == "income" and recurring_occurs_in_month(item.frequency, item.origin_date, year, month):
                items.append(BreakdownItem(
                    name=item.name,
                    amount=abs(item.amount),
                    account_id=self._resolve_account(item.account_id, item.name),
                ))
        return items

    def _expense_items(self, year: int, month: int) -> list[BreakdownItem]:
        items = []
        for expense in self.config.recurring_expenses:
            if expense.is_active and occurs_in_month(expense.start_date, expense.end_date, year, month):
                items.append(BreakdownItem(
                    name=expense.name,
                    amount=convert_to_monthly(expense.amount, expense.frequency),
                    account_id=self._resolve_account(expense.account_id, expense.name),
                ))
        for item in self._recurring:
            if item.type != "expense" or is_savings_transaction(item.name):
                continue
            if recurring_occurs_in_month(item.frequency, item.origin_date, year, month):
                items.append(BreakdownItem(
                    name=item.name,
                    amount=abs(item.amount),
                    account_id=self._resolve_account(item.account_id, item.name),
                ))
        key = month_key(year, month)
        for expense in self.config.one_time_expenses:
            if not expense.is_paid and expense.date[:7] == key:
                items.append(BreakdownItem(
                    name=expense.name,
                    amount=expense.amount,
                    account_id=self._resolve_account(expense.account_id, expense.name),
                ))
        return items

    def _transfer_items(self, year: int, month: int) -> list[TransferItem]:
        items = []
        for item in self._recurring:
            if item.type != "transfer" or item.transfer_account_id is None:
                continue
            if recurring_occurs_in_month(item.frequency, item.origin_date, year, month):
                items.append(TransferItem(
                    name=item.name,
                    amount=abs(item.amount),
                    from_account_id=self._resolve_account(item.account_id, item.name),
                    to_account_id=self._resolve_account(item.transfer_account_id, item.name),
                ))
        return items

    def _goal_is_active(self, goal: SavingsGoal, key: str, accumulated: Mapping[str, float], spent: set[str]) -> bool:
        if goal.monthly_contribution <= 0:
            return False
        if goal.spent_date is not None or goal.id in spent:
            return False
        if goal.start_date is not None and goal.start_date[:7] > key:
            return False
        if goal.end_date is not None and goal.end_date[:7] < key:
            return False
        return accumulated.get(goal.id, goal.current_amount) < goal.target_amount

    # ── Simulation ────────────────────────────────────────────────────────────

    def advance(self, state: SimulationState, index: int) -> tuple[MonthlyProjection, SimulationState]:
        """Produce month ``index`` from ``state``; ``state`` is left untouched."""
        year, month = self.month_for(index)
        key = month_key(year, month)
        balances = dict(state.account_balances)
        accumulated = dict(state.goal_accumulated)
        spent = set(state.spent_goal_ids)

        income_items = self._income_items(year, month)
        expense_items = self._expense_items(year, month)

        savings_items: list[BreakdownItem] = []
        completed: list[SavingsGoal] = []
        for goal in self.goals:
            if not self._goal_is_active(goal, key, accumulated, spent):
                continue
            previous = accumulated.get(goal.id, goal.current_amount)
            new_total = previous + goal.monthly_contribution
            accumulated[goal.id] = new_total
            savings_items.append(BreakdownItem(
                name=goal.name,
                amount=goal.monthly_contribution,
                account_id=self._goal_account(goal),
            ))
            if previous < goal.target_amount <= new_total:
                completed.append(goal)

        configured_income = sum(i.amount for i in income_items)
        configured_expenses = sum(i.amount for i in expense_items)
        total = state.total_balance + configured_income - configured_expenses

        for item in income_items:
            balances[item.account_id] = balances.get(item.account_id, 0.0) + item.amount
        for item in expense_items:
            balances[item.account_id] = balances.get(item.account_id, 0.0) - item.amount
        if self.transfers_enabled:
            for item in savings_items:
                balances[self.checking_id] -= item.amount
                balances[item.account_id] = balances.get(item.account_id, 0.0) + item.amount
        transfer_items = self._transfer_items(year, month)
        for item in transfer_items:
            balances[item.from_account_id] -= item.amount
            balances[item.to_account_id] += item.amount

        goal_purchases = 0.0
        purchase_items = []
        for goal in completed:
            account = self._goal_account(goal)
            balances[account] -= goal.target_amount
            total -= goal.target_amount
            goal_purchases += goal.target_amount
            spent.add(goal.id)
            purchase_items.append(BreakdownItem(
                name=f"{GOAL_PURCHASE_PREFIX}{goal.name}",
                amount=goal.target_amount,
                account_id=account,
                is_goal_purchase=True,
            ))
            logger.info("Goal %r completes in %s", goal.name, key)

        projection = MonthlyProjection(
            month=key,
            configured_income=configured_income,
            configured_expenses=configured_expenses,
            projected_balance=total,
            account_balances=dict(balances),
            income_breakdown=income_items,
            expense_breakdown=expense_items + purchase_items,
            savings_breakdown=savings_items,
            transfer_breakdown=transfer_items,
            completed_goal_ids=[g.id for g in completed],
            goal_purchases=goal_purchases,
        )
        next_state = SimulationState(
            total_balance=total,
            account_balances=MappingProxyType(balances),
            goal_accumulated=MappingProxyType(accumulated),
            spent_goal_ids=frozenset(spent),
        )
        return projection, next_state

    def generate_projections(self, months: int) -> list[MonthlyProjection]:
        if months < 0:
            raise ValueError("months must not be negative")
        state = self.initial_state()
        projections = []
        for index in range(months):
            projection, state = self.advance(state, index)
            projections.append(projection)
        logger.info("Projected %d months from %s", months, month_key(self.today.year, self.today.month))
        return projections

    # ── Current month ─────────────────────────────────────────────────────────

    def current_month_summary(self, transactions: Iterable[Transaction]) -> CurrentMonthSummary:
        """Configured flows for this month next to what the bank already shows."""
        year, month = self.today.year, self.today.month
        key = month_key(year, month)
        configured_income = sum(i.amount for i in self._income_items(year, month))
        configured_expenses = sum(i.amount for i in self._expense_items(year, month))

        actual_income = 0.0
        actual_expenses = 0.0
        for tx in transactions:
            if tx.date[:7] != key or tx.type == "transfer":
                continue
            if tx.amount > 0:
                actual_income += tx.amount
            else:
                actual_expenses += abs(tx.amount)

        return CurrentMonthSummary(
            month=key,
            configured_income=configured_income,
            configured_expenses=configured_expenses,
            actual_income=actual_income,
            actual_expenses=actual_expenses,
            remaining_income=configured_income - actual_income,
            remaining_expenses=configured_expenses - actual_expenses,
            days_in_month=days_in_month(year, month),
            days_elapsed=self.today.day,
        )
