"""Budget router: 50/30/20 breakdown for a month."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..repository import SqlFinanceRepository, get_repository
from ..schemas import MONTH_PATTERN, BudgetBreakdown
from ..services.budget import BudgetAllocator, configured_income_for_month
from ..services.schedule import parse_month

router = APIRouter(prefix="/budget", tags=["budget"])


@router.get("/", response_model=BudgetBreakdown)
def get_budget(
    month: Optional[str] = Query(default=None, pattern=MONTH_PATTERN, description="YYYY-MM, defaults to this month"),
    repo: SqlFinanceRepository = Depends(get_repository),
):
    try:
        year, mon = parse_month(month) if month else (date.today().year, date.today().month)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    config = repo.load_config()
    dataset = repo.load_dataset()
    allocator = BudgetAllocator(config.settings.budget_percentages)
    return allocator.breakdown(
        total_income=configured_income_for_month(config, year, mon),
        expenses=config.recurring_expenses,
        transactions=dataset.transactions,
        goals=dataset.savings_goals,
        year=year,
        month=mon,
        linked_ids=config.linked_transaction_ids(),
    )
