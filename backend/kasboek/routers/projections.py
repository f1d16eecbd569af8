"""Projections router: month-by-month balance simulation."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..repository import SqlFinanceRepository, get_repository
from ..schemas import CurrentMonthSummary, MonthlyProjection
from ..services.projection import ProjectionEngine

router = APIRouter(prefix="/projections", tags=["projections"])


@router.get("/", response_model=list[MonthlyProjection])
def get_projections(
    months: Optional[int] = Query(default=None, ge=1, le=120, description="defaults to settings.projection_months"),
    repo: SqlFinanceRepository = Depends(get_repository),
):
    config = repo.load_config()
    engine = ProjectionEngine(config, repo.load_dataset())
    return engine.generate_projections(months or config.settings.projection_months)


@router.get("/current-month", response_model=CurrentMonthSummary)
def get_current_month(
    repo: SqlFinanceRepository = Depends(get_repository),
):
    dataset = repo.load_dataset()
    engine = ProjectionEngine(repo.load_config(), dataset)
    return engine.current_month_summary(dataset.transactions)
