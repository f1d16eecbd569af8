"""Config router: the stored FinancialConfiguration document."""

from fastapi import APIRouter, Depends

from ..repository import SqlFinanceRepository, get_repository
from ..schemas import ConfigSettings, FinancialConfiguration

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/", response_model=FinancialConfiguration)
def get_config(repo: SqlFinanceRepository = Depends(get_repository)):
    return repo.load_config()


@router.put("/", response_model=FinancialConfiguration)
def put_config(
    body: FinancialConfiguration,
    repo: SqlFinanceRepository = Depends(get_repository),
):
    return repo.save_config(body)


@router.put("/settings", response_model=FinancialConfiguration)
def put_settings(
    body: ConfigSettings,
    repo: SqlFinanceRepository = Depends(get_repository),
):
    config = repo.load_config()
    return repo.save_config(config.model_copy(update={"settings": body}))
