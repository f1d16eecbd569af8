"""Imports router: preview and import of semicolon-delimited bank exports."""

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..repository import SqlFinanceRepository, get_repository
from ..schemas import ImportResult, PreviewResponse
from ..services.csv_importer import preview_csv, run_import

MAX_CSV_BYTES = 10 * 1024 * 1024      # 10 MB
DEFAULT_FILENAME = "export.csv"

router = APIRouter(prefix="/imports", tags=["imports"])


async def _read_csv_upload(file: UploadFile) -> bytes:
    """Reject wrong extensions (400), oversized (413) and empty (400) uploads."""
    if not (file.filename or "").lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only .csv bank exports are accepted.")
    content = await file.read()
    if len(content) > MAX_CSV_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"CSV file too large (>{MAX_CSV_BYTES // (1024 * 1024)} MB).",
        )
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    return content


@router.post(
    "/preview",
    response_model=PreviewResponse,
    summary="Detected layout, headers and the first 20 rows of an export",
)
async def preview_export(file: UploadFile = File(...)):
    content = await _read_csv_upload(file)
    try:
        preview = preview_csv(content)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Could not parse CSV: {exc}")
    return PreviewResponse(filename=file.filename or DEFAULT_FILENAME, **preview)


@router.post(
    "/csv",
    response_model=ImportResult,
    summary="Import an export: dedup, categorize, detect recurring, suggest config",
)
async def import_export(
    file: UploadFile = File(...),
    account_id: str = Form(..., min_length=1, max_length=64, description="account the rows belong to"),
    repo: SqlFinanceRepository = Depends(get_repository),
):
    content = await _read_csv_upload(file)
    try:
        return run_import(repo, content, file.filename or DEFAULT_FILENAME, account_id)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
