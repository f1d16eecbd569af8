import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import DEFAULT_PROFILE, DEMO_PROFILE, PROFILES_DIR, init_profile_db
from .routers import budget, config, imports, projections
from .schemas import HealthResponse
from .security import RequireAPIAuth

VERSION = "0.3.0"

logging.basicConfig(
    level=os.getenv("KASBOEK_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    PROFILES_DIR.mkdir(parents=True, exist_ok=True)

    profiles = {p.stem for p in PROFILES_DIR.glob("*.db")} - {DEMO_PROFILE}
    for name in sorted(profiles | {DEFAULT_PROFILE}):
        init_profile_db(name)

    # Demo data is relative to today, so the demo profile is rebuilt each start.
    (PROFILES_DIR / f"{DEMO_PROFILE}.db").unlink(missing_ok=True)
    init_profile_db(DEMO_PROFILE)

    yield


app = FastAPI(
    title="Kasboek",
    description="Local-first personal finance pipeline: bank CSV import, categorisation, "
    "recurring detection, 50/30/20 budgets and balance projections.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router, dependencies=[RequireAPIAuth])
app.include_router(projections.router, dependencies=[RequireAPIAuth])
app.include_router(config.router, dependencies=[RequireAPIAuth])
app.include_router(budget.router, dependencies=[RequireAPIAuth])


@app.get("/health", tags=["meta"], response_model=HealthResponse)
def health():
    return {"status": "ok", "version": VERSION}
