import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from kasboek import models  # noqa: F401
from kasboek.database import Base, get_db
from kasboek.main import app
from kasboek.schemas import Transaction
from kasboek.security import require_api_auth
from kasboek.services.normalizer import compute_fingerprint, transaction_id, transaction_type_for
from kasboek.services.seeder import seed_default_config, seed_rules

MAIN_HEADER = (
    "Datum;Naam / Omschrijving;Rekening;Tegenrekening;Code;Af Bij;Bedrag (EUR);"
    "Mutatiesoort;Mededelingen;Saldo na mutatie;Tag"
)


@pytest.fixture
def make_tx():
    def _make(date: str, description: str, amount: float, **overrides) -> Transaction:
        fields = {
            "id": transaction_id(compute_fingerprint(date, description, amount)),
            "date": date,
            "description": description,
            "amount": amount,
            "type": transaction_type_for(amount),
            "account_id": "checking",
        }
        fields.update(overrides)
        return Transaction(**fields)

    return _make


@pytest.fixture
def bank_csv():
    """Build a main-account export from (yyyymmdd, name, Af/Bij, amount[, notes]) tuples."""

    def _build(rows) -> bytes:
        lines = [MAIN_HEADER]
        for row in rows:
            posted, name, af_bij, amount = row[:4]
            notes = row[4] if len(row) > 4 else ""
            lines.append(f"{posted};{name};NL11BANK0123456789;;;{af_bij};{amount};Overschrijving;{notes};;")
        return ("\n".join(lines) + "\n").encode()

    return _build


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    seed_rules(session)
    seed_default_config(session)
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def client(db_session):
    app.dependency_overrides[get_db] = lambda: db_session
    app.dependency_overrides[require_api_auth] = lambda: None
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
