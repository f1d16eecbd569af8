"""Database seeder: idempotent default rules, configuration and demo data."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from ..models import Account, CategoryRule, SavingsGoal, Setting, Transaction
from ..repository import CONFIG_KEY, SqlFinanceRepository
from ..schemas import FinancialConfiguration, IncomeSource, RecurringExpense
from .categorizer import DEFAULT_RULES
from .csv_importer import run_import
from .normalizer import to_cents
from .schedule import add_months, days_in_month

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Defaults
# ─────────────────────────────────────────────────────────────────────────────


def seed_rules(db: Session) -> None:
    """Insert the default rule table only when category_rules is completely empty."""
    if db.query(CategoryRule).count() > 0:
        return  # user may have customised rules

    for position, rule in enumerate(DEFAULT_RULES):
        db.add(
            CategoryRule(
                position=position,
                category=rule.category,
                subcategory=rule.subcategory,
                keywords=list(rule.keywords),
                min_amount_cents=None if rule.min_amount is None else to_cents(rule.min_amount),
                max_amount_cents=None if rule.max_amount is None else to_cents(rule.max_amount),
                is_active=True,
            )
        )
    db.commit()
    logger.info("Seeded %d category rules", len(DEFAULT_RULES))


def seed_default_config(db: Session) -> None:
    if db.get(Setting, CONFIG_KEY) is not None:
        return
    SqlFinanceRepository(db).save_config(FinancialConfiguration())


# ─────────────────────────────────────────────────────────────────────────────
# Demo profile seeder  (fictional data)
# ─────────────────────────────────────────────────────────────────────────────

_DEMO_HEADER = (
    "Datum;Naam / Omschrijving;Rekening;Tegenrekening;Code;Af Bij;Bedrag (EUR);"
    "Mutatiesoort;Mededelingen;Saldo na mutatie;Tag"
)

# (day, description, af_bij, amount, mutatiesoort)
_DEMO_MONTHLY_ROWS = [
    (1, "Woningstichting Patrimonium huur", "Af", "895,00", "Incasso"),
    (5, "Ziggo Services BV", "Af", "62,50", "Incasso"),
    (15, "Netflix International B.V.", "Af", "13,99", "Incasso"),
    (21, "Exact Cloud Development salaris", "Bij", "3.150,00", "Overschrijving"),
]
_DEMO_ONE_OFF_ROWS = [
    (3, "Albert Heijn 1403", "Af", "47,12", "Betaalautomaat"),
    (9, "Shell Tankstation Paterswolde", "Af", "68,40", "Betaalautomaat"),
    (18, "Thuisbezorgd.nl", "Af", "31,25", "iDEAL"),
]


def _demo_csv(months: int = 4) -> str:
    """Rolling demo export covering the *months* before the current month."""
    today = date.today()
    lines = [_DEMO_HEADER]
    for back in range(months, 0, -1):
        year, month = add_months(today.year, today.month, -back)
        last_day = days_in_month(year, month)
        rows = list(_DEMO_MONTHLY_ROWS)
        if back % 2:
            rows += _DEMO_ONE_OFF_ROWS
        for day, desc, af_bij, amount, kind in rows:
            posted = f"{year:04d}{month:02d}{min(day, last_day):02d}"
            lines.append(f"{posted};{desc};NL00DEMO0123456789;;;{af_bij};{amount};{kind};Demo;;")
    return "\n".join(lines) + "\n"


def seed_demo_data(db: Session) -> None:
    """Populate the 'sample' profile. Idempotent; does nothing once transactions exist."""
    if db.query(Transaction).count() > 0:
        return

    db.add_all([
        Account(id="checking", name="Demo Betaalrekening", account_type="checking", starting_balance_cents=125000),
        Account(id="savings", name="Demo Spaarrekening", account_type="savings", starting_balance_cents=0),
        SavingsGoal(
            id="goal-vacation",
            name="Zomervakantie",
            target_cents=to_cents(1200),
            monthly_contribution_cents=to_cents(200),
            account_id="savings",
        ),
    ])
    db.commit()

    repo = SqlFinanceRepository(db)
    result = run_import(repo, _demo_csv().encode(), "demo_betaalrekening.csv", "checking")

    # Accept the detected income so it is projected once, through the config.
    fields = set(IncomeSource.model_fields)
    start = date.today().replace(day=1).isoformat()
    repo.save_config(FinancialConfiguration(
        income_sources=[
            IncomeSource(**s.model_dump(include=fields)) for s in result.detected_income_sources
        ],
        recurring_expenses=[
            RecurringExpense(id="expense-demo-groceries", name="Boodschappen", amount=350,
                             start_date=start, category="groceries"),
        ],
    ))
    logger.info("Seeded demo profile with %d transactions", result.imported)
