"""Persistence boundary between the pipeline and the profile database.

The services only ever see pydantic snapshots; this module maps them to and
from ORM rows (amounts as integer cents).
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from fastapi import Depends
from sqlalchemy.orm import Session

from . import models
from .database import get_db
from .schemas import (
    Account,
    CategoryRule,
    Dataset,
    FinancialConfiguration,
    ImportResult,
    RecurringPattern,
    SavingsGoal,
    Transaction,
)
from .services.normalizer import compute_fingerprint, from_cents, to_cents

logger = logging.getLogger(__name__)

CONFIG_KEY = "financial_config"


class FinanceRepository(ABC):
    @abstractmethod
    def load_config(self) -> FinancialConfiguration: ...

    @abstractmethod
    def save_config(self, config: FinancialConfiguration) -> FinancialConfiguration: ...

    @abstractmethod
    def load_dataset(self) -> Dataset: ...

    @abstractmethod
    def save_import(self, result: ImportResult) -> None: ...

    @abstractmethod
    def load_rules(self) -> list[CategoryRule]: ...


# ─────────────────────────────────────────────────────────────────────────────
# Row ⇄ schema mapping
# ─────────────────────────────────────────────────────────────────────────────


def _opt_cents(value):
    return None if value is None else from_cents(value)


def transaction_from_row(row: models.Transaction) -> Transaction:
    return Transaction(
        id=row.id,
        date=row.posted_date,
        description=row.description,
        notes=row.notes,
        amount=from_cents(row.amount_cents),
        type=row.transaction_type,
        category=row.category,
        subcategory=row.subcategory,
        categorization_confidence=row.categorization_confidence,
        categorization_reason=row.categorization_reason or "",
        is_recurring=row.is_recurring,
        recurring_pattern=RecurringPattern(**row.recurring_pattern) if row.recurring_pattern else None,
        recurring_group_id=row.recurring_group_id,
        recurring_confidence=row.recurring_confidence,
        recurring_type=row.recurring_type,
        account_id=row.account_id,
        transfer_account_id=row.transfer_account_id,
        tags=frozenset(row.tags or []),
        import_batch=row.import_batch_id,
        is_paid=row.is_paid,
    )


def _apply_detection(row: models.Transaction, tx: Transaction) -> None:
    row.is_recurring = tx.is_recurring
    row.recurring_pattern = tx.recurring_pattern.model_dump() if tx.recurring_pattern else None
    row.recurring_group_id = tx.recurring_group_id
    row.recurring_confidence = tx.recurring_confidence


def transaction_to_row(tx: Transaction) -> models.Transaction:
    row = models.Transaction(
        id=tx.id,
        import_batch_id=tx.import_batch,
        posted_date=tx.date,
        description=tx.description,
        notes=tx.notes,
        amount_cents=to_cents(tx.amount),
        transaction_type=tx.type,
        category=tx.category,
        subcategory=tx.subcategory,
        categorization_confidence=tx.categorization_confidence,
        categorization_reason=tx.categorization_reason,
        recurring_type=tx.recurring_type,
        account_id=tx.account_id,
        transfer_account_id=tx.transfer_account_id,
        tags=sorted(tx.tags),
        is_paid=tx.is_paid,
        fingerprint_hash=compute_fingerprint(tx.date, tx.description, tx.amount),
    )
    _apply_detection(row, tx)
    return row


def account_from_row(row: models.Account) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        type=row.account_type,
        starting_balance=from_cents(row.starting_balance_cents),
    )


def goal_from_row(row: models.SavingsGoal) -> SavingsGoal:
    return SavingsGoal(
        id=row.id,
        name=row.name,
        target_amount=from_cents(row.target_cents),
        current_amount=from_cents(row.current_cents),
        monthly_contribution=from_cents(row.monthly_contribution_cents),
        start_date=row.start_date,
        end_date=row.end_date,
        account_id=row.account_id,
        spent_date=row.spent_date,
    )


def rule_from_row(row: models.CategoryRule) -> CategoryRule:
    return CategoryRule(
        category=row.category,
        subcategory=row.subcategory,
        keywords=tuple(row.keywords),
        min_amount=_opt_cents(row.min_amount_cents),
        max_amount=_opt_cents(row.max_amount_cents),
    )


# ─────────────────────────────────────────────────────────────────────────────
# SQLAlchemy implementation
# ─────────────────────────────────────────────────────────────────────────────


class SqlFinanceRepository(FinanceRepository):
    def __init__(self, db: Session):
        self.db = db

    def load_config(self) -> FinancialConfiguration:
        setting = self.db.get(models.Setting, CONFIG_KEY)
        if setting is None or not setting.value:
            return FinancialConfiguration()
        return FinancialConfiguration.model_validate_json(setting.value)

    def save_config(self, config: FinancialConfiguration) -> FinancialConfiguration:
        stored = config.model_copy(update={"last_updated": datetime.now(timezone.utc)})
        setting = self.db.get(models.Setting, CONFIG_KEY)
        if setting is None:
            setting = models.Setting(key=CONFIG_KEY)
            self.db.add(setting)
        setting.value = stored.model_dump_json()
        self.db.commit()
        return stored

    def load_dataset(self) -> Dataset:
        accounts = self.db.query(models.Account).order_by(models.Account.created_at, models.Account.id).all()
        transactions = (
            self.db.query(models.Transaction)
            .order_by(models.Transaction.posted_date, models.Transaction.id)
            .all()
        )
        goals = self.db.query(models.SavingsGoal).order_by(models.SavingsGoal.created_at, models.SavingsGoal.id).all()
        return Dataset(
            accounts=tuple(account_from_row(a) for a in accounts),
            transactions=tuple(transaction_from_row(t) for t in transactions),
            savings_goals=tuple(goal_from_row(g) for g in goals),
        )

    def load_rules(self) -> list[CategoryRule]:
        rows = (
            self.db.query(models.CategoryRule)
            .filter(models.CategoryRule.is_active == True)  # noqa: E712
            .order_by(models.CategoryRule.position.asc(), models.CategoryRule.id.asc())
            .all()
        )
        return [rule_from_row(r) for r in rows]

    def save_import(self, result: ImportResult) -> None:
        if not result.transactions and not result.updated_transactions:
            return
        try:
            if result.transactions and self.db.get(models.ImportBatch, result.batch_id) is None:
                self.db.add(models.ImportBatch(
                    id=result.batch_id,
                    file_name=result.file_name,
                    account_id=result.account_id,
                    total_rows=result.total_rows,
                    imported=result.imported,
                    skipped=result.skipped,
                    created_at=result.import_date,
                ))
            for tx in result.transactions:
                self.db.add(transaction_to_row(tx))
            for tx in result.updated_transactions:
                row = self.db.get(models.Transaction, tx.id)
                if row is not None:
                    _apply_detection(row, tx)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info(
            "Stored batch %s: %d new, %d updated transactions",
            result.batch_id, len(result.transactions), len(result.updated_transactions),
        )


def get_repository(db: Session = Depends(get_db)) -> SqlFinanceRepository:
    return SqlFinanceRepository(db)
