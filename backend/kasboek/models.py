from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from .database import Base


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    account_type = Column(String(20), nullable=False, default="checking")  # checking | savings | other
    starting_balance_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class CategoryRule(Base):
    __tablename__ = "category_rules"

    id = Column(Integer, primary_key=True, index=True)
    position = Column(Integer, nullable=False, index=True)   # first match wins, lowest first
    category = Column(String(50), nullable=False)
    subcategory = Column(String(50), nullable=True)
    keywords = Column(JSON, nullable=False)
    min_amount_cents = Column(Integer, nullable=True)
    max_amount_cents = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id = Column(String(32), primary_key=True)
    file_name = Column(String(255), nullable=False)
    account_id = Column(String(64), nullable=False)
    total_rows = Column(Integer, nullable=False, default=0)
    imported = Column(Integer, nullable=False, default=0)
    skipped = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    transactions = relationship("Transaction", back_populates="import_batch")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(String(32), primary_key=True)
    import_batch_id = Column(String(32), ForeignKey("import_batches.id"), nullable=True)
    posted_date = Column(String(10), nullable=False, index=True)
    description = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)
    amount_cents = Column(Integer, nullable=False)
    transaction_type = Column(String(20), nullable=False, default="expense")  # income | expense | transfer
    category = Column(String(50), nullable=False, default="uncategorized")
    subcategory = Column(String(50), nullable=True)
    categorization_confidence = Column(Integer, nullable=False, default=0)
    categorization_reason = Column(Text, nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_group_id = Column(String(32), nullable=True, index=True)
    recurring_confidence = Column(Integer, nullable=True)
    recurring_pattern = Column(JSON, nullable=True)
    recurring_type = Column(String(20), nullable=True)       # user-set: weekly | monthly | yearly
    account_id = Column(String(64), nullable=False, index=True)
    transfer_account_id = Column(String(64), nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    is_paid = Column(Boolean, nullable=False, default=True)
    fingerprint_hash = Column(String(64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    import_batch = relationship("ImportBatch", back_populates="transactions")


class SavingsGoal(Base):
    __tablename__ = "savings_goals"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    target_cents = Column(Integer, nullable=False)
    current_cents = Column(Integer, nullable=False, default=0)
    monthly_contribution_cents = Column(Integer, nullable=False, default=0)
    start_date = Column(String(10), nullable=True)
    end_date = Column(String(10), nullable=True)
    account_id = Column(String(64), nullable=True)
    spent_date = Column(String(10), nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
