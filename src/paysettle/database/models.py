"""SQLAlchemy models for paysettle database."""

from datetime import datetime, UTC
from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, scoped_session, sessionmaker, Session

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(UTC)


class Account(Base):
    """Balance holder model. Balance is stored in minor units."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    owner_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="ACTIVE")
    balance = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=True)

    # Relationships
    transactions = relationship("LedgerTransaction", back_populates="account")


class LedgerTransaction(Base):
    """Append-only ledger row.

    A wallet settlement writes one DEBIT and one CREDIT row sharing the
    same transaction_id, so uniqueness is on (transaction_id, direction).
    """

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(String, nullable=False, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    direction = Column(String, nullable=False)
    amount = Column(BigInteger, nullable=False)
    kind = Column(String, nullable=False)
    related_entity_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="COMPLETED")
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("transaction_id", "direction", name="uq_transaction_direction"),
    )

    # Relationships
    account = relationship("Account", back_populates="transactions")


class Invoice(Base):
    """Invoice model. Line items are stored as a JSON list."""

    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True)
    invoice_number = Column(String, unique=True, nullable=False)
    type = Column(String, nullable=False)
    recipient_name = Column(String, nullable=False)
    recipient_user_id = Column(String, nullable=True)
    recipient_email = Column(String, nullable=True)
    recipient_phone = Column(String, nullable=True)
    student_id = Column(String, nullable=True)
    payer_account_ref = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    payee_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    line_items = Column(JSON, nullable=False, default=list)
    subtotal = Column(BigInteger, nullable=False)
    tax = Column(BigInteger, nullable=False, default=0)
    total = Column(BigInteger, nullable=False)
    paid_amount = Column(BigInteger, nullable=False, default=0)
    status = Column(String, nullable=False, default="DRAFT", index=True)
    due_date = Column(Date, nullable=False)
    reminder_count = Column(Integer, nullable=False, default=0)
    notes = Column(String, nullable=True)
    message_id = Column(String, nullable=True)
    receipt_number = Column(String, nullable=True)
    payment_transaction_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    last_reminder_at = Column(DateTime, nullable=True)


class PayrollRun(Base):
    """Payroll run model."""

    __tablename__ = "payroll_runs"

    id = Column(Integer, primary_key=True)
    school_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    period = Column(String, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    # Relationships
    entries = relationship(
        "PayrollEntry", back_populates="run", cascade="all, delete-orphan", order_by="PayrollEntry.id"
    )


class PayrollEntry(Base):
    """Payroll entry model. net_salary is fixed when the run is created."""

    __tablename__ = "payroll_entries"

    id = Column(Integer, primary_key=True)
    run_id = Column(Integer, ForeignKey("payroll_runs.id"), nullable=False, index=True)
    staff_id = Column(String, nullable=False)
    staff_name = Column(String, nullable=True)
    base_salary = Column(BigInteger, nullable=False)
    allowances = Column(BigInteger, nullable=False, default=0)
    deductions = Column(BigInteger, nullable=False, default=0)
    net_salary = Column(BigInteger, nullable=False)
    channel = Column(String, nullable=False)
    recipient_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    recipient_details = Column(JSON, nullable=False, default=dict)
    status = Column(String, nullable=False, default="PENDING")
    transaction_id = Column(String, nullable=True, index=True)
    failure_reason = Column(String, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    __table_args__ = (UniqueConstraint("run_id", "staff_id", name="uq_run_staff"),)

    # Relationships
    run = relationship("PayrollRun", back_populates="entries")


class PendingTransfer(Base):
    """Queued external payout consumed by the disbursement worker."""

    __tablename__ = "pending_transfers"

    id = Column(Integer, primary_key=True)
    type = Column(String, nullable=False)
    amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    recipient_details = Column(JSON, nullable=False, default=dict)
    status = Column(String, nullable=False, default="PENDING", index=True)
    related_transaction_id = Column(String, unique=True, nullable=False)
    source_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    failure_reason = Column(String, nullable=True)


class Settlement(Base):
    """Router journal, one row per transaction_id."""

    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(String, unique=True, nullable=False)
    payer_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    payee_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    amount = Column(BigInteger, nullable=False)
    channel = Column(String, nullable=False)
    related_entity_id = Column(String, nullable=False)
    debit_kind = Column(String, nullable=False)
    credit_kind = Column(String, nullable=False)
    recipient_details = Column(JSON, nullable=False, default=dict)
    description = Column(String, nullable=True)
    status = Column(String, nullable=False, default="INITIATED", index=True)
    failure_reason = Column(String, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=True)


def create_session_factory(database_url: str) -> scoped_session[Session]:
    """Create a thread-local SQLAlchemy session registry.

    Each thread gets its own session so that concurrent settlements against
    different accounts do not share unit-of-work state.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, echo=False, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return scoped_session(sessionmaker(bind=engine, expire_on_commit=False))
