"""SQLAlchemy-backed transaction store, wallet ledger and rule store.

Timestamps are stored as naive UTC. The ``transactions`` table carries a
unique constraint on ``(recurrence_id, occurrence_date)`` so a second
occurrence for the same rule and day fails at insert time. Generated ids
live in ``rule_occurrences`` rows; appending is an INSERT, never a
read-modify-write of the rule row.
"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from . import constants
from .schema import NewTransaction, RecurrenceRule, Transaction, TransactionTemplate
from .stores import DuplicateOccurrenceError, LedgerError, RuleNotFoundError, StoreError
from .utils import to_utc_datetime, utc_now

logger = logging.getLogger(__name__)

IN_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


class Base(DeclarativeBase):
    pass


class TransactionRow(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("recurrence_id", "occurrence_date", name="uq_transactions_recurrence_day"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    wallet_id: Mapped[str] = mapped_column(String(64), index=True)
    type: Mapped[str] = mapped_column(String(20))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2))
    category_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    name: Mapped[str] = mapped_column(String(255))
    notes: Mapped[str] = mapped_column(Text, default="")
    tags: Mapped[list] = mapped_column(JSON, default=list)
    items: Mapped[list] = mapped_column(JSON, default=list)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    origin_wallet_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    destination_wallet_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    occurrence_date: Mapped[date] = mapped_column(Date)
    occurred_at: Mapped[datetime] = mapped_column("date", DateTime, index=True)
    recurrence_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)


class WalletRow(Base):
    __tablename__ = "wallets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=constants.ZERO_BALANCE)


class RuleRow(Base):
    __tablename__ = "recurrence_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    frequency: Mapped[str] = mapped_column(String(20))
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    template: Mapped[dict] = mapped_column(JSON)

    occurrences: Mapped[list["RuleOccurrenceRow"]] = relationship(
        order_by="RuleOccurrenceRow.position",
        cascade="all, delete-orphan",
    )


class RuleOccurrenceRow(Base):
    __tablename__ = "rule_occurrences"
    __table_args__ = (
        UniqueConstraint("rule_id", "transaction_id", name="uq_rule_occurrences_transaction"),
    )

    position: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(ForeignKey("recurrence_rules.id"), index=True)
    transaction_id: Mapped[str] = mapped_column(String(36))


def create_db_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across sessions."""
    if url in IN_MEMORY_URLS:
        return create_engine(
            url, connect_args={"check_same_thread": False}, poolclass=StaticPool
        )
    return create_engine(url)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def _naive_utc(value: datetime) -> datetime:
    return to_utc_datetime(value).replace(tzinfo=None)


def _row_to_transaction(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        wallet_id=row.wallet_id,
        type=row.type,
        amount=row.amount,
        category_id=row.category_id,
        name=row.name,
        notes=row.notes or "",
        tags=row.tags or [],
        items=row.items or [],
        user_id=row.user_id,
        origin_wallet_id=row.origin_wallet_id,
        destination_wallet_id=row.destination_wallet_id,
        date=to_utc_datetime(row.occurred_at),
        recurrence_id=row.recurrence_id,
        created_at=to_utc_datetime(row.created_at),
    )


def _row_to_rule(row: RuleRow) -> RecurrenceRule:
    return RecurrenceRule(
        id=row.id,
        name=row.name,
        frequency=row.frequency,
        start_date=row.start_date,
        end_date=row.end_date,
        enabled=row.enabled,
        template=TransactionTemplate(**row.template),
        generated_occurrences=[o.transaction_id for o in row.occurrences],
    )


class SqlTransactionStore:
    def __init__(self, engine: Engine, clock=utc_now):
        self._sessions = sessionmaker(engine, expire_on_commit=False)
        self._clock = clock

    def insert(self, transaction: NewTransaction) -> Transaction:
        data = transaction.model_dump(mode="json", exclude={"date", "amount"})
        row = TransactionRow(
            **data,
            id=str(uuid.uuid4()),
            amount=transaction.amount,
            occurrence_date=transaction.occurrence_date,
            occurred_at=_naive_utc(transaction.date),
            created_at=_naive_utc(self._clock()),
        )
        try:
            with self._sessions.begin() as session:
                session.add(row)
        except IntegrityError as e:
            if transaction.recurrence_id is not None:
                raise DuplicateOccurrenceError(
                    transaction.recurrence_id, transaction.occurrence_date
                ) from e
            raise StoreError(str(e)) from e
        return _row_to_transaction(row)

    def find_by_ids(self, ids: Iterable[str]) -> list[Transaction]:
        ids = list(ids)
        if not ids:
            return []
        with self._sessions() as session:
            rows = session.scalars(select(TransactionRow).where(TransactionRow.id.in_(ids))).all()
            return [_row_to_transaction(r) for r in rows]

    def find_by_recurrence_and_date_range(
        self, recurrence_id: str, start: datetime, end: datetime
    ) -> list[Transaction]:
        query = (
            select(TransactionRow)
            .where(TransactionRow.recurrence_id == recurrence_id)
            .where(TransactionRow.occurred_at >= _naive_utc(start))
            .where(TransactionRow.occurred_at < _naive_utc(end))
        )
        with self._sessions() as session:
            return [_row_to_transaction(r) for r in session.scalars(query).all()]


class SqlWalletLedger:
    def __init__(self, engine: Engine):
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    def open_wallet(self, wallet_id: str, balance: Decimal = constants.ZERO_BALANCE) -> None:
        with self._sessions.begin() as session:
            session.merge(WalletRow(id=wallet_id, balance=balance))

    def ensure_wallet(self, wallet_id: str, balance: Decimal = constants.ZERO_BALANCE) -> bool:
        with self._sessions.begin() as session:
            if session.get(WalletRow, wallet_id) is not None:
                return False
            session.add(WalletRow(id=wallet_id, balance=balance))
        logger.info("Opened wallet %s with balance %s", wallet_id, balance)
        return True

    def apply_delta(self, wallet_id: str, signed_amount: Decimal) -> None:
        statement = (
            update(WalletRow)
            .where(WalletRow.id == wallet_id)
            .values(balance=WalletRow.balance + signed_amount)
            .execution_options(synchronize_session=False)
        )
        try:
            with self._sessions.begin() as session:
                updated = session.execute(statement).rowcount
        except SQLAlchemyError as e:
            raise LedgerError(str(e)) from e
        if updated == 0:
            raise LedgerError(f"wallet '{wallet_id}' not found")

    def balance(self, wallet_id: str) -> Decimal:
        with self._sessions() as session:
            row = session.get(WalletRow, wallet_id)
            if row is None:
                raise LedgerError(f"wallet '{wallet_id}' not found")
            return row.balance


class SqlRuleStore:
    def __init__(self, engine: Engine):
        self._sessions = sessionmaker(engine, expire_on_commit=False)

    def list_rules(self) -> list[RecurrenceRule]:
        with self._sessions() as session:
            rows = session.scalars(select(RuleRow).order_by(RuleRow.id)).all()
            return [_row_to_rule(r) for r in rows]

    def get_rule(self, rule_id: str) -> RecurrenceRule:
        with self._sessions() as session:
            row = session.get(RuleRow, rule_id)
            if row is None:
                raise RuleNotFoundError(rule_id)
            return _row_to_rule(row)

    def save_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        with self._sessions.begin() as session:
            row = session.get(RuleRow, rule.id)
            if row is None:
                row = RuleRow(id=rule.id)
                session.add(row)
            row.name = rule.name
            row.frequency = rule.frequency.value
            row.start_date = rule.start_date
            row.end_date = rule.end_date
            row.enabled = rule.enabled
            row.template = rule.template.model_dump(mode="json")

            recorded = {o.transaction_id for o in row.occurrences}
            for transaction_id in rule.generated_occurrences:
                if transaction_id not in recorded:
                    row.occurrences.append(RuleOccurrenceRow(transaction_id=transaction_id))
                    recorded.add(transaction_id)
            session.flush()
            return _row_to_rule(row)

    def append_occurrences(self, rule_id: str, transaction_ids: list[str]) -> RecurrenceRule:
        try:
            with self._sessions.begin() as session:
                row = session.get(RuleRow, rule_id)
                if row is None:
                    raise RuleNotFoundError(rule_id)
                recorded = {o.transaction_id for o in row.occurrences}
                for transaction_id in transaction_ids:
                    if transaction_id not in recorded:
                        session.add(RuleOccurrenceRow(rule_id=rule_id, transaction_id=transaction_id))
                        recorded.add(transaction_id)
        except IntegrityError as e:
            raise StoreError(str(e)) from e
        return self.get_rule(rule_id)
