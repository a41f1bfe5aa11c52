"""Collaborator interfaces (transaction store, wallet ledger, rule store).

The engine only talks to these Protocols. In-memory implementations live
here for tests and dry runs; SQLAlchemy-backed ones are in ``sql_store``.

Both transaction store implementations enforce at most one transaction per
``(recurrence_id, occurrence day)`` and raise ``DuplicateOccurrenceError``
on a second insert. That rejection is the engine's idempotency signal.
"""

import logging
import threading
import uuid
from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Protocol

from . import constants
from .schema import NewTransaction, RecurrenceRule, Transaction
from .utils import to_utc_datetime, utc_now

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base class for collaborator failures."""


class DuplicateOccurrenceError(StoreError):
    """A transaction for this rule already exists on that calendar day."""

    def __init__(self, recurrence_id: str, day: date):
        super().__init__(f"occurrence for rule '{recurrence_id}' on {day} already exists")
        self.recurrence_id = recurrence_id
        self.day = day


class RuleNotFoundError(StoreError):
    def __init__(self, rule_id: str):
        super().__init__(f"rule '{rule_id}' not found")
        self.rule_id = rule_id


class LedgerError(StoreError):
    """Wallet balance could not be updated."""


class TransactionStore(Protocol):
    def insert(self, transaction: NewTransaction) -> Transaction: ...

    def find_by_ids(self, ids: Iterable[str]) -> list[Transaction]: ...

    def find_by_recurrence_and_date_range(
        self, recurrence_id: str, start: datetime, end: datetime
    ) -> list[Transaction]:
        """Transactions of ``recurrence_id`` dated in the half-open range [start, end)."""
        ...


class WalletLedger(Protocol):
    def apply_delta(self, wallet_id: str, signed_amount: Decimal) -> None: ...

    def ensure_wallet(self, wallet_id: str, balance: Decimal = constants.ZERO_BALANCE) -> bool:
        """Create the wallet with ``balance`` unless it exists; True when created."""
        ...


class RuleStore(Protocol):
    def list_rules(self) -> list[RecurrenceRule]: ...

    def get_rule(self, rule_id: str) -> RecurrenceRule: ...

    def save_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        """Insert or update a rule definition, keeping recorded occurrences."""
        ...

    def append_occurrences(self, rule_id: str, transaction_ids: list[str]) -> RecurrenceRule:
        """Atomically append ids to the rule's generated occurrences."""
        ...


# ============================================================================
# In-memory implementations
# ============================================================================


class InMemoryTransactionStore:
    """Dict-backed transaction store."""

    def __init__(self, clock=utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._transactions: dict[str, Transaction] = {}
        self._by_occurrence: dict[tuple[str, date], str] = {}

    def insert(self, transaction: NewTransaction) -> Transaction:
        with self._lock:
            key = None
            if transaction.recurrence_id is not None:
                key = (transaction.recurrence_id, transaction.occurrence_date)
                if key in self._by_occurrence:
                    raise DuplicateOccurrenceError(*key)

            stored = Transaction(
                **transaction.model_dump(),
                id=str(uuid.uuid4()),
                created_at=self._clock(),
            )
            self._transactions[stored.id] = stored
            if key is not None:
                self._by_occurrence[key] = stored.id
            return stored

    def find_by_ids(self, ids: Iterable[str]) -> list[Transaction]:
        with self._lock:
            return [self._transactions[i] for i in ids if i in self._transactions]

    def find_by_recurrence_and_date_range(
        self, recurrence_id: str, start: datetime, end: datetime
    ) -> list[Transaction]:
        start, end = to_utc_datetime(start), to_utc_datetime(end)
        with self._lock:
            return [
                t
                for t in self._transactions.values()
                if t.recurrence_id == recurrence_id and start <= to_utc_datetime(t.date) < end
            ]

    def __len__(self) -> int:
        return len(self._transactions)


class InMemoryWalletLedger:
    """Wallet balances keyed by wallet id; unknown wallets start at zero."""

    def __init__(self, balances: Optional[dict[str, Decimal]] = None):
        self._lock = threading.Lock()
        self.balances: dict[str, Decimal] = defaultdict(lambda: constants.ZERO_BALANCE)
        if balances:
            self.balances.update(balances)

    def apply_delta(self, wallet_id: str, signed_amount: Decimal) -> None:
        with self._lock:
            self.balances[wallet_id] += signed_amount
        logger.debug("Wallet %s balance changed by %s", wallet_id, signed_amount)

    def ensure_wallet(self, wallet_id: str, balance: Decimal = constants.ZERO_BALANCE) -> bool:
        with self._lock:
            if wallet_id in self.balances:
                return False
            self.balances[wallet_id] = balance
        return True

    def balance(self, wallet_id: str) -> Decimal:
        return self.balances[wallet_id]


class InMemoryRuleStore:
    """Dict-backed rule store. Returned rules are copies."""

    def __init__(self, rules: Iterable[RecurrenceRule] = ()):
        self._lock = threading.Lock()
        self._rules: dict[str, RecurrenceRule] = {}
        for rule in rules:
            self.save_rule(rule)

    def list_rules(self) -> list[RecurrenceRule]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._rules.values()]

    def get_rule(self, rule_id: str) -> RecurrenceRule:
        with self._lock:
            if rule_id not in self._rules:
                raise RuleNotFoundError(rule_id)
            return self._rules[rule_id].model_copy(deep=True)

    def save_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        with self._lock:
            existing = self._rules.get(rule.id)
            stored = rule.model_copy(deep=True)
            if existing is not None:
                recorded = list(existing.generated_occurrences)
                recorded += [i for i in rule.generated_occurrences if i not in recorded]
                stored.generated_occurrences = recorded
            self._rules[rule.id] = stored
            return stored.model_copy(deep=True)

    def append_occurrences(self, rule_id: str, transaction_ids: list[str]) -> RecurrenceRule:
        with self._lock:
            if rule_id not in self._rules:
                raise RuleNotFoundError(rule_id)
            rule = self._rules[rule_id]
            for transaction_id in transaction_ids:
                if transaction_id not in rule.generated_occurrences:
                    rule.generated_occurrences.append(transaction_id)
            return rule.model_copy(deep=True)
