"""Type definitions and enums for walletschedule."""

from enum import Enum


class FrequencyType(str, Enum):
    """Recurrence frequency types."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class TransactionType(str, Enum):
    """Kinds of wallet transaction a template can produce."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class RuleState(str, Enum):
    """Lifecycle state of a rule relative to a given day (computed, never stored)."""

    PENDING = "pending"  # today < start_date
    ACTIVE = "active"
    EXPIRED = "expired"  # end_date < today
