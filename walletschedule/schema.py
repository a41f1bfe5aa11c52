"""Pydantic schema models for recurrence rules, transactions and run results."""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from . import constants
from .types import FrequencyType, RuleState, TransactionType
from .utils import to_day


class LineItem(BaseModel):
    """A single line of an itemised transaction (e.g. a receipt entry)."""

    name: str = Field(..., description="Item description")
    amount: Decimal = Field(..., description="Item amount")
    quantity: Optional[Decimal] = Field(None, description="Quantity, if known")


class TransactionFields(BaseModel):
    """Fields shared by templates, new occurrences and stored transactions."""

    wallet_id: str = Field(..., description="Owning wallet")
    type: TransactionType = Field(..., description="income, expense or transfer")
    amount: Decimal = Field(..., description="Amount (magnitude; sign follows type)")
    category_id: Optional[str] = Field(None, description="Category reference")
    name: str = Field(..., description="Display name")
    notes: str = Field("", description="Free-form notes")
    tags: list[str] = Field(default_factory=list, description="Tags")
    items: list[LineItem] = Field(default_factory=list, description="Line items")
    user_id: Optional[str] = Field(None, description="Owner of the wallet")
    origin_wallet_id: Optional[str] = Field(None, description="Transfer source wallet")
    destination_wallet_id: Optional[str] = Field(None, description="Transfer target wallet")

    @model_validator(mode="after")
    def validate_transfer_wallets(self):
        """Transfers must name two distinct wallets."""
        if self.type == TransactionType.TRANSFER:
            if not self.origin_wallet_id or not self.destination_wallet_id:
                raise ValueError("transfer requires origin_wallet_id and destination_wallet_id")
            if self.origin_wallet_id == self.destination_wallet_id:
                raise ValueError("transfer origin and destination wallets must differ")
        return self

    def ledger_wallet_ids(self) -> list[str]:
        """Wallets whose balance this transaction changes."""
        if self.type == TransactionType.TRANSFER:
            return [self.origin_wallet_id, self.destination_wallet_id]
        return [self.wallet_id]

    def signed_amount(self) -> Decimal:
        """Amount as applied to the owning wallet (negative for outflows)."""
        magnitude = abs(self.amount)
        if self.type == TransactionType.INCOME:
            return magnitude
        return -magnitude


class TransactionTemplate(TransactionFields):
    """Transaction fields copied verbatim into every generated occurrence."""


class NewTransaction(TransactionFields):
    """An occurrence payload that has not been persisted yet."""

    date: datetime = Field(..., description="Timestamp of the occurrence (UTC)")
    recurrence_id: Optional[str] = Field(None, description="Rule that produced it")

    @property
    def occurrence_date(self):
        """UTC calendar day this transaction represents."""
        return to_day(self.date)


class Transaction(NewTransaction):
    """A persisted transaction."""

    id: str = Field(..., description="Store-assigned identifier")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")


class RecurrenceRule(BaseModel):
    """Schedule plus template describing how to spawn transactions over time."""

    id: str = Field(..., description="Unique rule identifier")
    name: Optional[str] = Field(None, description="Human readable name")
    frequency: FrequencyType = Field(..., description="Recurrence frequency")
    start_date: date = Field(..., description="First day of the schedule (inclusive)")
    end_date: Optional[date] = Field(None, description="Last day of the schedule (inclusive)")
    enabled: bool = Field(True, description="Whether the rule may generate occurrences")
    template: TransactionTemplate = Field(..., description="Transaction template")
    generated_occurrences: list[str] = Field(
        default_factory=list,
        description="Ids of transactions created from this rule, in creation order",
    )
    source_file: Optional[Path] = Field(
        None,
        exclude=True,
        description="Source file path (populated during loading, not from YAML)",
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Ensure id is valid."""
        if not v or not v.strip():
            raise ValueError("id cannot be empty")
        return v

    @model_validator(mode="after")
    def validate_date_range(self) -> "RecurrenceRule":
        """Ensure end_date does not precede start_date."""
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self

    @property
    def display_name(self) -> str:
        return self.name or self.template.name

    def state(self, today: date) -> RuleState:
        """Pending before start_date, expired after end_date, otherwise active."""
        if today < self.start_date:
            return RuleState.PENDING
        if self.end_date is not None and today > self.end_date:
            return RuleState.EXPIRED
        return RuleState.ACTIVE

    def covers(self, day: date) -> bool:
        """True when ``day`` lies inside [start_date, end_date]."""
        return self.state(day) == RuleState.ACTIVE


# ============================================================================
# Run Results
# ============================================================================


class GenerationResult(BaseModel):
    """Outcome of generating one occurrence."""

    success: bool
    recurrence_id: str
    transaction: Optional[Transaction] = None
    error: Optional[str] = None
    duplicate: bool = Field(False, description="Store rejected an existing (rule, day)")
    ledger_error: Optional[str] = Field(None, description="Soft ledger failure, if any")
    tracking_error: Optional[str] = Field(
        None, description="Failure recording the id on the rule, if any"
    )

    @property
    def transaction_id(self) -> Optional[str]:
        return self.transaction.id if self.transaction else None


class BatchRunResult(BaseModel):
    """Summary of one Batch Processor invocation."""

    success: bool
    processed: int = 0
    errors: int = 0
    skipped: int = 0
    results: list[GenerationResult] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Fatal error, when success is False")


class MissingReport(BaseModel):
    """Expected-vs-actual comparison for one rule."""

    recurrence_id: str
    recurrence_name: Optional[str] = None
    frequency: FrequencyType
    missing_dates: list[date] = Field(default_factory=list)
    expected_count: int = 0
    actual_count: int = 0
    last_generated_date: Optional[datetime] = None


class MissingCheckSummary(BaseModel):
    """Missing-occurrence scan over every rule."""

    missing: list[MissingReport] = Field(default_factory=list)
    total_checked: int = 0

    @computed_field
    @property
    def issues_found(self) -> int:
        return len(self.missing)


class BackfillError(BaseModel):
    date: date
    error: str


class BackfillResult(BaseModel):
    """Outcome of backfilling a list of historical dates for one rule."""

    recurrence_id: str
    generated_ids: list[str] = Field(default_factory=list)
    errors: list[BackfillError] = Field(default_factory=list)
    tracking_error: Optional[str] = Field(
        None, description="Failure recording the new ids on the rule, if any"
    )

    @computed_field
    @property
    def generated_count(self) -> int:
        return len(self.generated_ids)

    @computed_field
    @property
    def error_count(self) -> int:
        return len(self.errors)


class UpcomingOccurrence(BaseModel):
    """A projected (not yet generated) occurrence, for previews."""

    recurrence_id: str
    name: str
    type: TransactionType
    amount: Decimal
    frequency: FrequencyType
    date: date
    wallet_id: str


class RuleStats(BaseModel):
    total: int = 0
    by_frequency: dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Configuration
# ============================================================================


class GlobalConfig(BaseModel):
    """Global configuration for walletschedule."""

    model_config = ConfigDict(extra="forbid")

    database_url: str = Field(
        constants.DEFAULT_DATABASE_URL, description="SQLAlchemy database URL"
    )
    cron_expression: str = Field(
        constants.DEFAULT_CRON_EXPRESSION, description="Crontab cadence of the batch run"
    )
    timezone: str = Field(constants.DEFAULT_TIMEZONE, description="Clock timezone (fixed)")
    upcoming_days: int = Field(
        constants.DEFAULT_UPCOMING_DAYS, description="Default preview horizon in days"
    )
    next_executions_limit: int = Field(
        constants.DEFAULT_NEXT_EXECUTIONS_LIMIT,
        description="Default number of next executions to list",
    )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Day truncation is defined in UTC only."""
        if v.upper() != constants.DEFAULT_TIMEZONE:
            raise ValueError("timezone must be UTC")
        return constants.DEFAULT_TIMEZONE

    @field_validator("upcoming_days", "next_executions_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


class RuleFile(BaseModel):
    """Complete rules file structure."""

    version: str = Field(constants.RULE_FILE_VERSION, description="Rule file format version")
    rules: list[RecurrenceRule] = Field(default_factory=list, description="Recurrence rules")
    config: GlobalConfig = Field(default_factory=GlobalConfig, description="Global config")
    wallets: dict[str, Decimal] = Field(
        default_factory=dict, description="Opening balances by wallet id"
    )

    @property
    def enabled_rules(self) -> list[RecurrenceRule]:
        return [r for r in self.rules if r.enabled]

    def wallet_ids(self) -> list[str]:
        """Wallets with an opening balance, then every wallet a template touches."""
        ids = dict.fromkeys(self.wallets)
        for rule in self.rules:
            ids.update(dict.fromkeys(rule.template.ledger_wallet_ids()))
        return list(ids)
