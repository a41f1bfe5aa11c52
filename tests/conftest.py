"""Pytest configuration and shared fixtures for walletschedule tests."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
import yaml

from walletschedule.schema import RecurrenceRule, TransactionTemplate
from walletschedule.service import RecurrenceService
from walletschedule.stores import InMemoryRuleStore, InMemoryTransactionStore, InMemoryWalletLedger
from walletschedule.types import FrequencyType, TransactionType

# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Callable clock returning a settable aware UTC datetime."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def tick(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set_day(self, day: date, hour: int = 9) -> datetime:
        self.now = datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)
        return self.now


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


# ============================================================================
# Rule and Template Builders
# ============================================================================


def make_template(
    wallet_id: str = "wallet-main",
    type_: TransactionType = TransactionType.EXPENSE,
    amount: Decimal = Decimal("50.00"),
    name: str = "Gym membership",
    **kwargs,
) -> TransactionTemplate:
    """Create a TransactionTemplate with sensible defaults."""
    return TransactionTemplate(
        wallet_id=wallet_id,
        type=type_,
        amount=amount,
        name=name,
        category_id=kwargs.get("category_id", "cat-health"),
        notes=kwargs.get("notes", ""),
        tags=kwargs.get("tags", []),
        items=kwargs.get("items", []),
        user_id=kwargs.get("user_id", "user-1"),
        origin_wallet_id=kwargs.get("origin_wallet_id"),
        destination_wallet_id=kwargs.get("destination_wallet_id"),
    )


def make_rule(
    id: str = "gym",
    frequency: FrequencyType = FrequencyType.MONTHLY,
    start_date: date = date(2024, 1, 31),
    end_date: date = None,
    enabled: bool = True,
    template: TransactionTemplate = None,
    generated_occurrences: list[str] = None,
    **kwargs,
) -> RecurrenceRule:
    """Create a RecurrenceRule with sensible defaults."""
    return RecurrenceRule(
        id=id,
        name=kwargs.get("name"),
        frequency=frequency,
        start_date=start_date,
        end_date=end_date,
        enabled=enabled,
        template=template or make_template(**kwargs),
        generated_occurrences=generated_occurrences or [],
    )


# ============================================================================
# Pytest Fixtures
# ============================================================================


@pytest.fixture
def clock():
    """Fixture providing a controllable clock at 2024-01-31 09:30 UTC."""
    return FakeClock(utc(2024, 1, 31, 9, 30))


@pytest.fixture
def sample_rule():
    """Fixture providing a rule builder function."""
    return make_rule


@pytest.fixture
def rule_store():
    return InMemoryRuleStore()


@pytest.fixture
def transaction_store(clock):
    return InMemoryTransactionStore(clock=clock)


@pytest.fixture
def ledger():
    return InMemoryWalletLedger()


@pytest.fixture
def service(rule_store, transaction_store, ledger, clock):
    """Fixture providing a RecurrenceService over in-memory stores."""
    return RecurrenceService(rule_store, transaction_store, ledger, clock=clock)


@pytest.fixture
def sample_rule_dict():
    """Fixture providing a sample rule as a dictionary (YAML shape)."""
    return {
        "id": "rent",
        "name": "Monthly rent",
        "frequency": "monthly",
        "start_date": "2024-01-31",
        "end_date": None,
        "enabled": True,
        "template": {
            "wallet_id": "wallet-main",
            "type": "expense",
            "amount": 1500.0,
            "name": "Rent",
            "category_id": "cat-housing",
            "tags": ["home"],
        },
    }


@pytest.fixture
def temp_rules_dir(tmp_path):
    """Fixture providing a temporary rules directory with a _config.yaml."""
    rules_dir = tmp_path / "rules"
    rules_dir.mkdir()
    with open(rules_dir / "_config.yaml", "w") as f:
        yaml.dump({"upcoming_days": 14, "next_executions_limit": 5}, f)
    return rules_dir
