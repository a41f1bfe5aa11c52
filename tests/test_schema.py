"""Tests for Pydantic schema models."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError

from walletschedule.schema import (
    BackfillError,
    BackfillResult,
    GlobalConfig,
    RecurrenceRule,
    RuleFile,
    TransactionTemplate,
)
from walletschedule.types import RuleState, TransactionType

from tests.conftest import make_rule, make_template


class TestTransactionTemplate:
    """Tests for TransactionTemplate model."""

    def test_transfer_requires_both_wallets(self):
        with pytest.raises(ValidationError, match="origin_wallet_id"):
            make_template(type_=TransactionType.TRANSFER, origin_wallet_id="wallet-a")

    def test_transfer_wallets_must_differ(self):
        with pytest.raises(ValidationError, match="must differ"):
            make_template(
                type_=TransactionType.TRANSFER,
                origin_wallet_id="wallet-a",
                destination_wallet_id="wallet-a",
            )

    def test_valid_transfer(self):
        template = make_template(
            type_=TransactionType.TRANSFER,
            origin_wallet_id="wallet-a",
            destination_wallet_id="wallet-b",
        )

        assert template.type == TransactionType.TRANSFER

    def test_signed_amount(self):
        assert make_template(
            type_=TransactionType.INCOME, amount=Decimal("10")
        ).signed_amount() == Decimal("10")
        assert make_template(
            type_=TransactionType.EXPENSE, amount=Decimal("10")
        ).signed_amount() == Decimal("-10")

    def test_signed_amount_ignores_stored_sign(self):
        template = make_template(type_=TransactionType.EXPENSE, amount=Decimal("-10"))

        assert template.signed_amount() == Decimal("-10")

    def test_ledger_wallet_ids(self):
        assert make_template(wallet_id="wallet-a").ledger_wallet_ids() == ["wallet-a"]
        transfer = make_template(
            type_=TransactionType.TRANSFER,
            origin_wallet_id="wallet-a",
            destination_wallet_id="wallet-b",
        )
        assert transfer.ledger_wallet_ids() == ["wallet-a", "wallet-b"]

    def test_defaults(self):
        template = TransactionTemplate(
            wallet_id="w", type=TransactionType.EXPENSE, amount=Decimal("1"), name="x"
        )

        assert template.tags == []
        assert template.items == []
        assert template.notes == ""


class TestRecurrenceRule:
    """Tests for RecurrenceRule model."""

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError, match="id cannot be empty"):
            make_rule(id="  ")

    def test_end_before_start_rejected(self):
        with pytest.raises(ValidationError, match="end_date"):
            make_rule(start_date=date(2024, 2, 1), end_date=date(2024, 1, 31))

    def test_end_equal_to_start_allowed(self):
        rule = make_rule(start_date=date(2024, 2, 1), end_date=date(2024, 2, 1))

        assert rule.covers(date(2024, 2, 1))

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValidationError):
            RecurrenceRule(
                id="x",
                frequency="hourly",
                start_date=date(2024, 1, 1),
                template=make_template(),
            )

    def test_state(self):
        rule = make_rule(start_date=date(2024, 2, 1), end_date=date(2024, 2, 29))

        assert rule.state(date(2024, 1, 31)) == RuleState.PENDING
        assert rule.state(date(2024, 2, 1)) == RuleState.ACTIVE
        assert rule.state(date(2024, 2, 29)) == RuleState.ACTIVE
        assert rule.state(date(2024, 3, 1)) == RuleState.EXPIRED

    def test_display_name_falls_back_to_template(self):
        assert make_rule(name="Rent").display_name == "Rent"
        assert make_rule().display_name == "Gym membership"

    def test_source_file_not_serialized(self, tmp_path):
        rule = make_rule()
        rule.source_file = tmp_path / "gym.yaml"

        assert "source_file" not in rule.model_dump()


class TestResults:
    def test_backfill_counts_serialized(self):
        result = BackfillResult(
            recurrence_id="rent",
            generated_ids=["a", "b"],
            errors=[BackfillError(date=date(2024, 1, 1), error="boom")],
        )

        data = result.model_dump(mode="json")

        assert data["generated_count"] == 2
        assert data["error_count"] == 1
        assert data["errors"][0]["date"] == "2024-01-01"


class TestRuleFile:
    def test_wallet_ids_listed_first_without_repeats(self):
        transfer = make_template(
            type_=TransactionType.TRANSFER,
            origin_wallet_id="wallet-main",
            destination_wallet_id="savings",
        )
        rule_file = RuleFile(
            rules=[
                make_rule(id="rent", template=make_template(wallet_id="wallet-main")),
                make_rule(id="save", template=transfer, enabled=False),
            ],
            wallets={"cash": Decimal("20")},
        )

        assert rule_file.wallet_ids() == ["cash", "wallet-main", "savings"]
        assert [r.id for r in rule_file.enabled_rules] == ["rent"]


class TestGlobalConfig:
    """Tests for GlobalConfig model."""

    def test_defaults(self):
        config = GlobalConfig()

        assert config.database_url == "sqlite:///walletschedule.db"
        assert config.cron_expression == "*/1 * * * *"
        assert config.timezone == "UTC"
        assert config.upcoming_days == 30
        assert config.next_executions_limit == 10

    def test_timezone_must_be_utc(self):
        assert GlobalConfig(timezone="utc").timezone == "UTC"
        with pytest.raises(ValidationError, match="UTC"):
            GlobalConfig(timezone="Europe/Madrid")

    def test_positive_limits(self):
        with pytest.raises(ValidationError):
            GlobalConfig(upcoming_days=0)
        with pytest.raises(ValidationError):
            GlobalConfig(next_executions_limit=-1)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError):
            GlobalConfig(forecast_months=3)
