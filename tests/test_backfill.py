"""Tests for missing-occurrence detection and backfill."""

from datetime import date
from decimal import Decimal

import pytest

from walletschedule.backfill import BackfillExecutor, MissingOccurrenceScanner
from walletschedule.generator import OccurrenceGenerator
from walletschedule.stores import RuleNotFoundError
from walletschedule.types import FrequencyType

from tests.conftest import make_rule, utc


@pytest.fixture
def generator(transaction_store, ledger, rule_store):
    return OccurrenceGenerator(transaction_store, ledger, rule_store)


@pytest.fixture
def scanner(transaction_store):
    return MissingOccurrenceScanner(transaction_store)


@pytest.fixture
def executor(generator, rule_store):
    return BackfillExecutor(generator, rule_store)


@pytest.fixture
def daily_rule(rule_store):
    return rule_store.save_rule(
        make_rule(id="coffee", frequency=FrequencyType.DAILY, start_date=date(2024, 1, 1))
    )


class TestFindMissing:
    """Tests for MissingOccurrenceScanner.find_missing."""

    def test_daily_rule_with_two_recorded(self, scanner, generator, rule_store, daily_rule):
        generator.generate(daily_rule, date(2024, 1, 3))
        generator.generate(daily_rule, date(2024, 1, 7))
        rule = rule_store.get_rule("coffee")

        report = scanner.find_missing(rule, date(2024, 1, 10))

        assert report.expected_count == 10
        assert report.actual_count == 2
        assert len(report.missing_dates) == 8
        assert date(2024, 1, 3) not in report.missing_dates
        assert date(2024, 1, 7) not in report.missing_dates
        assert report.missing_dates[0] == date(2024, 1, 1)
        assert report.missing_dates[-1] == date(2024, 1, 10)

    def test_nothing_generated(self, scanner, daily_rule):
        report = scanner.find_missing(daily_rule, date(2024, 1, 5))

        assert report.actual_count == 0
        assert report.last_generated_date is None
        assert report.missing_dates == [date(2024, 1, d) for d in range(1, 6)]

    def test_window_capped_at_end_date(self, scanner, rule_store):
        rule = rule_store.save_rule(
            make_rule(
                id="trial",
                frequency=FrequencyType.DAILY,
                start_date=date(2024, 1, 1),
                end_date=date(2024, 1, 3),
            )
        )

        report = scanner.find_missing(rule, date(2024, 6, 1))

        assert report.expected_count == 3

    def test_last_generated_is_most_recently_created(
        self, scanner, generator, rule_store, daily_rule, clock
    ):
        """Backfilled history does not count as the latest generation."""
        generator.generate(daily_rule, utc(2024, 1, 9, 8))
        clock.tick(hours=1)
        generator.generate(daily_rule, utc(2024, 1, 2, 8))
        rule = rule_store.get_rule("coffee")

        report = scanner.find_missing(rule, date(2024, 1, 10))

        assert report.last_generated_date == utc(2024, 1, 2, 8)

    def test_report_identifies_rule(self, scanner, rule_store):
        rule = rule_store.save_rule(
            make_rule(id="rent", name="Monthly rent", start_date=date(2024, 1, 31))
        )

        report = scanner.find_missing(rule, date(2024, 4, 30))

        assert report.recurrence_id == "rent"
        assert report.recurrence_name == "Monthly rent"
        assert report.frequency == FrequencyType.MONTHLY
        assert report.missing_dates == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
        ]


class TestCheckAll:
    def test_only_rules_with_gaps_reported(self, scanner, generator, rule_store):
        complete = rule_store.save_rule(
            make_rule(id="complete", frequency=FrequencyType.DAILY, start_date=date(2024, 1, 30))
        )
        rule_store.save_rule(
            make_rule(id="gappy", frequency=FrequencyType.DAILY, start_date=date(2024, 1, 29))
        )
        generator.generate(complete, date(2024, 1, 30))
        generator.generate(complete, date(2024, 1, 31))

        summary = scanner.check_all(rule_store.list_rules(), date(2024, 1, 31))

        assert summary.total_checked == 2
        assert summary.issues_found == 1
        assert summary.missing[0].recurrence_id == "gappy"

    def test_rule_errors_are_skipped(self, rule_store, daily_rule):
        class BrokenStore:
            def find_by_ids(self, ids):
                raise RuntimeError("timeout")

        rule = rule_store.append_occurrences("coffee", ["tx-1"])
        scanner = MissingOccurrenceScanner(BrokenStore())

        summary = scanner.check_all([rule], date(2024, 1, 10))

        assert summary.total_checked == 1
        assert summary.issues_found == 0

    def test_serializes_issue_count(self, scanner, daily_rule):
        summary = scanner.check_all([daily_rule], date(2024, 1, 2))

        assert summary.model_dump()["issues_found"] == 1


class TestBackfill:
    """Tests for BackfillExecutor.backfill."""

    def test_fills_gaps_then_nothing_missing(
        self, scanner, executor, generator, rule_store, daily_rule, ledger
    ):
        generator.generate(daily_rule, date(2024, 1, 3))
        generator.generate(daily_rule, date(2024, 1, 7))
        rule = rule_store.get_rule("coffee")
        missing = scanner.find_missing(rule, date(2024, 1, 10)).missing_dates

        result = executor.backfill(rule, missing)

        assert result.generated_count == 8
        assert result.error_count == 0
        rule = rule_store.get_rule("coffee")
        assert len(rule.generated_occurrences) == 10
        assert scanner.find_missing(rule, date(2024, 1, 10)).missing_dates == []
        assert ledger.balance("wallet-main") == Decimal("-500.00")

    def test_dates_outside_range_are_errors(self, executor, rule_store):
        rule = rule_store.save_rule(
            make_rule(
                id="trial",
                frequency=FrequencyType.DAILY,
                start_date=date(2024, 1, 5),
                end_date=date(2024, 1, 10),
            )
        )

        result = executor.backfill(rule, [date(2024, 1, 4), date(2024, 1, 6), date(2024, 1, 11)])

        assert result.generated_count == 1
        assert [e.date for e in result.errors] == [date(2024, 1, 4), date(2024, 1, 11)]
        assert "outside" in result.errors[0].error

    def test_existing_day_is_an_error(self, executor, generator, rule_store, daily_rule):
        generator.generate(daily_rule, date(2024, 1, 2))

        result = executor.backfill(daily_rule, [date(2024, 1, 1), date(2024, 1, 2)])

        assert result.generated_count == 1
        assert result.errors[0].date == date(2024, 1, 2)
        assert "already exists" in result.errors[0].error

    def test_occurrences_dated_on_missing_day(self, executor, transaction_store, daily_rule):
        result = executor.backfill(daily_rule, [date(2024, 1, 4)])

        transaction = transaction_store.find_by_ids(result.generated_ids)[0]
        assert transaction.date == utc(2024, 1, 4)
        assert transaction.recurrence_id == "coffee"

    def test_tracking_failure_keeps_generated_ids(self, generator, daily_rule):
        class MissingRuleStore:
            def append_occurrences(self, rule_id, transaction_ids):
                raise RuleNotFoundError(rule_id)

        executor = BackfillExecutor(generator, MissingRuleStore())

        result = executor.backfill(daily_rule, [date(2024, 1, 1)])

        assert result.generated_count == 1
        assert "coffee" in result.tracking_error
        assert result.model_dump(mode="json")["tracking_error"] == result.tracking_error

    def test_empty_dates(self, executor, daily_rule):
        result = executor.backfill(daily_rule, [])

        assert result.generated_count == 0
        assert result.error_count == 0
        assert result.tracking_error is None


class TestServiceBackfill:
    def test_defaults_to_missing_dates_up_to_today(self, service, rule_store, clock):
        clock.set_day(date(2024, 1, 10))
        rule_store.save_rule(
            make_rule(id="coffee", frequency=FrequencyType.DAILY, start_date=date(2024, 1, 1))
        )

        result = service.backfill("coffee")

        assert result.generated_count == 10
        assert service.find_missing("coffee").missing_dates == []

    def test_unknown_rule(self, service):
        with pytest.raises(RuleNotFoundError):
            service.backfill("nope")
