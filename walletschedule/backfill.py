"""Missing-occurrence detection and backfill.

The scanner rebuilds the date sequence a rule should have produced and
diffs it, by calendar day, against the transactions recorded in the rule's
``generated_occurrences``. The executor then creates occurrences for the
gaps, bypassing the "today" window since the dates are deliberately
historical, and records all new ids on the rule in one append.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from .generator import OccurrenceGenerator
from .processor import RuleLocks
from .recurrence import RecurrenceEngine
from .schema import (
    BackfillError,
    BackfillResult,
    MissingCheckSummary,
    MissingReport,
    RecurrenceRule,
)
from .stores import RuleStore, TransactionStore

logger = logging.getLogger(__name__)


class MissingOccurrenceScanner:
    """Finds expected dates with no recorded occurrence."""

    def __init__(self, transactions: TransactionStore, engine: Optional[RecurrenceEngine] = None):
        self.transactions = transactions
        self.engine = engine or RecurrenceEngine()

    def find_missing(self, rule: RecurrenceRule, window_end: date) -> MissingReport:
        """
        Compare expected against actual occurrences up to ``window_end``.

        Args:
            rule: Recurrence rule
            window_end: Last day to check (inclusive); capped at end_date

        Returns:
            MissingReport with the missing days, expected/actual counts and
            the date of the most recently created occurrence
        """
        expected = self.engine.expected_dates(rule, window_end)

        actual = []
        if rule.generated_occurrences:
            actual = self.transactions.find_by_ids(rule.generated_occurrences)

        actual_days = {t.occurrence_date for t in actual}
        missing = [d for d in expected if d not in actual_days]

        last_generated = None
        if actual:
            last_generated = max(actual, key=lambda t: t.created_at).date

        if missing:
            logger.debug(
                "Rule %s: %d of %d expected occurrences missing",
                rule.id,
                len(missing),
                len(expected),
            )

        return MissingReport(
            recurrence_id=rule.id,
            recurrence_name=rule.display_name,
            frequency=rule.frequency,
            missing_dates=missing,
            expected_count=len(expected),
            actual_count=len(actual),
            last_generated_date=last_generated,
        )

    def check_all(self, rules: Iterable[RecurrenceRule], window_end: date) -> MissingCheckSummary:
        """Scan every rule; only rules with gaps are reported."""
        summary = MissingCheckSummary()
        for rule in rules:
            summary.total_checked += 1
            try:
                report = self.find_missing(rule, window_end)
            except Exception as e:
                logger.error("Error checking rule %s: %s", rule.id, e)
                continue
            if report.missing_dates:
                summary.missing.append(report)

        logger.info(
            "Checked %d rules, %d with missing occurrences",
            summary.total_checked,
            summary.issues_found,
        )
        return summary


class BackfillExecutor:
    """Generates occurrences for explicit historical dates."""

    def __init__(
        self,
        generator: OccurrenceGenerator,
        rules: RuleStore,
        locks: Optional[RuleLocks] = None,
    ):
        self.generator = generator
        self.rules = rules
        self.locks = locks or RuleLocks()

    def backfill(self, rule: RecurrenceRule, missing_dates: Iterable[date]) -> BackfillResult:
        """
        Create one occurrence per date; one date failing never blocks the rest.

        Dates outside [start_date, end_date] are rejected, as are days the
        store already holds an occurrence for.
        """
        result = BackfillResult(recurrence_id=rule.id)

        with self.locks.for_rule(rule.id):
            for day in missing_dates:
                if not rule.covers(day):
                    result.errors.append(
                        BackfillError(date=day, error=f"{day} is outside the rule's date range")
                    )
                    continue

                try:
                    generated = self.generator.generate_for_date(rule, day)
                except Exception as e:
                    result.errors.append(BackfillError(date=day, error=str(e)))
                    continue

                if generated.success:
                    result.generated_ids.append(generated.transaction.id)
                else:
                    result.errors.append(
                        BackfillError(date=day, error=generated.error or "Unknown error")
                    )

            if result.generated_ids:
                try:
                    self.rules.append_occurrences(rule.id, result.generated_ids)
                except Exception as e:
                    logger.error("Failed to update rule %s tracking: %s", rule.id, e)
                    result.tracking_error = str(e)

        logger.info(
            "Backfilled rule %s: %d generated, %d errors",
            rule.id,
            result.generated_count,
            result.error_count,
        )
        return result
