"""Recurrence rule engine: due-date matching and next-occurrence calculation."""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from dateutil.rrule import DAILY, rrule

from . import constants
from .schema import RecurrenceRule
from .types import FrequencyType
from .utils import clamp_day, last_day_of_month

logger = logging.getLogger(__name__)


class RecurrenceEngine:
    """Engine for matching and projecting dates of recurrence rules.

    Month-end handling: a monthly rule matches its start day, and a rule
    started after the 28th also matches the last day of every month. A rule
    started on the 31st matches Feb 28/29 and Apr 30; one started on the
    30th matches both Mar 30 and Mar 31. Yearly rules clamp the start day to
    the month length, which makes a Feb 29 anniversary fall on Feb 28 in
    common years.
    """

    def matches(self, rule: RecurrenceRule, day: date) -> bool:
        """
        Check whether ``rule`` is due on ``day``.

        Pure and deterministic. Days before ``start_date`` never match;
        ``end_date`` is not considered here (the idempotency guard owns the
        window check).

        Args:
            rule: Recurrence rule
            day: Calendar day to test

        Returns:
            True when the rule produces an occurrence on ``day``
        """
        start = rule.start_date
        if day < start:
            return False

        frequency = rule.frequency
        if frequency == FrequencyType.DAILY:
            return True
        if frequency == FrequencyType.WEEKLY:
            return (day - start).days % constants.DAYS_PER_WEEK == 0
        if frequency == FrequencyType.MONTHLY:
            if day.day == start.day:
                return True
            return (
                start.day > constants.MONTH_END_THRESHOLD
                and day.day == last_day_of_month(day.year, day.month)
            )
        if frequency == FrequencyType.YEARLY:
            return day.month == start.month and day.day == min(
                start.day, last_day_of_month(day.year, day.month)
            )
        return False

    def expected_dates(
        self,
        rule: RecurrenceRule,
        window_end: date,
        window_start: Optional[date] = None,
    ) -> list[date]:
        """
        Generate every date the rule should have produced in a window.

        Walks one day at a time from ``max(start_date, window_start)`` to
        ``min(window_end, end_date)``, keeping days that ``matches`` accepts.
        Linear in the number of days in the window.

        Args:
            rule: Recurrence rule
            window_end: Last day of the window (inclusive)
            window_start: First day of the window (defaults to start_date)

        Returns:
            Matching dates in increasing order
        """
        effective_start = max(rule.start_date, window_start or rule.start_date)
        effective_end = min(rule.end_date, window_end) if rule.end_date else window_end

        if effective_start > effective_end:
            return []

        days = rrule(
            DAILY,
            dtstart=datetime.combine(effective_start, datetime.min.time()),
            until=datetime.combine(effective_end, datetime.min.time()),
        )
        return [d.date() for d in days if self.matches(rule, d.date())]

    def next_occurrence(self, rule: RecurrenceRule, from_date: date) -> Optional[date]:
        """
        Compute the next date the rule will match, for preview only.

        On or before ``start_date`` the first occurrence is ``start_date``
        itself. After that, the result is the first matching date strictly
        after ``from_date``.

        Args:
            rule: Recurrence rule
            from_date: Reference day ("now")

        Returns:
            Next occurrence, or None when it would fall after ``end_date``
            or the frequency is unknown
        """
        start = rule.start_date
        if from_date <= start:
            candidate = start
        else:
            candidate = self._advance(rule, from_date)

        if candidate is None:
            return None
        if rule.end_date is not None and candidate > rule.end_date:
            return None
        return candidate

    def upcoming(self, rule: RecurrenceRule, from_date: date, until: date) -> list[date]:
        """Every projected occurrence in [from_date, until], for previews."""
        if rule.covers(from_date) and self.matches(rule, from_date):
            current = from_date
        else:
            current = self.next_occurrence(rule, from_date)

        dates = []
        while current is not None and current <= until:
            if rule.end_date is not None and current > rule.end_date:
                break
            dates.append(current)
            current = self._advance(rule, current)
        return dates

    def _advance(self, rule: RecurrenceRule, after: date) -> Optional[date]:
        """First date strictly after ``after`` (which is past start_date) that matches."""
        start = rule.start_date
        frequency = rule.frequency

        if frequency == FrequencyType.DAILY:
            return after + timedelta(days=1)

        if frequency == FrequencyType.WEEKLY:
            offset = (after - start).days % constants.DAYS_PER_WEEK
            return after + timedelta(days=constants.DAYS_PER_WEEK - offset)

        if frequency == FrequencyType.MONTHLY:
            # every month has at least one match, so two months always suffice
            for months in (0, 1):
                month_start = after + relativedelta(months=months, day=1)
                for candidate in self._monthly_candidates(start.day, month_start):
                    if candidate > after:
                        return candidate

        if frequency == FrequencyType.YEARLY:
            candidate = clamp_day(after.year, start.month, start.day)
            if candidate <= after:
                candidate = clamp_day(after.year + 1, start.month, start.day)
            return candidate

        logger.error("Unknown frequency type for rule %s: %s", rule.id, frequency)
        return None

    @staticmethod
    def _monthly_candidates(start_day: int, month_start: date) -> list[date]:
        last = last_day_of_month(month_start.year, month_start.month)
        days = set()
        if start_day <= last:
            days.add(start_day)
        if start_day > constants.MONTH_END_THRESHOLD:
            days.add(last)
        return [month_start.replace(day=d) for d in sorted(days)]
