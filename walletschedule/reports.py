"""Read-only views over rules: stats, next executions, upcoming, generated history."""

import logging
from collections import Counter
from datetime import date, timedelta
from typing import Iterable, Optional

from .recurrence import RecurrenceEngine
from .schema import RecurrenceRule, RuleStats, Transaction, UpcomingOccurrence
from .stores import TransactionStore
from .types import FrequencyType

logger = logging.getLogger(__name__)


def _preview(rule: RecurrenceRule, day: date) -> UpcomingOccurrence:
    return UpcomingOccurrence(
        recurrence_id=rule.id,
        name=rule.display_name,
        type=rule.template.type,
        amount=rule.template.amount,
        frequency=rule.frequency,
        date=day,
        wallet_id=rule.template.wallet_id,
    )


def rule_stats(rules: Iterable[RecurrenceRule]) -> RuleStats:
    """Count rules in total and per frequency."""
    counts = Counter(rule.frequency for rule in rules)
    return RuleStats(
        total=sum(counts.values()),
        by_frequency={f.value: counts.get(f, 0) for f in FrequencyType},
    )


def next_executions(
    rules: Iterable[RecurrenceRule],
    today: date,
    limit: int,
    engine: Optional[RecurrenceEngine] = None,
) -> list[UpcomingOccurrence]:
    """Next occurrence of every rule, soonest first, truncated to ``limit``."""
    engine = engine or RecurrenceEngine()
    upcoming = []
    for rule in rules:
        next_date = engine.next_occurrence(rule, today)
        if next_date is not None:
            upcoming.append(_preview(rule, next_date))

    upcoming.sort(key=lambda o: o.date)
    return upcoming[:limit]


def upcoming_occurrences(
    rules: Iterable[RecurrenceRule],
    today: date,
    days: int,
    engine: Optional[RecurrenceEngine] = None,
) -> list[UpcomingOccurrence]:
    """All projected occurrences of enabled rules from today through today + days."""
    engine = engine or RecurrenceEngine()
    until = today + timedelta(days=days)
    projected = []
    for rule in rules:
        if not rule.enabled:
            continue
        projected.extend(_preview(rule, d) for d in engine.upcoming(rule, today, until))

    projected.sort(key=lambda o: (o.date, o.recurrence_id))
    return projected


def generated_transactions(
    rule: RecurrenceRule, transactions: TransactionStore
) -> list[Transaction]:
    """Transactions recorded on the rule, newest first."""
    if not rule.generated_occurrences:
        return []
    found = transactions.find_by_ids(rule.generated_occurrences)
    if len(found) != len(rule.generated_occurrences):
        logger.warning(
            "Rule %s references %d transactions that no longer exist",
            rule.id,
            len(rule.generated_occurrences) - len(found),
        )
    return sorted(found, key=lambda t: t.created_at, reverse=True)
