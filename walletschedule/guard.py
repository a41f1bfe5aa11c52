"""Idempotency guard: decides whether a rule should produce an occurrence today."""

import logging
from datetime import date
from typing import Optional

from .recurrence import RecurrenceEngine
from .schema import RecurrenceRule
from .stores import TransactionStore
from .types import RuleState
from .utils import DateLike, day_bounds, to_day

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """Combines the rule window, duplicate detection and the due-date check.

    Duplicate detection has a single source of truth: the transaction store,
    queried by ``recurrence_id`` over the day's UTC window. The rule's
    ``generated_occurrences`` list is an audit trail, not consulted here.
    """

    def __init__(self, transactions: TransactionStore, engine: Optional[RecurrenceEngine] = None):
        self.transactions = transactions
        self.engine = engine or RecurrenceEngine()

    def should_generate(self, rule: RecurrenceRule, today: DateLike) -> bool:
        """
        Decide whether ``rule`` should produce an occurrence on ``today``.

        Steps:
        1. Reject disabled rules and days outside [start_date, end_date]
        2. Reject when the store already holds an occurrence of this rule
           dated within [today 00:00, today+1 00:00) UTC
        3. Otherwise defer to the due-date evaluator

        Store failures propagate to the caller.
        """
        day = to_day(today)

        if not rule.enabled:
            logger.debug("Rule %s is disabled", rule.id)
            return False

        state = rule.state(day)
        if state != RuleState.ACTIVE:
            logger.debug("Rule %s is %s on %s", rule.id, state.value, day)
            return False

        if self.has_occurrence_on(rule, day):
            logger.debug("Rule %s already has an occurrence on %s", rule.id, day)
            return False

        return self.engine.matches(rule, day)

    def has_occurrence_on(self, rule: RecurrenceRule, day: date) -> bool:
        start, end = day_bounds(day)
        existing = self.transactions.find_by_recurrence_and_date_range(rule.id, start, end)
        return len(existing) > 0
