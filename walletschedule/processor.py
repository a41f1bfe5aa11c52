"""Batch processor: one pass over every rule per scheduler tick."""

import logging
import threading
from collections import defaultdict
from typing import Callable, Optional

from .generator import OccurrenceGenerator
from .guard import IdempotencyGuard
from .schema import BatchRunResult, GenerationResult
from .stores import RuleStore
from .utils import DateLike, to_day, to_utc_datetime, utc_now

logger = logging.getLogger(__name__)


class RuleLocks:
    """Per-rule mutexes, so overlapping runs never interleave work on one rule."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = defaultdict(threading.Lock)

    def for_rule(self, rule_id: str) -> threading.Lock:
        with self._guard:
            return self._locks[rule_id]


class BatchProcessor:
    """Evaluates the idempotency guard for every rule and generates due occurrences."""

    def __init__(
        self,
        rules: RuleStore,
        guard: IdempotencyGuard,
        generator: OccurrenceGenerator,
        locks: Optional[RuleLocks] = None,
        clock: Callable = utc_now,
    ):
        self.rules = rules
        self.guard = guard
        self.generator = generator
        self.locks = locks or RuleLocks()
        self.clock = clock

    def process_all(self, now: Optional[DateLike] = None) -> BatchRunResult:
        """
        Run one batch over all rules.

        The generated transactions carry the wall-clock timestamp ``now``;
        only the guard's comparisons are truncated to the UTC day.

        Args:
            now: Reference time (defaults to the clock). A plain date is
                 taken as midnight UTC.

        Returns:
            BatchRunResult. ``success`` is False only when the rule list
            could not be fetched; per-rule failures are collected in
            ``results`` and counted in ``errors``.
        """
        timestamp = to_utc_datetime(now) if now is not None else self.clock()
        today = to_day(timestamp)

        try:
            rules = self.rules.list_rules()
        except Exception as e:
            logger.error("Critical error fetching recurrence rules: %s", e)
            return BatchRunResult(success=False, error=str(e))

        run = BatchRunResult(success=True)
        for rule in rules:
            try:
                with self.locks.for_rule(rule.id):
                    if not self.guard.should_generate(rule, today):
                        continue
                    result = self.generator.generate(rule, timestamp)
            except Exception as e:
                logger.error("Error processing rule %s: %s", rule.id, e)
                result = GenerationResult(success=False, recurrence_id=rule.id, error=str(e))

            run.results.append(result)
            if result.success:
                run.processed += 1
            elif result.duplicate:
                run.skipped += 1
            else:
                run.errors += 1

        logger.info(
            "Processed %d rules for %s: %d generated, %d skipped, %d errors",
            len(rules),
            today,
            run.processed,
            run.skipped,
            run.errors,
        )
        return run
