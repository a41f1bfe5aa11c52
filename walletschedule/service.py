"""Facade wiring the engine components to a set of stores."""

import logging
from datetime import date
from typing import Callable, Iterable, Optional

from . import constants, reports
from .backfill import BackfillExecutor, MissingOccurrenceScanner
from .generator import OccurrenceGenerator
from .guard import IdempotencyGuard
from .processor import BatchProcessor, RuleLocks
from .recurrence import RecurrenceEngine
from .schema import (
    BackfillResult,
    BatchRunResult,
    GlobalConfig,
    MissingCheckSummary,
    MissingReport,
    RuleFile,
    RuleStats,
    Transaction,
    UpcomingOccurrence,
)
from .sql_store import SqlRuleStore, SqlTransactionStore, SqlWalletLedger, create_db_engine, init_db
from .stores import (
    InMemoryRuleStore,
    InMemoryTransactionStore,
    InMemoryWalletLedger,
    RuleStore,
    TransactionStore,
    WalletLedger,
)
from .utils import DateLike, to_day, utc_now

logger = logging.getLogger(__name__)


class RecurrenceService:
    """Entry point used by the CLI and the scheduler."""

    def __init__(
        self,
        rules: RuleStore,
        transactions: TransactionStore,
        ledger: WalletLedger,
        config: Optional[GlobalConfig] = None,
        clock: Callable = utc_now,
    ):
        self.rules = rules
        self.transactions = transactions
        self.ledger = ledger
        self.config = config or GlobalConfig()
        self.clock = clock

        self.engine = RecurrenceEngine()
        locks = RuleLocks()
        self.guard = IdempotencyGuard(transactions, self.engine)
        self.generator = OccurrenceGenerator(transactions, ledger, rules)
        self.processor = BatchProcessor(rules, self.guard, self.generator, locks, clock)
        self.scanner = MissingOccurrenceScanner(transactions, self.engine)
        self.backfiller = BackfillExecutor(self.generator, rules, locks)

    @classmethod
    def in_memory(cls, config: Optional[GlobalConfig] = None, clock: Callable = utc_now):
        return cls(
            InMemoryRuleStore(),
            InMemoryTransactionStore(clock=clock),
            InMemoryWalletLedger(),
            config,
            clock,
        )

    @classmethod
    def from_database(cls, config: GlobalConfig, clock: Callable = utc_now):
        """Build a service over SQLAlchemy stores, creating tables if needed."""
        engine = create_db_engine(config.database_url)
        init_db(engine)
        return cls(
            SqlRuleStore(engine),
            SqlTransactionStore(engine, clock=clock),
            SqlWalletLedger(engine),
            config,
            clock,
        )

    def today(self) -> date:
        return to_day(self.clock())

    def load_rules(self, rule_file: RuleFile) -> list[str]:
        """
        Save every rule in ``rule_file`` and open the wallets they touch.

        Wallets listed under ``wallets`` start at their opening balance, any
        other referenced wallet at zero. Existing wallets keep their balance.

        Returns:
            Ids of the wallets opened by this call
        """
        for rule in rule_file.rules:
            self.rules.save_rule(rule)

        opened = []
        for wallet_id in rule_file.wallet_ids():
            balance = rule_file.wallets.get(wallet_id, constants.ZERO_BALANCE)
            if self.ledger.ensure_wallet(wallet_id, balance):
                opened.append(wallet_id)
        logger.info("Loaded %d rules, opened %d wallets", len(rule_file.rules), len(opened))
        return opened

    def process_recurrences(self, now: Optional[DateLike] = None) -> BatchRunResult:
        return self.processor.process_all(now)

    def find_missing(self, rule_id: str, window_end: Optional[date] = None) -> MissingReport:
        rule = self.rules.get_rule(rule_id)
        return self.scanner.find_missing(rule, window_end or self.today())

    def check_missing(self, window_end: Optional[date] = None) -> MissingCheckSummary:
        return self.scanner.check_all(self.rules.list_rules(), window_end or self.today())

    def backfill(self, rule_id: str, dates: Optional[Iterable[date]] = None) -> BackfillResult:
        """Backfill explicit dates, or every missing date up to today when none are given."""
        rule = self.rules.get_rule(rule_id)
        if dates is None:
            dates = self.scanner.find_missing(rule, self.today()).missing_dates
        return self.backfiller.backfill(rule, dates)

    def stats(self) -> RuleStats:
        return reports.rule_stats(self.rules.list_rules())

    def next_executions(self, limit: Optional[int] = None) -> list[UpcomingOccurrence]:
        return reports.next_executions(
            self.rules.list_rules(),
            self.today(),
            limit or self.config.next_executions_limit,
            self.engine,
        )

    def upcoming(self, days: Optional[int] = None) -> list[UpcomingOccurrence]:
        return reports.upcoming_occurrences(
            self.rules.list_rules(),
            self.today(),
            days or self.config.upcoming_days,
            self.engine,
        )

    def generated_transactions(self, rule_id: str) -> list[Transaction]:
        return reports.generated_transactions(self.rules.get_rule(rule_id), self.transactions)
