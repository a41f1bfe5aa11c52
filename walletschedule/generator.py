"""Occurrence generator: materializes concrete transactions from rule templates."""

import logging
from datetime import date

from .schema import GenerationResult, NewTransaction, RecurrenceRule, Transaction
from .stores import DuplicateOccurrenceError, RuleStore, TransactionStore, WalletLedger
from .types import TransactionType
from .utils import DateLike, to_utc_datetime

logger = logging.getLogger(__name__)


class OccurrenceGenerator:
    """Creates one occurrence, applies it to the ledger and records it on the rule.

    The three writes are independent calls to independent collaborators:

    - transaction insert failure: error result, nothing else happens
    - ledger failure: logged and reported as ``ledger_error``; the created
      transaction stays (the ledger is out of step until reconciled)
    - tracking append failure: logged and reported as ``tracking_error``;
      the store's uniqueness on (rule, day) still prevents duplicates
    """

    def __init__(self, transactions: TransactionStore, ledger: WalletLedger, rules: RuleStore):
        self.transactions = transactions
        self.ledger = ledger
        self.rules = rules

    def build_occurrence(self, rule: RecurrenceRule, when: DateLike) -> NewTransaction:
        """Copy every template field, overriding the date and linking the rule."""
        payload = rule.template.model_dump()
        if rule.template.type != TransactionType.TRANSFER:
            payload["origin_wallet_id"] = None
            payload["destination_wallet_id"] = None
        payload["date"] = to_utc_datetime(when)
        payload["recurrence_id"] = rule.id
        return NewTransaction(**payload)

    def generate(self, rule: RecurrenceRule, when: DateLike) -> GenerationResult:
        """Create the occurrence for ``when`` and append its id to the rule."""
        result = self.create(rule, when)
        if result.success:
            try:
                self.rules.append_occurrences(rule.id, [result.transaction.id])
            except Exception as e:
                logger.warning(
                    "Failed to record transaction %s on rule %s: %s",
                    result.transaction.id,
                    rule.id,
                    e,
                )
                result.tracking_error = str(e)
        return result

    def generate_for_date(self, rule: RecurrenceRule, day: date) -> GenerationResult:
        """Historical variant for backfill; the caller records the ids in bulk."""
        return self.create(rule, day)

    def create(self, rule: RecurrenceRule, when: DateLike) -> GenerationResult:
        """Insert the occurrence and apply it to the ledger, without tracking."""
        try:
            occurrence = self.build_occurrence(rule, when)
            transaction = self.transactions.insert(occurrence)
        except DuplicateOccurrenceError as e:
            logger.info("Skipping rule %s: %s", rule.id, e)
            return GenerationResult(
                success=False, recurrence_id=rule.id, error=str(e), duplicate=True
            )
        except Exception as e:
            logger.error("Error creating transaction from rule %s for %s: %s", rule.id, when, e)
            return GenerationResult(success=False, recurrence_id=rule.id, error=str(e))

        logger.info(
            "Created transaction %s from rule %s for %s",
            transaction.id,
            rule.id,
            transaction.occurrence_date,
        )
        return GenerationResult(
            success=True,
            recurrence_id=rule.id,
            transaction=transaction,
            ledger_error=self._apply_to_ledger(transaction),
        )

    def _apply_to_ledger(self, transaction: Transaction):
        """Apply the signed amount; return an error message instead of raising."""
        try:
            if transaction.type == TransactionType.TRANSFER:
                magnitude = abs(transaction.amount)
                self.ledger.apply_delta(transaction.origin_wallet_id, -magnitude)
                self.ledger.apply_delta(transaction.destination_wallet_id, magnitude)
            else:
                self.ledger.apply_delta(transaction.wallet_id, transaction.signed_amount())
        except Exception as e:
            logger.error("Error updating wallet balance for transaction %s: %s", transaction.id, e)
            return str(e)
        return None
