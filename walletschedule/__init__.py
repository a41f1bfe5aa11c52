"""Walletschedule - Recurring transaction engine for wallet ledgers.

This package decides, once per run, which recurrence rules are due today,
creates each due occurrence exactly once, applies it to the owning wallet
balance, and detects and backfills occurrences missed during downtime.

Main exports:
    RecurrenceService: Facade wiring the engine to a set of stores
    RecurrenceEngine: Due-date matching and next-occurrence calculation
"""

from .recurrence import RecurrenceEngine
from .service import RecurrenceService

__all__ = ["RecurrenceEngine", "RecurrenceService"]
__version__ = "1.0.0"
