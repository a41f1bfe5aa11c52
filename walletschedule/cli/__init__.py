"""Command-line interface for walletschedule."""

from .commands import main

__all__ = ["main"]
