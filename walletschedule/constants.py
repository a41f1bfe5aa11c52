"""
Global constants for walletschedule.

This module centralizes all magic strings, thresholds, and default values
to improve maintainability and make configuration easier.
"""

from decimal import Decimal

# ============================================================================
# File Paths and Directories
# ============================================================================

CONFIG_FILENAME = "_config.yaml"
RULE_FILE_PATTERN = "*.yaml"
DEFAULT_RULES_DIR = "rules"
DEFAULT_RULES_FILE = "rules.yaml"
RULE_FILE_VERSION = "1.0"

# Environment variables for rule location discovery and storage
ENV_RULES_DIR = "WALLETSCHEDULE_DIR"
ENV_RULES_FILE = "WALLETSCHEDULE_FILE"
ENV_DATABASE_URL = "WALLETSCHEDULE_DATABASE_URL"

# ============================================================================
# Default Configuration Values
# ============================================================================

DEFAULT_DATABASE_URL = "sqlite:///walletschedule.db"
DEFAULT_CRON_EXPRESSION = "*/1 * * * *"  # every minute
DEFAULT_TIMEZONE = "UTC"
DEFAULT_UPCOMING_DAYS = 30
DEFAULT_NEXT_EXECUTIONS_LIMIT = 10

# ============================================================================
# Scheduler
# ============================================================================

RECURRENCE_JOB_ID = "process_recurrences"
JOB_MAX_INSTANCES = 1
JOB_MISFIRE_GRACE_SECONDS = 30

# ============================================================================
# Date/Time Constants
# ============================================================================

DAYS_PER_WEEK = 7

# Monthly rules started after this day also match the last day of each month
MONTH_END_THRESHOLD = 28

# ============================================================================
# Financial Constants
# ============================================================================

ZERO_BALANCE = Decimal("0")

# ============================================================================
# Display/Formatting Constants
# ============================================================================

MAX_TABLE_COLUMN_WIDTH = 30
