"""Click CLI commands for walletschedule."""

import logging
import sys
import traceback
from pathlib import Path
from typing import Optional

import click

from walletschedule import __version__
from walletschedule.loader import load_rules_from_path, resolve_config
from walletschedule.scheduler import CronService
from walletschedule.schema import GlobalConfig
from walletschedule.service import RecurrenceService
from walletschedule.stores import StoreError

from .formatters import (
    echo_json,
    print_backfill_result,
    print_batch_result,
    print_missing_summary,
    print_occurrence_table,
    print_rule_table,
    print_stats,
    print_transaction_table,
)

logger = logging.getLogger(__name__)

DATE_TYPE = click.DateTime(formats=["%Y-%m-%d"])
FORMAT_OPTION = click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format (default: table)",
)


def _file_config(rules_path: Optional[str]) -> Optional[GlobalConfig]:
    """The ``config`` block of the --rules location, or of the discovered one."""
    try:
        rule_file = load_rules_from_path(Path(rules_path) if rules_path else None)
    except Exception as e:
        click.echo(f"Error: cannot read rules config: {e}", err=True)
        sys.exit(1)
    return rule_file.config if rule_file else None


def _service(ctx: click.Context, config: Optional[GlobalConfig] = None) -> RecurrenceService:
    """Build the service; precedence is --db, then the env var, then file config."""
    if config is None:
        config = _file_config(ctx.obj.get("rules_path"))
    config = resolve_config(config)
    if ctx.obj.get("database_url"):
        config = config.model_copy(update={"database_url": ctx.obj["database_url"]})
    return RecurrenceService.from_database(config)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--db", "database_url", default=None, help="SQLAlchemy database URL")
@click.option(
    "--rules",
    "rules_path",
    type=click.Path(exists=True),
    default=None,
    help="rules.yaml or rules/ directory to read config from (default: auto-discover)",
)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, verbose: bool, database_url: str, rules_path: str):
    """Walletschedule - Recurring wallet transaction engine."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url
    ctx.obj["rules_path"] = rules_path


@main.command()
@click.argument("path", type=click.Path(exists=True))
def validate(path: str):
    """Validate rule files for syntax and schema compliance.

    PATH can be either a rules.yaml file or a rules/ directory.
    """
    path_obj = Path(path)
    click.echo(f"Validating rules from: {path_obj}")

    try:
        rule_file = load_rules_from_path(path_obj)
        if rule_file is None:
            click.echo(f"Error: Path is neither a file nor a directory: {path_obj}", err=True)
            sys.exit(1)

        num_rules = len(rule_file.rules)
        num_enabled = len(rule_file.enabled_rules)
        click.echo("✓ Validation successful!")
        click.echo(f"  Total rules: {num_rules}")
        click.echo(f"  Enabled: {num_enabled}")
        click.echo(f"  Disabled: {num_rules - num_enabled}")
    except Exception as e:
        click.echo(f"✗ Validation failed: {e}", err=True)
        if logger.isEnabledFor(logging.DEBUG):
            traceback.print_exc()
        sys.exit(1)


@main.command()
@click.argument("path", type=click.Path(exists=True))
@click.pass_context
def load(ctx: click.Context, path: str):
    """Load rule definitions from PATH into the database.

    Existing rules are updated in place; their generated occurrences are kept.
    Wallets the rules touch are opened (at their listed opening balance, or
    zero) unless they already exist. The file's config block applies.
    """
    rule_file = load_rules_from_path(Path(path))
    if rule_file is None:
        click.echo(f"Error: Path is neither a file nor a directory: {path}", err=True)
        sys.exit(1)

    service = _service(ctx, rule_file.config)
    opened = service.load_rules(rule_file)
    click.echo(f"Loaded {len(rule_file.rules)} rules")
    for wallet_id in opened:
        click.echo(f"Opened wallet {wallet_id}")
    print_rule_table(service.rules.list_rules())


@main.command()
@click.option("--date", "run_date", type=DATE_TYPE, default=None, help="Run as of this day (UTC)")
@FORMAT_OPTION
@click.pass_context
def run(ctx: click.Context, run_date, output_format: str):
    """Process every rule once (manual trigger of the batch run)."""
    result = _service(ctx).process_recurrences(run_date.date() if run_date else None)
    if output_format == "json":
        echo_json(result)
    else:
        print_batch_result(result)
    if not result.success:
        sys.exit(1)


@main.command(name="check-missing")
@click.option("--date", "window_end", type=DATE_TYPE, default=None, help="Last day to check")
@FORMAT_OPTION
@click.pass_context
def check_missing(ctx: click.Context, window_end, output_format: str):
    """Report rules whose expected occurrences were never generated."""
    summary = _service(ctx).check_missing(window_end.date() if window_end else None)
    if output_format == "json":
        echo_json(summary)
    else:
        print_missing_summary(summary)


@main.command()
@click.argument("rule_id")
@click.option(
    "--date",
    "dates",
    type=DATE_TYPE,
    multiple=True,
    help="Date to backfill (repeatable). Defaults to every missing date up to today.",
)
@FORMAT_OPTION
@click.pass_context
def backfill(ctx: click.Context, rule_id: str, dates, output_format: str):
    """Generate occurrences for RULE_ID on missed dates."""
    service = _service(ctx)
    try:
        result = service.backfill(rule_id, [d.date() for d in dates] if dates else None)
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_format == "json":
        echo_json(result)
    else:
        print_backfill_result(result)


@main.command(name="next")
@click.option("--limit", type=int, default=None, help="Maximum number of rules to list")
@FORMAT_OPTION
@click.pass_context
def next_executions(ctx: click.Context, limit, output_format: str):
    """Show the next execution date of each rule."""
    occurrences = _service(ctx).next_executions(limit)
    if output_format == "json":
        echo_json(occurrences)
    else:
        print_occurrence_table(occurrences)


@main.command()
@click.option("--days", type=int, default=None, help="Preview horizon in days")
@FORMAT_OPTION
@click.pass_context
def upcoming(ctx: click.Context, days, output_format: str):
    """Preview every occurrence due within the next DAYS days."""
    occurrences = _service(ctx).upcoming(days)
    if output_format == "json":
        echo_json(occurrences)
    else:
        print_occurrence_table(occurrences)


@main.command()
@FORMAT_OPTION
@click.pass_context
def stats(ctx: click.Context, output_format: str):
    """Count rules by frequency."""
    result = _service(ctx).stats()
    if output_format == "json":
        echo_json(result)
    else:
        print_stats(result)


@main.command()
@click.argument("rule_id")
@FORMAT_OPTION
@click.pass_context
def generated(ctx: click.Context, rule_id: str, output_format: str):
    """List transactions generated from RULE_ID, newest first."""
    try:
        transactions = _service(ctx).generated_transactions(rule_id)
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if output_format == "json":
        echo_json(transactions)
    else:
        print_transaction_table(transactions)


@main.command()
@click.option("--cron", "cron_expression", default=None, help="Crontab cadence (UTC)")
@click.pass_context
def serve(ctx: click.Context, cron_expression):
    """Run the recurrence job on a fixed cadence until interrupted."""
    cron = CronService(_service(ctx), cron_expression=cron_expression, blocking=True)
    click.echo(f"Scheduling recurrence processing: {cron.cron_expression} (UTC)")
    try:
        cron.start()
    except (KeyboardInterrupt, SystemExit):
        cron.stop()
