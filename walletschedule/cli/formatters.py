"""Output formatting functions for CLI commands."""

import json

import click

from .. import constants


def echo_json(payload) -> None:
    """Print a pydantic model, or a list of them, as indented JSON."""
    if isinstance(payload, list):
        data = [item.model_dump(mode="json") for item in payload]
    else:
        data = payload.model_dump(mode="json")
    click.echo(json.dumps(data, indent=2))


def print_rule_table(rules: list) -> None:
    """
    Print rules as a formatted ASCII table.

    Args:
        rules: List of RecurrenceRule objects to display.
    """
    id_width = max([len(r.id) for r in rules] + [len("ID")])
    name_width = max([len(r.display_name) for r in rules] + [len("Name")])
    name_width = min(name_width, constants.MAX_TABLE_COLUMN_WIDTH)

    click.echo(
        f"{'ID':<{id_width}}  {'Status':<10}  {'Frequency':<9}  {'Start':<10}  "
        f"{'Name':<{name_width}}"
    )
    click.echo("-" * (id_width + name_width + 10 + 9 + 10 + 8))
    for r in rules:
        status = "enabled" if r.enabled else "disabled"
        name = r.display_name[:name_width]
        click.echo(
            f"{r.id:<{id_width}}  {status:<10}  {r.frequency.value:<9}  "
            f"{r.start_date.isoformat():<10}  {name:<{name_width}}"
        )
    click.echo(f"\nTotal: {len(rules)} rules")


def print_batch_result(result) -> None:
    if not result.success:
        click.echo(f"✗ Recurrence processing failed: {result.error}", err=True)
        return

    click.echo(
        f"Processed {result.processed} recurrences with {result.errors} errors "
        f"({result.skipped} skipped)"
    )
    for item in result.results:
        if item.success:
            line = f"  ✓ {item.recurrence_id}: {item.transaction_id}"
            if item.ledger_error:
                line += f" (ledger not updated: {item.ledger_error})"
            click.echo(line)
        else:
            click.echo(f"  ✗ {item.recurrence_id}: {item.error}")


def print_missing_summary(summary) -> None:
    click.echo(f"Checked {summary.total_checked} rules, {summary.issues_found} with gaps")
    for report in summary.missing:
        last = report.last_generated_date.date().isoformat() if report.last_generated_date else "-"
        click.echo(
            f"\n{report.recurrence_id} ({report.frequency.value}): "
            f"{report.actual_count}/{report.expected_count} generated, last {last}"
        )
        for day in report.missing_dates:
            click.echo(f"  missing {day.isoformat()}")


def print_backfill_result(result) -> None:
    click.echo(
        f"Backfilled {result.recurrence_id}: {result.generated_count} generated, "
        f"{result.error_count} errors"
    )
    for error in result.errors:
        click.echo(f"  ✗ {error.date.isoformat()}: {error.error}")
    if result.tracking_error:
        click.echo(f"  ⚠ occurrences not recorded on rule: {result.tracking_error}", err=True)


def print_occurrence_table(occurrences: list) -> None:
    """Print projected occurrences (next executions or upcoming)."""
    if not occurrences:
        click.echo("No upcoming occurrences")
        return

    id_width = max([len(o.recurrence_id) for o in occurrences] + [len("Rule")])
    click.echo(f"{'Date':<10}  {'Rule':<{id_width}}  {'Type':<8}  {'Amount':>12}  Name")
    for o in occurrences:
        click.echo(
            f"{o.date.isoformat():<10}  {o.recurrence_id:<{id_width}}  {o.type.value:<8}  "
            f"{o.amount:>12}  {o.name}"
        )


def print_stats(stats) -> None:
    click.echo(f"Total rules: {stats.total}")
    for frequency, count in stats.by_frequency.items():
        click.echo(f"  {frequency:<8} {count}")


def print_transaction_table(transactions: list) -> None:
    if not transactions:
        click.echo("No generated transactions")
        return

    click.echo(f"{'Date':<10}  {'Amount':>12}  {'Created':<19}  ID")
    for t in transactions:
        created = t.created_at.strftime("%Y-%m-%d %H:%M:%S")
        click.echo(f"{t.occurrence_date.isoformat():<10}  {t.amount:>12}  {created:<19}  {t.id}")
