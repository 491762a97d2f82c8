"""
Hospient CLI: run integration syncs and tests from the command line.

Usage:
    hospient sync <integration-id> [--type menus|reservations|rooms|guest_data]
    hospient test <integration-id>                connectivity test, no state changes
    hospient activate <integration-id>            test, then mark active or error
    hospient deactivate <integration-id>
    hospient logs <integration-id> [--limit 20]   recent activity log rows
    hospient recover                              fail stale in-progress syncs
"""

from __future__ import annotations

import asyncio
import json
import logging
from uuid import UUID

import click

logger = logging.getLogger(__name__)


def _store():
    from hospient.core.store import SqlIntegrationStore

    return SqlIntegrationStore()


def _echo_result(result: dict) -> None:
    click.echo(json.dumps(result, indent=2, default=str, ensure_ascii=False))
    if not result.get("success"):
        raise SystemExit(1)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def cli(verbose: bool):
    """Hospient: third-party integration sync CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


@cli.command()
@click.argument("integration_id", type=click.UUID)
@click.option(
    "--type",
    "sync_type",
    type=click.Choice(["menus", "reservations", "rooms", "guest_data"]),
    default=None,
    help="Collection to sync (defaults to the integration type's main sync)",
)
@click.option("--start-date", default=None, help="Reservations from this date (YYYY-MM-DD)")
@click.option("--end-date", default=None, help="Reservations up to this date (YYYY-MM-DD)")
def sync(integration_id: UUID, sync_type: str | None, start_date: str | None, end_date: str | None):
    """Run one sync pass for an integration."""
    from hospient.integrations.lifecycle import run_sync

    params = {k: v for k, v in {"start_date": start_date, "end_date": end_date}.items() if v}
    result = asyncio.run(run_sync(_store(), integration_id, sync_type, **params))
    _echo_result(result)


@cli.command("test")
@click.argument("integration_id", type=click.UUID)
def test_command(integration_id: UUID):
    """Test connectivity without changing any state."""
    from hospient.integrations.lifecycle import run_connection_test

    _echo_result(asyncio.run(run_connection_test(_store(), integration_id)))


@cli.command()
@click.argument("integration_id", type=click.UUID)
def activate(integration_id: UUID):
    """Test the integration and mark it active (or error)."""
    from hospient.integrations.lifecycle import activate_integration

    _echo_result(asyncio.run(activate_integration(_store(), integration_id)))


@cli.command()
@click.argument("integration_id", type=click.UUID)
def deactivate(integration_id: UUID):
    """Mark the integration inactive."""
    from hospient.integrations.lifecycle import deactivate_integration

    _echo_result(asyncio.run(deactivate_integration(_store(), integration_id)))


@cli.command()
@click.argument("integration_id", type=click.UUID)
@click.option("--limit", default=20, show_default=True, help="Number of rows")
@click.option("--operation-type", default=None, help="Filter by operation type")
@click.option("--status", default=None, help="Filter by status")
def logs(integration_id: UUID, limit: int, operation_type: str | None, status: str | None):
    """Show recent activity log rows."""
    rows = asyncio.run(
        _store().list_logs(integration_id, operation_type=operation_type, status=status, limit=limit)
    )
    if not rows:
        click.echo("No log entries.")
        return

    click.echo(f"{'Created':<27} {'Operation':<28} {'Status':<9} {'OK':>5} {'Fail':>5} {'ms':>7}")
    click.echo("-" * 86)
    for row in rows:
        name = f"{row['operation_type']}/{row['operation_name']}"
        click.echo(
            f"{str(row['created_at'] or ''):<27} {name:<28} {row['status']:<9} "
            f"{row['records_success']:>5} {row['records_failed']:>5} {row['processing_time']:>7}"
        )


@cli.command()
def recover():
    """Fail in-progress syncs older than the stale-sync timeout."""
    from hospient.integrations.lifecycle import recover_stale_syncs

    count = asyncio.run(recover_stale_syncs(_store()))
    click.echo(f"✓ Recovered {count} stale sync run(s)")


if __name__ == "__main__":
    cli()
