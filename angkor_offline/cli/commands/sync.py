"""Sync queue commands."""

import asyncio
import json

import click
from rich.console import Console
from rich.table import Table

from ...types import SyncResult
from ..app import build_runtime

console = Console()


@click.group()
def sync() -> None:
    """Manage mutations queued while offline."""


@sync.command("list")
@click.pass_context
def sync_list(ctx: click.Context) -> None:
    """List pending mutations."""
    runtime = build_runtime(ctx)
    items = runtime.sync_queue.items
    if not items:
        console.print("[dim]Sync queue is empty[/dim]")
        return

    table = Table(title=f"Pending Sync ({len(items)})")
    table.add_column("ID", style="cyan")
    table.add_column("Queued")
    table.add_column("Retries")
    table.add_column("Data")
    for item in items:
        table.add_row(str(item.id), item.timestamp, str(item.retries), json.dumps(item.data))
    console.print(table)


@sync.command("add")
@click.argument("data")
@click.option("--key", "idempotency_key", default=None, help="Idempotency key (generated if omitted)")
@click.pass_context
def sync_add(ctx: click.Context, data: str, idempotency_key: str) -> None:
    """Queue a JSON DATA payload for delivery.

    Examples:

        angkor-offline sync add '{"caseId": 7, "note": "x"}'
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="DATA")
    runtime = build_runtime(ctx)
    item = runtime.sync_queue.add_to_sync_queue(payload, idempotency_key=idempotency_key)
    console.print(f"[green]✓ Queued item {item.id}[/green] ({len(runtime.sync_queue)} pending)")


@sync.command("flush")
@click.pass_context
def sync_flush(ctx: click.Context) -> None:
    """Deliver every pending mutation now."""
    result = asyncio.run(_flush(ctx))
    if result.skipped:
        console.print("[dim]Nothing to sync[/dim]")
    elif result.failed:
        console.print(f"[red]✗ {result.failed} items failed to sync[/red] ({result.succeeded} delivered)")
        raise SystemExit(1)
    else:
        console.print(f"[green]✓ All data synced[/green] ({result.succeeded} items)")


async def _flush(ctx: click.Context) -> SyncResult:
    runtime = build_runtime(ctx)
    try:
        return await runtime.sync_queue.sync_pending_data()
    finally:
        await runtime.stop()
