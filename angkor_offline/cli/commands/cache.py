"""Cache management commands."""

import click
from rich.console import Console
from rich.table import Table

from ..app import build_runtime

console = Console()


@click.group()
def cache() -> None:
    """Inspect and clear the persistent cache."""


@cache.command("status")
@click.pass_context
def cache_status(ctx: click.Context) -> None:
    """Show cache entry counts and sizes."""
    runtime = build_runtime(ctx)
    status = runtime.cache.status()

    table = Table(title="Cache Status")
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    for key, value in status.items():
        table.add_row(key, str(value))
    console.print(table)


@cache.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def cache_clear(ctx: click.Context, yes: bool) -> None:
    """Remove every non-essential cached entry."""
    if not yes:
        click.confirm("Clear all cached data?", abort=True)
    runtime = build_runtime(ctx)
    removed = runtime.cache.clear_all_cache()
    console.print(f"[green]✓ Removed {removed} cached entries[/green]")


@cache.command("invalidate")
@click.argument("key")
@click.pass_context
def cache_invalidate(ctx: click.Context, key: str) -> None:
    """Remove one cache KEY."""
    runtime = build_runtime(ctx)
    runtime.cache.invalidate_cache(key)
    console.print(f"[green]✓ Invalidated {key}[/green]")


@cache.command("clear-pattern")
@click.argument("pattern")
@click.pass_context
def cache_clear_pattern(ctx: click.Context, pattern: str) -> None:
    """Remove every stored key containing PATTERN.

    Examples:

        angkor-offline cache clear-pattern factory_
    """
    runtime = build_runtime(ctx)
    removed = runtime.cache.clear_by_pattern(pattern)
    console.print(f"[green]✓ Removed {removed} keys matching '{pattern}'[/green]")
