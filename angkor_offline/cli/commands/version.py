"""Version command."""

import click
from rich.console import Console
from rich.table import Table

from ... import __version__
from ...config import OfflineConfig

console = Console()


@click.command()
@click.option("--details", is_flag=True, help="Also show build and cache versions")
@click.pass_context
def version(ctx: click.Context, details: bool) -> None:
    """Show Angkor Offline version.

    Examples:

        angkor-offline version

        angkor-offline version --details
    """
    console.print(f"[bold]Angkor Offline[/bold] v{__version__}")

    if details:
        config_path = ctx.obj.get("config") if ctx.obj else None
        config = OfflineConfig.load(config_path) if config_path else OfflineConfig()
        table = Table(title="Versions")
        table.add_column("Component", style="cyan")
        table.add_column("Version")
        table.add_row("build", config.build_version)
        table.add_row("cache", config.cache_version)
        table.add_row("static cache", config.static_cache_name)
        table.add_row("dynamic cache", config.dynamic_cache_name)
        console.print(table)
