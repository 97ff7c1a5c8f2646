"""Angkor Offline CLI application."""

import os
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from .. import __version__
from ..config import OfflineConfig
from ..runtime import OfflineRuntime
from ..storage import JsonFileStore

console = Console()


def find_config() -> str | None:
    """
    Find config file using standard priority order:

    1. ANGKOR_OFFLINE_CONFIG environment variable
    2. .angkor-offline.yaml in current directory (project config)
    3. ~/.config/angkor-offline/config.yaml (user config)

    Returns None if no config found.
    """
    env_config = os.environ.get("ANGKOR_OFFLINE_CONFIG")
    if env_config:
        path = Path(env_config)
        if path.exists():
            return str(path)

    project_config = Path.cwd() / ".angkor-offline.yaml"
    if project_config.exists():
        return str(project_config)

    user_config = Path.home() / ".config" / "angkor-offline" / "config.yaml"
    if user_config.exists():
        return str(user_config)

    return None


def build_runtime(ctx: click.Context) -> OfflineRuntime:
    """
    Build a runtime for one CLI invocation.

    The CLI always uses a durable store, so cached entries and queued
    mutations persist between commands.
    """
    config_path: Optional[str] = ctx.obj.get("config")
    config = OfflineConfig.load(config_path) if config_path else OfflineConfig()
    if not ctx.obj.get("verbose"):
        config.log_level = "WARNING"
    storage: Optional[str] = ctx.obj.get("storage")
    path = Path(storage) if storage else config.get_storage_path()
    store = JsonFileStore(path, quota_bytes=config.storage_quota_bytes)
    return OfflineRuntime(config, store=store)


@click.group()
@click.version_option(version=__version__, prog_name="angkor-offline")
@click.option("--config", "-c", type=click.Path(exists=True), help="Config file path")
@click.option("--no-config", is_flag=True, help="Disable config auto-loading")
@click.option("--storage", "-s", type=click.Path(dir_okay=False), help="Durable storage file")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def cli(ctx: click.Context, config: str, no_config: bool, storage: str, verbose: bool) -> None:
    """Angkor Offline — offline support and cache synchronization.

    Inspect and repair the offline cache, and manage mutations queued
    while the platform was unreachable.

    Config file locations (in priority order):

        1. -c/--config PATH (explicit)

        2. ANGKOR_OFFLINE_CONFIG env var

        3. .angkor-offline.yaml (project config)

        4. ~/.config/angkor-offline/config.yaml (user config)

    Examples:

        angkor-offline diagnose --fix

        angkor-offline cache status

        angkor-offline sync add '{"caseId": 7, "note": "x"}'
    """
    ctx.ensure_object(dict)

    if no_config:
        config = None
    elif config is None:
        config = find_config()
        if config and verbose:
            console.print(f"[dim]Using config: {config}[/dim]")

    ctx.obj["config"] = config
    ctx.obj["storage"] = storage
    ctx.obj["verbose"] = verbose


# Import and register commands
from .commands import cache, diagnose, sync, version

cli.add_command(diagnose.diagnose)
cli.add_command(cache.cache)
cli.add_command(sync.sync)
cli.add_command(version.version)
