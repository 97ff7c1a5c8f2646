"""Diagnose command."""

import asyncio
import json

import click
from rich.console import Console
from rich.table import Table

from ..app import build_runtime

console = Console()

STATUS_COLORS = {"healthy": "green", "warning": "yellow", "critical": "red"}
SEVERITY_COLORS = {"low": "dim", "medium": "yellow", "high": "red"}


@click.command()
@click.option("--fix", is_flag=True, help="Apply automatic fixes for detected issues")
@click.option("--json", "json_output", is_flag=True, help="JSON output format")
@click.pass_context
def diagnose(ctx: click.Context, fix: bool, json_output: bool) -> None:
    """Run cache diagnostics.

    Examples:

        angkor-offline diagnose

        angkor-offline diagnose --fix

        angkor-offline diagnose --json | jq .summary
    """
    report = asyncio.run(_run(ctx, fix))

    if json_output:
        console.print_json(json.dumps(report))
        return

    summary = report["summary"]
    color = STATUS_COLORS[summary["status"]]
    console.print(f"Status: [{color}]{summary['status']}[/{color}] ({summary['total']} issues)")

    if report["issues"]:
        table = Table(title="Issues")
        table.add_column("Type", style="cyan")
        table.add_column("Severity")
        table.add_column("Message")
        for issue in report["issues"]:
            sev = issue["severity"]
            table.add_row(issue["type"], f"[{SEVERITY_COLORS[sev]}]{sev}[/{SEVERITY_COLORS[sev]}]", issue["message"])
        console.print(table)

    for item in report["fixes"]:
        mark = "[green]✓[/green]" if item["status"] == "fixed" else "[red]✗[/red]"
        detail = f" ({item['error']})" if item.get("error") else ""
        console.print(f"{mark} {item['issue']}{detail}")

    for recommendation in report["recommendations"]:
        console.print(f"[dim]• {recommendation}[/dim]")


async def _run(ctx: click.Context, fix: bool) -> dict:
    runtime = build_runtime(ctx)
    try:
        return await runtime.run_diagnostics(fix=fix)
    finally:
        await runtime.stop()
