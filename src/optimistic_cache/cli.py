# src/optimistic_cache/cli.py
"""
optimistic-cache Command Line Interface (CLI).

Built with `typer` and `rich`.

Features
--------
- **Race demo**: run the toggle-twice race in-process and show every cache
  notification, the final state, and the server's state.
- **Procedure host**: serve the shopping-list procedures over HTTP.
- **Remote call**: query a procedure through a cache session over HTTP.
- **Trace inspector**: render a saved cache trace as a table.

Usage
-----
    $ optimistic-cache demo --fail-first --fail-second --trace-dir artifacts/trace
    $ optimistic-cache serve --port 8000
    $ optimistic-cache call shoppingList.getItems --args '{"group_id": "g1"}'
    $ optimistic-cache inspect artifacts/trace/20261018T101500123456Z_rev000004.json
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from optimistic_cache.core.errors import RemoteFailure
from optimistic_cache.core.session import CacheSession
from optimistic_cache.core.settings import load_settings
from optimistic_cache.core.store.storage import load_trace
from optimistic_cache.core.store.trace import StoreTrace
from optimistic_cache.demo.race import RaceReport, run_toggle_race
from optimistic_cache.rpc.client import HttpProcedureClient

load_dotenv()

app = typer.Typer(
    help="optimistic-cache: optimistic mutations over a reconciling query cache.",
    rich_markup_mode="markdown",
)
console = Console()


# --------------------------------------------------------------------------- #
# Helpers: Rendering
# --------------------------------------------------------------------------- #


def _fmt(value: bool | None) -> str:
    if value is None:
        return "[dim]absent[/dim]"
    return "[green]true[/green]" if value else "[red]false[/red]"


def _render_report(report: RaceReport) -> None:
    table = Table(title="Cache notifications for shoppingList.getItems")
    table.add_column("#", justify="right")
    table.add_column("version", justify="right")
    table.add_column("status")
    table.add_column("is_completed")
    for i, obs in enumerate(report.observations, start=1):
        table.add_row(str(i), str(obs.version), obs.status, _fmt(obs.is_completed))
    console.print(table)

    lines = [
        f"A: {report.results['A']}",
        f"B: {report.results['B']}",
        f"cached before refetch: {_fmt(report.before_refetch)}",
        f"cached after refetch:  {_fmt(report.final)}",
        f"server:                {_fmt(report.server)}",
    ]
    converged = report.final == report.server
    console.print(
        Panel(
            "\n".join(lines),
            title="converged" if converged else "DIVERGED",
            border_style="green" if converged else "red",
        )
    )
    for path in report.trace_files:
        console.print(f"[dim]trace: {path}[/dim]")


def _render_trace(trace: StoreTrace) -> None:
    table = Table(title=f"rev {trace.revision} @ {trace.timestamp}  {trace.note or ''}")
    table.add_column("key")
    table.add_column("version", justify="right")
    table.add_column("status")
    table.add_column("value")
    for entry in trace.entries:
        value = json.dumps(entry.get("value"), ensure_ascii=False)
        if len(value) > 80:
            value = value[:77] + "..."
        table.add_row(
            str(entry.get("key")), str(entry.get("version")), str(entry.get("status")), value
        )
    console.print(table)


# --------------------------------------------------------------------------- #
# Commands
# --------------------------------------------------------------------------- #


@app.command()  # type: ignore[misc]
def demo(
    fail_first: Annotated[
        bool, typer.Option("--fail-first/--ok-first", help="Fail mutation A remotely.")
    ] = True,
    fail_second: Annotated[
        bool, typer.Option("--fail-second/--ok-second", help="Fail mutation B remotely.")
    ] = True,
    latency: Annotated[float, typer.Option(min=0.0, help="Simulated round trip (s).")] = 0.05,
    trace_dir: Annotated[
        Path | None, typer.Option(help="Write cache traces as JSON into this directory.")
    ] = None,
) -> None:
    """
    Run the **toggle-twice race** against in-process procedures.
    """
    report = asyncio.run(
        run_toggle_race(
            fail_first=fail_first,
            fail_second=fail_second,
            latency=latency,
            trace_dir=trace_dir,
        )
    )
    _render_report(report)
    if report.final != report.server:
        raise typer.Exit(code=1)


@app.command()  # type: ignore[misc]
def serve(
    host: Annotated[str, typer.Option(help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port.")] = 8000,
    reload: Annotated[bool, typer.Option(help="Auto-reload on code changes.")] = False,
) -> None:
    """
    Serve the shopping-list procedures over HTTP.
    """
    from optimistic_cache.api.server import main as serve_main

    serve_main(host=host, port=port, reload=reload)


@app.command()  # type: ignore[misc]
def call(
    procedure: Annotated[str, typer.Argument(help="Procedure name, e.g. shoppingList.getItems")],
    args: Annotated[str, typer.Option(help="Procedure arguments as JSON.")] = "null",
    base_url: Annotated[
        str | None, typer.Option(help="Procedure host (default: RPC_BASE_URL).")
    ] = None,
) -> None:
    """
    Query a procedure through a cache session over HTTP and print the result.
    """
    try:
        parsed: Any = json.loads(args)
    except json.JSONDecodeError as exc:
        console.print(f"[bold red]--args is not valid JSON: {exc}[/bold red]")
        raise typer.Exit(code=2) from exc

    settings = load_settings()
    client = HttpProcedureClient.from_settings(settings)
    if base_url:
        client.base_url = base_url

    async def _run() -> Any:
        async with CacheSession(client, settings) as session:
            return await session.query(procedure, parsed)

    try:
        data = asyncio.run(_run())
    except RemoteFailure as exc:
        console.print(f"[bold red]{exc}[/bold red]")
        raise typer.Exit(code=1) from exc
    console.print_json(data=data)


@app.command()  # type: ignore[misc]
def inspect(
    trace_file: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
            help="Trace JSON written by `demo --trace-dir`.",
        ),
    ],
) -> None:
    """
    Render a saved cache trace.
    """
    try:
        trace = load_trace(trace_file)
    except (json.JSONDecodeError, OSError) as exc:
        console.print(f"[bold red]Cannot read trace: {exc}[/bold red]")
        raise typer.Exit(code=1) from exc
    _render_trace(trace)


if __name__ == "__main__":
    app()
