"""
CLI entry point for Cosmo.

This module provides the Typer-based command-line interface for Cosmo.

Commands:
    serve       Serve the MCP tool endpoint over stdio or HTTP
    tools       List the tools advertised through tools/list
    call        Invoke one tool through the JSON-RPC dispatcher
    add         Capture a new capsule
    recent      Show the most recent capsules
    search      Search capsule content
    stats       Show collection statistics
    edit        Change a capsule's content or tags
    delete      Delete a capsule

Architecture Note:
    add, recent, search and stats go through the same tools the MCP
    clients use, so the CLI and the server can't disagree on defaults
    or validation. edit and delete talk to the store directly; they have
    no MCP counterpart.
"""

import json
import traceback
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Optional

import httpx
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cosmo import __version__
from cosmo.errors import CosmoError
from cosmo.logging_ import setup_logging
from cosmo.rpc import Dispatcher, serve_stdio
from cosmo.schema import Capsule, CapsuleSearchResult, CapsuleStats, Settings, load_settings
from cosmo.store import CapsuleDB
from cosmo.tools import ToolContext, ToolOutput, default_registry
from cosmo.tools.render import format_datetime, format_tags

# Initialize Typer app with metadata
app = typer.Typer(
    name="cosmo",
    help="Knowledge capsules for AI agents, served over MCP.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console()
err_console = Console(stderr=True)


class Transport(str, Enum):
    STDIO = "stdio"
    HTTP = "http"


ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to a settings YAML file.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]

DbOption = Annotated[
    Optional[Path],
    typer.Option(
        "--db",
        help="Path to the SQLite database. Overrides the settings file.",
    ),
]

JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]cosmo[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    Cosmo - Knowledge capsules for AI agents.

    Capture tagged notes from the terminal and serve them to MCP clients
    over stdio or HTTP.
    """
    pass


# =============================================================================
# Helpers
# =============================================================================


def _settings(config: Path | None, db: Path | None = None) -> Settings:
    """Load settings, exiting with code 1 if the file is invalid."""
    try:
        settings = load_settings(config)
    except CosmoError as e:
        err_console.print(f"[red]Error loading settings: {escape(e.message)}[/red]")
        raise typer.Exit(code=1)
    if db is not None:
        settings = settings.model_copy(update={"db_path": db})
    return settings


def _fail(message: str, json_output: bool, error_type: str = "error") -> None:
    """Report an error and exit with code 1."""
    if json_output:
        print(json.dumps({"error": True, "error_type": error_type, "message": message}, indent=2))
    else:
        console.print(f"[red]{escape(message)}[/red]")
    raise typer.Exit(code=1)


def _run_tool(settings: Settings, name: str, args: dict[str, Any], json_output: bool) -> ToolOutput:
    """Run a registered tool against the configured database."""
    try:
        with CapsuleDB(settings.db_path) as store:
            return default_registry.call(name, args, ToolContext(store=store))
    except CosmoError as e:
        _fail(e.message, json_output, error_type=type(e).__name__)


def _capsule_json(capsule: Capsule) -> dict[str, Any]:
    return capsule.model_dump(mode="json")


def _display_capsules(result: CapsuleSearchResult, title: str) -> None:
    """Display capsules as a table."""
    if not result.capsules:
        console.print("[dim]No capsules found.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Created")
    table.add_column("Tags", style="magenta")
    table.add_column("Content")

    for capsule in result.capsules:
        content = capsule.content
        if len(content) > 60:
            content = content[:57] + "..."
        table.add_row(
            capsule.id[:8],
            format_datetime(capsule.timestamp),
            format_tags(capsule.tags),
            content,
        )

    console.print(table)


# =============================================================================
# Server Commands
# =============================================================================


@app.command()
def serve(
    transport: Annotated[
        Transport,
        typer.Option(
            "--transport",
            "-t",
            help="How MCP clients connect.",
            case_sensitive=False,
        ),
    ] = Transport.STDIO,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Interface to bind (http transport)."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to listen on (http transport)."),
    ] = None,
    config: ConfigOption = None,
    db: DbOption = None,
) -> None:
    """
    Serve the MCP tool endpoint.

    stdio reads one JSON-RPC envelope per line from stdin and writes one
    response per line to stdout; logs go to stderr.

    Example:
        $ cosmo serve --transport http --port 8765
    """
    settings = _settings(config, db)
    setup_logging(settings.log_level, settings.log_file)
    dispatcher = Dispatcher(settings=settings)

    if transport == Transport.STDIO:
        serve_stdio(dispatcher)
        return

    import uvicorn

    from cosmo.rpc.http import create_app

    uvicorn.run(
        create_app(dispatcher, settings),
        host=host or settings.http_host,
        port=port or settings.http_port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def tools(json_output: JsonOption = False) -> None:
    """List the tools advertised to MCP clients."""
    if json_output:
        print(json.dumps(default_registry.descriptors(), indent=2))
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan", no_wrap=True)
    table.add_column("Arguments")
    table.add_column("Description")

    for tool in default_registry:
        schema = tool.input_schema
        required = set(schema.get("required", []))
        arguments = ", ".join(
            f"{key}*" if key in required else key for key in schema.get("properties", {})
        )
        table.add_row(tool.name, arguments, tool.description)

    console.print(table)
    console.print("[dim]* required[/dim]")


@app.command()
def call(
    tool: Annotated[str, typer.Argument(help="Name of the tool to call.")],
    args: Annotated[
        str,
        typer.Option("--args", "-a", help="Tool arguments as a JSON object."),
    ] = "{}",
    url: Annotated[
        Optional[str],
        typer.Option("--url", help="Call a running HTTP server instead of the local database."),
    ] = None,
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show full error tracebacks."),
    ] = False,
) -> None:
    """
    Call a tool through the JSON-RPC dispatcher.

    Example:
        $ cosmo call search_capsules_by_tags --args '{"tags": ["reading"]}'
    """
    try:
        arguments = json.loads(args)
    except json.JSONDecodeError as e:
        _fail(f"--args is not valid JSON: {e}", json_output, error_type="invalid_args")

    envelope = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": tool, "arguments": arguments},
    }

    if url:
        try:
            reply = httpx.post(url, json=envelope, timeout=30.0)
            reply.raise_for_status()
            response = reply.json()
        except (httpx.HTTPError, ValueError) as e:
            if debug:
                err_console.print(f"[dim]{traceback.format_exc()}[/dim]")
            _fail(f"Request to {url} failed: {e}", json_output, error_type="transport_error")
    else:
        response = Dispatcher(settings=_settings(config, db)).handle(envelope)

    if json_output:
        print(json.dumps(response, indent=2, ensure_ascii=False))
    elif "error" in response:
        error = response["error"]
        console.print(f"[red]Error {error['code']}: {error['message']}[/red]")
    else:
        for block in response["result"]["content"]:
            console.print(block["text"], markup=False)

    if "error" in response:
        raise typer.Exit(code=1)


# =============================================================================
# Capsule Commands
# =============================================================================


@app.command()
def add(
    content: Annotated[str, typer.Argument(help="Capsule text.")],
    tag: Annotated[
        Optional[list[str]],
        typer.Option("--tag", "-t", help="Tag to attach. Repeat for several tags."),
    ] = None,
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Capture a new capsule.

    Example:
        $ cosmo add "Streams are delayed lists" --tag sicp --tag reading
    """
    settings = _settings(config, db)
    output = _run_tool(settings, "create_capsule", {"content": content, "tags": tag or []}, json_output)
    capsule: Capsule = output.data

    if json_output:
        print(json.dumps(_capsule_json(capsule), indent=2, ensure_ascii=False))
        return

    console.print(f"[green]✓[/green] Created capsule [bold]{capsule.id}[/bold]")
    console.print(f"[dim]Tags: {format_tags(capsule.tags)}[/dim]")


@app.command()
def recent(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of capsules to show.")] = 5,
    days: Annotated[
        Optional[float],
        typer.Option("--days", "-d", help="Only capsules from the last N days."),
    ] = None,
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show the most recent capsules."""
    settings = _settings(config, db)
    output = _run_tool(settings, "get_recent_capsules", {"limit": limit, "days": days}, json_output)
    result: CapsuleSearchResult = output.data

    if json_output:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))
        return

    title = f"Recent capsules (last {days:g} days)" if days else "Recent capsules"
    _display_capsules(result, title)


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Text to look for in capsule content.")],
    page: Annotated[int, typer.Option("--page", help="Page number, starting at 1.")] = 1,
    page_size: Annotated[int, typer.Option("--page-size", help="Capsules per page.")] = 10,
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Search capsule content (case-insensitive)."""
    settings = _settings(config, db)
    output = _run_tool(
        settings,
        "search_capsules_by_content",
        {"query": query, "page": page, "pageSize": page_size},
        json_output,
    )
    result: CapsuleSearchResult = output.data

    if json_output:
        print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False))
        return

    _display_capsules(result, f"Matches for '{query}'")
    console.print(f"[dim]Page {page} | {result.total_count} total match(es)[/dim]")


@app.command()
def stats(
    detailed: Annotated[
        bool,
        typer.Option("--detailed", help="Include first/latest dates and averages."),
    ] = False,
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Show collection statistics."""
    settings = _settings(config, db)
    output = _run_tool(settings, "get_capsule_stats", {"detailed": detailed}, json_output)
    result: CapsuleStats = output.data

    if json_output:
        payload = result.model_dump(mode="json", by_alias=True)
        if output.metadata.get("details"):
            payload["details"] = output.metadata["details"]
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Total capsules", str(result.total_capsules))
    table.add_row("Unique tags", str(result.unique_tags))
    table.add_row("Last 7 days", str(result.recent_capsules))
    table.add_row("Last 30 days", str(result.this_month_capsules))
    console.print(table)

    if result.top_tags:
        tags = ", ".join(f"#{tag} ({count})" for tag, count in result.top_tags)
        console.print(f"[dim]Top tags: {tags}[/dim]")

    for label, value in output.metadata.get("details", {}).items():
        console.print(f"[dim]{label.replace('*', '')}: {value}[/dim]")


@app.command()
def edit(
    capsule_id: Annotated[str, typer.Argument(help="ID of the capsule to change.")],
    content: Annotated[
        Optional[str],
        typer.Option("--content", help="New content."),
    ] = None,
    tag: Annotated[
        Optional[list[str]],
        typer.Option("--tag", "-t", help="Replacement tag. Repeat for several tags."),
    ] = None,
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Change a capsule's content or tags.

    The capsule keeps its original timestamp.
    """
    if content is None and tag is None:
        _fail("Nothing to change: pass --content and/or --tag", json_output)
    if content is not None and not content.strip():
        _fail("Content cannot be empty", json_output)

    settings = _settings(config, db)
    try:
        with CapsuleDB(settings.db_path) as store:
            capsule = store.update_by_id(
                capsule_id,
                content=content.strip() if content is not None else None,
                tags=tag,
            )
    except CosmoError as e:
        _fail(e.message, json_output, error_type=type(e).__name__)

    if json_output:
        print(json.dumps(_capsule_json(capsule), indent=2, ensure_ascii=False))
        return

    console.print(f"[green]✓[/green] Updated capsule [bold]{capsule.id}[/bold]")


@app.command()
def delete(
    capsule_id: Annotated[str, typer.Argument(help="ID of the capsule to delete.")],
    config: ConfigOption = None,
    db: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """Delete a capsule."""
    settings = _settings(config, db)
    try:
        with CapsuleDB(settings.db_path) as store:
            deleted = store.delete_by_id(capsule_id)
    except CosmoError as e:
        _fail(e.message, json_output, error_type=type(e).__name__)

    if not deleted:
        _fail(f"Capsule not found: {capsule_id}", json_output, error_type="CapsuleNotFoundError")

    if json_output:
        print(json.dumps({"deleted": True, "id": capsule_id}, indent=2))
        return

    console.print(f"[green]✓[/green] Deleted capsule [bold]{capsule_id}[/bold]")


if __name__ == "__main__":
    app()
