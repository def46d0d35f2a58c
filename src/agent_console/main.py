import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import typer
from rich import print
from rich.markup import escape
from rich.table import Table

from agent_console.config import Settings, settings
from agent_console.core.context import ConsoleContext
from agent_console.core.credentials import CredentialStore
from agent_console.core.errors import ConsoleError
from agent_console.core.formatting import format_payload, format_timestamp, thread_display_name
from agent_console.core.models import EventLogEntry

logger = logging.getLogger(__name__)

APP_HELP = """
agent-console: remote control for an agent daemon gateway.

Observe and drive workspaces and threads over the gateway's REST API and
follow live daemon events over its push channel.

CORE WORKFLOW:
1. AUTH:     `agent-console token set <token>` then `agent-console health`.
2. BROWSE:   `agent-console workspaces` and `agent-console threads`.
3. DRIVE:    `agent-console start`, `agent-console send "<text>"`.
4. FOLLOW:   `agent-console watch` to stream events as they happen.
"""

app = typer.Typer(name="agent-console", help=APP_HELP, no_args_is_help=True)
token_app = typer.Typer(name="token", help="Manage the gateway bearer token.")
app.add_typer(token_app, name="token")


def load_settings() -> Settings:
    return settings


def build_context(current: Settings) -> ConsoleContext:
    return ConsoleContext.from_settings(current)


def _credentials() -> CredentialStore:
    current = load_settings()
    return CredentialStore(current.credentials_file, current.token_namespace)


def _run(operation: str, action: Callable[[ConsoleContext], Awaitable[Any]]) -> Any:
    """Run ``action`` inside a fresh console context; ConsoleError exits with code 1."""

    async def runner() -> Any:
        async with build_context(load_settings()) as ctx:
            try:
                return await action(ctx)
            except ConsoleError as e:
                ctx.event_log.append(f"{operation}/error", str(e))
                raise

    try:
        return asyncio.run(runner())
    except ConsoleError as e:
        print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1)


async def _select(ctx: ConsoleContext, workspace: Optional[str]) -> None:
    """Load workspaces and optionally switch to ``workspace``."""
    await ctx.store.refresh_workspaces()
    if workspace and workspace != ctx.store.active_workspace_id:
        if workspace not in [w.id for w in ctx.store.workspaces]:
            print(f"[yellow]Workspace {workspace} is not in the gateway's list[/yellow]")
        await ctx.store.select_workspace(workspace)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """
    Agent Console: remote control for an agent daemon.
    """
    level = logging.DEBUG if verbose else getattr(logging, load_settings().log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ============================================================================
# Token Commands
# ============================================================================

@token_app.command("set")
def token_set(token: str = typer.Argument(..., help="Gateway API token")):
    """
    Save the bearer token used for REST calls and the push channel.
    """
    store = _credentials()
    store.set(token)
    if store.get():
        print(f"[green]Token saved to {store.path}[/green]")
        print("[dim]Use `agent-console health` to verify access.[/dim]")
    else:
        print("[yellow]Empty token - credential cleared.[/yellow]")


@token_app.command("clear")
def token_clear():
    """Forget the saved token."""
    _credentials().clear()
    print("[green]Token cleared.[/green]")


@token_app.command("show")
def token_show():
    """Show whether a token is saved (masked)."""
    token = _credentials().get()
    if not token:
        print("[dim]No token saved.[/dim]")
        return
    masked = token[:4] + "..." if len(token) > 8 else "***"
    print(f"Token: {masked}")


# ============================================================================
# Read Commands
# ============================================================================

@app.command()
def health():
    """
    Check gateway access.

    Fetches the workspace list, which requires a valid token.
    """
    async def action(ctx: ConsoleContext):
        await ctx.client.health()
        return await ctx.store.refresh_workspaces()

    workspaces = _run("health", action)
    print(f"[bold green]Gateway auth check succeeded.[/bold green] {len(workspaces)} workspace(s).")


@app.command()
def workspaces(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """List workspaces known to the daemon."""
    async def action(ctx: ConsoleContext):
        await ctx.store.refresh_workspaces()
        return ctx.store

    store = _run("workspaces", action)
    if json_output:
        print(json.dumps([w.model_dump() for w in store.workspaces], default=str))
        return

    if not store.workspaces:
        print("[dim]No workspaces.[/dim]")
        return

    table = Table(title="Workspaces")
    table.add_column("", width=1)
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    for workspace in store.workspaces:
        marker = "*" if workspace.id == store.active_workspace_id else ""
        table.add_row(marker, workspace.id, workspace.label)
    print(table)


@app.command()
def threads(
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace ID (default: first)"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List threads of a workspace, most recently updated first."""
    async def action(ctx: ConsoleContext):
        await _select(ctx, workspace)
        return ctx.store

    store = _run("threads", action)
    if json_output:
        print(json.dumps([t.model_dump() for t in store.threads], default=str))
        return

    if not store.threads:
        print("[dim]No threads yet.[/dim]")
        return

    label = store.active_workspace.label if store.active_workspace else store.active_workspace_id
    table = Table(title=f"Threads in {label}")
    table.add_column("", width=1)
    table.add_column("ID", style="cyan")
    table.add_column("Preview")
    table.add_column("Updated", style="dim")
    for index, thread in enumerate(store.threads):
        marker = "*" if thread.id == store.active_thread_id else ""
        table.add_row(marker, thread.id or "(no id)", thread_display_name(thread, index), format_timestamp(thread.timestamp))
    print(table)


@app.command()
def drawings():
    """Overview of every workspace and its thread count."""
    snapshots = _run("drawings", lambda ctx: ctx.store.refresh_drawings())
    if not snapshots:
        print("[dim]No workspace data.[/dim]")
        return

    table = Table(title="Overview")
    table.add_column("Workspace")
    table.add_column("Threads", justify="right")
    table.add_column("Error", style="red")
    for snapshot in snapshots:
        table.add_row(snapshot.workspace.label, str(snapshot.thread_count), snapshot.error or "")
    print(table)


# ============================================================================
# Thread Commands
# ============================================================================

@app.command()
def start(
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace ID (default: first)"),
):
    """Start a new thread in a workspace."""
    async def action(ctx: ConsoleContext):
        await _select(ctx, workspace)
        return await ctx.store.start_thread()

    thread_id = _run("thread/start", action)
    if thread_id:
        print(f"[bold green]STARTED:[/bold green] {thread_id}")
    else:
        print("[yellow]Thread started but the daemon returned no thread id.[/yellow]")


@app.command()
def resume(
    thread_id: Optional[str] = typer.Argument(None, help="Thread ID (default: most recent)"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace ID (default: first)"),
):
    """Resume a thread so the daemon reloads it."""
    async def action(ctx: ConsoleContext):
        await _select(ctx, workspace)
        return await ctx.store.resume_thread(thread_id)

    payload = _run("thread/resume", action)
    print(f"[green]Resumed.[/green] {escape(format_payload(payload, limit=200))}")


@app.command()
def send(
    text: str = typer.Argument(..., help="Message text"),
    thread_id: Optional[str] = typer.Option(None, "--thread", "-t", help="Thread ID (default: most recent)"),
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace ID (default: first)"),
    access_mode: Optional[str] = typer.Option(None, "--access-mode", help="Access mode (default from settings)"),
):
    """Send a user message to a thread."""
    async def action(ctx: ConsoleContext):
        await _select(ctx, workspace)
        return await ctx.store.send_message(text, thread_id=thread_id, access_mode=access_mode)

    payload = _run("thread/message", action)
    print(f"[green]Sent.[/green] {escape(format_payload(payload, limit=200))}")


@app.command()
def rpc(
    method: str = typer.Argument(..., help="Daemon RPC method"),
    params: str = typer.Argument("{}", help="JSON params"),
):
    """Call an arbitrary daemon RPC method through the gateway."""
    result = _run("rpc", lambda ctx: ctx.store.run_rpc(method, params))
    print(json.dumps(result, indent=2, default=str))


# ============================================================================
# Live Events
# ============================================================================

def _print_event(entry: EventLogEntry) -> None:
    ts = entry.timestamp.astimezone().strftime("%H:%M:%S")
    print(f"[dim]{ts}[/dim] [bold]{entry.kind}[/bold] {escape(format_payload(entry.payload, limit=240))}")


@app.command()
def watch(
    workspace: Optional[str] = typer.Option(None, "--workspace", "-w", help="Workspace ID (default: first)"),
    duration: Optional[float] = typer.Option(None, "--duration", "-d", help="Stop after N seconds"),
):
    """
    Stream live events from the push channel.

    Thread activity in the selected workspace triggers coalesced thread
    refreshes; the event stream shows both the notifications and the
    refresh results.
    """
    async def action(ctx: ConsoleContext):
        ctx.event_log.subscribe(_print_event)
        ctx.push.on_status(lambda status: print(f"[dim]push: {status.value}[/dim]"))
        await _select(ctx, workspace)
        await ctx.push.connect()
        try:
            await asyncio.wait_for(ctx.push.wait_closed(), timeout=duration)
        except asyncio.TimeoutError:
            pass

    try:
        _run("ws", action)
    except KeyboardInterrupt:
        print("[dim]Stopped.[/dim]")


if __name__ == "__main__":
    app()
