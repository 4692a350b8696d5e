"""
agentdesk CLI

Command-line interface for running and talking to an agentdesk server.
"""

import sys
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from . import __version__
from .config import load_config, create_default_config


console = Console()

DEFAULT_PORT = 5000


@click.group()
@click.version_option(__version__, prog_name="agentdesk")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to config file")
@click.pass_context
def cli(ctx, config_path: str):
    """agentdesk - Chat Backend with Pluggable Agents"""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# =============================================================================
# Server Commands
# =============================================================================

@cli.command()
@click.pass_context
def start(ctx):
    """Start the agentdesk server."""
    config_path = ctx.obj.get("config_path")

    host, port = "0.0.0.0", DEFAULT_PORT
    if config_path:
        if not Path(config_path).exists():
            console.print(f"[red]✗[/red] Config file not found: {config_path}")
            sys.exit(1)
        config = load_config(config_path)
        host, port = config.server.host, config.server.port
        console.print(f"[green]✓[/green] Loaded config from {config_path}")

    console.print(Panel(
        f"[bold]agentdesk v{__version__}[/bold]\n"
        f"Starting server on [cyan]http://{host}:{port}[/cyan]",
        title="Starting"
    ))

    from .server import main as server_main
    server_main(config_path)


@cli.command()
@click.option("--port", "-p", default=DEFAULT_PORT, type=int, help="Server port")
def status(port: int):
    """Show server status."""
    import httpx

    try:
        response = httpx.get(f"http://localhost:{port}/api/health")
        data = response.json()

        console.print(Panel(
            f"[bold green]Running[/bold green]\n\n"
            f"Version: {data.get('version', 'unknown')}\n"
            f"Agents: {data.get('agents', 0)}",
            title="agentdesk Status"
        ))
    except httpx.HTTPError as e:
        console.print(f"[red]✗[/red] Server not running: {e}")
        sys.exit(1)


@cli.command()
@click.option("--output", "-o", default="agentdesk.yaml", type=click.Path(), help="Config file to write")
def init(output: str):
    """Initialize a new configuration file."""
    config_path = Path(output)

    if config_path.exists():
        if not click.confirm(f"{config_path} already exists. Overwrite?"):
            return

    config_path.write_text(create_default_config())
    console.print(f"[green]✓[/green] Created {config_path}")
    console.print("\nSet OPENAI_API_KEY (and Gmail settings if needed), then run:")
    console.print(f"  [cyan]agentdesk -c {config_path} start[/cyan]")


# =============================================================================
# Agent Commands
# =============================================================================

@cli.group()
def agents():
    """Inspect and talk to agents on a running server."""
    pass


@agents.command("list")
@click.option("--port", "-p", default=DEFAULT_PORT, type=int, help="Server port")
def agents_list(port: int):
    """List registered agents."""
    import httpx

    try:
        response = httpx.get(f"http://localhost:{port}/api/agents")
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        console.print(f"[red]✗[/red] Failed to list agents: {e}")
        sys.exit(1)

    items = data.get("agents", [])
    if not items:
        console.print("[yellow]No agents registered[/yellow]")
        return

    table = Table(title="Agents")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Status")

    for agent in items:
        status_text = "[green]active[/green]" if agent["status"] == "active" else "[dim]inactive[/dim]"
        table.add_row(agent["id"], agent["name"], agent["type"], status_text)

    console.print(table)


@agents.command("send")
@click.argument("message")
@click.option("--agent", "-a", "agent_id", help="Agent ID (routed automatically when omitted)")
@click.option("--port", "-p", default=DEFAULT_PORT, type=int, help="Server port")
def agents_send(message: str, agent_id: str, port: int):
    """Send a message to an agent."""
    import httpx

    if agent_id:
        url = f"http://localhost:{port}/api/agents/{agent_id}/message"
    else:
        url = f"http://localhost:{port}/api/agents/message"

    try:
        response = httpx.post(url, json={"message": message}, timeout=120.0)
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        console.print(f"[red]✗[/red] Failed to send message: {e}")
        sys.exit(1)

    if response.status_code != 200:
        console.print(f"[red]✗[/red] {data.get('detail', data)}")
        sys.exit(1)

    responder = data.get("agentId") or agent_id
    console.print(Panel(data.get("response", ""), title=responder))


@agents.command("command")
@click.argument("agent_id")
@click.argument("name")
@click.option("--payload", "-d", help="JSON payload for the command")
@click.option("--port", "-p", default=DEFAULT_PORT, type=int, help="Server port")
def agents_command(agent_id: str, name: str, payload: str, port: int):
    """Run a named command on an agent."""
    import httpx

    command = {"name": name}
    if payload:
        try:
            command["payload"] = json.loads(payload)
        except ValueError as e:
            console.print(f"[red]✗[/red] Invalid JSON payload: {e}")
            sys.exit(1)

    try:
        response = httpx.post(
            f"http://localhost:{port}/api/agents/{agent_id}/command",
            json={"command": command},
            timeout=60.0,
        )
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        console.print(f"[red]✗[/red] Failed to run command: {e}")
        sys.exit(1)

    if response.status_code != 200:
        console.print(f"[red]✗[/red] {data.get('detail', data)}")
        sys.exit(1)

    result = data.get("result", {})
    mark = "[green]✓[/green]" if result.get("success") else "[red]✗[/red]"
    console.print(f"{mark} {result.get('message', '')}")
    if result.get("data"):
        console.print_json(json.dumps(result["data"]))


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
