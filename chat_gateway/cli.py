"""
Chat Gateway CLI.

Command-line interface for running and inspecting the gateway.
"""

import sys

import httpx
import typer
from rich.console import Console
from rich.table import Table

from shared.config.settings import get_settings

app = typer.Typer(
    name="chat-gateway",
    help="Chat Gateway CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Server Commands
# =============================================================================

@app.command()
def serve(
    host: str = typer.Option(None, help="Bind address (defaults to CHAT_GATEWAY_HOST)"),
    port: int = typer.Option(None, help="Bind port (defaults to CHAT_GATEWAY_PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the chat gateway with uvicorn."""
    import uvicorn

    settings = get_settings()
    host = host or settings.chat_gateway_host
    port = port or settings.chat_gateway_port

    console.print(f"[blue]Starting Chat Gateway on {host}:{port}[/blue]")
    uvicorn.run("chat_gateway.main:app", host=host, port=port, reload=reload)


# =============================================================================
# Health Commands
# =============================================================================

@app.command()
def health(
    url: str = typer.Option(None, help="Gateway base URL"),
):
    """Check a running gateway's health and online count."""
    settings = get_settings()
    base_url = url or f"http://localhost:{settings.chat_gateway_port}"

    table = Table(title="Chat Gateway Health")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")

    try:
        response = httpx.get(f"{base_url}/chat/health", timeout=5.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        console.print(f"[red]✗ Health check failed: {e}[/red]")
        raise typer.Exit(1)

    info = response.json()
    table.add_row("Status", str(info.get("status", "?")))
    table.add_row("Environment", str(info.get("environment", "?")))
    table.add_row("Online", str(info.get("online", "?")))
    table.add_row("Max Connections", str(info.get("max_connections", "?")))

    console.print(table)


# =============================================================================
# Config Commands
# =============================================================================

@app.command()
def config_check():
    """Validate configuration for the current environment."""
    settings = get_settings()
    errors = settings.validate_production()

    if not errors:
        console.print(f"[green]✓ Configuration valid ({settings.environment})[/green]")
        return

    for error in errors:
        console.print(f"[red]✗ {error}[/red]")
    raise typer.Exit(1)


@app.command()
def version():
    """Show version information."""
    from chat_gateway import __version__

    table = Table(title="Chat Gateway Version")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")

    table.add_row("Gateway", __version__)
    table.add_row("Python", sys.version.split()[0])

    console.print(table)


if __name__ == "__main__":
    app()
