"""
main.py — tally-relay application entrypoint.

Bootstraps:
  1. Config loading
  2. Broadcast hub
  3. vMix lifecycle controller
  4. FastAPI server (uvicorn) with the WebSocket channel and front-end assets

CLI:
  python run.py start tcp://10.0.0.5:8099   start the relay
  python run.py init-config                 create a default config.yaml
  python run.py check tcp://10.0.0.5:8099   test vMix connectivity and list inputs
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from tally_relay import __version__
from tally_relay.api import AssetStore, create_app
from tally_relay.config import Settings
from tally_relay.core import (
    Backoff,
    BroadcastHub,
    ConnectError,
    HandshakeError,
    InputDirectory,
    LifecycleController,
    SwitcherSession,
)

console = Console()
app = typer.Typer(name="tally-relay", help="vMix tally relay — pushes the live input to browser shot timers")


def setup_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def build_controller(settings: Settings, hub: BroadcastHub) -> LifecycleController:
    host, port = settings.switcher.target()
    return LifecycleController(
        host=host,
        port=port,
        hub=hub,
        input_count=settings.switcher.input_count,
        backoff=Backoff(settings.switcher.retry_base_ms, settings.switcher.retry_max_ms),
        connect_timeout=settings.switcher.connect_timeout,
        handshake_timeout=settings.switcher.handshake_timeout,
    )


async def build_and_run(config_path: Optional[Path] = None) -> None:
    settings = Settings.load(config_path)
    setup_logging(settings.web.log_level)
    log = logging.getLogger("tally_relay")

    if not settings.switcher.api_url:
        console.print("[red]Error: vMix API URL must be provided as a command-line argument or VMIX_API_URL.[/red]")
        sys.exit(1)

    console.rule(f"[bold blue]tally-relay v{__version__}[/bold blue]")

    # 1. Hub + controller
    hub = BroadcastHub()
    controller = build_controller(settings, hub)

    # 2. Front-end assets
    assets = AssetStore(
        [settings.web.assets_dir, settings.web.dist_dir],
        api_url=settings.switcher.api_url,
    )

    # 3. API
    fast_app = create_app(hub, controller, assets)
    bind_host, bind_port = settings.web.bind_address()

    console.print(f"\n[green]✓ vMix[/green]      {controller.host}:{controller.port} ({settings.switcher.input_count} inputs)")
    console.print(f"[green]✓ Web[/green]       http://{bind_host}:{bind_port}/")
    console.print(f"[green]✓ WS[/green]        ws://{bind_host}:{bind_port}/")
    console.print(f"[dim]            Using API_URL: {settings.switcher.api_url}[/dim]\n")

    # 4. uvicorn (SIGINT/SIGTERM end serve(); the lifespan then runs controller.shutdown())
    config = uvicorn.Config(
        fast_app,
        host=bind_host,
        port=bind_port,
        log_level=settings.web.log_level,
        loop="asyncio",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    finally:
        await controller.shutdown()
        log.info("Server closed.")


# ──────────────────────────────────────────────────────────────────────────────
# CLI commands
# ──────────────────────────────────────────────────────────────────────────────

@app.command()
def start(
    api_url: Optional[str] = typer.Argument(None, help="vMix API URL, e.g. tcp://10.0.0.5:8099"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config.yaml"),
    host: Optional[str] = typer.Option(None, "--host", help="Web bind host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Web port"),
    inputs: Optional[int] = typer.Option(None, "--inputs", "-n", help="Number of vMix inputs to name"),
):
    """Start the tally relay."""
    if api_url:
        os.environ["VMIX_API_URL"] = api_url
    if host:
        os.environ["WEB_HOST"] = host
    if port:
        os.environ["WEB_PORT"] = str(port)
    if inputs:
        os.environ["VMIX_INPUT_COUNT"] = str(inputs)
    asyncio.run(build_and_run(config))


@app.command("init-config")
def init_config(
    output: Path = typer.Option(Path("config.yaml"), "--output", "-o"),
):
    """Generate a default config.yaml."""
    s = Settings.load()
    s.to_yaml(output)
    console.print(f"[green]✓[/green] Config written to [bold]{output}[/bold]")


@app.command("check")
def check_vmix(
    api_url: Optional[str] = typer.Argument(None, help="vMix API URL, e.g. tcp://10.0.0.5:8099"),
    inputs: Optional[int] = typer.Option(None, "--inputs", "-n", help="Number of vMix inputs to name"),
):
    """Test vMix TCP API connectivity and list the input names."""
    if api_url:
        os.environ["VMIX_API_URL"] = api_url
    settings = Settings.load()
    if not settings.switcher.api_url:
        console.print("[red]✗ No vMix API URL given[/red]")
        sys.exit(1)
    host, port = settings.switcher.target()
    count = inputs or settings.switcher.input_count

    async def _check() -> InputDirectory:
        session = SwitcherSession(host, port, connect_timeout=settings.switcher.connect_timeout)
        await session.connect()
        try:
            return await asyncio.wait_for(
                InputDirectory.resolve(session, count),
                timeout=settings.switcher.handshake_timeout,
            )
        finally:
            await session.close()

    try:
        directory = asyncio.run(_check())
    except (ConnectError, HandshakeError, asyncio.TimeoutError) as e:
        console.print(f"[red]✗ vMix check failed at {host}:{port}: {str(e) or type(e).__name__}[/red]")
        sys.exit(1)

    console.print(f"[green]✓ Connected to vMix API[/green] {host}:{port}")
    table = Table(title="vMix Inputs", show_header=True)
    table.add_column("Input", style="cyan")
    table.add_column("Title", style="green")
    for slot, name in directory.as_dict().items():
        table.add_row(str(slot), name or "[dim](blank)[/dim]")
    console.print(table)


if __name__ == "__main__":
    app()
