"""
tailtraefik CLI - serve and inspect Traefik configuration built from the tailnet.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import ProviderConfig, load_environment
from .tailscale.errors import TailscaleError
from .traefik.filters import exclusion_reason
from .traefik.provider import TraefikProvider, generate_service_name
from .traefik.tags import extract_service_infos

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()]
    )


def run_async(coro):
    """Run an async function."""
    return asyncio.run(coro)


def _load_config(config_path: Optional[str], env_file: Optional[str]) -> ProviderConfig:
    if config_path:
        return ProviderConfig.load(Path(config_path))
    environ = load_environment(Path(env_file) if env_file else None)
    return ProviderConfig.from_env(environ)


def _fail(message: str):
    console.print(f"[red]✗ {message}[/red]")
    sys.exit(1)


@click.group()
@click.version_option(__version__, prog_name="tailtraefik")
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--env-file', type=click.Path(dir_okay=False), help='Read settings from a .env file')
@click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False),
              help='Read settings from a JSON file instead of the environment')
@click.pass_context
def main(ctx, verbose, env_file, config_path):
    """Traefik dynamic configuration from your Tailscale network."""
    ctx.ensure_object(dict)
    setup_logging(verbose)
    ctx.obj['config'] = _load_config(config_path, env_file)


@main.command()
@click.option('--host', '-h', default=None, help='Host to bind to')
@click.option('--port', '-p', default=None, type=int, help='Port to bind to')
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int]):
    """Start the configuration server."""
    config: ProviderConfig = ctx.obj['config']
    overrides = {}
    if host:
        overrides['server_host'] = host
    if port:
        overrides['server_port'] = port
    config = config.with_overrides(**overrides)

    console.print("\n[bold blue]Starting Traefik Tailscale Provider[/bold blue]")
    console.print(f"   Listening on: http://{config.server_host}:{config.server_port}")
    console.print(f"   Refresh every: {config.update_interval_seconds}s")
    console.print("   Press Ctrl+C to stop\n")

    from .api.server import run_server
    run_server(config)


async def _with_provider(config: ProviderConfig, action):
    provider = TraefikProvider(config)
    try:
        return await action(provider)
    finally:
        await provider.close()


@main.command(name="config")
@click.option('--compact', is_flag=True, help='Print JSON on one line')
@click.pass_context
def show_config(ctx, compact: bool):
    """Generate the Traefik configuration once and print it."""
    config: ProviderConfig = ctx.obj['config']

    async def generate(provider: TraefikProvider):
        return await provider.generate_config()

    try:
        dynamic = run_async(_with_provider(config, generate))
    except TailscaleError as e:
        _fail(str(e))

    click.echo(dynamic.to_json(indent=None if compact else 2))


@main.command()
@click.pass_context
def check(ctx):
    """Test connectivity to the Tailscale daemon."""
    config: ProviderConfig = ctx.obj['config']

    async def probe(provider: TraefikProvider):
        await provider.test_connection()
        return provider.tailscale_client.transport

    try:
        transport = run_async(_with_provider(config, probe))
    except TailscaleError as e:
        _fail(f"Failed to connect to Tailscale daemon: {e}")

    console.print(f"[green]✓ Connected to Tailscale daemon[/green] via {transport!r}")


@main.command()
@click.pass_context
def status(ctx):
    """Show Tailscale daemon status."""
    config: ProviderConfig = ctx.obj['config']

    async def fetch(provider: TraefikProvider):
        return await provider.tailscale_client.get_status()

    try:
        ts_status = run_async(_with_provider(config, fetch))
    except TailscaleError as e:
        _fail(str(e))

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Version", ts_status.version)
    table.add_row("Backend state", f"[cyan]{ts_status.backend_state}[/cyan]")
    if ts_status.current_tailnet:
        table.add_row("Tailnet", ts_status.current_tailnet.name)
    if ts_status.self_peer:
        table.add_row("This node", ts_status.self_peer.hostname)
    table.add_row("Tailscale IPs", ", ".join(ts_status.tailscale_ips) or "-")
    table.add_row("Peers", str(ts_status.peer_count))

    console.print(Panel(table, title="Tailscale", expand=False))

    if ts_status.health:
        console.print("\n[yellow]Health warnings:[/yellow]")
        for warning in ts_status.health:
            console.print(f"  • {warning}")


@main.command()
@click.option('--all', 'show_all', is_flag=True, help='Include excluded peers')
@click.pass_context
def peers(ctx, show_all: bool):
    """List peers and the services generated for them."""
    config: ProviderConfig = ctx.obj['config']

    async def fetch(provider: TraefikProvider):
        return await provider.tailscale_client.get_status()

    try:
        ts_status = run_async(_with_provider(config, fetch))
    except TailscaleError as e:
        _fail(str(e))

    table = Table(title="Peers")
    table.add_column("Hostname", style="cyan")
    table.add_column("IP")
    table.add_column("OS", style="dim")
    table.add_column("Tags")
    table.add_column("Services")

    included = 0
    for _, peer in sorted(ts_status.iter_peers(), key=lambda item: item[1].hostname):
        reason = exclusion_reason(peer, config)
        if reason is None:
            included += 1
            services = [
                f"{generate_service_name(peer, info)} ({info.protocol.value}"
                f":{info.port if info.port is not None else config.default_port})"
                for info in extract_service_infos(peer, config)
            ]
            services_cell = "\n".join(services) or "[dim]none[/dim]"
        elif show_all:
            services_cell = f"[yellow]excluded: {reason}[/yellow]"
        else:
            continue

        table.add_row(
            peer.hostname,
            peer.primary_ip or "-",
            peer.os,
            ", ".join(peer.tags or []) or "-",
            services_cell,
        )

    console.print(table)
    console.print(f"\n[bold]{included}[/bold] of {ts_status.peer_count} peers included")


if __name__ == "__main__":
    main()
