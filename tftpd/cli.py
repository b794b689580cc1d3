#!/usr/bin/env python3
"""
TFTP Server CLI

Command-line interface for the tftpd file transfer server.

Usage:
    tftpd serve                      # Serve the current directory on port 69
    tftpd serve --root /srv/tftp --port 6969 --read-only
    tftpd config                     # Show effective configuration
    tftpd config --example           # Print an example config file
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .config import Config, EXAMPLE_CONFIG, load_config
from .server import TFTPServer
from .storage import LocalFilePorts

console = Console()


def setup_logging(level: str = 'INFO', verbose: bool = False):
    """Configure logging with rich output."""
    level = 'DEBUG' if verbose else level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=True, show_path=False)]
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON config file')
@click.pass_context
def cli(ctx, verbose, config_path):
    """tftpd - RFC 1350 TFTP server."""
    config = load_config(Path(config_path) if config_path else None)
    setup_logging(config.log_level, verbose)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


@cli.command()
@click.option('--host', default=None, help='Address to listen on')
@click.option('--port', type=int, default=None, help='UDP port to listen on')
@click.option('--root', type=click.Path(exists=True, file_okay=False),
              default=None, help='Directory to serve')
@click.option('--retry-interval', type=float, default=None,
              help='Seconds between retransmissions')
@click.option('--timeout', type=float, default=None,
              help='Seconds before a silent peer is abandoned')
@click.option('--linger', type=float, default=None,
              help='Seconds to wait for a repeated final block after a write')
@click.option('--read-only', is_flag=True, help='Reject write requests')
@click.pass_context
def serve(ctx, host, port, root, retry_interval, timeout, linger, read_only):
    """Serve files over TFTP."""
    config: Config = ctx.obj['config']

    # Flags override file/env settings
    if host is not None:
        config.host = host
    if port is not None:
        config.port = port
    if root is not None:
        config.root = Path(root)
    if retry_interval is not None:
        config.retry_interval = retry_interval
    if timeout is not None:
        config.timeout = timeout
    if linger is not None:
        config.linger = linger
    if read_only:
        config.allow_write = False

    try:
        policy = config.policy()
    except ValueError as e:
        raise click.BadParameter(str(e))

    ports = LocalFilePorts()
    server = TFTPServer(
        root=config.root,
        read_port=ports,
        write_port=ports if config.allow_write else None,
        host=config.host,
        port=config.port,
        policy=policy,
    )

    async def run():
        try:
            await server.start()
        except OSError as e:
            console.print(f"[red]Cannot listen on {config.host}:{config.port}: {e}[/red]")
            if config.port < 1024:
                console.print("[dim]Ports below 1024 need privileges; try --port 6969[/dim]")
            return 1

        address = server.bound_address
        console.print(Panel.fit(
            f"[bold green]TFTP Server Started[/bold green]\n\n"
            f"Address: [yellow]{address[0]}:{address[1]}[/yellow]\n"
            f"Root: [blue]{config.root.resolve()}[/blue]\n"
            f"Writes: [cyan]{'enabled' if config.allow_write else 'disabled'}[/cyan]\n"
            f"Retry: [yellow]{policy.retry_interval:g}s[/yellow] "
            f"Timeout: [yellow]{policy.timeout:g}s[/yellow]",
            title="tftpd"
        ))
        console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

        try:
            while True:
                await asyncio.sleep(1)
        finally:
            await server.stop()
        return 0

    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
        code = 0

    print_stats(server)
    ctx.exit(code or 0)


@cli.command('config')
@click.option('--example', is_flag=True, help='Print an example config file')
@click.pass_context
def show_config(ctx, example):
    """Show the effective configuration."""
    if example:
        click.echo(EXAMPLE_CONFIG.strip())
        return
    config: Config = ctx.obj['config']
    click.echo(json.dumps(config.to_dict(), indent=2))


def print_stats(server: TFTPServer):
    """Print a summary of the transfers handled."""
    stats = server.get_stats()
    if not stats['sessions_started']:
        console.print("[yellow]No transfers[/yellow]")
        return

    table = Table(title="Transfers")
    table.add_column("Direction", style="cyan")
    table.add_column("File")
    table.add_column("Peer", style="yellow")
    table.add_column("Size", justify="right")
    table.add_column("Result")

    for r in server.results:
        status = "[green]done[/green]" if r.ok else f"[red]{escape(r.error or '')}[/red]"
        table.add_row(
            r.direction.value,
            escape(r.filename),
            f"{r.peer[0]}:{r.peer[1]}",
            format_size(r.bytes),
            status,
        )

    console.print(table)
    console.print(
        f"Sent [yellow]{format_size(stats['bytes_sent'])}[/yellow], "
        f"received [yellow]{format_size(stats['bytes_received'])}[/yellow], "
        f"{stats['sessions_failed']} failed"
    )


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def main(argv: Optional[list] = None):
    cli(args=argv, obj={})


if __name__ == '__main__':
    main()
