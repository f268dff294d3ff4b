"""CLI: poscam config show|set"""

from typing import Optional

import click
from rich.console import Console
from rich.table import Table

console = Console()


def _load_config() -> dict:
    from poscam.cli.main import _load_config
    return _load_config()


def _save_config(cfg: dict) -> None:
    from poscam.cli.main import _save_config
    _save_config(cfg)


@click.group()
def config():
    """Saved connection settings."""


@config.command("show")
def config_show():
    """Show saved settings."""
    from poscam.cli.main import _camera_config
    cfg = _camera_config()
    table = Table(title="poscam config")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("host", cfg.host)
    table.add_row("use_https", str(cfg.use_https))
    table.add_row("auth_token", "set" if cfg.auth_token else "-")
    console.print(table)


@config.command("set")
@click.option("--host", default=None, help="Pairing service host")
@click.option("--use-https", type=bool, default=None, help="true for https/wss, false for http/ws")
@click.option("--token", default=None, help="Bearer token sent with the handshake")
def config_set(host: Optional[str], use_https: Optional[bool], token: Optional[str]):
    """Update saved settings."""
    cfg = _load_config()
    if host is not None:
        cfg["host"] = host
    if use_https is not None:
        cfg["use_https"] = use_https
    if token is not None:
        cfg["auth_token"] = token
    _save_config(cfg)
    console.print("[green]Saved to ~/.poscam/config.json[/green]")
