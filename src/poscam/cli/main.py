"""
Poscam CLI — `poscam` command.

Commands:
  poscam config show|set      Saved host / https / token
  poscam pair <session-id>    Pair a camera and stream its captures
"""

import asyncio
import json
import logging
from pathlib import Path

try:
    import click
    from rich.console import Console
except ImportError:
    raise SystemExit("CLI requires extras: pip install poscam[cli]")

from poscam.config import CameraConfig

console = Console()
CONFIG_FILE = Path.home() / ".poscam" / "config.json"


def _load_config() -> dict:
    try:
        return json.loads(CONFIG_FILE.read_text())
    except (FileNotFoundError, json.JSONDecodeError):
        return {}


def _save_config(cfg: dict) -> None:
    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    CONFIG_FILE.write_text(json.dumps(cfg, indent=2))


def _camera_config(**overrides) -> CameraConfig:
    """Saved config with non-None overrides applied on top."""
    cfg = _load_config()
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    return CameraConfig.model_validate(cfg)


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool):
    """Poscam CLI — pair a phone camera and collect its pictures."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register subcommands from separate modules
from poscam.cli.config import config
from poscam.cli.pair import pair

main.add_command(config)
main.add_command(pair)


if __name__ == "__main__":
    main()
