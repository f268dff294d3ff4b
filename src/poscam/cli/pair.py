"""CLI: poscam pair"""

import asyncio
import json
from typing import Optional

import click
from rich.console import Console

from poscam.client import AsyncCameraClient
from poscam.models.camera import CameraSnapshot, CameraState
from poscam.state import is_terminal

console = Console()

STATE_LABELS = {
    CameraState.PENDING: "[dim]requesting pairing code...[/dim]",
    CameraState.AWAITING_PEER: "[cyan]waiting for camera to scan the QR code[/cyan]",
    CameraState.ACTIVE: "[green]camera connected[/green]",
    CameraState.CLOSED: "[yellow]session closed[/yellow]",
    CameraState.FAILED: "[red]failed[/red]",
}


def _camera_config(**overrides):
    from poscam.cli.main import _camera_config
    return _camera_config(**overrides)


def _run(coro):
    from poscam.cli.main import _run
    return _run(coro)


@click.command("pair")
@click.argument("session_id")
@click.option("--host", envvar="POSCAM_HOST", default=None, help="Pairing service host")
@click.option("--insecure", is_flag=True, help="Use http/ws instead of the saved setting")
@click.option("--token", envvar="POSCAM_AUTH_TOKEN", default=None, help="Bearer token")
@click.option("--shoot", is_flag=True, help="Send take_picture whenever the camera connects")
@click.option("--json-output", "--json", is_flag=True)
def pair(session_id: str, host: Optional[str], insecure: bool, token: Optional[str],
         shoot: bool, json_output: bool):
    """Pair a camera for SESSION_ID and print captured image URLs."""
    if not session_id:
        raise click.BadParameter("must not be empty", param_hint="SESSION_ID")

    async def _pair() -> CameraSnapshot:
        cfg = _camera_config(host=host, use_https=False if insecure else None, auth_token=token)
        async with AsyncCameraClient.from_config(session_id, cfg) as client:
            queue: asyncio.Queue[CameraSnapshot] = asyncio.Queue()
            remove = client.add_listener(queue.put_nowait)
            try:
                await client.initialize()
                last_state: Optional[CameraState] = None
                seen_images = 0
                while True:
                    snapshot = await queue.get()
                    if snapshot.state != last_state:
                        last_state = snapshot.state
                        _print_state(snapshot, json_output)
                        if shoot and snapshot.state == CameraState.ACTIVE:
                            await client.take_picture()
                    for image in snapshot.images[seen_images:]:
                        _print_image(image.id, image.url, json_output)
                    seen_images = len(snapshot.images)
                    if is_terminal(snapshot.state) and queue.empty():
                        return snapshot
            finally:
                remove()

    try:
        final = _run(_pair())
    except KeyboardInterrupt:
        return
    if final.state == CameraState.FAILED:
        raise SystemExit(1)


def _print_state(snapshot: CameraSnapshot, json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps({
            "event": "state",
            "state": snapshot.state.value,
            "qr_code_url": snapshot.qr_code_url or None,
            "error": snapshot.error,
        }))
        return
    label = STATE_LABELS.get(snapshot.state, snapshot.state.value)
    if snapshot.state == CameraState.FAILED and snapshot.error:
        label = f"{label}: {snapshot.error}"
    console.print(label)
    if snapshot.state == CameraState.AWAITING_PEER and snapshot.pairing:
        console.print(f"QR code: [bold]{snapshot.qr_code_url}[/bold]  (code {snapshot.pairing.code})")


def _print_image(image_id: str, url: str, json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps({"event": "image", "id": image_id, "url": url}))
    else:
        console.print(f"[green]image[/green] {url}")
