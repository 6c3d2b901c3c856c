"""Typer CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from yudectl.core.config_loader import load_settings
from yudectl.core.errors import YudectlError
from yudectl.core.service import CommandService
from yudectl.transports.ble_gatt import build_host_stack

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

app = typer.Typer(help="Send the LED reset command to a Yudetamago config peripheral over BLE")


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        force=True,
    )
    if not debug:
        logging.getLogger("bleak").setLevel(logging.WARNING)


@app.command()
def main(
    device: str | None = typer.Option(
        None, "--device", help="Implementation of BLE: 'default' or a BlueZ adapter such as hci0"
    ),
    sd: float | None = typer.Option(
        None, "--sd", help="Scanning duration in seconds, 0 for indefinitely [default: 5]"
    ),
    config: Path | None = typer.Option(None, "--config", help="Path to a YAML settings file"),
    debug: bool = typer.Option(False, "--debug", help="Log profile details and BLE internals"),
) -> None:
    """Scan, connect, send the command and wait for its result."""
    configure_logging(debug)
    try:
        loaded = load_settings(config, device=device, scan_duration_s=sd)
        for warning in loaded.warnings:
            typer.echo(f"Warning: {warning}", err=True)

        service = CommandService(
            build_host_stack(loaded.settings.device),
            loaded.settings,
            notify=typer.echo,
        )
        result = service.run()
        typer.echo(
            f"Sent {result.command.strip()!r} to {result.address} (MTU {result.mtu}) "
            f"response={result.response.strip()!r} after {result.reads} read(s)"
        )
    except YudectlError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
