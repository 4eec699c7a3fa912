"""Typer CLI entrypoint."""

from __future__ import annotations

import logging

import typer

from ploadctl import __version__
from ploadctl.core.bootloader_types import load_bootloader_types
from ploadctl.core.errors import BootloaderNotFound, ExitCode, PloadError
from ploadctl.core.runner import Orchestrator
from ploadctl.transports.usb import UsbTransport

USAGE = f"""ploadctl: USB bootloader utility
Version {__version__}
Usage: ploadctl OPTIONS

Options available:
  -d SERIALNUMBER             Specifies the serial number of the bootloader.
  --list                      Lists bootloaders connected to computer.
  --list-supported            Lists all types of bootloaders supported.
  --wait                      Waits up to 10 seconds for bootloader to appear.
  -w HEXFILE                  Writes to flash and EEPROM, then restarts.
  --write HEXFILE             Writes to flash and EEPROM.
  --write-flash HEXFILE       Writes to flash.
  --write-eeprom HEXFILE      Writes to EEPROM.
  --erase                     Erases flash and EEPROM.
  --erase-flash               Erases flash.
  --erase-eeprom              Erases EEPROM.
  --read HEXFILE              Reads flash and EEPROM and saves to file.
  --read-flash HEXFILE        Reads flash and saves to file.
  --read-eeprom HEXFILE       Reads EEPROM and saves to file.
  --restart                   Restarts the device so it can run the new code.
  --verbose                   Logs debug details to stderr.

HEXFILE is the name of the .HEX file to be used.

Example: ploadctl -w app.hex
Example: ploadctl -d 12345678 --wait --write-flash app.hex --restart
Example: ploadctl --erase
"""

app = typer.Typer(add_completion=False)


def _warn(message: str) -> None:
    typer.echo(message, err=True)


class ProgressPrinter:
    """Single-line percentage display on stderr for long transfers."""

    def __init__(self) -> None:
        self._status: str | None = None

    def __call__(self, status: str, progress: int, maximum: int) -> None:
        if self._status is not None and status != self._status:
            typer.echo("", err=True)
        self._status = status
        percent = 100 * progress // maximum if maximum else 100
        typer.echo(f"\r{status} {percent:3d}%", nl=False, err=True)
        if progress >= maximum:
            typer.echo("", err=True)
            self._status = None


def _build_orchestrator() -> Orchestrator:
    loaded = load_bootloader_types()
    for warning in loaded.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    return Orchestrator(
        UsbTransport(),
        loaded.sorted_types(),
        echo=typer.echo,
        warn=_warn,
        progress=ProgressPrinter(),
    )


@app.command(
    help="Flash Intel HEX files into USB bootloaders. Run without options for usage.",
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", help="Log debug details to stderr."),
) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    if not ctx.args:
        typer.echo(USAGE)
        raise typer.Exit(code=int(ExitCode.BAD_ARGS))

    try:
        _build_orchestrator().run(ctx.args)
    except BootloaderNotFound as exc:
        if exc.informational:
            typer.echo(str(exc))
        else:
            typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=int(exc.exit_code)) from None
    except PloadError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=int(exc.exit_code)) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
