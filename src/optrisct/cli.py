"""Command line interface for the optrisct package."""
from __future__ import annotations

import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, List, Optional

import typer

from .ct.config import DEFAULT_CONFIG_PATH, CtConfig, load_config
from .ct.driver import CtDriver
from .ct.errors import OptrisCtError
from .ct.frames import is_valid_ratio
from .reporting import Response, save_line_csv, save_series_csv

logger = logging.getLogger(__name__)

app = typer.Typer(
    add_completion=False,
    help="Optris CT line utilities.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

PORT_OPTION = typer.Option(
    None, "--port", "-p", help="Serial port the line is connected to (default: 'port' from the config)."
)
ADDRESS_OPTION = typer.Option(..., "--address", "-a", help="The multi-address of the device (1-4).")


def parse_addresses(addresses: str) -> List[int]:
    """Split a `;` separated list of single-digit addresses."""
    parsed: List[int] = []
    for token in addresses.split(";"):
        token = token.strip()
        if not token:
            continue
        if len(token) != 1 or not token.isdigit():
            raise ValueError("Only addresses from 1 to 4 are allowed")
        parsed.append(int(token))
    return parsed


def parse_decimal(raw: str) -> Decimal:
    try:
        return Decimal(raw.strip().replace(",", "."))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid value provided for the temperature correction {raw}") from exc


def parse_corrections(corrections: Optional[str], addresses: List[int]) -> Dict[int, Decimal]:
    """
    Split a `;` separated list of correction values.

    The k-th value belongs to address k, which must be one of the
    configured addresses.
    """
    parsed: Dict[int, Decimal] = {}
    if not corrections:
        return parsed
    index = 1
    for token in corrections.split(";"):
        token = token.strip()
        if not token:
            continue
        if index not in addresses:
            raise ValueError(
                f"A temperature correction value '{token}' was provided for the address {index} "
                "but this address is not in the list of addresses"
            )
        parsed[index] = parse_decimal(token)
        index += 1
    return parsed


def _emit(response: Response) -> None:
    typer.echo(response.to_json())
    if response.error_occurred:
        raise typer.Exit(code=1)


def _config(ctx: typer.Context) -> CtConfig:
    return ctx.obj if isinstance(ctx.obj, CtConfig) else CtConfig()


def _port(ctx: typer.Context, port: Optional[str]) -> str:
    return port or _config(ctx).port


def _log_sample(address: int, elapsed_ms: int, value: Decimal) -> None:
    logger.debug("address=%d t=%dms T=%s degC", address, elapsed_ms, value)


def _save_csv(writer: Callable[..., Path], data: object) -> None:
    # a failed write must not hide the measurement printed on stdout
    try:
        path = writer(data, Path.cwd())
    except OSError as exc:
        logger.error("Cannot write the CSV log: %s", exc)
        return
    logger.info("Saved measurements to %s", path)


def _single_shot(ctx: typer.Context, port: Optional[str], address: int, operation: Callable[[CtDriver], object], failure: str) -> None:
    response = Response()
    port = _port(ctx, port)
    try:
        with CtDriver.single(port, address, config=_config(ctx)) as driver:
            result = operation(driver)
        if result is None or result is False:
            response.fail(failure)
        elif result is not True:
            response.data = result
    except OptrisCtError as exc:
        response.fail(str(exc))
    _emit(response)


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        help=f"JSON file with the port and exchange settings (default: {DEFAULT_CONFIG_PATH} when present).",
        exists=True,
        dir_okay=False,
    ),
    override: Optional[List[str]] = typer.Option(
        None, "--set", help="Override config keys, e.g. --set exchange.timeout_ms=1500"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol traffic to stderr."),
) -> None:
    """Talk to Optris CT sensor heads sharing one serial line."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config_path is None and DEFAULT_CONFIG_PATH.is_file():
        config_path = DEFAULT_CONFIG_PATH
    try:
        ctx.obj = load_config(config_path, override)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--set") from exc


@app.command()
def temperature(
    ctx: typer.Context,
    port: Optional[str] = PORT_OPTION,
    address: int = ADDRESS_OPTION,
    duration: int = typer.Option(..., "--duration", "-d", min=0, help="Duration of the operation in milliseconds."),
    correction: str = typer.Option("0", "--correction", "-c", help="Correction added to every reading (degC)."),
    log: bool = typer.Option(False, "--log", "-l", help="Save the measured data into a CSV file."),
) -> None:
    """Read the temperature of one address continuously for DURATION ms."""

    response = Response()
    port = _port(ctx, port)
    try:
        offset = parse_decimal(correction)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--correction") from exc
    try:
        with CtDriver.single(port, address, config=_config(ctx)) as driver:
            series = driver.monitor_temperature(duration, offset, on_sample=_log_sample)
        if not series:
            response.fail(f"No temperatures could be read from the device connected on the port {port}")
        else:
            response.data = series
            if log:
                _save_csv(save_series_csv, series)
    except OptrisCtError as exc:
        response.fail(str(exc))
    _emit(response)


@app.command()
def temperatures(
    ctx: typer.Context,
    port: Optional[str] = PORT_OPTION,
    addresses: str = typer.Option(..., "--addresses", "-A", help="Multi-addresses of the devices, ';' separated."),
    duration: int = typer.Option(..., "--duration", "-d", min=0, help="Duration of the operation in milliseconds."),
    corrections: Optional[str] = typer.Option(
        None, "--corrections", "-C", help="Correction values per address, ';' separated."
    ),
    log: bool = typer.Option(False, "--log", "-l", help="Save the measured data into a CSV file."),
) -> None:
    """Read the temperature of several addresses in line mode for DURATION ms."""

    response = Response()
    port = _port(ctx, port)
    try:
        address_list = parse_addresses(addresses)
        offsets = parse_corrections(corrections, address_list)
    except ValueError as exc:
        _emit(response.fail(str(exc)))
        return
    if offsets and len(offsets) != len(address_list):
        _emit(
            response.fail(
                "The list of addresses and the list of correction values must have the same length. "
                f"Provided have been {len(address_list)} addresses and {len(offsets)} correction values"
            )
        )
        return
    try:
        with CtDriver.line(port, address_list, config=_config(ctx)) as driver:
            measurements = driver.monitor_temperature_line_mode(duration, offsets, on_sample=_log_sample)
        if not measurements:
            response.fail(f"No temperatures could be read from the device connected on the port {port}")
        else:
            response.data = measurements
            if log:
                _save_csv(save_line_csv, measurements)
    except OptrisCtError as exc:
        response.fail(str(exc))
    _emit(response)


@app.command("serial-number")
def serial_number(ctx: typer.Context, port: Optional[str] = PORT_OPTION, address: int = ADDRESS_OPTION) -> None:
    """Read the serial number of one device."""

    _single_shot(ctx, port, address, CtDriver.read_serial_number, "Cannot read the serial number")


@app.command("fw-version")
def fw_version(ctx: typer.Context, port: Optional[str] = PORT_OPTION, address: int = ADDRESS_OPTION) -> None:
    """Read the firmware version of one device."""

    _single_shot(ctx, port, address, CtDriver.read_firmware_version, "Cannot read the firmware version")


@app.command()
def emissivity(ctx: typer.Context, port: Optional[str] = PORT_OPTION, address: int = ADDRESS_OPTION) -> None:
    """Read the emissivity of one device."""

    _single_shot(ctx, port, address, CtDriver.read_emissivity, "Cannot read the emissivity")


@app.command()
def transmissivity(ctx: typer.Context, port: Optional[str] = PORT_OPTION, address: int = ADDRESS_OPTION) -> None:
    """Read the transmissivity of one device."""

    _single_shot(ctx, port, address, CtDriver.read_transmissivity, "Cannot read the transmissivity")


@app.command("set-emissivity")
def set_emissivity(
    ctx: typer.Context,
    port: Optional[str] = PORT_OPTION,
    address: int = ADDRESS_OPTION,
    set_value: float = typer.Option(..., "--set-value", "-s", help="Emissivity to set (0.0-1.1)."),
) -> None:
    """Set the emissivity of one device."""

    if not is_valid_ratio(set_value):
        _emit(Response().fail(f"Invalid value provided for setting the emissivity: {set_value}"))
        return
    _single_shot(
        ctx,
        port,
        address,
        lambda driver: driver.write_emissivity(set_value),
        f"Error setting the emissivity to: {set_value}",
    )


@app.command("set-transmissivity")
def set_transmissivity(
    ctx: typer.Context,
    port: Optional[str] = PORT_OPTION,
    address: int = ADDRESS_OPTION,
    set_value: float = typer.Option(..., "--set-value", "-s", help="Transmissivity to set (0.0-1.1)."),
) -> None:
    """Set the transmissivity of one device."""

    if not is_valid_ratio(set_value):
        _emit(Response().fail(f"Invalid value provided for setting the transmissivity: {set_value}"))
        return
    _single_shot(
        ctx,
        port,
        address,
        lambda driver: driver.write_transmissivity(set_value),
        f"Error setting the transmissivity to: {set_value}",
    )


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
