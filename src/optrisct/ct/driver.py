"""
Optris CT driver.

A driver is bound either to one sensor head (single-address mode) or to a
set of heads read together in line mode. The mode and addresses are fixed
when the driver is created.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from .config import CtConfig
from .errors import AddressError, FrameError, PortError
from .executor import CommandExecutor
from .frames import (
    MAX_DEVICES,
    Command,
    build_frame,
    decode_firmware_version,
    decode_ratio,
    decode_serial_number,
    encode_ratio,
    is_valid_ratio,
    verify_echo,
)
from .link import LineConnection
from .sampling import LineModeSampler, SampleCallback, Series, TemperatureSampler

logger = logging.getLogger(__name__)

DecimalLike = Union[Decimal, int, float, str]


def to_decimal(value: DecimalLike) -> Decimal:
    """Convert a correction value without carrying binary float noise."""
    try:
        return value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid decimal value {value!r}") from exc


def validate_address(address: int) -> int:
    if not 1 <= address <= MAX_DEVICES:
        raise AddressError(
            f"Invalid value for Optris CT address. Min: 1, max: {MAX_DEVICES}. Provided: {address}",
            address,
        )
    return address


class CtDriver:
    """
    Protocol driver for one Optris CT line.

    Construction validates the addresses and probes the port; both failures
    raise before any command is sent. Single-shot reads return None and
    writes return False when the exchange fails.
    """

    def __init__(
        self,
        port: str,
        address: Optional[int] = None,
        addresses: Optional[Sequence[int]] = None,
        config: Optional[CtConfig] = None,
    ):
        if not port:
            raise PortError(port, "no serial port provided")
        if (address is None) == (addresses is None):
            raise AddressError("Provide either a single address or a list of addresses")
        if addresses is not None:
            if len(addresses) < 1:
                raise AddressError("The list of Optris CT addresses is empty")
            self._addresses: Tuple[int, ...] = tuple(validate_address(a) for a in addresses)
            self._address: Optional[int] = None
        else:
            assert address is not None
            self._address = validate_address(address)
            self._addresses = ()

        self.config = config or CtConfig()
        self.connection = LineConnection(port)
        self.connection.probe()
        self.executor = CommandExecutor(self.connection, self.config.exchange)

    @classmethod
    def single(cls, port: str, address: int, config: Optional[CtConfig] = None) -> "CtDriver":
        return cls(port, address=address, config=config)

    @classmethod
    def line(cls, port: str, addresses: Sequence[int], config: Optional[CtConfig] = None) -> "CtDriver":
        return cls(port, addresses=addresses, config=config)

    @property
    def port(self) -> str:
        return self.connection.port

    @property
    def address(self) -> Optional[int]:
        return self._address

    @property
    def addresses(self) -> Tuple[int, ...]:
        return self._addresses

    @property
    def line_mode(self) -> bool:
        return self._address is None

    def _single_address(self) -> int:
        if self._address is None:
            raise AddressError("This operation needs a driver bound to a single address")
        return self._address

    def _request(self, command: Command, payload: bytes = b"") -> Optional[bytes]:
        frame = build_frame(self._single_address(), command, payload)
        return self.executor.execute(frame, command.reply_size)

    def read_serial_number(self) -> Optional[int]:
        reply = self._request(Command.READ_SERIAL_NUMBER)
        return decode_serial_number(reply) if reply is not None else None

    def read_firmware_version(self) -> Optional[int]:
        reply = self._request(Command.READ_FIRMWARE_VERSION)
        return decode_firmware_version(reply) if reply is not None else None

    def read_emissivity(self) -> Optional[float]:
        return self._read_ratio(Command.READ_EMISSIVITY)

    def write_emissivity(self, value: float) -> bool:
        return self._write_ratio(Command.WRITE_EMISSIVITY, value)

    def read_transmissivity(self) -> Optional[float]:
        return self._read_ratio(Command.READ_TRANSMISSIVITY)

    def write_transmissivity(self, value: float) -> bool:
        return self._write_ratio(Command.WRITE_TRANSMISSIVITY, value)

    def _read_ratio(self, command: Command) -> Optional[float]:
        reply = self._request(command)
        if reply is None:
            return None
        try:
            value = decode_ratio(reply)
        except FrameError as exc:
            logger.debug("%s: %s", command.name, exc)
            return None
        if not is_valid_ratio(value):
            logger.warning("%s returned out-of-range value %.3f", command.name, value)
            return None
        return value

    def _write_ratio(self, command: Command, value: float) -> bool:
        address = self._single_address()
        if not is_valid_ratio(value):
            logger.warning("Refusing to send %s with out-of-range value %s", command.name, value)
            return False
        payload = encode_ratio(value)
        echoed = self._request(command, payload)
        if echoed is None:
            return False
        if not verify_echo(payload, echoed):
            logger.warning(
                "%s rejected by address %d (sent=%s echoed=%s)",
                command.name,
                address,
                payload.hex(" "),
                echoed.hex(" "),
            )
            return False
        logger.info("%s set to %.3f on address %d", command.name, value, address)
        return True

    def monitor_temperature(
        self,
        duration_ms: int,
        correction: DecimalLike = Decimal(0),
        on_sample: Optional[SampleCallback] = None,
    ) -> Series:
        """Sample one head for *duration_ms*; returns elapsed ms -> degC."""
        sampler = TemperatureSampler(self.executor, self._single_address(), to_decimal(correction))
        if on_sample is not None:
            sampler.register_callback(on_sample)
        return sampler.run(duration_ms)

    def monitor_temperature_line_mode(
        self,
        duration_ms: int,
        corrections: Optional[Mapping[int, DecimalLike]] = None,
        on_sample: Optional[SampleCallback] = None,
    ) -> Dict[int, Series]:
        """Sample all configured heads for *duration_ms*; returns address -> series."""
        if not self.line_mode:
            raise AddressError("Line mode needs a driver bound to a list of addresses")
        normalized = {int(k): to_decimal(v) for k, v in (corrections or {}).items()}
        sampler = LineModeSampler(self.executor, self._addresses, normalized)
        if on_sample is not None:
            sampler.register_callback(on_sample)
        return sampler.run(duration_ms)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "CtDriver":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        target = list(self._addresses) if self.line_mode else self._address
        return f"CtDriver({self.port!r}, {'addresses' if self.line_mode else 'address'}={target})"
