"""
Optris CT frame codec.

Request format: [0xB0 + ADDR][CMD][PAYLOAD...][SUFFIX...][XOR]
- ADDR: device address 1..4, or 0 to address the whole line
- CMD: command code
- PAYLOAD: 2-byte big-endian value for write commands
- SUFFIX: [last address][XOR] for line mode reads
- XOR: checksum over CMD + PAYLOAD (write commands only)

Replies carry no framing at all: the expected length for the command is the
only delimiter.
"""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass
from decimal import Decimal
from functools import reduce
from typing import Dict, Iterable, Optional

from .errors import FrameError

ADDRESS_BASE = 0xB0
BROADCAST_ADDRESS = 0
MAX_DEVICES = 4

RATIO_MIN = 0.0
RATIO_MAX = 1.1
RATIO_SCALE = 1000
RATIO_DECIMALS = 3

TEMPERATURE_OFFSET = 1000
TEMPERATURE_SCALE = Decimal(10)
TEMPERATURE_SIZE = 2


class Command(enum.IntEnum):
    """Command codes (host -> sensor head) with their fixed reply length."""

    READ_TEMPERATURE = 0x01
    READ_EMISSIVITY = 0x04
    READ_TRANSMISSIVITY = 0x05
    READ_SERIAL_NUMBER = 0x0E
    READ_FIRMWARE_VERSION = 0x0F
    READ_TEMPERATURE_LINE_MODE = 0x2E
    WRITE_EMISSIVITY = 0x84
    WRITE_TRANSMISSIVITY = 0x85

    @property
    def reply_size(self) -> int:
        """Reply length in bytes; per configured address for line mode."""
        return _REPLY_SIZES[self]

    @property
    def is_write(self) -> bool:
        return self in (Command.WRITE_EMISSIVITY, Command.WRITE_TRANSMISSIVITY)


_REPLY_SIZES = {
    Command.READ_TEMPERATURE: TEMPERATURE_SIZE,
    Command.READ_EMISSIVITY: 2,
    Command.READ_TRANSMISSIVITY: 2,
    Command.READ_SERIAL_NUMBER: 3,
    Command.READ_FIRMWARE_VERSION: 2,
    Command.READ_TEMPERATURE_LINE_MODE: TEMPERATURE_SIZE,
    Command.WRITE_EMISSIVITY: 2,
    Command.WRITE_TRANSMISSIVITY: 2,
}


@dataclass
class Frame:
    address: int
    command: Command
    payload: bytes = b""
    suffix: bytes = b""
    checksum: Optional[int] = None

    def to_bytes(self) -> bytes:
        head = bytes([ADDRESS_BASE + self.address, int(self.command)])
        tail = bytes([self.checksum]) if self.checksum is not None else b""
        return head + bytes(self.payload) + bytes(self.suffix) + tail

    def __bytes__(self) -> bytes:
        return self.to_bytes()


def checksum(data: Iterable[int]) -> int:
    return reduce(lambda acc, byte: acc ^ byte, data, 0) & 0xFF


def is_valid_ratio(value: float) -> bool:
    return RATIO_MIN <= value <= RATIO_MAX


def encode_ratio(value: float) -> bytes:
    """
    Round a ratio to three decimals and send it as thousandths in a signed
    16-bit value, high byte first.
    """
    # decode_ratio(encode_ratio(v)) == round(v, 3)
    thousandths = round(round(value, RATIO_DECIMALS) * RATIO_SCALE)
    return struct.pack(">h", int(thousandths))


def build_frame(address: int, command: Command, payload: bytes = b"") -> Frame:
    """
    Build a request frame for a single device.

    Write commands carry their payload followed by the XOR of the command
    byte and the payload; the address byte is not part of the checksum.
    """
    frame = Frame(address=address, command=command, payload=bytes(payload))
    if command.is_write:
        frame.checksum = checksum(bytes([int(command)]) + frame.payload)
    return frame


def encode_command(address: int, command: Command, payload: bytes = b"") -> bytes:
    return build_frame(address, command, payload).to_bytes()


def encode_line_mode_suffix(addresses: Iterable[int]) -> bytes:
    """Line mode reads end with the highest address and a checksum over [CMD, last]."""
    last = max(addresses)
    return bytes([last, checksum([int(Command.READ_TEMPERATURE_LINE_MODE), last])])


def build_line_mode_frame(addresses: Iterable[int]) -> Frame:
    return Frame(
        address=BROADCAST_ADDRESS,
        command=Command.READ_TEMPERATURE_LINE_MODE,
        suffix=encode_line_mode_suffix(addresses),
    )


def _require(data: bytes, size: int) -> bytes:
    if len(data) != size:
        raise FrameError(size, len(data))
    return bytes(data)


def decode_serial_number(data: bytes) -> int:
    # 24-bit identifier, most significant byte first
    raw = _require(data, 3)
    return struct.unpack("<i", raw[::-1] + b"\x00")[0]


def decode_firmware_version(data: bytes) -> int:
    raw = _require(data, 2)
    return struct.unpack("<h", raw[::-1])[0]


def decode_ratio(data: bytes) -> float:
    raw = _require(data, 2)
    return (raw[0] * 256 + raw[1]) / float(RATIO_SCALE)


def decode_temperature(data: bytes) -> Decimal:
    """Tenths of a degree Celsius with a 100.0 degC offset baked into the raw value."""
    raw = _require(data, TEMPERATURE_SIZE)
    return Decimal(raw[0] * 256 + raw[1] - TEMPERATURE_OFFSET) / TEMPERATURE_SCALE


def split_line_reply(data: bytes) -> Dict[int, Decimal]:
    """
    Split a line mode reply into per-address temperatures.

    The line answers in address order starting at 1, so chunk i always
    belongs to address i + 1 whatever addresses were requested.
    """
    temperatures: Dict[int, Decimal] = {}
    for index in range(len(data) // TEMPERATURE_SIZE):
        chunk = data[index * TEMPERATURE_SIZE : (index + 1) * TEMPERATURE_SIZE]
        temperatures[index + 1] = decode_temperature(chunk)
    return temperatures


def verify_echo(sent_payload: bytes, echoed: bytes) -> bool:
    """A write is acknowledged by echoing the value bytes in wire order."""
    return bytes(echoed) == bytes(sent_payload)
