"""
Optris CT multi-drop line protocol.

The subpackage holds the serial link, the frame codec, the bounded
request/response executor and the sampling loops, plus the `CtDriver`
facade tying them together for one line.
"""

from .config import CtConfig, ExchangeSettings, load_config
from .driver import CtDriver
from .errors import AddressError, FrameError, OptrisCtError, PortError
from .executor import CommandExecutor, ResponseBuffer
from .frames import (
    BROADCAST_ADDRESS,
    MAX_DEVICES,
    Command,
    Frame,
    checksum,
    decode_firmware_version,
    decode_ratio,
    decode_serial_number,
    decode_temperature,
    encode_command,
    encode_line_mode_suffix,
    encode_ratio,
)
from .link import LineConnection
from .sampling import LineModeSampler, SamplerState, TemperatureSampler

__all__ = [
    "CtConfig",
    "ExchangeSettings",
    "load_config",
    "CtDriver",
    "AddressError",
    "FrameError",
    "OptrisCtError",
    "PortError",
    "CommandExecutor",
    "ResponseBuffer",
    "BROADCAST_ADDRESS",
    "MAX_DEVICES",
    "Command",
    "Frame",
    "checksum",
    "decode_firmware_version",
    "decode_ratio",
    "decode_serial_number",
    "decode_temperature",
    "encode_command",
    "encode_line_mode_suffix",
    "encode_ratio",
    "LineConnection",
    "LineModeSampler",
    "SamplerState",
    "TemperatureSampler",
]
