from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence, Tuple

DEFAULT_CONFIG_PATH = Path("config/default.json")

# The serial link parameters are fixed in link.py and not configurable.
CONFIG_KEYS = ("port", "exchange.timeout_ms", "exchange.poll_interval_ms")


@dataclass
class ExchangeSettings:
    timeout_ms: int = 1000
    poll_interval_ms: int = 30

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError("exchange.timeout_ms must be positive")
        if self.poll_interval_ms <= 0:
            raise ValueError("exchange.poll_interval_ms must be positive")


@dataclass
class CtConfig:
    port: str = ""
    exchange: ExchangeSettings = field(default_factory=ExchangeSettings)


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> CtConfig:
    """
    Load the driver configuration from JSON and apply CLI-style overrides.

    Only the default port and the exchange timing can be configured, e.g.:
        ["port=/dev/ttyUSB1", "exchange.timeout_ms=1500"]
    Any other key raises ValueError.
    """
    values: Dict[str, Any] = _flatten(_read_json(Path(path))) if path is not None else {}
    for override in overrides or []:
        key, raw_value = _split_override(override)
        values[key] = raw_value
    unknown = sorted(set(values) - set(CONFIG_KEYS))
    if unknown:
        raise ValueError(
            f"Unknown configuration key(s): {', '.join(unknown)}. "
            f"Supported keys: {', '.join(CONFIG_KEYS)}"
        )
    defaults = ExchangeSettings()
    try:
        exchange = ExchangeSettings(
            timeout_ms=int(values.get("exchange.timeout_ms", defaults.timeout_ms)),
            poll_interval_ms=int(values.get("exchange.poll_interval_ms", defaults.poll_interval_ms)),
        )
    except TypeError as exc:
        raise ValueError(f"Invalid exchange setting: {exc}") from exc
    return CtConfig(port=str(values.get("port", "")), exchange=exchange)


def _read_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must hold a JSON object")
    return data


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def _split_override(item: str) -> Tuple[str, str]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    return key, raw_value.strip()
