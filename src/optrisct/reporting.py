"""Response envelope and CSV writers for command results."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

CSV_SEPARATOR = ";"


@dataclass
class Response:
    """What every command prints: an error flag, messages and the payload."""

    error_occurred: bool = False
    error_message: List[str] = field(default_factory=list)
    data: Any = None

    def fail(self, message: str) -> "Response":
        self.error_occurred = True
        self.error_message.append(message)
        return self

    def to_json(self) -> str:
        return json.dumps(asdict(self), default=_json_default)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def measurement_filename(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return f"Temperature_Measurement_{stamp}.csv"


def series_frame(series: Mapping[int, Decimal]) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "elapsed_ms": list(series.keys()),
            "temperature": [str(value) for value in series.values()],
        }
    )


def line_frame(measurements: Mapping[int, Mapping[int, Decimal]]) -> pd.DataFrame:
    """One row per elapsed time, one column per address."""
    columns: Dict[str, pd.Series] = {
        f"address_{address}": pd.Series({ts: str(value) for ts, value in series.items()}, dtype=object)
        for address, series in sorted(measurements.items())
    }
    df = pd.DataFrame(columns)
    df.index.name = "elapsed_ms"
    return df.sort_index().reset_index()


def save_series_csv(
    series: Mapping[int, Decimal],
    output_dir: Path,
    *,
    now: Optional[datetime] = None,
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / measurement_filename(now)
    series_frame(series).to_csv(path, sep=CSV_SEPARATOR, index=False)
    return path


def save_line_csv(
    measurements: Mapping[int, Mapping[int, Decimal]],
    output_dir: Path,
    *,
    now: Optional[datetime] = None,
) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / measurement_filename(now)
    line_frame(measurements).to_csv(path, sep=CSV_SEPARATOR, index=False)
    return path
