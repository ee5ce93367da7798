from __future__ import annotations

import enum
import logging
import time
from decimal import Decimal
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from .frames import Command, Frame, build_frame, build_line_mode_frame, decode_temperature, split_line_reply

logger = logging.getLogger(__name__)

Series = Dict[int, Decimal]
SampleCallback = Callable[[int, int, Decimal], None]


class Exchanger(Protocol):
    def execute(self, frame: Union[Frame, bytes], expected: int, timeout_ms: Optional[int] = None) -> Optional[bytes]:
        ...


class SamplerState(str, enum.Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    DONE = "done"


class _Sampler:
    """
    Deadline-driven acquisition loop shared by both sampling modes.

    The loop is tight: a new exchange starts as soon as the previous one
    finishes, and only the elapsed time ends it. Failed exchanges add
    nothing to the series.
    """

    def __init__(self, executor: Exchanger, clock: Callable[[], float] = time.monotonic):
        self.executor = executor
        self.state = SamplerState.IDLE
        self._clock = clock
        self._callbacks: List[SampleCallback] = []
        self._failures = 0

    def register_callback(self, callback: SampleCallback) -> None:
        self._callbacks.append(callback)

    @property
    def failures(self) -> int:
        return self._failures

    def _frame(self) -> Frame:
        raise NotImplementedError

    def _expected(self) -> int:
        raise NotImplementedError

    def _record(self, elapsed_ms: int, reply: bytes) -> None:
        raise NotImplementedError

    def _emit(self, address: int, elapsed_ms: int, value: Decimal) -> None:
        for callback in self._callbacks:
            callback(address, elapsed_ms, value)

    def _acquire(self, duration_ms: int) -> None:
        if duration_ms < 0:
            raise ValueError("duration_ms must not be negative")
        frame = self._frame()
        expected = self._expected()
        self._failures = 0
        last_ms = -1
        start = self._clock()

        def elapsed_ms() -> int:
            return int((self._clock() - start) * 1000)

        self.state = SamplerState.SAMPLING
        try:
            while elapsed_ms() < duration_ms:
                reply = self.executor.execute(frame, expected)
                if reply is None:
                    self._failures += 1
                    continue
                # keys stay unique even if two replies land in the same millisecond
                timestamp = max(elapsed_ms(), last_ms + 1)
                last_ms = timestamp
                self._record(timestamp, reply)
        finally:
            self.state = SamplerState.DONE


class TemperatureSampler(_Sampler):
    """Monitors one sensor head."""

    def __init__(
        self,
        executor: Exchanger,
        address: int,
        correction: Decimal = Decimal(0),
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(executor, clock)
        self.address = address
        self.correction = correction
        self._series: Series = {}

    def _frame(self) -> Frame:
        return build_frame(self.address, Command.READ_TEMPERATURE)

    def _expected(self) -> int:
        return Command.READ_TEMPERATURE.reply_size

    def _record(self, elapsed_ms: int, reply: bytes) -> None:
        value = decode_temperature(reply) + self.correction
        self._series[elapsed_ms] = value
        self._emit(self.address, elapsed_ms, value)

    def run(self, duration_ms: int) -> Series:
        self._series = {}
        logger.info("Monitoring address %d for %d ms", self.address, duration_ms)
        self._acquire(duration_ms)
        logger.info(
            "Collected %d samples from address %d (failed exchanges=%d)",
            len(self._series),
            self.address,
            self.failures,
        )
        return self._series


class LineModeSampler(_Sampler):
    """
    Monitors every configured head with one broadcast read per iteration.

    The reply holds two bytes per configured address; chunk i is assigned
    to address i + 1 regardless of which addresses were configured.
    """

    def __init__(
        self,
        executor: Exchanger,
        addresses: Sequence[int],
        corrections: Optional[Mapping[int, Decimal]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(executor, clock)
        self.addresses = tuple(addresses)
        self.corrections: Dict[int, Decimal] = dict(corrections or {})
        self._measurements: Dict[int, Series] = {}

    def _frame(self) -> Frame:
        return build_line_mode_frame(self.addresses)

    def _expected(self) -> int:
        return Command.READ_TEMPERATURE_LINE_MODE.reply_size * len(self.addresses)

    def _record(self, elapsed_ms: int, reply: bytes) -> None:
        for address, temperature in split_line_reply(reply).items():
            value = temperature + self.corrections.get(address, Decimal(0))
            self._measurements.setdefault(address, {})[elapsed_ms] = value
            self._emit(address, elapsed_ms, value)

    def run(self, duration_ms: int) -> Dict[int, Series]:
        self._measurements = {}
        logger.info("Monitoring line (addresses=%s) for %d ms", list(self.addresses), duration_ms)
        self._acquire(duration_ms)
        logger.info(
            "Collected %d line samples (failed exchanges=%d)",
            len(next(iter(self._measurements.values()), {})),
            self.failures,
        )
        return self._measurements
