from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Union

from .config import ExchangeSettings
from .errors import PortError
from .frames import Frame
from .link import LineConnection

logger = logging.getLogger(__name__)


class ResponseBuffer:
    """
    Reply bytes of the exchange in flight.

    The receive thread appends, the executor waits on the condition until
    the expected number of bytes is present or its deadline passes.
    """

    def __init__(self) -> None:
        self._data = bytearray()
        self._cond = threading.Condition()

    def append(self, data: bytes) -> None:
        with self._cond:
            self._data.extend(data)
            self._cond.notify_all()

    def clear(self) -> None:
        with self._cond:
            self._data.clear()

    def snapshot(self) -> bytes:
        with self._cond:
            return bytes(self._data)

    def __len__(self) -> int:
        with self._cond:
            return len(self._data)

    def wait_for_length(
        self,
        expected: int,
        timeout: float,
        poll_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> bool:
        deadline = clock() + timeout
        with self._cond:
            while len(self._data) != expected:
                remaining = deadline - clock()
                if remaining <= 0:
                    return False
                self._cond.wait(min(poll_interval, remaining))
            return True


class CommandExecutor:
    """Runs one bounded request/response exchange at a time over a line."""

    def __init__(self, connection: LineConnection, settings: Optional[ExchangeSettings] = None):
        self.connection = connection
        self.settings = settings or ExchangeSettings()
        self._buffer = ResponseBuffer()
        self._stats: Dict[str, int] = {"exchanges": 0, "failures": 0}

    def execute(
        self,
        frame: Union[Frame, bytes],
        expected: int,
        timeout_ms: Optional[int] = None,
    ) -> Optional[bytes]:
        """
        Send *frame* and collect the reply.

        Returns the reply when exactly *expected* bytes arrived before the
        deadline, otherwise None. Short, long and missing replies are not
        distinguished and nothing is retried.
        """
        request = bytes(frame)
        if timeout_ms is None:
            timeout_ms = self.settings.timeout_ms
        timeout = timeout_ms / 1000.0
        poll_interval = self.settings.poll_interval_ms / 1000.0
        self._stats["exchanges"] += 1
        self._buffer.clear()
        try:
            self.connection.open()
            with self.connection.listening(self._buffer.append):
                self._buffer.clear()
                self.connection.write(request)
                self._buffer.wait_for_length(expected, timeout, poll_interval)
        except PortError as exc:
            logger.warning("Exchange failed: %s", exc)
        finally:
            self.connection.close()
        reply = self._buffer.snapshot()
        if len(reply) != expected:
            self._stats["failures"] += 1
            logger.debug(
                "No valid reply to %s (expected=%d received=%d)",
                request.hex(" "),
                expected,
                len(reply),
            )
            return None
        return reply

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)
