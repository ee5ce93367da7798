"""
Serial line connection.

The port is opened around each exchange and closed again afterwards. While
open, a background thread reads whatever the line delivers and hands it to
the arrival callback registered for the current exchange.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import serial

from .errors import PortError

logger = logging.getLogger(__name__)

# Fixed link parameters of the CT line: 115200 8N1, no handshake, DTR and RTS asserted.
BAUDRATE = 115200
BYTESIZE = 8
PARITY = "N"
STOPBITS = 1
READ_TIMEOUT = 0.5
WRITE_TIMEOUT = 0.5

ArrivalCallback = Callable[[bytes], None]


class LineConnection:
    """Owns the serial channel shared by all sensor heads on one line."""

    def __init__(self, port: str):
        if not port:
            raise PortError(port, "no serial port provided")
        self._port = port
        self._serial: Optional[serial.Serial] = None
        self._rx_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._callback: Optional[ArrivalCallback] = None
        self._callback_lock = threading.Lock()

    @property
    def port(self) -> str:
        return self._port

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def probe(self) -> None:
        """Open and immediately close the port to check that it is usable."""
        handle = self._open_handle()
        handle.close()
        logger.info("Verified serial port %s at %d bps", self.port, BAUDRATE)

    def open(self) -> None:
        if self.is_open:
            return
        self._serial = self._open_handle()
        self._stop_event.clear()
        self._rx_thread = threading.Thread(
            target=self._rx_loop,
            args=(self._serial,),
            name=f"optrisct-rx-{self.port}",
            daemon=True,
        )
        self._rx_thread.start()
        logger.debug("Opened %s", self.port)

    def close(self) -> None:
        self._stop_event.set()
        handle = self._serial
        if handle is not None and handle.is_open:
            try:
                handle.cancel_read()
            except serial.SerialException as exc:
                logger.debug("cancel_read failed on %s: %s", self.port, exc)
        if self._rx_thread is not None:
            self._rx_thread.join(timeout=READ_TIMEOUT + 0.5)
            self._rx_thread = None
        if handle is not None:
            try:
                handle.close()
            except serial.SerialException as exc:
                logger.debug("close failed on %s: %s", self.port, exc)
            self._serial = None
            logger.debug("Closed %s", self.port)

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise PortError(self.port, "port not open")
        assert self._serial is not None
        try:
            count = self._serial.write(data)
            self._serial.flush()
        except serial.SerialException as exc:
            raise PortError(self.port, f"write failed: {exc}") from exc
        logger.debug("TX (%d bytes): %s", len(data), bytes(data).hex(" "))
        return count

    @contextmanager
    def listening(self, callback: ArrivalCallback) -> Iterator[None]:
        """Route arriving bytes to *callback* for the duration of one exchange."""
        with self._callback_lock:
            if self._callback is not None:
                raise RuntimeError(f"An exchange is already in progress on {self.port}")
            self._callback = callback
        try:
            yield
        finally:
            with self._callback_lock:
                self._callback = None

    def _open_handle(self) -> serial.Serial:
        handle = serial.Serial(
            port=None,
            baudrate=BAUDRATE,
            bytesize=BYTESIZE,
            parity=PARITY,
            stopbits=STOPBITS,
            xonxoff=False,
            rtscts=False,
            timeout=READ_TIMEOUT,
            write_timeout=WRITE_TIMEOUT,
        )
        handle.port = self.port
        # applied by pyserial when the port opens
        handle.dtr = True
        handle.rts = True
        try:
            handle.open()
        except (serial.SerialException, ValueError) as exc:
            raise PortError(self.port, str(exc)) from exc
        return handle

    def _rx_loop(self, handle: serial.Serial) -> None:
        while not self._stop_event.is_set():
            try:
                data = handle.read(max(1, handle.in_waiting))
            except serial.SerialException as exc:
                if not self._stop_event.is_set():
                    logger.warning("Serial error (%s): %s", self.port, exc)
                break
            if not data:
                continue
            logger.debug("RX (%d bytes): %s", len(data), data.hex(" "))
            self._deliver(data)

    def _deliver(self, data: bytes) -> None:
        with self._callback_lock:
            callback = self._callback
        if callback is None:
            logger.debug("Discarding %d unsolicited bytes on %s", len(data), self.port)
            return
        callback(data)

    def __enter__(self) -> "LineConnection":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"LineConnection({self.port}, {BAUDRATE}, {status})"
