from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import pytest

FAKE_PORT = "/dev/ttyCT0"


@dataclass
class FakeHead:
    temperature_raw: int = 1253  # 25.3 degC
    emissivity_raw: int = 950
    transmissivity_raw: int = 1000
    serial_number: int = 0x123456
    firmware: int = 2002


@dataclass
class FakeCtLine:
    """Answers request frames the way a line of CT heads does."""

    heads: Dict[int, FakeHead] = field(default_factory=lambda: {a: FakeHead() for a in range(1, 5)})
    silent: Set[int] = field(default_factory=set)
    corrupt_echo: bool = False
    requests: List[bytes] = field(default_factory=list)

    def answer(self, frame: bytes) -> bytes:
        self.requests.append(bytes(frame))
        address = frame[0] - 0xB0
        command = frame[1]
        if command == 0x2E:
            last = frame[2]
            return b"".join(
                self.heads[a].temperature_raw.to_bytes(2, "big")
                for a in range(1, last + 1)
                if a not in self.silent
            )
        if address in self.silent or address not in self.heads:
            return b""
        head = self.heads[address]
        if command == 0x01:
            return head.temperature_raw.to_bytes(2, "big")
        if command == 0x04:
            return head.emissivity_raw.to_bytes(2, "big")
        if command == 0x05:
            return head.transmissivity_raw.to_bytes(2, "big")
        if command == 0x0E:
            return head.serial_number.to_bytes(3, "big")
        if command == 0x0F:
            return head.firmware.to_bytes(2, "big")
        if command in (0x84, 0x85):
            payload = frame[2:4]
            if frame[4] != command ^ payload[0] ^ payload[1]:
                return b""
            raw = int.from_bytes(payload, "big")
            if command == 0x84:
                head.emissivity_raw = raw
            else:
                head.transmissivity_raw = raw
            return bytes([payload[0] ^ 0x01, payload[1]]) if self.corrupt_echo else bytes(payload)
        return b""


class FakeSerialException(OSError):
    pass


class FakeSerialPort:
    def __init__(self, module: "FakeSerialModule", **kwargs):
        self._module = module
        self.kwargs = kwargs
        self.port: Optional[str] = kwargs.get("port")
        self.timeout = kwargs.get("timeout") or 0.5
        self.dtr = False
        self.rts = False
        self.is_open = False
        self._rx = bytearray()
        self._cancelled = False
        self._cond = threading.Condition()

    def open(self) -> None:
        if self.port not in self._module.ports:
            raise FakeSerialException(f"could not open port {self.port}")
        self._module.opened.append((self.port, self.dtr, self.rts))
        self.is_open = True

    def close(self) -> None:
        with self._cond:
            self.is_open = False
            self._cond.notify_all()

    @property
    def in_waiting(self) -> int:
        with self._cond:
            return len(self._rx)

    def read(self, size: int = 1) -> bytes:
        deadline = time.monotonic() + self.timeout
        with self._cond:
            while not self._rx and not self._cancelled and self.is_open:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            self._cancelled = False
            data = bytes(self._rx[:size])
            del self._rx[:size]
            return data

    def cancel_read(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise FakeSerialException("port not open")
        reply = self._module.line.answer(bytes(data))
        with self._cond:
            self._rx.extend(reply)
            self._cond.notify_all()
        return len(data)

    def flush(self) -> None:
        pass


class FakeSerialModule:
    SerialException = FakeSerialException

    def __init__(self, line: FakeCtLine, ports: Set[str]):
        self.line = line
        self.ports = ports
        self.instances: List[FakeSerialPort] = []
        self.opened: List[tuple] = []

    @property
    def created(self) -> int:
        return len(self.instances)

    def Serial(self, **kwargs) -> FakeSerialPort:
        handle = FakeSerialPort(self, **kwargs)
        self.instances.append(handle)
        return handle


@pytest.fixture
def fake_serial(monkeypatch) -> FakeSerialModule:
    module = FakeSerialModule(FakeCtLine(), ports={FAKE_PORT})
    monkeypatch.setattr("optrisct.ct.link.serial", module)
    return module


@pytest.fixture
def ct_line(fake_serial: FakeSerialModule) -> FakeCtLine:
    return fake_serial.line
