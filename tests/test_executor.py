from __future__ import annotations

import threading
import time

from optrisct.ct.config import ExchangeSettings
from optrisct.ct.executor import CommandExecutor, ResponseBuffer
from optrisct.ct.frames import Command, encode_command
from optrisct.ct.link import LineConnection

FAKE_PORT = "/dev/ttyCT0"

FAST = ExchangeSettings(timeout_ms=100, poll_interval_ms=5)


def _executor(port: str = FAKE_PORT) -> CommandExecutor:
    return CommandExecutor(LineConnection(port), FAST)


def test_buffer_waits_for_late_bytes():
    buffer = ResponseBuffer()
    timer = threading.Timer(0.02, buffer.append, args=(b"\x04\xe5",))
    timer.start()
    try:
        assert buffer.wait_for_length(2, timeout=1.0, poll_interval=0.01)
    finally:
        timer.cancel()
    assert buffer.snapshot() == b"\x04\xe5"
    assert len(buffer) == 2


def test_buffer_times_out_on_wrong_length():
    buffer = ResponseBuffer()
    buffer.append(b"\x01\x02\x03")
    start = time.monotonic()
    assert not buffer.wait_for_length(2, timeout=0.05, poll_interval=0.01)
    assert time.monotonic() - start >= 0.04
    buffer.clear()
    assert buffer.snapshot() == b""


def test_execute_returns_exact_reply(ct_line, fake_serial):
    executor = _executor()
    reply = executor.execute(encode_command(3, Command.READ_SERIAL_NUMBER), 3)
    assert reply == b"\x12\x34\x56"
    assert ct_line.requests == [b"\xb3\x0e"]
    # the port is opened for the exchange only, with DTR and RTS asserted
    assert fake_serial.opened == [(FAKE_PORT, True, True)]
    assert not executor.connection.is_open
    assert executor.stats() == {"exchanges": 1, "failures": 0}


def test_execute_silent_device_returns_none(ct_line):
    ct_line.silent.add(2)
    executor = _executor()
    start = time.monotonic()
    assert executor.execute(encode_command(2, Command.READ_TEMPERATURE), 2) is None
    assert time.monotonic() - start >= 0.09
    assert executor.stats() == {"exchanges": 1, "failures": 1}


def test_explicit_zero_timeout_is_not_the_default(ct_line):
    ct_line.silent.add(1)
    executor = CommandExecutor(LineConnection(FAKE_PORT), ExchangeSettings(timeout_ms=2000))
    start = time.monotonic()
    assert executor.execute(encode_command(1, Command.READ_TEMPERATURE), 2, timeout_ms=0) is None
    assert time.monotonic() - start < 1.0


def test_execute_rejects_long_reply(ct_line):
    executor = _executor()
    # a serial number reply is three bytes, one more than asked for
    assert executor.execute(encode_command(1, Command.READ_SERIAL_NUMBER), 2) is None


def test_execute_unopenable_port_counts_as_failure(fake_serial):
    executor = _executor("/dev/ttyMISSING")
    assert executor.execute(encode_command(1, Command.READ_TEMPERATURE), 2) is None
    assert fake_serial.opened == []
    assert executor.stats()["failures"] == 1


def test_exchanges_are_independent(ct_line):
    executor = _executor()
    first = executor.execute(encode_command(1, Command.READ_TEMPERATURE), 2)
    ct_line.heads[1].temperature_raw = 1300
    second = executor.execute(encode_command(1, Command.READ_TEMPERATURE), 2)
    assert first == b"\x04\xe5"
    assert second == (1300).to_bytes(2, "big")
