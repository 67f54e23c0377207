from __future__ import annotations

import math
import time

import pytest

from thermonode.node.config import HostRuntime
from thermonode.node.sensors import (
    SensorFault,
    SerialBridgeSensor,
    SerialBridgeThread,
    SerialSettings,
    parse_bridge_line,
)


class FakeSerialInstance:
    def __init__(self, lines: list[bytes]):
        self._lines = lines

    def readline(self) -> bytes:
        if self._lines:
            return self._lines.pop(0)
        time.sleep(0.001)
        return b""

    def close(self) -> None:
        pass


class FakeSerialModule:
    def __init__(self, lines: list[bytes]):
        self.calls = 0
        self._lines = lines
        self.SerialException = RuntimeError

    def Serial(self, *args, **kwargs):
        self.calls += 1
        if self.calls == 1:
            raise self.SerialException("mock disconnect")
        return FakeSerialInstance(list(self._lines))


def wait_for(predicate, timeout: float = 1.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_parse_bridge_lines() -> None:
    assert parse_bridge_line("S,24.50,180.25") == ("S", (24.5, 180.25))
    assert parse_bridge_line("s, 24.5, 180.25, 3.28") == ("S", (24.5, 180.25, 3.28))
    assert parse_bridge_line("E,1") == ("E", (1.0,))
    assert math.isnan(parse_bridge_line("S,nan,20.0")[1][0])
    with pytest.raises(ValueError):
        parse_bridge_line("S,abc,1")
    with pytest.raises(ValueError):
        parse_bridge_line("E,2")
    with pytest.raises(ValueError):
        parse_bridge_line("HELLO")


def test_bridge_reconnects_and_delivers_samples_and_edges(monkeypatch) -> None:
    lines = [
        b"# bridge v1\n",
        b"E,1\n",
        b"bogus\n",
        b"S,24.0,150.0,3.30\n",
    ]
    fake_serial = FakeSerialModule(lines)
    monkeypatch.setattr("thermonode.node.sensors.serial", fake_serial)
    edges: list[bool] = []

    sensor = SerialBridgeSensor(
        SerialSettings(port="/dev/ttyFAKE", timeout=0.05),
        HostRuntime(reconnect_initial_sec=0.01, reconnect_max_sec=0.02),
        on_edge=edges.append,
    )
    with pytest.raises(SensorFault):
        sensor.read()
    sensor.start()
    try:
        assert wait_for(lambda: sensor._latest is not None)
        sample = sensor.read()
        assert sample.internal == 24.0
        assert sample.probe == 150.0
        assert sample.vcc == 3.30
        assert edges == [True]
        assert fake_serial.calls >= 2  # initial failure + successful reconnect
        with pytest.raises(SensorFault):
            sensor.read()
        assert sensor.stats()["bad_lines"] == 1
    finally:
        sensor.close()


def test_bridge_drops_non_finite_vcc() -> None:
    samples = []
    reader = SerialBridgeThread(SerialSettings(port="/dev/ttyFAKE"), HostRuntime(), samples.append)
    reader._dispatch("S,25,100,nan")
    reader._dispatch("S,25,100,inf")
    reader._dispatch("S,25,100,3.31")
    assert [sample.vcc for sample in samples] == [None, None, 3.31]
    assert all(sample.is_valid for sample in samples)
