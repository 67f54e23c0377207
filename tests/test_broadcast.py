from __future__ import annotations

import json
from typing import List, Optional

from thermonode.node.accumulator import BufferDiagnostics
from thermonode.node.broadcast import Broadcaster
from thermonode.node.config import NodeConfig
from thermonode.node.handshake import HandshakeSession
from thermonode.node.transport import Datagram

PEER = ("192.168.1.20", 4211)


class FlakyTransport:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[tuple] = []

    def send(self, payload: bytes, address) -> bool:
        self.sent.append((json.loads(payload), address))
        return not self.fail

    def receive(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        return None

    def close(self) -> None:
        pass


def diagnostics() -> BufferDiagnostics:
    return BufferDiagnostics(
        min_internal=24.0,
        max_internal=25.0,
        rolled_over=False,
        position=2,
        values=[99.0, 101.0],
        capacity=10,
    )


def build(secondary_active: bool, primary_fail: bool = False, secondary_fail: bool = False, debug: bool = False):
    config = NodeConfig()
    config.probe.name = "Pit"
    config.probe.serial = "TN-9"
    config.acquisition.debug = debug
    session = HandshakeSession(serial=config.probe.identity, epoch=4)
    if secondary_active:
        session.latch(PEER)
    primary = FlakyTransport(primary_fail)
    secondary = FlakyTransport(secondary_fail)
    return Broadcaster(config, session, primary, secondary), primary, secondary, session


def test_primary_only_without_handshake() -> None:
    broadcaster, primary, secondary, _ = build(secondary_active=False)
    report = broadcaster.broadcast(100.0, diagnostics(), error_count=0, vcc=3.31)
    assert len(primary.sent) == 1
    assert secondary.sent == []
    assert report.primary_ok
    assert report.secondary_ok is None
    message, address = primary.sent[0]
    assert address == ("255.255.255.255", 4210)
    assert message["readings"][0]["probeName"] == "Pit"
    assert message["systemInformation"] == {"VCC": 3.31}
    assert "debugData" not in message


def test_secondary_receives_rp_payload() -> None:
    broadcaster, primary, secondary, session = build(secondary_active=True)
    report = broadcaster.broadcast(100.0, diagnostics(), error_count=0)
    assert len(primary.sent) == 1
    assert len(secondary.sent) == 1
    message, address = secondary.sent[0]
    assert address == PEER
    assert message["RPSerial"] == "TN-9"
    assert message["RPEpoch"] == 4
    assert message["RPPayload"][0]["RPEventType"] == "temperature"
    assert message["RPPayload"][0]["RPValue"] == 100.0
    assert session.epoch == 5
    assert report.ok
    assert primary.sent[0][0]["systemInformation"] == {"VCC": 3.3}


def test_primary_failure_does_not_block_secondary() -> None:
    broadcaster, primary, secondary, _ = build(secondary_active=True, primary_fail=True)
    report = broadcaster.broadcast(50.0, diagnostics(), error_count=0)
    assert not report.primary_ok
    assert report.secondary_ok is True
    assert len(secondary.sent) == 1
    assert broadcaster.failures == 1


def test_secondary_failure_does_not_affect_primary() -> None:
    broadcaster, primary, secondary, _ = build(secondary_active=True, secondary_fail=True)
    report = broadcaster.broadcast(50.0, diagnostics(), error_count=0)
    assert report.primary_ok
    assert report.secondary_ok is False
    assert not report.ok
    assert len(primary.sent) == 1
    assert len(secondary.sent) == 1


def test_failed_sends_are_not_retried() -> None:
    broadcaster, primary, secondary, _ = build(secondary_active=True, primary_fail=True, secondary_fail=True)
    broadcaster.broadcast(50.0, diagnostics(), error_count=0)
    assert len(primary.sent) == 1
    assert len(secondary.sent) == 1
    assert broadcaster.failures == 2


def test_debug_data_attached_when_enabled() -> None:
    broadcaster, primary, _, _ = build(secondary_active=False, debug=True)
    broadcaster.broadcast(100.0, diagnostics(), error_count=3)
    debug = primary.sent[0][0]["debugData"]
    assert debug["errorCount"] == 3
    assert debug["buffer"] == [99.0, 101.0]
    assert debug["bufferSize"] == 10


def test_unencodable_payload_counts_as_failure() -> None:
    broadcaster, primary, secondary, _ = build(secondary_active=True)
    report = broadcaster.broadcast(100.0, diagnostics(), error_count=0, vcc=float("nan"))
    assert not report.primary_ok
    assert report.secondary_ok
    assert primary.sent == []
    assert len(secondary.sent) == 1
    assert broadcaster.failures == 1
