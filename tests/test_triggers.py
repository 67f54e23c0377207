from __future__ import annotations

from typing import List, Optional

from thermonode.node.messages import TriggerEvent
from thermonode.node.transport import Datagram
from thermonode.node.triggers import CommandListener, EdgeTrigger, TriggerSource


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class QueuedTransport:
    def __init__(self, payloads: List[bytes]):
        self._payloads = list(payloads)

    def send(self, payload: bytes, address) -> bool:
        return True

    def receive(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        if not self._payloads:
            return None
        return Datagram(payload=self._payloads.pop(0), address=("10.0.0.9", 4200))

    def close(self) -> None:
        pass


def test_edge_maps_level_to_event() -> None:
    clock = FakeClock()
    edge = EdgeTrigger(debounce_sec=0.5, clock=clock)
    assert edge.on_edge(True)
    assert edge.take() is TriggerEvent.ACQUIRE
    clock.now += 1.0
    assert edge.on_edge(False)
    assert edge.take() is TriggerEvent.BROADCAST
    assert edge.take() is None


def test_edge_debounce_rejects_bounce() -> None:
    clock = FakeClock()
    edge = EdgeTrigger(debounce_sec=0.5, clock=clock)
    assert edge.on_edge(True)
    edge.take()
    clock.now += 0.1
    assert not edge.on_edge(False)
    clock.now += 0.1
    assert not edge.on_edge(True)
    assert edge.rejected == 2
    clock.now += 0.4
    assert edge.on_edge(False)


def test_edge_allows_single_outstanding_event() -> None:
    clock = FakeClock()
    edge = EdgeTrigger(debounce_sec=0.5, clock=clock)
    assert edge.on_edge(True)
    clock.now += 5.0
    assert not edge.on_edge(False)
    assert edge.take() is TriggerEvent.ACQUIRE
    assert edge.on_edge(False)


def test_command_listener_ignores_unknown_payloads() -> None:
    listener = CommandListener()
    assert listener.handle_datagram(b'{"command":"readProbes"}') is TriggerEvent.ACQUIRE
    assert listener.handle_datagram(b'{"command":"selfDestruct"}') is None
    assert listener.handle_datagram(b"\x00garbage") is None
    assert listener.take_all() == [TriggerEvent.ACQUIRE]
    assert listener.received == 3
    assert listener.ignored == 2


def test_command_listener_pumps_transport() -> None:
    transport = QueuedTransport(
        [b'{"command":"readProbes"}', b"{}", b'{"command":"broadcastReadings"}']
    )
    listener = CommandListener(transport)
    assert listener.pump() == 3
    assert listener.take_all() == [TriggerEvent.ACQUIRE, TriggerEvent.BROADCAST]
    assert listener.pump() == 0


def test_trigger_source_merges_producers() -> None:
    clock = FakeClock()
    edge = EdgeTrigger(debounce_sec=0.5, clock=clock)
    commands = CommandListener()
    source = TriggerSource(edge=edge, commands=commands)
    edge.on_edge(True)
    commands.handle_datagram(b'{"command":"broadcastReadings"}')
    assert source.poll() == [TriggerEvent.ACQUIRE, TriggerEvent.BROADCAST]
    assert source.poll() == []
