from __future__ import annotations

import logging
import queue
import time
from typing import Callable, List, Optional

from .messages import MessageError, TriggerEvent, parse_command
from .transport import DatagramTransport

logger = logging.getLogger(__name__)


class EdgeTrigger:
    """
    Producer for a debounced physical edge (reed switch, hall sensor...).

    ``on_edge`` may be called from a reader thread. It only ever puts into a
    single-slot queue, so at most one accepted edge waits for the state
    machine. An edge is rejected while the previous one is unconsumed or the
    re-arm delay has not elapsed since the last accepted edge.
    """

    def __init__(self, debounce_sec: float = 0.5, clock: Callable[[], float] = time.monotonic):
        self.debounce_sec = debounce_sec
        self._clock = clock
        self._queue: "queue.Queue[TriggerEvent]" = queue.Queue(maxsize=1)
        self._last_accepted: Optional[float] = None
        self.rejected = 0

    def on_edge(self, active: bool) -> bool:
        now = self._clock()
        if self._last_accepted is not None and now - self._last_accepted < self.debounce_sec:
            self.rejected += 1
            return False
        event = TriggerEvent.ACQUIRE if active else TriggerEvent.BROADCAST
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.rejected += 1
            return False
        self._last_accepted = now
        return True

    def take(self) -> Optional[TriggerEvent]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None


class CommandListener:
    """Turns command datagrams into trigger events; everything unknown is dropped."""

    def __init__(self, transport: Optional[DatagramTransport] = None):
        self._transport = transport
        self._queue: "queue.SimpleQueue[TriggerEvent]" = queue.SimpleQueue()
        self.received = 0
        self.ignored = 0

    def handle_datagram(self, payload: bytes) -> Optional[TriggerEvent]:
        self.received += 1
        try:
            event = parse_command(payload)
        except MessageError as exc:
            self.ignored += 1
            logger.debug("Ignoring command datagram: %s", exc)
            return None
        logger.info("Command received: %s", event.value)
        self._queue.put(event)
        return event

    def pump(self) -> int:
        """Drain every datagram already waiting on the transport."""
        if self._transport is None:
            return 0
        handled = 0
        while True:
            datagram = self._transport.receive(timeout=0)
            if datagram is None:
                return handled
            self.handle_datagram(datagram.payload)
            handled += 1

    def take_all(self) -> List[TriggerEvent]:
        events: List[TriggerEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


class TriggerSource:
    def __init__(self, edge: Optional[EdgeTrigger] = None, commands: Optional[CommandListener] = None):
        self.edge = edge
        self.commands = commands

    def poll(self) -> List[TriggerEvent]:
        events: List[TriggerEvent] = []
        if self.edge is not None:
            event = self.edge.take()
            if event is not None:
                events.append(event)
        if self.commands is not None:
            events.extend(self.commands.take_all())
        return events
