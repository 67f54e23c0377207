from __future__ import annotations

import enum
import logging
import math
import time
from typing import Callable, Optional

from .accumulator import Reading, RollingBuffer
from .broadcast import BroadcastReport, Broadcaster
from .linearize import is_out_of_range, linearize
from .messages import TriggerEvent
from .sensors import SensorAdapter, SensorFault
from .triggers import TriggerSource

logger = logging.getLogger(__name__)


class TriggerState(str, enum.Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    READY_TO_BROADCAST = "ready_to_broadcast"


class AcquisitionMachine:
    """
    Orchestrates sampling and draining of the rolling buffer.

    The machine is the only reader of the trigger source and the only owner of
    the buffer. Within one tick a pending broadcast is handled before a pending
    acquire. A broadcast happens at most once per acquisition cycle and is
    suppressed entirely when the most recent sensor read failed.
    """

    def __init__(
        self,
        sensor: SensorAdapter,
        buffer: RollingBuffer,
        broadcaster: Broadcaster,
        triggers: TriggerSource,
        sample_interval_sec: float,
        *,
        debug: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sensor = sensor
        self.buffer = buffer
        self.broadcaster = broadcaster
        self.triggers = triggers
        self.sample_interval_sec = sample_interval_sec
        self.debug = debug
        self._clock = clock
        self._state = TriggerState.IDLE
        self._broadcast_done = False
        self._last_read_failed = False
        self._next_sample_at: Optional[float] = None
        self._last_vcc: Optional[float] = None
        self.error_count = 0
        self.samples = 0
        self.broadcasts = 0
        self.suppressed_broadcasts = 0
        self.last_report: Optional[BroadcastReport] = None

    @property
    def state(self) -> TriggerState:
        return self._state

    @property
    def broadcast_done(self) -> bool:
        return self._broadcast_done

    @property
    def last_read_failed(self) -> bool:
        return self._last_read_failed

    def tick(self) -> None:
        events = self.triggers.poll()
        acquire = TriggerEvent.ACQUIRE in events
        broadcast = TriggerEvent.BROADCAST in events

        if broadcast:
            self._state = TriggerState.READY_TO_BROADCAST
        if self._state is TriggerState.READY_TO_BROADCAST:
            self._broadcast()
            self._state = TriggerState.IDLE
        if acquire:
            self._start_acquiring()
        if self._state is TriggerState.ACQUIRING:
            now = self._clock()
            if self._next_sample_at is None or now >= self._next_sample_at:
                self._next_sample_at = now + self.sample_interval_sec
                self._sample()

    def _start_acquiring(self) -> None:
        if self._state is not TriggerState.ACQUIRING:
            logger.info("Acquisition started")
        self._broadcast_done = False
        self._state = TriggerState.ACQUIRING
        self._next_sample_at = None

    def _sample(self) -> None:
        try:
            raw = self.sensor.read()
        except SensorFault as exc:
            self._record_fault("Sensor read failed: %s", exc)
            return
        if not raw.is_valid:
            self._record_fault("Sensor returned NaN (internal=%s probe=%s)", raw.internal, raw.probe)
            return
        temperature = linearize(raw.internal, raw.probe)
        if is_out_of_range(temperature):
            self._record_fault(
                "Reading outside thermocouple range (internal=%.2f probe=%.2f)", raw.internal, raw.probe
            )
            return
        self.buffer.push(Reading(temperature=temperature, internal=raw.internal))
        self._last_read_failed = False
        if raw.vcc is not None and math.isfinite(raw.vcc):
            self._last_vcc = raw.vcc
        self.samples += 1
        if self.debug:
            logger.debug(
                "Sample %.2f C (internal=%.2f raw=%.2f position=%d)",
                temperature,
                raw.internal,
                raw.probe,
                self.buffer.position,
            )

    def _record_fault(self, message: str, *args) -> None:
        self.error_count += 1
        self._last_read_failed = True
        logger.warning(message, *args)

    def _broadcast(self) -> None:
        if self._broadcast_done:
            logger.debug("Already broadcast since the last acquire; ignoring")
            return
        if self.buffer.is_empty() or self._last_read_failed:
            self.suppressed_broadcasts += 1
            logger.error(
                "Broadcast suppressed (empty=%s last_read_failed=%s errors=%d)",
                self.buffer.is_empty(),
                self._last_read_failed,
                self.error_count,
            )
            return
        diagnostics = self.buffer.snapshot()
        average = self.buffer.drain_average()
        if average is None:  # pragma: no cover - guarded by is_empty above
            return
        self.last_report = self.broadcaster.broadcast(average, diagnostics, self.error_count, self._last_vcc)
        self.broadcasts += 1
        self._broadcast_done = True
