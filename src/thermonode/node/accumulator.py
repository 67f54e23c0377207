from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reading:
    """A compensated sample and the cold-junction temperature behind it."""

    temperature: float
    internal: float


@dataclass(frozen=True)
class BufferDiagnostics:
    min_internal: Optional[float]
    max_internal: Optional[float]
    rolled_over: bool
    position: int
    values: List[float]
    capacity: int


class RollingBuffer:
    """
    Fixed-capacity circular buffer of compensated readings.

    Storage is allocated once. When pushes outrun drains the write position
    wraps to zero and the buffer is flagged as rolled over; from then on every
    slot counts toward the average until the next drain.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("RollingBuffer capacity must be at least 1")
        self.capacity = capacity
        self._values = np.zeros(capacity, dtype=float)
        self._internal = np.zeros(capacity, dtype=float)
        self._position = 0
        self._rolled_over = False
        self._min_internal: Optional[float] = None
        self._max_internal: Optional[float] = None
        self.overruns = 0

    @property
    def position(self) -> int:
        return self._position

    @property
    def rolled_over(self) -> bool:
        return self._rolled_over

    @property
    def min_internal(self) -> Optional[float]:
        return self._min_internal

    @property
    def max_internal(self) -> Optional[float]:
        return self._max_internal

    def __len__(self) -> int:
        return self.capacity if self._rolled_over else self._position

    def is_empty(self) -> bool:
        return self._position == 0 and not self._rolled_over

    def push(self, reading: Reading) -> None:
        self._values[self._position] = reading.temperature
        self._internal[self._position] = reading.internal
        if self._min_internal is None or reading.internal < self._min_internal:
            self._min_internal = reading.internal
        if self._max_internal is None or reading.internal > self._max_internal:
            self._max_internal = reading.internal
        self._position += 1
        if self._position >= self.capacity:
            self._position = 0
            self._rolled_over = True
            self.overruns += 1
            logger.warning(
                "Rolling buffer wrapped after %d readings (overruns=%d); drains are not keeping up",
                self.capacity,
                self.overruns,
            )

    def drain_average(self) -> Optional[float]:
        """Mean of the valid window, resetting the buffer. ``None`` if empty."""
        if self.is_empty():
            logger.warning("Refusing to drain an empty rolling buffer")
            return None
        average = float(np.mean(self._values[: len(self)]))
        self._position = 0
        self._rolled_over = False
        self._min_internal = None
        self._max_internal = None
        return average

    def snapshot(self) -> BufferDiagnostics:
        return BufferDiagnostics(
            min_internal=self._min_internal,
            max_internal=self._max_internal,
            rolled_over=self._rolled_over,
            position=self._position,
            values=[float(value) for value in self._values[: len(self)]],
            capacity=self.capacity,
        )
