"""
Raw sample sources for the acquisition loop.

`SerialBridgeSensor` talks to a small USB-serial microcontroller that owns the
thermocouple amplifier and the trigger switch. It streams one line per event:

    S,<internal_c>,<probe_c>[,<vcc>]   amplifier sample
    E,<0|1>                            trigger switch edge

`ReplaySensor` plays back a recorded CSV for bench runs without hardware.
"""
from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Protocol

try:
    import serial  # type: ignore[import]
except ImportError:  # pragma: no cover - handled in CLI validation
    serial = None  # type: ignore[assignment]

from .config import HostRuntime

if TYPE_CHECKING:
    from ..replay import ReplayData

logger = logging.getLogger(__name__)


class SensorFault(Exception):
    """The sample source could not deliver a usable reading."""


@dataclass(frozen=True)
class RawSample:
    internal: float
    probe: float
    vcc: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        return not (math.isnan(self.internal) or math.isnan(self.probe))


class SensorAdapter(Protocol):
    def read(self) -> RawSample:
        ...

    def close(self) -> None:
        ...


def parse_bridge_line(line: str) -> tuple[str, tuple[float, ...]]:
    parts = [part.strip() for part in line.strip().split(",")]
    kind = parts[0].upper() if parts else ""
    if kind == "S" and len(parts) in (3, 4):
        try:
            values = tuple(float(part) for part in parts[1:])
        except ValueError as exc:
            raise ValueError(f"Bad sample line: {line!r}") from exc
        return kind, values
    if kind == "E" and len(parts) == 2 and parts[1] in {"0", "1"}:
        return kind, (float(parts[1]),)
    raise ValueError(f"Unrecognized bridge line: {line!r}")


@dataclass
class SerialSettings:
    port: str
    baudrate: int = 115200
    timeout: float = 1.0


class SerialBridgeThread(threading.Thread):
    def __init__(
        self,
        settings: SerialSettings,
        runtime: HostRuntime,
        on_sample: Callable[[RawSample], None],
        on_edge: Optional[Callable[[bool], object]] = None,
    ) -> None:
        super().__init__(daemon=True)
        self.settings = settings
        self.runtime = runtime
        self._on_sample = on_sample
        self._on_edge = on_edge
        self._stop_event = threading.Event()
        self._serial_handle = None
        self._reconnects = 0
        self._connected_once = False
        self._bad_lines = 0
        self.last_exception: Optional[Exception] = None
        self._log = logging.getLogger(__name__)

    def run(self) -> None:
        initial_delay = max(self.runtime.reconnect_initial_sec, 0.01)
        max_delay = max(self.runtime.reconnect_max_sec, initial_delay)
        backoff = initial_delay
        while not self._stop_event.is_set():
            self._serial_handle = None
            try:
                self._serial_handle = self._open_serial()
                if self._connected_once:
                    self._reconnects += 1
                    self._log.info("Reconnected to %s", self.settings.port)
                else:
                    self._log.info("Connected to %s", self.settings.port)
                    self._connected_once = True
                self.last_exception = None
                backoff = initial_delay
                while not self._stop_event.is_set():
                    line = self._readline()
                    if line is None:
                        continue
                    self._dispatch(line)
            except serial.SerialException as exc:  # type: ignore[union-attr]
                self.last_exception = exc
                self._log.warning("Serial error (%s): %s", self.settings.port, exc)
            except Exception as exc:  # pragma: no cover
                self.last_exception = exc
                self._log.exception("Unexpected error in serial bridge reader")
            finally:
                if self._serial_handle is not None:
                    try:
                        self._serial_handle.close()
                    except Exception:
                        pass
                    self._serial_handle = None
            if self._stop_event.is_set():
                break
            wait_time = min(backoff, max_delay)
            self._log.info("Reconnecting in %.1fs", wait_time)
            self._stop_event.wait(wait_time)
            backoff = min(backoff * 2, max_delay)

    def stop(self) -> None:
        self._stop_event.set()
        if self._serial_handle is not None:
            try:
                self._serial_handle.close()
            except Exception:
                pass

    def stats(self) -> dict[str, int]:
        return {"reconnects": self._reconnects, "bad_lines": self._bad_lines}

    def _readline(self) -> Optional[str]:
        if self._serial_handle is None:
            return None
        raw = self._serial_handle.readline()
        if not raw:
            return None
        return raw.decode("utf-8", errors="ignore").strip()

    def _dispatch(self, line: str) -> None:
        if not line or line.startswith("#"):
            return
        try:
            kind, values = parse_bridge_line(line)
        except ValueError as exc:
            self._bad_lines += 1
            self._log.debug("%s", exc)
            return
        if kind == "S":
            vcc = values[2] if len(values) == 3 and math.isfinite(values[2]) else None
            self._on_sample(RawSample(internal=values[0], probe=values[1], vcc=vcc))
        elif self._on_edge is not None:
            self._on_edge(values[0] == 1.0)

    def _open_serial(self):
        if serial is None:
            raise ImportError("pyserial is required but not installed. Install extra 'serial'.")
        return serial.Serial(
            port=self.settings.port,
            baudrate=self.settings.baudrate,
            timeout=self.settings.timeout,
        )


class SerialBridgeSensor:
    """Keeps the freshest bridge sample; each sample is handed out once."""

    def __init__(
        self,
        settings: SerialSettings,
        runtime: HostRuntime,
        on_edge: Optional[Callable[[bool], object]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._latest: Optional[RawSample] = None
        self._reader = SerialBridgeThread(settings, runtime, self._store, on_edge)

    def start(self) -> "SerialBridgeSensor":
        self._reader.start()
        return self

    def _store(self, sample: RawSample) -> None:
        with self._lock:
            self._latest = sample

    def read(self) -> RawSample:
        with self._lock:
            sample, self._latest = self._latest, None
        if sample is None:
            raise SensorFault("No fresh sample from serial bridge")
        return sample

    def stats(self) -> dict[str, int]:
        return self._reader.stats()

    def close(self) -> None:
        self._reader.stop()
        if self._reader.ident is not None:
            self._reader.join(timeout=5)


class ReplaySensor:
    """Cycles through a recorded sample file, one row per read."""

    def __init__(self, data: "ReplayData", loop: bool = True):
        self._data = data
        self._loop = loop
        self._index = 0

    @classmethod
    def from_csv(cls, path: Path | str, loop: bool = True) -> "ReplaySensor":
        from ..replay import load_replay_csv

        return cls(load_replay_csv(path), loop=loop)

    def read(self) -> RawSample:
        if self._index >= len(self._data):
            if not self._loop:
                raise SensorFault("Replay exhausted")
            self._index = 0
        idx = self._index
        self._index += 1
        vcc = None
        if self._data.vcc is not None and not math.isnan(self._data.vcc[idx]):
            vcc = float(self._data.vcc[idx])
        return RawSample(
            internal=float(self._data.internal[idx]),
            probe=float(self._data.probe[idx]),
            vcc=vcc,
        )

    def close(self) -> None:
        pass
