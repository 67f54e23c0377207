from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

Address = Tuple[str, int]

SAFETY_MARGIN = 0.25
# Largest buffer whose debug dump still fits a single UDP datagram.
MAX_DEBUG_SAMPLES = 2048


@dataclass
class ProbeConfig:
    name: str = "probe-1"
    probe_type: int = 1
    probe_sub_type: int = 0
    serial: Optional[str] = None

    @property
    def identity(self) -> str:
        return self.serial or self.name


@dataclass
class AcquisitionConfig:
    sample_interval_sec: float = 0.25
    drain_interval_sec: float = 30.0
    vcc: float = 3.3
    debug: bool = False

    @property
    def capacity(self) -> int:
        return buffer_capacity(self.sample_interval_sec, self.drain_interval_sec)


@dataclass
class NetworkConfig:
    primary_host: str = "255.255.255.255"
    primary_port: int = 4210
    rendezvous_host: str = "255.255.255.255"
    rendezvous_port: int = 4211
    command_group: str = "239.1.1.1"
    command_port: int = 4200

    @property
    def primary(self) -> Address:
        return (self.primary_host, self.primary_port)

    @property
    def rendezvous(self) -> Address:
        return (self.rendezvous_host, self.rendezvous_port)


@dataclass
class HandshakeConfig:
    enabled: bool = True
    max_attempts: int = 5
    base_delay_sec: float = 0.5
    listen_timeout_sec: float = 1.0


@dataclass
class TriggerConfig:
    commands_enabled: bool = True
    edge_debounce_sec: float = 0.5


@dataclass
class HostRuntime:
    loop_idle_sec: float = 0.01
    stats_log_interval: float = 60.0
    reconnect_initial_sec: float = 0.5
    reconnect_max_sec: float = 5.0


@dataclass
class NodeConfig:
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    handshake: HandshakeConfig = field(default_factory=HandshakeConfig)
    trigger: TriggerConfig = field(default_factory=TriggerConfig)
    host: HostRuntime = field(default_factory=HostRuntime)

    def validate(self) -> "NodeConfig":
        acq = self.acquisition
        if acq.sample_interval_sec <= 0:
            raise ValueError("acquisition.sample_interval_sec must be positive")
        if acq.drain_interval_sec <= 0:
            raise ValueError("acquisition.drain_interval_sec must be positive")
        if acq.debug and acq.capacity > MAX_DEBUG_SAMPLES:
            raise ValueError(
                f"acquisition.debug needs a buffer of at most {MAX_DEBUG_SAMPLES} samples, "
                f"got {acq.capacity}; shorten drain_interval_sec or lengthen sample_interval_sec"
            )
        if self.handshake.max_attempts < 0:
            raise ValueError("handshake.max_attempts may not be negative")
        if self.handshake.base_delay_sec < 0:
            raise ValueError("handshake.base_delay_sec may not be negative")
        if self.trigger.edge_debounce_sec < 0:
            raise ValueError("trigger.edge_debounce_sec may not be negative")
        for name, port in (
            ("network.primary_port", self.network.primary_port),
            ("network.rendezvous_port", self.network.rendezvous_port),
            ("network.command_port", self.network.command_port),
        ):
            if not 0 < port < 65536:
                raise ValueError(f"{name} must be a valid UDP port, got {port}")
        return self


def buffer_capacity(sample_interval_sec: float, drain_interval_sec: float) -> int:
    """Samples expected between drains, plus a 25% margin for a late drain."""
    expected = drain_interval_sec / sample_interval_sec
    return max(1, int(math.ceil(expected * (1.0 + SAFETY_MARGIN))))


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def _as_bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false, got {value!r}")
    return value


def config_from_mapping(data: Dict[str, Any]) -> NodeConfig:
    probe = data.get("probe") or {}
    acq = data.get("acquisition") or {}
    net = data.get("network") or {}
    hs = data.get("handshake") or {}
    trig = data.get("trigger") or {}
    host = data.get("host") or {}
    serial = probe.get("serial")
    config = NodeConfig(
        probe=ProbeConfig(
            name=str(probe.get("name", "probe-1")),
            probe_type=int(probe.get("probe_type", 1)),
            probe_sub_type=int(probe.get("probe_sub_type", 0)),
            serial=str(serial) if serial else None,
        ),
        acquisition=AcquisitionConfig(
            sample_interval_sec=float(acq.get("sample_interval_sec", 0.25)),
            drain_interval_sec=float(acq.get("drain_interval_sec", 30.0)),
            vcc=float(acq.get("vcc", 3.3)),
            debug=_as_bool(acq.get("debug", False), "acquisition.debug"),
        ),
        network=NetworkConfig(
            primary_host=str(net.get("primary_host", "255.255.255.255")),
            primary_port=int(net.get("primary_port", 4210)),
            rendezvous_host=str(net.get("rendezvous_host", "255.255.255.255")),
            rendezvous_port=int(net.get("rendezvous_port", 4211)),
            command_group=str(net.get("command_group", "239.1.1.1")),
            command_port=int(net.get("command_port", 4200)),
        ),
        handshake=HandshakeConfig(
            enabled=_as_bool(hs.get("enabled", True), "handshake.enabled"),
            max_attempts=int(hs.get("max_attempts", 5)),
            base_delay_sec=float(hs.get("base_delay_sec", 0.5)),
            listen_timeout_sec=float(hs.get("listen_timeout_sec", 1.0)),
        ),
        trigger=TriggerConfig(
            commands_enabled=_as_bool(trig.get("commands_enabled", True), "trigger.commands_enabled"),
            edge_debounce_sec=float(trig.get("edge_debounce_sec", 0.5)),
        ),
        host=HostRuntime(
            loop_idle_sec=float(host.get("loop_idle_sec", 0.01)),
            stats_log_interval=float(host.get("stats_log_interval", 60.0)),
            reconnect_initial_sec=float(host.get("reconnect_initial_sec", 0.5)),
            reconnect_max_sec=float(host.get("reconnect_max_sec", 5.0)),
        ),
    )
    return config.validate()


def load_config(path: Path | str | None, overrides: Sequence[str] | None = None) -> NodeConfig:
    """
    Load a node configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["acquisition.debug=true", "network.primary_port=5000"]

    A `None` path starts from the built-in defaults.
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    return config_from_mapping(_merge(data, override_data))


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
