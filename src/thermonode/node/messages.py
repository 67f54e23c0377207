"""
Wire encodings exchanged by the node.

Three JSON datagram shapes are handled here: the inbound command object, the
self-describing reading broadcast and the fixed "RP" schema used by the
secondary listener (handshake and data messages share that schema).
"""
from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .accumulator import BufferDiagnostics
from .config import ProbeConfig

SCALE_CELSIUS = "C"

RP_VERSION = "1.0"
RP_EVENT_SYNCHRONIZE = "synchronize"
RP_EVENT_ACKNOWLEDGE = "acknowledge"
RP_EVENT_TEMPERATURE = "temperature"
RP_CHANNEL = 0
RP_META_TYPE = SCALE_CELSIUS


class MessageError(ValueError):
    """Raised for undecodable or schema-mismatched datagrams."""


class TriggerEvent(str, enum.Enum):
    ACQUIRE = "readProbes"
    BROADCAST = "broadcastReadings"


@dataclass
class RPMessage:
    version: str
    serial: str
    epoch: int
    payload: List[Dict[str, Any]]

    @property
    def event_type(self) -> Optional[str]:
        if not self.payload:
            return None
        return self.payload[0].get("RPEventType")

    def is_acknowledge(self) -> bool:
        return len(self.payload) == 1 and self.event_type == RP_EVENT_ACKNOWLEDGE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "RPVersion": self.version,
            "RPSerial": self.serial,
            "RPEpoch": self.epoch,
            "RPPayload": self.payload,
        }


def encode(message: Dict[str, Any]) -> bytes:
    try:
        text = json.dumps(message, separators=(",", ":"), allow_nan=False)
    except ValueError as exc:
        raise MessageError(f"Message is not strict JSON: {exc}") from exc
    return text.encode("utf-8")


def _decode_object(data: bytes) -> Dict[str, Any]:
    try:
        decoded = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MessageError(f"Undecodable datagram: {exc}") from exc
    if not isinstance(decoded, dict):
        raise MessageError("Datagram is not a JSON object")
    return decoded


def parse_command(data: bytes) -> TriggerEvent:
    message = _decode_object(data)
    command = message.get("command")
    try:
        return TriggerEvent(command)
    except ValueError as exc:
        raise MessageError(f"Unknown command {command!r}") from exc


def command_message(event: TriggerEvent) -> Dict[str, Any]:
    return {"command": event.value}


def parse_rp(data: bytes) -> RPMessage:
    message = _decode_object(data)
    missing = {"RPVersion", "RPSerial", "RPEpoch", "RPPayload"} - set(message)
    if missing:
        raise MessageError(f"RP message missing fields: {sorted(missing)}")
    payload = message["RPPayload"]
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise MessageError("RPPayload must be a list of objects")
    epoch = message["RPEpoch"]
    if isinstance(epoch, bool) or not isinstance(epoch, int):
        raise MessageError("RPEpoch must be an integer")
    return RPMessage(
        version=str(message["RPVersion"]),
        serial=str(message["RPSerial"]),
        epoch=epoch,
        payload=payload,
    )


def rp_synchronize(serial: str, epoch: int) -> RPMessage:
    return RPMessage(
        version=RP_VERSION,
        serial=serial,
        epoch=epoch,
        payload=[{"RPEventType": RP_EVENT_SYNCHRONIZE}],
    )


def rp_acknowledge(serial: str, epoch: int) -> RPMessage:
    return RPMessage(
        version=RP_VERSION,
        serial=serial,
        epoch=epoch,
        payload=[{"RPEventType": RP_EVENT_ACKNOWLEDGE}],
    )


def rp_temperature(serial: str, epoch: int, value: float) -> RPMessage:
    return RPMessage(
        version=RP_VERSION,
        serial=serial,
        epoch=epoch,
        payload=[
            {
                "RPChannel": RP_CHANNEL,
                "RPEventType": RP_EVENT_TEMPERATURE,
                "RPValue": round(value, 2),
                "RPMetaType": RP_META_TYPE,
            }
        ],
    )


def reading_message(
    probe: ProbeConfig,
    value: float,
    vcc: float,
    debug: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    message: Dict[str, Any] = {
        "readings": [
            {
                "reading": round(value, 2),
                "scale": SCALE_CELSIUS,
                "probeName": probe.name,
                "probeType": probe.probe_type,
                "probeSubType": probe.probe_sub_type,
            }
        ],
        "systemInformation": {"VCC": vcc},
    }
    if debug is not None:
        message["debugData"] = debug
    return message


def debug_data(diagnostics: BufferDiagnostics, error_count: int) -> Dict[str, Any]:
    return {
        "minInternal": diagnostics.min_internal,
        "maxInternal": diagnostics.max_internal,
        "rolledOver": diagnostics.rolled_over,
        "position": diagnostics.position,
        "buffer": list(diagnostics.values),
        "bufferSize": diagnostics.capacity,
        "errorCount": error_count,
    }
