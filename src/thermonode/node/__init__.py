"""
Acquisition/broadcast pipeline of the thermocouple node.

The subpackage holds the configuration model, the Type K linearization, the
rolling accumulator, trigger producers, the state machine and the two
broadcast encodings used by the node runtime.
"""

from .accumulator import BufferDiagnostics, Reading, RollingBuffer
from .broadcast import BroadcastReport, Broadcaster
from .config import NodeConfig, buffer_capacity, load_config
from .handshake import Handshake, HandshakeSession
from .linearize import OUT_OF_RANGE, is_out_of_range, linearize
from .machine import AcquisitionMachine, TriggerState
from .messages import MessageError, RPMessage, TriggerEvent
from .runner import NodeHost
from .sensors import RawSample, ReplaySensor, SensorFault, SerialBridgeSensor
from .transport import Datagram, DatagramTransport, UdpTransport
from .triggers import CommandListener, EdgeTrigger, TriggerSource

__all__ = [
    "BufferDiagnostics",
    "Reading",
    "RollingBuffer",
    "BroadcastReport",
    "Broadcaster",
    "NodeConfig",
    "buffer_capacity",
    "load_config",
    "Handshake",
    "HandshakeSession",
    "OUT_OF_RANGE",
    "is_out_of_range",
    "linearize",
    "AcquisitionMachine",
    "TriggerState",
    "MessageError",
    "RPMessage",
    "TriggerEvent",
    "NodeHost",
    "RawSample",
    "ReplaySensor",
    "SensorFault",
    "SerialBridgeSensor",
    "Datagram",
    "DatagramTransport",
    "UdpTransport",
    "CommandListener",
    "EdgeTrigger",
    "TriggerSource",
]
