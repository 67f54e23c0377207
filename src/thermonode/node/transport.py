from __future__ import annotations

import logging
import socket
import struct
from dataclasses import dataclass
from typing import Optional, Protocol

from .config import Address

logger = logging.getLogger(__name__)

MAX_DATAGRAM = 2048


@dataclass(frozen=True)
class Datagram:
    payload: bytes
    address: Address


class DatagramTransport(Protocol):
    def send(self, payload: bytes, address: Address) -> bool:
        ...

    def receive(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        """Return the next datagram, or ``None`` after ``timeout`` seconds (0 = poll)."""
        ...

    def close(self) -> None:
        ...


class UdpTransport:
    """
    Thin wrapper around a UDP socket.

    Send failures are logged and reported as ``False``; the caller decides
    whether a later cycle retries.
    """

    def __init__(
        self,
        bind: Address = ("", 0),
        *,
        broadcast: bool = False,
        multicast_group: Optional[str] = None,
    ) -> None:
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if broadcast:
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        self._sock.bind(bind)
        if multicast_group:
            membership = struct.pack("4s4s", socket.inet_aton(multicast_group), socket.inet_aton("0.0.0.0"))
            self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
            logger.info("Joined multicast group %s on port %d", multicast_group, self.local_address[1])

    @property
    def local_address(self) -> Address:
        host, port = self._sock.getsockname()[:2]
        return (host, port)

    def send(self, payload: bytes, address: Address) -> bool:
        try:
            sent = self._sock.sendto(payload, address)
        except OSError as exc:
            logger.warning("Send to %s:%d failed: %s", address[0], address[1], exc)
            return False
        if sent != len(payload):
            logger.warning("Short send to %s:%d (%d of %d bytes)", address[0], address[1], sent, len(payload))
            return False
        return True

    def receive(self, timeout: Optional[float] = None) -> Optional[Datagram]:
        if timeout is not None and timeout <= 0:
            self._sock.setblocking(False)
        else:
            self._sock.settimeout(timeout)
        try:
            data, address = self._sock.recvfrom(MAX_DATAGRAM)
        except (BlockingIOError, socket.timeout):
            return None
        return Datagram(payload=data, address=(address[0], address[1]))

    def close(self) -> None:
        try:
            self._sock.close()
        except OSError:
            logger.debug("Error closing socket", exc_info=True)
