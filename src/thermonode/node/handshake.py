from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from .config import Address, HandshakeConfig
from .messages import MessageError, encode, parse_rp, rp_synchronize
from .transport import DatagramTransport

logger = logging.getLogger(__name__)


@dataclass
class HandshakeSession:
    """Process-lifetime state of the secondary (RP) protocol."""

    serial: str
    epoch: int = 0
    peer: Optional[Address] = None
    secondary_active: bool = False

    def next_epoch(self) -> int:
        """Return the epoch for an outbound message and advance the counter."""
        epoch = self.epoch
        self.epoch += 1
        return epoch

    def latch(self, peer: Address) -> None:
        self.peer = peer
        self.secondary_active = True


class Handshake:
    """
    One-shot startup negotiation with the secondary listener.

    A single synchronize message goes to the rendezvous address; the node then
    listens for an acknowledge, doubling the pause after every silent attempt.
    Datagrams that are not an acknowledge are logged and do not use up an
    attempt.
    """

    def __init__(
        self,
        transport: DatagramTransport,
        session: HandshakeSession,
        config: HandshakeConfig,
        rendezvous: Address,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.transport = transport
        self.session = session
        self.config = config
        self.rendezvous = rendezvous
        self._sleep = sleep
        self.attempts = 0
        self.delays: List[float] = []

    def run(self) -> bool:
        if self.session.secondary_active:
            return True
        sync = rp_synchronize(self.session.serial, self.session.next_epoch())
        if not self.transport.send(encode(sync.to_dict()), self.rendezvous):
            logger.warning("Synchronize to %s:%d was not sent", *self.rendezvous)
        delay = self.config.base_delay_sec
        while self.attempts < self.config.max_attempts:
            datagram = self.transport.receive(timeout=self.config.listen_timeout_sec)
            if datagram is None:
                self.attempts += 1
                logger.info(
                    "No acknowledge (attempt %d/%d), waiting %.2fs",
                    self.attempts,
                    self.config.max_attempts,
                    delay,
                )
                self.delays.append(delay)
                self._sleep(delay)
                delay *= 2
                continue
            try:
                message = parse_rp(datagram.payload)
            except MessageError as exc:
                logger.info("Ignoring malformed handshake reply from %s: %s", datagram.address[0], exc)
                continue
            if not message.is_acknowledge():
                logger.info(
                    "Ignoring %s message from %s during handshake",
                    message.event_type,
                    datagram.address[0],
                )
                continue
            self.session.latch(datagram.address)
            logger.info("Secondary destination active at %s:%d", *datagram.address)
            return True
        logger.warning(
            "Handshake gave up after %d attempts; broadcasting to the primary destination only",
            self.attempts,
        )
        return False
