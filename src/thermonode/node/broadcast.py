from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .accumulator import BufferDiagnostics
from .config import Address, NodeConfig
from .handshake import HandshakeSession
from .messages import MessageError, debug_data, encode, reading_message, rp_temperature
from .transport import DatagramTransport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BroadcastReport:
    average: float
    primary_ok: bool
    secondary_ok: Optional[bool] = None

    @property
    def ok(self) -> bool:
        return self.primary_ok and self.secondary_ok is not False


class Broadcaster:
    """
    Sends one drained average to the primary listener and, once the handshake
    succeeded, to the secondary peer.

    The two sends are independent and never retried here; the next drain is
    the retry.
    """

    def __init__(
        self,
        config: NodeConfig,
        session: HandshakeSession,
        primary: DatagramTransport,
        secondary: Optional[DatagramTransport] = None,
    ) -> None:
        self.config = config
        self.session = session
        self.primary = primary
        self.secondary = secondary if secondary is not None else primary
        self.sent = 0
        self.failures = 0

    def broadcast(
        self,
        average: float,
        diagnostics: BufferDiagnostics,
        error_count: int,
        vcc: Optional[float] = None,
    ) -> BroadcastReport:
        debug = debug_data(diagnostics, error_count) if self.config.acquisition.debug else None
        payload = reading_message(
            self.config.probe,
            average,
            vcc if vcc is not None else self.config.acquisition.vcc,
            debug,
        )
        primary_ok = self._send(self.primary, payload, self.config.network.primary)
        self._account(primary_ok, "primary", self.config.network.primary)

        secondary_ok: Optional[bool] = None
        if self.session.secondary_active and self.session.peer is not None:
            message = rp_temperature(self.session.serial, self.session.next_epoch(), average)
            secondary_ok = self._send(self.secondary, message.to_dict(), self.session.peer)
            self._account(secondary_ok, "secondary", self.session.peer)

        logger.info("Broadcast %.2f C (primary=%s secondary=%s)", average, primary_ok, secondary_ok)
        return BroadcastReport(average=average, primary_ok=primary_ok, secondary_ok=secondary_ok)

    def _send(self, transport: DatagramTransport, message: Dict[str, Any], address: Address) -> bool:
        try:
            payload = encode(message)
        except MessageError as exc:
            logger.error("Dropping unencodable broadcast: %s", exc)
            return False
        return transport.send(payload, address)

    def _account(self, ok: bool, label: str, address) -> None:
        if ok:
            self.sent += 1
            return
        self.failures += 1
        logger.error("Broadcast to %s destination %s:%d failed", label, address[0], address[1])
