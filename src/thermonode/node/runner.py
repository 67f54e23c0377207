from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

import typer

from .accumulator import RollingBuffer
from .broadcast import Broadcaster
from .config import NodeConfig, load_config
from .handshake import Handshake, HandshakeSession
from .machine import AcquisitionMachine
from .messages import TriggerEvent, command_message, encode
from .sensors import ReplaySensor, SensorAdapter, SerialBridgeSensor, SerialSettings, serial
from .transport import DatagramTransport, UdpTransport
from .triggers import CommandListener, EdgeTrigger, TriggerSource

logger = logging.getLogger(__name__)


class NodeHost:
    """Node-side orchestrator: handshake once, then the cooperative poll loop."""

    def __init__(
        self,
        config: NodeConfig,
        sensor: SensorAdapter,
        primary: DatagramTransport,
        secondary: Optional[DatagramTransport] = None,
        commands: Optional[DatagramTransport] = None,
        edge: Optional[EdgeTrigger] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.sensor = sensor
        self.primary = primary
        self.secondary = secondary
        self.command_transport = commands
        self._clock = clock
        self._sleep = sleep
        self.session = HandshakeSession(serial=config.probe.identity)
        self.buffer = RollingBuffer(config.acquisition.capacity)
        self.edge = edge
        self.commands = CommandListener(commands) if commands is not None else None
        self.broadcaster = Broadcaster(config, self.session, primary, secondary)
        self.machine = AcquisitionMachine(
            sensor,
            self.buffer,
            self.broadcaster,
            TriggerSource(edge=edge, commands=self.commands),
            config.acquisition.sample_interval_sec,
            debug=config.acquisition.debug,
            clock=clock,
        )
        self.ticks = 0

    def handshake(self) -> bool:
        if not self.config.handshake.enabled or self.secondary is None:
            logger.info("Handshake disabled; broadcasting to the primary destination only")
            return False
        return Handshake(
            self.secondary,
            self.session,
            self.config.handshake,
            self.config.network.rendezvous,
            sleep=self._sleep,
        ).run()

    def stats(self) -> dict[str, int]:
        machine = self.machine
        return {
            "ticks": self.ticks,
            "samples": machine.samples,
            "errors": machine.error_count,
            "broadcasts": machine.broadcasts,
            "suppressed": machine.suppressed_broadcasts,
            "send_failures": self.broadcaster.failures,
            "overruns": self.buffer.overruns,
            "rejected_edges": self.edge.rejected if self.edge is not None else 0,
            "ignored_commands": self.commands.ignored if self.commands is not None else 0,
        }

    def _emit_stats(self, prefix: str = "") -> None:
        stats = self.stats()
        logger.info(
            "%sticks=%d samples=%d errors=%d broadcasts=%d suppressed=%d send_failures=%d "
            "overruns=%d rejected_edges=%d ignored_commands=%d",
            prefix,
            stats["ticks"],
            stats["samples"],
            stats["errors"],
            stats["broadcasts"],
            stats["suppressed"],
            stats["send_failures"],
            stats["overruns"],
            stats["rejected_edges"],
            stats["ignored_commands"],
        )

    def run(self, max_ticks: Optional[int] = None) -> None:
        try:
            self.handshake()
            logger.info(
                "Node %s running (capacity=%d secondary=%s debug=%s)",
                self.config.probe.identity,
                self.buffer.capacity,
                self.session.secondary_active,
                self.config.acquisition.debug,
            )
            interval_sec = max(float(self.config.host.stats_log_interval), 5.0)
            next_log = self._clock() + interval_sec
            while max_ticks is None or self.ticks < max_ticks:
                if self.commands is not None:
                    self.commands.pump()
                self.machine.tick()
                self.ticks += 1
                if self._clock() >= next_log:
                    self._emit_stats()
                    next_log = self._clock() + interval_sec
                self._sleep(self.config.host.loop_idle_sec)
        except KeyboardInterrupt:
            logger.info("Stopping node (Ctrl+C)")
        finally:
            self.close()
            self._emit_stats("Final stats: ")

    def close(self) -> None:
        self.sensor.close()
        seen: List[int] = []
        for transport in (self.primary, self.secondary, self.command_transport):
            if transport is None or id(transport) in seen:
                continue
            seen.append(id(transport))
            transport.close()


app = typer.Typer(add_completion=False, help="Thermocouple node runtime.")


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(
        Path("host_pi/config.json"), "--config", "-c", help="Path to node config (JSON)."
    ),
    override: Optional[List[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set acquisition.debug=true --set network.primary_port=5000",
    ),
    sensor_kind: str = typer.Option("serial", "--sensor", help="Sample source: serial|replay."),
    port: str = typer.Option("/dev/ttyACM0", "--port", "-p", help="Serial bridge device."),
    baudrate: int = typer.Option(115200, "--baud", help="Serial bridge baudrate."),
    timeout: float = typer.Option(1.0, "--timeout", help="Serial read timeout (seconds)."),
    replay_path: Optional[Path] = typer.Option(None, "--replay", help="Recorded samples CSV for --sensor replay."),
    debug: bool = typer.Option(False, "--debug", help="Include buffer diagnostics in broadcasts."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
    max_ticks: Optional[int] = typer.Option(None, "--max-ticks", help="Stop after N loop iterations."),
):
    """Run the node: handshake, then sample and broadcast on trigger."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    overrides = list(override or [])
    if debug:
        overrides.append("acquisition.debug=true")
    if config_path is not None and not config_path.exists():
        raise typer.BadParameter(f"Config file {config_path} does not exist", param_hint="--config")
    try:
        cfg = load_config(config_path, overrides or None)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    edge = EdgeTrigger(cfg.trigger.edge_debounce_sec)
    kind = sensor_kind.lower()
    sensor: SensorAdapter
    if kind == "serial":
        if serial is None:
            raise typer.BadParameter("pyserial is required for --sensor serial (pip install .[serial])")
        sensor = SerialBridgeSensor(
            SerialSettings(port=port, baudrate=baudrate, timeout=timeout),
            cfg.host,
            on_edge=edge.on_edge,
        ).start()
    elif kind == "replay":
        if replay_path is None:
            raise typer.BadParameter("--replay is required when --sensor=replay")
        sensor = ReplaySensor.from_csv(replay_path)
    else:
        raise typer.BadParameter("--sensor must be one of serial, replay")

    primary = UdpTransport(broadcast=True)
    secondary = UdpTransport(broadcast=True)
    commands = None
    if cfg.trigger.commands_enabled:
        commands = UdpTransport(("", cfg.network.command_port), multicast_group=cfg.network.command_group)
    host = NodeHost(cfg, sensor, primary, secondary, commands, edge)
    host.run(max_ticks=max_ticks)


@app.command("send-command")
def send_command(
    command: TriggerEvent = typer.Argument(..., help="readProbes or broadcastReadings"),
    config_path: Optional[Path] = typer.Option(
        Path("host_pi/config.json"), "--config", "-c", help="Path to node config (JSON)."
    ),
    override: Optional[List[str]] = typer.Option(None, "--set", help="Override config keys."),
):
    """Send a trigger command the way the companion node does."""

    cfg = load_config(config_path if config_path is not None and config_path.exists() else None, override)
    transport = UdpTransport()
    try:
        target = (cfg.network.command_group, cfg.network.command_port)
        if not transport.send(encode(command_message(command)), target):
            typer.echo(f"Failed to send {command.value} to {target[0]}:{target[1]}")
            raise typer.Exit(code=1)
    finally:
        transport.close()
    typer.echo(f"Sent {command.value} to {target[0]}:{target[1]}")
