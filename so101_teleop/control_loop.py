"""
Leader/follower control loop for the teleoperation system.
Reads the leader arm at a fixed rate, writes the positions to the follower and publishes
state snapshots and log lines for observers.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from .config import DEFAULT_HZ, LOG_CHANNEL_SIZE, MIRRORED_MOTORS, TeleopConfig
from .core.arm import Arm
from .core.calibration import Calibration
from .core.channels import LogChannel, StateMailbox
from .core.servo_bus import BusFactory
from .errors import (
    AlreadyRunningError,
    CalibrationError,
    ControllerClosedError,
    ReadError,
    TeleopError,
    WriteError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class State:
    """Snapshot published once per tick."""

    positions: Mapping[str, float] = field(default_factory=dict)
    timestamp: float = 0.0
    error: Optional[Exception] = None


@dataclass(frozen=True)
class LogLine:
    """One entry on the controller log channel."""

    message: str
    timestamp: float = field(default_factory=time.time)
    logged: bool = True  # Also emitted through the logging module

    def __str__(self) -> str:
        return f"[{time.strftime('%H:%M:%S', time.localtime(self.timestamp))}] {self.message}"


class ControllerPhase(Enum):
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"
    CLOSED = "closed"


def mirror_positions(positions: Mapping[str, float], mirror: bool) -> Dict[str, float]:
    """Follower targets for the given leader positions.

    With mirroring, shoulder_pan and wrist_roll are sign-inverted to compensate for
    arms facing each other. Everything else passes through.
    """
    if not mirror:
        return dict(positions)
    return {name: -pos if name in MIRRORED_MOTORS else pos for name, pos in positions.items()}


def _resolve_calibration(source) -> Calibration:
    if isinstance(source, Calibration):
        return source
    if source is None:
        raise CalibrationError("No calibration configured")
    return Calibration.load(source)


class TeleopController:
    """Drives a follower arm from a leader arm at a fixed frequency."""

    def __init__(self, leader: Arm, follower: Arm, hz: int = DEFAULT_HZ, mirror: bool = False):
        self.leader = leader
        self.follower = follower
        self._hz = hz if hz and hz > 0 else DEFAULT_HZ
        self._mirror = mirror

        self._lock = threading.Lock()
        self._phase = ControllerPhase.CREATED
        self._states: StateMailbox[State] = StateMailbox()
        self._logs: LogChannel[LogLine] = LogChannel(LOG_CHANNEL_SIZE)
        self._failing = set()  # Tick operations ("Read", "Write") currently failing

    @classmethod
    def from_config(cls, config: TeleopConfig, bus_factory: Optional[BusFactory] = None) -> "TeleopController":
        """Validate calibrations and connect both arms.

        If the follower cannot be connected the leader is closed again before the
        error propagates.
        """
        leader_calibration = _resolve_calibration(config.leader_calibration)
        follower_calibration = _resolve_calibration(config.follower_calibration)
        leader_calibration.validate()
        follower_calibration.validate()

        leader = Arm.create(config.leader_port, leader_calibration, bus_factory)
        try:
            follower = Arm.create(config.follower_port, follower_calibration, bus_factory)
        except Exception:
            leader.close()
            raise

        return cls(leader, follower, hz=config.hz, mirror=config.mirror)

    # -- Read-only accessors ---------------------------------------------------

    @property
    def hz(self) -> int:
        return self._hz

    @property
    def mirror(self) -> bool:
        return self._mirror

    @property
    def states(self) -> StateMailbox:
        """Most recent State, one slot."""
        return self._states

    @property
    def logs(self) -> LogChannel:
        """Log lines, dropped when nobody reads them."""
        return self._logs

    @property
    def phase(self) -> ControllerPhase:
        with self._lock:
            return self._phase

    @property
    def is_running(self) -> bool:
        return self.phase == ControllerPhase.RUNNING

    # -- Lifecycle -------------------------------------------------------------

    def _log(self, level: int, message: str):
        logger.log(level, message)
        self._logs.publish(LogLine(message))

    def _tick_failed(self, operation: str, error: Exception):
        """Report a per-tick failure.

        Every failure goes to the log channel. Only the first of a run of failures
        is logged above DEBUG; a success ends the run.
        """
        message = f"{operation} error: {error}"
        if operation in self._failing:
            logger.debug(message)
            self._logs.publish(LogLine(message, logged=False))
            return
        self._failing.add(operation)
        self._log(logging.ERROR, message)

    def _tick_ok(self, operation: str):
        if operation in self._failing:
            self._failing.discard(operation)
            self._log(logging.INFO, f"{operation} recovered")

    async def start(self):
        """Run the control loop until cancelled.

        Raises AlreadyRunningError if the loop is already running. On cancellation the
        follower torque is disabled and asyncio.CancelledError is re-raised.
        """
        with self._lock:
            if self._phase == ControllerPhase.CLOSED:
                raise ControllerClosedError("Controller is closed")
            if self._phase == ControllerPhase.RUNNING:
                raise AlreadyRunningError("Teleoperation already running")
            self._phase = ControllerPhase.RUNNING

        try:
            result = self.leader.disable()
            if result.ok:
                self._log(logging.INFO, "Leader arm: torque disabled (passive mode)")
            else:
                self._log(logging.WARNING, f"Warning: failed to disable leader: {result}")

            result = self.follower.enable()
            if result.ok:
                self._log(logging.INFO, "Follower arm: torque enabled")
            else:
                self._log(logging.WARNING, f"Warning: failed to enable follower: {result}")

            self._log(logging.INFO, f"Teleoperation started at {self._hz} Hz")

            loop = asyncio.get_running_loop()
            period = 1.0 / self._hz
            next_tick = loop.time() + period
            while True:
                await asyncio.sleep(max(0.0, next_tick - loop.time()))
                step_start = time.perf_counter()
                self.step()
                logger.debug(f"Step: {(time.perf_counter() - step_start) * 1000:.1f}ms")

                next_tick += period
                now = loop.time()
                if next_tick < now:
                    # Overran: drop the missed ticks instead of bursting to catch up
                    next_tick = now
        except asyncio.CancelledError:
            self._shutdown()
            raise
        finally:
            with self._lock:
                if self._phase == ControllerPhase.RUNNING:
                    self._phase = ControllerPhase.STOPPED

    def step(self):
        """One control cycle: read leader, map, write follower, publish state."""
        try:
            positions = self.leader.read_positions()
        except ReadError as e:
            self._tick_failed("Read", e)
            self._states.put(State(timestamp=time.time(), error=e))
            return
        self._tick_ok("Read")

        targets = mirror_positions(positions, self._mirror)

        try:
            self.follower.write_positions(targets)
        except WriteError as e:
            self._tick_failed("Write", e)
        else:
            self._tick_ok("Write")

        self._states.put(State(positions=MappingProxyType(positions), timestamp=time.time()))

    def _shutdown(self):
        result = self.follower.disable()
        if result.ok:
            self._log(logging.INFO, "Follower arm: torque disabled")
        else:
            self._log(logging.WARNING, f"Warning: failed to disable follower: {result}")
        self._log(logging.INFO, "Teleoperation stopped")

        with self._lock:
            if self._phase == ControllerPhase.RUNNING:
                self._phase = ControllerPhase.STOPPED

    def close(self):
        """Release both arms. The controller cannot be started again."""
        with self._lock:
            self._phase = ControllerPhase.CLOSED

        errors = []
        for arm in (self.leader, self.follower):
            try:
                arm.close()
            except Exception as e:
                errors.append(e)
        if errors:
            raise TeleopError(f"close errors: {errors}")
