"""
Arm abstraction: one physical arm on one servo bus, spoken to in normalized units.
"""

import logging
from typing import Dict, Mapping, Optional

from ..errors import ArmConnectionError, ReadError, ServoBusError, WriteError
from .calibration import Calibration
from .servo_bus import BatchResult, BusFactory, MotorFailure, ServoBus

logger = logging.getLogger(__name__)


class Arm:
    """A calibrated arm.

    Owns its bus exclusively. Positions exchanged with callers are normalized to
    [-100, 100] using the arm's calibration; nothing is retried here.
    """

    def __init__(self, bus: ServoBus, calibration: Calibration, port: str = ""):
        self.port = port
        self.calibration = calibration
        self.motor_ids = calibration.motor_ids()
        self._bus: Optional[ServoBus] = bus

    @classmethod
    def create(cls, port: str, calibration: Calibration, bus_factory: Optional[BusFactory] = None) -> "Arm":
        """Open the bus on port and bind it to the calibrated servo addresses."""
        if bus_factory is None:
            from .feetech_bus import open_feetech_bus

            bus_factory = open_feetech_bus

        try:
            bus = bus_factory(port, calibration.motor_ids())
        except ServoBusError as e:
            raise ArmConnectionError(f"Open bus on {port}: {e}") from e

        try:
            arm = cls(bus, calibration, port=port)
        except Exception:
            bus.close()
            raise
        logger.info(f"Arm connected on {port} (servos {arm.motor_ids})")
        return arm

    @property
    def is_connected(self) -> bool:
        return self._bus is not None

    def _require_bus(self) -> ServoBus:
        if self._bus is None:
            raise ServoBusError(f"Arm on {self.port} is closed")
        return self._bus

    def close(self):
        """Release the bus. Safe to call more than once."""
        bus, self._bus = self._bus, None
        if bus is None:
            return
        bus.close()
        logger.info(f"Arm on {self.port} disconnected")

    def enable(self) -> BatchResult:
        """Enable torque on every motor, collecting per-motor failures."""
        return self._set_torque(enabled=True)

    def disable(self) -> BatchResult:
        """Disable torque on every motor, collecting per-motor failures."""
        return self._set_torque(enabled=False)

    def _set_torque(self, enabled: bool) -> BatchResult:
        result = BatchResult(attempted=len(self.motor_ids))
        try:
            bus = self._require_bus()
        except ServoBusError as e:
            result.failures = [MotorFailure(name, motor.id, e) for name, motor in self.calibration.items()]
            return result

        errors = bus.enable_all(self.motor_ids) if enabled else bus.disable_all(self.motor_ids)
        for address, error in errors.items():
            found = self.calibration.by_id(address)
            name = found[0] if found else f"id_{address}"
            result.failures.append(MotorFailure(name, address, error))
        return result

    def read_positions(self) -> Dict[str, float]:
        """Read every motor in one batch and return normalized positions by motor name."""
        try:
            raw_positions = self._require_bus().positions(self.motor_ids)
        except ServoBusError as e:
            raise ReadError(f"read positions: {e}") from e

        positions = {}
        for address, raw in raw_positions.items():
            found = self.calibration.by_id(address)
            if found is None:
                continue
            name, motor = found
            positions[name] = motor.normalize(raw)
        return positions

    def write_positions(self, positions: Mapping[str, float]):
        """Write normalized target positions in one batch. Unknown motor names are skipped."""
        raw_positions = {}
        for name, norm in positions.items():
            motor = self.calibration.get(name)
            if motor is None:
                continue
            raw_positions[motor.id] = motor.denormalize(norm)

        try:
            self._require_bus().set_positions(raw_positions)
        except ServoBusError as e:
            raise WriteError(f"write positions: {e}") from e
