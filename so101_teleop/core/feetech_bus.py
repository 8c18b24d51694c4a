"""
Feetech STS servo bus backed by lerobot's FeetechMotorsBus.
Reads and writes raw positions; normalization is done by the Arm using our own calibration.
"""

import logging
from typing import Dict, List, Optional, Sequence

from lerobot.motors import Motor, MotorNormMode
from lerobot.motors.feetech import FeetechMotorsBus
from serial.tools import list_ports

from ..config import BAUDRATE, MOTOR_MODEL, SCAN_ADDRESS_RANGE
from ..errors import ServoBusError
from .servo_bus import FoundServo, ServoBus, is_so_arm

logger = logging.getLogger(__name__)


def _servo_name(address: int) -> str:
    return f"servo_{address}"


class FeetechServoBus(ServoBus):
    """ServoBus over a Feetech serial port.

    Args:
        port: Serial port (e.g. "/dev/ttyACM0")
        addresses: Servo addresses bound to this bus. Leave empty to open the
            port for scanning only.
        baudrate: Serial baudrate
    """

    def __init__(self, port: str, addresses: Sequence[int] = (), baudrate: int = BAUDRATE):
        self.port = port
        self.addresses = list(addresses)
        motors = {
            _servo_name(address): Motor(address, MOTOR_MODEL, MotorNormMode.RANGE_M100_100)
            for address in self.addresses
        }
        try:
            self._bus = FeetechMotorsBus(port=port, motors=motors)
            self._bus.default_baudrate = baudrate
            # The handshake checks that every bound servo answers
            self._bus.connect(handshake=bool(motors))
        except Exception as e:
            raise ServoBusError(f"Could not open bus on {port}: {e}") from e
        logger.debug(f"Feetech bus open on {port} for servos {self.addresses}")

    def _name(self, address: int) -> str:
        name = _servo_name(address)
        if name not in self._bus.motors:
            raise ServoBusError(f"Servo {address} is not bound to the bus on {self.port}")
        return name

    def scan(self, low: int, high: int) -> List[FoundServo]:
        found = []
        for address in range(low, high + 1):
            try:
                model = self._bus.ping(address)
            except Exception as e:
                raise ServoBusError(f"Scan failed on {self.port} at id {address}: {e}") from e
            if model is not None:
                found.append(FoundServo(address=address, model=model))
        return found

    def position(self, address: int) -> int:
        try:
            return int(self._bus.read("Present_Position", self._name(address), normalize=False))
        except Exception as e:
            raise ServoBusError(f"Read position of servo {address} failed: {e}") from e

    def set_position(self, address: int, raw: int, duration_ms: Optional[int] = None):
        name = self._name(address)
        try:
            if duration_ms is not None:
                self._bus.write("Goal_Time", name, int(duration_ms), normalize=False)
            self._bus.write("Goal_Position", name, int(raw), normalize=False)
        except Exception as e:
            raise ServoBusError(f"Write position of servo {address} failed: {e}") from e

    def enable(self, address: int):
        try:
            self._bus.enable_torque(self._name(address))
        except Exception as e:
            raise ServoBusError(f"Enable torque on servo {address} failed: {e}") from e

    def disable(self, address: int):
        try:
            self._bus.disable_torque(self._name(address))
        except Exception as e:
            raise ServoBusError(f"Disable torque on servo {address} failed: {e}") from e

    def positions(self, addresses: Sequence[int]) -> Dict[int, int]:
        names = {self._name(address): address for address in addresses}
        try:
            values = self._bus.sync_read("Present_Position", list(names), normalize=False)
        except Exception as e:
            raise ServoBusError(f"Sync read on {self.port} failed: {e}") from e
        return {names[name]: int(value) for name, value in values.items()}

    def set_positions(self, positions: Dict[int, int]):
        values = {self._name(address): int(raw) for address, raw in positions.items()}
        try:
            self._bus.sync_write("Goal_Position", values, normalize=False)
        except Exception as e:
            raise ServoBusError(f"Sync write on {self.port} failed: {e}") from e

    def close(self):
        try:
            self._bus.disconnect(disable_torque=False)
        except Exception as e:
            raise ServoBusError(f"Closing bus on {self.port} failed: {e}") from e


def open_feetech_bus(port: str, addresses: Sequence[int]) -> FeetechServoBus:
    """Default bus factory used by Arm.create."""
    return FeetechServoBus(port, addresses)


def list_serial_ports() -> List[str]:
    """Serial ports that could host an arm (Bluetooth ports are skipped)."""
    return [p.device for p in list_ports.comports() if "bluetooth" not in p.device.lower()]


def find_arms(ports: Optional[Sequence[str]] = None) -> List[str]:
    """Return the ports that host an SO-101 arm (six servos, ids 1-6)."""
    if ports is None:
        ports = list_serial_ports()

    arms = []
    for port in ports:
        try:
            bus = FeetechServoBus(port)
        except ServoBusError as e:
            logger.debug(f"Skipping {port}: {e}")
            continue
        try:
            servos = bus.scan(*SCAN_ADDRESS_RANGE)
        except ServoBusError as e:
            logger.debug(f"Scan failed on {port}: {e}")
            servos = []
        finally:
            try:
                bus.close()
            except ServoBusError as e:
                logger.debug(f"Error closing {port}: {e}")

        if is_so_arm(servos):
            logger.info(f"Found SO-101 arm on {port}")
            arms.append(port)
    return arms
