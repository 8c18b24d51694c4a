from typing import Dict, List, Optional, Sequence

import pytest

from so101_teleop.config import MOTOR_NAMES
from so101_teleop.core.calibration import Calibration, MotorCalibration
from so101_teleop.core.servo_bus import FoundServo, ServoBus
from so101_teleop.errors import ServoBusError

ALL_ADDRESSES = [i + 1 for i in range(len(MOTOR_NAMES))]


class FakeServoBus(ServoBus):
    """In-memory servo bus with failure injection."""

    def __init__(self, port: str = "fake", addresses: Sequence[int] = ALL_ADDRESSES, raw: int = 2000):
        self.port = port
        self.addresses = list(addresses)
        self.raw: Dict[int, int] = {address: raw for address in self.addresses}
        self.scripted: Dict[int, List[int]] = {}
        self.extra_positions: Dict[int, int] = {}
        self.torque: Dict[int, bool] = {address: False for address in self.addresses}
        self.events: List[tuple] = []
        self.writes: List[Dict[int, int]] = []

        self.fail_reads = 0
        self.fail_writes = 0
        self.fail_torque: set = set()
        self.fail_position: set = set()

        self.read_calls = 0
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self.close_calls > 0

    def scan(self, low: int, high: int) -> List[FoundServo]:
        return [FoundServo(address, 777) for address in self.addresses if low <= address <= high]

    def position(self, address: int) -> int:
        self.events.append(("position", address))
        if address in self.fail_position:
            raise ServoBusError(f"no reply from servo {address}")
        if self.scripted.get(address):
            self.raw[address] = self.scripted[address].pop(0)
        return self.raw[address]

    def set_position(self, address: int, raw: int, duration_ms: Optional[int] = None):
        self.events.append(("set_position", address, raw, duration_ms))
        self.raw[address] = raw

    def enable(self, address: int):
        self.events.append(("enable", address))
        if address in self.fail_torque:
            raise ServoBusError(f"torque write to servo {address} failed")
        self.torque[address] = True

    def disable(self, address: int):
        self.events.append(("disable", address))
        if address in self.fail_torque:
            raise ServoBusError(f"torque write to servo {address} failed")
        self.torque[address] = False

    def positions(self, addresses: Sequence[int]) -> Dict[int, int]:
        self.read_calls += 1
        if self.fail_reads:
            self.fail_reads -= 1
            raise ServoBusError("sync read timed out")
        values = {address: self.raw[address] for address in addresses}
        values.update(self.extra_positions)
        return values

    def set_positions(self, positions: Dict[int, int]):
        if self.fail_writes:
            self.fail_writes -= 1
            raise ServoBusError("sync write failed")
        self.writes.append(dict(positions))
        self.raw.update(positions)

    def close(self):
        self.close_calls += 1


class FakeBusFactory:
    """Bus factory that hands out FakeServoBus instances and can refuse ports."""

    def __init__(self, failing_ports: Sequence[str] = ()):
        self.failing_ports = set(failing_ports)
        self.buses: Dict[str, FakeServoBus] = {}

    def __call__(self, port: str, addresses: Sequence[int]) -> FakeServoBus:
        if port in self.failing_ports:
            raise ServoBusError(f"could not open port {port}")
        bus = FakeServoBus(port, addresses)
        self.buses[port] = bus
        return bus


def make_calibration(range_min: int = 1000, range_max: int = 3000) -> Calibration:
    return Calibration(
        {
            name: MotorCalibration(id=i + 1, range_min=range_min, range_max=range_max)
            for i, name in enumerate(MOTOR_NAMES)
        }
    )


@pytest.fixture
def calibration() -> Calibration:
    return make_calibration()


@pytest.fixture
def bus() -> FakeServoBus:
    return FakeServoBus()


@pytest.fixture
def bus_factory() -> FakeBusFactory:
    return FakeBusFactory()
