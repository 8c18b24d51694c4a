from types import SimpleNamespace

import pytest

from so101_teleop.config import BAUDRATE
from so101_teleop.core import feetech_bus
from so101_teleop.core.feetech_bus import FeetechServoBus, find_arms, list_serial_ports
from so101_teleop.errors import ServoBusError


@pytest.fixture
def motors_bus(monkeypatch):
    """Replaces lerobot's FeetechMotorsBus with a stand-in that records every call."""

    class RecordingMotorsBus:
        models = {}            # port -> {servo id: model number}
        failing_connect = set()
        failing_ping = set()
        failing_read = set()
        instances = []

        def __init__(self, port, motors):
            self.port = port
            self.motors = dict(motors)
            self.default_baudrate = None
            self.calls = []
            self.instances.append(self)

        def connect(self, handshake=True):
            self.calls.append(("connect", handshake))
            if self.port in self.failing_connect:
                raise ConnectionError(f"could not open {self.port}")

        def ping(self, motor):
            self.calls.append(("ping", motor))
            if self.port in self.failing_ping:
                raise ConnectionError("no status packet")
            return self.models.get(self.port, {}).get(motor)

        def read(self, register, motor, normalize=True):
            self.calls.append(("read", register, motor, normalize))
            if self.port in self.failing_read:
                raise RuntimeError("checksum mismatch")
            return 2048

        def write(self, register, motor, value, normalize=True):
            self.calls.append(("write", register, motor, value, normalize))

        def enable_torque(self, motors=None):
            self.calls.append(("enable_torque", motors))

        def disable_torque(self, motors=None):
            self.calls.append(("disable_torque", motors))

        def sync_read(self, register, motors=None, normalize=True):
            self.calls.append(("sync_read", register, list(motors), normalize))
            return {name: 1000.0 + self.motors[name].id for name in motors}

        def sync_write(self, register, values, normalize=True):
            self.calls.append(("sync_write", register, dict(values), normalize))

        def disconnect(self, disable_torque=True):
            self.calls.append(("disconnect", disable_torque))

    monkeypatch.setattr(feetech_bus, "FeetechMotorsBus", RecordingMotorsBus)
    return RecordingMotorsBus


def test_open_binds_addresses_and_handshakes(motors_bus):
    FeetechServoBus("/dev/ttyACM0", [1, 2, 3])

    lerobot_bus = motors_bus.instances[0]
    assert list(lerobot_bus.motors) == ["servo_1", "servo_2", "servo_3"]
    assert lerobot_bus.motors["servo_2"].id == 2
    assert lerobot_bus.default_baudrate == BAUDRATE
    assert lerobot_bus.calls == [("connect", True)]


def test_scan_only_bus_skips_handshake(motors_bus):
    FeetechServoBus("/dev/ttyACM0")
    assert motors_bus.instances[0].calls == [("connect", False)]


def test_open_failure_raises_bus_error(motors_bus):
    motors_bus.failing_connect = {"/dev/ttyACM0"}
    with pytest.raises(ServoBusError, match="/dev/ttyACM0"):
        FeetechServoBus("/dev/ttyACM0", [1])


def test_set_position_with_duration_writes_goal_time_first(motors_bus):
    bus = FeetechServoBus("/dev/ttyACM0", [1])

    bus.set_position(1, 2078, duration_ms=500)
    bus.set_position(1, 2048)

    assert motors_bus.instances[0].calls[1:] == [
        ("write", "Goal_Time", "servo_1", 500, False),
        ("write", "Goal_Position", "servo_1", 2078, False),
        ("write", "Goal_Position", "servo_1", 2048, False),
    ]


def test_single_servo_read_and_torque(motors_bus):
    bus = FeetechServoBus("/dev/ttyACM0", [4])

    assert bus.position(4) == 2048
    bus.enable(4)
    bus.disable(4)

    assert motors_bus.instances[0].calls[1:] == [
        ("read", "Present_Position", "servo_4", False),
        ("enable_torque", "servo_4"),
        ("disable_torque", "servo_4"),
    ]


def test_batched_read_and_write_are_raw(motors_bus):
    bus = FeetechServoBus("/dev/ttyACM0", [1, 2, 6])

    positions = bus.positions([1, 2, 6])
    bus.set_positions({1: 1500, 6: 2500})

    assert positions == {1: 1001, 2: 1002, 6: 1006}
    assert all(isinstance(value, int) for value in positions.values())
    assert motors_bus.instances[0].calls[1:] == [
        ("sync_read", "Present_Position", ["servo_1", "servo_2", "servo_6"], False),
        ("sync_write", "Goal_Position", {"servo_1": 1500, "servo_6": 2500}, False),
    ]


def test_unbound_address_is_rejected(motors_bus):
    bus = FeetechServoBus("/dev/ttyACM0", [1])

    with pytest.raises(ServoBusError, match="not bound"):
        bus.position(2)
    assert "servo_2" not in motors_bus.instances[0].motors
    assert motors_bus.instances[0].calls == [("connect", True)]


def test_lerobot_errors_become_bus_errors(motors_bus):
    motors_bus.failing_read = {"/dev/ttyACM0"}
    bus = FeetechServoBus("/dev/ttyACM0", [1])

    with pytest.raises(ServoBusError, match="checksum mismatch"):
        bus.position(1)


def test_close_keeps_torque_state(motors_bus):
    FeetechServoBus("/dev/ttyACM0", [1]).close()
    assert motors_bus.instances[0].calls[-1] == ("disconnect", False)


def test_scan_reports_answering_servos(motors_bus):
    motors_bus.models = {"/dev/ttyACM0": {1: 777, 3: 777}}
    bus = FeetechServoBus("/dev/ttyACM0")

    found = bus.scan(1, 4)

    assert [(servo.address, servo.model) for servo in found] == [(1, 777), (3, 777)]


def test_list_serial_ports_skips_bluetooth(monkeypatch):
    ports = [
        SimpleNamespace(device="/dev/ttyACM0"),
        SimpleNamespace(device="/dev/cu.Bluetooth-Incoming-Port"),
        SimpleNamespace(device="/dev/ttyUSB1"),
    ]
    monkeypatch.setattr(feetech_bus.list_ports, "comports", lambda: ports)

    assert list_serial_ports() == ["/dev/ttyACM0", "/dev/ttyUSB1"]


def test_find_arms_keeps_only_complete_arms(motors_bus):
    six = {address: 777 for address in range(1, 7)}
    motors_bus.models = {
        "/dev/arm": six,
        "/dev/partial": {address: 777 for address in range(1, 6)},
        "/dev/broken": six,
    }
    motors_bus.failing_ping = {"/dev/broken"}
    motors_bus.failing_connect = {"/dev/dead"}

    arms = find_arms(["/dev/arm", "/dev/partial", "/dev/broken", "/dev/dead"])

    assert arms == ["/dev/arm"]
    opened = {bus.port: bus for bus in motors_bus.instances}
    # Every bus that opened is closed, including the one whose scan failed
    for port in ("/dev/arm", "/dev/partial", "/dev/broken"):
        assert opened[port].calls[-1] == ("disconnect", False)
    assert opened["/dev/dead"].calls == [("connect", False)]


def test_find_arms_defaults_to_serial_ports(motors_bus, monkeypatch):
    motors_bus.models = {"/dev/ttyACM1": {address: 777 for address in range(1, 7)}}
    monkeypatch.setattr(
        feetech_bus.list_ports,
        "comports",
        lambda: [SimpleNamespace(device="/dev/ttyACM0"), SimpleNamespace(device="/dev/ttyACM1")],
    )

    assert find_arms() == ["/dev/ttyACM1"]
