"""
Configuration module for the SO-101 teleoperation system.
Contains motor layout, loop defaults, serial settings and the persisted robot configuration.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .core.calibration import Calibration

logger = logging.getLogger(__name__)

# --- Motor Configuration ---
# Canonical order; servo address is index + 1
MOTOR_NAMES = ["shoulder_pan", "shoulder_lift", "elbow_flex", "wrist_flex", "wrist_roll", "gripper"]
NUM_MOTORS = len(MOTOR_NAMES)
MOTOR_MODEL = "sts3215"
MIRRORED_MOTORS = ("shoulder_pan", "wrist_roll")

# --- Control Loop ---
DEFAULT_HZ = 60
LOG_CHANNEL_SIZE = 10

# --- Serial Bus ---
BAUDRATE = 1_000_000
SCAN_ADDRESS_RANGE = (1, 6)

# --- Setup / Calibration ---
CALIBRATION_SAMPLE_INTERVAL = 0.1  # seconds between recorder ticks
WIGGLE_AMOUNT = 30                 # raw units
WIGGLE_DURATION_MS = 500

# --- Files ---
DEFAULT_CONFIG_FILE = "so101_teleop.json"

CalibrationSource = Union["Calibration", str, os.PathLike]


@dataclass
class TeleopConfig:
    """Settings for one teleoperation session."""

    leader_port: str
    follower_port: str
    leader_calibration: CalibrationSource
    follower_calibration: CalibrationSource
    hz: int = DEFAULT_HZ
    mirror: bool = False  # Invert shoulder_pan and wrist_roll on the follower

    def __post_init__(self):
        if self.hz is None or self.hz <= 0:
            logger.debug(f"Non-positive frequency {self.hz!r}, using {DEFAULT_HZ} Hz")
            self.hz = DEFAULT_HZ


@dataclass
class ArmConfig:
    """Persisted configuration for a single arm."""

    port: str = ""
    calibration: Optional["Calibration"] = None

    @property
    def is_calibrated(self) -> bool:
        return self.calibration is not None and len(self.calibration) > 0

    def to_dict(self) -> dict:
        data = {"port": self.port}
        if self.is_calibrated:
            data["calibration"] = self.calibration.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ArmConfig":
        from .core.calibration import Calibration

        calibration = data.get("calibration")
        return cls(
            port=data.get("port", ""),
            calibration=Calibration.from_dict(calibration) if calibration else None,
        )


@dataclass
class RobotConfig:
    """Leader and follower arm configuration, written by setup and read by teleoperate."""

    leader: ArmConfig = field(default_factory=ArmConfig)
    follower: ArmConfig = field(default_factory=ArmConfig)

    def to_dict(self) -> dict:
        return {"leader": self.leader.to_dict(), "follower": self.follower.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "RobotConfig":
        return cls(
            leader=ArmConfig.from_dict(data.get("leader", {})),
            follower=ArmConfig.from_dict(data.get("follower", {})),
        )

    @classmethod
    def load(cls, path: Union[str, os.PathLike] = DEFAULT_CONFIG_FILE) -> "RobotConfig":
        with open(path, "r") as f:
            return cls.from_dict(json.load(f))

    def save(self, path: Union[str, os.PathLike] = DEFAULT_CONFIG_FILE):
        path = Path(path)
        if path.parent != Path("."):
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Configuration saved to {path}")

    @staticmethod
    def exists(path: Union[str, os.PathLike] = DEFAULT_CONFIG_FILE) -> bool:
        return os.path.exists(path)

    def to_teleop_config(self, hz: int = DEFAULT_HZ, mirror: bool = False) -> TeleopConfig:
        return TeleopConfig(
            leader_port=self.leader.port,
            follower_port=self.follower.port,
            leader_calibration=self.leader.calibration,
            follower_calibration=self.follower.calibration,
            hz=hz,
            mirror=mirror,
        )
