"""
Calibration model for the SO-101 arm.
Maps raw servo positions to a hardware independent [-100, 100] range per motor.
"""

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from ..config import MOTOR_NAMES
from ..errors import CalibrationError

logger = logging.getLogger(__name__)

NORMALIZED_MIN = -100.0
NORMALIZED_MAX = 100.0


@dataclass(frozen=True)
class MotorCalibration:
    """Recorded range of motion for one servo."""

    id: int             # Servo address
    range_min: int      # Lowest raw position seen during calibration
    range_max: int      # Highest raw position seen during calibration
    drive_mode: int = 0
    homing_offset: int = 0

    @property
    def span(self) -> int:
        return self.range_max - self.range_min

    def normalize(self, raw: int) -> float:
        """Convert a raw servo position to the [-100, 100] range.

        Positions outside the recorded range map outside [-100, 100]. A zero-width
        range normalizes to 0.
        """
        span = self.span
        if span == 0:
            return 0.0
        return ((raw - self.range_min) / span) * (NORMALIZED_MAX - NORMALIZED_MIN) + NORMALIZED_MIN

    def denormalize(self, norm: float) -> int:
        """Convert a normalized position back to a raw servo position (truncated)."""
        return int(((norm - NORMALIZED_MIN) / (NORMALIZED_MAX - NORMALIZED_MIN)) * self.span) + self.range_min

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "drive_mode": self.drive_mode,
            "homing_offset": self.homing_offset,
            "range_min": self.range_min,
            "range_max": self.range_max,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MotorCalibration":
        try:
            return cls(
                id=int(data["id"]),
                range_min=int(data["range_min"]),
                range_max=int(data["range_max"]),
                drive_mode=int(data.get("drive_mode", 0)),
                homing_offset=int(data.get("homing_offset", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CalibrationError(f"Invalid motor calibration record {data!r}: {e}") from e


class Calibration(Mapping):
    """Read-only mapping from motor name to its MotorCalibration."""

    def __init__(self, motors: Optional[Mapping] = None):
        self._motors: Dict[str, MotorCalibration] = dict(motors or {})

    def __getitem__(self, name: str) -> MotorCalibration:
        return self._motors[name]

    def __iter__(self) -> Iterator[str]:
        # Canonical motors first, anything else after in insertion order
        known = [name for name in MOTOR_NAMES if name in self._motors]
        extra = [name for name in self._motors if name not in MOTOR_NAMES]
        return iter(known + extra)

    def __len__(self) -> int:
        return len(self._motors)

    def __eq__(self, other) -> bool:
        if isinstance(other, Calibration):
            return self._motors == other._motors
        return NotImplemented

    def __repr__(self) -> str:
        return f"Calibration({self._motors!r})"

    def motor_ids(self) -> List[int]:
        """Servo addresses of the calibrated motors, in canonical motor order."""
        return [self._motors[name].id for name in MOTOR_NAMES if name in self._motors]

    def by_id(self, motor_id: int) -> Optional[Tuple[str, MotorCalibration]]:
        """Find the motor bound to a servo address, or None if no motor uses it."""
        for name, motor in self._motors.items():
            if motor.id == motor_id:
                return name, motor
        return None

    def missing_motors(self) -> List[str]:
        return [name for name in MOTOR_NAMES if name not in self._motors]

    def narrow_motors(self, min_span: int) -> List[str]:
        """Motors whose recorded range is narrower than min_span raw units."""
        return [name for name, motor in self.items() if motor.span < min_span]

    def validate(self):
        """Raise CalibrationError unless all six motors are present with usable ranges."""
        missing = self.missing_motors()
        if missing:
            raise CalibrationError(f"Calibration is missing motors: {', '.join(missing)}")

        ids = [motor.id for motor in self._motors.values()]
        duplicates = sorted({motor_id for motor_id in ids if ids.count(motor_id) > 1})
        if duplicates:
            raise CalibrationError(f"Calibration has duplicate servo ids: {duplicates}")

        inverted = [name for name, motor in self.items() if motor.range_max < motor.range_min]
        if inverted:
            raise CalibrationError(f"Calibration has inverted ranges for: {', '.join(inverted)}")

        for name, motor in self.items():
            if motor.span == 0:
                logger.warning(f"Motor {name} has a zero-width range, it will always read 0")

    def to_dict(self) -> dict:
        return {name: motor.to_dict() for name, motor in self.items()}

    @classmethod
    def from_dict(cls, data: dict) -> "Calibration":
        if not isinstance(data, dict):
            raise CalibrationError(f"Calibration must be a mapping, got {type(data).__name__}")
        return cls({name: MotorCalibration.from_dict(record) for name, record in data.items()})

    @classmethod
    def load(cls, path: Union[str, os.PathLike]) -> "Calibration":
        """Load a calibration record from a JSON file."""
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except OSError as e:
            raise CalibrationError(f"Could not read calibration file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise CalibrationError(f"Could not parse calibration file {path}: {e}") from e
        logger.info(f"Calibration loaded: {path}")
        return cls.from_dict(data)

    def save(self, path: Union[str, os.PathLike]):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Calibration saved: {path}")
