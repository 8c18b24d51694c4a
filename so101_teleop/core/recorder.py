"""
Interactive range-of-motion recorder.

Torque is disabled so the operator can move the arm by hand; every tick the
current position of each motor is sampled and the observed min/max bounds are
widened. When the operator signals completion the bounds become the calibration.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

import numpy as np

from ..config import CALIBRATION_SAMPLE_INTERVAL, MOTOR_NAMES
from ..errors import CalibrationError, ServoBusError
from .calibration import Calibration, MotorCalibration
from .servo_bus import ServoBus

logger = logging.getLogger(__name__)


class RecorderState(Enum):
    """States of the range recorder."""

    IDLE = "idle"          # Not started
    SAMPLING = "sampling"  # Torque off, widening bounds every tick
    DONE = "done"          # Bounds frozen


class CalibrationRecorder:
    """Records the range of motion of each motor of one arm.

    Motor i (in canonical order) is expected at servo address i + 1. Bounds are
    tracked as float arrays where NaN means "no reading yet"; np.fmin/np.fmax
    ignore NaN so a failed read leaves the bounds untouched.
    """

    def __init__(self, bus: ServoBus, motor_names: Sequence[str] = MOTOR_NAMES):
        self.bus = bus
        self.motor_names = list(motor_names)
        self.addresses = [i + 1 for i in range(len(self.motor_names))]
        self.state = RecorderState.IDLE

        n = len(self.motor_names)
        self.current = np.full(n, np.nan)
        self.min_positions = np.full(n, np.nan)
        self.max_positions = np.full(n, np.nan)

    def _read_positions(self) -> np.ndarray:
        positions = np.full(len(self.addresses), np.nan)
        for i, address in enumerate(self.addresses):
            try:
                positions[i] = self.bus.position(address)
            except ServoBusError as e:
                logger.debug(f"Skipping {self.motor_names[i]} this tick: {e}")
        return positions

    def start(self):
        """Disable torque and seed the bounds from the first sample."""
        if self.state != RecorderState.IDLE:
            raise CalibrationError(f"Recorder already {self.state.value}")

        errors = self.bus.disable_all(self.addresses)
        for address, error in errors.items():
            logger.warning(f"Could not disable torque on servo {address}: {error}")

        seed = self._read_positions()
        self.current = seed.copy()
        self.min_positions = seed.copy()
        self.max_positions = seed.copy()
        self.state = RecorderState.SAMPLING
        logger.info(f"Recording range of motion for {len(self.motor_names)} motors")

    def sample(self) -> np.ndarray:
        """Take one sample and widen the bounds. Returns the raw sample (NaN where a read failed)."""
        if self.state != RecorderState.SAMPLING:
            raise CalibrationError("Recorder is not sampling")

        positions = self._read_positions()
        self.current = np.where(np.isnan(positions), self.current, positions)
        self.min_positions = np.fmin(self.min_positions, positions)
        self.max_positions = np.fmax(self.max_positions, positions)
        return positions

    def bounds(self) -> Dict[str, Dict[str, Optional[int]]]:
        """Current, min and max raw position per motor (None where nothing was read)."""

        def as_int(value):
            return None if np.isnan(value) else int(value)

        return {
            name: {
                "current": as_int(self.current[i]),
                "min": as_int(self.min_positions[i]),
                "max": as_int(self.max_positions[i]),
            }
            for i, name in enumerate(self.motor_names)
        }

    def finish(self) -> Calibration:
        """Freeze the observed bounds and build the calibration."""
        if self.state != RecorderState.SAMPLING:
            raise CalibrationError("Recorder is not sampling")
        self.state = RecorderState.DONE

        unread = [name for i, name in enumerate(self.motor_names) if np.isnan(self.min_positions[i])]
        if unread:
            raise CalibrationError(f"No position was ever read for: {', '.join(unread)}")

        return Calibration(
            {
                name: MotorCalibration(
                    id=self.addresses[i],
                    range_min=int(self.min_positions[i]),
                    range_max=int(self.max_positions[i]),
                )
                for i, name in enumerate(self.motor_names)
            }
        )

    def run(
        self,
        finish_event: threading.Event,
        interval: float = CALIBRATION_SAMPLE_INTERVAL,
        on_sample: Optional[Callable[["CalibrationRecorder"], None]] = None,
    ) -> Calibration:
        """Sample every interval seconds until finish_event is set, then finish."""
        if self.state == RecorderState.IDLE:
            self.start()

        while not finish_event.wait(interval):
            self.sample()
            if on_sample is not None:
                on_sample(self)

        return self.finish()
