"""
Leader/Follower Teleoperation for the SO-101 Robot Arm

Move the leader arm by hand and the follower arm replicates the motion in real time.
Positions travel between the arms in a normalized [-100, 100] range built from a
per-motor range-of-motion calibration.
"""

__version__ = "0.1.0"

from .config import RobotConfig, TeleopConfig
from .control_loop import State, TeleopController, mirror_positions
from .core.arm import Arm
from .core.calibration import Calibration, MotorCalibration
from .core.recorder import CalibrationRecorder

__all__ = [
    "Arm",
    "Calibration",
    "CalibrationRecorder",
    "MotorCalibration",
    "RobotConfig",
    "State",
    "TeleopConfig",
    "TeleopController",
    "mirror_positions",
]
