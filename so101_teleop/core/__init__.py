"""
Hardware-facing building blocks: calibration, servo bus, arm, range recorder and channels.
"""

from .arm import Arm
from .calibration import Calibration, MotorCalibration
from .channels import LogChannel, StateMailbox
from .recorder import CalibrationRecorder, RecorderState
from .servo_bus import BatchResult, FoundServo, MotorFailure, ServoBus, is_so_arm

__all__ = [
    "Arm",
    "BatchResult",
    "Calibration",
    "CalibrationRecorder",
    "FoundServo",
    "LogChannel",
    "MotorCalibration",
    "MotorFailure",
    "RecorderState",
    "ServoBus",
    "StateMailbox",
    "is_so_arm",
]
