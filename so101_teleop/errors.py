"""
Exception hierarchy for the teleoperation system.
"""


class TeleopError(Exception):
    """Base class for all teleoperation errors."""


class ServoBusError(TeleopError):
    """A servo bus operation failed."""


class ArmConnectionError(TeleopError):
    """The bus for an arm could not be opened."""


class ReadError(TeleopError):
    """Reading positions from an arm failed."""


class WriteError(TeleopError):
    """Writing positions to an arm failed."""


class CalibrationError(TeleopError):
    """Calibration data is missing or invalid."""


class AlreadyRunningError(TeleopError):
    """The controller loop was started while already running."""


class ControllerClosedError(TeleopError):
    """The controller was used after being closed."""
