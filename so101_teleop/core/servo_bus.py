"""
Abstract servo bus capability and batch result types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from ..config import NUM_MOTORS


@dataclass(frozen=True)
class FoundServo:
    """A servo that answered a scan."""

    address: int
    model: int


@dataclass(frozen=True)
class MotorFailure:
    """A per-motor failure inside a batch operation."""

    motor: str
    address: int
    error: Exception


@dataclass
class BatchResult:
    """Aggregate outcome of a best-effort operation applied to every motor."""

    attempted: int = 0
    failures: List[MotorFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def failed_motors(self) -> List[str]:
        return [failure.motor for failure in self.failures]

    def __str__(self) -> str:
        if self.ok:
            return f"{self.attempted} motors ok"
        details = "; ".join(f"{f.motor} (id {f.address}): {f.error}" for f in self.failures)
        return f"{len(self.failures)}/{self.attempted} motors failed: {details}"


class ServoBus(ABC):
    """Connection to the servos on one serial port.

    Positions are raw servo units. Every method raises ServoBusError on failure.
    """

    @abstractmethod
    def scan(self, low: int, high: int) -> List[FoundServo]:
        """Ping every address in [low, high] and return the servos that answered."""

    @abstractmethod
    def position(self, address: int) -> int:
        """Read the present position of one servo."""

    @abstractmethod
    def set_position(self, address: int, raw: int, duration_ms: Optional[int] = None):
        """Move one servo, optionally over duration_ms milliseconds."""

    @abstractmethod
    def enable(self, address: int):
        """Enable torque on one servo."""

    @abstractmethod
    def disable(self, address: int):
        """Disable torque on one servo."""

    @abstractmethod
    def positions(self, addresses: Sequence[int]) -> Dict[int, int]:
        """Batched present position read."""

    @abstractmethod
    def set_positions(self, positions: Dict[int, int]):
        """Batched goal position write."""

    @abstractmethod
    def close(self):
        """Release the port."""

    def enable_all(self, addresses: Iterable[int]) -> Dict[int, Exception]:
        """Enable torque on each address; returns the per-address errors."""
        return self._apply_all(self.enable, addresses)

    def disable_all(self, addresses: Iterable[int]) -> Dict[int, Exception]:
        """Disable torque on each address; returns the per-address errors."""
        return self._apply_all(self.disable, addresses)

    @staticmethod
    def _apply_all(operation: Callable[[int], None], addresses: Iterable[int]) -> Dict[int, Exception]:
        errors = {}
        for address in addresses:
            try:
                operation(address)
            except Exception as e:
                errors[address] = e
        return errors


# Opens a bus on a port for a set of servo addresses
BusFactory = Callable[[str, Sequence[int]], ServoBus]


def is_so_arm(servos: Sequence[FoundServo]) -> bool:
    """True if the scan found exactly the six servos of an SO-101 arm (ids 1-6)."""
    if len(servos) != NUM_MOTORS:
        return False
    return {servo.address for servo in servos} == set(range(1, NUM_MOTORS + 1))
