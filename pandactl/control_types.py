"""Command types returned by control and motion generation callbacks."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable
from typing import Optional, TypeVar

__all__ = [
    "ControllerMode",
    "RealtimeConfig",
    "Torques",
    "JointPositions",
    "JointVelocities",
    "CartesianPose",
    "CartesianVelocities",
    "motion_finished",
]


class ControllerMode(enum.Enum):
    """Controller modes available to a robot."""

    JOINT_IMPEDANCE = enum.auto()
    CARTESIAN_IMPEDANCE = enum.auto()


class RealtimeConfig(enum.Enum):
    """Whether realtime priority is enforced for a control loop thread."""

    ENFORCE = enum.auto()
    IGNORE = enum.auto()


def _vector(values: Iterable[float], length: int, name: str) -> tuple[float, ...]:
    result = tuple(float(value) for value in values)
    if len(result) != length:
        raise ValueError(
            f"{name}: expected {length} values, got {len(result)}."
        )
    return result


def _optional_elbow(elbow: Optional[Iterable[float]]) -> Optional[tuple[float, ...]]:
    if elbow is None:
        return None
    return _vector(elbow, 2, "elbow")


@dataclasses.dataclass(frozen=True)
class Torques:
    """Joint-level torque command in Nm, without gravity and friction."""

    tau_j: tuple[float, ...]
    motion_finished: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "tau_j", _vector(self.tau_j, 7, "Torques"))


@dataclasses.dataclass(frozen=True)
class JointPositions:
    """Joint position command in rad."""

    q: tuple[float, ...]
    motion_finished: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "q", _vector(self.q, 7, "JointPositions"))


@dataclasses.dataclass(frozen=True)
class JointVelocities:
    """Joint velocity command in rad/s."""

    dq: tuple[float, ...]
    motion_finished: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "dq", _vector(self.dq, 7, "JointVelocities"))


@dataclasses.dataclass(frozen=True)
class CartesianPose:
    """Desired end effector pose in base frame, as a column-major 4x4 matrix.

    The optional elbow holds the position of the 3rd joint in rad and the
    sign of the 4th joint.
    """

    o_t_ee: tuple[float, ...]
    elbow: Optional[tuple[float, ...]] = None
    motion_finished: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "o_t_ee", _vector(self.o_t_ee, 16, "CartesianPose"))
        object.__setattr__(self, "elbow", _optional_elbow(self.elbow))

    def has_elbow(self) -> bool:
        """Return whether an elbow configuration is stored."""
        return self.elbow is not None


@dataclasses.dataclass(frozen=True)
class CartesianVelocities:
    """Desired Cartesian velocity in base frame: dx, dy, dz in m/s, then wx, wy, wz in rad/s.

    The optional elbow holds the position of the 3rd joint in rad and the
    sign of the 4th joint.
    """

    o_dp_ee: tuple[float, ...]
    elbow: Optional[tuple[float, ...]] = None
    motion_finished: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "o_dp_ee", _vector(self.o_dp_ee, 6, "CartesianVelocities")
        )
        object.__setattr__(self, "elbow", _optional_elbow(self.elbow))

    def has_elbow(self) -> bool:
        """Return whether an elbow configuration is stored."""
        return self.elbow is not None


_Command = TypeVar(
    "_Command",
    Torques,
    JointPositions,
    JointVelocities,
    CartesianPose,
    CartesianVelocities,
)


def motion_finished(command: _Command) -> _Command:
    """Return a copy of the command marked as the last one of the motion."""
    return dataclasses.replace(command, motion_finished=True)