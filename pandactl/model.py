"""Robot dynamics and kinematics computed by a model library.

The model library provides one function per quantity and frame. A
:class:`ModelLibrary` bundles them, and :class:`Model` selects the right one
for a requested frame and checks inputs and outputs.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

import numpy as np

__all__ = ["Frame", "ModelLibrary", "Model"]

_INVALID_FRAME = "Invalid frame given."


class Frame(enum.Enum):
    """Frames of the robot, ordered from the base to the stiffness frame."""

    JOINT1 = 0
    JOINT2 = 1
    JOINT3 = 2
    JOINT4 = 3
    JOINT5 = 4
    JOINT6 = 5
    JOINT7 = 6
    FLANGE = 7
    END_EFFECTOR = 8
    STIFFNESS = 9

    def next(self) -> Frame:
        """Return the frame following this one.

        Raises ValueError for the last frame.
        """
        try:
            return Frame(self.value + 1)
        except ValueError:
            raise ValueError(f"{self.name} is the last frame.") from None


# Field name of ModelLibrary -> symbol name exported by the model library.
_SYMBOLS: dict[str, str] = {
    "body_jacobian_joint1": "Ji_J_J1",
    "body_jacobian_joint2": "Ji_J_J2",
    "body_jacobian_joint3": "Ji_J_J3",
    "body_jacobian_joint4": "Ji_J_J4",
    "body_jacobian_joint5": "Ji_J_J5",
    "body_jacobian_joint6": "Ji_J_J6",
    "body_jacobian_joint7": "Ji_J_J7",
    "body_jacobian_flange": "Ji_J_J8",
    "body_jacobian_ee": "Ji_J_J9",
    "mass": "M_NE",
    "zero_jacobian_joint1": "O_J_J1",
    "zero_jacobian_joint2": "O_J_J2",
    "zero_jacobian_joint3": "O_J_J3",
    "zero_jacobian_joint4": "O_J_J4",
    "zero_jacobian_joint5": "O_J_J5",
    "zero_jacobian_joint6": "O_J_J6",
    "zero_jacobian_joint7": "O_J_J7",
    "zero_jacobian_flange": "O_J_J8",
    "zero_jacobian_ee": "O_J_J9",
    "joint1": "O_T_J1",
    "joint2": "O_T_J2",
    "joint3": "O_T_J3",
    "joint4": "O_T_J4",
    "joint5": "O_T_J5",
    "joint6": "O_T_J6",
    "joint7": "O_T_J7",
    "flange": "O_T_J8",
    "ee": "O_T_J9",
    "coriolis": "c_NE",
    "gravity": "g_NE",
}


@dataclasses.dataclass(frozen=True)
class ModelLibrary:
    """The functions of a model library.

    Each function returns its result as a sequence of floats:

    * ``body_jacobian_joint1()`` and ``zero_jacobian_joint1()`` take no
      arguments; the other joint and flange functions take ``q``.
    * the ``*_ee`` functions and ``ee`` take ``q`` and a column-major
      4x4 flange-to-end-effector transformation.
    * ``mass(q, i_load, m_load, f_x_cload)``,
      ``coriolis(q, dq, i_load, m_load, f_x_cload)`` and
      ``gravity(q, g_earth, m_load, f_x_cload)``.
    """

    body_jacobian_joint1: Callable[..., Sequence[float]]
    body_jacobian_joint2: Callable[..., Sequence[float]]
    body_jacobian_joint3: Callable[..., Sequence[float]]
    body_jacobian_joint4: Callable[..., Sequence[float]]
    body_jacobian_joint5: Callable[..., Sequence[float]]
    body_jacobian_joint6: Callable[..., Sequence[float]]
    body_jacobian_joint7: Callable[..., Sequence[float]]
    body_jacobian_flange: Callable[..., Sequence[float]]
    body_jacobian_ee: Callable[..., Sequence[float]]
    mass: Callable[..., Sequence[float]]
    zero_jacobian_joint1: Callable[..., Sequence[float]]
    zero_jacobian_joint2: Callable[..., Sequence[float]]
    zero_jacobian_joint3: Callable[..., Sequence[float]]
    zero_jacobian_joint4: Callable[..., Sequence[float]]
    zero_jacobian_joint5: Callable[..., Sequence[float]]
    zero_jacobian_joint6: Callable[..., Sequence[float]]
    zero_jacobian_joint7: Callable[..., Sequence[float]]
    zero_jacobian_flange: Callable[..., Sequence[float]]
    zero_jacobian_ee: Callable[..., Sequence[float]]
    joint1: Callable[..., Sequence[float]]
    joint2: Callable[..., Sequence[float]]
    joint3: Callable[..., Sequence[float]]
    joint4: Callable[..., Sequence[float]]
    joint5: Callable[..., Sequence[float]]
    joint6: Callable[..., Sequence[float]]
    joint7: Callable[..., Sequence[float]]
    flange: Callable[..., Sequence[float]]
    ee: Callable[..., Sequence[float]]
    coriolis: Callable[..., Sequence[float]]
    gravity: Callable[..., Sequence[float]]

    @classmethod
    def from_symbols(cls, symbols: Mapping[str, Callable[..., Sequence[float]]]) -> ModelLibrary:
        """Build a library from functions keyed by their exported symbol names.

        Raises KeyError naming the first symbol that is missing.
        """
        functions = {}
        for field, symbol in _SYMBOLS.items():
            try:
                functions[field] = symbols[symbol]
            except KeyError:
                raise KeyError(f"Model library lacks symbol {symbol}.") from None
        return cls(**functions)


def _vector(values: Iterable[float], length: int, name: str) -> tuple[float, ...]:
    result = tuple(float(value) for value in values)
    if len(result) != length:
        raise ValueError(f"{name}: expected {length} values, got {len(result)}.")
    return result


def _stiffness_transform(
    f_t_ee: Iterable[float], ee_t_k: Iterable[float]
) -> tuple[float, ...]:
    """Return F_T_EE * EE_T_K, both and the result column-major."""
    f_matrix = np.array(_vector(f_t_ee, 16, "F_T_EE")).reshape(4, 4, order="F")
    k_matrix = np.array(_vector(ee_t_k, 16, "EE_T_K")).reshape(4, 4, order="F")
    product = f_matrix @ k_matrix
    return tuple(float(value) for value in product.flatten(order="F"))


class Model:
    """Kinematics and dynamics of the robot, backed by a model library."""

    def __init__(self, library: ModelLibrary) -> None:
        self._library = library

    def _per_frame(
        self,
        frame: Frame,
        joint_functions: Sequence[Callable[..., Sequence[float]]],
        first_takes_q: bool,
        ee_function: Callable[..., Sequence[float]],
        q: Iterable[float],
        f_t_ee: Iterable[float],
        ee_t_k: Iterable[float],
        length: int,
        name: str,
    ) -> tuple[float, ...]:
        if not isinstance(frame, Frame):
            raise ValueError(_INVALID_FRAME)
        joints = _vector(q, 7, "q")
        if frame is Frame.END_EFFECTOR:
            output = ee_function(joints, _vector(f_t_ee, 16, "F_T_EE"))
        elif frame is Frame.STIFFNESS:
            output = ee_function(joints, _stiffness_transform(f_t_ee, ee_t_k))
        else:
            function = joint_functions[frame.value]
            if frame is Frame.JOINT1 and not first_takes_q:
                output = function()
            else:
                output = function(joints)
        return _vector(output, length, name)

    def pose(
        self,
        frame: Frame,
        q: Iterable[float],
        f_t_ee: Iterable[float],
        ee_t_k: Iterable[float],
    ) -> tuple[float, ...]:
        """Return the column-major 4x4 pose of frame relative to the base."""
        lib = self._library
        return self._per_frame(
            frame,
            (lib.joint1, lib.joint2, lib.joint3, lib.joint4,
             lib.joint5, lib.joint6, lib.joint7, lib.flange),
            True,
            lib.ee,
            q,
            f_t_ee,
            ee_t_k,
            16,
            "pose",
        )

    def pose_from_state(self, frame: Frame, robot_state: Any) -> tuple[float, ...]:
        """Return the pose of frame for the q, f_t_ee and ee_t_k of a robot state."""
        return self.pose(frame, robot_state.q, robot_state.f_t_ee, robot_state.ee_t_k)

    def body_jacobian(
        self,
        frame: Frame,
        q: Iterable[float],
        f_t_ee: Iterable[float],
        ee_t_k: Iterable[float],
    ) -> tuple[float, ...]:
        """Return the column-major 6x7 Jacobian of frame relative to itself."""
        lib = self._library
        return self._per_frame(
            frame,
            (lib.body_jacobian_joint1, lib.body_jacobian_joint2,
             lib.body_jacobian_joint3, lib.body_jacobian_joint4,
             lib.body_jacobian_joint5, lib.body_jacobian_joint6,
             lib.body_jacobian_joint7, lib.body_jacobian_flange),
            False,
            lib.body_jacobian_ee,
            q,
            f_t_ee,
            ee_t_k,
            42,
            "body jacobian",
        )

    def body_jacobian_from_state(self, frame: Frame, robot_state: Any) -> tuple[float, ...]:
        """Return the body Jacobian of frame for a robot state."""
        return self.body_jacobian(
            frame, robot_state.q, robot_state.f_t_ee, robot_state.ee_t_k
        )

    def zero_jacobian(
        self,
        frame: Frame,
        q: Iterable[float],
        f_t_ee: Iterable[float],
        ee_t_k: Iterable[float],
    ) -> tuple[float, ...]:
        """Return the column-major 6x7 Jacobian of frame relative to the base."""
        lib = self._library
        return self._per_frame(
            frame,
            (lib.zero_jacobian_joint1, lib.zero_jacobian_joint2,
             lib.zero_jacobian_joint3, lib.zero_jacobian_joint4,
             lib.zero_jacobian_joint5, lib.zero_jacobian_joint6,
             lib.zero_jacobian_joint7, lib.zero_jacobian_flange),
            False,
            lib.zero_jacobian_ee,
            q,
            f_t_ee,
            ee_t_k,
            42,
            "zero jacobian",
        )

    def zero_jacobian_from_state(self, frame: Frame, robot_state: Any) -> tuple[float, ...]:
        """Return the zero Jacobian of frame for a robot state."""
        return self.zero_jacobian(
            frame, robot_state.q, robot_state.f_t_ee, robot_state.ee_t_k
        )

    def mass(
        self,
        q: Iterable[float],
        i_total: Iterable[float],
        m_total: float,
        f_x_ctotal: Iterable[float],
    ) -> tuple[float, ...]:
        """Return the column-major 7x7 mass matrix."""
        output = self._library.mass(
            _vector(q, 7, "q"),
            _vector(i_total, 9, "I_total"),
            float(m_total),
            _vector(f_x_ctotal, 3, "F_x_Ctotal"),
        )
        return _vector(output, 49, "mass")

    def mass_from_state(self, robot_state: Any) -> tuple[float, ...]:
        """Return the mass matrix for a robot state."""
        return self.mass(
            robot_state.q, robot_state.i_total, robot_state.m_total, robot_state.f_x_ctotal
        )

    def coriolis(
        self,
        q: Iterable[float],
        dq: Iterable[float],
        i_total: Iterable[float],
        m_total: float,
        f_x_ctotal: Iterable[float],
    ) -> tuple[float, ...]:
        """Return the Coriolis force vector."""
        output = self._library.coriolis(
            _vector(q, 7, "q"),
            _vector(dq, 7, "dq"),
            _vector(i_total, 9, "I_total"),
            float(m_total),
            _vector(f_x_ctotal, 3, "F_x_Ctotal"),
        )
        return _vector(output, 7, "coriolis")

    def coriolis_from_state(self, robot_state: Any) -> tuple[float, ...]:
        """Return the Coriolis force vector for a robot state."""
        return self.coriolis(
            robot_state.q,
            robot_state.dq,
            robot_state.i_total,
            robot_state.m_total,
            robot_state.f_x_ctotal,
        )

    def gravity(
        self,
        q: Iterable[float],
        m_total: float,
        f_x_ctotal: Iterable[float],
        gravity_earth: Iterable[float] = (0.0, 0.0, -9.81),
    ) -> tuple[float, ...]:
        """Return the gravity torque vector."""
        output = self._library.gravity(
            _vector(q, 7, "q"),
            _vector(gravity_earth, 3, "gravity_earth"),
            float(m_total),
            _vector(f_x_ctotal, 3, "F_x_Ctotal"),
        )
        return _vector(output, 7, "gravity")

    def gravity_from_state(
        self, robot_state: Any, gravity_earth: Iterable[float] = (0.0, 0.0, -9.81)
    ) -> tuple[float, ...]:
        """Return the gravity torque vector for a robot state."""
        return self.gravity(
            robot_state.q, robot_state.m_total, robot_state.f_x_ctotal, gravity_earth
        )