"""Rate limiting of commanded values for a 1 kHz control loop.

Commanded positions, velocities and poses are limited so that their
derivatives (velocity, acceleration and jerk) stay within given bounds.
"""

from __future__ import annotations

import math
import sys
from collections.abc import Iterable, Sequence

import numpy as np

__all__ = [
    "DELTA_T",
    "NORM_EPS",
    "FACTOR_CARTESIAN_ROTATION_POSE_INTERFACE",
    "limit_rate",
    "limit_velocity_rate",
    "limit_position_rate",
    "limit_joint_velocities",
    "limit_joint_positions",
    "limit_cartesian_velocity",
    "limit_cartesian_pose",
    "is_homogeneous_transformation",
]

DELTA_T = 1e-3
"""Sample time of the control loop in seconds."""

NORM_EPS = sys.float_info.epsilon
"""Norms at or below this value are treated as zero."""

FACTOR_CARTESIAN_ROTATION_POSE_INTERFACE = 0.99
"""Scaling of the rotational limits when a Cartesian pose is limited."""

_ORTHONORMAL_THRESHOLD = 1e-5


def _vector(values: Iterable[float], length: int, name: str) -> tuple[float, ...]:
    result = tuple(float(value) for value in values)
    if len(result) != length:
        raise ValueError(f"{name}: expected {length} values, got {len(result)}.")
    return result


def _require_finite(values: Sequence[float], message: str) -> None:
    if not all(math.isfinite(value) for value in values):
        raise ValueError(message)


def _sqrt_or_nan(value: float) -> float:
    return math.sqrt(value) if value >= 0.0 else math.nan


def _limit_vector_rate(
    max_velocity: float,
    max_acceleration: float,
    max_jerk: float,
    commanded_velocity: np.ndarray,
    last_commanded_velocity: np.ndarray,
    last_commanded_acceleration: np.ndarray,
) -> np.ndarray:
    """Limit a 3D velocity by the norms of its velocity, acceleration and jerk."""
    commanded_jerk = (
        (commanded_velocity - last_commanded_velocity) / DELTA_T
        - last_commanded_acceleration
    ) / DELTA_T

    commanded_acceleration = last_commanded_acceleration.copy()
    jerk_norm = float(np.linalg.norm(commanded_jerk))
    if jerk_norm > NORM_EPS:
        commanded_acceleration = commanded_acceleration + (
            commanded_jerk / jerk_norm
        ) * max(min(jerk_norm, max_jerk), -max_jerk) * DELTA_T

    acceleration_norm = float(np.linalg.norm(commanded_acceleration))
    if acceleration_norm <= NORM_EPS:
        return last_commanded_velocity.copy()

    # Distance to the max velocity sphere along the direction of the acceleration.
    unit_acceleration = commanded_acceleration / acceleration_norm
    dot_product = float(unit_acceleration @ last_commanded_velocity)
    distance_to_max_velocity = -dot_product + _sqrt_or_nan(
        dot_product**2
        - float(last_commanded_velocity @ last_commanded_velocity)
        + max_velocity**2
    )

    safe_max_acceleration = min(
        (max_jerk / max_acceleration) * distance_to_max_velocity, max_acceleration
    )
    return (
        last_commanded_velocity
        + unit_acceleration * min(acceleration_norm, safe_max_acceleration) * DELTA_T
    )


def limit_rate(
    max_derivatives: Iterable[float],
    commanded_values: Iterable[float],
    last_commanded_values: Iterable[float],
) -> tuple[float, ...]:
    """Limit the first derivative of seven commanded values, e.g. joint torques."""
    commanded = _vector(commanded_values, 7, "commanded_values")
    _require_finite(commanded, "Commanding value is infinite or NaN.")
    maxima = _vector(max_derivatives, 7, "max_derivatives")
    last = _vector(last_commanded_values, 7, "last_commanded_values")
    return tuple(
        previous
        + max(min((value - previous) / DELTA_T, limit), -limit) * DELTA_T
        for limit, value, previous in zip(maxima, commanded, last)
    )


def limit_velocity_rate(
    max_velocity: float,
    max_acceleration: float,
    max_jerk: float,
    commanded_velocity: float,
    last_commanded_velocity: float,
    last_commanded_acceleration: float,
) -> float:
    """Limit a single commanded velocity by velocity, acceleration and jerk bounds."""
    if not math.isfinite(commanded_velocity):
        raise ValueError("commanded_velocity is infinite or NaN.")
    commanded_jerk = (
        (commanded_velocity - last_commanded_velocity) / DELTA_T
        - last_commanded_acceleration
    ) / DELTA_T

    commanded_acceleration = (
        last_commanded_acceleration
        + max(min(commanded_jerk, max_jerk), -max_jerk) * DELTA_T
    )

    ratio = max_jerk / max_acceleration
    safe_max_acceleration = min(
        ratio * (max_velocity - last_commanded_velocity), max_acceleration
    )
    safe_min_acceleration = max(
        ratio * (-max_velocity - last_commanded_velocity), -max_acceleration
    )

    return (
        last_commanded_velocity
        + max(min(commanded_acceleration, safe_max_acceleration), safe_min_acceleration)
        * DELTA_T
    )


def limit_position_rate(
    max_velocity: float,
    max_acceleration: float,
    max_jerk: float,
    commanded_position: float,
    last_commanded_position: float,
    last_commanded_velocity: float,
    last_commanded_acceleration: float,
) -> float:
    """Limit a single commanded position by velocity, acceleration and jerk bounds."""
    if not math.isfinite(commanded_position):
        raise ValueError("commanded_position is infinite or NaN.")
    velocity = limit_velocity_rate(
        max_velocity,
        max_acceleration,
        max_jerk,
        (commanded_position - last_commanded_position) / DELTA_T,
        last_commanded_velocity,
        last_commanded_acceleration,
    )
    return last_commanded_position + velocity * DELTA_T


def limit_joint_velocities(
    max_velocity: Iterable[float],
    max_acceleration: Iterable[float],
    max_jerk: Iterable[float],
    commanded_velocities: Iterable[float],
    last_commanded_velocities: Iterable[float],
    last_commanded_accelerations: Iterable[float],
) -> tuple[float, ...]:
    """Limit seven commanded joint velocities joint by joint."""
    commanded = _vector(commanded_velocities, 7, "commanded_velocities")
    _require_finite(commanded, "commanded_velocities is infinite or NaN.")
    return tuple(
        limit_velocity_rate(*values)
        for values in zip(
            _vector(max_velocity, 7, "max_velocity"),
            _vector(max_acceleration, 7, "max_acceleration"),
            _vector(max_jerk, 7, "max_jerk"),
            commanded,
            _vector(last_commanded_velocities, 7, "last_commanded_velocities"),
            _vector(last_commanded_accelerations, 7, "last_commanded_accelerations"),
        )
    )


def limit_joint_positions(
    max_velocity: Iterable[float],
    max_acceleration: Iterable[float],
    max_jerk: Iterable[float],
    commanded_positions: Iterable[float],
    last_commanded_positions: Iterable[float],
    last_commanded_velocities: Iterable[float],
    last_commanded_accelerations: Iterable[float],
) -> tuple[float, ...]:
    """Limit seven commanded joint positions joint by joint."""
    commanded = _vector(commanded_positions, 7, "commanded_positions")
    _require_finite(commanded, "commanded_positions is infinite or NaN.")
    return tuple(
        limit_position_rate(*values)
        for values in zip(
            _vector(max_velocity, 7, "max_velocity"),
            _vector(max_acceleration, 7, "max_acceleration"),
            _vector(max_jerk, 7, "max_jerk"),
            commanded,
            _vector(last_commanded_positions, 7, "last_commanded_positions"),
            _vector(last_commanded_velocities, 7, "last_commanded_velocities"),
            _vector(last_commanded_accelerations, 7, "last_commanded_accelerations"),
        )
    )


def limit_cartesian_velocity(
    max_translational_velocity: float,
    max_translational_acceleration: float,
    max_translational_jerk: float,
    max_rotational_velocity: float,
    max_rotational_acceleration: float,
    max_rotational_jerk: float,
    o_dp_ee_c: Iterable[float],
    last_o_dp_ee_c: Iterable[float],
    last_o_ddp_ee_c: Iterable[float],
) -> tuple[float, ...]:
    """Limit a commanded twist (translation first, then rotation)."""
    commanded = _vector(o_dp_ee_c, 6, "O_dP_EE_c")
    _require_finite(commanded, "O_dP_EE_c is infinite or NaN.")
    dx = np.array(commanded)
    last_dx = np.array(_vector(last_o_dp_ee_c, 6, "last_O_dP_EE_c"))
    last_ddx = np.array(_vector(last_o_ddp_ee_c, 6, "last_O_ddP_EE_c"))

    translation = _limit_vector_rate(
        max_translational_velocity,
        max_translational_acceleration,
        max_translational_jerk,
        dx[:3],
        last_dx[:3],
        last_ddx[:3],
    )
    rotation = _limit_vector_rate(
        max_rotational_velocity,
        max_rotational_acceleration,
        max_rotational_jerk,
        dx[3:],
        last_dx[3:],
        last_ddx[3:],
    )
    return tuple(float(value) for value in np.concatenate((translation, rotation)))


def _quaternion_from_rotation(matrix: np.ndarray) -> tuple[float, np.ndarray]:
    """Return (w, xyz) of the unit quaternion for a rotation matrix."""
    diagonal_sum = float(matrix[0, 0] + matrix[1, 1] + matrix[2, 2])
    vec = np.zeros(3)
    if diagonal_sum > 0.0:
        t = math.sqrt(diagonal_sum + 1.0)
        w = 0.5 * t
        t = 0.5 / t
        vec[0] = (matrix[2, 1] - matrix[1, 2]) * t
        vec[1] = (matrix[0, 2] - matrix[2, 0]) * t
        vec[2] = (matrix[1, 0] - matrix[0, 1]) * t
        return w, vec
    i = 0
    if matrix[1, 1] > matrix[0, 0]:
        i = 1
    if matrix[2, 2] > matrix[i, i]:
        i = 2
    j = (i + 1) % 3
    k = (j + 1) % 3
    t = math.sqrt(matrix[i, i] - matrix[j, j] - matrix[k, k] + 1.0)
    vec[i] = 0.5 * t
    t = 0.5 / t
    w = (matrix[k, j] - matrix[j, k]) * t
    vec[j] = (matrix[j, i] + matrix[i, j]) * t
    vec[k] = (matrix[k, i] + matrix[i, k]) * t
    return w, vec


def _rotation_vector(matrix: np.ndarray) -> np.ndarray:
    """Return axis times angle of a rotation matrix."""
    w, vec = _quaternion_from_rotation(matrix)
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return np.zeros(3)
    angle = 2.0 * math.atan2(norm, abs(w))
    axis = -vec / norm if w < 0.0 else vec / norm
    return axis * angle


def limit_cartesian_pose(
    max_translational_velocity: float,
    max_translational_acceleration: float,
    max_translational_jerk: float,
    max_rotational_velocity: float,
    max_rotational_acceleration: float,
    max_rotational_jerk: float,
    o_t_ee_c: Iterable[float],
    last_o_t_ee_c: Iterable[float],
    last_o_dp_ee_c: Iterable[float],
    last_o_ddp_ee_c: Iterable[float],
) -> tuple[float, ...]:
    """Limit a commanded pose given as a column-major 4x4 homogeneous matrix."""
    commanded = _vector(o_t_ee_c, 16, "O_T_EE_c")
    _require_finite(commanded, "O_T_EE_c is infinite or NaN.")
    if not is_homogeneous_transformation(commanded):
        raise ValueError(
            "O_T_EE_c is invalid transformation matrix. Has to be column major!"
        )
    commanded_pose = np.array(commanded).reshape(4, 4, order="F")
    last_pose = np.array(_vector(last_o_t_ee_c, 16, "last_O_T_EE_c")).reshape(
        4, 4, order="F"
    )
    last_rotation = last_pose[:3, :3]
    last_translation = last_pose[:3, 3]

    translational_velocity = (commanded_pose[:3, 3] - last_translation) / DELTA_T
    rotational_velocity = (
        _rotation_vector(commanded_pose[:3, :3] @ last_rotation.T) / DELTA_T
    )
    twist = np.concatenate((translational_velocity, rotational_velocity))

    factor = FACTOR_CARTESIAN_ROTATION_POSE_INTERFACE
    dx = np.array(
        limit_cartesian_velocity(
            max_translational_velocity,
            max_translational_acceleration,
            max_translational_jerk,
            factor * max_rotational_velocity,
            factor * max_rotational_acceleration,
            factor * max_rotational_jerk,
            twist,
            last_o_dp_ee_c,
            last_o_ddp_ee_c,
        )
    )

    limited = np.eye(4)
    limited[:3, 3] = last_translation + dx[:3] * DELTA_T
    limited[:3, :3] = last_rotation
    omega = dx[3:]
    omega_norm = float(np.linalg.norm(omega))
    if omega_norm > NORM_EPS:
        w = omega / omega_norm
        theta = DELTA_T * omega_norm
        skew = np.array(
            [
                [0.0, -w[2], w[1]],
                [w[2], 0.0, -w[0]],
                [-w[1], w[0], 0.0],
            ]
        )
        rotation = (
            np.eye(3) + math.sin(theta) * skew + (1.0 - math.cos(theta)) * (skew @ skew)
        )
        limited[:3, :3] = rotation @ last_rotation

    return tuple(float(value) for value in limited.flatten(order="F"))


def is_homogeneous_transformation(transform: Iterable[float]) -> bool:
    """Return whether 16 column-major values form a homogeneous transformation."""
    values = _vector(transform, 16, "transform")
    if values[3] != 0.0 or values[7] != 0.0 or values[11] != 0.0 or values[15] != 1.0:
        return False
    matrix = np.array(values).reshape(4, 4, order="F")[:3, :3]
    column_norms = np.linalg.norm(matrix, axis=0)
    row_norms = np.linalg.norm(matrix, axis=1)
    return bool(
        np.all(np.abs(column_norms - 1.0) <= _ORTHONORMAL_THRESHOLD)
        and np.all(np.abs(row_norms - 1.0) <= _ORTHONORMAL_THRESHOLD)
    )