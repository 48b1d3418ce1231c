from __future__ import annotations

import math
from typing import Literal, get_args

import numpy as np
from scipy.spatial.transform import Rotation

symmetry_type_literal = Literal['closed', 'open', 'auto']
symmetry_types: tuple[symmetry_type_literal, ...] = get_args(symmetry_type_literal)
CLOSED, OPEN, AUTO = symmetry_types
MAX_SYMMETRY = 8
identity_matrix = np.array([[1., 0., 0.], [0., 1., 0.], [0., 0., 1.]])
flip_x_matrix = np.array([[1.0, 0.0, 0.0], [0.0, -1.0, 0.0], [0.0, 0.0, -1.0]])  # rot 180x


def cyclic_rotation(order: int, axis: str = 'z') -> np.ndarray:
    """Return the rotation matrix of the generating operation of a cyclic group

    Args:
        order: The number of subunits in the cyclic group
        axis: The cartesian axis which the rotation is performed about
    Returns:
        The rotation matrix with shape (3, 3)
    """
    return Rotation.from_euler(axis, 2 * math.pi / order).as_matrix()


def rotation_angle(rotation: np.ndarray) -> float:
    """The angle in radians, [0, pi], of a rotation matrix"""
    return float(np.linalg.norm(Rotation.from_matrix(rotation).as_rotvec()))


def rotation_axis(rotation: np.ndarray) -> np.ndarray:
    """The unit vector of a rotation matrix. The z-axis is returned for the identity

    Args:
        rotation: The rotation matrix with shape (3, 3)
    Returns:
        The unit vector with shape (3,)
    """
    rotvec = Rotation.from_matrix(rotation).as_rotvec()
    norm = np.linalg.norm(rotvec)
    if norm < 1e-8:
        return np.array([0., 0., 1.])

    return rotvec / norm


def screw_translation(rotation: np.ndarray, translation: np.ndarray) -> float:
    """The component of a rigid transform's translation along its rotation axis"""
    return float(np.dot(translation, rotation_axis(rotation)))


def axis_point(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """Find the point on the rotation axis of a rigid transform closest to the origin

    For a pure translation (identity rotation) the origin is returned

    Args:
        rotation: The rotation matrix with shape (3, 3)
        translation: The translation vector with shape (3,)
    Returns:
        The point with shape (3,)
    """
    axis = rotation_axis(rotation)
    # Remove the screw component then solve (I - R)p = t in the least squares sense
    perpendicular = translation - np.dot(translation, axis) * axis
    point, *_ = np.linalg.lstsq(identity_matrix - rotation, perpendicular, rcond=None)
    return point - np.dot(point, axis) * axis


def guess_order_from_angle(angle: float, threshold: float = math.radians(1.), max_order: int = MAX_SYMMETRY) -> int:
    """Guess the order of a rotation by finding the closest 2*pi/n to the provided angle

    Args:
        angle: The rotation angle in radians
        threshold: The maximum deviation, in radians, from 2*pi/n to accept the order n
        max_order: The largest order to consider
    Returns:
        The closest order within threshold or 1 if none is
    """
    best_delta = threshold
    best_order = 1
    for order in range(2, max_order + 1):
        delta = abs(2 * math.pi / order - angle)
        if delta < best_delta:
            best_order = order
            best_delta = delta

    return best_order
