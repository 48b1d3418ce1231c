from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from symrepeat.utils import InputError
from symrepeat.utils.symmetry import identity_matrix


class Coords:
    """Responsible for handling the residue positions of a single structure by storing a read-only numpy.ndarray with
    shape (n, 3) where n is the number of residues and the 3 dimensions represent x, y, and z coordinates

    Args:
        coords: The coordinates to store
    Raises:
        InputError: If the coords can't be interpreted as an array with shape (n, 3)
    """
    coords: np.ndarray

    def __init__(self, coords: np.ndarray | Sequence[Sequence[float]] | Coords):
        if isinstance(coords, Coords):
            coords = coords.coords
        elif not isinstance(coords, (np.ndarray, list, tuple)):
            raise InputError(f"Can't initialize {type(self).__name__} with {type(coords).__name__}. Type must be a "
                             f'numpy.ndarray of float with shape (n, 3) or list[list[float]]')

        coords = np.array(coords, dtype=float)
        if coords.size == 0:
            coords = coords.reshape(0, 3)
        elif coords.ndim != 2 or coords.shape[1] != 3:
            raise InputError(f"{type(self).__name__} requires an array with shape (n, 3), not {coords.shape}")
        elif not np.isfinite(coords).all():
            raise InputError(f"{type(self).__name__} can't contain non-finite coordinates")

        coords.setflags(write=False)
        self.coords = coords

    def subset(self, start: int, end: int) -> Coords:
        """Return the contiguous range of residues [start, end) as a new Coords"""
        return Coords(self.coords[start:end])

    def __getitem__(self, item) -> np.ndarray:
        return self.coords[item]

    def __len__(self) -> int:
        return self.coords.shape[0]

    def __iter__(self) -> list[float, float, float]:
        yield from self.coords.tolist()

    def __copy__(self) -> Coords:
        # The array is read-only, so sharing it is safe
        cls = self.__class__
        other = cls.__new__(cls)
        other.coords = self.coords
        return other

    copy = __copy__

    def __deepcopy__(self, memo: dict) -> Coords:
        return self.__copy__()


def superposition3d(fixed_coords: np.ndarray, moving_coords: np.ndarray, quaternion: bool = False) \
        -> tuple[float, np.ndarray, np.ndarray]:
    """Takes two xyz coordinate sets (same length), and attempts to superimpose them using rotations and translations
    to minimize the root mean squared distance (RMSD) between them. The found transformation operations should be
    applied to the "moving_coords" to place them in the setting of the fixed_coords

    This function implements the method from:
    R. Diamond, (1988) "A Note on the Rotational Superposition Problem", Acta Cryst. A44, pp. 211-216
    (Additional documentation can be found at https://pypi.org/project/superpose3d/ )

    The quaternion_matrix has the last entry storing cos(θ/2) (where θ is the rotation angle). The first 3 entries
    form a vector (of length sin(θ/2)), pointing along the axis of rotation.

    MIT License. Copyright (c) 2016, Andrew Jewett
    Permission is hereby granted, free of charge, to any person obtaining a copy of this software and associated
    documentation files (the "Software"), to deal in the Software without restriction, including without limitation the
    rights to use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies of the Software, and to
    permit persons to whom the Software is furnished to do so, subject to the following conditions:

    The above copyright notice and this permission notice shall be included in all copies or substantial portions of the
    Software.

    THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR IMPLIED, INCLUDING BUT NOT LIMITED TO THE
    WARRANTIES OF MERCHANTABILITY, FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE AUTHORS
    OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR
    OTHERWISE, ARISING FROM, OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE SOFTWARE.

    Args:
        fixed_coords: The coordinates for the 'frozen' object
        moving_coords: The coordinates for the 'mobile' object
        quaternion: Whether to report the rotation angle and axis in Scipy.Rotation quaternion format
    Raises:
        ValueError: If coordinates are not the same length
    Returns:
        rmsd, rotation/quaternion_matrix, translation_vector
    """
    number_of_points = fixed_coords.shape[0]
    if number_of_points != moving_coords.shape[0]:
        raise ValueError(f'{superposition3d.__name__}: Inputs should have the same size. '
                         f'Input 1={number_of_points}, 2={moving_coords.shape[0]}')
    if number_of_points == 0:
        optimal_quat = np.array([0., 0., 0., 1.])
        if quaternion:
            return 0., optimal_quat, np.zeros(3)
        return 0., identity_matrix.copy(), np.zeros(3)

    # Find the center of mass of each object
    center_of_mass_fixed = fixed_coords.mean(axis=0)
    center_of_mass_moving = moving_coords.mean(axis=0)

    # Translate the center of mass to the origin
    fixed_coords_at_origin = fixed_coords - center_of_mass_fixed
    moving_coords_at_origin = moving_coords - center_of_mass_moving

    # Calculate the "m" array from the Diamond paper (equation 16)
    m = np.matmul(moving_coords_at_origin.T, fixed_coords_at_origin)

    # Calculate "v" (equation 18)
    v = [m[1][2] - m[2][1], m[2][0] - m[0][2], m[0][1] - m[1][0]]

    # Calculate "P" (equation 22)
    matrix_p = np.zeros((4, 4))
    # Calculate "q" (equation 17)
    matrix_p[:3, :3] = m + m.T - 2*identity_matrix*np.trace(m)
    matrix_p[3, :3] = v
    matrix_p[:3, 3] = v
    # [[ q[0][0] q[0][1] q[0][2] v[0] ]
    #  [ q[1][0] q[1][1] q[1][2] v[1] ]
    #  [ q[2][0] q[2][1] q[2][2] v[2] ]
    #  [ v[0]    v[1]    v[2]    0    ]]

    # Calculate "p" - optimal_quat
    # "p" contains the optimal rotation (in backwards-quaternion format)
    if number_of_points < 2:
        optimal_quat = np.array([0., 0., 0., 1.])
        pPp = 0.  # = p^T * P * p    (zero by default)
    else:
        # The a_eigenvals are returned as 1D array in ascending order; largest is last
        a_eigenvals, aa_eigenvects = np.linalg.eigh(matrix_p)
        pPp = a_eigenvals[-1]
        optimal_quat = aa_eigenvects[:, -1]  # pull out the largest magnitude eigenvector

    # Calculate the rotation matrix corresponding to "optimal_quat" which is in scipy quaternion format
    rotation_matrix = Rotation.from_quat(optimal_quat).as_matrix()

    # Compute E0 from equation 24 of the paper
    rmsd = np.sqrt(max(0, ((fixed_coords_at_origin-moving_coords_at_origin) ** 2).sum() - 2.*pPp) / number_of_points)

    # T_i = Xcm_i - Σ_j R_ij*xcm_j
    translation = center_of_mass_fixed - np.matmul(rotation_matrix, center_of_mass_moving)
    if quaternion:  # Scipy X, Y, Z, W convention
        return rmsd, optimal_quat, translation
    else:
        return rmsd, rotation_matrix, translation


def transform_coordinates(coords: np.ndarray | Iterable, rotation: np.ndarray | Iterable = None,
                          translation: np.ndarray | Iterable | int | float = None) -> np.ndarray:
    """Take a set of x,y,z coordinates and transform. Transformation proceeds by matrix multiplication with the order of
    operations as: rotation, translation

    Args:
        coords: The coordinates to transform, can be shape (number of coordinates, 3)
        rotation: The rotation to apply, expected general rotation matrix shape (3, 3)
        translation: The translation to apply, expected shape (3)
    Returns:
        The transformed coordinate set with the same shape as the original
    """
    new_coords = np.array(coords, dtype=float)

    if rotation is not None:
        new_coords = np.matmul(new_coords, np.transpose(rotation))

    if translation is not None:
        new_coords += translation  # No array allocation, sets in place

    return new_coords


def is_degenerate(coords: np.ndarray, minimum_points: int = 3) -> bool:
    """Report whether a point cloud can't support a well-defined superposition

    Args:
        coords: The coordinates with shape (n, 3)
        minimum_points: The fewest points required
    Returns:
        True if there are too few points or the points are collinear
    """
    if coords.shape[0] < minimum_points:
        return True

    return np.linalg.matrix_rank(coords - coords.mean(axis=0), tol=1e-3) < 2
