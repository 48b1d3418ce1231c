from __future__ import annotations

import dataclasses
import logging
import math
from collections.abc import Iterator, Sequence

import numpy as np
import pandas as pd

from symrepeat import metrics
from symrepeat.resources import config
from symrepeat.structure.alignment import MultipleAlignment, SelfAlignment
from symrepeat.structure.coords import is_degenerate
from symrepeat.utils import DegenerateTransform
from symrepeat.utils.symmetry import CLOSED, axis_point, rotation_angle, rotation_axis, screw_translation

logger = logging.getLogger(__name__)
gap = config.GAP
axes_columns = ['Name', 'SymmLevel', 'SymmType', 'SymmOrder', 'RotationAngle', 'ScrewTranslation', 'Point1', 'Point2',
                'AlignedRepeats']


def repeat_pairs_for(order: int, symmetry_type: str, size: int = 1) -> tuple[tuple[int, int], ...]:
    """Relate the subunits of a symmetry level within the first group of the level above. Each of the order groups
    at this level contains size subunits

    Args:
        order: The number of groups related by the level
        symmetry_type: Whether the last group relates back to the first
        size: The number of subunits within each group
    Returns:
        The (subunit, related subunit) pairs
    """
    pairs = []
    for group in range(order if symmetry_type == CLOSED else order - 1):
        for subunit in range(size):
            pairs.append((group*size + subunit, (group+1) % order * size + subunit))

    return tuple(pairs)


@dataclasses.dataclass(frozen=True, eq=False)
class SymmetryAxis:
    """A symmetry operation relating subunits of a structure

    Args:
        rotation: The rotation matrix with shape (3, 3)
        translation: The translation with shape (3,)
        order: The number of subunits the operation cycles through
        symmetry_type: Either closed or open
        level: The depth of the operation in the symmetry hierarchy
        repeat_pairs: Each (subunit, related subunit) the operation maps
        residue_pairs: The residues which defined the operation as (moving, fixed) index arrays
    """
    rotation: np.ndarray
    translation: np.ndarray
    order: int
    symmetry_type: str = CLOSED
    level: int = 0
    repeat_pairs: tuple[tuple[int, int], ...] = ()
    residue_pairs: tuple[np.ndarray, np.ndarray] = dataclasses.field(
        default_factory=lambda: (np.zeros(0, dtype=int), np.zeros(0, dtype=int)))

    @property
    def angle(self) -> float:
        """The rotation angle in degrees"""
        return math.degrees(rotation_angle(self.rotation))

    @property
    def axis(self) -> np.ndarray:
        return rotation_axis(self.rotation)

    @property
    def screw_translation(self) -> float:
        return screw_translation(self.rotation, self.translation)

    @property
    def point(self) -> np.ndarray:
        return axis_point(self.rotation, self.translation)

    @property
    def transformation(self) -> np.ndarray:
        """The homogeneous transformation matrix with shape (4, 4)"""
        matrix = np.eye(4)
        matrix[:3, :3] = self.rotation
        matrix[:3, 3] = self.translation
        return matrix

    def axis_ends(self, coords: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Find the points on the axis which bound the projection of the provided coordinates"""
        point, axis = self.point, self.axis
        if coords.shape[0] == 0:
            return point, point
        projection = (coords - point) @ axis
        return point + projection.min() * axis, point + projection.max() * axis

    def cyclic_form(self) -> str:
        """Format the related subunits, numbered from 1, as cycles. Ex: (1;2;3)"""
        following = dict(self.repeat_pairs)
        targets = set(following.values())
        starts = [subunit for subunit, _ in self.repeat_pairs if subunit not in targets]
        cycles, seen = [], set()
        for start in [*starts, *following]:
            if start in seen:
                continue
            cycle = [start]
            seen.add(start)
            subunit = following.get(start)
            while subunit is not None and subunit not in seen:
                cycle.append(subunit)
                seen.add(subunit)
                subunit = following.get(subunit)
            cycles.append(f'({";".join(str(subunit + 1) for subunit in cycle)})')

        return ''.join(cycles)

    def replace(self, **kwargs) -> SymmetryAxis:
        return dataclasses.replace(self, **kwargs)


def build_axis(alignment: SelfAlignment, coords: np.ndarray, order: int, symmetry_type: str = CLOSED,
               level: int = 0, refined: bool = True) -> SymmetryAxis:
    """Build the SymmetryAxis relating subunit 0 to subunit 1

    Args:
        alignment: The alignment whose first block relates the first two subunits when refined
        coords: The coordinates of the aligned structure
        order: The number of subunits
        symmetry_type: Either closed or open
        level: The depth of the axis in the symmetry hierarchy
        refined: Whether the alignment was refined. Otherwise, every aligned pair defines the transform
    Raises:
        DegenerateTransform: If the aligned residues can't define a unique superposition
    Returns:
        The axis
    """
    if refined and alignment.blocks:
        indices1, indices2 = alignment.blocks[0]
    else:
        indices1, indices2 = alignment.indices1, alignment.indices2

    if is_degenerate(coords[indices1], config.MIN_SUPERPOSITION_LENGTH):
        raise DegenerateTransform(f"Can't define a transform from {indices1.shape[0]} aligned residues")

    _, _, rotation, translation = metrics.pair_tm_score(coords, indices1, indices2)
    return SymmetryAxis(rotation=rotation, translation=translation, order=order, symmetry_type=symmetry_type,
                        level=level, repeat_pairs=repeat_pairs_for(order, symmetry_type),
                        residue_pairs=(indices1, indices2))


def superimpose_repeat_pairs(grid: np.ndarray, coords: np.ndarray, repeat_pairs: Sequence[tuple[int, int]]) \
        -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Superimpose every related subunit in a MultipleAlignment grid with a single transform

    Args:
        grid: The MultipleAlignment residue grid with shape (subunits, columns)
        coords: The coordinates of the structure
        repeat_pairs: Each (moving subunit, fixed subunit)
    Raises:
        DegenerateTransform: If the aligned residues can't define a unique superposition
    Returns:
        The rotation, the translation, and the (moving, fixed) residue indices
    """
    moving, fixed = [], []
    for subunit1, subunit2 in repeat_pairs:
        shared = (grid[subunit1] != gap) & (grid[subunit2] != gap)
        moving.append(grid[subunit1, shared])
        fixed.append(grid[subunit2, shared])
    indices1 = np.concatenate(moving) if moving else np.zeros(0, dtype=int)
    indices2 = np.concatenate(fixed) if fixed else np.zeros(0, dtype=int)
    if is_degenerate(coords[indices1], config.MIN_SUPERPOSITION_LENGTH):
        raise DegenerateTransform(f"Can't define a transform from {indices1.shape[0]} aligned residues")

    _, _, rotation, translation = metrics.pair_tm_score(coords, indices1, indices2)
    return rotation, translation, indices1, indices2


class SymmetryAxes:
    """The ordered symmetry operations of a structure across hierarchy levels and the subunit of each residue

    Args:
        axes: The symmetry operations
        subunit_assignment: The subunit of each residue or -1 where unassigned
    """
    def __init__(self, axes: Sequence[SymmetryAxis] = (), subunit_assignment: np.ndarray = None):
        self.axes = tuple(axes)
        self.subunit_assignment = np.zeros(0, dtype=int) if subunit_assignment is None \
            else np.asarray(subunit_assignment, dtype=int)

    @property
    def order(self) -> int:
        """The total number of subunits described by every axis"""
        return math.prod(axis.order for axis in self.axes) if self.axes else 1

    def recompute(self, multiple_alignment: MultipleAlignment, coords: np.ndarray) -> SymmetryAxes:
        """Recalculate each axis transform by superposition of its related subunits in a MultipleAlignment

        Axes whose related subunits can't define a superposition are dropped

        Args:
            multiple_alignment: The alignment which the axes repeat_pairs index
            coords: The coordinates of the structure
        Returns:
            The new collection
        """
        axes = []
        for axis in self.axes:
            try:
                rotation, translation, indices1, indices2 = \
                    superimpose_repeat_pairs(multiple_alignment.grid, coords, axis.repeat_pairs)
            except DegenerateTransform as error:
                logger.warning(f'Dropping the level {axis.level + 1} axis. {error}')
            else:
                axes.append(axis.replace(rotation=rotation, translation=translation,
                                         residue_pairs=(indices1, indices2)))

        return SymmetryAxes(axes, multiple_alignment.subunit_assignment())

    def to_dataframe(self, coords: np.ndarray, multiple_alignment: MultipleAlignment = None, name: str = None) \
            -> pd.DataFrame:
        """Report each axis as a row of a DataFrame

        Args:
            coords: The coordinates of the structure
            multiple_alignment: The alignment whose residues bound the reported axis ends
            name: The name of the structure
        Returns:
            The DataFrame with columns Name, SymmLevel, SymmType, SymmOrder, RotationAngle, ScrewTranslation, Point1,
                Point2, and AlignedRepeats
        """
        rows = []
        for axis in self.axes:
            if multiple_alignment is not None and multiple_alignment.order:
                subunits = sorted({subunit for pair in axis.repeat_pairs for subunit in pair
                                   if subunit < multiple_alignment.order})
                residues = multiple_alignment.grid[subunits]
                residues = residues[residues != gap]
            else:
                residues = np.concatenate(axis.residue_pairs)
            start, end = axis.axis_ends(coords[residues])
            rows.append({
                'Name': name,
                'SymmLevel': axis.level + 1,
                'SymmType': axis.symmetry_type.upper(),
                'SymmOrder': axis.order,
                'RotationAngle': round(axis.angle, 2),
                'ScrewTranslation': round(axis.screw_translation, 2),
                'Point1': ','.join(f'{value:.3f}' for value in start),
                'Point2': ','.join(f'{value:.3f}' for value in end),
                'AlignedRepeats': axis.cyclic_form(),
            })

        return pd.DataFrame(rows, columns=axes_columns)

    def __len__(self) -> int:
        return len(self.axes)

    def __iter__(self) -> Iterator[SymmetryAxis]:
        yield from self.axes

    def __getitem__(self, item) -> SymmetryAxis:
        return self.axes[item]

    def __repr__(self) -> str:
        return f'{type(self).__name__}({", ".join(f"{axis.symmetry_type}{axis.order}" for axis in self.axes)})'
