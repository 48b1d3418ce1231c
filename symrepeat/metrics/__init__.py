from __future__ import annotations

import logging
from itertools import combinations

import numpy as np

from symrepeat.resources import config
from symrepeat.structure.coords import superposition3d, transform_coordinates

logger = logging.getLogger(__name__)
gap = config.GAP


def tm_d0(length: int) -> float:
    """Calculate the TM-score distance scale for a structure of a particular length

    Args:
        length: The number of residues the score is normalized by
    Returns:
        The d0 parameter in Angstroms
    """
    if length <= 21:
        return 0.5

    return float(max(0.5, 1.24 * (length - 15) ** (1. / 3.) - 1.8))


def tm_score_from_distances(distances: np.ndarray, length: int) -> float:
    """Sum the TM-score terms of aligned residue distances and normalize by length"""
    if length <= 0:
        return 0.
    d0 = tm_d0(length)
    return float(np.sum(1. / (1. + (distances / d0) ** 2)) / length)


def pair_tm_score(coords: np.ndarray, indices1: np.ndarray, indices2: np.ndarray, length: int = None) \
        -> tuple[float, float, np.ndarray, np.ndarray]:
    """Superimpose the residues indices1 onto indices2 and score the correspondence by TM-score

    Args:
        coords: The coordinates of the structure with shape (N, 3)
        indices1: The residue indices that are moved
        indices2: The residue indices that are fixed, paired element-wise with indices1
        length: The normalization length. Uses the length of coords by default
    Returns:
        The tm-score, the rmsd, the rotation, and the translation which places indices1 onto indices2
    """
    if length is None:
        length = len(coords)
    indices1 = np.asarray(indices1, dtype=int)
    indices2 = np.asarray(indices2, dtype=int)
    if indices1.shape[0] < config.MIN_SUPERPOSITION_LENGTH:
        rmsd, rotation, translation = superposition3d(coords[indices2], coords[indices1])
        return 0., rmsd, rotation, translation

    moving = coords[indices1]
    rmsd, rotation, translation = superposition3d(coords[indices2], moving)
    distances = np.linalg.norm(transform_coordinates(moving, rotation, translation) - coords[indices2], axis=1)
    return tm_score_from_distances(distances, length), rmsd, rotation, translation


def subunit_lengths(grid: np.ndarray) -> np.ndarray:
    """The number of residues spanned by each subunit row of a MultipleAlignment grid"""
    lengths = np.zeros(grid.shape[0], dtype=int)
    for idx, row in enumerate(grid):
        present = row[row != gap]
        if present.size:
            lengths[idx] = present.max() - present.min() + 1

    return lengths


def average_tm_score(coords: np.ndarray, grid: np.ndarray) -> float:
    """Average the TM-score of every pair of subunits in a MultipleAlignment grid

    Each pair is superimposed on the columns that both subunits align and normalized by the mean span of the pair

    Args:
        coords: The coordinates of the structure with shape (N, 3)
        grid: The MultipleAlignment residue grid with shape (subunits, columns)
    Returns:
        The average TM-score
    """
    number_of_subunits = grid.shape[0]
    if number_of_subunits < 2 or grid.shape[1] == 0:
        return 0.

    lengths = subunit_lengths(grid)
    scores = []
    for idx1, idx2 in combinations(range(number_of_subunits), 2):
        shared = (grid[idx1] != gap) & (grid[idx2] != gap)
        normalization = int(round((lengths[idx1] + lengths[idx2]) / 2))
        score, *_ = pair_tm_score(coords, grid[idx2, shared], grid[idx1, shared], length=normalization)
        scores.append(score)

    return float(np.mean(scores))


def superimpose_subunits(coords: np.ndarray, grid: np.ndarray) -> np.ndarray:
    """Place every subunit of a MultipleAlignment grid into the frame of the first subunit

    Args:
        coords: The coordinates of the structure with shape (N, 3)
        grid: The MultipleAlignment residue grid with shape (subunits, columns)
    Returns:
        The superimposed coordinates with shape (subunits, columns, 3) where gaps are numpy.nan
    """
    number_of_subunits, length = grid.shape
    superimposed = np.full((number_of_subunits, length, 3), np.nan)
    reference = grid[0]
    for idx, row in enumerate(grid):
        present = row != gap
        superimposed[idx, present] = coords[row[present]]
        if idx == 0:
            continue
        shared = present & (reference != gap)
        if shared.sum() < config.MIN_SUPERPOSITION_LENGTH:
            continue
        _, rotation, translation = superposition3d(coords[reference[shared]], coords[row[shared]])
        superimposed[idx, present] = transform_coordinates(coords[row[present]], rotation, translation)

    return superimposed


def mc_score(coords: np.ndarray, grid: np.ndarray, gap_open: float = config.MC_GAP_OPEN,
             gap_extension: float = config.MC_GAP_EXTENSION, distance_cutoff: float = config.MC_DISTANCE_CUTOFF) \
        -> float:
    """Score a MultipleAlignment grid for Monte Carlo optimization

    Each aligned residue contributes 20 / (1 + (d/d0)^2) - A where d is its mean distance to the other residues of
    the column after superposition and A is the same term evaluated at the distance_cutoff. Gap openings and
    extensions are penalized

    Args:
        coords: The coordinates of the structure with shape (N, 3)
        grid: The MultipleAlignment residue grid with shape (subunits, columns)
        gap_open: The penalty for each gap opening
        gap_extension: The penalty for each consecutive gap
        distance_cutoff: The distance at which a residue stops contributing positively
    Returns:
        The score. Larger is better
    """
    number_of_subunits, length = grid.shape
    if length == 0:
        return 0.

    d0 = tm_d0(len(coords))
    cutoff_term = 20. / (1. + (distance_cutoff / d0) ** 2)
    superimposed = superimpose_subunits(coords, grid)
    # (subunits, subunits, columns)
    distances = np.linalg.norm(superimposed[:, None] - superimposed[None, :], axis=-1)
    distances[np.arange(number_of_subunits), np.arange(number_of_subunits)] = np.nan
    partners = np.sum(~np.isnan(distances), axis=1)
    with np.errstate(invalid='ignore'):
        mean_distances = np.nansum(distances, axis=1) / np.where(partners > 0, partners, 1)
    scored = partners > 0
    residue_scores = 20. / (1. + (mean_distances[scored] / d0) ** 2) - cutoff_term

    gaps = grid == gap
    previous_gaps = np.zeros_like(gaps)
    previous_gaps[:, 1:] = gaps[:, :-1]
    gap_openings = np.sum(gaps & ~previous_gaps)
    gap_extensions = np.sum(gaps & previous_gaps)

    return float(residue_scores.sum() - gap_openings * gap_open - gap_extensions * gap_extension)
