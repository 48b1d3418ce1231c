from __future__ import annotations

import logging

import numpy as np
from scipy.spatial.distance import cdist

from symrepeat.resources import config
from symrepeat.structure.alignment import SelfAlignment

logger = logging.getLogger(__name__)
forbidden = config.FORBIDDEN_SCORE


def fragment_distances(coords: np.ndarray, window: int) -> np.ndarray:
    """Calculate the intra-fragment distances of every fragment of window consecutive residues

    Args:
        coords: The coordinates with shape (n, 3)
        window: The number of residues in each fragment
    Returns:
        The upper triangle of each fragment distance matrix with shape (n - window + 1, window * (window-1) / 2)
    """
    number_of_fragments = coords.shape[0] - window + 1
    upper1, upper2 = np.triu_indices(window, k=1)
    if number_of_fragments < 1:
        return np.zeros((0, upper1.shape[0]))

    # (fragments, window, 3)
    fragments = np.lib.stride_tricks.sliding_window_view(coords, window, axis=0).transpose(0, 2, 1)
    return np.linalg.norm(fragments[:, upper1] - fragments[:, upper2], axis=-1)


class SimilarityMatrix:
    """The residue similarity of a structure (rows) against the structure duplicated end to end (columns)

    Duplicated columns expose circular permutations as contiguous diagonals. Cells are masked, or blanked, to exclude
    the trivial identity alignment and regions explained by previous alignments. The mask only grows for the lifetime
    of the instance

    Args:
        scores: The residue similarity scores with shape (n, 2n)
    """
    scores: np.ndarray
    """The unmasked scores"""
    blanked: np.ndarray
    """Whether each cell is masked"""

    def __init__(self, scores: np.ndarray):
        self.scores = np.asarray(scores, dtype=float)
        self.length = self.scores.shape[0]
        self.blanked = np.zeros(self.scores.shape, dtype=bool)

    @classmethod
    def from_coords(cls, coords: np.ndarray, window: int = config.WINDOW_SIZE,
                    distance_cutoff: float = config.DISTANCE_CUTOFF) -> SimilarityMatrix:
        """Score each residue pair by the agreement of the fragments which cover it

        Each fragment pair scores 1 - mean|D_A - D_B| / distance_cutoff where D are the intra-fragment distances. A
        residue pair takes the mean score of the window fragment pairs which align it on the same diagonal

        Args:
            coords: The coordinates with shape (n, 3)
            window: The number of residues in each fragment
            distance_cutoff: The mean distance difference where fragments stop being similar
        Returns:
            The new instance
        """
        length = coords.shape[0]
        columns = 2 * length
        doubled = np.concatenate([coords, coords])
        distances = fragment_distances(doubled, window)
        fragments1 = max(0, length - window + 1)
        fragments2 = distances.shape[0]
        if distances.shape[1]:
            fragment_scores = \
                1. - cdist(distances[:fragments1], distances, 'cityblock') / distances.shape[1] / distance_cutoff
        else:  # Single residue fragments carry no internal distances
            fragment_scores = np.ones((fragments1, fragments2))

        score_sum = np.zeros((length, columns))
        score_count = np.zeros((length, columns))
        for offset in range(window):
            # Residue pair (i, j) is covered by fragment pair (i - offset, j - offset)
            rows = min(fragments1, length - offset)
            cols = min(fragments2, columns - offset)
            if rows <= 0 or cols <= 0:
                continue
            score_sum[offset:offset + rows, offset:offset + cols] += fragment_scores[:rows, :cols]
            score_count[offset:offset + rows, offset:offset + cols] += 1

        covered = score_count > 0
        scores = np.full((length, columns), forbidden)
        scores[covered] = score_sum[covered] / score_count[covered]
        matrix = cls(scores)
        matrix.blanked |= ~covered
        logger.debug(f'Built a {length}x{columns} similarity matrix from {fragments1}x{fragments2} fragment pairs')
        return matrix

    @property
    def shape(self) -> tuple[int, int]:
        return self.scores.shape

    def blank_identity(self, window: int):
        """Mask the trivial self alignment, every cell whose circular diagonal offset is less than window"""
        rows = np.arange(self.length)[:, None]
        cols = np.arange(self.scores.shape[1])[None, :]
        offset = (cols - rows) % self.length
        self.blanked |= np.minimum(offset, self.length - offset) < window

    def blank_alignment(self, alignment: SelfAlignment, half_width: int):
        """Mask a band around the diagonals of each aligned residue pair in both copies of the duplicated columns

        Args:
            alignment: The alignment whose region should no longer be available
            half_width: The number of rows masked above and below each pair
        """
        rows, columns = self.scores.shape
        indices1, indices2 = alignment.indices1, alignment.indices2
        for copy in (0, self.length):
            for shift in range(-half_width, half_width + 1):
                band1 = indices1 + shift
                band2 = indices2 + copy
                inside = (band1 >= 0) & (band1 < rows) & (band2 >= 0) & (band2 < columns)
                self.blanked[band1[inside], band2[inside]] = True

    def reimpose(self, matrix: np.ndarray) -> np.ndarray:
        """Set the masked cells of a matrix with the same shape to the forbidden score"""
        matrix = np.array(matrix, dtype=float)
        matrix[self.blanked] = forbidden
        return matrix

    def masked(self) -> np.ndarray:
        """The scores with masked cells forbidden"""
        return self.reimpose(self.scores)

    def break_flags(self, flags: np.ndarray = None) -> np.ndarray:
        """Mark masked cells as untraversable in addition to any provided flags"""
        if flags is None:
            return self.blanked.copy()
        return np.asarray(flags, dtype=bool) | self.blanked
