from __future__ import annotations

import dataclasses
import logging
from typing import Protocol, runtime_checkable

import numpy as np
from scipy.spatial.distance import cdist

from symrepeat import metrics
from symrepeat.resources import config
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import SelfAlignment
from symrepeat.structure.coords import Coords, transform_coordinates
from symrepeat.structure.matrix import SimilarityMatrix
from symrepeat.utils import CancellationToken, InputError, check_cancelled

logger = logging.getLogger(__name__)
# Traceback pointers
stop, diagonal, up, left = 0, 1, 2, 3


@dataclasses.dataclass
class AlignmentContext:
    """Everything a PairwiseAligner needs for one self-alignment iteration

    Args:
        coords: The coordinates with shape (n, 3)
        matrix: The similarity matrix of the structure against itself duplicated
        parameters: The analysis parameters
    """
    coords: np.ndarray
    matrix: SimilarityMatrix
    parameters: SymmetryParameters

    def matrix_hook(self, score_matrix: np.ndarray) -> np.ndarray:
        """Post-process a score matrix by forbidding the masked cells again"""
        return self.matrix.reimpose(score_matrix)

    def break_flag_hook(self, flags: np.ndarray = None) -> np.ndarray:
        """Initialize the untraversable cells of the dynamic programming matrix"""
        return self.matrix.break_flags(flags)


@runtime_checkable
class PairwiseAligner(Protocol):
    """Aligns a structure to itself given the masked similarity of an AlignmentContext"""
    def align(self, context: AlignmentContext) -> SelfAlignment:
        ...


def _unflagged_runs(flags: np.ndarray) -> list[tuple[int, int]]:
    """Find the [start, end) ranges of consecutive False values"""
    padded = np.concatenate([[True], flags, [True]])
    changes = np.flatnonzero(np.diff(padded.astype(np.int8)))
    return list(zip(changes[::2], changes[1::2]))


def local_alignment(scores: np.ndarray, flags: np.ndarray = None, gap_penalty: float = config.GAP_PENALTY) \
        -> tuple[np.ndarray, np.ndarray, float]:
    """Find the best scoring local path through a score matrix using linear gap penalties

    Args:
        scores: The score of aligning each row position to each column position
        flags: Cells which can't be traversed by any path
        gap_penalty: The score change for each gap. Should be negative
    Returns:
        The row indices, the column indices of each aligned pair, and the path score
    """
    rows, columns = scores.shape
    if flags is None:
        flags = np.zeros(scores.shape, dtype=bool)
    flags = flags | (scores <= config.FORBIDDEN_THRESHOLD)

    h = np.zeros((rows + 1, columns + 1))
    pointers = np.zeros((rows + 1, columns + 1), dtype=np.int8)
    column_idx = np.arange(columns)
    zeros = np.zeros(columns)
    for row in range(rows):
        previous = h[row]
        candidates = np.stack([zeros, previous[:-1] + scores[row], previous[1:] + gap_penalty])
        choice = np.argmax(candidates, axis=0)
        h_row = candidates[choice, column_idx]
        row_flags = flags[row]
        h_row[row_flags] = 0.
        choice[row_flags] = stop
        for start, end in _unflagged_runs(row_flags):
            # Extending a gap from the left, H[j] = max(C[j], max_k<j(C[k] + gap*(j-k)))
            run_idx = column_idx[start:end]
            best_prior = np.maximum.accumulate(h_row[start:end] - gap_penalty * run_idx)
            from_left = np.full(end - start, -np.inf)
            from_left[1:] = best_prior[:-1] + gap_penalty * run_idx[1:]
            better = from_left > h_row[start:end]
            h_row[start:end] = np.where(better, from_left, h_row[start:end])
            choice[start:end] = np.where(better, left, choice[start:end])
        h[row + 1, 1:] = h_row
        pointers[row + 1, 1:] = choice

    # Paths within numerical tolerance of the best tie. The first cell in row-major order ends the path
    best_score = h.max()
    best = int(np.flatnonzero(h.ravel() >= best_score - 1e-6 * max(1., best_score))[0])
    row, column = divmod(best, columns + 1)
    score = float(h[row, column])
    indices1, indices2 = [], []
    while pointers[row, column] != stop:
        pointer = pointers[row, column]
        if pointer == diagonal:
            indices1.append(row - 1)
            indices2.append(column - 1)
            row, column = row - 1, column - 1
        elif pointer == up:
            row -= 1
        else:
            column -= 1

    return np.array(indices1[::-1], dtype=int), np.array(indices2[::-1], dtype=int), score


def fold_pairs(indices1: np.ndarray, indices2: np.ndarray, length: int) -> tuple[np.ndarray, np.ndarray]:
    """Fold duplicated column indices back onto the structure, dropping pairs whose target is already used

    Args:
        indices1: The row indices of each aligned pair
        indices2: The duplicated column indices of each aligned pair
        length: The number of residues in the structure
    Returns:
        The injective pairs (indices1, indices2) with indices2 in [0, length)
    """
    folded = indices2 % length
    _, first = np.unique(folded, return_index=True)
    keep = np.sort(first)
    keep = keep[indices1[keep] != folded[keep]]
    return indices1[keep], folded[keep]


class FragmentAligner:
    """Self-align a structure by dynamic programming over fragment similarity, then refine the path against the
    superposition it implies

    Args:
        gap_penalty: The score change for each gap
        max_passes: The most superposition refinement passes to perform
    """
    def __init__(self, gap_penalty: float = config.GAP_PENALTY, max_passes: int = config.MAX_ALIGNER_PASSES):
        self.gap_penalty = gap_penalty
        self.max_passes = max_passes

    def _align_scores(self, context: AlignmentContext, scores: np.ndarray, flags: np.ndarray) -> SelfAlignment:
        length = context.coords.shape[0]
        indices1, indices2, _ = local_alignment(scores, flags, self.gap_penalty)
        indices1, indices2 = fold_pairs(indices1, indices2, length)
        return SelfAlignment.from_pairs(indices1, indices2, length, coords=context.coords)

    def _refine(self, context: AlignmentContext, flags: np.ndarray, rotation: np.ndarray,
                translation: np.ndarray) -> SelfAlignment | None:
        """Realign against the superposition of a starting transform until the path stops changing

        Returns:
            The best scoring alignment of the passes or None if no pass was made
        """
        coords = context.coords
        doubled = np.concatenate([coords, coords])
        d0 = metrics.tm_d0(coords.shape[0])
        alignment = best = None
        for _pass in range(self.max_passes):
            moved = transform_coordinates(coords, rotation, translation)
            scores = 2. / (1. + (cdist(moved, doubled) / d0) ** 2) - 1.
            refined = self._align_scores(context, context.matrix_hook(scores), flags)
            if refined == alignment:
                break
            logger.debug(f'Refinement pass {_pass + 1} score {refined.score:.4f}')
            if best is None or refined.score > best.score:
                best = refined
            alignment = refined
            if alignment.aligned_length < config.MIN_SUPERPOSITION_LENGTH:
                break
            rotation, translation = alignment.rotation, alignment.translation

        return best

    def align(self, context: AlignmentContext) -> SelfAlignment:
        coords = context.coords
        length = coords.shape[0]
        flags = context.break_flag_hook()
        best = self._align_scores(context, context.matrix.masked(), flags)
        if best.aligned_length < config.MIN_SUPERPOSITION_LENGTH:
            return best

        # Blocks of a path across the junction of the duplicated columns may not share a transform
        starts = [(best.rotation, best.translation)]
        if best.block_number > 1:
            for indices1, indices2 in best.blocks:
                if indices1.shape[0] >= config.MIN_SUPERPOSITION_LENGTH:
                    _, _, rotation, translation = metrics.pair_tm_score(coords, indices1, indices2, length=length)
                    starts.append((rotation, translation))

        for rotation, translation in starts:
            refined = self._refine(context, flags, rotation, translation)
            if refined is not None and refined.score > best.score:
                best = refined

        return best


def self_align(coords: np.ndarray | Coords, parameters: SymmetryParameters = None, aligner: PairwiseAligner = None,
               cancel: CancellationToken = None) -> tuple[list[SelfAlignment], SimilarityMatrix]:
    """Align a structure against itself, masking each alignment found to expose the next

    Args:
        coords: The coordinates with shape (n, 3)
        parameters: The analysis parameters
        aligner: The PairwiseAligner to use. Uses a FragmentAligner by default
        cancel: A token which stops the analysis when set
    Raises:
        InputError: If the structure has fewer than 2 residues
        AnalysisCancelled: If cancel is set
    Returns:
        The alignments in the order found and the similarity matrix with its cumulative masking
    """
    coords = Coords(coords).coords
    length = coords.shape[0]
    if length < 2:
        raise InputError(f"Can't self-align a structure with {length} residue{'s' if length != 1 else ''}")
    if parameters is None:
        parameters = SymmetryParameters()
    if aligner is None:
        aligner = FragmentAligner()

    matrix = SimilarityMatrix.from_coords(coords, parameters.win_size, parameters.distance_cutoff)
    matrix.blank_identity(parameters.win_size)
    iterations = parameters.max_symm_order if parameters.multiple else 1
    alignments = []
    for iteration in range(iterations):
        check_cancelled(cancel, f'self-alignment iteration {iteration}')
        alignment = aligner.align(AlignmentContext(coords, matrix, parameters))
        logger.debug(f'Self-alignment iteration {iteration}: {alignment}')
        if alignment.score < parameters.symmetry_threshold:
            if iteration == 0:
                alignments.append(alignment)
            break
        alignments.append(alignment)
        matrix.blank_alignment(alignment, parameters.win_size // 2)

    return alignments, matrix
