from __future__ import annotations

import dataclasses
import logging

import numpy as np

from symrepeat.protocols.align import PairwiseAligner, self_align
from symrepeat.protocols.axes import SymmetryAxis, build_axis
from symrepeat.protocols.order import AngleOrderDetector, OrderDetector, SequenceFunctionOrderDetector, \
    order_detector_factory
from symrepeat.protocols.refine import refiner_factory
from symrepeat.resources import config
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import MultipleAlignment, SelfAlignment
from symrepeat.utils import CancellationToken, DegenerateTransform, OrderDetectionFailed, RefinerFailed
from symrepeat.utils.symmetry import AUTO, CLOSED, OPEN

logger = logging.getLogger(__name__)
gap = config.GAP


@dataclasses.dataclass(frozen=True, eq=False)
class LevelResult:
    """The outcome of the single level symmetry analysis of a contiguous range of residues

    Args:
        self_alignments: The self-alignments in the order found
        alignment: The refined alignment, or the best self-alignment when unrefined
        multiple_alignment: The subunits of the level in the indices of the analyzed range
        order: The number of subunits
        symmetry_type: Either closed or open
        refined: Whether refinement succeeded
        score: The average TM-score of the subunits when refined, otherwise the self-alignment TM-score
        axis: The symmetry operation of the level if one could be built
        level: The depth of the level in the symmetry hierarchy
        offset: The index of the first residue of the analyzed range in the full structure
        sequence_order: The order reported by the sequence function
        angle_order: The order guessed from the self-alignment rotation angle
    """
    self_alignments: list[SelfAlignment]
    alignment: SelfAlignment
    multiple_alignment: MultipleAlignment
    order: int = 1
    symmetry_type: str = CLOSED
    refined: bool = False
    score: float = 0.
    axis: SymmetryAxis | None = None
    level: int = 0
    offset: int = 0
    sequence_order: int = 1
    angle_order: int = 1

    @property
    def best(self) -> SelfAlignment:
        """The first self-alignment found"""
        return self.self_alignments[0]

    def global_grid(self) -> np.ndarray:
        """The MultipleAlignment grid in the indices of the full structure"""
        grid = np.array(self.multiple_alignment.grid)
        grid[grid != gap] += self.offset
        return grid

    def replace(self, **kwargs) -> LevelResult:
        return dataclasses.replace(self, **kwargs)


def _detect_quietly(detector: OrderDetector, alignment: SelfAlignment, coords: np.ndarray) -> int:
    try:
        return detector.detect(alignment, coords)
    except OrderDetectionFailed:
        return 1


def analyze_level(coords: np.ndarray, parameters: SymmetryParameters, aligner: PairwiseAligner = None,
                  cancel: CancellationToken = None, level: int = 0) -> LevelResult:
    """Run self-alignment, order detection, refinement, and axis construction on a single range of residues

    Args:
        coords: The coordinates of the range with shape (n, 3)
        parameters: The analysis parameters
        aligner: The PairwiseAligner to use. Uses a FragmentAligner by default
        cancel: A token which stops the analysis when set
        level: The depth of the range in the symmetry hierarchy
    Raises:
        InputError: If the range has fewer than 2 residues
        AnalysisCancelled: If cancel is set
    Returns:
        The result of the level
    """
    alignments, _ = self_align(coords, parameters, aligner=aligner, cancel=cancel)
    best = alignments[0]
    symmetry_type = parameters.symmetry_type
    if symmetry_type == AUTO:
        symmetry_type = OPEN if best.block_number == 1 else CLOSED

    if best.score < parameters.symmetry_threshold:
        logger.info(f'Level {level + 1} self-alignment score {best.score:.4f} is below the threshold '
                    f'{parameters.symmetry_threshold}')
        return LevelResult(self_alignments=alignments, alignment=best,
                           multiple_alignment=MultipleAlignment.from_self_alignment(best),
                           symmetry_type=symmetry_type, score=best.score, level=level)

    sequence_order = _detect_quietly(
        SequenceFunctionOrderDetector(parameters.max_symm_order, parameters.minimum_metric_change), best, coords)
    angle_order = _detect_quietly(AngleOrderDetector(parameters.max_symm_order), best, coords)
    order = 1
    if symmetry_type == CLOSED:
        try:
            order = order_detector_factory(parameters).detect(best, coords)
        except OrderDetectionFailed as error:
            logger.warning(f'Using order 1. Order detection failed: {error}')
        logger.debug(f'Level {level + 1} detected order {order}')

    alignment, refined = best, False
    refiner = refiner_factory(parameters, open_=symmetry_type == OPEN)
    if refiner is not None and (symmetry_type == OPEN or order > 1):
        try:
            alignment = refiner.refine(alignments, coords, order if symmetry_type == CLOSED else parameters.user_order)
        except RefinerFailed as error:
            logger.warning(f'Using the unrefined self-alignment. {error}')
        else:
            refined = True
            order = alignment.block_number

    if refined:
        multiple_alignment = MultipleAlignment.from_self_alignment(alignment)
        score = multiple_alignment.score(coords)
    else:
        multiple_alignment = MultipleAlignment.from_self_alignment(best)
        score = best.score

    axis = None
    if refined and order > 1:
        try:
            axis = build_axis(alignment, coords, order, symmetry_type, level=level, refined=refined)
        except DegenerateTransform as error:
            logger.warning(f'Dropping the level {level + 1} axis. {error}')

    return LevelResult(self_alignments=alignments, alignment=alignment, multiple_alignment=multiple_alignment,
                       order=order, symmetry_type=symmetry_type, refined=refined, score=score, axis=axis, level=level,
                       sequence_order=sequence_order, angle_order=angle_order)
