from __future__ import annotations

import dataclasses
import logging
import time

import numpy as np
import pandas as pd

from symrepeat.protocols import hierarchy, optimize
from symrepeat.protocols.align import PairwiseAligner
from symrepeat.protocols.axes import SymmetryAxes
from symrepeat.protocols.level import LevelResult, analyze_level
from symrepeat.resources import config
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import MultipleAlignment, SelfAlignment
from symrepeat.structure.coords import Coords
from symrepeat.utils import CancellationToken, InputError, check_cancelled
from symrepeat.utils.symmetry import CLOSED

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, eq=False)
class SymmetryResult:
    """The internal symmetry of a structure

    Args:
        multiple_alignment: The equivalent residues of each subunit
        axes: The symmetry operations relating the subunits
        self_alignments: The self-alignments of the top level in the order found
        order: The number of subunits
        symmetry_type: Either closed or open
        refined: Whether the self-alignment could be refined into subunits
        significant: Whether the structure is considered symmetric
        score: The average TM-score of the subunits when refined, otherwise the self-alignment TM-score
        mc_score: The Monte Carlo optimization score if optimization was performed
        levels: The results of each symmetry level from the top
    """
    multiple_alignment: MultipleAlignment
    axes: SymmetryAxes
    self_alignments: list[SelfAlignment]
    order: int = 1
    symmetry_type: str = CLOSED
    refined: bool = False
    significant: bool = False
    score: float = 0.
    mc_score: float | None = None
    levels: list[LevelResult] = dataclasses.field(default_factory=list)

    @property
    def subunit_assignment(self) -> np.ndarray:
        return self.axes.subunit_assignment

    def summary(self, name: str = None) -> pd.Series:
        """Report the result as a pandas.Series"""
        return pd.Series({
            'name': name,
            'order': self.order,
            'symmetry_type': self.symmetry_type,
            'refined': self.refined,
            'significant': self.significant,
            'score': round(self.score, 4),
            'mc_score': None if self.mc_score is None else round(self.mc_score, 2),
            'levels': len(self.axes),
            'subunits': self.multiple_alignment.order if self.refined else 1,
            'aligned_length': self.multiple_alignment.columns if self.refined
            else (self.self_alignments[0].aligned_length if self.self_alignments else 0),
        })


def is_significant(top: LevelResult, score: float, threshold: float) -> bool:
    """Decide whether a structure is symmetric

    A refined result must have more than one subunit. An unrefined result must show an order greater than 1 by
    either the sequence function or the self-alignment rotation angle
    """
    if score < threshold:
        return False
    if top.refined:
        return top.order > 1
    return top.sequence_order > 1 or top.angle_order > 1


def analyze(coords: np.ndarray | Coords, parameters: SymmetryParameters = None, aligner: PairwiseAligner = None,
            cancel: CancellationToken = None) -> SymmetryResult:
    """Detect the internal symmetry of a structure

    Args:
        coords: The residue coordinates with shape (n, 3)
        parameters: The analysis parameters. Uses the defaults if not provided
        aligner: The PairwiseAligner to use. Uses a FragmentAligner by default
        cancel: A token which stops the analysis when set
    Raises:
        InputError: If the coordinates are empty or malformed
        AnalysisCancelled: If cancel is set
    Returns:
        The symmetry of the structure
    """
    coords = Coords(coords).coords
    length = coords.shape[0]
    if length == 0:
        raise InputError("Can't analyze the symmetry of an empty structure")
    if parameters is None:
        parameters = SymmetryParameters()
    if length == 1:
        logger.info('A structure with a single residue has order 1')
        return SymmetryResult(multiple_alignment=MultipleAlignment(np.zeros((1, 1), dtype=int), length),
                              axes=SymmetryAxes(subunit_assignment=np.zeros(1, dtype=int)), self_alignments=[])

    start_time = time.time()
    check_cancelled(cancel, 'symmetry analysis')
    top = analyze_level(coords, parameters, aligner=aligner, cancel=cancel)
    if not top.refined:
        significant = is_significant(top, top.score, parameters.symmetry_threshold)
        logger.info(f'Found no refined symmetry. Self-alignment score {top.score:.4f}, '
                    f'{"" if significant else "not "}significant')
        return SymmetryResult(multiple_alignment=top.multiple_alignment,
                              axes=SymmetryAxes(subunit_assignment=np.full(length, -1, dtype=int)),
                              self_alignments=top.self_alignments, order=top.order, symmetry_type=top.symmetry_type,
                              significant=significant, score=top.score, levels=[top])

    levels = [top]
    multiple_alignment = top.multiple_alignment
    symmetry_axes = SymmetryAxes([] if top.axis is None else [top.axis], multiple_alignment.subunit_assignment())
    if parameters.multiple_axes:
        levels = hierarchy.build_hierarchy(coords, top, parameters, aligner=aligner, cancel=cancel)
        if len(levels) > 1:
            merged = hierarchy.merge_levels(levels, coords)
            if merged is None:
                levels = [top]
            else:
                multiple_alignment, symmetry_axes = merged
                logger.info(f'Merged {len(levels)} symmetry levels into {multiple_alignment.order} subunits')

    mc_score = None
    if parameters.optimization and multiple_alignment.order > 1 \
            and multiple_alignment.columns >= config.MC_MIN_COLUMNS:
        multiple_alignment, symmetry_axes, mc_score = \
            optimize.optimize_best_of(coords, multiple_alignment, symmetry_axes, parameters, cancel=cancel)

    score = multiple_alignment.score(coords)
    symmetry_type = top.symmetry_type
    result = SymmetryResult(multiple_alignment=multiple_alignment, axes=symmetry_axes,
                            self_alignments=top.self_alignments, order=multiple_alignment.order,
                            symmetry_type=symmetry_type, refined=True,
                            significant=is_significant(top, score, parameters.symmetry_threshold), score=score,
                            mc_score=mc_score, levels=levels)
    logger.info(f'Found {symmetry_type} symmetry of order {result.order} with score {score:.4f} in '
                f'{time.time() - start_time:.2f}s')
    return result
