from __future__ import annotations

import logging
import math
from collections.abc import Sequence

import numpy as np

from symrepeat.protocols.align import PairwiseAligner
from symrepeat.protocols.axes import SymmetryAxes, SymmetryAxis, repeat_pairs_for, superimpose_repeat_pairs
from symrepeat.protocols.level import LevelResult, analyze_level
from symrepeat.protocols.refine import consistent_groups
from symrepeat.resources import config
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import AlignmentGraph, MultipleAlignment
from symrepeat.utils import CancellationToken, DegenerateTransform, check_cancelled

logger = logging.getLogger(__name__)
gap = config.GAP


def continues(result: LevelResult, parameters: SymmetryParameters, cumulative_order: int = 1) -> bool:
    """Report whether a level is symmetric enough to belong to the hierarchy

    Args:
        result: The level to check
        parameters: The analysis parameters
        cumulative_order: The product of the orders of the levels above
    Returns:
        True if the level is refined, significant, long enough, and keeps the total order in range
    """
    if not result.refined or result.order < 2:
        return False
    if result.score < parameters.symmetry_threshold:
        logger.debug(f'Level {result.level + 1} score {result.score:.4f} is below the threshold')
        return False
    if result.multiple_alignment.columns < config.MIN_ALIGNMENT_LENGTH:
        logger.debug(f'Level {result.level + 1} aligns {result.multiple_alignment.columns} columns, fewer than '
                     f'{config.MIN_ALIGNMENT_LENGTH}')
        return False
    if cumulative_order * result.order > parameters.max_symm_order:
        logger.debug(f'Level {result.level + 1} order {result.order} exceeds the maximum order '
                     f'{parameters.max_symm_order} of the hierarchy')
        return False

    return True


def levels_below(coords: np.ndarray, result: LevelResult, parameters: SymmetryParameters,
                 aligner: PairwiseAligner = None, cancel: CancellationToken = None, cumulative_order: int = 1) \
        -> list[LevelResult]:
    """Search the first subunit of a level for further symmetry

    Args:
        coords: The coordinates of the full structure
        result: The level whose first subunit is searched
        parameters: The analysis parameters
        aligner: The PairwiseAligner to use
        cancel: A token which stops the analysis when set
        cumulative_order: The product of the orders of the levels above the result
    Returns:
        Each level found below the result, from the shallowest
    """
    start, end = result.multiple_alignment.subunit_spans()[0]
    if start == -1 or end - start + 1 < 2 * config.MIN_ALIGNMENT_LENGTH:
        return []

    check_cancelled(cancel, f'symmetry level {result.level + 2}')
    offset = result.offset + start
    child = analyze_level(coords[offset:result.offset + end + 1], parameters, aligner=aligner, cancel=cancel,
                          level=result.level + 1).replace(offset=offset)
    cumulative_order *= result.order
    if not continues(child, parameters, cumulative_order):
        return []

    logger.info(f'Found level {child.level + 1} {child.symmetry_type} symmetry of order {child.order} in residues '
                f'{offset}-{result.offset + end}')
    return [child, *levels_below(coords, child, parameters, aligner=aligner, cancel=cancel,
                                 cumulative_order=cumulative_order)]


def build_hierarchy(coords: np.ndarray, top: LevelResult, parameters: SymmetryParameters,
                    aligner: PairwiseAligner = None, cancel: CancellationToken = None) -> list[LevelResult]:
    """Find the levels of symmetry nested within the top level

    Returns:
        The top level followed by each level found below it
    """
    if not continues(top, parameters):
        return [top]

    return [top, *levels_below(coords, top, parameters, aligner=aligner, cancel=cancel)]


def merge_levels(levels: Sequence[LevelResult], coords: np.ndarray) -> tuple[MultipleAlignment, SymmetryAxes] | None:
    """Combine the subunits of every level into a single MultipleAlignment with one axis per level

    Residues are linked between consecutive subunits of every level. Groups which link as many residues as the total
    number of subunits become the columns of the merged alignment

    Args:
        levels: The hierarchy levels from the shallowest
        coords: The coordinates of the full structure
    Returns:
        The merged MultipleAlignment and SymmetryAxes, or None if no group spans every subunit
    """
    length = coords.shape[0]
    graph = AlignmentGraph(length)
    for result in levels:
        grid = result.global_grid()
        for subunit in range(grid.shape[0] - 1):
            shared = (grid[subunit] != gap) & (grid[subunit + 1] != gap)
            graph.add_edges(grid[subunit, shared], grid[subunit + 1, shared])

    subunits = math.prod(result.order for result in levels)
    groups = consistent_groups(graph.components(size=subunits), subunits)
    if not groups:
        logger.warning(f'No residue group spans all {subunits} subunits of the {len(levels)} levels')
        return None

    multiple_alignment = MultipleAlignment.from_groups(groups, length)
    axes = []
    size = subunits
    for result in levels:
        size //= result.order
        repeat_pairs = repeat_pairs_for(result.order, result.symmetry_type, size)
        try:
            rotation, translation, indices1, indices2 = \
                superimpose_repeat_pairs(multiple_alignment.grid, coords, repeat_pairs)
        except DegenerateTransform as error:
            logger.warning(f'Dropping the level {result.level + 1} axis. {error}')
            continue
        axes.append(SymmetryAxis(rotation=rotation, translation=translation, order=result.order,
                                 symmetry_type=result.symmetry_type, level=result.level, repeat_pairs=repeat_pairs,
                                 residue_pairs=(indices1, indices2)))

    return multiple_alignment, SymmetryAxes(axes, multiple_alignment.subunit_assignment())
