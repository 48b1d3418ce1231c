from __future__ import annotations

import abc
import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence

import numpy as np

from symrepeat.resources import config
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import AlignmentGraph, MultipleAlignment, SelfAlignment
from symrepeat.utils import RefinerFailed

logger = logging.getLogger(__name__)


def consistent_groups(groups: Iterable[Sequence[int]], order: int) -> list[tuple[int, ...]]:
    """Keep the groups of equivalent residues which can form columns of a MultipleAlignment

    Groups are considered in the order of their first residue. A group is kept if it strictly increases across
    subunits, follows the previously kept group in every subunit, and stays before the start of the next subunit as
    defined by the first kept group

    Args:
        groups: Each group of equivalent residues ordered by subunit
        order: The number of subunits
    Returns:
        The kept groups
    """
    kept = []
    for group in sorted(map(tuple, groups)):
        if len(group) != order:
            continue
        if any(group[idx] >= group[idx + 1] for idx in range(order - 1)):
            continue
        if kept:
            first, last = kept[0], kept[-1]
            if any(group[idx] <= last[idx] for idx in range(order)):
                continue
            if any(group[idx] >= first[idx + 1] for idx in range(order - 1)):
                continue
        kept.append(group)

    return kept


class Refiner(abc.ABC):
    """Turn self-alignments into an alignment of order blocks where block b relates subunit b to subunit b+1"""
    closed: bool = True

    @abc.abstractmethod
    def groups(self, alignments: Sequence[SelfAlignment], order: int) -> list[tuple[int, ...]]:
        """Find the groups of equivalent residues, each ordered by subunit"""

    def refine(self, alignments: Sequence[SelfAlignment], coords: np.ndarray, order: int) -> SelfAlignment:
        """Refine the self-alignments to one with order blocks

        Args:
            alignments: The self-alignments in the order they were found
            coords: The coordinates of the aligned structure
            order: The number of subunits
        Raises:
            RefinerFailed: If no consistent groups of equivalent residues are found
        Returns:
            The refined alignment
        """
        if not alignments or alignments[0].aligned_length == 0:
            raise RefinerFailed(f"{type(self).__name__} can't refine an empty alignment")

        groups = self.groups(alignments, order)
        if not groups:
            raise RefinerFailed(f'{type(self).__name__} found no consistent groups of order {order}')

        order = len(groups[0])
        logger.debug(f'{type(self).__name__} found {len(groups)} groups of order {order}')
        multiple_alignment = MultipleAlignment.from_groups(groups, alignments[0].length)
        return multiple_alignment.to_self_alignment(coords, closed=self.closed)


class SingleRefiner(Refiner):
    """Refine from the best self-alignment by finding residues which return to themselves after order steps"""
    def groups(self, alignments: Sequence[SelfAlignment], order: int) -> list[tuple[int, ...]]:
        if order < 2:
            raise RefinerFailed(f"{type(self).__name__} can't refine order {order}")
        graph = AlignmentGraph.from_alignments(alignments[:1], alignments[0].length)
        return consistent_groups(graph.cycles(order), order)


class MultipleRefiner(Refiner):
    """Refine from every self-alignment by finding connected residues in the union of their correspondences"""
    def groups(self, alignments: Sequence[SelfAlignment], order: int) -> list[tuple[int, ...]]:
        if order < 2:
            raise RefinerFailed(f"{type(self).__name__} can't refine order {order}")
        graph = AlignmentGraph.from_alignments(alignments, alignments[0].length)
        return consistent_groups(graph.components(size=order), order)


class OpenRefiner(Refiner):
    """Refine a translational or helical repeat by chaining residues toward the C-terminus

    Args:
        max_order: The largest number of repeats to consider
    """
    closed = False

    def __init__(self, max_order: int = config.MAX_SYMM_ORDER):
        self.max_order = max_order

    def select_order(self, chains: Sequence[tuple[int, ...]]) -> int:
        """Choose the chain length which covers the most residues. Ties favor the smaller order"""
        counts = defaultdict(int)
        for chain in chains:
            if len(chain) <= self.max_order:
                counts[len(chain)] += 1
        if not counts:
            return 0

        return max(sorted(counts), key=lambda length: length * counts[length])

    def groups(self, alignments: Sequence[SelfAlignment], order: int) -> list[tuple[int, ...]]:
        graph = AlignmentGraph.from_alignments(alignments, alignments[0].length)
        chains = graph.increasing_chains()
        if order is None or order < 2:
            order = self.select_order(chains)
            if order < 2:
                return []

        accepted = [chain for chain in chains if len(chain) == order]
        longer = [chain for chain in chains if len(chain) > order]
        if accepted:
            starts = [min(chain[idx] for chain in accepted) for idx in range(order)]
            for chain in longer:
                # Use the first window which falls inside the accepted subunit spans
                for start in range(len(chain) - order + 1):
                    window = chain[start:start + order]
                    if all(starts[idx] <= window[idx] < starts[idx + 1] for idx in range(order - 1)) \
                            and window[-1] >= starts[-1]:
                        accepted.append(window)
                        break
        else:
            accepted = [chain[:order] for chain in longer]

        logger.debug(f'{type(self).__name__} selected order {order} from {len(chains)} chains')
        return consistent_groups(accepted, order)


refiners: dict[str, type[Refiner]] = {
    config.SINGLE: SingleRefiner,
    config.MULTIPLE: MultipleRefiner,
}


def refiner_factory(parameters: SymmetryParameters, open_: bool = False) -> Refiner | None:
    """Create the Refiner specified by the parameters. Open symmetry always uses the OpenRefiner

    Returns:
        The Refiner or None if no refinement is requested
    """
    if parameters.refine_method == config.NOT_REFINED:
        return None
    if open_:
        return OpenRefiner(parameters.max_symm_order)

    return refiners[parameters.refine_method]()
