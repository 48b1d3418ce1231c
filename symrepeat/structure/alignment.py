from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Sequence

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from symrepeat import metrics
from symrepeat.resources import config
from symrepeat.utils.symmetry import identity_matrix

logger = logging.getLogger(__name__)
gap = config.GAP


def _read_only(array: Iterable[int], dtype=int) -> np.ndarray:
    array = np.array(array, dtype=dtype)
    array.setflags(write=False)
    return array


@dataclasses.dataclass(frozen=True, eq=False)
class SelfAlignment:
    """A partial, injective residue correspondence between a structure and itself

    Pairs are held in ordered blocks. Within a block the residues of both sides increase. More than one block
    indicates a circular permutation, where the correspondence wraps from the end of the chain to the start

    Args:
        blocks: Each block as the pair (indices1, indices2) of equal length residue index arrays
        length: The number of residues in the aligned structure
        score: The TM-score of the correspondence normalized by length
        rmsd: The root mean squared deviation of the superimposed pairs
        rotation: The rotation which superimposes indices1 onto indices2
        translation: The translation which superimposes indices1 onto indices2
    """
    blocks: tuple[tuple[np.ndarray, np.ndarray], ...]
    length: int
    score: float = 0.
    rmsd: float = 0.
    rotation: np.ndarray = dataclasses.field(default_factory=identity_matrix.copy)
    translation: np.ndarray = dataclasses.field(default_factory=lambda: np.zeros(3))

    @classmethod
    def from_blocks(cls, blocks: Sequence[tuple[Sequence[int], Sequence[int]]], length: int,
                    coords: np.ndarray = None, scored_blocks: int = None) -> SelfAlignment:
        """Create a SelfAlignment, scoring it when coordinates are provided

        Args:
            blocks: Each block as the pair (indices1, indices2)
            length: The number of residues in the aligned structure
            coords: The coordinates of the aligned structure
            scored_blocks: The number of leading blocks to calculate the score and transform from. All by default
        Raises:
            ValueError: If the blocks are mismatched in length or pair a residue more than once
        Returns:
            The new instance
        """
        blocks = tuple((_read_only(indices1), _read_only(indices2)) for indices1, indices2 in blocks)
        for indices1, indices2 in blocks:
            if indices1.shape != indices2.shape:
                raise ValueError(f"Can't create a block from {indices1.shape[0]} and {indices2.shape[0]} residues")

        alignment = cls(blocks=blocks, length=length)
        if not alignment.is_injective():
            raise ValueError("Can't create an alignment which uses a residue more than once on either side")
        scored = blocks[:scored_blocks]
        if coords is None or not scored:
            return alignment

        indices1 = np.concatenate([block[0] for block in scored])
        indices2 = np.concatenate([block[1] for block in scored])
        score, rmsd, rotation, translation = metrics.pair_tm_score(coords, indices1, indices2, length=length)
        return cls(blocks=blocks, length=length, score=score, rmsd=float(rmsd), rotation=rotation,
                   translation=translation)

    @classmethod
    def from_pairs(cls, indices1: Sequence[int], indices2: Sequence[int], length: int,
                   coords: np.ndarray = None) -> SelfAlignment:
        """Create a SelfAlignment from ordered pairs where indices1 increase, splitting blocks where indices2 wrap

        Args:
            indices1: The residues of the first copy in increasing order
            indices2: The corresponding residues of the second copy
            length: The number of residues in the aligned structure
            coords: The coordinates of the aligned structure
        Returns:
            The new instance
        """
        indices1 = np.asarray(indices1, dtype=int)
        indices2 = np.asarray(indices2, dtype=int)
        breaks = np.flatnonzero(np.diff(indices2) < 0) + 1
        blocks = [(block1, block2) for block1, block2 in zip(np.split(indices1, breaks), np.split(indices2, breaks))
                  if block1.size]
        return cls.from_blocks(blocks, length, coords=coords)

    @property
    def block_number(self) -> int:
        return len(self.blocks)

    @property
    def aligned_length(self) -> int:
        return sum(block[0].shape[0] for block in self.blocks)

    @property
    def indices1(self) -> np.ndarray:
        if not self.blocks:
            return np.zeros(0, dtype=int)
        return np.concatenate([block[0] for block in self.blocks])

    @property
    def indices2(self) -> np.ndarray:
        if not self.blocks:
            return np.zeros(0, dtype=int)
        return np.concatenate([block[1] for block in self.blocks])

    def as_array(self) -> np.ndarray:
        """Express the correspondence as an index array sized length where unaligned residues are -1"""
        mapping = np.full(self.length, -1, dtype=int)
        mapping[self.indices1] = self.indices2
        return mapping

    def is_injective(self) -> bool:
        """Whether each residue is used at most once on each side of the alignment"""
        indices1, indices2 = self.indices1, self.indices2
        return np.unique(indices1).shape[0] == indices1.shape[0] \
            and np.unique(indices2).shape[0] == indices2.shape[0]

    def __eq__(self, other) -> bool:
        if not isinstance(other, SelfAlignment):
            return NotImplemented
        return self.length == other.length and self.block_number == other.block_number \
            and all(np.array_equal(a1, b1) and np.array_equal(a2, b2)
                    for (a1, a2), (b1, b2) in zip(self.blocks, other.blocks)) \
            and self.score == other.score

    def __repr__(self) -> str:
        return f'{type(self).__name__}(blocks={self.block_number}, aligned={self.aligned_length}, ' \
               f'length={self.length}, score={self.score:.4f})'


@dataclasses.dataclass(frozen=True, eq=False)
class MultipleAlignment:
    """Parallel residue index rows, one per subunit, aligned column-wise. Each column holds structurally equivalent
    residues, or GAP where a subunit lacks one

    Args:
        grid: The residue indices with shape (subunits, columns)
        length: The number of residues in the aligned structure
    """
    grid: np.ndarray
    length: int

    def __post_init__(self):
        grid = np.array(self.grid, dtype=int)
        if grid.ndim != 2:
            grid = grid.reshape(0, 0) if grid.size == 0 else grid.reshape(1, -1)
        grid.setflags(write=False)
        object.__setattr__(self, 'grid', grid)

    @classmethod
    def from_groups(cls, groups: Sequence[Sequence[int]], length: int) -> MultipleAlignment:
        """Create a MultipleAlignment where each group of equivalent residues forms a column

        Args:
            groups: Each group ordered by subunit
            length: The number of residues in the aligned structure
        Returns:
            The new instance
        """
        if not groups:
            return cls(np.zeros((0, 0), dtype=int), length)
        return cls(np.array(groups, dtype=int).T, length)

    @classmethod
    def from_self_alignment(cls, alignment: SelfAlignment) -> MultipleAlignment:
        """Create a MultipleAlignment from a SelfAlignment

        A refined alignment, whose blocks each relate one subunit to the next, yields one row per block. Otherwise the
        two sides of the correspondence yield two rows
        """
        blocks = alignment.blocks
        sizes = {block[0].shape[0] for block in blocks}
        if len(blocks) > 1 and len(sizes) == 1 \
                and all(np.array_equal(blocks[idx][1], blocks[(idx + 1) % len(blocks)][0])
                        for idx in range(len(blocks))):
            return cls(np.array([block[0] for block in blocks]), alignment.length)

        return cls(np.array([alignment.indices1, alignment.indices2]), alignment.length)

    @property
    def order(self) -> int:
        """The number of subunits"""
        return self.grid.shape[0]

    @property
    def columns(self) -> int:
        return self.grid.shape[1]

    @property
    def aligned_residues(self) -> int:
        return int(np.sum(self.grid != gap))

    def subunit_spans(self) -> list[tuple[int, int]]:
        """The first and last residue of each subunit row, or (-1, -1) for an empty row"""
        spans = []
        for row in self.grid:
            present = row[row != gap]
            spans.append((int(present.min()), int(present.max())) if present.size else (-1, -1))

        return spans

    def subunit_assignment(self) -> np.ndarray:
        """Assign each residue of the structure to the subunit whose span contains it, otherwise -1"""
        assignment = np.full(self.length, -1, dtype=int)
        for idx, (start, end) in enumerate(self.subunit_spans()):
            if start != -1:
                assignment[start:end + 1] = idx

        return assignment

    def is_consistent(self) -> bool:
        """Whether every residue is used once and each subunit row strictly increases"""
        present = self.grid[self.grid != gap]
        if np.unique(present).shape[0] != present.shape[0]:
            return False
        for row in self.grid:
            residues = row[row != gap]
            if np.any(np.diff(residues) <= 0):
                return False

        return True

    def to_self_alignment(self, coords: np.ndarray = None, closed: bool = True) -> SelfAlignment:
        """Express the relation of each subunit to the next as the blocks of a SelfAlignment

        Args:
            coords: The coordinates of the aligned structure to score the alignment
            closed: Whether the last subunit relates back to the first. If not, the final block, from the last subunit
                to the first, is excluded from the score
        Returns:
            The SelfAlignment with one block per subunit
        """
        number_of_subunits = self.order
        blocks = []
        for idx in range(number_of_subunits):
            row1, row2 = self.grid[idx], self.grid[(idx + 1) % number_of_subunits]
            shared = (row1 != gap) & (row2 != gap)
            blocks.append((row1[shared], row2[shared]))

        return SelfAlignment.from_blocks(blocks, self.length, coords=coords,
                                         scored_blocks=None if closed else number_of_subunits - 1)

    def score(self, coords: np.ndarray) -> float:
        """The average pairwise TM-score of the subunits"""
        return metrics.average_tm_score(coords, self.grid)

    def __eq__(self, other) -> bool:
        if not isinstance(other, MultipleAlignment):
            return NotImplemented
        return self.length == other.length and np.array_equal(self.grid, other.grid)

    def __repr__(self) -> str:
        return f'{type(self).__name__}(subunits={self.order}, columns={self.columns}, length={self.length})'


class AlignmentGraph:
    """Residue correspondences across one or more SelfAlignments held as index arrays sized by the structure length

    Args:
        length: The number of residues in the structure
    """
    def __init__(self, length: int):
        self.length = length
        self.next_residue = np.full(length, -1, dtype=int)
        """The corresponding residue of the directed graph from a single alignment, -1 where undefined"""
        self.neighbors: list[list[int]] = [[] for _ in range(length)]
        """The adjacency lists of the undirected graph from every alignment, each kept sorted"""

    @classmethod
    def from_alignments(cls, alignments: Iterable[SelfAlignment], length: int) -> AlignmentGraph:
        """Link every aligned residue pair. The first alignment also sets the directed next_residue

        Args:
            alignments: The alignments contributing edges
            length: The number of residues in the structure
        Returns:
            The new instance
        """
        graph = cls(length)
        for idx, alignment in enumerate(alignments):
            indices1, indices2 = alignment.indices1, alignment.indices2
            if idx == 0:
                graph.next_residue[indices1] = indices2
            graph.add_edges(indices1, indices2)

        return graph

    def add_edges(self, indices1: Iterable[int], indices2: Iterable[int]):
        """Add undirected edges between paired residues"""
        for residue1, residue2 in zip(map(int, indices1), map(int, indices2)):
            if residue1 == residue2:
                continue
            if residue2 not in self.neighbors[residue1]:
                self.neighbors[residue1].append(residue2)
                self.neighbors[residue1].sort()
            if residue1 not in self.neighbors[residue2]:
                self.neighbors[residue2].append(residue1)
                self.neighbors[residue2].sort()

    def cycles(self, order: int) -> list[tuple[int, ...]]:
        """Find the residues which return to themselves after exactly order steps of next_residue

        Args:
            order: The cycle length
        Returns:
            Each cycle, sorted by residue index, in the order of its smallest residue
        """
        visited = np.zeros(self.length, dtype=bool)
        cycles = []
        for start in range(self.length):
            if visited[start]:
                continue
            path = [start]
            residue = start
            for _ in range(order - 1):
                residue = self.next_residue[residue]
                if residue == -1 or visited[residue] or residue in path:
                    break
                path.append(int(residue))
            else:
                if len(path) == order and self.next_residue[path[-1]] == start:
                    visited[path] = True
                    cycles.append(tuple(sorted(path)))

        return sorted(cycles)

    def components(self, size: int = None) -> list[tuple[int, ...]]:
        """Find the connected components of the undirected graph

        Args:
            size: If provided, only components of exactly this many residues are returned
        Returns:
            Each component, sorted by residue index, in the order of its smallest residue
        """
        rows, cols = [], []
        for residue, neighbors in enumerate(self.neighbors):
            rows.extend([residue] * len(neighbors))
            cols.extend(neighbors)
        matrix = coo_matrix((np.ones(len(rows)), (rows, cols)), shape=(self.length, self.length))
        _, labels = connected_components(matrix, directed=False)

        components = {}
        for residue, label in enumerate(labels):
            if self.neighbors[residue]:
                components.setdefault(label, []).append(residue)

        groups = [tuple(residues) for residues in components.values() if size is None or len(residues) == size]
        return sorted(groups)

    def increasing_chains(self) -> list[tuple[int, ...]]:
        """Follow the smallest neighbor greater than each residue to build chains that strictly increase in index

        Returns:
            The chains with more than one residue in the order of their first residue
        """
        following = np.full(self.length, -1, dtype=int)
        for residue, neighbors in enumerate(self.neighbors):
            for neighbor in neighbors:
                if neighbor > residue:
                    following[residue] = neighbor
                    break

        visited = np.zeros(self.length, dtype=bool)
        chains = []
        for start in range(self.length):
            if visited[start]:
                continue
            chain = [start]
            residue = following[start]
            while residue != -1 and not visited[residue]:
                chain.append(int(residue))
                residue = following[residue]
            if len(chain) > 1:
                visited[chain] = True
                chains.append(tuple(chain))

        return chains
