from __future__ import annotations

import copy
import logging
import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from symrepeat import metrics
from symrepeat.protocols.axes import SymmetryAxes
from symrepeat.resources import config
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import MultipleAlignment
from symrepeat.utils import CancellationToken, calculate_mp_cores, check_cancelled

logger = logging.getLogger(__name__)
gap = config.GAP


def _previous_residue(row: np.ndarray, column: int) -> int:
    """The last residue in row before column, or -1"""
    present = row[:column][row[:column] != gap]
    return int(present[-1]) if present.size else -1


def _next_residue(row: np.ndarray, column: int, length: int) -> int:
    """The first residue in row after column, or length"""
    present = row[column + 1:][row[column + 1:] != gap]
    return int(present[0]) if present.size else length


class MonteCarloOptimizer:
    """Improve a MultipleAlignment by simulated annealing over local changes to its residue grid

    Args:
        coords: The coordinates of the structure
        multiple_alignment: The starting alignment
        seed: The random seed
        steps: The number of moves to propose
        initial_temperature: The temperature of the first move, which cools linearly to 0
        gap_open: The penalty for each gap opening
        gap_extension: The penalty for each consecutive gap
        distance_cutoff: The distance where an aligned residue stops contributing positively
        min_columns: The fewest columns the alignment can shrink to
        cancel: A token which stops the optimization when set
    """
    moves = ('shift', 'grow', 'shrink', 'swap')

    def __init__(self, coords: np.ndarray, multiple_alignment: MultipleAlignment, seed: int = 0,
                 steps: int = config.MC_STEPS, initial_temperature: float = config.MC_INITIAL_TEMPERATURE,
                 gap_open: float = config.MC_GAP_OPEN, gap_extension: float = config.MC_GAP_EXTENSION,
                 distance_cutoff: float = config.MC_DISTANCE_CUTOFF, min_columns: int = config.MC_MIN_COLUMNS,
                 cancel: CancellationToken = None):
        self.coords = np.asarray(coords, dtype=float)
        self.length = multiple_alignment.length
        self.grid = np.array(multiple_alignment.grid, dtype=int)
        self.seed = seed
        self.rng = np.random.default_rng(seed)
        self.steps = steps
        self.initial_temperature = initial_temperature
        self.gap_open = gap_open
        self.gap_extension = gap_extension
        self.distance_cutoff = distance_cutoff
        self.min_columns = min_columns
        self.cancel = cancel

    def score(self, grid: np.ndarray) -> float:
        return metrics.mc_score(self.coords, grid, self.gap_open, self.gap_extension, self.distance_cutoff)

    def temperature(self, step: int) -> float:
        return self.initial_temperature * (1. - step / self.steps)

    def _random_residue_cell(self, grid: np.ndarray) -> tuple[int, int] | None:
        rows, columns = np.nonzero(grid != gap)
        if rows.size == 0:
            return None
        choice = self.rng.integers(rows.size)
        return int(rows[choice]), int(columns[choice])

    def shift(self, grid: np.ndarray) -> np.ndarray | None:
        """Move a contiguous run of one subunit by one residue toward either terminus"""
        cell = self._random_residue_cell(grid)
        if cell is None:
            return None
        subunit, column = cell
        row = grid[subunit]
        first = last = column
        while first > 0 and row[first - 1] != gap:
            first -= 1
        while last < grid.shape[1] - 1 and row[last + 1] != gap:
            last += 1
        direction = 1 if self.rng.integers(2) else -1
        shifted = row[first:last + 1] + direction
        if shifted[0] <= _previous_residue(row, first) or shifted[-1] >= _next_residue(row, last, self.length):
            return None
        others = set(grid[grid != gap].tolist()) - set(row[first:last + 1].tolist())
        if others.intersection(shifted.tolist()):
            return None

        grid = grid.copy()
        grid[subunit, first:last + 1] = shifted
        return grid

    def grow(self, grid: np.ndarray) -> np.ndarray | None:
        """Add a column beside an existing column using the neighboring residue of each subunit"""
        column = int(self.rng.integers(grid.shape[1]))
        direction = 1 if self.rng.integers(2) else -1
        used = set(grid[grid != gap].tolist())
        new_column = np.full(grid.shape[0], gap, dtype=int)
        for subunit, residue in enumerate(grid[:, column]):
            if residue == gap:
                continue
            candidate = int(residue) + direction
            if candidate < 0 or candidate >= self.length or candidate in used:
                continue
            if direction == 1 and candidate >= _next_residue(grid[subunit], column, self.length):
                continue
            if direction == -1 and candidate <= _previous_residue(grid[subunit], column):
                continue
            new_column[subunit] = candidate
        if np.sum(new_column != gap) < 2:
            return None

        position = column + 1 if direction == 1 else column
        return np.insert(grid, position, new_column, axis=1)

    def shrink(self, grid: np.ndarray) -> np.ndarray | None:
        """Delete a column"""
        if grid.shape[1] <= self.min_columns:
            return None
        return np.delete(grid, int(self.rng.integers(grid.shape[1])), axis=1)

    def swap(self, grid: np.ndarray) -> np.ndarray | None:
        """Reassign a residue to the same column of an adjacent subunit where that subunit has a gap"""
        cell = self._random_residue_cell(grid)
        if cell is None:
            return None
        subunit, column = cell
        target = subunit + (1 if self.rng.integers(2) else -1)
        if target < 0 or target >= grid.shape[0] or grid[target, column] != gap:
            return None
        residue = int(grid[subunit, column])
        row = grid[target]
        if not _previous_residue(row, column) < residue < _next_residue(row, column, self.length):
            return None

        grid = grid.copy()
        grid[target, column] = residue
        grid[subunit, column] = gap
        return grid

    def propose(self, grid: np.ndarray) -> np.ndarray | None:
        """Apply a random move, removing columns left with fewer than 2 residues

        Returns:
            The new grid or None if the move was impossible
        """
        move = self.moves[int(self.rng.integers(len(self.moves)))]
        new_grid = getattr(self, move)(grid)
        if new_grid is None:
            return None
        new_grid = new_grid[:, np.sum(new_grid != gap, axis=0) >= 2]
        if new_grid.shape[1] < self.min_columns:
            return None

        return new_grid

    def optimize(self) -> tuple[MultipleAlignment, float]:
        """Run the simulation for the move budget

        Raises:
            AnalysisCancelled: If cancel is set
        Returns:
            The best alignment seen and its score
        """
        current = best = self.grid
        current_score = best_score = self.score(current)
        accepted = 0
        for step in range(self.steps):
            check_cancelled(self.cancel, f'Monte Carlo step {step}')
            proposal = self.propose(current)
            if proposal is None:
                continue
            proposal_score = self.score(proposal)
            delta = proposal_score - current_score
            if delta < 0:
                temperature = self.temperature(step)
                if temperature <= 0 or self.rng.random() >= math.exp(delta / temperature):
                    continue
            current, current_score = proposal, proposal_score
            accepted += 1
            if current_score > best_score:
                best, best_score = current, current_score

        logger.debug(f'Monte Carlo seed {self.seed} accepted {accepted}/{self.steps} moves. Best score '
                     f'{best_score:.2f}')
        return MultipleAlignment(best, self.length), best_score


def _optimize_run(coords: np.ndarray, multiple_alignment: MultipleAlignment, parameters: SymmetryParameters,
                  seed: int, cancel: CancellationToken = None) -> tuple[MultipleAlignment, float]:
    return MonteCarloOptimizer(coords, multiple_alignment, seed=seed, steps=parameters.optimization_steps,
                               cancel=cancel).optimize()


def optimize_best_of(coords: np.ndarray, multiple_alignment: MultipleAlignment, axes: SymmetryAxes,
                     parameters: SymmetryParameters, cancel: CancellationToken = None) \
        -> tuple[MultipleAlignment, SymmetryAxes, float]:
    """Run independent Monte Carlo optimizations concurrently and keep the best

    Each run receives its own copy of the inputs and the seed parameters.seed + run. Ties keep the earliest run

    Args:
        coords: The coordinates of the structure
        multiple_alignment: The starting alignment
        axes: The axes of the starting alignment
        parameters: The analysis parameters
        cancel: A token which stops the optimization when set
    Raises:
        AnalysisCancelled: If cancel is set
    Returns:
        The best alignment, its axes with recomputed transforms, and its score
    """
    runs = parameters.optimization_runs
    workers = min(calculate_mp_cores(cores=parameters.cores), runs)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(_optimize_run, copy.deepcopy(coords), copy.deepcopy(multiple_alignment),
                                   parameters, parameters.seed + run, cancel)
                   for run in range(runs)]
        results = [future.result() for future in futures]

    best_run = max(range(runs), key=lambda run: (results[run][1], -run))
    best_alignment, best_score = results[best_run]
    logger.info(f'Monte Carlo run {best_run + 1}/{runs} scored best with {best_score:.2f}')
    return best_alignment, axes.recompute(best_alignment, coords), best_score
