import numpy as np
import pytest

from symrepeat.protocols.axes import SymmetryAxes, SymmetryAxis, repeat_pairs_for
from symrepeat.protocols.optimize import MonteCarloOptimizer, optimize_best_of
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import MultipleAlignment
from symrepeat.utils import AnalysisCancelled, CancellationToken


@pytest.fixture
def trimmed_c3() -> MultipleAlignment:
    """The C3 subunits missing the first and last residues of each repeat"""
    columns = np.arange(5, 25)
    return MultipleAlignment(np.array([columns, columns + 30, columns + 60]), 90)


def test_moves(c3_coords, trimmed_c3):
    optimizer = MonteCarloOptimizer(c3_coords, trimmed_c3, seed=1, min_columns=20)
    grid = np.array(trimmed_c3.grid)
    assert optimizer.shrink(grid) is None

    # Only the terminal columns have unused neighboring residues
    grown = None
    for _ in range(500):
        grown = optimizer.grow(grid)
        if grown is not None:
            break
    assert grown.shape == (3, 21)
    assert grown[0, 0] == 4 or grown[0, -1] == 25
    assert MultipleAlignment(grown, 90).is_consistent()

    for _ in range(20):
        for move in (optimizer.shift, optimizer.swap):
            proposal = move(grid)
            if proposal is not None:
                assert proposal.shape == grid.shape
                assert MultipleAlignment(proposal, 90).is_consistent()


def test_optimize_is_deterministic(c3_coords, trimmed_c3):
    first, first_score = MonteCarloOptimizer(c3_coords, trimmed_c3, seed=3, steps=150).optimize()
    second, second_score = MonteCarloOptimizer(c3_coords, trimmed_c3, seed=3, steps=150).optimize()
    assert first == second
    assert first_score == second_score


def test_optimize_improves(c3_coords, trimmed_c3):
    optimizer = MonteCarloOptimizer(c3_coords, trimmed_c3, seed=0, steps=300)
    initial_score = optimizer.score(np.array(trimmed_c3.grid))
    optimized, score = optimizer.optimize()
    assert score >= initial_score
    assert score == pytest.approx(optimizer.score(np.array(optimized.grid)))
    assert optimized.is_consistent()
    assert optimized.columns >= optimizer.min_columns
    assert np.all(np.sum(optimized.grid != -1, axis=0) >= 2)
    # The input is left untouched
    assert trimmed_c3.columns == 20


def test_optimize_cancelled(c3_coords, trimmed_c3):
    cancel = CancellationToken()
    cancel.cancel()
    with pytest.raises(AnalysisCancelled):
        MonteCarloOptimizer(c3_coords, trimmed_c3, cancel=cancel).optimize()


def test_best_of_runs(c3_coords, trimmed_c3):
    parameters = SymmetryParameters(seed=4, optimization_steps=100, optimization_runs=3, cores=2)
    axis = SymmetryAxis(np.eye(3), np.zeros(3), 3, repeat_pairs=repeat_pairs_for(3, 'closed'))
    best, axes, score = optimize_best_of(c3_coords, trimmed_c3, SymmetryAxes([axis]), parameters)
    # Every run starts from the input alignment and keeps the best grid seen
    assert score >= MonteCarloOptimizer(c3_coords, trimmed_c3).score(np.array(trimmed_c3.grid))

    run_scores = [MonteCarloOptimizer(c3_coords, trimmed_c3, seed=seed, steps=100).optimize()[1]
                  for seed in (4, 5, 6)]
    assert score == pytest.approx(max(run_scores))
    assert all(score >= run_score for run_score in run_scores)
    assert axes[0].angle == pytest.approx(120., abs=1.)
    assert best.is_consistent()
