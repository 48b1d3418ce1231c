import numpy as np
import pandas as pd
import pytest

from symrepeat import protocols
from symrepeat.protocols.align import AlignmentContext
from symrepeat.structure.alignment import SelfAlignment
from symrepeat.utils import AnalysisCancelled, CancellationToken, InputError

from conftest import helical_copies, random_walk


class FixedAligner:
    """Always reports the same correspondence"""
    def __init__(self, indices1, indices2):
        self.indices1 = indices1
        self.indices2 = indices2

    def align(self, context: AlignmentContext) -> SelfAlignment:
        return SelfAlignment.from_pairs(self.indices1, self.indices2, context.coords.shape[0], coords=context.coords)


def test_closed_repeat(c3_coords, parameters):
    result = protocols.analyze(c3_coords, parameters)
    assert result.refined
    assert result.significant
    assert result.order == 3
    assert result.symmetry_type == 'closed'
    assert result.score == pytest.approx(1., abs=1e-3)
    assert result.multiple_alignment.columns == 30
    assert result.mc_score is None
    assert len(result.axes) == 1
    assert result.axes[0].angle == pytest.approx(120., abs=.1)
    np.testing.assert_array_equal(result.subunit_assignment, np.repeat([0, 1, 2], 30))


def test_closed_repeat_optimized(c3_coords, parameters):
    parameters = parameters.replace(optimization=True, optimization_steps=200, optimization_runs=2)
    result = protocols.analyze(c3_coords, parameters)
    assert result.order == 3
    assert result.significant
    assert result.mc_score is not None
    assert result.multiple_alignment.is_consistent()
    assert result.axes[0].angle == pytest.approx(120., abs=1.)


def test_subunit_has_no_symmetry(c3_coords, parameters):
    result = protocols.analyze(c3_coords[:30], parameters)
    assert not result.significant
    assert result.order == 1


def test_asymmetric(lone_coords, parameters):
    result = protocols.analyze(lone_coords, parameters)
    assert not result.refined
    assert not result.significant
    assert result.order == 1
    assert len(result.axes) == 0
    assert np.all(result.subunit_assignment == -1)
    assert len(result.self_alignments) == 1


def test_open_repeat(helical_coords, parameters):
    result = protocols.analyze(helical_coords, parameters.replace(symmetry_type='open'))
    assert result.refined
    assert result.significant
    assert result.order == 5
    assert result.symmetry_type == 'open'
    axis = result.axes[0]
    assert axis.angle == pytest.approx(30., abs=.1)
    assert abs(axis.screw_translation) == pytest.approx(10., abs=.1)
    assert axis.repeat_pairs == ((0, 1), (1, 2), (2, 3), (3, 4))


def test_auto_infers_open(c3_coords, parameters):
    indices1 = np.arange(60)
    result = protocols.analyze(c3_coords, parameters, aligner=FixedAligner(indices1, indices1 + 30))
    assert result.symmetry_type == 'open'
    assert result.order == 3
    assert result.refined


def test_auto_infers_closed(c3_coords, parameters):
    indices1 = np.arange(90)
    result = protocols.analyze(c3_coords, parameters, aligner=FixedAligner(indices1, (indices1 + 30) % 90))
    assert result.symmetry_type == 'closed'
    assert result.order == 3


def test_user_order(c3_coords, parameters):
    indices1 = np.arange(90)
    aligner = FixedAligner(indices1, (indices1 + 30) % 90)
    parameters = parameters.replace(order_detector_method='user_input', user_order=2)
    result = protocols.analyze(c3_coords, parameters, aligner=aligner)
    # No residue returns to itself after two steps of the alignment
    assert not result.refined
    assert result.order == 2


def test_not_refined(c3_coords, parameters):
    result = protocols.analyze(c3_coords, parameters.replace(refine_method='not_refined'))
    assert not result.refined
    assert result.significant
    assert result.order == 3
    assert len(result.axes) == 0
    assert np.all(result.subunit_assignment == -1)


def test_single_residue():
    result = protocols.analyze(np.zeros((1, 3)))
    assert result.order == 1
    assert not result.significant
    np.testing.assert_array_equal(result.subunit_assignment, [0])


def test_empty_input():
    with pytest.raises(InputError):
        protocols.analyze(np.zeros((0, 3)))


def test_cancelled(c3_coords, parameters):
    cancel = CancellationToken()
    cancel.cancel()
    with pytest.raises(AnalysisCancelled):
        protocols.analyze(c3_coords, parameters, cancel=cancel)


def test_summary(c3_coords, parameters):
    summary = protocols.analyze(c3_coords, parameters).summary('c3')
    assert isinstance(summary, pd.Series)
    assert summary['name'] == 'c3'
    assert summary['order'] == 3
    assert summary['subunits'] == 3
    assert summary['aligned_length'] == 30
    assert bool(summary['significant'])


@pytest.mark.parametrize('seed', [0, 1, 2, 5])
def test_open_repeat_motifs(seed, parameters):
    coords = helical_copies(random_walk(30, seed), 5)
    result = protocols.analyze(coords, parameters.replace(symmetry_type='open'))
    assert result.refined
    assert result.significant
    assert result.order == 5
    assert result.axes[0].angle == pytest.approx(30., abs=.5)


def test_optimized_analysis_is_reproducible(c3_coords, parameters):
    coords = c3_coords + np.random.default_rng(2).normal(scale=.5, size=c3_coords.shape)
    parameters = parameters.replace(optimization=True, optimization_steps=150, optimization_runs=2, seed=11)
    first = protocols.analyze(coords, parameters)
    second = protocols.analyze(coords, parameters)
    assert first.mc_score is not None
    assert first.multiple_alignment == second.multiple_alignment
    assert first.score == second.score
    assert first.mc_score == second.mc_score
    assert len(first.axes) == len(second.axes)
    for axis1, axis2 in zip(first.axes, second.axes):
        np.testing.assert_array_equal(axis1.rotation, axis2.rotation)
        np.testing.assert_array_equal(axis1.translation, axis2.translation)
    np.testing.assert_array_equal(first.axes.subunit_assignment, second.axes.subunit_assignment)
