import numpy as np
import pytest

from symrepeat.protocols.refine import MultipleRefiner, OpenRefiner, SingleRefiner, consistent_groups, refiner_factory
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import AlignmentGraph, MultipleAlignment, SelfAlignment
from symrepeat.utils import RefinerFailed

from conftest import rotated_pairs


def test_consistent_groups():
    groups = [(2, 32, 62), (0, 30, 60), (1, 30, 62), (1, 31, 61), (5, 4, 70), (35, 65, 85), (3, 33)]
    assert consistent_groups(groups, 3) == [(0, 30, 60), (1, 31, 61), (2, 32, 62)]


def test_graph_cycles_and_components():
    alignment1 = SelfAlignment.from_pairs(*rotated_pairs(9, 3), 9)
    alignment2 = SelfAlignment.from_pairs(*rotated_pairs(9, 6), 9)
    graph = AlignmentGraph.from_alignments([alignment1], 9)
    assert graph.cycles(3) == [(0, 3, 6), (1, 4, 7), (2, 5, 8)]
    assert graph.cycles(2) == []

    graph = AlignmentGraph.from_alignments([alignment1, alignment2], 9)
    assert graph.components(size=3) == [(0, 3, 6), (1, 4, 7), (2, 5, 8)]
    assert graph.components(size=2) == []
    assert graph.neighbors[0] == [3, 6]


def test_graph_increasing_chains():
    indices1 = np.arange(6)
    graph = AlignmentGraph.from_alignments([SelfAlignment.from_pairs(indices1, indices1 + 3, 9)], 9)
    assert graph.increasing_chains() == [(0, 3, 6), (1, 4, 7), (2, 5, 8)]


def test_single_refiner(c3_coords):
    alignment = SelfAlignment.from_pairs(*rotated_pairs(90, 30), 90, coords=c3_coords)
    refined = SingleRefiner().refine([alignment], c3_coords, 3)
    assert refined.block_number == 3
    assert all(block[0].shape[0] == 30 for block in refined.blocks)
    assert refined.score == pytest.approx(1., abs=1e-6)
    multiple_alignment = MultipleAlignment.from_self_alignment(refined)
    assert multiple_alignment.order == 3
    np.testing.assert_array_equal(multiple_alignment.grid[:, 0], [0, 30, 60])
    assert multiple_alignment.is_consistent()


def test_single_refiner_partial_alignment(c3_coords):
    indices1, indices2 = rotated_pairs(90, 30)
    keep = (indices1 % 30) >= 5
    alignment = SelfAlignment.from_pairs(indices1[keep], indices2[keep], 90, coords=c3_coords)
    refined = SingleRefiner().refine([alignment], c3_coords, 3)
    assert refined.aligned_length == 75


def test_multiple_refiner(c3_coords):
    alignments = [SelfAlignment.from_pairs(*rotated_pairs(90, shift), 90, coords=c3_coords) for shift in (30, 60)]
    refined = MultipleRefiner().refine(alignments, c3_coords, 3)
    assert refined.block_number == 3
    assert refined.aligned_length == 90


def test_refiner_failures(c3_coords):
    alignment = SelfAlignment.from_pairs(*rotated_pairs(90, 30), 90, coords=c3_coords)
    with pytest.raises(RefinerFailed):
        SingleRefiner().refine([alignment], c3_coords, 1)
    with pytest.raises(RefinerFailed):
        SingleRefiner().refine([alignment], c3_coords, 4)
    with pytest.raises(RefinerFailed):
        MultipleRefiner().refine([SelfAlignment.from_blocks([], 90)], c3_coords, 3)


def test_open_refiner_selects_order(helical_coords):
    indices1 = np.arange(120)
    alignment = SelfAlignment.from_pairs(indices1, indices1 + 30, 150, coords=helical_coords)
    refined = OpenRefiner().refine([alignment], helical_coords, 0)
    assert refined.block_number == 5
    # The last subunit doesn't relate back to the first
    assert refined.score == pytest.approx(.8, abs=1e-6)
    multiple_alignment = MultipleAlignment.from_self_alignment(refined)
    np.testing.assert_array_equal(multiple_alignment.grid[:, 0], [0, 30, 60, 90, 120])


def test_open_refiner_user_order(helical_coords):
    indices1 = np.arange(120)
    alignment = SelfAlignment.from_pairs(indices1, indices1 + 30, 150, coords=helical_coords)
    refined = OpenRefiner().refine([alignment], helical_coords, 3)
    assert refined.block_number == 3
    multiple_alignment = MultipleAlignment.from_self_alignment(refined)
    np.testing.assert_array_equal(multiple_alignment.grid[:, -1], [29, 59, 89])


def test_open_refiner_order_tie():
    refiner = OpenRefiner(max_order=8)
    assert refiner.select_order([(0, 1), (2, 3), (4, 5, 6, 7)]) == 2
    assert refiner.select_order([(0, 1), (2, 3, 4)]) == 3
    assert OpenRefiner(max_order=2).select_order([(0, 1, 2)]) == 0


def test_refiner_factory():
    assert refiner_factory(SymmetryParameters(refine_method='not_refined')) is None
    assert refiner_factory(SymmetryParameters(refine_method='not_refined'), open_=True) is None
    assert isinstance(refiner_factory(SymmetryParameters()), SingleRefiner)
    assert isinstance(refiner_factory(SymmetryParameters(refine_method='multiple')), MultipleRefiner)
    assert isinstance(refiner_factory(SymmetryParameters(), open_=True), OpenRefiner)
