import numpy as np
import pytest

from symrepeat.protocols.axes import SymmetryAxes, SymmetryAxis, axes_columns, build_axis, repeat_pairs_for
from symrepeat.protocols.refine import SingleRefiner
from symrepeat.structure.alignment import MultipleAlignment, SelfAlignment
from symrepeat.utils import DegenerateTransform
from symrepeat.utils.symmetry import cyclic_rotation

from conftest import rotated_pairs


@pytest.fixture
def c3_refined(c3_coords) -> SelfAlignment:
    alignment = SelfAlignment.from_pairs(*rotated_pairs(90, 30), 90, coords=c3_coords)
    return SingleRefiner().refine([alignment], c3_coords, 3)


def test_repeat_pairs():
    assert repeat_pairs_for(3, 'closed') == ((0, 1), (1, 2), (2, 0))
    assert repeat_pairs_for(3, 'open') == ((0, 1), (1, 2))
    assert repeat_pairs_for(2, 'closed', size=2) == ((0, 2), (1, 3), (2, 0), (3, 1))


def test_build_axis(c3_coords, c3_refined):
    axis = build_axis(c3_refined, c3_coords, 3)
    assert axis.angle == pytest.approx(120., abs=1e-3)
    assert abs(axis.axis[2]) == pytest.approx(1., abs=1e-6)
    assert axis.screw_translation == pytest.approx(0., abs=1e-6)
    np.testing.assert_allclose(axis.point[:2], 0., atol=1e-6)
    assert axis.repeat_pairs == ((0, 1), (1, 2), (2, 0))
    np.testing.assert_array_equal(axis.residue_pairs[0], np.arange(30))
    np.testing.assert_allclose(axis.transformation[:3, :3], cyclic_rotation(3), atol=1e-6)


def test_build_axis_degenerate():
    line = np.outer(np.arange(20.), [3.8, 0., 0.])
    alignment = SelfAlignment.from_pairs(np.arange(5), np.arange(5) + 10, 20)
    with pytest.raises(DegenerateTransform):
        build_axis(alignment, line, 2)


def test_cyclic_form():
    rotation, translation = np.eye(3), np.zeros(3)
    assert SymmetryAxis(rotation, translation, 3, repeat_pairs=repeat_pairs_for(3, 'closed')).cyclic_form() \
        == '(1;2;3)'
    assert SymmetryAxis(rotation, translation, 3, 'open', repeat_pairs=repeat_pairs_for(3, 'open')).cyclic_form() \
        == '(1;2;3)'
    assert SymmetryAxis(rotation, translation, 2, repeat_pairs=repeat_pairs_for(2, 'closed', 2)).cyclic_form() \
        == '(1;3)(2;4)'


def test_axes_dataframe(c3_coords, c3_refined):
    axis = build_axis(c3_refined, c3_coords, 3)
    multiple_alignment = MultipleAlignment.from_self_alignment(c3_refined)
    axes = SymmetryAxes([axis], multiple_alignment.subunit_assignment())
    assert len(axes) == 1 and axes.order == 3
    df = axes.to_dataframe(c3_coords, multiple_alignment, name='c3')
    assert df.columns.tolist() == axes_columns
    row = df.iloc[0]
    assert row['Name'] == 'c3'
    assert row['SymmLevel'] == 1
    assert row['SymmType'] == 'CLOSED'
    assert row['RotationAngle'] == pytest.approx(120.)
    assert row['AlignedRepeats'] == '(1;2;3)'
    point1 = np.array(row['Point1'].split(','), dtype=float)
    point2 = np.array(row['Point2'].split(','), dtype=float)
    np.testing.assert_allclose(point1[:2], 0., atol=1e-2)
    assert abs(point2[2] - point1[2]) > 10.


def test_axes_recompute(c3_coords, c3_refined):
    multiple_alignment = MultipleAlignment.from_self_alignment(c3_refined)
    axis = SymmetryAxis(np.eye(3), np.zeros(3), 3, repeat_pairs=repeat_pairs_for(3, 'closed'))
    axes = SymmetryAxes([axis]).recompute(multiple_alignment, c3_coords)
    assert axes[0].angle == pytest.approx(120., abs=1e-3)
    np.testing.assert_array_equal(axes.subunit_assignment[[0, 45, 89]], [0, 1, 2])
    # An axis without related residues is dropped
    empty = MultipleAlignment(np.full((3, 4), -1), 90)
    dropped = SymmetryAxes([axis]).recompute(empty, c3_coords)
    assert len(dropped) == 0
    assert dropped.order == 1


def test_empty_axes():
    axes = SymmetryAxes()
    assert len(axes) == 0 and axes.order == 1
    assert axes.to_dataframe(np.zeros((3, 3))).empty
