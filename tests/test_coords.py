import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from symrepeat.structure.coords import Coords, is_degenerate, superposition3d, transform_coordinates
from symrepeat.utils import InputError


def test_superposition_recovers_transform(motif):
    rotation = Rotation.from_euler('xyz', [.3, -.2, 1.1]).as_matrix()
    translation = np.array([4., -2., 7.5])
    moved = transform_coordinates(motif, rotation, translation)

    rmsd, found_rotation, found_translation = superposition3d(moved, motif)
    assert rmsd == pytest.approx(0., abs=1e-6)
    np.testing.assert_allclose(found_rotation, rotation, atol=1e-6)
    np.testing.assert_allclose(found_translation, translation, atol=1e-6)


def test_superposition_requires_equal_sizes(motif):
    with pytest.raises(ValueError):
        superposition3d(motif[:5], motif[:6])


def test_transform_coordinates_copies():
    coords = np.zeros((2, 3))
    moved = transform_coordinates(coords, translation=[1., 2., 3.])
    np.testing.assert_array_equal(coords, 0.)
    np.testing.assert_array_equal(moved[1], [1., 2., 3.])


@pytest.mark.parametrize('bad', [np.zeros((4, 2)), np.zeros(3), np.array([[0., 0., np.nan]])])
def test_coords_rejects_malformed(bad):
    with pytest.raises(InputError):
        Coords(bad)


def test_coords_is_read_only(motif):
    coords = Coords(motif)
    assert len(coords) == motif.shape[0]
    with pytest.raises(ValueError):
        coords.coords[0, 0] = 1.
    assert len(coords.subset(2, 12)) == 10


def test_is_degenerate(motif):
    line = np.outer(np.arange(10.), [1., 1., 0.])
    assert is_degenerate(line)
    assert is_degenerate(motif[:2])
    assert not is_degenerate(motif)
