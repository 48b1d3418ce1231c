import numpy as np
import pytest

from symrepeat.resources import config
from symrepeat.structure.alignment import SelfAlignment
from symrepeat.structure.matrix import SimilarityMatrix, fragment_distances

from conftest import rotated_pairs


def test_fragment_distances_of_a_line():
    line = np.outer(np.arange(10.), [1., 0., 0.])
    distances = fragment_distances(line, 4)
    assert distances.shape == (7, 6)
    # Upper triangle of a 4x4 matrix of |i - j|
    np.testing.assert_allclose(distances[0], [1., 2., 3., 1., 2., 1.])
    np.testing.assert_allclose(distances, distances[0][None].repeat(7, axis=0))


def test_fragment_distances_short_structure():
    assert fragment_distances(np.zeros((3, 3)), 8).shape == (0, 28)


def test_similarity_matrix_shape_and_identity(motif):
    matrix = SimilarityMatrix.from_coords(motif, window=8)
    length = motif.shape[0]
    assert matrix.shape == (length, 2 * length)
    # A residue is identical to itself in both copies
    for idx in range(length - 8):
        assert matrix.scores[idx, idx] == pytest.approx(1.)
        assert matrix.scores[idx, idx + length] == pytest.approx(1.)


def test_uncovered_cells_are_forbidden(motif):
    matrix = SimilarityMatrix.from_coords(motif, window=8)
    # The last row is only covered by fragments that start 7 residues earlier
    assert matrix.blanked[-1, 0]
    assert matrix.scores[-1, 0] == config.FORBIDDEN_SCORE
    assert not matrix.blanked[-1, 7]


def test_blank_identity(motif):
    matrix = SimilarityMatrix.from_coords(motif, window=8)
    matrix.blank_identity(8)
    length = motif.shape[0]
    assert matrix.blanked[3, 3] and matrix.blanked[3, 3 + length]
    assert matrix.blanked[0, length - 1]
    assert matrix.blanked[0, 7]
    assert not matrix.blanked[0, 8]


def test_blanking_only_grows(c3_coords):
    matrix = SimilarityMatrix.from_coords(c3_coords, window=8)
    matrix.blank_identity(8)
    before = matrix.blanked.copy()
    alignment = SelfAlignment.from_pairs(*rotated_pairs(90, 30), 90)
    matrix.blank_alignment(alignment, half_width=4)

    assert np.all(matrix.blanked[before])
    assert matrix.blanked.sum() > before.sum()
    for residue1, residue2 in zip(alignment.indices1, alignment.indices2):
        assert matrix.blanked[residue1, residue2] and matrix.blanked[residue1, residue2 + 90]
    # The band extends along the diagonal
    assert matrix.blanked[10, 44]
    assert not matrix.blanked[10, 50]


def test_reimpose_and_masked(motif):
    matrix = SimilarityMatrix.from_coords(motif, window=8)
    matrix.blank_identity(8)
    other = np.ones(matrix.shape)
    reimposed = matrix.reimpose(other)
    np.testing.assert_array_equal(other, 1.)
    assert np.all(reimposed[matrix.blanked] == config.FORBIDDEN_SCORE)
    assert np.all(reimposed[~matrix.blanked] == 1.)
    np.testing.assert_array_equal(matrix.masked(), matrix.reimpose(matrix.scores))


def test_break_flags(motif):
    matrix = SimilarityMatrix.from_coords(motif, window=8)
    flags = np.zeros(matrix.shape, dtype=bool)
    flags[0, 20] = True
    combined = matrix.break_flags(flags)
    assert combined[0, 20]
    assert np.all(combined[matrix.blanked])
    assert matrix.break_flags() is not matrix.blanked
