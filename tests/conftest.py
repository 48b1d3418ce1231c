from __future__ import annotations

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.coords import transform_coordinates
from symrepeat.utils.symmetry import cyclic_rotation, flip_x_matrix

ca_distance = 3.8


def random_walk(length: int, seed: int = 0) -> np.ndarray:
    """A chain of alpha carbon-like positions with a drift along z, centered on the origin"""
    rng = np.random.default_rng(seed)
    steps = rng.normal(size=(length - 1, 3)) + np.array([0., 0., .5])
    steps = ca_distance * steps / np.linalg.norm(steps, axis=1, keepdims=True)
    walk = np.concatenate([np.zeros((1, 3)), np.cumsum(steps, axis=0)])
    return walk - walk.mean(axis=0)


def cyclic_copies(motif: np.ndarray, order: int, radius: float = 20.) -> np.ndarray:
    """Repeat a motif about the z-axis, each copy connected to the next in sequence"""
    placed = motif + np.array([radius, 0., 0.])
    rotation = cyclic_rotation(order)
    copies = []
    for idx in range(order):
        copies.append(transform_coordinates(placed, np.linalg.matrix_power(rotation, idx)))

    return np.concatenate(copies)


def helical_copies(motif: np.ndarray, number: int, angle: float = 30., rise: float = 10., radius: float = 20.) \
        -> np.ndarray:
    """Repeat a motif along a helix about the z-axis"""
    placed = motif + np.array([radius, 0., 0.])
    copies = []
    for idx in range(number):
        rotation = Rotation.from_euler('z', angle * idx, degrees=True).as_matrix()
        copies.append(transform_coordinates(placed, rotation, [0., 0., rise * idx]))

    return np.concatenate(copies)


@pytest.fixture(scope='session')
def motif() -> np.ndarray:
    return random_walk(30, seed=7)


@pytest.fixture(scope='session')
def c3_coords(motif) -> np.ndarray:
    """Three copies of a 30 residue motif about the z-axis"""
    return cyclic_copies(motif, 3)


@pytest.fixture(scope='session')
def lone_coords() -> np.ndarray:
    return random_walk(60, seed=11)


@pytest.fixture(scope='session')
def helical_coords(motif) -> np.ndarray:
    """Five copies of a 30 residue motif related by a 30 degree rotation and 10 Angstrom rise"""
    return helical_copies(motif, 5)


@pytest.fixture(scope='session')
def d3_coords() -> np.ndarray:
    """A trimer of a 25 residue motif about the z-axis followed by the trimer rotated 180 degrees about the x-axis"""
    trimer = cyclic_copies(random_walk(25, seed=3), 3, radius=15.) + np.array([0., 0., 30.])
    return np.concatenate([trimer, transform_coordinates(trimer, flip_x_matrix)])


@pytest.fixture
def parameters() -> SymmetryParameters:
    return SymmetryParameters(optimization=False)


def rotated_pairs(length: int, shift: int) -> tuple[np.ndarray, np.ndarray]:
    """The circular correspondence i -> (i + shift) % length"""
    indices1 = np.arange(length)
    return indices1, (indices1 + shift) % length
