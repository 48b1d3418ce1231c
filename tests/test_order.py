import math

import numpy as np
import pytest

from symrepeat.protocols.order import AngleOrderDetector, SequenceFunctionOrderDetector, UserInputOrderDetector, \
    order_detector_factory
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import SelfAlignment
from symrepeat.utils import OrderDetectionFailed
from symrepeat.utils.symmetry import cyclic_rotation

from conftest import rotated_pairs


@pytest.mark.parametrize('order', [2, 3, 5])
def test_sequence_function_closed_repeat(order):
    length = 20 * order
    alignment = SelfAlignment.from_pairs(*rotated_pairs(length, 20), length)
    assert SequenceFunctionOrderDetector().detect(alignment) == order


def test_sequence_function_metrics():
    alignment = SelfAlignment.from_pairs(*rotated_pairs(90, 60), 90)
    metrics = SequenceFunctionOrderDetector.metrics(alignment, 4)
    assert metrics[0] == pytest.approx(math.sqrt(1800.))
    assert metrics[2] == 0.


def test_sequence_function_open_repeat():
    indices1 = np.arange(60)
    alignment = SelfAlignment.from_pairs(indices1, indices1 + 30, 90)
    metrics = SequenceFunctionOrderDetector.metrics(alignment, 3)
    assert math.isnan(metrics[2])
    assert SequenceFunctionOrderDetector().detect(alignment) == 1


def test_sequence_function_beyond_max_order():
    alignment = SelfAlignment.from_pairs(*rotated_pairs(100, 20), 100)
    assert SequenceFunctionOrderDetector(max_order=4).detect(alignment) == 1


def test_sequence_function_empty_alignment():
    with pytest.raises(OrderDetectionFailed):
        SequenceFunctionOrderDetector().detect(SelfAlignment.from_blocks([], 10))


def test_user_input():
    alignment = SelfAlignment.from_pairs(*rotated_pairs(90, 30), 90)
    assert UserInputOrderDetector(4).detect(alignment) == 4
    with pytest.raises(OrderDetectionFailed):
        UserInputOrderDetector(0).detect(alignment)
    with pytest.raises(OrderDetectionFailed):
        UserInputOrderDetector(9, max_order=8).detect(alignment)


def test_angle():
    blocks = [(np.arange(5), np.arange(5) + 5)]
    alignment = SelfAlignment(blocks=tuple(blocks), length=10, rotation=cyclic_rotation(4))
    assert AngleOrderDetector().detect(alignment) == 4

    rotation = cyclic_rotation(360 / 100)
    alignment = SelfAlignment(blocks=tuple(blocks), length=10, rotation=rotation)
    assert AngleOrderDetector().detect(alignment) == 1
    assert AngleOrderDetector(threshold=15.).detect(alignment) == 4


def test_angle_requires_pairs():
    alignment = SelfAlignment(blocks=((np.arange(2), np.arange(2) + 2),), length=4)
    with pytest.raises(OrderDetectionFailed):
        AngleOrderDetector().detect(alignment)


def test_factory():
    assert isinstance(order_detector_factory(SymmetryParameters()), SequenceFunctionOrderDetector)
    detector = order_detector_factory(SymmetryParameters(order_detector_method='user_input', user_order=3))
    assert isinstance(detector, UserInputOrderDetector)
    assert detector.order == 3
