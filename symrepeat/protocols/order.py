from __future__ import annotations

import abc
import logging
import math

import numpy as np

from symrepeat.resources import config
from symrepeat.resources.job import SymmetryParameters
from symrepeat.structure.alignment import SelfAlignment
from symrepeat.utils import OrderDetectionFailed
from symrepeat.utils.symmetry import guess_order_from_angle, rotation_angle

logger = logging.getLogger(__name__)


class OrderDetector(abc.ABC):
    """Determine the number of symmetric repeats from a self-alignment

    Args:
        max_order: The largest order which can be reported
    """
    def __init__(self, max_order: int = config.MAX_SYMM_ORDER):
        self.max_order = max_order

    @abc.abstractmethod
    def detect(self, alignment: SelfAlignment, coords: np.ndarray = None) -> int:
        """Report the symmetry order in the range [1, max_order]

        Raises:
            OrderDetectionFailed: If the order can't be determined
        """


class SequenceFunctionOrderDetector(OrderDetector):
    """Treat the alignment as a function on residue indices and find the smallest number of applications which
    returns residues to where they started

    Args:
        max_order: The largest order which can be reported
        minimum_metric_change: The fraction of the single application metric that an order must fall below
    """
    def __init__(self, max_order: int = config.MAX_SYMM_ORDER,
                 minimum_metric_change: float = config.MINIMUM_METRIC_CHANGE):
        super().__init__(max_order)
        self.minimum_metric_change = minimum_metric_change

    @staticmethod
    def metrics(alignment: SelfAlignment, max_order: int) -> list[float]:
        """Calculate the root mean squared index displacement after n applications of the alignment

        Args:
            alignment: The alignment to apply
            max_order: The largest number of applications
        Returns:
            The metric for each n in [1, max_order] where numpy.nan indicates no residue survived n applications
        """
        mapping = alignment.as_array()
        residues = np.arange(alignment.length)
        current = residues.copy()
        metrics_ = []
        for _ in range(max_order):
            defined = current >= 0
            current = np.where(defined, mapping[np.where(defined, current, 0)], -1)
            defined = current >= 0
            if defined.any():
                metrics_.append(float(np.sqrt(np.mean((current[defined] - residues[defined]) ** 2))))
            else:
                metrics_.append(math.nan)

        return metrics_

    def detect(self, alignment: SelfAlignment, coords: np.ndarray = None) -> int:
        if alignment.aligned_length == 0:
            raise OrderDetectionFailed("Can't detect the order of an empty alignment")

        metrics_ = self.metrics(alignment, self.max_order)
        reference = metrics_[0]
        if math.isnan(reference):
            raise OrderDetectionFailed('The alignment metric is undefined for a single application')

        logger.debug(f'Sequence function metrics: {", ".join(f"{metric:.2f}" for metric in metrics_)}')
        for order, metric in enumerate(metrics_[1:], 2):
            if metric < reference * self.minimum_metric_change:
                return order

        return 1


class UserInputOrderDetector(OrderDetector):
    """Report an order provided ahead of time

    Args:
        order: The order to report
        max_order: The largest order which can be reported
    """
    def __init__(self, order: int, max_order: int = config.MAX_SYMM_ORDER):
        super().__init__(max_order)
        self.order = order

    def detect(self, alignment: SelfAlignment, coords: np.ndarray = None) -> int:
        if not self.order or not 1 <= self.order <= self.max_order:
            raise OrderDetectionFailed(f'The user order {self.order} is outside the range [1, {self.max_order}]')

        return self.order


class AngleOrderDetector(OrderDetector):
    """Guess the order from the rotation angle of the alignment transform

    Args:
        max_order: The largest order which can be reported
        threshold: The largest deviation in degrees from 360/n to accept the order n
    """
    def __init__(self, max_order: int = config.MAX_SYMM_ORDER, threshold: float = config.ANGLE_ORDER_THRESHOLD):
        super().__init__(max_order)
        self.threshold = threshold

    def detect(self, alignment: SelfAlignment, coords: np.ndarray = None) -> int:
        if alignment.aligned_length < config.MIN_SUPERPOSITION_LENGTH:
            raise OrderDetectionFailed(f"Can't detect an order from the angle of {alignment.aligned_length} pairs")

        return guess_order_from_angle(rotation_angle(alignment.rotation), threshold=math.radians(self.threshold),
                                      max_order=self.max_order)


def order_detector_factory(parameters: SymmetryParameters) -> OrderDetector:
    """Create the OrderDetector specified by the parameters"""
    if parameters.order_detector_method == config.USER_INPUT:
        return UserInputOrderDetector(parameters.user_order, parameters.max_symm_order)

    return SequenceFunctionOrderDetector(parameters.max_symm_order, parameters.minimum_metric_change)
