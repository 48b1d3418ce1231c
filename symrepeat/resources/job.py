from __future__ import annotations

import dataclasses
import logging

from symrepeat import flags
from symrepeat.resources import config
from symrepeat.utils import InputError
from symrepeat.utils.symmetry import AUTO, symmetry_types

logger = logging.getLogger(__name__)


class FlagsBase:
    """Construct a parameters namespace from the full set of parsed flags"""
    namespace: str = None

    @classmethod
    def from_flags(cls, **kwargs):
        """Create the namespace from flags, taking the command line default of any flag not provided"""
        return cls(**{**flags.defaults[cls.namespace], **flags.namespace_from_args(kwargs, cls.namespace)})


@dataclasses.dataclass(frozen=True)
class SymmetryParameters(FlagsBase):
    """The recognized options which control a symmetry analysis. Immutable so that a single instance can be shared by
    concurrent analyses
    """
    namespace = 'symmetry'
    max_symm_order: int = config.MAX_SYMM_ORDER
    symmetry_type: str = AUTO
    order_detector_method: str = config.SEQUENCE_FUNCTION
    refine_method: str = config.SINGLE
    symmetry_threshold: float = config.SYMMETRY_THRESHOLD
    optimization: bool = True
    seed: int = 0
    multiple_axes: bool = True
    user_order: int = 0
    win_size: int = config.WINDOW_SIZE
    minimum_metric_change: float = config.MINIMUM_METRIC_CHANGE
    distance_cutoff: float = config.DISTANCE_CUTOFF
    optimization_steps: int = config.MC_STEPS
    optimization_runs: int = config.MC_RUNS
    cores: int | None = None

    def __post_init__(self):
        if self.max_symm_order < 1:
            raise InputError(f"'{flags.max_symm_order}' must be at least 1, not {self.max_symm_order}")
        if self.symmetry_type not in symmetry_types:
            raise InputError(f"'{flags.symmetry_type}' must be one of {symmetry_types}, not '{self.symmetry_type}'")
        if self.order_detector_method not in config.order_detectors:
            raise InputError(f"'{flags.order_detector_method}' must be one of {config.order_detectors}, "
                             f"not '{self.order_detector_method}'")
        if self.refine_method not in config.refine_methods:
            raise InputError(f"'{flags.refine_method}' must be one of {config.refine_methods}, "
                             f"not '{self.refine_method}'")
        if not 0. <= self.symmetry_threshold <= 1.:
            raise InputError(f"'{flags.symmetry_threshold}' must be in the range [0, 1], not "
                             f'{self.symmetry_threshold}')
        if not 0. <= self.minimum_metric_change <= 1.:
            raise InputError(f"'{flags.minimum_metric_change}' must be in the range [0, 1], not "
                             f'{self.minimum_metric_change}')
        if self.win_size < 1:
            raise InputError(f"'{flags.win_size}' must be at least 1, not {self.win_size}")
        if self.user_order < 0 or self.user_order > self.max_symm_order:
            raise InputError(f"'{flags.user_order}' must be in the range [0, {self.max_symm_order}], not "
                             f'{self.user_order}')
        if self.order_detector_method == config.USER_INPUT and self.user_order < 1:
            raise InputError(f"'{flags.order_detector_method}' {config.USER_INPUT} requires '{flags.user_order}'")
        if self.optimization_steps < 1 or self.optimization_runs < 1:
            raise InputError(f"'{flags.optimization_steps}' and '{flags.optimization_runs}' must be at least 1")

    @property
    def multiple(self) -> bool:
        """Whether the self-alignment should be iterated to find one alignment per repeat"""
        return self.refine_method == config.MULTIPLE

    def replace(self, **kwargs) -> SymmetryParameters:
        """Return a copy of the parameters with the provided values changed"""
        return dataclasses.replace(self, **kwargs)
