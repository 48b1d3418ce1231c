from __future__ import annotations

from typing import Literal, get_args

GAP = -1
"""Marks a subunit without a residue in a MultipleAlignment column"""
FORBIDDEN_SCORE = -1e9
"""The score of a SimilarityMatrix cell which was blanked by a previous alignment"""
FORBIDDEN_THRESHOLD = -1e8
MIN_SUPERPOSITION_LENGTH = 3
MIN_ALIGNMENT_LENGTH = 20
"""Hierarchical recursion stops when a level aligns fewer columns than this"""
# Defaults for the recognized options
MAX_SYMM_ORDER = 8
SYMMETRY_THRESHOLD = .4
MINIMUM_METRIC_CHANGE = .4
WINDOW_SIZE = 8
DISTANCE_CUTOFF = 3.
"""Fragment distance difference (Angstroms) at which fragment similarity becomes negative"""
# Default aligner
GAP_PENALTY = -.5
MAX_ALIGNER_PASSES = 5
# Monte Carlo
MC_STEPS = 2000
MC_RUNS = 2
MC_INITIAL_TEMPERATURE = 10.
MC_GAP_OPEN = 5.
MC_GAP_EXTENSION = .5
MC_DISTANCE_CUTOFF = 7.
MC_MIN_COLUMNS = 5
ANGLE_ORDER_THRESHOLD = 1.  # degrees

refine_method_literal = Literal['not_refined', 'single', 'multiple']
refine_methods: tuple[refine_method_literal, ...] = get_args(refine_method_literal)
NOT_REFINED, SINGLE, MULTIPLE = refine_methods
order_detector_literal = Literal['sequence_function', 'user_input']
order_detectors: tuple[order_detector_literal, ...] = get_args(order_detector_literal)
SEQUENCE_FUNCTION, USER_INPUT = order_detectors
