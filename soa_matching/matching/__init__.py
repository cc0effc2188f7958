"""
SOA matching cascade.

Provides document number normalization, date/amount tolerance checks, the
five ordered matching passes, candidate selection and the engine that ties
them together for single lines and batches.
"""

from .engine import SOAMatchingEngine
from .normalizer import normalize
from .passes import MatchPass, build_passes
from .selector import select_best_candidate
from .tolerance_matcher import (
    ToleranceMatcher, ToleranceMatchResult, amount_within_tolerance, date_within_window
)

__all__ = [
    "SOAMatchingEngine",
    "normalize",
    "MatchPass",
    "build_passes",
    "select_best_candidate",
    "ToleranceMatcher",
    "ToleranceMatchResult",
    "amount_within_tolerance",
    "date_within_window"
]
