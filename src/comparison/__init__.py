"""Comparison module - similarity scoring and the capture-decision policy."""

from .orchestrator import PageComparator, build_comparison_outcome, build_failure_outcome
from .similarity import jaccard_similarity, sorensen_dice_similarity

__all__ = [
    "PageComparator",
    "build_comparison_outcome",
    "build_failure_outcome",
    "jaccard_similarity",
    "sorensen_dice_similarity",
]
