"""Orbit: contextual relevance ranking for tasks, reminders and links."""

from .histogram import (
    add_to_histogram,
    calculate_affinity,
    compress_histogram,
    decay_histogram,
    get_histogram_peak,
    get_histogram_total,
    merge_histograms,
    normalize_histogram,
)
from .interactions import compact_signals, pin_item, quiet_item, record_interaction, unpin_item
from .models import (
    InteractionType,
    ItemState,
    OrbitContext,
    OrbitItem,
    OrbitItemComputed,
    OrbitItemSignals,
)
from .ranking import RankResult, rank_items, score_item
from .scoring import (
    DEFAULT_WEIGHTS,
    RelevanceResult,
    ScoringWeights,
    classify_item,
    compute_relevance,
    score_to_distance,
)

__all__ = [
    "add_to_histogram",
    "calculate_affinity",
    "compress_histogram",
    "decay_histogram",
    "get_histogram_peak",
    "get_histogram_total",
    "merge_histograms",
    "normalize_histogram",
    "compact_signals",
    "pin_item",
    "quiet_item",
    "record_interaction",
    "unpin_item",
    "InteractionType",
    "ItemState",
    "OrbitContext",
    "OrbitItem",
    "OrbitItemComputed",
    "OrbitItemSignals",
    "RankResult",
    "rank_items",
    "score_item",
    "DEFAULT_WEIGHTS",
    "RelevanceResult",
    "ScoringWeights",
    "classify_item",
    "compute_relevance",
    "score_to_distance",
]
