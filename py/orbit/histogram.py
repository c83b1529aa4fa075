"""Histogram utilities for behavioural signals.

A histogram maps a discrete key (hour, day, place, device) to an
accumulated weight. Every function returns a new dict and leaves its
input untouched.
"""

from __future__ import annotations

from typing import Dict, Hashable, Optional, TypeVar

from pydantic import NonNegativeFloat

from .constants import HISTOGRAM_DECAY_FACTOR, HISTOGRAM_PRUNE_THRESHOLD

K = TypeVar("K", bound=Hashable)

Histogram = Dict[K, NonNegativeFloat]
"""Generic histogram alias; subscript with the key kind, e.g. ``Histogram[int]``.

Models typed with it reject negative weights on validation.
"""


def add_to_histogram(histogram: Dict[K, float], key: K, amount: float = 1.0) -> Dict[K, float]:
    """Add an observation of ``key`` with the given weight; weights never drop below 0."""
    updated = dict(histogram)
    updated[key] = max(0.0, updated.get(key, 0.0) + amount)
    return updated


def get_histogram_total(histogram: Dict[K, float]) -> float:
    """Sum of all weights (0 for an empty histogram)."""
    return float(sum(histogram.values()))


def normalize_histogram(histogram: Dict[K, float]) -> Dict[K, float]:
    """Rescale weights so they sum to 1."""
    total = get_histogram_total(histogram)
    if total == 0:
        return histogram
    return {key: value / total for key, value in histogram.items()}


def decay_histogram(
    histogram: Dict[K, float],
    factor: float = HISTOGRAM_DECAY_FACTOR,
) -> Dict[K, float]:
    """
    Multiply every weight by ``factor``.

    Entries that fall below the prune threshold are dropped so long-lived
    histograms stay bounded.
    """
    decayed: Dict[K, float] = {}
    for key, value in histogram.items():
        new_value = value * factor
        if new_value >= HISTOGRAM_PRUNE_THRESHOLD:
            decayed[key] = new_value
    return decayed


def merge_histograms(a: Dict[K, float], b: Dict[K, float]) -> Dict[K, float]:
    """Key-wise sum of two histograms."""
    merged = dict(a)
    for key, value in b.items():
        merged[key] = merged.get(key, 0.0) + value
    return merged


def compress_histogram(
    histogram: Dict[K, float],
    new_observation: Optional[K] = None,
) -> Dict[K, float]:
    """
    Observe one event and compact storage.

    Applies decay, adds 1 for ``new_observation`` if given, then rounds
    every weight to 2 decimal places.
    """
    compressed = decay_histogram(histogram)
    if new_observation is not None:
        compressed = add_to_histogram(compressed, new_observation, 1.0)
    return {key: round(value, 2) for key, value in compressed.items()}


def get_histogram_peak(histogram: Dict[K, float]) -> Optional[K]:
    """
    Key with the strictly largest weight.

    Ties resolve to the first key in insertion order. Returns None for an
    empty histogram or one with no positive weight.
    """
    peak_key: Optional[K] = None
    peak_value = 0.0
    for key, value in histogram.items():
        if value > peak_value:
            peak_value = value
            peak_key = key
    return peak_key


def calculate_affinity(histogram: Dict[K, float], key: K) -> float:
    """Share of the total weight held by ``key`` (0 when there is no evidence)."""
    total = get_histogram_total(histogram)
    if total <= 0:
        return 0.0
    return histogram.get(key, 0.0) / total
