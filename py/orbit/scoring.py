"""Relevance scoring for Orbit items."""

from __future__ import annotations

import math
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    DECAY_DAYS,
    HOUR_AFFINITY_SHARE,
    NOVELTY_FADE_END_HOURS,
    NOVELTY_HOURS,
    OPENED_INTERACTION_WEIGHT,
    PLACE_MIN_EVIDENCE,
    QUIET_MULTIPLIER,
    REASON_DECAY_THRESHOLD,
    REASON_DEVICE_THRESHOLD,
    REASON_FREQUENCY_THRESHOLD,
    REASON_NOVELTY_THRESHOLD,
    REASON_PLACE_THRESHOLD,
    REASON_RECENCY_MAX_NOVELTY,
    REASON_RECENCY_THRESHOLD,
    REASON_TIME_THRESHOLD,
    STREAK_DECAY_CAP,
    STREAK_DECAY_STEP,
    UNSEEN_DECAY_CAP,
    UNSEEN_DECAY_DAYS,
    WEIGHT_DEVICE,
    WEIGHT_FREQUENCY,
    WEIGHT_NOVELTY,
    WEIGHT_PINNED,
    WEIGHT_PLACE,
    WEIGHT_RECENCY,
    WEIGHT_TIME,
)
from .histogram import calculate_affinity, get_histogram_total
from .models import ItemState, OrbitContext, OrbitItem, ensure_utc


class ScoringWeights(BaseModel):
    """Weights of the relevance formula. Pinned is a flat bonus on top."""

    model_config = ConfigDict(frozen=True)

    time: float = WEIGHT_TIME
    place: float = WEIGHT_PLACE
    device: float = WEIGHT_DEVICE
    recency: float = WEIGHT_RECENCY
    frequency: float = WEIGHT_FREQUENCY
    pinned: float = WEIGHT_PINNED
    novelty: float = WEIGHT_NOVELTY


DEFAULT_WEIGHTS = ScoringWeights()


class RelevanceResult(BaseModel):
    """Score for one item plus the explanations collected on the way."""

    score: float = Field(ge=0.0, le=1.0, description="Relevance clamped to [0, 1]")
    reasons: List[str] = Field(
        default_factory=list,
        description="Short UI-facing explanations, in evaluation order"
    )


def compute_relevance(
    item: OrbitItem,
    context: OrbitContext,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> RelevanceResult:
    """
    Compute the relevance of ``item`` in ``context``.

    Weighted sub-scores are summed (pin bonus included), then the decay
    and quiet multipliers are applied and the result is clamped. A reason
    is appended whenever a raw sub-score crosses its threshold.
    """
    reasons: List[str] = []
    score = 0.0

    novelty_score = compute_novelty_boost(item, context)
    score += novelty_score * weights.novelty
    if novelty_score > REASON_NOVELTY_THRESHOLD:
        reasons.append("newly added")

    time_score = compute_time_affinity(item, context)
    score += time_score * weights.time
    if time_score > REASON_TIME_THRESHOLD:
        reasons.append("matches your usual time")

    place_score = compute_place_affinity(item, context)
    score += place_score * weights.place
    if place_score > REASON_PLACE_THRESHOLD:
        reasons.append(f"often seen at {context.place}")

    device_score = compute_device_affinity(item, context)
    score += device_score * weights.device
    if device_score > REASON_DEVICE_THRESHOLD:
        reasons.append(f"fits {context.device} context")

    recency_score = compute_recency_boost(item, context)
    score += recency_score * weights.recency
    # Novelty already explains a fresh item's presence
    if recency_score > REASON_RECENCY_THRESHOLD and novelty_score < REASON_RECENCY_MAX_NOVELTY:
        reasons.append("recently on your mind")

    frequency_score = compute_frequency_boost(item)
    score += frequency_score * weights.frequency
    if frequency_score > REASON_FREQUENCY_THRESHOLD:
        reasons.append("frequently accessed")

    if is_pin_active(item, context):
        score += weights.pinned
        reasons.append("kept close")

    decay = compute_decay(item, context)
    score *= 1 - decay
    if decay > REASON_DECAY_THRESHOLD:
        reasons.append("fading from focus")

    if is_quieted(item, context):
        score *= QUIET_MULTIPLIER
        reasons.append("resting")

    return RelevanceResult(score=_clamp(score), reasons=reasons)


def compute_time_affinity(item: OrbitItem, context: OrbitContext) -> float:
    """Blend of hour-of-day and day-of-week affinity, hour weighted more."""
    signals = item.signals
    hour_affinity = calculate_affinity(signals.hour_histogram, context.hour)
    day_affinity = calculate_affinity(signals.day_histogram, context.day)
    return hour_affinity * HOUR_AFFINITY_SHARE + day_affinity * (1 - HOUR_AFFINITY_SHARE)


def compute_place_affinity(item: OrbitItem, context: OrbitContext) -> float:
    """Place affinity, 0 until enough interactions have been observed."""
    histogram = item.signals.place_histogram
    if get_histogram_total(histogram) < PLACE_MIN_EVIDENCE:
        return 0.0
    return calculate_affinity(histogram, context.place)


def compute_device_affinity(item: OrbitItem, context: OrbitContext) -> float:
    return calculate_affinity(item.signals.device_histogram, context.device)


def compute_recency_boost(item: OrbitItem, context: OrbitContext) -> float:
    """Exponential falloff from the last seen/opened interaction."""
    days = item.signals.days_since_seen(context.now)
    if days is None:
        return 0.0
    return math.exp(-days / DECAY_DAYS)


def compute_frequency_boost(item: OrbitItem) -> float:
    """Log-scaled interaction count, reaching 1.0 at about 100 interactions."""
    signals = item.signals
    interactions = signals.seen_count + signals.opened_count * OPENED_INTERACTION_WEIGHT
    return min(1.0, math.log10(interactions + 1) / 2)


def compute_novelty_boost(item: OrbitItem, context: OrbitContext) -> float:
    """Full boost for the first day, fading linearly until day three."""
    age_hours = item.signals.age_hours(context.now)
    if age_hours < NOVELTY_HOURS:
        return 1.0
    if age_hours < NOVELTY_FADE_END_HOURS:
        return 1.0 - (age_hours - NOVELTY_HOURS) / (NOVELTY_FADE_END_HOURS - NOVELTY_HOURS)
    return 0.0


def compute_decay(item: OrbitItem, context: OrbitContext) -> float:
    """
    Fraction of the score lost to neglect.

    Seen items decay with their dismissal streak; items that were never
    seen decay with age instead.
    """
    signals = item.signals
    if signals.last_seen_at is None:
        age_days = signals.age_hours(context.now) / 24
        return min(UNSEEN_DECAY_CAP, age_days / UNSEEN_DECAY_DAYS)
    return min(STREAK_DECAY_CAP, signals.ignored_streak * STREAK_DECAY_STEP)


def is_pin_active(item: OrbitItem, context: OrbitContext) -> bool:
    signals = item.signals
    if not signals.is_pinned:
        return False
    return signals.pin_until is None or signals.pin_until > ensure_utc(context.now)


def is_quieted(item: OrbitItem, context: OrbitContext) -> bool:
    quiet_until = item.signals.quiet_until
    return quiet_until is not None and ensure_utc(context.now) < quiet_until


def classify_item(item: OrbitItem, context: OrbitContext) -> ItemState:
    """Lifecycle state of ``item`` at ``context.now``."""
    if is_quieted(item, context):
        return ItemState.QUIETED
    if item.signals.age_hours(context.now) < NOVELTY_HOURS:
        return ItemState.NEW
    if compute_decay(item, context) > REASON_DECAY_THRESHOLD:
        return ItemState.DECAYING
    return ItemState.ACTIVE


def score_to_distance(score: float) -> float:
    """Distance from the centre of the orbit (inverse of score)."""
    return 1.0 - score


def _clamp(score: float) -> float:
    return max(0.0, min(1.0, score))
