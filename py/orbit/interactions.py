"""Learning from interactions and user overrides (pin, quiet)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from .histogram import add_to_histogram, compress_histogram
from .models import InteractionType, OrbitContext, OrbitItem, add_hours, ensure_utc


def record_interaction(
    item: OrbitItem,
    action: Union[InteractionType, str],
    context: OrbitContext,
) -> OrbitItem:
    """
    Record an interaction and return the updated item.

    Seen and opened are positive engagement: they refresh recency and
    reset the dismissal streak. A dismissal only grows the streak. Every
    action feeds the time, place and device histograms.

    Raises:
        ValueError: if ``action`` is not a known interaction type
    """
    action = InteractionType(action)
    updated = item.model_copy(deep=True)
    signals = updated.signals

    if action is InteractionType.SEEN:
        signals.seen_count += 1
        signals.last_seen_at = context.now
        signals.ignored_streak = 0
    elif action is InteractionType.OPENED:
        signals.opened_count += 1
        signals.last_seen_at = context.now
        signals.ignored_streak = 0
    else:
        signals.dismissed_count += 1
        signals.ignored_streak += 1

    signals.hour_histogram = add_to_histogram(signals.hour_histogram, context.hour)
    signals.day_histogram = add_to_histogram(signals.day_histogram, context.day)
    signals.place_histogram = add_to_histogram(signals.place_histogram, context.place)
    signals.device_histogram = add_to_histogram(signals.device_histogram, context.device)

    return updated


def pin_item(item: OrbitItem, until: Optional[datetime] = None) -> OrbitItem:
    """Keep an item close. ``until=None`` pins it permanently."""
    updated = item.model_copy(deep=True)
    updated.signals.is_pinned = True
    updated.signals.pin_until = ensure_utc(until) if until is not None else None
    return updated


def unpin_item(item: OrbitItem) -> OrbitItem:
    updated = item.model_copy(deep=True)
    updated.signals.is_pinned = False
    updated.signals.pin_until = None
    return updated


def quiet_item(item: OrbitItem, hours: float, context: OrbitContext) -> OrbitItem:
    """
    Suppress an item for ``hours`` from ``context.now``.

    Quieting also counts as a dismissal for learning purposes.
    """
    updated = item.model_copy(deep=True)
    updated.signals.quiet_until = add_hours(context.now, hours)
    updated.signals.dismissed_count += 1
    return updated


def compact_signals(item: OrbitItem) -> OrbitItem:
    """Decay, prune and round all four histograms of an item."""
    updated = item.model_copy(deep=True)
    signals = updated.signals
    signals.hour_histogram = compress_histogram(signals.hour_histogram)
    signals.day_histogram = compress_histogram(signals.day_histogram)
    signals.place_histogram = compress_histogram(signals.place_histogram)
    signals.device_histogram = compress_histogram(signals.device_histogram)
    return updated
