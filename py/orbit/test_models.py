"""Tests for the item factory and context snapshots."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from .constants import MAX_TITLE_LENGTH
from .interactions import record_interaction
from .models import OrbitContext, OrbitItem, OrbitItemSignals

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def test_create_item_has_zeroed_signals():
    item = OrbitItem.create("Water the plants", detail="balcony", url="https://example.com", now=T0)
    
    assert item.signals.created_at == T0
    assert item.signals.last_seen_at is None
    assert item.signals.seen_count == 0
    assert item.signals.opened_count == 0
    assert item.signals.dismissed_count == 0
    assert item.signals.ignored_streak == 0
    assert item.signals.hour_histogram == {}
    assert item.signals.place_histogram == {}
    assert not item.signals.is_pinned
    assert item.signals.pin_until is None
    assert item.signals.quiet_until is None
    
    # Neutral prior
    assert item.computed.score == 0.5
    assert item.computed.distance == 0.5
    assert item.computed.reasons == []


def test_create_item_ids_are_unique():
    ids = {OrbitItem.create("same title").id for _ in range(50)}
    assert len(ids) == 50


def test_create_item_truncates_long_titles():
    item = OrbitItem.create("x" * (MAX_TITLE_LENGTH + 50))
    assert len(item.title) == MAX_TITLE_LENGTH


def test_context_derives_hour_and_sunday_based_day():
    sunday = datetime(2024, 3, 3, 15, 30, tzinfo=timezone.utc)
    context = OrbitContext.create(now=sunday, device="mobile", place="home")
    
    assert context.hour == 15
    assert context.day == 0
    assert context.device == "mobile"
    assert context.place == "home"
    assert context.session_id
    
    monday = OrbitContext.create(now=sunday + timedelta(days=1))
    assert monday.day == 1
    assert monday.place == "unknown"
    assert monday.device == "desktop"


def test_context_treats_naive_time_as_utc():
    context = OrbitContext.create(now=datetime(2024, 3, 4, 9, 0))
    assert context.now == T0


def test_context_shifted_keeps_session():
    context = OrbitContext.create(now=T0, place="work", session_id="abc")
    later = context.shifted(hours=5)
    
    assert later.now == T0 + timedelta(hours=5)
    assert later.hour == 14
    assert later.place == "work"
    assert later.session_id == "abc"


def test_item_json_round_trip():
    item = OrbitItem.create("Read paper", now=T0)
    context = OrbitContext.create(now=T0 + timedelta(hours=2), place="work")
    item = record_interaction(item, "opened", context)
    
    restored = OrbitItem.model_validate(item.model_dump(mode="json"))
    
    assert restored == item
    assert restored.signals.hour_histogram == {11: 1.0}
    assert restored.signals.day_histogram == {1: 1.0}


def test_signals_reject_negative_histogram_weights():
    with pytest.raises(ValidationError):
        OrbitItemSignals(created_at=T0, device_histogram={"desktop": 5, "mobile": -4.5})
    
    with pytest.raises(ValidationError):
        OrbitItem.model_validate({
            "title": "Tampered",
            "signals": {"created_at": T0.isoformat(), "hour_histogram": {"9": -1.0}},
        })
