"""Data models for Orbit items and context snapshots."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_SCORE, MAX_TITLE_LENGTH
from .histogram import Histogram


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so that comparisons never mix kinds."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def elapsed_hours(since: datetime, now: datetime) -> float:
    """Hours from ``since`` to ``now``, clamped at 0 for clock skew."""
    seconds = (ensure_utc(now) - ensure_utc(since)).total_seconds()
    return max(0.0, seconds / 3600)


def add_hours(moment: datetime, hours: float) -> datetime:
    """``moment`` plus ``hours``, saturating at the datetime range limits."""
    try:
        return ensure_utc(moment) + timedelta(hours=hours)
    except OverflowError:
        limit = datetime.max if hours > 0 else datetime.min
        return limit.replace(tzinfo=timezone.utc)


class InteractionType(str, Enum):
    """Observed user actions on an item."""

    SEEN = "seen"
    OPENED = "opened"
    DISMISSED = "dismissed"


class ItemState(str, Enum):
    """Lifecycle state of an item as seen by the ranker."""

    NEW = "new"
    ACTIVE = "active"
    QUIETED = "quieted"
    DECAYING = "decaying"


class OrbitContext(BaseModel):
    """Snapshot of "now": when, where and on what device the user is."""

    model_config = ConfigDict(frozen=True)

    now: datetime = Field(description="Instant of this snapshot")
    hour: int = Field(ge=0, le=23, description="Hour of day derived from now")
    day: int = Field(ge=0, le=6, description="Day of week derived from now, 0 = Sunday")
    device: str = Field(default="desktop", description="desktop, mobile, tablet or any other label")
    place: str = Field(default="unknown", description="Free-form place label such as home or work")
    session_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Opaque session identifier, not used for scoring"
    )

    @field_validator("now")
    @classmethod
    def _normalize_now(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def create(
        cls,
        now: Optional[datetime] = None,
        device: str = "desktop",
        place: str = "unknown",
        session_id: Optional[str] = None,
    ) -> OrbitContext:
        """Build a context, deriving hour and day of week from ``now``."""
        moment = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        # datetime.weekday() is Monday-based; shift so Sunday is 0
        day = (moment.weekday() + 1) % 7
        kwargs = {}
        if session_id is not None:
            kwargs["session_id"] = session_id
        return cls(
            now=moment,
            hour=moment.hour,
            day=day,
            device=device,
            place=place,
            **kwargs,
        )

    def shifted(self, **delta: float) -> OrbitContext:
        """Same device, place and session, moved in time by a timedelta."""
        return OrbitContext.create(
            now=self.now + timedelta(**delta),
            device=self.device,
            place=self.place,
            session_id=self.session_id,
        )


class OrbitItemSignals(BaseModel):
    """Behavioural signals learned from interactions with one item."""

    created_at: datetime = Field(description="When the item was created (never changes)")
    last_seen_at: Optional[datetime] = Field(
        default=None,
        description="Most recent seen/opened interaction"
    )
    seen_count: int = Field(default=0, ge=0)
    opened_count: int = Field(default=0, ge=0)
    dismissed_count: int = Field(default=0, ge=0)
    hour_histogram: Histogram[int] = Field(default_factory=dict)
    day_histogram: Histogram[int] = Field(default_factory=dict)
    place_histogram: Histogram[str] = Field(default_factory=dict)
    device_histogram: Histogram[str] = Field(default_factory=dict)
    ignored_streak: int = Field(
        default=0,
        ge=0,
        description="Consecutive dismissals since the last seen/opened"
    )
    is_pinned: bool = False
    pin_until: Optional[datetime] = Field(
        default=None,
        description="Pin expiry; a pin without expiry never lapses"
    )
    quiet_until: Optional[datetime] = Field(
        default=None,
        description="Item is suppressed while now is before this instant"
    )

    @field_validator("created_at", "last_seen_at", "pin_until", "quiet_until")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def age_hours(self, now: datetime) -> float:
        """Hours since creation."""
        return elapsed_hours(self.created_at, now)

    def days_since_seen(self, now: datetime) -> Optional[float]:
        """Days since the last positive interaction, or None if never seen."""
        if self.last_seen_at is None:
            return None
        return elapsed_hours(self.last_seen_at, now) / 24


class OrbitItemComputed(BaseModel):
    """Result of the latest ranking pass. Never edited by hand."""

    score: float = Field(default=DEFAULT_SCORE, ge=0.0, le=1.0)
    distance: float = Field(default=1.0 - DEFAULT_SCORE, ge=0.0, le=1.0)
    reasons: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None


class OrbitItem(BaseModel):
    """A tracked task, reminder or link."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier, generated once and never reused"
    )
    title: str
    detail: str = ""
    url: str = ""
    signals: OrbitItemSignals
    computed: OrbitItemComputed = Field(default_factory=OrbitItemComputed)

    @classmethod
    def create(
        cls,
        title: str,
        detail: str = "",
        url: str = "",
        now: Optional[datetime] = None,
    ) -> OrbitItem:
        """Create a new item with zeroed signals and a neutral score."""
        created_at = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        return cls(
            title=title[:MAX_TITLE_LENGTH],
            detail=detail,
            url=url,
            signals=OrbitItemSignals(created_at=created_at),
        )
