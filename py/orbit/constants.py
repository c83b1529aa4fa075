"""Constants for the Orbit relevance engine."""

# Relevance formula weights
WEIGHT_TIME = 0.20
"""Weight for hour-of-day / day-of-week pattern matching."""

WEIGHT_PLACE = 0.15
"""Weight for location context (home/work)."""

WEIGHT_DEVICE = 0.10
"""Weight for device type matching."""

WEIGHT_RECENCY = 0.25
"""Weight for how recently the item was seen or opened."""

WEIGHT_FREQUENCY = 0.15
"""Weight for how often the item was seen or opened."""

WEIGHT_PINNED = 0.10
"""Flat bonus added for an active pin."""

WEIGHT_NOVELTY = 0.05
"""Weight for the boost given to newly added items."""

# Sub-score parameters
HOUR_AFFINITY_SHARE = 0.7
"""Share of the time score coming from the hour histogram (rest is day)."""

PLACE_MIN_EVIDENCE = 3
"""Minimum place histogram total before place affinity counts."""

OPENED_INTERACTION_WEIGHT = 2
"""An open counts as this many views in the frequency boost."""

DECAY_DAYS = 7
"""Time constant (days) of the recency boost."""

NOVELTY_HOURS = 24
"""Hours an item gets the full novelty boost."""

NOVELTY_FADE_END_HOURS = 72
"""Hours after creation at which the novelty boost reaches zero."""

STREAK_DECAY_STEP = 0.1
"""Decay added for each consecutive dismissal."""

STREAK_DECAY_CAP = 0.5
"""Maximum decay from a dismissal streak."""

UNSEEN_DECAY_DAYS = 30
"""Days over which a never-seen item decays to its cap."""

UNSEEN_DECAY_CAP = 0.8
"""Maximum decay for items that were never seen."""

QUIET_MULTIPLIER = 0.1
"""Score multiplier applied while an item is quieted."""

# Reason thresholds (applied to raw sub-scores)
REASON_NOVELTY_THRESHOLD = 0.5
REASON_TIME_THRESHOLD = 0.5
REASON_PLACE_THRESHOLD = 0.6
REASON_DEVICE_THRESHOLD = 0.6
REASON_RECENCY_THRESHOLD = 0.7
REASON_RECENCY_MAX_NOVELTY = 0.8
REASON_FREQUENCY_THRESHOLD = 0.6
REASON_DECAY_THRESHOLD = 0.4

# Histogram maintenance
HISTOGRAM_DECAY_FACTOR = 0.95
"""Per-pass decay used when compacting histograms."""

HISTOGRAM_PRUNE_THRESHOLD = 0.01
"""Decayed histogram entries below this weight are dropped."""

# Item defaults
DEFAULT_SCORE = 0.5
"""Neutral prior score for items that were never ranked."""

MAX_VISIBLE = 5
"""Maximum number of items in the visible set."""

QUIET_HOURS_DEFAULT = 4
"""Default quiet period in hours."""

MAX_TITLE_LENGTH = 200
"""Maximum characters kept from an item title."""

MAX_ITEMS = 500
"""Maximum number of live items a store accepts."""
