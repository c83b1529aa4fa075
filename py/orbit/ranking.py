"""Ranking of Orbit items into a bounded visible set."""

from __future__ import annotations

from typing import Iterable, List

from pydantic import BaseModel, Field

from .constants import MAX_VISIBLE
from .models import OrbitContext, OrbitItem, OrbitItemComputed
from .scoring import DEFAULT_WEIGHTS, ScoringWeights, compute_relevance, score_to_distance


class RankResult(BaseModel):
    """All re-scored items in rank order, plus the visible prefix."""

    all: List[OrbitItem] = Field(
        default_factory=list,
        description="Every item with a fresh computed block, highest score first"
    )
    visible: List[OrbitItem] = Field(
        default_factory=list,
        description="First max_visible entries of all (same objects)"
    )


def score_item(
    item: OrbitItem,
    context: OrbitContext,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> OrbitItem:
    """Return a copy of ``item`` carrying this pass's computed block."""
    result = compute_relevance(item, context, weights)
    computed = OrbitItemComputed(
        score=result.score,
        distance=score_to_distance(result.score),
        reasons=result.reasons,
        updated_at=context.now,
    )
    return item.model_copy(update={"computed": computed}, deep=True)


def rank_items(
    items: Iterable[OrbitItem],
    context: OrbitContext,
    max_visible: int = MAX_VISIBLE,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> RankResult:
    """
    Score every item and order them by relevance.

    Items with equal scores keep their input order (``sorted`` is
    stable, also with ``reverse=True``).
    """
    scored = [score_item(item, context, weights) for item in items]
    ranked = sorted(scored, key=lambda i: i.computed.score, reverse=True)
    visible = ranked[:max(0, max_visible)]
    return RankResult(all=ranked, visible=visible)
