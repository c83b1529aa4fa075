"""Tests for ranking items into the visible set."""

from datetime import datetime, timedelta, timezone

from .interactions import pin_item, record_interaction
from .models import OrbitContext, OrbitItem
from .ranking import rank_items

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class TestRankItems:
    
    def setup_method(self):
        self.context = OrbitContext.create(now=T0 + timedelta(days=10), place="home")
        # All created ten days ago: no novelty, identical age decay
        self.items = [OrbitItem.create(f"item {i}", now=T0) for i in range(10)]
    
    def test_ties_keep_input_order_and_visible_is_capped(self):
        pinned_positions = [2, 5, 8]
        items = [
            pin_item(item) if i in pinned_positions else item
            for i, item in enumerate(self.items)
        ]
        
        result = rank_items(items, self.context, max_visible=5)
        
        assert len(result.visible) == 5
        assert len(result.all) == 10
        expected_ids = [items[i].id for i in (2, 5, 8, 0, 1)]
        assert [item.id for item in result.visible] == expected_ids
        
        top_scores = {item.computed.score for item in result.visible[:3]}
        assert len(top_scores) == 1
    
    def test_sorted_by_descending_score(self):
        items = list(self.items)
        items[7] = record_interaction(items[7], "opened", self.context)
        items[3] = pin_item(items[3])
        
        result = rank_items(items, self.context)
        scores = [item.computed.score for item in result.all]
        
        assert scores == sorted(scores, reverse=True)
        assert result.all[0].id == items[7].id
        assert result.all[1].id == items[3].id
    
    def test_visible_is_prefix_of_all(self):
        result = rank_items(self.items, self.context, max_visible=3)
        
        for visible, ranked in zip(result.visible, result.all):
            assert visible is ranked
    
    def test_computed_block_is_refreshed(self):
        result = rank_items(self.items, self.context)
        
        for item in result.all:
            assert item.computed.updated_at == self.context.now
            assert abs(item.computed.distance - (1 - item.computed.score)) < 1e-12
            assert item.computed.reasons == []
    
    def test_input_items_are_not_modified(self):
        rank_items(self.items, self.context)
        
        for item in self.items:
            assert item.computed.score == 0.5
            assert item.computed.updated_at is None
    
    def test_fewer_items_than_cap(self):
        result = rank_items(self.items[:2], self.context, max_visible=5)
        assert len(result.visible) == 2
    
    def test_zero_visible(self):
        result = rank_items(self.items, self.context, max_visible=0)
        
        assert result.visible == []
        assert len(result.all) == 10
    
    def test_empty_input(self):
        result = rank_items([], self.context)
        
        assert result.all == []
        assert result.visible == []
