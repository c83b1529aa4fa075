"""Integration tests for the Orbit MCP server tools."""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from orbit.mocks import InMemoryStorage, TimeController
from orbit.server import OrbitServer

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class TestOrbitServer:
    """Drives the server through its tool handlers with an in-memory store."""
    
    def setup_method(self):
        self.storage = InMemoryStorage()
        self.time_ctrl = TimeController(T0)
        self.server = OrbitServer(storage=self.storage, clock=self.time_ctrl)
    
    def teardown_method(self):
        self.server.__exit__(None, None, None)
    
    async def call(self, name: str, **args: Any) -> str:
        result = await self.server.handle_tool_call(name, args)
        return result[0].text
    
    async def add_item(self, title: str) -> str:
        text = await self.call("orbit_add_item", title=title)
        # Format: "Added item with id: <id>"
        return text.split(": ")[1]
    
    async def rank(self, **args: Any) -> Dict[str, Any]:
        return json.loads(await self.call("orbit_rank_items", **args))
    
    async def test_new_item_is_visible_as_newly_added(self):
        item_id = await self.add_item("Buy milk")
        self.time_ctrl.advance(hours=1)
        
        results = await self.rank(place="home")
        
        assert results["total"] == 1
        visible = results["visible"][0]
        assert visible["id"] == item_id
        assert visible["reasons"] == ["newly added"]
        assert visible["state"] == "new"
        assert abs(visible["score"] - 0.05) < 0.001
        
        # Scores are persisted by the ranking pass
        stored = await self.storage.get_item(item_id)
        assert stored.computed.updated_at == T0 + timedelta(hours=1)
    
    async def test_interactions_teach_place(self):
        item_id = await self.add_item("Water plants")
        self.time_ctrl.advance(hours=1)
        
        for _ in range(3):
            text = await self.call("orbit_record_interaction", id=item_id, action="seen", place="home")
            assert text == f"Recorded seen: {item_id}"
        
        results = await self.rank(place="home")
        assert "often seen at home" in results["visible"][0]["reasons"]
        
        stored = await self.storage.get_item(item_id)
        assert stored.signals.seen_count == 3
        assert stored.signals.place_histogram == {"home": 3.0}
    
    async def test_quieted_item_drops_below_others(self):
        quiet_id = await self.add_item("Quiet me")
        other_id = await self.add_item("Leave me")
        
        text = await self.call("orbit_quiet_item", id=quiet_id, hours=2)
        assert text == f"Quieted item: {quiet_id}"
        
        results = await self.rank()
        assert [v["id"] for v in results["visible"]] == [other_id, quiet_id]
        assert results["visible"][1]["state"] == "quieted"
        assert results["visible"][1]["reasons"][-1] == "resting"
        
        # After the quiet period the original order is back
        self.time_ctrl.advance(hours=3)
        results = await self.rank()
        assert [v["id"] for v in results["visible"]] == [quiet_id, other_id]
    
    async def test_quiet_defaults_to_four_hours(self):
        item_id = await self.add_item("Default quiet")
        await self.call("orbit_quiet_item", id=item_id)
        
        stored = await self.storage.get_item(item_id)
        assert stored.signals.quiet_until == T0 + timedelta(hours=4)
        assert stored.signals.dismissed_count == 1
    
    async def test_pin_and_unpin(self):
        item_id = await self.add_item("Pin me")
        until = (T0 + timedelta(days=1)).isoformat()
        
        assert await self.call("orbit_pin_item", id=item_id, until=until) == f"Pinned item: {item_id}"
        results = await self.rank()
        assert "kept close" in results["visible"][0]["reasons"]
        assert results["visible"][0]["is_pinned"]
        
        await self.call("orbit_unpin_item", id=item_id)
        results = await self.rank()
        assert "kept close" not in results["visible"][0]["reasons"]
    
    async def test_unseen_item_fades_with_age(self):
        item_id = await self.add_item("Someday maybe")
        
        self.time_ctrl.advance_days(20)
        visible = (await self.rank())["visible"][0]
        assert visible["id"] == item_id
        assert visible["state"] == "decaying"
        assert "fading from focus" in visible["reasons"]
        
        # Back inside the novelty window the item is fresh again
        self.time_ctrl.set_time(T0 + timedelta(hours=2))
        visible = (await self.rank())["visible"][0]
        assert visible["state"] == "new"
        assert "fading from focus" not in visible["reasons"]
    
    async def test_pin_lapses_after_until(self):
        item_id = await self.add_item("Pin briefly")
        until = (T0 + timedelta(days=1)).isoformat()
        await self.call("orbit_pin_item", id=item_id, until=until)
        
        self.time_ctrl.set_time(T0 + timedelta(days=2))
        results = await self.rank()
        assert "kept close" not in results["visible"][0]["reasons"]
    
    async def test_max_visible(self):
        for i in range(7):
            await self.add_item(f"item {i}")
        
        results = await self.rank(max_visible=3)
        assert results["total"] == 7
        assert len(results["visible"]) == 3
    
    async def test_default_place_setting(self):
        await self.add_item("Anything")
        assert await self.call("orbit_set_place", place="work") == "Default place set to: work"
        
        results = await self.rank()
        assert results["context"]["place"] == "work"
        
        results = await self.rank(place="home")
        assert results["context"]["place"] == "home"
    
    async def test_archive(self):
        item_id = await self.add_item("Done already")
        
        assert await self.call("orbit_archive_item", id=item_id) == f"Archived item: {item_id}"
        assert (await self.rank())["total"] == 0
        assert item_id in self.storage.archived
    
    async def test_compact(self):
        item_id = await self.add_item("Compact me")
        await self.call("orbit_record_interaction", id=item_id, action="opened", place="home")
        
        assert await self.call("orbit_compact") == "Compacted 1 items"
        
        stored = await self.storage.get_item(item_id)
        assert stored.signals.place_histogram == {"home": 0.95}
    
    async def test_missing_item(self):
        for tool in ("orbit_pin_item", "orbit_unpin_item", "orbit_quiet_item", "orbit_archive_item"):
            assert await self.call(tool, id="nope") == "Item not found: nope"
    
    async def test_invalid_action_reports_error(self):
        item_id = await self.add_item("Something")
        
        text = await self.call("orbit_record_interaction", id=item_id, action="liked")
        assert text.startswith("Error in orbit_record_interaction")
    
    async def test_unknown_tool(self):
        assert await self.call("orbit_teleport") == "Unknown tool: orbit_teleport"
    
    async def test_metrics_logged_without_breaking_calls(self):
        item_id = await self.add_item("Metrics")
        for _ in range(12):
            await self.call("orbit_record_interaction", id=item_id, action="seen")
        
        assert self.server.tool_call_count == 13
