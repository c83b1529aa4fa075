"""In-memory storage and a controllable clock for testing."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .constants import MAX_ITEMS
from .models import OrbitItem, ensure_utc
from .storage_protocol import ItemLimitError


class InMemoryStorage:
    """Item store without disk I/O."""
    
    def __init__(self, max_items: int = MAX_ITEMS) -> None:
        self.items: Dict[str, OrbitItem] = {}
        self.archived: Dict[str, OrbitItem] = {}
        self.settings: Dict[str, Any] = {}
        self.max_items = max_items
    
    async def get_all_items(self) -> List[OrbitItem]:
        return list(self.items.values())
    
    async def get_item(self, item_id: str) -> Optional[OrbitItem]:
        return self.items.get(item_id)
    
    async def add_item(self, item: OrbitItem) -> None:
        if len(self.items) >= self.max_items and item.id not in self.items:
            raise ItemLimitError(f"Item limit of {self.max_items} reached")
        self.items[item.id] = item
    
    async def store_item(self, item: OrbitItem) -> None:
        self.items[item.id] = item
    
    async def delete_item(self, item_id: str) -> bool:
        return self.items.pop(item_id, None) is not None
    
    async def archive_item(self, item_id: str) -> bool:
        item = self.items.pop(item_id, None)
        if item is None:
            return False
        self.archived[item_id] = item
        return True
    
    async def get_setting(self, key: str, default: Any = None) -> Any:
        return self.settings.get(key, default)
    
    async def set_setting(self, key: str, value: Any) -> None:
        self.settings[key] = value
    
    def __enter__(self) -> 'InMemoryStorage':
        return self
    
    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        return False


class TimeController:
    """
    Clock for tests; pass the instance wherever a ``clock`` callable is expected.
    
    💡: Lets tests move through novelty windows and recency decay without
    waiting for real time to pass
    """
    
    def __init__(self, start: Optional[datetime] = None) -> None:
        self.current = ensure_utc(start) if start is not None else datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
    
    def __call__(self) -> datetime:
        return self.current
    
    def advance(self, **delta: float) -> datetime:
        """Move the clock forward, e.g. ``advance(hours=3)``."""
        self.current = self.current + timedelta(**delta)
        return self.current
    
    def advance_days(self, days: float) -> datetime:
        return self.advance(days=days)
    
    def set_time(self, moment: datetime) -> datetime:
        self.current = ensure_utc(moment)
        return self.current
