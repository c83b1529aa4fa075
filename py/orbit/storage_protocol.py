"""Storage protocol interface for Orbit item stores."""

from typing import Any, List, Optional, Protocol

from .models import OrbitItem


class ItemLimitError(ValueError):
    """Raised when a store already holds the maximum number of live items."""


class ItemStoreProtocol(Protocol):
    """Protocol that every Orbit item store implements.

    Keeps FileBasedStorage and InMemoryStorage interchangeable for the
    server and the tests.
    """

    async def get_all_items(self) -> List[OrbitItem]:
        """Get all live (non-archived) items."""
        ...

    async def get_item(self, item_id: str) -> Optional[OrbitItem]:
        """Get a live item by id."""
        ...

    async def add_item(self, item: OrbitItem) -> None:
        """Add a new item, enforcing the item limit."""
        ...

    async def store_item(self, item: OrbitItem) -> None:
        """Store/update an item."""
        ...

    async def delete_item(self, item_id: str) -> bool:
        """Delete an item. Returns True if it existed."""
        ...

    async def archive_item(self, item_id: str) -> bool:
        """Move an item out of the live set. Returns True if it existed."""
        ...

    async def get_setting(self, key: str, default: Any = None) -> Any:
        """Read a persisted setting."""
        ...

    async def set_setting(self, key: str, value: Any) -> None:
        """Persist a setting."""
        ...

    def __enter__(self):
        """Context manager entry."""
        ...

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        ...
