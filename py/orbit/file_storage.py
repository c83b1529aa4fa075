"""File-based storage for Orbit items with cross-process refresh."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

import aiofiles
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .constants import MAX_ITEMS
from .models import OrbitItem
from .storage_protocol import ItemLimitError

logger = logging.getLogger(__name__)

# 💡: Periodic full rescan catches file events the watcher dropped
CACHE_REFRESH_INTERVAL_SECONDS = 30

FILE_EVENT_DEBOUNCE_SECONDS = 1.0


class FileBasedStorage:
    """
    Item store that keeps each item in its own JSON file.

    Layout under ``directory_path``:
    - ``items/<id>.json`` for live items
    - ``archive/<id>.json`` for archived items
    - ``settings.json`` for small persisted settings (default place, ...)

    Writes are atomic, reads are served from an in-memory cache that a
    watchdog observer keeps in sync with other processes.
    """
    
    def __init__(self, directory_path: Path, enable_watching: bool = True) -> None:
        """
        Initialize file-based storage.
        
        Args:
            directory_path: Directory holding item files and settings
            enable_watching: Whether to watch the items directory for changes made by other processes
        """
        self.directory_path = directory_path
        self.items_dir = directory_path / "items"
        self.archive_dir = directory_path / "archive"
        self.settings_file = directory_path / "settings.json"
        
        self._cache_lock = threading.RLock()
        self._items_cache: Dict[str, OrbitItem] = {}
        self._cache_loaded = False
        
        self._settings_cache: Optional[Dict[str, Any]] = None
        
        # 💡: Ids we just wrote ourselves; their file events must not trigger a rescan
        self._recently_written_ids: Set[str] = set()
        self._recently_written_lock = threading.Lock()
        
        self._debounce_timer: Optional[threading.Timer] = None
        self._debounce_lock = threading.Lock()
        
        self._observer: Optional[Any] = None
        self._periodic_timer: Optional[threading.Timer] = None
        self._shutdown_requested = False
        
        self.items_dir.mkdir(parents=True, exist_ok=True)
        self.archive_dir.mkdir(parents=True, exist_ok=True)
        
        if enable_watching:
            self._start_file_watching()
    
    def _validate_item_filename(self, item_id: str) -> bool:
        """Only UUID ids are used as filenames."""
        try:
            UUID(item_id)
            return True
        except ValueError:
            return False
    
    def _get_item_path(self, item_id: str, archived: bool = False) -> Path:
        if not self._validate_item_filename(item_id):
            raise ValueError(f"Invalid item id: {item_id!r}")
        directory = self.archive_dir if archived else self.items_dir
        return directory / f"{item_id}.json"
    
    async def _atomic_write_json(self, file_path: Path, data: Dict[str, Any]) -> None:
        """
        Write JSON to ``file_path`` via a temp file and ``os.replace``.
        
        Readers never observe a partially written file.
        """
        temp_fd, temp_path = tempfile.mkstemp(
            suffix='.tmp',
            prefix=f'{file_path.stem}_',
            dir=file_path.parent
        )
        
        try:
            with os.fdopen(temp_fd, 'w') as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(temp_path, file_path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise
    
    async def _load_settings(self) -> Dict[str, Any]:
        """Load settings from disk, resetting them if the file is corrupt."""
        if self._settings_cache is not None:
            return self._settings_cache
        
        if not self.settings_file.exists():
            self._settings_cache = {}
            await self._save_settings()
            return self._settings_cache
        
        try:
            async with aiofiles.open(self.settings_file, 'r') as f:
                content = await f.read()
                self._settings_cache = json.loads(content)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Settings file unreadable, backing up and resetting: {e}")
            backup_path = self.settings_file.with_suffix('.json.backup')
            if self.settings_file.exists():
                self.settings_file.rename(backup_path)
            self._settings_cache = {}
            await self._save_settings()
        
        return self._settings_cache
    
    async def _save_settings(self) -> None:
        if self._settings_cache is None:
            return
        await self._atomic_write_json(self.settings_file, self._settings_cache)
    
    async def _load_items_cache(self) -> None:
        with self._cache_lock:
            if self._cache_loaded:
                return
            self._refresh_cache_from_disk()
    
    async def get_item(self, item_id: str) -> Optional[OrbitItem]:
        """Get a live item by id, or None."""
        await self._load_items_cache()
        
        with self._cache_lock:
            return self._items_cache.get(item_id)
    
    async def store_item(self, item: OrbitItem) -> str:
        """
        Write an item to disk and update the cache.
        
        Returns:
            The id of the stored item
        """
        await self._load_items_cache()
        
        file_path = self._get_item_path(item.id)
        self._mark_id_as_written(item.id)
        await self._atomic_write_json(file_path, item.model_dump(mode='json'))
        
        with self._cache_lock:
            self._items_cache[item.id] = item
        
        return item.id
    
    async def add_item(self, item: OrbitItem) -> None:
        """
        Add a new item.
        
        Raises:
            ItemLimitError: if the store already holds MAX_ITEMS live items
        """
        await self._load_items_cache()
        
        with self._cache_lock:
            count = len(self._items_cache)
        if count >= MAX_ITEMS and item.id not in self._items_cache:
            raise ItemLimitError(f"Item limit of {MAX_ITEMS} reached")
        
        await self.store_item(item)
    
    async def delete_item(self, item_id: str) -> bool:
        """Delete a live item. Returns True if it existed."""
        await self._load_items_cache()
        
        with self._cache_lock:
            if item_id not in self._items_cache:
                return False
            del self._items_cache[item_id]
        
        self._mark_id_as_written(item_id)
        try:
            self._get_item_path(item_id).unlink()
        except OSError:
            pass
        
        return True
    
    async def archive_item(self, item_id: str) -> bool:
        """Move a live item to the archive directory. Returns True if it existed."""
        await self._load_items_cache()
        
        with self._cache_lock:
            item = self._items_cache.pop(item_id, None)
        if item is None:
            return False
        
        self._mark_id_as_written(item_id)
        await self._atomic_write_json(
            self._get_item_path(item_id, archived=True),
            item.model_dump(mode='json'),
        )
        try:
            self._get_item_path(item_id).unlink()
        except OSError:
            pass
        
        return True
    
    async def get_all_items(self) -> List[OrbitItem]:
        """All live items, in no particular order."""
        await self._load_items_cache()
        
        with self._cache_lock:
            return list(self._items_cache.values())
    
    async def get_setting(self, key: str, default: Any = None) -> Any:
        settings = await self._load_settings()
        return settings.get(key, default)
    
    async def set_setting(self, key: str, value: Any) -> None:
        settings = await self._load_settings()
        settings[key] = value
        await self._save_settings()
    
    def _start_file_watching(self) -> None:
        """
        Start the watchdog observer and the periodic refresh timer.
        
        💡: If the observer cannot start we keep going; the periodic
        refresh still picks up changes from other processes
        """
        try:
            event_handler = _ItemFileEventHandler(self)
            
            self._observer = Observer()
            self._observer.schedule(
                event_handler,
                str(self.items_dir),
                recursive=False
            )
            self._observer.start()
            logger.debug(f"Started file watching on {self.items_dir}")
            
            self._schedule_periodic_refresh()
            
        except Exception as e:
            logger.warning(f"Failed to start file watching, continuing without real-time updates: {e}", exc_info=True)
    
    def _schedule_periodic_refresh(self) -> None:
        if self._shutdown_requested:
            return
            
        self._periodic_timer = threading.Timer(
            CACHE_REFRESH_INTERVAL_SECONDS,
            self._periodic_refresh_callback
        )
        self._periodic_timer.daemon = True
        self._periodic_timer.start()
    
    def _periodic_refresh_callback(self) -> None:
        try:
            self._refresh_cache_from_disk()
        except Exception as e:
            logger.warning(f"Periodic cache refresh failed: {e}", exc_info=True)
        finally:
            self._schedule_periodic_refresh()
    
    def _on_file_event(self, file_path: str) -> None:
        """Debounce a file event into a cache rescan."""
        item_id = Path(file_path).stem
        
        with self._recently_written_lock:
            if item_id in self._recently_written_ids:
                self._recently_written_ids.discard(item_id)
                return
        
        with self._debounce_lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
            
            self._debounce_timer = threading.Timer(
                FILE_EVENT_DEBOUNCE_SECONDS,
                self._debounced_refresh_callback
            )
            self._debounce_timer.daemon = True
            self._debounce_timer.start()
    
    def _debounced_refresh_callback(self) -> None:
        try:
            self._refresh_cache_from_disk()
        except Exception as e:
            logger.warning(f"Debounced cache refresh failed: {e}", exc_info=True)
    
    def _refresh_cache_from_disk(self) -> None:
        """
        Rebuild the cache by scanning the items directory.
        
        Unreadable or invalid files are skipped with a warning; if the scan
        fails as a whole the previous cache is kept.
        """
        with self._cache_lock:
            old_cache = self._items_cache.copy()
            try:
                self._items_cache.clear()
                
                loaded_count = 0
                skipped_count = 0
                
                for file_path in self.items_dir.glob("*.json"):
                    item_id = file_path.stem
                    
                    if not self._validate_item_filename(item_id):
                        logger.debug(f"Skipping file with invalid item filename: {file_path.name}")
                        skipped_count += 1
                        continue
                    
                    try:
                        with open(file_path, 'r', encoding='utf-8') as f:
                            item_data = json.load(f)
                        self._items_cache[item_id] = OrbitItem.model_validate(item_data)
                        loaded_count += 1
                    except (json.JSONDecodeError, ValueError, OSError) as e:
                        logger.warning(f"Failed to load item from {file_path}: {e}")
                        skipped_count += 1
                
                self._cache_loaded = True
                logger.debug(f"Cache refresh complete: loaded {loaded_count} items, skipped {skipped_count} files")
                
            except Exception as e:
                logger.error(f"Cache refresh failed completely, keeping old cache: {e}", exc_info=True)
                self._items_cache = old_cache
    
    def _mark_id_as_written(self, item_id: str) -> None:
        with self._recently_written_lock:
            self._recently_written_ids.add(item_id)
    
    def __enter__(self) -> 'FileBasedStorage':
        return self
    
    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        self.shutdown()
        return False
    
    def shutdown(self) -> None:
        """Stop the observer and cancel pending timers."""
        self._shutdown_requested = True
        
        if self._observer and self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=5)
        
        with self._debounce_lock:
            if self._debounce_timer:
                self._debounce_timer.cancel()
        
        if self._periodic_timer:
            self._periodic_timer.cancel()


class _ItemFileEventHandler(FileSystemEventHandler):
    """Forwards JSON file events in the items directory to the storage."""
    
    def __init__(self, storage: FileBasedStorage):
        super().__init__()
        self.storage = storage
    
    def _handle(self, event: Any) -> None:
        src_path = str(event.src_path)
        if not event.is_directory and src_path.endswith('.json'):
            self.storage._on_file_event(src_path)
    
    def on_created(self, event: Any) -> None:
        self._handle(event)
    
    def on_modified(self, event: Any) -> None:
        self._handle(event)
    
    def on_deleted(self, event: Any) -> None:
        self._handle(event)

    def on_moved(self, event: Any) -> None:
        # Atomic writes land as a rename of a temp file onto the item file
        dest_path = str(event.dest_path)
        if not event.is_directory and dest_path.endswith('.json'):
            self.storage._on_file_event(dest_path)
