"""MCP server exposing the Orbit relevance engine."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, cast
from uuid import uuid4

import click
import structlog
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .constants import MAX_VISIBLE, QUIET_HOURS_DEFAULT
from .file_storage import FileBasedStorage
from .interactions import compact_signals, pin_item, quiet_item, record_interaction, unpin_item
from .models import InteractionType, OrbitContext, OrbitItem
from .ranking import rank_items
from .scoring import classify_item, is_pin_active, is_quieted
from .storage_protocol import ItemStoreProtocol

ToolHandler = Callable[[Dict[str, Any]], Awaitable[List[TextContent]]]


def setup_logging(data_dir: Path) -> structlog.BoundLogger:
    """
    Configure structlog from the ORBIT_LOG environment variable.
    
    With ORBIT_LOG set to a level name, JSON lines are appended to
    ``data_dir/orbit.log``. Otherwise only errors go to stderr.
    """
    orbit_log = os.environ.get('ORBIT_LOG')
    
    processors: List[Any] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    
    if orbit_log:
        log_level = getattr(logging, orbit_log.upper(), None)
        if not isinstance(log_level, int):
            log_level = logging.INFO
            print(f"Warning: Invalid log level '{orbit_log}', using INFO", file=sys.stderr)
        
        data_dir.mkdir(parents=True, exist_ok=True)
        processors.append(structlog.processors.JSONRenderer())
        
        logging.basicConfig(
            level=log_level,
            format='%(message)s',
            filename=str(data_dir / "orbit.log"),
            filemode='a',
            force=True
        )
    else:
        # 💡: stdout carries the MCP protocol, so console output goes to stderr
        processors.append(structlog.dev.ConsoleRenderer())
        
        logging.basicConfig(
            level=logging.ERROR,
            format='%(message)s',
            stream=sys.stderr
        )
    
    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    
    return cast(structlog.BoundLogger, structlog.get_logger())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _text(text: str) -> List[TextContent]:
    return [TextContent(type="text", text=text)]


class OrbitServer:
    """MCP server for ranking and learning from Orbit items."""
    
    logger: structlog.BoundLogger
    
    def __init__(
        self,
        storage_path: Optional[Path] = None,
        *,
        storage: Optional[ItemStoreProtocol] = None,
        logger: Optional[structlog.BoundLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize with either a storage directory or a storage instance."""
        self.logger = logger if logger is not None else cast(structlog.BoundLogger, structlog.get_logger())
        self.logger.info("server.init.start", status="initializing")
        
        if storage is not None:
            self.logger.debug("server.init.storage", storage_type="provided_instance")
            self.storage: ItemStoreProtocol = storage
        elif storage_path is not None:
            self.logger.info("server.init.storage", storage_type="file_based", path=str(storage_path))
            self.storage = FileBasedStorage(storage_path)
        else:
            self.logger.error("server.init.error", error="no_storage_configured")
            raise ValueError("Must provide either storage_path or storage")
        
        self.clock = clock
        self.session_id = str(uuid4())
        self.server: Server[Any] = Server("orbit")
        
        self.tool_call_count = 0
        self.metrics_interval = 10
        
        self._handlers: Dict[str, ToolHandler] = {
            "orbit_add_item": self._add_item,
            "orbit_rank_items": self._rank_items,
            "orbit_record_interaction": self._record_interaction,
            "orbit_pin_item": self._pin_item,
            "orbit_unpin_item": self._unpin_item,
            "orbit_quiet_item": self._quiet_item,
            "orbit_archive_item": self._archive_item,
            "orbit_set_place": self._set_place,
            "orbit_compact": self._compact,
        }
        self._register_tools()
        self.logger.info("server.init.complete", status="ready")
    
    def __enter__(self) -> 'OrbitServer':
        return self
    
    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Release storage resources (file watchers, timers)."""
        if hasattr(self.storage, '__exit__'):
            self.storage.__exit__(exc_type, exc_val, exc_tb)
        return None
    
    def _register_tools(self) -> None:
        context_properties = {
            "place": {
                "type": "string",
                "description": "Where the user is (e.g. 'home', 'work'). Defaults to the stored place setting"
            },
            "device": {
                "type": "string",
                "description": "Device class: 'desktop', 'mobile' or 'tablet'. Default: 'desktop'"
            },
        }
        id_property = {"id": {"type": "string", "description": "Id of the item"}}
        
        @self.server.list_tools()  # type: ignore[misc,no-untyped-call]
        async def list_tools() -> List[Tool]:
            return [
                Tool(
                    name="orbit_add_item",
                    description="Start tracking a task, reminder or link",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            "title": {"type": "string", "description": "Short title of the item"},
                            "detail": {"type": "string", "description": "Optional longer description"},
                            "url": {"type": "string", "description": "Optional link"},
                        },
                        "required": ["title"]
                    }
                ),
                Tool(
                    name="orbit_rank_items",
                    description="Re-score all items for the current context and return the visible set",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            **context_properties,
                            "max_visible": {
                                "type": "integer",
                                "minimum": 0,
                                "default": MAX_VISIBLE,
                                "description": "Size of the visible set"
                            },
                        },
                    }
                ),
                Tool(
                    name="orbit_record_interaction",
                    description="Record that the user saw, opened or dismissed an item",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            **id_property,
                            "action": {
                                "type": "string",
                                "enum": [t.value for t in InteractionType],
                            },
                            **context_properties,
                        },
                        "required": ["id", "action"]
                    }
                ),
                Tool(
                    name="orbit_pin_item",
                    description="Keep an item close, optionally until a given time",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            **id_property,
                            "until": {
                                "type": "string",
                                "description": "ISO-8601 expiry. Omit for a permanent pin"
                            },
                        },
                        "required": ["id"]
                    }
                ),
                Tool(
                    name="orbit_unpin_item",
                    description="Remove a pin",
                    inputSchema={"type": "object", "properties": id_property, "required": ["id"]}
                ),
                Tool(
                    name="orbit_quiet_item",
                    description="Quiet an item for a number of hours",
                    inputSchema={
                        "type": "object",
                        "properties": {
                            **id_property,
                            "hours": {
                                "type": "number",
                                "minimum": 0,
                                "default": QUIET_HOURS_DEFAULT,
                            },
                        },
                        "required": ["id"]
                    }
                ),
                Tool(
                    name="orbit_archive_item",
                    description="Remove an item from the orbit, keeping it in the archive",
                    inputSchema={"type": "object", "properties": id_property, "required": ["id"]}
                ),
                Tool(
                    name="orbit_set_place",
                    description="Set the default place used when a call does not name one",
                    inputSchema={
                        "type": "object",
                        "properties": {"place": {"type": "string"}},
                        "required": ["place"]
                    }
                ),
                Tool(
                    name="orbit_compact",
                    description="Decay and prune the behaviour histograms of all items",
                    inputSchema={"type": "object", "properties": {}}
                ),
            ]
        
        @self.server.call_tool()  # type: ignore[misc,no-untyped-call]
        async def call_tool(name: str, arguments: Dict[str, Any]) -> List[TextContent]:
            return await self.handle_tool_call(name, arguments)
    
    async def handle_tool_call(self, name: str, arguments: Dict[str, Any]) -> List[TextContent]:
        """Dispatch a tool call, logging request, response and timing."""
        start_time = time.time()
        self.logger.info("tool.request", tool=name, args=arguments)
        
        handler = self._handlers.get(name)
        if handler is None:
            self.logger.warning("tool.unknown", tool=name)
            return _text(f"Unknown tool: {name}")
        
        try:
            result = await handler(arguments)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.logger.error("tool.error", tool=name, error=str(e), duration_ms=round(duration_ms, 1), exc_info=True)
            return _text(f"Error in {name}: {e}")
        
        duration_ms = (time.time() - start_time) * 1000
        self.logger.info("tool.response", tool=name, duration_ms=round(duration_ms, 1))
        
        self.tool_call_count += 1
        if self.tool_call_count % self.metrics_interval == 0:
            await self._log_system_metrics()
        
        return result
    
    async def _log_system_metrics(self) -> None:
        try:
            items = await self.storage.get_all_items()
            context = await self._build_context({})
            scores = [item.computed.score for item in items]
            
            self.logger.info(
                "system.metrics",
                total_items=len(items),
                pinned=len([i for i in items if is_pin_active(i, context)]),
                quieted=len([i for i in items if is_quieted(i, context)]),
                average_score=round(sum(scores) / len(scores), 3) if scores else 0,
            )
        except Exception as e:
            self.logger.error("system.metrics.error", error=str(e), exc_info=True)
    
    async def _build_context(self, args: Dict[str, Any]) -> OrbitContext:
        """Context snapshot for this call; place falls back to the stored setting."""
        place = args.get("place") or await self.storage.get_setting("place", "unknown")
        return OrbitContext.create(
            now=self.clock(),
            device=args.get("device") or "desktop",
            place=place,
            session_id=self.session_id,
        )
    
    def _format_item(self, item: OrbitItem, context: OrbitContext) -> Dict[str, Any]:
        return {
            "id": item.id,
            "title": item.title,
            "detail": item.detail,
            "url": item.url,
            "score": round(item.computed.score, 4),
            "distance": round(item.computed.distance, 4),
            "reasons": item.computed.reasons,
            "state": classify_item(item, context).value,
            "is_pinned": item.signals.is_pinned,
        }
    
    async def _update_item(
        self,
        args: Dict[str, Any],
        change: Callable[[OrbitItem, OrbitContext], OrbitItem],
        message: str,
    ) -> List[TextContent]:
        """Load an item, apply ``change`` and persist the result."""
        item_id = args["id"]
        item = await self.storage.get_item(item_id)
        if item is None:
            return _text(f"Item not found: {item_id}")
        
        context = await self._build_context(args)
        await self.storage.store_item(change(item, context))
        return _text(f"{message}: {item_id}")
    
    async def _add_item(self, args: Dict[str, Any]) -> List[TextContent]:
        item = OrbitItem.create(
            title=args["title"],
            detail=args.get("detail", ""),
            url=args.get("url", ""),
            now=self.clock(),
        )
        await self.storage.add_item(item)
        self.logger.debug("item.added", item_id=item.id)
        return _text(f"Added item with id: {item.id}")
    
    async def _rank_items(self, args: Dict[str, Any]) -> List[TextContent]:
        context = await self._build_context(args)
        items = await self.storage.get_all_items()
        
        result = rank_items(items, context, max_visible=args.get("max_visible", MAX_VISIBLE))
        
        # Persist the fresh scores so the store reflects this pass
        for item in result.all:
            await self.storage.store_item(item)
        
        output = {
            "visible": [self._format_item(item, context) for item in result.visible],
            "total": len(result.all),
            "context": {
                "now": context.now.isoformat(),
                "place": context.place,
                "device": context.device,
            },
        }
        return _text(json.dumps(output, indent=2))
    
    async def _record_interaction(self, args: Dict[str, Any]) -> List[TextContent]:
        action = InteractionType(args["action"])
        return await self._update_item(
            args,
            lambda item, context: record_interaction(item, action, context),
            f"Recorded {action.value}",
        )
    
    async def _pin_item(self, args: Dict[str, Any]) -> List[TextContent]:
        until = datetime.fromisoformat(args["until"]) if args.get("until") else None
        return await self._update_item(args, lambda item, _: pin_item(item, until), "Pinned item")
    
    async def _unpin_item(self, args: Dict[str, Any]) -> List[TextContent]:
        return await self._update_item(args, lambda item, _: unpin_item(item), "Unpinned item")
    
    async def _quiet_item(self, args: Dict[str, Any]) -> List[TextContent]:
        hours = args.get("hours", QUIET_HOURS_DEFAULT)
        return await self._update_item(
            args,
            lambda item, context: quiet_item(item, hours, context),
            "Quieted item",
        )
    
    async def _archive_item(self, args: Dict[str, Any]) -> List[TextContent]:
        item_id = args["id"]
        if not await self.storage.archive_item(item_id):
            return _text(f"Item not found: {item_id}")
        return _text(f"Archived item: {item_id}")
    
    async def _set_place(self, args: Dict[str, Any]) -> List[TextContent]:
        await self.storage.set_setting("place", args["place"])
        return _text(f"Default place set to: {args['place']}")
    
    async def _compact(self, args: Dict[str, Any]) -> List[TextContent]:
        items = await self.storage.get_all_items()
        for item in items:
            await self.storage.store_item(compact_signals(item))
        return _text(f"Compacted {len(items)} items")
    
    async def run(self) -> None:
        """Serve MCP over stdio."""
        self.logger.info("server.run.start", status="starting")
        try:
            options = self.server.create_initialization_options()
            async with stdio_server() as (read_stream, write_stream):
                self.logger.info("server.run.connected", status="connected", mode="stdio")
                await self.server.run(read_stream, write_stream, options, raise_exceptions=True)
        except Exception as e:
            self.logger.error("server.run.error", error=str(e), exc_info=True)
            raise


@click.command()
@click.option(
    '--data-dir',
    type=click.Path(path_type=Path),
    required=True,
    help='Directory holding the orbit item store'
)
def main(data_dir: Path) -> None:
    """Run the Orbit MCP server."""
    logger = setup_logging(data_dir)
    logger.info(
        "orbit.main.start",
        data_dir=str(data_dir),
        log_level=os.environ.get('ORBIT_LOG') or "ERROR",
    )
    
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        with OrbitServer(data_dir, logger=logger) as server:
            asyncio.run(server.run())
    except Exception as e:
        logger.error("orbit.main.error", error=str(e), exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
