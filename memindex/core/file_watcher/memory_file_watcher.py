"""File watcher that reports changes of memory sources.

Monitors the memory roots and the session directory of an agent with
watchfiles and hands every debounced change set to a callback.
"""

import asyncio
import os
from collections.abc import Coroutine
from typing import Any, Callable

from loguru import logger
from watchfiles import Change, awatch


class MemoryFileWatcher:
    """
    Watches memory roots for changes

    Only paths that exist when the watcher starts are watched. Changes are
    filtered by suffix and delivered in debounced batches.
    """

    def __init__(
        self,
        watch_paths: list[str] | str,
        suffix_filters: list[str] | None = None,
        recursive: bool = True,
        debounce: int = 1500,  # Millisecond debounce
        callback: Callable[[set[tuple[Change, str]]], None | Coroutine[Any, Any, None]] | None = None,
    ):
        """
        Initialize the file watcher

        Args:
            watch_paths: Paths to watch for changes
            suffix_filters: File suffix filters (e.g., ['.md', '.jsonl'])
            recursive: Whether to watch directories recursively
            debounce: Debounce time in milliseconds
            callback: Callback function for changes
        """
        self.watch_paths: list[str] = [watch_paths] if isinstance(watch_paths, str) else watch_paths
        self.suffix_filters: list[str] = suffix_filters or []
        self.recursive: bool = recursive
        self.debounce: int = debounce
        self.callback = callback

        self._stop_event = asyncio.Event()
        self._watch_task: asyncio.Task | None = None
        self._running = False

    async def start(self):
        """Start the file watcher"""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        self._watch_task = asyncio.create_task(self._watch_loop())
        logger.info(f"Started watching: {self.existing_paths()}")

    async def close(self):
        """Stop the file watcher"""
        if not self._running:
            return

        self._stop_event.set()
        if self._watch_task:
            await self._watch_task
        self._running = False
        logger.info("Stopped watching")

    def existing_paths(self) -> list[str]:
        return [path for path in self.watch_paths if os.path.exists(path)]

    def watch_filter(self, _change: Change, path: str) -> bool:
        """Filter function for file watching."""
        if not self.suffix_filters:
            return True

        for suffix in self.suffix_filters:
            if path.endswith("." + suffix.strip(".")):
                return True

        return False

    async def _watch_loop(self):
        """Core monitoring loop"""
        paths = self.existing_paths()
        if not paths:
            logger.warning("No existing watch paths")
            return

        try:
            async for changes in awatch(
                *paths,
                watch_filter=self.watch_filter,
                recursive=self.recursive,
                debounce=self.debounce,
                stop_event=self._stop_event,
            ):
                if self._stop_event.is_set():
                    break

                await self.on_changes(changes)
        except FileNotFoundError as e:
            # Watch path was deleted while watching
            logger.debug(f"Watch path no longer exists: {e}")
        except Exception as e:
            logger.exception(f"Error in watch loop: {e}")

    async def on_changes(self, changes: set[tuple[Change, str]]):
        """Hook method to handle file changes"""
        logger.debug(f"[{self.__class__.__name__}] on_changes: {changes}")
        if self.callback:
            result = self.callback(changes)
            if asyncio.iscoroutine(result):
                await result

    def is_running(self) -> bool:
        """Check if the watcher is running"""
        return self._running
