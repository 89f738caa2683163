"""Filesystem watcher that triggers index syncs when record files change."""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Awaitable, Callable

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

RecordEventCallback = Callable[[str, Path], None]


class RecordEventHandler(PatternMatchingEventHandler):
    """Forward markdown file events to a callback."""

    def __init__(self, callback: RecordEventCallback, patterns: list[str] | None = None) -> None:
        super().__init__(
            patterns=patterns or ["*.md"],
            ignore_directories=True,
            case_sensitive=False,
        )
        self.callback = callback

    def on_created(self, event: FileSystemEvent) -> None:
        self.callback("created", Path(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        self.callback("modified", Path(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        self.callback("moved", Path(event.dest_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        self.callback("deleted", Path(event.src_path))


class RecordWatcher:
    """Watches the records directory and runs ``on_change`` on the event loop.

    Events arrive on the observer thread; each one schedules ``on_change()``
    on ``loop``. Overlapping syncs collapse into one pass, so bursts of events
    are cheap.
    """

    def __init__(
        self,
        directory: Path,
        on_change: Callable[[], Awaitable[object]],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.directory = Path(directory).expanduser()
        self.on_change = on_change
        self.loop = loop
        self._observer: BaseObserver = Observer()
        self._lock = threading.Lock()
        self._started = False

    @property
    def is_running(self) -> bool:
        return self._started

    def handle_event(self, kind: str, path: Path) -> Future | None:
        logger.debug("Record file %s: %s", kind, path)
        if self.loop.is_closed():
            return None
        return asyncio.run_coroutine_threadsafe(self._run(), self.loop)

    async def _run(self) -> None:
        try:
            await self.on_change()
        except Exception:
            logger.exception("Sync triggered by record change failed")

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self.directory.mkdir(parents=True, exist_ok=True)
            self._observer.schedule(
                RecordEventHandler(self.handle_event),
                str(self.directory),
                recursive=False,
            )
            self._observer.start()
            self._started = True
            logger.info("Watching %s for record changes", self.directory)

    def stop(self) -> None:
        with self._lock:
            if not self._started:
                return
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer.unschedule_all()
            self._started = False


__all__ = ["RecordWatcher", "RecordEventHandler", "RecordEventCallback"]
