from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .events import EVENT_SAMPLE, Event
from .handles import HandleRegistry, default_registry
from .model import Project
from .state import EditorState
from .storage import ProjectStore, StorageError

log = logging.getLogger("reelcut")

PROJECT_KEY = "auto_save_v1"


def regenerate_handles(project: Project, registry: HandleRegistry) -> None:
    """Give every owned payload (media and thumbnails) a fresh transient handle."""
    for clip in project.all_clips():
        if clip.media is None:
            continue
        clip.media.regenerate(registry)
        for thumb in clip.thumbnails:
            thumb.regenerate(registry)
    for item in project.library:
        if item.media is None:
            continue
        item.url = item.media.regenerate(registry)
        item.thumbnail_urls = [t.regenerate(registry) for t in item.thumbnails]


class ProjectPersistence:
    """
    Saves and restores the whole editing state under one fixed key.

    Storage failures propagate to the caller; a record that can't be parsed
    is reported as StorageError, never partially applied. save/load/clear
    run one at a time under `lock`, so a slow write can never land after a
    newer one.
    """

    def __init__(
        self,
        state: EditorState,
        store: ProjectStore,
        registry: Optional[HandleRegistry] = None,
        key: str = PROJECT_KEY,
    ) -> None:
        self.state = state
        self.store = store
        self.registry = registry or default_registry()
        self.key = key
        self.lock = asyncio.Lock()

    async def save(self) -> Project:
        async with self.lock:
            # Snapshot before the next await so no edit can slip in between reads.
            project = self.state.snapshot()
            record = project.to_dict()
            await self.store.aput(self.key, record)
        log.info("project saved (%d clips)", len(project.all_clips()))
        return project

    def _rebuild(self, record: Dict[str, Any]) -> Project:
        try:
            project = Project.from_dict(record)
        except ValueError as ex:
            raise StorageError(f"malformed project record: {ex}") from ex
        regenerate_handles(project, self.registry)
        return project

    async def load(self) -> bool:
        """Restore the saved project. Returns False when nothing was saved."""
        async with self.lock:
            record = await self.store.aget(self.key)
            if record is None:
                return False
            # Materializing handles writes every payload to disk.
            project = await asyncio.to_thread(self._rebuild, record)
            self.state.restore(project)
        log.info("project restored (%d clips)", len(project.all_clips()))
        return True

    async def clear(self) -> None:
        async with self.lock:
            await self.store.adelete(self.key)
            self.state.reset()
            self.registry.release_all()
        log.info("project cleared")

    async def load_template(self, record: Dict[str, Any], name: str = "") -> None:
        """Replace the current state with a sample project record."""
        project = await asyncio.to_thread(self._rebuild, record)
        self.state.restore(project)
        self.state.events.emit(Event(type=EVENT_SAMPLE, filename=name or None, file_count=len(project.library)))


class AutoSaver:
    """
    Debounced + periodic auto-save.

    Any state change marks the project dirty and (re)starts a short debounce
    timer; an interval loop also flushes while dirty. A failed save keeps the
    dirty flag so the next tick retries.
    """

    def __init__(
        self,
        persistence: ProjectPersistence,
        interval_sec: float = 60.0,
        debounce_sec: float = 2.0,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.persistence = persistence
        self.interval_sec = max(0.01, float(interval_sec))
        self.debounce_sec = max(0.0, float(debounce_sec))
        self.on_error = on_error
        self.dirty = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._debounce: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.persistence.state.subscribe(self.mark_dirty)
        if self._loop_task is None:
            self._loop_task = asyncio.get_running_loop().create_task(self._interval_loop())

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in (self._debounce, self._loop_task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._debounce = None
        self._loop_task = None

    def mark_dirty(self) -> None:
        self.dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._debounce is not None and not self._debounce.done():
            self._debounce.cancel()
        self._debounce = loop.create_task(self._debounced())

    def discard(self) -> None:
        """Forget pending changes, e.g. right after the project was cleared."""
        self.dirty = False
        if self._debounce is not None and not self._debounce.done():
            self._debounce.cancel()
        self._debounce = None

    async def _debounced(self) -> None:
        await asyncio.sleep(self.debounce_sec)
        await self.flush()

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            await self.flush()

    async def flush(self) -> bool:
        """
        Save now if dirty. Returns True when a save happened.

        Ordering against manual saves and clears is left to the persistence lock.
        """
        if not self.dirty:
            return False
        self.dirty = False
        try:
            await self.persistence.save()
        except Exception as ex:
            self.dirty = True
            log.exception("auto-save failed: %s", ex)
            if self.on_error is not None:
                self.on_error(ex)
            return False
        return True
