from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, TypeVar

from . import timeline
from .events import EVENT_IMPORT, Event, EventBus
from .model import (
    TRACK_KINDS,
    TRACK_TEXT,
    Clip,
    MediaItem,
    Project,
    ProjectSettings,
    now_ms,
    track_for_kind,
)

log = logging.getLogger("reelcut")

T = TypeVar("T")


class Store(Generic[T]):
    """
    Observable value container.

    subscribe() calls the callback with the current value right away and again
    after every set(). It returns a function that removes the subscription.
    """

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: List[Callable[[T], None]] = []

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        for cb in list(self._subscribers):
            try:
                cb(value)
            except Exception:
                log.exception("store subscriber failed")

    def update(self, fn: Callable[[T], T]) -> None:
        self.set(fn(self._value))

    def subscribe(self, cb: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(cb)
        cb(self._value)

        def _unsubscribe() -> None:
            if cb in self._subscribers:
                self._subscribers.remove(cb)

        return _unsubscribe


@dataclass(frozen=True)
class EditResult:
    ok: bool
    message: str
    clip_id: Optional[str] = None


class EditorState:
    """
    All editing state, one store per container.

    Mutations run synchronously from lookup to commit, so no other edit can
    interleave on the same track. A clip-id -> track index is kept in sync
    with the track stores.
    """

    def __init__(self, events: Optional[EventBus] = None) -> None:
        self.events = events or EventBus()
        self.tracks: Dict[str, Store[List[Clip]]] = {k: Store([]) for k in TRACK_KINDS}
        self.library: Store[List[MediaItem]] = Store([])
        self.settings: Store[ProjectSettings] = Store(ProjectSettings())
        self._index: Dict[str, str] = {}
        for kind, store in self.tracks.items():
            store.subscribe(lambda clips, kind=kind: self._reindex(kind, clips))

    # ---------- index ----------
    def _reindex(self, kind: str, clips: List[Clip]) -> None:
        self._index = {cid: k for cid, k in self._index.items() if k != kind}
        for c in clips:
            prev = self._index.get(c.id)
            if prev is not None and prev != kind:
                log.warning("clip %s appears on both %s and %s tracks", c.id, prev, kind)
            self._index[c.id] = kind

    def track_of(self, clip_id: str) -> Optional[str]:
        return self._index.get(clip_id)

    def find_clip(self, clip_id: str) -> Optional[Clip]:
        kind = self.track_of(clip_id)
        if kind is None:
            return None
        return timeline.find_clip(self.tracks[kind].get(), clip_id)

    def clips(self, kind: str) -> List[Clip]:
        return self.tracks[kind].get()

    # ---------- subscriptions ----------
    def subscribe(self, cb: Callable[[], None]) -> Callable[[], None]:
        """Call `cb()` after any container changes (not on registration)."""
        unsubs = []
        stores = [*self.tracks.values(), self.library, self.settings]
        for store in stores:
            primed = [False]

            def _on_change(_value, primed=primed) -> None:
                if not primed[0]:
                    primed[0] = True
                    return
                cb()

            unsubs.append(store.subscribe(_on_change))

        def _unsubscribe() -> None:
            for u in unsubs:
                u()

        return _unsubscribe

    # ---------- library ----------
    def add_media(self, item: MediaItem) -> None:
        self.library.update(lambda items: [*items, item])
        self.events.emit(Event(type=EVENT_IMPORT, filename=item.name, file_count=1, duration=item.duration))

    def remove_media(self, item_id: str) -> bool:
        items = self.library.get()
        kept = [m for m in items if m.id != item_id]
        if len(kept) == len(items):
            return False
        self.library.set(kept)
        return True

    # ---------- mutations ----------
    def _commit(self, kind: str, clips: List[Clip]) -> None:
        self.tracks[kind].set(clips)

    def place_clip(self, item: MediaItem, start_offset: Optional[float] = None, track: Optional[str] = None) -> EditResult:
        """Put a library item on a track, at the track end unless a start is given."""
        kind = item.kind
        if kind is None:
            log.warning("unsupported media type: %s (%s)", item.name, item.type)
            return EditResult(False, f"Unsupported media: {item.name}")
        target = track or track_for_kind(kind)
        if target not in self.tracks:
            return EditResult(False, f"Unknown track: {target}")
        before = self.tracks[target].get()
        clip = timeline.create_clip(item, start_offset if start_offset is not None else 0.0)
        if start_offset is None:
            clips = timeline.append_clip(before, clip)
        else:
            clips = timeline.insert_clip(before, clip)
        self._commit(target, clips)
        return EditResult(True, "Added", clip.id)

    def add_text_clip(self, start_offset: Optional[float] = None, text: Optional[str] = None) -> EditResult:
        before = self.tracks[TRACK_TEXT].get()
        clip = timeline.create_text_clip(start_offset if start_offset is not None else 0.0, text=text)
        if start_offset is None:
            clips = timeline.append_clip(before, clip)
        else:
            clips = timeline.insert_clip(before, clip)
        self._commit(TRACK_TEXT, clips)
        return EditResult(True, "Added", clip.id)

    def split_clip(self, clip_id: str, split_time: float) -> EditResult:
        kind = self.track_of(clip_id)
        if kind is None:
            log.warning("split: clip %s not found", clip_id)
            return EditResult(False, "Split failed: clip not found")
        before = self.tracks[kind].get()
        clips, new_id, msg = timeline.split_clip(before, clip_id, split_time)
        if new_id is None:
            log.warning("split rejected for %s at %.3f: %s", clip_id, float(split_time), msg)
            return EditResult(False, msg, clip_id)
        self._commit(kind, clips)
        return EditResult(True, msg, new_id)

    def move_clip(self, clip_id: str, new_start: float) -> EditResult:
        kind = self.track_of(clip_id)
        if kind is None:
            return EditResult(False, "Move failed: clip not found")
        before = self.tracks[kind].get()
        clips, msg = timeline.move_clip(before, clip_id, new_start)
        if clips is before:
            return EditResult(False, msg, clip_id)
        self._commit(kind, clips)
        return EditResult(True, msg, clip_id)

    def trim_clip(self, clip_id: str, media_start_offset: float, duration: float) -> EditResult:
        kind = self.track_of(clip_id)
        if kind is None:
            return EditResult(False, "Trim failed: clip not found")
        before = self.tracks[kind].get()
        clips, msg = timeline.trim_clip(before, clip_id, media_start_offset, duration)
        if clips is before:
            if msg.startswith("Trim failed"):
                log.warning("trim rejected for %s: %s", clip_id, msg)
            return EditResult(False, msg, clip_id)
        self._commit(kind, clips)
        return EditResult(True, msg, clip_id)

    def delete_clip(self, clip_id: str) -> EditResult:
        kind = self.track_of(clip_id)
        if kind is None:
            return EditResult(False, "Delete failed: clip not found")
        clips, msg = timeline.delete_clip(self.tracks[kind].get(), clip_id)
        self._commit(kind, clips)
        return EditResult(True, msg)

    def set_settings(self, width: int, height: int, aspect_ratio: str) -> None:
        self.settings.set(ProjectSettings(width=int(width), height=int(height), aspect_ratio=str(aspect_ratio)))

    def timeline_duration(self) -> float:
        return max((timeline.track_end(s.get()) for s in self.tracks.values()), default=0.0)

    # ---------- snapshot / restore ----------
    def snapshot(self) -> Project:
        """Capture every container at once; does not suspend."""
        return Project(
            tracks={k: list(s.get()) for k, s in self.tracks.items()},
            library=list(self.library.get()),
            settings=self.settings.get(),
            last_modified=now_ms(),
        )

    def restore(self, project: Project) -> None:
        for k, store in self.tracks.items():
            store.set(list(project.tracks.get(k, [])))
        self.library.set(list(project.library))
        self.settings.set(project.settings)

    def reset(self) -> None:
        self.restore(Project())

