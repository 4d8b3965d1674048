from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .handles import HandleRegistry, default_registry, payload_digest

KIND_VIDEO = "video"
KIND_IMAGE = "image"
KIND_AUDIO = "audio"
KIND_TEXT = "text"
CLIP_KINDS = (KIND_VIDEO, KIND_IMAGE, KIND_AUDIO, KIND_TEXT)

TRACK_MAIN = "main"
TRACK_AUDIO = "audio"
TRACK_TEXT = "text"
TRACK_KINDS = (TRACK_MAIN, TRACK_AUDIO, TRACK_TEXT)

VIDEO_EXTS = (".mp4", ".mov", ".m4v", ".webm", ".mkv", ".avi")
AUDIO_EXTS = (".mp3", ".wav", ".flac", ".aac", ".ogg", ".m4a")
IMAGE_EXTS = (".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp")


def new_id() -> str:
    """Generate a stable unique id for UI/timeline operations."""
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


def kind_from_type(mime: str, name: str = "") -> Optional[str]:
    """Map a mime type (or, failing that, a file name) to a clip kind."""
    m = str(mime or "").strip().lower()
    for k in (KIND_VIDEO, KIND_IMAGE, KIND_AUDIO):
        if m.startswith(k):
            return k
    ext = Path(str(name or "")).suffix.lower()
    if ext in VIDEO_EXTS:
        return KIND_VIDEO
    if ext in IMAGE_EXTS:
        return KIND_IMAGE
    if ext in AUDIO_EXTS:
        return KIND_AUDIO
    return None


def track_for_kind(kind: str) -> str:
    if kind == KIND_AUDIO:
        return TRACK_AUDIO
    if kind == KIND_TEXT:
        return TRACK_TEXT
    return TRACK_MAIN


def _float(d: Dict[str, Any], key: str, default: float) -> float:
    try:
        v = d.get(key, default)
        return default if v is None else float(v)
    except Exception:
        return default


def _finite_or_inf(raw: Any) -> float:
    # inf is persisted as null.
    if raw is None:
        return math.inf
    try:
        v = float(raw)
    except Exception:
        return math.inf
    return v if v > 0 else math.inf


def _inf_to_none(v: float) -> Optional[float]:
    return None if math.isinf(v) else float(v)


def _opt_str(v: Any) -> Optional[str]:
    return None if v is None else str(v)


@dataclass
class MediaPayload:
    """
    Owned binary payload plus its regenerable transient handle.

    Only `data`, `name` and `mime` are durable. `handle` is a process-local
    path derived from `data`; it is never persisted and ignored by equality.
    """

    data: bytes
    name: str = ""
    mime: str = ""
    handle: Optional[str] = field(default=None, compare=False, repr=False)

    @property
    def digest(self) -> str:
        return payload_digest(self.data)

    @property
    def size(self) -> int:
        return len(self.data)

    def regenerate(self, registry: Optional[HandleRegistry] = None) -> str:
        reg = registry or default_registry()
        self.handle = reg.handle_for(self.data, name=self.name, mime=self.mime)
        return self.handle

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "name": self.name, "mime": self.mime}

    @staticmethod
    def from_dict(d: Any) -> Optional["MediaPayload"]:
        if isinstance(d, (bytes, bytearray)):
            return MediaPayload(data=bytes(d))
        if not isinstance(d, dict):
            return None
        data = d.get("data")
        if not isinstance(data, (bytes, bytearray)):
            return None
        return MediaPayload(
            data=bytes(data),
            name=str(d.get("name") or ""),
            mime=str(d.get("mime") or ""),
        )


def _payload_list(raw: Any) -> List[MediaPayload]:
    if not isinstance(raw, list):
        return []
    out: List[MediaPayload] = []
    for x in raw:
        p = MediaPayload.from_dict(x)
        if p is not None:
            out.append(p)
    return out


@dataclass
class TextStyle:
    text: str = "New Text"
    font_family: str = "Arial"
    font_size: int = 48
    color: str = "#ffffff"
    background: Optional[str] = None
    bold: bool = False
    align: str = "center"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "font_family": self.font_family,
            "font_size": self.font_size,
            "color": self.color,
            "background": self.background,
            "bold": self.bold,
            "align": self.align,
        }

    @staticmethod
    def from_dict(d: Any) -> Optional["TextStyle"]:
        if not isinstance(d, dict):
            return None
        out = TextStyle()
        out.text = str(d.get("text", out.text) or "")
        out.font_family = str(d.get("font_family", out.font_family) or out.font_family)
        try:
            out.font_size = max(1, int(d.get("font_size", out.font_size)))
        except Exception:
            out.font_size = 48
        out.color = str(d.get("color", out.color) or out.color)
        bg = d.get("background")
        out.background = str(bg) if bg else None
        out.bold = bool(d.get("bold", False))
        align = str(d.get("align", out.align) or "").strip().lower()
        out.align = align if align in ("left", "center", "right") else "center"
        return out


@dataclass
class Clip:
    """
    A placed media or text segment on a track.

    Attributes:
        start_offset: timeline position (seconds)
        duration: visible length on the timeline (seconds)
        source_duration: length of the underlying media (inf for image/text)
        media_start_offset: where playback begins inside the source (seconds)
    """

    id: str
    kind: str
    start_offset: float
    duration: float
    source_duration: float = math.inf
    media_start_offset: float = 0.0
    name: str = ""
    volume: float = 1.0
    scale: float = 1.0
    x: float = 0.0
    y: float = 0.0
    animation_in: Optional[str] = None
    animation_out: Optional[str] = None
    style: Optional[TextStyle] = None
    media: Optional[MediaPayload] = None
    thumbnails: List[MediaPayload] = field(default_factory=list)

    @property
    def end(self) -> float:
        return self.start_offset + self.duration

    @property
    def media_end_offset(self) -> float:
        return self.media_start_offset + self.duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "start_offset": float(self.start_offset),
            "duration": float(self.duration),
            "source_duration": _inf_to_none(self.source_duration),
            "media_start_offset": float(self.media_start_offset),
            "name": self.name,
            "volume": float(self.volume),
            "scale": float(self.scale),
            "x": float(self.x),
            "y": float(self.y),
            "animation_in": self.animation_in,
            "animation_out": self.animation_out,
            "style": self.style.to_dict() if self.style else None,
            "media": self.media.to_dict() if self.media else None,
            "thumbnails": [t.to_dict() for t in self.thumbnails],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Clip":
        kind = str(d.get("kind") or "").strip().lower()
        if kind not in CLIP_KINDS:
            kind = KIND_TEXT if isinstance(d.get("style"), dict) else KIND_VIDEO
        return Clip(
            id=str(d["id"]),
            kind=kind,
            start_offset=max(0.0, float(d["start_offset"])),
            duration=float(d["duration"]),
            source_duration=_finite_or_inf(d.get("source_duration")),
            media_start_offset=max(0.0, _float(d, "media_start_offset", 0.0)),
            name=str(d.get("name") or ""),
            volume=_float(d, "volume", 1.0),
            scale=_float(d, "scale", 1.0),
            x=_float(d, "x", 0.0),
            y=_float(d, "y", 0.0),
            animation_in=_opt_str(d.get("animation_in")),
            animation_out=_opt_str(d.get("animation_out")),
            style=TextStyle.from_dict(d.get("style")),
            media=MediaPayload.from_dict(d.get("media")),
            thumbnails=_payload_list(d.get("thumbnails")),
        )


@dataclass
class MediaItem:
    """A library entry produced by ingestion."""

    id: str
    name: str
    type: str = ""
    url: str = ""
    duration: Optional[float] = None
    thumbnail_urls: List[str] = field(default_factory=list)
    media: Optional[MediaPayload] = None
    thumbnails: List[MediaPayload] = field(default_factory=list)

    @property
    def kind(self) -> Optional[str]:
        return kind_from_type(self.type, self.name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            # Handles derived from an owned payload are regenerated on load.
            "url": self.url if self.media is None else "",
            "duration": self.duration,
            "thumbnail_urls": list(self.thumbnail_urls) if self.media is None else [],
            "media": self.media.to_dict() if self.media else None,
            "thumbnails": [t.to_dict() for t in self.thumbnails],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "MediaItem":
        raw_dur = d.get("duration")
        try:
            duration = float(raw_dur) if raw_dur is not None else None
        except Exception:
            duration = None
        urls = d.get("thumbnail_urls")
        return MediaItem(
            id=str(d.get("id") or new_id()),
            name=str(d.get("name") or ""),
            type=str(d.get("type") or ""),
            url=str(d.get("url") or ""),
            duration=duration,
            thumbnail_urls=[str(u) for u in urls] if isinstance(urls, list) else [],
            media=MediaPayload.from_dict(d.get("media")),
            thumbnails=_payload_list(d.get("thumbnails")),
        )


@dataclass
class ProjectSettings:
    width: int = 1280
    height: int = 720
    aspect_ratio: str = "16:9"

    def to_dict(self) -> Dict[str, Any]:
        return {"width": self.width, "height": self.height, "aspect_ratio": self.aspect_ratio}

    @staticmethod
    def from_dict(d: Any) -> "ProjectSettings":
        if not isinstance(d, dict):
            return ProjectSettings()
        out = ProjectSettings()
        try:
            out.width = max(1, int(d.get("width", out.width)))
        except Exception:
            out.width = 1280
        try:
            out.height = max(1, int(d.get("height", out.height)))
        except Exception:
            out.height = 720
        out.aspect_ratio = str(d.get("aspect_ratio") or out.aspect_ratio)
        return out


def empty_tracks() -> Dict[str, List[Clip]]:
    return {k: [] for k in TRACK_KINDS}


@dataclass
class Project:
    """
    The unit of persistence: every track, the media library and settings.

    `to_dict()` is the persisted record. Payload bytes are embedded as raw
    `bytes`; the storage layer decides how to lay them out on disk.
    """

    tracks: Dict[str, List[Clip]] = field(default_factory=empty_tracks)
    library: List[MediaItem] = field(default_factory=list)
    settings: ProjectSettings = field(default_factory=ProjectSettings)
    last_modified: int = 0

    def all_clips(self) -> List[Clip]:
        return [c for k in TRACK_KINDS for c in self.tracks.get(k, [])]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tracks": {k: [c.to_dict() for c in self.tracks.get(k, [])] for k in TRACK_KINDS},
            "library": [m.to_dict() for m in self.library],
            "settings": self.settings.to_dict(),
            "last_modified": int(self.last_modified),
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Project":
        if not isinstance(d, dict):
            raise ValueError("project record must be a mapping")
        raw_tracks = d.get("tracks", {})
        if not isinstance(raw_tracks, dict):
            raise ValueError("project record has no track map")

        tracks = empty_tracks()
        for k in TRACK_KINDS:
            raw = raw_tracks.get(k, [])
            if not isinstance(raw, list):
                raise ValueError(f"track {k!r} is not a list")
            try:
                tracks[k] = [Clip.from_dict(x) for x in raw]
            except (KeyError, TypeError, ValueError) as ex:
                raise ValueError(f"malformed clip in track {k!r}: {ex}") from ex

        raw_lib = d.get("library", [])
        library = [MediaItem.from_dict(x) for x in raw_lib if isinstance(x, dict)] if isinstance(raw_lib, list) else []
        try:
            last_modified = int(d.get("last_modified", 0) or 0)
        except Exception:
            last_modified = 0
        return Project(
            tracks=tracks,
            library=library,
            settings=ProjectSettings.from_dict(d.get("settings")),
            last_modified=last_modified,
        )
