from __future__ import annotations

import math
from dataclasses import replace
from typing import List, Optional, Tuple

from .model import (
    KIND_IMAGE,
    KIND_TEXT,
    KIND_VIDEO,
    Clip,
    MediaItem,
    MediaPayload,
    TextStyle,
    new_id,
)
from .ripple import reflow

DEFAULT_CLIP_DURATION_SEC = 5.0
TEXT_CLIP_DURATION_SEC = 3.0
# Minimum distance between a split point and either clip edge.
SPLIT_GUARD_SEC = 0.1
MIN_TRIM_SEC = 0.1


def create_clip(meta: MediaItem, start_offset: float, raw_media: Optional[MediaPayload] = None) -> Clip:
    """
    Build a clip from an ingested library item.

    Missing duration metadata falls back to DEFAULT_CLIP_DURATION_SEC; images
    (and sources without a known length) get an infinite source duration.
    """
    kind = meta.kind or KIND_VIDEO
    try:
        meta_dur = float(meta.duration) if meta.duration is not None else None
    except (TypeError, ValueError):
        meta_dur = None
    if meta_dur is not None and (not math.isfinite(meta_dur) or meta_dur <= 0.0):
        meta_dur = None

    duration = meta_dur if meta_dur is not None else DEFAULT_CLIP_DURATION_SEC
    if kind == KIND_IMAGE or meta_dur is None:
        source_duration = math.inf
    else:
        source_duration = meta_dur

    return Clip(
        id=new_id(),
        kind=kind,
        start_offset=max(0.0, float(start_offset)),
        duration=duration,
        source_duration=source_duration,
        media_start_offset=0.0,
        name=meta.name,
        media=raw_media if raw_media is not None else meta.media,
        thumbnails=list(meta.thumbnails),
    )


def create_text_clip(start_offset: float, text: Optional[str] = None) -> Clip:
    style = TextStyle()
    if text is not None:
        style.text = str(text)
    return Clip(
        id=new_id(),
        kind=KIND_TEXT,
        start_offset=max(0.0, float(start_offset)),
        duration=TEXT_CLIP_DURATION_SEC,
        source_duration=math.inf,
        name=style.text,
        style=style,
    )


def find_clip(clips: List[Clip], clip_id: str) -> Optional[Clip]:
    for c in clips:
        if c.id == clip_id:
            return c
    return None


def track_end(clips: List[Clip]) -> float:
    """End of the last clip on the track (0 for an empty track)."""
    return max((c.end for c in clips), default=0.0)


def append_clip(clips: List[Clip], clip: Clip) -> List[Clip]:
    """Place a clip right after the current end of the track."""
    placed = replace(clip, start_offset=track_end(clips))
    return reflow([*clips, placed], active_id=placed.id)


def insert_clip(clips: List[Clip], clip: Clip) -> List[Clip]:
    """Insert a clip at its own start offset, pushing later clips forward."""
    return reflow([*clips, clip], active_id=clip.id)


def split_clip(
    clips: List[Clip],
    clip_id: str,
    split_time: float,
    guard_sec: float = SPLIT_GUARD_SEC,
) -> Tuple[List[Clip], Optional[str], str]:
    """
    Split a clip into two contiguous clips at an absolute timeline time.

    Args:
        clips: clips of the track holding `clip_id`
        clip_id: id of clip to split
        split_time: timeline position of the cut (seconds)
        guard_sec: guard band on both edges against degenerate fragments

    Returns:
        (new_clips, second_fragment_id, message); on rejection the input list
        is returned unchanged with second_fragment_id None.
    """
    c = find_clip(clips, clip_id)
    if c is None:
        return clips, None, "Split failed: clip not found"

    t = float(split_time)
    if not (c.start_offset + guard_sec < t < c.end - guard_sec):
        return clips, None, "Split point too close to the clip edge"

    first_dur = t - c.start_offset
    first = replace(c, duration=first_dur)
    second = replace(
        c,
        id=new_id(),
        start_offset=t,
        duration=c.end - t,
        media_start_offset=c.media_start_offset + first_dur,
        style=replace(c.style) if c.style is not None else None,
        thumbnails=list(c.thumbnails),
    )

    out: List[Clip] = []
    for x in clips:
        if x.id == clip_id:
            out.extend([first, second])
        else:
            out.append(x)
    return reflow(out, active_id=second.id), second.id, "Split"


def move_clip(clips: List[Clip], clip_id: str, new_start: float) -> Tuple[List[Clip], str]:
    """Move a clip to a new start time; the moved clip wins ties at its new edge."""
    c = find_clip(clips, clip_id)
    if c is None:
        return clips, "Move failed: clip not found"
    start = max(0.0, float(new_start))
    if abs(c.start_offset - start) < 1e-9:
        return clips, "Move: no changes"
    out = [replace(x, start_offset=start) if x.id == clip_id else x for x in clips]
    return reflow(out, active_id=clip_id), "Moved"


def trim_clip(
    clips: List[Clip],
    clip_id: str,
    media_start_offset: float,
    duration: float,
    min_piece_sec: float = MIN_TRIM_SEC,
) -> Tuple[List[Clip], str]:
    """
    Adjust which part of the source a clip shows (non-destructive).

    The timeline start stays put; later clips are pushed if the clip grows.
    """
    media_start = float(media_start_offset)
    dur = float(duration)
    if media_start < 0:
        return clips, "Trim failed: in < 0"
    if dur < float(min_piece_sec):
        return clips, "Trim failed: clip too short"

    c = find_clip(clips, clip_id)
    if c is None:
        return clips, "Trim failed: clip not found"
    if media_start + dur > c.source_duration + 1e-9:
        return clips, "Trim failed: beyond end of source"
    if abs(c.media_start_offset - media_start) < 1e-9 and abs(c.duration - dur) < 1e-9:
        return clips, "Trim: no changes"

    out = [replace(x, media_start_offset=media_start, duration=dur) if x.id == clip_id else x for x in clips]
    return reflow(out, active_id=clip_id), "Trimmed"


def delete_clip(clips: List[Clip], clip_id: str) -> Tuple[List[Clip], str]:
    out = [c for c in clips if c.id != clip_id]
    if len(out) == len(clips):
        return clips, "Delete failed: clip not found"
    return out, "Deleted"
