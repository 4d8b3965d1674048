from __future__ import annotations

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Optional

from .config import ThumbnailOptions
from .handles import HandleRegistry, default_registry
from .media import load_media_duration
from .model import KIND_IMAGE, KIND_VIDEO, MediaItem, MediaPayload, kind_from_type, new_id
from .thumbnails import generate_thumbnails

log = logging.getLogger("reelcut")


def guess_mime(path: str) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    if mime:
        return mime
    # mimetypes doesn't know these on every platform.
    ext = Path(str(path)).suffix.lower()
    return {
        ".mov": "video/quicktime",
        ".m4v": "video/x-m4v",
        ".webm": "video/webm",
        ".mkv": "video/x-matroska",
        ".m4a": "audio/mp4",
        ".flac": "audio/flac",
    }.get(ext, "")


async def ingest_file(
    path: str,
    *,
    ffmpeg_path: str,
    ffprobe_path: str,
    registry: Optional[HandleRegistry] = None,
    options: Optional[ThumbnailOptions] = None,
) -> Optional[MediaItem]:
    """
    Turn a file on disk into a library item with its payload and thumbnails.

    Returns None (after logging a warning) for media that can't be used.
    """
    src = Path(path)
    name = src.name
    mime = guess_mime(path)
    kind = kind_from_type(mime, name)
    if kind is None:
        log.warning("unsupported media: %s", name)
        return None

    reg = registry or default_registry()
    opts = options or ThumbnailOptions()

    data = await asyncio.to_thread(src.read_bytes)
    payload = MediaPayload(data=data, name=name, mime=mime)
    handle = await asyncio.to_thread(payload.regenerate, reg)

    duration = await load_media_duration(ffprobe_path, handle, name=name, mime=mime)
    if duration is None:
        return None

    thumbs = []
    if kind in (KIND_VIDEO, KIND_IMAGE):
        thumbs = await generate_thumbnails(
            payload,
            duration=duration,
            seconds_per_thumb=opts.seconds_per_thumb,
            min_thumbs=opts.min_thumbs,
            max_thumbs=opts.max_thumbs,
            thumb_width=opts.thumb_width,
            frame_timeout_sec=opts.frame_timeout_sec,
            ffmpeg_path=ffmpeg_path,
            registry=reg,
        )
        for t in thumbs:
            if t.handle is None:
                await asyncio.to_thread(t.regenerate, reg)

    return MediaItem(
        id=new_id(),
        name=name,
        type=mime,
        url=handle,
        duration=duration,
        thumbnail_urls=[t.handle for t in thumbs if t.handle],
        media=payload,
        thumbnails=thumbs,
    )
