from __future__ import annotations

import asyncio
import logging
import math
from pathlib import Path
from typing import List, Optional, Protocol

from .handles import HandleRegistry
from .model import KIND_IMAGE, MediaPayload, kind_from_type

log = logging.getLogger("reelcut")

SECONDS_PER_THUMB = 5
MIN_THUMBS = 10
MAX_THUMBS = 120
THUMB_WIDTH = 150
FRAME_TIMEOUT_SEC = 0.9
FALLBACK_DURATION_SEC = 30.0
# Seeking exactly to the end of a stream often yields nothing.
END_MARGIN_SEC = 0.001

VIDEO_EXTS = (".mov", ".m4v", ".mp4", ".webm")


class FrameCaptureError(RuntimeError):
    """Raised when a frame could not be decoded at the requested time."""
    pass


class FrameCursor(Protocol):
    async def seek(self, time_sec: float) -> None: ...

    def capture(self) -> bytes: ...

    async def aclose(self) -> None: ...


def is_video_payload(payload: MediaPayload) -> bool:
    mime = str(payload.mime or "").lower()
    return mime.startswith("video") or Path(payload.name or "").suffix.lower() in VIDEO_EXTS


def thumbnail_count(
    duration: float,
    target_count: Optional[int] = None,
    seconds_per_thumb: float = SECONDS_PER_THUMB,
    min_thumbs: int = MIN_THUMBS,
    max_thumbs: int = MAX_THUMBS,
) -> int:
    if target_count is not None:
        return max(0, int(target_count))
    per = max(1.0, float(seconds_per_thumb))
    return int(min(max_thumbs, max(min_thumbs, math.ceil(float(duration) / per))))


def sample_times(duration: float, count: int) -> List[float]:
    """Evenly spaced times covering the start and stopping short of the end."""
    if count <= 0:
        return []
    return [min(duration - END_MARGIN_SEC, duration * i / count) for i in range(count)]


def backup_time(duration: float) -> float:
    # Not zero: the very first frame of many encodings is black.
    return min(0.5, duration * 0.02)


class FFmpegFrameCursor:
    """
    Decode cursor backed by ffmpeg.

    Every seek decodes one downscaled JPEG at the requested time. Cancelling a
    seek (e.g. on timeout) kills the running decoder, so a late frame can never
    land after the caller gave up on it.
    """

    def __init__(self, ffmpeg_path: str, src: str, width: int = THUMB_WIDTH, quality: int = 5) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.src = str(src)
        self.width = max(16, int(width or THUMB_WIDTH))
        self.quality = int(quality)
        self._frame: Optional[bytes] = None
        self._proc: Optional[asyncio.subprocess.Process] = None

    def command(self, time_sec: float) -> List[str]:
        t = max(0.0, float(time_sec))
        return [
            self.ffmpeg_path,
            "-v",
            "error",
            "-ss",
            f"{t:.6f}",
            "-i",
            self.src,
            "-frames:v",
            "1",
            "-vf",
            f"scale={self.width}:-1:flags=lanczos",
            "-f",
            "image2pipe",
            "-vcodec",
            "mjpeg",
            "-q:v",
            str(self.quality),
            "pipe:1",
        ]

    async def seek(self, time_sec: float) -> None:
        self._frame = None
        self._proc = await asyncio.create_subprocess_exec(
            *self.command(time_sec),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            out, err = await self._proc.communicate()
        finally:
            await self._kill()
        if self._proc.returncode != 0 or not out:
            msg = (err or b"").decode("utf-8", errors="replace").strip()
            raise FrameCaptureError(f"no frame at {time_sec:.3f}s: {msg or 'empty output'}")
        self._frame = out

    def capture(self) -> bytes:
        if not self._frame:
            raise FrameCaptureError("no frame decoded")
        return self._frame

    async def _kill(self) -> None:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()

    async def aclose(self) -> None:
        await self._kill()
        self._frame = None


async def _capture_at(cursor: FrameCursor, time_sec: float, timeout_sec: float) -> bytes:
    await asyncio.wait_for(cursor.seek(time_sec), timeout=timeout_sec)
    return cursor.capture()


def _thumb(data: bytes, index: int) -> MediaPayload:
    return MediaPayload(data=data, name=f"thumb_{index:03d}.jpg", mime="image/jpeg")


async def generate_thumbnails(
    payload: MediaPayload,
    *,
    duration: Optional[float] = None,
    target_count: Optional[int] = None,
    seconds_per_thumb: float = SECONDS_PER_THUMB,
    min_thumbs: int = MIN_THUMBS,
    max_thumbs: int = MAX_THUMBS,
    thumb_width: int = THUMB_WIDTH,
    frame_timeout_sec: float = FRAME_TIMEOUT_SEC,
    ffmpeg_path: str = "ffmpeg",
    cursor: Optional[FrameCursor] = None,
    registry: Optional[HandleRegistry] = None,
) -> List[MediaPayload]:
    """
    Sample a media payload into an ordered list of still images.

    Images come back as-is and unsupported payloads as an empty list. For
    video, each sample waits at most `frame_timeout_sec`; a failed sample is
    replaced by the latest good frame (or the early backup frame), so the
    result has exactly `count` entries unless nothing could be decoded at all.
    Never raises for decode problems.
    """
    if kind_from_type(payload.mime, payload.name) == KIND_IMAGE:
        return [payload]
    if not is_video_payload(payload):
        return []

    try:
        dur = float(duration) if duration is not None else FALLBACK_DURATION_SEC
    except (TypeError, ValueError):
        dur = FALLBACK_DURATION_SEC
    if not math.isfinite(dur) or dur <= 0.0:
        dur = FALLBACK_DURATION_SEC

    count = thumbnail_count(
        dur,
        target_count=target_count,
        seconds_per_thumb=seconds_per_thumb,
        min_thumbs=min_thumbs,
        max_thumbs=max_thumbs,
    )

    own_cursor = cursor is None
    if cursor is None:
        try:
            src = payload.handle or await asyncio.to_thread(payload.regenerate, registry)
        except OSError as ex:
            log.warning("cannot materialize %s for thumbnails: %s", payload.name, ex)
            return []
        cursor = FFmpegFrameCursor(ffmpeg_path, src, width=thumb_width)

    out: List[MediaPayload] = []
    fallback: Optional[MediaPayload] = None
    failures = 0
    # Samples that failed before any frame existed to stand in for them.
    leading_misses = 0
    try:
        try:
            fallback = _thumb(await _capture_at(cursor, backup_time(dur), frame_timeout_sec), 0)
        except Exception as ex:
            log.debug("backup frame failed for %s: %s", payload.name, ex)

        for i, t in enumerate(sample_times(dur, count)):
            try:
                shot = _thumb(await _capture_at(cursor, t, frame_timeout_sec), i)
            except Exception as ex:
                failures += 1
                log.debug("frame %d at %.3fs failed for %s: %s", i, t, payload.name, ex)
                if fallback is not None:
                    out.append(fallback)
                else:
                    leading_misses += 1
                continue
            if leading_misses:
                out.extend([shot] * leading_misses)
                leading_misses = 0
            out.append(shot)
            fallback = shot
    finally:
        if own_cursor:
            try:
                await cursor.aclose()
            except Exception:
                log.exception("closing frame cursor failed")

    if failures:
        log.info("thumbnails for %s: %d/%d samples substituted", payload.name, failures, count)
    return out
