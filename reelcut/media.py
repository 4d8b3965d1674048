from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .model import KIND_AUDIO, KIND_IMAGE, KIND_VIDEO, kind_from_type

log = logging.getLogger("reelcut")

IMAGE_DURATION_SEC = 3.0
METADATA_TIMEOUT_SEC = 5.0
# Used when metadata never arrives for a format we expect to play.
TIMEOUT_FALLBACK_DURATION_SEC = 30.0
ERROR_FALLBACK_DURATION_SEC = 5.0


@dataclass(frozen=True)
class MediaInfo:
    duration: float
    has_video: bool
    has_audio: bool
    width: int = 0
    height: int = 0


class FFmpegNotFound(RuntimeError):
    """Raised when ffmpeg/ffprobe cannot be located."""
    pass


def _which(name: str, local_bin: Path) -> Optional[str]:
    local = local_bin / name
    if local.exists():
        return str(local)
    return shutil.which(name)


def resolve_ffmpeg_bins(project_root: Path, bin_dir: Optional[str] = None) -> Tuple[str, str]:
    """Return (ffmpeg_path, ffprobe_path). Prefer a configured dir, then ./bin, then PATH."""
    search = [Path(bin_dir)] if bin_dir else []
    search.append(Path(project_root) / "bin")

    exe = ".exe" if os.name == "nt" else ""
    ffmpeg: Optional[str] = None
    ffprobe: Optional[str] = None
    for d in search:
        ffmpeg = ffmpeg or _which(f"ffmpeg{exe}", d)
        ffprobe = ffprobe or _which(f"ffprobe{exe}", d)

    if not ffmpeg or not ffprobe:
        raise FFmpegNotFound(f"ffmpeg/ffprobe not found in {', '.join(str(d) for d in search)} or PATH")
    return ffmpeg, ffprobe


def _probe_cmd(ffprobe_path: str, src: str) -> list[str]:
    return [
        ffprobe_path,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        src,
    ]


def _parse_probe(data: Dict[str, Any]) -> MediaInfo:
    fmt = data.get("format", {}) or {}
    try:
        dur = float(fmt.get("duration", 0.0) or 0.0)
    except (TypeError, ValueError):
        dur = 0.0

    streams = data.get("streams", []) or []
    video = next((s for s in streams if s.get("codec_type") == "video"), None)
    has_a = any(s.get("codec_type") == "audio" for s in streams)

    width = height = 0
    if video is not None:
        try:
            width = int(video.get("width", 0) or 0)
            height = int(video.get("height", 0) or 0)
        except (TypeError, ValueError):
            width = height = 0

    return MediaInfo(duration=dur, has_video=video is not None, has_audio=has_a, width=width, height=height)


def probe_media(ffprobe_path: str, src: str) -> MediaInfo:
    """Use ffprobe to get duration and whether streams exist."""
    p = subprocess.run(_probe_cmd(ffprobe_path, src), capture_output=True, text=True, check=True)
    return _parse_probe(json.loads(p.stdout))


async def probe_media_async(ffprobe_path: str, src: str, timeout_sec: float = METADATA_TIMEOUT_SEC) -> MediaInfo:
    """
    Same as probe_media, without blocking the event loop.

    Raises asyncio.TimeoutError when ffprobe does not answer in time (the
    process is killed) and subprocess.CalledProcessError on a failed probe.
    """
    proc = await asyncio.create_subprocess_exec(
        *_probe_cmd(ffprobe_path, src),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout_sec)
    except asyncio.TimeoutError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise
    if proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, ffprobe_path, output=out, stderr=err)
    return _parse_probe(json.loads(out.decode("utf-8", errors="replace")))


def is_quicktime(name: str, mime: str = "") -> bool:
    return str(name or "").lower().endswith(".mov") or str(mime or "").lower() == "video/quicktime"


async def load_media_duration(
    ffprobe_path: str,
    path: str,
    name: str = "",
    mime: str = "",
    timeout_sec: float = METADATA_TIMEOUT_SEC,
) -> Optional[float]:
    """
    Duration of an ingested file, or None when the format can't be played.

    Images count as IMAGE_DURATION_SEC. QuickTime files that time out or fail
    to probe are usually HEVC and reported unsupported; other formats fall
    back to a fixed duration so ingestion can continue.
    """
    label = name or Path(path).name
    kind = kind_from_type(mime, label)
    if kind == KIND_IMAGE:
        return IMAGE_DURATION_SEC
    if kind not in (KIND_VIDEO, KIND_AUDIO):
        log.warning("unsupported media type: %s", label)
        return None

    mov = is_quicktime(label, mime)
    try:
        info = await probe_media_async(ffprobe_path, path, timeout_sec=timeout_sec)
    except asyncio.TimeoutError:
        if mov:
            log.warning("metadata read timed out, format not supported (maybe HEVC): %s", label)
            return None
        log.warning("metadata read timed out for %s, using %.0fs", label, TIMEOUT_FALLBACK_DURATION_SEC)
        return TIMEOUT_FALLBACK_DURATION_SEC
    except (OSError, ValueError, subprocess.CalledProcessError) as ex:
        if mov:
            log.warning("cannot load %s: %s", label, ex)
            return None
        log.warning("probe failed for %s (%s), using %.0fs", label, ex, ERROR_FALLBACK_DURATION_SEC)
        return ERROR_FALLBACK_DURATION_SEC

    if kind == KIND_VIDEO and info.width == 0:
        log.warning("format not supported (no decodable video): %s", label)
        return None
    if info.duration <= 0.0:
        return TIMEOUT_FALLBACK_DURATION_SEC if kind == KIND_VIDEO else ERROR_FALLBACK_DURATION_SEC
    return info.duration
