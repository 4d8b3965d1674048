from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .thumbnails import FRAME_TIMEOUT_SEC, MAX_THUMBS, MIN_THUMBS, SECONDS_PER_THUMB, THUMB_WIDTH


@dataclass(frozen=True)
class ThumbnailOptions:
    seconds_per_thumb: float = SECONDS_PER_THUMB
    min_thumbs: int = MIN_THUMBS
    max_thumbs: int = MAX_THUMBS
    thumb_width: int = THUMB_WIDTH
    frame_timeout_sec: float = FRAME_TIMEOUT_SEC

    @staticmethod
    def from_dict(d: Any) -> "ThumbnailOptions":
        if not isinstance(d, dict):
            return ThumbnailOptions()
        base = ThumbnailOptions()
        try:
            per = max(1.0, float(d.get("seconds_per_thumb", base.seconds_per_thumb)))
        except Exception:
            per = base.seconds_per_thumb
        try:
            lo = max(1, int(d.get("min_thumbs", base.min_thumbs)))
        except Exception:
            lo = base.min_thumbs
        try:
            hi = max(lo, int(d.get("max_thumbs", base.max_thumbs)))
        except Exception:
            hi = max(lo, base.max_thumbs)
        try:
            width = max(16, int(d.get("thumb_width", base.thumb_width)))
        except Exception:
            width = base.thumb_width
        try:
            timeout = max(0.05, float(d.get("frame_timeout_sec", base.frame_timeout_sec)))
        except Exception:
            timeout = base.frame_timeout_sec
        return ThumbnailOptions(
            seconds_per_thumb=per,
            min_thumbs=lo,
            max_thumbs=hi,
            thumb_width=width,
            frame_timeout_sec=timeout,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seconds_per_thumb": self.seconds_per_thumb,
            "min_thumbs": self.min_thumbs,
            "max_thumbs": self.max_thumbs,
            "thumb_width": self.thumb_width,
            "frame_timeout_sec": self.frame_timeout_sec,
        }


class ConfigStore:
    """
    Simple JSON config store.

    Default location: ~/.reelcut/config.json
    """

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = Path(root_dir)
        self.path = self.root_dir / "config.json"

    @staticmethod
    def default() -> "ConfigStore":
        return ConfigStore(Path.home() / ".reelcut")

    def load(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return data
        except FileNotFoundError:
            return self.default_config()
        except Exception:
            # Corrupted file; don't crash the app.
            return self.default_config()
        return self.default_config()

    def save(self, data: Dict[str, Any]) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def default_config(self) -> Dict[str, Any]:
        return {
            "auto_save_interval_sec": 60,
            "auto_save_debounce_sec": 2.0,
            "store_dir": "",
            "ffmpeg_dir": "",
            "last_import_dir": "",
            "thumbnails": ThumbnailOptions().to_dict(),
        }

    def auto_save_interval_sec(self) -> int:
        cfg = self.load()
        raw = cfg.get("auto_save_interval_sec", 60)
        try:
            v = int(raw)
        except Exception:
            v = 60
        # Clamp: don't allow 0 or extremely small values.
        return max(10, min(3600, v))

    def auto_save_debounce_sec(self) -> float:
        raw = self.load().get("auto_save_debounce_sec", 2.0)
        try:
            v = float(raw)
        except Exception:
            v = 2.0
        return max(0.0, min(60.0, v))

    def store_dir(self) -> Path:
        raw = str(self.load().get("store_dir") or "").strip()
        return Path(raw).expanduser() if raw else self.root_dir / "store"

    def ffmpeg_dir(self) -> Optional[str]:
        raw = str(self.load().get("ffmpeg_dir") or "").strip()
        return raw or None

    def thumbnail_options(self) -> ThumbnailOptions:
        return ThumbnailOptions.from_dict(self.load().get("thumbnails"))

    def last_import_dir(self) -> str:
        raw = str(self.load().get("last_import_dir") or "").strip()
        if raw and Path(raw).is_dir():
            return raw
        return ""

    def set_last_import_dir(self, path: str) -> None:
        p = str(path or "").strip()
        if not p:
            return
        d = Path(p)
        if not d.is_dir():
            d = d.parent
        try:
            d = d.resolve()
        except Exception:
            pass
        cfg = self.load()
        cfg["last_import_dir"] = str(d)
        self.save(cfg)
