from __future__ import annotations

import atexit
import hashlib
import mimetypes
import shutil
import tempfile
from pathlib import Path
from typing import Optional


def payload_digest(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class HandleRegistry:
    """
    Process-local transient handles for binary payloads.

    A handle is a file path inside a private temp directory, named after the
    payload digest. The same bytes always map to the same path for the lifetime
    of the registry; the directory is discarded on release_all() or exit.
    """

    def __init__(self, root_dir: Optional[Path] = None) -> None:
        self._root: Optional[Path] = Path(root_dir) if root_dir is not None else None
        self._owns_root = root_dir is None

    @property
    def root_dir(self) -> Path:
        if self._root is None:
            self._root = Path(tempfile.mkdtemp(prefix="reelcut_handles_"))
        return self._root

    def handle_for(self, data: bytes, name: str = "", mime: str = "") -> str:
        suffix = Path(name).suffix.lower()
        if not suffix and mime:
            suffix = mimetypes.guess_extension(mime) or ""
        digest = payload_digest(data)[:24]
        root = self.root_dir
        root.mkdir(parents=True, exist_ok=True)
        out = root / f"{digest}{suffix}"
        try:
            if out.exists() and out.stat().st_size == len(data):
                return str(out)
        except OSError:
            pass
        out.write_bytes(data)
        return str(out)

    def release_all(self) -> None:
        """Invalidate every handle handed out so far."""
        if self._root is None:
            return
        if self._owns_root:
            shutil.rmtree(self._root, ignore_errors=True)
            self._root = None
        else:
            for p in self._root.glob("*"):
                try:
                    p.unlink()
                except OSError:
                    pass


_default_registry: Optional[HandleRegistry] = None


def default_registry() -> HandleRegistry:
    global _default_registry
    if _default_registry is None:
        _default_registry = HandleRegistry()
        atexit.register(_default_registry.release_all)
    return _default_registry
