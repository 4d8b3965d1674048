from __future__ import annotations

import asyncio
import hashlib
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Set

from .model import MediaPayload

BLOB_KEY = "__blob__"
_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageError(RuntimeError):
    """Raised for unreadable or inconsistent persisted records."""
    pass


def _atomic_write(p: Path, data: bytes) -> None:
    # Atomic write: auto-save shouldn't risk corrupting the stored record.
    p.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            delete=False,
            dir=str(p.parent),
            prefix=f".{p.name}.",
            suffix=".tmp",
        ) as fp:
            tmp_path = Path(fp.name)
            fp.write(data)
            fp.flush()
            try:
                os.fsync(fp.fileno())
            except OSError:
                pass
        os.replace(str(tmp_path), str(p))
    finally:
        if tmp_path and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


class ProjectStore:
    """
    Durable key/value store that can hold binary values.

    Layout under root_dir:
        <key>.json          the record, bytes replaced by {"__blob__": sha1}
        blobs/<sha1>.bin    content-addressed binary payloads

    Every put() fully replaces the previous record for that key.
    """

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = Path(root_dir)
        self.blob_dir = self.root_dir / "blobs"

    @staticmethod
    def default() -> "ProjectStore":
        return ProjectStore(Path.home() / ".reelcut" / "store")

    def _record_path(self, key: str) -> Path:
        k = str(key or "")
        if not _KEY_RE.match(k):
            raise ValueError(f"invalid store key: {key!r}")
        return self.root_dir / f"{k}.json"

    def _blob_path(self, digest: str) -> Path:
        return self.blob_dir / f"{digest}.bin"

    # ---------- encoding ----------
    def _encode(self, value: Any, refs: Set[str]) -> Any:
        if isinstance(value, (bytes, bytearray)):
            data = bytes(value)
            digest = hashlib.sha1(data).hexdigest()
            bp = self._blob_path(digest)
            if not (bp.exists() and bp.stat().st_size == len(data)):
                _atomic_write(bp, data)
            refs.add(digest)
            return {BLOB_KEY: digest}
        if isinstance(value, dict):
            return {str(k): self._encode(v, refs) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._encode(v, refs) for v in value]
        return value

    def _decode(self, value: Any) -> Any:
        if isinstance(value, dict):
            if set(value.keys()) == {BLOB_KEY}:
                digest = str(value[BLOB_KEY])
                try:
                    return self._blob_path(digest).read_bytes()
                except OSError as ex:
                    raise StorageError(f"missing blob {digest}") from ex
            return {k: self._decode(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._decode(v) for v in value]
        return value

    # ---------- sync API ----------
    def put(self, key: str, record: Dict[str, Any]) -> None:
        p = self._record_path(key)
        refs: Set[str] = set()
        encoded = self._encode(record, refs)
        payload = json.dumps(encoded, ensure_ascii=False, indent=2)
        _atomic_write(p, payload.encode("utf-8"))
        self.collect_garbage()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        p = self._record_path(key)
        try:
            raw = p.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as ex:
            raise StorageError(f"cannot read {p.name}: {ex}") from ex
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as ex:
            raise StorageError(f"corrupt record {p.name}: {ex}") from ex
        if not isinstance(data, dict):
            raise StorageError(f"corrupt record {p.name}: not an object")
        return self._decode(data)

    def delete(self, key: str) -> None:
        p = self._record_path(key)
        try:
            p.unlink()
        except FileNotFoundError:
            pass
        self.collect_garbage()

    def keys(self) -> list[str]:
        if not self.root_dir.exists():
            return []
        return sorted(p.stem for p in self.root_dir.glob("*.json"))

    def collect_garbage(self) -> int:
        """Remove blobs no record refers to. Returns how many were removed."""
        if not self.blob_dir.exists():
            return 0
        live: Set[str] = set()
        for p in self.root_dir.glob("*.json"):
            try:
                live.update(_blob_refs(json.loads(p.read_text(encoding="utf-8"))))
            except (OSError, ValueError):
                # Unreadable record: keep everything rather than guess.
                return 0
        removed = 0
        for bp in self.blob_dir.glob("*.bin"):
            if bp.stem not in live:
                try:
                    bp.unlink()
                    removed += 1
                except OSError:
                    pass
        return removed

    # ---------- async API ----------
    async def aput(self, key: str, record: Dict[str, Any]) -> None:
        await asyncio.to_thread(self.put, key, record)

    async def aget(self, key: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self.get, key)

    async def adelete(self, key: str) -> None:
        await asyncio.to_thread(self.delete, key)


def _blob_refs(value: Any) -> Set[str]:
    out: Set[str] = set()
    if isinstance(value, dict):
        if set(value.keys()) == {BLOB_KEY}:
            out.add(str(value[BLOB_KEY]))
        else:
            for v in value.values():
                out |= _blob_refs(v)
    elif isinstance(value, list):
        for v in value:
            out |= _blob_refs(v)
    return out


PENDING_KEY = "file"


class PendingUploads:
    """
    Hands one picked file from the landing page to the editor.

    take() removes the file so a later visit doesn't import it again.
    """

    def __init__(self, store: ProjectStore) -> None:
        self.store = store

    async def put(self, payload: MediaPayload) -> None:
        await self.store.aput(PENDING_KEY, payload.to_dict())

    async def take(self) -> Optional[MediaPayload]:
        record = await self.store.aget(PENDING_KEY)
        if record is None:
            return None
        await self.store.adelete(PENDING_KEY)
        return MediaPayload.from_dict(record)
