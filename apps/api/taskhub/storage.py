from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from taskhub.config import Settings
from taskhub.errors import NotFound

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
  async def put(self, key: str, data: bytes) -> None: ...

  async def get(self, key: str) -> bytes: ...

  async def delete(self, key: str) -> None: ...


def blob_key(attachment_id: int, filename: str) -> str:
  return f"{attachment_id}/{filename}"


class LocalBlobStore:
  def __init__(self, root: str | Path) -> None:
    self.root = Path(root).resolve()

  def _path(self, key: str) -> Path:
    p = (self.root / key).resolve()
    if self.root not in p.parents:
      raise ValueError(f"Blob key escapes storage root: {key!r}")
    return p

  async def put(self, key: str, data: bytes) -> None:
    p = self._path(key)

    def _write() -> None:
      p.parent.mkdir(parents=True, exist_ok=True)
      p.write_bytes(data)

    await asyncio.to_thread(_write)

  async def get(self, key: str) -> bytes:
    p = self._path(key)
    try:
      return await asyncio.to_thread(p.read_bytes)
    except FileNotFoundError as exc:
      raise NotFound("File not found") from exc

  async def delete(self, key: str) -> None:
    p = self._path(key)

    def _unlink() -> None:
      p.unlink()
      # drop the per-attachment directory once it is empty
      if p.parent != self.root and not any(p.parent.iterdir()):
        p.parent.rmdir()

    await asyncio.to_thread(_unlink)


class MemoryBlobStore:
  def __init__(self) -> None:
    self.blobs: dict[str, bytes] = {}

  async def put(self, key: str, data: bytes) -> None:
    self.blobs[key] = bytes(data)

  async def get(self, key: str) -> bytes:
    try:
      return self.blobs[key]
    except KeyError as exc:
      raise NotFound("File not found") from exc

  async def delete(self, key: str) -> None:
    del self.blobs[key]


async def delete_best_effort(store: BlobStore, key: str) -> bool:
  """
  Delete a blob, treating any failure as non-fatal.

  A missing blob is not an error for callers removing it. Failures are logged
  and reported through the return value instead of being raised.
  """
  try:
    await store.delete(key)
  except Exception as exc:
    logger.warning("blob delete failed for %s: %s", key, exc)
    return False
  return True


def build_blob_store(cfg: Settings) -> BlobStore:
  backend = (cfg.storage_backend or "local").strip().lower()
  if backend == "memory":
    return MemoryBlobStore()
  if backend == "local":
    return LocalBlobStore(cfg.storage_dir)
  raise ValueError(f"Unknown storage backend: {cfg.storage_backend!r}")
