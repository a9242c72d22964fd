"""Best-effort media storage for generated images."""

from __future__ import annotations

import asyncio
import base64
import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from config import settings

logger = logging.getLogger(__name__)


@dataclass
class StoredImage:
    url: str
    path: str

    def as_dict(self) -> Dict[str, str]:
        return {"url": self.url, "path": self.path}


def _safe_segment(value: str) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in {"-", "_"} else "_" for ch in value or "")
    return cleaned or "anonymous"


class MediaStorage:
    """Writes PNG payloads under a root directory served at a public base URL."""

    def __init__(self, root_dir: str, public_base_url: str, enabled: bool = True):
        self.root = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.enabled = enabled

    def _write(self, relative_path: str, data: bytes) -> None:
        destination = self.root / relative_path
        destination.parent.mkdir(parents=True, exist_ok=True)
        with destination.open("xb") as out:
            out.write(data)

    async def put(self, user_id: str, data: bytes) -> StoredImage:
        relative_path = f"{_safe_segment(user_id)}/{int(time.time() * 1000)}_{uuid.uuid4()}.png"
        await asyncio.to_thread(self._write, relative_path, data)
        return StoredImage(url=f"{self.public_base_url}/{relative_path}", path=relative_path)

    async def put_many(self, user_id: str, images_b64: List[str]) -> List[StoredImage]:
        stored = []
        for payload in images_b64:
            stored.append(await self.put(user_id, base64.b64decode(payload)))
        return stored


_storage: Optional[MediaStorage] = None


def get_media_storage() -> MediaStorage:
    global _storage
    if _storage is None:
        _storage = MediaStorage(
            settings.MEDIA_STORAGE_DIR,
            settings.MEDIA_PUBLIC_BASE_URL,
            enabled=settings.MEDIA_STORAGE_ENABLED,
        )
    return _storage


async def upload_images_best_effort(
    storage: MediaStorage,
    user_id: str,
    images_b64: List[str],
    timeout_seconds: Optional[float] = None,
) -> List[StoredImage]:
    """Persist all images within the timeout, or return nothing so callers fall back to base64."""
    if not storage.enabled or not images_b64:
        return []
    timeout = settings.STORAGE_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
    try:
        return await asyncio.wait_for(storage.put_many(user_id, images_b64), timeout=timeout)
    except Exception as exc:
        logger.warning("Media upload skipped for user %s: %r", user_id, exc)
        return []


def resolve_stored_path(storage: MediaStorage, relative_path: str) -> Optional[Path]:
    """Map a public media path back to a stored file, refusing anything outside the root."""
    if not storage.enabled:
        return None
    root = storage.root.resolve()
    candidate = (root / relative_path).resolve()
    if root not in candidate.parents or not candidate.is_file():
        return None
    return candidate
