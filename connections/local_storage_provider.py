import asyncio
import hashlib
from pathlib import Path
from typing import Iterable, Optional

import aiofiles
import aiofiles.os
import structlog
from core.exceptions import BlobNotFoundError, ConflictError, StorageError
from domain.interfaces import AssetStore
from domain.models import BlobEntry, DeleteOutcome, StoredBlob, StoredObject

logger = structlog.get_logger()


def _etag(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class LocalFileStorage(AssetStore):
    def __init__(self, base_path: Path, base_url: str):
        # Ensure the directory exists
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        # Result: http://localhost:8000/static/models/{id}/texture.png
        self.base_url = f"{base_url.rstrip('/')}/static"
        # Serialises check-and-write for conditional puts within this process
        self._write_lock = asyncio.Lock()

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    async def _read(self, path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> StoredObject:
        """
        Saves bytes to disk and returns a static localhost URL.
        """
        file_path = self._path_for(key)

        try:
            async with self._write_lock:
                if if_match is not None or if_none_match:
                    exists = await aiofiles.os.path.exists(file_path)
                    if if_none_match and exists:
                        raise ConflictError(f"Object already exists at '{key}'")
                    if if_match is not None:
                        current = _etag(await self._read(file_path)) if exists else None
                        if current != if_match:
                            raise ConflictError(f"Object at '{key}' changed since it was read")

                # Ensure subdirectories exist (e.g. models/{id}/model.obj)
                file_path.parent.mkdir(parents=True, exist_ok=True)

                async with aiofiles.open(file_path, "wb") as f:
                    await f.write(data)
        except OSError as e:
            logger.error("local_put_failed", key=key, error=str(e))
            raise StorageError(f"Failed to write '{key}': {e}", original_error=e)

        return StoredObject(key=key, url=self.url_for(key), etag=_etag(data))

    async def get(self, key: str) -> StoredBlob:
        file_path = self._path_for(key)
        try:
            data = await self._read(file_path)
        except FileNotFoundError as e:
            raise BlobNotFoundError(key, original_error=e)
        except OSError as e:
            logger.error("local_get_failed", key=key, error=str(e))
            raise StorageError(f"Failed to read '{key}': {e}", original_error=e)

        return StoredBlob(key=key, data=data, etag=_etag(data))

    async def delete(self, keys: Iterable[str]) -> DeleteOutcome:
        outcome = DeleteOutcome()
        for key in keys:
            try:
                await aiofiles.os.remove(self._path_for(key))
                outcome.deleted.append(key)
            except FileNotFoundError:
                # Already gone counts as deleted
                outcome.deleted.append(key)
            except (OSError, StorageError) as e:
                logger.warning("local_delete_failed", key=key, error=str(e))
                outcome.failed[key] = str(e)
        return outcome

    async def list(self, prefix: str) -> list[BlobEntry]:
        # The prefix may end mid-filename (e.g. "models/{id}/model."), so walk its directory
        search_root = self.base_path / prefix.rsplit("/", 1)[0] if "/" in prefix else self.base_path

        def _walk() -> list[BlobEntry]:
            if not search_root.is_dir():
                return []
            entries = []
            for path in sorted(search_root.rglob("*")):
                if not path.is_file():
                    continue
                key = path.relative_to(self.base_path).as_posix()
                if key.startswith(prefix):
                    entries.append(BlobEntry(key=key, url=self.url_for(key), size=path.stat().st_size))
            return entries

        try:
            return await asyncio.to_thread(_walk)
        except OSError as e:
            raise StorageError(f"Failed to list '{prefix}': {e}", original_error=e)
