from abc import ABC, abstractmethod
from typing import Iterable, Optional

from domain.models import BlobEntry, DeleteOutcome, StoredBlob, StoredObject


class AssetStore(ABC):
    """
    Key based object storage. Every call is independent network I/O:
    there is no atomicity across keys.
    """

    base_url: str = ""

    @abstractmethod
    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> StoredObject:
        """
        Stores bytes and returns the public URL plus the new ETag.
        if_match: only overwrite when the current ETag equals this token.
        if_none_match: only write when the key does not exist yet.
        Raises ConflictError when a condition fails.
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> StoredBlob:
        """Raises BlobNotFoundError if nothing is stored at key."""
        pass

    @abstractmethod
    async def delete(self, keys: Iterable[str]) -> DeleteOutcome:
        """Best-effort batch delete. Missing keys count as deleted."""
        pass

    @abstractmethod
    async def list(self, prefix: str) -> list[BlobEntry]:
        pass

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def key_for(self, url_or_key: str) -> str:
        """Maps one of our public URLs (or a bare key) back to the storage key."""
        prefix = f"{self.base_url}/"
        if self.base_url and url_or_key.startswith(prefix):
            return url_or_key[len(prefix) :]
        return url_or_key


class HeadlessRenderer(ABC):
    @abstractmethod
    async def capture(self, page_url: str, signal_timeout: float) -> bytes:
        """
        Opens page_url, waits (up to signal_timeout seconds) for the page to
        raise its completion signal and returns a transparent PNG screenshot.
        """
        pass


class RenderDispatcher(ABC):
    @abstractmethod
    async def dispatch(self, asset_id: str) -> None:
        """One-way hand-off of an asset id to the render worker."""
        pass
