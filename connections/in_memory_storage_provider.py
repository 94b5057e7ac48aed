import hashlib
from typing import Dict, Iterable, Optional, Tuple

from core.exceptions import BlobNotFoundError, ConflictError
from domain.interfaces import AssetStore
from domain.models import BlobEntry, DeleteOutcome, StoredBlob, StoredObject


class InMemoryAssetStore(AssetStore):
    """
    Dict backed store for tests and local smoke runs.
    Mimics S3 semantics: deleting a missing key succeeds, conditional puts compare ETags.
    """

    def __init__(self, base_url: str = "memory://assets"):
        self.base_url = base_url
        # key -> (data, content_type)
        self.objects: Dict[str, Tuple[bytes, str]] = {}

    def seed(self, key: str, data: bytes, content_type: str = "application/octet-stream"):
        """
        Helper method to setup test state without going through put()
        """
        self.objects[key] = (data, content_type)

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> StoredObject:
        current = self.objects.get(key)

        if if_none_match and current is not None:
            raise ConflictError(f"Object already exists at '{key}'")
        if if_match is not None:
            current_etag = hashlib.md5(current[0]).hexdigest() if current else None
            if current_etag != if_match:
                raise ConflictError(f"Object at '{key}' changed since it was read")

        self.objects[key] = (data, content_type)
        return StoredObject(key=key, url=self.url_for(key), etag=hashlib.md5(data).hexdigest())

    async def get(self, key: str) -> StoredBlob:
        if key not in self.objects:
            raise BlobNotFoundError(key)
        data, _ = self.objects[key]
        return StoredBlob(key=key, data=data, etag=hashlib.md5(data).hexdigest())

    async def delete(self, keys: Iterable[str]) -> DeleteOutcome:
        outcome = DeleteOutcome()
        for key in keys:
            # Mimic S3: deleting an absent key is a success
            self.objects.pop(key, None)
            outcome.deleted.append(key)
        return outcome

    async def list(self, prefix: str) -> list[BlobEntry]:
        return [
            BlobEntry(key=key, url=self.url_for(key), size=len(data))
            for key, (data, _) in sorted(self.objects.items())
            if key.startswith(prefix)
        ]
