import asyncio
from typing import Optional

import structlog
from core.exceptions import BlobNotFoundError, ConflictError, NotFoundError, StorageError
from domain.interfaces import AssetStore
from domain.keys import MODELS_PREFIX, is_metadata_key, metadata_key
from domain.models import AssetStatus, MetadataRecord
from pydantic import ValidationError as PydanticValidationError

logger = structlog.get_logger()

METADATA_CONTENT_TYPE = "application/json"


class MetadataRepository:
    """
    Reads and writes metadata records through the AssetStore.

    The store has no partial update, so every save rewrites the whole record.
    Saves are conditional on the ETag seen at load time, so a concurrent writer
    produces a ConflictError instead of a silent lost update.
    """

    def __init__(self, store: AssetStore):
        self.store = store

    async def create(self, record: MetadataRecord) -> Optional[str]:
        """Writes a brand new record. Fails with ConflictError if the key is taken."""
        stored = await self.store.put(
            metadata_key(record.id), record.to_json(), METADATA_CONTENT_TYPE, if_none_match=True
        )
        return stored.etag

    async def load(self, asset_id: str) -> tuple[MetadataRecord, Optional[str]]:
        """Returns the record and the ETag to pass back into save()."""
        try:
            blob = await self.store.get(metadata_key(asset_id))
        except BlobNotFoundError as e:
            raise NotFoundError(f"Metadata for asset {asset_id} not found", original_error=e)

        try:
            record = MetadataRecord.from_json(blob.data)
        except PydanticValidationError as e:
            raise StorageError(f"Metadata for asset {asset_id} is corrupt", original_error=e)

        return record, blob.etag

    async def save(self, record: MetadataRecord, etag: Optional[str]) -> Optional[str]:
        """Full overwrite, bumping the record version. Raises ConflictError on a stale ETag."""
        if etag is None:
            raise ConflictError(f"Refusing unconditional overwrite of asset {record.id}")

        record.version += 1
        try:
            stored = await self.store.put(
                metadata_key(record.id), record.to_json(), METADATA_CONTENT_TYPE, if_match=etag
            )
        except Exception:
            record.version -= 1
            raise
        return stored.etag

    async def list_records(self) -> list[MetadataRecord]:
        """
        Every readable record, newest first. Unreadable records are logged and skipped.
        """
        entries = await self.store.list(MODELS_PREFIX)
        keys = [e.key for e in entries if is_metadata_key(e.key)]

        results = await asyncio.gather(*(self.store.get(k) for k in keys), return_exceptions=True)

        records: list[MetadataRecord] = []
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                logger.warning("metadata_fetch_failed", key=key, error=str(result))
                continue
            try:
                records.append(MetadataRecord.from_json(result.data))
            except PydanticValidationError as e:
                logger.warning("metadata_parse_failed", key=key, error=str(e))

        records.sort(key=lambda r: r.timestamp, reverse=True)
        return records


def apply_transition(record: MetadataRecord, target: AssetStatus) -> None:
    """Uploaded -> Ready | Error. Both targets are terminal."""
    if record.status is not AssetStatus.UPLOADED or not target.is_terminal:
        raise ConflictError(f"Asset {record.id} cannot move from {record.status.value} to {target.value}")
    record.status = target
