import structlog
from core.exceptions import StorageError
from core.telemetry import tracer
from domain.interfaces import AssetStore
from domain.keys import asset_prefix, metadata_key, model_key, texture_key, thumbnail_key
from domain.models import DeleteResponse, MetadataRecord
from services.metadata_repository import MetadataRepository

logger = structlog.get_logger()


class CascadeDeleter:
    """
    Removes an asset's metadata record together with every blob it references.

    The store deletes keys independently, so a partial failure can leave e.g.
    the metadata gone but the model still stored. The aggregate result is
    reported; nothing is rolled back or retried.
    """

    def __init__(self, store: AssetStore, repository: MetadataRepository):
        self.store = store
        self.repository = repository

    async def delete(self, asset_id: str) -> DeleteResponse:
        with tracer.start_as_current_span("delete_asset"):
            log = logger.bind(asset_id=asset_id)

            # NotFoundError propagates: caller treats it as "already deleted"
            record, _ = await self.repository.load(asset_id)

            keys = await self.keys_for(record)
            log.info("delete_started", keys=keys)

            outcome = await self.store.delete(keys)
            if not outcome.ok:
                log.error("delete_partial_failure", failed=outcome.failed, deleted=outcome.deleted)
                raise StorageError(
                    f"Failed to delete {len(outcome.failed)} of {len(keys)} objects for asset {asset_id}"
                )

            log.info("asset_deleted", deleted=len(outcome.deleted))
            return DeleteResponse(id=asset_id, message="Model and its assets were deleted.")

    async def keys_for(self, record: MetadataRecord) -> list[str]:
        """
        Record fields first; the fixed models/{id}/... layout fills any gaps.
        """
        asset_id = record.id
        keys = [metadata_key(asset_id)]

        if record.model_url:
            keys.append(self.store.key_for(record.model_url))
        elif record.model_type:
            keys.append(model_key(asset_id, record.model_type))
        else:
            # Extension unknown: find whatever model.* sits under the asset prefix
            entries = await self.store.list(f"{asset_prefix(asset_id)}model.")
            keys.extend(e.key for e in entries)

        keys.append(self.store.key_for(record.texture_url) if record.texture_url else texture_key(asset_id))

        # Always include the conventional thumbnail key: a render that stored the
        # image but failed to update the record leaves it behind otherwise
        if record.thumbnail_url:
            keys.append(self.store.key_for(record.thumbnail_url))
        keys.append(thumbnail_key(asset_id))

        return list(dict.fromkeys(keys))
