import time
from typing import Optional, cast
from uuid import uuid4

import structlog
from core.telemetry import tracer
from domain.interfaces import AssetStore, RenderDispatcher
from domain.keys import model_key, texture_key
from domain.models import AssetStatus, MetadataRecord, UploadResponse
from services.ingest import extract_bundle_async, validate_upload
from services.metadata_repository import MetadataRepository

logger = structlog.get_logger()

MODEL_CONTENT_TYPES = {
    ".obj": "text/plain",
    ".gltf": "model/gltf+json",
    ".glb": "model/gltf-binary",
    ".json": "application/json",
}


class UploadCoordinator:
    """
    Turns an uploaded ZIP into stored blobs plus a metadata record,
    then hands the asset to the render worker without waiting for it.

    Nothing written here is rolled back: if the metadata write fails after the
    blob puts, those blobs stay behind unreferenced.
    """

    def __init__(
        self,
        store: AssetStore,
        repository: MetadataRepository,
        dispatcher: RenderDispatcher,
        max_upload_bytes: int,
    ):
        self.store = store
        self.repository = repository
        self.dispatcher = dispatcher
        self.max_upload_bytes = max_upload_bytes

    async def upload(self, name: Optional[str], archive: Optional[bytes], filename: Optional[str]) -> UploadResponse:
        with tracer.start_as_current_span("upload_asset"):
            # 1. Validate input (no side effects yet)
            model_name = validate_upload(name, archive, filename, self.max_upload_bytes)
            # 2. Extract model + texture
            bundle = await extract_bundle_async(cast(bytes, archive))

            # 3. Fresh id, no collision check
            asset_id = str(uuid4())
            log = logger.bind(asset_id=asset_id)
            log.info("upload_started", name=model_name, model_entry=bundle.model_entry_name)

            # 4. Model blob
            model_blob = await self.store.put(
                model_key(asset_id, bundle.model_extension),
                bundle.model_bytes,
                MODEL_CONTENT_TYPES.get(bundle.model_extension, "application/octet-stream"),
            )

            # 5. Texture blob
            texture_blob = await self.store.put(texture_key(asset_id), bundle.texture_bytes, "image/png")

            # 6. Metadata record: from here on the asset is listable and deletable
            record = MetadataRecord(
                id=asset_id,
                name=model_name,
                model_url=model_blob.url,
                texture_url=texture_blob.url,
                model_type=bundle.model_type,
                status=AssetStatus.UPLOADED,
                timestamp=int(time.time() * 1000),
            )
            await self.repository.create(record)
            log.info("asset_uploaded")

            # 7. Fire-and-forget render trigger
            await self._dispatch_render(asset_id)

            return UploadResponse(
                id=asset_id,
                name=model_name,
                message="Upload successful, thumbnail rendering runs in the background.",
            )

    async def _dispatch_render(self, asset_id: str) -> None:
        # The upload already succeeded; a dispatch failure must not change that
        try:
            await self.dispatcher.dispatch(asset_id)
        except Exception as e:
            logger.error("render_dispatch_failed", asset_id=asset_id, error=str(e))
