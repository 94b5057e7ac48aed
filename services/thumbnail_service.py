import asyncio
from typing import Optional
from urllib.parse import quote

import structlog
from core.exceptions import (
    AssetServiceError,
    ConflictError,
    EscalatedError,
    NotFoundError,
    RenderError,
    RenderTimeoutError,
)
from core.telemetry import tracer
from domain.interfaces import AssetStore, HeadlessRenderer
from domain.keys import thumbnail_key
from domain.models import AssetStatus, MetadataRecord, RenderResponse
from services.metadata_repository import MetadataRepository, apply_transition

logger = structlog.get_logger()


class ThumbnailService:
    """
    Renders the preview for one asset and moves its record to a terminal status.

    Uploaded -> Ready once the thumbnail is stored and the record saved.
    Uploaded -> Error on any failure after the record has been loaded.
    Neither terminal state is ever retried here.
    """

    def __init__(
        self,
        store: AssetStore,
        repository: MetadataRepository,
        renderer: HeadlessRenderer,
        render_page_url: str,
        signal_timeout: float = 60.0,
        session_timeout: float = 300.0,
    ):
        self.store = store
        self.repository = repository
        self.renderer = renderer
        self.render_page_url = render_page_url
        self.signal_timeout = signal_timeout
        self.session_timeout = session_timeout

    def page_url_for(self, asset_id: str) -> str:
        return f"{self.render_page_url}?id={quote(asset_id)}"

    async def render(self, asset_id: str) -> RenderResponse:
        with tracer.start_as_current_span("render_thumbnail"):
            log = logger.bind(asset_id=asset_id)

            # Missing metadata is a precondition violation: fail hard, write nothing
            record, etag = await self.repository.load(asset_id)
            if record.status.is_terminal:
                raise ConflictError(f"Asset {asset_id} is already {record.status.value}")

            try:
                thumbnail_url = await self._render_and_store(asset_id, log)

                # Re-load so the conditional write is checked against the latest version
                record, etag = await self.repository.load(asset_id)

                updated = record.model_copy(deep=True)
                apply_transition(updated, AssetStatus.READY)
                updated.thumbnail_url = thumbnail_url
                await self.repository.save(updated, etag)

            except NotFoundError:
                # Record vanished mid-render (deleted); writing Error would resurrect it
                log.error("render_metadata_missing")
                raise
            except AssetServiceError as e:
                log.error("render_failed", error=str(e))
                await self._mark_error(record, etag, e)
                raise
            except Exception as e:
                failure = RenderError(str(e), original_error=e)
                log.error("render_failed", error=str(failure))
                await self._mark_error(record, etag, failure)
                raise failure from e

            log.info("render_complete", thumbnail_url=thumbnail_url)
            return RenderResponse(id=asset_id, status=AssetStatus.READY, thumbnailUrl=thumbnail_url)

    async def _render_and_store(self, asset_id: str, log) -> str:
        page_url = self.page_url_for(asset_id)
        log.info("render_started", url=page_url)

        try:
            image = await asyncio.wait_for(
                self.renderer.capture(page_url, self.signal_timeout),
                timeout=self.session_timeout,
            )
        except asyncio.TimeoutError as e:
            raise RenderTimeoutError(f"Render session exceeded {self.session_timeout}s", original_error=e)

        if not image:
            raise RenderError("Renderer returned an empty image")

        stored = await self.store.put(thumbnail_key(asset_id), image, "image/png")
        return stored.url

    async def _mark_error(self, record: MetadataRecord, etag: Optional[str], cause: Exception) -> None:
        """
        Best effort. If persisting status=Error fails too, the failure is
        escalated to the logs and dropped; the record may stay Uploaded.
        """
        if record.status.is_terminal:
            # A concurrent render already finished this asset
            logger.info("error_status_skipped", asset_id=record.id, status=record.status.value, reason=str(cause))
            return

        try:
            apply_transition(record, AssetStatus.ERROR)
            await self.repository.save(record, etag)
            logger.warning("asset_marked_error", asset_id=record.id, reason=str(cause))
        except Exception as e:
            escalated = EscalatedError(f"Could not record Error status for asset {record.id}", original_error=e)
            logger.critical(
                "status_update_escalated",
                asset_id=record.id,
                error=str(escalated),
                cause=str(e),
                render_error=str(cause),
            )
