from functools import lru_cache

from connections.in_memory_storage_provider import InMemoryAssetStore
from connections.local_storage_provider import LocalFileStorage
from connections.playwright_renderer import PlaywrightRenderer

# Implementations
from connections.s3_storage_provider import S3Storage
from core.config import ProductionSettings, settings
from domain.interfaces import AssetStore, HeadlessRenderer
from services.cascade_deleter import CascadeDeleter
from services.metadata_repository import MetadataRepository
from services.placeholder_renderer import LocalPreviewRenderer
from services.thumbnail_service import ThumbnailService


@lru_cache()
def get_storage() -> AssetStore:
    """
    Dependency Factory: Returns the correct storage backend based on ENV.
    Cached so we only initialize the connection once per worker process.
    """
    if isinstance(settings, ProductionSettings):
        return S3Storage(settings)

    if settings.STORAGE_BACKEND == "memory":
        return InMemoryAssetStore(base_url=f"{settings.API_BASE_URL}/static")

    return LocalFileStorage(settings.LOCAL_STORAGE_PATH, settings.API_BASE_URL)


@lru_cache()
def get_repository() -> MetadataRepository:
    return MetadataRepository(get_storage())


@lru_cache()
def get_renderer() -> HeadlessRenderer:
    """
    Dependency Factory: Headless Chromium in production, a placeholder image locally.
    """
    if isinstance(settings, ProductionSettings):
        return PlaywrightRenderer(viewport=settings.RENDER_VIEWPORT)

    return LocalPreviewRenderer(viewport=settings.RENDER_VIEWPORT)


def get_thumbnail_service() -> ThumbnailService:
    return ThumbnailService(
        store=get_storage(),
        repository=get_repository(),
        renderer=get_renderer(),
        render_page_url=str(settings.RENDER_PAGE_URL),
        signal_timeout=settings.RENDER_SIGNAL_TIMEOUT,
        session_timeout=settings.RENDER_SESSION_TIMEOUT,
    )


def get_cascade_deleter() -> CascadeDeleter:
    return CascadeDeleter(store=get_storage(), repository=get_repository())
