import structlog
from core.dependencies import get_thumbnail_service
from core.taskiq import RENDER_THUMBNAIL_TASK, broker
from services.thumbnail_service import ThumbnailService
from taskiq import TaskiqDepends

logger = structlog.get_logger()


@broker.task(task_name=RENDER_THUMBNAIL_TASK)
async def render_thumbnail_task(
    asset_id: str,
    service: ThumbnailService = TaskiqDepends(get_thumbnail_service),
) -> dict:
    """
    The background render task.
    This function is agnostic to whether it runs in Redis (Prod) or Memory (Local).
    No retry middleware is configured: a failed render leaves the asset in Error.
    """
    logger.info("worker_task_started", asset_id=asset_id)

    try:
        result = await service.render(asset_id)
    except Exception as e:
        logger.error("worker_task_failed", asset_id=asset_id, error=str(e))
        raise

    logger.info("worker_task_success", asset_id=asset_id, url=result.thumbnailUrl)
    return result.model_dump(mode="json")
