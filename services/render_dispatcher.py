import structlog
from core.taskiq import broker
from domain.interfaces import RenderDispatcher

# Import the task definition directly
from worker import render_thumbnail_task

logger = structlog.get_logger()


class TaskiqRenderDispatcher(RenderDispatcher):
    """
    Kicks the render task onto the configured Taskiq broker.
    The returned task handle is dropped: nobody waits on the render result.
    """

    async def dispatch(self, asset_id: str) -> None:
        task = await render_thumbnail_task.kiq(asset_id=asset_id)

        logger.info(
            "render_dispatched",
            asset_id=asset_id,
            task_id=task.task_id,
            provider=broker.__class__.__name__,  # Logs "InMemoryBroker" or "ListQueueBroker"
        )
