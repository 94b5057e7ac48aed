import io

import structlog
from domain.interfaces import HeadlessRenderer
from PIL import Image, ImageDraw

logger = structlog.get_logger()


class LocalPreviewRenderer(HeadlessRenderer):
    """Local stand-in for the headless browser: draws a transparent placeholder thumbnail."""

    def __init__(self, viewport: int = 256):
        self.viewport = viewport

    async def capture(self, page_url: str, signal_timeout: float) -> bytes:
        logger.info("placeholder_render", url=page_url)

        size = self.viewport
        img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)
        margin = size // 4
        draw.rectangle([margin, margin, size - margin, size - margin], outline=(120, 120, 120, 255), width=3)

        buffer = io.BytesIO()
        img.save(buffer, "PNG")
        return buffer.getvalue()
