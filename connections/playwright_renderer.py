import structlog
from core.exceptions import RenderError, RenderTimeoutError
from domain.interfaces import HeadlessRenderer
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

logger = structlog.get_logger()

# Set by render.html once Three.js has loaded the model and drawn its frames
COMPLETION_SIGNAL = "window.renderingFinished === true"


class PlaywrightRenderer(HeadlessRenderer):
    def __init__(self, viewport: int = 256):
        self.viewport = viewport

    async def capture(self, page_url: str, signal_timeout: float) -> bytes:
        """
        Drives headless Chromium through the client-side render page.
        """
        async with async_playwright() as p:
            browser = await p.chromium.launch(args=["--hide-scrollbars", "--disable-web-security"])
            try:
                page = await browser.new_page(
                    viewport={"width": self.viewport, "height": self.viewport},
                    ignore_https_errors=True,
                )

                logger.info("render_page_opening", url=page_url)
                await page.goto(page_url, wait_until="networkidle")

                await page.wait_for_function(COMPLETION_SIGNAL, timeout=signal_timeout * 1000)

                # omit_background keeps the canvas transparent
                return await page.screenshot(type="png", omit_background=True)

            except PlaywrightTimeoutError as e:
                raise RenderTimeoutError(f"Render page did not finish within {signal_timeout}s", original_error=e)
            except PlaywrightError as e:
                raise RenderError(f"Headless browser failed: {e}", original_error=e)
            finally:
                await browser.close()
