"""
Chromium session management via Playwright.

A single BrowserManager owns one long-lived Chromium process. Each render
gets its own browser context and page (a RenderSession), which is closed when
the render finishes, so concurrent renders never share cookies, storage or
navigation state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .errors import EngineLaunchFailure, EngineUnavailable, RenderTimeout
from .models import PdfOptions

logger = logging.getLogger(__name__)

# Containerized Chromium: no setuid sandbox, no GPU, small /dev/shm.
CHROMIUM_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
)

CONTENT_LOAD_TIMEOUT_MS = 30000

# Runs in the page after load; src is the attribute as authored, resolvedSrc
# what the browser actually requested.
COLLECT_IMAGES_JS = """
() => Array.from(document.querySelectorAll('img')).map(img => ({
    src: img.getAttribute('src') || '',
    resolvedSrc: img.currentSrc || img.src || '',
    naturalWidth: img.naturalWidth,
    naturalHeight: img.naturalHeight,
    complete: img.complete,
}))
"""


class RenderSession:
    """
    One isolated browsing context used for exactly one render.

    Wraps a Playwright BrowserContext and its single Page.
    """

    def __init__(self, context: Any, page: Any, on_close=None):
        self._context = context
        self._page = page
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def load_content(
        self,
        html: str,
        base_url: Optional[str] = None,
        timeout_ms: int = CONTENT_LOAD_TIMEOUT_MS,
    ) -> None:
        """
        Load HTML and wait for DOMContentLoaded, load and network idle.

        With base_url the document is served as if it lived at that URL, so
        relative src/href values resolve against it. The whole wait shares
        one deadline of timeout_ms.

        Raises:
            RenderTimeout: content did not settle before the deadline
        """
        try:
            await asyncio.wait_for(
                self._load(html, base_url, timeout_ms),
                timeout=timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, PlaywrightTimeoutError) as e:
            raise RenderTimeout(timeout_ms) from e

    async def _load(self, html: str, base_url: Optional[str], timeout_ms: int) -> None:
        page = self._page
        if base_url:
            document_served = False

            async def serve_document(route, request):
                nonlocal document_served
                if not document_served and request.is_navigation_request():
                    document_served = True
                    await route.fulfill(
                        status=200,
                        content_type="text/html; charset=utf-8",
                        body=html,
                    )
                else:
                    await route.continue_()

            await page.route("**/*", serve_document)
            await page.goto(base_url, wait_until="domcontentloaded", timeout=timeout_ms)
        else:
            await page.set_content(html, wait_until="domcontentloaded", timeout=timeout_ms)

        await page.wait_for_load_state("load", timeout=timeout_ms)
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)

    async def collect_images(self) -> List[Dict[str, Any]]:
        """Report every <img> in the rendered document with its load state."""
        return await self._page.evaluate(COLLECT_IMAGES_JS)

    async def paint_pdf(self, options: PdfOptions) -> bytes:
        """Print the current page to PDF bytes."""
        return await self._page.pdf(**options.to_playwright())

    async def close(self) -> None:
        """Release the context. Only the first call does anything; never raises."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._context.close()
        except Exception as e:
            logger.warning(f"Error closing browser context: {e}")
        finally:
            if self._on_close is not None:
                self._on_close()


class BrowserManager:
    """
    Owns the single Chromium process shared by all renders.

    There is no cap on open sessions here; admission control, if any, is
    the caller's job. A crashed browser is not respawned: once it
    disconnects every acquire fails until the process restarts.
    """

    def __init__(
        self,
        headless: bool = True,
        executable_path: Optional[str] = None,
        args: Sequence[str] = CHROMIUM_ARGS,
    ):
        self.headless = headless
        self.executable_path = executable_path
        self.args = list(args)
        self._playwright = None
        self._browser = None
        self._active_sessions = 0

    @property
    def is_connected(self) -> bool:
        return self._browser is not None and self._browser.is_connected()

    @property
    def active_sessions(self) -> int:
        return self._active_sessions

    async def initialize(self) -> None:
        """
        Start Playwright and launch Chromium.

        Raises:
            EngineLaunchFailure: Chromium could not be started
        """
        if self._browser is not None:
            return

        logger.info("Launching Chromium...")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                executable_path=self.executable_path,
                args=self.args,
            )
        except Exception as e:
            logger.error(f"❌ Chromium launch failed: {e}")
            await self._stop_playwright()
            self._browser = None
            raise EngineLaunchFailure(str(e)) from e

        self._browser.on("disconnected", self._on_disconnected)
        logger.info(f"✅ Chromium ready (version {self._browser.version})")

    def _on_disconnected(self, *_args) -> None:
        logger.error("Chromium disconnected; renders will fail until the service restarts")

    async def acquire_session(self) -> RenderSession:
        """
        Open a fresh browser context and page.

        Raises:
            EngineUnavailable: browser not launched or no longer connected
        """
        if not self.is_connected:
            raise EngineUnavailable("Chromium is not running")

        context = await self._browser.new_context()
        try:
            page = await context.new_page()
        except Exception:
            await context.close()
            raise

        self._active_sessions += 1
        return RenderSession(context, page, on_close=self._release_slot)

    def _release_slot(self) -> None:
        self._active_sessions -= 1

    @asynccontextmanager
    async def session(self) -> AsyncIterator[RenderSession]:
        """Acquire a session and release it on every exit path."""
        render_session = await self.acquire_session()
        try:
            yield render_session
        finally:
            await render_session.close()

    async def shutdown(self) -> None:
        """Close Chromium and stop Playwright. Best effort; never raises."""
        browser, self._browser = self._browser, None
        if browser is not None:
            try:
                await browser.close()
                logger.info("Chromium closed")
            except Exception as e:
                logger.warning(f"Error closing Chromium: {e}")
        await self._stop_playwright()

    async def _stop_playwright(self) -> None:
        playwright, self._playwright = self._playwright, None
        if playwright is None:
            return
        try:
            await playwright.stop()
        except Exception as e:
            logger.warning(f"Error stopping Playwright: {e}")
