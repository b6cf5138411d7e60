from __future__ import annotations

from typing import Any, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from ...config import BrowserConfig
from ...errors import ConditionTimeout, DocumentViewError, NavigationTimeout, ViewDestroyed
from ..document import DetailDocument


# Substrings Playwright uses when the page/context/browser process is gone
_DESTROYED_MARKERS = (
    "has been closed",
    "target closed",
    "target crashed",
    "page crashed",
    "browser has disconnected",
    "connection closed",
)


def is_destroyed_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(m in msg for m in _DESTROYED_MARKERS)


class PlaywrightDocumentView:
    """DocumentView over one async Playwright page.

    Playwright errors are translated into the view error taxonomy:
    - TimeoutError on goto -> NavigationTimeout
    - TimeoutError on wait -> ConditionTimeout
    - closed/crashed target -> ViewDestroyed
    """

    def __init__(self, page: Page) -> None:
        self.page = page
        self._destroyed = False
        page.on("crash", lambda _page: self._mark_destroyed())
        page.on("close", lambda _page: self._mark_destroyed())

    def _mark_destroyed(self) -> None:
        self._destroyed = True

    def _check_alive(self, url: Optional[str] = None) -> None:
        if self._destroyed:
            raise ViewDestroyed("page crashed or was closed", url=url)

    def _translate(self, exc: PlaywrightError, url: Optional[str]) -> DocumentViewError:
        if self._destroyed or is_destroyed_error(exc):
            self._destroyed = True
            return ViewDestroyed(str(exc), url=url)
        return DocumentViewError(str(exc), url=url)

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self._check_alive(url)
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(str(e), url=url) from e
        except PlaywrightError as e:
            raise self._translate(e, url) from e

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        self._check_alive()
        try:
            await self.page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise ConditionTimeout(str(e)) from e
        except PlaywrightError as e:
            raise self._translate(e, None) from e

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self._check_alive()
        try:
            return await self.page.evaluate(expression, arg)
        except PlaywrightError as e:
            raise self._translate(e, None) from e

    async def snapshot(self) -> DetailDocument:
        self._check_alive()
        try:
            html = await self.page.content()
            text = await self.page.evaluate("() => document.body ? document.body.innerText : ''")
        except PlaywrightError as e:
            raise self._translate(e, self.page.url) from e
        return DetailDocument(html=html or "", text=text or "", url=self.page.url)

    async def close(self) -> None:
        if self.page.is_closed():
            return
        try:
            await self.page.close()
        except PlaywrightError:
            pass


class PlaywrightBrowser:
    """One headless Chromium + context; hands out a page-backed view per caller.

    Heavy resource types (images, media, fonts by default) are aborted on
    every page to keep several concurrent views within memory.
    """

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self.config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def start(self) -> "PlaywrightBrowser":
        cfg = self.config
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=cfg.headless, args=list(cfg.launch_args))
            self._context = await self._browser.new_context(
                user_agent=cfg.user_agent,
                locale=cfg.locale,
                viewport={"width": cfg.viewport_width, "height": cfg.viewport_height},
            )
        except PlaywrightError as e:
            await self.close()
            raise DocumentViewError(f"could not launch browser: {e}") from e
        return self

    async def _route(self, route: Route) -> None:
        if route.request.resource_type in self.config.block_resource_types:
            await route.abort()
        else:
            await route.continue_()

    async def new_view(self) -> PlaywrightDocumentView:
        if self._context is None:
            await self.start()
        try:
            page = await self._context.new_page()
            if self.config.block_resource_types:
                await page.route("**/*", self._route)
        except PlaywrightError as e:
            if is_destroyed_error(e):
                raise ViewDestroyed(f"browser is gone: {e}") from e
            raise DocumentViewError(f"could not open page: {e}") from e
        return PlaywrightDocumentView(page)

    async def close(self) -> None:
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError:
                pass
        if self._playwright is not None:
            await self._playwright.stop()
        self._browser = None
        self._context = None
        self._playwright = None

    async def __aenter__(self) -> "PlaywrightBrowser":
        return await self.start()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
