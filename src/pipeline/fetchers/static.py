from __future__ import annotations

from typing import Any, Optional
from urllib import robotparser
from urllib.parse import urlparse

import httpx

from ...errors import ConditionTimeout, DocumentViewError, NavigationTimeout
from ..document import DetailDocument


DEFAULT_UA = "leadx-StaticView/0.1 (+https://example.com)"


class StaticDocumentView:
    """DocumentView for detail pages that render server-side.

    - Uses httpx for network IO; robots.txt honoured when respect_robots=True
    - Does NOT execute JavaScript: evaluate() is unsupported, so this view
      cannot drive the listing scroll, only detail visits
    - wait_for_selector() checks the fetched HTML once; no polling
    """

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_UA,
        respect_robots: bool = True,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.user_agent = user_agent
        self.respect_robots = respect_robots
        self._client = client or httpx.AsyncClient(headers={"User-Agent": self.user_agent}, follow_redirects=True)
        self._robots: dict[str, robotparser.RobotFileParser | None] = {}
        self._doc: Optional[DetailDocument] = None

    async def _robots_allows(self, url: str) -> bool:
        if not self.respect_robots:
            return True
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        if origin not in self._robots:
            rp: robotparser.RobotFileParser | None = None
            try:
                resp = await self._client.get(f"{origin}/robots.txt")
                if resp.status_code < 400:
                    rp = robotparser.RobotFileParser()
                    rp.parse(resp.text.splitlines())
            except httpx.HTTPError:
                # Unreachable robots.txt: default allow
                rp = None
            self._robots[origin] = rp
        rp = self._robots[origin]
        if rp is None:
            return True
        return rp.can_fetch(self.user_agent, url) and rp.can_fetch("*", url)

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self._doc = None
        if not await self._robots_allows(url):
            raise DocumentViewError("blocked by robots.txt", url=url)
        try:
            resp = await self._client.get(url, timeout=timeout_ms / 1000.0)
        except httpx.TimeoutException as e:
            raise NavigationTimeout(str(e) or "timed out", url=url) from e
        except httpx.HTTPError as e:
            raise DocumentViewError(str(e), url=url) from e
        if resp.status_code >= 400:
            raise DocumentViewError(f"HTTP {resp.status_code}", url=url)
        mime = (resp.headers.get("Content-Type") or "").split(";")[0].strip().lower()
        html = resp.text if mime in ("text/html", "") else ""
        self._doc = DetailDocument(html=html, url=str(resp.url))

    def _current(self) -> DetailDocument:
        if self._doc is None:
            raise DocumentViewError("no document loaded")
        return self._doc

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        if self._current().css_first(selector) is None:
            raise ConditionTimeout(f"selector not present: {selector}")

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        raise DocumentViewError("static views cannot evaluate scripts")

    async def snapshot(self) -> DetailDocument:
        return self._current()

    async def close(self) -> None:
        await self._client.aclose()
