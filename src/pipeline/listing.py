"""
Listing Enumerator - scroll a virtualized results feed until it stops growing.

The feed renders more anchors as it is scrolled. We scroll by a fixed step,
measure (scrollHeight, anchor count) and stop once both have been unchanged
for ``stability_threshold`` consecutive iterations, or right away when the
feed container does not exist at all.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from pydantic import ValidationError

from ..config import ListingConfig
from ..errors import ConditionTimeout, DocumentViewError, ViewDestroyed
from ..schemas import ListingItem
from .document import DocumentView
from .progress import SafeReporter


SCROLL_JS = """([selector, step]) => {
    const feed = document.querySelector(selector);
    if (!feed) return { scrolled: false, height: 0 };
    feed.scrollBy(0, step);
    return { scrolled: true, height: feed.scrollHeight };
}"""

COUNT_JS = "(selector) => document.querySelectorAll(selector).length"

COLLECT_JS = """([selector, attr]) => Array.from(document.querySelectorAll(selector)).map(a => ({
    name: a.getAttribute(attr),
    url: a.href
}))"""


@dataclass(frozen=True)
class ScrollSample:
    scrolled: bool
    height: int
    count: int


def dedupe_listing_items(raw: Iterable[Any]) -> List[ListingItem]:
    """Build ListingItems keyed by URL, first occurrence wins.

    Accepts dicts with name/url keys, (name, url) tuples or ListingItems.
    Entries without a usable http(s) URL are dropped.
    """
    seen: set[str] = set()
    items: List[ListingItem] = []
    for entry in raw or []:
        if isinstance(entry, ListingItem):
            item = entry
        else:
            if isinstance(entry, dict):
                name, url = entry.get("name"), entry.get("url")
            else:
                name, url = entry
            try:
                item = ListingItem(display_name=name, detail_url=(url or "").strip())
            except ValidationError:
                continue
        if item.detail_url in seen:
            continue
        seen.add(item.detail_url)
        items.append(item)
    return items


class ListingEnumerator:
    def __init__(
        self,
        config: Optional[ListingConfig] = None,
        reporter: Optional[SafeReporter] = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or ListingConfig()
        self.reporter = reporter or SafeReporter()
        self._sleep = sleep
        self.iterations = 0

    async def open(self, view: DocumentView, url: str) -> bool:
        """Navigate and wait for the feed. Navigation errors propagate;
        a missing feed only produces a warning. Returns True if the feed showed up."""
        cfg = self.config
        await view.navigate(url, cfg.navigation_timeout_ms)
        try:
            await view.wait_for_selector(cfg.container_selector, cfg.container_timeout_ms)
            return True
        except ConditionTimeout:
            self.reporter.report("Warning: results list not found. Check that the link is a listing page.", 0)
            print(f"⚠️  Listing container '{cfg.container_selector}' not found on {url}")
            return False

    async def sample(self, view: DocumentView) -> ScrollSample:
        cfg = self.config
        status = await view.evaluate(SCROLL_JS, [cfg.container_selector, cfg.scroll_step_px]) or {}
        if not status.get("scrolled"):
            return ScrollSample(scrolled=False, height=0, count=0)
        if cfg.scroll_pause_ms:
            await self._sleep(cfg.scroll_pause_ms / 1000.0)
        count = await view.evaluate(COUNT_JS, cfg.item_selector)
        return ScrollSample(scrolled=True, height=int(status.get("height") or 0), count=int(count or 0))

    async def scroll_until_stable(self, view: DocumentView) -> int:
        """Scroll until the stability threshold is reached; returns iterations run."""
        cfg = self.config
        previous_height = 0
        previous_count = 0
        same = 0
        self.iterations = 0
        self.reporter.report("Scrolling the listing and capturing every item...", 0)
        while True:
            if cfg.max_scroll_iterations is not None and self.iterations >= cfg.max_scroll_iterations:
                break
            try:
                s = await self.sample(view)
            except ViewDestroyed:
                raise
            except DocumentViewError as e:
                print(f"⚠️  Scroll step failed, collecting what is rendered: {e}")
                break
            if not s.scrolled:
                break
            self.iterations += 1
            self.reporter.report(f"Scrolling... ({s.count} items visible)", s.count)
            if s.height == previous_height and s.count == previous_count:
                same += 1
                if same >= cfg.stability_threshold:
                    break
            else:
                same = 0
            previous_height = s.height
            previous_count = s.count
        return self.iterations

    async def collect(self, view: DocumentView) -> List[ListingItem]:
        cfg = self.config
        raw = await view.evaluate(COLLECT_JS, [cfg.item_selector, cfg.name_attribute])
        return dedupe_listing_items(raw or [])

    async def enumerate(self, view: DocumentView, url: str) -> List[ListingItem]:
        await self.open(view, url)
        await self.scroll_until_stable(view)
        items = await self.collect(view)
        self.reporter.report(f"{len(items)} items found. Extracting name and phone...", len(items))
        return items
