"""
Extraction Pipeline - listing URL in, one {name, phone} result per item out.

Phases:
1. Enumerate the listing (single browser view, scroll until stable, dedup)
2. Visit every detail page with a bounded worker pool

The caller gets either the complete result list (len == number of listing
items) or a single ExtractionError if the listing itself could not be read.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Awaitable, Callable, List, Optional
from urllib.parse import urlparse

from ..config import ExtractorConfig
from ..errors import DocumentViewError, ExtractionError
from ..ops_logger import OpsLogger, ops_enabled, resource_snapshot
from ..schemas import ExtractionResult, ListingItem
from .document import DocumentView, ViewFactory
from .fetchers.playwright import PlaywrightBrowser
from .fetchers.static import StaticDocumentView
from .heuristics import HeuristicChain
from .listing import ListingEnumerator
from .progress import ProgressReporter, SafeReporter
from .workers import WorkerPool


class ListingExtractionPipeline:
    """Wires enumerator, heuristic chain and worker pool around document views.

    Views come from factories. When a factory is not supplied, a headless
    PlaywrightBrowser is launched for the duration of one extract() call.
    """

    def __init__(
        self,
        *,
        config: Optional[ExtractorConfig] = None,
        browser: Optional[PlaywrightBrowser] = None,
        listing_view_factory: Optional[ViewFactory] = None,
        detail_view_factory: Optional[ViewFactory] = None,
        chain: Optional[HeuristicChain] = None,
        ops_logger: Optional[OpsLogger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config or ExtractorConfig()
        self.browser = browser
        self.listing_view_factory = listing_view_factory
        self.detail_view_factory = detail_view_factory
        self.chain = chain or HeuristicChain(locale=self.config.locale)
        if ops_logger is None and ops_enabled(self.config.ops.ops_json) and self.config.ops.ops_log_path:
            ops_logger = OpsLogger(Path(self.config.ops.ops_log_path), also_stdout=self.config.ops.ops_stdout)
        self.ops_logger = ops_logger
        self._sleep = sleep
        self.last_items: List[ListingItem] = []

    @staticmethod
    def validate_listing_url(url: str) -> str:
        u = (url or "").strip()
        p = urlparse(u)
        if p.scheme not in ("http", "https") or not p.netloc:
            raise ExtractionError(f"listing URL must be an absolute http(s) URL: {url!r}", listing_url=url)
        return u

    def _needs_browser(self) -> bool:
        if self.listing_view_factory is None:
            return True
        return self.detail_view_factory is None and self.config.workers.detail_view == "browser"

    def _detail_factory(self, browser: Optional[PlaywrightBrowser]) -> ViewFactory:
        if self.detail_view_factory is not None:
            return self.detail_view_factory
        if self.config.workers.detail_view == "static":
            async def _static_view() -> DocumentView:
                return StaticDocumentView(user_agent=self.config.browser.user_agent)
            return _static_view
        return browser.new_view

    async def _enumerate(self, url: str, factory: ViewFactory, reporter: SafeReporter) -> List[ListingItem]:
        try:
            view = await factory()
        except Exception as e:
            raise ExtractionError(f"could not open listing view: {e}", listing_url=url) from e
        enumerator = ListingEnumerator(self.config.listing, reporter, sleep=self._sleep)
        try:
            reporter.report("Opening the listing page...", 0)
            return await enumerator.enumerate(view, url)
        except DocumentViewError as e:
            raise ExtractionError(f"listing page failed: {e}", listing_url=url) from e
        except Exception as e:
            raise ExtractionError(f"listing enumeration failed: {e!r}", listing_url=url) from e
        finally:
            try:
                await view.close()
            except Exception as e:
                print(f"⚠️  Closing listing view failed: {e}")

    async def extract(self, listing_url: str, on_progress: Optional[ProgressReporter] = None) -> List[ExtractionResult]:
        url = self.validate_listing_url(listing_url)
        reporter = SafeReporter(on_progress)
        t0 = time.perf_counter()

        browser = self.browser
        owns_browser = False
        if browser is None and self._needs_browser():
            reporter.report("Starting browser...", 0)
            browser = PlaywrightBrowser(self.config.browser)
            owns_browser = True
            try:
                await browser.start()
            except DocumentViewError as e:
                raise ExtractionError(str(e), listing_url=url) from e

        try:
            listing_factory = self.listing_view_factory or browser.new_view
            items = await self._enumerate(url, listing_factory, reporter)
            self.last_items = items

            pool = WorkerPool(
                self._detail_factory(browser),
                self.chain,
                self.config.workers,
                reporter,
                ops_logger=self.ops_logger,
                sleep=self._sleep,
            )
            results = await pool.run(items)
            reporter.report(f"Extraction finished! {len(results)} contacts collected.", len(results))
            self._emit_summary(url, items, results, pool, time.perf_counter() - t0)
            return results
        finally:
            if owns_browser:
                await browser.close()

    def _emit_summary(self, url: str, items: List[ListingItem], results: List[ExtractionResult], pool: WorkerPool, wall_s: float) -> None:
        if self.ops_logger is None:
            return
        record = {
            "leadx_ops": 1,
            "summary": True,
            "listing_url": url,
            "items": len(items),
            "results": len(results),
            "with_phone": sum(1 for r in results if r.has_phone),
            "outcomes": dict(pool.state.outcomes) if pool.state else {},
            "concurrency": self.config.workers.concurrency,
            "durations": {"wall_s": round(wall_s, 2)},
        }
        record.update(resource_snapshot())
        self.ops_logger.emit(record)


async def extract(
    listing_url: str,
    on_progress: Optional[ProgressReporter] = None,
    *,
    config: Optional[ExtractorConfig] = None,
    browser: Optional[PlaywrightBrowser] = None,
) -> List[ExtractionResult]:
    """Entry point: enumerate ``listing_url`` and return one result per item."""
    pipeline = ListingExtractionPipeline(config=config, browser=browser)
    return await pipeline.extract(listing_url, on_progress)
