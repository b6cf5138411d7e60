from __future__ import annotations

import asyncio
import json

import pytest

from src.config import ExtractorConfig
from src.errors import DocumentViewError, ExtractionError, NavigationTimeout, ViewDestroyed
from src.ops_logger import OpsLogger
from src.pipeline import extract as extract_mod
from src.pipeline.extract import ListingExtractionPipeline
from src.pipeline.listing import SCROLL_JS
from src.pipeline.progress import RecordingReporter
from src.schemas import JobOutcome

from _fakes import DetailViewFactory, FakeListingView, listing_factory, no_sleep, structured_phone_page


URL1 = "https://www.google.com/maps/place/a"
URL2 = "https://www.google.com/maps/place/b"
LISTING = "https://www.google.com/maps/search/pizzaria"


def _config(concurrency: int = 2) -> ExtractorConfig:
    cfg = ExtractorConfig()
    cfg.listing.scroll_pause_ms = 0
    cfg.listing.stability_threshold = 2
    cfg.workers.concurrency = concurrency
    cfg.workers.retry_delay_ms = 0
    return cfg


def _pipeline(listing_view, detail_factory, **kw) -> ListingExtractionPipeline:
    return ListingExtractionPipeline(
        config=kw.pop("config", None) or _config(),
        listing_view_factory=listing_factory(listing_view),
        detail_view_factory=detail_factory,
        sleep=no_sleep,
        **kw,
    )


def test_duplicate_anchor_scenario_end_to_end():
    anchors = [{"name": "A", "url": URL1}, {"name": "B", "url": URL2}, {"name": "A", "url": URL1}]
    listing = FakeListingView([(1200, 3)], anchors)
    details = DetailViewFactory({
        URL1: structured_phone_page("551199998888"),
        URL2: "<html><body><h1>B</h1><p>Sem contato</p></body></html>",
    })
    pipeline = _pipeline(listing, details, config=_config(concurrency=2))

    results = asyncio.run(pipeline.extract(LISTING))

    assert [(i.display_name, i.detail_url) for i in pipeline.last_items] == [("A", URL1), ("B", URL2)]
    assert sorted((r.name, r.phone) for r in results) == [("A", "551199998888"), ("B", "")]
    assert sorted(r.as_contact()["name"] for r in results) == ["A", "B"]
    assert listing.closed is True


def test_progress_stream_ends_with_total():
    rec = RecordingReporter()
    anchors = [{"name": f"P{i}", "url": f"https://x.example/{i}"} for i in range(4)]
    pipeline = _pipeline(FakeListingView([(10, 4)], anchors), DetailViewFactory({}))
    results = asyncio.run(pipeline.extract(LISTING, rec))
    assert rec.events[-1] == ("Extraction finished! 4 contacts collected.", 4)
    assert len(results) == 4


def test_broken_progress_sink_does_not_break_extraction():
    def sink(message, count):
        raise RuntimeError("client went away")

    anchors = [{"name": "A", "url": URL1}]
    pipeline = _pipeline(FakeListingView([(10, 1)], anchors), DetailViewFactory({}))
    results = asyncio.run(pipeline.extract(LISTING, sink))
    assert len(results) == 1


def test_crash_during_details_still_returns_full_list():
    anchors = [{"name": f"P{i}", "url": f"https://x.example/{i}"} for i in range(10)]
    details = DetailViewFactory({"https://x.example/3": ViewDestroyed("page crashed")})
    pipeline = _pipeline(FakeListingView([(10, 10)], anchors), details, config=_config(concurrency=1))
    results = asyncio.run(pipeline.extract(LISTING))
    assert len(results) == 10
    assert sum(1 for r in results if r.outcome == JobOutcome.SKIPPED_AFTER_CRASH) == 7


def test_invalid_listing_url_is_rejected():
    pipeline = _pipeline(FakeListingView([(0, 0)]), DetailViewFactory({}))
    with pytest.raises(ExtractionError):
        asyncio.run(pipeline.extract("not a url"))


@pytest.mark.parametrize("error", [NavigationTimeout("slow"), ViewDestroyed("gone"), DocumentViewError("net::ERR")])
def test_listing_navigation_failure_is_pipeline_error(error):
    listing = FakeListingView([(0, 0)], navigate_error=error)
    details = DetailViewFactory({})
    pipeline = _pipeline(listing, details)
    with pytest.raises(ExtractionError) as ei:
        asyncio.run(pipeline.extract(LISTING))
    assert ei.value.listing_url == LISTING
    assert ei.value.__cause__ is error
    assert details.calls == 0
    assert listing.closed is True


class _MalformedFeedView(FakeListingView):
    """Scroll script returns a non-object, as a page with a hijacked feed might."""

    async def evaluate(self, expression, arg=None):
        if expression == SCROLL_JS:
            return ["unexpected"]
        return await super().evaluate(expression, arg)


@pytest.mark.parametrize("listing", [
    FakeListingView([(10, 1)], scroll_error_at=1, scroll_error=RuntimeError("driver bug")),
    _MalformedFeedView([(10, 1)]),
])
def test_unexpected_enumeration_error_is_pipeline_error(listing):
    details = DetailViewFactory({})
    pipeline = _pipeline(listing, details)
    with pytest.raises(ExtractionError) as ei:
        asyncio.run(pipeline.extract(LISTING))
    assert ei.value.listing_url == LISTING
    assert ei.value.__cause__ is not None
    assert details.calls == 0
    assert listing.closed is True


def test_listing_view_that_cannot_be_created_is_pipeline_error():
    async def failing_factory():
        raise DocumentViewError("no browser")

    pipeline = ListingExtractionPipeline(
        config=_config(),
        listing_view_factory=failing_factory,
        detail_view_factory=DetailViewFactory({}),
        sleep=no_sleep,
    )
    with pytest.raises(ExtractionError):
        asyncio.run(pipeline.extract(LISTING))


def test_summary_ops_record(tmp_path):
    log = tmp_path / "ops.log"
    anchors = [{"name": "A", "url": URL1}, {"name": "B", "url": URL2}]
    details = DetailViewFactory({URL1: structured_phone_page("5541933334444")})
    pipeline = _pipeline(FakeListingView([(10, 2)], anchors), details, ops_logger=OpsLogger(log))
    asyncio.run(pipeline.extract(LISTING))
    records = [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]
    summary = records[-1]
    assert summary["summary"] is True
    assert summary["items"] == 2 and summary["results"] == 2
    assert summary["with_phone"] == 1
    assert summary["outcomes"] == {"found": 1, "not_found": 1}
    assert "resources" in summary


class _FakeBrowser:
    instances: list["_FakeBrowser"] = []

    def __init__(self, config=None):
        self.config = config
        self.started = False
        self.closed = False
        self.listing = FakeListingView([(10, 1)], [{"name": "A", "url": URL1}])
        self.details = DetailViewFactory({URL1: structured_phone_page("5541977776666")})
        self.views_opened = 0
        _FakeBrowser.instances.append(self)

    async def start(self):
        self.started = True
        return self

    async def new_view(self):
        self.views_opened += 1
        if self.views_opened == 1:
            return self.listing
        return await self.details()

    async def close(self):
        self.closed = True


def test_module_extract_launches_and_closes_browser(monkeypatch):
    _FakeBrowser.instances.clear()
    monkeypatch.setattr(extract_mod, "PlaywrightBrowser", _FakeBrowser)
    results = asyncio.run(extract_mod.extract(LISTING, config=_config(concurrency=1)))
    browser = _FakeBrowser.instances[0]
    assert browser.started and browser.closed
    assert [(r.name, r.phone) for r in results] == [("A", "5541977776666")]


def test_browser_launch_failure_is_pipeline_error(monkeypatch):
    class _Broken(_FakeBrowser):
        async def start(self):
            raise DocumentViewError("could not launch browser: missing executable")

    monkeypatch.setattr(extract_mod, "PlaywrightBrowser", _Broken)
    with pytest.raises(ExtractionError):
        asyncio.run(extract_mod.extract(LISTING, config=_config()))
