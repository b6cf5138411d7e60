import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.config import BrowserConfig
from src.errors import ConditionTimeout, DocumentViewError, NavigationTimeout, ViewDestroyed
from src.pipeline.fetchers.playwright import PlaywrightBrowser, PlaywrightDocumentView, is_destroyed_error


def _page():
    page = MagicMock()
    page.goto = AsyncMock()
    page.wait_for_selector = AsyncMock()
    page.evaluate = AsyncMock()
    page.content = AsyncMock(return_value="<html><body>ok</body></html>")
    page.close = AsyncMock()
    page.route = AsyncMock()
    page.is_closed.return_value = False
    page.url = "https://x.example/place/1"
    return page


def _handler(page, event):
    for call in page.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"no handler for {event}")


def test_navigate_uses_domcontentloaded_and_timeout():
    page = _page()
    view = PlaywrightDocumentView(page)
    asyncio.run(view.navigate("https://x.example/place/1", 30000))
    page.goto.assert_awaited_once_with("https://x.example/place/1", wait_until="domcontentloaded", timeout=30000)


def test_navigate_timeout_is_navigation_timeout():
    page = _page()
    page.goto.side_effect = PlaywrightTimeoutError("Timeout 30000ms exceeded.")
    view = PlaywrightDocumentView(page)
    with pytest.raises(NavigationTimeout):
        asyncio.run(view.navigate("https://x.example/place/1", 30000))


def test_closed_target_is_view_destroyed():
    page = _page()
    page.goto.side_effect = PlaywrightError("Target page, context or browser has been closed")
    view = PlaywrightDocumentView(page)
    with pytest.raises(ViewDestroyed):
        asyncio.run(view.navigate("https://x.example/place/1", 30000))
    # Stays destroyed for later calls without touching the page
    with pytest.raises(ViewDestroyed):
        asyncio.run(view.evaluate("() => 1"))
    page.evaluate.assert_not_awaited()


def test_other_playwright_errors_are_non_fatal():
    page = _page()
    page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
    view = PlaywrightDocumentView(page)
    with pytest.raises(DocumentViewError) as ei:
        asyncio.run(view.navigate("https://x.example/place/1", 30000))
    assert not isinstance(ei.value, ViewDestroyed)


def test_crash_event_marks_view_destroyed():
    page = _page()
    view = PlaywrightDocumentView(page)
    _handler(page, "crash")(page)
    with pytest.raises(ViewDestroyed):
        asyncio.run(view.navigate("https://x.example/place/2", 30000))
    page.goto.assert_not_awaited()


def test_wait_timeout_is_condition_timeout():
    page = _page()
    page.wait_for_selector.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded.")
    view = PlaywrightDocumentView(page)
    with pytest.raises(ConditionTimeout):
        asyncio.run(view.wait_for_selector("a[href^='tel:']", 5000))


def test_snapshot_captures_html_and_inner_text():
    page = _page()
    page.evaluate.return_value = "Pizzaria\n(41) 3333-4444"
    view = PlaywrightDocumentView(page)
    doc = asyncio.run(view.snapshot())
    assert doc.html == "<html><body>ok</body></html>"
    assert doc.lines() == ["Pizzaria", "(41) 3333-4444"]
    assert doc.url == "https://x.example/place/1"


def test_close_skips_already_closed_pages():
    page = _page()
    page.is_closed.return_value = True
    asyncio.run(PlaywrightDocumentView(page).close())
    page.close.assert_not_awaited()


@pytest.mark.parametrize("msg,expected", [
    ("Target closed", True),
    ("Page crashed", True),
    ("Browser has disconnected!", True),
    ("Timeout 3000ms exceeded", False),
])
def test_is_destroyed_error(msg, expected):
    assert is_destroyed_error(Exception(msg)) is expected


def test_route_blocks_heavy_resources():
    browser = PlaywrightBrowser(BrowserConfig(block_resource_types=["image", "font"]))
    blocked = MagicMock()
    blocked.request.resource_type = "image"
    blocked.abort = AsyncMock()
    allowed = MagicMock()
    allowed.request.resource_type = "document"
    allowed.continue_ = AsyncMock()
    asyncio.run(browser._route(blocked))
    asyncio.run(browser._route(allowed))
    blocked.abort.assert_awaited_once()
    allowed.continue_.assert_awaited_once()


@patch("src.pipeline.fetchers.playwright.async_playwright")
def test_browser_start_and_new_view(mock_async_playwright):
    page = _page()
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    browser_obj = MagicMock()
    browser_obj.new_context = AsyncMock(return_value=context)
    browser_obj.close = AsyncMock()
    pw = MagicMock()
    pw.chromium.launch = AsyncMock(return_value=browser_obj)
    pw.stop = AsyncMock()
    mock_async_playwright.return_value.start = AsyncMock(return_value=pw)

    async def scenario():
        async with PlaywrightBrowser(BrowserConfig(locale="pt-BR")) as browser:
            view = await browser.new_view()
            assert isinstance(view, PlaywrightDocumentView)
        return view

    asyncio.run(scenario())
    kwargs = browser_obj.new_context.await_args.kwargs
    assert kwargs["locale"] == "pt-BR"
    assert kwargs["viewport"] == {"width": 1280, "height": 720}
    page.route.assert_awaited_once()
    browser_obj.close.assert_awaited_once()
    pw.stop.assert_awaited_once()


@patch("src.pipeline.fetchers.playwright.async_playwright")
def test_browser_launch_failure_is_document_view_error(mock_async_playwright):
    pw = MagicMock()
    pw.chromium.launch = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
    pw.stop = AsyncMock()
    mock_async_playwright.return_value.start = AsyncMock(return_value=pw)
    with pytest.raises(DocumentViewError):
        asyncio.run(PlaywrightBrowser().start())
    pw.stop.assert_awaited_once()
