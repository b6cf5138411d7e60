"""
Document view contract and the detail-page snapshot the heuristics read.

A DocumentView is one navigable page instance. The pipeline only talks to
views through this protocol, so browser views, static views and test fakes
are interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from selectolax.parser import HTMLParser, Node


@runtime_checkable
class DocumentView(Protocol):
    async def navigate(self, url: str, timeout_ms: int) -> None:
        """Raises NavigationTimeout or ViewDestroyed."""

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        """Raises ConditionTimeout when nothing matches in time."""

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Run a read-only script against the current page. Raises ViewDestroyed."""

    async def snapshot(self) -> "DetailDocument":
        """Capture the rendered HTML and visible text."""

    async def close(self) -> None:
        ...


ViewFactory = Callable[[], Awaitable[DocumentView]]


def visible_text_from_html(html: str) -> str:
    """Approximate document.body.innerText for HTML that was never rendered.

    Every text node lands on its own line, which is finer-grained than
    innerText but keeps address and phone fragments apart the same way.
    """
    parser = HTMLParser(html or "")
    for node in parser.css("script, style, noscript, template"):
        node.decompose()
    body = parser.body or parser.root
    if body is None:
        return ""
    raw = body.text(separator="\n", deep=True)
    lines = [ln.strip() for ln in raw.splitlines()]
    return "\n".join(ln for ln in lines if ln)


@dataclass
class DetailDocument:
    """Snapshot of a rendered detail view.

    ``text`` should be the page's visible text (innerText) when the page was
    rendered by a browser; when omitted it is derived from ``html``.
    """
    html: str
    text: Optional[str] = None
    url: str = ""
    _parser: Optional[HTMLParser] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.text is None:
            self.text = visible_text_from_html(self.html)

    @property
    def parser(self) -> HTMLParser:
        if self._parser is None:
            self._parser = HTMLParser(self.html or "")
        return self._parser

    def css_first(self, selector: str) -> Optional[Node]:
        return self.parser.css_first(selector)

    def css(self, selector: str) -> list[Node]:
        return self.parser.css(selector)

    def lines(self) -> list[str]:
        return [ln.strip() for ln in (self.text or "").split("\n")]
