"""
Exception hierarchy for the listing extractor.

Document view failures are split by what the caller can do about them:
timeouts are worth retrying, a destroyed view is not.
"""

from __future__ import annotations


class LeadxError(Exception):
    """Base class for all errors raised by this package."""


class ConfigError(LeadxError):
    """Config file missing, unreadable or invalid."""


class ExtractionError(LeadxError):
    """Pipeline-level failure: no job list could be established."""

    def __init__(self, message: str, *, listing_url: str | None = None) -> None:
        super().__init__(message)
        self.listing_url = listing_url


class DocumentViewError(LeadxError):
    """Generic, non-fatal failure reported by a document view."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class NavigationTimeout(DocumentViewError):
    """Navigation did not finish within its timeout."""


class ConditionTimeout(DocumentViewError):
    """A wait-for-condition call expired. Callers usually ignore it."""


class ViewDestroyed(DocumentViewError):
    """The render process behind the view is gone (crash, OOM, closed browser)."""


def is_fatal(exc: BaseException) -> bool:
    return isinstance(exc, ViewDestroyed)
