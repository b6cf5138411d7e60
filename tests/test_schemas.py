"""
Test suite for the listing extractor Pydantic schemas.

ListingItem and ExtractionResult validation, defaults and helpers.
"""

import pytest
from pydantic import ValidationError

from src.schemas import UNKNOWN_NAME, ExtractionResult, JobOutcome, ListingItem


class TestListingItem:
    """Test cases for ListingItem model."""

    def test_valid_item(self):
        item = ListingItem(display_name="  Pizzaria Bella ", detail_url="https://www.google.com/maps/place/bella")
        assert item.display_name == "Pizzaria Bella"

    @pytest.mark.parametrize("name", [None, "", "   "])
    def test_blank_name_gets_placeholder(self, name):
        item = ListingItem(display_name=name, detail_url="https://x.example/1")
        assert item.display_name == UNKNOWN_NAME

    def test_non_http_url_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            ListingItem(display_name="A", detail_url="javascript:void(0)")
        assert "detail_url must be a valid HTTP/HTTPS URL" in str(exc_info.value)

    def test_item_is_immutable(self):
        item = ListingItem(display_name="A", detail_url="https://x.example/1")
        with pytest.raises(ValidationError):
            item.display_name = "B"

    def test_same_name_different_urls_are_distinct(self):
        a = ListingItem(display_name="A", detail_url="https://x.example/1")
        b = ListingItem(display_name="A", detail_url="https://x.example/2")
        assert a != b


class TestExtractionResult:
    """Test cases for ExtractionResult model."""

    def test_none_phone_becomes_empty(self):
        r = ExtractionResult(name="A", phone=None)
        assert r.phone == ""
        assert not r.has_phone
        assert r.outcome == JobOutcome.NOT_FOUND

    def test_for_item_carries_name_and_url(self):
        item = ListingItem(display_name="A", detail_url="https://x.example/1")
        r = ExtractionResult.for_item(item, "+55 (41) 3333-4444", JobOutcome.FOUND)
        assert (r.name, r.detail_url) == ("A", "https://x.example/1")
        assert r.phone_digits == "554133334444"
        assert r.has_phone

    def test_as_contact_is_name_and_phone_only(self):
        r = ExtractionResult(name="A", phone="41 3333-4444", detail_url="https://x.example/1", outcome=JobOutcome.FOUND)
        assert r.as_contact() == {"name": "A", "phone": "41 3333-4444"}

    def test_outcome_serializes_as_value(self):
        r = ExtractionResult(name="A", outcome=JobOutcome.SKIPPED_AFTER_CRASH)
        assert r.model_dump(mode="json")["outcome"] == "skipped_after_crash"
