"""
Listing Contact Extractor - Pydantic Data Schemas

Core data models for listing items and extraction results. One
ExtractionResult is produced per ListingItem, whatever happened while
visiting its detail page.
"""

from enum import Enum
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator


UNKNOWN_NAME = "Unknown"


class JobOutcome(str, Enum):
    """How a detail-page job reached its terminal state."""
    FOUND = "found"                              # heuristic chain returned a number
    NOT_FOUND = "not_found"                      # page loaded, no number anywhere
    RETRIES_EXHAUSTED = "retries_exhausted"      # transient failures used up the budget
    SKIPPED_AFTER_CRASH = "skipped_after_crash"  # view destroyed; job never (fully) attempted


class ListingItem(BaseModel):
    """
    One anchor read from the listing view.

    Uniqueness is by detail_url, never by display_name: two places may
    share a name.
    """
    model_config = ConfigDict(frozen=True)

    display_name: str = Field(
        default=UNKNOWN_NAME,
        description="Label shown for the item in the listing"
    )

    detail_url: str = Field(
        ...,
        description="Absolute URL of the item's detail view (unique key)"
    )

    @field_validator('display_name', mode='before')
    @classmethod
    def default_blank_name(cls, v):
        """Anchors without a label keep a placeholder name."""
        if v is None or not str(v).strip():
            return UNKNOWN_NAME
        return str(v).strip()

    @field_validator('detail_url')
    @classmethod
    def validate_detail_url(cls, v):
        """Validate URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('detail_url must be a valid HTTP/HTTPS URL')
        return v


class ExtractionResult(BaseModel):
    """
    Terminal record for one job. phone == "" means "not found".
    """
    model_config = ConfigDict(frozen=True, use_enum_values=False)

    name: str = Field(
        ...,
        description="Display name carried over from the listing item"
    )

    phone: str = Field(
        default="",
        description="Phone number as found on the page, or empty string"
    )

    detail_url: str = Field(
        default="",
        description="Detail view the phone was looked up on"
    )

    outcome: JobOutcome = Field(
        default=JobOutcome.NOT_FOUND,
        description="Terminal state of the job"
    )

    @field_validator('phone', mode='before')
    @classmethod
    def none_phone_to_empty(cls, v):
        return (v or '').strip()

    @property
    def has_phone(self) -> bool:
        return bool(self.phone)

    @property
    def phone_digits(self) -> str:
        return re.sub(r"\D", "", self.phone)

    @classmethod
    def for_item(cls, item: ListingItem, phone: str | None, outcome: JobOutcome) -> 'ExtractionResult':
        return cls(name=item.display_name, phone=phone or "", detail_url=item.detail_url, outcome=outcome)

    def as_contact(self) -> dict:
        """The {name, phone} pair consumed by downstream collaborators."""
        return {"name": self.name, "phone": self.phone}
