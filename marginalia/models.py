"""
Persisted record shapes for annotations and their anchors.

Field names are snake_case in Python and serialize with camelCase aliases,
so a stored collection reads the same as the records the page layer shares.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from marginalia.config import (
    CONTEXT_LENGTH,
    HEADING_MAX_LENGTH,
    SURROUNDING_MAX_LENGTH,
    validate_scroll_percentage,
)


def generate_id() -> str:
    """Generate a new random record identifier."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> dict:
        """Serialize to a plain dict using the stored field names."""
        return self.model_dump(mode="json", by_alias=True)


class Fingerprint(Record):
    """
    Structural context captured alongside a quote for fallback matching.

    Attributes:
        nearest_heading: Text of the heading nearest the selection
        surrounding_text: Text around the selection inside its containing block
        normalized_text: Normalized form of the exact quote
        tag_name: Tag of the element containing the selection
        word_count: Number of whitespace-separated tokens in the quote
        scroll_percentage: Scroll offset / document height at capture time
        section_index: Index of the innermost enclosing section-like container
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    nearest_heading: str = Field("", max_length=HEADING_MAX_LENGTH)
    surrounding_text: str = Field("", max_length=SURROUNDING_MAX_LENGTH)
    normalized_text: str = ""
    tag_name: str = ""
    word_count: int = Field(0, ge=0)
    scroll_percentage: float | None = None
    section_index: int = Field(0, ge=0)

    @field_validator("scroll_percentage")
    @classmethod
    def _check_scroll_percentage(cls, value: float | None) -> float | None:
        validate_scroll_percentage(value)
        return value


class TextAnchor(Record):
    """
    Description of a selected passage: quote, literal context and fingerprint.

    Attributes:
        exact: The selected text, never empty
        prefix: Literal text immediately before the selection
        suffix: Literal text immediately after the selection
        parent_path: Short structural path of the containing element
        fingerprint: Structural context for fallback layers
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    type: Literal["text"] = "text"
    exact: str = Field(min_length=1)
    prefix: str = Field("", max_length=CONTEXT_LENGTH)
    suffix: str = Field("", max_length=CONTEXT_LENGTH)
    parent_path: str = ""
    fingerprint: Fingerprint = Field(default_factory=Fingerprint)


class CoordinateAnchor(Record):
    """Absolute page position for annotations made without a text selection."""

    type: Literal["coordinate"] = "coordinate"
    x: float
    y: float


Anchor = Annotated[TextAnchor | CoordinateAnchor, Field(discriminator="type")]


class ReplyType(str, Enum):
    """Kinds of reply that can be attached to an annotation."""

    COMMENT = "comment"
    AGREE = "agree"
    DISAGREE = "disagree"


class Reply(Record):
    """A reply in the discussion thread of an annotation."""

    id: str = Field(default_factory=generate_id)
    annotation_id: str
    type: ReplyType = ReplyType.COMMENT
    text: str
    created: datetime = Field(default_factory=utcnow)

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Reply text must not be empty")
        return value


class Annotation(Record):
    """
    A note attached to a page, anchored to a passage or a position.

    Attributes:
        id: Stable identifier
        url: Page the annotation belongs to
        created: Creation time
        updated: Time of the last edit, None if never edited
        text: The note itself
        tags: Free-form labels
        anchor: Where the note is attached
        replies: Discussion thread
    """

    id: str = Field(default_factory=generate_id)
    url: str
    created: datetime = Field(default_factory=utcnow)
    updated: datetime | None = None
    text: str
    tags: list[str] = []
    anchor: Anchor
    replies: list[Reply] = []

    @field_validator("text")
    @classmethod
    def _text_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Annotation text must not be empty")
        return value

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, value: list[str]) -> list[str]:
        return [tag.strip() for tag in value if tag.strip()]

    @property
    def is_text(self) -> bool:
        """True if the annotation is anchored to a text passage."""
        return isinstance(self.anchor, TextAnchor)

    @classmethod
    def from_record(cls, data: dict) -> Self:
        """Create an Annotation from a stored record."""
        return cls.model_validate(data)
