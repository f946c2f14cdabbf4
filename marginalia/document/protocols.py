"""Contract between the anchoring core and the document it reads."""

from __future__ import annotations

from collections.abc import Collection, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

Element = Any
"""Opaque element handle owned by the adapter."""

HEADING_TAGS = ("h1", "h2", "h3", "h4")


@dataclass(eq=False)
class TextSpan:
    """A leaf unit of renderable text.

    Spans are owned by the adapter and stay valid for one resolution pass.
    The core reads them and never mutates them.
    """

    content: str
    """The literal text of the span."""

    parent: Element
    """Element the text belongs to."""

    top: float
    """Vertical layout position of the line the span starts on."""

    index: int
    """Position of the span in document order."""

    handle: Any = field(default=None, repr=False)
    """Adapter-private reference to the underlying text node."""

    def __len__(self) -> int:
        return len(self.content)


@dataclass
class TextRange:
    """A selection between two positions in the document's text spans."""

    start_span: TextSpan
    start_offset: int
    end_span: TextSpan
    end_offset: int

    @property
    def collapsed(self) -> bool:
        """True if the range selects nothing."""
        return self.start_span is self.end_span and self.start_offset == self.end_offset


class DocumentModel(Protocol):
    """Read-only view of the current document.

    Any text source that can enumerate text leaves, element structure and
    vertical positions can satisfy this: a parsed HTML page, a headless
    layout tree, or server-stored structured text. Implementations exclude
    subtrees owned by the presentation layer from every enumeration.
    """

    @property
    def scroll_offset(self) -> float:
        """Current vertical scroll offset."""
        ...

    @property
    def scroll_height(self) -> float:
        """Total scrollable height of the document."""
        ...

    @property
    def viewport_height(self) -> float:
        """Height of the visible viewport."""
        ...

    def text_spans(self) -> Iterator[TextSpan]:
        """Yield every eligible text span in document order."""
        ...

    def live_text(self, span: TextSpan) -> str:
        """Current content of the text node behind ``span``.

        Differs from ``span.content`` only if the document changed after
        the span was produced.
        """
        ...

    def spans_within(self, element: Element) -> Iterator[TextSpan]:
        """Yield the eligible text spans inside an element, in document order."""
        ...

    def text(self, element: Element) -> str:
        """Flattened text of an element (concatenation of ``spans_within``)."""
        ...

    def blocks(
        self, tags: Collection[str], classed: Collection[str] = ()
    ) -> Iterator[Element]:
        """Yield elements with one of ``tags`` in document order.

        Args:
            tags: Tag names to include
            classed: Tag names included only when they carry a class attribute
        """
        ...

    def headings(self, tags: Collection[str] = HEADING_TAGS) -> Iterator[Element]:
        """Yield heading elements in document order."""
        ...

    def sections(self) -> list[Element]:
        """Landmark/section-like containers in document order."""
        ...

    def tag_name(self, element: Element) -> str:
        """Lowercase tag name of an element."""
        ...

    def element_id(self, element: Element) -> str:
        """The element's id attribute, empty if absent."""
        ...

    def class_names(self, element: Element) -> list[str]:
        """Class tokens of the element, in attribute order."""
        ...

    def parent(self, element: Element) -> Element | None:
        """Parent element, or None at the document body."""
        ...

    def previous_sibling(self, element: Element) -> Element | None:
        """Previous sibling element, or None."""
        ...

    def first_descendant(
        self, element: Element, tags: Collection[str]
    ) -> Element | None:
        """First descendant (document order) with one of ``tags``, or None."""
        ...

    def contains(self, ancestor: Element, element: Element) -> bool:
        """True if ``element`` is ``ancestor`` or lies inside it."""
        ...

    def top(self, element: Element) -> float:
        """Vertical layout position of an element."""
        ...

    def matches_path(self, element: Element, path: str) -> bool:
        """True if ``element`` or one of its ancestors matches a structural path.

        Never raises: an unparsable path simply does not match.
        """
        ...
