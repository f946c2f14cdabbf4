"""HTML implementation of the document model, built on lxml."""

from __future__ import annotations

import re
from collections.abc import Collection, Iterator
from pathlib import Path
from typing import Self

import lxml.html
import requests
from lxml import etree

from marginalia.config import HTTP_TIMEOUT, Settings
from marginalia.document.layout import FlowLayout
from marginalia.document.protocols import HEADING_TAGS, TextRange, TextSpan

# Elements whose text is never rendered
NON_RENDERED_TAGS = {"script", "style", "noscript", "template", "head", "title"}

SECTION_TAGS = {"article", "section"}
SECTION_CLASS_HINTS = ("article", "story", "post", "content")

_PATH_STEP = re.compile(
    r"^(?:#(?P<id>\S+)|(?P<tag>[a-zA-Z][\w-]*)(?:\.(?P<cls>\S+))?|\.(?P<bare_cls>\S+))$"
)


def _is_element(node: etree._Element) -> bool:
    """Comments and processing instructions have non-string tags."""
    return isinstance(node.tag, str)


class HtmlDocument:
    """
    A parsed HTML page exposed through the DocumentModel contract.

    Text spans and layout are computed once per snapshot. Call
    :meth:`refresh` after mutating the tree to take a new snapshot.

    Example:
        document = HtmlDocument.from_string("<p>The quick brown fox</p>")
        text_range = document.find_range("quick")
    """

    def __init__(
        self,
        root: etree._Element,
        settings: Settings | None = None,
        scroll_offset: float = 0.0,
    ) -> None:
        """
        Wrap a parsed HTML tree.

        Args:
            root: The <html> element (or any element to treat as the page)
            settings: Layout and ownership settings (defaults apply if omitted)
            scroll_offset: Current vertical scroll position
        """
        self.settings = settings or Settings()
        self._root = root
        body = root.find("body") if root.tag == "html" else None
        self._body = body if body is not None else root
        self._scroll_offset = scroll_offset
        self.refresh()

    @classmethod
    def from_string(
        cls,
        html: str,
        settings: Settings | None = None,
        scroll_offset: float = 0.0,
    ) -> Self:
        """
        Parse an HTML string.

        Raises:
            ValueError: If the HTML is blank or parses to no document at all
        """
        if not html.strip():
            raise ValueError("Cannot build a document from empty HTML")
        try:
            root = lxml.html.document_fromstring(html)
        except etree.ParserError as e:
            raise ValueError(f"Cannot parse HTML: {e}") from e
        return cls(root, settings, scroll_offset)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        settings: Settings | None = None,
        scroll_offset: float = 0.0,
    ) -> Self:
        """Parse an HTML file."""
        with open(path, encoding="utf-8") as f:
            return cls.from_string(f.read(), settings, scroll_offset)

    @classmethod
    def from_url(
        cls,
        url: str,
        settings: Settings | None = None,
        scroll_offset: float = 0.0,
    ) -> Self:
        """
        Download and parse a page.

        Raises:
            requests.HTTPError: If the download fails
        """
        response = requests.get(url, timeout=HTTP_TIMEOUT, allow_redirects=True)
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise requests.HTTPError(f"Failed to download page {url}: {e}") from e
        return cls.from_string(response.text, settings, scroll_offset)

    # === Snapshot ===

    def refresh(self) -> None:
        """Recompute layout and text spans from the current tree."""
        layout_engine = FlowLayout(
            chars_per_line=self.settings.chars_per_line,
            line_height=self.settings.line_height,
            block_gap=self.settings.block_gap,
        )
        self._layout = layout_engine.compute(self._body, self._is_excluded)
        self._spans: list[TextSpan] = []
        self._span_by_key: dict[tuple[etree._Element, str], TextSpan] = {}
        if not self._is_excluded(self._body):
            for node, slot, parent in self._walk_text(self._body):
                span = TextSpan(
                    content=getattr(node, slot),
                    parent=parent,
                    top=self._layout.text_tops.get((node, slot), 0.0),
                    index=len(self._spans),
                    handle=(node, slot),
                )
                self._spans.append(span)
                self._span_by_key[(node, slot)] = span

    def _walk_text(
        self, elem: etree._Element
    ) -> Iterator[tuple[etree._Element, str, etree._Element]]:
        """Yield (node, slot, parent) for every text node below ``elem``."""
        if elem.text:
            yield elem, "text", elem
        for child in elem:
            if _is_element(child) and not self._is_excluded(child):
                yield from self._walk_text(child)
            if child.tail:
                yield child, "tail", elem

    def _walk_elements(self, elem: etree._Element) -> Iterator[etree._Element]:
        """Pre-order walk over descendants of ``elem``, pruning excluded subtrees."""
        for child in elem:
            if _is_element(child) and not self._is_excluded(child):
                yield child
                yield from self._walk_elements(child)

    def _is_excluded(self, elem: etree._Element) -> bool:
        if elem.tag in NON_RENDERED_TAGS:
            return True
        return self.is_owned_ui(elem)

    def is_owned_ui(self, elem: etree._Element) -> bool:
        """True if the element belongs to the presentation layer."""
        prefix = self.settings.owned_ui_prefix
        if not prefix:
            return False
        if elem.get("id", "").startswith(prefix):
            return True
        return any(cls.startswith(prefix) for cls in self.class_names(elem))

    # === Page metrics ===

    @property
    def scroll_offset(self) -> float:
        return self._scroll_offset

    @scroll_offset.setter
    def scroll_offset(self, value: float) -> None:
        self._scroll_offset = max(0.0, value)

    @property
    def scroll_height(self) -> float:
        return self._layout.height

    @property
    def viewport_height(self) -> float:
        return self.settings.viewport_height

    # === Text ===

    def text_spans(self) -> Iterator[TextSpan]:
        return iter(self._spans)

    def spans_within(self, element: etree._Element) -> Iterator[TextSpan]:
        if self._is_excluded(element):
            return
        for node, slot, _parent in self._walk_text(element):
            span = self._span_by_key.get((node, slot))
            if span is not None:
                yield span

    def text(self, element: etree._Element) -> str:
        return "".join(span.content for span in self.spans_within(element))

    def live_text(self, span: TextSpan) -> str:
        node, slot = span.handle
        return getattr(node, slot) or ""

    def find_range(self, needle: str, occurrence: int = 0) -> TextRange | None:
        """
        Select the ``occurrence``-th literal appearance of ``needle`` in a single span.

        Returns:
            The range, or None if there are not enough occurrences
        """
        if not needle:
            return None
        seen = 0
        for span in self._spans:
            start = span.content.find(needle)
            while start != -1:
                if seen == occurrence:
                    return TextRange(span, start, span, start + len(needle))
                seen += 1
                start = span.content.find(needle, start + 1)
        return None

    # === Structure ===

    def blocks(
        self, tags: Collection[str], classed: Collection[str] = ()
    ) -> Iterator[etree._Element]:
        for elem in self._walk_elements(self._body):
            if elem.tag in tags:
                yield elem
            elif elem.tag in classed and elem.get("class") is not None:
                yield elem

    def headings(
        self, tags: Collection[str] = HEADING_TAGS
    ) -> Iterator[etree._Element]:
        return self.blocks(tags)

    def sections(self) -> list[etree._Element]:
        found = []
        for elem in self._walk_elements(self._body):
            class_attr = elem.get("class", "")
            if elem.tag in SECTION_TAGS or any(
                hint in class_attr for hint in SECTION_CLASS_HINTS
            ):
                found.append(elem)
        return found

    def tag_name(self, element: etree._Element) -> str:
        return element.tag.lower()

    def element_id(self, element: etree._Element) -> str:
        return element.get("id", "").strip()

    def class_names(self, element: etree._Element) -> list[str]:
        return element.get("class", "").split()

    def parent(self, element: etree._Element) -> etree._Element | None:
        if element is self._body:
            return None
        parent = element.getparent()
        if parent is None or parent is self._body:
            return None
        return parent

    def previous_sibling(self, element: etree._Element) -> etree._Element | None:
        sibling = element.getprevious()
        while sibling is not None:
            if _is_element(sibling) and not self._is_excluded(sibling):
                return sibling
            sibling = sibling.getprevious()
        return None

    def first_descendant(
        self, element: etree._Element, tags: Collection[str]
    ) -> etree._Element | None:
        for elem in self._walk_elements(element):
            if elem.tag in tags:
                return elem
        return None

    def contains(self, ancestor: etree._Element, element: etree._Element) -> bool:
        node = element
        while node is not None:
            if node is ancestor:
                return True
            node = node.getparent()
        return False

    def top(self, element: etree._Element) -> float:
        return self._layout.element_tops.get(element, 0.0)

    def matches_path(self, element: etree._Element, path: str) -> bool:
        steps = [step.strip() for step in path.split(">")]
        if not path.strip() or not all(steps):
            return False
        parsed = [_PATH_STEP.match(step) for step in steps]
        if not all(parsed):
            return False

        node = element
        while node is not None and _is_element(node):
            if self._chain_matches(node, parsed):
                return True
            node = node.getparent()
        return False

    def _chain_matches(
        self, node: etree._Element, steps: list[re.Match[str]]
    ) -> bool:
        """Check ``node`` against the last step and its parents against the rest."""
        current: etree._Element | None = node
        for step in reversed(steps):
            if current is None or not _is_element(current):
                return False
            if not self._step_matches(current, step):
                return False
            current = current.getparent()
        return True

    def _step_matches(self, node: etree._Element, step: re.Match[str]) -> bool:
        if step.group("id"):
            return node.get("id") == step.group("id")
        if step.group("bare_cls"):
            return step.group("bare_cls") in self.class_names(node)
        if node.tag.lower() != step.group("tag").lower():
            return False
        cls = step.group("cls")
        return cls is None or cls in self.class_names(node)
