"""Deterministic flow layout for documents without a rendering engine.

Estimates the vertical position of every element and text node by stacking
block elements and wrapping inline text at a fixed number of characters per
line. Good enough to order blocks vertically and to compare distances, which
is all the anchoring layers need.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass, field

from lxml import etree

BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "body", "dd", "details",
    "dialog", "div", "dl", "dt", "fieldset", "figcaption", "figure", "footer",
    "form", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "main",
    "nav", "ol", "p", "pre", "section", "summary", "table", "tbody", "td",
    "tfoot", "th", "thead", "tr", "ul",
}


@dataclass
class Layout:
    """Computed positions for one document snapshot."""

    element_tops: dict[etree._Element, float] = field(default_factory=dict)
    text_tops: dict[tuple[etree._Element, str], float] = field(default_factory=dict)
    height: float = 0.0


class FlowLayout:
    """Stacks blocks top to bottom and wraps inline text into lines."""

    def __init__(
        self,
        chars_per_line: int,
        line_height: float,
        block_gap: float,
    ) -> None:
        """Initialize the layout engine.

        Args:
            chars_per_line: Characters that fit on one line
            line_height: Height of one line
            block_gap: Extra space added after each block element
        """
        self.chars_per_line = chars_per_line
        self.line_height = line_height
        self.block_gap = block_gap
        self._y = 0.0
        self._column = 0
        self._layout = Layout()

    def compute(
        self,
        root: etree._Element,
        skip: Callable[[etree._Element], bool],
    ) -> Layout:
        """Lay out ``root`` and everything below it.

        Args:
            root: Element to start from (usually the body)
            skip: Predicate for subtrees that take up no space

        Returns:
            Layout with element and text positions and total height
        """
        self._y = 0.0
        self._column = 0
        self._layout = Layout()

        self._visit(root, skip)
        self._break()
        self._layout.height = self._y
        return self._layout

    def _visit(
        self, elem: etree._Element, skip: Callable[[etree._Element], bool]
    ) -> None:
        tag = elem.tag.lower()
        is_block = tag in BLOCK_TAGS

        if is_block:
            self._break()
        if tag == "br":
            self._line_break()
        self._layout.element_tops[elem] = self._current_top()

        if elem.text:
            self._place(elem, "text", elem.text)

        for child in elem:
            if isinstance(child.tag, str) and not skip(child):
                self._visit(child, skip)
            if child.tail:
                self._place(child, "tail", child.tail)

        if is_block:
            self._break()
            self._y += self.block_gap

    def _current_top(self) -> float:
        return self._y + (self._column // self.chars_per_line) * self.line_height

    def _place(self, elem: etree._Element, slot: str, text: str) -> None:
        self._layout.text_tops[(elem, slot)] = self._current_top()
        words = text.split()
        if not words:
            return
        # Collapsed whitespace, as a browser renders it
        self._column += len(" ".join(words)) + 1

    def _break(self) -> None:
        if self._column:
            lines = math.ceil(self._column / self.chars_per_line)
            self._y += lines * self.line_height
            self._column = 0

    def _line_break(self) -> None:
        if self._column:
            self._break()
        else:
            self._y += self.line_height
