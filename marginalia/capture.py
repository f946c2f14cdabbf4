"""
Anchor capture: turn a selection into a serializable TextAnchor.

Capture is deterministic for a given document state and range. It reads the
document through the DocumentModel contract and has no side effects.
"""

from __future__ import annotations

from marginalia.config import (
    CONTEXT_LENGTH,
    HEADING_MAX_LENGTH,
    HEADING_WALK_STEPS,
    PATH_MAX_DEPTH,
    SURROUNDING_MAX_LENGTH,
    SURROUNDING_RADIUS,
)
from marginalia.document.protocols import (
    HEADING_TAGS,
    DocumentModel,
    Element,
    TextRange,
)
from marginalia.errors import CaptureFailure
from marginalia.models import Fingerprint, TextAnchor
from marginalia.similarity import normalize

# Headings considered by the vertical-distance fallback
FALLBACK_HEADING_TAGS = ("h1", "h2", "h3")


def selected_text(document: DocumentModel, text_range: TextRange) -> str:
    """
    Literal text covered by a range.

    Raises:
        CaptureFailure: If the range offsets fall outside their spans or the
            end lies before the start
    """
    start, end = text_range.start_span, text_range.end_span
    if not 0 <= text_range.start_offset <= len(start.content):
        raise CaptureFailure(f"Start offset {text_range.start_offset} outside its span")
    if not 0 <= text_range.end_offset <= len(end.content):
        raise CaptureFailure(f"End offset {text_range.end_offset} outside its span")

    if start is end:
        if text_range.end_offset < text_range.start_offset:
            raise CaptureFailure("Range ends before it starts")
        return start.content[text_range.start_offset : text_range.end_offset]

    if end.index < start.index:
        raise CaptureFailure("Range ends before it starts")

    parts = [start.content[text_range.start_offset :]]
    for span in document.text_spans():
        if start.index < span.index < end.index:
            parts.append(span.content)
    parts.append(end.content[: text_range.end_offset])
    return "".join(parts)


def element_path(document: DocumentModel, element: Element | None) -> str:
    """
    Build a short structural path for an element.

    Walks up to four steps towards the body, producing ``tag`` or
    ``tag.firstClass`` per step. An element carrying an id ends the walk
    with ``#id``, since the id alone pins the rest of the path down.

    Example:
        "#main > div.story > p"
    """
    parts: list[str] = []
    current = element
    for _ in range(PATH_MAX_DEPTH):
        if current is None:
            break
        element_id = document.element_id(current)
        if element_id:
            parts.insert(0, f"#{element_id}")
            break
        part = document.tag_name(current)
        classes = document.class_names(current)
        if classes:
            part += f".{classes[0]}"
        parts.insert(0, part)
        current = document.parent(current)
    return " > ".join(parts)


def nearest_heading(document: DocumentModel, element: Element | None) -> str:
    """
    Find the heading that introduces an element.

    First walks up to 20 ancestors; at each step the previous sibling (or the
    parent when there is none) is checked for being or containing a heading.
    Falls back to the h1-h3 whose vertical position is closest to the element.
    """
    if element is None:
        return ""

    cursor = element
    for _ in range(HEADING_WALK_STEPS):
        if cursor is None:
            break
        previous = document.previous_sibling(cursor)
        if previous is None:
            previous = document.parent(cursor)
        if previous is not None:
            if document.tag_name(previous) in HEADING_TAGS:
                heading = previous
            else:
                heading = document.first_descendant(previous, HEADING_TAGS)
            if heading is not None:
                return document.text(heading).strip()[:HEADING_MAX_LENGTH]
        cursor = document.parent(cursor)

    element_top = document.top(element)
    best = None
    best_distance = float("inf")
    for heading in document.headings(FALLBACK_HEADING_TAGS):
        distance = abs(document.top(heading) - element_top)
        if distance < best_distance:
            best_distance = distance
            best = heading
    if best is None:
        return ""
    return document.text(best).strip()[:HEADING_MAX_LENGTH]


def surrounding_text(document: DocumentModel, element: Element | None, exact: str) -> str:
    """Up to 200 characters either side of the quote inside its element."""
    if element is None:
        return ""
    full_text = document.text(element)
    index = full_text.find(exact)
    if index == -1:
        return full_text[:SURROUNDING_MAX_LENGTH]
    start = max(0, index - SURROUNDING_RADIUS)
    end = index + len(exact) + SURROUNDING_RADIUS
    return full_text[start:end][:SURROUNDING_MAX_LENGTH]


def section_index(document: DocumentModel, element: Element | None) -> int:
    """Index of the innermost section-like container holding the element."""
    index = 0
    if element is None:
        return index
    for i, section in enumerate(document.sections()):
        if document.contains(section, element):
            index = i
    return index


def scroll_percentage(document: DocumentModel) -> float:
    """Scroll offset as a fraction of document height, rounded to 3 decimals."""
    fraction = document.scroll_offset / max(document.scroll_height, 1)
    return round(min(max(fraction, 0.0), 1.0), 3)


def build_fingerprint(
    document: DocumentModel, element: Element | None, exact: str
) -> Fingerprint:
    """Capture the structural context of a selection."""
    return Fingerprint(
        nearest_heading=nearest_heading(document, element),
        surrounding_text=surrounding_text(document, element, exact),
        normalized_text=normalize(exact),
        tag_name=document.tag_name(element) if element is not None else "unknown",
        word_count=len(exact.split()),
        scroll_percentage=scroll_percentage(document),
        section_index=section_index(document, element),
    )


def capture_anchor(
    document: DocumentModel,
    text_range: TextRange,
    text: str | None = None,
) -> TextAnchor:
    """
    Build a TextAnchor for a selection.

    Args:
        document: The document the selection was made in
        text_range: The selected range
        text: Literal selected text; derived from the range when omitted

    Returns:
        The captured anchor

    Raises:
        CaptureFailure: If the selection is empty, the range is invalid, or it
            crosses from one text span into another
    """
    if text_range.start_span is not text_range.end_span:
        # Matches are located within a single span
        raise CaptureFailure(
            "Selection crosses element boundaries; select text within one element"
        )
    exact = text if text is not None else selected_text(document, text_range)
    if not exact.strip():
        raise CaptureFailure("Cannot anchor an empty selection")

    start, end = text_range.start_span, text_range.end_span
    prefix = start.content[
        max(0, text_range.start_offset - CONTEXT_LENGTH) : text_range.start_offset
    ]
    suffix = end.content[text_range.end_offset : text_range.end_offset + CONTEXT_LENGTH]
    element = start.parent

    return TextAnchor(
        exact=exact,
        prefix=prefix,
        suffix=suffix,
        parent_path=element_path(document, element),
        fingerprint=build_fingerprint(document, element, exact),
    )
