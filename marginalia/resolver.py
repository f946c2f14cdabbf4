"""
Anchor resolution: relocate a captured passage in the current document.

Resolution runs five layers in strict order and the first layer that accepts
a candidate wins:

1. Exact quote, ranked by literal prefix/suffix context and structural path
2. Fuzzy sliding window scored by bounded edit similarity
3. Structural block match on surrounding text, heading and tag
4. Positional fallback on the captured scroll percentage
5. Detached

Each layer trades precision for recall; the expensive fuzzy scan only runs
when no literal occurrence exists. Resolution holds no state between calls.

Document order is the order of ``DocumentModel.text_spans()`` (and of
``blocks()`` for layers 3 and 4): depth-first, each element's own text before
its children. Every tie is broken in favour of the earliest candidate.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum

from marginalia.config import (
    CONTEXT_EXACT_WINDOW,
    CONTEXT_LOOSE_WINDOW,
    FUZZY_THRESHOLD,
    FUZZY_WINDOW_FACTOR,
    POSITIONAL_VIEWPORT_FACTOR,
    STRUCTURAL_PROBE_LENGTH,
    STRUCTURAL_TEXT_LIMIT,
    STRUCTURAL_THRESHOLD,
    Settings,
)
from marginalia.document.protocols import (
    HEADING_TAGS,
    DocumentModel,
    Element,
    TextSpan,
)
from marginalia.logging_config import logger
from marginalia.models import TextAnchor
from marginalia.similarity import (
    bounded_edit_similarity,
    normalize,
    normalize_with_offsets,
    set_similarity,
)

STRUCTURAL_BLOCK_TAGS = ("p", "h1", "h2", "h3", "h4", "li", "td", "blockquote")
STRUCTURAL_CLASSED_TAGS = ("div",)
POSITIONAL_BLOCK_TAGS = ("p", "h2", "h3", "li", "blockquote")

# Layer 1 scoring
PREFIX_EXACT_POINTS = 4
PREFIX_LOOSE_POINTS = 2
SUFFIX_EXACT_POINTS = 4
SUFFIX_LOOSE_POINTS = 2
PARENT_PATH_POINTS = 3

# Layer 3 weights
SURROUNDING_WEIGHT = 5
HEADING_WEIGHT = 4
TAG_WEIGHT = 1


class Confidence(str, Enum):
    """How a match was found, in decreasing order of trust."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    STRUCTURAL = "structural"
    POSITIONAL = "positional"
    DETACHED = "detached"


@dataclass
class Match:
    """
    A location in a text span.

    Attributes:
        span: The span the match lies in
        offset: Character offset inside the span
        length: Number of characters matched
        confidence: Layer that produced the match
        score: Layer-specific score (context points, similarity, structural
            score, or pixel distance for positional matches)
    """

    span: TextSpan
    offset: int
    length: int
    confidence: Confidence
    score: float = 0.0

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"Match offset must be >= 0, got {self.offset}")
        if self.length <= 0:
            raise ValueError(f"Match length must be > 0, got {self.length}")
        if self.end > len(self.span.content):
            raise ValueError(
                f"Match [{self.offset}:{self.end}] exceeds span length "
                f"{len(self.span.content)}"
            )

    @property
    def end(self) -> int:
        """Offset just past the match."""
        return self.offset + self.length

    @property
    def text(self) -> str:
        """The matched text."""
        return self.span.content[self.offset : self.end]


@dataclass
class Resolution:
    """
    Result of resolving one anchor.

    Use the boolean properties for clean result handling:

        resolution = resolve_anchor(anchor, document)
        if resolution.found:
            print(resolution.match.text)
        else:
            print("detached")
    """

    confidence: Confidence
    match: Match | None = None

    @property
    def found(self) -> bool:
        """True if some layer located the passage."""
        return self.match is not None

    @property
    def detached(self) -> bool:
        """True if no layer located the passage."""
        return self.match is None


Layer = Callable[[TextAnchor, DocumentModel, list[TextSpan], Settings], Match | None]


def resolve_anchor(
    anchor: TextAnchor,
    document: DocumentModel,
    settings: Settings | None = None,
) -> Resolution:
    """
    Find the best current location of an anchored passage.

    Args:
        anchor: The captured anchor
        document: The current document
        settings: Resolution budgets (defaults apply if omitted)

    Returns:
        Resolution with the match, or a detached resolution
    """
    settings = settings or Settings()
    spans = list(document.text_spans())

    with logger.indent_block(f"Resolving anchor {_preview(anchor.exact)!r}"):
        for number, (confidence, layer) in enumerate(LAYERS, start=1):
            with logger.layer_block(number, confidence.value):
                match = layer(anchor, document, spans, settings)
            if match is not None:
                logger.debug(
                    f"Accepted {match.confidence.value} match at span "
                    f"{match.span.index}, offset {match.offset}"
                )
                return Resolution(confidence=match.confidence, match=match)

        logger.debug("No layer accepted a candidate: detached")
        return Resolution(confidence=Confidence.DETACHED)


# === Layer 1: exact with context ===


def find_exact(
    anchor: TextAnchor,
    document: DocumentModel,
    spans: list[TextSpan],
    settings: Settings,
) -> Match | None:
    """Every literal occurrence of the quote, ranked by context."""
    exact = anchor.exact
    best: tuple[TextSpan, int] | None = None
    best_score = -1
    occurrences = 0

    for span in spans:
        start = span.content.find(exact)
        if start == -1:
            continue
        path_points = 0
        if anchor.parent_path and document.matches_path(span.parent, anchor.parent_path):
            path_points = PARENT_PATH_POINTS
        while start != -1:
            occurrences += 1
            score = context_score(anchor, span.content, start) + path_points
            if score > best_score:
                best_score = score
                best = (span, start)
            start = span.content.find(exact, start + 1)

    logger.debug(f"Found {occurrences} occurrence(s)")
    if best is None:
        return None
    span, start = best
    return Match(span, start, len(exact), Confidence.EXACT, float(best_score))


def context_score(anchor: TextAnchor, content: str, start: int) -> int:
    """
    Score how well the text around an occurrence matches the captured context.

    The prefix earns full points when the text right before the occurrence
    ends with the last 32 captured characters, or partial points when the
    last 16 appear anywhere in the 32 characters before. The suffix mirrors
    this, but its partial check only looks at the 16 characters after.
    """
    score = 0
    prefix, suffix = anchor.prefix, anchor.suffix
    end = start + len(anchor.exact)

    if prefix:
        before = content[max(0, start - len(prefix)) : start]
        if before.endswith(prefix[-CONTEXT_EXACT_WINDOW:]):
            score += PREFIX_EXACT_POINTS
        elif prefix[-CONTEXT_LOOSE_WINDOW:] in content[
            max(0, start - CONTEXT_EXACT_WINDOW) : start
        ]:
            score += PREFIX_LOOSE_POINTS

    if suffix:
        after = content[end : end + len(suffix)]
        if after.startswith(suffix[:CONTEXT_EXACT_WINDOW]):
            score += SUFFIX_EXACT_POINTS
        elif suffix[:CONTEXT_LOOSE_WINDOW] in content[end : end + CONTEXT_LOOSE_WINDOW]:
            score += SUFFIX_LOOSE_POINTS

    return score


# === Layer 2: fuzzy sliding window ===


def find_fuzzy(
    anchor: TextAnchor,
    document: DocumentModel,
    spans: list[TextSpan],
    settings: Settings,
) -> Match | None:
    """Best edit-similarity window across all spans, if above threshold."""
    exact = anchor.exact
    best: tuple[TextSpan, int] | None = None
    best_score = FUZZY_THRESHOLD

    windows = sliding_windows(spans, len(exact))
    for count, (span, start, window) in enumerate(windows):
        if count >= settings.max_fuzzy_windows:
            logger.warning(
                f"Layer 2 (fuzzy): window budget of {settings.max_fuzzy_windows} "
                "exhausted, keeping best candidate so far"
            )
            break
        if not normalize(window):
            # Whitespace or punctuation only; nothing to compare against
            continue
        score = bounded_edit_similarity(exact, window)
        if score > best_score:
            best_score = score
            best = (span, start)

    if best is None:
        logger.debug("No window above threshold")
        return None

    span, start = best
    logger.debug(f"Best similarity {best_score:.3f}")
    length = min(len(exact), len(span.content) - start)
    return Match(span, start, length, Confidence.FUZZY, best_score)


def sliding_windows(
    spans: list[TextSpan], quote_length: int
) -> Iterator[tuple[TextSpan, int, str]]:
    """
    Yield (span, offset, window) candidates for the fuzzy layer.

    Windows are 1.3 times the quote length and advance by a quarter window.
    Spans shorter than half the quote are skipped, and a window may start
    as long as half a quote still fits after it.
    """
    window_size = int(quote_length * FUZZY_WINDOW_FACTOR)
    step = max(1, window_size // 4)
    half_quote = quote_length * 0.5

    for span in spans:
        content = span.content
        if len(content) < half_quote:
            continue
        start = 0
        while start <= len(content) - half_quote:
            yield span, start, content[start : start + window_size]
            start += step


# === Layer 3: structural block match ===


def find_structural(
    anchor: TextAnchor,
    document: DocumentModel,
    spans: list[TextSpan],
    settings: Settings,
) -> Match | None:
    """Best-scoring block by surrounding text, nearest heading and tag."""
    fingerprint = anchor.fingerprint
    if not (fingerprint.nearest_heading or fingerprint.surrounding_text):
        logger.debug("No fingerprint context, skipped")
        return None

    headings = [
        (document.top(heading), document.text(heading))
        for heading in document.headings(HEADING_TAGS)
    ]
    best: Element | None = None
    best_score = STRUCTURAL_THRESHOLD

    blocks = document.blocks(STRUCTURAL_BLOCK_TAGS, classed=STRUCTURAL_CLASSED_TAGS)
    for count, block in enumerate(blocks):
        if count >= settings.max_structural_blocks:
            logger.warning(
                f"Layer 3 (structural): block budget of "
                f"{settings.max_structural_blocks} exhausted, keeping best candidate so far"
            )
            break
        if first_visible_span(document, block) is None:
            continue

        score = 0.0
        if fingerprint.surrounding_text:
            block_text = document.text(block)[:STRUCTURAL_TEXT_LIMIT]
            score += SURROUNDING_WEIGHT * set_similarity(
                fingerprint.surrounding_text, block_text
            )
        if fingerprint.nearest_heading:
            score += HEADING_WEIGHT * nearest_heading_similarity(
                fingerprint.nearest_heading, document.top(block), headings
            )
        if fingerprint.tag_name and document.tag_name(block) == fingerprint.tag_name:
            score += TAG_WEIGHT

        if score > best_score:
            best_score = score
            best = block

    if best is None:
        logger.debug("No block above threshold")
        return None

    logger.debug(f"Best score {best_score:.3f}")
    span, offset = locate_in_block(document, best, anchor.exact)
    length = min(len(anchor.exact), len(span.content) - offset)
    return Match(span, offset, length, Confidence.STRUCTURAL, best_score)


def nearest_heading_similarity(
    heading_text: str, top: float, headings: list[tuple[float, str]]
) -> float:
    """Similarity between the captured heading and the heading nearest ``top``."""
    nearest_distance = float("inf")
    similarity = 0.0
    for heading_top, text in headings:
        distance = abs(heading_top - top)
        if distance < nearest_distance:
            nearest_distance = distance
            similarity = set_similarity(heading_text, text)
    return similarity


def locate_in_block(
    document: DocumentModel, block: Element, exact: str
) -> tuple[TextSpan, int]:
    """
    Find where the quote most likely starts inside a block.

    Searches the block's normalized text for the first 20 normalized
    characters of the quote and maps the hit back to a span and raw offset.
    Falls back to the start of the first visible span.
    """
    spans = list(document.spans_within(block))
    block_text = "".join(span.content for span in spans)
    normalized, offsets = normalize_with_offsets(block_text)
    probe = normalize(exact)[:STRUCTURAL_PROBE_LENGTH]

    index = normalized.find(probe) if probe else -1
    if index != -1:
        raw_offset = offsets[index]
        span_start = 0
        for span in spans:
            if span_start <= raw_offset < span_start + len(span.content):
                return span, raw_offset - span_start
            span_start += len(span.content)

    fallback = first_visible_span(document, block)
    if fallback is None:
        raise ValueError("Block has no visible text")
    return fallback, 0


# === Layer 4: positional fallback ===


def find_positional(
    anchor: TextAnchor,
    document: DocumentModel,
    spans: list[TextSpan],
    settings: Settings,
) -> Match | None:
    """The block nearest the captured scroll position, if close enough."""
    percentage = anchor.fingerprint.scroll_percentage
    if percentage is None:
        logger.debug("No scroll percentage, skipped")
        return None

    target = percentage * document.scroll_height
    closest: Element | None = None
    closest_distance = float("inf")
    for block in document.blocks(POSITIONAL_BLOCK_TAGS):
        distance = abs(document.top(block) - target)
        if distance < closest_distance:
            closest_distance = distance
            closest = block

    limit = document.viewport_height * POSITIONAL_VIEWPORT_FACTOR
    if closest is None or closest_distance >= limit:
        logger.debug("No block within reach")
        return None

    span = first_visible_span(document, closest)
    if span is None:
        logger.debug("Nearest block has no text")
        return None

    length = min(len(anchor.exact), len(span.content))
    return Match(span, 0, length, Confidence.POSITIONAL, closest_distance)


def first_visible_span(document: DocumentModel, element: Element) -> TextSpan | None:
    """First span inside ``element`` with non-whitespace text."""
    for span in document.spans_within(element):
        if span.content.strip():
            return span
    return None


def _preview(text: str, width: int = 40) -> str:
    return text if len(text) <= width else f"{text[:width]}..."


# Resolution order; the first layer returning a match wins
LAYERS: tuple[tuple[Confidence, Layer], ...] = (
    (Confidence.EXACT, find_exact),
    (Confidence.FUZZY, find_fuzzy),
    (Confidence.STRUCTURAL, find_structural),
    (Confidence.POSITIONAL, find_positional),
)
