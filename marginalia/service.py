"""
Page-level entry points: capture, resolve all annotations of a page, resolve
one annotation, and the re-anchor flow.

The service ties the stateless capture and resolver functions to the store.
A render pass resolves the page's annotations one after another; a match
that no longer fits its live span skips that one annotation for the pass and
never aborts the others.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from marginalia.capture import capture_anchor, selected_text
from marginalia.config import Settings
from marginalia.document.protocols import DocumentModel, TextRange
from marginalia.errors import CaptureFailure, RenderFailure
from marginalia.logging_config import logger
from marginalia.models import Annotation, CoordinateAnchor, TextAnchor
from marginalia.resolver import Match, Resolution, resolve_anchor
from marginalia.session import PageSession
from marginalia.store import AnnotationStore


@dataclass
class Placement:
    """A text annotation whose passage was located on the page."""

    annotation: Annotation
    resolution: Resolution
    match: Match


@dataclass
class PageResolution:
    """
    Outcome of one render pass over a page.

    Attributes:
        url: The page
        placements: Text annotations to highlight, in collection order
        pins: Coordinate annotations, carried through unresolved
        detached: Text annotations no layer could locate
        skipped: Failures of annotations left out of this pass
    """

    url: str
    placements: list[Placement] = field(default_factory=list)
    pins: list[Annotation] = field(default_factory=list)
    detached: list[Annotation] = field(default_factory=list)
    skipped: list[RenderFailure] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.placements) + len(self.pins) + len(self.detached) + len(self.skipped)
        )


def check_match(document: DocumentModel, annotation_id: str, match: Match) -> None:
    """
    Re-validate a match against the live text of its span.

    Raises:
        RenderFailure: If the span changed since resolution and the match
            no longer fits
    """
    live = document.live_text(match.span)
    if match.end > len(live):
        raise RenderFailure(
            annotation_id,
            f"match [{match.offset}:{match.end}] exceeds live span length {len(live)}",
        )
    if live[match.offset : match.end] != match.text:
        raise RenderFailure(annotation_id, "span text changed since resolution")


class AnnotationService:
    """Entry points used by the presentation layer, the CLI and the API."""

    def __init__(self, store: AnnotationStore, settings: Settings | None = None) -> None:
        self.store = store
        self.settings = settings or Settings()

    # === Capture ===

    def capture_anchor_from_selection(
        self, document: DocumentModel, text_range: TextRange, text: str | None = None
    ) -> TextAnchor:
        """
        Build an anchor for a selection without persisting anything.

        Raises:
            CaptureFailure: If the selection is empty or the range is invalid
        """
        return capture_anchor(document, text_range, text)

    def create_text_annotation(
        self,
        document: DocumentModel,
        text_range: TextRange,
        url: str,
        text: str,
        tags: list[str] | None = None,
    ) -> Annotation:
        """
        Capture a selection and save a new annotation for it.

        Raises:
            CaptureFailure: If the selection cannot be anchored (nothing is saved)
            pydantic.ValidationError: If the note text is empty
        """
        anchor = self.capture_anchor_from_selection(document, text_range)
        annotation = Annotation(url=url, text=text, tags=tags or [], anchor=anchor)
        self.store.save(annotation)
        logger.info(f"Created text annotation {annotation.id} on {url}")
        return annotation

    def create_coordinate_annotation(
        self,
        url: str,
        x: float,
        y: float,
        text: str,
        tags: list[str] | None = None,
    ) -> Annotation:
        """Save a new annotation pinned to a page position."""
        annotation = Annotation(
            url=url, text=text, tags=tags or [], anchor=CoordinateAnchor(x=x, y=y)
        )
        self.store.save(annotation)
        logger.info(f"Created pin {annotation.id} on {url} at ({x}, {y})")
        return annotation

    # === Resolution ===

    def resolve_all_for_page(self, document: DocumentModel, url: str) -> PageResolution:
        """Resolve every annotation stored for ``url`` against ``document``."""
        result = PageResolution(url=url)
        annotations = self.store.for_url(url)

        with logger.indent_block(f"Render pass for {url}: {len(annotations)} annotation(s)"):
            for annotation in annotations:
                if not isinstance(annotation.anchor, TextAnchor):
                    result.pins.append(annotation)
                    continue

                resolution = resolve_anchor(annotation.anchor, document, self.settings)
                if resolution.match is None:
                    result.detached.append(annotation)
                    continue

                try:
                    check_match(document, annotation.id, resolution.match)
                except RenderFailure as e:
                    logger.warning(str(e))
                    result.skipped.append(e)
                    continue
                result.placements.append(Placement(annotation, resolution, resolution.match))

        logger.info(
            f"Resolved {url}: {len(result.placements)} placed, "
            f"{len(result.detached)} detached, {len(result.pins)} pinned, "
            f"{len(result.skipped)} skipped"
        )
        return result

    def resolve_one_by_id(
        self, document: DocumentModel, annotation_id: str
    ) -> Resolution:
        """
        Resolve a single annotation, e.g. to scroll to it.

        Raises:
            AnnotationNotFoundError: If the id is unknown
            ValueError: If the annotation is pinned to a position, not a passage
        """
        annotation = self.store.get(annotation_id)
        if not isinstance(annotation.anchor, TextAnchor):
            raise ValueError(f"Annotation {annotation_id} is not anchored to text")
        return resolve_anchor(annotation.anchor, document, self.settings)

    # === Re-anchor ===

    def start_reanchor(self, page: PageSession, annotation_id: str) -> None:
        """
        Open a re-anchor session for an existing annotation.

        Raises:
            AnnotationNotFoundError: If the id is unknown
            ReanchorInProgressError: If the page already has an open session
        """
        self.store.get(annotation_id)
        page.start_reanchor(annotation_id)

    def confirm_reanchor(
        self,
        page: PageSession,
        document: DocumentModel,
        text_range: TextRange | None = None,
    ) -> Annotation:
        """
        Capture the pending selection and replace the annotation's anchor.

        If ``text_range`` is given it becomes the pending selection first.
        The session ends only once the new anchor is persisted; on failure it
        stays open so another passage can be selected.

        Raises:
            NoReanchorSessionError: If no session is open
            CaptureFailure: If there is no usable pending selection
        """
        if text_range is not None:
            page.select(text_range, selected_text(document, text_range))

        session = page.require_reanchor()
        if session.pending_range is None:
            raise CaptureFailure("No passage selected to re-anchor to")

        anchor = capture_anchor(document, session.pending_range, session.pending_text)
        annotation = self.store.reanchor(session.annotation_id, anchor)
        page.finish_reanchor()
        logger.info(f"Re-anchored annotation {annotation.id}")
        return annotation

    def cancel_reanchor(self, page: PageSession) -> None:
        """End the page's re-anchor session without changing anything."""
        page.cancel_reanchor()
