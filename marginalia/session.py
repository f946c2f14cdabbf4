"""
Per-page session state owned by the presentation layer.

A page has at most one re-anchor session at a time. The session only records
which annotation is being re-anchored and the latest pending selection; the
capture-and-persist step itself lives in the service.
"""

from __future__ import annotations

from dataclasses import dataclass

from marginalia.document.protocols import TextRange
from marginalia.errors import NoReanchorSessionError, ReanchorInProgressError
from marginalia.logging_config import logger


@dataclass
class ReanchorSession:
    """An open re-anchor session for one annotation."""

    annotation_id: str
    pending_range: TextRange | None = None
    pending_text: str = ""

    @property
    def ready(self) -> bool:
        """True once a non-empty selection is pending."""
        return self.pending_range is not None


class PageSession:
    """
    Session state for one open page.

    Example:
        page = PageSession("https://example.org/post")
        page.start_reanchor(annotation.id)
        page.select(text_range, "new passage")
        session = page.finish_reanchor()
    """

    def __init__(self, url: str) -> None:
        self.url = url
        self.reanchor: ReanchorSession | None = None

    @property
    def reanchoring(self) -> bool:
        """True while a re-anchor session is open."""
        return self.reanchor is not None

    def start_reanchor(self, annotation_id: str) -> ReanchorSession:
        """
        Open a re-anchor session.

        Raises:
            ReanchorInProgressError: If a session is already open on this page
        """
        if self.reanchor is not None:
            raise ReanchorInProgressError(
                f"Already re-anchoring annotation {self.reanchor.annotation_id} "
                f"on {self.url}"
            )
        self.reanchor = ReanchorSession(annotation_id)
        logger.debug(f"Re-anchor session started for {annotation_id}")
        return self.reanchor

    def select(self, text_range: TextRange, text: str) -> bool:
        """
        Record a pending selection for the open session.

        Whitespace-only selections are ignored and leave any earlier pending
        selection in place.

        Returns:
            True if the selection was recorded

        Raises:
            NoReanchorSessionError: If no session is open
        """
        session = self.require_reanchor()
        if not text.strip():
            return False
        session.pending_range = text_range
        session.pending_text = text
        return True

    def finish_reanchor(self) -> ReanchorSession:
        """
        Close the open session and return it.

        Raises:
            NoReanchorSessionError: If no session is open
        """
        session = self.require_reanchor()
        self.reanchor = None
        return session

    def cancel_reanchor(self) -> None:
        """Close the open session without side effects. No-op if none is open."""
        if self.reanchor is not None:
            logger.debug(f"Re-anchor session cancelled for {self.reanchor.annotation_id}")
        self.reanchor = None

    def require_reanchor(self) -> ReanchorSession:
        """
        The open re-anchor session.

        Raises:
            NoReanchorSessionError: If no session is open
        """
        if self.reanchor is None:
            raise NoReanchorSessionError(f"No re-anchor session open on {self.url}")
        return self.reanchor
