"""Exceptions raised by marginalia."""


class MarginaliaError(Exception):
    """Base class for all marginalia errors."""


class CaptureFailure(MarginaliaError):
    """Raised when a selection cannot be turned into an anchor.

    Callers must not persist anything when this is raised.
    """


class RenderFailure(MarginaliaError):
    """Raised when a match no longer fits the live span it refers to."""

    def __init__(self, annotation_id: str, reason: str) -> None:
        """Initialize the error.

        Args:
            annotation_id: The annotation whose match went stale
            reason: Human-readable description of the mismatch
        """
        self.annotation_id = annotation_id
        super().__init__(f"Cannot place annotation {annotation_id}: {reason}")


class StorageError(MarginaliaError):
    """Raised when the annotation collection cannot be read or written."""


class AnnotationNotFoundError(MarginaliaError):
    """Raised when an annotation id is not present in the collection."""

    def __init__(self, annotation_id: str) -> None:
        self.annotation_id = annotation_id
        super().__init__(f"Annotation not found: {annotation_id}")


class ReanchorInProgressError(MarginaliaError):
    """Raised when a second re-anchor session is started on the same page."""


class NoReanchorSessionError(MarginaliaError):
    """Raised when confirming or selecting without an active re-anchor session."""
