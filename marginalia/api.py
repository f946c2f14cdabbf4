"""
HTTP API

REST endpoints exposing anchor capture and resolution. Pages are posted as
HTML; annotations are read from the store the app was created with.
"""

from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel, Field

from marginalia import __version__
from marginalia.config import Settings
from marginalia.document.html import HtmlDocument
from marginalia.errors import AnnotationNotFoundError, CaptureFailure
from marginalia.models import Annotation, TextAnchor
from marginalia.resolver import Match, Resolution
from marginalia.service import AnnotationService
from marginalia.store import AnnotationStore

router = APIRouter(prefix="/api", tags=["annotations"])

_service: AnnotationService | None = None


def init_service(store: AnnotationStore, settings: Settings | None = None) -> None:
    """Initialize the global annotation service."""
    global _service
    _service = AnnotationService(store, settings)


def get_service() -> AnnotationService:
    """Get the global annotation service."""
    if _service is None:
        raise RuntimeError("Annotation service not initialized")
    return _service


class PageRequest(BaseModel):
    """A page snapshot posted by the client."""

    html: str = Field(min_length=1)
    scroll_y: float = Field(0.0, ge=0)


class AnchorRequest(PageRequest):
    quote: str = Field(min_length=1)
    occurrence: int = Field(0, ge=0)


class ResolveRequest(PageRequest):
    url: str


class MatchSummary(BaseModel):
    """Where a passage was found."""

    confidence: str
    span_index: int
    offset: int
    length: int
    text: str
    score: float

    @classmethod
    def from_match(cls, match: Match) -> "MatchSummary":
        return cls(
            confidence=match.confidence.value,
            span_index=match.span.index,
            offset=match.offset,
            length=match.length,
            text=match.text,
            score=match.score,
        )


class ResolutionSummary(BaseModel):
    annotation_id: str
    confidence: str
    match: MatchSummary | None = None

    @classmethod
    def from_resolution(
        cls, annotation_id: str, resolution: Resolution
    ) -> "ResolutionSummary":
        return cls(
            annotation_id=annotation_id,
            confidence=resolution.confidence.value,
            match=MatchSummary.from_match(resolution.match) if resolution.match else None,
        )


class PageResolutionSummary(BaseModel):
    url: str
    placements: list[ResolutionSummary]
    pins: list[str]
    detached: list[str]
    skipped: list[str]


def _document(request: PageRequest, settings: Settings) -> HtmlDocument:
    try:
        return HtmlDocument.from_string(request.html, settings, request.scroll_y)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/annotations")
def list_annotations(url: str | None = None) -> list[dict]:
    """
    List stored annotations, optionally for one page.

    Records use the stored camelCase field names.
    """
    store = get_service().store
    annotations: list[Annotation] = store.for_url(url) if url else store.all()
    return [annotation.to_record() for annotation in annotations]


@router.post("/anchors")
def capture_anchor(request: AnchorRequest) -> dict:
    """
    Capture an anchor for a quote in a posted page.

    Raises:
        HTTPException: 404 if the quote is not on the page, 422 if it cannot
            be anchored
    """
    service = get_service()
    document = _document(request, service.settings)
    text_range = document.find_range(request.quote, request.occurrence)
    if text_range is None:
        raise HTTPException(
            status_code=404,
            detail=f"Quote not found (occurrence {request.occurrence})",
        )
    try:
        anchor: TextAnchor = service.capture_anchor_from_selection(document, text_range)
    except CaptureFailure as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return anchor.to_record()


@router.post("/resolve", response_model=PageResolutionSummary)
def resolve_page(request: ResolveRequest):
    """Resolve every annotation stored for a page against a posted snapshot."""
    service = get_service()
    document = _document(request, service.settings)
    result = service.resolve_all_for_page(document, request.url)
    return PageResolutionSummary(
        url=result.url,
        placements=[
            ResolutionSummary.from_resolution(p.annotation.id, p.resolution)
            for p in result.placements
        ],
        pins=[annotation.id for annotation in result.pins],
        detached=[annotation.id for annotation in result.detached],
        skipped=[failure.annotation_id for failure in result.skipped],
    )


@router.post("/resolve/{annotation_id}", response_model=ResolutionSummary)
def resolve_one(annotation_id: str, request: PageRequest):
    """
    Resolve one annotation against a posted snapshot.

    Raises:
        HTTPException: 404 if the annotation does not exist, 400 if it is a pin
    """
    service = get_service()
    document = _document(request, service.settings)
    try:
        resolution = service.resolve_one_by_id(document, annotation_id)
    except AnnotationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return ResolutionSummary.from_resolution(annotation_id, resolution)


@router.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


def create_app(store: AnnotationStore, settings: Settings | None = None) -> FastAPI:
    """
    Build the API application around a store.

    Example:
        app = create_app(AnnotationStore(YamlFileBackend("annotations.yaml")))
    """
    init_service(store, settings)
    app = FastAPI(
        title="marginalia API",
        description="Capture and resolve text anchors for page annotations",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )
    app.include_router(router)
    return app
