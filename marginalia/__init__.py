"""
marginalia - Persistent notes anchored to passages of text.

This library provides:
- Anchor capture: turn a selection into a quote, literal context and a
  structural fingerprint
- Five-layer anchor resolution that relocates a passage after markup
  changes, reflow or edits of the text
- A YAML-backed annotation store and a page service tying both together

Import patterns:

    # Primary API (recommended)
    from marginalia import HtmlDocument, capture_anchor, resolve_anchor

    # Full submodule imports (for internal types)
    from marginalia.resolver import Confidence, Match, Resolution
    from marginalia.models import Annotation, TextAnchor, Fingerprint

Example usage:

    from marginalia import HtmlDocument, capture_anchor, resolve_anchor

    before = HtmlDocument.from_string("<p>The quick brown fox jumps.</p>")
    anchor = capture_anchor(before, before.find_range("quick brown fox"))

    after = HtmlDocument.from_string("<div><p>The quick brown fox leaps.</p></div>")
    resolution = resolve_anchor(anchor, after)

    if resolution.found:
        print(resolution.confidence.value, resolution.match.text)
    else:
        print("detached")
"""

__version__ = "0.1.0"

from marginalia.capture import capture_anchor
from marginalia.config import Settings
from marginalia.document import DocumentModel, HtmlDocument, TextRange, TextSpan
from marginalia.models import Annotation, CoordinateAnchor, TextAnchor
from marginalia.resolver import Confidence, Resolution, resolve_anchor
from marginalia.service import AnnotationService
from marginalia.store import AnnotationStore, MemoryBackend, YamlFileBackend

# Primary public API
__all__ = [
    "Annotation",
    "AnnotationService",
    "AnnotationStore",
    "Confidence",
    "CoordinateAnchor",
    "DocumentModel",
    "HtmlDocument",
    "MemoryBackend",
    "Resolution",
    "Settings",
    "TextAnchor",
    "TextRange",
    "TextSpan",
    "YamlFileBackend",
    "capture_anchor",
    "resolve_anchor",
]
