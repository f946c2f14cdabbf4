"""
Document model: the read-only view of a page the anchoring core works on.
"""

from marginalia.document.html import HtmlDocument
from marginalia.document.protocols import DocumentModel, TextRange, TextSpan

__all__ = ["DocumentModel", "HtmlDocument", "TextRange", "TextSpan"]
