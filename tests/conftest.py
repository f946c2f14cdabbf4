"""
Pytest configuration and fixtures for marginalia tests
"""

import pytest

from marginalia.config import Settings
from marginalia.document.html import HtmlDocument
from marginalia.logging_config import GlobalIndent
from marginalia.store import AnnotationStore, MemoryBackend

ARTICLE_HTML = """
<html>
  <head><title>Field notes</title><style>p { color: red }</style></head>
  <body>
    <div id="main">
      <h1>Field notes</h1>
      <div class="story">
        <h2>Morning</h2>
        <p>Consider this sentence: The quick brown fox jumps over the lazy dog.</p>
        <p>Later the fox rested under an old oak tree near the river bank.</p>
        <h2>Evening</h2>
        <p>At dusk the birds returned to the marsh and the wind grew cold.</p>
        <ul>
          <li>Owls hunted along the hedgerow.</li>
          <li>Bats circled the barn.</li>
        </ul>
      </div>
    </div>
  </body>
</html>
"""


@pytest.fixture(autouse=True)
def reset_indent():
    """Keep the tree logger's indentation from leaking between tests"""
    GlobalIndent.reset()
    yield
    GlobalIndent.reset()


@pytest.fixture
def settings():
    """Default settings"""
    return Settings()


@pytest.fixture
def article_html():
    """A small article page with headings, paragraphs and a list"""
    return ARTICLE_HTML


@pytest.fixture
def article(article_html, settings):
    """The article page as a document"""
    return HtmlDocument.from_string(article_html, settings)


@pytest.fixture
def store():
    """Annotation store backed by memory"""
    return AnnotationStore(MemoryBackend())
