"""
Step definitions for anchor capture and resolution scenarios.

Pages are given as HTML doc strings; anchors are captured from the current
page and resolved against either the same page or a changed one.
"""

from behave import given, then, when  # type: ignore[import-untyped]

from marginalia.capture import capture_anchor
from marginalia.document.html import HtmlDocument
from marginalia.resolver import resolve_anchor
from marginalia.service import AnnotationService
from marginalia.session import PageSession
from marginalia.store import AnnotationStore, MemoryBackend

PAGE_URL = "https://example.org/field-notes"


# === Page Setup ===


@given("the page:")  # type: ignore[misc]
def step_given_page(context):
    """Parse the page the anchor is captured on."""
    context.document = HtmlDocument.from_string(context.text)


@given('an anchor captured for "{quote}"')  # type: ignore[misc]
def step_given_anchor(context, quote):
    _capture(context, quote, 0)


@given('an anchor captured for "{quote}" occurrence {occurrence:d}')  # type: ignore[misc]
def step_given_anchor_occurrence(context, quote, occurrence):
    _capture(context, quote, occurrence)


def _capture(context, quote, occurrence):
    text_range = context.document.find_range(quote, occurrence)
    assert text_range is not None, f"'{quote}' not on page (occurrence {occurrence})"
    context.anchor = capture_anchor(context.document, text_range)


@given("the anchor has no scroll position")  # type: ignore[misc]
def step_given_no_scroll(context):
    """Drop the captured scroll position so the positional fallback cannot apply."""
    fingerprint = context.anchor.fingerprint.model_copy(update={"scroll_percentage": None})
    context.anchor = context.anchor.model_copy(update={"fingerprint": fingerprint})


@given('an annotation "{note}" on "{quote}"')  # type: ignore[misc]
def step_given_annotation(context, note, quote):
    context.service = AnnotationService(AnnotationStore(MemoryBackend()))
    context.annotation = context.service.create_text_annotation(
        context.document, context.document.find_range(quote), PAGE_URL, note
    )


# === Resolution Actions ===


@when("I resolve the anchor against the same page")  # type: ignore[misc]
def step_when_resolve_same(context):
    context.resolution = resolve_anchor(context.anchor, context.document)


@when("I resolve the anchor against the page:")  # type: ignore[misc]
def step_when_resolve_changed(context):
    """Resolve against a changed version of the page."""
    context.resolution = resolve_anchor(context.anchor, HtmlDocument.from_string(context.text))


@when('I re-anchor the annotation to "{quote}"')  # type: ignore[misc]
def step_when_reanchor(context, quote):
    page = PageSession(PAGE_URL)
    context.service.start_reanchor(page, context.annotation.id)
    page.select(context.document.find_range(quote), quote)
    context.service.confirm_reanchor(page, context.document)
    assert not page.reanchoring, "Re-anchor session still open after confirm"


# === Assertions ===


@then('the anchor resolves with confidence "{confidence}"')  # type: ignore[misc]
def step_then_confidence(context, confidence):
    actual = context.resolution.confidence.value
    assert actual == confidence, f"Expected {confidence} but got {actual}"


@then('the matched text is "{expected_text}"')  # type: ignore[misc]
def step_then_matched_text(context, expected_text):
    actual = context.resolution.match.text
    assert actual == expected_text, f"Expected '{expected_text}' but got '{actual}'"


@then("the match starts at offset {offset:d}")  # type: ignore[misc]
def step_then_offset(context, offset):
    actual = context.resolution.match.offset
    assert actual == offset, f"Expected offset {offset} but got {actual}"


@then("the anchor is detached")  # type: ignore[misc]
def step_then_detached(context):
    assert context.resolution.detached, (
        f"Expected detached but got {context.resolution.confidence.value}"
    )
    assert context.resolution.match is None


@then('the stored anchor quotes "{quote}"')  # type: ignore[misc]
def step_then_stored_anchor(context, quote):
    stored = context.service.store.get(context.annotation.id)
    assert stored.anchor.exact == quote, f"Expected '{quote}' but got '{stored.anchor.exact}'"


@then('the annotation text is still "{note}"')  # type: ignore[misc]
def step_then_annotation_text(context, note):
    stored = context.service.store.get(context.annotation.id)
    assert stored.text == note, f"Expected '{note}' but got '{stored.text}'"
