"""Tests for the lxml document adapter and flow layout."""

import pytest

from marginalia.config import Settings
from marginalia.document.html import HtmlDocument


def _element(document: HtmlDocument, tag: str, index: int = 0):
    return list(document.blocks((tag,)))[index]


class TestConstruction:
    """Tests for building documents."""

    def test_empty_html_rejected(self) -> None:
        with pytest.raises(ValueError, match="empty HTML"):
            HtmlDocument.from_string("   ")

    def test_comment_only_html_rejected(self) -> None:
        with pytest.raises(ValueError, match="Cannot parse HTML"):
            HtmlDocument.from_string("<!-- nothing -->")

    def test_from_file(self, tmp_path, article_html) -> None:
        page = tmp_path / "page.html"
        page.write_text(article_html, encoding="utf-8")

        document = HtmlDocument.from_file(page)

        assert "quick brown fox" in document.text(_element(document, "p"))


class TestTextSpans:
    """Tests for text span enumeration."""

    def test_document_order(self) -> None:
        document = HtmlDocument.from_string("<p>one <b>two</b> three</p><p>four</p>")
        contents = [span.content for span in document.text_spans()]
        assert contents == ["one ", "two", " three", "four"]

    def test_indexes_follow_order(self, article) -> None:
        spans = list(article.text_spans())
        assert [span.index for span in spans] == list(range(len(spans)))

    def test_non_rendered_text_excluded(self, article) -> None:
        contents = "".join(span.content for span in article.text_spans())
        assert "color: red" not in contents
        assert contents.count("Field notes") == 1  # the h1, not the <title>

    def test_owned_ui_excluded(self) -> None:
        document = HtmlDocument.from_string(
            "<p>visible</p>"
            '<div class="marginalia-card">card text</div>'
            '<span id="marginalia-toolbar">toolbar</span>'
        )
        contents = [span.content for span in document.text_spans()]
        assert contents == ["visible"]

    def test_custom_owned_ui_prefix(self) -> None:
        document = HtmlDocument.from_string(
            '<p>visible</p><div class="lens-card">card</div>',
            Settings(owned_ui_prefix="lens-"),
        )
        assert [span.content for span in document.text_spans()] == ["visible"]

    def test_span_parent(self, article) -> None:
        text_range = article.find_range("quick brown fox")
        assert article.tag_name(text_range.start_span.parent) == "p"

    def test_live_text_follows_mutation(self) -> None:
        document = HtmlDocument.from_string("<p>before</p>")
        span = next(document.text_spans())
        node, slot = span.handle
        setattr(node, slot, "after")

        assert span.content == "before"
        assert document.live_text(span) == "after"

        document.refresh()
        assert next(document.text_spans()).content == "after"


class TestFindRange:
    """Tests for find_range method."""

    def test_first_occurrence(self) -> None:
        document = HtmlDocument.from_string("<p>a cat and a cat</p><p>another cat</p>")
        text_range = document.find_range("cat")
        assert (text_range.start_span.index, text_range.start_offset) == (0, 2)
        assert text_range.end_offset == 5

    def test_later_occurrences(self) -> None:
        document = HtmlDocument.from_string("<p>a cat and a cat</p><p>another cat</p>")
        second = document.find_range("cat", occurrence=1)
        third = document.find_range("cat", occurrence=2)
        assert (second.start_span.index, second.start_offset) == (0, 12)
        assert (third.start_span.index, third.start_offset) == (1, 8)

    def test_missing(self, article) -> None:
        assert article.find_range("not on the page") is None
        assert article.find_range("fox", occurrence=10) is None


class TestStructure:
    """Tests for structural enumeration and navigation."""

    def test_headings_in_order(self, article) -> None:
        texts = [article.text(h) for h in article.headings()]
        assert texts == ["Field notes", "Morning", "Evening"]

    def test_blocks_with_classed_containers(self, article) -> None:
        blocks = list(article.blocks(("li",), classed=("div",)))
        tags = [article.tag_name(block) for block in blocks]
        # div#main has no class attribute, div.story does
        assert tags == ["div", "li", "li"]
        assert article.class_names(blocks[0]) == ["story"]

    def test_sections(self, article) -> None:
        sections = article.sections()
        assert len(sections) == 1
        assert article.class_names(sections[0]) == ["story"]

    def test_parent_stops_at_body(self, article) -> None:
        paragraph = _element(article, "p")
        story = article.parent(paragraph)
        main = article.parent(story)

        assert article.class_names(story) == ["story"]
        assert article.element_id(main) == "main"
        assert article.parent(main) is None

    def test_previous_sibling_skips_comments(self) -> None:
        document = HtmlDocument.from_string("<h2>Title</h2><!-- note --><p>text</p>")
        paragraph = _element(document, "p")
        assert document.tag_name(document.previous_sibling(paragraph)) == "h2"

    def test_previous_sibling_skips_owned_ui(self) -> None:
        document = HtmlDocument.from_string(
            '<h2>Title</h2><div class="marginalia-pin">x</div><p>text</p>'
        )
        paragraph = _element(document, "p")
        assert document.tag_name(document.previous_sibling(paragraph)) == "h2"

    def test_first_descendant(self, article) -> None:
        story = article.sections()[0]
        heading = article.first_descendant(story, ("h2",))
        assert article.text(heading) == "Morning"
        assert article.first_descendant(story, ("table",)) is None

    def test_contains(self, article) -> None:
        story = article.sections()[0]
        paragraph = _element(article, "p")
        assert article.contains(story, paragraph)
        assert article.contains(paragraph, paragraph)
        assert not article.contains(paragraph, story)


class TestMatchesPath:
    """Tests for matches_path method."""

    @pytest.mark.parametrize(
        "path",
        ["p", "div.story > p", "#main > div.story > p", "#main", ".story > p", "div > p"],
    )
    def test_matching_paths(self, article, path: str) -> None:
        assert article.matches_path(_element(article, "p"), path)

    @pytest.mark.parametrize(
        "path",
        ["section > p", "div.other > p", "#missing", "li", "", " > ", "p >> p", "p[data-x]"],
    )
    def test_non_matching_paths(self, article, path: str) -> None:
        assert not article.matches_path(_element(article, "p"), path)


class TestLayout:
    """Tests for the estimated vertical layout."""

    def test_blocks_stack_downwards(self, article) -> None:
        tops = [article.top(p) for p in article.blocks(("p",))]
        assert tops == sorted(tops)
        assert len(set(tops)) == len(tops)

    def test_span_top_matches_block(self, article) -> None:
        text_range = article.find_range("quick brown fox")
        span = text_range.start_span
        assert span.top == article.top(span.parent)

    def test_scroll_height_covers_content(self, article) -> None:
        last_item = list(article.blocks(("li",)))[-1]
        assert article.scroll_height > article.top(last_item)

    def test_long_text_wraps(self) -> None:
        settings = Settings(viewport_width=80.0, char_width=8.0, line_height=10.0, block_gap=0.0)
        document = HtmlDocument.from_string("<p>" + "word " * 10 + "</p><p>next</p>", settings)
        first, second = list(document.blocks(("p",)))
        # 50 characters at 10 per line take 5 lines
        assert document.top(second) - document.top(first) == 50.0

    def test_scroll_offset(self, article_html) -> None:
        document = HtmlDocument.from_string(article_html, scroll_offset=120.0)
        assert document.scroll_offset == 120.0
        document.scroll_offset = -5
        assert document.scroll_offset == 0.0
