# tests/test_pdf_paragraphs.py
"""Tests for pdflingo.processors.pdf_paragraphs"""

from pdflingo.config.settings import ParagraphThresholds
from pdflingo.processors.pdf_paragraphs import (
    LINE_BREAK,
    build_paragraphs,
    can_join_paragraph,
    estimate_column_widths,
)


class TestBuildParagraphs:
    def test_three_aligned_lines_form_one_paragraph(self, make_run):
        # Box height 10 == line height; baselines exactly one line height apart
        lines = [
            make_run("The first line of text", y=700, width=200),
            make_run("the second line of text", y=690, width=200),
            make_run("and the last one.", y=680, width=150),
        ]
        paragraphs = build_paragraphs(lines)
        assert len(paragraphs) == 1
        paragraph = paragraphs[0]
        assert paragraph.text.count(LINE_BREAK) == 2
        assert paragraph.text.split(LINE_BREAK) == [
            "The first line of text", "the second line of text", "and the last one.",
        ]
        assert paragraph.start_point == lines[0].start_point
        assert paragraph.end_point == lines[-1].end_point
        assert paragraph.bbox.top == lines[0].bbox.top
        assert paragraph.bbox.bottom == lines[-1].bbox.bottom

    def test_large_gap_starts_new_paragraph(self, make_run):
        lines = [
            make_run("Paragraph one", y=700, width=200),
            make_run("Paragraph two", y=670, width=200),
        ]
        assert len(build_paragraphs(lines)) == 2

    def test_font_size_change_starts_new_paragraph(self, make_run):
        lines = [
            make_run("Heading", y=700, size=14, width=80),
            make_run("Body text", y=686, size=10, width=200),
        ]
        assert len(build_paragraphs(lines)) == 2

    def test_misaligned_short_line_starts_new_paragraph(self, make_run):
        lines = [
            make_run("Short", x=72, y=700, width=30),
            make_run("Indented far", x=300, y=690, width=60),
        ]
        assert len(build_paragraphs(lines)) == 2

    def test_wrapped_line_after_full_width_line(self, make_run):
        # First line is indented, the continuation starts at the margin
        lines = [
            make_run("Indented first line running to the margin", x=90, y=700, width=400),
            make_run("continues here", x=72, y=690, width=80),
            make_run("Wide reference line", x=72, y=600, width=420),
        ]
        paragraphs = build_paragraphs(lines)
        assert len(paragraphs) == 2
        assert paragraphs[0].text.count(LINE_BREAK) == 1

    def test_hanging_indent(self, make_run):
        first = make_run("1. Item", x=90, y=700, width=40)
        prev = first
        current = make_run("body", x=76, y=690, width=40)
        assert can_join_paragraph(first, prev, current, column_width=400)

    def test_strict_font_name(self, make_run):
        first = make_run("Line one", y=700, width=200)
        current = make_run("Line two", y=690, width=200, font_name="Times")
        assert can_join_paragraph(first, first, current, 200)
        strict = ParagraphThresholds(strict_font_name=True)
        assert not can_join_paragraph(first, first, current, 200, strict)

    def test_lines_on_different_pages(self, make_run):
        first = make_run("Line one", y=100, width=200, page_num=1)
        current = make_run("Line two", y=90, width=200, page_num=2)
        assert not can_join_paragraph(first, first, current, 200)

    def test_column_width_per_page(self, make_run):
        lines = [
            make_run("a", x=72, width=100, page_num=1),
            make_run("b", x=300, width=200, page_num=1),
        ]
        assert estimate_column_widths(lines, 600) == {1: 428}
