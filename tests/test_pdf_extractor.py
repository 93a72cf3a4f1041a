# tests/test_pdf_extractor.py
"""Tests for pdflingo.processors.pdf_extractor"""

import pytest

from pdflingo.models.types import BBox, Color, ElementKind, ImageHandle, Matrix, Point
from pdflingo.processors.pdf_converter import (
    ImagePaintEvent,
    StrokePathEvent,
    TextShowEvent,
    cropbox_offset,
    normalize_font_name,
    walk_pdf,
)
from pdflingo.processors.pdf_extractor import (
    ElementExtractor,
    classify_text_kind,
    should_translate,
)


def _text_event(text="Hello", font_name="Helvetica", size=10.0, bbox=BBox(72, 698, 25, 10)):
    return TextShowEvent(
        text=text,
        font_name=font_name,
        font=None,
        font_size=size,
        baseline_start=Point(72, 700),
        baseline_end=Point(97, 700),
        bbox=bbox,
        fill_color=Color((0.0,)),
    )


# =============================================================================
# Classification
# =============================================================================
class TestClassification:
    @pytest.mark.parametrize("font_name", ["CMSY10", "CambriaMath", "Symbol", "MT Extra"])
    def test_math_fonts_are_formulas(self, font_name):
        assert classify_text_kind("x", font_name) == ElementKind.FORMULA

    def test_short_run_with_math_chars_is_formula(self):
        assert classify_text_kind("α ≤ β", "Times") == ElementKind.FORMULA

    def test_long_run_with_math_chars_is_text(self):
        text = "the angle α is measured in degrees"
        assert classify_text_kind(text, "Times") == ElementKind.TEXT

    def test_should_translate(self):
        assert should_translate("Hello")
        assert not should_translate("   ")
        assert not should_translate("1,234.5")
        assert not should_translate("2024-01-01")

    def test_normalize_font_name_strips_subset_tag(self):
        assert normalize_font_name("ABCDEF+Arial-Bold") == "Arial-Bold"
        assert normalize_font_name(b"Helvetica") == "Helvetica"
        assert normalize_font_name("Abcdef+Arial") == "Abcdef+Arial"


# =============================================================================
# Text / image / line events
# =============================================================================
class TestElementExtractor:
    def test_text_event_becomes_text_run(self):
        extractor = ElementExtractor(page_num=2)
        extractor(_text_event())
        assert len(extractor.elements) == 1
        run = extractor.elements[0]
        assert run.page_num == 2
        assert run.kind == ElementKind.TEXT
        assert run.needs_translation is True

    def test_whitespace_only_text_is_ignored(self):
        extractor = ElementExtractor(1)
        extractor(_text_event("   "))
        assert extractor.elements == []
        assert extractor.dropped == 0

    def test_formula_is_not_translated(self):
        extractor = ElementExtractor(1)
        extractor(_text_event("x", font_name="CMMI10+CMSY10"))
        assert extractor.elements[0].kind == ElementKind.FORMULA
        assert extractor.elements[0].needs_translation is False

    def test_numbers_are_not_translated(self):
        extractor = ElementExtractor(1)
        extractor(_text_event("42"))
        assert extractor.elements[0].needs_translation is False

    def test_degenerate_box_is_estimated(self):
        extractor = ElementExtractor(1)
        extractor(_text_event("abcd", bbox=BBox(72, 700, 0, 0)))
        box = extractor.elements[0].bbox
        assert box.width == pytest.approx(10 * 4 * 0.6)
        assert box.height == pytest.approx(12.0)

    def test_invalid_font_size_drops_element(self):
        extractor = ElementExtractor(1)
        extractor(_text_event(size=0))
        assert extractor.elements == []
        assert extractor.dropped == 1

    def test_image_event(self):
        extractor = ElementExtractor(1)
        handle = ImageHandle(xref=12, name="Im0", width=8, height=8)
        extractor(ImagePaintEvent(handle, Matrix(64, 0, 0, 64, 400, 400)))
        assert extractor.elements[0].kind == ElementKind.IMAGE

    def test_image_without_matrix_is_dropped(self):
        extractor = ElementExtractor(1)
        extractor(ImagePaintEvent(ImageHandle(xref=12), None))
        assert extractor.elements == []
        assert extractor.dropped == 1

    def test_stroke_keeps_axis_aligned_segments(self):
        extractor = ElementExtractor(1)
        event = StrokePathEvent(
            subpaths=[
                [("l", Point(0, 0), Point(100, 0))],        # horizontal
                [("l", Point(0, 0), Point(0.5, 80))],       # vertical within tolerance
                [("l", Point(0, 0), Point(50, 50))],        # diagonal
                [("l", Point(0, 0), Point(3, 0))],          # too short
                [("l", Point(0, 0), Point(10, 0)), ("l", Point(10, 0), Point(10, 10))],
            ],
            line_width=0.75,
        )
        extractor(event)
        assert len(extractor.elements) == 2
        assert extractor.elements[0].is_horizontal()
        assert extractor.elements[1].is_vertical()
        assert extractor.elements[0].width == 0.75

    def test_unknown_event_raises(self):
        with pytest.raises(TypeError):
            ElementExtractor(1).dispatch(object())


# =============================================================================
# Page coordinates
# =============================================================================
class TestCropBoxOrigin:
    def test_offset_without_rotation(self):
        assert cropbox_offset([50, 50, 250, 250], (1, 0, 0, 1, 0, 0)) == (50, 50)

    def test_offset_with_rotation(self):
        # 300 x 400 MediaBox rotated by 90 degrees
        assert cropbox_offset([10, 20, 110, 220], (0, -1, 1, 0, 0, 300)) == (20, 190)

    def test_text_is_relative_to_visible_area(self, tmp_path):
        pymupdf = pytest.importorskip("pymupdf")
        path = tmp_path / "cropped.pdf"
        doc = pymupdf.open()
        page = doc.new_page(width=300, height=300)
        page.insert_text((100, 100), "Cropped", fontsize=10)
        page.set_cropbox(pymupdf.Rect(50, 50, 250, 250))
        doc.save(str(path))
        doc.close()

        events = []
        walk_pdf(path, lambda page_num: events.append)
        (event,) = [e for e in events if isinstance(e, TextShowEvent)]
        assert event.baseline_start.x == pytest.approx(50, abs=0.5)
        assert event.baseline_start.y == pytest.approx(150, abs=0.5)
