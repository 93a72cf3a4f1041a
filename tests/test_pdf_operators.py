# tests/test_pdf_operators.py
"""Tests for pdflingo.processors.pdf_operators"""

from unittest.mock import MagicMock

import pytest

from pdflingo.models.types import BLACK, Color, Matrix
from pdflingo.processors.pdf_font_manager import FontRegistry
from pdflingo.processors.pdf_operators import (
    PdfContentBuilder,
    PdfOperatorGenerator,
    _merge_resource_dict,
)


# =============================================================================
# Fixtures
# =============================================================================
@pytest.fixture
def font_registry():
    registry = MagicMock(spec=FontRegistry)
    registry.get_glyph_id.side_effect = lambda font_id, char: 0 if char == "?" else ord(char)
    registry.ensure_embedded.return_value = 99
    return registry


@pytest.fixture
def builder(font_registry):
    return PdfContentBuilder(MagicMock(), MagicMock(), font_registry)


# =============================================================================
# Operator strings
# =============================================================================
class TestPdfOperatorGenerator:
    def test_raw_string_encodes_glyph_ids(self, font_registry):
        assert PdfOperatorGenerator(font_registry).raw_string("F1", "AB") == "00410042"

    def test_raw_string_missing_glyph(self, font_registry):
        assert PdfOperatorGenerator(font_registry).raw_string("F1", "A?") == "00410000"

    @pytest.mark.parametrize("color, stroke, expected", [
        (BLACK, False, "0.000000 g "),
        (Color((1.0, 0.0, 0.0)), False, "1.000000 0.000000 0.000000 rg "),
        (Color((0.0, 0.0, 0.0, 1.0)), True, "0.000000 0.000000 0.000000 1.000000 K "),
        (Color((0.2, 0.4)), False, "0.000000 g "),
    ])
    def test_color_op(self, color, stroke, expected):
        assert PdfOperatorGenerator.color_op(color, stroke) == expected

    def test_matrix_op(self):
        op = PdfOperatorGenerator.matrix_op(Matrix(2, 0, 0, 3, 10, 20))
        assert op == "2.000000 0.000000 0.000000 3.000000 10.000000 20.000000 cm "


class TestMergeResourceDict:
    def test_adds_missing_names_only(self):
        merged = _merge_resource_dict("<< /F1 5 0 R >>", {"F1": 7, "F2": 8})
        assert merged == "<< /F1 5 0 R /F2 8 0 R >>"

    def test_name_prefix_does_not_count(self):
        merged = _merge_resource_dict("<< /F10 5 0 R >>", {"F1": 7})
        assert "/F1 7 0 R" in merged

    def test_empty_existing(self):
        assert _merge_resource_dict("", {"Im1": 3}) == "<< /Im1 3 0 R >>"


# =============================================================================
# Content builder
# =============================================================================
class TestPdfContentBuilder:
    def test_text_block(self, builder, font_registry):
        builder.begin_text()
        builder.set_font("F1", 10)
        builder.move_text(72, 700)
        builder.show_text("AB")
        builder.end_text()
        stream = builder.build().decode("latin-1")
        assert stream.startswith("BT /F1 10.000000 Tf ")
        assert "1 0 0 1 72.000000 700.000000 Tm [<00410042>] TJ " in stream
        assert stream.endswith("ET ")
        font_registry.ensure_embedded.assert_called_once()

    def test_show_text_requires_font(self, builder):
        builder.begin_text()
        with pytest.raises(ValueError):
            builder.show_text("A")

    def test_build_closes_open_text_block(self, builder):
        builder.begin_text()
        assert builder.build().endswith(b"ET ")

    def test_horizontal_scaling_is_percent(self, builder):
        builder.set_horizontal_scaling(0.8)
        assert builder.operators[-1] == "80.000000 Tz "

    def test_place_xobject_reuses_names(self, builder):
        builder.place_xobject(10, Matrix(50, 0, 0, 50, 0, 0))
        builder.place_xobject(11, Matrix())
        builder.place_xobject(10, Matrix())
        names = [op.split("/")[1].split()[0] for op in builder.operators]
        assert names == ["Im1", "Im2", "Im1"]

    def test_apply_to_empty_page_is_a_no_op(self, builder):
        assert builder.apply_to_page() is False
        builder.doc.update_stream.assert_not_called()


class TestContentBuilderWithPyMuPDF:
    def test_line_written_to_page(self):
        pymupdf = pytest.importorskip("pymupdf")
        doc = pymupdf.open()
        try:
            page = doc.new_page(width=200, height=100)
            builder = PdfContentBuilder(doc, page, FontRegistry())
            builder.save_state()
            builder.set_stroke_width(1)
            builder.move_to(10, 50)
            builder.line_to(190, 50)
            builder.stroke()
            builder.restore_state()
            assert builder.apply_to_page() is True

            kind, value = doc.xref_get_key(page.xref, "Contents")
            assert kind == "xref"
            content = doc.xref_stream(int(value.split()[0]))
            assert b"190.000000 50.000000 l" in content
            drawings = doc[0].get_drawings()
            assert len(drawings) == 1
        finally:
            doc.close()

    def test_text_embeds_font_resource(self):
        pymupdf = pytest.importorskip("pymupdf")
        doc = pymupdf.open()
        try:
            page = doc.new_page(width=200, height=100)
            registry = FontRegistry()
            font_id = registry.select_font_for_text("Hello")
            builder = PdfContentBuilder(doc, page, registry)
            builder.begin_text()
            builder.set_font(font_id, 12)
            builder.move_text(10, 50)
            builder.show_text("Hello")
            builder.end_text()
            builder.apply_to_page()

            font_names = [font[4] for font in doc[0].get_fonts()]
            assert font_id in font_names
        finally:
            doc.close()
