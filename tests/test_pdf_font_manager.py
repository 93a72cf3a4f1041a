# tests/test_pdf_font_manager.py
"""Tests for pdflingo.processors.pdf_font_manager"""

from unittest.mock import MagicMock, patch

import pytest

from pdflingo.processors import pdf_font_manager
from pdflingo.processors.pdf_font_manager import (
    BundledFont,
    FontRegistry,
    _get_system_font_dirs,
    contains_cjk,
    get_font_path_by_name,
    is_cjk_codepoint,
)


# =============================================================================
# Fixtures
# =============================================================================
@pytest.fixture
def registry(font_class):
    """Registry with fake fonts: the Latin font lacks '日', the CJK font lacks accents."""
    reg = FontRegistry()
    reg.register_handle("latin", font_class("latin", missing="日"))
    reg.register_handle("cjk", font_class("cjk", missing="éèê"))
    return reg


# =============================================================================
# CJK detection
# =============================================================================
class TestCjkDetection:
    def test_codepoint_ranges(self):
        assert is_cjk_codepoint(ord("日"))
        assert is_cjk_codepoint(ord("あ"))
        assert is_cjk_codepoint(0x20001)
        assert not is_cjk_codepoint(ord("A"))

    def test_contains_cjk(self):
        assert contains_cjk("Hello 世界")
        assert not contains_cjk("Hello world")


# =============================================================================
# Font selection
# =============================================================================
class TestFontSelection:
    def test_latin_text_uses_latin_font(self, registry):
        font_id = registry.select_font_for_text("Hello")
        assert registry.get_font(font_id).name == "latin"

    def test_cjk_text_uses_cjk_font(self, registry):
        font_id = registry.select_font_for_text("日本")
        assert registry.get_font(font_id).name == "cjk"

    def test_falls_back_when_preferred_misses_glyph(self, font_class):
        reg = FontRegistry()
        reg.register_handle("latin", font_class("latin", missing="→"))
        reg.register_handle("cjk", font_class("cjk"))
        font_id = reg.select_font_for_text("a → b")
        assert reg.get_font(font_id).name == "cjk"

    def test_best_coverage_wins_when_nothing_covers_all(self, registry):
        # CJK is preferred but misses 3 accented letters, Latin misses only 1
        font_id = registry.select_font_for_text("日 éèê")
        assert registry.get_font(font_id).name == "latin"

    def test_preferred_font_wins_tie(self, font_class):
        reg = FontRegistry()
        reg.register_handle("latin", font_class("latin", missing="x"))
        reg.register_handle("cjk", font_class("cjk", missing="y"))
        font_id = reg.select_font_for_text("xy")
        assert reg.get_font(font_id).name == "latin"

    def test_font_ids_are_stable(self, registry):
        assert registry.select_font_for_text("a") == registry.select_font_for_text("b")

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            FontRegistry().register_font("emoji")


class TestEmbedding:
    def test_glyph_id_of_non_bundled_font_is_notdef(self, registry):
        font_id = registry.select_font_for_text("Hello")
        assert registry.get_glyph_id(font_id, "H") == 0

    def test_non_bundled_font_cannot_be_embedded(self, registry):
        font_id = registry.select_font_for_text("Hello")
        with pytest.raises(ValueError):
            registry.ensure_embedded(MagicMock(), font_id)

    def test_embeds_once_per_document(self):
        font = MagicMock(spec=BundledFont)
        font.buffer = b"font-bytes"
        reg = FontRegistry()
        font_id = reg.register_handle("latin", font)
        page = MagicMock()
        page.insert_font.return_value = 42

        assert reg.ensure_embedded(page, font_id) == 42
        assert reg.ensure_embedded(page, font_id) == 42
        page.insert_font.assert_called_once_with(fontname=font_id, fontbuffer=b"font-bytes")

        reg.reset_embedding()
        reg.ensure_embedded(page, font_id)
        assert page.insert_font.call_count == 2


# =============================================================================
# Font path resolution
# =============================================================================
class TestFontPaths:
    @patch('pdflingo.processors.pdf_font_manager.platform.system')
    def test_windows_font_dirs(self, mock_system):
        mock_system.return_value = "Windows"
        with patch.dict('os.environ', {'WINDIR': 'C:\\Windows'}):
            dirs = _get_system_font_dirs()
        assert len(dirs) == 1
        assert dirs[0].endswith("Fonts")

    @patch('pdflingo.processors.pdf_font_manager.platform.system')
    def test_linux_font_dirs(self, mock_system):
        mock_system.return_value = "Linux"
        assert "/usr/share/fonts" in _get_system_font_dirs()

    def test_direct_path(self, tmp_path):
        font_file = tmp_path / "custom.ttf"
        font_file.write_bytes(b"\x00")
        assert get_font_path_by_name(str(font_file)) == str(font_file)

    def test_unknown_name(self):
        assert get_font_path_by_name("No Such Font 123") is None

    def test_find_font_file_in_subdirectory(self, tmp_path):
        nested = tmp_path / "truetype" / "dejavu"
        nested.mkdir(parents=True)
        (nested / "DejaVuSans.ttf").write_bytes(b"\x00")
        pdf_font_manager._font_path_cache.clear()
        with patch.object(pdf_font_manager, "_get_system_font_dirs", return_value=[str(tmp_path)]):
            found = get_font_path_by_name("DejaVu Sans")
        pdf_font_manager._font_path_cache.clear()
        assert found == str(nested / "DejaVuSans.ttf")


# =============================================================================
# Bundled fonts (PyMuPDF)
# =============================================================================
class TestBundledFont:
    def test_builtin_latin_font(self):
        pytest.importorskip("pymupdf")
        font = BundledFont.load("helv")
        assert font.contains_codepoint(ord("A"))
        assert font.glyph_id(ord("A")) > 0
        assert font.measure_width("AA", 10) == pytest.approx(2 * font.measure_width("A", 10))
        assert font.buffer

    def test_builtin_cjk_font(self):
        pytest.importorskip("pymupdf")
        font = BundledFont.load("cjk")
        assert font.contains_codepoint(ord("日"))
