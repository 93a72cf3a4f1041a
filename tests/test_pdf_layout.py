# tests/test_pdf_layout.py
"""Tests for pdflingo.processors.pdf_layout"""

import pytest

from pdflingo.models.types import ElementKind, LineRun, Point
from pdflingo.processors.pdf_layout import (
    _cluster_coordinates,
    build_table_cells,
    detect_tables,
    find_cell,
    split_ruling_lines,
)
from pdflingo.services.exceptions import GeometryError


def _grid(page_num=1):
    horizontal = [LineRun(page_num, Point(0, y), Point(160, y)) for y in (0, 50, 100)]
    vertical = [LineRun(page_num, Point(x, 0), Point(x, 100)) for x in (0, 80, 160)]
    return horizontal + vertical


class TestClusterCoordinates:
    def test_nearby_values_merge(self):
        assert _cluster_coordinates([10, 12, 50, 51, 100]) == pytest.approx([11, 50.5, 100])

    def test_empty(self):
        assert _cluster_coordinates([]) == []


class TestBuildTableCells:
    def test_two_by_two_grid(self):
        horizontal, vertical = split_ruling_lines(_grid())
        cells = build_table_cells(horizontal, vertical)
        assert len(cells) == 4
        top_left = cells[0]
        assert (top_left.row, top_left.col) == (0, 0)
        assert (top_left.bbox.left, top_left.bbox.bottom, top_left.bbox.top) == (0, 50, 100)

    def test_single_line_per_axis_is_not_a_grid(self):
        with pytest.raises(GeometryError):
            build_table_cells(
                [LineRun(1, Point(0, 0), Point(100, 0))],
                [LineRun(1, Point(0, 0), Point(0, 100))],
            )

    def test_find_cell_uses_padding(self, make_run):
        horizontal, vertical = split_ruling_lines(_grid())
        cells = build_table_cells(horizontal, vertical)
        # Centre sits 0.5pt from the grid line, inside the padding
        run = make_run("x", x=79, y=26, width=1)
        assert find_cell(run.bbox, cells) is None


class TestDetectTables:
    def test_text_in_cell_is_reclassified(self, make_run):
        # Box centred at (40, 25)
        run = make_run("Cell", x=30, y=22, width=20)
        assert run.bbox.center == Point(40, 25)
        result = detect_tables(_grid() + [run])
        cell_run = result[-1]
        assert cell_run.kind == ElementKind.TABLE_CELL
        assert (cell_run.table_row, cell_run.table_col) == (1, 0)
        # Input is left untouched
        assert run.kind == ElementKind.TEXT

    def test_text_outside_grid_unchanged(self, make_run):
        run = make_run("Outside", x=300, y=300)
        result = detect_tables(_grid() + [run])
        assert result[-1] is run

    def test_formula_is_not_reclassified(self, make_run):
        run = make_run("x", x=30, y=22, width=20, kind=ElementKind.FORMULA)
        result = detect_tables(_grid() + [run])
        assert result[-1].kind == ElementKind.FORMULA

    def test_grid_applies_to_its_own_page_only(self, make_run):
        run = make_run("Cell", x=30, y=22, width=20, page_num=2)
        result = detect_tables(_grid(page_num=1) + [run])
        assert result[-1].kind == ElementKind.TEXT

    def test_page_without_grid(self, make_run):
        run = make_run("Cell", x=30, y=22, width=20)
        result = detect_tables([LineRun(1, Point(0, 0), Point(100, 0)), run])
        assert result[-1].kind == ElementKind.TEXT

    def test_unknown_element_raises(self):
        with pytest.raises(TypeError):
            detect_tables([object()])
