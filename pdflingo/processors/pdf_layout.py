# pdflingo/processors/pdf_layout.py
"""
Table detection from ruling lines.

Horizontal and vertical strokes on a page are clustered into grid
coordinates. Every rectangle between adjacent grid lines is a cell, and text
whose centre falls inside a cell is reclassified as a table cell.

Row 0 is the top row (PDF Y grows upwards, so rows are counted from the
highest grid line down).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from pdflingo.config.settings import TableThresholds
from pdflingo.models.types import (
    BBox,
    ElementKind,
    ImageRun,
    LineRun,
    PageElement,
    TextRun,
)
from pdflingo.services.exceptions import GeometryError

# Module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableCell:
    row: int
    col: int
    bbox: BBox


def _cluster_coordinates(coords: list[float], threshold: float = 5.0) -> list[float]:
    """
    Cluster coordinates to find grid lines.

    A value joins the current cluster when it is within threshold of the
    cluster's running mean; otherwise it starts a new cluster.

    Args:
        coords: coordinate values (any order, duplicates allowed)
        threshold: maximum distance from the running mean

    Returns:
        Sorted list of cluster means
    """
    if not coords:
        return []

    sorted_coords = sorted(set(coords))

    means: list[float] = []
    total = sorted_coords[0]
    count = 1

    for coord in sorted_coords[1:]:
        mean = total / count
        if abs(coord - mean) <= threshold:
            total += coord
            count += 1
        else:
            means.append(mean)
            total = coord
            count = 1

    means.append(total / count)
    return means


def split_ruling_lines(
    lines: list[LineRun], tolerance: float = 1.5
) -> tuple[list[LineRun], list[LineRun]]:
    """Split strokes into (horizontal, vertical); diagonal strokes are ignored."""
    horizontal = [line for line in lines if line.is_horizontal(tolerance)]
    vertical = [
        line for line in lines
        if line.is_vertical(tolerance) and not line.is_horizontal(tolerance)
    ]
    return horizontal, vertical


def build_table_cells(
    horizontal: list[LineRun],
    vertical: list[LineRun],
    thresholds: Optional[TableThresholds] = None,
) -> list[TableCell]:
    """
    Build the cell grid spanned by ruling lines.

    Returns:
        Cells ordered top-to-bottom, left-to-right

    Raises:
        GeometryError: fewer than two grid lines on either axis
    """
    t = thresholds or TableThresholds()
    ys = _cluster_coordinates(
        [y for line in horizontal for y in (line.start.y, line.end.y)],
        t.cluster_tolerance,
    )
    xs = _cluster_coordinates(
        [x for line in vertical for x in (line.start.x, line.end.x)],
        t.cluster_tolerance,
    )
    if len(ys) < 2 or len(xs) < 2:
        raise GeometryError(
            f"need at least 2 grid lines per axis, got {len(ys)} horizontal / {len(xs)} vertical"
        )

    cells = []
    rows = len(ys) - 1
    for r in range(rows - 1, -1, -1):
        row = rows - 1 - r
        for col in range(len(xs) - 1):
            cells.append(TableCell(
                row=row,
                col=col,
                bbox=BBox.from_points(xs[col], ys[r], xs[col + 1], ys[r + 1]),
            ))
    return cells


def find_cell(bbox: BBox, cells: list[TableCell], padding: float = 1.0) -> Optional[TableCell]:
    """First cell whose padded rectangle strictly contains the box centre."""
    center = bbox.center
    for cell in cells:
        if cell.bbox.strictly_contains(center, padding):
            return cell
    return None


def detect_tables(
    elements: list[PageElement],
    thresholds: Optional[TableThresholds] = None,
) -> list[PageElement]:
    """
    Reclassify text inside ruled grids as table cells, page by page.

    Args:
        elements: page elements of one or more pages
        thresholds: clustering and hit-test tolerances

    Returns:
        New element list in the same order; text runs inside a cell are
        replaced by TABLE_CELL copies carrying row/column
    """
    t = thresholds or TableThresholds()

    lines_by_page: dict[int, list[LineRun]] = {}
    for element in elements:
        if isinstance(element, LineRun):
            lines_by_page.setdefault(element.page_num, []).append(element)

    cells_by_page: dict[int, list[TableCell]] = {}
    for page_num, lines in lines_by_page.items():
        horizontal, vertical = split_ruling_lines(lines, t.axis_tolerance)
        try:
            cells_by_page[page_num] = build_table_cells(horizontal, vertical, t)
        except GeometryError as e:
            logger.debug("Page %d: no table grid (%s)", page_num, e)

    result: list[PageElement] = []
    assigned = 0
    for element in elements:
        if isinstance(element, TextRun):
            cells = cells_by_page.get(element.page_num)
            cell = None
            if cells and element.kind != ElementKind.FORMULA:
                cell = find_cell(element.bbox, cells, t.cell_padding)
            if cell is not None:
                element = element.copy_with(
                    kind=ElementKind.TABLE_CELL,
                    table_row=cell.row,
                    table_col=cell.col,
                )
                assigned += 1
        elif isinstance(element, (ImageRun, LineRun)):
            pass
        else:
            raise TypeError(f"Unknown page element: {type(element).__name__}")
        result.append(element)

    if assigned:
        logger.debug("Assigned %d text runs to table cells", assigned)
    return result
