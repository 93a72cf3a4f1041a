# pdflingo/processors/pdf_paragraphs.py
"""
Paragraph building: visual lines -> paragraphs.

Consecutive lines are merged when they share font and size, follow each
other at normal line spacing, and line up horizontally (same indent,
wrapped continuation of a full-width line, or a hanging indent). Line
breaks between merged lines are kept as LINE_BREAK so the rebuilder can
honour them.
"""

import logging
from typing import Optional

from pdflingo.config.settings import ParagraphThresholds
from pdflingo.models.types import TextRun

# Module logger
logger = logging.getLogger(__name__)

LINE_BREAK = "\n"
FALLBACK_LINE_HEIGHT = 1.2   # x font size, when a line box has no height


def estimate_column_widths(lines: list[TextRun], default: float) -> dict[int, float]:
    """Text extent (max right - min left) per page."""
    extents: dict[int, tuple[float, float]] = {}
    for line in lines:
        left, right = extents.get(line.page_num, (line.bbox.left, line.bbox.right))
        extents[line.page_num] = (min(left, line.bbox.left), max(right, line.bbox.right))
    return {
        page: (right - left) if right - left > 0 else default
        for page, (left, right) in extents.items()
    }


def _line_height(line: TextRun) -> float:
    if line.bbox.height > 0:
        return line.bbox.height
    return line.font_size * FALLBACK_LINE_HEIGHT


def can_join_paragraph(
    first: TextRun,
    prev: TextRun,
    current: TextRun,
    column_width: float,
    thresholds: Optional[ParagraphThresholds] = None,
) -> bool:
    """
    True if current continues the paragraph that starts with first and
    whose last accepted line is prev.
    """
    t = thresholds or ParagraphThresholds()

    if current.page_num != prev.page_num:
        return False
    if t.strict_font_name and current.font_name != prev.font_name:
        return False

    mean_size = (prev.font_size + current.font_size) / 2
    if mean_size > 0 and abs(prev.font_size - current.font_size) / mean_size > t.font_size_tolerance:
        return False

    # Vertical spacing
    line_height = _line_height(prev)
    baseline_distance = prev.baseline_y - current.baseline_y
    if baseline_distance <= 0:
        return False
    overlap = current.bbox.top - prev.bbox.bottom
    if overlap > line_height * t.max_overlap_ratio:
        return False
    if baseline_distance > line_height * t.line_spacing_factor:
        return False

    # Horizontal alignment
    max_size = max(first.font_size, current.font_size)
    indent_tolerance = max_size * t.indent_tolerance_factor
    hanging_tolerance = max_size * t.hanging_indent_factor
    left = current.bbox.left

    prev_reaches_margin = prev.bbox.right > first.bbox.left + column_width * t.margin_ratio
    if prev_reaches_margin:
        # Wrapped continuation: any shift is fine unless it is indented far
        # to the right of both the first and previous line
        far_right = hanging_tolerance * 2
        if left > first.bbox.left + far_right and left > prev.bbox.left + far_right:
            return False
        return True

    if abs(left - first.bbox.left) <= indent_tolerance:
        return True
    if abs(left - prev.bbox.left) <= indent_tolerance:
        return True
    # Hanging indent: first line sticks out to the right of the body
    shift = first.bbox.left - left
    if indent_tolerance < shift <= hanging_tolerance:
        return True
    return False


def combine_lines(lines: list[TextRun]) -> TextRun:
    """
    Merge lines into one paragraph run.

    Texts are trimmed and joined with LINE_BREAK; style and the translation
    flag come from the first line.
    """
    if len(lines) == 1:
        return lines[0]
    first, last = lines[0], lines[-1]
    bbox = first.bbox
    for line in lines[1:]:
        bbox = bbox.union(line.bbox)
    return first.copy_with(
        text=LINE_BREAK.join(line.text.strip() for line in lines),
        bbox=bbox,
        start_point=first.start_point,
        end_point=last.end_point,
    )


def build_paragraphs(
    lines: list[TextRun],
    thresholds: Optional[ParagraphThresholds] = None,
) -> list[TextRun]:
    """
    Merge stitched lines into paragraphs.

    Args:
        lines: stitched lines in reading order
        thresholds: merge tolerances

    Returns:
        New list of paragraph runs, in input order of their first lines
    """
    t = thresholds or ParagraphThresholds()
    if not lines:
        return []

    column_widths = estimate_column_widths(lines, t.default_column_width)
    paragraphs: list[TextRun] = []
    members: list[TextRun] = [lines[0]]

    for line in lines[1:]:
        column_width = column_widths.get(line.page_num, t.default_column_width)
        if can_join_paragraph(members[0], members[-1], line, column_width, t):
            members.append(line)
        else:
            paragraphs.append(combine_lines(members))
            members = [line]
    paragraphs.append(combine_lines(members))

    logger.debug("Built %d paragraphs from %d lines", len(paragraphs), len(lines))
    return paragraphs
