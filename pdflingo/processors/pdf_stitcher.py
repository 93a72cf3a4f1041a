# pdflingo/processors/pdf_stitcher.py
"""
Text stitching: raw style-homogeneous runs -> visual lines.

PDF producers split a visible line into many text-show operators (kerning,
style changes, per-word placement). Runs that share style and baseline and
follow each other closely are merged back into one TextRun per line.
"""

import logging
from typing import Optional

from pdflingo.config.settings import StitchThresholds
from pdflingo.models.types import TextRun

# Module logger
logger = logging.getLogger(__name__)


def stitch_sort_key(run: TextRun) -> tuple[int, float, float]:
    """Page, baseline top-to-bottom, start left-to-right."""
    return (run.page_num, -run.start_point.y, run.start_point.x)


def estimate_char_width(prev: TextRun, current: TextRun, thresholds: StitchThresholds) -> float:
    """
    Average character width used as the unit for gaps.

    Measured from the previous run when its size is large enough for its
    box width to be meaningful, otherwise derived from the smaller font size.
    """
    chars = len(prev.text)
    width = prev.bbox.width
    if chars > 0 and width > 0 and prev.font_size > thresholds.accurate_spacing_min_font_size:
        return width / chars
    return min(prev.font_size, current.font_size) * thresholds.fallback_char_width_factor


def can_stitch(prev: TextRun, current: TextRun, thresholds: Optional[StitchThresholds] = None) -> bool:
    """True if current continues the line that ends with prev."""
    t = thresholds or StitchThresholds()

    if prev.page_num != current.page_num:
        return False
    if prev.font_name != current.font_name:
        return False
    if abs(prev.font_size - current.font_size) > t.font_size_tolerance:
        return False
    if not prev.fill_color.is_similar(current.fill_color, t.color_tolerance):
        return False
    if abs(prev.horizontal_scaling - current.horizontal_scaling) > t.horizontal_scaling_tolerance:
        return False

    y_tolerance = max(prev.font_size, current.font_size) * t.y_tolerance_factor
    if abs(prev.start_point.y - current.start_point.y) > y_tolerance:
        return False

    avg_char_width = estimate_char_width(prev, current, t)

    # Current run starts clearly before the previous one: not the same line
    # unless prev is a lone trailing character (bullets, drop caps)
    if current.bbox.left < prev.bbox.left - avg_char_width and len(prev.text) != 1:
        return False

    gap = current.bbox.left - prev.bbox.right
    min_gap = -(avg_char_width * 0.5 + t.overlap_tolerance)
    max_gap = avg_char_width * t.max_gap_factor
    return min_gap <= gap <= max_gap


def combine_runs(members: list[TextRun]) -> TextRun:
    """
    Merge runs of one line into a single TextRun.

    Members are ordered by left edge; style comes from the first member and
    the translation flag is set if any member needs translation. The last
    appended fragment is kept so a later pass measures gaps from the same
    run the first pass did.
    """
    if len(members) == 1:
        return members[0]
    ordered = sorted(members, key=lambda r: r.bbox.left)
    first, last = ordered[0], ordered[-1]
    bbox = first.bbox
    for run in ordered[1:]:
        bbox = bbox.union(run.bbox)
    tail = members[-1]
    return first.copy_with(
        text="".join(run.text for run in ordered),
        bbox=bbox,
        start_point=first.start_point,
        end_point=last.end_point,
        needs_translation=any(run.needs_translation for run in ordered),
        last_fragment=tail.last_fragment or tail,
    )


def stitch_text_runs(
    runs: list[TextRun],
    thresholds: Optional[StitchThresholds] = None,
) -> list[TextRun]:
    """
    Merge raw runs into visual lines.

    Args:
        runs: raw text runs of one or more pages (any order)
        thresholds: merge tolerances

    Returns:
        New list of line runs in (page, baseline, x) order
    """
    t = thresholds or StitchThresholds()
    if not runs:
        return []

    ordered = sorted(runs, key=stitch_sort_key)
    lines: list[TextRun] = []
    members: list[TextRun] = [ordered[0]]

    for run in ordered[1:]:
        tail = members[-1].last_fragment or members[-1]
        if can_stitch(tail, run, t):
            members.append(run)
        else:
            lines.append(combine_runs(members))
            members = [run]
    lines.append(combine_runs(members))

    logger.debug("Stitched %d runs into %d lines", len(runs), len(lines))
    return lines
