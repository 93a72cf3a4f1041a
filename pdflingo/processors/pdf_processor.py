# pdflingo/processors/pdf_processor.py
"""
Processor for PDF files.

Pipeline per page (sequential, in page order):
    content walk -> ElementExtractor -> stitch_text_runs -> build_paragraphs
    -> detect_tables

translate_file() then runs the translation phase (the barrier) and the
document rebuild.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from pdflingo.config.settings import AppSettings
from pdflingo.models.types import (
    FileInfo,
    ImageRun,
    LineRun,
    PageElement,
    ProgressCallback,
    RebuildResult,
    TextRun,
    TranslationPhase,
    TranslationProgress,
    TranslationResult,
    element_sort_key,
)
from pdflingo.services.exceptions import ExtractionError
from .base import FileProcessor
from .pdf_converter import walk_pdf
from .pdf_extractor import ElementExtractor
from .pdf_font_manager import _get_pymupdf
from .pdf_layout import detect_tables
from .pdf_paragraphs import build_paragraphs
from .pdf_rebuilder import DocumentRebuilder
from .pdf_stitcher import stitch_text_runs

# Module logger
logger = logging.getLogger(__name__)


@contextmanager
def _open_pymupdf_document(file_path):
    """
    Context manager for safely opening and closing PyMuPDF documents.

    Args:
        file_path: Path to PDF file (str or Path)

    Yields:
        PyMuPDF Document object
    """
    pymupdf = _get_pymupdf()
    doc = pymupdf.open(str(file_path))
    try:
        yield doc
    finally:
        doc.close()


def assemble_page(elements: list[PageElement]) -> list[PageElement]:
    """
    Final order of one page: non-text elements in content-stream order,
    then text in reading order (top edge descending, left edge ascending).
    """
    graphics: list[PageElement] = []
    texts: list[TextRun] = []
    for element in elements:
        if isinstance(element, TextRun):
            texts.append(element)
        elif isinstance(element, (ImageRun, LineRun)):
            graphics.append(element)
        else:
            raise TypeError(f"Unknown page element: {type(element).__name__}")
    return graphics + sorted(texts, key=element_sort_key)


class PdfProcessor(FileProcessor):
    """
    Processor for PDF files.

    Features:
    - pdfminer.six content walk (text runs, images, ruling lines)
    - Line stitching and paragraph building
    - Ruled table detection
    - Rebuild with embedded Latin/CJK fonts via low-level PDF operators

    Limitations:
    - Scanned PDFs are not supported (requires embedded text)
    - Only stroked straight lines are kept from vector graphics
    """

    def __init__(self, settings: Optional[AppSettings] = None):
        self.settings = settings or AppSettings()
        self._failed_pages: list[int] = []
        self._failed_page_reasons: dict[int, str] = {}

    @property
    def failed_pages(self) -> list[int]:
        """1-based page numbers that failed during extraction or rebuild."""
        return list(self._failed_pages)

    @property
    def failed_page_reasons(self) -> dict[int, str]:
        return dict(self._failed_page_reasons)

    def clear_failed_pages(self) -> None:
        """Clear the failed pages list. Call before starting a new extraction."""
        self._failed_pages.clear()
        self._failed_page_reasons.clear()

    def _record_failed_page(self, page_num: int, reason: str | None = None) -> None:
        """Track pages that could not be processed and optional reasons."""
        if page_num not in self._failed_pages:
            self._failed_pages.append(page_num)
        if reason:
            self._failed_page_reasons[page_num] = reason

    def get_file_info(self, file_path: Path) -> FileInfo:
        """Get PDF file info (page count only, no content walk)."""
        file_path = Path(file_path)
        with _open_pymupdf_document(file_path) as doc:
            page_count = len(doc)
        return FileInfo(
            path=file_path,
            size_bytes=file_path.stat().st_size,
            page_count=page_count,
        )

    # ---------------------------------------------------------------------
    # Extraction
    # ---------------------------------------------------------------------
    def process_page(self, page_num: int, raw_elements: list[PageElement]) -> list[PageElement]:
        """Structure passes for one page's raw elements."""
        texts = [e for e in raw_elements if isinstance(e, TextRun)]
        lines = stitch_text_runs(texts, self.settings.stitching)
        paragraphs = build_paragraphs(lines, self.settings.paragraphs)
        non_text = [e for e in raw_elements if not isinstance(e, TextRun)]
        page_elements = assemble_page(non_text + paragraphs)
        page_elements = detect_tables(page_elements, self.settings.tables)
        logger.debug(
            "Page %d: %d raw text runs -> %d lines -> %d paragraphs, %d graphics",
            page_num, len(texts), len(lines), len(paragraphs), len(non_text),
        )
        return page_elements

    def extract_elements(self, file_path: Path) -> list[PageElement]:
        """
        Extract structured page elements.

        Raises:
            ExtractionError: the document cannot be parsed
        """
        extractors: dict[int, ElementExtractor] = {}

        def listener_factory(page_num: int) -> ElementExtractor:
            extractor = ElementExtractor(page_num)
            extractors[page_num] = extractor
            return extractor

        page_count = walk_pdf(Path(file_path), listener_factory)

        elements: list[PageElement] = []
        for page_num in range(1, page_count + 1):
            extractor = extractors.get(page_num)
            if extractor is None:
                continue
            if extractor.dropped:
                logger.warning("Page %d: dropped %d malformed elements", page_num, extractor.dropped)
            try:
                elements.extend(self.process_page(page_num, extractor.elements))
            except (ValueError, TypeError) as e:
                # Keep the raw elements so the page is still rebuilt
                logger.error("Page %d: structure analysis failed: %s", page_num, e)
                self._record_failed_page(page_num, f"structure analysis failed: {e}")
                elements.extend(assemble_page(extractor.elements))

        text_count = sum(1 for e in elements if isinstance(e, TextRun))
        logger.info(
            "Extracted %d elements (%d text) from %d pages of %s",
            len(elements), text_count, page_count, Path(file_path).name,
        )
        return elements

    # ---------------------------------------------------------------------
    # Rebuild
    # ---------------------------------------------------------------------
    def apply_translations(
        self,
        input_path: Path,
        output_path: Path,
        elements: list[PageElement],
    ) -> RebuildResult:
        """Rebuild the document from (translated) elements."""
        rebuilder = DocumentRebuilder(self.settings)
        with _open_pymupdf_document(input_path) as source_doc:
            result = rebuilder.rebuild(elements, source_doc, Path(output_path))
        for page_num, reason in result.failed_pages.items():
            self._record_failed_page(page_num, reason)
        return result

    def translate_file(
        self,
        input_path: Path,
        output_path: Path,
        orchestrator,
        source_lang: Optional[str] = None,
        target_lang: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranslationResult:
        """
        Extract, translate and rebuild one PDF.

        Args:
            input_path: source PDF
            output_path: destination PDF
            orchestrator: TranslationOrchestrator used for the text
            source_lang / target_lang: default to the settings
            on_progress: receives TranslationProgress for every phase

        Raises:
            ExtractionError: the source cannot be parsed
            TranslationError: permanent translation failure
            RebuildError: no output could be written
        """
        start_time = time.monotonic()
        input_path, output_path = Path(input_path), Path(output_path)
        source_lang = source_lang or self.settings.source_lang
        target_lang = target_lang or self.settings.target_lang
        self.clear_failed_pages()

        def report(phase: TranslationPhase, current: int, total: int, status: str) -> None:
            if on_progress:
                on_progress(TranslationProgress(
                    current=current, total=total, status=status, phase=phase,
                ))

        if not input_path.exists():
            raise ExtractionError(f"Input file not found: {input_path}")

        report(TranslationPhase.EXTRACTING, 0, 1, "Extracting page content")
        elements = self.extract_elements(input_path)
        page_count = len({e.page_num for e in elements})
        report(TranslationPhase.EXTRACTING, 1, 1, f"Extracted {len(elements)} elements")

        stats = orchestrator.translate_elements(
            elements, source_lang, target_lang, on_progress=on_progress
        )

        report(TranslationPhase.APPLYING, 0, 1, "Rebuilding document")
        rebuild = self.apply_translations(input_path, output_path, elements)
        report(TranslationPhase.COMPLETE, 1, 1, "Complete")

        warnings = []
        if stats.failed:
            warnings.append(f"{stats.failed} texts kept their original wording")
        if rebuild.elements_failed:
            warnings.append(f"{rebuild.elements_failed} elements could not be drawn")
        for page_num in sorted(self._failed_page_reasons):
            warnings.append(f"page {page_num}: {self._failed_page_reasons[page_num]}")

        result = TranslationResult(
            output_path=rebuild.output_path,
            page_count=rebuild.page_count or page_count,
            element_count=len(elements),
            stats=stats,
            rebuild=rebuild,
            duration_seconds=time.monotonic() - start_time,
            warnings=warnings,
        )
        logger.info(
            "Translated %s -> %s in %.1fs (%d pages, %d warnings)",
            input_path.name, output_path.name, result.duration_seconds,
            result.page_count, len(warnings),
        )
        return result
