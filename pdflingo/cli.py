# pdflingo/cli.py
"""
Command line entry point.

    pdflingo paper.pdf -o paper_ja.pdf --source en --target ja

Exit codes: 0 success, 1 translation/rebuild failure, 2 missing input file.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from pdflingo import __app_name__, __version__
from pdflingo.config.settings import AppSettings, get_default_settings_path
from pdflingo.models.types import TranslationProgress
from pdflingo.services.exceptions import (
    ExtractionError,
    RebuildError,
    TranslationError,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_MISSING_INPUT = 2

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(verbose: bool = False):
    """Configure logging to console and file.

    Log file location: ~/.pdflingo/logs/pdflingo.log (UTF-8, append mode).
    Falls back to console-only logging when the file cannot be created.

    Returns:
        tuple: (console_handler, file_handler)
    """
    logs_dir = Path.home() / f".{__app_name__}" / "logs"
    log_file_path = logs_dir / f"{__app_name__}.log"

    # Create console handler first (always works)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S'))

    file_handler = None
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file_path, mode='a', encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    except OSError as e:
        print(f"[WARNING] Failed to create log file {log_file_path}: {e}", file=sys.stderr)
        file_handler = None

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    # Remove existing handlers that might interfere
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(console_handler)
    if file_handler:
        root_logger.addHandler(file_handler)

    # pdfminer logs every operator at DEBUG level
    for name in ['pdfminer', 'pdfminer.pdfinterp', 'pdfminer.pdfpage', 'pdfminer.psparser',
                 'pdfminer.pdfdocument', 'pdfminer.cmapdb', 'concurrent']:
        logging.getLogger(name).setLevel(logging.WARNING)

    if file_handler:
        logger.debug("Log file: %s", log_file_path)
    return console_handler, file_handler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="Translate a PDF while keeping its page layout.",
    )
    parser.add_argument("input", type=Path, help="PDF file to translate")
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output PDF (default: <input>_translated.pdf in the output directory)",
    )
    parser.add_argument("--source", default=None, help="Source language code (default from settings)")
    parser.add_argument("--target", default=None, help="Target language code (default from settings)")
    parser.add_argument("--endpoint", default=None, help="Translation endpoint URL")
    parser.add_argument("--api-key", default=None, help="API key sent with each request")
    parser.add_argument(
        "--settings",
        type=Path,
        default=None,
        help="Settings file; its directory holds settings.template.json / user_settings.json",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output on the console")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_settings(args: argparse.Namespace) -> AppSettings:
    """Settings file plus command line overrides."""
    settings = AppSettings.load(args.settings or get_default_settings_path())
    overrides = {}
    if args.source:
        overrides["source_lang"] = args.source
    if args.target:
        overrides["target_lang"] = args.target
    if args.endpoint:
        overrides["translator_endpoint"] = args.endpoint
    if args.api_key:
        overrides["translator_api_key"] = args.api_key
    # The loaded instance is shared through the settings cache
    return dataclasses.replace(settings, **overrides)


def default_output_path(input_path: Path, settings: AppSettings) -> Path:
    return settings.get_output_directory(input_path) / f"{input_path.stem}_translated.pdf"


def _print_progress(progress: TranslationProgress) -> None:
    phase = progress.phase.value if progress.phase else ""
    logger.info("[%s] %s (%d/%d)", phase, progress.status, progress.current, progress.total)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    input_path: Path = args.input
    if not input_path.is_file():
        logger.error("Input file not found: %s", input_path)
        return EXIT_MISSING_INPUT

    # Heavy imports after argument parsing
    from pdflingo.processors.pdf_processor import PdfProcessor
    from pdflingo.services.http_translator import HttpTranslator
    from pdflingo.services.translation_service import TranslationOrchestrator

    settings = load_settings(args)
    output_path = args.output or default_output_path(input_path, settings)

    translator = HttpTranslator(
        settings.translator_endpoint,
        api_key=settings.translator_api_key,
        timeout=settings.request_timeout,
    )
    orchestrator = TranslationOrchestrator(translator, settings=settings)
    processor = PdfProcessor(settings)

    logger.info(
        "Translating %s (%s -> %s) via %s",
        input_path, settings.source_lang, settings.target_lang, settings.translator_endpoint,
    )
    try:
        result = processor.translate_file(
            input_path, output_path, orchestrator,
            on_progress=_print_progress,
        )
    except (ExtractionError, TranslationError, RebuildError) as e:
        logger.error("Translation failed: %s", e)
        return EXIT_FAILURE

    for warning in result.warnings:
        logger.warning(warning)
    logger.info(
        "Wrote %s (%d pages, %d/%d texts translated, %.1fs)",
        result.output_path, result.page_count, result.stats.translated,
        result.stats.units, result.duration_seconds,
    )
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
