# pdflingo/services/translation_service.py
"""
Translation orchestration.

TranslationOrchestrator wraps a Translator backend with:
- chunking of long texts at sentence boundaries
- a shared RequestThrottle (concurrency limit + pacing)
- retry with exponential backoff for transient errors
- an LRU TranslationCache so repeated texts are translated once
- concurrent translation of all text runs of a document, with a barrier
  before results are returned
"""

import logging
import re
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from concurrent.futures import CancelledError, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Optional

from pdflingo.config.settings import AppSettings
from pdflingo.models.types import (
    ImageRun,
    LineRun,
    PageElement,
    ProgressCallback,
    TextRun,
    TranslationPhase,
    TranslationProgress,
    TranslationStats,
)
from .exceptions import TranslationError, is_transient_error
from .rate_limiter import RequestThrottle

logger = logging.getLogger(__name__)


# Split after sentence-terminal punctuation and newlines; the separator stays
# with the preceding piece so pieces concatenate back to the input
_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?。！？\n])')


class Translator(ABC):
    """Translation backend."""

    @abstractmethod
    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        """
        Translate one piece of text.

        Raises:
            TranslationError: kind tells whether a retry can help
        """


@dataclass
class TranslationAttempt:
    """Outcome of one backend call: a result or an error."""
    text: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class _PhaseAborted(Exception):
    """A unit was not attempted because the translation phase was aborted."""


def split_text_for_translation(text: str, max_chars: int) -> list[str]:
    """
    Split text into chunks of at most max_chars characters.

    Text is cut after sentence-terminal punctuation and at newlines, and the
    pieces are packed greedily. A piece longer than the limit is hard-split.
    Chunks are stripped; blank chunks are dropped.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if len(text) <= max_chars:
        return [text.strip()] if text.strip() else []

    chunks: list[str] = []
    current = ""
    for piece in _SENTENCE_BOUNDARY.split(text):
        if not piece:
            continue
        if len(current) + len(piece) <= max_chars:
            current += piece
            continue
        if current:
            chunks.append(current)
            current = ""
        while len(piece) > max_chars:
            chunks.append(piece[:max_chars])
            piece = piece[max_chars:]
        current = piece
    if current:
        chunks.append(current)

    return [chunk.strip() for chunk in chunks if chunk.strip()]


class TranslationCache:
    """
    Translation cache with true LRU eviction.

    Caches translated text by source text so identical content (repeated
    headers, footers, table labels) is translated once.

    Thread-safe for concurrent access.
    """

    DEFAULT_MAX_SIZE = 1000

    def __init__(self, max_size: int | None = None):
        """
        Args:
            max_size: Maximum number of cached entries.
                      If None, uses DEFAULT_MAX_SIZE (1000).
                      Set to 0 to disable caching.
        """
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._max_size = max_size if max_size is not None else self.DEFAULT_MAX_SIZE
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get(self, key: str) -> Optional[str]:
        """Cached translation or None. Moves the entry to most recently used."""
        with self._lock:
            if key in self._cache:
                self._hits += 1
                self._cache.move_to_end(key)
                return self._cache[key]
            self._misses += 1
            return None

    def set(self, key: str, translation: str) -> None:
        """Cache a translation, evicting the least recently used entry when full."""
        if self._max_size <= 0:
            return
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
            elif len(self._cache) >= self._max_size:
                self._cache.popitem(last=False)
            self._cache[key] = translation

    def clear(self) -> None:
        """Clear all cached translations and reset statistics."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    @property
    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": f"{hit_rate:.1f}%",
            }


def _cache_key(text: str, source_lang: str, target_lang: str) -> str:
    return f"{source_lang}>{target_lang}\x00{text}"


class TranslationOrchestrator:
    """
    Drives a Translator for single texts and for whole element lists.
    """

    def __init__(
        self,
        translator: Translator,
        throttle: Optional[RequestThrottle] = None,
        settings: Optional[AppSettings] = None,
        cache: Optional[TranslationCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.translator = translator
        self.settings = settings or AppSettings()
        self.throttle = throttle or RequestThrottle(
            max_concurrent=self.settings.max_concurrent_requests,
            min_interval=self.settings.min_request_interval,
        )
        self.cache = cache if cache is not None else TranslationCache(
            self.settings.translation_cache_size
        )
        self._sleep = sleep
        self._abort_event = threading.Event()

    # ---------------------------------------------------------------------
    # Single text
    # ---------------------------------------------------------------------
    def _attempt(self, text: str, source_lang: str, target_lang: str) -> TranslationAttempt:
        with self.throttle:
            try:
                return TranslationAttempt(
                    text=self.translator.translate(text, source_lang, target_lang)
                )
            except (TranslationError, TimeoutError, ConnectionError) as e:
                return TranslationAttempt(error=e)

    def _translate_with_retry(self, text: str, source_lang: str, target_lang: str) -> str:
        """
        Translate one chunk, retrying transient failures with backoff.

        Raises:
            TranslationError: permanent error (no retry) or transient
                              error after the last retry
        """
        s = self.settings
        attempts = 1 + s.max_retries
        delay = s.retry_initial_delay
        error: Optional[BaseException] = None

        for attempt_no in range(1, attempts + 1):
            if self._abort_event.is_set():
                raise _PhaseAborted()
            attempt = self._attempt(text, source_lang, target_lang)
            if attempt.ok:
                return attempt.text
            error = attempt.error
            if not is_transient_error(error):
                logger.error("Permanent translation error, not retrying: %s", error)
                raise error
            if attempt_no == attempts:
                break
            wait = min(delay, s.retry_max_delay)
            logger.warning(
                "Transient translation error (attempt %d/%d): %s; retrying in %.2fs",
                attempt_no, attempts, error, wait,
            )
            self._sleep(wait)
            delay = min(delay * 2, s.retry_max_delay)

        logger.warning("Giving up after %d attempts: %s", attempts, error)
        raise error

    def translate_text(self, text: str, source_lang: str, target_lang: str) -> str:
        """
        Translate text of any length.

        Long text is chunked; translated chunks are joined with
        settings.chunk_joiner.
        """
        chunks = split_text_for_translation(text, self.settings.max_chars_per_request)
        if not chunks:
            return text
        if len(chunks) > 1:
            logger.debug("Split %d chars into %d chunks", len(text), len(chunks))
        results = [
            self._translate_with_retry(chunk, source_lang, target_lang)
            for chunk in chunks
        ]
        return self.settings.chunk_joiner.join(results)

    # ---------------------------------------------------------------------
    # Element lists
    # ---------------------------------------------------------------------
    def translate_elements(
        self,
        elements: list[PageElement],
        source_lang: str,
        target_lang: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TranslationStats:
        """
        Translate every text run that needs translation.

        Identical texts are translated once. Results are written into
        translated_text of every run before this returns. A unit whose
        transient retries run out keeps its original text.

        Returns:
            TranslationStats (cached units are also counted as translated)

        Raises:
            TranslationError: permanent error; calls not yet started are
                              skipped and the error is raised after the
                              in-flight calls finish
        """
        units: dict[str, list[TextRun]] = {}
        for element in elements:
            if isinstance(element, TextRun):
                if element.needs_translation and element.text.strip():
                    units.setdefault(element.text, []).append(element)
            elif isinstance(element, (ImageRun, LineRun)):
                continue
            else:
                raise TypeError(f"Unknown page element: {type(element).__name__}")

        stats = TranslationStats(units=len(units))
        if not units:
            return stats

        pending: list[str] = []
        for text, runs in units.items():
            cached = self.cache.get(_cache_key(text, source_lang, target_lang))
            if cached is None:
                pending.append(text)
                continue
            for run in runs:
                run.translated_text = cached
            stats.cached += 1
            stats.translated += 1

        total = len(units)
        done = stats.cached

        def report(status: str) -> None:
            if on_progress:
                on_progress(TranslationProgress(
                    current=done,
                    total=total,
                    status=status,
                    phase=TranslationPhase.TRANSLATING,
                    phase_detail=f"{done}/{total}",
                ))

        if stats.cached:
            logger.info("Cache hits: %d/%d units", stats.cached, total)
            report("Served from cache")

        self._abort_event.clear()
        abort_error: Optional[BaseException] = None

        if pending:
            workers = min(self.throttle.max_concurrent, len(pending))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="translate") as executor:
                futures = {
                    executor.submit(self.translate_text, text, source_lang, target_lang): text
                    for text in pending
                }
                for future in as_completed(futures):
                    text = futures[future]
                    done += 1
                    try:
                        translated = future.result()
                    except (CancelledError, _PhaseAborted):
                        stats.skipped += 1
                        continue
                    except Exception as e:
                        if is_transient_error(e):
                            stats.failed += 1
                            logger.warning("Keeping original text for %r: %s", text[:40], e)
                            report("Translation failed, keeping original")
                            continue
                        stats.failed += 1
                        if abort_error is None:
                            abort_error = e
                            self._abort_event.set()
                            for other in futures:
                                other.cancel()
                            logger.error("Aborting translation phase: %s", e)
                        continue

                    self.cache.set(_cache_key(text, source_lang, target_lang), translated)
                    for run in units[text]:
                        run.translated_text = translated
                    stats.translated += 1
                    report("Translating")

        stats.aborted = abort_error is not None
        logger.info(
            "Translation phase: units=%d, translated=%d (cached %d), failed=%d, skipped=%d",
            stats.units, stats.translated, stats.cached, stats.failed, stats.skipped,
        )
        if abort_error is not None:
            raise abort_error
        return stats
