# pdflingo/config/settings.py
"""
Application settings management for pdflingo.

Settings file layout:
- settings.template.json: defaults shipped with the project (overwritten on update)
- user_settings.json: only the values the user changed
- On load the template is read first and then overlaid with user settings

Caching:
- _settings_cache: AppSettings instances keyed by path
- load() prefers the cache and reloads only when a file's mtime changes
- save() refreshes the cache
- invalidate_settings_cache() clears it explicitly
"""

import logging
import threading
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Optional
import json

# Module logger
logger = logging.getLogger(__name__)

# Settings cache: path -> (mtime_template, mtime_user, AppSettings)
_settings_cache: dict[str, tuple[float, float, "AppSettings"]] = {}
_settings_cache_lock = threading.Lock()

# Keys persisted to user_settings.json
USER_SETTINGS_KEYS = {
    # Languages
    "source_lang",
    "target_lang",
    # Output
    "output_directory",
    # Translation service
    "translator_endpoint",
    "translator_api_key",
    # Fonts
    "font_cjk",
    "font_latin",
    # Layout tuning
    "stitching",
    "paragraphs",
    "tables",
}


# =============================================================================
# Layout thresholds
# =============================================================================

@dataclass
class StitchThresholds:
    """Tolerances for merging raw text runs into visual lines."""
    y_tolerance_factor: float = 0.7           # x max(font size) allowed baseline drift
    max_gap_factor: float = 2.5               # x avg char width allowed horizontal gap
    overlap_tolerance: float = 2.0            # pt of overlap allowed on top of half a char
    font_size_tolerance: float = 0.5          # pt
    color_tolerance: float = 0.05             # per channel
    horizontal_scaling_tolerance: float = 0.05
    accurate_spacing_min_font_size: float = 8.0  # below this, width/len is unreliable
    fallback_char_width_factor: float = 0.6   # x font size when width is unusable


@dataclass
class ParagraphThresholds:
    """Tolerances for merging visual lines into paragraphs."""
    line_spacing_factor: float = 1.5          # x line height, allowed baseline distance
    max_overlap_ratio: float = 0.1            # allowed box overlap as share of line height
    font_size_tolerance: float = 0.1          # relative
    indent_tolerance_factor: float = 0.8      # x font size
    hanging_indent_factor: float = 2.0        # x font size
    margin_ratio: float = 0.65                # share of column width that counts as "full"
    default_column_width: float = 600.0
    strict_font_name: bool = False


@dataclass
class TableThresholds:
    """Tolerances for detecting ruled tables."""
    axis_tolerance: float = 1.5               # pt, H/V classification
    cluster_tolerance: float = 5.0            # pt, grid coordinate clustering
    cell_padding: float = 1.0                 # pt, shrink applied to cells before hit-test


_NESTED_SETTINGS = {
    "stitching": StitchThresholds,
    "paragraphs": ParagraphThresholds,
    "tables": TableThresholds,
}


def _build_nested(section_cls, value):
    """Build a threshold dataclass from its JSON object, ignoring unknown keys."""
    if isinstance(value, section_cls):
        return value
    if not isinstance(value, dict):
        logger.warning("Ignoring invalid %s section: %r", section_cls.__name__, value)
        return section_cls()
    known = {f.name for f in fields(section_cls)}
    return section_cls(**{k: v for k, v in value.items() if k in known})


@dataclass
class AppSettings:
    """Application settings"""

    # Languages
    source_lang: str = "en"
    target_lang: str = "ja"

    # Output (always written as a separate *_translated.pdf)
    output_directory: Optional[str] = None  # None = same as input

    # Translation service
    translator_endpoint: str = "http://localhost:5000/translate"
    translator_api_key: Optional[str] = None
    request_timeout: int = 10               # Seconds per call
    max_retries: int = 3                    # Retries after the first attempt
    retry_initial_delay: float = 0.5        # Seconds
    retry_max_delay: float = 5.0            # Seconds
    max_concurrent_requests: int = 5
    min_request_interval: float = 0.1       # Seconds between any two calls
    max_chars_per_request: int = 1000
    chunk_joiner: str = " "
    translation_cache_size: int = 1000

    # Fonts (None = PyMuPDF built-in "cjk" / "helv")
    font_cjk: Optional[str] = None
    font_latin: Optional[str] = None

    # Text layout
    min_font_size: float = 2.0              # pt, shrink floor
    font_shrink_step: float = 0.5           # pt
    line_height: float = 1.2                # x font size

    # Structure detection
    stitching: StitchThresholds = field(default_factory=StitchThresholds)
    paragraphs: ParagraphThresholds = field(default_factory=ParagraphThresholds)
    tables: TableThresholds = field(default_factory=TableThresholds)

    @classmethod
    def load(cls, path: Path, use_cache: bool = True) -> "AppSettings":
        """Load settings from template and user settings files.

        1. Read defaults from settings.template.json
        2. Overlay user_settings.json (USER_SETTINGS_KEYS only)

        Args:
            path: settings path (e.g. config/settings.json); only its
                  directory is used to locate the template and user files
            use_cache: reuse the cached instance while files are unchanged
        """
        config_dir = path.parent
        template_path = config_dir / "settings.template.json"
        user_settings_path = config_dir / "user_settings.json"

        cache_key = str(path.resolve())

        template_mtime = template_path.stat().st_mtime if template_path.exists() else 0.0
        user_mtime = user_settings_path.stat().st_mtime if user_settings_path.exists() else 0.0

        if use_cache:
            with _settings_cache_lock:
                if cache_key in _settings_cache:
                    cached_template_mtime, cached_user_mtime, cached_settings = _settings_cache[cache_key]
                    if cached_template_mtime == template_mtime and cached_user_mtime == user_mtime:
                        logger.debug("Using cached settings for: %s", path)
                        return cached_settings

        data = {}

        # 1. Load from template (developer defaults)
        if template_path.exists():
            try:
                with open(template_path, 'r', encoding='utf-8-sig') as f:
                    data = json.load(f)
                    logger.debug("Loaded template settings from: %s", template_path)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning("Failed to load template settings: %s", e)

        # 2. Override with user settings
        if user_settings_path.exists():
            try:
                with open(user_settings_path, 'r', encoding='utf-8-sig') as f:
                    user_data = json.load(f)
                    for key in USER_SETTINGS_KEYS:
                        if key in user_data:
                            data[key] = user_data[key]
                    logger.debug("Loaded user settings from: %s", user_settings_path)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning("Failed to load user settings: %s", e)

        # Filter to only known fields
        known_fields = {f.name for f in fields(cls)}
        filtered_data = {k: v for k, v in data.items() if k in known_fields}
        for key, section_cls in _NESTED_SETTINGS.items():
            if key in filtered_data:
                filtered_data[key] = _build_nested(section_cls, filtered_data[key])

        settings = cls(**filtered_data)
        settings._validate()

        with _settings_cache_lock:
            _settings_cache[cache_key] = (template_mtime, user_mtime, settings)

        return settings

    def _validate(self) -> None:
        """Validate and normalize setting values for consistency.

        Invalid values are reset to defaults with warnings.
        """
        # Font size constraints
        if self.min_font_size < 1.0:
            logger.warning("min_font_size too small (%.1f), resetting to 2.0", self.min_font_size)
            self.min_font_size = 2.0
        elif self.min_font_size > 72.0:
            logger.warning("min_font_size too large (%.1f), resetting to 2.0", self.min_font_size)
            self.min_font_size = 2.0
        if self.font_shrink_step <= 0:
            logger.warning("font_shrink_step must be positive (%.2f), resetting to 0.5", self.font_shrink_step)
            self.font_shrink_step = 0.5
        if self.line_height < 1.0 or self.line_height > 3.0:
            logger.warning("line_height out of range (%.2f), resetting to 1.2", self.line_height)
            self.line_height = 1.2

        # Request size
        if self.max_chars_per_request < 100:
            logger.warning("max_chars_per_request too small (%d), resetting to 1000", self.max_chars_per_request)
            self.max_chars_per_request = 1000

        # Timeout constraints
        if self.request_timeout < 1:
            logger.warning("request_timeout too small (%d), resetting to 10", self.request_timeout)
            self.request_timeout = 10
        elif self.request_timeout > 600:
            logger.warning("request_timeout too large (%d), resetting to 10", self.request_timeout)
            self.request_timeout = 10

        # Retry / throttle
        if self.max_retries < 0:
            self.max_retries = 0
        elif self.max_retries > 10:
            logger.warning("max_retries too large (%d), resetting to 3", self.max_retries)
            self.max_retries = 3
        if self.retry_initial_delay < 0:
            self.retry_initial_delay = 0.5
        if self.retry_max_delay < self.retry_initial_delay:
            logger.warning(
                "retry_max_delay (%.2f) below retry_initial_delay (%.2f), raising it",
                self.retry_max_delay, self.retry_initial_delay,
            )
            self.retry_max_delay = self.retry_initial_delay
        if self.max_concurrent_requests < 1:
            logger.warning("max_concurrent_requests must be >= 1 (%d), resetting to 5", self.max_concurrent_requests)
            self.max_concurrent_requests = 5
        if self.min_request_interval < 0:
            self.min_request_interval = 0.1
        if self.translation_cache_size < 0:
            self.translation_cache_size = 0

        # Paragraph spacing stays within the range the heuristics were tuned for
        spacing = self.paragraphs.line_spacing_factor
        if spacing < 1.0 or spacing > 2.2:
            logger.warning("paragraphs.line_spacing_factor out of range (%.2f), resetting to 1.5", spacing)
            self.paragraphs.line_spacing_factor = 1.5

    def save(self, path: Path) -> None:
        """Save user settings to user_settings.json.

        Only USER_SETTINGS_KEYS are written; the template is never touched.

        Args:
            path: settings path (config/settings.json); the file actually
                  written is config/user_settings.json
        """
        config_dir = path.parent
        user_settings_path = config_dir / "user_settings.json"
        template_path = config_dir / "settings.template.json"

        config_dir.mkdir(parents=True, exist_ok=True)

        data = {}
        for key in sorted(USER_SETTINGS_KEYS):
            value = getattr(self, key)
            if key in _NESTED_SETTINGS:
                value = asdict(value)
            data[key] = value

        with open(user_settings_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.debug("Saved user settings to: %s", user_settings_path)

        cache_key = str(path.resolve())
        template_mtime = template_path.stat().st_mtime if template_path.exists() else 0.0
        user_mtime = user_settings_path.stat().st_mtime if user_settings_path.exists() else 0.0
        with _settings_cache_lock:
            _settings_cache[cache_key] = (template_mtime, user_mtime, self)

    def get_output_directory(self, input_path: Path) -> Path:
        """
        Get output directory for translated file.
        Returns input file's directory if output_directory is None.
        """
        if self.output_directory:
            return Path(self.output_directory)
        return input_path.parent


def get_default_settings_path() -> Path:
    """Get default settings file path"""
    return Path(__file__).parent.parent.parent / "config" / "settings.json"


def invalidate_settings_cache(path: Optional[Path] = None) -> None:
    """Invalidate settings cache.

    Args:
        path: clear only this path's entry; None clears everything
    """
    with _settings_cache_lock:
        if path is None:
            _settings_cache.clear()
            logger.debug("Cleared all settings cache")
        else:
            cache_key = str(path.resolve())
            if cache_key in _settings_cache:
                del _settings_cache[cache_key]
                logger.debug("Cleared settings cache for: %s", path)
