# pdflingo/__init__.py
"""
pdflingo - layout-preserving PDF translation.

Extracts positioned text, images and rules from PDF pages, rebuilds lines,
paragraphs and table cells, sends the text to a remote translation service
and redraws every page with the translated text re-flowed into the original
boxes.
"""

from pathlib import Path


def _get_version() -> str:
    """
    Read the version from pyproject.toml when running from a source checkout.

    Returns:
        str: version string (e.g. "0.1.0")
    """
    try:
        import tomllib  # Python 3.11+ standard library

        pyproject_path = Path(__file__).parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            with open(pyproject_path, "rb") as f:
                data = tomllib.load(f)
            return data.get("project", {}).get("version", "0.0.0")
    except (ImportError, OSError, ValueError):
        pass

    return "0.1.0"


__version__ = _get_version()
__app_name__ = "pdflingo"
