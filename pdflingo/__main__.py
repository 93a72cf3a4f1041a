# pdflingo/__main__.py
"""Allow ``python -m pdflingo``."""

import sys

from pdflingo.cli import main

if __name__ == "__main__":
    sys.exit(main())
