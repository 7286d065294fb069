"""Pytest bootstrap for local source imports.

The tools live as plain scripts under ``python/``. Make ``import choose``
resolve to the local script when the package is not installed.
"""

import sys
from pathlib import Path


SCRIPTS_DIR = Path(__file__).resolve().parent.parent / "python"
SCRIPTS_DIR_STR = str(SCRIPTS_DIR)

if SCRIPTS_DIR_STR not in sys.path:
    sys.path.insert(0, SCRIPTS_DIR_STR)
