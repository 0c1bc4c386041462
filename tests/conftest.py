"""Shared pytest setup for the Cinetrack test suite."""

from __future__ import annotations

import sys
from pathlib import Path

# Tests import ``app`` from the checkout so they run without an editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
