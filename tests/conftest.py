"""Pytest configuration for freedomkit-sidecar tests."""

import sys
from pathlib import Path

# Ensure src/freedomkit and tests/fakes.py are importable
src_path = str(Path(__file__).parent.parent / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)
tests_path = str(Path(__file__).parent)
if tests_path not in sys.path:
    sys.path.insert(0, tests_path)
