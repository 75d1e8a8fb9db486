"""Pytest configuration to make tp4000_lib importable without installation."""
from __future__ import annotations

import sys
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

_PACKAGE_ROOT = Path(__file__).resolve().parents[1] / "protocol-analysis"
_root_str = str(_PACKAGE_ROOT)
if _root_str not in sys.path:
    sys.path.insert(0, _root_str)

import pytest  # noqa: E402

# Documented example: "04.71 k ohms", first byte omitted
EXAMPLE_FRAME = bytes.fromhex("27 3D 42 57 69 75 80 95 A2 B0 C4 D0 E8")


@pytest.fixture
def example_frame() -> bytes:
    return EXAMPLE_FRAME
