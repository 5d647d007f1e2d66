"""Pytest configuration and fixtures."""

import os
import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Qt needs no display for image decoding
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

SAMPLE_LABEL_MAP = """
item {
  id: 1
  name: 'cup'
}

item {
  id: 2
  name: 'bottle'
}
"""


@pytest.fixture(scope="session")
def qapp():
    """Create a QApplication for tests that need it."""
    from PyQt6.QtWidgets import QApplication

    app = QApplication.instance()
    if app is None:
        app = QApplication([])

    yield app


@pytest.fixture
def make_jpeg(qapp):
    """Factory producing encoded JPEG bytes of a given size."""
    from PyQt6.QtCore import QBuffer, QIODevice
    from PyQt6.QtGui import QColor, QImage

    def _make(width: int = 200, height: int = 400, color: str = "red") -> bytes:
        image = QImage(width, height, QImage.Format.Format_RGB32)
        image.fill(QColor(color))
        buffer = QBuffer()
        buffer.open(QIODevice.OpenModeFlag.WriteOnly)
        assert image.save(buffer, "JPG")
        return buffer.data().data()

    return _make


@pytest.fixture
def label_map_text():
    """Label map text with two classes."""
    return SAMPLE_LABEL_MAP


@pytest.fixture
def label_map(label_map_text):
    """A label map with two classes."""
    from annotator_tfr.core.label_map import LabelMap

    return LabelMap.load(label_map_text)


@pytest.fixture
def sample_label_map_file(tmp_path):
    """Create a sample .pbtxt label map file."""
    pbtxt_path = tmp_path / "label_map.pbtxt"
    pbtxt_path.write_text(SAMPLE_LABEL_MAP)
    return pbtxt_path
