"""Tests for core models."""

import pytest
from PyQt6.QtCore import QPointF

from annotator_tfr.core.models import (
    AnnotationRecord,
    BoundingBox,
    ImageSize,
    LabeledObject,
)


class TestBoundingBox:
    """Tests for the BoundingBox class."""

    @pytest.mark.parametrize("first, second", [
        (QPointF(10, 20), QPointF(110, 220)),
        (QPointF(110, 220), QPointF(10, 20)),
        (QPointF(10, 220), QPointF(110, 20)),
        (QPointF(110, 20), QPointF(10, 220)),
    ])
    def test_from_corners_any_order(self, first, second):
        """Test every corner order gives the same ordered box."""
        box = BoundingBox.from_corners(first, second)
        assert box == BoundingBox(xmin=10, ymin=20, xmax=110, ymax=220)
        assert box.xmin <= box.xmax
        assert box.ymin <= box.ymax

    def test_degenerate_box(self):
        """Test identical corners give a zero-size box."""
        box = BoundingBox.from_corners(QPointF(5, 5), QPointF(5, 5))
        assert box.width == 0
        assert box.height == 0

    def test_inverted_box_rejected(self):
        """Test direct construction with inverted coordinates fails."""
        with pytest.raises(ValueError):
            BoundingBox(xmin=100, ymin=0, xmax=10, ymax=10)

    def test_negative_coordinate_rejected(self):
        """Test negative coordinates are rejected."""
        with pytest.raises(ValueError):
            BoundingBox(xmin=-1, ymin=0, xmax=10, ymax=10)

    def test_normalized(self):
        """Test normalization by the image's own size."""
        box = BoundingBox(xmin=10, ymin=20, xmax=110, ymax=220)
        xmin, xmax, ymin, ymax = box.normalized(200, 400)
        assert xmin == pytest.approx(0.05)
        assert xmax == pytest.approx(0.55)
        assert ymin == pytest.approx(0.05)
        assert ymax == pytest.approx(0.55)

    def test_normalized_invalid_size(self):
        """Test zero image size is rejected."""
        box = BoundingBox(xmin=0, ymin=0, xmax=1, ymax=1)
        with pytest.raises(ValueError):
            box.normalized(0, 10)

    def test_to_rect(self):
        """Test conversion to QRectF."""
        rect = BoundingBox(xmin=10, ymin=20, xmax=110, ymax=220).to_rect()
        assert rect.x() == 10
        assert rect.y() == 20
        assert rect.width() == 100
        assert rect.height() == 200


class TestAnnotationRecord:
    """Tests for the AnnotationRecord class."""

    def test_objects_frozen_as_tuple(self):
        """Test a list of objects is stored as a tuple."""
        obj = LabeledObject(box=BoundingBox(0, 0, 1, 1), class_name="cup", class_id=1)
        objects = [obj]
        record = AnnotationRecord("00000001", ImageSize(10, 10), objects)

        objects.append(obj)
        assert record.objects == (obj,)

    def test_record_immutable(self):
        """Test fields cannot be reassigned."""
        record = AnnotationRecord("00000001", ImageSize(10, 10))
        with pytest.raises(AttributeError):
            record.image_id = "00000002"

    def test_file_name(self):
        """Test the paired image file name."""
        record = AnnotationRecord("12345678", ImageSize(10, 10))
        assert record.file_name == "12345678.jpg"

    def test_class_ids(self):
        """Test class ids in object order."""
        objects = [
            LabeledObject(BoundingBox(0, 0, 1, 1), "bottle", 2),
            LabeledObject(BoundingBox(0, 0, 1, 1), "cup", 1),
        ]
        record = AnnotationRecord("00000001", ImageSize(10, 10), objects)
        assert record.class_ids == (2, 1)
