"""Data models for labeled images and their annotations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

from PyQt6.QtCore import QPointF, QRectF

logger = logging.getLogger(__name__)

IMAGE_FILE_EXTENSION = ".jpg"


@dataclass(frozen=True)
class RawImage:
    """
    A decoded image discovered in a source directory.

    ``data`` holds the encoded file bytes exactly as read from disk;
    width and height come from decoding them.
    """

    id: str
    source_path: Path
    data: bytes = field(repr=False)
    width: int
    height: int
    depth: int = 3

    @property
    def file_name(self) -> str:
        """Name the image is stored under once labeled."""
        return f"{self.id}{IMAGE_FILE_EXTENSION}"

    @property
    def size(self) -> ImageSize:
        return ImageSize(width=self.width, height=self.height, depth=self.depth)


@dataclass(frozen=True)
class ImageSize:
    """Pixel dimensions and channel count of an image."""

    width: int
    height: int
    depth: int = 3


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in source pixel coordinates.

    Always satisfies ``xmin <= xmax`` and ``ymin <= ymax``; build it with
    :meth:`from_corners` when the corner order is not known.
    """

    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def __post_init__(self) -> None:
        if self.xmin > self.xmax or self.ymin > self.ymax:
            raise ValueError(
                f"Inverted bounding box: ({self.xmin}, {self.ymin}, {self.xmax}, {self.ymax})"
            )
        if min(self.xmin, self.ymin) < 0:
            raise ValueError(
                f"Negative bounding box coordinate: ({self.xmin}, {self.ymin})"
            )

    @classmethod
    def from_corners(cls, first: QPointF, second: QPointF) -> BoundingBox:
        """
        Create a box from two opposite corners placed in any order.

        Args:
            first: Corner placed first
            second: Corner placed second

        Returns:
            New BoundingBox instance
        """
        return cls(
            xmin=min(first.x(), second.x()),
            ymin=min(first.y(), second.y()),
            xmax=max(first.x(), second.x()),
            ymax=max(first.y(), second.y()),
        )

    @property
    def width(self) -> float:
        return self.xmax - self.xmin

    @property
    def height(self) -> float:
        return self.ymax - self.ymin

    def to_rect(self) -> QRectF:
        """Convert to a QRectF for drawing."""
        return QRectF(self.xmin, self.ymin, self.width, self.height)

    def normalized(self, img_width: int, img_height: int) -> Tuple[float, float, float, float]:
        """
        Normalize to [0, 1] by the image's own dimensions.

        Args:
            img_width: Image width in pixels
            img_height: Image height in pixels

        Returns:
            Tuple of (xmin, xmax, ymin, ymax) normalized coordinates
        """
        if img_width <= 0 or img_height <= 0:
            raise ValueError(f"Invalid image size {img_width}x{img_height}")

        return (
            self.xmin / img_width,
            self.xmax / img_width,
            self.ymin / img_height,
            self.ymax / img_height,
        )


@dataclass(frozen=True)
class LabeledObject:
    """One labeled box. The class name is copied at label time."""

    box: BoundingBox
    class_name: str
    class_id: int


@dataclass(frozen=True)
class AnnotationRecord:
    """
    All labeled objects of one image.

    Created once when labeling of the image is committed and never
    modified afterwards.
    """

    image_id: str
    image_size: ImageSize
    objects: Tuple[LabeledObject, ...] = ()

    def __post_init__(self) -> None:
        # Accept any sequence but store an immutable tuple
        object.__setattr__(self, "objects", tuple(self.objects))

    @property
    def file_name(self) -> str:
        """File name of the paired image."""
        return f"{self.image_id}{IMAGE_FILE_EXTENSION}"

    @property
    def class_ids(self) -> Tuple[int, ...]:
        return tuple(obj.class_id for obj in self.objects)


@dataclass(frozen=True)
class LabeledImage:
    """An annotation record together with the encoded bytes of its image."""

    record: AnnotationRecord
    data: bytes = field(repr=False)
