"""Discovery and decoding of source images awaiting labels."""

from __future__ import annotations

import hashlib
import logging
import math
import os
from pathlib import Path
from typing import Iterator, Union

from PyQt6.QtGui import QImage

from .exceptions import ImageDecodeError
from .models import RawImage

logger = logging.getLogger(__name__)

# Supported image extensions
IMAGE_EXTENSIONS = {".jpg", ".jpeg"}

ID_MODULUS = 100_000_000
ID_DIGITS = 8

ID_STRATEGIES = ("atime", "content")


def atime_image_id(atime_ms: float, size_bytes: int) -> str:
    """
    Derive an 8-digit identifier from file access time and size.

    Args:
        atime_ms: Last access time in milliseconds since the epoch
        size_bytes: File size in bytes

    Returns:
        Zero-padded decimal identifier
    """
    value = math.floor(atime_ms * size_bytes) % ID_MODULUS
    return f"{value:0{ID_DIGITS}d}"


def content_image_id(data: bytes) -> str:
    """Derive an 8-digit identifier from the SHA-256 of the file contents."""
    value = int(hashlib.sha256(data).hexdigest(), 16) % ID_MODULUS
    return f"{value:0{ID_DIGITS}d}"


def decode_image(data: bytes, path: Union[str, Path]) -> QImage:
    """
    Decode encoded image bytes.

    Raises:
        ImageDecodeError: If the bytes are not a readable image
    """
    image = QImage()
    if not image.loadFromData(data) or image.isNull():
        raise ImageDecodeError(f"Cannot decode image {Path(path).name}", path=path)
    return image


def channel_depth(image: QImage) -> int:
    """Number of color channels of a decoded image."""
    if image.format() in (QImage.Format.Format_Grayscale8, QImage.Format.Format_Grayscale16):
        return 1
    if image.hasAlphaChannel():
        return 4
    return 3


class ImageSource:
    """
    Lazy source of JPEG images in a directory.

    Each call to :meth:`stream` lists the directory anew and yields one
    RawImage per JPEG file, in directory listing order. Files with other
    extensions are skipped.
    """

    def __init__(self, directory: Union[str, Path], id_strategy: str = "atime") -> None:
        """
        Initialize the image source.

        Args:
            directory: Directory to scan for images
            id_strategy: "atime" (access time times size) or "content" (SHA-256)
        """
        if id_strategy not in ID_STRATEGIES:
            raise ValueError(f"Unknown image id strategy: {id_strategy}")

        self.directory = Path(directory)
        self.id_strategy = id_strategy

    def stream(self) -> Iterator[RawImage]:
        """
        Yield decoded images one at a time.

        Raises:
            ImageDecodeError: If a matched file cannot be read or decoded;
                iteration stops at that file
        """
        count = 0

        for entry in self.directory.iterdir():
            if not entry.is_file() or entry.suffix.lower() not in IMAGE_EXTENSIONS:
                logger.debug(f"Skipping non-image entry {entry.name}")
                continue

            yield self._read(entry)
            count += 1

        logger.info(f"Image scan complete: {count} images found in {self.directory}")

    def __iter__(self) -> Iterator[RawImage]:
        return self.stream()

    def _read(self, path: Path) -> RawImage:
        """Read, decode and identify one image file."""
        try:
            data = path.read_bytes()
            stats = os.stat(path)
        except OSError as e:
            raise ImageDecodeError(f"Cannot read image {path.name}: {e}", path=path) from e

        image = decode_image(data, path)

        if self.id_strategy == "content":
            image_id = content_image_id(data)
        else:
            image_id = atime_image_id(stats.st_atime_ns / 1_000_000, stats.st_size)

        logger.debug(f"Read {path.name} as {image_id} ({image.width()}x{image.height()})")

        return RawImage(
            id=image_id,
            source_path=path,
            data=data,
            width=image.width(),
            height=image.height(),
            depth=channel_depth(image),
        )
