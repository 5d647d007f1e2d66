"""
Exception hierarchy for the annotation dataset pipeline.

Every error carries a human-readable message plus a details dictionary
identifying the offending input (file path, image id, class id).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Union


class AnnotatorError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class MalformedLabelMapError(AnnotatorError):
    """Raised when label map text contains no parseable item entries."""


class ImageDecodeError(AnnotatorError):
    """Raised when an image file cannot be read or decoded."""

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if path is not None:
            details["path"] = str(path)
        super().__init__(message, details)
        self.path = path


class MalformedAnnotationError(AnnotatorError):
    """Raised when an annotation document cannot be parsed."""

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if path is not None:
            details["path"] = str(path)
        super().__init__(message, details)
        self.path = path


class MissingPairedImageError(AnnotatorError):
    """Raised when an annotation document has no matching image file."""

    def __init__(
        self,
        message: str,
        image_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if image_id is not None:
            details["image_id"] = image_id
        super().__init__(message, details)
        self.image_id = image_id


class UnknownClassIdError(AnnotatorError):
    """Raised when labeling uses a class id absent from the active label map."""

    def __init__(
        self,
        message: str,
        class_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if class_id is not None:
            details["class_id"] = class_id
        super().__init__(message, details)
        self.class_id = class_id


class PartialWriteError(AnnotatorError):
    """
    Raised when persisting or exporting stops after some output was written.

    ``written`` is the exact number of examples (or files) that were
    completely written before the failure.
    """

    def __init__(
        self,
        message: str,
        written: int = 0,
        per_output_counts: Optional[Dict[str, int]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        details["written"] = written
        if per_output_counts is not None:
            details["per_output_counts"] = dict(per_output_counts)
        super().__init__(message, details)
        self.written = written
        self.per_output_counts = dict(per_output_counts or {})


class SessionStateError(AnnotatorError):
    """Raised when a labeling session is driven in a state that forbids the operation."""


class DuplicateImageIdError(AnnotatorError):
    """Raised when persisting would replace the files of an already stored image."""

    def __init__(
        self,
        message: str,
        image_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if image_id is not None:
            details["image_id"] = image_id
        super().__init__(message, details)
        self.image_id = image_id
