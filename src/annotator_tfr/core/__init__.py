"""Core business logic modules for Annotator TFR."""

from .models import AnnotationRecord, BoundingBox, ImageSize, LabeledImage, LabeledObject, RawImage
from .config import AppConfig, ConfigManager
from .label_map import LabelMap
from .image_source import ImageSource
from .annotation_store import AnnotationStore
from .session import LabelingSession
from .record_exporter import ExportSummary, OutputSpec, RecordExporter
from .context import LabelingContext

__all__ = [
    "AnnotationRecord",
    "BoundingBox",
    "ImageSize",
    "LabeledImage",
    "LabeledObject",
    "RawImage",
    "AppConfig",
    "ConfigManager",
    "LabelMap",
    "ImageSource",
    "AnnotationStore",
    "LabelingSession",
    "ExportSummary",
    "OutputSpec",
    "RecordExporter",
    "LabelingContext",
]
