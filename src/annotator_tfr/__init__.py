"""
Annotator TFR - Bounding box labeling and TFRecord export for object detection.

Discovers JPEG images, records labeled boxes per image as XML annotation
documents, and exports them as train/eval TFRecord files.
"""

__version__ = "1.0.0"
__author__ = "Annotator TFR Team"
