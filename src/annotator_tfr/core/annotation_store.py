"""Persisted annotation documents and their paired image files."""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Iterator, List, Optional, Union
from xml.dom import minidom

from .exceptions import (
    DuplicateImageIdError,
    MalformedAnnotationError,
    MissingPairedImageError,
    PartialWriteError,
)
from .label_map import LabelMap
from .models import (
    IMAGE_FILE_EXTENSION,
    AnnotationRecord,
    BoundingBox,
    ImageSize,
    LabeledImage,
    LabeledObject,
)

logger = logging.getLogger(__name__)

ANNOTATIONS_DIR = "annotations"
IMAGES_DIR = "images"
ANNOTATION_FILE_EXTENSION = ".xml"
TEMP_SUFFIX = ".tmp"


def _format_number(value: float) -> str:
    """Write integral coordinates without a fractional part."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def record_to_xml(record: AnnotationRecord) -> str:
    """
    Serialize an annotation record to its XML document.

    XML structure:
    <annotation>
        <fileName>01234567.jpg</fileName>
        <size>
            <height>400</height>
            <width>200</width>
            <depth>3</depth>
        </size>
        <objects>
            <bndbox>
                <xmin>10</xmin>
                <xmax>110</xmax>
                <ymin>20</ymin>
                <ymax>220</ymax>
            </bndbox>
            <name>cup</name>
            <id>1</id>
        </objects>
    </annotation>
    """
    annotation = ET.Element("annotation")

    file_name_elem = ET.SubElement(annotation, "fileName")
    file_name_elem.text = record.file_name

    size_elem = ET.SubElement(annotation, "size")
    ET.SubElement(size_elem, "height").text = str(record.image_size.height)
    ET.SubElement(size_elem, "width").text = str(record.image_size.width)
    ET.SubElement(size_elem, "depth").text = str(record.image_size.depth)

    for obj in record.objects:
        obj_elem = ET.SubElement(annotation, "objects")

        bndbox_elem = ET.SubElement(obj_elem, "bndbox")
        ET.SubElement(bndbox_elem, "xmin").text = _format_number(obj.box.xmin)
        ET.SubElement(bndbox_elem, "xmax").text = _format_number(obj.box.xmax)
        ET.SubElement(bndbox_elem, "ymin").text = _format_number(obj.box.ymin)
        ET.SubElement(bndbox_elem, "ymax").text = _format_number(obj.box.ymax)

        ET.SubElement(obj_elem, "name").text = obj.class_name
        ET.SubElement(obj_elem, "id").text = str(obj.class_id)

    xml_str = ET.tostring(annotation, encoding="unicode")
    pretty_xml = minidom.parseString(xml_str).toprettyxml(indent="    ")

    # Remove extra blank lines and the declaration minidom adds
    lines = [line for line in pretty_xml.split("\n") if line.strip()]
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + "\n".join(lines[1:]) + "\n"


def _required_text(parent: ET.Element, tag: str, path: Path) -> str:
    elem = parent.find(tag)
    if elem is None or elem.text is None or not elem.text.strip():
        raise MalformedAnnotationError(f"Missing <{tag}> in {path.name}", path=path)
    return elem.text.strip()


def record_from_xml(
    xml_text: Union[str, bytes],
    path: Path,
    label_map: Optional[LabelMap] = None
) -> AnnotationRecord:
    """
    Parse an annotation document.

    Objects without an ``<id>`` element resolve their class id through
    ``label_map`` by name.

    Args:
        xml_text: Document contents
        path: Document path, used in error messages
        label_map: Optional label map for documents lacking class ids

    Returns:
        Parsed AnnotationRecord

    Raises:
        MalformedAnnotationError: If the document is not a valid annotation
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise MalformedAnnotationError(f"Error parsing {path.name}: {e}", path=path) from e

    try:
        file_name = _required_text(root, "fileName", path)

        size_elem = root.find("size")
        if size_elem is None:
            raise MalformedAnnotationError(f"Missing <size> in {path.name}", path=path)

        image_size = ImageSize(
            width=int(_required_text(size_elem, "width", path)),
            height=int(_required_text(size_elem, "height", path)),
            depth=int(_required_text(size_elem, "depth", path)),
        )

        objects: List[LabeledObject] = []
        for obj_elem in root.findall("objects"):
            bndbox = obj_elem.find("bndbox")
            if bndbox is None:
                raise MalformedAnnotationError(f"Object without <bndbox> in {path.name}", path=path)

            box = BoundingBox(
                xmin=float(_required_text(bndbox, "xmin", path)),
                ymin=float(_required_text(bndbox, "ymin", path)),
                xmax=float(_required_text(bndbox, "xmax", path)),
                ymax=float(_required_text(bndbox, "ymax", path)),
            )
            name = _required_text(obj_elem, "name", path)

            id_elem = obj_elem.find("id")
            if id_elem is not None and id_elem.text and id_elem.text.strip():
                class_id = int(id_elem.text.strip())
            else:
                class_id = label_map.id_for(name) if label_map is not None else None
                if class_id is None:
                    raise MalformedAnnotationError(
                        f"Object '{name}' in {path.name} has no class id", path=path
                    )

            objects.append(LabeledObject(box=box, class_name=name, class_id=class_id))

    except ValueError as e:
        raise MalformedAnnotationError(f"Invalid value in {path.name}: {e}", path=path) from e

    return AnnotationRecord(
        image_id=Path(file_name).stem,
        image_size=image_size,
        objects=tuple(objects),
    )


def _write_atomic(path: Path, data: bytes) -> None:
    """Write to a temporary sibling, then rename into place."""
    temp_path = path.with_name(path.name + TEMP_SUFFIX)
    try:
        with open(temp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except OSError:
        if temp_path.exists():
            temp_path.unlink()
        raise


class AnnotationStore:
    """
    Directory of labeled images.

    Layout::

        <directory>/images/<image_id>.jpg
        <directory>/annotations/<image_id>.xml

    The image is always written before its annotation, so an annotation
    present on disk implies a complete image; an image without annotation
    is the residue of an interrupted persist (see :meth:`orphaned_images`).
    """

    def __init__(self, directory: Union[str, Path], label_map: Optional[LabelMap] = None) -> None:
        """
        Initialize the store.

        Args:
            directory: Root data directory
            label_map: Used to resolve class ids of documents that lack them
        """
        self.directory = Path(directory)
        self.label_map = label_map

    @property
    def annotations_dir(self) -> Path:
        return self.directory / ANNOTATIONS_DIR

    @property
    def images_dir(self) -> Path:
        return self.directory / IMAGES_DIR

    def get_annotation_path(self, image_id: str) -> Path:
        return self.annotations_dir / f"{image_id}{ANNOTATION_FILE_EXTENSION}"

    def get_image_path(self, image_id: str) -> Path:
        return self.images_dir / f"{image_id}{IMAGE_FILE_EXTENSION}"

    def has_annotation(self, image_id: str) -> bool:
        return self.get_annotation_path(image_id).is_file()

    def persist(
        self,
        record: AnnotationRecord,
        image_bytes: bytes,
        source_path: Optional[Union[str, Path]] = None
    ) -> Path:
        """
        Persist one labeled image.

        The image bytes are written first and the annotation second, each
        through a temporary file renamed into place. When ``source_path``
        is given the source file is removed once both are durable.

        Args:
            record: Committed annotation record
            image_bytes: Encoded image bytes
            source_path: Original image file to move into the store

        Returns:
            Path of the written annotation document

        Stored records are never replaced; use :meth:`remove` first to
        re-annotate an image. A stored image without an annotation is only
        reused when its bytes are identical.

        Raises:
            DuplicateImageIdError: If the id already has an annotation or a
                different stored image; nothing is written and the source is kept
            PartialWriteError: If either write fails
        """
        image_path = self.get_image_path(record.image_id)
        annotation_path = self.get_annotation_path(record.image_id)

        if self.has_annotation(record.image_id) or (
            image_path.is_file() and image_path.read_bytes() != image_bytes
        ):
            logger.error(f"Image id {record.image_id} is already stored in {self.directory}")
            raise DuplicateImageIdError(
                f"Image id {record.image_id} is already stored",
                image_id=record.image_id,
            )

        try:
            self.images_dir.mkdir(parents=True, exist_ok=True)
            _write_atomic(image_path, image_bytes)
        except OSError as e:
            logger.error(f"Error writing image {image_path}: {e}")
            raise PartialWriteError(
                f"Image for {record.image_id} was not written: {e}",
                written=0,
                details={"image_id": record.image_id},
            ) from e

        try:
            self.annotations_dir.mkdir(parents=True, exist_ok=True)
            _write_atomic(annotation_path, record_to_xml(record).encode("utf-8"))
        except OSError as e:
            logger.error(f"Error writing annotation {annotation_path}: {e}")
            raise PartialWriteError(
                f"Annotation for {record.image_id} was not written; image left orphaned: {e}",
                written=1,
                details={"image_id": record.image_id},
            ) from e

        logger.info(f"Saved {len(record.objects)} annotations to {annotation_path}")

        if source_path is not None:
            source_path = Path(source_path)
            if source_path.resolve() != image_path.resolve():
                try:
                    source_path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove source image {source_path}: {e}")

        return annotation_path

    def read_record(self, annotation_path: Path) -> AnnotationRecord:
        """Parse one annotation document from disk."""
        try:
            xml_text = annotation_path.read_bytes()
        except OSError as e:
            raise MalformedAnnotationError(
                f"Cannot read {annotation_path.name}: {e}", path=annotation_path
            ) from e
        return record_from_xml(xml_text, annotation_path, self.label_map)

    def annotation_paths(self) -> List[Path]:
        """Annotation documents in directory listing order."""
        if not self.annotations_dir.is_dir():
            return []
        return [
            entry for entry in self.annotations_dir.iterdir()
            if entry.is_file() and entry.suffix.lower() == ANNOTATION_FILE_EXTENSION
        ]

    def stream(self) -> Iterator[LabeledImage]:
        """
        Yield every labeled image with its encoded bytes.

        Raises:
            MalformedAnnotationError: If a document cannot be parsed
            MissingPairedImageError: If a document's image file is absent;
                iteration stops at that document
        """
        count = 0

        for annotation_path in self.annotation_paths():
            record = self.read_record(annotation_path)
            image_path = self.images_dir / record.file_name

            try:
                data = image_path.read_bytes()
            except FileNotFoundError as e:
                logger.error(f"No image for annotation {annotation_path.name}")
                raise MissingPairedImageError(
                    f"Image {record.file_name} missing for annotation {annotation_path.name}",
                    image_id=record.image_id,
                ) from e

            logger.debug(f"Loaded {len(record.objects)} objects for {record.image_id}")
            yield LabeledImage(record=record, data=data)
            count += 1

        logger.info(f"Read {count} labeled images from {self.directory}")

    def __iter__(self) -> Iterator[LabeledImage]:
        return self.stream()

    def remove(self, image_id: str) -> bool:
        """
        Delete the annotation of an image so it can be labeled again.

        The image file stays in place.

        Returns:
            True if an annotation was removed
        """
        annotation_path = self.get_annotation_path(image_id)
        if not annotation_path.exists():
            return False
        annotation_path.unlink()
        logger.info(f"Deleted annotation {annotation_path}")
        return True

    def orphaned_images(self) -> List[str]:
        """Ids of stored images that have no annotation document."""
        if not self.images_dir.is_dir():
            return []
        return [
            entry.stem for entry in self.images_dir.iterdir()
            if entry.is_file()
            and entry.suffix.lower() == IMAGE_FILE_EXTENSION
            and not self.has_annotation(entry.stem)
        ]
