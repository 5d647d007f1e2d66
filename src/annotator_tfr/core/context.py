"""Labeling context shared by the view layer and the dataset pipeline."""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Iterator, Optional, Union

from .annotation_store import AnnotationStore
from .config import AppConfig
from .exceptions import SessionStateError
from .image_source import ImageSource
from .label_map import LabelMap
from .models import AnnotationRecord, RawImage
from .record_exporter import ExportSummary, OutputSpec, RecordExporter
from .session import LabelingSession

logger = logging.getLogger(__name__)


class LabelingContext:
    """
    Owner of the active label map, directories and labeling session.

    At most one session is active at a time. Replacing the label map
    swaps the whole map; a running session keeps the map it began with.
    """

    def __init__(self, config: Optional[AppConfig] = None) -> None:
        """
        Initialize the context.

        Args:
            config: Application configuration, defaults when omitted
        """
        self.config = config or AppConfig()
        self.label_map: Optional[LabelMap] = None
        self.image_directory: Optional[Path] = (
            Path(self.config.image_directory) if self.config.image_directory else None
        )
        self.data_directory = Path(self.config.data_directory)
        self.session: Optional[LabelingSession] = None

        if self.config.label_map_path:
            self.load_label_map_file(self.config.label_map_path)

    @property
    def store(self) -> AnnotationStore:
        return AnnotationStore(self.data_directory, self.label_map)

    @property
    def can_start_labeling(self) -> bool:
        """True once classes and an image directory are both known."""
        return bool(self.label_map) and self.image_directory is not None

    def load_label_map(self, text: str) -> LabelMap:
        """Parse label map text and make it the active map."""
        label_map = LabelMap.load(text)
        self.label_map = label_map
        return label_map

    def load_label_map_file(self, path: Union[str, Path]) -> LabelMap:
        """Read a label map file and make it the active map."""
        label_map = LabelMap.load_file(path)
        self.label_map = label_map
        return label_map

    def set_image_directory(self, directory: Union[str, Path]) -> None:
        self.image_directory = Path(directory)

    def images(self) -> Iterator[RawImage]:
        """Stream the images awaiting labels."""
        if self.image_directory is None:
            raise SessionStateError("No image directory selected")
        return ImageSource(self.image_directory, self.config.image_id_strategy).stream()

    def begin_session(self, image: RawImage) -> LabelingSession:
        """
        Start labeling an image.

        Raises:
            SessionStateError: If no label map is loaded or another
                session has not been finished
        """
        if self.session is not None:
            raise SessionStateError(
                f"Session for image {self.session.image.id} is still active",
                {"image_id": self.session.image.id},
            )
        if not self.label_map:
            raise SessionStateError("No label map loaded")

        self.session = LabelingSession(image, self.label_map)
        logger.info(f"Labeling image {image.id} ({image.source_path.name})")
        return self.session

    def finish_session(self) -> AnnotationRecord:
        """
        Commit the active session and move its image into the data directory.

        Returns:
            The persisted AnnotationRecord
        """
        if self.session is None:
            raise SessionStateError("No active labeling session")

        session = self.session
        record = session.record if session.is_committed else session.commit()
        self.store.persist(record, session.image.data, source_path=session.image.source_path)
        self.session = None
        return record

    def abandon_session(self) -> None:
        """Drop the active session without persisting anything."""
        if self.session is not None:
            logger.info(f"Abandoned labeling of image {self.session.image.id}")
        self.session = None

    def export(
        self,
        directory: Optional[Union[str, Path]] = None,
        split_ratio: Optional[float] = None,
        rng: Optional[random.Random] = None
    ) -> ExportSummary:
        """
        Export the data directory to record files.

        Args:
            directory: Data directory, defaults to the configured one
            split_ratio: Train fraction; None writes a single output
            rng: Random generator for the split

        Returns:
            ExportSummary of the run
        """
        source = Path(directory) if directory is not None else self.data_directory
        output_spec = OutputSpec(
            directory=source,
            train_name=self.config.train_record_name,
            eval_name=self.config.eval_record_name,
            single_name=self.config.single_record_name,
        )
        exporter = RecordExporter(self.label_map, rng)
        return exporter.export(source, output_spec, split_ratio)
