"""Export of labeled images to TFRecord training files."""

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from tfrecord import example_pb2
from tfrecord.reader import tfrecord_iterator
from tfrecord.writer import TFRecordWriter

from .annotation_store import AnnotationStore
from .exceptions import MalformedAnnotationError, PartialWriteError
from .label_map import LabelMap
from .models import LabeledImage

logger = logging.getLogger(__name__)

IMAGE_FORMAT = b"jpeg"
PARTIAL_SUFFIX = ".partial"

TRAIN_OUTPUT = "train"
EVAL_OUTPUT = "eval"
SINGLE_OUTPUT = "data"


@dataclass(frozen=True)
class TrainingExample:
    """
    Flattened, normalized form of one labeled image.

    Index ``i`` of every per-object list refers to the same object.
    """

    height: int
    width: int
    filename: bytes
    encoded: bytes = field(repr=False)
    xmins: Tuple[float, ...] = ()
    xmaxs: Tuple[float, ...] = ()
    ymins: Tuple[float, ...] = ()
    ymaxs: Tuple[float, ...] = ()
    class_texts: Tuple[bytes, ...] = ()
    class_labels: Tuple[int, ...] = ()
    image_format: bytes = IMAGE_FORMAT

    @classmethod
    def from_labeled_image(cls, labeled: LabeledImage) -> TrainingExample:
        """
        Build an example, normalizing boxes by the image's own size.

        Raises:
            MalformedAnnotationError: If the recorded image size is not positive
        """
        record = labeled.record
        width = record.image_size.width
        height = record.image_size.height
        if width <= 0 or height <= 0:
            raise MalformedAnnotationError(
                f"Invalid image size {width}x{height} for {record.image_id}",
                details={"image_id": record.image_id},
            )

        normalized = [obj.box.normalized(width, height) for obj in record.objects]
        file_name = record.file_name.encode("utf-8")

        return cls(
            height=height,
            width=width,
            filename=file_name,
            encoded=labeled.data,
            xmins=tuple(box[0] for box in normalized),
            xmaxs=tuple(box[1] for box in normalized),
            ymins=tuple(box[2] for box in normalized),
            ymaxs=tuple(box[3] for box in normalized),
            class_texts=tuple(obj.class_name.encode("utf-8") for obj in record.objects),
            class_labels=tuple(obj.class_id for obj in record.objects),
        )

    def to_features(self) -> Dict[str, Tuple[Any, str]]:
        """Feature dictionary in the form TFRecordWriter.write expects."""
        return {
            "image/height": (self.height, "int"),
            "image/width": (self.width, "int"),
            "image/filename": (self.filename, "byte"),
            "image/source_id": (self.filename, "byte"),
            "image/encoded": (self.encoded, "byte"),
            "image/format": (self.image_format, "byte"),
            "image/object/bbox/xmin": (list(self.xmins), "float"),
            "image/object/bbox/xmax": (list(self.xmaxs), "float"),
            "image/object/bbox/ymin": (list(self.ymins), "float"),
            "image/object/bbox/ymax": (list(self.ymaxs), "float"),
            "image/object/class/text": (list(self.class_texts), "byte"),
            "image/object/class/label": (list(self.class_labels), "int"),
        }


class RandomSplit:
    """
    Independent per-example train/eval assignment.

    Every call draws afresh, so repeated exports over the same input give
    different partitions unless a seeded generator is supplied.
    """

    def __init__(self, ratio: float, rng: Optional[random.Random] = None) -> None:
        """
        Args:
            ratio: Probability of routing an example to the train output
            rng: Random generator, a fresh unseeded one by default
        """
        if not 0.0 < ratio < 1.0:
            raise ValueError(f"Split ratio must be between 0 and 1, got {ratio}")
        self.ratio = ratio
        self.rng = rng or random.Random()

    def assign(self) -> str:
        """Return the output name for the next example."""
        return TRAIN_OUTPUT if self.rng.random() < self.ratio else EVAL_OUTPUT


@dataclass
class OutputSpec:
    """Where record files are written and what they are called."""

    directory: Path
    train_name: str = "train.record"
    eval_name: str = "eval.record"
    single_name: str = "data.record"

    def __post_init__(self) -> None:
        self.directory = Path(self.directory)

    def paths(self, split: bool) -> Dict[str, Path]:
        """Final output paths keyed by output name."""
        if split:
            return {
                TRAIN_OUTPUT: self.directory / self.train_name,
                EVAL_OUTPUT: self.directory / self.eval_name,
            }
        return {SINGLE_OUTPUT: self.directory / self.single_name}


@dataclass
class ExportSummary:
    """Result of an export run."""

    total_count: int = 0
    per_output_counts: Dict[str, int] = field(default_factory=dict)
    output_paths: Dict[str, Path] = field(default_factory=dict)

    def summary(self) -> str:
        """Generate summary string."""
        lines = [f"{self.total_count} images processed"]
        for name, count in self.per_output_counts.items():
            lines.append(f"{count} {name} images -> {self.output_paths.get(name, '')}")
        return "\n".join(lines)


class _RecordOutput:
    """
    One record file being written.

    Examples go to ``<path>.partial``; the file is renamed to its final
    name only when closed as complete.
    """

    def __init__(self, name: str, path: Path) -> None:
        self.name = name
        self.path = path
        self.partial_path = path.with_name(path.name + PARTIAL_SUFFIX)
        self.count = 0
        self._writer: Optional[TFRecordWriter] = TFRecordWriter(str(self.partial_path))

    def write(self, example: TrainingExample) -> None:
        self._writer.write(example.to_features())
        self.count += 1

    def close(self, complete: bool) -> None:
        """Close once; publish under the final name only if complete."""
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        writer.close()

        if complete:
            os.replace(self.partial_path, self.path)
            logger.info(f"Wrote {self.count} examples to {self.path}")
        else:
            logger.warning(
                f"Left incomplete output {self.partial_path} with {self.count} examples"
            )


class RecordExporter:
    """
    Converts an annotation store into TFRecord files.

    The pipeline is strictly sequential: each labeled image is read,
    converted and written before the next one is pulled.
    """

    def __init__(
        self,
        label_map: Optional[LabelMap] = None,
        rng: Optional[random.Random] = None
    ) -> None:
        """
        Initialize the exporter.

        Args:
            label_map: Resolves class ids of annotation documents that lack them
            rng: Random generator for the train/eval split
        """
        self.label_map = label_map
        self.rng = rng

    def export(
        self,
        source_directory: Union[str, Path],
        output_spec: Optional[OutputSpec] = None,
        split_ratio: Optional[float] = None
    ) -> ExportSummary:
        """
        Export every labeled image of a data directory.

        Args:
            source_directory: Data directory holding images/ and annotations/
            output_spec: Output location and names, defaults to the source directory
            split_ratio: Train fraction; None writes a single output

        Returns:
            ExportSummary with per-output counts

        Raises:
            PartialWriteError: If the export stopped early; outputs are
                closed and left under their ``.partial`` names
        """
        source_directory = Path(source_directory)
        output_spec = output_spec or OutputSpec(directory=source_directory)
        splitter = RandomSplit(split_ratio, self.rng) if split_ratio is not None else None

        store = AnnotationStore(source_directory, self.label_map)
        output_spec.directory.mkdir(parents=True, exist_ok=True)
        outputs = self._open_outputs(output_spec.paths(splitter is not None))

        completed = False
        try:
            for labeled in store.stream():
                example = TrainingExample.from_labeled_image(labeled)
                name = splitter.assign() if splitter is not None else SINGLE_OUTPUT
                outputs[name].write(example)
            completed = True
        except Exception as e:
            written = sum(output.count for output in outputs.values())
            logger.error(f"Export aborted after {written} examples: {e}")
            raise PartialWriteError(
                f"Export aborted after {written} examples: {e}",
                written=written,
                per_output_counts={name: output.count for name, output in outputs.items()},
            ) from e
        finally:
            close_error = self._close_outputs(outputs, completed)

        if close_error is not None:
            written = sum(output.count for output in outputs.values())
            raise PartialWriteError(
                f"Export of {written} examples could not be finalized: {close_error}",
                written=written,
                per_output_counts={name: output.count for name, output in outputs.items()},
                details={"unpublished": [
                    str(output.partial_path) for output in outputs.values()
                    if output.partial_path.exists()
                ]},
            ) from close_error

        summary = ExportSummary(
            total_count=sum(output.count for output in outputs.values()),
            per_output_counts={name: output.count for name, output in outputs.items()},
            output_paths={name: output.path for name, output in outputs.items()},
        )
        logger.info(summary.summary())
        return summary

    @staticmethod
    def _close_outputs(
        outputs: Dict[str, _RecordOutput],
        complete: bool
    ) -> Optional[OSError]:
        """Close every output, returning the first failure instead of raising it."""
        first_error: Optional[OSError] = None
        for output in outputs.values():
            try:
                output.close(complete)
            except OSError as e:
                logger.error(f"Error finalizing {output.path}: {e}")
                if first_error is None:
                    first_error = e
        return first_error

    @staticmethod
    def _open_outputs(paths: Dict[str, Path]) -> Dict[str, _RecordOutput]:
        """Open every output before iteration; close already opened ones on failure."""
        outputs: Dict[str, _RecordOutput] = {}
        try:
            for name, path in paths.items():
                outputs[name] = _RecordOutput(name, path)
        except OSError:
            RecordExporter._close_outputs(outputs, complete=False)
            raise
        return outputs


def read_examples(path: Union[str, Path]) -> Iterator[Dict[str, List[Any]]]:
    """
    Read a record file back.

    Yields:
        Dictionaries mapping feature keys to lists of values (ints,
        floats or bytes depending on the feature)
    """
    for raw in tfrecord_iterator(str(path)):
        example = example_pb2.Example()
        example.ParseFromString(bytes(raw))

        features: Dict[str, List[Any]] = {}
        for key, feature in example.features.feature.items():
            kind = feature.WhichOneof("kind")
            features[key] = list(getattr(feature, kind).value) if kind else []
        yield features
