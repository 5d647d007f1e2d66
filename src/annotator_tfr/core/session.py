"""Interactive per-image labeling state machine."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from PyQt6.QtCore import QPointF
from PyQt6.QtGui import QColor

from .exceptions import SessionStateError, UnknownClassIdError
from .label_map import LabelMap
from .models import AnnotationRecord, BoundingBox, LabeledObject, RawImage

logger = logging.getLogger(__name__)

# The colors used to differentiate between classes
CLASS_COLORS = [
    "#e41a1c", "#4daf4a", "#984ea3", "#ff7f00",
    "#ffff33", "#a65628", "#377eb8", "#f781bf",
]

GUIDE_COLOR = "#fdab1c"

CANCEL_KEY = "Escape"
COMMIT_KEY = "Enter"


def class_color(class_id: int) -> QColor:
    """Color used to draw objects of a class."""
    return QColor(CLASS_COLORS[(class_id - 1) % len(CLASS_COLORS)])


class SessionState(str, Enum):
    """State of a labeling session."""

    IDLE = "idle"
    PLACING_FIRST_CORNER = "placing_first_corner"
    PLACING_SECOND_CORNER = "placing_second_corner"
    COMMITTED = "committed"


class PointerButton(str, Enum):
    """Pointer button of a press event."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


@dataclass(frozen=True)
class PointerDown:
    """Pointer pressed at an image coordinate."""

    point: QPointF
    button: PointerButton = PointerButton.PRIMARY


@dataclass(frozen=True)
class PointerMove:
    """Pointer moved to an image coordinate."""

    point: QPointF


@dataclass(frozen=True)
class KeyPress:
    """Key pressed, named like ``"Enter"``, ``"Escape"`` or ``"3"``."""

    key: str


InputEvent = Union[PointerDown, PointerMove, KeyPress]


@dataclass(frozen=True)
class GuideLines:
    """Cross-hair through the pointer spanning the whole image."""

    point: QPointF
    color: QColor


@dataclass(frozen=True)
class RubberBand:
    """Box being placed, from the first corner to the pointer."""

    box: BoundingBox
    color: QColor


@dataclass(frozen=True)
class ObjectOutline:
    """A committed object."""

    index: int
    obj: LabeledObject
    color: QColor


DrawIntent = Union[GuideLines, RubberBand, ObjectOutline]


class LabelingSession:
    """
    Labeling of a single image.

    Two pointer presses place the corners of a box, which is stored with
    the class selected at that moment. The secondary button or Escape
    abandons a half-placed box. Enter (or :meth:`commit`) freezes the
    object list into an AnnotationRecord and ends the session.

    Input handlers return the draw intents the view should render.
    """

    def __init__(
        self,
        image: RawImage,
        label_map: LabelMap,
        active_class_id: Optional[int] = None
    ) -> None:
        """
        Initialize a session.

        Args:
            image: Image being labeled
            label_map: Classes allowed in this session
            active_class_id: Initially selected class, defaults to the first
        """
        self.image = image
        self.label_map = label_map
        self.state = SessionState.IDLE
        self.objects: List[LabeledObject] = []
        self.record: Optional[AnnotationRecord] = None

        self._first_corner: Optional[QPointF] = None
        self._pointer: Optional[QPointF] = None
        self.active_class_id: Optional[int] = None

        if active_class_id is None and len(label_map):
            active_class_id = next(iter(label_map))
        if active_class_id is not None:
            self.select_class(active_class_id)

    @property
    def is_committed(self) -> bool:
        return self.state == SessionState.COMMITTED

    def _ensure_open(self) -> None:
        if self.is_committed:
            raise SessionStateError(
                f"Session for image {self.image.id} is already committed",
                {"image_id": self.image.id},
            )

    def _clamp(self, point: QPointF) -> QPointF:
        """Keep a point inside the image."""
        return QPointF(
            max(0.0, min(point.x(), float(self.image.width))),
            max(0.0, min(point.y(), float(self.image.height))),
        )

    # === Class selection ===

    def select_class(self, class_id: int) -> bool:
        """
        Make a class active for the next boxes.

        Returns:
            True if the class exists in the label map and was selected
        """
        self._ensure_open()
        if self.label_map.lookup(class_id) is None:
            logger.warning(f"Class id {class_id} is not in the label map")
            return False
        self.active_class_id = class_id
        return True

    # === Transitions ===

    def place_corner(self, point: QPointF) -> Optional[LabeledObject]:
        """
        Place the next box corner.

        Returns:
            The committed object when this was the second corner, else None

        Raises:
            UnknownClassIdError: If no known class is active when the box
                would be committed; the first corner stays placed
        """
        self._ensure_open()
        point = self._clamp(point)

        if self.state != SessionState.PLACING_SECOND_CORNER:
            self._first_corner = point
            self.state = SessionState.PLACING_SECOND_CORNER
            return None

        class_name = (
            self.label_map.lookup(self.active_class_id)
            if self.active_class_id is not None else None
        )
        if class_name is None:
            raise UnknownClassIdError(
                "No known class selected for the box", class_id=self.active_class_id
            )

        obj = LabeledObject(
            box=BoundingBox.from_corners(self._first_corner, point),
            class_name=class_name,
            class_id=self.active_class_id,
        )
        self.objects.append(obj)
        self._first_corner = None
        self.state = SessionState.IDLE
        logger.debug(f"Added {class_name} box {obj.box} to image {self.image.id}")
        return obj

    def cancel_placement(self) -> None:
        """Abandon a half-placed box without committing it."""
        self._ensure_open()
        if self.state == SessionState.PLACING_SECOND_CORNER:
            self._first_corner = None
            self.state = SessionState.PLACING_FIRST_CORNER

    def clear_all(self) -> None:
        """Remove every object of this image."""
        self._ensure_open()
        self.objects.clear()

    def remove_object(self, index: int) -> Optional[LabeledObject]:
        """Remove and return an object by index."""
        self._ensure_open()
        if 0 <= index < len(self.objects):
            return self.objects.pop(index)
        return None

    def commit(self) -> AnnotationRecord:
        """
        Freeze the objects into an AnnotationRecord and end the session.

        Raises:
            UnknownClassIdError: If an object's class id is not in the label map
            SessionStateError: If the session was already committed
        """
        self._ensure_open()

        for obj in self.objects:
            if obj.class_id not in self.label_map:
                raise UnknownClassIdError(
                    f"Object '{obj.class_name}' uses unknown class id {obj.class_id}",
                    class_id=obj.class_id,
                )

        self.record = AnnotationRecord(
            image_id=self.image.id,
            image_size=self.image.size,
            objects=tuple(self.objects),
        )
        self._first_corner = None
        self.state = SessionState.COMMITTED
        logger.info(f"Committed {len(self.objects)} objects for image {self.image.id}")
        return self.record

    # === Event handling ===

    def handle(self, event: InputEvent) -> List[DrawIntent]:
        """
        Apply an input event.

        Args:
            event: Pointer or key event in image coordinates

        Returns:
            Draw intents describing the new view
        """
        if isinstance(event, PointerMove):
            self._pointer = self._clamp(event.point)
        elif isinstance(event, PointerDown):
            self._pointer = self._clamp(event.point)
            if event.button == PointerButton.SECONDARY:
                self.cancel_placement()
            else:
                self.place_corner(event.point)
        elif isinstance(event, KeyPress):
            self._handle_key(event.key)

        return self.draw_intents()

    def _handle_key(self, key: str) -> None:
        if key == CANCEL_KEY:
            self.cancel_placement()
        elif key == COMMIT_KEY:
            self.commit()
        elif len(key) == 1 and "1" <= key <= "9":
            # Hotkeys switch between the first nine classes
            if int(key) in self.label_map:
                self.select_class(int(key))

    def draw_intents(self) -> List[DrawIntent]:
        """Shapes to render for the current state."""
        intents: List[DrawIntent] = [
            ObjectOutline(index=i, obj=obj, color=class_color(obj.class_id))
            for i, obj in enumerate(self.objects)
        ]

        if self.is_committed or self._pointer is None:
            return intents

        guide_color = QColor(GUIDE_COLOR)
        if self.state == SessionState.PLACING_SECOND_CORNER and self._first_corner is not None:
            intents.append(RubberBand(
                box=BoundingBox.from_corners(self._first_corner, self._pointer),
                color=guide_color,
            ))
        intents.append(GuideLines(point=self._pointer, color=guide_color))
        return intents
