"""Tests for the labeling session state machine."""

from pathlib import Path

import pytest
from PyQt6.QtCore import QPointF
from PyQt6.QtGui import QColor

from annotator_tfr.core.exceptions import SessionStateError, UnknownClassIdError
from annotator_tfr.core.label_map import LabelMap
from annotator_tfr.core.models import BoundingBox, RawImage
from annotator_tfr.core.session import (
    GuideLines,
    KeyPress,
    LabelingSession,
    ObjectOutline,
    PointerButton,
    PointerDown,
    PointerMove,
    RubberBand,
    SessionState,
    class_color,
)


@pytest.fixture
def image():
    """A 200x400 image."""
    return RawImage(
        id="00000042",
        source_path=Path("photo.jpg"),
        data=b"jpeg",
        width=200,
        height=400,
    )


@pytest.fixture
def session(image, label_map):
    """A fresh session with the sample label map."""
    return LabelingSession(image, label_map)


class TestLabelingSession:
    """Tests for LabelingSession transitions."""

    def test_initial_state(self, session):
        """Test a new session is idle with the first class active."""
        assert session.state == SessionState.IDLE
        assert session.objects == []
        assert session.active_class_id == 1

    def test_two_corners_commit_box(self, session):
        """Test placing two corners adds an ordered box."""
        assert session.place_corner(QPointF(110, 220)) is None
        assert session.state == SessionState.PLACING_SECOND_CORNER

        obj = session.place_corner(QPointF(10, 20))

        assert session.state == SessionState.IDLE
        assert obj.box == BoundingBox(10, 20, 110, 220)
        assert obj.class_name == "cup"
        assert obj.class_id == 1
        assert session.objects == [obj]

    def test_cancel_placement(self, session):
        """Test cancelling drops the first corner without a box."""
        session.place_corner(QPointF(10, 10))
        session.cancel_placement()

        assert session.state == SessionState.PLACING_FIRST_CORNER
        assert session.objects == []

        # The next press starts a new box
        session.place_corner(QPointF(50, 50))
        session.place_corner(QPointF(60, 70))
        assert session.objects[0].box == BoundingBox(50, 50, 60, 70)

    def test_cancel_when_idle_is_noop(self, session):
        """Test cancelling without a first corner changes nothing."""
        session.cancel_placement()
        assert session.state == SessionState.IDLE

    def test_class_captured_by_value(self, session):
        """Test changing the selection later does not alter committed boxes."""
        session.place_corner(QPointF(0, 0))
        first = session.place_corner(QPointF(10, 10))

        assert session.select_class(2) is True
        session.place_corner(QPointF(20, 20))
        second = session.place_corner(QPointF(30, 30))

        assert (first.class_id, first.class_name) == (1, "cup")
        assert (second.class_id, second.class_name) == (2, "bottle")

    def test_select_unknown_class(self, session):
        """Test unknown class ids are not selectable."""
        assert session.select_class(9) is False
        assert session.active_class_id == 1

    def test_no_active_class(self, image):
        """Test a box cannot be committed without a known class."""
        session = LabelingSession(image, LabelMap({}))
        session.place_corner(QPointF(0, 0))

        with pytest.raises(UnknownClassIdError):
            session.place_corner(QPointF(10, 10))
        assert session.objects == []

    def test_corners_clamped_to_image(self, session):
        """Test corners outside the image are clamped to its bounds."""
        session.place_corner(QPointF(-5, -5))
        obj = session.place_corner(QPointF(500, 500))
        assert obj.box == BoundingBox(0, 0, 200, 400)

    def test_clear_all(self, session):
        """Test clearing removes every object."""
        for offset in (0, 50):
            session.place_corner(QPointF(offset, offset))
            session.place_corner(QPointF(offset + 10, offset + 10))

        session.clear_all()
        assert session.objects == []

    def test_remove_object(self, session):
        """Test removing a single object by index."""
        session.place_corner(QPointF(0, 0))
        first = session.place_corner(QPointF(10, 10))
        session.place_corner(QPointF(20, 20))
        second = session.place_corner(QPointF(30, 30))

        assert session.remove_object(0) == first
        assert session.remove_object(5) is None
        assert session.objects == [second]

    def test_commit(self, session):
        """Test committing freezes the objects into a record."""
        session.place_corner(QPointF(10, 20))
        session.place_corner(QPointF(110, 220))

        record = session.commit()

        assert session.state == SessionState.COMMITTED
        assert record.image_id == "00000042"
        assert record.image_size.width == 200
        assert record.image_size.height == 400
        assert record.image_size.depth == 3
        assert record.objects == tuple(session.objects)

    def test_commit_twice_rejected(self, session):
        """Test a session has exactly one commit."""
        session.commit()
        with pytest.raises(SessionStateError):
            session.commit()

    def test_mutation_after_commit_rejected(self, session):
        """Test no mutation is possible after commit."""
        session.commit()
        with pytest.raises(SessionStateError):
            session.place_corner(QPointF(1, 1))
        with pytest.raises(SessionStateError):
            session.clear_all()
        with pytest.raises(SessionStateError):
            session.cancel_placement()

    def test_commit_checks_class_ids(self, session, image):
        """Test commit rejects objects whose class is not in the label map."""
        session.place_corner(QPointF(0, 0))
        session.place_corner(QPointF(10, 10))
        session.label_map = LabelMap({2: "bottle"})

        with pytest.raises(UnknownClassIdError) as exc_info:
            session.commit()

        assert exc_info.value.class_id == 1
        assert session.record is None
        assert session.state != SessionState.COMMITTED


class TestSessionEvents:
    """Tests for event handling and draw intents."""

    def test_pointer_events_place_box(self, session):
        """Test primary presses place corners."""
        session.handle(PointerDown(QPointF(10, 20)))
        session.handle(PointerDown(QPointF(110, 220)))
        assert session.objects[0].box == BoundingBox(10, 20, 110, 220)

    def test_secondary_button_cancels(self, session):
        """Test the secondary button cancels placement."""
        session.handle(PointerDown(QPointF(10, 20)))
        session.handle(PointerDown(QPointF(50, 50), PointerButton.SECONDARY))
        assert session.state == SessionState.PLACING_FIRST_CORNER
        assert session.objects == []

    def test_escape_cancels(self, session):
        """Test Escape cancels placement."""
        session.handle(PointerDown(QPointF(10, 20)))
        session.handle(KeyPress("Escape"))
        assert session.state == SessionState.PLACING_FIRST_CORNER

    def test_enter_commits(self, session):
        """Test Enter commits the session."""
        session.handle(KeyPress("Enter"))
        assert session.is_committed
        assert session.record is not None

    def test_digit_selects_class(self, session):
        """Test digit keys switch between known classes."""
        session.handle(KeyPress("2"))
        assert session.active_class_id == 2

        session.handle(KeyPress("7"))
        assert session.active_class_id == 2

    def test_move_draws_guides(self, session):
        """Test moving the pointer draws cross-hair guides."""
        intents = session.handle(PointerMove(QPointF(30, 40)))
        assert len(intents) == 1
        assert isinstance(intents[0], GuideLines)
        assert intents[0].point == QPointF(30, 40)

    def test_rubber_band_while_placing(self, session):
        """Test a rubber band follows the pointer after the first corner."""
        session.handle(PointerDown(QPointF(100, 100)))
        intents = session.handle(PointerMove(QPointF(50, 150)))

        bands = [intent for intent in intents if isinstance(intent, RubberBand)]
        assert len(bands) == 1
        assert bands[0].box == BoundingBox(50, 100, 100, 150)

    def test_outlines_use_class_colors(self, session):
        """Test committed objects are drawn in their class color."""
        session.handle(PointerDown(QPointF(0, 0)))
        intents = session.handle(PointerDown(QPointF(10, 10)))

        outlines = [intent for intent in intents if isinstance(intent, ObjectOutline)]
        assert len(outlines) == 1
        assert outlines[0].color == QColor("#e41a1c")
        assert not any(isinstance(intent, RubberBand) for intent in intents)

    def test_class_color_cycles(self):
        """Test colors repeat every eight classes."""
        assert class_color(1) == class_color(9)
        assert class_color(1) != class_color(2)
