"""
Interactive corner editor for manual refinement of detected document corners.

Features:
- One pointer model for mouse, touch and pen input
- Hit-testing with a radius that depends on the input kind
- Drag and hover tracking over the four corners
- Display <-> image coordinate conversion with independent X/Y scale

Pointer positions arrive in display pixels and are converted to image pixels
before anything else happens. Corners are only converted back to display
pixels for drawing, which is left to the caller.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from .config import ScannerConfig
from .errors import InvalidInputError
from .geometry import CornerSet, Point, distance

logger = logging.getLogger(__name__)


class PointerPhase(Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    LEAVE = "leave"
    CANCEL = "cancel"


class PointerKind(Enum):
    MOUSE = "mouse"
    TOUCH = "touch"
    PEN = "pen"


class EditorState(Enum):
    IDLE = "idle"
    HOVERING = "hovering"
    DRAGGING = "dragging"


_MOUSE_PHASES = {
    "mousedown": PointerPhase.DOWN,
    "mousemove": PointerPhase.MOVE,
    "mouseup": PointerPhase.UP,
    "mouseleave": PointerPhase.LEAVE,
}

_TOUCH_PHASES = {
    "touchstart": PointerPhase.DOWN,
    "touchmove": PointerPhase.MOVE,
    "touchend": PointerPhase.UP,
    "touchcancel": PointerPhase.CANCEL,
}

_RELEASE_PHASES = (PointerPhase.UP, PointerPhase.LEAVE, PointerPhase.CANCEL)


@dataclass(frozen=True)
class PointerEvent:
    """A pointer sample in display coordinates."""

    x: float
    y: float
    phase: PointerPhase
    kind: PointerKind = PointerKind.MOUSE

    @classmethod
    def from_mouse(
        cls, event_type: str, x: float, y: float, offset: Tuple[float, float] = (0.0, 0.0)
    ) -> "PointerEvent":
        """Build an event from a mouse event name and client position.

        ``offset`` is the top-left of the drawing surface in client space.
        """
        try:
            phase = _MOUSE_PHASES[event_type]
        except KeyError:
            raise InvalidInputError(f"Unknown mouse event: {event_type}") from None
        return cls(x - offset[0], y - offset[1], phase, PointerKind.MOUSE)

    @classmethod
    def from_touch(
        cls,
        event_type: str,
        touches: Sequence[Tuple[float, float]],
        offset: Tuple[float, float] = (0.0, 0.0),
    ) -> "PointerEvent":
        """Build an event from a touch event name and its active touches.

        Only the first touch is tracked. End and cancel events usually carry
        no touches, and their position is never used.
        """
        try:
            phase = _TOUCH_PHASES[event_type]
        except KeyError:
            raise InvalidInputError(f"Unknown touch event: {event_type}") from None
        if touches:
            x, y = touches[0]
        else:
            x, y = math.nan, math.nan
        return cls(x - offset[0], y - offset[1], phase, PointerKind.TOUCH)


class CornerEditor:
    """State machine for dragging the four corners of a CornerSet.

    States are Idle, Hovering(i) and Dragging(i). A pointer-down within the
    hit radius of a corner starts dragging it; moves then place that corner
    at the pointer, leaving the other three untouched. Corners are never
    re-ordered after an edit, even if the quadrilateral stops being convex.
    """

    def __init__(
        self,
        corners: Optional[CornerSet],
        natural_size: Tuple[float, float],
        display_size: Optional[Tuple[float, float]] = None,
        config: Optional[ScannerConfig] = None,
        clamp_to_image: bool = False,
        on_change: Optional[Callable[[CornerSet], None]] = None,
        **overrides,
    ):
        """Initialize the editor.

        Args:
            corners: Starting corners in image coordinates, or None until a
                detection or default is available.
            natural_size: (width, height) of the underlying image.
            display_size: (width, height) the image is shown at; defaults to
                ``natural_size``.
            config: Settings holding the hit radii.
            clamp_to_image: Keep dragged corners inside the image bounds.
            on_change: Called with the new CornerSet after every edit.
            **overrides: Individual settings, e.g. ``touch_hit_radius=40``.
        """
        self.config = (config or ScannerConfig()).merged(overrides)
        self.clamp_to_image = clamp_to_image
        self.on_change = on_change

        self._corners = corners
        self._dragging: Optional[int] = None
        self._hovered: Optional[int] = None
        self._natural = tuple(natural_size)
        self._display = tuple(display_size) if display_size is not None else tuple(natural_size)
        self._scale = (1.0, 1.0)
        self._update_scale()

    # --- state ---

    @property
    def corners(self) -> Optional[CornerSet]:
        return self._corners

    @property
    def dragging_index(self) -> Optional[int]:
        return self._dragging

    @property
    def hovered_index(self) -> Optional[int]:
        return self._hovered

    @property
    def state(self) -> EditorState:
        if self._dragging is not None:
            return EditorState.DRAGGING
        if self._hovered is not None:
            return EditorState.HOVERING
        return EditorState.IDLE

    @property
    def scale(self) -> Tuple[float, float]:
        """Display pixels per image pixel, (x, y)."""
        return self._scale

    def reset(self, corners: Optional[CornerSet]):
        """Replace the corners and drop any drag or hover in progress."""
        self._corners = corners
        self._dragging = None
        self._hovered = None

    # --- coordinate spaces ---

    def set_display_size(self, width: float, height: float):
        self._display = (width, height)
        self._update_scale()

    def set_natural_size(self, width: float, height: float):
        self._natural = (width, height)
        self._update_scale()

    def _update_scale(self):
        (dw, dh), (nw, nh) = self._display, self._natural
        sx = dw / nw if nw else 0.0
        sy = dh / nh if nh else 0.0
        self._scale = (sx, sy)
        if not self._scale_ok():
            logger.debug("Degenerate editor scale %s; pointer events will be ignored", self._scale)

    def _scale_ok(self) -> bool:
        return all(math.isfinite(s) and s > 0 for s in self._scale)

    def to_image(self, x: float, y: float) -> Point:
        """Convert a display position to image coordinates."""
        if not self._scale_ok():
            raise InvalidInputError(f"Cannot convert with scale {self._scale}")
        if not (math.isfinite(x) and math.isfinite(y)):
            raise InvalidInputError(f"Non-finite pointer position: ({x}, {y})")
        sx, sy = self._scale
        return Point(x / sx, y / sy)

    def to_display(self, point: Point) -> Point:
        """Convert an image position to display coordinates."""
        sx, sy = self._scale
        return Point(point[0] * sx, point[1] * sy)

    def corners_for_display(self) -> Optional[CornerSet]:
        if self._corners is None:
            return None
        return self._corners.scaled(*self._scale)

    # --- hit testing ---

    def hit_radius(self, kind: PointerKind = PointerKind.MOUSE) -> float:
        """Hit radius in image pixels; touch contact is coarser than a cursor."""
        if kind is PointerKind.TOUCH:
            return self.config.touch_hit_radius
        return self.config.mouse_hit_radius

    def hit_test(self, point: Point, kind: PointerKind = PointerKind.MOUSE) -> Optional[int]:
        """Index of the first corner within the hit radius of ``point``."""
        if self._corners is None:
            return None
        radius = self.hit_radius(kind)
        for i, corner in enumerate(self._corners):
            if distance(point, corner) < radius:
                return i
        return None

    # --- events ---

    def handle(self, event: PointerEvent) -> bool:
        """Apply one pointer event.

        Returns:
            True when the event moved a corner.
        """
        if event.phase in _RELEASE_PHASES:
            if self._dragging is not None:
                logger.debug("Released corner %d", self._dragging)
            self._dragging = None
            self._hovered = None
            return False

        if self._corners is None:
            logger.debug("Ignoring %s event: no corners to edit", event.phase.value)
            return False

        try:
            pos = self.to_image(event.x, event.y)
        except InvalidInputError as exc:
            logger.debug("Ignoring %s event: %s", event.phase.value, exc)
            return False

        if event.phase is PointerPhase.DOWN:
            index = self.hit_test(pos, event.kind)
            if index is not None:
                self._dragging = index
                self._hovered = None
                logger.debug("Dragging corner %d", index)
            return False

        if self._dragging is not None:
            self.move_corner(self._dragging, pos)
            return True

        self._hovered = self.hit_test(pos, event.kind)
        return False

    def move_corner(self, index: int, point: Point) -> CornerSet:
        """Move one corner to ``point`` (image coordinates) and notify listeners."""
        if self._corners is None:
            raise InvalidInputError("No corners to move")
        x, y = point
        if self.clamp_to_image:
            nw, nh = self._natural
            x = max(0.0, min(float(nw), x))
            y = max(0.0, min(float(nh), y))
        self._corners = self._corners.replace(index, (x, y))
        if self.on_change is not None:
            self.on_change(self._corners)
        return self._corners
