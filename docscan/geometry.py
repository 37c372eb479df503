"""
Corner geometry for document scanning.

Points are ``(x, y)`` pairs in one coordinate space, either image pixels or
display pixels. Nothing here converts between spaces; the corner editor owns
that. A ``CornerSet`` is always laid out clockwise:
[top-left, top-right, bottom-right, bottom-left].
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Tuple

import cv2
import numpy as np

from .errors import InvalidInputError

TOP_LEFT, TOP_RIGHT, BOTTOM_RIGHT, BOTTOM_LEFT = range(4)
CORNER_NAMES = ("topLeft", "topRight", "bottomRight", "bottomLeft")


class Point(NamedTuple):
    x: float
    y: float


def _as_point(value: Any) -> Point:
    try:
        if isinstance(value, Mapping):
            x, y = float(value["x"]), float(value["y"])
        else:
            x, y = float(value[0]), float(value[1])
    except (IndexError, KeyError, TypeError, ValueError) as exc:
        raise InvalidInputError(f"Not an (x, y) point: {value!r}") from exc
    if not (math.isfinite(x) and math.isfinite(y)):
        raise InvalidInputError(f"Non-finite coordinate: ({x}, {y})")
    return Point(x, y)


def _as_array(points: Any) -> np.ndarray:
    """Flatten points (CornerSet, contour array or sequence) to an Nx2 float64 array."""
    if isinstance(points, CornerSet):
        return points.as_array(np.float64)
    if isinstance(points, np.ndarray):
        arr = points.astype(np.float64).reshape(-1, 2)
    else:
        arr = np.array([_as_point(p) for p in points], dtype=np.float64).reshape(-1, 2)
    if not np.isfinite(arr).all():
        raise InvalidInputError("Points contain non-finite coordinates")
    return arr


@dataclass(frozen=True)
class CornerSet:
    """Four document corners in clockwise order starting at the top-left.

    The index of a point encodes its role, so code reading a CornerSet never
    has to re-sort it.
    """

    points: Tuple[Point, Point, Point, Point]

    def __post_init__(self):
        pts = tuple(_as_point(p) for p in self.points)
        if len(pts) != 4:
            raise InvalidInputError(f"Exactly 4 corners are required, got {len(pts)}")
        object.__setattr__(self, "points", pts)

    def __iter__(self):
        return iter(self.points)

    def __len__(self) -> int:
        return 4

    def __getitem__(self, index: int) -> Point:
        return self.points[index]

    @property
    def top_left(self) -> Point:
        return self.points[TOP_LEFT]

    @property
    def top_right(self) -> Point:
        return self.points[TOP_RIGHT]

    @property
    def bottom_right(self) -> Point:
        return self.points[BOTTOM_RIGHT]

    @property
    def bottom_left(self) -> Point:
        return self.points[BOTTOM_LEFT]

    def replace(self, index: int, point: Any) -> "CornerSet":
        """Return a copy with the corner at ``index`` moved to ``point``."""
        if not 0 <= index < 4:
            raise InvalidInputError(f"Corner index out of range: {index}")
        pts = list(self.points)
        pts[index] = _as_point(point)
        return CornerSet(tuple(pts))

    def scaled(self, sx: float, sy: float) -> "CornerSet":
        return CornerSet(tuple(Point(p.x * sx, p.y * sy) for p in self.points))

    def as_array(self, dtype=np.float32) -> np.ndarray:
        """Return the corners as a 4x2 array."""
        return np.array(self.points, dtype=dtype)

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {name: {"x": p.x, "y": p.y} for name, p in zip(CORNER_NAMES, self.points)}

    @classmethod
    def from_array(cls, arr: Any) -> "CornerSet":
        pts = np.asarray(arr, dtype=np.float64)
        if pts.size != 8:
            raise InvalidInputError(f"Exactly 4 corners are required, got {pts.size // 2}")
        return cls(tuple(map(tuple, pts.reshape(4, 2))))

    @classmethod
    def from_dict(cls, edges: Mapping[str, Any]) -> "CornerSet":
        try:
            return cls(tuple(edges[name] for name in CORNER_NAMES))
        except KeyError as exc:
            raise InvalidInputError(f"Missing corner: {exc.args[0]}") from None


def distance(a: Any, b: Any) -> float:
    """Euclidean distance between two points."""
    return math.hypot(float(a[0]) - float(b[0]), float(a[1]) - float(b[1]))


def centroid(points: Any) -> Point:
    """Mean of a point set."""
    arr = _as_array(points)
    if len(arr) == 0:
        raise InvalidInputError("Cannot take the centroid of an empty point set")
    cx, cy = arr.mean(axis=0)
    return Point(float(cx), float(cy))


def bounding_center(points: Any) -> Point:
    """Center of the minimum-area rotated rectangle around ``points``."""
    arr = _as_array(points)
    if len(arr) == 0:
        raise InvalidInputError("Cannot bound an empty point set")
    (cx, cy), _, _ = cv2.minAreaRect(arr.astype(np.float32).reshape(-1, 1, 2))
    return Point(float(cx), float(cy))


def classify_quadrants(points: Any, center: Optional[Any] = None) -> List[Optional[Point]]:
    """
    Pick the most extreme point in each quadrant around ``center``.

    Points strictly left/above the center belong to the top-left quadrant and
    so on; points lying on either center line belong to no quadrant. Within a
    quadrant the point farthest from the center wins, and on an exact tie the
    first one in input order is kept.

    Args:
        points: Unordered points, e.g. a raw contour from ``cv2.findContours``.
        center: Quadrant origin; defaults to ``bounding_center(points)``.

    Returns:
        List of 4 slots in CornerSet order; a slot is None when its quadrant
        holds no point.
    """
    arr = _as_array(points)
    if len(arr) == 0:
        return [None] * 4
    cx, cy = bounding_center(arr) if center is None else _as_point(center)

    x, y = arr[:, 0], arr[:, 1]
    dist = np.hypot(x - cx, y - cy)
    quadrants = (
        (x < cx) & (y < cy),  # top-left
        (x > cx) & (y < cy),  # top-right
        (x > cx) & (y > cy),  # bottom-right
        (x < cx) & (y > cy),  # bottom-left
    )

    slots: List[Optional[Point]] = []
    for mask in quadrants:
        idx = np.flatnonzero(mask)
        if idx.size == 0:
            slots.append(None)
            continue
        # argmax returns the first maximum, which gives the scan-order tie-break
        best = idx[int(np.argmax(dist[idx]))]
        slots.append(Point(float(arr[best, 0]), float(arr[best, 1])))
    return slots


def order_corners(points: Any, center: Optional[Any] = None) -> Optional[CornerSet]:
    """Order an unordered point set into a CornerSet.

    Returns None when any quadrant is empty; an incomplete set is a failed
    detection, never a partial quadrilateral.
    """
    slots = classify_quadrants(points, center)
    if any(p is None for p in slots):
        return None
    return CornerSet(tuple(slots))


def default_corners(width: float, height: float, margin: float = 0.0) -> CornerSet:
    """
    Corners covering the whole frame, used when nothing was detected.

    Args:
        width: Image width
        height: Image height
        margin: Inset from each edge as a fraction of the dimension

    Returns:
        CornerSet in TL, TR, BR, BL order
    """
    mx = width * margin
    my = height * margin
    return CornerSet((
        (mx, my),                    # Top-left
        (width - mx, my),            # Top-right
        (width - mx, height - my),   # Bottom-right
        (mx, height - my),           # Bottom-left
    ))


def polygon_area(points: Any) -> float:
    """Signed shoelace area; positive for clockwise order in image coordinates."""
    arr = _as_array(points)
    x, y = arr[:, 0], arr[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


def perspective_target_size(corners: CornerSet) -> Tuple[float, float]:
    """
    Output size for rectifying ``corners``.

    Each dimension takes the longer of its two opposing edges, the one less
    shortened by perspective.
    """
    tl, tr, br, bl = corners
    width = max(distance(tl, tr), distance(bl, br))
    height = max(distance(tl, bl), distance(tr, br))
    return width, height


def compute_transform(corners: CornerSet, target_w: float, target_h: float) -> np.ndarray:
    """
    Homography mapping ``corners`` onto the rectangle (0,0)-(target_w,target_h).

    Args:
        corners: Source quadrilateral.
        target_w: Target rectangle width.
        target_h: Target rectangle height.

    Returns:
        3x3 float64 projective matrix.

    Raises:
        InvalidInputError: zero-area target or degenerate source corners.
    """
    if not (math.isfinite(target_w) and math.isfinite(target_h)) or target_w <= 0 or target_h <= 0:
        raise InvalidInputError(f"Target size must be positive, got {target_w}x{target_h}")

    if abs(polygon_area(corners)) < 1e-6:
        raise InvalidInputError("Corners enclose no area")

    src = corners.as_array(np.float32)
    dst = np.array([
        [0, 0],
        [target_w, 0],
        [target_w, target_h],
        [0, target_h],
    ], dtype=np.float32)

    try:
        matrix = cv2.getPerspectiveTransform(src, dst)
    except cv2.error as exc:
        raise InvalidInputError(f"Cannot solve homography: {exc}") from exc

    if not np.isfinite(matrix).all() or abs(np.linalg.det(matrix)) < 1e-12:
        raise InvalidInputError("Corners are degenerate; no perspective transform exists")
    return matrix


def apply_transform(matrix: np.ndarray, points: Any) -> np.ndarray:
    """Map points through a 3x3 projective matrix, returning an Nx2 array."""
    arr = _as_array(points)
    mapped = cv2.perspectiveTransform(arr.reshape(-1, 1, 2), np.asarray(matrix, dtype=np.float64))
    return mapped.reshape(-1, 2)
