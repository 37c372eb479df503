"""Document boundary detection on raw pixel data."""

import logging
import time
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from .config import ScannerConfig
from .errors import (
    DetectionTimeout,
    InvalidInputError,
    NoDetectionError,
    PrimitiveFailure,
    ResourceExhaustedError,
)
from .geometry import CornerSet, default_corners, order_corners

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one detection: corners, if any, plus the source size."""

    corners: Optional[CornerSet]
    width: int
    height: int

    @property
    def found(self) -> bool:
        return self.corners is not None

    def require(self) -> CornerSet:
        """Return the corners or raise NoDetectionError."""
        if self.corners is None:
            raise NoDetectionError(f"No document found in {self.width}x{self.height} image")
        return self.corners

    def corners_or_default(self) -> CornerSet:
        """Detected corners, or the full frame when nothing was found."""
        if self.corners is None:
            return default_corners(self.width, self.height)
        return self.corners


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """Validate a raster and return its (width, height)."""
    if not isinstance(image, np.ndarray):
        raise InvalidInputError(f"Expected a numpy image, got {type(image).__name__}")
    if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] not in (1, 3, 4)):
        raise InvalidInputError(f"Unsupported image shape: {image.shape}")
    if image.dtype != np.uint8:
        raise InvalidInputError(f"Expected an 8-bit image, got {image.dtype}")
    height, width = image.shape[:2]
    if width == 0 or height == 0:
        raise InvalidInputError("Image is empty")
    return width, height


class BoundaryDetector:
    """Finds the largest quadrilateral outline in an image.

    The pipeline is grayscale, Gaussian blur, binarization (Otsu threshold or
    Canny edges), contour extraction, then quadrant-based corner ordering of
    the contour with the largest enclosed area. The detector never guesses:
    when no contour resolves to four corners the result is empty and callers
    decide whether to fall back to the full frame.
    """

    def __init__(self, config: Optional[ScannerConfig] = None, **overrides):
        """Initialize the detector.

        Args:
            config: Base settings (defaults to ``ScannerConfig()``).
            **overrides: Individual settings, e.g. ``binarize="canny"``.
        """
        self.config = (config or ScannerConfig()).merged(overrides)

    def detect(self, image: np.ndarray, deadline: Optional[float] = None) -> DetectionResult:
        """Detect the document boundary.

        Args:
            image: BGR, BGRA or grayscale uint8 image.
            deadline: Optional ``time.monotonic()`` instant after which the
                detection is abandoned.

        Returns:
            DetectionResult; ``corners`` is None when nothing was found.

        Raises:
            InvalidInputError: ``image`` is not a usable raster.
            DetectionTimeout: ``deadline`` passed.
            ResourceExhaustedError: a working buffer could not be allocated.
        """
        width, height = image_size(image)
        try:
            corners = self._detect_corners(image, deadline)
        except PrimitiveFailure as exc:
            logger.warning("Detection abandoned: %s", exc)
            corners = None
        except MemoryError as exc:
            raise ResourceExhaustedError(
                f"Out of memory detecting on a {width}x{height} image"
            ) from exc
        return DetectionResult(corners, width, height)

    def _detect_corners(
        self, image: np.ndarray, deadline: Optional[float]
    ) -> Optional[CornerSet]:
        try:
            return self._run_pipeline(image, deadline)
        except cv2.error as exc:
            raise PrimitiveFailure(str(exc)) from exc

    def _run_pipeline(
        self, image: np.ndarray, deadline: Optional[float]
    ) -> Optional[CornerSet]:
        cfg = self.config
        proc, sx, sy = self._downscale(image)
        _check_deadline(deadline, "downscale")

        gray = self._to_gray(proc)
        low, high = int(gray.min()), int(gray.max())
        if high - low < cfg.min_contrast:
            logger.debug("Flat image (intensity %d..%d), nothing to detect", low, high)
            return None

        blurred = cv2.GaussianBlur(gray, (cfg.blur_ksize, cfg.blur_ksize), 0)
        if cfg.binarize == "canny":
            binary, mode = self._edges_canny(blurred), cv2.RETR_EXTERNAL
        else:
            binary, mode = self._threshold_otsu(blurred), cv2.RETR_CCOMP
        _check_deadline(deadline, "binarize")

        contour = self._largest_contour(binary, mode)
        _check_deadline(deadline, "contours")
        if contour is None:
            return None

        points = contour
        if cfg.corner_source == "polygon":
            # Reduced polygon; noisy boundary points collapse onto the dominant corners
            perimeter = cv2.arcLength(contour, True)
            points = cv2.approxPolyDP(contour, cfg.approx_epsilon * perimeter, True)
            if len(points) != 4:
                logger.debug(
                    "Polygon of %d vertices from a %d-point contour", len(points), len(contour)
                )

        corners = order_corners(points)
        if corners is None:
            logger.debug("Contour did not resolve to four corners")
            return None

        if sx != 1.0 or sy != 1.0:
            corners = corners.scaled(sx, sy)
        return corners

    def _downscale(self, image: np.ndarray) -> Tuple[np.ndarray, float, float]:
        """Shrink large frames for speed; returns factors mapping back to full size."""
        max_dim = self.config.max_dimension
        h, w = image.shape[:2]
        if not max_dim or max(h, w) <= max_dim:
            return image, 1.0, 1.0
        scale = max_dim / max(h, w)
        small = cv2.resize(image, None, fx=scale, fy=scale, interpolation=cv2.INTER_AREA)
        sh, sw = small.shape[:2]
        return small, w / sw, h / sh

    @staticmethod
    def _to_gray(image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image
        channels = image.shape[2]
        if channels == 1:
            return image[:, :, 0]
        if channels == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    @staticmethod
    def _threshold_otsu(blurred: np.ndarray) -> np.ndarray:
        _, thresh = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
        return thresh

    def _edges_canny(self, blurred: np.ndarray) -> np.ndarray:
        edges = cv2.Canny(blurred, self.config.canny_low, self.config.canny_high)

        # Close small gaps so the document outline forms one contour
        kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (5, 5))
        return cv2.morphologyEx(edges, cv2.MORPH_CLOSE, kernel)

    def _largest_contour(self, binary: np.ndarray, mode: int) -> Optional[np.ndarray]:
        """Contour with the largest enclosed area; the first one found wins ties."""
        contours, _ = cv2.findContours(binary, mode, cv2.CHAIN_APPROX_SIMPLE)
        if not contours:
            logger.debug("No contours found")
            return None

        min_area = self.config.min_area_ratio * binary.shape[0] * binary.shape[1]
        best, best_area = None, 0.0
        for contour in contours:
            area = cv2.contourArea(contour)
            if area > best_area:
                best, best_area = contour, area

        if best is None or best_area < min_area:
            logger.debug("Largest contour area %.1f below minimum %.1f", best_area, min_area)
            return None
        return best


def _check_deadline(deadline: Optional[float], stage: str):
    if deadline is not None and time.monotonic() > deadline:
        raise DetectionTimeout(f"Detection deadline passed after {stage}")
