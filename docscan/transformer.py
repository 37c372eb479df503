"""Perspective transformation for document correction."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

import cv2
import numpy as np

from .config import ScannerConfig
from .detector import image_size
from .errors import InvalidInputError, ResourceExhaustedError
from .geometry import CornerSet, compute_transform, perspective_target_size

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RectifiedImage:
    """A perspective-corrected raster and the corners it was cut from."""

    pixels: np.ndarray
    corners: CornerSet
    matrix: np.ndarray

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]


def _as_corner_set(corners: Any) -> CornerSet:
    if isinstance(corners, CornerSet):
        return corners
    if isinstance(corners, Mapping):
        return CornerSet.from_dict(corners)
    if isinstance(corners, np.ndarray):
        if corners.size % 2:
            raise InvalidInputError(f"Cannot read points from array of shape {corners.shape}")
        pts = list(corners.reshape(-1, 2))
    else:
        pts = list(corners)
    if len(pts) != 4:
        raise InvalidInputError(
            f"Exactly 4 points are required for perspective transformation, got {len(pts)}"
        )
    return CornerSet(tuple(pts))


class PerspectiveTransformer:
    """Applies perspective transformation to flatten a skewed document.

    Corners are used in the order given: index 0 lands on the output's
    top-left, index 1 on its top-right and so on. Nothing is re-sorted, so a
    corner the user dragged keeps the role they gave it.
    """

    def __init__(self, config: Optional[ScannerConfig] = None, **overrides):
        self.config = (config or ScannerConfig()).merged(overrides)

    def compute_output_dimensions(self, corners: Any) -> Tuple[int, int]:
        """Compute output dimensions preserving the document's proportions.

        Args:
            corners: CornerSet or 4 points in TL, TR, BR, BL order.

        Returns:
            Tuple of (width, height) for the output image.

        Raises:
            InvalidInputError: the corners enclose no area.
        """
        width, height = perspective_target_size(_as_corner_set(corners))
        width, height = int(round(width)), int(round(height))
        if width < 1 or height < 1:
            raise InvalidInputError(f"Corners produce an empty {width}x{height} output")
        return width, height

    def transformation_matrix(
        self,
        corners: Any,
        output_size: Optional[Tuple[int, int]] = None,
    ) -> Tuple[np.ndarray, Tuple[int, int]]:
        """Get the perspective transformation matrix without applying it.

        Useful for mapping overlays or applying the same correction to
        several images.

        Args:
            corners: CornerSet or 4 points in TL, TR, BR, BL order.
            output_size: Optional (width, height) for the output.

        Returns:
            Tuple of (3x3 matrix, (width, height)).
        """
        corner_set = _as_corner_set(corners)
        if output_size is None:
            width, height = self.compute_output_dimensions(corner_set)
        else:
            width, height = int(output_size[0]), int(output_size[1])
        matrix = compute_transform(corner_set, width, height)
        return matrix, (width, height)

    def transform(
        self,
        image: np.ndarray,
        corners: Any,
        output_size: Optional[Tuple[int, int]] = None,
    ) -> RectifiedImage:
        """Cut out and flatten the document bounded by ``corners``.

        Resampling is bilinear; source references outside the image are
        filled with ``config.border_value``. The same image and corners
        always produce the same pixels.

        Args:
            image: Source image (BGR, BGRA or grayscale uint8).
            corners: CornerSet or exactly 4 points in TL, TR, BR, BL order.
            output_size: Optional (width, height). If None, dimensions are
                computed from the corners.

        Returns:
            RectifiedImage with the corrected pixels.

        Raises:
            InvalidInputError: wrong corner count, non-finite coordinates,
                zero-area target or degenerate corners.
            ResourceExhaustedError: the output buffer could not be allocated.
        """
        image_size(image)
        corner_set = _as_corner_set(corners)
        matrix, (width, height) = self.transformation_matrix(corner_set, output_size)

        border = self.config.border_value
        if image.ndim == 3 and image.shape[2] == 4:
            border = tuple(border) + (255,)

        try:
            warped = cv2.warpPerspective(
                image, matrix, (width, height),
                flags=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=border,
            )
        except MemoryError as exc:
            raise ResourceExhaustedError(
                f"Out of memory allocating a {width}x{height} output"
            ) from exc

        logger.debug("Rectified %dx%d region to %dx%d", image.shape[1], image.shape[0], width, height)
        return RectifiedImage(warped, corner_set, matrix)


def rectify(image: np.ndarray, corners: Any, config: Optional[ScannerConfig] = None) -> RectifiedImage:
    """Shortcut for ``PerspectiveTransformer(config).transform(image, corners)``."""
    return PerspectiveTransformer(config).transform(image, corners)
