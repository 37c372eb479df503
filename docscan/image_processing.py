"""
Image conversion helpers at the edges of the scanner: decoding uploads,
EXIF orientation, export encoding and the one-shot scan path.
"""

import base64
import io
import logging
from typing import Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from .detector import BoundaryDetector, DetectionResult
from .errors import InvalidInputError
from .transformer import PerspectiveTransformer, RectifiedImage

logger = logging.getLogger(__name__)

ImageLike = Union[np.ndarray, RectifiedImage]

ORIENTATION_TAG = 0x0112

# EXIF orientation value -> transpose that brings the image upright
_UPRIGHT = {
    2: Image.Transpose.FLIP_LEFT_RIGHT,
    3: Image.Transpose.ROTATE_180,
    4: Image.Transpose.FLIP_TOP_BOTTOM,
    5: Image.Transpose.TRANSPOSE,
    6: Image.Transpose.ROTATE_270,
    7: Image.Transpose.TRANSVERSE,
    8: Image.Transpose.ROTATE_90,
}

_FORMATS = {
    "PNG": ".png",
    "JPEG": ".jpg",
    "JPG": ".jpg",
}


def load_image(path: str) -> np.ndarray:
    """
    Load an image from disk (BGR).
    Raises FileNotFoundError if not found.
    """
    img = cv2.imread(path, cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Could not read image at: {path}")
    return img


def fix_orientation_from_exif(image: Image.Image) -> Image.Image:
    """Return ``image`` turned upright according to its EXIF orientation tag.

    Images without the tag, or already upright, are returned unchanged.
    """
    method = _UPRIGHT.get(image.getexif().get(ORIENTATION_TAG))
    if method is None:
        return image
    logger.debug("Applying EXIF orientation %s", method.name)
    return image.transpose(method)


def pil_to_cv2(image: Image.Image) -> np.ndarray:
    """Convert a PIL image to an OpenCV BGR (or BGRA) array."""
    if image.mode == 'RGBA':
        return cv2.cvtColor(np.array(image), cv2.COLOR_RGBA2BGRA)
    if image.mode != 'RGB':
        image = image.convert('RGB')
    return cv2.cvtColor(np.array(image), cv2.COLOR_RGB2BGR)


def cv2_to_pil(image: np.ndarray) -> Image.Image:
    """Convert an OpenCV BGR/BGRA/gray array to a PIL image."""
    if image.ndim == 2:
        return Image.fromarray(image)
    if image.shape[2] == 4:
        return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA))
    return Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))


def decode_image(data: bytes, fix_orientation: bool = True) -> np.ndarray:
    """
    Decode uploaded image bytes into a BGR array.

    Args:
        data: Encoded image (JPEG, PNG, ...)
        fix_orientation: Apply the EXIF orientation tag first

    Returns:
        BGR (or BGRA for images with alpha) uint8 array
    """
    try:
        pil_image = Image.open(io.BytesIO(data))
        pil_image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidInputError(f"Cannot decode image: {exc}") from exc

    if fix_orientation:
        pil_image = fix_orientation_from_exif(pil_image)
    return pil_to_cv2(pil_image)


def base64_to_cv2(base64_string: str) -> np.ndarray:
    """Convert base64 string (optionally a data URL) to OpenCV image."""
    if base64_string.startswith('data:'):
        base64_string = base64_string.split(',', 1)[1]
    try:
        img_data = base64.b64decode(base64_string)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid base64 image data: {exc}") from exc
    return decode_image(img_data)


def _pixels(image: ImageLike) -> np.ndarray:
    return image.pixels if isinstance(image, RectifiedImage) else image


def encode_image(image: ImageLike, format: str = 'PNG', quality: float = 0.95) -> bytes:
    """
    Encode an image for export.

    Args:
        image: BGR array or RectifiedImage
        format: 'PNG' or 'JPEG'
        quality: JPEG quality in (0, 1]; ignored for PNG

    Returns:
        Encoded bytes
    """
    ext = _FORMATS.get(format.upper())
    if ext is None:
        raise InvalidInputError(f"Unsupported export format: {format}")
    if not 0 < quality <= 1:
        raise InvalidInputError(f"Quality must be in (0, 1], got {quality}")

    if ext == '.jpg':
        params = [cv2.IMWRITE_JPEG_QUALITY, int(round(quality * 100))]
    else:
        params = [cv2.IMWRITE_PNG_COMPRESSION, 3]

    ok, buffer = cv2.imencode(ext, _pixels(image), params)
    if not ok:
        raise InvalidInputError(f"Could not encode image as {format}")
    return buffer.tobytes()


def cv2_to_base64(image: ImageLike, format: str = 'JPEG', quality: float = 0.95) -> str:
    """Convert OpenCV image to base64 string."""
    return base64.b64encode(encode_image(image, format, quality)).decode('utf-8')


def to_data_url(image: ImageLike, format: str = 'PNG', quality: float = 0.95) -> str:
    """Encode an image as a ``data:image/...;base64,`` URL."""
    mime = 'image/png' if format.upper() == 'PNG' else 'image/jpeg'
    return f"data:{mime};base64,{cv2_to_base64(image, format, quality)}"


def scan_image(
    image: np.ndarray,
    detector: Optional[BoundaryDetector] = None,
    transformer: Optional[PerspectiveTransformer] = None,
) -> Tuple[RectifiedImage, DetectionResult]:
    """
    Detect the document once and flatten it.

    Falls back to the full frame when no document is found, so the caller
    always gets an image back.

    Args:
        image: BGR image
        detector: Boundary detector to use (a default one if None)
        transformer: Perspective transformer to use (a default one if None)

    Returns:
        Tuple of (rectified image, detection result)
    """
    detector = detector or BoundaryDetector()
    transformer = transformer or PerspectiveTransformer(detector.config)

    detection = detector.detect(image)
    if not detection.found:
        logger.info("No document found, using the full %dx%d frame", detection.width, detection.height)

    rectified = transformer.transform(image, detection.corners_or_default())
    return rectified, detection
