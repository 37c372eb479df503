"""Document boundary detection, corner editing and perspective correction."""

from .config import ScannerConfig, configure_logging
from .detector import BoundaryDetector, DetectionResult
from .editor import CornerEditor, EditorState, PointerEvent, PointerKind, PointerPhase
from .errors import (
    DetectionTimeout,
    InvalidInputError,
    NoDetectionError,
    PrimitiveFailure,
    ResourceExhaustedError,
    ScannerError,
)
from .geometry import (
    CornerSet,
    Point,
    compute_transform,
    default_corners,
    distance,
    order_corners,
    perspective_target_size,
)
from .image_processing import decode_image, encode_image, load_image, scan_image, to_data_url
from .realtime import FrameSource, RealtimeDetectionLoop
from .transformer import PerspectiveTransformer, RectifiedImage, rectify

__all__ = [
    "BoundaryDetector",
    "CornerEditor",
    "CornerSet",
    "DetectionResult",
    "DetectionTimeout",
    "EditorState",
    "FrameSource",
    "InvalidInputError",
    "NoDetectionError",
    "PerspectiveTransformer",
    "Point",
    "PointerEvent",
    "PointerKind",
    "PointerPhase",
    "PrimitiveFailure",
    "RealtimeDetectionLoop",
    "RectifiedImage",
    "ResourceExhaustedError",
    "ScannerConfig",
    "ScannerError",
    "compute_transform",
    "configure_logging",
    "decode_image",
    "default_corners",
    "distance",
    "encode_image",
    "load_image",
    "order_corners",
    "perspective_target_size",
    "rectify",
    "scan_image",
    "to_data_url",
]
