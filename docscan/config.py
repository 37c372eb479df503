"""
Scanner settings with defaults, dict overrides and environment lookups.
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import InvalidInputError

ENV_PREFIX = "DOCSCAN_"


@dataclass(frozen=True)
class ScannerConfig:
    """Tunable parameters shared by the detector, rectifier, editor and loop."""

    # Boundary detection
    blur_ksize: int = 5
    binarize: str = "otsu"            # "otsu" or "canny"
    canny_low: int = 50
    canny_high: int = 150
    approx_epsilon: float = 0.02      # fraction of contour perimeter
    corner_source: str = "contour"    # "contour" or "polygon"
    max_dimension: Optional[int] = 1500
    min_contrast: int = 8             # gray levels; flatter images have no boundary
    min_area_ratio: float = 0.0

    # Rectification
    border_value: Tuple[int, int, int] = (0, 0, 0)

    # Real-time loop
    throttle_ms: float = 100.0
    frame_interval: float = 1.0 / 60.0

    # Corner editor, in image pixels
    mouse_hit_radius: float = 20.0
    touch_hit_radius: float = 35.0

    log_level: str = "WARNING"

    def __post_init__(self):
        if self.binarize not in ("otsu", "canny"):
            raise InvalidInputError(f"Unknown binarize method: {self.binarize!r}")
        if self.corner_source not in ("contour", "polygon"):
            raise InvalidInputError(f"Unknown corner source: {self.corner_source!r}")
        if self.blur_ksize < 1 or self.blur_ksize % 2 == 0:
            raise InvalidInputError("blur_ksize must be a positive odd number")
        if self.throttle_ms < 0:
            raise InvalidInputError("throttle_ms must not be negative")
        if self.mouse_hit_radius <= 0 or self.touch_hit_radius <= 0:
            raise InvalidInputError("Hit radii must be positive")

    @property
    def min_interval(self) -> float:
        """Throttle floor in seconds."""
        return self.throttle_ms / 1000.0

    def merged(self, overrides: Optional[Mapping[str, Any]] = None) -> "ScannerConfig":
        """Return a copy with ``overrides`` applied; ``None`` values are skipped."""
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        changes = {}
        for key, value in overrides.items():
            if key not in known:
                raise InvalidInputError(f"Unknown scanner setting: {key}")
            if value is not None:
                changes[key] = value
        return replace(self, **changes)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = ENV_PREFIX,
    ) -> "ScannerConfig":
        """
        Build settings from environment variables.

        Each field maps to ``<prefix><FIELD_NAME>``, e.g. ``DOCSCAN_THROTTLE_MS``.
        ``border_value`` is read as a comma separated triple and
        ``max_dimension`` accepts ``none`` to disable downscaling.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``).
            prefix: Variable name prefix.

        Returns:
            ScannerConfig with any variables found applied over the defaults.
        """
        if environ is None:
            environ = os.environ

        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = environ.get(prefix + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            values[f.name] = _parse_field(f.name, raw.strip(), getattr(cls, f.name))
        return cls(**values)


def _parse_field(name: str, raw: str, default: Any) -> Any:
    try:
        if name == "border_value":
            parts = [int(p) for p in raw.split(",")]
            if len(parts) != 3:
                raise ValueError(raw)
            return tuple(parts)
        if name == "max_dimension":
            return None if raw.lower() == "none" else int(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        return raw
    except ValueError:
        raise InvalidInputError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from None


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the ``docscan`` logger.

    Library modules only create loggers; applications call this once.
    """
    if level is None:
        level = ScannerConfig.from_env().log_level
    logger = logging.getLogger("docscan")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger
