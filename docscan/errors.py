"""Exceptions raised by the document scanner core."""


class ScannerError(Exception):
    """Base class for all scanner errors."""


class NoDetectionError(ScannerError):
    """No document quadrilateral was found in the image."""


class InvalidInputError(ScannerError, ValueError):
    """Corners, images or settings that cannot be processed as given."""


class PrimitiveFailure(ScannerError):
    """An OpenCV primitive failed while processing an image."""


class ResourceExhaustedError(ScannerError):
    """A buffer could not be allocated for the current operation."""


class DetectionTimeout(ScannerError):
    """Detection did not finish before the caller's deadline."""
