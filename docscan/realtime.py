"""
Throttled, cancellable document detection over a live frame source.

The loop can be driven two ways: call ``tick()`` once per display refresh
from your own render loop, or ``start()`` a background thread that ticks at
``config.frame_interval``. Either way at most one detection runs at a time,
ticks inside the throttle window or while a detection is running are
skipped (never queued), and only the newest completed detection is kept.
"""

import logging
import threading
import time
from typing import Callable, Optional, Protocol, Tuple

import numpy as np

from .config import ScannerConfig
from .detector import BoundaryDetector, DetectionResult
from .errors import DetectionTimeout, ResourceExhaustedError

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """A live video source, e.g. a camera wrapper."""

    @property
    def resolution(self) -> Tuple[int, int]:
        """Native (width, height); (0, 0) while no frame is available."""
        ...

    def current_frame(self) -> Optional[np.ndarray]:
        """The most recent frame, or None if not ready."""
        ...


class RealtimeDetectionLoop:
    """Repeatedly detects the document in a live frame source.

    Each eligible tick copies the current frame into a reusable buffer, runs
    the detector on it and publishes the result (None when nothing was found
    or the detection failed). Results carry a monotonic tick id and a result
    older than the one already published is dropped.
    """

    def __init__(
        self,
        source: FrameSource,
        detector: Optional[BoundaryDetector] = None,
        config: Optional[ScannerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        offload: bool = False,
        detection_timeout: Optional[float] = None,
        on_result: Optional[Callable[[Optional[DetectionResult]], None]] = None,
        **overrides,
    ):
        """Initialize the loop.

        Args:
            source: Frame source to sample.
            detector: Anything with ``detect(image, deadline=None)``;
                defaults to a BoundaryDetector with the same config.
            config: Settings holding ``throttle_ms`` and ``frame_interval``.
            clock: Seconds-valued monotonic clock used for throttling.
            offload: Run each detection on a worker thread instead of
                inside ``tick()``.
            detection_timeout: Seconds a single detection may take.
            on_result: Called with every published result.
            **overrides: Individual settings, e.g. ``throttle_ms=200``.
        """
        self.config = (config or ScannerConfig()).merged(overrides)
        self.source = source
        self.detector = detector if detector is not None else BoundaryDetector(self.config)
        self.clock = clock
        self.offload = offload
        self.detection_timeout = detection_timeout
        self.on_result = on_result

        self._lock = threading.Lock()
        # Cancellation token of the current run; start() replaces it
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

        self._buffer: Optional[np.ndarray] = None
        self._last_processed: Optional[float] = None
        self._tick_id = 0
        self._published_tick = 0
        self._latest: Optional[DetectionResult] = None
        self._in_flight = False

    # --- observation ---

    @property
    def latest(self) -> Optional[DetectionResult]:
        """Most recently published result."""
        with self._lock:
            return self._latest

    @property
    def latest_tick(self) -> int:
        with self._lock:
            return self._published_tick

    @property
    def is_detecting(self) -> bool:
        with self._lock:
            return self._in_flight

    @property
    def running(self) -> bool:
        return (
            self._thread is not None
            and self._thread.is_alive()
            and not self._stop.is_set()
        )

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    @property
    def buffer_shape(self) -> Optional[Tuple[int, ...]]:
        with self._lock:
            return None if self._buffer is None else self._buffer.shape

    # --- scheduling ---

    def tick(self, now: Optional[float] = None) -> bool:
        """Run one scheduling step.

        Returns:
            True if a detection was started on this tick.
        """
        token = self._stop
        if token.is_set():
            return False
        if now is None:
            now = self.clock()

        with self._lock:
            if self._in_flight:
                return False
            if (
                self._last_processed is not None
                and now - self._last_processed < self.config.min_interval
            ):
                return False

            try:
                width, height = self.source.resolution
                frame = self.source.current_frame() if width and height else None
            except Exception:
                logger.exception("Skipping tick: frame source failed")
                return False
            if frame is None:
                return False

            try:
                snapshot = self._snapshot(frame)
            except ResourceExhaustedError:
                logger.exception("Skipping tick: no buffer for %dx%d frame", width, height)
                return False

            self._last_processed = now
            self._tick_id += 1
            tick_id = self._tick_id
            self._in_flight = True

        deadline = None
        if self.detection_timeout is not None:
            deadline = time.monotonic() + self.detection_timeout

        if self.offload:
            self._worker = threading.Thread(
                target=self._detect,
                args=(tick_id, snapshot, deadline, token),
                name=f"docscan-detect-{tick_id}",
                daemon=True,
            )
            self._worker.start()
        else:
            self._detect(tick_id, snapshot, deadline, token)
        return True

    def _snapshot(self, frame: np.ndarray) -> np.ndarray:
        """Copy ``frame`` into the reusable buffer, reallocating on resolution change."""
        if self._buffer is None or self._buffer.shape != frame.shape or self._buffer.dtype != frame.dtype:
            try:
                self._buffer = np.empty_like(frame)
            except MemoryError as exc:
                self._buffer = None
                raise ResourceExhaustedError(
                    f"Cannot allocate frame buffer of shape {frame.shape}"
                ) from exc
            logger.debug("Allocated frame buffer %s", self._buffer.shape)
        np.copyto(self._buffer, frame)
        return self._buffer

    def _detect(
        self,
        tick_id: int,
        snapshot: np.ndarray,
        deadline: Optional[float],
        token: threading.Event,
    ):
        result = None
        try:
            detection = self.detector.detect(snapshot, deadline=deadline)
            if detection is not None and detection.found:
                result = detection
        except DetectionTimeout as exc:
            logger.warning("Tick %d: %s", tick_id, exc)
        except Exception:
            logger.exception("Detection failed on tick %d", tick_id)

        try:
            if not token.is_set():
                self.publish(tick_id, result)
        finally:
            with self._lock:
                self._in_flight = False

    def publish(self, tick_id: int, result: Optional[DetectionResult]) -> bool:
        """Record ``result`` as the latest unless a newer tick already published.

        Returns:
            True if the result was accepted.
        """
        with self._lock:
            if tick_id <= self._published_tick:
                logger.warning(
                    "Dropping stale result from tick %d (already at %d)",
                    tick_id, self._published_tick,
                )
                return False
            self._published_tick = tick_id
            self._latest = result

        if self.on_result is not None:
            self.on_result(result)
        return True

    # --- lifecycle ---

    def start(self):
        """Tick on a background thread until ``stop()``.

        If a previous run is still finishing its last tick after a timed-out
        ``stop()``, this waits for it so only one loop thread is ever alive.
        """
        if self.running:
            return
        previous = self._thread
        if previous is not None and previous.is_alive():
            logger.info("Waiting for the previous detection run to finish")
            previous.join()

        token = threading.Event()
        self._stop = token
        self._thread = threading.Thread(
            target=self._run, args=(token,), name="docscan-realtime", daemon=True
        )
        self._thread.start()

    def _run(self, token: threading.Event):
        logger.info("Real-time detection started (every %.0f ms at most)", self.config.throttle_ms)
        while not token.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Detection tick failed")
            token.wait(self.config.frame_interval)
        logger.info("Real-time detection stopped")

    def stop(self, timeout: Optional[float] = 1.0):
        """Cancel further ticks, wait for running work and release the frame buffer."""
        self._stop.set()
        current = threading.current_thread()
        for thread in (self._thread, self._worker):
            if thread is not None and thread is not current:
                thread.join(timeout)
        # A thread that outlived the join stays referenced so start() can wait for it
        if self._thread is not None and not self._thread.is_alive():
            self._thread = None
        if self._worker is not None and not self._worker.is_alive():
            self._worker = None
        with self._lock:
            self._buffer = None

    def __enter__(self) -> "RealtimeDetectionLoop":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
