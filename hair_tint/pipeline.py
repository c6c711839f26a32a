"""Frame pipeline: still captures and throttled live preview.

Live preview keeps at most one frame in flight. Conversion runs inline on the
calling (interactive) thread; segmentation and compositing run on a single
background worker fed through a size-1 queue. Frames that arrive while a job
is in flight, or sooner than the configured interval after the last accepted
frame, are dropped instead of queued.
"""

import logging
import os
import queue
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .colors import NATURAL, ColorSpec
from .compositor import composite
from .config import ProcessingConfig
from .errors import EngineUnavailable, FrameConversionFault, PreviewFrameFault, StillCaptureFault
from .frames import RawFrame, convert_frame
from .imaging import downscale_to_limit, encode_jpeg, read_rgb, resize_linear, write_jpeg
from .segmentation import SegmentationEngine

logger = logging.getLogger(__name__)


def apply_hair_color(engine: SegmentationEngine, image_rgb: np.ndarray, color: ColorSpec,
                     config: ProcessingConfig) -> np.ndarray:
    """Segment hair in ``image_rgb`` and recolor it toward ``color``.

    Large images are processed at ``config.max_processing_size`` on the long
    edge and scaled back up at the end.
    """
    if color.is_natural:
        return image_rgb
    processing, was_resized = downscale_to_limit(image_rgb, config.max_processing_size)
    mask = engine.hair_mask(processing)
    result = composite(processing, mask, color, config.mask_inclusion_threshold)
    if was_resized:
        h, w = image_rgb.shape[:2]
        return resize_linear(result, w, h)
    return result


class FrameThrottle:
    """Minimum spacing between accepted preview frames."""

    def __init__(self, interval: float):
        self.interval = float(interval)

    def ready(self, last_accepted: Optional[float], now: float) -> bool:
        # a frame landing exactly on the interval boundary is still too soon
        return last_accepted is None or (now - last_accepted) > self.interval


@dataclass
class SessionState:
    """Mutable per-screen state, touched only by the interactive thread."""
    color: ColorSpec = NATURAL
    latest_frame: Optional[bytes] = None
    in_flight: bool = False
    last_accepted_at: Optional[float] = None


@dataclass(frozen=True)
class PreviewJob:
    image: np.ndarray
    color: ColorSpec


@dataclass(frozen=True)
class PreviewResult:
    color: ColorSpec
    data: Optional[bytes] = None
    error: Optional[BaseException] = None
    elapsed: float = 0.0


class PreviewWorker(threading.Thread):
    """Background thread running segmentation + compositing for preview frames."""

    def __init__(self, engine: SegmentationEngine, config: ProcessingConfig):
        super().__init__(daemon=True, name="hair-tint-preview")
        self.engine = engine
        self.config = config
        self.in_q = queue.Queue(maxsize=1)
        self.out_q = queue.Queue(maxsize=1)
        self.running = True

    def submit(self, job: PreviewJob) -> bool:
        try:
            self.in_q.put_nowait(job)
        except queue.Full:
            return False
        return True

    def render(self, job: PreviewJob) -> bytes:
        rendered = apply_hair_color(self.engine, job.image, job.color, self.config)
        return encode_jpeg(rendered, self.config.output_encoding_quality)

    def run(self):
        while self.running:
            try:
                job = self.in_q.get(timeout=0.1)
            except queue.Empty:
                continue
            ts0 = time.monotonic()
            try:
                result = PreviewResult(job.color, data=self.render(job), elapsed=time.monotonic() - ts0)
            except Exception as exc:
                logger.exception("Preview frame failed")
                result = PreviewResult(job.color, error=exc, elapsed=time.monotonic() - ts0)
            self.out_q.put(result)

    def take_result(self, block: bool = False, timeout: Optional[float] = None) -> Optional[PreviewResult]:
        try:
            return self.out_q.get(block=block, timeout=timeout)
        except queue.Empty:
            return None

    def stop(self):
        self.running = False


class HairColorPipeline:
    """Runs the convert -> segment -> composite sequence for one screen."""

    def __init__(self, engine: SegmentationEngine, config: Optional[ProcessingConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.config = config or engine.config
        self.state = SessionState()
        self.throttle = FrameThrottle(self.config.frame_interval)
        self._clock = clock
        self._worker = None

    # ---------------- lifecycle ----------------
    def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = PreviewWorker(self.engine, self.config)
        self._worker.start()

    def close(self, timeout: float = 1.0) -> None:
        if self._worker is None:
            return
        self._worker.stop()
        self._worker.join(timeout=timeout)
        self._worker = None
        self.state.in_flight = False

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.close()

    # ---------------- selection ----------------
    def select_color(self, color: ColorSpec) -> None:
        """Switch colors. The next frame skips the throttle so the preview updates at once."""
        self.state.color = color
        self.state.latest_frame = None
        self.state.last_accepted_at = None

    @property
    def latest_frame(self) -> Optional[bytes]:
        return self.state.latest_frame

    # ---------------- still capture ----------------
    def process_still(self, image_path: str, color: Optional[ColorSpec] = None,
                      output_dir: Optional[str] = None) -> str:
        """Recolor the picture at ``image_path`` and return the path of the result.

        The natural color returns ``image_path`` unchanged.
        """
        color = self.state.color if color is None else color
        if color.is_natural:
            logger.debug("Natural color selected, skipping still processing")
            return image_path

        image = read_rgb(image_path)
        if image is None:
            raise StillCaptureFault(f"Could not decode image: {image_path}")
        try:
            rendered = apply_hair_color(self.engine, image, color, self.config)
            out_path = os.path.join(output_dir or tempfile.gettempdir(), f"{uuid.uuid4()}.jpg")
            write_jpeg(out_path, rendered, self.config.still_encoding_quality)
        except EngineUnavailable:
            raise
        except Exception as exc:
            raise StillCaptureFault(f"Processing {image_path} failed: {exc}") from exc
        logger.info("Still image processed, saved to %s", out_path)
        return out_path

    # ---------------- live preview ----------------
    def submit_frame(self, frame: RawFrame, now: Optional[float] = None) -> bool:
        """Offer a camera frame for preview processing. Returns True if accepted."""
        self.poll()
        state = self.state

        if state.color.is_natural:
            state.latest_frame = None
            return False
        if state.in_flight:
            return False
        if self._worker is None or not self.engine.is_loaded:
            logger.debug("Preview frame dropped: pipeline not started or engine not loaded")
            return False
        now = self._clock() if now is None else now
        if not self.throttle.ready(state.last_accepted_at, now):
            return False

        state.last_accepted_at = now
        state.in_flight = True
        try:
            image = convert_frame(frame)
        except FrameConversionFault as exc:
            logger.warning("Preview frame conversion failed: %s", exc)
            state.in_flight = False
            return False

        if not self._worker.submit(PreviewJob(image, state.color)):
            state.in_flight = False
            return False
        return True

    def poll(self) -> Optional[bytes]:
        """Collect a finished preview job, if any. Returns the newly displayed bytes."""
        if self._worker is None or not self.state.in_flight:
            return None
        return self._handle_result(self._worker.take_result())

    def wait(self, timeout: Optional[float] = 5.0) -> Optional[bytes]:
        """Block until the in-flight job finishes (or ``timeout`` elapses)."""
        if self._worker is None or not self.state.in_flight:
            return None
        return self._handle_result(self._worker.take_result(block=True, timeout=timeout))

    def _handle_result(self, result: Optional[PreviewResult]) -> Optional[bytes]:
        if result is None:
            return None
        self.state.in_flight = False
        if result.error is not None:
            fault = PreviewFrameFault(str(result.error))
            logger.warning("Keeping previous preview frame: %r", fault)
            return None
        if result.color != self.state.color:
            logger.debug("Discarding preview rendered for %s", result.color.id)
            return None
        self.state.latest_frame = result.data
        logger.debug("Preview frame ready in %.0fms", result.elapsed * 1000.0)
        return result.data
