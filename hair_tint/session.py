import logging
from dataclasses import dataclass
from typing import Optional

from .colors import ColorSpec
from .config import ProcessingConfig
from .errors import StillCaptureFault
from .pipeline import HairColorPipeline
from .segmentation import SegmentationEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureResult:
    before: str
    after: str


class HairColorSession:
    """Engine, camera and pipeline for one camera screen.

    ``camera`` needs ``open()``, ``start_stream()``, ``stop_stream()``,
    ``is_streaming``, ``read(timeout)``, ``take_picture()`` and ``close()``;
    see ``WebcamCamera``.
    """

    def __init__(self, camera, config: Optional[ProcessingConfig] = None,
                 engine: Optional[SegmentationEngine] = None):
        self.config = config or ProcessingConfig()
        self.engine = engine or SegmentationEngine(self.config)
        self.camera = camera
        self.pipeline = HairColorPipeline(self.engine, self.config)
        self.ready = False

    def start(self) -> None:
        """Load the model and start the camera. EngineUnavailable / CameraUnavailable propagate."""
        self.engine.load()
        self.camera.open()
        self.camera.start_stream()
        self.pipeline.start()
        self.ready = True

    def close(self) -> None:
        self.ready = False
        self.pipeline.close()
        try:
            self.camera.close()
        finally:
            self.engine.close()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def color(self) -> ColorSpec:
        return self.pipeline.state.color

    def select_color(self, color: ColorSpec) -> None:
        self.pipeline.select_color(color)

    def pump(self, timeout: float = 0.01) -> Optional[bytes]:
        """Feed the next camera frame (if any) and return the frame to display."""
        if not self.ready:
            return None
        frame = self.camera.read(timeout=timeout)
        if frame is not None:
            self.pipeline.submit_frame(frame)
        else:
            self.pipeline.poll()
        return self.pipeline.latest_frame

    def capture(self) -> CaptureResult:
        """Take a still picture with the selected color applied.

        The preview stream is stopped for the capture and restarted afterwards
        whatever the outcome.
        """
        if not self.ready:
            raise StillCaptureFault("Camera screen is not ready")
        try:
            if self.camera.is_streaming:
                self.camera.stop_stream()
            before = self.camera.take_picture()
            after = self.pipeline.process_still(before, self.color)
            return CaptureResult(before=before, after=after)
        except StillCaptureFault:
            raise
        except Exception as exc:
            raise StillCaptureFault(f"Taking picture failed: {exc}") from exc
        finally:
            if not self.camera.is_streaming:
                try:
                    self.camera.start_stream()
                except Exception:
                    logger.exception("Could not restart the camera stream")
