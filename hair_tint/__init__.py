"""Virtual hair color preview: YUV frame conversion, TFLite hair segmentation
and soft-light recoloring for still captures and throttled live preview."""

from .colors import HAIR_COLORS, NATURAL, ColorSpec, find_color, parse_color
from .compositor import composite, soft_light
from .config import ProcessingConfig
from .errors import (
    CameraUnavailable,
    EngineUnavailable,
    FrameConversionFault,
    HairTintError,
    PreviewFrameFault,
    StillCaptureFault,
)
from .frames import Plane, RawFrame, bgr_to_raw_frame, convert_frame
from .pipeline import HairColorPipeline, apply_hair_color
from .segmentation import SegmentationEngine
from .session import CaptureResult, HairColorSession

__version__ = "0.1.0"
