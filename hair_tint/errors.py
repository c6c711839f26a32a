"""Exceptions raised by the hair color pipeline."""


class HairTintError(Exception):
    """Base class for pipeline errors"""


class EngineUnavailable(HairTintError):
    """Segmentation model failed to load or was never loaded"""


class CameraUnavailable(HairTintError):
    """No usable camera device"""


class FrameConversionFault(HairTintError):
    """Camera frame has an unsupported plane layout or orientation"""


class StillCaptureFault(HairTintError):
    """Taking or processing a still picture failed. Safe to retry."""


class PreviewFrameFault(HairTintError):
    """A background preview job failed. Logged, never shown to the user."""
