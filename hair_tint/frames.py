"""Camera frame conversion: planar YUV 4:2:0 buffers to upright RGB rasters.

Frames arrive as three byte planes (Y, U, V) with per-plane row and pixel
strides, the way mobile camera stacks and OpenCV's planar YUV layouts deliver them.
Chroma planes are sampled at half resolution in both directions. Strides can
be larger than the visible width (row padding) or larger than one byte per
sample (interleaved UV buffers), so every lookup goes through the plane's own
strides.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from .errors import FrameConversionFault

logger = logging.getLogger(__name__)

SUPPORTED_ORIENTATIONS = (0, 90, 180, 270)

SHORT_PLANE_WARNINGS = 32


@dataclass(frozen=True)
class Plane:
    data: object  # bytes, bytearray, memoryview or uint8 ndarray
    row_stride: int
    pixel_stride: int = 1


@dataclass(frozen=True)
class RawFrame:
    """One camera frame as delivered by the camera collaborator."""
    planes: Sequence[Plane]
    width: int
    height: int
    sensor_orientation: int = 0
    front_facing: bool = False


def output_size(width: int, height: int, sensor_orientation: int) -> Tuple[int, int]:
    """(width, height) of the converted raster."""
    if sensor_orientation in (90, 270):
        return height, width
    return width, height


@lru_cache(maxsize=16)
def _destination_index(width, height, orientation, front_facing):
    """Flat destination offset for every source pixel, in source row-major order."""
    ys, xs = np.indices((height, width), dtype=np.int64)
    rotated = orientation in (90, 270)
    out_w, out_h = output_size(width, height, orientation)

    if orientation == 90:
        dest_x, dest_y = ys, out_h - 1 - xs
    elif orientation == 180:
        dest_x, dest_y = out_w - 1 - xs, out_h - 1 - ys
    elif orientation == 270:
        dest_x, dest_y = out_w - 1 - ys, xs
    else:
        dest_x, dest_y = xs, ys

    # mirror in the output space; the axis depends on whether rotation transposed the image
    if front_facing:
        if rotated:
            dest_y = out_h - 1 - dest_y
        else:
            dest_x = out_w - 1 - dest_x

    index = (dest_y * out_w + dest_x).ravel()
    index.flags.writeable = False
    return index


@lru_cache(maxsize=SHORT_PLANE_WARNINGS)
def _warn_short_plane(label, size, needed):
    # one warning per layout while it stays in the cache
    logger.warning("%s plane holds %d bytes but strides address %d; padding with zeros",
                   label, size, needed)


def _sample_index(width, height, plane, subsample):
    rows = (np.arange(height, dtype=np.int64) // subsample) * plane.row_stride
    cols = (np.arange(width, dtype=np.int64) // subsample) * plane.pixel_stride
    return rows[:, None] + cols[None, :]


def _plane_samples(plane, width, height, subsample, label):
    if isinstance(plane.data, np.ndarray):
        buf = plane.data.reshape(-1)
    else:
        buf = np.frombuffer(plane.data, dtype=np.uint8)
    index = _sample_index(width, height, plane, subsample)
    needed = int(index[-1, -1]) + 1
    if buf.size < needed:
        _warn_short_plane(label, int(buf.size), needed)
        buf = np.concatenate([buf, np.zeros(needed - buf.size, dtype=np.uint8)])
    return buf[index].astype(np.float64)


def convert_frame(frame: RawFrame,
                  sensor_orientation: Optional[int] = None,
                  front_facing: Optional[bool] = None) -> np.ndarray:
    """Convert a YUV 4:2:0 frame to an upright RGB raster of shape (H, W, 3).

    ``sensor_orientation`` and ``front_facing`` default to the values carried
    by the frame. The output width/height are swapped for 90/270 degree sensors,
    and front-facing frames are mirrored so the result matches an unmirrored
    viewfinder.
    """
    orientation = frame.sensor_orientation if sensor_orientation is None else sensor_orientation
    front = frame.front_facing if front_facing is None else front_facing
    if orientation not in SUPPORTED_ORIENTATIONS:
        raise FrameConversionFault(f"Unsupported sensor orientation: {orientation}")
    if len(frame.planes) != 3:
        raise FrameConversionFault(f"Expected 3 planes (Y, U, V), got {len(frame.planes)}")
    width, height = int(frame.width), int(frame.height)
    if width <= 0 or height <= 0:
        raise FrameConversionFault(f"Invalid frame size {width}x{height}")

    plane_y, plane_u, plane_v = frame.planes
    y = _plane_samples(plane_y, width, height, 1, "Y")
    u = _plane_samples(plane_u, width, height, 2, "U") - 128.0
    v = _plane_samples(plane_v, width, height, 2, "V") - 128.0

    rgb = np.empty((height * width, 3), dtype=np.float64)
    rgb[:, 0] = (y + 1.402 * v).ravel()
    rgb[:, 1] = (y - 0.344136 * u - 0.714136 * v).ravel()
    rgb[:, 2] = (y + 1.772 * u).ravel()
    rgb = np.clip(np.floor(rgb + 0.5), 0, 255).astype(np.uint8)

    out_w, out_h = output_size(width, height, orientation)
    out = np.empty((out_h * out_w, 3), dtype=np.uint8)
    out[_destination_index(width, height, orientation, bool(front))] = rgb
    return out.reshape(out_h, out_w, 3)


def bgr_to_raw_frame(frame_bgr: np.ndarray, sensor_orientation: int = 0,
                     front_facing: bool = False) -> RawFrame:
    """Pack an OpenCV BGR frame as full-range 4:2:0 planes (odd edges are cropped)."""
    h, w = frame_bgr.shape[:2]
    h, w = h - h % 2, w - w % 2
    if h == 0 or w == 0:
        raise FrameConversionFault(f"Frame too small for 4:2:0 packing: {frame_bgr.shape}")
    ycrcb = cv2.cvtColor(np.ascontiguousarray(frame_bgr[:h, :w]), cv2.COLOR_BGR2YCrCb)
    # chroma averaged over each 2x2 block
    chroma = cv2.resize(np.ascontiguousarray(ycrcb[..., 1:]), (w // 2, h // 2), interpolation=cv2.INTER_AREA)
    return RawFrame(
        planes=(
            Plane(np.ascontiguousarray(ycrcb[..., 0]).reshape(-1), row_stride=w),
            Plane(np.ascontiguousarray(chroma[..., 1]).reshape(-1), row_stride=w // 2),
            Plane(np.ascontiguousarray(chroma[..., 0]).reshape(-1), row_stride=w // 2),
        ),
        width=w,
        height=h,
        sensor_orientation=sensor_orientation,
        front_facing=front_facing,
    )
