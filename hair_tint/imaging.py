"""OpenCV helpers for RGB rasters and single-channel masks."""

from typing import Optional, Tuple

import cv2
import numpy as np

cv2.setUseOptimized(True)


def fit_within(width: int, height: int, max_size: int) -> Tuple[int, int]:
    """Aspect-preserving size whose long edge is ``max_size``."""
    if width > height:
        return max_size, max(1, int(round(height * max_size / float(width))))
    return max(1, int(round(width * max_size / float(height)))), max_size


def downscale_to_limit(image: np.ndarray, max_size: int) -> Tuple[np.ndarray, bool]:
    """Shrink ``image`` with area averaging when either edge exceeds ``max_size``.

    Returns the (possibly) resized image and whether a resize happened.
    """
    h, w = image.shape[:2]
    if w <= max_size and h <= max_size:
        return image, False
    new_w, new_h = fit_within(w, h, max_size)
    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA), True


def resize_area(image: np.ndarray, width: int, height: int) -> np.ndarray:
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)


def resize_linear(image: np.ndarray, width: int, height: int) -> np.ndarray:
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_LINEAR)


def blur_mask(mask: np.ndarray, radius: int) -> np.ndarray:
    """Gaussian blur with a (2r+1) square kernel. Radius 0 returns the mask unchanged."""
    if radius <= 0:
        return mask
    k = 2 * int(radius) + 1
    sigma = max(0.5, radius * 2.0 / 3.0)
    return cv2.GaussianBlur(mask, (k, k), sigma)


def _to_bgr(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_RGBA2BGR)
    return cv2.cvtColor(image, cv2.COLOR_RGB2BGR)


def encode_jpeg(image_rgb: np.ndarray, quality: int) -> bytes:
    encode_params = [cv2.IMWRITE_JPEG_QUALITY, int(quality)]
    ok, buffer = cv2.imencode('.jpg', _to_bgr(image_rgb), encode_params)
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


def write_jpeg(path: str, image_rgb: np.ndarray, quality: int) -> str:
    if not cv2.imwrite(path, _to_bgr(image_rgb), [cv2.IMWRITE_JPEG_QUALITY, int(quality)]):
        raise OSError(f"Could not write image to {path}")
    return path


def decode_rgb(data: bytes) -> Optional[np.ndarray]:
    """Decode compressed image bytes to RGB, or None when they are not an image."""
    nparr = np.frombuffer(data, np.uint8)
    if nparr.size == 0:
        return None
    image_bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if image_bgr is None:
        return None
    return cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGB)


def read_rgb(path: str) -> Optional[np.ndarray]:
    image_bgr = cv2.imread(path, cv2.IMREAD_COLOR)
    if image_bgr is None:
        return None
    return cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGB)
