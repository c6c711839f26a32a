"""Soft-light recoloring of masked hair pixels."""

import numpy as np

from .colors import ColorSpec


def soft_light(base, target):
    """Per-channel soft-light blend of ``base`` toward ``target`` (both 0..255).

    Dark base values are darkened multiplicatively, light ones are lightened
    with a screen-like curve.
    """
    base = np.asarray(base, dtype=np.float32)
    target = np.asarray(target, dtype=np.float32)
    dark = 2.0 * base * target / 255.0
    light = 255.0 - 2.0 * (255.0 - base) * (255.0 - target) / 255.0
    return np.where(base < 128.0, dark, light)


def composite(original: np.ndarray, mask: np.ndarray, color: ColorSpec,
              threshold: float = 0.0) -> np.ndarray:
    """Blend ``color`` into the pixels of ``original`` selected by ``mask``.

    ``mask`` is a (H, W) uint8 confidence map. Pixels whose alpha (mask / 255)
    is at or below ``threshold`` are copied through unchanged; the rest use
    sqrt(alpha) as blend weight so faint edge pixels still pick up the color.
    An alpha channel, if present, is carried over untouched.
    """
    if color.is_natural:
        raise ValueError("Natural color leaves the image unchanged; skip compositing")
    if mask.shape[:2] != original.shape[:2]:
        raise ValueError(f"Mask size {mask.shape[:2]} does not match image size {original.shape[:2]}")

    alpha = mask.astype(np.float32) / 255.0
    selected = alpha > threshold
    out = original.copy()
    if not selected.any():
        return out

    weight = np.sqrt(alpha[selected])[:, None]
    base = original[..., :3][selected].astype(np.float32)
    blended = soft_light(base, np.asarray(color.rgb, dtype=np.float32)[None, :])
    mixed = blended * weight + base * (1.0 - weight)
    out[..., :3][selected] = np.clip(np.floor(mixed + 0.5), 0, 255).astype(np.uint8)
    return out
