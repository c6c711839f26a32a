import logging

import numpy as np
import pytest

from conftest import flat_frame, make_yuv_frame
from hair_tint.errors import FrameConversionFault
from hair_tint.frames import (
    SHORT_PLANE_WARNINGS,
    Plane,
    RawFrame,
    _warn_short_plane,
    bgr_to_raw_frame,
    convert_frame,
    output_size,
)

WIDTH, HEIGHT = 6, 4


def marker_frame(**kwargs):
    """Black frame with a single white luma sample at source (0, 0)."""
    y = np.zeros((HEIGHT, WIDTH), dtype=np.uint8)
    y[0, 0] = 255
    u = np.full((HEIGHT // 2, WIDTH // 2), 128, dtype=np.uint8)
    v = np.full((HEIGHT // 2, WIDTH // 2), 128, dtype=np.uint8)
    return make_yuv_frame(y, u, v, **kwargs)


def white_pixels(image):
    return [tuple(p) for p in np.argwhere(image.min(axis=-1) == 255)]


def test_neutral_chroma_gives_gray():
    image = convert_frame(flat_frame(WIDTH, HEIGHT, 128))
    assert image.shape == (HEIGHT, WIDTH, 3)
    assert image.dtype == np.uint8
    assert np.all(image == 128)


def test_color_transform_coefficients():
    image = convert_frame(flat_frame(WIDTH, HEIGHT, 100, u=128, v=200))
    # R = 100 + 1.402 * 72, G = 100 - 0.714136 * 72, B = 100
    assert tuple(image[0, 0]) == (201, 49, 100)


def test_channels_are_clamped():
    bright = convert_frame(flat_frame(WIDTH, HEIGHT, 250, u=128, v=255))
    assert bright[0, 0, 0] == 255
    dark = convert_frame(flat_frame(WIDTH, HEIGHT, 10, u=0, v=128))
    assert dark[0, 0, 2] == 0


@pytest.mark.parametrize("orientation, expected", [
    (0, (HEIGHT, WIDTH)),
    (90, (WIDTH, HEIGHT)),
    (180, (HEIGHT, WIDTH)),
    (270, (WIDTH, HEIGHT)),
])
def test_output_dimensions_swap_for_quarter_turns(orientation, expected):
    image = convert_frame(flat_frame(WIDTH, HEIGHT, 60, sensor_orientation=orientation))
    assert image.shape[:2] == expected
    out_w, out_h = output_size(WIDTH, HEIGHT, orientation)
    assert (out_h, out_w) == expected


def test_marker_stays_in_corner_without_rotation():
    assert white_pixels(convert_frame(marker_frame())) == [(0, 0)]


def test_front_camera_mirrors_horizontally():
    image = convert_frame(marker_frame(front_facing=True))
    assert white_pixels(image) == [(0, WIDTH - 1)]


@pytest.mark.parametrize("orientation, front, expected", [
    (90, False, (WIDTH - 1, 0)),
    (180, False, (HEIGHT - 1, WIDTH - 1)),
    (270, False, (0, HEIGHT - 1)),
    (90, True, (0, 0)),
    (180, True, (HEIGHT - 1, 0)),
    (270, True, (WIDTH - 1, HEIGHT - 1)),
])
def test_marker_follows_rotation_and_mirror_rules(orientation, front, expected):
    image = convert_frame(marker_frame(sensor_orientation=orientation, front_facing=front))
    assert white_pixels(image) == [expected]


def test_explicit_arguments_override_frame_metadata():
    frame = marker_frame(sensor_orientation=90, front_facing=True)
    image = convert_frame(frame, sensor_orientation=0, front_facing=False)
    assert white_pixels(image) == [(0, 0)]


def test_padded_and_interleaved_planes_match_tight_layout():
    rng = np.random.default_rng(7)
    y = rng.integers(0, 256, (HEIGHT, WIDTH))
    u = rng.integers(0, 256, (HEIGHT // 2, WIDTH // 2))
    v = rng.integers(0, 256, (HEIGHT // 2, WIDTH // 2))
    tight = convert_frame(make_yuv_frame(y, u, v))
    padded = convert_frame(make_yuv_frame(y, u, v, row_padding=5, chroma_pixel_stride=2))
    np.testing.assert_array_equal(tight, padded)


def test_chroma_is_shared_by_2x2_blocks():
    y = np.full((HEIGHT, WIDTH), 100)
    u = np.full((HEIGHT // 2, WIDTH // 2), 128)
    v = np.full((HEIGHT // 2, WIDTH // 2), 128)
    v[0, 1] = 200
    image = convert_frame(make_yuv_frame(y, u, v))
    assert np.all(image[0:2, 2:4, 0] == 201)
    assert np.all(image[0:2, 0:2, 0] == 100)
    assert np.all(image[2:4, 2:4, 0] == 100)


def test_short_planes_are_padded_not_fatal():
    frame = flat_frame(WIDTH, HEIGHT, 90)
    y_plane = frame.planes[0]
    truncated = RawFrame(
        planes=(Plane(y_plane.data[:WIDTH], y_plane.row_stride), frame.planes[1], frame.planes[2]),
        width=WIDTH,
        height=HEIGHT,
    )
    image = convert_frame(truncated)
    assert image.shape == (HEIGHT, WIDTH, 3)
    assert np.all(image[0] == 90)
    assert np.all(image[1:] == 0)


def test_unsupported_orientation_is_a_conversion_fault():
    with pytest.raises(FrameConversionFault):
        convert_frame(flat_frame(WIDTH, HEIGHT, 60, sensor_orientation=45))


def test_missing_planes_is_a_conversion_fault():
    frame = flat_frame(WIDTH, HEIGHT, 60)
    with pytest.raises(FrameConversionFault):
        convert_frame(RawFrame(planes=frame.planes[:2], width=WIDTH, height=HEIGHT))


def test_bgr_frames_pack_as_full_range_planes():
    bgr = np.full((7, 9, 3), (30, 90, 160), dtype=np.uint8)
    frame = bgr_to_raw_frame(bgr, sensor_orientation=90, front_facing=True)
    assert (frame.width, frame.height) == (8, 6)
    assert frame.planes[0].row_stride == 8
    assert frame.planes[1].row_stride == 4
    assert len(frame.planes[1].data) == 12
    rgb = convert_frame(frame)
    assert rgb.shape == (8, 6, 3)
    np.testing.assert_allclose(rgb[3, 3], (160, 90, 30), atol=4)


def test_half_way_values_round_like_double_precision():
    # G = 111 + 0.344136 * 50 - 0.714136 * 50 sits on a .5 boundary
    image = convert_frame(flat_frame(WIDTH, HEIGHT, 111, u=78, v=178))
    assert image[0, 0, 1] == 92


def test_short_plane_warns_once_per_layout(caplog):
    _warn_short_plane.cache_clear()
    frame = flat_frame(WIDTH, HEIGHT, 90)
    truncated = RawFrame(
        planes=(Plane(frame.planes[0].data[:5], WIDTH), frame.planes[1], frame.planes[2]),
        width=WIDTH,
        height=HEIGHT,
    )
    with caplog.at_level(logging.WARNING, logger="hair_tint.frames"):
        convert_frame(truncated)
        convert_frame(truncated)
    assert len([r for r in caplog.records if "padding with zeros" in r.getMessage()]) == 1


def test_remembered_short_layouts_are_bounded():
    _warn_short_plane.cache_clear()
    y = np.full(32 * 32, 90, dtype=np.uint8)
    chroma = np.full(16 * 16, 128, dtype=np.uint8)
    for size in range(1, 3 * SHORT_PLANE_WARNINGS):
        frame = RawFrame(planes=(Plane(y[:size], 32), Plane(chroma, 16), Plane(chroma, 16)),
                         width=32, height=32)
        convert_frame(frame)
    assert _warn_short_plane.cache_info().currsize <= SHORT_PLANE_WARNINGS
