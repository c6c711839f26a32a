"""Shared pytest fixtures: a stand-in TFLite interpreter, YUV frame builders and a fake camera."""

import os
import threading

import cv2
import numpy as np
import pytest

from hair_tint.config import ProcessingConfig
from hair_tint.errors import CameraUnavailable
from hair_tint.frames import Plane, RawFrame
from hair_tint.pipeline import HairColorPipeline
from hair_tint.segmentation import SegmentationEngine


class FakeInterpreter:
    """Same method surface as ``tf.lite.Interpreter`` for a per-pixel classifier.

    Pixels darker than mid-gray score highest on the hair class, brighter ones
    on class 0. ``gate`` (a threading.Event) makes ``invoke`` block until set.
    """

    def __init__(self, size=32, num_classes=6, hair_class=1, input_dtype=np.float32,
                 fail=False, gate=None, output_shape=None):
        self.size = size
        self.num_classes = num_classes
        self.hair_class = hair_class
        self.input_dtype = input_dtype
        self.fail = fail
        self.gate = gate
        self.output_shape = output_shape or (1, size, size, num_classes)
        self.allocations = 0
        self.invocations = 0
        self.last_input = None
        self._output = None

    def allocate_tensors(self):
        self.allocations += 1

    def get_input_details(self):
        return [{
            'name': 'input',
            'index': 0,
            'shape': np.array([1, self.size, self.size, 3], dtype=np.int32),
            'dtype': self.input_dtype,
            'quantization_parameters': {},
        }]

    def get_output_details(self):
        return [{
            'name': 'segment',
            'index': 1,
            'shape': np.array(self.output_shape, dtype=np.int32),
            'dtype': np.float32,
            'quantization_parameters': {},
        }]

    def set_tensor(self, index, value):
        assert index == 0
        self.last_input = np.array(value, copy=True)

    def invoke(self):
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        self.invocations += 1
        if self.fail:
            raise RuntimeError("inference exploded")
        pixels = self.last_input[0].astype(np.float32)
        if self.input_dtype == np.uint8:
            pixels = (pixels - 127.5) / 127.5
        brightness = pixels.mean(axis=-1)
        scores = np.zeros((1, self.size, self.size, self.num_classes), dtype=np.float32)
        scores[0, :, :, 0] = brightness
        scores[0, :, :, self.hair_class] = -brightness
        self._output = scores

    def get_tensor(self, index):
        assert index == 1
        return self._output


class FakeCamera:
    """Camera collaborator double recording stream state during captures."""

    def __init__(self, picture_dir, open_error=None, picture_error=None, picture_color=(40, 40, 40)):
        self.picture_dir = str(picture_dir)
        self.open_error = open_error
        self.picture_error = picture_error
        self.picture_color = picture_color
        self.frames = []
        self.streaming = False
        self.opened = False
        self.closed = False
        self.start_calls = 0
        self.stop_calls = 0
        self.streaming_during_picture = None

    def open(self):
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    @property
    def is_streaming(self):
        return self.streaming

    def start_stream(self):
        if not self.opened:
            raise CameraUnavailable("not open")
        self.start_calls += 1
        self.streaming = True

    def stop_stream(self):
        self.stop_calls += 1
        self.streaming = False

    def read(self, timeout=0.01):
        return self.frames.pop(0) if self.frames else None

    def take_picture(self):
        self.streaming_during_picture = self.streaming
        if self.picture_error is not None:
            raise self.picture_error
        path = os.path.join(self.picture_dir, "picture.jpg")
        image = np.full((60, 80, 3), self.picture_color, dtype=np.uint8)
        cv2.imwrite(path, image)
        return path

    def close(self):
        self.closed = True
        self.streaming = False


def make_yuv_frame(y, u, v, sensor_orientation=0, front_facing=False,
                   row_padding=0, chroma_pixel_stride=1):
    """Build a RawFrame from Y (h, w) and U/V (h/2, w/2) arrays with optional padding."""
    y = np.asarray(y, dtype=np.uint8)
    u = np.asarray(u, dtype=np.uint8)
    v = np.asarray(v, dtype=np.uint8)
    h, w = y.shape
    ch, cw = u.shape

    y_stride = w + row_padding
    y_buf = np.zeros(h * y_stride, dtype=np.uint8)
    for row in range(h):
        y_buf[row * y_stride:row * y_stride + w] = y[row]

    c_stride = cw * chroma_pixel_stride + row_padding
    u_buf = np.zeros(ch * c_stride, dtype=np.uint8)
    v_buf = np.zeros(ch * c_stride, dtype=np.uint8)
    for row in range(ch):
        for col in range(cw):
            u_buf[row * c_stride + col * chroma_pixel_stride] = u[row, col]
            v_buf[row * c_stride + col * chroma_pixel_stride] = v[row, col]

    return RawFrame(
        planes=(
            Plane(y_buf.tobytes(), row_stride=y_stride, pixel_stride=1),
            Plane(u_buf.tobytes(), row_stride=c_stride, pixel_stride=chroma_pixel_stride),
            Plane(v_buf.tobytes(), row_stride=c_stride, pixel_stride=chroma_pixel_stride),
        ),
        width=w,
        height=h,
        sensor_orientation=sensor_orientation,
        front_facing=front_facing,
    )


def flat_frame(width, height, luma, u=128, v=128, **kwargs):
    return make_yuv_frame(
        np.full((height, width), luma),
        np.full((height // 2, width // 2), u),
        np.full((height // 2, width // 2), v),
        **kwargs
    )


def jpeg_bytes(image_rgb, quality=95):
    ok, buffer = cv2.imencode('.jpg', cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR),
                              [cv2.IMWRITE_JPEG_QUALITY, quality])
    assert ok
    return buffer.tobytes()


class FakeClock:
    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def config():
    return ProcessingConfig(mask_blur_radius=0, mask_inclusion_threshold=0.0,
                            model_path="/nonexistent/model.tflite")


@pytest.fixture
def interpreter():
    return FakeInterpreter()


@pytest.fixture
def engine(config, interpreter):
    engine = SegmentationEngine(config)
    engine.load(interpreter=interpreter)
    return engine


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pipeline(engine, config, clock):
    pipeline = HairColorPipeline(engine, config, clock=clock)
    pipeline.start()
    yield pipeline
    pipeline.close()


@pytest.fixture
def gate():
    event = threading.Event()
    yield event
    event.set()
