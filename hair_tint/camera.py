"""OpenCV webcam standing in for the device camera.

Frames are read on a background thread into a size-1 queue (older frames are
dropped) and handed out as 4:2:0 RawFrames tagged with the configured sensor
orientation and lens facing.
"""

import logging
import os
import queue
import tempfile
import threading
import time
import uuid
from typing import Optional

import cv2

from .errors import CameraUnavailable
from .frames import RawFrame, bgr_to_raw_frame

logger = logging.getLogger(__name__)


class WebcamCamera:
    def __init__(self, src=0, width=640, height=480, sensor_orientation=0, front_facing=True,
                 picture_dir: Optional[str] = None):
        self.src = src
        self.width = width
        self.height = height
        self.sensor_orientation = sensor_orientation
        self.front_facing = front_facing
        self.picture_dir = picture_dir or tempfile.gettempdir()
        self.cap = None
        self.q = queue.Queue(maxsize=1)
        self._cap_lock = threading.Lock()
        self._thread = None
        self._running = False

    def open(self) -> None:
        cap = cv2.VideoCapture(self.src)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailable(f"Failed to open camera {self.src!r}. Try a different camera index.")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self.cap = cap

    @property
    def is_streaming(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start_stream(self) -> None:
        if self.cap is None:
            raise CameraUnavailable("Camera is not open")
        if self.is_streaming:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, daemon=True, name="hair-tint-camera")
        self._thread.start()

    def stop_stream(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

    def _run(self):
        while self._running:
            with self._cap_lock:
                ret, frame = self.cap.read()
            if not ret:
                time.sleep(0.01)
                continue
            raw = bgr_to_raw_frame(frame, self.sensor_orientation, self.front_facing)
            if not self.q.empty():
                try:
                    _ = self.q.get_nowait()
                except queue.Empty:
                    pass
            try:
                self.q.put_nowait(raw)
            except queue.Full:
                pass

    def read(self, timeout=0.01) -> Optional[RawFrame]:
        try:
            return self.q.get(timeout=timeout)
        except queue.Empty:
            return None

    def take_picture(self) -> str:
        """Grab one frame and store it as a JPEG; returns the file path."""
        if self.cap is None:
            raise CameraUnavailable("Camera is not open")
        with self._cap_lock:
            ret, frame = self.cap.read()
        if not ret:
            raise OSError("Camera returned no frame")
        if self.front_facing:
            frame = cv2.flip(frame, 1)
        path = os.path.join(self.picture_dir, f"{uuid.uuid4()}.jpg")
        if not cv2.imwrite(path, frame):
            raise OSError(f"Could not write picture to {path}")
        return path

    def close(self) -> None:
        self.stop_stream()
        if self.cap is not None:
            self.cap.release()
            self.cap = None
