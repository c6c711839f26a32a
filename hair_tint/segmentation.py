"""TFLite hair segmentation.

The model is a multi-class selfie segmenter with a fixed square input
(256x256 for the bundled asset) producing a score vector over K classes per
pixel. One class index means "hair". The engine is loaded once and then
shared between the interactive thread (still captures) and the preview
worker thread; TFLite interpreters are not thread-safe, so every invocation
runs under a lock and outputs are copied before the lock is released.
"""

import logging
import os
import threading
from typing import Any, Dict, List, Optional

import numpy as np

from .config import ProcessingConfig
from .errors import EngineUnavailable
from .imaging import blur_mask, resize_area, resize_linear

logger = logging.getLogger(__name__)

DEFAULT_INPUT_SIZE = 256
DELEGATE_LIBRARIES = ('libedgetpu.so.1', 'libgpu_delegate.so')


def load_tensorflow():
    """Import TensorFlow with its plugin noise suppressed."""
    os.environ.setdefault('TF_CPP_MIN_LOG_LEVEL', '2')
    if 'TF_PLUGIN_DIR' not in os.environ:
        import tempfile
        os.environ['TF_PLUGIN_DIR'] = tempfile.mkdtemp()
    try:
        import tensorflow as tf
    except Exception as e:
        if 'libmetal_plugin' in str(e) or 'tensorflow-plugins' in str(e):
            raise EngineUnavailable(
                "TensorFlow import failed. Try: pip uninstall tensorflow-plugins (if installed system-wide)"
            ) from e
        raise EngineUnavailable(
            "TensorFlow is required. Please install it: pip install 'tensorflow>=2.12.0,<3.0.0'"
        ) from e
    return tf


def _load_delegates(tf) -> List[Any]:
    for library in DELEGATE_LIBRARIES:
        try:
            delegate = tf.lite.experimental.load_delegate(library)
        except (ValueError, OSError, RuntimeError) as exc:
            logger.debug("Delegate %s unavailable: %s", library, exc)
            continue
        logger.info("Using %s delegate", library)
        return [delegate]
    logger.info("Hardware delegate not available, using CPU")
    return []


def build_interpreter(model_path: str, num_threads: int, use_delegates: bool = True):
    """Create a TFLite interpreter, falling back to CPU when delegates fail."""
    if not os.path.exists(model_path):
        raise EngineUnavailable(f"TFLite model not found at: {model_path}")
    tf = load_tensorflow()

    delegates = _load_delegates(tf) if use_delegates else []
    if delegates:
        try:
            return tf.lite.Interpreter(
                model_path=model_path,
                experimental_delegates=delegates,
                num_threads=num_threads,
            )
        except (ValueError, RuntimeError) as e:
            logger.warning("Delegate interpreter failed (%s), falling back to CPU", e)
    try:
        return tf.lite.Interpreter(model_path=model_path, num_threads=num_threads)
    except (ValueError, RuntimeError) as e:
        raise EngineUnavailable(f"Could not load model {model_path}: {e}") from e


def hair_mask_from_scores(scores: np.ndarray, hair_class_index: int) -> np.ndarray:
    """255 where the hair class wins the per-pixel argmax, else 0.

    ``np.argmax`` returns the first maximum, so ties go to the lower class index.
    """
    labels = np.argmax(scores, axis=-1)
    return np.where(labels == hair_class_index, 255, 0).astype(np.uint8)


class SegmentationEngine:
    """Owns one TFLite interpreter and turns RGB rasters into hair masks."""

    def __init__(self, config: Optional[ProcessingConfig] = None, model_path: Optional[str] = None):
        self.config = config or ProcessingConfig()
        self.model_path = model_path or self.config.model_path
        self.interpreter = None
        self._lock = threading.Lock()
        self._input_detail = None
        self._output_detail = None
        self._input_tensor = None
        self.in_h = self.in_w = DEFAULT_INPUT_SIZE
        self.num_classes = 0

    @property
    def is_loaded(self) -> bool:
        return self.interpreter is not None

    def load(self, interpreter=None) -> None:
        """Load the model once. ``interpreter`` injects a prebuilt interpreter.

        Raises EngineUnavailable when the model cannot be loaded or does not
        look like a per-pixel classifier.
        """
        if self.interpreter is not None:
            logger.debug("Segmentation model already loaded")
            return
        if interpreter is None:
            interpreter = build_interpreter(
                self.model_path,
                num_threads=self.config.inference_threads,
                use_delegates=self.config.enable_hardware_acceleration,
            )
        try:
            interpreter.allocate_tensors()
            input_detail = interpreter.get_input_details()[0]
            output_detail = interpreter.get_output_details()[0]
        except (ValueError, RuntimeError, IndexError) as e:
            raise EngineUnavailable(f"Could not prepare interpreter: {e}") from e

        input_shape = tuple(int(x) for x in input_detail['shape'])
        output_shape = tuple(int(x) for x in output_detail['shape'])
        if len(input_shape) != 4:
            raise EngineUnavailable(f"Expected NHWC input shape, got {input_shape}")
        if len(output_shape) != 4 or output_shape[-1] < 2:
            raise EngineUnavailable(f"Expected (1, H, W, K>=2) output, got {output_shape}")
        if self.config.hair_class_index >= output_shape[-1]:
            raise EngineUnavailable(
                f"Hair class {self.config.hair_class_index} out of range for {output_shape[-1]} classes"
            )

        self.in_h, self.in_w = input_shape[1], input_shape[2]
        self.num_classes = output_shape[-1]
        self._input_detail = input_detail
        self._output_detail = output_detail
        self._input_tensor = np.empty(input_shape, dtype=input_detail['dtype'])
        self.interpreter = interpreter
        logger.info("Segmentation model loaded: input %dx%d, %d classes, %d threads",
                    self.in_w, self.in_h, self.num_classes, self.config.inference_threads)

    def close(self) -> None:
        with self._lock:
            self.interpreter = None
            self._input_tensor = None

    def describe(self) -> Dict[str, Any]:
        self._require_loaded()
        return {
            'inputs': self.interpreter.get_input_details(),
            'outputs': self.interpreter.get_output_details(),
            'input_size': (self.in_w, self.in_h),
            'num_classes': self.num_classes,
            'hair_class_index': self.config.hair_class_index,
        }

    def _require_loaded(self):
        if self.interpreter is None:
            raise EngineUnavailable("Segmentation model has not been loaded")

    def _fill_input(self, image_rgb: np.ndarray) -> None:
        resized = resize_area(np.ascontiguousarray(image_rgb[:, :, :3]), self.in_w, self.in_h)
        if self._input_detail['dtype'] == np.uint8:
            np.copyto(self._input_tensor[0], resized, casting='unsafe')
        else:
            np.copyto(self._input_tensor[0], (resized.astype(np.float32) - 127.5) / 127.5,
                      casting='unsafe')

    def scores(self, image_rgb: np.ndarray) -> np.ndarray:
        """Raw class scores of shape (in_h, in_w, K)."""
        with self._lock:
            self._require_loaded()
            self._fill_input(image_rgb)
            self.interpreter.set_tensor(self._input_detail['index'], self._input_tensor)
            self.interpreter.invoke()
            # copy before the next invoke() can overwrite the buffer
            output = np.array(self.interpreter.get_tensor(self._output_detail['index']), copy=True)
        return output[0]

    def segment(self, image_rgb: np.ndarray) -> np.ndarray:
        """Binary hair mask (0/255) at model resolution."""
        return hair_mask_from_scores(self.scores(image_rgb), self.config.hair_class_index)

    def hair_mask(self, image_rgb: np.ndarray) -> np.ndarray:
        """Hair mask resized to ``image_rgb``'s size and softened by the configured blur."""
        h, w = image_rgb.shape[:2]
        mask = resize_linear(self.segment(image_rgb), w, h)
        return blur_mask(mask, self.config.mask_blur_radius)
