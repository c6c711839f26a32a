import os
from dataclasses import dataclass, fields, replace

# ---------------- CONFIG ----------------
DEFAULT_MODEL_PATH = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), "models", "selfie_multiclass_256x256.tflite"
)
ENV_PREFIX = "HAIR_TINT_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ProcessingConfig:
    """Settings resolved once per pipeline instance."""
    enable_hardware_acceleration: bool = True
    inference_threads: int = 2
    mask_blur_radius: int = 1
    mask_inclusion_threshold: float = 0.25
    output_encoding_quality: int = 75
    still_encoding_quality: int = 90
    max_processing_size: int = 360
    frame_interval_ms: int = 450
    hair_class_index: int = 1
    model_path: str = DEFAULT_MODEL_PATH

    def __post_init__(self):
        if self.inference_threads < 1:
            raise ValueError("inference_threads must be >= 1")
        if self.mask_blur_radius < 0:
            raise ValueError("mask_blur_radius must be >= 0")
        if not 0.0 <= self.mask_inclusion_threshold <= 1.0:
            raise ValueError("mask_inclusion_threshold must be in [0, 1]")
        for name in ("output_encoding_quality", "still_encoding_quality"):
            if not 0 <= getattr(self, name) <= 100:
                raise ValueError(f"{name} must be in [0, 100]")
        if self.max_processing_size < 1:
            raise ValueError("max_processing_size must be >= 1")
        if self.frame_interval_ms < 0:
            raise ValueError("frame_interval_ms must be >= 0")
        if self.hair_class_index < 0:
            raise ValueError("hair_class_index must be >= 0")

    @property
    def frame_interval(self) -> float:
        return self.frame_interval_ms / 1000.0

    @classmethod
    def from_env(cls, environ=None) -> "ProcessingConfig":
        """Build a config from ``HAIR_TINT_*`` variables, e.g. ``HAIR_TINT_INFERENCE_THREADS=4``."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, f.type, raw)
        return cls(**values)


def _coerce(name, type_, raw):
    type_name = type_ if isinstance(type_, str) else type_.__name__
    if type_name == "bool":
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"{ENV_PREFIX}{name.upper()}: expected a boolean, got {raw!r}")
    try:
        if type_name == "int":
            return int(raw)
        if type_name == "float":
            return float(raw)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name.upper()}: expected {type_name}, got {raw!r}") from None
    return raw


def add_config_arguments(parser):
    """Command-line overrides shared by the entry points."""
    parser.add_argument("--model", default=None, help="Path to .tflite model")
    parser.add_argument("--threads", type=int, default=None, help="Inference threads")
    parser.add_argument("--no-gpu", action="store_true", help="Skip hardware delegates")
    parser.add_argument("--blur", type=int, default=None, help="Mask blur radius (0 disables)")
    parser.add_argument("--threshold", type=float, default=None, help="Mask inclusion threshold (0-1)")
    parser.add_argument("--quality", type=int, default=None, help="JPEG quality of saved images")
    parser.add_argument("--log-level", default="INFO")
    return parser


def config_from_args(args, environ=None) -> ProcessingConfig:
    """Environment config with any command-line overrides applied."""
    config = ProcessingConfig.from_env(environ)
    overrides = {}
    if args.model:
        overrides['model_path'] = args.model
    if args.threads is not None:
        overrides['inference_threads'] = args.threads
    if args.no_gpu:
        overrides['enable_hardware_acceleration'] = False
    if args.blur is not None:
        overrides['mask_blur_radius'] = args.blur
    if args.threshold is not None:
        overrides['mask_inclusion_threshold'] = args.threshold
    if args.quality is not None:
        overrides['still_encoding_quality'] = args.quality
    return replace(config, **overrides)
