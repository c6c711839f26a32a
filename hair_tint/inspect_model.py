import argparse
from dataclasses import replace
from typing import Any, Dict

from .config import ProcessingConfig
from .errors import EngineUnavailable
from .segmentation import SegmentationEngine


def _fmt_q(params: Dict[str, Any]) -> str:
    if not params:
        return "-"
    scale = params.get("scale", None)
    zero_point = params.get("zero_point", None)
    return f"scale={scale}, zero_point={zero_point}"


def _print_tensors(title, details):
    print(f"\n-- {title} --")
    for i, tensor in enumerate(details):
        shape = tensor.get("shape")
        print(f"[{i}] name={tensor.get('name')}")
        print(f"    shape={tuple(int(x) for x in shape)} dtype={tensor.get('dtype')}")
        print(f"    quantization={_fmt_q(tensor.get('quantization_parameters', {}))}")


def inspect_model(engine: SegmentationEngine) -> bool:
    """Print the model's IO details; returns True if it fits the segmentation engine."""
    info = engine.describe()
    print("=== TFLite Model Inspection ===")
    print(f"Model path: {engine.model_path}")
    _print_tensors("Inputs", info['inputs'])
    _print_tensors("Outputs", info['outputs'])

    in_w, in_h = info['input_size']
    print(f"\nInput HxW (from model): {(in_h, in_w)}")
    print(f"Classes: {info['num_classes']} (hair class index {info['hair_class_index']})")

    ok = True
    if in_w != in_h:
        print("Warning: input is not square")
        ok = False
    if len(info['inputs']) != 1 or len(info['outputs']) != 1:
        print("Warning: expected exactly one input and one output tensor")
        ok = False
    return ok


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect a TFLite segmentation model's IO details")
    parser.add_argument("--model", default=None, help="Path to .tflite model")
    parser.add_argument("--hair-class", type=int, default=None, help="Expected hair class index")
    args = parser.parse_args()

    config = replace(ProcessingConfig.from_env(), enable_hardware_acceleration=False)
    if args.hair_class is not None:
        config = replace(config, hair_class_index=args.hair_class)
    engine = SegmentationEngine(config, model_path=args.model)
    try:
        engine.load()
    except EngineUnavailable as e:
        raise SystemExit(f"Model does not fit: {e}") from e
    if not inspect_model(engine):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
