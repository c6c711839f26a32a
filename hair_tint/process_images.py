import argparse
import logging
import os
import shutil

import cv2

from .colors import parse_color
from .config import add_config_arguments, config_from_args
from .errors import EngineUnavailable, StillCaptureFault
from .imaging import downscale_to_limit, read_rgb
from .pipeline import HairColorPipeline
from .segmentation import SegmentationEngine


def save_mask(engine, image_path, config, mask_path):
    """Write the hair mask used for ``image_path`` (at processing resolution)."""
    image = read_rgb(image_path)
    if image is None:
        return None
    processing, _ = downscale_to_limit(image, config.max_processing_size)
    mask = engine.hair_mask(processing)
    cv2.imwrite(mask_path, mask)
    return mask_path


def main():
    parser = argparse.ArgumentParser(description="Recolor hair in still images")
    parser.add_argument("--images", nargs='+', required=True, help="Paths to input images")
    parser.add_argument("--color", default="dark-brown", help="Catalog color id or #rrggbb")
    parser.add_argument("--output_dir", default="hair_color_output", help="Output directory")
    parser.add_argument("--save-mask", action="store_true", help="Also write the hair mask as PNG")
    add_config_arguments(parser)
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = config_from_args(args)
    try:
        color = parse_color(args.color)
    except ValueError as e:
        parser.error(str(e))

    engine = SegmentationEngine(config)
    try:
        engine.load()
    except EngineUnavailable as e:
        raise SystemExit(f"Failed to load AI engine: {e}") from e
    pipeline = HairColorPipeline(engine, config)
    os.makedirs(args.output_dir, exist_ok=True)

    failures = 0
    print(f"Processing {len(args.images)} images with {color.name}...")
    for image_path in args.images:
        if not os.path.exists(image_path):
            print(f"Warning: Image not found: {image_path}. Skipping.")
            continue

        print(f"Processing: {os.path.basename(image_path)}")
        base_name = os.path.splitext(os.path.basename(image_path))[0]
        try:
            out_path = pipeline.process_still(image_path, color, output_dir=args.output_dir)
        except StillCaptureFault as e:
            failures += 1
            print(f"  Failed to process {image_path}: {e}")
            continue

        if out_path == image_path:
            ext = os.path.splitext(image_path)[1]
            final_path = os.path.join(args.output_dir, f"{base_name}_{color.id}{ext}")
            shutil.copyfile(image_path, final_path)
        else:
            final_path = os.path.join(args.output_dir, f"{base_name}_{color.id}.jpg")
            os.replace(out_path, final_path)
        print(f"  Saved result to: {final_path}")

        if args.save_mask:
            mask_path = save_mask(engine, image_path, config,
                                  os.path.join(args.output_dir, f"{base_name}_mask.png"))
            if mask_path:
                print(f"  Saved mask to: {mask_path}")

    engine.close()
    print(f"\nDone! Results saved to: {args.output_dir}")
    if failures:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
