import argparse
import logging
import time

import cv2
import numpy as np

from .camera import WebcamCamera
from .colors import HAIR_COLORS, parse_color
from .config import add_config_arguments, config_from_args
from .errors import CameraUnavailable, EngineUnavailable, StillCaptureFault
from .frames import convert_frame
from .session import HairColorSession

logger = logging.getLogger(__name__)

DISPLAY_WINDOW = "Virtual Hair Color. Q quit, C capture, N next color."
DESIRED_FPS = 25


def _next_color(current):
    ids = [c.id for c in HAIR_COLORS]
    idx = ids.index(current.id) + 1 if current.id in ids else 0
    return HAIR_COLORS[idx % len(HAIR_COLORS)]


def run_live(session: HairColorSession, desired_fps=DESIRED_FPS):
    last_time = time.time()
    fps_avg = 0.0
    last_raw = None
    while True:
        start = time.time()
        frame = session.camera.read(timeout=0.02)
        if frame is not None:
            last_raw = frame
            session.pipeline.submit_frame(frame)
        else:
            session.pipeline.poll()
        processed = session.pipeline.latest_frame

        if processed is not None:
            disp_bgr = cv2.imdecode(np.frombuffer(processed, np.uint8), cv2.IMREAD_COLOR)
        elif last_raw is not None:
            disp_bgr = cv2.cvtColor(convert_frame(last_raw), cv2.COLOR_RGB2BGR)
        else:
            time.sleep(0.005)
            continue

        now = time.time()
        dt = now - last_time
        last_time = now
        fps_curr = 1.0 / dt if dt > 0 else 0.0
        fps_avg = fps_avg * 0.85 + fps_curr * 0.15
        cv2.putText(disp_bgr, f"FPS {fps_avg:.1f}", (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 255, 0), 2)
        cv2.putText(disp_bgr, session.color.name, (10, 60), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 255, 255), 1)
        cv2.imshow(DISPLAY_WINDOW, disp_bgr)

        target_frame_time = 1.0 / float(desired_fps)
        loop_time = time.time() - start
        if loop_time < target_frame_time:
            time.sleep(max(0, target_frame_time - loop_time))

        key = cv2.waitKey(1) & 0xFF
        if key in (ord('q'), ord('Q')):
            break
        if key in (ord('n'), ord('N')):
            session.select_color(_next_color(session.color))
        elif key in (ord('c'), ord('C')):
            try:
                result = session.capture()
            except StillCaptureFault as e:
                print(f"Capture failed, try again: {e}")
            else:
                print(f"Captured {result.before} -> {result.after}")


def main():
    ap = argparse.ArgumentParser(description="Live webcam hair color preview")
    ap.add_argument("--cam", type=int, default=0, help="Camera index.")
    ap.add_argument("--fps", type=int, default=DESIRED_FPS, help="Target display FPS.")
    ap.add_argument("--color", type=str, default="dark-brown", help="Catalog color id or hex color.")
    ap.add_argument("--orientation", type=int, default=0, choices=(0, 90, 180, 270),
                    help="Sensor orientation of the camera.")
    ap.add_argument("--rear", action="store_true", help="Treat the camera as rear-facing (no mirroring).")
    add_config_arguments(ap)
    args = ap.parse_args()

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = config_from_args(args)

    try:
        color = parse_color(args.color)
    except ValueError as e:
        ap.error(str(e))

    camera = WebcamCamera(src=args.cam, sensor_orientation=args.orientation, front_facing=not args.rear)
    session = HairColorSession(camera, config)
    try:
        session.start()
    except EngineUnavailable as e:
        raise SystemExit(f"Failed to load AI engine: {e}") from e
    except CameraUnavailable as e:
        raise SystemExit(str(e)) from e
    session.select_color(color)

    print("Model loaded. Starting camera. Press Q to quit.")
    try:
        run_live(session, desired_fps=args.fps)
    except KeyboardInterrupt:
        pass
    finally:
        session.close()
        cv2.destroyAllWindows()
        print("Stopped camera.")


if __name__ == "__main__":
    main()
