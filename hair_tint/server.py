"""
Flask + Socket.IO preview server.

Clients stream JPEG frames over the websocket (binary, no base64) and get
recolored JPEG frames back. Still captures go through a plain HTTP endpoint.
"""

import argparse
import base64
import logging
import os
import tempfile
import threading
import time

import cv2
import numpy as np
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_socketio import SocketIO, emit

from .colors import HAIR_COLORS, find_color
from .config import add_config_arguments, config_from_args
from .errors import EngineUnavailable, FrameConversionFault, StillCaptureFault
from .frames import bgr_to_raw_frame
from .pipeline import HairColorPipeline
from .segmentation import SegmentationEngine

logger = logging.getLogger(__name__)

RESULT_TIMEOUT = 5.0
RESULT_POLL_INTERVAL = 0.01


def _color_payload():
    return [{'id': c.id, 'name': c.name, 'hex': c.hex} for c in HAIR_COLORS]


def _decode_data_url(value):
    data = value.split(',', 1)[1] if ',' in value else value
    return base64.b64decode(data)


def create_app(pipeline: HairColorPipeline):
    """Build the Flask app and Socket.IO server around a started pipeline."""
    app = Flask(__name__)
    CORS(app)
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

    # pipeline state is single-owner; handlers run on several threads
    lock = threading.Lock()

    @app.route('/')
    def index():
        return jsonify({
            'status': 'ok',
            'engine_loaded': pipeline.engine.is_loaded,
            'color': pipeline.state.color.id,
        })

    @app.route('/api/colors')
    def colors():
        return jsonify({'colors': _color_payload()})

    @app.route('/api/capture', methods=['POST'])
    def capture():
        """Process a base64 encoded still image with the requested (or selected) color"""
        data = request.get_json(silent=True) or {}
        if 'image' not in data:
            return jsonify({'error': 'No image provided'}), 400
        try:
            color = find_color(data['color']) if data.get('color') else pipeline.state.color
        except KeyError as e:
            return jsonify({'error': str(e)}), 400
        try:
            image_bytes = _decode_data_url(data['image'])
        except (ValueError, TypeError):
            return jsonify({'error': 'Invalid base64 payload'}), 400

        with tempfile.TemporaryDirectory() as workdir:
            src_path = os.path.join(workdir, 'capture.jpg')
            with open(src_path, 'wb') as f:
                f.write(image_bytes)
            try:
                with lock:
                    out_path = pipeline.process_still(src_path, color, output_dir=workdir)
            except StillCaptureFault as e:
                return jsonify({'error': str(e)}), 422
            except EngineUnavailable as e:
                return jsonify({'error': str(e)}), 503
            with open(out_path, 'rb') as f:
                encoded = base64.b64encode(f.read()).decode('utf-8')

        return jsonify({
            'success': True,
            'color': color.id,
            'image': f'data:image/jpeg;base64,{encoded}',
        })

    @socketio.on('connect')
    def handle_connect():
        logger.info('Client connected')
        emit('connected', {'status': 'ok', 'colors': _color_payload(),
                           'color': pipeline.state.color.id})

    @socketio.on('disconnect')
    def handle_disconnect():
        logger.info('Client disconnected')

    @socketio.on('color')
    def handle_color(color_id):
        try:
            color = find_color(color_id)
        except KeyError as e:
            emit('error', {'message': str(e)})
            return
        with lock:
            pipeline.select_color(color)
        emit('color', {'color': color.id})

    @socketio.on('frame')
    def handle_frame(data):
        """Handle incoming frame (binary JPEG data)"""
        nparr = np.frombuffer(data, np.uint8) if data else np.empty(0, np.uint8)
        image_bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR) if nparr.size else None
        if image_bgr is None:
            emit('error', {'message': 'Invalid image format'})
            return
        try:
            raw = bgr_to_raw_frame(image_bgr)
        except FrameConversionFault as e:
            emit('error', {'message': str(e)})
            return

        with lock:
            accepted = pipeline.submit_frame(raw)

        # lock is held per poll only, never across the running job
        result = None
        deadline = time.monotonic() + RESULT_TIMEOUT
        while accepted:
            with lock:
                result = pipeline.poll()
                if result is not None or not pipeline.state.in_flight:
                    break
            if time.monotonic() >= deadline:
                break
            time.sleep(RESULT_POLL_INTERVAL)

        with lock:
            cleared = pipeline.state.color.is_natural
        if result is not None:
            emit('result', result)
        elif cleared:
            emit('cleared', {'color': pipeline.state.color.id})

    return app, socketio


def main():
    parser = argparse.ArgumentParser(description="Hair color preview server (TFLite)")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.environ.get('PORT', 8080)))
    add_config_arguments(parser)
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    config = config_from_args(args)

    print("Loading TFLite model...")
    engine = SegmentationEngine(config)
    try:
        engine.load()
    except EngineUnavailable as e:
        raise SystemExit(f"Failed to load AI engine: {e}") from e
    print("Model loaded successfully!")

    pipeline = HairColorPipeline(engine, config)
    pipeline.start()
    app, socketio = create_app(pipeline)

    print(f"Server running on http://{args.host}:{args.port}")
    print(f"OpenCV threads: {cv2.getNumThreads()}")
    print(f"TensorFlow threads: {config.inference_threads}")
    try:
        socketio.run(app, host=args.host, port=args.port, debug=False, allow_unsafe_werkzeug=True)
    finally:
        pipeline.close()
        engine.close()


if __name__ == '__main__':
    main()
