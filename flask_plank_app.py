# Flask Web Application for real-time plank detection; serves the web interface,
# classifies webcam frames sent by the browser and times how long the plank is held

import argparse
import base64
import binascii
import logging
import threading
import time
from io import BytesIO

import mediapipe as mp
import numpy as np
from flask import Flask, jsonify, render_template, request
from PIL import Image, UnidentifiedImageError

import config
from hold_timer import HoldTimer
from plank_pose import CaptureView, PlankClassifier, StabilityGate

logger = logging.getLogger(__name__)

app = Flask(__name__)

# In-memory session tracking per session_id
sessions = {}  # {session_id: {classifier, gate, timer, start_time, end_time, feedback_counts}}

# Reuse MediaPipe instances per session to improve performance
pose_detectors = {}  # {session_id: Pose instance}

# Serializes process() and close() on one session's detector
detector_locks = {}  # {session_id: Lock}

state_lock = threading.Lock()

# Wall clock for session and hold timing
clock = time.time


class InvalidRequest(Exception):
    pass


def get_pose_detector(session_id):
    """Get or create a MediaPipe Pose instance for a session."""
    with state_lock:
        if session_id not in pose_detectors:
            pose_detectors[session_id] = mp.solutions.pose.Pose(
                static_image_mode=True,
                model_complexity=config.MODEL_COMPLEXITY,
                min_detection_confidence=config.MIN_DETECTION_CONFIDENCE,
                min_tracking_confidence=config.MIN_TRACKING_CONFIDENCE
            )
        return pose_detectors[session_id]


def get_detector_lock(session_id):
    with state_lock:
        return detector_locks.setdefault(session_id, threading.Lock())


def close_pose_detector(session_id):
    with state_lock:
        detector = pose_detectors.pop(session_id, None)
        lock = detector_locks.pop(session_id, None)
    if detector is not None:
        try:
            with lock or threading.Lock():
                detector.close()
        except Exception as e:
            logger.warning("Failed to close pose detector for %s: %s", session_id, e)


def new_session(view=CaptureView.SIDE, target_seconds=None):
    try:
        classifier = PlankClassifier(view=view)
        timer = HoldTimer(clock=clock, target_seconds=target_seconds)
    except (TypeError, ValueError) as e:
        raise InvalidRequest(str(e)) from None
    return {
        'classifier': classifier,
        'gate': StabilityGate(on_acquired=timer.start, on_lost=timer.stop),
        'timer': timer,
        'start_time': clock(),
        'end_time': None,
        'feedback_counts': {},
    }


def decode_image(image_data):
    """Decode a base64 data URL (or bare base64) into an RGB numpy array"""
    if not isinstance(image_data, str) or not image_data:
        raise InvalidRequest("Missing 'image' field")
    image_data = image_data.split(',', 1)[-1]  # Remove data:image/jpeg;base64, prefix
    try:
        image_bytes = base64.b64decode(image_data, validate=True)
        image = Image.open(BytesIO(image_bytes)).convert('RGB')
    except (binascii.Error, ValueError, UnidentifiedImageError) as e:
        raise InvalidRequest(f"Invalid image data: {e}") from None
    return np.array(image)


@app.errorhandler(InvalidRequest)
def handle_bad_request(error):
    return jsonify({'error': str(error)}), 400


@app.route('/')
def index():
    # Serve the main web interface
    return render_template('index.html')


@app.route('/config')
def get_config():
    """Active calibration values"""
    return jsonify({
        'visibility_thresh': config.VISIBILITY_THRESH,
        'pass_threshold': config.PASS_THRESHOLD,
        'max_violations': config.MAX_VIOLATIONS,
        'stability_frames': config.STABILITY_FRAMES,
        'grace_period_frames': config.GRACE_PERIOD_FRAMES,
        'sample_fps': config.SAMPLE_FPS,
    })


@app.route('/process_frame', methods=['POST'])
def process_frame():
    # Process a single frame from the webcam
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')

    try:
        image_rgb = decode_image(data.get('image'))

        with state_lock:
            if session_id not in sessions:
                sessions[session_id] = new_session(data.get('view', CaptureView.SIDE.value))
            sess = sessions[session_id]

        # MediaPipe errors (like timestamp mismatches) count as "no person" for this frame
        try:
            with get_detector_lock(session_id):
                results = get_pose_detector(session_id).process(image_rgb)
            landmarks = results.pose_landmarks.landmark if results and results.pose_landmarks else None
        except Exception as mp_error:
            logger.warning("MediaPipe processing error: %s", mp_error)
            landmarks = None

        with state_lock:
            result = sess['classifier'].classify(landmarks)
            event = sess['gate'].update(result)
            timer = sess['timer']
            if timer.running and timer.completed:
                timer.stop()

            # Track only corrective feedback
            corrections = result.feedback[1:] if result.is_plank else result.feedback
            counts = sess['feedback_counts']
            for message in corrections:
                counts[message] = counts.get(message, 0) + 1

            response = result.to_dict()
            response.update({
                'is_active': sess['gate'].is_active,
                'event': event.value if event else None,
                'hold_seconds': timer.elapsed(),
                'total_hold_seconds': timer.accumulated(),
                'completed': timer.completed,
                'landmarks': result.landmarks.to_list() if result.landmarks else None,
            })
        return jsonify(response)

    except InvalidRequest:
        raise
    except Exception as e:
        logger.exception("Error processing frame")
        return jsonify({
            'error': f'Error processing frame: {str(e)}'
        }), 500


@app.route('/start_session', methods=['POST'])
def start_session():
    """Start a plank session for a given session_id."""
    data = request.get_json(silent=True) or {}
    sess_id = data.get('session_id', 'default')
    sess = new_session(data.get('view', CaptureView.SIDE.value), data.get('target_seconds'))
    with state_lock:
        sessions[sess_id] = sess
    logger.info("Session %s started (%s view)", sess_id, sess['classifier'].view.value)
    return jsonify({'status': 'ok'})


@app.route('/end_session', methods=['POST'])
def end_session():
    """End a plank session and return a summary."""
    data = request.get_json(silent=True) or {}
    sess_id = data.get('session_id', 'default')

    with state_lock:
        sess = sessions.get(sess_id)
        if not sess:
            return jsonify({'error': 'Session not found'}), 400

        timer = sess['timer']
        timer.stop()
        if sess.get('end_time') is None:
            sess['end_time'] = clock()

        # Most frequent corrections first
        items = sorted(sess['feedback_counts'].items(), key=lambda x: x[1], reverse=True)
        summary = {
            'duration_seconds': sess['end_time'] - sess['start_time'],
            'total_hold_seconds': timer.total_seconds,
            'longest_hold_seconds': timer.longest_seconds,
            'hold_count': timer.hold_count,
            'completed': timer.completed,
            'feedback_summary': [{'message': msg, 'count': count} for msg, count in items],
        }

    close_pose_detector(sess_id)
    logger.info("Session %s ended: %.1fs held", sess_id, summary['total_hold_seconds'])
    return jsonify(summary)


@app.route('/reset_session', methods=['POST'])
def reset_session():
    # Hard reset of the stability gate and timer; no "lost" event is fired
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')

    with state_lock:
        sess = sessions.get(session_id)
        if sess:
            sess['gate'].reset()
            sess['timer'].reset()
            sess['feedback_counts'].clear()
            sess['start_time'] = clock()
            sess['end_time'] = None

    return jsonify({'status': 'reset'})


def main():
    # Parse command line arguments for port
    parser = argparse.ArgumentParser(description='Plank Detection Web App')
    parser.add_argument('--port', type=int, default=config.PORT,
                        help=f'Port to run the Flask server on (default: {config.PORT})')
    parser.add_argument('--host', type=str, default=config.HOST,
                        help=f'Host to bind to (default: {config.HOST})')
    parser.add_argument('--debug', action='store_true',
                        help='Run Flask in debug mode')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                        format='%(asctime)s %(name)s %(levelname)s %(message)s')

    print("Plank Detection Web App")
    print("Starting Flask server...")
    print(f"Access the app at: http://localhost:{args.port}")
    print("Press Ctrl+C to stop the server")

    app.run(debug=args.debug, host=args.host, port=args.port)


if __name__ == '__main__':
    main()
