"""
Real-time Plank Detection and Hold Timer
Uses webcam to detect a plank position and time how long it is held
"""

import argparse
import logging
import time

import cv2
import mediapipe as mp

import config
from hold_timer import HoldTimer
from plank_overlay import (COLOR_FAIL, COLOR_PASS, draw_detection_feedback,
                           draw_hold_timer, draw_pose_skeleton)
from plank_pose import CaptureView, PlankClassifier, PlankResult, StabilityGate

logger = logging.getLogger(__name__)


def create_pose_detector():
    return mp.solutions.pose.Pose(
        static_image_mode=False,
        model_complexity=config.MODEL_COMPLEXITY,
        min_detection_confidence=config.MIN_DETECTION_CONFIDENCE,
        min_tracking_confidence=config.MIN_TRACKING_CONFIDENCE
    )


def run_realtime_plank_detection(camera_index=0, view=CaptureView.SIDE, target_seconds=None):
    """Main function to run real-time plank detection from webcam"""
    classifier = PlankClassifier(view=view)
    timer = HoldTimer(target_seconds=target_seconds)

    def on_acquired():
        print("Plank detected - timer started")
        timer.start()

    def on_lost():
        held = timer.stop()
        print(f"Plank lost - held for {held:.1f}s")

    gate = StabilityGate(on_acquired=on_acquired, on_lost=on_lost)

    cap = cv2.VideoCapture(camera_index)
    if not cap.isOpened():
        print("Error: Could not open webcam!")
        print("Please check that your camera is connected and not in use by another application.")
        return

    pose = create_pose_detector()
    sample_interval = 1.0 / config.SAMPLE_FPS

    print("=" * 60)
    print("Real-time Plank Detection Started!")
    print("=" * 60)
    print(f"Camera view: {classifier.view.value}")
    print(f"Sampling: {config.SAMPLE_FPS} frames/s")
    print(f"Acquire after {gate.stability_frames} frames, lose after {gate.grace_period_frames} frames")
    if target_seconds:
        print(f"Target hold: {target_seconds}s")
    print("\nControls:")
    print("  - Press 'q' to quit")
    print("  - Press 'r' to reset the session")
    print("  - Press 's' to save current frame as screenshot")
    print("=" * 60)

    frame_count = 0
    screenshot_count = 0
    last_sample = 0.0
    result = PlankResult(is_plank=False, confidence=0)

    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                print("Error: Failed to grab frame from webcam")
                break

            frame_count += 1

            # Classify at the sampling rate; draw every frame
            now = time.monotonic()
            if now - last_sample >= sample_interval:
                last_sample = now
                image = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
                results = pose.process(image)
                landmarks = results.pose_landmarks.landmark if results.pose_landmarks else None
                result = classifier.classify(landmarks)
                gate.update(result)

            color = COLOR_PASS if result.is_plank else COLOR_FAIL
            draw_pose_skeleton(frame, result.landmarks, color)
            draw_detection_feedback(frame, result)
            draw_hold_timer(frame, timer.accumulated(), target_seconds)

            if timer.completed:
                timer.stop()
                print(f"\nTarget reached! Total hold: {timer.total_seconds:.1f}s")
                break

            cv2.imshow('Plank Detection', frame)

            # Handle key presses
            key = cv2.waitKey(1) & 0xFF
            if key == ord('q'):
                print("\nQuitting...")
                break
            elif key == ord('r'):
                gate.reset()
                timer.reset()
                print("Session reset")
            elif key == ord('s'):
                screenshot_count += 1
                filename = f'screenshot_{screenshot_count}.jpg'
                cv2.imwrite(filename, frame)
                print(f"Screenshot saved: {filename}")

    except KeyboardInterrupt:
        print("\nInterrupted by user")
    finally:
        timer.stop()
        cap.release()
        cv2.destroyAllWindows()
        pose.close()
        print("Webcam released and windows closed.")
        print(f"Total frames processed: {frame_count}")
        print(f"Holds: {timer.hold_count}, total {timer.total_seconds:.1f}s, "
              f"longest {timer.longest_seconds:.1f}s")


def main():
    parser = argparse.ArgumentParser(description='Real-time Plank Detection')
    parser.add_argument('--camera', type=int, default=0,
                        help='Camera index (default: 0)')
    parser.add_argument('--view', choices=[v.value for v in CaptureView], default=CaptureView.SIDE.value,
                        help='Camera placement: side profile or front (default: side)')
    parser.add_argument('--target', type=float, default=None,
                        help='Stop once the plank has been held this many seconds')
    parser.add_argument('--debug', action='store_true',
                        help='Log per-frame verdicts')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO,
                        format='%(asctime)s %(name)s %(levelname)s %(message)s')
    run_realtime_plank_detection(args.camera, CaptureView(args.view), args.target)


if __name__ == "__main__":
    main()
