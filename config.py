"""
Shared configuration for Plank Detection.
Edit these values to tune behavior across both desktop and web apps.

These are hand-tuned calibration values, not verified biomechanical
constants. Adjust them per camera angle / deployment.
"""

import os

# Visibility gating
VISIBILITY_THRESH = 0.3            # Minimum landmark visibility (0.0-1.0) for core joints
FRONT_MIN_OPTIONAL_VISIBLE = 4     # Front view: elbows/knees/ankles that must be visible (of 6)

# Verdict
PASS_THRESHOLD = 55                # Minimum confidence (0-100) to count as a plank
MAX_VIOLATIONS = 3                 # More correction hints than this fails the frame
PERFECT_FORM_CONFIDENCE = 85
GOOD_FORM_CONFIDENCE = 70

# Temporal filtering
# Both values are frame counts at SAMPLE_FPS, not seconds. Sampling slower
# stretches the wall-clock time proportionally.
SAMPLE_FPS = 10                    # Classifications per second
STABILITY_FRAMES = 5               # Consecutive passing frames before a plank is acquired
GRACE_PERIOD_FRAMES = 30           # Consecutive failing frames before a plank is lost (~3s)

# Body line: shoulder-hip-ankle angle in degrees (side view)
BODY_LINE_MIN = 150
BODY_LINE_IDEAL_MIN = 160
BODY_LINE_PENALTY = 35
BODY_LINE_MINOR_PENALTY = 20

# Body line: hip height against the shoulder/ankle midpoint (front view)
FRONT_HIP_OFFSET_MAX = 0.10
FRONT_HIP_OFFSET_IDEAL = 0.05

# Legs: hip-knee-ankle angle
LEG_MIN = 155
LEG_IDEAL_MIN = 165
LEG_PENALTY = 25
LEG_MINOR_PENALTY = 10

# Arms: shoulder-elbow-wrist angle must fall into one of two bands
FOREARM_ELBOW_RANGE = (70, 130)
STRAIGHT_ARM_ELBOW_RANGE = (145, 200)
ARM_PENALTY = 20
ELBOW_SHOULDER_MAX_OFFSET = 0.15   # Horizontal elbow/shoulder distance (normalized)
ELBOW_PLACEMENT_PENALTY = 15

# Head/neck: vertical nose/shoulder distance
HEAD_MAX_OFFSET = 0.15
HEAD_PENALTY = 10

# Torso: vertical shoulder/hip distance
TORSO_MAX_OFFSET = 0.15
FRONT_TORSO_MAX_OFFSET = 0.25
TORSO_PENALTY = 15

# Frame centering: average body height must sit inside this band
FRAME_CENTER_RANGE = (0.25, 0.75)
CENTERING_PENALTY = 10

# Left/right symmetry (front view only)
SYMMETRY_MAX_OFFSET = 0.08
SYMMETRY_PENALTY = 15

# MediaPipe Pose
MODEL_COMPLEXITY = 1               # 0=Lite, 1=Full, 2=Heavy
MIN_DETECTION_CONFIDENCE = 0.3
MIN_TRACKING_CONFIDENCE = 0.3

# Overlay
SKELETON_VIS_THRESH = 0.5          # Joints below this are not drawn

# Web app
HOST = os.environ.get('HOST', '0.0.0.0')
PORT = int(os.environ.get('PORT', 5001))   # macOS uses 5000 for AirPlay
