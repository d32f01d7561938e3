"""
Plank Position Detection
Scores one frame of MediaPipe pose landmarks against a fixed set of
geometric plank rules, and debounces the per-frame verdicts into
"plank acquired" / "plank lost" events for a timer or recorder.
"""

import logging
import math
import numbers
from collections import namedtuple
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

import config

logger = logging.getLogger(__name__)


class PoseLandmark(IntEnum):
    """MediaPipe Pose landmark indices"""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32


NUM_LANDMARKS = len(PoseLandmark)

# Joints used by the checks, per body side
SIDE_JOINTS = {
    'left': {
        'shoulder': PoseLandmark.LEFT_SHOULDER,
        'elbow': PoseLandmark.LEFT_ELBOW,
        'wrist': PoseLandmark.LEFT_WRIST,
        'hip': PoseLandmark.LEFT_HIP,
        'knee': PoseLandmark.LEFT_KNEE,
        'ankle': PoseLandmark.LEFT_ANKLE,
    },
    'right': {
        'shoulder': PoseLandmark.RIGHT_SHOULDER,
        'elbow': PoseLandmark.RIGHT_ELBOW,
        'wrist': PoseLandmark.RIGHT_WRIST,
        'hip': PoseLandmark.RIGHT_HIP,
        'knee': PoseLandmark.RIGHT_KNEE,
        'ankle': PoseLandmark.RIGHT_ANKLE,
    },
}
SIDE_CHAIN = ('shoulder', 'hip', 'knee', 'ankle')

FRONT_CRITICAL = (
    PoseLandmark.NOSE,
    PoseLandmark.LEFT_SHOULDER, PoseLandmark.RIGHT_SHOULDER,
    PoseLandmark.LEFT_HIP, PoseLandmark.RIGHT_HIP,
)
FRONT_OPTIONAL = (
    PoseLandmark.LEFT_ELBOW, PoseLandmark.RIGHT_ELBOW,
    PoseLandmark.LEFT_KNEE, PoseLandmark.RIGHT_KNEE,
    PoseLandmark.LEFT_ANKLE, PoseLandmark.RIGHT_ANKLE,
)

# Feedback messages
NO_PERSON_MESSAGE = 'No person detected. Position yourself in frame.'
SIDE_NOT_VISIBLE_MESSAGE = ('Move into frame: turn sideways to the camera and '
                            'show your full body from head to feet.')
FRONT_NOT_VISIBLE_MESSAGE = ('Move into frame: face the camera and keep your '
                             'shoulders, hips and legs visible.')
PERFECT_FORM_MESSAGE = 'Perfect plank form!'
GOOD_FORM_MESSAGE = 'Good plank position - keep it up!'
PLANK_DETECTED_MESSAGE = 'Plank detected - maintain form'


class CaptureView(Enum):
    """Camera placement relative to the user"""
    SIDE = 'side'
    FRONT = 'front'


@dataclass(frozen=True)
class Landmark:
    """One tracked body point in normalized image coordinates"""
    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0


def _is_number(value) -> bool:
    return (isinstance(value, numbers.Real) and not isinstance(value, bool)
            and math.isfinite(value))


def _as_landmark(raw) -> Optional[Landmark]:
    """Convert an estimator landmark into a Landmark, or None if malformed"""
    if isinstance(raw, Landmark):
        return raw
    if raw is None:
        return None

    if isinstance(raw, dict):
        x, y, z, vis = raw.get('x'), raw.get('y'), raw.get('z', 0.0), raw.get('visibility')
    elif isinstance(raw, (tuple, list)):
        if len(raw) != 4:
            return None
        x, y, z, vis = raw
    else:
        x = getattr(raw, 'x', None)
        y = getattr(raw, 'y', None)
        z = getattr(raw, 'z', 0.0)
        vis = getattr(raw, 'visibility', None)

    if not (_is_number(x) and _is_number(y) and _is_number(vis)):
        return None
    if not _is_number(z):
        z = 0.0
    return Landmark(float(x), float(y), float(z), float(vis))


class LandmarkFrame:
    """All landmarks of one detected person, keyed by PoseLandmark.

    Slots that were missing or malformed in the estimator output are simply
    absent; ``get`` returns None for them.
    """

    def __init__(self, points: Dict[PoseLandmark, Landmark]):
        self._points = {PoseLandmark(idx): lm for idx, lm in points.items()}

    @classmethod
    def from_sequence(cls, landmarks) -> Optional['LandmarkFrame']:
        """Build a frame from an ordered 33-entry estimator result.

        Returns None (no person) for an empty, short or non-iterable input.
        """
        if landmarks is None:
            return None
        if isinstance(landmarks, LandmarkFrame):
            return landmarks
        try:
            items = list(landmarks)
        except TypeError:
            return None
        if len(items) < NUM_LANDMARKS:
            return None

        points = {}
        for idx in PoseLandmark:
            lm = _as_landmark(items[idx])
            if lm is not None:
                points[idx] = lm
        return cls(points)

    def get(self, idx) -> Optional[Landmark]:
        return self._points.get(PoseLandmark(idx))

    def __getitem__(self, idx) -> Landmark:
        return self._points[PoseLandmark(idx)]

    def __contains__(self, idx) -> bool:
        return PoseLandmark(idx) in self._points

    def __len__(self) -> int:
        return len(self._points)

    def is_visible(self, idx, min_visibility: float) -> bool:
        lm = self.get(idx)
        return lm is not None and lm.visibility >= min_visibility

    def to_list(self) -> List[Optional[Dict[str, float]]]:
        """Serialize as 33 slots for JSON clients"""
        out = []
        for idx in PoseLandmark:
            lm = self._points.get(idx)
            out.append(None if lm is None else
                       {'x': lm.x, 'y': lm.y, 'z': lm.z, 'visibility': lm.visibility})
        return out


def angle_between(a, b, c) -> float:
    """Interior angle at b (degrees, 0-180) between rays b->a and b->c.

    Only x/y are used; depth is ignored.
    """
    radians = np.arctan2(c.y - b.y, c.x - b.x) - np.arctan2(a.y - b.y, a.x - b.x)
    angle = abs(np.degrees(radians))
    if angle > 180.0:
        angle = 360.0 - angle
    return float(angle)


def _side_chain_visible(frame: LandmarkFrame, side: str, min_visibility: float) -> bool:
    joints = SIDE_JOINTS[side]
    return all(frame.is_visible(joints[part], min_visibility) for part in SIDE_CHAIN)


def landmarks_sufficiently_visible(frame: Optional[LandmarkFrame],
                                   min_visibility: float = config.VISIBILITY_THRESH,
                                   view: CaptureView = CaptureView.SIDE) -> bool:
    """Check the core landmarks are visible enough to classify.

    SIDE: nose plus a full shoulder-hip-knee-ankle chain on either side.
    FRONT: nose, both shoulders and both hips, plus at least
    FRONT_MIN_OPTIONAL_VISIBLE of the elbows/knees/ankles.
    """
    if frame is None:
        return False

    if CaptureView(view) is CaptureView.FRONT:
        if not all(frame.is_visible(idx, min_visibility) for idx in FRONT_CRITICAL):
            return False
        optional = sum(1 for idx in FRONT_OPTIONAL if frame.is_visible(idx, min_visibility))
        return optional >= config.FRONT_MIN_OPTIONAL_VISIBLE

    if not frame.is_visible(PoseLandmark.NOSE, min_visibility):
        return False
    return any(_side_chain_visible(frame, side, min_visibility) for side in SIDE_JOINTS)


@dataclass
class PlankResult:
    """Classification of one frame"""
    is_plank: bool
    confidence: float
    feedback: List[str] = field(default_factory=list)
    has_pose: bool = False
    landmarks: Optional[LandmarkFrame] = None

    @property
    def message(self) -> str:
        """Most important line to display"""
        return self.feedback[0] if self.feedback else ''

    def to_dict(self) -> dict:
        return {
            'is_plank': self.is_plank,
            'confidence': self.confidence,
            'feedback': list(self.feedback),
            'has_pose': self.has_pose,
        }


Violation = namedtuple('Violation', ['message', 'penalty'])

# Points the checks read; any of them may be None in the front view
BodyPoints = namedtuple('BodyPoints', [
    'nose', 'shoulder', 'elbow', 'wrist', 'hip', 'knee', 'ankle',
    'arm_pairs', 'symmetry_pairs',
])


def _midpoint(frame: LandmarkFrame, left, right, min_visibility: float) -> Optional[Landmark]:
    points = [lm for lm in (frame.get(left), frame.get(right))
              if lm is not None and lm.visibility >= min_visibility]
    if not points:
        return None
    return Landmark(
        x=sum(p.x for p in points) / len(points),
        y=sum(p.y for p in points) / len(points),
        z=sum(p.z for p in points) / len(points),
        visibility=min(p.visibility for p in points),
    )


def _hip_below_line(shoulder: Landmark, hip: Landmark, ankle: Landmark) -> bool:
    # Image y grows downward, so "below" means a larger y
    dx = ankle.x - shoulder.x
    if abs(dx) < 1e-9:
        line_y = (shoulder.y + ankle.y) / 2
    else:
        t = (hip.x - shoulder.x) / dx
        line_y = shoulder.y + t * (ankle.y - shoulder.y)
    return hip.y > line_y


class PlankClassifier:
    """Stateless plank classifier for one capture view.

    Confidence starts at 100 and each violated check subtracts its penalty
    and adds one correction hint. A frame passes when confidence is at least
    ``pass_threshold`` and there are at most ``max_violations`` hints.
    """

    def __init__(self, view=CaptureView.SIDE,
                 visibility_thresh: float = config.VISIBILITY_THRESH,
                 pass_threshold: float = config.PASS_THRESHOLD,
                 max_violations: int = config.MAX_VIOLATIONS):
        try:
            self.view = CaptureView(view)
        except ValueError:
            raise ValueError(f"Unknown capture view: {view!r}") from None
        if not 0.0 <= visibility_thresh <= 1.0:
            raise ValueError(f"visibility_thresh must be in [0, 1], got {visibility_thresh}")
        if not 0 <= pass_threshold <= 100:
            raise ValueError(f"pass_threshold must be in [0, 100], got {pass_threshold}")
        if isinstance(max_violations, bool) or not isinstance(max_violations, int) or max_violations < 0:
            raise ValueError(f"max_violations must be a non-negative integer, got {max_violations!r}")

        self.visibility_thresh = visibility_thresh
        self.pass_threshold = pass_threshold
        self.max_violations = max_violations

        if self.view is CaptureView.FRONT:
            self._checks = (
                self._check_front_body_line,
                self._check_legs,
                self._check_elbow_angle,
                self._check_elbow_placement,
                self._check_head,
                self._check_torso,
                self._check_centering,
                self._check_symmetry,
            )
        else:
            self._checks = (
                self._check_side_body_line,
                self._check_legs,
                self._check_elbow_angle,
                self._check_elbow_placement,
                self._check_head,
                self._check_torso,
                self._check_centering,
            )

    def classify(self, landmarks) -> PlankResult:
        """Classify one estimator result (33 landmarks, or None/empty if nobody was found)"""
        frame = LandmarkFrame.from_sequence(landmarks)
        if frame is None:
            return PlankResult(is_plank=False, confidence=0, feedback=[NO_PERSON_MESSAGE])

        if not landmarks_sufficiently_visible(frame, self.visibility_thresh, self.view):
            message = (FRONT_NOT_VISIBLE_MESSAGE if self.view is CaptureView.FRONT
                       else SIDE_NOT_VISIBLE_MESSAGE)
            return PlankResult(is_plank=False, confidence=0, feedback=[message],
                               landmarks=frame)

        body = self._body_points(frame)
        violations = [v for v in (check(body) for check in self._checks) if v is not None]

        confidence = max(0, 100 - sum(v.penalty for v in violations))
        feedback = [v.message for v in violations]
        is_plank = confidence >= self.pass_threshold and len(feedback) <= self.max_violations

        if is_plank:
            if confidence >= config.PERFECT_FORM_CONFIDENCE:
                feedback.insert(0, PERFECT_FORM_MESSAGE)
            elif confidence >= config.GOOD_FORM_CONFIDENCE:
                feedback.insert(0, GOOD_FORM_MESSAGE)
            else:
                feedback.insert(0, PLANK_DETECTED_MESSAGE)

        logger.debug("plank=%s confidence=%s violations=%d", is_plank, confidence, len(violations))
        return PlankResult(is_plank=is_plank, confidence=confidence, feedback=feedback,
                           has_pose=True, landmarks=frame)

    def _body_points(self, frame: LandmarkFrame) -> BodyPoints:
        vis = self.visibility_thresh
        nose = frame.get(PoseLandmark.NOSE)

        if self.view is CaptureView.FRONT:
            left, right = SIDE_JOINTS['left'], SIDE_JOINTS['right']
            mid = {part: _midpoint(frame, left[part], right[part], vis) for part in left}
            arm_pairs = []
            for joints in (left, right):
                if frame.is_visible(joints['elbow'], vis) and frame.is_visible(joints['shoulder'], vis):
                    arm_pairs.append((frame[joints['shoulder']], frame[joints['elbow']]))
            symmetry_pairs = []
            for part in ('shoulder', 'hip', 'knee'):
                if frame.is_visible(left[part], vis) and frame.is_visible(right[part], vis):
                    symmetry_pairs.append((frame[left[part]], frame[right[part]]))
            return BodyPoints(nose=nose, arm_pairs=arm_pairs, symmetry_pairs=symmetry_pairs,
                              **mid)

        # Side view: use the better visible side that clears the gate, left on ties
        candidates = [side for side in ('left', 'right') if _side_chain_visible(frame, side, vis)]
        side = max(candidates, key=lambda s: sum(
            frame[SIDE_JOINTS[s][part]].visibility for part in SIDE_CHAIN))
        # Arm joints are outside the gate; drop them when occluded
        joints = {part: frame[idx] if frame.is_visible(idx, vis) else None
                  for part, idx in SIDE_JOINTS[side].items()}
        arm_pairs = []
        if joints['elbow'] is not None:
            arm_pairs.append((joints['shoulder'], joints['elbow']))
        return BodyPoints(nose=nose, arm_pairs=arm_pairs, symmetry_pairs=[], **joints)

    # 1. Body line
    def _check_side_body_line(self, body: BodyPoints) -> Optional[Violation]:
        angle = angle_between(body.shoulder, body.hip, body.ankle)
        if angle < config.BODY_LINE_MIN:
            if _hip_below_line(body.shoulder, body.hip, body.ankle):
                return Violation('Lift your hips higher - avoid sagging', config.BODY_LINE_PENALTY)
            return Violation('Lower your hips - avoid piking', config.BODY_LINE_PENALTY)
        if angle < config.BODY_LINE_IDEAL_MIN:
            return Violation('Adjust hips for straighter alignment', config.BODY_LINE_MINOR_PENALTY)
        return None

    def _check_front_body_line(self, body: BodyPoints) -> Optional[Violation]:
        feet = body.ankle or body.knee
        if feet is None:
            return None
        offset = body.hip.y - (body.shoulder.y + feet.y) / 2
        if offset > config.FRONT_HIP_OFFSET_MAX:
            return Violation('Lift your hips higher - avoid sagging', config.BODY_LINE_PENALTY)
        if offset < -config.FRONT_HIP_OFFSET_MAX:
            return Violation('Lower your hips - avoid piking', config.BODY_LINE_PENALTY)
        if abs(offset) > config.FRONT_HIP_OFFSET_IDEAL:
            return Violation('Adjust hips for straighter alignment', config.BODY_LINE_MINOR_PENALTY)
        return None

    # 2. Legs
    def _check_legs(self, body: BodyPoints) -> Optional[Violation]:
        if body.hip is None or body.knee is None or body.ankle is None:
            return None
        angle = angle_between(body.hip, body.knee, body.ankle)
        if angle < config.LEG_MIN:
            return Violation('Straighten your legs', config.LEG_PENALTY)
        if angle < config.LEG_IDEAL_MIN:
            return Violation('Lock your knees to straighten your legs', config.LEG_MINOR_PENALTY)
        return None

    # 3. Arms
    def _check_elbow_angle(self, body: BodyPoints) -> Optional[Violation]:
        if body.shoulder is None or body.elbow is None or body.wrist is None:
            return None
        angle = angle_between(body.shoulder, body.elbow, body.wrist)
        for low, high in (config.FOREARM_ELBOW_RANGE, config.STRAIGHT_ARM_ELBOW_RANGE):
            if low <= angle <= high:
                return None
        return Violation('Choose forearm or straight-arm plank', config.ARM_PENALTY)

    def _check_elbow_placement(self, body: BodyPoints) -> Optional[Violation]:
        if not body.arm_pairs:
            return None
        offset = max(abs(elbow.x - shoulder.x) for shoulder, elbow in body.arm_pairs)
        if offset > config.ELBOW_SHOULDER_MAX_OFFSET:
            return Violation('Position arms under shoulders', config.ELBOW_PLACEMENT_PENALTY)
        return None

    # 4. Head
    def _check_head(self, body: BodyPoints) -> Optional[Violation]:
        if abs(body.shoulder.y - body.nose.y) > config.HEAD_MAX_OFFSET:
            return Violation('Keep head in neutral position', config.HEAD_PENALTY)
        return None

    # 5. Torso
    def _check_torso(self, body: BodyPoints) -> Optional[Violation]:
        limit = (config.FRONT_TORSO_MAX_OFFSET if self.view is CaptureView.FRONT
                 else config.TORSO_MAX_OFFSET)
        if abs(body.shoulder.y - body.hip.y) > limit:
            return Violation('Keep body parallel to ground', config.TORSO_PENALTY)
        return None

    # 6. Centering
    def _check_centering(self, body: BodyPoints) -> Optional[Violation]:
        points = [p for p in (body.shoulder, body.hip, body.ankle) if p is not None]
        avg_y = sum(p.y for p in points) / len(points)
        low, high = config.FRAME_CENTER_RANGE
        if avg_y < low or avg_y > high:
            return Violation('Center yourself in frame', config.CENTERING_PENALTY)
        return None

    # 7. Symmetry (front view)
    def _check_symmetry(self, body: BodyPoints) -> Optional[Violation]:
        if not body.symmetry_pairs:
            return None
        offset = max(abs(left.y - right.y) for left, right in body.symmetry_pairs)
        if offset > config.SYMMETRY_MAX_OFFSET:
            return Violation('Keep your weight evenly balanced', config.SYMMETRY_PENALTY)
        return None


_default_classifiers: Dict[CaptureView, PlankClassifier] = {}


def detect_plank_position(landmarks, view=CaptureView.SIDE) -> PlankResult:
    """Classify one frame with the default calibration"""
    view = CaptureView(view)
    if view not in _default_classifiers:
        _default_classifiers[view] = PlankClassifier(view=view)
    return _default_classifiers[view].classify(landmarks)


class GateEvent(Enum):
    ACQUIRED = 'acquired'
    LOST = 'lost'


@dataclass(frozen=True)
class StabilityState:
    consecutive_pass_count: int = 0
    consecutive_fail_count: int = 0
    is_active: bool = False


def advance_stability(state: StabilityState, is_plank: bool,
                      stability_frames: int = config.STABILITY_FRAMES,
                      grace_period_frames: int = config.GRACE_PERIOD_FRAMES
                      ) -> Tuple[StabilityState, Optional[GateEvent]]:
    """Pure debounce transition for one sampled frame.

    Returns the next state and the event fired on this frame, if any.
    Events fire only on the inactive->active and active->inactive edges.
    """
    if is_plank:
        state = replace(state, consecutive_pass_count=state.consecutive_pass_count + 1,
                        consecutive_fail_count=0)
        if not state.is_active and state.consecutive_pass_count >= stability_frames:
            return replace(state, is_active=True), GateEvent.ACQUIRED
        return state, None

    state = replace(state, consecutive_fail_count=state.consecutive_fail_count + 1,
                    consecutive_pass_count=0)
    if state.is_active and state.consecutive_fail_count >= grace_period_frames:
        return replace(state, is_active=False), GateEvent.LOST
    return state, None


class StabilityGate:
    """Debounces per-frame plank verdicts for one session.

    ``stability_frames`` consecutive passing frames acquire the plank;
    ``grace_period_frames`` consecutive failing frames lose it. Both are
    counted in sampled frames, so their duration depends on the caller's
    sampling rate (config.SAMPLE_FPS).

    Not thread-safe: use one gate per session, updated from one thread.
    """

    def __init__(self, stability_frames: int = config.STABILITY_FRAMES,
                 grace_period_frames: int = config.GRACE_PERIOD_FRAMES,
                 on_acquired: Optional[Callable[[], None]] = None,
                 on_lost: Optional[Callable[[], None]] = None):
        for name, value in (('stability_frames', stability_frames),
                            ('grace_period_frames', grace_period_frames)):
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValueError(f"{name} must be a positive integer, got {value!r}")

        self.stability_frames = stability_frames
        self.grace_period_frames = grace_period_frames
        self.on_acquired = on_acquired
        self.on_lost = on_lost
        self.state = StabilityState()

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    def update(self, result) -> Optional[GateEvent]:
        """Feed one classification (PlankResult or bool); returns the fired event"""
        is_plank = result.is_plank if isinstance(result, PlankResult) else bool(result)
        self.state, event = advance_stability(
            self.state, is_plank, self.stability_frames, self.grace_period_frames)

        if event is GateEvent.ACQUIRED:
            logger.info("Plank acquired after %d stable frames", self.state.consecutive_pass_count)
            if self.on_acquired is not None:
                self.on_acquired()
        elif event is GateEvent.LOST:
            logger.info("Plank lost after %d failing frames", self.state.consecutive_fail_count)
            if self.on_lost is not None:
                self.on_lost()
        return event

    def reset(self):
        """Hard reset for a new session; never fires on_lost"""
        self.state = StabilityState()
        logger.debug("Stability gate reset")
