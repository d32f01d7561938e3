import pytest

from hold_timer import HoldTimer, format_duration
from plank_pose import StabilityGate


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def test_accumulates_holds(clock):
    timer = HoldTimer(clock=clock)
    timer.start()
    clock.advance(12)
    assert timer.elapsed() == 12
    assert timer.stop() == 12

    clock.advance(5)
    timer.start()
    clock.advance(20)
    timer.stop()

    assert timer.total_seconds == 32
    assert timer.longest_seconds == 20
    assert timer.hold_count == 2
    assert not timer.running


def test_start_and_stop_are_idempotent(clock):
    timer = HoldTimer(clock=clock)
    assert timer.stop() == 0.0
    timer.start()
    clock.advance(3)
    timer.start()
    clock.advance(3)
    assert timer.stop() == 6
    assert timer.hold_count == 1


def test_target_completion(clock):
    timer = HoldTimer(clock=clock, target_seconds=30)
    timer.start()
    clock.advance(20)
    timer.stop()
    timer.start()
    clock.advance(9)
    assert not timer.completed
    clock.advance(1)
    assert timer.accumulated() == 30
    assert timer.completed


def test_reset(clock):
    timer = HoldTimer(clock=clock)
    timer.start()
    clock.advance(4)
    timer.reset()
    assert not timer.running
    assert timer.accumulated() == 0
    assert timer.hold_count == 0


@pytest.mark.parametrize('target', [0, -5])
def test_rejects_bad_target(target):
    with pytest.raises(ValueError):
        HoldTimer(target_seconds=target)


def test_driven_by_gate_events(clock):
    timer = HoldTimer(clock=clock)
    gate = StabilityGate(stability_frames=2, grace_period_frames=3,
                         on_acquired=timer.start, on_lost=timer.stop)
    for verdict in (True, True):
        gate.update(verdict)
        clock.advance(0.1)
    assert timer.running
    clock.advance(10)
    for _ in range(3):
        gate.update(False)
    assert not timer.running
    assert timer.total_seconds == pytest.approx(10.1)


def test_no_new_holds_after_target(clock):
    timer = HoldTimer(clock=clock, target_seconds=10)
    gate = StabilityGate(stability_frames=1, grace_period_frames=1,
                         on_acquired=timer.start, on_lost=timer.stop)
    gate.update(True)
    clock.advance(11)
    assert timer.completed
    timer.stop()

    gate.update(False)
    gate.update(True)
    clock.advance(3)
    gate.update(False)

    assert not timer.running
    assert timer.hold_count == 1
    assert timer.total_seconds == 11
    assert timer.longest_seconds == 11


def test_reset_allows_new_session_after_target(clock):
    timer = HoldTimer(clock=clock, target_seconds=5)
    timer.start()
    clock.advance(5)
    timer.stop()
    timer.reset()
    timer.start()
    assert timer.running
    assert timer.hold_count == 1


@pytest.mark.parametrize('seconds, text', [(0, '00:00'), (59.9, '00:59'), (61, '01:01'), (-3, '00:00')])
def test_format_duration(seconds, text):
    assert format_duration(seconds) == text
