"""Unit tests for the background face tracker."""

import asyncio

import numpy as np
import pytest

from photostrip.capture import StaticFrameSource
from photostrip.models import FaceEstimate
from photostrip.tracking import FaceDetector, FaceTracker

FACE = FaceEstimate(x=0.5, y=0.4, width=0.3, height=0.4, source_width=64, source_height=48)


class FixedDetector:
    def __init__(self, result=FACE):
        self.result = result
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        return self.result


class BrokenDetector:
    def detect(self, frame):
        raise RuntimeError("model crashed")


@pytest.fixture
def source():
    return StaticFrameSource(np.zeros((48, 64, 3), dtype=np.uint8))


def test_detector_protocol():
    assert isinstance(FixedDetector(), FaceDetector)


def test_poll_publishes_estimate(source):
    tracker = FaceTracker(source, FixedDetector())
    assert tracker.poll_once() == FACE
    assert tracker.latest == FACE


def test_missing_detector_never_estimates(source):
    tracker = FaceTracker(source, None)
    assert tracker.poll_once() is None


def test_source_not_ready_keeps_previous(source):
    detector = FixedDetector()
    tracker = FaceTracker(StaticFrameSource(), detector)
    assert tracker.poll_once() is None
    assert detector.calls == 0


def test_detector_failure_reads_as_no_face(source):
    tracker = FaceTracker(source, BrokenDetector())
    tracker.latest = FACE
    assert tracker.poll_once() is None
    assert tracker.failures == 1


@pytest.mark.asyncio
async def test_enable_polls_until_disabled(source):
    detector = FixedDetector()
    tracker = FaceTracker(source, detector, interval_ms=5)
    tracker.enable()
    assert tracker.enabled
    await asyncio.sleep(0.05)
    assert detector.calls >= 2
    assert tracker.latest == FACE

    await tracker.disable()
    assert not tracker.enabled
    assert tracker.latest is None
    calls = detector.calls
    await asyncio.sleep(0.03)
    assert detector.calls == calls


@pytest.mark.asyncio
async def test_enable_twice_keeps_one_task(source):
    tracker = FaceTracker(source, FixedDetector(), interval_ms=5)
    tracker.enable()
    task = tracker._task
    tracker.enable()
    assert tracker._task is task
    await tracker.disable()
