"""Shared pytest configuration and fixtures for the photostrip test suite."""

import shutil

import numpy as np
import pytest
from PIL import Image

from photostrip.models import OutputFormat, StillRaster


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_collection_modifyitems(config, items):
    """Skip ffmpeg tests when the executable is not installed."""
    if shutil.which("ffmpeg"):
        return
    skip_ffmpeg = pytest.mark.skip(reason="ffmpeg not found on PATH")
    for item in items:
        if "ffmpeg" in item.keywords:
            item.add_marker(skip_ffmpeg)


# =============================================================================
# Shared Fixtures
# =============================================================================

def gradient_frame(width, height):
    """RGB uint8 frame: red ramps left to right, green top to bottom."""
    xs = np.linspace(0, 255, width, dtype=np.float32)
    ys = np.linspace(0, 255, height, dtype=np.float32)
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[..., 0] = xs[np.newaxis, :]
    frame[..., 1] = ys[:, np.newaxis]
    frame[..., 2] = 128
    return frame


def solid_still(width, height, color=(120, 60, 200), fmt=OutputFormat.PNG):
    return StillRaster.from_image(Image.new("RGB", (width, height), color), fmt)


@pytest.fixture
def make_frame():
    return gradient_frame


@pytest.fixture
def make_still():
    return solid_still


class FakeEncoder:
    """Stands in for FfmpegEncoder; records how the assembler drove it."""

    instances = []

    def __init__(self, surface, container, codec):
        self.surface = surface
        self.container = container
        self.codec = codec
        self.draws_before_start = None
        self.started = False
        self.stopped = False
        self.aborted = False
        self.fail_on_stop = None
        FakeEncoder.instances.append(self)

    def start(self):
        self.draws_before_start = self.surface.draw_count
        self.started = True

    def stop(self):
        self.stopped = True
        if self.fail_on_stop is not None:
            raise self.fail_on_stop
        return b"fake-video"

    def abort(self):
        self.aborted = True


@pytest.fixture
def fake_encoder():
    FakeEncoder.instances = []
    return FakeEncoder
