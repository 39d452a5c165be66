"""Unit tests for the frame capturer."""

import numpy as np
import pytest
from PIL import Image

from photostrip.capture import FrameSource, StaticFrameSource, capture_frame
from photostrip.errors import SourceNotReady
from photostrip.models import EffectConfig, FaceEstimate, MaskKind, OutputFormat


class NoPixelsSource:
    """Advertises dimensions but has nothing to read yet."""
    ready = True
    width = 640
    height = 480

    def read(self):
        return None


def halves_frame(width, height, left=(255, 0, 0), right=(0, 0, 255)):
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, : width // 2] = left
    frame[:, width // 2:] = right
    return frame


class TestStaticFrameSource:

    def test_empty_source_is_not_ready(self):
        src = StaticFrameSource()
        assert not src.ready
        assert (src.width, src.height) == (0, 0)

    def test_accepts_pil_images(self):
        src = StaticFrameSource(Image.new("RGBA", (64, 48)))
        assert src.ready
        assert src.read().shape == (48, 64, 3)

    def test_satisfies_protocol(self):
        assert isinstance(StaticFrameSource(), FrameSource)

    def test_from_path(self, tmp_path):
        path = tmp_path / "frame.png"
        Image.new("RGB", (40, 30), (1, 2, 3)).save(path)
        src = StaticFrameSource.from_path(path)
        assert (src.width, src.height) == (40, 30)


class TestCaptureFrame:

    def test_source_not_ready(self):
        with pytest.raises(SourceNotReady):
            capture_frame(StaticFrameSource(), EffectConfig())

    def test_source_without_pixels(self):
        with pytest.raises(SourceNotReady):
            capture_frame(NoPixelsSource(), EffectConfig())

    def test_wide_frame_is_cropped_to_four_by_three(self, make_frame):
        still = capture_frame(StaticFrameSource(make_frame(1920, 1080)), EffectConfig())
        assert still.size == (1440, 1080)
        assert still.format is OutputFormat.PNG
        assert still.to_image().size == (1440, 1080)

    def test_video_frame_config_resizes_and_encodes_jpeg(self, make_frame):
        still = capture_frame(StaticFrameSource(make_frame(1920, 1080)),
                              EffectConfig.for_video_frame())
        assert still.size == (480, 360)
        assert still.format is OutputFormat.JPEG
        assert still.data[:2] == b"\xff\xd8"

    def test_output_is_mirrored(self):
        still = capture_frame(StaticFrameSource(halves_frame(800, 600)), EffectConfig())
        img = still.to_image()
        assert img.getpixel((10, 300)) == (0, 0, 255)
        assert img.getpixel((790, 300)) == (255, 0, 0)

    def test_filter_is_applied(self, make_frame):
        still = capture_frame(StaticFrameSource(make_frame(320, 240)),
                              EffectConfig(filter_expression="grayscale(100%)"))
        arr = np.asarray(still.to_image()).astype(int)
        assert np.abs(arr[..., 0] - arr[..., 2]).max() <= 1

    def test_mask_follows_mirrored_face(self):
        black = np.zeros((600, 800, 3), dtype=np.uint8)
        # Face on the sensor's left third shows up on the still's right side
        est = FaceEstimate(x=0.25, y=0.5, width=0.35, height=0.2,
                           source_width=800, source_height=600)
        still = capture_frame(StaticFrameSource(black),
                              EffectConfig(mask=MaskKind.HEARTS), est)
        img = still.to_image()
        # Anchor (600, 228); middle heart one vertical radius (60px) above
        r, g, b = img.getpixel((600, 168))
        assert r > 200
        assert img.getpixel((200, 168)) == (0, 0, 0)

    def test_mask_without_face_uses_default_anchor(self):
        black = np.zeros((480, 640, 3), dtype=np.uint8)
        still = capture_frame(StaticFrameSource(black), EffectConfig(mask="stars"))
        r, g, b = still.to_image().getpixel((320, 96))
        assert r > 200 and g > 150
