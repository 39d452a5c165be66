"""Unit tests for shared value types."""

import pytest
from PIL import Image

from photostrip.models import (
    Clip, EffectConfig, FaceEstimate, Filter, FrameColor, LayoutKind, LayoutSpec,
    MaskKind, OutputFormat, StillRaster, clip_capacity, to_rgb,
)


class TestClip:

    def test_capacity_spans_timer(self):
        assert clip_capacity(3000, 100) == 30
        assert clip_capacity(3000, 110) == 28
        assert Clip.for_timer(5000, 100).capacity == 50

    def test_default_capacity(self):
        assert Clip.for_timer().capacity == 30

    def test_sliding_window_drops_oldest(self, make_still):
        clip = Clip(30)
        stills = [make_still(4, 3, (i, i, i)) for i in range(40)]
        for s in stills:
            clip.push(s)
        assert len(clip) == 30
        assert list(clip)[0] is stills[10]
        assert list(clip)[-1] is stills[-1]

    def test_seal_appends_freeze_frames(self, make_still):
        clip = Clip(30)
        for i in range(40):
            clip.push(make_still(4, 3))
        shutter = make_still(4, 3, (255, 255, 255))
        frames = clip.seal(shutter)
        assert len(frames) == 35
        assert all(f is shutter for f in frames[-5:])
        assert isinstance(frames, tuple)

    def test_clear(self, make_still):
        clip = Clip(3)
        clip.push(make_still(4, 3))
        assert clip
        clip.clear()
        assert not clip

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            Clip(0)


class TestEnums:

    @pytest.mark.parametrize("text, kind", [
        ("1x1", LayoutKind.SINGLE), ("strip3", LayoutKind.STRIP3),
        ("1X4", LayoutKind.STRIP4), ("grid", LayoutKind.GRID2X2),
    ])
    def test_layout_parse(self, text, kind):
        assert LayoutKind.parse(text) is kind

    def test_layout_counts(self):
        assert [k.count for k in LayoutKind] == [1, 3, 4, 4]

    def test_unknown_layout(self):
        with pytest.raises(ValueError):
            LayoutKind.parse("3x3")

    def test_output_format(self):
        assert OutputFormat.parse("jpg") is OutputFormat.JPEG
        assert OutputFormat.JPEG.extension == "jpg"

    def test_to_rgb(self):
        assert to_rgb(FrameColor.BLACK) == (26, 26, 26)
        assert to_rgb("sage") == FrameColor.SAGE.rgb
        assert to_rgb("#fff") == (255, 255, 255)
        assert to_rgb((1.0, 2.0, 3.0)) == (1, 2, 3)
        with pytest.raises(ValueError):
            to_rgb("chartreuse")


class TestEffectConfig:

    def test_photo_defaults(self):
        cfg = EffectConfig.for_photo(Filter.SEPIA, "hearts")
        assert cfg.filter_expression == Filter.SEPIA.value
        assert cfg.mask is MaskKind.HEARTS
        assert cfg.output_format is OutputFormat.PNG
        assert cfg.target_width is None

    def test_video_frame_defaults(self):
        cfg = EffectConfig.for_video_frame()
        assert cfg.target_width == 480
        assert cfg.output_format is OutputFormat.JPEG
        assert cfg.quality == pytest.approx(0.85)

    @pytest.mark.parametrize("kwargs", [{"quality": 1.5}, {"target_width": 0},
                                        {"filter_expression": "blur(3px)"}])
    def test_rejects_bad_values(self, kwargs):
        with pytest.raises(ValueError):
            EffectConfig(**kwargs)


def test_face_from_corners():
    est = FaceEstimate.from_corners((100, 50), (300, 250), 640, 480)
    assert est.x == pytest.approx(200 / 640)
    assert est.y == pytest.approx(150 / 480)
    assert est.width == pytest.approx(200 / 640)
    assert est.height == pytest.approx(200 / 480)
    assert est.source_ratio == pytest.approx(4 / 3)


def test_still_raster_from_bytes():
    original = StillRaster.from_image(Image.new("RGB", (12, 9), (5, 6, 7)), OutputFormat.JPEG)
    loaded = StillRaster.from_bytes(original.data)
    assert loaded.size == (12, 9)
    assert loaded.format is OutputFormat.JPEG


def test_layout_spec_darkness():
    assert LayoutSpec(frame_color="black").is_dark
    assert not LayoutSpec(frame_color="#000000").is_dark
    assert not LayoutSpec().is_dark
