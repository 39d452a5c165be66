"""Unit tests for layout planning and composite rendering."""

import numpy as np
import pytest
from PIL import Image

from photostrip.layout import compose, fit_cell, footer_date, plan_layout
from photostrip.models import (
    CompositeRaster, FrameColor, LayoutKind, LayoutSpec, OutputFormat, StillRaster,
)


class TestPlanLayout:

    @pytest.mark.parametrize("kind, count, src, scale, expected", [
        (LayoutKind.GRID2X2, 4, (800, 600), None, (1810, 1570)),
        (LayoutKind.STRIP3, 3, (400, 300), 1.0, (540, 1340)),
        (LayoutKind.GRID2X2, 4, (480, 360), None, (1065, 905)),
        (LayoutKind.SINGLE, 1, (800, 600), None, (940, 900)),
        (LayoutKind.STRIP4, 4, (640, 480), None, (780, 2430)),
        # Grid cells are re-cropped to 4:3
        (LayoutKind.GRID2X2, 4, (640, 360), None, (1170, 1090)),
    ])
    def test_canvas_sizes(self, kind, count, src, scale, expected):
        plan = plan_layout(kind, count, *src, scale_factor=scale)
        assert plan.size == expected

    def test_small_sources_halve_the_chrome(self):
        plan = plan_layout(LayoutKind.STRIP3, 3, 480, 360)
        assert plan.scale == 0.5
        assert (plan.padding, plan.gap, plan.footer) == (35, 35, 80)

    def test_grid_offsets(self):
        plan = plan_layout(LayoutKind.GRID2X2, 4, 800, 600)
        assert plan.offsets == ((70, 70), (940, 70), (70, 740), (940, 740))

    def test_strip_offsets(self):
        plan = plan_layout(LayoutKind.STRIP3, 3, 400, 300, scale_factor=1.0)
        assert plan.offsets == ((70, 70), (70, 440), (70, 810))

    def test_partial_grid_keeps_full_canvas(self):
        plan = plan_layout(LayoutKind.GRID2X2, 2, 800, 600)
        assert plan.size == (1810, 1570)
        assert len(plan.offsets) == 2

    def test_extra_stills_are_ignored(self):
        plan = plan_layout(LayoutKind.SINGLE, 3, 800, 600)
        assert len(plan.offsets) == 1

    @pytest.mark.parametrize("count, w, h", [(0, 800, 600), (4, 0, 600), (4, 800, 0)])
    def test_nothing_to_lay_out(self, count, w, h):
        assert plan_layout(LayoutKind.GRID2X2, count, w, h) is None

    def test_accepts_layout_names(self):
        assert plan_layout("strip3", 3, 800, 600).size == plan_layout(LayoutKind.STRIP3, 3, 800, 600).size


class TestFitCell:

    def test_same_size_is_untouched(self):
        img = Image.new("RGB", (40, 30))
        assert fit_cell(img, 40, 30) is img

    def test_mismatched_still_is_cover_fitted(self):
        img = Image.new("RGB", (200, 100), (0, 0, 255))
        img.paste((255, 0, 0), (0, 0, 30, 100))
        fitted = fit_cell(img, 40, 30)
        assert fitted.size == (40, 30)
        # The red strip lies outside the centered crop
        assert fitted.getpixel((1, 15))[2] > 200


class TestCompose:

    def test_empty_input_returns_none(self):
        assert compose([], LayoutSpec()) is None

    def test_grid_composite(self, make_still):
        stills = [make_still(800, 600, (200, 30, 30)) for _ in range(4)]
        result = compose(stills, LayoutSpec(kind=LayoutKind.GRID2X2, date_text="1/2/2026"))
        assert isinstance(result, CompositeRaster)
        assert result.kind is LayoutKind.GRID2X2
        assert result.format is OutputFormat.PNG
        assert result.size == (1810, 1570)
        img = result.to_image()
        assert img.getpixel((5, 5)) == (255, 255, 255)
        assert img.getpixel((470, 370)) == (200, 30, 30)
        # The gap between cells shows the frame color
        assert img.getpixel((905, 370)) == (255, 255, 255)

    def test_frame_color(self, make_still):
        result = compose([make_still(640, 480)], LayoutSpec(kind="1x1", frame_color="pink"))
        assert result.to_image().getpixel((3, 3)) == FrameColor.PINK.rgb

    def test_single_still_in_strip(self, make_still):
        result = compose([make_still(640, 480)], LayoutSpec(kind=LayoutKind.STRIP3))
        # Strips grow with the number of stills actually given
        assert result.size == (780, 480 + 140 + 160)

    def test_heterogeneous_stills_fill_their_cells(self, make_still):
        stills = [make_still(800, 600, (10, 200, 10)), make_still(400, 400, (10, 10, 200))]
        result = compose(stills, LayoutSpec(kind=LayoutKind.STRIP3), scale_factor=1.0)
        img = result.to_image()
        assert result.size == (940, 600 * 2 + 70 + 140 + 160)
        # Second cell spans the full cell width despite the square source
        assert img.getpixel((80, 760)) == (10, 10, 200)
        assert img.getpixel((860, 760)) == (10, 10, 200)

    @staticmethod
    def _footer(result, footer):
        arr = np.asarray(result.to_image())
        return arr[result.height - footer:, :, :]

    def test_footer_text_on_light_frame_is_dark(self, make_still):
        result = compose([make_still(800, 600)], LayoutSpec(kind="1x1", date_text="3/4/2026"))
        footer = self._footer(result, 160)
        assert footer.min() < 100

    def test_footer_text_on_black_frame_is_light(self, make_still):
        result = compose([make_still(800, 600)],
                         LayoutSpec(kind="1x1", frame_color=FrameColor.BLACK, date_text="3/4/2026"))
        footer = self._footer(result, 160)
        assert footer.max() > 200

    def test_qr_badge_in_footer(self, make_still):
        badge = StillRaster.from_image(Image.new("RGB", (300, 300), (255, 0, 0)))
        stills = [make_still(800, 600) for _ in range(4)]
        result = compose(stills, LayoutSpec(qr_badge=badge, date_text="3/4/2026"))
        img = result.to_image()
        # 100px badge right-aligned to the padding, centered in the 160px footer
        assert img.getpixel((1810 - 70 - 50, 1570 - 80)) == (255, 0, 0)
        assert img.getpixel((1810 - 70 + 5, 1570 - 80)) == (255, 255, 255)

    def test_recomposing_a_composite_is_deterministic(self, make_still):
        spec = LayoutSpec(kind=LayoutKind.SINGLE, date_text="3/4/2026")
        first = compose([make_still(800, 600)], spec)
        assert first.size == (940, 900)

        second = compose([first], spec)
        plan = plan_layout(LayoutKind.SINGLE, 1, *first.size)
        assert second.size == (plan.width, plan.height) == (1080, 1200)

        again = compose([first], spec)
        assert again.size == second.size
        assert plan_layout(LayoutKind.SINGLE, 1, *first.size) == plan
        assert again.to_image().tobytes() == second.to_image().tobytes()


def test_footer_date_override():
    assert footer_date(LayoutSpec(date_text="12/25/2025")) == "12/25/2025"


def test_footer_date_has_no_zero_padding():
    text = footer_date(LayoutSpec())
    month, day, year = text.split("/")
    assert not month.startswith("0") and not day.startswith("0")
    assert len(year) == 4
