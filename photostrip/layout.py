"""
Composite Layout Engine: arranges N stills into one strip or grid.

Canvas anatomy (Strip3 shown; Grid2x2 puts cells in two columns):

    ┌──────────────────────┐
    │       padding        │
    │  ┌────────────────┐  │
    │  │     cell 1     │  │
    │  └────────────────┘  │
    │         gap          │
    │  ┌────────────────┐  │
    │  │     cell 2     │  │
    │  └────────────────┘  │
    │         gap          │
    │  ┌────────────────┐  │
    │  │     cell 3     │  │
    │  └────────────────┘  │
    │       padding        │
    ├──────────────────────┤
    │  let's take a pic    │  footer: title + date, optional QR badge
    │      10/18/2026  [QR]│
    └──────────────────────┘

Cell size comes from the first still (Grid2x2 re-crops it to 4:3). Any still
whose size differs is cover-cropped and resized to the cell, so mismatched
inputs never distort the grid.

Padding, gap and footer are halved for sources narrower than 500px: the
same engine renders full-resolution photo strips and 480px video frames, and
both should have the same proportions.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

from .config import CONFIG
from .geometry import cover_crop
from .models import CompositeRaster, LayoutKind, LayoutSpec, OutputFormat, StillRaster

logger = logging.getLogger(__name__)

GRID_CELL_RATIO = 4 / 3


@dataclass(frozen=True)
class LayoutPlan:
    """Everything about a composite except its pixels."""
    width: int
    height: int
    cell_width: int
    cell_height: int
    padding: int
    gap: int
    footer: int
    scale: float
    offsets: Tuple[Tuple[int, int], ...]

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


def scale_for_source(source_width: int) -> float:
    if source_width < CONFIG["small_source_width"]:
        return CONFIG["small_source_scale"]
    return 1.0


def cell_size(kind: LayoutKind, source_w: int, source_h: int) -> Tuple[int, int]:
    if kind is LayoutKind.GRID2X2:
        crop = cover_crop(source_w, source_h, GRID_CELL_RATIO)
        return crop.width, crop.height
    return source_w, source_h


def plan_layout(kind, count: int, source_w: int, source_h: int,
                scale_factor: Optional[float] = None) -> Optional[LayoutPlan]:
    """Compute canvas size and cell offsets for ``count`` stills.

    Pure function of its inputs. Returns None when there is nothing to lay
    out (zero stills or zero-sized cells).
    """
    kind = LayoutKind.parse(kind)
    if count <= 0 or source_w <= 0 or source_h <= 0:
        return None

    scale = scale_for_source(source_w) if scale_factor is None else scale_factor
    padding = int(round(CONFIG["padding"] * scale))
    gap = int(round(CONFIG["gap"] * scale))
    footer = int(round(CONFIG["footer_height"] * scale))
    cw, ch = cell_size(kind, source_w, source_h)

    if kind is LayoutKind.SINGLE:
        n = 1
        width = cw + padding * 2
        height = ch + padding * 2 + footer
        offsets = [(padding, padding)]
    elif kind is LayoutKind.GRID2X2:
        n = 4
        width = cw * 2 + gap + padding * 2
        height = ch * 2 + gap + padding * 2 + footer
        offsets = [
            (padding + (i % 2) * (cw + gap), padding + (i // 2) * (ch + gap))
            for i in range(n)
        ]
    else:
        n = count
        width = cw + padding * 2
        height = ch * n + gap * (n - 1) + padding * 2 + footer
        offsets = [(padding, padding + i * (ch + gap)) for i in range(n)]

    if count > n:
        logger.warning("Layout %s holds %d stills; ignoring %d extra",
                       kind.value, n, count - n)
    offsets = offsets[:min(count, n)]

    return LayoutPlan(width=width, height=height, cell_width=cw, cell_height=ch,
                      padding=padding, gap=gap, footer=footer, scale=scale,
                      offsets=tuple(offsets))


def fit_cell(image: Image.Image, cell_w: int, cell_h: int) -> Image.Image:
    """Cover-fit ``image`` into a cell, cropping the overflow evenly."""
    if image.size == (cell_w, cell_h):
        return image
    crop = cover_crop(image.width, image.height, cell_w / cell_h)
    fitted = image.crop(crop.box)
    if fitted.size != (cell_w, cell_h):
        fitted = fitted.resize((cell_w, cell_h), Image.LANCZOS)
    return fitted


@lru_cache(maxsize=16)
def load_font(size: int):
    """First usable TrueType font from CONFIG["font_paths"], else Pillow's default."""
    for fp in CONFIG["font_paths"]:
        if fp.exists():
            try:
                return ImageFont.truetype(str(fp), size)
            except OSError:
                continue
    return ImageFont.load_default(size=size)


def footer_date(layout: LayoutSpec) -> str:
    if layout.date_text is not None:
        return layout.date_text
    today = datetime.date.today()
    return f"{today.month}/{today.day}/{today.year}"


def _draw_footer(canvas: Image.Image, plan: LayoutPlan, layout: LayoutSpec):
    s = plan.scale
    base = CONFIG["text_color_light"] if layout.is_dark else CONFIG["text_color_dark"]
    title_font = load_font(max(1, int(round(CONFIG["title_font_size"] * s))))
    date_font = load_font(max(1, int(round(CONFIG["date_font_size"] * s))))

    cx = plan.width / 2
    text_y = plan.height - plan.footer / 2 - CONFIG["footer_text_offset"] * s
    date_y = text_y + CONFIG["date_line_offset"] * s

    # Text goes on its own layer so the date can be drawn translucent
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    if layout.title:
        draw.text((cx, text_y), layout.title, fill=base + (255,), font=title_font, anchor="mm")
    date_alpha = int(round(255 * CONFIG["date_alpha"]))
    draw.text((cx, date_y), footer_date(layout), fill=base + (date_alpha,), font=date_font, anchor="mm")
    canvas.alpha_composite(layer)


def _draw_badge(canvas: Image.Image, plan: LayoutPlan, badge: StillRaster):
    size = max(1, int(round(CONFIG["qr_size"] * plan.scale)))
    img = badge.to_image("RGBA")
    img.thumbnail((size, size), Image.LANCZOS)
    x = plan.width - plan.padding - img.width
    y = plan.height - plan.footer + (plan.footer - img.height) // 2
    canvas.alpha_composite(img, (x, y))


def compose(rasters: Sequence[StillRaster], layout: LayoutSpec,
            scale_factor: Optional[float] = None) -> Optional[CompositeRaster]:
    """Compose ``rasters`` into one PNG strip or grid.

    Returns None for empty input instead of drawing a zero-sized canvas.
    ``scale_factor`` overrides the automatic small-source scaling.
    """
    if not rasters:
        logger.warning("compose() called with no stills; nothing to draw")
        return None

    images: List[Image.Image] = [r.to_image() for r in rasters]
    source_w, source_h = images[0].size
    plan = plan_layout(layout.kind, len(images), source_w, source_h, scale_factor)
    if plan is None or plan.width <= 0 or plan.height <= 0:
        logger.warning("compose() computed an empty canvas; nothing to draw")
        return None

    canvas = Image.new("RGBA", plan.size, layout.frame_color + (255,))
    for img, (x, y) in zip(images, plan.offsets):
        canvas.paste(fit_cell(img, plan.cell_width, plan.cell_height), (x, y))

    _draw_footer(canvas, plan, layout)
    if layout.qr_badge is not None:
        _draw_badge(canvas, plan, layout.qr_badge)

    result = CompositeRaster.from_image(canvas.convert("RGB"), OutputFormat.PNG, kind=layout.kind)
    logger.debug("Composed %s: %d stills -> %dx%d",
                 layout.kind.value, len(plan.offsets), result.width, result.height)
    return result
