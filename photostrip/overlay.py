"""
Overlay Renderer: hearts and stars floating above the subject's head.

Two consumers, one set of formulas:

  draw_mask()      bakes the decoration into a still that has already been
                   cropped and mirrored; the caller hands it an estimate in
                   that still's own normalized space.
  overlay_style()  positions the live decoration layer over the preview.
                   The layer is mirrored by the display itself, so the X
                   coordinate is returned unmirrored.

Both go through geometry.mask_anchor for anchor and scale. Items sit on an
elliptical arc above the anchor:

                      (0°)
            (-20°)     ♥     (20°)
      (-40°)  ♥               ♥  (40°)
        ♥                         ♥
                      +  <- anchor (face center X, above forehead)

Item sizes are given at a 640px-wide reference canvas and scale linearly with
the canvas width, so a 480px video frame and a 1920px photo look alike.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from PIL import Image, ImageDraw, ImageFilter

from .config import CONFIG
from .geometry import mask_anchor, remap_for_container_cover
from .models import FaceEstimate, MaskKind, hex_to_rgb

# (arc angle deg, base size px, rotation deg, colour)
_HEART_PINK_DARK = "#DB2777"
_HEART_PINK_LIGHT = "#FBCFE8"
_HEART_PINK_MID = "#F472B6"
_STAR_YELLOW = "#FDE047"
_STAR_YELLOW_LIGHT = "#FEF08A"
_STAR_AMBER = "#FCD34D"

CONSTELLATIONS = {
    MaskKind.HEARTS: [
        (-40, 20, -35, _HEART_PINK_DARK),
        (-20, 28, -15, _HEART_PINK_LIGHT),
        (0, 36, 0, _HEART_PINK_MID),
        (20, 28, 15, _HEART_PINK_DARK),
        (40, 20, 35, _HEART_PINK_LIGHT),
    ],
    MaskKind.STARS: [
        (-45, 24, -45, _STAR_YELLOW),
        (-22, 32, -20, _STAR_YELLOW_LIGHT),
        (0, 44, 0, _STAR_AMBER),
        (22, 32, 20, _STAR_YELLOW_LIGHT),
        (45, 24, 45, _STAR_YELLOW),
    ],
}

GLOW_COLORS = {
    MaskKind.HEARTS: (255, 105, 180, 128),
    MaskKind.STARS: (250, 204, 21, 153),
}


@dataclass(frozen=True)
class MaskItem:
    """One decoration, in pixel coordinates of the target raster."""
    x: float
    y: float
    size: float
    rotation: float
    color: str


@dataclass(frozen=True)
class OverlayStyle:
    """Placement of the live decoration layer, as fractions of the container."""
    left: float
    top: float
    scale: float
    opacity: float

    @property
    def position(self) -> Tuple[float, float]:
        return (self.left, self.top)

    def css(self) -> dict:
        """Inline style for a browser-style display layer."""
        return {
            "left": f"{self.left * 100:.3f}%",
            "top": f"{self.top * 100:.3f}%",
            "transform": f"translate(-50%, -50%) scale({self.scale:.4f})",
            "opacity": self.opacity,
        }


# ---------------------------------------------------------------------------
# Layout of the constellation
# ---------------------------------------------------------------------------

def mask_items(kind: MaskKind, width: int, height: int,
               estimate: Optional[FaceEstimate] = None) -> List[MaskItem]:
    """Place the constellation for ``kind`` on a ``width`` x ``height`` raster.

    ``estimate`` must already be normalized to this raster (cropped and, for a
    mirrored still, mirrored).
    """
    kind = MaskKind(kind)
    if kind is MaskKind.NONE:
        return []

    ax, ay, scale = mask_anchor(estimate)
    anchor_x = ax * width
    anchor_y = ay * height
    arc_rx, arc_ry = CONFIG["arc_radius"]
    rx = arc_rx * width * scale
    ry = arc_ry * height * scale
    size_scale = (width / CONFIG["reference_canvas_width"]) * scale

    items = []
    for angle, base_size, rotation, color in CONSTELLATIONS[kind]:
        theta = math.radians(angle)
        items.append(MaskItem(
            x=anchor_x + rx * math.sin(theta),
            y=anchor_y - ry * math.cos(theta),
            size=base_size * size_scale,
            rotation=rotation,
            color=color,
        ))
    return items


def _rotate(points, cx, cy, degrees):
    angle = math.radians(degrees)
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    return [(cx + x * cos_a - y * sin_a, cy + x * sin_a + y * cos_a) for x, y in points]


def heart_points(cx, cy, size, rotation=0.0, steps=48):
    """Polygon for a heart of bounding size ``size`` centered on (cx, cy)."""
    raw = []
    for i in range(steps):
        t = 2 * math.pi * i / steps
        x = 16 * math.sin(t) ** 3
        y = -(13 * math.cos(t) - 5 * math.cos(2 * t) - 2 * math.cos(3 * t) - math.cos(4 * t))
        raw.append((x, y))
    # The curve spans x in [-16, 16] and y in roughly [-12, 17]
    k = size / 34.0
    pts = [(x * k, (y - 2.5) * k) for x, y in raw]
    return _rotate(pts, cx, cy, rotation)


def star_points(cx, cy, size, rotation=0.0, points=5, inner_ratio=0.382):
    """Polygon for a ``points``-pointed star of outer diameter ``size``."""
    outer = size / 2
    inner = outer * inner_ratio
    pts = []
    for i in range(points * 2):
        r = outer if i % 2 == 0 else inner
        a = -math.pi / 2 + i * math.pi / points
        pts.append((r * math.cos(a), r * math.sin(a)))
    return _rotate(pts, cx, cy, rotation)


_SHAPES = {
    MaskKind.HEARTS: heart_points,
    MaskKind.STARS: star_points,
}


# ---------------------------------------------------------------------------
# Baked-in rendering
# ---------------------------------------------------------------------------

def draw_mask(image: Image.Image, kind: MaskKind,
              estimate: Optional[FaceEstimate] = None) -> None:
    """Draw the decoration for ``kind`` onto ``image`` in place.

    A soft glow (blurred copy of the shapes) goes underneath, matching the
    drop-shadow the live layer shows.
    """
    kind = MaskKind(kind)
    items = mask_items(kind, image.width, image.height, estimate)
    if not items:
        return

    shape = _SHAPES[kind]
    glow = Image.new("RGBA", image.size, (0, 0, 0, 0))
    shapes = Image.new("RGBA", image.size, (0, 0, 0, 0))
    glow_draw = ImageDraw.Draw(glow)
    shape_draw = ImageDraw.Draw(shapes)
    for item in items:
        polygon = shape(item.x, item.y, item.size, item.rotation)
        glow_draw.polygon(polygon, fill=GLOW_COLORS[kind])
        shape_draw.polygon(polygon, fill=hex_to_rgb(item.color) + (255,))

    radius = max(1.0, 4 * image.width / CONFIG["reference_canvas_width"])
    glow = glow.filter(ImageFilter.GaussianBlur(radius=radius))
    layer = Image.alpha_composite(glow, shapes)

    base = image.convert("RGBA")
    base.alpha_composite(layer)
    image.paste(base.convert(image.mode))


# ---------------------------------------------------------------------------
# Live display layer
# ---------------------------------------------------------------------------

def overlay_style(estimate: Optional[FaceEstimate], container_ratio: float) -> OverlayStyle:
    """Position and scale of the live decoration over the preview.

    With no face the layer falls back to (0.5, 0.3) at 1.0x, slightly
    translucent, so masks still work when no detector is available.
    """
    if estimate is None or not estimate.source_width or not estimate.source_height:
        ax, ay, scale = mask_anchor(None)
        return OverlayStyle(ax, ay, scale, CONFIG["live_opacity_fallback"])

    # Scale uses the remapped (visible) face width, not the raw detector width
    visible = remap_for_container_cover(estimate, container_ratio)
    ax, ay, scale = mask_anchor(visible)
    return OverlayStyle(ax, ay, scale, CONFIG["live_opacity_tracked"])
