"""
Geometry helpers shared by every stage.

Four coordinate spaces meet in this pipeline:

    sensor space     raw camera pixels (FrameSource.width x height)
    cropped space    the 4:3 cover-fit crop that becomes a still
    display space    what the live preview element shows after its own
                     object-fit: cover crop (its aspect ratio is independent
                     of the still's)
    normalized space [0, 1] fractions of one of the above

Face estimates arrive normalized to sensor space. Both the baked-in mask and
the live overlay go through ``mask_anchor`` here, so the two can never drift
apart on the anchor/scale formulas; they differ only in which remap feeds it.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

from .config import CONFIG
from .models import CropRect, FaceEstimate


def cover_crop(src_w, src_h, target_ratio=None) -> CropRect:
    """Centered crop of (src_w, src_h) with aspect ``target_ratio`` (w / h).

    Keeps as much of the source as possible: a source wider than the target
    keeps its full height and loses width symmetrically, otherwise it keeps
    its full width and loses height. Values are floored to whole pixels.
    """
    if target_ratio is None:
        target_ratio = CONFIG["target_ratio"]
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"Source dimensions must be positive, got {src_w}x{src_h}")
    if target_ratio <= 0:
        raise ValueError(f"Target ratio must be positive, got {target_ratio}")

    if src_w / src_h > target_ratio:
        crop_h = src_h
        crop_w = src_h * target_ratio
        crop_x = (src_w - crop_w) / 2
        crop_y = 0
    else:
        crop_w = src_w
        crop_h = src_w / target_ratio
        crop_x = 0
        crop_y = (src_h - crop_h) / 2

    return CropRect(
        width=max(1, math.floor(crop_w)),
        height=max(1, math.floor(crop_h)),
        x=math.floor(crop_x),
        y=math.floor(crop_y),
    )


def remap_normalized_point(estimate: FaceEstimate, crop: CropRect,
                           source_width=None, source_height=None) -> FaceEstimate:
    """Re-express a sensor-normalized estimate relative to ``crop``.

    ``source_width``/``source_height`` are the dimensions the crop was taken
    from; they default to the detector's frame size. Sizes scale with the
    crop so the face keeps its true proportion of the cropped still.
    """
    sw = source_width or estimate.source_width
    sh = source_height or estimate.source_height
    return FaceEstimate(
        x=(estimate.x * sw - crop.x) / crop.width,
        y=(estimate.y * sh - crop.y) / crop.height,
        width=estimate.width * sw / crop.width,
        height=estimate.height * sh / crop.height,
        source_width=crop.width,
        source_height=crop.height,
    )


def remap_for_container_cover(estimate: FaceEstimate, container_ratio: float) -> FaceEstimate:
    """Re-express an estimate in the live preview's visible area.

    The preview element cover-fits the video into a container of aspect
    ``container_ratio``; only the axis that gets cropped is remapped.
    """
    video_ratio = estimate.source_ratio
    x, y = estimate.x, estimate.y
    w, h = estimate.width, estimate.height

    if video_ratio > container_ratio:
        # Video is wider than the box: left/right are cut off
        visible = (estimate.source_height * container_ratio) / estimate.source_width
        offset = (1 - visible) / 2
        x = (x - offset) / visible
        w = w / visible
    elif video_ratio < container_ratio:
        # Video is taller than the box: top/bottom are cut off
        visible = (estimate.source_width / container_ratio) / estimate.source_height
        offset = (1 - visible) / 2
        y = (y - offset) / visible
        h = h / visible

    return FaceEstimate(x=x, y=y, width=w, height=h,
                        source_width=estimate.source_width,
                        source_height=estimate.source_height)


def mirror_x(estimate: FaceEstimate) -> FaceEstimate:
    """Flip an estimate horizontally within its own normalized space."""
    return FaceEstimate(x=1.0 - estimate.x, y=estimate.y,
                        width=estimate.width, height=estimate.height,
                        source_width=estimate.source_width,
                        source_height=estimate.source_height)


def mask_anchor(estimate: Optional[FaceEstimate]) -> Tuple[float, float, float]:
    """Decoration anchor ``(x, y, scale)`` in the estimate's normalized space.

    Without a face the decoration sits centered, 30% down, at 1.0x. With one
    it is centered horizontally on the face and lifted above the forehead,
    scaled by face width relative to the reference face width.
    """
    if estimate is None:
        ax, ay = CONFIG["default_anchor"]
        return ax, ay, 1.0
    ax = estimate.x
    ay = estimate.y - estimate.height * CONFIG["halo_lift"]
    scale = estimate.width / CONFIG["reference_face_width"]
    return ax, ay, scale


def even_dimensions(width: int, height: int) -> Tuple[int, int]:
    """Round odd dimensions up by one; most video codecs reject odd sizes."""
    return width + (width % 2), height + (height % 2)
