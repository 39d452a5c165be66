"""
Frame Capturer: one live camera frame in, one finished still out.

Pipeline for a single still:

    source frame ─► cover crop (4:3) ─► resize ─► filter ─► mirror ─► mask ─► encode

The mirror step matters: the live preview is always shown mirrored, so the
still is mirrored too, to match what the user saw. The face estimate is
remapped into the cropped space and then mirrored before the mask is drawn,
so the decoration lands on the same head it floated over in the preview.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Union, runtime_checkable

import numpy as np
from PIL import Image

from .config import CONFIG
from .errors import SourceNotReady
from .filters import apply_filter_array
from .geometry import cover_crop, mirror_x, remap_normalized_point
from .models import EffectConfig, FaceEstimate, MaskKind, StillRaster
from .overlay import draw_mask

logger = logging.getLogger(__name__)


@runtime_checkable
class FrameSource(Protocol):
    """Read-only view of the camera, owned by the camera collaborator.

    ``width``/``height`` are the intrinsic pixel dimensions and are zero
    until the first frame arrives. ``read()`` returns the current frame as
    an RGB uint8 array of shape (height, width, 3).
    """

    @property
    def ready(self) -> bool: ...

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def read(self) -> Optional[np.ndarray]: ...


class StaticFrameSource:
    """Frame source backed by a fixed image (files, tests, replays)."""

    def __init__(self, frame: Union[Image.Image, np.ndarray, None] = None):
        self._frame = None
        if frame is not None:
            self.update(frame)

    def update(self, frame: Union[Image.Image, np.ndarray]):
        if isinstance(frame, Image.Image):
            frame = np.asarray(frame.convert("RGB"))
        self._frame = np.ascontiguousarray(frame[..., :3], dtype=np.uint8)

    @classmethod
    def from_path(cls, path) -> "StaticFrameSource":
        with Image.open(path) as img:
            return cls(img.convert("RGB"))

    @property
    def ready(self) -> bool:
        return self._frame is not None and self.width > 0 and self.height > 0

    @property
    def width(self) -> int:
        return 0 if self._frame is None else self._frame.shape[1]

    @property
    def height(self) -> int:
        return 0 if self._frame is None else self._frame.shape[0]

    def read(self) -> Optional[np.ndarray]:
        return self._frame


def capture_frame(source: FrameSource, config: EffectConfig,
                  estimate: Optional[FaceEstimate] = None) -> StillRaster:
    """Produce one cropped, filtered, mirrored, mask-decorated still.

    Raises SourceNotReady when the source has no valid frame yet; callers
    treat that as "skip this sample", not as a failure.
    """
    width, height = source.width, source.height
    if not source.ready or width <= 0 or height <= 0:
        raise SourceNotReady(f"frame source not ready ({width}x{height})")

    frame = source.read()
    if frame is None or frame.size == 0:
        raise SourceNotReady("frame source returned no pixels")
    # Trust the pixels over the advertised size if they disagree
    height, width = frame.shape[:2]

    ratio = config.target_ratio or CONFIG["target_ratio"]
    crop = cover_crop(width, height, ratio)
    pixels = frame[crop.y:crop.y + crop.height, crop.x:crop.x + crop.width, :3]

    if config.target_width and config.target_width != crop.width:
        out_w = config.target_width
        out_h = max(1, round(out_w * crop.height / crop.width))
        pixels = np.asarray(
            Image.fromarray(np.ascontiguousarray(pixels)).resize((out_w, out_h), Image.BICUBIC)
        )

    pixels = apply_filter_array(pixels, config.filter_expression)
    pixels = np.ascontiguousarray(pixels[:, ::-1])
    image = Image.fromarray(pixels)

    if config.mask is not MaskKind.NONE:
        local = None
        if estimate is not None:
            local = mirror_x(remap_normalized_point(estimate, crop, width, height))
        draw_mask(image, config.mask, local)

    still = StillRaster.from_image(image, config.output_format, config.quality)
    logger.debug("Captured %dx%d %s still (crop %s)",
                 still.width, still.height, still.format.value, crop)
    return still
