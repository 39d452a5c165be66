"""
Value types shared across the pipeline.

Stills travel between stages as encoded byte buffers (``StillRaster``) so a
clip of a hundred sampled frames stays small in memory; a stage that needs to
draw decodes to a PIL image, works on it, and encodes again.
"""

from __future__ import annotations

import io
import math
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union

from PIL import Image

from .config import CONFIG
from .filters import parse_filter

RGB = Tuple[int, int, int]


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class MaskKind(Enum):
    NONE = "none"
    HEARTS = "hearts"
    STARS = "stars"


class OutputFormat(Enum):
    PNG = "PNG"
    JPEG = "JPEG"

    @property
    def extension(self) -> str:
        return "png" if self is OutputFormat.PNG else "jpg"

    @classmethod
    def parse(cls, value) -> "OutputFormat":
        if isinstance(value, cls):
            return value
        text = str(value).upper()
        if text == "JPG":
            text = "JPEG"
        return cls(text)


class LayoutKind(Enum):
    SINGLE = "1x1"
    STRIP3 = "1x3"
    STRIP4 = "1x4"
    GRID2X2 = "2x2"

    @property
    def count(self) -> int:
        """Number of shots a session takes for this layout."""
        return {"1x1": 1, "1x3": 3, "1x4": 4, "2x2": 4}[self.value]

    @classmethod
    def parse(cls, value) -> "LayoutKind":
        if isinstance(value, cls):
            return value
        text = str(value).lower()
        aliases = {
            "single": cls.SINGLE, "strip3": cls.STRIP3,
            "strip4": cls.STRIP4, "grid2x2": cls.GRID2X2, "grid": cls.GRID2X2,
        }
        if text in aliases:
            return aliases[text]
        return cls(text)


class FrameColor(Enum):
    WHITE = "#FFFFFF"
    BLACK = "#1A1A1A"
    CREAM = "#F5F5F0"
    PINK = "#FFD1DC"
    BLUE = "#D1E8FF"
    SAGE = "#D3E4CD"
    BUTTER = "#FFF4BD"
    LILAC = "#E5D4EF"

    @property
    def rgb(self) -> RGB:
        return hex_to_rgb(self.value)


class Filter(Enum):
    """Named filter presets. Values are filter expressions (see filters.py)."""
    NORMAL = "none"
    GRAYSCALE = "grayscale(100%) contrast(110%)"
    SEPIA = "sepia(50%) contrast(105%)"
    VINTAGE = "sepia(30%) contrast(120%) brightness(90%)"
    SOFT = "brightness(110%) saturate(85%) contrast(90%)"
    RETRO = "contrast(110%) brightness(90%) sepia(30%) saturate(120%) hue-rotate(-10deg)"
    CYBERPUNK = "contrast(115%) brightness(110%) saturate(180%) hue-rotate(190deg)"
    DREAMY = "contrast(90%) brightness(110%) saturate(110%) sepia(20%)"


def hex_to_rgb(value: str) -> RGB:
    text = value.lstrip("#")
    if len(text) == 3:
        text = "".join(c * 2 for c in text)
    if len(text) != 6:
        raise ValueError(f"Not a hex color: {value!r}")
    return (int(text[0:2], 16), int(text[2:4], 16), int(text[4:6], 16))


def to_rgb(color: Union[FrameColor, str, RGB]) -> RGB:
    if isinstance(color, FrameColor):
        return color.rgb
    if isinstance(color, str):
        try:
            return FrameColor[color.upper()].rgb
        except KeyError:
            return hex_to_rgb(color)
    r, g, b = color
    return (int(r), int(g), int(b))


# ---------------------------------------------------------------------------
# Geometry values
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CropRect:
    """Integer crop rectangle in source pixels."""
    width: int
    height: int
    x: int
    y: int

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """PIL-style (left, upper, right, lower)."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


@dataclass(frozen=True)
class FaceEstimate:
    """Face bounding box normalized to the source frame's native dimensions.

    ``x``/``y`` are the box center, ``width``/``height`` its size, all in
    [0, 1]. ``source_width``/``source_height`` are the pixel dimensions of the
    frame the detector ran on.
    """
    x: float
    y: float
    width: float
    height: float
    source_width: int
    source_height: int

    @classmethod
    def from_corners(cls, top_left, bottom_right, source_width, source_height) -> "FaceEstimate":
        """Build an estimate from a pixel-space bounding box."""
        x0, y0 = top_left
        x1, y1 = bottom_right
        return cls(
            x=(x0 + x1) / 2 / source_width,
            y=(y0 + y1) / 2 / source_height,
            width=(x1 - x0) / source_width,
            height=(y1 - y0) / source_height,
            source_width=int(source_width),
            source_height=int(source_height),
        )

    @property
    def source_ratio(self) -> float:
        return self.source_width / self.source_height


# ---------------------------------------------------------------------------
# Effects & rasters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EffectConfig:
    """How a single still is produced from the live frame."""
    filter_expression: str = Filter.NORMAL.value
    mask: MaskKind = MaskKind.NONE
    target_width: Optional[int] = None
    output_format: OutputFormat = OutputFormat.PNG
    quality: float = 0.92
    target_ratio: Optional[float] = None

    def __post_init__(self):
        if isinstance(self.filter_expression, Filter):
            object.__setattr__(self, "filter_expression", self.filter_expression.value)
        parse_filter(self.filter_expression)
        object.__setattr__(self, "mask", MaskKind(self.mask))
        object.__setattr__(self, "output_format", OutputFormat.parse(self.output_format))
        if not 0.0 <= self.quality <= 1.0:
            raise ValueError(f"quality must be in [0, 1], got {self.quality}")
        if self.target_width is not None and self.target_width <= 0:
            raise ValueError(f"target_width must be positive, got {self.target_width}")

    @classmethod
    def for_photo(cls, filter_expression=Filter.NORMAL.value, mask=MaskKind.NONE) -> "EffectConfig":
        """Full-resolution shutter still."""
        return cls(
            filter_expression=filter_expression,
            mask=mask,
            output_format=CONFIG["photo_format"],
            quality=CONFIG["photo_quality"],
        )

    @classmethod
    def for_video_frame(cls, filter_expression=Filter.NORMAL.value, mask=MaskKind.NONE) -> "EffectConfig":
        """Reduced-size sample for the moving composite."""
        return cls(
            filter_expression=filter_expression,
            mask=mask,
            target_width=CONFIG["video_frame_width"],
            output_format=CONFIG["video_frame_format"],
            quality=CONFIG["video_frame_quality"],
        )


def _pil_quality(quality: float) -> int:
    return max(1, min(95, int(round(quality * 100))))


@dataclass(frozen=True)
class StillRaster:
    """An encoded, immutable still image."""
    data: bytes
    width: int
    height: int
    format: OutputFormat = OutputFormat.PNG

    @classmethod
    def from_image(cls, image: Image.Image, fmt=OutputFormat.PNG, quality: float = 0.92, **extra):
        fmt = OutputFormat.parse(fmt)
        buf = io.BytesIO()
        if fmt is OutputFormat.JPEG:
            image.convert("RGB").save(buf, format="JPEG", quality=_pil_quality(quality))
        else:
            image.save(buf, format="PNG")
        return cls(data=buf.getvalue(), width=image.width, height=image.height, format=fmt, **extra)

    @classmethod
    def from_bytes(cls, data: bytes) -> "StillRaster":
        with Image.open(io.BytesIO(data)) as img:
            fmt = OutputFormat.parse(img.format or "PNG")
            return cls(data=bytes(data), width=img.width, height=img.height, format=fmt)

    def to_image(self, mode: str = "RGB") -> Image.Image:
        img = Image.open(io.BytesIO(self.data))
        img.load()
        return img.convert(mode)

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True)
class CompositeRaster(StillRaster):
    """A composed strip/grid, tagged with the layout that produced it."""
    kind: Optional[LayoutKind] = None


@dataclass(frozen=True)
class LayoutSpec:
    kind: LayoutKind = LayoutKind.GRID2X2
    frame_color: RGB = FrameColor.WHITE.rgb
    title: str = CONFIG["title"]
    qr_badge: Optional[StillRaster] = None
    # Fixed footer date; None means "today" at compose time.
    date_text: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", LayoutKind.parse(self.kind))
        object.__setattr__(self, "frame_color", to_rgb(self.frame_color))

    @property
    def is_dark(self) -> bool:
        """True when the frame is the darkest configured color."""
        return self.frame_color == FrameColor.BLACK.rgb


# ---------------------------------------------------------------------------
# Clips
# ---------------------------------------------------------------------------

def clip_capacity(timer_duration_ms: float, sampling_interval_ms: float) -> int:
    return math.ceil(timer_duration_ms / sampling_interval_ms)


class Clip:
    """Sliding-window buffer of sampled stills for one grid cell.

    Holds at most ``capacity`` frames; pushing beyond that drops the oldest,
    so once the countdown ends the clip spans exactly the timer duration.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"Clip capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._frames = deque(maxlen=capacity)

    @classmethod
    def for_timer(cls, timer_duration_ms=None, sampling_interval_ms=None) -> "Clip":
        if timer_duration_ms is None:
            timer_duration_ms = CONFIG["timer_duration_s"] * 1000
        if sampling_interval_ms is None:
            sampling_interval_ms = CONFIG["sampling_interval_ms"]
        return cls(clip_capacity(timer_duration_ms, sampling_interval_ms))

    def push(self, still: StillRaster):
        self._frames.append(still)

    def seal(self, still: StillRaster, freeze_frames: Optional[int] = None) -> Tuple[StillRaster, ...]:
        """Append the shutter still ``freeze_frames`` times and freeze the clip."""
        if freeze_frames is None:
            freeze_frames = CONFIG["freeze_frames"]
        return tuple(self._frames) + (still,) * freeze_frames

    def clear(self):
        self._frames.clear()

    def __len__(self):
        return len(self._frames)

    def __iter__(self):
        return iter(self._frames)

    def __bool__(self):
        return len(self._frames) > 0
