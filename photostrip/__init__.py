"""
Photostrip: photo-booth capture, compositing and moving-strip video.

    from photostrip import BoothSession, BoothSettings, StaticFrameSource

    session = BoothSession(StaticFrameSource(frame), BoothSettings(layout="1x3"))
    result = await session.run()
    open("strip.png", "wb").write(result.composite.data)
"""

from .capture import FrameSource, StaticFrameSource, capture_frame
from .config import CONFIG
from .errors import (
    EmptyInput, EncoderError, EncoderUnsupported, PhotoBoothError,
    SourceNotReady, VideoAssemblyFailed,
)
from .geometry import cover_crop, remap_for_container_cover, remap_normalized_point
from .layout import compose, plan_layout
from .models import (
    Clip, CompositeRaster, CropRect, EffectConfig, FaceEstimate, Filter, FrameColor,
    LayoutKind, LayoutSpec, MaskKind, OutputFormat, StillRaster,
)
from .overlay import draw_mask, overlay_style
from .session import BoothSession, BoothSettings, SessionPhase, SessionResult
from .tracking import FaceDetector, FaceTracker
from .video import VideoResult, assemble, negotiate_container

__version__ = "0.1.0"
