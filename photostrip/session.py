"""
Booth session: the single owner of all per-session mutable state.

One session takes ``layout.count`` shots. For each shot:

    start_countdown()
      ├─ sampling task: every 100ms capture a 480px still into the current clip
      │                 (sliding window, so the clip spans the timer duration)
      └─ countdown task: tick once a second, then take_photo()
                           ├─ capture the full-resolution still
                           ├─ stop sampling
                           └─ seal the clip with the still repeated (freeze)

After the last shot, finish() composes the photo strip and assembles the
moving strip from the sealed clips. retake()/cancel() stop every task the
session owns, including an in-flight assembly, and drop buffered frames.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

from .capture import FrameSource, capture_frame
from .config import CONFIG
from .errors import EmptyInput, PhotoBoothError, SourceNotReady, VideoAssemblyFailed
from .filters import parse_filter
from .layout import compose
from .models import (
    RGB, Clip, CompositeRaster, EffectConfig, Filter, FrameColor, LayoutKind,
    LayoutSpec, MaskKind, StillRaster, to_rgb,
)
from .tracking import FaceDetector, FaceTracker
from .video import VideoResult, assemble

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    IDLE = "idle"
    COUNTDOWN = "countdown"
    PROCESSING = "processing"
    RESULT = "result"


@dataclass(frozen=True)
class BoothSettings:
    layout: LayoutKind = LayoutKind.GRID2X2
    filter_expression: str = Filter.NORMAL.value
    mask: MaskKind = MaskKind.NONE
    frame_color: RGB = FrameColor.WHITE.rgb
    title: str = CONFIG["title"]
    timer_duration_s: int = CONFIG["timer_duration_s"]
    record_video: bool = True

    def __post_init__(self):
        object.__setattr__(self, "layout", LayoutKind.parse(self.layout))
        object.__setattr__(self, "mask", MaskKind(self.mask))
        object.__setattr__(self, "frame_color", to_rgb(self.frame_color))
        if isinstance(self.filter_expression, Filter):
            object.__setattr__(self, "filter_expression", self.filter_expression.value)
        # Raises ValueError now rather than inside the sampling task
        parse_filter(self.filter_expression)
        if self.timer_duration_s <= 0:
            raise ValueError(f"timer_duration_s must be positive, got {self.timer_duration_s}")

    @property
    def timer_duration_ms(self) -> int:
        return self.timer_duration_s * 1000

    def layout_spec(self, qr_badge: Optional[StillRaster] = None) -> LayoutSpec:
        return LayoutSpec(kind=self.layout, frame_color=self.frame_color,
                          title=self.title, qr_badge=qr_badge)


@dataclass
class SessionResult:
    composite: Optional[CompositeRaster] = None
    video: Optional[VideoResult] = None
    errors: List[PhotoBoothError] = field(default_factory=list)


class BoothSession:
    """Drives one photo-booth session against a live frame source."""

    def __init__(self, source: FrameSource, settings: Optional[BoothSettings] = None,
                 detector: Optional[FaceDetector] = None, *,
                 sampling_interval_ms: Optional[float] = None,
                 tick_seconds: float = 1.0,
                 encoder_factory=None):
        self.source = source
        self.settings = settings or BoothSettings()
        self.tracker = FaceTracker(source, detector)
        self.sampling_interval_ms = sampling_interval_ms or CONFIG["sampling_interval_ms"]
        self.tick_seconds = tick_seconds
        self.encoder_factory = encoder_factory

        self.phase = SessionPhase.IDLE
        self.photos: List[StillRaster] = []
        self.clips: List[Tuple[StillRaster, ...]] = []
        self.current_clip = self._new_clip()
        self.skipped_samples = 0
        self.result: Optional[SessionResult] = None

        self._sampling_task: Optional[asyncio.Task] = None
        self._countdown_task: Optional[asyncio.Task] = None
        self._assembly_task: Optional[asyncio.Task] = None
        self._assembly_lock = asyncio.Lock()

    # --- Settings -----------------------------------------------------------

    def configure(self, **changes):
        """Change settings between sessions (e.g. layout=..., mask=...)."""
        if self.phase in (SessionPhase.COUNTDOWN, SessionPhase.PROCESSING):
            raise RuntimeError(f"cannot reconfigure while {self.phase.value}")
        self.settings = replace(self.settings, **changes)
        self.current_clip = self._new_clip()

    def _new_clip(self) -> Clip:
        return Clip.for_timer(self.settings.timer_duration_ms, self.sampling_interval_ms)

    @property
    def photo_config(self) -> EffectConfig:
        return EffectConfig.for_photo(self.settings.filter_expression, self.settings.mask)

    @property
    def video_frame_config(self) -> EffectConfig:
        return EffectConfig.for_video_frame(self.settings.filter_expression, self.settings.mask)

    @property
    def shots_remaining(self) -> int:
        return max(0, self.settings.layout.count - len(self.photos))

    # --- Sampling -----------------------------------------------------------

    def sample_once(self) -> bool:
        """Capture one clip frame. Returns False when the sample was skipped."""
        try:
            still = capture_frame(self.source, self.video_frame_config, self.tracker.latest)
        except SourceNotReady:
            self.skipped_samples += 1
            return False
        except (PhotoBoothError, OSError, ValueError) as exc:
            # One bad frame drops one sample; the sampler keeps ticking
            logger.warning("Clip sample skipped: %s", exc)
            self.skipped_samples += 1
            return False
        self.current_clip.push(still)
        return True

    async def _sample_loop(self):
        loop = asyncio.get_running_loop()
        interval = self.sampling_interval_ms / 1000
        next_tick = loop.time() + interval
        while True:
            await asyncio.sleep(max(0.0, next_tick - loop.time()))
            self.sample_once()
            next_tick += interval
            now = loop.time()
            if next_tick < now:
                # A slow capture must not cause a burst of catch-up samples
                next_tick = now + interval

    def start_sampling(self):
        self.stop_sampling()
        self.current_clip = self._new_clip()
        if self.settings.record_video:
            self._sampling_task = asyncio.get_running_loop().create_task(
                self._sample_loop(), name="clip-sampler")

    def stop_sampling(self):
        task, self._sampling_task = self._sampling_task, None
        if task is not None:
            task.cancel()

    # --- Countdown & shutter ------------------------------------------------

    async def countdown(self, on_tick: Optional[Callable[[int], None]] = None) -> Optional[StillRaster]:
        """Run one countdown with clip sampling and take the photo at zero."""
        self.phase = SessionPhase.COUNTDOWN
        if self.settings.mask is not MaskKind.NONE:
            self.tracker.enable()
        self.start_sampling()
        try:
            for remaining in range(self.settings.timer_duration_s, 0, -1):
                if on_tick is not None:
                    on_tick(remaining)
                await asyncio.sleep(self.tick_seconds)
        except asyncio.CancelledError:
            self.stop_sampling()
            self.current_clip.clear()
            raise
        return self.take_photo()

    def start_countdown(self, on_tick: Optional[Callable[[int], None]] = None) -> asyncio.Task:
        """Fire-and-forget variant of countdown(); cancel via cancel()/retake()."""
        if self._countdown_task is not None and not self._countdown_task.done():
            self._countdown_task.cancel()
        self._countdown_task = asyncio.get_running_loop().create_task(
            self.countdown(on_tick), name="countdown")
        return self._countdown_task

    def take_photo(self) -> Optional[StillRaster]:
        """Capture the full-resolution still and seal the current clip.

        Returns None (and keeps the session going) if the camera had no
        frame; the caller may retry the shot.
        """
        try:
            still = capture_frame(self.source, self.photo_config, self.tracker.latest)
        except SourceNotReady as exc:
            logger.warning("Shutter skipped: %s", exc)
            return None
        finally:
            self.stop_sampling()

        if self.current_clip:
            self.clips.append(self.current_clip.seal(still))
        self.current_clip = self._new_clip()
        self.photos.append(still)
        logger.info("Shot %d/%d captured (%dx%d)", len(self.photos),
                    self.settings.layout.count, still.width, still.height)
        return still

    # --- Results ------------------------------------------------------------

    async def finish(self, qr_badge: Optional[StillRaster] = None) -> SessionResult:
        """Compose the photo strip and, if recorded, the moving strip."""
        if not self.photos:
            raise EmptyInput("finish() called before any photo was taken")

        self.phase = SessionPhase.PROCESSING
        await self.tracker.disable()
        spec = self.settings.layout_spec(qr_badge)
        result = SessionResult()

        logger.info("=== Composing %s strip from %d photos ===", spec.kind.value, len(self.photos))
        result.composite = await asyncio.to_thread(compose, list(self.photos), spec)
        if result.composite is None:
            result.errors.append(EmptyInput("photo strip composed to nothing"))

        if self.settings.record_video and self.clips:
            try:
                result.video = await self.assemble_video(spec)
            except VideoAssemblyFailed as exc:
                logger.warning("Video assembly failed: %s", exc)
                result.errors.append(exc)

        self.result = result
        self.phase = SessionPhase.RESULT
        return result

    async def assemble_video(self, spec: LayoutSpec) -> Optional[VideoResult]:
        """Run one assembly; a second call waits for the first to finish.

        If cancel() stops the assembly, this raises VideoAssemblyFailed
        instead of CancelledError; cancelling the caller itself still
        propagates.
        """
        async with self._assembly_lock:
            task = asyncio.get_running_loop().create_task(
                assemble(list(self.clips), spec, self.settings.timer_duration_ms,
                         encoder_factory=self.encoder_factory),
                name="video-assembly")
            self._assembly_task = task
            try:
                await asyncio.wait([task])
            except asyncio.CancelledError:
                task.cancel()
                raise
            finally:
                self._assembly_task = None
            if task.cancelled():
                raise VideoAssemblyFailed("video assembly was cancelled")
            return task.result()

    async def run(self, on_tick: Optional[Callable[[int], None]] = None,
                  qr_badge: Optional[StillRaster] = None,
                  max_attempts: Optional[int] = None) -> SessionResult:
        """Take every shot for the layout, then finish()."""
        attempts = 0
        max_attempts = max_attempts or self.settings.layout.count * 3
        while self.shots_remaining and attempts < max_attempts:
            attempts += 1
            await self.start_countdown(on_tick)
            if self.shots_remaining:
                await asyncio.sleep(CONFIG["next_shot_delay_ms"] / 1000 * self.tick_seconds)
        return await self.finish(qr_badge)

    # --- Cancellation -------------------------------------------------------

    async def cancel(self):
        """Stop countdown, sampling and any running assembly."""
        tasks = [t for t in (self._countdown_task, self._sampling_task, self._assembly_task)
                 if t is not None and not t.done()]
        self._countdown_task = self._sampling_task = self._assembly_task = None
        for t in tasks:
            t.cancel()
        for t in tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass
        await self.tracker.disable()
        self.current_clip.clear()
        # A finish() in flight moves PROCESSING on to RESULT by itself
        if self.phase is SessionPhase.COUNTDOWN:
            self.phase = SessionPhase.IDLE

    async def retake(self):
        """Throw the session away and return to idle."""
        await self.cancel()
        self.photos.clear()
        self.clips.clear()
        self.result = None
        self.phase = SessionPhase.IDLE
