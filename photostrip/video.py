"""
Timed Video Assembler: turns the per-shot clips into one moving composite.

Each grid cell has its own clip of ~10 fps samples. Frame i of the video is
the composite of frame i from every clip, so all cells play in lockstep.

Timing works like a screen recording rather than a frame-accurate render:

    [assembler] ─► draws composite i into the surface at its deadline
                                  │
    [DrawSurface] ◄───────────────┘
          │  sampled at a fixed 30 fps by the feeder thread
          ▼
    [ffmpeg stdin] ─► rawvideo rgb24 ─► encoder ─► container on stdout

The number of samples in a clip varies run to run (the sampling timer
jitters), so frames are not written at a fixed per-frame rate. Instead each
composite is held until ``start + (i + 1) * target / n``; the wall-clock
length of the recording, and so the video, is always the target duration.
Time spent drawing a frame comes out of that frame's hold, never out of the
total.
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from .config import CONFIG
from .errors import EncoderError, EncoderUnsupported, PhotoBoothError, VideoAssemblyFailed
from .geometry import even_dimensions
from .layout import compose
from .models import LayoutSpec, StillRaster

logger = logging.getLogger(__name__)

MIME_TYPES = {"mp4": "video/mp4", "webm": "video/webm"}


# ---------------------------------------------------------------------------
# Container negotiation
# ---------------------------------------------------------------------------

# Flags column of an -encoders/-muxers row: " V....D", "  E", " DE", " Ed"
_FLAGS_RE = re.compile(r"[A-Z.]{1,6}d?")


def parse_capability_listing(text: str) -> frozenset:
    """Names from ``ffmpeg -muxers`` or ``ffmpeg -encoders`` output.

    Legend rows (``V..... = Video``), the ``------`` separator and headings
    are skipped. Comma-joined names (``matroska,webm``) are split.
    """
    found = set()
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2 or parts[1] == "=":
            continue
        if not _FLAGS_RE.fullmatch(parts[0]):
            continue
        found.update(name for name in parts[1].split(",") if name)
    return frozenset(found)


@lru_cache(maxsize=4)
def ffmpeg_capabilities(ffmpeg: str) -> Tuple[frozenset, frozenset]:
    """Return (muxers, encoders) the local ffmpeg build supports.

    A missing ffmpeg binary reports no capabilities at all.
    """
    def names(flag):
        try:
            out = subprocess.run(
                [ffmpeg, "-hide_banner", flag],
                capture_output=True, text=True, timeout=10,
            ).stdout
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("Could not query %s %s: %s", ffmpeg, flag, exc)
            return frozenset()
        return parse_capability_listing(out)

    return names("-muxers"), names("-encoders")


def probe_candidate(container: str, codec: str, ffmpeg: Optional[str] = None):
    """Raise EncoderUnsupported unless ffmpeg can both mux and encode the pair."""
    muxers, encoders = ffmpeg_capabilities(ffmpeg or CONFIG["ffmpeg_binary"])
    if container not in muxers:
        raise EncoderUnsupported(container, codec, "no muxer")
    if codec not in encoders:
        raise EncoderUnsupported(container, codec, "no encoder")


def negotiate_container(preferences: Optional[Sequence[Tuple[str, str]]] = None,
                        ffmpeg: Optional[str] = None) -> Tuple[str, str]:
    """First supported (container, codec) from ``preferences``.

    Never fails: if nothing is supported the last candidate is returned
    unconditionally and left to the encoder to accept or reject.
    """
    candidates = list(preferences or CONFIG["container_preferences"])
    if not candidates:
        raise ValueError("container preference list is empty")
    for container, codec in candidates:
        try:
            probe_candidate(container, codec, ffmpeg)
        except EncoderUnsupported as exc:
            logger.debug("Skipping %s", exc)
            continue
        return container, codec
    container, codec = candidates[-1]
    logger.warning("No preferred container supported; falling back to %s/%s", container, codec)
    return container, codec


# ---------------------------------------------------------------------------
# Draw surface & encoder
# ---------------------------------------------------------------------------

class DrawSurface:
    """Single reusable RGB frame buffer shared by the assembler and encoder."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self._lock = threading.Lock()
        self._pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self.draw_count = 0

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def draw(self, image: Image.Image):
        """Replace the surface contents, stretching ``image`` to fit."""
        if image.size != self.size:
            image = image.resize(self.size, Image.BICUBIC)
        pixels = np.asarray(image.convert("RGB"))
        with self._lock:
            self._pixels = pixels
            self.draw_count += 1

    def snapshot(self) -> bytes:
        with self._lock:
            return self._pixels.tobytes()


class FfmpegEncoder:
    """Records a DrawSurface at a fixed frame rate through an ffmpeg pipe.

    Frames go in as raw rgb24 on stdin; the finished container comes back on
    stdout. stdout and stderr are drained on their own threads; without that
    ffmpeg blocks on a full pipe and the feeder deadlocks on stdin.
    """

    def __init__(self, surface: DrawSurface, container: str = "mp4", codec: str = "libx264",
                 fps: Optional[int] = None, bitrate: Optional[str] = None,
                 ffmpeg: Optional[str] = None):
        self.surface = surface
        self.container = container
        self.codec = codec
        self.fps = fps or CONFIG["video_fps"]
        self.bitrate = bitrate or CONFIG["video_bitrate"]
        self.ffmpeg = ffmpeg or CONFIG["ffmpeg_binary"]
        self.frames_written = 0
        self._proc = None
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []
        self._stdout_chunks: List[bytes] = []
        self._stderr_chunks: List[bytes] = []

    def command(self) -> List[str]:
        w, h = self.surface.size
        cmd = [
            self.ffmpeg, "-y", "-hide_banner", "-loglevel", "error",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", f"{w}x{h}",
            "-r", str(self.fps),
            "-i", "pipe:0",
            "-c:v", self.codec,
            "-b:v", self.bitrate,
            "-pix_fmt", "yuv420p",
        ]
        if self.container == "mp4":
            # A pipe is not seekable: write a fragmented MP4 with the index up front
            cmd += ["-movflags", "frag_keyframe+empty_moov"]
        if self.codec.startswith("libvpx"):
            cmd += ["-deadline", "realtime", "-cpu-used", "8"]
        cmd += ["-f", self.container, "pipe:1"]
        return cmd

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def start(self):
        if self._proc is not None:
            raise RuntimeError("encoder already started")
        try:
            self._proc = subprocess.Popen(
                self.command(),
                stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise EncoderError(-1, str(exc).encode()) from exc

        def drain(stream, chunks):
            while True:
                chunk = stream.read(65536)
                if not chunk:
                    break
                chunks.append(chunk)

        self._threads = [
            threading.Thread(target=drain, args=(self._proc.stdout, self._stdout_chunks), daemon=True),
            threading.Thread(target=drain, args=(self._proc.stderr, self._stderr_chunks), daemon=True),
            threading.Thread(target=self._feed, daemon=True),
        ]
        for t in self._threads:
            t.start()
        logger.debug("Encoder started: %s", " ".join(self.command()))

    def _feed(self):
        interval = 1.0 / self.fps
        start = time.monotonic()
        while True:
            try:
                self._proc.stdin.write(self.surface.snapshot())
            except (BrokenPipeError, ValueError, OSError):
                logger.warning("ffmpeg closed its input after %d frames", self.frames_written)
                return
            self.frames_written += 1
            deadline = start + self.frames_written * interval
            if self._stop.wait(max(0.0, deadline - time.monotonic())):
                return

    def _join(self, timeout):
        for t in self._threads:
            t.join(timeout=timeout)

    def stop(self) -> bytes:
        """Finish the recording and return the container bytes."""
        if self._proc is None:
            raise RuntimeError("encoder not started")
        self._stop.set()
        self._threads[2].join(timeout=5)
        try:
            self._proc.stdin.close()
        except OSError:
            pass
        self._proc.wait()
        self._join(timeout=30)
        if self._proc.returncode != 0:
            raise EncoderError(self._proc.returncode, b"".join(self._stderr_chunks))
        data = b"".join(self._stdout_chunks)
        logger.debug("Encoder stopped: %d frames, %d bytes", self.frames_written, len(data))
        return data

    def abort(self):
        """Kill ffmpeg and discard everything. Safe to call more than once."""
        self._stop.set()
        if self._proc is not None and self._proc.poll() is None:
            self._proc.kill()
            self._proc.wait()
        self._join(timeout=5)


EncoderFactory = Callable[[DrawSurface, str, str], "FfmpegEncoder"]


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VideoResult:
    data: bytes
    container: str
    codec: str
    width: int
    height: int
    frame_count: int
    duration_ms: float

    @property
    def mime_type(self) -> str:
        return MIME_TYPES.get(self.container, f"video/{self.container}")

    @property
    def extension(self) -> str:
        return "mp4" if self.container == "mp4" else "webm"


def frame_deadlines(frame_count: int, target_duration_ms: float) -> List[float]:
    """Offsets (ms from start) at which each frame's hold ends.

    The last deadline is always exactly ``target_duration_ms``.
    """
    if frame_count <= 0:
        return []
    interval = target_duration_ms / frame_count
    return [(i + 1) * interval for i in range(frame_count)]


async def build_composites(clips: Sequence[Sequence[StillRaster]], layout: LayoutSpec,
                           scale_factor: Optional[float] = None) -> List[Image.Image]:
    """Compose frame i of every clip into composite i, one at a time.

    Raises VideoAssemblyFailed if any composite step comes back empty or
    errors; a video with a missing frame is never produced.
    """
    if not clips:
        return []
    min_frames = min(len(c) for c in clips)
    frames = []
    for i in range(min_frames):
        stills = [clip[i] for clip in clips]
        try:
            composite = await asyncio.to_thread(compose, stills, layout, scale_factor)
        except (PhotoBoothError, OSError, ValueError) as exc:
            raise VideoAssemblyFailed(f"composite {i + 1}/{min_frames} failed: {exc}") from exc
        if composite is None:
            raise VideoAssemblyFailed(f"composite {i + 1}/{min_frames} came back empty")
        frames.append(composite.to_image())
        if (i + 1) % 10 == 0:
            logger.debug("Composed %d/%d video frames", i + 1, min_frames)
    return frames


async def assemble(clips: Sequence[Sequence[StillRaster]], layout: LayoutSpec,
                   target_duration_ms: float, *,
                   container: Optional[Tuple[str, str]] = None,
                   encoder_factory: Optional[EncoderFactory] = None,
                   scale_factor: Optional[float] = None,
                   clock: Callable[[], float] = time.monotonic) -> Optional[VideoResult]:
    """Assemble ``clips`` into a video lasting ``target_duration_ms``.

    Returns None (no-op) when there are no clips or the shortest clip is
    empty. Raises VideoAssemblyFailed when a composite or the encoder fails.
    Cancelling the awaiting task kills the encoder and discards the output.
    """
    if not clips:
        logger.info("No clips recorded; skipping video")
        return None
    min_frames = min(len(c) for c in clips)
    if min_frames <= 0:
        logger.info("Shortest clip is empty; skipping video")
        return None

    logger.info("=== Assembling video: %d clips x %d frames ===", len(clips), min_frames)
    frames = await build_composites(clips, layout, scale_factor)
    if not frames:
        return None

    width, height = even_dimensions(*frames[0].size)
    if container is None:
        container = await asyncio.to_thread(negotiate_container)
    fmt, codec = container
    factory = encoder_factory or FfmpegEncoder

    surface = DrawSurface(width, height)
    # Draw before the encoder starts so the recording never opens on black
    surface.draw(frames[0])
    encoder = factory(surface, fmt, codec)

    finished = False
    try:
        await asyncio.to_thread(encoder.start)
        await asyncio.sleep(CONFIG["encoder_warmup_ms"] / 1000)

        deadlines = frame_deadlines(len(frames), target_duration_ms)
        start = clock()
        for frame, deadline_ms in zip(frames, deadlines):
            surface.draw(frame)
            remaining = start + deadline_ms / 1000 - clock()
            if remaining > 0:
                await asyncio.sleep(remaining)
        elapsed_ms = (clock() - start) * 1000

        await asyncio.sleep(CONFIG["encoder_flush_ms"] / 1000)
        data = await asyncio.to_thread(encoder.stop)
        finished = True
    except EncoderError as exc:
        raise VideoAssemblyFailed(f"encoder failed: {exc}") from exc
    finally:
        if not finished:
            encoder.abort()

    logger.info("  Video -> %s/%s %dx%d, %d frames over %.0fms (%d bytes)",
                fmt, codec, width, height, len(frames), elapsed_ms, len(data))
    return VideoResult(data=data, container=fmt, codec=codec, width=width, height=height,
                       frame_count=len(frames), duration_ms=elapsed_ms)
