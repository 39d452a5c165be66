"""
Face tracking: keeps the latest face estimate fresh while masks are in use.

The detector itself is an external collaborator; this module only runs it.
``FaceTracker`` is a background asyncio task with an explicit lifecycle:
enable it when a mask is selected and the booth is live, disable it when the
booth goes idle. Disabling cancels the task and clears the estimate.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, runtime_checkable

import numpy as np

from .config import CONFIG
from .models import FaceEstimate

logger = logging.getLogger(__name__)


@runtime_checkable
class FaceDetector(Protocol):
    """Returns at most one face, normalized to ``frame``'s own dimensions."""

    def detect(self, frame: np.ndarray) -> Optional[FaceEstimate]: ...


class FaceTracker:
    """Polls ``detector`` against ``source`` and publishes ``latest``.

    A ``detector`` of None (model not loaded) is allowed and leaves the
    estimate permanently None; masks then fall back to the default anchor.
    """

    def __init__(self, source, detector: Optional[FaceDetector] = None,
                 interval_ms: Optional[float] = None):
        self.source = source
        self.detector = detector
        self.interval = (interval_ms or CONFIG["detection_interval_ms"]) / 1000
        self.latest: Optional[FaceEstimate] = None
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self._task is not None and not self._task.done()

    def enable(self):
        """Start polling. Must be called from a running event loop."""
        if self.enabled:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="face-tracker")

    async def disable(self):
        """Stop polling and forget the last estimate."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.latest = None

    def poll_once(self) -> Optional[FaceEstimate]:
        """Run one detection pass and update ``latest``."""
        if self.detector is None or not self.source.ready:
            return self.latest
        frame = self.source.read()
        if frame is None:
            return self.latest
        try:
            self.latest = self.detector.detect(frame)
        except Exception as exc:
            # A bad frame should never stop tracking; report it as "no face"
            self.failures += 1
            logger.debug("Face detection failed (%d so far): %s", self.failures, exc)
            self.latest = None
        return self.latest

    async def _run(self):
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            self.poll_once()
            next_tick += self.interval
            now = loop.time()
            if next_tick < now:
                # Detection overran; skip missed ticks instead of bursting
                next_tick = now
            await asyncio.sleep(next_tick - now)
