"""Progress spinner shown while the model streams a tool call.

The spinner runs as its own asyncio task. ``stop()`` signals it, then waits
until the task has cleared its line before returning, so the caller can
print model output without the two interleaving.
"""

import asyncio
import sys
from typing import Optional, TextIO


class Spinner:
    FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
    INTERVAL = 0.1

    def __init__(self, stream: Optional[TextIO] = None, interval: float = INTERVAL):
        self._stream = stream or sys.stdout
        self._interval = interval
        self._stop = asyncio.Event()
        self._cleared = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.frames_drawn = 0

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None:
            return
        self._stop.clear()
        self._cleared.clear()
        self._task = asyncio.ensure_future(self._spin())

    async def _spin(self) -> None:
        i = 0
        try:
            while not self._stop.is_set():
                self._stream.write(f"\r{self.FRAMES[i % len(self.FRAMES)]} ")
                self._stream.flush()
                self.frames_drawn += 1
                i += 1
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._stream.write("\r\033[K")
            self._stream.flush()
            self._cleared.set()

    async def stop(self) -> None:
        """Signal the spinner and wait for its line to be cleared."""
        if self._task is None:
            return
        self._stop.set()
        await self._cleared.wait()
        await self._task
        self._task = None
