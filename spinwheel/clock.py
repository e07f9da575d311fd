"""Animation-frame scheduling.

A clock runs registered callbacks one frame later, one at a time, the way a
browser's ``requestAnimationFrame`` does. The controller only ever asks for
the next frame from inside the current one, so ticks never overlap.
"""
import logging
import threading
from collections import deque

logger = logging.getLogger(__name__)


class FrameHandle:
    __slots__ = ('callback', 'cancelled')

    def __init__(self, callback):
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualClock:
    """Clock advanced by hand. Used by tests and offline rendering."""

    def __init__(self):
        self._pending = deque()
        self.frames_run = 0

    def request_frame(self, callback):
        handle = FrameHandle(callback)
        self._pending.append(handle)
        return handle

    def cancel_frame(self, handle):
        handle.cancel()

    @property
    def pending(self):
        return sum(1 for handle in self._pending if not handle.cancelled)

    def step(self):
        """Run the callbacks registered before this call; returns how many ran"""
        batch = list(self._pending)
        self._pending.clear()
        ran = 0
        for handle in batch:
            if handle.cancelled:
                continue
            handle.callback()
            ran += 1
        self.frames_run += ran
        return ran

    def run(self, max_frames=100000):
        """Step until nothing is pending. Returns the number of steps taken."""
        steps = 0
        while self.pending and steps < max_frames:
            self.step()
            steps += 1
        return steps


class SocketIOClock:
    """Frame clock on top of Flask-SocketIO's background tasks.

    A single background loop is started lazily and exits once no frame is
    pending, so an idle wheel costs nothing.
    """

    def __init__(self, socketio, frame_rate=60):
        self.socketio = socketio
        self.interval = 1.0 / frame_rate
        self._pending = []
        self._running = False
        self._lock = threading.Lock()

    def request_frame(self, callback):
        handle = FrameHandle(callback)
        with self._lock:
            self._pending.append(handle)
            if not self._running:
                self._running = True
                self.socketio.start_background_task(self._run)
        return handle

    def cancel_frame(self, handle):
        handle.cancel()

    def _run(self):
        logger.debug("⏰ Frame loop started")
        while True:
            self.socketio.sleep(self.interval)
            with self._lock:
                batch, self._pending = self._pending, []
                if not batch:
                    self._running = False
                    logger.debug("⏰ Frame loop idle - stopping")
                    return
            for handle in batch:
                if handle.cancelled:
                    continue
                try:
                    handle.callback()
                except Exception as e:
                    logger.error(f"💥 Frame callback error: {e}")
