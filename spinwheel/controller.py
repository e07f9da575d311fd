"""The spin state machine: Idle -> Spinning -> (settle) -> Idle."""
import logging
import random
import threading
from datetime import datetime

from .errors import AlreadySpinningError, WheelError
from .models import IDLE, SpinFrame, SpinOutcome, Spinning
from .planner import DEFAULT_POINTER_OFFSET, SpinPlanner, sector_at
from .selector import select

logger = logging.getLogger(__name__)


class SpinController:
    """Owns the wheel orientation and the one spin allowed in flight.

    ``item_source`` is called for a fresh snapshot of items each time one is
    needed (idle repaints and spin requests). A spin keeps the snapshot it
    started with, so edits made mid-flight show up on the next cycle.

    ``on_settle`` receives exactly one ``SpinOutcome`` per completed spin,
    carrying the winner drawn at spin start. ``on_tick`` receives a
    ``SpinFrame`` after every animation tick.
    """

    def __init__(self, item_source, clock, planner=None, renderer=None, rng=None,
                 on_settle=None, on_tick=None, min_turns=3, max_turns=5,
                 initial_angle=0.0, selector=select):
        if max_turns < min_turns:
            raise ValueError('max_turns must be >= min_turns')
        self._item_source = item_source
        self._clock = clock
        self._planner = planner or SpinPlanner(min_turns=min_turns)
        self._renderer = renderer
        self._rng = rng or random.Random()
        self._select = selector
        self.on_settle = on_settle
        self.on_tick = on_tick
        self.min_turns = min_turns
        self.max_turns = max_turns

        self._angle = float(initial_angle)
        self._state = IDLE
        self._frames = None
        self._frame_handle = None
        self._redraw_handle = None
        self._highlighted = None
        self._closed = False
        self._lock = threading.RLock()
        self.total_spins = 0

        if renderer is not None:
            renderer.on_asset_ready = self._on_asset_ready

    @property
    def state(self):
        return self._state

    @property
    def is_spinning(self):
        return self._state.spinning

    @property
    def angle(self):
        return self._angle

    @property
    def pointer_offset(self):
        return getattr(self._planner, 'pointer_offset', DEFAULT_POINTER_OFFSET)

    @property
    def highlighted_item(self):
        return self._highlighted

    @property
    def closed(self):
        return self._closed

    def request_spin(self, strict=False):
        """Start a spin and return its ``Spinning`` state.

        While a spin is in flight the request is ignored and ``None`` is
        returned, or ``AlreadySpinningError`` is raised when ``strict``.
        Selection and planning errors propagate and leave the wheel idle.
        """
        with self._lock:
            if self._closed:
                raise WheelError('Spin controller is closed')
            if self._state.spinning:
                logger.warning(f"🔄 Spin request ignored: spin #{self._state.spin_number} still in flight")
                if strict:
                    raise AlreadySpinningError()
                return None

            items = tuple(self._item_source())
            winner_index = self._select(items, rng=self._rng)
            flourish = self._rng.randint(self.min_turns, self.max_turns)
            trajectory = self._planner.plan(self._angle, winner_index, len(items), flourish)

            self.total_spins += 1
            state = Spinning(
                winner=items[winner_index],
                winner_index=winner_index,
                target_angle=trajectory.target_angle,
                started_at=datetime.now(),
                items=items,
                trajectory=trajectory,
                spin_number=self.total_spins,
            )
            self._state = state
            self._frames = trajectory.frames()
            if self._redraw_handle is not None:
                self._clock.cancel_frame(self._redraw_handle)
                self._redraw_handle = None
            self._frame_handle = self._clock.request_frame(self._on_frame)

        logger.info(f"🎲 Spin #{state.spin_number} STARTED: {len(items)} items, "
                    f"{trajectory.turns:.2f} turns, ~{trajectory.estimated_frames} frames")
        return state

    def _on_frame(self):
        with self._lock:
            self._frame_handle = None
            state = self._state
            if self._closed or not state.spinning:
                return
            angle, velocity = next(self._frames)
            self._angle = angle
            state.frames_applied += 1
            index = sector_at(angle, len(state.items), self.pointer_offset)
            self._highlighted = state.items[index]
            frame = SpinFrame(angle, velocity, index, self._highlighted)

        self._paint(state.items)
        if self.on_tick is not None:
            try:
                self.on_tick(frame)
            except Exception as e:
                logger.error(f"💥 Tick listener error: {e}")

        if frame.settled:
            self._settle(state)
            return
        with self._lock:
            if not self._closed and self._state is state:
                self._frame_handle = self._clock.request_frame(self._on_frame)

    def _settle(self, state):
        with self._lock:
            if self._closed or self._state is not state:
                logger.warning(f"🛑 Spin #{state.spin_number} closed before settling - no winner reported")
                return
        duration = (datetime.now() - state.started_at).total_seconds()
        outcome = SpinOutcome(
            item_id=state.winner.id,
            timestamp=datetime.now(),
            item=state.winner,
            spin_number=state.spin_number,
        )
        logger.info(f"🏆 Spin #{state.spin_number} winner: '{state.winner.label}' ({state.winner.id})")
        try:
            if self.on_settle is not None:
                self.on_settle(outcome)
        except Exception as e:
            logger.error(f"💥 Outcome sink error: {e}")
        finally:
            with self._lock:
                if self._state is state:
                    self._state = IDLE
                    self._frames = None
        logger.info(f"✅ Spin #{state.spin_number} COMPLETED "
                    f"({state.frames_applied} frames, {duration:.1f}s)")

    def _paint(self, items):
        if self._renderer is None:
            return
        try:
            self._renderer.render(items, self._angle)
        except Exception as e:
            logger.error(f"💥 Render error: {e}")

    def render(self):
        """Paint the current state and return the renderer's surface"""
        if self._renderer is None:
            return None
        with self._lock:
            state = self._state
            items = state.items if state.spinning else tuple(self._item_source())
        self._paint(items)
        return self._renderer.surface

    def invalidate(self):
        """Ask for a repaint on the next frame. Spinning wheels repaint every tick anyway."""
        with self._lock:
            if self._closed or self._state.spinning or self._redraw_handle is not None:
                return
            self._redraw_handle = self._clock.request_frame(self._on_redraw)

    def _on_redraw(self):
        with self._lock:
            self._redraw_handle = None
            if self._closed or self._state.spinning:
                return
        self.render()

    def _on_asset_ready(self, reference):
        logger.debug(f"🖼️ Asset ready, scheduling redraw: {reference}")
        self.invalidate()

    def close(self):
        """Stop the tick loop. A spin still in flight is dropped without a settle."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for handle in (self._frame_handle, self._redraw_handle):
                if handle is not None:
                    self._clock.cancel_frame(handle)
            self._frame_handle = self._redraw_handle = None
            if self._state.spinning:
                logger.warning(f"🛑 Spin #{self._state.spin_number} cancelled at {self._angle:.1f}°")
            self._state = IDLE
            self._frames = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
