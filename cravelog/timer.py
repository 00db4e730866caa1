"""Resistance timer driven by a single button.

One click starts the timer after a short disarm window, a second click inside
that window resets it instead, and a click while running stops it and logs
the elapsed time.
"""

import logging
from enum import Enum
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

DISARM_WINDOW_MS = 250
TICK_MS = 10


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run callbacks later; asyncio loops qualify."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Handle: ...

    def time(self) -> float: ...


class TimerState(Enum):
    IDLE = "idle"
    ARMED = "armed"  # idle, waiting out the disarm window
    RUNNING = "running"


class ResistanceTimer:
    """Single/double click state machine producing logged durations."""

    def __init__(
        self,
        scheduler: Scheduler,
        on_log: Callable[[int], Any],
        disarm_window_ms: int = DISARM_WINDOW_MS,
        tick_ms: int = TICK_MS,
        on_change: Callable[["ResistanceTimer"], None] | None = None,
    ):
        """Initialize the timer.

        Args:
            scheduler: Source of delayed callbacks and the current time.
            on_log: Called with the elapsed milliseconds when a run stops.
            disarm_window_ms: Window in which a second click resets.
            tick_ms: Elapsed-time quantum added on every tick.
            on_change: Called after every state change and tick.
        """
        self._scheduler = scheduler
        self._on_log = on_log
        self._on_change = on_change
        self.disarm_window_ms = disarm_window_ms
        self.tick_ms = tick_ms

        self._state = TimerState.IDLE
        self._elapsed_ms = 0
        self._armed_at: float | None = None
        self._disarm_handle: Handle | None = None
        self._tick_handle: Handle | None = None

        self._transitions: dict[TimerState, Callable[[], None]] = {
            TimerState.IDLE: self._arm,
            TimerState.ARMED: self._click_armed,
            TimerState.RUNNING: self._stop,
        }

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is TimerState.RUNNING

    @property
    def elapsed_ms(self) -> int:
        return self._elapsed_ms

    def click(self) -> None:
        """Handle one button press."""
        self._transitions[self._state]()

    def close(self) -> None:
        """Cancel all pending callbacks and return to idle without logging."""
        self._cancel_disarm()
        self._cancel_tick()
        self._state = TimerState.IDLE

    # ==================== Transitions ====================

    def _arm(self) -> None:
        self._armed_at = self._scheduler.time()
        self._disarm_handle = self._scheduler.call_later(
            self.disarm_window_ms / 1000, self._start
        )
        self._set_state(TimerState.ARMED)

    def _click_armed(self) -> None:
        elapsed = (self._scheduler.time() - self._armed_at) * 1000
        if elapsed >= self.disarm_window_ms:
            # The pending start wins; this click then stops the run
            self._start()
            self._stop()
            return
        self._reset()

    def _reset(self) -> None:
        self._cancel_disarm()
        self._elapsed_ms = 0
        logger.debug("Double click, timer reset")
        self._set_state(TimerState.IDLE)

    def _start(self) -> None:
        self._cancel_disarm()
        self._elapsed_ms = 0
        self._schedule_tick()
        logger.debug("Timer started")
        self._set_state(TimerState.RUNNING)

    def _stop(self) -> None:
        self._cancel_tick()
        elapsed = self._elapsed_ms
        self._set_state(TimerState.IDLE)
        logger.debug(f"Timer stopped at {elapsed}ms")
        if elapsed > 0:
            self._on_log(elapsed)

    # ==================== Scheduling ====================

    def _schedule_tick(self) -> None:
        self._tick_handle = self._scheduler.call_later(self.tick_ms / 1000, self._tick)

    def _tick(self) -> None:
        if self._state is not TimerState.RUNNING:
            return
        self._elapsed_ms += self.tick_ms
        self._schedule_tick()
        self._notify()

    def _cancel_disarm(self) -> None:
        if self._disarm_handle is not None:
            self._disarm_handle.cancel()
            self._disarm_handle = None
        self._armed_at = None

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

    def _set_state(self, state: TimerState) -> None:
        self._state = state
        self._notify()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)
