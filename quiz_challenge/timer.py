"""
Countdown timer primitive and its real-clock driver.
The driver is the only source of asynchronous activity in a quiz session.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional

# Set up logger for timer operations
logger = logging.getLogger(__name__)

DEFAULT_TIME_LIMIT = 30


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_start(session_id: str, limit: int, generation: Optional[int] = None) -> None:
        """Log countdown start."""
        logger.info(
            f"Timer lifecycle: COUNTDOWN_START - Session {session_id}, Limit {limit}",
            extra={
                'event_type': 'timer_countdown_start',
                'session_id': session_id,
                'limit': limit,
                'generation': generation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_update(session_id: str, remaining_time: int, total_duration: int) -> None:
        """Log timer update events (throttled to avoid spam)."""
        # Log only at specific intervals to avoid log spam
        if total_duration and (remaining_time % 10 == 0 or remaining_time <= 5):
            progress_percent = ((total_duration - remaining_time) / total_duration) * 100
            logger.debug(
                f"Timer lifecycle: UPDATE - Session {session_id}, Remaining {remaining_time} ({progress_percent:.1f}% complete)",
                extra={
                    'event_type': 'timer_update',
                    'session_id': session_id,
                    'remaining_time': remaining_time,
                    'total_duration': total_duration,
                    'progress_percent': progress_percent,
                    'timestamp': time.time()
                }
            )

    @staticmethod
    def log_timer_completion(session_id: str, completion_type: str, generation: Optional[int]) -> None:
        """Log timer completion (natural expiry or cancellation)."""
        logger.info(
            f"Timer lifecycle: COMPLETED - Session {session_id}, Type {completion_type}, Generation {generation}",
            extra={
                'event_type': 'timer_completed',
                'session_id': session_id,
                'completion_type': completion_type,
                'generation': generation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_state_transition(session_id: str, from_state: str, to_state: str, reason: str = None) -> None:
        """Log timer state transitions."""
        logger.debug(
            f"Timer lifecycle: STATE_TRANSITION - Session {session_id}, {from_state} -> {to_state}" +
            (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_state_transition',
                'session_id': session_id,
                'from_state': from_state,
                'to_state': to_state,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(session_id: str, error_type: str, error_message: str, operation: str) -> None:
        """Log timer-related errors with context."""
        logger.error(
            f"Timer lifecycle: ERROR - Session {session_id}, Operation {operation}, Type {error_type}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'session_id': session_id,
                'error_type': error_type,
                'error_message': error_message,
                'operation': operation,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_stale_tick(session_id: str, details: str) -> None:
        """Log a tick that arrived after its question was left."""
        logger.warning(
            f"Timer lifecycle: STALE_TICK - Session {session_id}: {details}",
            extra={
                'event_type': 'timer_stale_tick',
                'session_id': session_id,
                'details': details,
                'timestamp': time.time()
            }
        )


class CountdownTimer:
    """Per-question countdown measured in whole time units."""

    def __init__(self, limit: int = DEFAULT_TIME_LIMIT, session_id: str = None):
        self._limit = limit
        self._remaining = limit
        self._is_running = False
        self._session_id = session_id

    def start(self, limit: Optional[int] = None) -> None:
        """Reset remaining time to the limit and start counting down."""
        if limit is not None:
            self._limit = limit
        self._remaining = self._limit
        self._is_running = True
        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id, "stopped", "running", f"started at {self._limit}"
        )

    def tick(self) -> None:
        """Decrement by one unit, floored at zero."""
        if self._remaining > 0:
            self._remaining -= 1
        TimerLifecycleLogger.log_timer_update(self._session_id, self._remaining, self._limit)

    def is_expired(self) -> bool:
        return self._remaining == 0

    def stop(self) -> None:
        """Halt the countdown; remaining time is left as it is."""
        if self._is_running:
            TimerLifecycleLogger.log_timer_state_transition(
                self._session_id, "running", "stopped", f"{self._remaining} remaining"
            )
        self._is_running = False

    @property
    def remaining(self) -> int:
        """Get remaining time units."""
        return self._remaining

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def is_running(self) -> bool:
        return self._is_running


class TimerDriver:
    """
    Calls back once per interval on the running event loop.

    Only one callback chain exists at a time: arming always stops the
    previous chain first, and every callback carries the generation the
    chain was armed with so the receiver can discard late ticks.
    """

    def __init__(self, interval: float = 1.0, session_id: str = None):
        """
        Initialize the driver.

        Args:
            interval: Seconds between callbacks (one time unit)
            session_id: Identifier used in lifecycle logs
        """
        self._interval = interval
        self._session_id = session_id
        self._task: Optional[asyncio.Task] = None
        self._generation: Optional[int] = None

    def arm(self, generation: int, callback: Callable[[int], Any]) -> None:
        """
        Start a new callback chain for the given generation.

        Args:
            generation: Question generation the ticks belong to
            callback: Called with the generation once per interval

        Raises:
            RuntimeError: If called outside a running event loop
        """
        self.disarm()
        loop = asyncio.get_running_loop()
        self._generation = generation
        self._task = loop.create_task(self._run(generation, callback))
        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id, "disarmed", "armed", f"generation {generation}"
        )

    def disarm(self) -> bool:
        """
        Stop the pending callback chain, if any.

        Returns:
            True if a pending chain was cancelled, False if nothing was armed
        """
        task = self._task
        self._task = None
        self._generation = None
        if task is None or task.done():
            return False

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None

        # The chain may be disarming itself from inside its own callback;
        # it notices on its next loop iteration instead of being cancelled.
        if task is not current:
            task.cancel()
        TimerLifecycleLogger.log_timer_state_transition(
            self._session_id, "armed", "disarmed", "driver stopped"
        )
        return True

    @property
    def is_armed(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def generation(self) -> Optional[int]:
        return self._generation

    @property
    def interval(self) -> float:
        return self._interval

    async def _run(self, generation: int, callback: Callable[[int], Any]) -> None:
        me = asyncio.current_task()
        try:
            while self._task is me:
                await asyncio.sleep(self._interval)
                if self._task is not me:
                    break
                callback(generation)
        except asyncio.CancelledError:
            TimerLifecycleLogger.log_timer_completion(self._session_id, "cancelled", generation)
            raise
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(
                self._session_id,
                "tick_callback_error",
                str(e),
                "TimerDriver._run"
            )
            if self._task is me:
                self._task = None
