"""
Quiz session engine for Quiz Challenge.
Drives one session through its questions: progression, per-question countdown,
answer recording across out-of-order navigation, and scoring on completion.
"""
import logging
import time
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional, Tuple
from uuid import uuid4

from .ledger import AnswerLedger
from .models import Question, SessionReview, SessionSnapshot, SessionState
from .review import build_review
from .timer import DEFAULT_TIME_LIMIT, CountdownTimer, TimerDriver, TimerLifecycleLogger


class SessionEngineError(Exception):
    """Base exception for session engine errors."""
    pass


class EmptyQuestionSetError(SessionEngineError, ValueError):
    """Raised when a session is begun without any questions."""
    pass


class IndexOutOfRangeError(SessionEngineError, IndexError):
    """Raised when jumping to a question index outside the session."""
    pass


class InvalidTransitionError(SessionEngineError):
    """Raised in strict mode when a command is issued in a state that does not accept it."""
    pass


class SessionEngine:
    """
    Finite-state machine over an ordered question list plus a per-question timer.

    States move NOT_STARTED -> ACTIVE -> FINISHED; reset() returns to
    NOT_STARTED from anywhere and begin() restarts a finished session.
    The engine exclusively owns its ledger, timer and driver. In permissive
    mode (the default) commands issued in the wrong state are logged no-ops;
    in strict mode they raise InvalidTransitionError.
    """

    def __init__(
        self,
        time_limit: int = DEFAULT_TIME_LIMIT,
        strict: bool = False,
        driver: Optional[TimerDriver] = None,
        on_update: Optional[Callable[[SessionSnapshot], Any]] = None,
        session_id: Optional[str] = None
    ):
        """
        Initialize the session engine.

        Args:
            time_limit: Countdown length for every question, in time units
            strict: Raise InvalidTransitionError instead of ignoring misplaced commands
            driver: Real-clock tick driver; without one, call handle_tick() directly
            on_update: Observer called with a snapshot after every change
            session_id: Identifier used in logs

        Raises:
            ValueError: If time_limit is not a positive integer
        """
        if isinstance(time_limit, bool) or not isinstance(time_limit, int) or time_limit < 1:
            raise ValueError(f"Time limit must be a positive integer, got {time_limit!r}")

        self.logger = logging.getLogger(__name__)
        self._session_id = session_id or uuid4().hex[:8]
        self._time_limit = time_limit
        self._strict = strict
        self._driver = driver
        self._on_update = on_update

        self._state = SessionState.NOT_STARTED
        self._questions: Tuple[Question, ...] = ()
        self._current_index = 0
        self._ledger = AnswerLedger(self._session_id)
        self._timer = CountdownTimer(time_limit, self._session_id)
        self._generation = 0
        self._review: Optional[SessionReview] = None

    # Commands

    def begin(self, questions: Iterable[Question]) -> None:
        """
        Start a session over the given questions.

        Args:
            questions: Non-empty ordered sequence of questions

        Raises:
            EmptyQuestionSetError: If questions is empty
            InvalidTransitionError: In strict mode, if a session is already active
        """
        questions = tuple(questions)
        if not questions:
            self._log_contract_violation("begin", "empty question set")
            raise EmptyQuestionSetError("Cannot begin a session with no questions")

        if self._state is SessionState.ACTIVE:
            if self._strict:
                self._log_contract_violation("begin", "session already active")
                raise InvalidTransitionError("Cannot begin while a session is active; reset it first")
            self.logger.warning(f"Session {self._session_id}: begin() while active, restarting")

        self._stop_driver()
        self._questions = questions
        self._ledger.clear()
        self._review = None
        self._current_index = 0
        self._state = SessionState.ACTIVE
        self._start_question()

        self.logger.info(
            f"Session {self._session_id} started with {len(questions)} questions",
            extra={
                'event_type': 'session_started',
                'session_id': self._session_id,
                'question_count': len(questions),
                'time_limit': self._time_limit,
                'timestamp': time.time()
            }
        )
        self._notify()

    def select_answer(self, answer: str) -> None:
        """
        Record an answer for the current question without advancing.

        Raises:
            ValueError: If answer is not a non-empty string
            InvalidTransitionError: In strict mode, if no session is active
        """
        if not self._require_active("select_answer"):
            return

        self._ledger.record(self._current_index, answer)
        self._notify()

    def advance(self) -> None:
        """
        Move to the next question, or finish and score after the last one.

        Explicit user action and timer expiry both land here.

        Raises:
            InvalidTransitionError: In strict mode, if no session is active
        """
        if not self._require_active("advance"):
            return

        self._stop_driver()
        next_index = self._current_index + 1
        if next_index < len(self._questions):
            self._current_index = next_index
            self._start_question()
            self.logger.debug(
                f"Session {self._session_id}: advanced to question {next_index + 1}/{len(self._questions)}"
            )
        else:
            self._finish()
        self._notify()

    def jump_to(self, index: int) -> None:
        """
        Navigate directly to a question with a fresh countdown.

        Jumping never scores or finishes the session, even onto the last question.

        Raises:
            IndexOutOfRangeError: If index is not a valid question index
            InvalidTransitionError: In strict mode, if no session is active
        """
        if not self._require_active("jump_to"):
            return

        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._questions):
            self._log_contract_violation("jump_to", f"index {index!r} out of range")
            raise IndexOutOfRangeError(
                f"Question index {index!r} out of range 0..{len(self._questions) - 1}"
            )

        self._stop_driver()
        self._current_index = index
        self._start_question()
        self.logger.debug(f"Session {self._session_id}: jumped to question {index + 1}")
        self._notify()

    def reset(self) -> None:
        """Stop any pending tick, clear everything and return to NOT_STARTED."""
        self._stop_driver()
        self._timer.stop()
        self._timer = CountdownTimer(self._time_limit, self._session_id)
        self._questions = ()
        self._ledger.clear()
        self._review = None
        self._current_index = 0
        self._generation += 1
        self._state = SessionState.NOT_STARTED

        self.logger.info(
            f"Session {self._session_id} reset",
            extra={
                'event_type': 'session_reset',
                'session_id': self._session_id,
                'timestamp': time.time()
            }
        )
        self._notify()

    def handle_tick(self, generation: Optional[int] = None) -> None:
        """
        Apply one elapsed time unit to the current question.

        Called by the driver with the generation it was armed for; ticks for a
        question that has already been left are discarded.

        Args:
            generation: Generation the tick belongs to, or None for a manual tick
        """
        if self._state is not SessionState.ACTIVE:
            TimerLifecycleLogger.log_stale_tick(
                self._session_id, f"tick received while {self._state.value}"
            )
            return

        if generation is not None and generation != self._generation:
            TimerLifecycleLogger.log_stale_tick(
                self._session_id, f"tick for generation {generation}, current is {self._generation}"
            )
            return

        self._timer.tick()
        if self._timer.is_expired():
            TimerLifecycleLogger.log_timer_completion(self._session_id, "natural_expiry", self._generation)
            self.advance()
        else:
            self._notify()

    # Views

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_strict(self) -> bool:
        return self._strict

    @property
    def questions(self) -> Tuple[Question, ...]:
        return self._questions

    @property
    def total_questions(self) -> int:
        return len(self._questions)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Optional[Question]:
        if self._state is not SessionState.ACTIVE:
            return None
        return self._questions[self._current_index]

    @property
    def time_limit(self) -> int:
        return self._time_limit

    @property
    def time_remaining(self) -> int:
        return self._timer.remaining

    @property
    def current_selection(self) -> Optional[str]:
        """Answer shown as selected for the current question, read from the ledger."""
        if self._state is not SessionState.ACTIVE:
            return None
        return self._ledger.get(self._current_index)

    @property
    def answered_indices(self) -> FrozenSet[int]:
        return self._ledger.answered_indices()

    @property
    def ledger(self) -> Dict[int, str]:
        """Copy of the recorded answers."""
        return self._ledger.as_dict()

    @property
    def score(self) -> Optional[int]:
        """Final score once finished, None before."""
        return self._review.score if self._review is not None else None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def timer_running(self) -> bool:
        return self._timer.is_running

    def review(self) -> Optional[SessionReview]:
        """Scored review of a finished session, None before it finishes."""
        return self._review

    def snapshot(self) -> SessionSnapshot:
        """Read-only view of the engine for the presentation layer."""
        return SessionSnapshot(
            state=self._state,
            current_index=self._current_index,
            time_remaining=self._timer.remaining,
            time_limit=self._time_limit,
            current_selection=self.current_selection,
            answered_indices=self._ledger.answered_indices(),
            questions=self._questions,
            generation=self._generation,
            score=self.score,
            per_question_correctness=(
                self._review.per_question_correctness if self._review is not None else ()
            )
        )

    # Internals

    def _start_question(self) -> None:
        """Open a new generation with a full countdown; the driver is armed last."""
        self._generation += 1
        self._timer.start(self._time_limit)
        TimerLifecycleLogger.log_timer_start(self._session_id, self._time_limit, self._generation)
        if self._driver is not None:
            self._driver.arm(self._generation, self.handle_tick)

    def _stop_driver(self) -> None:
        if self._driver is not None:
            self._driver.disarm()

    def _finish(self) -> None:
        self._timer.stop()
        self._review = build_review(self._questions, self._ledger)
        self._generation += 1
        self._state = SessionState.FINISHED

        self.logger.info(
            f"Session {self._session_id} finished: {self._review.score}/{self._review.total}",
            extra={
                'event_type': 'session_finished',
                'session_id': self._session_id,
                'score': self._review.score,
                'total': self._review.total,
                'answered': self._ledger.answered_count(),
                'timestamp': time.time()
            }
        )

    def _require_active(self, command: str) -> bool:
        """Return True if the command may run; otherwise ignore it or raise in strict mode."""
        if self._state is SessionState.ACTIVE:
            return True

        if self._strict:
            self._log_contract_violation(command, f"session is {self._state.value}")
            raise InvalidTransitionError(f"Cannot {command} while session is {self._state.value}")

        self.logger.debug(
            f"Session {self._session_id}: ignoring {command}() while {self._state.value}",
            extra={
                'event_type': 'command_ignored',
                'session_id': self._session_id,
                'command': command,
                'state': self._state.value,
                'timestamp': time.time()
            }
        )
        return False

    def _log_contract_violation(self, command: str, reason: str) -> None:
        self.logger.warning(
            f"Session {self._session_id}: {command}() rejected, {reason}",
            extra={
                'event_type': 'contract_violation',
                'session_id': self._session_id,
                'command': command,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    def _notify(self) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(self.snapshot())
        except Exception:
            # Observer failures must not leave the state machine half-transitioned
            self.logger.exception(f"Session {self._session_id}: update observer failed")
