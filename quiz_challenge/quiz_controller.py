"""
Quiz session controller for Quiz Challenge.
Keeps one single-player session engine per Discord channel and translates
engine and question source failures into user-facing results.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set

from .config_manager import ConfigManager
from .models import SessionSnapshot, SessionState
from .question_source import QuestionSourceError
from .quiz_engine import (
    EmptyQuestionSetError,
    IndexOutOfRangeError,
    InvalidTransitionError,
    SessionEngine,
)
from .timer import TimerDriver


class QuizControllerError(Exception):
    """Base exception for quiz controller errors."""
    pass


class SessionConflictError(QuizControllerError):
    """Raised when attempting to create a session that conflicts with existing session."""
    pass


class SessionNotFoundError(QuizControllerError):
    """Raised when attempting to operate on a non-existent session."""
    pass


class NotSessionOwnerError(QuizControllerError):
    """Raised when someone other than the player issues a session command."""
    pass


@dataclass
class ChannelSession:
    """A session engine bound to the channel and member that started it."""
    channel_id: int
    owner_id: int
    engine: SessionEngine
    start_time: datetime = field(default_factory=datetime.now)
    message: Optional[Any] = None


class QuizController:
    """
    Orchestrates quiz sessions across Discord channels.

    Each channel can have at most one session at a time, played by the
    member who started it. Finished sessions stay registered so their
    review can be shown and replayed.
    """

    def __init__(self, question_source, config_manager: ConfigManager, tick_interval: float = 1.0):
        """
        Initialize the quiz controller.

        Args:
            question_source: Object with fetch_questions(amount, category, difficulty)
            config_manager: Instance for managing configuration
            tick_interval: Seconds per countdown unit
        """
        self.logger = logging.getLogger(__name__)
        self.question_source = question_source
        self.config_manager = config_manager
        self.tick_interval = tick_interval

        # Sessions mapped by channel ID
        self._sessions: Dict[int, ChannelSession] = {}
        # Channels whose questions are still being fetched
        self._starting: Set[int] = set()

        self.logger.info("QuizController initialized")

    async def start_quiz(
        self,
        channel_id: int,
        owner_id: int,
        on_update: Optional[Callable[[SessionSnapshot], Any]] = None
    ) -> Dict[str, Any]:
        """
        Fetch questions and begin a new session in a channel.

        Args:
            channel_id: Discord channel identifier
            owner_id: Member who will play the session
            on_update: Observer passed to the engine

        Returns:
            Dictionary with operation results and error information
        """
        try:
            if channel_id in self._starting or self.has_active_session(channel_id):
                raise SessionConflictError(f"Quiz already running in channel {channel_id}")

            self._starting.add(channel_id)
            try:
                settings = self.config_manager.get_quiz_settings()
                # The question source blocks on I/O, keep it off the event loop
                questions = await asyncio.to_thread(
                    self.question_source.fetch_questions,
                    settings.question_count,
                    settings.category,
                    settings.difficulty
                )

                previous = self._sessions.pop(channel_id, None)
                if previous is not None:
                    previous.engine.reset()

                engine = SessionEngine(
                    time_limit=settings.timer_duration,
                    strict=settings.strict_mode,
                    driver=TimerDriver(self.tick_interval, session_id=str(channel_id)),
                    on_update=on_update,
                    session_id=str(channel_id)
                )
                engine.begin(questions)
                self._sessions[channel_id] = ChannelSession(channel_id, owner_id, engine)
            finally:
                self._starting.discard(channel_id)

            self.logger.info(
                f"Started quiz in channel {channel_id} for member {owner_id}",
                extra={
                    'event_type': 'quiz_started',
                    'channel_id': channel_id,
                    'owner_id': owner_id,
                    'question_count': engine.total_questions,
                    'timestamp': time.time()
                }
            )
            return {
                'success': True,
                'message': f"Quiz started with {engine.total_questions} questions",
                'snapshot': engine.snapshot(),
                'session_info': self.get_status(channel_id)
            }

        except Exception as e:
            return self._handle_session_error(channel_id, e, "start_quiz")

    async def replay(
        self,
        channel_id: int,
        user_id: int,
        on_update: Optional[Callable[[SessionSnapshot], Any]] = None
    ) -> Dict[str, Any]:
        """Start a fresh session in place of a finished one."""
        session = self._sessions.get(channel_id)
        if session is not None and session.owner_id != user_id:
            return self._handle_session_error(
                channel_id, NotSessionOwnerError(f"Member {user_id} does not own this quiz"), "replay"
            )
        return await self.start_quiz(channel_id, user_id, on_update)

    def select_answer(self, channel_id: int, user_id: int, answer: str) -> Dict[str, Any]:
        """Record the player's answer for the current question."""
        return self._run_command(channel_id, user_id, "select_answer", lambda engine: engine.select_answer(answer))

    def advance(self, channel_id: int, user_id: int) -> Dict[str, Any]:
        """Move to the next question or finish the quiz."""
        return self._run_command(channel_id, user_id, "advance", lambda engine: engine.advance())

    def jump_to(self, channel_id: int, user_id: int, index: int) -> Dict[str, Any]:
        """Navigate to another question of the session."""
        return self._run_command(channel_id, user_id, "jump_to", lambda engine: engine.jump_to(index))

    def stop_quiz(self, channel_id: int) -> Dict[str, Any]:
        """
        Stop and discard the session in a channel.

        Returns:
            Dictionary with success flag, message and last session info
        """
        session = self._sessions.get(channel_id)
        if session is None:
            return {
                'success': False,
                'message': "No quiz is running in this channel",
                'user_message': "ℹ️ No quiz is running in this channel."
            }

        session_info = self.get_status(channel_id)
        session.engine.reset()
        del self._sessions[channel_id]

        self.logger.info(
            f"Stopped and cleaned up session for channel {channel_id}",
            extra={
                'event_type': 'session_stopped',
                'channel_id': channel_id,
                'timestamp': time.time()
            }
        )
        return {
            'success': True,
            'message': "Quiz stopped",
            'session_info': session_info
        }

    def get_session(self, channel_id: int) -> Optional[ChannelSession]:
        return self._sessions.get(channel_id)

    def has_active_session(self, channel_id: int) -> bool:
        """
        Check if a channel has a quiz in progress.

        Args:
            channel_id: Discord channel identifier

        Returns:
            True if the channel's session is ACTIVE, False otherwise
        """
        session = self._sessions.get(channel_id)
        return session is not None and session.engine.state is SessionState.ACTIVE

    def set_message(self, channel_id: int, message: Any) -> None:
        """Remember the Discord message that displays the channel's session."""
        session = self._sessions.get(channel_id)
        if session is not None:
            session.message = message

    def get_status(self, channel_id: int) -> Optional[Dict[str, Any]]:
        """
        Get progress information for a channel's session.

        Args:
            channel_id: Discord channel identifier

        Returns:
            Dictionary with progress info, None if no session exists
        """
        session = self._sessions.get(channel_id)
        if session is None:
            return None

        snapshot = session.engine.snapshot()
        return {
            'state': snapshot.state.value,
            'owner_id': session.owner_id,
            'current_question': snapshot.current_index + 1,
            'total_questions': snapshot.total,
            'answered': len(snapshot.answered_indices),
            'time_remaining': snapshot.time_remaining,
            'time_limit': snapshot.time_limit,
            'score': snapshot.score,
            'start_time': session.start_time,
            'strict_mode': session.engine.is_strict
        }

    def shutdown(self) -> int:
        """
        Reset every session so no timer keeps running.

        Returns:
            Number of sessions stopped
        """
        count = len(self._sessions)
        for session in self._sessions.values():
            session.engine.reset()
        self._sessions.clear()
        if count:
            self.logger.info(f"Shut down {count} quiz sessions")
        return count

    def _run_command(
        self,
        channel_id: int,
        user_id: int,
        operation: str,
        command: Callable[[SessionEngine], None]
    ) -> Dict[str, Any]:
        try:
            session = self._sessions.get(channel_id)
            if session is None:
                raise SessionNotFoundError(f"No quiz session in channel {channel_id}")
            if session.owner_id != user_id:
                raise NotSessionOwnerError(f"Member {user_id} does not own the quiz in channel {channel_id}")

            command(session.engine)
            return {
                'success': True,
                'operation': operation,
                'snapshot': session.engine.snapshot()
            }
        except Exception as e:
            return self._handle_session_error(channel_id, e, operation)

    def _handle_session_error(self, channel_id: int, error: Exception, operation: str) -> Dict[str, Any]:
        """
        Log a failed operation and build the result returned to the bot.

        Args:
            channel_id: Discord channel identifier
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            Dictionary with error handling results
        """
        error_msg = f"Error in {operation} for channel {channel_id}: {error}"
        expected = (QuizControllerError, QuestionSourceError, EmptyQuestionSetError,
                    IndexOutOfRangeError, InvalidTransitionError)
        if isinstance(error, expected):
            self.logger.warning(error_msg)
        else:
            self.logger.error(error_msg, exc_info=True)

        return {
            'success': False,
            'error': str(error),
            'operation': operation,
            'user_message': self._get_user_friendly_error_message(error, operation)
        }

    def _get_user_friendly_error_message(self, error: Exception, operation: str) -> str:
        """
        Generate user-friendly error messages.

        Args:
            error: The exception that occurred
            operation: Description of the operation that failed

        Returns:
            User-friendly error message
        """
        if isinstance(error, SessionConflictError):
            return "❌ A quiz is already running in this channel. Finish it or use `/stop` first."

        elif isinstance(error, SessionNotFoundError):
            return "❌ No quiz found in this channel. Start one with `/quiz`."

        elif isinstance(error, NotSessionOwnerError):
            return "❌ This quiz belongs to another player. Wait for it to end or start one elsewhere."

        elif isinstance(error, QuestionSourceError):
            return f"❌ Failed to load questions: {error}. Please try again."

        elif isinstance(error, EmptyQuestionSetError):
            return "❌ No questions were available for the current settings."

        elif isinstance(error, IndexOutOfRangeError):
            return "❌ That question does not exist in this quiz."

        elif isinstance(error, InvalidTransitionError):
            return "❌ That action is not available right now."

        elif isinstance(error, ValueError):
            return "❌ Please pick one of the listed answers."

        else:
            return f"❌ An unexpected error occurred during {operation}. Please try again."
