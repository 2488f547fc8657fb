"""
Quiz Challenge: timed multiple-choice quiz sessions.
"""
from .ledger import AnswerLedger
from .models import Difficulty, Question, QuizSettings, SessionReview, SessionSnapshot, SessionState
from .quiz_engine import (
    EmptyQuestionSetError,
    IndexOutOfRangeError,
    InvalidTransitionError,
    SessionEngine,
    SessionEngineError,
)
from .timer import CountdownTimer, TimerDriver

__all__ = [
    "AnswerLedger",
    "CountdownTimer",
    "Difficulty",
    "EmptyQuestionSetError",
    "IndexOutOfRangeError",
    "InvalidTransitionError",
    "Question",
    "QuizSettings",
    "SessionEngine",
    "SessionEngineError",
    "SessionReview",
    "SessionSnapshot",
    "SessionState",
    "TimerDriver",
]
