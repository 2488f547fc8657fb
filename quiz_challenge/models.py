"""
Core data models for the Quiz Challenge session engine.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple

# Three rows of five answer buttons in the Discord question view
MAX_CHOICES = 15


class Difficulty(Enum):
    """Difficulty tag attached to a question by the question source."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"
    UNKNOWN = "unknown"

    @classmethod
    def from_value(cls, value: Optional[str]) -> "Difficulty":
        """Map a raw provider value to a Difficulty, defaulting to UNKNOWN."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.UNKNOWN


class SessionState(Enum):
    """Enumeration of possible quiz session states."""
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    FINISHED = "finished"


@dataclass(frozen=True)
class Question:
    """Represents a single multiple-choice question, already decoded and shuffled."""
    id: int
    prompt: str
    correct_answer: str
    choices: Tuple[str, ...]
    category: str = ""
    difficulty: Difficulty = Difficulty.UNKNOWN

    def __post_init__(self):
        # Accept any sequence of choices but store an immutable tuple
        object.__setattr__(self, "choices", tuple(self.choices))
        if not self.choices:
            raise ValueError(f"Question {self.id} has no choices")
        if len(set(self.choices)) != len(self.choices):
            raise ValueError(f"Question {self.id} has duplicate choices")
        if self.correct_answer not in self.choices:
            raise ValueError(f"Question {self.id} correct answer is not among its choices")

    def is_correct(self, answer: Optional[str]) -> bool:
        """Check an answer against the correct one; None never matches."""
        return answer is not None and answer == self.correct_answer


@dataclass
class QuizSettings:
    """Configuration settings for a quiz session."""
    question_count: int = 15
    timer_duration: int = 30
    difficulty: Optional[str] = None
    category: Optional[int] = None
    strict_mode: bool = False


@dataclass(frozen=True)
class QuestionReview:
    """Outcome of one question in a finished session."""
    index: int
    prompt: str
    user_answer: Optional[str]
    correct_answer: str
    is_correct: bool

    @property
    def answered(self) -> bool:
        return self.user_answer is not None


@dataclass(frozen=True)
class SessionReview:
    """Scored review produced when a session finishes."""
    score: int
    total: int
    items: Tuple[QuestionReview, ...] = ()

    @property
    def per_question_correctness(self) -> Tuple[bool, ...]:
        return tuple(item.is_correct for item in self.items)

    @property
    def wrong(self) -> int:
        return self.total - self.score

    @property
    def percentage(self) -> int:
        if not self.total:
            return 0
        return round(self.score / self.total * 100)


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a session engine at one point in time."""
    state: SessionState
    current_index: int = 0
    time_remaining: int = 0
    time_limit: int = 0
    current_selection: Optional[str] = None
    answered_indices: FrozenSet[int] = frozenset()
    questions: Tuple[Question, ...] = ()
    generation: int = 0
    score: Optional[int] = None
    per_question_correctness: Tuple[bool, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Optional[Question]:
        if self.state is not SessionState.ACTIVE or not self.questions:
            return None
        return self.questions[self.current_index]

    @property
    def is_last_question(self) -> bool:
        return bool(self.questions) and self.current_index == len(self.questions) - 1

    @property
    def progress_percent(self) -> int:
        """Share of the session already behind the current question."""
        if not self.questions:
            return 0
        return int(self.current_index / len(self.questions) * 100)
