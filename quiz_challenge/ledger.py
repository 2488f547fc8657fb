"""
Answer ledger: the session-lifetime record of which answer was chosen for each question.
"""
import logging
from typing import Dict, FrozenSet, Optional

logger = logging.getLogger(__name__)


class AnswerLedger:
    """Maps question index to the selected answer text; last write wins."""

    def __init__(self, session_id: str = None):
        self._answers: Dict[int, str] = {}
        self._session_id = session_id

    def record(self, index: int, answer: str) -> None:
        """
        Insert or overwrite the answer for a question.

        Args:
            index: Question index within the session
            answer: Selected answer text

        Raises:
            ValueError: If answer is not a non-empty string
        """
        if not isinstance(answer, str) or not answer:
            raise ValueError(f"Answer for question {index} must be a non-empty string")

        previous = self._answers.get(index)
        self._answers[index] = answer
        if previous is not None and previous != answer:
            logger.debug(f"Session {self._session_id}: answer for question {index} changed")

    def get(self, index: int) -> Optional[str]:
        """Return the recorded answer, or None if the question is unanswered."""
        return self._answers.get(index)

    def answered_count(self) -> int:
        return len(self._answers)

    def answered_indices(self) -> FrozenSet[int]:
        return frozenset(self._answers)

    def clear(self) -> None:
        self._answers.clear()

    def as_dict(self) -> Dict[int, str]:
        """Copy of the recorded answers."""
        return dict(self._answers)

    def __contains__(self, index: object) -> bool:
        return index in self._answers

    def __len__(self) -> int:
        return len(self._answers)
