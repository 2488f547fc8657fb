"""
Score and review computation for finished quiz sessions.
"""
from typing import Sequence, Tuple

from .ledger import AnswerLedger
from .models import Question, QuestionReview, SessionReview

# (minimum percentage, message, embed colour)
SCORE_TIERS: Tuple[Tuple[int, str, int], ...] = (
    (80, "Excellent! 🎉", 0x16a34a),
    (60, "Good job! 👍", 0x2563eb),
    (40, "Not bad! 👌", 0xeab308),
    (0, "Keep practicing! 💪", 0xef4444),
)


def compute_score(questions: Sequence[Question], ledger: AnswerLedger) -> int:
    """
    Count questions whose recorded answer equals the correct answer.

    An index with no ledger entry never matches.
    """
    return sum(1 for i, question in enumerate(questions) if question.is_correct(ledger.get(i)))


def build_review(questions: Sequence[Question], ledger: AnswerLedger) -> SessionReview:
    """
    Build the per-question review for a session.

    Args:
        questions: Questions in session order
        ledger: Answers recorded during the session

    Returns:
        SessionReview with score, total and one item per question
    """
    items = []
    for i, question in enumerate(questions):
        user_answer = ledger.get(i)
        items.append(QuestionReview(
            index=i,
            prompt=question.prompt,
            user_answer=user_answer,
            correct_answer=question.correct_answer,
            is_correct=question.is_correct(user_answer)
        ))

    return SessionReview(
        score=compute_score(questions, ledger),
        total=len(questions),
        items=tuple(items)
    )


def get_score_tier(review: SessionReview) -> Tuple[str, int]:
    """
    Pick the encouragement message and colour for a review.

    Returns:
        Tuple of (message, colour)
    """
    percentage = review.score / review.total * 100 if review.total else 0
    for threshold, message, colour in SCORE_TIERS:
        if percentage >= threshold:
            return message, colour
    return SCORE_TIERS[-1][1], SCORE_TIERS[-1][2]
