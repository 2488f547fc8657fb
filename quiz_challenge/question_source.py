"""
Question source for Quiz Challenge: Open Trivia DB client and offline JSON loader.
Produces decoded, shuffled Question records ready for the session engine.
"""
import html
import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .models import MAX_CHOICES, Difficulty, Question

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://opentdb.com/api.php"
DEFAULT_TIMEOUT = 10

# Open Trivia DB response codes other than 0 (success)
RESPONSE_CODE_MESSAGES = {
    1: "Not enough questions available for the requested amount and filters",
    2: "Invalid parameter sent to the trivia API",
    3: "Session token not found",
    4: "Session token has returned all available questions",
    5: "Rate limit exceeded, too many requests",
}


class QuestionSourceError(Exception):
    """Raised when questions cannot be obtained or decoded."""
    pass


def parse_results(results: Any, rng: Optional[random.Random] = None) -> List[Question]:
    """
    Decode and validate raw trivia records into Question objects.

    Expected record structure:
    {
        "category": str,
        "difficulty": str,
        "question": str,
        "correct_answer": str,
        "incorrect_answers": [str, ...]
    }

    Args:
        results: List of raw records from the provider
        rng: Random generator used to shuffle answer choices

    Returns:
        List of Question objects with ids assigned in order

    Raises:
        QuestionSourceError: If the payload or any record is malformed
    """
    rng = rng or random.Random()

    if not isinstance(results, list):
        raise QuestionSourceError("'results' value must be an array")

    questions = []
    for i, record in enumerate(results):
        if not isinstance(record, dict):
            raise QuestionSourceError(f"Question {i} must be an object")

        for field_name in ("question", "correct_answer"):
            if not isinstance(record.get(field_name), str) or not record[field_name].strip():
                raise QuestionSourceError(f"Question {i} '{field_name}' field must be a non-empty string")

        incorrect = record.get("incorrect_answers", [])
        if not isinstance(incorrect, list) or not all(isinstance(a, str) for a in incorrect):
            raise QuestionSourceError(f"Question {i} 'incorrect_answers' field must be an array of strings")

        correct_answer = html.unescape(record["correct_answer"])
        choices = [correct_answer]
        for answer in incorrect:
            decoded = html.unescape(answer)
            if decoded and decoded not in choices:
                choices.append(decoded)
        if len(choices) > MAX_CHOICES:
            raise QuestionSourceError(f"Question {i} has {len(choices)} choices, at most {MAX_CHOICES} are supported")
        rng.shuffle(choices)

        category = record.get("category", "")
        questions.append(Question(
            id=i,
            prompt=html.unescape(record["question"]),
            correct_answer=correct_answer,
            choices=tuple(choices),
            category=html.unescape(category) if isinstance(category, str) else "",
            difficulty=Difficulty.from_value(record.get("difficulty"))
        ))

    return questions


def _check_response_code(payload: Dict[str, Any]) -> None:
    code = payload.get("response_code", 0)
    if code != 0:
        message = RESPONSE_CODE_MESSAGES.get(code, f"Unexpected response code {code}")
        raise QuestionSourceError(message)


def load_questions_file(path: str, rng: Optional[random.Random] = None) -> List[Question]:
    """
    Load questions from a JSON file in the trivia API response shape.

    Args:
        path: Path to a file containing {"results": [...]}
        rng: Random generator used to shuffle answer choices

    Returns:
        List of Question objects

    Raises:
        QuestionSourceError: If the file cannot be read or is invalid
    """
    logger = logging.getLogger(__name__)
    file_path = Path(path)

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {file_path}: {e}")
        raise QuestionSourceError(f"Invalid JSON in {file_path.name}: {e}") from e
    except FileNotFoundError as e:
        logger.error(f"Question file not found: {file_path}")
        raise QuestionSourceError(f"Question file not found: {file_path}") from e
    except OSError as e:
        logger.error(f"Failed to read question file {file_path}: {e}")
        raise QuestionSourceError(f"Failed to read question file {file_path.name}: {e}") from e

    if not isinstance(payload, dict) or "results" not in payload:
        raise QuestionSourceError(f"{file_path.name} must be an object with a 'results' key")

    _check_response_code(payload)
    questions = parse_results(payload["results"], rng)
    logger.info(f"Loaded {len(questions)} questions from {file_path}")
    return questions


class OpenTriviaSource:
    """Fetches multiple-choice questions from the Open Trivia DB API."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
        rng: Optional[random.Random] = None
    ):
        """
        Initialize the trivia source.

        Args:
            api_url: Trivia API endpoint
            timeout: Request timeout in seconds
            rng: Random generator used to shuffle answer choices
        """
        self.api_url = api_url
        self.timeout = timeout
        self.rng = rng or random.Random()
        self.logger = logging.getLogger(__name__)

    def build_params(
        self,
        amount: int,
        category: Optional[int] = None,
        difficulty: Optional[str] = None
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"amount": amount}
        if category is not None:
            params["category"] = category
        if difficulty:
            params["difficulty"] = difficulty
        return params

    def fetch_questions(
        self,
        amount: int,
        category: Optional[int] = None,
        difficulty: Optional[str] = None
    ) -> List[Question]:
        """
        Fetch and decode a question set.

        Args:
            amount: Number of questions to request
            category: Optional provider category id
            difficulty: Optional difficulty filter (easy, medium, hard)

        Returns:
            Non-empty list of Question objects

        Raises:
            QuestionSourceError: On network failure or an unusable response
        """
        params = self.build_params(amount, category, difficulty)
        self.logger.info(f"Requesting {amount} questions from {self.api_url}", extra={'params': params})

        try:
            response = requests.get(self.api_url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as e:
            self.logger.error(f"Trivia API request timed out after {self.timeout}s")
            raise QuestionSourceError("The trivia service took too long to respond") from e
        except requests.RequestException as e:
            self.logger.error(f"Trivia API request failed: {e}")
            raise QuestionSourceError(f"Network error while fetching questions: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            self.logger.error(f"Trivia API returned invalid JSON: {e}")
            raise QuestionSourceError("The trivia service returned an invalid response") from e

        if not isinstance(payload, dict):
            raise QuestionSourceError("The trivia service returned an invalid response")

        _check_response_code(payload)
        questions = parse_results(payload.get("results"), self.rng)
        if not questions:
            raise QuestionSourceError("The trivia service returned no questions")

        self.logger.info(f"Fetched {len(questions)} questions")
        return questions


class FileQuestionSource:
    """Serves questions from a local JSON file instead of the trivia API."""

    def __init__(self, path: str, rng: Optional[random.Random] = None):
        self.path = path
        self.rng = rng or random.Random()

    def fetch_questions(
        self,
        amount: int,
        category: Optional[int] = None,
        difficulty: Optional[str] = None
    ) -> List[Question]:
        """
        Load questions from the file, filtered by difficulty.

        Category ids belong to the trivia service and the file stores only
        category names, so the category filter is ignored here.

        Raises:
            QuestionSourceError: If the file is invalid or nothing matches
        """
        questions = load_questions_file(self.path, self.rng)
        if category is not None:
            logger.debug(f"Ignoring category {category} for question file {self.path}")
        if difficulty:
            questions = [q for q in questions if q.difficulty.value == difficulty]
        questions = questions[:amount]
        if not questions:
            raise QuestionSourceError(RESPONSE_CODE_MESSAGES[1])

        # Ids are session ordinals, so renumber after filtering
        return [
            Question(
                id=i,
                prompt=q.prompt,
                correct_answer=q.correct_answer,
                choices=q.choices,
                category=q.category,
                difficulty=q.difficulty
            )
            for i, q in enumerate(questions)
        ]
