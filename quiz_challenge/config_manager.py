"""
Configuration manager for Quiz Challenge settings and parameters.
"""
import logging
from typing import Any, Dict, List, Optional

from .models import QuizSettings
from .question_source import DEFAULT_API_URL, DEFAULT_TIMEOUT, FileQuestionSource, OpenTriviaSource


class ConfigManager:
    """Manages quiz configuration settings and question source parameters."""

    # Default configuration values
    DEFAULT_QUESTION_COUNT = 15
    DEFAULT_TIMER_DURATION = 30
    DEFAULT_DIFFICULTY = None  # Any difficulty
    DEFAULT_CATEGORY = None  # Any category
    DEFAULT_STRICT_MODE = False

    # Validation limits
    MIN_TIMER_DURATION = 5
    MAX_TIMER_DURATION = 300  # 5 minutes
    MIN_QUESTION_COUNT = 1
    MAX_QUESTION_COUNT = 25  # Jump menu holds at most 25 entries
    MIN_CATEGORY_ID = 9
    MAX_CATEGORY_ID = 32
    VALID_DIFFICULTIES = ("easy", "medium", "hard")

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._global_settings = QuizSettings()
        self._api_url = DEFAULT_API_URL
        self._request_timeout = DEFAULT_TIMEOUT
        self._question_file: Optional[str] = None

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            QuizSettings object with current configuration
        """
        return QuizSettings(
            question_count=self._global_settings.question_count,
            timer_duration=self._global_settings.timer_duration,
            difficulty=self._global_settings.difficulty,
            category=self._global_settings.category,
            strict_mode=self._global_settings.strict_mode
        )

    def _failure(self, error_msg: str, user_message: str) -> Dict[str, Any]:
        self.logger.error(error_msg)
        return {
            'success': False,
            'error': error_msg,
            'user_message': user_message
        }

    def _success(self, message: str, user_message: str) -> Dict[str, Any]:
        self.logger.info(message)
        return {
            'success': True,
            'message': message,
            'user_message': user_message
        }

    def set_question_count(self, count: int) -> Dict[str, Any]:
        """
        Set the number of questions per quiz.

        Args:
            count: Number of questions

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(count, bool) or not isinstance(count, int):
            return self._failure(
                f"Question count must be an integer, got {type(count).__name__}",
                f"❌ Invalid input: Expected a number, got {type(count).__name__}"
            )

        if count < self.MIN_QUESTION_COUNT:
            return self._failure(
                f"Question count must be at least {self.MIN_QUESTION_COUNT}",
                f"❌ Too few questions: Minimum is {self.MIN_QUESTION_COUNT}"
            )

        if count > self.MAX_QUESTION_COUNT:
            return self._failure(
                f"Question count cannot exceed {self.MAX_QUESTION_COUNT}",
                f"❌ Too many questions: Maximum is {self.MAX_QUESTION_COUNT}"
            )

        self._global_settings.question_count = count
        return self._success(f"Question count set to {count}", f"✅ Question count set to {count}")

    def get_question_count(self) -> int:
        return self._global_settings.question_count

    def set_timer_duration(self, duration: int) -> Dict[str, Any]:
        """
        Set the countdown length for each question.

        Args:
            duration: Timer duration in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(duration, bool) or not isinstance(duration, int):
            return self._failure(
                f"Timer duration must be an integer, got {type(duration).__name__}",
                f"❌ Invalid input: Expected a number, got {type(duration).__name__}"
            )

        if duration < self.MIN_TIMER_DURATION:
            return self._failure(
                f"Timer duration must be at least {self.MIN_TIMER_DURATION} seconds",
                f"❌ Timer too short: Minimum is {self.MIN_TIMER_DURATION} seconds"
            )

        if duration > self.MAX_TIMER_DURATION:
            return self._failure(
                f"Timer duration cannot exceed {self.MAX_TIMER_DURATION} seconds",
                f"❌ Timer too long: Maximum is {self.MAX_TIMER_DURATION} seconds ({self.MAX_TIMER_DURATION // 60} minutes)"
            )

        self._global_settings.timer_duration = duration
        return self._success(f"Timer duration set to {duration} seconds", f"✅ Timer set to {duration} seconds")

    def get_timer_duration(self) -> int:
        return self._global_settings.timer_duration

    def set_difficulty(self, difficulty: Optional[str]) -> Dict[str, Any]:
        """
        Restrict questions to one difficulty, or None for any.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if difficulty is None or (isinstance(difficulty, str) and difficulty.strip().lower() in ("", "any")):
            self._global_settings.difficulty = None
            return self._success("Difficulty set to any", "✅ Questions of any difficulty will be used")

        if not isinstance(difficulty, str):
            return self._failure(
                f"Difficulty must be a string, got {type(difficulty).__name__}",
                f"❌ Invalid input: Expected one of {', '.join(self.VALID_DIFFICULTIES)}"
            )

        normalized = difficulty.strip().lower()
        if normalized not in self.VALID_DIFFICULTIES:
            return self._failure(
                f"Unknown difficulty: {difficulty}",
                f"❌ Unknown difficulty '{difficulty}': choose {', '.join(self.VALID_DIFFICULTIES)} or any"
            )

        self._global_settings.difficulty = normalized
        return self._success(f"Difficulty set to {normalized}", f"✅ Difficulty set to {normalized}")

    def get_difficulty(self) -> Optional[str]:
        return self._global_settings.difficulty

    def set_category(self, category: Optional[int]) -> Dict[str, Any]:
        """
        Restrict questions to one trivia category id, or None for any.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if category is None:
            self._global_settings.category = None
            return self._success("Category set to any", "✅ Questions from any category will be used")

        if isinstance(category, bool) or not isinstance(category, int):
            return self._failure(
                f"Category must be an integer id, got {type(category).__name__}",
                f"❌ Invalid input: Expected a category number, got {type(category).__name__}"
            )

        if not self.MIN_CATEGORY_ID <= category <= self.MAX_CATEGORY_ID:
            return self._failure(
                f"Category id must be between {self.MIN_CATEGORY_ID} and {self.MAX_CATEGORY_ID}",
                f"❌ Unknown category: use a number from {self.MIN_CATEGORY_ID} to {self.MAX_CATEGORY_ID}"
            )

        self._global_settings.category = category
        return self._success(f"Category set to {category}", f"✅ Category set to {category}")

    def get_category(self) -> Optional[int]:
        return self._global_settings.category

    def set_strict_mode(self, strict: bool) -> Dict[str, Any]:
        """Choose whether misplaced session commands raise or are ignored."""
        if not isinstance(strict, bool):
            return self._failure(
                f"Strict mode must be a boolean, got {type(strict).__name__}",
                f"❌ Invalid input: Expected true/false, got {type(strict).__name__}"
            )

        self._global_settings.strict_mode = strict
        mode = "strict" if strict else "permissive"
        return self._success(f"Session mode set to {mode}", f"✅ Sessions will run in {mode} mode")

    def get_strict_mode(self) -> bool:
        return self._global_settings.strict_mode

    def set_question_file(self, path: Optional[str]) -> Dict[str, Any]:
        """Serve questions from a local JSON file instead of the trivia API."""
        if path is None or (isinstance(path, str) and not path.strip()):
            self._question_file = None
            return self._success("Question file cleared", "✅ Questions will be fetched from the trivia service")

        if not isinstance(path, str):
            return self._failure(
                f"Question file must be a path string, got {type(path).__name__}",
                f"❌ Invalid input: Expected a path string, got {type(path).__name__}"
            )

        self._question_file = path
        return self._success(f"Question file set to {path}", f"✅ Questions will be loaded from {path}")

    def get_question_file(self) -> Optional[str]:
        return self._question_file

    def apply_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Apply the 'quiz' section of a configuration dictionary.

        Invalid values are logged and the previous setting is kept.

        Args:
            config: Parsed configuration file contents

        Returns:
            List of error messages for settings that were rejected
        """
        quiz_config = (config or {}).get('quiz', {})
        errors = []

        setters = (
            ('question_count', self.set_question_count),
            ('timer_duration', self.set_timer_duration),
            ('difficulty', self.set_difficulty),
            ('category', self.set_category),
            ('strict_mode', self.set_strict_mode),
            ('question_file', self.set_question_file),
        )
        for key, setter in setters:
            if key in quiz_config:
                result = setter(quiz_config[key])
                if not result['success']:
                    errors.append(result['error'])

        api_url = quiz_config.get('api_url')
        if isinstance(api_url, str) and api_url.strip():
            self._api_url = api_url.strip()

        request_timeout = quiz_config.get('request_timeout')
        if request_timeout is not None:
            if isinstance(request_timeout, (int, float)) and not isinstance(request_timeout, bool) and request_timeout > 0:
                self._request_timeout = request_timeout
            else:
                errors.append(f"Invalid request timeout: {request_timeout}")
                self.logger.error(f"Invalid request timeout: {request_timeout}")

        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} rejected settings")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def create_question_source(self):
        """Build the question source selected by the current configuration."""
        if self._question_file:
            return FileQuestionSource(self._question_file)
        return OpenTriviaSource(api_url=self._api_url, timeout=self._request_timeout)

    def reset_to_defaults(self) -> None:
        """Reset quiz settings to their default values. The question source is left as configured."""
        self._global_settings = QuizSettings(
            question_count=self.DEFAULT_QUESTION_COUNT,
            timer_duration=self.DEFAULT_TIMER_DURATION,
            difficulty=self.DEFAULT_DIFFICULTY,
            category=self.DEFAULT_CATEGORY,
            strict_mode=self.DEFAULT_STRICT_MODE
        )
        self.logger.info("Quiz settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._global_settings

        if (not isinstance(settings.question_count, int) or
                settings.question_count < self.MIN_QUESTION_COUNT or
                settings.question_count > self.MAX_QUESTION_COUNT):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid question count: {settings.question_count}")

        if (not isinstance(settings.timer_duration, int) or
                settings.timer_duration < self.MIN_TIMER_DURATION or
                settings.timer_duration > self.MAX_TIMER_DURATION):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid timer duration: {settings.timer_duration}")

        if settings.difficulty is not None and settings.difficulty not in self.VALID_DIFFICULTIES:
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid difficulty: {settings.difficulty}")

        if settings.category is not None and not (
                self.MIN_CATEGORY_ID <= settings.category <= self.MAX_CATEGORY_ID):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid category: {settings.category}")

        if not isinstance(settings.strict_mode, bool):
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid strict mode setting: {settings.strict_mode}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        category = self.get_category()
        source = self._question_file or self._api_url
        return (
            f"Quiz Settings:\n"
            f"• Questions: {self.get_question_count()}\n"
            f"• Timer: {self.get_timer_duration()} seconds\n"
            f"• Difficulty: {self.get_difficulty() or 'any'}\n"
            f"• Category: {category if category is not None else 'any'}\n"
            f"• Mode: {'strict' if self.get_strict_mode() else 'permissive'}\n"
            f"• Source: {source}"
        )
