"""
Unit tests for the SessionEngine state machine.
"""
import random
import unittest
from unittest.mock import Mock, call

from quiz_challenge.models import SessionState
from quiz_challenge.quiz_engine import (
    EmptyQuestionSetError,
    IndexOutOfRangeError,
    InvalidTransitionError,
    SessionEngine,
    SessionEngineError,
)
from tests.test_fixtures import TestFixtures, create_mock_driver


class TestSessionLifecycle(unittest.TestCase):
    """Test cases for begin/reset and state transitions."""

    def setUp(self):
        """Set up test fixtures."""
        self.questions = TestFixtures.create_sample_questions()
        self.engine = SessionEngine(time_limit=30)

    def test_initial_state(self):
        """A new engine has no questions and no timer running."""
        self.assertIs(self.engine.state, SessionState.NOT_STARTED)
        self.assertEqual(self.engine.questions, ())
        self.assertIsNone(self.engine.current_question)
        self.assertIsNone(self.engine.current_selection)
        self.assertIsNone(self.engine.score)
        self.assertIsNone(self.engine.review())
        self.assertFalse(self.engine.timer_running)

    def test_begin_enters_active(self):
        """begin() loads questions, starts at index 0 with a full countdown."""
        self.engine.begin(self.questions)

        self.assertIs(self.engine.state, SessionState.ACTIVE)
        self.assertEqual(self.engine.current_index, 0)
        self.assertEqual(self.engine.time_remaining, 30)
        self.assertTrue(self.engine.timer_running)
        self.assertEqual(self.engine.ledger, {})
        self.assertEqual(self.engine.current_question, self.questions[0])
        self.assertEqual(self.engine.total_questions, 3)

    def test_begin_accepts_any_iterable(self):
        self.engine.begin(iter(self.questions))
        self.assertEqual(self.engine.questions, tuple(self.questions))

    def test_begin_empty_raises(self):
        """begin([]) fails with EmptyQuestionSetError and leaves the engine untouched."""
        with self.assertRaises(EmptyQuestionSetError):
            self.engine.begin([])

        self.assertIs(self.engine.state, SessionState.NOT_STARTED)

    def test_empty_question_set_error_is_value_error(self):
        with self.assertRaises(ValueError):
            self.engine.begin([])

    def test_begin_empty_while_active_keeps_session(self):
        self.engine.begin(self.questions)
        self.engine.select_answer("4")

        with self.assertRaises(EmptyQuestionSetError):
            self.engine.begin([])

        self.assertIs(self.engine.state, SessionState.ACTIVE)
        self.assertEqual(self.engine.ledger, {0: "4"})

    def test_begin_after_finish_starts_fresh(self):
        """A finished session can be replayed with begin()."""
        self.engine.begin(self.questions)
        self.engine.select_answer("4")
        for _ in range(3):
            self.engine.advance()
        self.assertIs(self.engine.state, SessionState.FINISHED)

        self.engine.begin(self.questions)

        self.assertIs(self.engine.state, SessionState.ACTIVE)
        self.assertEqual(self.engine.ledger, {})
        self.assertIsNone(self.engine.score)
        self.assertEqual(self.engine.current_index, 0)

    def test_begin_while_active_permissive_restarts(self):
        self.engine.begin(self.questions)
        self.engine.select_answer("4")
        self.engine.advance()

        self.engine.begin(self.questions[:2])

        self.assertIs(self.engine.state, SessionState.ACTIVE)
        self.assertEqual(self.engine.current_index, 0)
        self.assertEqual(self.engine.ledger, {})
        self.assertEqual(self.engine.total_questions, 2)

    def test_begin_while_active_strict_raises(self):
        engine = SessionEngine(strict=True)
        engine.begin(self.questions)

        with self.assertRaises(InvalidTransitionError):
            engine.begin(self.questions)

        self.assertEqual(engine.current_index, 0)

    def test_reset_from_active(self):
        self.engine.begin(self.questions)
        self.engine.select_answer("4")
        self.engine.advance()

        self.engine.reset()

        self.assertIs(self.engine.state, SessionState.NOT_STARTED)
        self.assertEqual(self.engine.questions, ())
        self.assertEqual(self.engine.ledger, {})
        self.assertEqual(self.engine.current_index, 0)
        self.assertFalse(self.engine.timer_running)

    def test_reset_from_finished_and_not_started(self):
        self.engine.reset()
        self.assertIs(self.engine.state, SessionState.NOT_STARTED)

        self.engine.begin(self.questions[:1])
        self.engine.advance()
        self.assertIs(self.engine.state, SessionState.FINISHED)

        self.engine.reset()
        self.assertIs(self.engine.state, SessionState.NOT_STARTED)
        self.assertIsNone(self.engine.score)

    def test_invalid_time_limit(self):
        for limit in (0, -5, 1.5, True, "30"):
            with self.assertRaises(ValueError):
                SessionEngine(time_limit=limit)

    def test_error_hierarchy(self):
        self.assertTrue(issubclass(EmptyQuestionSetError, SessionEngineError))
        self.assertTrue(issubclass(IndexOutOfRangeError, SessionEngineError))
        self.assertTrue(issubclass(IndexOutOfRangeError, IndexError))
        self.assertTrue(issubclass(InvalidTransitionError, SessionEngineError))


class TestSelectAnswer(unittest.TestCase):
    """Test cases for recording answers."""

    def setUp(self):
        """Set up test fixtures."""
        self.questions = TestFixtures.create_sample_questions()
        self.engine = SessionEngine(time_limit=30)
        self.engine.begin(self.questions)

    def test_select_records_without_advancing(self):
        self.engine.select_answer("4")

        self.assertEqual(self.engine.current_index, 0)
        self.assertEqual(self.engine.current_selection, "4")
        self.assertEqual(self.engine.ledger, {0: "4"})

    def test_select_overwrites(self):
        """The user may change their mind before advancing."""
        self.engine.select_answer("3")
        self.engine.select_answer("5")
        self.engine.select_answer("4")

        self.assertEqual(self.engine.ledger, {0: "4"})

    def test_select_is_idempotent(self):
        """Selecting the same answer twice equals selecting it once."""
        self.engine.select_answer("4")
        once = self.engine.ledger
        self.engine.select_answer("4")

        self.assertEqual(self.engine.ledger, once)

    def test_select_does_not_reset_timer(self):
        self.engine.handle_tick()
        self.engine.handle_tick()
        self.engine.select_answer("4")

        self.assertEqual(self.engine.time_remaining, 28)

    def test_select_accepts_text_outside_choices(self):
        self.engine.select_answer("X")
        self.assertEqual(self.engine.ledger, {0: "X"})

    def test_select_empty_answer_raises(self):
        for bad in ("", None, 4):
            with self.assertRaises(ValueError):
                self.engine.select_answer(bad)
        self.assertEqual(self.engine.ledger, {})

    def test_select_when_not_started_is_noop(self):
        engine = SessionEngine()
        engine.select_answer("4")

        self.assertIs(engine.state, SessionState.NOT_STARTED)
        self.assertEqual(engine.ledger, {})

    def test_select_when_not_started_strict_raises(self):
        engine = SessionEngine(strict=True)
        with self.assertRaises(InvalidTransitionError):
            engine.select_answer("4")


class TestAdvance(unittest.TestCase):
    """Test cases for progression and scoring."""

    def setUp(self):
        """Set up test fixtures."""
        self.questions = TestFixtures.create_sample_questions()
        self.engine = SessionEngine(time_limit=10)
        self.engine.begin(self.questions)

    def test_advance_moves_to_next_with_fresh_timer(self):
        for _ in range(4):
            self.engine.handle_tick()
        self.engine.select_answer("4")

        self.engine.advance()

        self.assertIs(self.engine.state, SessionState.ACTIVE)
        self.assertEqual(self.engine.current_index, 1)
        self.assertEqual(self.engine.time_remaining, 10)
        self.assertIsNone(self.engine.current_selection)

    def test_advance_unanswered_leaves_no_entry(self):
        """Advancing with no selection keeps the question unanswered and wrong."""
        self.engine.advance()

        self.assertNotIn(0, self.engine.ledger)
        self.engine.advance()
        self.engine.advance()
        review = self.engine.review()
        self.assertFalse(review.items[0].is_correct)
        self.assertIsNone(review.items[0].user_answer)

    def test_advance_restores_previous_selection(self):
        self.engine.jump_to(1)
        self.engine.select_answer("Paris")
        self.engine.jump_to(0)

        self.engine.advance()

        self.assertEqual(self.engine.current_index, 1)
        self.assertEqual(self.engine.current_selection, "Paris")

    def test_advance_past_last_finishes(self):
        self.engine.advance()
        self.engine.advance()
        self.assertIs(self.engine.state, SessionState.ACTIVE)

        self.engine.advance()

        self.assertIs(self.engine.state, SessionState.FINISHED)
        self.assertFalse(self.engine.timer_running)
        self.assertEqual(self.engine.score, 0)
        self.assertIsNone(self.engine.current_question)

    def test_scenario_all_correct(self):
        """Three questions answered correctly in order score 3 of 3."""
        for question in self.questions:
            self.engine.select_answer(question.correct_answer)
            self.engine.advance()

        self.assertIs(self.engine.state, SessionState.FINISHED)
        review = self.engine.review()
        self.assertEqual(review.score, 3)
        self.assertEqual(review.total, 3)
        self.assertEqual(self.engine.snapshot().per_question_correctness, (True, True, True))

    def test_scenario_expiry_and_wrong_answer(self):
        """Correct, expired unanswered, then wrong scores 1."""
        self.engine.select_answer("4")
        self.engine.advance()

        for _ in range(9):
            self.engine.handle_tick()
        self.assertEqual(self.engine.current_index, 1)
        self.assertEqual(self.engine.time_remaining, 1)
        self.engine.handle_tick()

        self.assertEqual(self.engine.current_index, 2)
        self.assertEqual(self.engine.time_remaining, 10)
        self.engine.select_answer("Mars")
        self.engine.advance()

        self.assertIs(self.engine.state, SessionState.FINISHED)
        self.assertEqual(self.engine.score, 1)
        self.assertEqual(self.engine.ledger, {0: "4", 2: "Mars"})
        self.assertEqual(self.engine.review().per_question_correctness, (True, False, False))

    def test_scenario_out_of_order_answers(self):
        """Answers given via jumps land at the right indices."""
        engine = SessionEngine()
        engine.begin(self.questions[:2])

        engine.jump_to(1)
        engine.select_answer("X")
        engine.jump_to(0)
        engine.select_answer("Y")
        engine.advance()

        self.assertEqual(engine.current_index, 1)
        self.assertEqual(engine.current_selection, "X")

        engine.advance()

        self.assertIs(engine.state, SessionState.FINISHED)
        self.assertEqual(engine.ledger, {0: "Y", 1: "X"})
        self.assertEqual(engine.score, 0)

    def test_advance_when_finished_is_noop(self):
        for _ in range(3):
            self.engine.advance()

        self.engine.advance()

        self.assertIs(self.engine.state, SessionState.FINISHED)

    def test_advance_when_finished_strict_raises(self):
        engine = SessionEngine(strict=True)
        engine.begin(self.questions[:1])
        engine.advance()

        with self.assertRaises(InvalidTransitionError):
            engine.advance()

    def test_finished_is_monotonic(self):
        """Once finished only reset/begin change score or ledger."""
        self.engine.select_answer("4")
        for _ in range(3):
            self.engine.advance()
        score, ledger = self.engine.score, self.engine.ledger

        self.engine.select_answer("5")
        self.engine.advance()
        self.engine.jump_to(0)
        self.engine.handle_tick()

        self.assertEqual(self.engine.score, score)
        self.assertEqual(self.engine.ledger, ledger)
        self.assertIs(self.engine.state, SessionState.FINISHED)


class TestJumpTo(unittest.TestCase):
    """Test cases for out-of-order navigation."""

    def setUp(self):
        """Set up test fixtures."""
        self.questions = TestFixtures.create_sample_questions()
        self.engine = SessionEngine(time_limit=20)
        self.engine.begin(self.questions)

    def test_jump_sets_index_with_full_countdown(self):
        for _ in range(15):
            self.engine.handle_tick()

        self.engine.jump_to(2)

        self.assertEqual(self.engine.current_index, 2)
        self.assertEqual(self.engine.time_remaining, 20)

    def test_jump_back_grants_fresh_countdown(self):
        """Returning to a question does not resume its partly elapsed timer."""
        for _ in range(5):
            self.engine.handle_tick()
        self.engine.jump_to(1)
        self.engine.jump_to(0)

        self.assertEqual(self.engine.time_remaining, 20)

    def test_jump_round_trip_restores_selection(self):
        self.engine.select_answer("5")
        self.engine.jump_to(2)
        self.engine.select_answer("Saturn")
        self.engine.jump_to(1)
        self.assertIsNone(self.engine.current_selection)

        self.engine.jump_to(0)

        self.assertEqual(self.engine.current_selection, "5")
        self.engine.jump_to(2)
        self.assertEqual(self.engine.current_selection, "Saturn")

    def test_jump_to_last_does_not_finish(self):
        self.engine.jump_to(2)
        self.engine.select_answer("Jupiter")

        self.assertIs(self.engine.state, SessionState.ACTIVE)
        self.assertIsNone(self.engine.score)

    def test_jump_out_of_range_raises(self):
        """jumpTo(5) on a 3-question session fails."""
        for bad in (5, 3, -1):
            with self.assertRaises(IndexOutOfRangeError):
                self.engine.jump_to(bad)
        self.assertEqual(self.engine.current_index, 0)

    def test_jump_non_integer_raises(self):
        for bad in (True, "1", 1.0, None):
            with self.assertRaises(IndexOutOfRangeError):
                self.engine.jump_to(bad)

    def test_jump_out_of_range_keeps_timer(self):
        self.engine.handle_tick()
        with self.assertRaises(IndexOutOfRangeError):
            self.engine.jump_to(7)
        self.assertEqual(self.engine.time_remaining, 19)

    def test_jump_when_not_started_is_noop(self):
        engine = SessionEngine()
        engine.jump_to(0)
        self.assertIs(engine.state, SessionState.NOT_STARTED)

    def test_jump_when_finished_strict_raises(self):
        engine = SessionEngine(strict=True)
        engine.begin(self.questions[:1])
        engine.advance()

        with self.assertRaises(InvalidTransitionError):
            engine.jump_to(0)


class TestTicks(unittest.TestCase):
    """Test cases for countdown ticks and stale tick handling."""

    def setUp(self):
        """Set up test fixtures."""
        self.questions = TestFixtures.create_sample_questions()
        self.engine = SessionEngine(time_limit=3)
        self.engine.begin(self.questions)

    def test_tick_decrements(self):
        self.engine.handle_tick()
        self.assertEqual(self.engine.time_remaining, 2)

    def test_expiry_advances(self):
        for _ in range(3):
            self.engine.handle_tick()

        self.assertEqual(self.engine.current_index, 1)
        self.assertEqual(self.engine.time_remaining, 3)

    def test_expiry_on_last_question_finishes(self):
        self.engine.select_answer("4")
        for _ in range(9):
            self.engine.handle_tick()

        self.assertIs(self.engine.state, SessionState.FINISHED)
        self.assertEqual(self.engine.score, 1)

    def test_expiry_keeps_selection_made_before_expiry(self):
        self.engine.select_answer("4")
        for _ in range(3):
            self.engine.handle_tick()

        self.assertEqual(self.engine.ledger, {0: "4"})

    def test_stale_generation_discarded(self):
        """A tick armed for a question already left has no effect."""
        first_generation = self.engine.generation
        self.engine.advance()

        self.engine.handle_tick(first_generation)

        self.assertEqual(self.engine.time_remaining, 3)
        self.engine.handle_tick(self.engine.generation)
        self.assertEqual(self.engine.time_remaining, 2)

    def test_generation_changes_on_every_transition(self):
        generations = {self.engine.generation}
        self.engine.jump_to(2)
        generations.add(self.engine.generation)
        self.engine.jump_to(2)
        generations.add(self.engine.generation)
        self.engine.advance()
        generations.add(self.engine.generation)

        self.assertEqual(len(generations), 4)

    def test_tick_when_not_active_ignored(self):
        engine = SessionEngine(time_limit=3)
        engine.handle_tick()
        self.assertIs(engine.state, SessionState.NOT_STARTED)
        self.assertEqual(engine.time_remaining, 3)


class TestDriverDiscipline(unittest.TestCase):
    """The driver is stopped before every transition and armed after the new timer starts."""

    def setUp(self):
        """Set up test fixtures."""
        self.questions = TestFixtures.create_sample_questions()
        self.driver = create_mock_driver()
        self.engine = SessionEngine(time_limit=5, driver=self.driver)

    def test_begin_arms_driver(self):
        self.engine.begin(self.questions)

        self.assertEqual(
            self.driver.mock_calls,
            [call.disarm(), call.arm(1, self.engine.handle_tick)]
        )

    def test_advance_disarms_then_rearms(self):
        self.engine.begin(self.questions)
        self.driver.reset_mock()

        self.engine.advance()

        self.assertEqual(
            self.driver.mock_calls,
            [call.disarm(), call.arm(2, self.engine.handle_tick)]
        )

    def test_jump_disarms_then_rearms(self):
        self.engine.begin(self.questions)
        self.driver.reset_mock()

        self.engine.jump_to(2)

        self.assertEqual(
            self.driver.mock_calls,
            [call.disarm(), call.arm(self.engine.generation, self.engine.handle_tick)]
        )

    def test_timer_restarted_before_driver_armed(self):
        remaining_at_arm = []
        self.driver.arm.side_effect = lambda generation, callback: remaining_at_arm.append(
            self.engine.time_remaining
        )
        self.engine.begin(self.questions)
        self.engine.handle_tick()
        self.engine.advance()

        self.assertEqual(remaining_at_arm, [5, 5])

    def test_finish_disarms_without_rearming(self):
        self.engine.begin(self.questions[:1])
        self.driver.reset_mock()

        self.engine.advance()

        self.assertEqual(self.driver.mock_calls, [call.disarm()])

    def test_expiry_finish_disarms(self):
        self.engine.begin(self.questions[:1])
        self.driver.reset_mock()

        for _ in range(5):
            self.engine.handle_tick(self.engine.generation)

        self.assertIs(self.engine.state, SessionState.FINISHED)
        self.driver.arm.assert_not_called()
        self.driver.disarm.assert_called_once()

    def test_reset_always_disarms(self):
        self.engine.reset()
        self.engine.begin(self.questions)
        self.driver.reset_mock()

        self.engine.reset()

        self.driver.disarm.assert_called_once()
        self.driver.arm.assert_not_called()

    def test_rejected_jump_leaves_driver_alone(self):
        self.engine.begin(self.questions)
        self.driver.reset_mock()

        with self.assertRaises(IndexOutOfRangeError):
            self.engine.jump_to(9)

        self.assertEqual(self.driver.mock_calls, [])


class TestObserverAndSnapshot(unittest.TestCase):
    """Test cases for update notifications and snapshots."""

    def setUp(self):
        """Set up test fixtures."""
        self.questions = TestFixtures.create_sample_questions()
        self.updates = []
        self.engine = SessionEngine(time_limit=5, on_update=self.updates.append)

    def test_every_change_notifies(self):
        self.engine.begin(self.questions)
        self.engine.select_answer("4")
        self.engine.handle_tick()
        self.engine.jump_to(2)
        self.engine.advance()
        self.engine.reset()

        self.assertEqual(len(self.updates), 6)
        self.assertEqual(
            [u.state for u in self.updates],
            [SessionState.ACTIVE] * 4 + [SessionState.FINISHED, SessionState.NOT_STARTED]
        )

    def test_ignored_command_does_not_notify(self):
        self.engine.advance()
        self.engine.select_answer("4")
        self.assertEqual(self.updates, [])

    def test_snapshot_contents(self):
        self.engine.begin(self.questions)
        self.engine.select_answer("4")
        self.engine.jump_to(1)
        self.engine.handle_tick()

        snapshot = self.engine.snapshot()

        self.assertIs(snapshot.state, SessionState.ACTIVE)
        self.assertEqual(snapshot.current_index, 1)
        self.assertEqual(snapshot.time_remaining, 4)
        self.assertEqual(snapshot.time_limit, 5)
        self.assertIsNone(snapshot.current_selection)
        self.assertEqual(snapshot.answered_indices, frozenset({0}))
        self.assertEqual(snapshot.questions, tuple(self.questions))
        self.assertEqual(snapshot.current_question, self.questions[1])
        self.assertIsNone(snapshot.score)
        self.assertEqual(snapshot.total, 3)

    def test_finished_snapshot_has_score(self):
        self.engine.begin(self.questions[:2])
        self.engine.select_answer("4")
        self.engine.advance()
        self.engine.advance()

        snapshot = self.updates[-1]

        self.assertIs(snapshot.state, SessionState.FINISHED)
        self.assertEqual(snapshot.score, 1)
        self.assertEqual(snapshot.total, 2)
        self.assertEqual(snapshot.per_question_correctness, (True, False))

    def test_observer_failure_does_not_break_engine(self):
        observer = Mock(side_effect=RuntimeError("render failed"))
        engine = SessionEngine(on_update=observer)

        engine.begin(self.questions)
        engine.advance()

        self.assertEqual(engine.current_index, 1)
        self.assertEqual(observer.call_count, 2)


class TestScoreProperties(unittest.TestCase):
    """Randomized command sequences keep the scoring invariants."""

    def test_score_matches_ledger_for_random_sessions(self):
        questions = TestFixtures.create_sample_questions()
        rng = random.Random(1234)

        for _ in range(200):
            engine = SessionEngine(time_limit=3)
            engine.begin(questions)
            while engine.state is SessionState.ACTIVE:
                action = rng.choice(("select", "advance", "jump", "tick"))
                if action == "select":
                    question = engine.current_question
                    engine.select_answer(rng.choice(question.choices))
                elif action == "advance":
                    engine.advance()
                elif action == "jump":
                    engine.jump_to(rng.randrange(len(questions)))
                else:
                    engine.handle_tick()

            ledger = engine.ledger
            expected = sum(1 for i, q in enumerate(questions) if ledger.get(i) == q.correct_answer)
            self.assertEqual(engine.score, expected)
            self.assertTrue(0 <= engine.score <= len(questions))
            self.assertEqual(engine.review().total, len(questions))


if __name__ == '__main__':
    unittest.main()
