import unittest

from audiotutor.models import (
    Complexity,
    Pacing,
    QuizQuestion,
    SessionConfiguration,
    WorkloadRating,
    quiz_from_json,
)


class ModelTests(unittest.TestCase):
    def test_quiz_question_requires_valid_correct_index(self) -> None:
        with self.assertRaises(ValueError):
            QuizQuestion("q", ("a", "b"), 2)
        q = QuizQuestion("q", ["a", "b"], 1)
        self.assertEqual(q.options, ("a", "b"))

    def test_quiz_json_keys(self) -> None:
        items = [{"question": "q", "options": ["a", "b"], "correctIndex": 0}]
        quiz = quiz_from_json(items)
        self.assertEqual(quiz[0].to_json(), items[0])

    def test_rating_bounds(self) -> None:
        self.assertEqual(WorkloadRating().to_json()["effort"], 50)
        with self.assertRaises(ValueError):
            WorkloadRating(mental_demand=101)
        with self.assertRaises(ValueError):
            WorkloadRating(effort=-1)
        with self.assertRaises(ValueError):
            WorkloadRating(frustration=True)

    def test_configuration_json(self) -> None:
        config = SessionConfiguration("Tides", Complexity.COMPLEX, Pacing.FAST)
        self.assertEqual(SessionConfiguration.from_json(config.to_json()), config)


if __name__ == "__main__":
    unittest.main()
