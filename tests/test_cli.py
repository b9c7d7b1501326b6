import io
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from contextlib import redirect_stdout
from unittest import mock

from audiotutor.app.session_machine import SessionState
from audiotutor.main import _cmd_results, _handle_line, _parse_args, _parse_option, _parse_rating
from audiotutor.models import WorkloadRating
from audiotutor.storage import SessionResultRow, append_session_results, validate_records


class CliParsingTests(unittest.TestCase):
    def test_run_arguments(self) -> None:
        args = _parse_args(["run", "--topic", "Tides", "--pacing", "fast", "--silent"])
        self.assertEqual((args.command, args.topic, args.pacing, args.complexity), ("run", "Tides", "fast", "simple"))
        self.assertTrue(args.silent)

    def test_option_letters_and_numbers(self) -> None:
        self.assertEqual(_parse_option("b"), 1)
        self.assertEqual(_parse_option("3"), 2)
        self.assertIsNone(_parse_option("maybe"))

    def test_rating(self) -> None:
        self.assertEqual(_parse_rating("10, 20 30 40"), WorkloadRating(10, 20, 30, 40))
        with self.assertRaises(ValueError):
            _parse_rating("10 20")
        with self.assertRaises(ValueError):
            _parse_rating("10 20 30 400")


class HandleLineTests(unittest.TestCase):
    def machine(self, state: SessionState) -> mock.Mock:
        m = mock.Mock()
        m.state = state
        return m

    def test_enter_toggles_interruption(self) -> None:
        m = self.machine(SessionState.PLAYING)
        self.assertTrue(_handle_line(m, "\n"))
        m.start_interruption.assert_called_once_with()
        m = self.machine(SessionState.LISTENING)
        _handle_line(m, "")
        m.stop_interruption.assert_called_once_with()

    def test_quiz_commands(self) -> None:
        m = self.machine(SessionState.QUIZ)
        _handle_line(m, "c")
        _handle_line(m, "s")
        _handle_line(m, "p")
        m.submit_quiz_answer.assert_called_once_with(2)
        m.skip_quiz_question.assert_called_once_with()
        m.previous_quiz_question.assert_called_once_with()

    def test_invalid_rating_is_reported(self) -> None:
        m = self.machine(SessionState.RATING)
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.assertTrue(_handle_line(m, "1 2 3"))
        m.submit_rating.assert_not_called()
        self.assertIn("Invalid input", buf.getvalue())

    def test_retry_and_quit(self) -> None:
        m = self.machine(SessionState.ERROR)
        _handle_line(m, "r")
        m.restart.assert_called_once_with()
        self.assertFalse(_handle_line(m, "q"))


class ResultsCommandTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        rows = [self._row("s1", "Normal"), self._row("s2", "Fast")]
        append_session_results(validate_records(rows), self.data_dir)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _row(self, session_id: str, pacing: str) -> SessionResultRow:
        return SessionResultRow(
            session_id=session_id,
            finished_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
            participant_id="p-0001",
            topic="Tides",
            complexity="Simple",
            pacing=pacing,
            quiz_total=3,
            quiz_score=2,
            quiz_skipped=0,
            interruptions=0,
            mental_demand=40,
            performance=60,
            effort=50,
            frustration=10,
        )

    def run_results(self, *extra: str) -> str:
        args = _parse_args(["results", "--data-dir", str(self.data_dir), *extra])
        buf = io.StringIO()
        with redirect_stdout(buf):
            self.assertEqual(_cmd_results(args), 0)
        return buf.getvalue()

    def test_filters_by_pacing(self) -> None:
        out = self.run_results("--pacing", "fast")
        self.assertIn("Fast", out)
        self.assertNotIn("Normal", out)

    def test_no_match(self) -> None:
        out = self.run_results("--complexity", "complex")
        self.assertIn("No session results", out)

    def test_ndjson_export(self) -> None:
        out_path = self.data_dir / "export" / "fast.ndjson"
        out = self.run_results("--pacing", "fast", "--ndjson", str(out_path))
        self.assertIn("Exported 1 rows", out)
        lines = out_path.read_text(encoding="utf-8").strip().splitlines()
        self.assertEqual(len(lines), 1)
        self.assertIn('"session_id":"s2"', lines[0])


if __name__ == "__main__":
    unittest.main()
