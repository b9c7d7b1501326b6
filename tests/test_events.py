import io
import unittest
from contextlib import redirect_stdout

from audiotutor.app import explain
from audiotutor.app.events import EventBus


class EventBusTests(unittest.TestCase):
    def test_subscribe_emit_unsubscribe(self) -> None:
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe("mode_changed", seen.append)
        bus.emit("mode_changed", "quiz")
        unsubscribe()
        bus.emit("mode_changed", "default")
        self.assertEqual(seen, ["quiz"])

    def test_failing_subscriber_does_not_block_others(self) -> None:
        bus = EventBus()
        seen = []

        def broken(_):
            raise RuntimeError("boom")

        bus.subscribe("session_finished", broken)
        bus.subscribe("session_finished", seen.append)
        bus.emit("session_finished", 1)
        self.assertEqual(seen, [1])


class ExplainTests(unittest.TestCase):
    def tearDown(self) -> None:
        explain.enable(False)

    def test_trace_only_when_enabled(self) -> None:
        buf = io.StringIO()
        with redirect_stdout(buf):
            explain.trace("state_changed", {"to": "PLAYING"})
            explain.enable(True)
            explain.trace("state_changed", {"to": "QUIZ"})
        self.assertEqual(buf.getvalue().strip(), '[EXPLAIN] state_changed :: {"to":"QUIZ"}')

    def test_warn_always_prints(self) -> None:
        buf = io.StringIO()
        with redirect_stdout(buf):
            explain.warn("dropping entry")
        self.assertEqual(buf.getvalue().strip(), "WARNING: dropping entry")


if __name__ == "__main__":
    unittest.main()
