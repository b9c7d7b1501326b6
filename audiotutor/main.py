from __future__ import annotations

"""CLI entry point for audiotutor."""

import argparse
import asyncio
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .app import explain
from .app.session_machine import SessionState, SessionStateMachine
from .audio.capture import Recorder, make_recorder_from_config
from .config.config import load_config, validate_config
from .generation.gemini import make_service_from_config
from .models import Complexity, Pacing, SessionConfiguration, SessionResult, WorkloadRating
from .quiz.flow import QuizFlowController
from .results.persist import write_session_log
from .storage import (
    append_session_results,
    export_ndjson,
    init_store,
    load_all,
    query_condition,
    validate_records,
)
from .storage.schema import SessionResultRow

OPTION_LETTERS = "abcdefgh"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="audiotutor", description="Guided audio lessons with spoken questions")
    p.add_argument("--version", action="store_true", help="Print version and exit")
    sub = p.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run one lesson session")
    run.add_argument("--topic", type=str, required=True, help="Lesson topic")
    run.add_argument("--complexity", choices=["simple", "complex"], default="simple")
    run.add_argument("--pacing", choices=["normal", "fast"], default="normal")
    run.add_argument("--config", type=str, default=None, help="Path to YAML config")
    run.add_argument("--participant", type=str, default=None, help="Participant id (default: random p-NNNN)")
    run.add_argument("--explain", action="store_true", help="Print one trace line per session milestone")
    run.add_argument("--silent", action="store_true", help="Keep time without an audio device")

    res = sub.add_parser("results", help="Print stored session results")
    res.add_argument("--config", type=str, default=None, help="Path to YAML config")
    res.add_argument("--data-dir", type=str, default=None, help="Directory holding session_results.parquet")
    res.add_argument("--complexity", choices=["simple", "complex"], default=None, help="Only this complexity")
    res.add_argument("--pacing", choices=["normal", "fast"], default=None, help="Only this pacing")
    res.add_argument("--ndjson", type=str, default=None, help="Also export the rows as NDJSON to this path")
    return p.parse_args(argv)


def _parse_rating(line: str) -> WorkloadRating:
    parts = line.replace(",", " ").split()
    if len(parts) != 4:
        raise ValueError("enter four numbers: mental demand, performance, effort, frustration")
    return WorkloadRating(*(int(x) for x in parts))


def _parse_option(line: str) -> Optional[int]:
    token = line.strip().lower()
    if len(token) == 1 and token in OPTION_LETTERS:
        return OPTION_LETTERS.index(token)
    if token.isdigit():
        return int(token) - 1
    return None


def _show_question(quiz: QuizFlowController) -> None:
    q = quiz.current_question
    if q is None:
        return
    print(f"\nQuestion {quiz.current_index + 1}/{quiz.total}: {q.prompt}")
    for i, option in enumerate(q.options):
        print(f"  {OPTION_LETTERS[i]}) {option}")
    print("Answer with a letter, 's' to skip, 'p' for previous.")


def _announce(machine: SessionStateMachine, state: SessionState) -> None:
    if state == SessionState.LOADING:
        print(f"Preparing a lesson on '{machine.config.topic}'...")
    elif state == SessionState.PLAYING:
        print("Playing lesson. Press Enter to ask a question, 'q' to quit.")
    elif state == SessionState.LISTENING:
        print("Listening... press Enter when you are done.")
    elif state == SessionState.PROCESSING:
        print("Thinking...")
    elif state == SessionState.ANSWERING:
        if machine.transcript:
            print(f"You asked: {machine.transcript}")
        print(f"Answer: {machine.answer_text}")
    elif state == SessionState.QUIZ and machine.quiz is not None:
        print("\nLesson complete. Quiz time.")
        _show_question(machine.quiz)
    elif state == SessionState.RATING:
        print("\nRate the session (0-100 each): mental demand, performance, effort, frustration")
    elif state == SessionState.ERROR:
        print(f"ERROR: {machine.error_message} Type 'r' to retry or 'q' to quit.")


def _handle_line(machine: SessionStateMachine, line: str) -> bool:
    """Route one line of input by state. Returns False when the user quits."""
    text = line.strip().lower()
    if text == "q":
        return False
    state = machine.state
    try:
        if state == SessionState.PLAYING:
            machine.start_interruption()
        elif state == SessionState.LISTENING:
            machine.stop_interruption()
        elif state == SessionState.QUIZ:
            if text == "s":
                machine.skip_quiz_question()
            elif text == "p":
                machine.previous_quiz_question()
            else:
                option = _parse_option(text)
                if option is None:
                    print("Please enter an option letter.")
                else:
                    machine.submit_quiz_answer(option)
        elif state == SessionState.RATING:
            machine.submit_rating(_parse_rating(text))
        elif state == SessionState.ERROR and text == "r":
            machine.restart()
    except ValueError as e:
        print(f"Invalid input: {e}")
    return True


def _start_stdin_reader(loop: asyncio.AbstractEventLoop, lines: "asyncio.Queue[Optional[str]]") -> None:
    def read() -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(lines.put_nowait, line)
        loop.call_soon_threadsafe(lines.put_nowait, None)

    threading.Thread(target=read, name="stdin-reader", daemon=True).start()


async def _run_session(machine: SessionStateMachine) -> Dict[str, Any]:
    loop = asyncio.get_running_loop()
    done = asyncio.Event()
    outcome: Dict[str, Any] = {"result": None, "log": None}

    def finished(result: SessionResult) -> None:
        outcome["result"] = result
        done.set()

    machine.events.subscribe("state_changed", lambda change: _announce(machine, change[1]))
    machine.events.subscribe("quiz_changed", _show_question)
    machine.events.subscribe("session_logged", lambda record: outcome.__setitem__("log", record))
    machine.events.subscribe("session_finished", finished)

    lines: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
    _start_stdin_reader(loop, lines)
    await machine.start()

    async def pump() -> None:
        while True:
            line = await lines.get()
            if line is None or not _handle_line(machine, line):
                done.set()
                return

    reader = asyncio.ensure_future(pump())
    try:
        await done.wait()
    finally:
        reader.cancel()
        await machine.shutdown()
    return outcome


def _save_outcome(cfg: Dict[str, Any], machine: SessionStateMachine, outcome: Dict[str, Any]) -> None:
    results = cfg["results"]
    if outcome["log"] is not None:
        path = write_session_log(outcome["log"], results["log_dir"])
        print(f"Session log written to {path}")
    result: Optional[SessionResult] = outcome["result"]
    if result is None:
        return
    data_dir = Path(results["data_dir"])
    init_store(data_dir)
    row = SessionResultRow.from_result(
        result,
        session_id=result.session_id or "",
        finished_at=datetime.now(timezone.utc),
        participant_id=machine.participant_id,
        interruptions=machine.interruptions,
    )
    append_session_results(validate_records([row]), data_dir)
    print(f"Quiz score: {result.quiz_score}/{result.quiz_total}")


def _cmd_run(args: argparse.Namespace) -> int:
    explain.enable(args.explain)
    cfg = validate_config(load_config(args.config))
    if args.silent:
        cfg["audio"]["backend"] = "silent"

    try:
        service = make_service_from_config(cfg)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    recorder: Optional[Recorder] = None
    if not args.silent:
        try:
            recorder = make_recorder_from_config(cfg)
        except RuntimeError as e:
            print(f"[WARN] Recording unavailable, questions are disabled: {e}")

    config = SessionConfiguration(
        topic=args.topic,
        complexity=Complexity.COMPLEX if args.complexity == "complex" else Complexity.SIMPLE,
        pacing=Pacing.FAST if args.pacing == "fast" else Pacing.NORMAL,
    )
    machine = SessionStateMachine(config, service, cfg=cfg, recorder=recorder, participant_id=args.participant)

    async def run() -> Dict[str, Any]:
        try:
            return await _run_session(machine)
        finally:
            await service.aclose()

    try:
        outcome = asyncio.run(run())
    except KeyboardInterrupt:
        print("\nSession aborted.")
        return 130
    _save_outcome(cfg, machine, outcome)
    return 0 if outcome["result"] is not None else 1


def _cmd_results(args: argparse.Namespace) -> int:
    cfg = validate_config(load_config(args.config))
    data_dir = Path(args.data_dir or cfg["results"]["data_dir"])
    df = load_all(data_dir)
    if args.complexity or args.pacing:
        df = query_condition(
            df,
            complexity=args.complexity.capitalize() if args.complexity else None,
            pacing=args.pacing.capitalize() if args.pacing else None,
        )
    if args.ndjson:
        export_ndjson(df, Path(args.ndjson))
        print(f"Exported {len(df)} rows to {args.ndjson}")
    if df.empty:
        print(f"No session results in {data_dir}")
        return 0
    cols = ["finished_at", "participant_id", "topic", "complexity", "pacing", "quiz_score", "quiz_total", "acc", "raw_tlx"]
    print(df[cols].to_string(index=False))
    return 0


def cli(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    if args.version:
        print(f"audiotutor {__version__}")
        sys.exit(0)
    if args.command == "run":
        sys.exit(_cmd_run(args))
    if args.command == "results":
        sys.exit(_cmd_results(args))
    _parse_args(["--help"])


if __name__ == "__main__":
    cli()
