"""
Gauntlet CLI - Command-line interface for the engine.

Usage:
    gauntlet serve [--host H] [--port P]        Run the HTTP API
    gauntlet play <mode> --title T [--abstract A] [--tech-stack S]
                                                Play a session in the terminal

Both commands talk to the Judge configured by GAUNTLET_JUDGE_URL.
"""

import argparse
import sys

from .config import EngineConfig
from .errors import GauntletError, JudgeUnavailableError, ValidationError


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Gauntlet - Turn-based AI evaluation engine",
        prog="gauntlet",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    # Play command
    play_parser = subparsers.add_parser("play", help="Play a session in the terminal")
    play_parser.add_argument("mode", choices=["viva", "battle"], help="Session mode")
    play_parser.add_argument("--subject-id", default="cli-project", help="Project id")
    play_parser.add_argument("--title", required=True, help="Project title")
    play_parser.add_argument("--abstract", default="", help="Project abstract")
    play_parser.add_argument("--tech-stack", default="", help="Project tech stack")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "play":
        cmd_play(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_serve(args):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "gauntlet.api.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
    )


def cmd_play(args):
    """Play one session interactively."""
    from .judge import HttpJudgeClient, SubjectContext
    from .log import configure_logging
    from .session import SessionRegistry, SessionStatus, StaticSubjectDirectory

    config = EngineConfig.from_env()
    configure_logging("WARNING")

    subject = SubjectContext(
        subject_id=args.subject_id,
        title=args.title,
        abstract=args.abstract,
        tech_stack=args.tech_stack,
    )
    directory = StaticSubjectDirectory()
    directory.add(subject)
    judge = HttpJudgeClient(base_url=config.judge_url, timeout=config.judge_timeout)
    registry = SessionRegistry(
        judge=judge,
        directory=directory,
        viva_question_count=config.viva_question_count,
        max_battle_turns=config.max_battle_turns,
        judge_timeout=config.judge_timeout,
    )

    try:
        session_id = registry.create(subject.subject_id, args.mode)
    except GauntletError as e:
        print(f"Error: {e.message}")
        sys.exit(1)

    machine = registry.get(session_id)
    snapshot = machine.snapshot()
    if snapshot.opening_line:
        print(f"\n{snapshot.opening_line}")

    try:
        while machine.is_active:
            turn = machine.ledger.current
            if turn.is_pending:
                print(f"\n[{turn.sequence_index + 1}] {turn.prompt}")
                answer = input("> ").strip()
                if answer in {"quit", "exit"}:
                    machine.abandon()
                    break
                if not answer:
                    continue
                try:
                    result = machine.submit_response(answer)
                except (JudgeUnavailableError, ValidationError) as e:
                    print(f"Judge error ({e.code}): {e.message}. Your answer is kept; try again.")
                    continue
                _print_result(result)
            elif len(machine.ledger) < len(machine.question_bank):
                machine.advance()
            else:
                machine.finish()
    except (KeyboardInterrupt, EOFError):
        if machine.is_active:
            machine.abandon()
    finally:
        judge.close()

    snapshot = machine.snapshot()
    print(f"\nSession {snapshot.status.value}.")
    if snapshot.status == SessionStatus.COMPLETED:
        print(f"Scores: {snapshot.scores} (average {snapshot.average_score})")


def _print_result(result):
    verdict = result.turn.verdict
    if verdict.score is not None:
        print(f"Score: {verdict.score}/10")
    if verdict.feedback:
        print(verdict.feedback)
    if result.damage is not None:
        print(
            f"You took {verdict.participant_damage} damage, dealt {verdict.judge_damage}. "
            f"HP {result.damage.participant_hp} vs {result.damage.judge_hp}"
        )
    if result.turn_cap_reached:
        print("The battle dragged on too long.")


if __name__ == "__main__":
    main()
