#!/usr/bin/env python3
"""
termscribe.py — TermScribe entry point.
────────────────────────────────────────
Record a shell session and query its command history:

    python termscribe.py record [options]
    python termscribe.py history [COUNT|all] [--sanitized]
    python termscribe.py env
    python termscribe.py info
    python termscribe.py stop-redaction

`record` will:
  1. Choose a transcript path under the system temp directory.
  2. Export it to the recorded shell as TERMSCRIBE_TRANSCRIPT.
  3. Start the redaction engine (if configured) to write a redacted copy.
  4. Fork a PTY, run the shell inside it, and append every command and its
     output to the transcript.
  5. On exit: stop capture first, then stop the redaction engine.

Configuration (environment or .env in the project root)
───────────────────────────────────────────────────────
  TERMSCRIBE_ENGINE        Path to the redaction engine script.
  TERMSCRIBE_INTERPRETERS  Comma-separated interpreter names to run it with.
                           Default: python3,python
  TERMSCRIBE_LOG_DIR       Directory for transcripts. Default: <tmp>/termscribe
  TERMSCRIBE_TRANSCRIPT    Set by `record` for the recorded shell.

Exit Codes
──────────
  0     Success (including "No commands found").
  1     Query error (no transcript, invalid count, unreadable file).
  Any other value from `record` is the raw exit code of the shell.
"""

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from colorama import Fore, Style, init as colorama_init
from dotenv import load_dotenv

from command_history import HistoryError, HistoryQueryService, HistoryResult, Variant
from recorder import TranscriptRecorder, TranscriptWriter
from redaction import RedactionError
from session_context import ENV_TRANSCRIPT_VAR, SessionContext, create_session_paths

__version__ = "0.1.0"

# Project root directory (where this script lives); .env is loaded from here.
_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))

colorama_init(autoreset=True)
logger = logging.getLogger("termscribe")

_INFO  = f"{Fore.CYAN}{Style.BRIGHT}"
_WARN  = f"{Fore.YELLOW}{Style.BRIGHT}"
_ERROR = f"{Fore.RED}{Style.BRIGHT}"
_DIM   = Style.DIM
_RESET = Style.RESET_ALL
_TAG   = f"{_INFO}[TermScribe]{_RESET}"

_DEFAULT_INTERPRETERS = "python3,python"


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="termscribe",
        description=(
            "TermScribe — record a shell session into a transcript, keep a "
            "secret-redacted copy, and query recent command history."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the Python logging level. Default: WARNING.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"TermScribe {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    record = sub.add_parser("record", help="Start a recorded shell session.")
    record.add_argument(
        "--shell",
        default=None,
        metavar="PATH",
        help="Shell to run. Default: $SHELL, then /bin/sh.",
    )
    record.add_argument(
        "--log-dir",
        default=os.getenv("TERMSCRIBE_LOG_DIR"),
        metavar="DIR",
        help="Directory for transcripts. Default: <tmp>/termscribe.",
    )
    record.add_argument(
        "--engine",
        default=os.getenv("TERMSCRIBE_ENGINE"),
        metavar="PATH",
        help="Redaction engine script. Without it, no redacted copy is written.",
    )
    record.add_argument(
        "--interpreters",
        default=os.getenv("TERMSCRIBE_INTERPRETERS", _DEFAULT_INTERPRETERS),
        metavar="NAMES",
        help=f"Comma-separated interpreters for the engine. Default: {_DEFAULT_INTERPRETERS}.",
    )

    history = sub.add_parser("history", help="Show recent commands.")
    history.add_argument(
        "count",
        nargs="?",
        default="all",
        help="Number of most recent commands, or 'all'. Default: all.",
    )
    history.add_argument(
        "--sanitized",
        action="store_true",
        default=False,
        help="Read the redacted transcript (falls back to raw if unavailable).",
    )
    _add_path_arguments(history)

    sub.add_parser("env", help=f"Print {ENV_TRANSCRIPT_VAR} if set.")

    info = sub.add_parser("info", help="Show transcript paths and redaction state.")
    _add_path_arguments(info)

    sub.add_parser("stop-redaction", help="Stop the redaction engine. Always succeeds.")
    return parser


def _add_path_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--transcript",
        default=None,
        metavar="PATH",
        help=f"Explicit transcript to read (takes priority over {ENV_TRANSCRIPT_VAR}).",
    )
    parser.add_argument(
        "--sanitized-path",
        default=None,
        metavar="PATH",
        help="Redacted transcript to read for --sanitized queries.",
    )


def configure_logging(level_str: str) -> None:
    """Set up structured logging to stderr."""
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level_str.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_interpreters(value: Optional[str]) -> list[str]:
    return [name.strip() for name in (value or "").split(",") if name.strip()]


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────

def cmd_record(args: argparse.Namespace) -> int:
    raw_path, sanitized_path = create_session_paths(args.log_dir)
    context = SessionContext(raw_path=raw_path, sanitized_path=sanitized_path)
    writer = TranscriptWriter(raw_path)
    recorder = TranscriptRecorder(writer, shell=args.shell)

    # The engine tails the raw file, so it must exist before the engine starts.
    writer.open()
    context.export_transcript_path()
    context.register_shutdown(recorder.stop_capture)

    if args.engine:
        try:
            context.supervisor.start(
                args.engine, parse_interpreters(args.interpreters), raw_path, sanitized_path,
            )
        except RedactionError as exc:
            print(f"{_TAG} {_WARN}Redaction disabled:{_RESET} {exc}", file=sys.stderr)
    else:
        print(
            f"{_TAG} {_WARN}No redaction engine configured; sanitized queries "
            f"will return raw content.{_RESET}",
            file=sys.stderr,
        )

    _print_banner(raw_path, sanitized_path, context)

    try:
        exit_code = recorder.start()
    except KeyboardInterrupt:
        exit_code = 130  # 128 + SIGINT
    finally:
        context.shutdown()

    logger.info("Session ended with code %d; transcript at %s", exit_code, raw_path)
    return exit_code


def cmd_history(args: argparse.Namespace) -> int:
    context = SessionContext.from_environment(
        override_path=args.transcript, sanitized_path=args.sanitized_path,
    )
    variant = Variant.SANITIZED if args.sanitized else Variant.ORIGINAL
    service = HistoryQueryService(context)

    try:
        result = service.query(args.count, variant)
    except HistoryError as exc:
        print(f"{_TAG} {_ERROR}{exc}{_RESET}", file=sys.stderr)
        return 1

    print_history(result)
    return 0


def cmd_env(args: argparse.Namespace) -> int:
    value = SessionContext.discovery_value()
    if value is None:
        print(f"{_TAG} {_ERROR}No transcript path available{_RESET}", file=sys.stderr)
        return 1
    print(f"{ENV_TRANSCRIPT_VAR}={value}")
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    context = SessionContext.from_environment(
        override_path=args.transcript, sanitized_path=args.sanitized_path,
    )
    info = context.info()
    print(f"{_TAG} Transcript:           {info['raw_path'] or 'not found'}")
    print(f"{_TAG} Sanitized transcript: {info['sanitized_path'] or 'not found'}")
    print(f"{_TAG} Redaction engine:     {info['redaction_state']}")
    print(f"{_TAG} {_DIM}{info['storage_note']}{_RESET}")
    return 0


def cmd_stop_redaction(args: argparse.Namespace) -> int:
    context = SessionContext.from_environment()
    try:
        context.supervisor.stop()
    except Exception as exc:
        logger.debug("Ignoring stop-redaction error: %s", exc, exc_info=True)
    print(f"{_TAG} Redaction engine: {context.redaction_state.value}")
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Output
# ─────────────────────────────────────────────────────────────────────────────

def print_history(result: HistoryResult) -> None:
    if result.fell_back:
        print(
            f"{_TAG} {_WARN}Sanitized transcript not available yet — showing "
            f"UNREDACTED content from {result.path}{_RESET}",
            file=sys.stderr,
        )
    if not result.blocks:
        print(f"{_TAG} {result.message}")
        return

    for index, block in enumerate(result.blocks, start=1):
        print(f"{_INFO}{'─' * 20} [{index}] {block.start_time} {'─' * 20}{_RESET}")
        print(block.body)
        print()

    if result.partial_tail:
        print(f"{_TAG} {_DIM}The last command may still be writing output.{_RESET}")


def _print_banner(raw_path: str, sanitized_path: str, context: SessionContext) -> None:
    banner = (
        f"\n{_INFO}{'─' * 60}{_RESET}\n"
        f"{_INFO}  TermScribe — session recording started{_RESET}\n"
        f"  Transcript : {raw_path}\n"
        f"  Sanitized  : {sanitized_path}\n"
        f"  Redaction  : {context.redaction_state.value}\n"
        f"  Type 'exit' to stop recording.\n"
        f"{_INFO}{'─' * 60}{_RESET}\n"
    )
    print(banner, flush=True)


_COMMANDS = {
    "record": cmd_record,
    "history": cmd_history,
    "env": cmd_env,
    "info": cmd_info,
    "stop-redaction": cmd_stop_redaction,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    TermScribe entry point.

    Returns the exit code to pass to the OS.
    """
    load_dotenv(os.path.join(_PROJECT_ROOT, ".env"))

    parser = build_arg_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    logger.info("TermScribe %s | command=%s", __version__, args.command)

    return _COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
