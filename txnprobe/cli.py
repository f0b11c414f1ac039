"""Command line entry point: ``txnprobe isolation`` and ``txnprobe exec``."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from .config import ProbeConfig
from .connection import DEFAULT_HOST, DEFAULT_PORT, connect
from .exceptions import ProbeError, TransactionError
from .log import configure_logging
from .protocol import DEFAULT_BUFFER_SIZE, FRAMING_NAMES
from .scenario import DEFAULT_TABLE, ScenarioReport, run_isolation_scenario

EXIT_OK = 0
EXIT_VIOLATION = 1
EXIT_FAILURE = 2
# A statement was refused before it reached the server.
EXIT_USAGE = 3


def _section(title: str) -> None:
    print(f"\n-- {title} --")


def _fail(message: str) -> None:
    print(f"✗ {message}", file=sys.stderr)


def _positive_int(text: str) -> int:
    value = int(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {text}")
    return value


def _positive_float(text: str) -> float:
    value = float(text)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be positive, got {text}")
    return value


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--host", default=DEFAULT_HOST, help="Server host")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    parser.add_argument(
        "--framing",
        choices=FRAMING_NAMES,
        default="raw",
        help="How responses are delimited (default: raw single read)",
    )
    parser.add_argument(
        "--buffer-size",
        type=_positive_int,
        default=DEFAULT_BUFFER_SIZE,
        help="Read buffer size in bytes",
    )
    parser.add_argument(
        "--timeout", type=_positive_float, default=None, help="Socket timeout in seconds"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="txnprobe",
        description="Client and isolation probe for the database server",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    isolation = subparsers.add_parser(
        "isolation", help="Run the two-session isolation scenario"
    )
    _add_connection_args(isolation)
    isolation.add_argument("--table", default=DEFAULT_TABLE, help="Scratch table name")

    exec_ = subparsers.add_parser("exec", help="Send statements on one connection")
    _add_connection_args(exec_)
    exec_.add_argument("statements", nargs="+", help="Statements to send, in order")

    return parser


def _print_report(report: ScenarioReport) -> None:
    _section("Steps")
    for step in report.steps:
        print(f"[{step.session}] {step.command}")
        if step.text:
            for line in step.text.splitlines():
                print(f"    {line}")

    _section("Checks")
    for check in report.checks:
        if check.passed:
            print(f"✓ {check.name}: {check.description}")
        else:
            _fail(
                f"{check.name}: {check.description} "
                f"(expected {check.expected!r}, observed {check.observed!r})"
            )


def run_isolation(config: ProbeConfig, table: str) -> int:
    try:
        report = run_isolation_scenario(
            config.address,
            framing_factory=config.make_framing,
            timeout=config.timeout,
            table=table,
        )
    except ProbeError as e:
        _fail(str(e))
        return EXIT_FAILURE

    _print_report(report)
    if report.passed:
        _section("Isolation guarantees held")
        return EXIT_OK
    _section("Isolation violated")
    return EXIT_VIOLATION


def run_exec(config: ProbeConfig, commands: Sequence[str]) -> int:
    try:
        with connect(
            config.address, framing=config.make_framing(), timeout=config.timeout
        ) as conn:
            for command in commands:
                response = conn.exec(command)
                print(f"> {command}")
                print(response.text)
                if response.possibly_truncated:
                    _fail("response filled the read buffer and may be truncated")
    except TransactionError as e:
        _fail(f"{e} (statement not sent)")
        return EXIT_USAGE
    except ProbeError as e:
        _fail(str(e))
        return EXIT_FAILURE
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = ProbeConfig.from_args(args)
    configure_logging(config.log_level)

    if args.command == "isolation":
        return run_isolation(config, args.table)
    return run_exec(config, args.statements)


if __name__ == "__main__":
    sys.exit(main())
