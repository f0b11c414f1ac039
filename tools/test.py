#!/usr/bin/env python3
"""Run the txnprobe suites, and optionally the isolation scenario on a live server."""

import argparse
import sys

from common import TESTS_DIR, relative, report, run, step

# Exit codes of ``txnprobe isolation``.
LIVE_OUTCOMES = {
    0: "isolation guarantees held",
    1: "isolation violated",
    2: "could not talk to the server",
}


def run_suites(verbose: bool = False, keyword: str | None = None) -> bool:
    """Run pytest against the in-process fake server."""
    step("pytest")
    # sys.executable keeps pytest in the environment txnprobe is installed in
    cmd = [sys.executable, "-m", "pytest", relative(TESTS_DIR)]
    if verbose:
        cmd.append("-v")
    if keyword:
        cmd.extend(["-k", keyword])
    code = run(cmd, check=False).returncode
    return report(code == 0, "suites passed" if code == 0 else f"pytest exited {code}")


def run_live(address: str) -> bool:
    """Run ``txnprobe isolation`` against a running server."""
    step(f"live scenario on {address}")
    host, _, port = address.rpartition(":")
    cmd = [sys.executable, "-m", "txnprobe", "isolation", "--port", port]
    if host:
        cmd.extend(["--host", host])
    code = run(cmd, check=False).returncode
    return report(code == 0, LIVE_OUTCOMES.get(code, f"txnprobe exited {code}"))


def main() -> int:
    parser = argparse.ArgumentParser(description="Run txnprobe tests")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("-k", dest="keyword", help="Only run tests matching this expression")
    parser.add_argument(
        "--live",
        metavar="HOST:PORT",
        help="Also run the isolation scenario against a running server",
    )
    args = parser.parse_args()

    ok = run_suites(verbose=args.verbose, keyword=args.keyword)
    if args.live:
        ok = run_live(args.live) and ok
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
