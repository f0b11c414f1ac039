#!/usr/bin/env python3
"""Paths and helpers shared by the txnprobe tool scripts."""

import subprocess
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).parent.parent.resolve()
PACKAGE_DIR = ROOT_DIR / "txnprobe"
TESTS_DIR = ROOT_DIR / "tests"

# Sources ruff checks; the tool scripts themselves are left out.
SOURCE_DIRS = [PACKAGE_DIR, TESTS_DIR]


def relative(path: Path) -> str:
    return str(path.relative_to(ROOT_DIR))


def run(cmd: list[str], check: bool = True) -> subprocess.CompletedProcess:
    """Run a command from the project root and echo it."""
    print(f"+ {' '.join(cmd)}")
    return subprocess.run(cmd, cwd=ROOT_DIR, check=check)


def step(title: str) -> None:
    print(f"\n== {title}")


def report(ok: bool, message: str) -> bool:
    """Print a pass/fail line and return ``ok``."""
    if ok:
        print(f"✓ {message}")
    else:
        print(f"✗ {message}", file=sys.stderr)
    return ok
