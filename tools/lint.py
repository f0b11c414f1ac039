#!/usr/bin/env python3
"""Lint txnprobe: ruff over the package and tests, plus project rules."""

import argparse
import ast
import subprocess
import sys

from common import PACKAGE_DIR, SOURCE_DIRS, relative, report, run, step

# Only the command line may write to stdout/stderr; library code logs.
OUTPUT_MODULES = {"cli.py", "__main__.py"}


def ruff(fix: bool = False) -> bool:
    step("ruff")
    paths = [relative(p) for p in SOURCE_DIRS]
    check_cmd = ["ruff", "check", *paths]
    format_cmd = ["ruff", "format", *paths]
    if fix:
        check_cmd.insert(2, "--fix")
    else:
        format_cmd.insert(2, "--check")

    ok = True
    for cmd in (check_cmd, format_cmd):
        try:
            run(cmd)
        except subprocess.CalledProcessError:
            ok = False
    return report(ok, "ruff clean" if ok else "ruff reported problems")


def library_does_not_print() -> bool:
    """Flag print() calls in library modules."""
    step("library output")
    offenders = []
    for path in sorted(PACKAGE_DIR.glob("*.py")):
        if path.name in OUTPUT_MODULES:
            continue
        tree = ast.parse(path.read_text(), filename=str(path))
        for node in ast.walk(tree):
            if (
                isinstance(node, ast.Call)
                and isinstance(node.func, ast.Name)
                and node.func.id == "print"
            ):
                offenders.append(f"{relative(path)}:{node.lineno}")

    for offender in offenders:
        print(f"  print() in library code: {offender}")
    return report(not offenders, "library modules only log")


def main() -> int:
    parser = argparse.ArgumentParser(description="Lint txnprobe")
    parser.add_argument("--fix", action="store_true", help="Apply ruff fixes and formatting")
    args = parser.parse_args()

    results = [ruff(fix=args.fix), library_does_not_print()]
    return 0 if all(results) else 1


if __name__ == "__main__":
    sys.exit(main())
