"""
Parsing of the server's boxed result tables.

Select responses look like::

    +------------------+------------------+------------------+
    |               id |             name |            score |
    +------------------+------------------+------------------+
    |                2 |         xiaoming |        95.000000 |
    +------------------+------------------+------------------+
    Total record(s): 1

Anything else (empty output, error text) parses to an empty table. Response
content is otherwise not interpreted.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any

_RECORD_COUNT = re.compile(r"Total record\(s\):\s*(\d+)", re.IGNORECASE)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def values_equal(cell: str, expected: Any) -> bool:
    """Compare a cell to a value, numerically when both sides are numbers."""
    left = _as_number(cell)
    right = _as_number(expected)
    if left is not None and right is not None:
        # floats are printed at single precision
        return math.isclose(left, right, rel_tol=1e-6, abs_tol=1e-6)
    return cell == str(expected)


@dataclass(frozen=True)
class ResultTable:
    """Header and rows of a select response."""

    header: tuple[str, ...] = ()
    rows: tuple[tuple[str, ...], ...] = ()
    record_count: int | None = None
    raw: str = field(default="", compare=False, repr=False)

    @classmethod
    def parse(cls, text: str) -> "ResultTable":
        bordered = []
        for line in text.splitlines():
            line = line.strip()
            if line.startswith("|") and line.endswith("|") and len(line) > 1:
                bordered.append(tuple(cell.strip() for cell in line[1:-1].split("|")))

        match = _RECORD_COUNT.search(text)
        count = int(match.group(1)) if match else None

        if not bordered:
            return cls(record_count=count, raw=text)
        return cls(header=bordered[0], rows=tuple(bordered[1:]), record_count=count, raw=text)

    @property
    def is_table(self) -> bool:
        return bool(self.header)

    def index_of(self, column: str) -> int:
        try:
            return self.header.index(column)
        except ValueError:
            raise KeyError(column) from None

    def column(self, name: str) -> list[str]:
        """Return every value of column ``name``."""
        idx = self.index_of(name)
        return [row[idx] for row in self.rows if idx < len(row)]

    def find(self, column: str, value: Any) -> list[tuple[str, ...]]:
        """Return rows whose ``column`` equals ``value``."""
        idx = self.index_of(column)
        return [row for row in self.rows if idx < len(row) and values_equal(row[idx], value)]

    def as_dicts(self) -> list[dict[str, str]]:
        return [dict(zip(self.header, row)) for row in self.rows]

    def __len__(self) -> int:
        return len(self.rows)
