"""
Two-session isolation scenario.

Drives two connections (A and B) from a single thread through a fixed
interleaving and checks what each session observes:

1. Setup on A in autocommit mode: drop, create, seed three rows.
2. ``begin;`` on A, then on B.
3. A updates row 2's score inside its transaction.
4. B selects row 2 and must still see the old score (no dirty read).
5. A aborts.
6. A selects row 2 and must see the old score (rollback is complete).
7. B commits; row 2 is unchanged afterwards (commit with no writes).

Session B connects only after step 1, once the table is seeded.

The order of the steps is what the scenario tests. Do not reorder them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from . import statements
from .connection import DEFAULT_HOST, DEFAULT_PORT, Address, Connection, connect
from .exceptions import IsolationViolationError
from .protocol import Framing, RawFraming, Response
from .results import ResultTable, values_equal
from .transactions import SessionState

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "concurrency_test"

COLUMNS = (("id", "int"), ("name", "char(8)"), ("score", "float"))

SEED_ROWS = (
    (1, "xiaohong", 90.0),
    (2, "xiaoming", 95.0),
    (3, "zhanghua", 88.5),
)

TARGET_ID = 2
UPDATED_SCORE = 100.0


@dataclass(frozen=True)
class Step:
    """One command sent on one session and what came back."""

    session: str
    command: str
    response: Response
    state: SessionState

    @property
    def text(self) -> str:
        return self.response.text


@dataclass(frozen=True)
class Check:
    """Outcome of one isolation assertion."""

    name: str
    description: str
    expected: Any
    observed: Any
    passed: bool


@dataclass
class ScenarioReport:
    """Everything a scenario run sent, received and concluded."""

    steps: list[Step] = field(default_factory=list)
    checks: list[Check] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(check.passed for check in self.checks)

    @property
    def failed_checks(self) -> list[Check]:
        return [check for check in self.checks if not check.passed]

    def check(self, name: str) -> Check:
        for check in self.checks:
            if check.name == name:
                return check
        raise KeyError(name)

    def raise_for_violations(self) -> None:
        """Raise IsolationViolationError if any check failed."""
        failed = self.failed_checks
        if failed:
            raise IsolationViolationError(failed)


class IsolationScenario:
    """
    Runs the dirty-read / rollback scenario over two open connections.

    The connections are borrowed: the scenario never closes them. Session B
    may be attached after ``prepare()``, once the table is seeded.
    """

    def __init__(
        self,
        session_a: Connection,
        session_b: Connection | None = None,
        table: str = DEFAULT_TABLE,
        seed_rows: Sequence[tuple[int, str, float]] = SEED_ROWS,
        target_id: int = TARGET_ID,
        updated_score: float = UPDATED_SCORE,
    ) -> None:
        if session_a is session_b:
            raise ValueError("the scenario needs two distinct connections")
        self._sessions: dict[str, Connection] = {"A": session_a}
        if session_b is not None:
            self._sessions["B"] = session_b
        self.table = table
        self.seed_rows = tuple(seed_rows)
        self.target_id = target_id
        self.updated_score = updated_score

        baseline = [row for row in self.seed_rows if row[0] == target_id]
        if len(baseline) != 1:
            raise ValueError(f"seed rows must contain exactly one row with id {target_id}")
        self.baseline_score = baseline[0][2]
        self._report = ScenarioReport()

    @property
    def session_b(self) -> Connection | None:
        return self._sessions.get("B")

    @session_b.setter
    def session_b(self, conn: Connection) -> None:
        if conn is self._sessions["A"]:
            raise ValueError("the scenario needs two distinct connections")
        self._sessions["B"] = conn

    def _exec(self, label: str, command: str) -> Step:
        conn = self._sessions[label]
        response = conn.exec(command)
        step = Step(label, command, response, conn.state)
        self._report.steps.append(step)
        logger.info("[%s] %s", label, command)
        return step

    def _record(self, check: Check) -> Check:
        self._report.checks.append(check)
        if check.passed:
            logger.info("check %s passed", check.name)
        else:
            logger.warning(
                "check %s failed: expected %r, observed %r",
                check.name,
                check.expected,
                check.observed,
            )
        return check

    def _target_row(self, step: Step) -> tuple[dict[str, str] | None, str]:
        """Return the single row for target_id from a select, or why not."""
        table = ResultTable.parse(step.text)
        if not table.is_table:
            return None, step.text
        try:
            rows = table.find("id", self.target_id)
        except KeyError:
            return None, step.text
        if len(rows) != 1:
            return None, f"{len(rows)} rows with id {self.target_id}"
        return dict(zip(table.header, rows[0])), step.text

    def _score_check(self, name: str, description: str, step: Step) -> Check:
        row, detail = self._target_row(step)
        if row is None or "score" not in row:
            return self._record(Check(name, description, self.baseline_score, detail, False))
        observed = row["score"]
        return self._record(
            Check(
                name,
                description,
                self.baseline_score,
                observed,
                values_equal(observed, self.baseline_score),
            )
        )

    def _select_target(self, label: str) -> Step:
        return self._exec(label, statements.select(self.table, {"id": self.target_id}))

    def setup(self) -> None:
        """Recreate and seed the table on session A, outside any transaction."""
        self._exec("A", statements.drop_table(self.table))
        self._exec("A", statements.create_table(self.table, COLUMNS))
        for row in self.seed_rows:
            self._exec("A", statements.insert(self.table, row))

    def check_round_trip(self) -> Check:
        """Every seeded row comes back from a select on its id."""
        mismatches = []
        for row in self.seed_rows:
            step = self._exec("A", statements.select(self.table, {"id": row[0]}))
            table = ResultTable.parse(step.text)
            try:
                found = table.find("id", row[0])
            except KeyError:
                found = []
            if len(found) != 1 or not all(
                values_equal(cell, value) for cell, value in zip(found[0], row)
            ):
                mismatches.append((row, step.text))

        return self._record(
            Check(
                "round_trip",
                "inserted rows are returned by a matching select",
                list(self.seed_rows),
                mismatches or list(self.seed_rows),
                not mismatches,
            )
        )

    def prepare(self) -> ScenarioReport:
        """Start a fresh report, seed the table and check the round trip on A."""
        self._report = ScenarioReport()
        self.setup()
        self.check_round_trip()
        return self._report

    def interleave(self) -> ScenarioReport:
        """Run the two-session interleaving against the seeded table."""
        if self.session_b is None:
            raise ValueError("session B must be attached before the interleaving")

        self._exec("A", statements.BEGIN)
        self._exec("B", statements.BEGIN)

        self._exec(
            "A",
            statements.update(
                self.table, {"score": self.updated_score}, {"id": self.target_id}
            ),
        )
        self._score_check(
            "no_dirty_read",
            "B does not see A's uncommitted update",
            self._select_target("B"),
        )

        self._exec("A", statements.ABORT)
        self._score_check(
            "rollback_complete",
            "A's aborted update is rolled back in A's own session",
            self._select_target("A"),
        )

        self._exec("B", statements.COMMIT)
        self._score_check(
            "commit_no_writes",
            "committing B without writes leaves the row unchanged",
            self._select_target("B"),
        )

        return self._report

    def run(self) -> ScenarioReport:
        """
        Execute the full scenario and return the report.

        Failed checks are recorded, not raised; call
        ``report.raise_for_violations()`` to turn them into an exception.
        Transport failures propagate as IoFailedError.
        """
        self.prepare()
        return self.interleave()

    @property
    def report(self) -> ScenarioReport:
        return self._report


def run_isolation_scenario(
    address: Address = (DEFAULT_HOST, DEFAULT_PORT),
    *,
    framing_factory: Callable[[], Framing] = RawFraming,
    timeout: float | None = None,
    table: str = DEFAULT_TABLE,
) -> ScenarioReport:
    """
    Open two sessions to ``address``, run the scenario, close both.

    Both connections are closed on every exit path, including errors.
    """
    with connect(address, framing=framing_factory(), timeout=timeout) as session_a:
        scenario = IsolationScenario(session_a, table=table)
        scenario.prepare()
        # B connects only once the table is seeded.
        with connect(address, framing=framing_factory(), timeout=timeout) as session_b:
            scenario.session_b = session_b
            return scenario.interleave()
