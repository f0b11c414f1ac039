"""Statement rendering and classification for the server's SQL dialect."""

from __future__ import annotations

from enum import Enum, auto
from typing import Any, Mapping, Sequence

BEGIN = "begin;"
COMMIT = "commit;"
ABORT = "abort;"


class StatementKind(Enum):
    """Leading keyword of a statement."""

    BEGIN = auto()
    COMMIT = auto()
    ABORT = auto()
    SELECT = auto()
    INSERT = auto()
    UPDATE = auto()
    DELETE = auto()
    CREATE = auto()
    DROP = auto()
    OTHER = auto()


_KEYWORDS = {
    "BEGIN": StatementKind.BEGIN,
    "COMMIT": StatementKind.COMMIT,
    "ABORT": StatementKind.ABORT,
    "ROLLBACK": StatementKind.ABORT,
    "SELECT": StatementKind.SELECT,
    "INSERT": StatementKind.INSERT,
    "UPDATE": StatementKind.UPDATE,
    "DELETE": StatementKind.DELETE,
    "CREATE": StatementKind.CREATE,
    "DROP": StatementKind.DROP,
}


def classify(command: str) -> StatementKind:
    """Return the kind of ``command`` from its first keyword."""
    normalized = command.strip().rstrip(";").upper()
    first_word = normalized.split(None, 1)[0] if normalized else ""
    return _KEYWORDS.get(first_word, StatementKind.OTHER)


def literal(value: Any) -> str:
    """Render a Python value as a literal."""
    if isinstance(value, bool):
        raise TypeError("boolean literals are not supported")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    raise TypeError(f"Unsupported literal type: {type(value).__name__}")


def _where(conditions: Mapping[str, Any] | None) -> str:
    if not conditions:
        return ""
    clause = " and ".join(f"{col} = {literal(val)}" for col, val in conditions.items())
    return f" where {clause}"


def drop_table(table: str) -> str:
    return f"drop table {table};"


def create_table(table: str, columns: Sequence[tuple[str, str]]) -> str:
    """Render ``create table`` from (name, type) pairs, e.g. ("name", "char(8)")."""
    if not columns:
        raise ValueError("a table needs at least one column")
    cols = ", ".join(f"{name} {type_}" for name, type_ in columns)
    return f"create table {table} ({cols});"


def create_index(table: str, columns: Sequence[str]) -> str:
    return f"create index {table}({','.join(columns)});"


def insert(table: str, values: Sequence[Any]) -> str:
    return f"insert into {table} values ({', '.join(literal(v) for v in values)});"


def select(table: str, where: Mapping[str, Any] | None = None) -> str:
    return f"select * from {table}{_where(where)};"


def update(
    table: str,
    assignments: Mapping[str, Any],
    where: Mapping[str, Any] | None = None,
) -> str:
    if not assignments:
        raise ValueError("update needs at least one assignment")
    sets = ", ".join(f"{col} = {literal(val)}" for col, val in assignments.items())
    return f"update {table} set {sets}{_where(where)};"
