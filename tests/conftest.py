"""
Shared fixtures: an in-process stand-in for the database server.

FakeServer understands the handful of statements the probe sends and keeps
per-session transaction workspaces, so committed data is only visible to
other sessions after commit and an abort throws the workspace away. With
``dirty=True`` writes go straight to the shared tables and abort is a no-op,
which is what a server without isolation would do. With ``keep_aborted=True``
reads stay isolated but abort publishes the workspace as commit would.
"""

from __future__ import annotations

import copy
import re
import socketserver
import struct
import threading
import time
from typing import Any, Iterator

import pytest

_DROP = re.compile(r"^drop table (\w+)$", re.IGNORECASE)
_CREATE = re.compile(r"^create table (\w+)\s*\((.*)\)$", re.IGNORECASE)
_INDEX = re.compile(r"^create index (\w+)\s*\((.*)\)$", re.IGNORECASE)
_INSERT = re.compile(r"^insert into (\w+) values\s*\((.*)\)$", re.IGNORECASE)
_SELECT = re.compile(r"^select \* from (\w+)(?: where (.*))?$", re.IGNORECASE)
_UPDATE = re.compile(r"^update (\w+) set (.*?)(?: where (.*))?$", re.IGNORECASE)


def _parse_value(text: str) -> Any:
    text = text.strip()
    if text.startswith("'") and text.endswith("'"):
        return text[1:-1].replace("''", "'")
    if "." in text:
        return float(text)
    return int(text)


def _parse_pairs(text: str | None, sep: str) -> dict[str, Any]:
    if not text:
        return {}
    pairs = {}
    for part in re.split(sep, text, flags=re.IGNORECASE):
        col, _, value = part.partition("=")
        pairs[col.strip()] = _parse_value(value)
    return pairs


def _format_cell(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:f}"
    return str(value)


def render_table(columns: list[str], rows: list[list[Any]]) -> str:
    """Render rows the way the server prints select results."""
    separator = "+" + "+".join("-" * 18 for _ in columns) + "+"
    lines = [separator, "|" + "|".join(f" {c:>16} " for c in columns) + "|", separator]
    for row in rows:
        lines.append("|" + "|".join(f" {_format_cell(v):>16} " for v in row) + "|")
    lines.append(separator)
    lines.append(f"Total record(s): {len(rows)}")
    return "\n".join(lines) + "\n"


class FakeDatabase:
    """Committed tables shared by all sessions."""

    def __init__(self, dirty: bool = False, keep_aborted: bool = False) -> None:
        self.dirty = dirty
        self.keep_aborted = keep_aborted
        self.lock = threading.Lock()
        self.columns: dict[str, list[str]] = {}
        self.tables: dict[str, list[list[Any]]] = {}
        self.received: list[str] = []


class FakeSession:
    """One client's view: committed tables plus its transaction workspace."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.workspace: dict[str, list[list[Any]]] | None = None

    def _rows(self, table: str, for_write: bool) -> list[list[Any]]:
        if table not in self.db.tables:
            raise KeyError(table)
        if self.workspace is None or self.db.dirty:
            return self.db.tables[table]
        if table not in self.workspace:
            if not for_write:
                return self.db.tables[table]
            self.workspace[table] = copy.deepcopy(self.db.tables[table])
        return self.workspace[table]

    def execute(self, statement: str) -> str:
        sql = statement.strip().rstrip(";").strip()
        with self.db.lock:
            self.db.received.append(statement)
            try:
                return self._dispatch(sql)
            except (KeyError, ValueError, IndexError):
                return "failure\n"

    def _dispatch(self, sql: str) -> str:
        lowered = sql.lower()
        if lowered == "begin":
            self.workspace = {}
            return "ok\n"
        if lowered == "commit" or (lowered in ("abort", "rollback") and self.db.keep_aborted):
            if self.workspace:
                self.db.tables.update(self.workspace)
            self.workspace = None
            return "ok\n"
        if lowered in ("abort", "rollback"):
            self.workspace = None
            return "ok\n"
        if lowered.startswith("fill "):
            # test hook: respond with exactly n bytes
            return "x" * int(lowered.split()[1])

        for pattern, handler in self._statements():
            match = pattern.match(sql)
            if match:
                return handler(*match.groups())
        return "failure\n"

    def _statements(self) -> list[tuple[re.Pattern[str], Any]]:
        return [
            (_DROP, self._drop),
            (_CREATE, self._create),
            (_INDEX, lambda table, cols: "ok\n"),
            (_INSERT, self._insert),
            (_SELECT, self._select),
            (_UPDATE, self._update),
        ]

    def _matching(self, name: str, where: str | None, for_write: bool) -> list[list[Any]]:
        columns = self.db.columns[name]
        conditions = _parse_pairs(where, r"\s+and\s+")
        return [
            row
            for row in self._rows(name, for_write=for_write)
            if all(row[columns.index(c)] == v for c, v in conditions.items())
        ]

    def _drop(self, name: str) -> str:
        if name not in self.db.tables:
            return "failure\n"
        del self.db.tables[name]
        del self.db.columns[name]
        return "ok\n"

    def _create(self, name: str, cols: str) -> str:
        self.db.columns[name] = [c.split()[0] for c in cols.split(",")]
        self.db.tables[name] = []
        return "ok\n"

    def _insert(self, name: str, values: str) -> str:
        row = [_parse_value(v) for v in values.split(",")]
        if len(row) != len(self.db.columns[name]):
            return "failure\n"
        self._rows(name, for_write=True).append(row)
        return "ok\n"

    def _select(self, name: str, where: str | None) -> str:
        return render_table(self.db.columns[name], self._matching(name, where, False))

    def _update(self, name: str, sets: str, where: str | None) -> str:
        columns = self.db.columns[name]
        assignments = _parse_pairs(sets, r"\s*,\s*")
        for row in self._matching(name, where, True):
            for col, value in assignments.items():
                row[columns.index(col)] = value
        return "ok\n"


class _Handler(socketserver.BaseRequestHandler):
    server: "FakeServer"

    def _read_command(self) -> bytes:
        sock = self.request
        if self.server.framing == "length-prefixed":
            header = self._recv_exact(4)
            if not header:
                return b""
            return self._recv_exact(struct.unpack("<I", header)[0])
        return sock.recv(4096)

    def _recv_exact(self, n: int) -> bytes:
        data = b""
        while len(data) < n:
            chunk = self.request.recv(n - len(data))
            if not chunk:
                return b""
            data += chunk
        return data

    def _write_response(self, text: str) -> None:
        payload = text.encode("utf-8")
        if self.server.framing == "length-prefixed":
            payload = struct.pack("<I", len(payload)) + payload
        elif self.server.framing == "sentinel":
            payload += b"\x00"
        self.request.sendall(payload)

    def handle(self) -> None:
        session = FakeSession(self.server.db)
        while True:
            try:
                data = self._read_command()
            except OSError:
                return
            if not data:
                return
            command = data.decode("utf-8")
            if command.strip().lower() == "hangup;":
                # test hook: drop the connection without answering
                return
            if command.lower().startswith("sleep "):
                # test hook: answer late, echoing the command
                time.sleep(float(command.split()[1].rstrip(";")))
                try:
                    self._write_response(command)
                except OSError:
                    return
                continue
            self._write_response(session.execute(command))


class FakeServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(
        self, framing: str = "raw", dirty: bool = False, keep_aborted: bool = False
    ) -> None:
        super().__init__(("127.0.0.1", 0), _Handler)
        self.framing = framing
        self.db = FakeDatabase(dirty=dirty, keep_aborted=keep_aborted)
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)

    @property
    def address(self) -> str:
        host, port = self.server_address[:2]
        return f"{host}:{port}"

    def start(self) -> "FakeServer":
        self._thread.start()
        return self

    def stop(self) -> None:
        self.shutdown()
        self.server_close()
        self._thread.join(timeout=5.0)


def _serve(**kwargs: Any) -> Iterator[FakeServer]:
    server = FakeServer(**kwargs).start()
    try:
        yield server
    finally:
        server.stop()


@pytest.fixture
def server() -> Iterator[FakeServer]:
    """A well-behaved server using raw framing."""
    yield from _serve()


@pytest.fixture
def dirty_server() -> Iterator[FakeServer]:
    """A server that leaks uncommitted writes and ignores abort."""
    yield from _serve(dirty=True)


@pytest.fixture
def keep_aborted_server() -> Iterator[FakeServer]:
    """A server that isolates reads but keeps the writes of an aborted transaction."""
    yield from _serve(keep_aborted=True)


@pytest.fixture
def length_prefixed_server() -> Iterator[FakeServer]:
    yield from _serve(framing="length-prefixed")


@pytest.fixture
def sentinel_server() -> Iterator[FakeServer]:
    yield from _serve(framing="sentinel")


@pytest.fixture
def closed_port() -> str:
    """An address nothing is listening on."""
    probe = socketserver.TCPServer(("127.0.0.1", 0), socketserver.BaseRequestHandler)
    host, port = probe.server_address[:2]
    probe.server_close()
    return f"{host}:{port}"
