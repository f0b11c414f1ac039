"""Transaction support: inferred session state and transaction scopes."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from .exceptions import NoActiveTransactionError, TransactionAlreadyActiveError
from .statements import StatementKind

if TYPE_CHECKING:
    from .async_connection import AsyncConnection
    from .connection import Connection


class SessionState(Enum):
    """
    Transaction state of a session as inferred from the commands sent.

    The server owns the real state; the client only knows which transaction
    statements went out and were answered.
    """

    NO_TRANSACTION = auto()
    IN_TRANSACTION = auto()
    ABORTED = auto()
    COMMITTED = auto()


@dataclass
class TransactionContext:
    """Tracks an open transaction on one connection."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    started_at: float = field(default_factory=time.time)
    statements: int = 0


class SessionTracker:
    """
    Follows BEGIN/COMMIT/ABORT on a connection.

    ``check`` runs before a command is sent and rejects statements that would
    open a second transaction or end one that is not open. ``advance`` runs
    after the server answered.
    """

    def __init__(self) -> None:
        self._state = SessionState.NO_TRANSACTION
        self._current: TransactionContext | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current(self) -> TransactionContext | None:
        """The open transaction, if any."""
        return self._current

    @property
    def in_transaction(self) -> bool:
        return self._state is SessionState.IN_TRANSACTION

    def check(self, kind: StatementKind) -> None:
        if kind is StatementKind.BEGIN and self.in_transaction:
            assert self._current is not None
            raise TransactionAlreadyActiveError(
                f"Transaction {self._current.id} is already active on this connection"
            )
        if kind in (StatementKind.COMMIT, StatementKind.ABORT) and not self.in_transaction:
            raise NoActiveTransactionError(
                f"Cannot {kind.name.lower()} outside of a transaction"
            )

    def advance(self, kind: StatementKind) -> SessionState:
        if kind is StatementKind.BEGIN:
            self._current = TransactionContext()
            self._state = SessionState.IN_TRANSACTION
        elif kind is StatementKind.COMMIT:
            self._current = None
            self._state = SessionState.COMMITTED
        elif kind is StatementKind.ABORT:
            self._current = None
            self._state = SessionState.ABORTED
        elif self._current is not None:
            self._current.statements += 1
        return self._state


class Transaction:
    """
    Context manager for an explicit transaction on a Connection.

    Usage:
        with conn.transaction():
            conn.exec("update t set score = 1.0 where id = 1;")
            # Commits on success, aborts on exception
    """

    def __init__(self, connection: "Connection") -> None:
        self._connection = connection
        self._context: TransactionContext | None = None

    def __enter__(self) -> "Transaction":
        self._connection.begin()
        self._context = self._connection.session.current
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        conn = self._connection
        if conn.closed or not conn.in_transaction:
            return False

        if exc_type is not None:
            conn.abort()
        else:
            conn.commit()

        # Don't suppress exceptions
        return False

    @property
    def context(self) -> TransactionContext | None:
        return self._context


class AsyncTransaction:
    """Async counterpart of Transaction for AsyncConnection."""

    def __init__(self, connection: "AsyncConnection") -> None:
        self._connection = connection
        self._context: TransactionContext | None = None

    async def __aenter__(self) -> "AsyncTransaction":
        await self._connection.begin()
        self._context = self._connection.session.current
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> bool:
        conn = self._connection
        if conn.closed or not conn.in_transaction:
            return False

        if exc_type is not None:
            await conn.abort()
        else:
            await conn.commit()

        return False

    @property
    def context(self) -> TransactionContext | None:
        return self._context
