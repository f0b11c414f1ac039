"""
Async connection using asyncio's native socket operations.

Same exec contract as Connection, but the socket is non-blocking and driven
by the running event loop (sock_connect / sock_sendall / sock_recv). No
thread pool is involved.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Optional

from .connection import DEFAULT_HOST, DEFAULT_PORT, Address, format_address, parse_address
from .exceptions import (
    ConnectFailedError,
    ConnectionClosedError,
    IoFailedError,
    ProtocolError,
)
from .protocol import Framing, RawFraming, Response
from .statements import ABORT, BEGIN, COMMIT, classify
from .transactions import AsyncTransaction, SessionState, SessionTracker

logger = logging.getLogger(__name__)


class AsyncConnection:
    """
    Async connection to the server (call connect() to actually connect).

    Operations on one connection must not overlap: await each exec before
    sending the next command.
    """

    def __init__(
        self,
        address: Address = (DEFAULT_HOST, DEFAULT_PORT),
        framing: Framing | None = None,
        timeout: float | None = None,
    ) -> None:
        self._host, self._port = parse_address(address)
        self._address = format_address(self._host, self._port)
        self._framing = framing if framing is not None else RawFraming()
        self._timeout = timeout
        self._session = SessionTracker()
        self._sock: Optional[socket.socket] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def connect(self) -> None:
        """Connect to the server asynchronously."""
        self._loop = asyncio.get_running_loop()
        try:
            infos = await self._loop.getaddrinfo(
                self._host, self._port, type=socket.SOCK_STREAM
            )
        except OSError as e:
            raise ConnectFailedError(self._address, str(e)) from e

        last_error: OSError | None = None
        for family, type_, proto, _, sockaddr in infos:
            sock = socket.socket(family, type_, proto)
            sock.setblocking(False)
            try:
                await self._with_timeout(self._loop.sock_connect(sock, sockaddr))
            except OSError as e:
                sock.close()
                last_error = e
                continue
            self._sock = sock
            logger.info("Connected to %s", self._address)
            return

        raise ConnectFailedError(
            self._address, str(last_error) if last_error else "no usable address"
        )

    async def _with_timeout(self, awaitable: Any) -> Any:
        if self._timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"timed out after {self._timeout}s") from e

    async def _recv(self, n: int) -> bytes:
        assert self._sock is not None and self._loop is not None
        return await self._with_timeout(self._loop.sock_recv(self._sock, n))

    async def exec(self, command: str) -> Response:
        """Send one command and await the server's response."""
        if self._sock is None or self._loop is None:
            raise ConnectionClosedError(f"Connection to {self._address} is closed")

        kind = classify(command)
        self._session.check(kind)

        logger.debug("%s <- %s", self._address, command)
        try:
            await self._with_timeout(
                self._loop.sock_sendall(self._sock, self._framing.encode_request(command))
            )
            response = await self._framing.aread_response(self._recv)
        except OSError as e:
            self.close()
            raise IoFailedError(f"I/O with {self._address} failed: {e}") from e
        except (IoFailedError, ProtocolError):
            self.close()
            raise
        except BaseException:
            # An interrupted exchange leaves the reply unread on the socket.
            self.close()
            raise

        self._session.advance(kind)
        logger.debug("%s -> %d bytes", self._address, len(response))
        return response

    async def begin(self) -> Response:
        return await self.exec(BEGIN)

    async def commit(self) -> Response:
        return await self.exec(COMMIT)

    async def abort(self) -> Response:
        return await self.exec(ABORT)

    def transaction(self) -> AsyncTransaction:
        """Return an async context manager wrapping a transaction."""
        return AsyncTransaction(self)

    def close(self) -> None:
        """Close the connection."""
        if self._sock:
            self._sock.close()
            self._sock = None
            logger.info("Closed connection to %s", self._address)

    @property
    def address(self) -> str:
        return self._address

    @property
    def closed(self) -> bool:
        return self._sock is None

    @property
    def framing(self) -> Framing:
        return self._framing

    @property
    def session(self) -> SessionTracker:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def in_transaction(self) -> bool:
        return self._session.in_transaction

    async def __aenter__(self) -> "AsyncConnection":
        if self._sock is None:
            await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        self.close()


async def async_connect(
    address: Address = (DEFAULT_HOST, DEFAULT_PORT),
    *,
    framing: Framing | None = None,
    timeout: float | None = None,
) -> AsyncConnection:
    """
    Create and connect an async connection.

    Example:
        async with await txnprobe.async_connect("127.0.0.1:8765") as conn:
            response = await conn.exec("select * from t;")
    """
    conn = AsyncConnection(address, framing=framing, timeout=timeout)
    await conn.connect()
    return conn
