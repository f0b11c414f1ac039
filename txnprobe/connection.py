"""Blocking TCP connection to the database server."""

from __future__ import annotations

import logging
import socket
from typing import Any, Tuple, Union

from .exceptions import (
    ConnectFailedError,
    ConnectionClosedError,
    IoFailedError,
    ProtocolError,
)
from .protocol import Framing, RawFraming, Response
from .statements import ABORT, BEGIN, COMMIT, classify
from .transactions import SessionState, SessionTracker, Transaction

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765

Address = Union[str, Tuple[str, int]]


def parse_address(address: Address) -> tuple[str, int]:
    """
    Normalize ``"host:port"`` or ``(host, port)`` to a tuple.

    Raises:
        ConnectFailedError: If the address cannot be parsed.
    """
    if isinstance(address, tuple):
        host, port_text = address
    else:
        host, sep, port_text = address.rpartition(":")
        if not sep:
            raise ConnectFailedError(address, "expected host:port")
    try:
        port = int(port_text)
    except (TypeError, ValueError):
        raise ConnectFailedError(f"{host}:{port_text}", f"invalid port {port_text!r}") from None
    host = host.strip("[]") or DEFAULT_HOST
    if not 0 < port < 65536:
        raise ConnectFailedError(f"{host}:{port}", "port out of range")
    return host, port


def format_address(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


class Connection:
    """
    One persistent socket to the server, i.e. one server session.

    Commands and responses strictly alternate. Any transport failure closes
    the connection and raises IoFailedError; the caller decides what to do.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: str,
        framing: Framing | None = None,
    ) -> None:
        self._sock: socket.socket | None = sock
        self._address = address
        self._framing = framing if framing is not None else RawFraming()
        self._session = SessionTracker()

    def _check_closed(self) -> socket.socket:
        """Return the socket or raise if the connection is closed."""
        if self._sock is None:
            raise ConnectionClosedError(f"Connection to {self._address} is closed")
        return self._sock

    def exec(self, command: str) -> Response:
        """
        Send one command and return the server's response.

        Blocks for the whole round trip.

        Raises:
            ConnectionClosedError: If the connection was closed.
            IoFailedError: If writing or reading failed.
            TransactionError: If the command would break the one
                transaction per connection rule.
        """
        sock = self._check_closed()
        kind = classify(command)
        self._session.check(kind)

        logger.debug("%s <- %s", self._address, command)
        try:
            sock.sendall(self._framing.encode_request(command))
            response = self._framing.read_response(sock.recv)
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

    def begin(self) -> Response:
        return self.exec(BEGIN)

    def commit(self) -> Response:
        return self.exec(COMMIT)

    def abort(self) -> Response:
        return self.exec(ABORT)

    def transaction(self) -> Transaction:
        """
        Return a context manager wrapping a transaction.

        Commits when the block exits normally, aborts when it raises.
        """
        return Transaction(self)

    def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self._sock is None:
            return

        sock, self._sock = self._sock, None
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer may already be gone
            pass
        sock.close()
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
        """Inferred transaction state of the server session."""
        return self._session.state

    @property
    def in_transaction(self) -> bool:
        return self._session.in_transaction

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        status = "closed" if self.closed else self.state.name.lower()
        return f"<Connection {self._address} {status}>"


def connect(
    address: Address = (DEFAULT_HOST, DEFAULT_PORT),
    *,
    framing: Framing | None = None,
    timeout: float | None = None,
) -> Connection:
    """
    Dial the server and return a new connection.

    Args:
        address: ``"host:port"`` or ``(host, port)``.
        framing: Response framing; defaults to a fresh RawFraming.
        timeout: Seconds allowed for connecting and for each socket
            operation afterwards. None blocks indefinitely.

    Returns:
        A connected Connection.

    Raises:
        ConnectFailedError: If the server is unreachable or refuses.

    Example:
        with txnprobe.connect("127.0.0.1:8765") as conn:
            print(conn.exec("select * from t;").text)
    """
    host, port = parse_address(address)
    display = format_address(host, port)
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise ConnectFailedError(display, str(e)) from e

    logger.info("Connected to %s", display)
    return Connection(sock, display, framing=framing)
