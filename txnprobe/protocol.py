"""
Exec protocol: request encoding and response framing.

The server answers each command with exactly one response and commands are
never pipelined. How a response is delimited on the byte stream depends on
the framing strategy:

- RawFraming: a single bounded read (the deployed server's convention).
  Anything beyond the buffer is lost; a full buffer is flagged.
- LengthPrefixedFraming: 4-byte little-endian length before each message.
- SentinelFraming: responses end with a sentinel byte sequence.

Framings read through a ``recv(n)`` callable so the same strategy serves the
blocking and the asyncio connection. Framing objects may buffer bytes between
responses, so each connection owns its own instance.
"""

from __future__ import annotations

import logging
import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable

from .exceptions import IoFailedError, ProtocolError

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 2048
DEFAULT_MAX_MESSAGE_SIZE = 16 * 1024 * 1024
ENCODING = "utf-8"

_LENGTH_PREFIX = struct.Struct("<I")

Recv = Callable[[int], bytes]
AsyncRecv = Callable[[int], Awaitable[bytes]]


@dataclass(frozen=True)
class Response:
    """A single server response."""

    data: bytes
    possibly_truncated: bool = False

    @property
    def text(self) -> str:
        """Decoded response with NUL padding and trailing whitespace removed."""
        return self.data.decode(ENCODING, errors="replace").rstrip("\x00").rstrip()

    def __str__(self) -> str:
        return self.text

    def __len__(self) -> int:
        return len(self.data)


def encode_command(command: str) -> bytes:
    """Encode a command verbatim; no terminator is appended."""
    return command.encode(ENCODING)


class Framing(ABC):
    """Base class for response framing strategies."""

    name: str = ""

    def encode_request(self, command: str) -> bytes:
        """Return the bytes to put on the wire for ``command``."""
        return encode_command(command)

    @abstractmethod
    def read_response(self, recv: Recv) -> Response:
        """Read one response using a blocking ``recv``."""

    @abstractmethod
    async def aread_response(self, recv: AsyncRecv) -> Response:
        """Read one response using an awaitable ``recv``."""


class RawFraming(Framing):
    """
    One read into a fixed-capacity buffer.

    There is no message boundary on the wire, so a response larger than the
    buffer is silently cut. Such responses come back with
    ``possibly_truncated`` set; nothing is raised.
    """

    name = "raw"

    def __init__(self, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.buffer_size = buffer_size

    def _finish(self, data: bytes) -> Response:
        if not data:
            raise IoFailedError("Connection closed by server")
        truncated = len(data) >= self.buffer_size
        if truncated:
            logger.warning(
                "Response filled the %d byte read buffer and may be truncated",
                self.buffer_size,
            )
        return Response(data, possibly_truncated=truncated)

    def read_response(self, recv: Recv) -> Response:
        return self._finish(recv(self.buffer_size))

    async def aread_response(self, recv: AsyncRecv) -> Response:
        return self._finish(await recv(self.buffer_size))


class LengthPrefixedFraming(Framing):
    """Messages carry a 4-byte little-endian length prefix in both directions."""

    name = "length-prefixed"

    def __init__(self, max_size: int = DEFAULT_MAX_MESSAGE_SIZE) -> None:
        self.max_size = max_size

    def encode_request(self, command: str) -> bytes:
        payload = encode_command(command)
        return _LENGTH_PREFIX.pack(len(payload)) + payload

    def _check_length(self, header: bytes) -> int:
        length = _LENGTH_PREFIX.unpack(header)[0]
        if length > self.max_size:
            raise ProtocolError(
                f"Response length {length} exceeds maximum of {self.max_size} bytes"
            )
        return length

    @staticmethod
    def _recv_exact(recv: Recv, n: int) -> bytes:
        """Receive exactly n bytes."""
        data = b""
        while len(data) < n:
            chunk = recv(n - len(data))
            if not chunk:
                raise IoFailedError("Connection closed by server")
            data += chunk
        return data

    @staticmethod
    async def _arecv_exact(recv: AsyncRecv, n: int) -> bytes:
        """Receive exactly n bytes."""
        data = b""
        while len(data) < n:
            chunk = await recv(n - len(data))
            if not chunk:
                raise IoFailedError("Connection closed by server")
            data += chunk
        return data

    def read_response(self, recv: Recv) -> Response:
        length = self._check_length(self._recv_exact(recv, _LENGTH_PREFIX.size))
        return Response(self._recv_exact(recv, length))

    async def aread_response(self, recv: AsyncRecv) -> Response:
        header = await self._arecv_exact(recv, _LENGTH_PREFIX.size)
        length = self._check_length(header)
        return Response(await self._arecv_exact(recv, length))


class SentinelFraming(Framing):
    """
    Responses end with a sentinel byte sequence.

    Bytes that arrive after the sentinel are kept for the next response.
    """

    name = "sentinel"

    def __init__(
        self,
        sentinel: bytes = b"\x00",
        chunk_size: int = DEFAULT_BUFFER_SIZE,
        max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    ) -> None:
        if not sentinel:
            raise ValueError("sentinel must not be empty")
        self.sentinel = sentinel
        self.chunk_size = chunk_size
        self.max_size = max_size
        self._pending = b""

    def _split(self) -> Response | None:
        index = self._pending.find(self.sentinel)
        if index < 0:
            if len(self._pending) > self.max_size:
                raise ProtocolError(
                    f"No sentinel within {self.max_size} bytes of response"
                )
            return None
        data = self._pending[:index]
        self._pending = self._pending[index + len(self.sentinel):]
        return Response(data)

    def _feed(self, chunk: bytes) -> None:
        if not chunk:
            raise IoFailedError("Connection closed by server")
        self._pending += chunk

    def read_response(self, recv: Recv) -> Response:
        while True:
            response = self._split()
            if response is not None:
                return response
            self._feed(recv(self.chunk_size))

    async def aread_response(self, recv: AsyncRecv) -> Response:
        while True:
            response = self._split()
            if response is not None:
                return response
            self._feed(await recv(self.chunk_size))


_FRAMINGS: dict[str, type[Framing]] = {
    RawFraming.name: RawFraming,
    LengthPrefixedFraming.name: LengthPrefixedFraming,
    SentinelFraming.name: SentinelFraming,
}

FRAMING_NAMES = tuple(_FRAMINGS)


def framing_from_name(name: str, buffer_size: int = DEFAULT_BUFFER_SIZE) -> Framing:
    """Create a fresh framing instance by name."""
    try:
        cls = _FRAMINGS[name]
    except KeyError:
        raise ValueError(
            f"Unknown framing {name!r}; expected one of {', '.join(FRAMING_NAMES)}"
        ) from None
    if cls is RawFraming:
        return RawFraming(buffer_size)
    if cls is SentinelFraming:
        return SentinelFraming(chunk_size=buffer_size)
    return cls()
