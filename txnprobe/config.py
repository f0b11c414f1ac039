"""Runtime configuration for the client and the scenario runner."""

from __future__ import annotations

import argparse
from dataclasses import dataclass

from .connection import DEFAULT_HOST, DEFAULT_PORT, format_address
from .protocol import DEFAULT_BUFFER_SIZE, Framing, framing_from_name


@dataclass
class ProbeConfig:
    """Where to connect and how to frame responses."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    buffer_size: int = DEFAULT_BUFFER_SIZE
    framing: str = "raw"
    timeout: float | None = None
    log_level: str = "WARNING"

    @property
    def address(self) -> str:
        return format_address(self.host, self.port)

    def make_framing(self) -> Framing:
        """
        Create a new framing instance; call once per connection.

        Raises:
            ValueError: For an unknown framing name or a non-positive size.
        """
        return framing_from_name(self.framing, self.buffer_size)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ProbeConfig":
        return cls(
            host=args.host,
            port=args.port,
            buffer_size=args.buffer_size,
            framing=args.framing,
            timeout=args.timeout,
            log_level="DEBUG" if args.verbose else args.log_level,
        )
