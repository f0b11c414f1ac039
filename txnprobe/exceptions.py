"""Custom exceptions for txnprobe."""

from __future__ import annotations

from typing import Any, Sequence


class ProbeError(Exception):
    """Base exception for all txnprobe errors."""

    pass


class ConnectFailedError(ProbeError):
    """Raised when the server cannot be reached at dial time."""

    def __init__(self, address: str, reason: str | None = None) -> None:
        self.address = address
        self.reason = reason
        message = f"Could not connect to {address}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class IoFailedError(ProbeError):
    """Raised when a write or read fails during exec."""

    pass


class ConnectionClosedError(ProbeError):
    """Raised when attempting to use a closed connection."""

    pass


class ProtocolError(ProbeError):
    """Raised when a response violates the framing convention."""

    pass


class TransactionError(ProbeError):
    """Base exception for transaction errors."""

    pass


class TransactionAlreadyActiveError(TransactionError):
    """Raised when beginning a transaction while one is already open."""

    pass


class NoActiveTransactionError(TransactionError):
    """Raised when committing or aborting without an open transaction."""

    pass


class IsolationViolationError(ProbeError):
    """Raised when an isolation scenario observed a broken guarantee."""

    def __init__(self, checks: Sequence[Any]) -> None:
        self.checks = list(checks)
        names = ", ".join(check.name for check in self.checks)
        super().__init__(f"Isolation checks failed: {names}")
