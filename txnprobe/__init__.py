"""
txnprobe: TCP client and transaction isolation probe for a SQL-like server.

Sends raw statements over a persistent socket and drives two sessions
through an interleaving that checks for dirty reads and incomplete rollback.
"""

from .async_connection import AsyncConnection, async_connect
from .config import ProbeConfig
from .connection import Connection, connect
from .exceptions import (
    ConnectFailedError,
    ConnectionClosedError,
    IoFailedError,
    IsolationViolationError,
    NoActiveTransactionError,
    ProbeError,
    ProtocolError,
    TransactionAlreadyActiveError,
    TransactionError,
)
from .protocol import (
    Framing,
    LengthPrefixedFraming,
    RawFraming,
    Response,
    SentinelFraming,
    framing_from_name,
)
from .results import ResultTable
from .scenario import (
    Check,
    IsolationScenario,
    ScenarioReport,
    Step,
    run_isolation_scenario,
)
from .transactions import SessionState

__version__ = "0.1.0"

__all__ = [
    # Connections
    "Connection",
    "connect",
    "AsyncConnection",
    "async_connect",
    "SessionState",
    # Protocol
    "Framing",
    "RawFraming",
    "LengthPrefixedFraming",
    "SentinelFraming",
    "Response",
    "framing_from_name",
    # Scenario
    "IsolationScenario",
    "ScenarioReport",
    "Step",
    "Check",
    "ResultTable",
    "run_isolation_scenario",
    "ProbeConfig",
    # Exceptions
    "ProbeError",
    "ConnectFailedError",
    "IoFailedError",
    "ConnectionClosedError",
    "ProtocolError",
    "TransactionError",
    "TransactionAlreadyActiveError",
    "NoActiveTransactionError",
    "IsolationViolationError",
    # Version
    "__version__",
]
