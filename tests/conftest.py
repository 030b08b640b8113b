import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

import pytest

# Ensure the project root is on sys.path so top-level packages resolve
PROJECT_ROOT = Path(__file__).resolve().parents[1]
project_root_str = str(PROJECT_ROOT)
if project_root_str not in sys.path:
    sys.path.insert(0, project_root_str)

from services.realtime.session_registry import SessionRegistry  # noqa: E402
from services.realtime.ws_session import ConnectionGateway  # noqa: E402


class FakeConnection:
    """Stand-in for ClientConnection that records outbound events."""

    def __init__(self, connection_id: str) -> None:
        self.connection_id = connection_id
        self.session_id = None
        self.messages: List[Dict[str, Any]] = []
        self.closed = False
        self.overflowed = False

    def send(self, message: Dict[str, Any]) -> None:
        if not self.closed:
            self.messages.append(message)

    def close(self) -> None:
        self.closed = True

    def of_type(self, message_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.messages if m["type"] == message_type]

    def types(self) -> List[str]:
        return [m["type"] for m in self.messages]


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def gateway(registry: SessionRegistry) -> ConnectionGateway:
    return ConnectionGateway(registry)


@pytest.fixture
def connect(gateway: ConnectionGateway) -> Callable[[str], FakeConnection]:
    """Open a fake connection on the gateway with an empty message log."""

    def _connect(connection_id: str) -> FakeConnection:
        connection = FakeConnection(connection_id)
        gateway.connect(connection)
        connection.messages.clear()
        return connection

    return _connect


@pytest.fixture
def join(gateway: ConnectionGateway):
    """Send a join event for a connection."""

    def _join(connection: FakeConnection, session_id: str, user_id: str, role: str) -> None:
        gateway.handle(connection, {"type": "join", "sessionId": session_id, "userId": user_id, "role": role})

    return _join


@pytest.fixture
def make_connection():
    return FakeConnection
