"""AIRLOG — Ingest Error Taxonomy.

TransportError, ProtocolError and ParseError fail a poll cycle and surface as
``last_status = ERROR``. An unresolved field path is not an error at all: the
field is simply absent from the normalized record.
"""

from typing import Optional


class IngestError(Exception):
    """Base class for failures that end a poll cycle in ERROR."""

    kind = "IngestError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def describe(self) -> str:
        """Human-readable form stored in ``Connection.last_error``."""
        return f"{self.kind}: {self.message}"


class TransportError(IngestError):
    """No payload obtained: DNS, connect, TLS, timeout, socket closed early."""

    kind = "TransportError"


class ProtocolError(IngestError):
    """Non-2xx response or rejected WebSocket handshake. A payload may exist."""

    kind = "ProtocolError"

    def __init__(self, message: str, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message)


class ParseError(IngestError):
    """Body could not be parsed as the connection's declared format."""

    kind = "ParseError"


class ConnectionNotFound(Exception):
    """Raised when a connection id does not exist in the store."""

    def __init__(self, connection_id):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} not found")


class InvalidReference(Exception):
    """Raised when a write refers to a station or mapping that does not exist."""
