"""TCP listener adapter for connection draining."""

from watchtower.interfaces.tcp.server import ConnectionHandler, TcpConnection, TcpListener

__all__ = [
    "ConnectionHandler",
    "TcpConnection",
    "TcpListener",
]
