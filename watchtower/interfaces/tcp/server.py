# watchtower/interfaces/tcp/server.py
"""asyncio TCP listener that reports connection activity.

Wraps ``asyncio.start_server`` so a ConnectionDrainManager can observe
it. Handlers mark request boundaries explicitly, since what counts as a
request depends on the protocol spoken over the stream.

Usage:
    async def handle(conn: TcpConnection) -> None:
        while line := await conn.reader.readline():
            async with conn.request():
                conn.writer.write(line)
                await conn.writer.drain()

    listener = await TcpListener.start(handle, "0.0.0.0", 8080)
    drain = ConnectionDrainManager(listener)
    watchtower.register_shutdown_task(drain.close)
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from watchtower.core.drain import ConnectionObserver

logger = logging.getLogger(__name__)


class TcpConnection:
    """One accepted stream connection."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        observer: ConnectionObserver | None,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self._observer = observer
        self.id: int | None = None
        self._task: asyncio.Task[Any] | None = None

    @property
    def peername(self) -> Any:
        return self.writer.get_extra_info("peername")

    def abort(self) -> None:
        """Drop the connection and cancel its handler.

        Buffered data not yet handed to the socket is discarded.
        """
        self.writer.transport.abort()
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()

    @asynccontextmanager
    async def request(self) -> AsyncIterator[None]:
        """Mark the enclosed block as an in-flight request."""
        if self._observer is not None and self.id is not None:
            self._observer.request_started(self.id)
        try:
            yield
        finally:
            if self._observer is not None and self.id is not None:
                self._observer.request_finished(self.id)


ConnectionHandler = Callable[[TcpConnection], Awaitable[None]]


class TcpListener:
    """Listener adapter over an asyncio stream server."""

    def __init__(self, handler: ConnectionHandler) -> None:
        self._handler = handler
        self._observer: ConnectionObserver | None = None
        self._server: asyncio.Server | None = None
        self._handler_tasks: set[asyncio.Task[Any]] = set()

    @classmethod
    async def start(
        cls,
        handler: ConnectionHandler,
        host: str | None = None,
        port: int | None = None,
        **kwargs: Any,
    ) -> "TcpListener":
        """Create a listener and start accepting connections.

        Args:
            handler: Coroutine run once per accepted connection.
            host: Interface to bind.
            port: Port to bind, 0 for an ephemeral port.
            **kwargs: Passed through to ``asyncio.start_server``.

        Returns:
            The started TcpListener.
        """
        listener = cls(handler)
        await listener.listen(host, port, **kwargs)
        return listener

    async def listen(self, host: str | None = None, port: int | None = None, **kwargs: Any) -> None:
        if self._server is not None:
            raise RuntimeError("Listener is already started")
        self._server = await asyncio.start_server(self._on_client, host, port, **kwargs)
        logger.info("Listening on %s", ", ".join(str(s.getsockname()) for s in self._server.sockets))

    def subscribe(self, observer: ConnectionObserver) -> None:
        if self._observer is not None:
            raise RuntimeError("Listener already has an observer")
        self._observer = observer

    @property
    def port(self) -> int:
        """Port of the first bound socket."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("Listener is not started")
        return self._server.sockets[0].getsockname()[1]

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def close(self) -> None:
        """Stop accepting new connections."""
        if self._server is None:
            raise RuntimeError("Listener is not started")
        self._server.close()

    async def wait_closed(self) -> None:
        """Wait until the server and every connection handler have finished."""
        if self._server is None:
            raise RuntimeError("Listener is not started")
        await self._server.wait_closed()
        if self._handler_tasks:
            await asyncio.gather(*self._handler_tasks, return_exceptions=True)

    async def _on_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._handler_tasks.add(task)

        conn = TcpConnection(reader, writer, self._observer)
        conn._task = task
        if self._observer is not None:
            conn.id = self._observer.connection_opened(conn)
        logger.debug("Connection %s opened from %s", conn.id, conn.peername)

        try:
            await self._handler(conn)
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug("Connection %s dropped: %r", conn.id, e)
        except Exception:
            logger.exception("Connection handler failed for %s", conn.peername)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass
            if self._observer is not None and conn.id is not None:
                self._observer.connection_closed(conn.id)
            logger.debug("Connection %s closed", conn.id)
            if task is not None:
                self._handler_tasks.discard(task)
