"""Protocol server instance: one FastMCP server wired to one session's streams."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from fastmcp import FastMCP
from mcp.shared.message import SessionMessage
from mcp.types import JSONRPCError, JSONRPCMessage, JSONRPCNotification, JSONRPCRequest, JSONRPCResponse, RequestId

logger = logging.getLogger(__name__)

CANCELLED_NOTIFICATION = "notifications/cancelled"


def _jumps_queue(message: JSONRPCMessage) -> bool:
    """Replies to server-initiated requests and cancellations target work already in flight."""
    if isinstance(message, JSONRPCResponse | JSONRPCError):
        return True
    return isinstance(message, JSONRPCNotification) and message.method == CANCELLED_NOTIFICATION


class ProtocolServerInstance:
    """Runs a FastMCP server over a pair of in-memory streams.

    Inbound messages go in through deliver() and are queued in arrival order.
    A worker hands them to the server one at a time; a request is only
    followed by the next message once its reply has come out, so requests
    on one session never run concurrently. Replies and notifications come
    out of outgoing() for the push channel to forward.
    """

    def __init__(self, server: FastMCP) -> None:
        self.server = server
        self._queue_writer: MemoryObjectSendStream[SessionMessage]
        self._queue_reader: MemoryObjectReceiveStream[SessionMessage]
        self._inbound_writer: MemoryObjectSendStream[SessionMessage | Exception]
        self._inbound_reader: MemoryObjectReceiveStream[SessionMessage | Exception]
        self._server_writer: MemoryObjectSendStream[SessionMessage]
        self._server_reader: MemoryObjectReceiveStream[SessionMessage]
        self._outbound_writer: MemoryObjectSendStream[SessionMessage]
        self._outbound_reader: MemoryObjectReceiveStream[SessionMessage]
        self._queue_writer, self._queue_reader = anyio.create_memory_object_stream[SessionMessage](math.inf)
        self._inbound_writer, self._inbound_reader = anyio.create_memory_object_stream[SessionMessage | Exception](0)
        self._server_writer, self._server_reader = anyio.create_memory_object_stream[SessionMessage](0)
        self._outbound_writer, self._outbound_reader = anyio.create_memory_object_stream[SessionMessage](0)
        self._deliver_lock = anyio.Lock()
        self._in_flight: tuple[RequestId, anyio.Event] | None = None

    @classmethod
    def factory(cls, create_server: Callable[[], FastMCP]) -> Callable[[], ProtocolServerInstance]:
        """Build an instance factory from a server factory."""
        return lambda: cls(create_server())

    async def run(self) -> None:
        """Serve until the instance is closed."""
        low_level = self.server._mcp_server
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._forward_outgoing)
            tg.start_soon(self._process_queue)
            async with self._server_writer:
                await low_level.run(
                    self._inbound_reader,
                    self._server_writer,
                    low_level.create_initialization_options(),
                )
            tg.cancel_scope.cancel()

    async def deliver(self, message: SessionMessage) -> None:
        """Accept one inbound message for processing.

        Returns once the message is queued, before the server has handled it.

        Raises:
            anyio.ClosedResourceError: If the instance was closed
            anyio.BrokenResourceError: If the server stopped reading
        """
        async with self._deliver_lock:
            if _jumps_queue(message.message):
                await self._inbound_writer.send(message)
                self._release_cancelled(message.message)
            else:
                await self._queue_writer.send(message)

    async def _process_queue(self) -> None:
        try:
            async with self._queue_reader:
                async for message in self._queue_reader:
                    if not isinstance(message.message, JSONRPCRequest):
                        await self._inbound_writer.send(message)
                        continue
                    done = anyio.Event()
                    self._in_flight = (message.message.id, done)
                    await self._inbound_writer.send(message)
                    await done.wait()
                    self._in_flight = None
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.debug("Server stopped reading, dropping queued messages")

    async def _forward_outgoing(self) -> None:
        try:
            async with self._outbound_writer, self._server_reader:
                async for message in self._server_reader:
                    if isinstance(message.message, JSONRPCResponse | JSONRPCError):
                        self._release(message.message.id)
                    await self._outbound_writer.send(message)
        except (anyio.BrokenResourceError, anyio.ClosedResourceError):
            logger.debug("Push channel went away, dropping outgoing messages")

    def _release(self, request_id: RequestId | None) -> None:
        if self._in_flight is not None and self._in_flight[0] == request_id:
            self._in_flight[1].set()

    def _release_cancelled(self, message: JSONRPCMessage) -> None:
        # A cancelled request is never answered
        if isinstance(message, JSONRPCNotification) and message.method == CANCELLED_NOTIFICATION:
            self._release((message.params or {}).get("requestId"))

    def outgoing(self) -> MemoryObjectReceiveStream[SessionMessage]:
        return self._outbound_reader

    async def aclose(self) -> None:
        """Release the server. Idempotent."""
        await self._queue_writer.aclose()
        await self._inbound_writer.aclose()
        await self._outbound_reader.aclose()
