"""SSE session manager: push channels plus session-addressed control messages.

A caller opens a long-lived GET on the SSE endpoint. The manager mints a
session, builds a dedicated protocol server instance for it, registers both,
and announces the control message URL as the first event on the stream.
The caller then POSTs JSON-RPC messages to that URL; each one is routed to
the session's instance, whose replies flow back over the open stream.

Teardown runs exactly once per session, whichever happens first: client
disconnect, write failure, server crash, idle timeout or shutdown.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import anyio
import sentry_sdk
from mcp.shared.message import ServerMessageMetadata, SessionMessage
from mcp.types import jsonrpc_message_adapter
from pydantic import ValidationError
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Message, Receive, Scope, Send

from docserver.transport.instance import ProtocolServerInstance
from docserver.transport.registry import Session, SessionRegistry
from docserver.types import (
    HandlerFailure,
    InvalidMessage,
    MissingSessionId,
    TransportIOFailure,
    UnknownSession,
)

logger = logging.getLogger(__name__)

SESSION_ID_PARAM = "sessionId"

PUSH_CHANNEL_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "*",
    "Access-Control-Allow-Methods": "*",
}


class ResponseTracker:
    """Wraps an ASGI send callable and records whether the response has started.

    Send failures surface as TransportIOFailure.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self.started = False
        self.finished = False

    async def __call__(self, message: Message) -> None:
        try:
            await self._send(message)
        except (OSError, anyio.BrokenResourceError, anyio.ClosedResourceError) as e:
            raise TransportIOFailure(f"Push channel write failed: {type(e).__name__}: {e}") from e
        if message["type"] == "http.response.start":
            self.started = True
        elif message["type"] == "http.response.body" and not message.get("more_body", False):
            self.finished = True

    async def finish(self) -> None:
        """Terminate a started response that was cut short."""
        if not self.started or self.finished:
            return
        try:
            await self({"type": "http.response.body", "body": b"", "more_body": False})
        except TransportIOFailure as e:
            logger.debug(f"Could not terminate push channel: {e}")


def _is_transport_failure(exc: BaseException) -> bool:
    """True if exc is, or is a group made only of, TransportIOFailure."""
    if isinstance(exc, TransportIOFailure):
        return True
    if isinstance(exc, BaseExceptionGroup):
        return all(_is_transport_failure(inner) for inner in exc.exceptions)
    return False


class SseSessionManager:
    """Owns the session registry and every session's lifecycle.

    Args:
        instance_factory: Builds a fresh ProtocolServerInstance per session
        endpoint: Path the push channel is served on; control messages are
            POSTed to the same path with a sessionId query parameter
        idle_timeout: Seconds without traffic before a session is closed
            (0 or None disables)
        ping_interval: Seconds between keep-alive comments on the stream
    """

    def __init__(
        self,
        instance_factory: Callable[[], ProtocolServerInstance],
        endpoint: str = "/sse",
        idle_timeout: float | None = None,
        ping_interval: int = 15,
    ) -> None:
        self.instance_factory = instance_factory
        self.endpoint = endpoint
        self.idle_timeout = idle_timeout or None
        self.ping_interval = ping_interval
        self.registry = SessionRegistry()
        self.accepting = True

    @property
    def active_sessions(self) -> int:
        return self.registry.count()

    # ─────────────────────────────────────────────────────────────────────
    # Push channel
    # ─────────────────────────────────────────────────────────────────────

    async def handle_sse(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI handler for a push channel open (GET on the SSE endpoint)."""
        tracker = ResponseTracker(send)
        client = scope.get("client")
        if scope["type"] != "http" or scope["method"] != "GET":
            response = JSONResponse({"error": "Method not allowed"}, status_code=405)
            await response(scope, receive, tracker)
            return
        if not self.accepting:
            response = JSONResponse(
                {"error": "Service Unavailable", "message": "Server is shutting down"},
                status_code=503,
            )
            await response(scope, receive, tracker)
            return

        instance = None
        try:
            instance = self.instance_factory()
            session = Session(id=str(uuid4()), instance=instance)
            await self.registry.put(session)
        except Exception as e:
            logger.exception(f"Failed to establish SSE connection from {client}")
            sentry_sdk.capture_exception(e)
            if instance is not None:
                await instance.aclose()
            if not tracker.started:
                response = JSONResponse(
                    {
                        "error": "Internal Server Error",
                        "message": "Failed to establish SSE connection",
                        "details": str(e),
                    },
                    status_code=500,
                )
                await response(scope, receive, tracker)
            return

        logger.info(f"SSE session established: {session.id} from {client} (active={self.active_sessions})")
        reason = "client disconnected"
        try:
            await self._serve_session(session, scope, receive, tracker)
        except Exception as e:
            if _is_transport_failure(e):
                reason = "transport I/O failure"
                logger.warning(f"SSE session {session.id}: push channel failed: {e}")
            else:
                reason = "error"
                logger.exception(f"SSE session {session.id} failed")
                sentry_sdk.capture_exception(e)
                if not tracker.started:
                    await JSONResponse(
                        {"error": "Internal Server Error", "message": "Failed to establish SSE connection"},
                        status_code=500,
                    )(scope, receive, tracker)
        finally:
            await self.close_session(session, reason)
            await tracker.finish()

    async def _serve_session(self, session: Session, scope: Scope, receive: Receive, send: Send) -> None:
        endpoint_url = self._message_url(scope, session.id)
        response = EventSourceResponse(
            content=self._events(session, endpoint_url),
            headers=PUSH_CHANNEL_HEADERS,
            ping=self.ping_interval,
        )

        async with anyio.create_task_group() as tg:
            session.bind_scope(tg.cancel_scope)
            tg.start_soon(self._run_instance, session)
            if self.idle_timeout:
                tg.start_soon(self._watch_idle, session, self.idle_timeout)
            await response(scope, receive, send)
            tg.cancel_scope.cancel()

    def _message_url(self, scope: Scope, session_id: str) -> str:
        root_path = scope.get("root_path", "")
        return f"{root_path}{self.endpoint}?{SESSION_ID_PARAM}={quote(session_id)}"

    async def _events(self, session: Session, endpoint_url: str) -> AsyncIterator[dict[str, Any]]:
        # The endpoint event is the opening handshake and must be written first
        yield {"event": "endpoint", "data": endpoint_url}
        async for session_message in session.instance.outgoing():
            session.touch()
            logger.debug(f"Pushing message to session {session.id}")
            yield {
                "event": "message",
                "data": session_message.message.model_dump_json(by_alias=True, exclude_unset=True),
            }

    async def _run_instance(self, session: Session) -> None:
        try:
            await session.instance.run()
        except Exception as e:
            logger.exception(f"Session {session.id} crashed")
            sentry_sdk.capture_exception(e)
        finally:
            # Without a server the stream has nothing left to deliver
            session.cancel()

    async def _watch_idle(self, session: Session, timeout: float) -> None:
        while True:
            remaining = session.last_activity + timeout - anyio.current_time()
            if remaining <= 0:
                logger.info(f"SSE session {session.id} idle for {timeout}s, closing")
                session.cancel()
                return
            await anyio.sleep(remaining)

    async def close_session(self, session: Session, reason: str = "closed") -> bool:
        """Unregister a session and release its instance.

        Safe to call repeatedly and from any task; only the first call does
        the work. Returns True if this call performed the teardown.
        """
        if not session.begin_close():
            return False

        with anyio.CancelScope(shield=True):
            session.cancel()
            await self.registry.remove(session.id)
            await session.instance.aclose()
            session.closed.set()
        logger.info(f"SSE session closed: {session.id} ({reason}, active={self.active_sessions})")
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Control messages
    # ─────────────────────────────────────────────────────────────────────

    async def dispatch(self, session_id: str | None, body: bytes, request: Request | None = None) -> Session:
        """Route one control message to its session's protocol server.

        Args:
            session_id: Value of the sessionId query parameter
            body: Raw JSON-RPC message
            request: HTTP request the message arrived on, exposed to tools

        Returns:
            The session the message was delivered to

        Raises:
            MissingSessionId: No session id was supplied
            UnknownSession: No open session has this id
            InvalidMessage: The body is not a JSON-RPC message
            HandlerFailure: The session's instance failed to accept the message
        """
        if not session_id:
            logger.warning("Missing sessionId parameter in POST request")
            raise MissingSessionId("Control messages must carry a sessionId query parameter")

        session = self.registry.get(session_id)
        if session is None:
            logger.warning(f"Session not found for sessionId: {session_id}")
            raise UnknownSession(f"No open session with id {session_id}", sessionId=session_id)

        try:
            message = jsonrpc_message_adapter.validate_json(body, by_name=False)
        except ValidationError as e:
            logger.warning(f"Invalid message for session {session_id}: {e}")
            raise InvalidMessage("Could not parse message", sessionId=session_id, details=str(e)) from e

        logger.debug(f"Processing MCP message for session: {session_id}")
        try:
            metadata = ServerMessageMetadata(request_context=request) if request is not None else None
            await session.instance.deliver(SessionMessage(message=message, metadata=metadata))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            # The push channel closed while this message was in flight
            raise UnknownSession(f"Session {session_id} is closed", sessionId=session_id) from e
        except Exception as e:
            logger.exception(f"Error delivering message to session {session_id}")
            sentry_sdk.capture_exception(e)
            raise HandlerFailure(
                "Failed to process MCP message",
                sessionId=session_id,
                details=str(e),
            ) from e

        session.touch()
        return session

    async def handle_post_message(self, request: Request) -> Response:
        """Control-plane endpoint for POSTs to the SSE endpoint."""
        await self.dispatch(request.query_params.get(SESSION_ID_PARAM), await request.body(), request)
        return Response("Accepted", status_code=202)

    # ─────────────────────────────────────────────────────────────────────
    # Shutdown
    # ─────────────────────────────────────────────────────────────────────

    async def close_all(self, timeout: float | None = None) -> int:
        """Close every open session and wait for their teardown.

        Returns:
            Number of sessions that were open when the drain started
        """
        self.accepting = False
        sessions = self.registry.snapshot()
        if not sessions:
            return 0

        logger.info(f"Closing {len(sessions)} open SSE sessions")
        for session in sessions:
            session.cancel()

        with anyio.move_on_after(timeout) as scope:
            for session in sessions:
                await session.closed.wait()
        if scope.cancelled_caught:
            # Handlers that did not finish in time are torn down from here
            for session in sessions:
                await self.close_session(session, "shutdown")
        return len(sessions)
