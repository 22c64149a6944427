"""SSE transport server: binds the listener and runs the front door under uvicorn.

Shutdown order matters. Open push channels keep their HTTP requests alive
indefinitely, so uvicorn's own graceful shutdown would wait on them forever.
The server therefore drains every session first and only then lets uvicorn
close the listening socket and remaining connections.
"""

from __future__ import annotations

import errno
import logging
import socket

import uvicorn

from docserver.server import create_server
from docserver.settings import ServerSettings, TransportSettings, server_settings, transport_settings
from docserver.transport.app import RoutingFront, create_app
from docserver.transport.instance import ProtocolServerInstance
from docserver.transport.sse import SseSessionManager
from docserver.types import BrokenInvariant

logger = logging.getLogger(__name__)


class DrainingServer(uvicorn.Server):
    """uvicorn server that closes every SSE session before its own shutdown."""

    def __init__(self, config: uvicorn.Config, manager: SseSessionManager, drain_timeout: float | None) -> None:
        super().__init__(config)
        self.manager = manager
        self.drain_timeout = drain_timeout

    async def shutdown(self, sockets: list[socket.socket] | None = None) -> None:
        closed = await self.manager.close_all(self.drain_timeout)
        if closed:
            logger.info(f"Drained {closed} SSE sessions")
        await super().shutdown(sockets=sockets)


class SseTransportServer:
    """Serves MCP over SSE on one host and port.

    Args:
        manager: Session manager to serve; one with per-session FastMCP
            servers from create_server() is built when omitted
        host: Interface to bind (defaults to DOCSERVER_SSE_HOST)
        port: Port to bind (defaults to DOCSERVER_SSE_PORT; 0 picks a free port)
    """

    def __init__(
        self,
        manager: SseSessionManager | None = None,
        host: str | None = None,
        port: int | None = None,
        server: ServerSettings = server_settings,
        transport: TransportSettings = transport_settings,
    ) -> None:
        overrides = {}
        if host is not None:
            overrides["host"] = host
        if port is not None:
            overrides["port"] = port
        self.settings = transport.model_copy(update=overrides) if overrides else transport
        self.server_settings = server
        self.manager = manager or SseSessionManager(
            ProtocolServerInstance.factory(create_server),
            endpoint=self.settings.sse_endpoint,
            idle_timeout=self.settings.idle_timeout,
            ping_interval=self.settings.ping_interval,
        )
        self._uvicorn: DrainingServer | None = None

    @property
    def host(self) -> str:
        return self.settings.host

    @property
    def port(self) -> int:
        return self.settings.port

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def sse_url(self) -> str:
        return f"{self.url}{self.settings.sse_endpoint}"

    def build_app(self) -> RoutingFront:
        return create_app(self.manager, self.server_settings, self.settings)

    def bind(self) -> socket.socket:
        """Open the listening socket.

        Raises:
            BrokenInvariant: If the port is taken or the address is unusable
        """
        try:
            sock = socket.create_server((self.host, self.port))
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise BrokenInvariant(
                    f"Port {self.port} is already in use. Try a different port with --port flag."
                ) from e
            raise BrokenInvariant(f"Cannot listen on {self.host}:{self.port}: {e}") from e

        if self.port == 0:
            self.settings = self.settings.model_copy(update={"port": sock.getsockname()[1]})
        return sock

    async def serve(self) -> None:
        """Bind and serve until stopped or signalled (SIGINT/SIGTERM)."""
        sock = self.bind()
        config = uvicorn.Config(
            self.build_app(),
            host=self.host,
            port=self.port,
            log_level=self.server_settings.log_level.lower(),
        )
        self._uvicorn = DrainingServer(config, self.manager, self.settings.drain_timeout)

        logger.info(f"{self.server_settings.name} running on SSE transport at {self.url}")
        logger.info(f"SSE endpoint: {self.sse_url}")
        logger.info(f"Health check: {self.url}{self.settings.health_endpoint}")
        logger.info(f"Server info: {self.url}{self.settings.info_endpoint}")
        try:
            await self._uvicorn.serve(sockets=[sock])
        finally:
            sock.close()
            logger.info("SSE transport stopped")

    async def stop(self) -> None:
        """Close every session, then ask uvicorn to exit."""
        await self.manager.close_all(self.settings.drain_timeout)
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True
