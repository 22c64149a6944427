"""Transport: serves MCP over HTTP with Server-Sent Events.

One GET on the SSE endpoint opens a push channel and a session with its own
protocol server. Control messages are POSTed to the endpoint the push channel
announces. Health and info endpoints report on the running server.

Usage as library:
    from docserver.transport import SseTransportServer

    server = SseTransportServer(host="localhost", port=3000)
    await server.serve()
"""

from docserver.transport.app import RoutingFront, create_app
from docserver.transport.instance import ProtocolServerInstance
from docserver.transport.registry import Session, SessionRegistry
from docserver.transport.server import SseTransportServer
from docserver.transport.sse import SseSessionManager

__all__ = [
    # Server
    "SseTransportServer",
    "create_app",
    "RoutingFront",
    # Sessions
    "SseSessionManager",
    "ProtocolServerInstance",
    "Session",
    "SessionRegistry",
]
