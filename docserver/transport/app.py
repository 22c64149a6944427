"""HTTP front door for the SSE transport.

Two layers:
- RoutingFront: the ASGI entry point. A (method, path) table sends push
  channel opens straight to the session manager, bypassing middleware that
  assumes short-lived requests. Everything else goes to the control plane.
- Control plane: a FastAPI app with CORS and request logging that serves
  control messages, /health and /info, plus structured 404/405 bodies.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from docserver.settings import ServerSettings, TransportSettings, server_settings, transport_settings
from docserver.transport.models import HealthResponse, InfoResponse, TransportInfo
from docserver.transport.sse import SseSessionManager
from docserver.types import TransportError

logger = logging.getLogger(__name__)


def create_control_app(
	manager: SseSessionManager,
	server: ServerSettings = server_settings,
	transport: TransportSettings = transport_settings,
) -> FastAPI:
	"""Build the control-plane app for a session manager."""
	base_url = f"http://{transport.host}:{transport.port}"
	endpoints = transport.endpoints

	control_app = FastAPI(
		title=server.name,
		version=server.version,
		description="Control plane for the SSE transport",
		docs_url=None,
		redoc_url=None,
		openapi_url=None,
	)
	control_app.add_middleware(
		CORSMiddleware,
		allow_origins=transport.cors_origins,
		allow_methods=transport.cors_methods,
		allow_headers=transport.cors_headers,
	)

	@control_app.middleware("http")
	async def log_requests(request: Request, call_next):
		logger.info(f"{request.method} {request.url.path}")
		return await call_next(request)

	@control_app.get(transport.health_endpoint, response_model=HealthResponse)
	async def health() -> HealthResponse:
		"""Liveness check with the current number of open sessions."""
		return HealthResponse(
			status="healthy",
			server=server.name,
			version=server.version,
			timestamp=datetime.now(timezone.utc),
			active_sessions=manager.active_sessions,
		)

	@control_app.get(transport.info_endpoint, response_model=InfoResponse)
	async def info() -> InfoResponse:
		"""Static server metadata and the endpoint map."""
		return InfoResponse(
			name=server.name,
			version=server.version,
			capabilities=server.capabilities,
			transport=TransportInfo(type="sse", endpoints=endpoints),
			documentation={
				"health": f"{base_url}{transport.health_endpoint}",
				"sse": f"{base_url}{transport.sse_endpoint}",
			},
			active_sessions=manager.active_sessions,
		)

	control_app.add_api_route(
		transport.sse_endpoint,
		manager.handle_post_message,
		methods=["POST"],
		status_code=202,
	)

	@control_app.exception_handler(TransportError)
	async def transport_error_handler(request: Request, exc: TransportError):
		"""Render transport errors with their own status code."""
		return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

	@control_app.exception_handler(404)
	async def not_found_handler(request: Request, exc):
		"""Custom 404 handler listing the known endpoints."""
		return JSONResponse(
			status_code=404,
			content={
				"error": "Not Found",
				"message": f"Route {request.method} {request.url.path} not found",
				"availableEndpoints": endpoints,
			},
		)

	@control_app.exception_handler(405)
	async def method_not_allowed_handler(request: Request, exc):
		return JSONResponse(status_code=405, content={"error": "Method not allowed"})

	return control_app


class RoutingFront:
	"""ASGI entry point that picks exactly one handler per connection.

	Args:
	    manager: Session manager serving push channels and control messages
	    control_app: App for everything that is not a push channel open
	    sse_endpoint: Path of the push channel
	"""

	def __init__(self, manager: SseSessionManager, control_app: ASGIApp, sse_endpoint: str) -> None:
		self.manager = manager
		self.control_app = control_app
		self.routes: dict[tuple[str, str], ASGIApp] = {
			("GET", sse_endpoint): manager.handle_sse,
		}

	def resolve(self, scope: Scope) -> ASGIApp:
		if scope["type"] == "http":
			handler = self.routes.get((scope["method"], scope["path"]))
			if handler is not None:
				return handler
		return self.control_app

	async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
		await self.resolve(scope)(scope, receive, send)


def create_app(
	manager: SseSessionManager,
	server: ServerSettings = server_settings,
	transport: TransportSettings = transport_settings,
) -> RoutingFront:
	"""Build the full ASGI app for a session manager."""
	return RoutingFront(manager, create_control_app(manager, server, transport), transport.sse_endpoint)
