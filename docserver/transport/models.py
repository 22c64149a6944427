"""Pydantic models for the control-plane endpoints."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HealthResponse(BaseModel):
	"""Response model for the health check."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	status: str = Field(
		...,
		description="Health status of the service",
		json_schema_extra={"example": "healthy"},
	)
	server: str = Field(
		...,
		description="Server name",
		json_schema_extra={"example": "MCP Documentation Server"},
	)
	version: str = Field(..., description="Server version", json_schema_extra={"example": "1.0.0"})
	timestamp: datetime = Field(..., description="Time the health check was answered")
	transport: str = Field(default="sse", description="Transport serving this endpoint")
	active_sessions: int = Field(..., ge=0, description="Number of open push channels")


class TransportInfo(BaseModel):
	"""Transport description for the info endpoint."""

	type: str = Field(default="sse")
	endpoints: dict[str, str] = Field(..., description="Endpoint name to path")


class InfoResponse(BaseModel):
	"""Response model for static server metadata."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	name: str
	version: str
	capabilities: dict[str, Any] = Field(default_factory=dict)
	transport: TransportInfo
	documentation: dict[str, str] = Field(
		...,
		description="Absolute URLs of the health and SSE endpoints",
		json_schema_extra={"example": {"health": "http://localhost:3000/health", "sse": "http://localhost:3000/sse"}},
	)
	active_sessions: int = Field(..., ge=0)
