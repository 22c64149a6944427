"""Type definitions for docserver.

This module contains:
- Exception hierarchy for structured error handling
- Domain models shared across layers
"""

from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# =============================================================================
# Exceptions
# =============================================================================


class DocServerError(Exception):
	"""Base for all docserver errors."""

	pass


class BrokenInvariant(DocServerError):
	"""Setup/config error - cannot continue (e.g., port already in use)."""

	pass


class TransientError(DocServerError):
	"""Temporary failure - retry may succeed (e.g., network timeout)."""

	pass


class TransportError(DocServerError):
	"""Base for errors raised by the SSE transport.

	Each subclass maps to an HTTP status code and a structured body so the
	control plane can render it without knowing the concrete type.
	"""

	status_code: int = 500
	error: str = "Internal Server Error"

	def __init__(self, message: str, **details: Any) -> None:
		super().__init__(message)
		self.message = message
		self.details = details

	def to_dict(self) -> dict[str, Any]:
		return {"error": self.error, "message": self.message, **self.details}


class MissingSessionId(TransportError):
	"""Control message arrived without a sessionId query parameter."""

	status_code = 400
	error = "Missing sessionId parameter"


class UnknownSession(TransportError):
	"""Control message addressed to a session that is not registered."""

	status_code = 404
	error = "Session not found"


class InvalidMessage(TransportError):
	"""Control message body is not a valid JSON-RPC message."""

	status_code = 400
	error = "Invalid message"


class HandlerFailure(TransportError):
	"""The session's protocol server failed to accept a control message."""

	status_code = 500
	error = "Internal Server Error"


class DuplicateSession(TransportError):
	"""A session id was registered twice. Always a programming error."""

	status_code = 500
	error = "Duplicate session"


class TransportIOFailure(TransportError):
	"""The push channel could not be written to or read from."""

	status_code = 500
	error = "Transport I/O failure"


# =============================================================================
# Domain Models
# =============================================================================


class DocumentationTopic(BaseModel):
	"""A documentation topic with a locally stored llms.txt file."""

	id: str = Field(..., description="Stable topic identifier (e.g., 'yfiles-layout')")
	name: str = Field(..., description="Human readable topic name")
	description: str = Field(default="", description="Short summary of the topic")
	category: str = Field(..., description="Topic category (e.g., 'yFiles')")
	tags: list[str] = Field(default_factory=list, description="Lowercase tags used for filtering")
	llm_file_path: Path = Field(..., description="Path of the llms.txt file for this topic")
	last_updated: datetime = Field(default_factory=datetime.now)
	version: str | None = None


class TopicsResponse(BaseModel):
	"""Result of a topic lookup."""

	topics: list[DocumentationTopic]
	total_count: int = Field(..., ge=0)
	categories: list[str] = Field(default_factory=list, description="Unique categories, first-seen order")


class ScrapingOptions(BaseModel):
	"""Options for scraping a website.

	Accepts the camelCase names of the tool contract (maxDepth, followLinks, ...)
	as well as the field names. Unknown keys are rejected.
	"""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

	max_depth: int | None = Field(None, ge=1, le=3, description="Maximum depth for link following")
	follow_links: bool = Field(False, description="Whether to follow internal links")
	extract_main_content: bool = Field(False, description="Extract only main content")
	remove_navigation: bool = Field(False, description="Remove navigation elements")
	include_images: bool = Field(False, description="Include image references")


class ScrapingMetadata(BaseModel):
	"""Metadata describing a scrape."""

	word_count: int = Field(..., ge=0)
	extracted_at: datetime
	content_type: str = "text/html"
	language: str = "unknown"


class ScrapingResult(BaseModel):
	"""Result of scraping a website."""

	url: str
	title: str = ""
	content: str
	metadata: ScrapingMetadata
	links: list[str] | None = Field(None, description="Links followed (only when follow_links is set)")
