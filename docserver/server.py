"""FastMCP server factory and documentation tools.

This is the edge layer that:
1. Validates and parses MCP tool inputs
2. Calls the docs catalog and scraper
3. Formats outputs for MCP

Every transport gets its servers from create_server(). The SSE transport
builds one per session so no protocol state is shared between callers.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Annotated

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from docserver.docs import DocumentationCatalog, WebsiteScraper
from docserver.settings import server_settings
from docserver.types import DocServerError, ScrapingOptions, TopicsResponse

logger = logging.getLogger(__name__)

# Backends are shared by every server instance; both are read-only after init
catalog = DocumentationCatalog()
scraper = WebsiteScraper()


# ─────────────────────────────────────────────────────────────────────────────
# Tools
# ─────────────────────────────────────────────────────────────────────────────


async def get_documentation_topics(
    category: Annotated[str | None, Field(description="Filter by category (optional)")] = None,
    tags: Annotated[list[str] | None, Field(description="Filter by tags (optional)")] = None,
    search: Annotated[str | None, Field(description="Search keyword (optional)")] = None,
) -> str:
    """List the documentation topics stored locally.

    Examples:
        - search="layout" - topics mentioning layout
        - category="yFiles", tags=["graph"] - filtered listing
    """
    try:
        await catalog.initialize()
        if search:
            result = catalog.search_topics(search)
        else:
            result = catalog.get_available_topics(category, tags)
    except DocServerError as e:
        logger.error(f"Failed to get documentation topics: {e}")
        raise ToolError(f"Failed to get documentation topics: {e}") from e

    return _format_topics(result)


async def scrape_website(
    url: Annotated[str, Field(description="Website URL to scrape")],
    options: Annotated[ScrapingOptions | None, Field(description="Scraping options")] = None,
) -> str:
    """Scrape a website and return its readable text.

    Examples:
        - url="https://example.com/docs" - body text of one page
        - url="https://example.com/docs", options={"follow_links": true, "max_depth": 2}
    """
    try:
        result = await scraper.scrape(url, options)
    except DocServerError as e:
        logger.error(f"Failed to scrape website: {e}")
        raise ToolError(f"Failed to scrape website: {e}") from e

    return result.content


async def get_documentation_content(
    topic_id: Annotated[str, Field(description="Topic ID from get-documentation-topics")],
) -> str:
    """Get the llms.txt content stored for a documentation topic."""
    try:
        await catalog.initialize()
        topic = catalog.get_topic(topic_id)
        content = await catalog.get_topic_content(topic_id) if topic else None
    except DocServerError as e:
        raise ToolError(f"Failed to get documentation content: {e}") from e

    if topic is None:
        raise ToolError(f"Unknown documentation topic: {topic_id}")
    if content is None:
        raise ToolError(f"No content stored for topic {topic_id} at {topic.llm_file_path}")
    return content


def _format_topics(result: TopicsResponse) -> str:
    """Format a topic listing for the LLM."""
    entries = []
    for topic in result.topics:
        tags_text = f" [Tags: {', '.join(topic.tags)}]" if topic.tags else ""
        entries.append(f"• {topic.name} ({topic.category}){tags_text}\n  {topic.description}\n  ID: {topic.id}")

    categories_text = f"\nAvailable Categories: {', '.join(result.categories)}" if result.categories else ""

    return (
        "# Documentation Topics Available\n\n"
        f"Found {result.total_count} topic(s):\n\n" + "\n\n".join(entries) + f"{categories_text}\n\n"
        "To get the llms.txt content for any topic, pass its ID to the get-documentation-content tool."
    )


# ─────────────────────────────────────────────────────────────────────────────
# Registry
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    fn: Callable[..., Awaitable[str]]


TOOL_DEFINITIONS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="get-documentation-topics",
        description=(
            "Get available documentation topics that this server can help with. "
            "Returns llm.txt content for supported documentation pages stored locally."
        ),
        fn=get_documentation_topics,
    ),
    ToolDefinition(
        name="scrape-website",
        description="Scrape content from a website URL and return the extracted content in a readable format.",
        fn=scrape_website,
    ),
    ToolDefinition(
        name="get-documentation-content",
        description="Get the stored llms.txt content for a documentation topic by its ID.",
        fn=get_documentation_content,
    ),
)


def register_tools(server: FastMCP, definitions: tuple[ToolDefinition, ...] = TOOL_DEFINITIONS) -> None:
    for tool in definitions:
        server.tool(tool.fn, name=tool.name, description=tool.description)


def create_server() -> FastMCP:
    """Create a FastMCP server with every documentation tool registered."""
    server = FastMCP(name=server_settings.name, version=server_settings.version)
    register_tools(server)
    return server
