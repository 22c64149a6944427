"""Tests for the FastMCP server and documentation tools."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastmcp.client import Client
from fastmcp.exceptions import ToolError

from docserver.docs import DocumentationCatalog
from docserver.server import create_server
from docserver.types import ScrapingMetadata, ScrapingOptions, ScrapingResult, TransientError


@pytest_asyncio.fixture
async def mcp_client():
	async with Client(transport=create_server()) as client:
		yield client


@pytest.fixture
def stored_catalog(catalog: DocumentationCatalog, monkeypatch):
	monkeypatch.setattr("docserver.server.catalog", catalog)
	return catalog


@pytest.mark.asyncio
async def test_list_tools(mcp_client: Client):
	"""Every documentation tool is registered under its hyphenated name."""
	tools = await mcp_client.list_tools()

	assert {t.name for t in tools} == {"get-documentation-topics", "scrape-website", "get-documentation-content"}


@pytest.mark.asyncio
async def test_servers_are_independent():
	"""Each call builds a fresh server with its own tool registry."""
	assert create_server() is not create_server()


@pytest.mark.asyncio
async def test_get_topics(mcp_client: Client, stored_catalog):
	result = await mcp_client.call_tool("get-documentation-topics", {})

	assert result.data.startswith("# Documentation Topics Available")
	assert "Found 3 topic(s):" in result.data
	assert "• FastAPI Guide (Python) [Tags: web, api]" in result.data
	assert "ID: yfiles-layout" in result.data
	assert "Available Categories: yFiles, Python" in result.data


@pytest.mark.asyncio
async def test_get_topics_with_filters(mcp_client: Client, stored_catalog):
	result = await mcp_client.call_tool("get-documentation-topics", {"category": "python", "tags": ["async"]})

	assert "Found 1 topic(s):" in result.data
	assert "ID: anyio-basics" in result.data


@pytest.mark.asyncio
async def test_get_topics_search(mcp_client: Client, stored_catalog):
	result = await mcp_client.call_tool("get-documentation-topics", {"search": "layout"})

	assert "Found 1 topic(s):" in result.data
	assert "ID: yfiles-layout" in result.data


@pytest.mark.asyncio
async def test_get_topics_broken_catalog(mcp_client: Client, tmp_path, monkeypatch):
	(tmp_path / "topics.json").write_text("[{}]", encoding="utf-8")
	monkeypatch.setattr("docserver.server.catalog", DocumentationCatalog(store_dir=tmp_path))

	with pytest.raises(ToolError, match="Failed to get documentation topics"):
		await mcp_client.call_tool("get-documentation-topics", {})


@pytest.mark.asyncio
async def test_get_content(mcp_client: Client, stored_catalog):
	result = await mcp_client.call_tool("get-documentation-content", {"topic_id": "fastapi-guide"})

	assert result.data.startswith("# FastAPI")


@pytest.mark.asyncio
async def test_get_content_unknown_topic(mcp_client: Client, stored_catalog):
	with pytest.raises(ToolError, match="Unknown documentation topic: nope"):
		await mcp_client.call_tool("get-documentation-content", {"topic_id": "nope"})


@pytest.mark.asyncio
async def test_get_content_missing_file(mcp_client: Client, stored_catalog):
	with pytest.raises(ToolError, match="No content stored for topic anyio-basics"):
		await mcp_client.call_tool("get-documentation-content", {"topic_id": "anyio-basics"})


@pytest.mark.asyncio
async def test_scrape_website(mcp_client: Client, monkeypatch):
	scraped = ScrapingResult(
		url="https://example.com",
		title="Example",
		content="[https://example.com]\nHello from example",
		metadata=ScrapingMetadata(word_count=3, extracted_at=datetime(2024, 1, 1)),
	)
	scraper = MagicMock(scrape=AsyncMock(return_value=scraped))
	monkeypatch.setattr("docserver.server.scraper", scraper)

	result = await mcp_client.call_tool(
		"scrape-website",
		{"url": "https://example.com", "options": {"follow_links": True, "max_depth": 2}},
	)

	assert result.data == "[https://example.com]\nHello from example"
	url, options = scraper.scrape.await_args.args
	assert url == "https://example.com"
	assert options == ScrapingOptions(follow_links=True, max_depth=2)


@pytest.mark.asyncio
async def test_scrape_website_invalid_depth(mcp_client: Client):
	with pytest.raises(ToolError):
		await mcp_client.call_tool("scrape-website", {"url": "https://example.com", "options": {"max_depth": 5}})


@pytest.mark.asyncio
async def test_scrape_website_error(mcp_client: Client, monkeypatch):
	scraper = MagicMock(scrape=AsyncMock(side_effect=TransientError("Failed to scrape https://example.com: boom")))
	monkeypatch.setattr("docserver.server.scraper", scraper)

	with pytest.raises(ToolError, match="Failed to scrape website"):
		await mcp_client.call_tool("scrape-website", {"url": "https://example.com"})


@pytest.mark.asyncio
async def test_scrape_website_camel_case_options(mcp_client: Client, monkeypatch):
	"""Options sent with the tool contract's camelCase names reach the scraper."""
	scraped = ScrapingResult(
		url="https://example.com",
		content="[https://example.com]\nHello",
		metadata=ScrapingMetadata(word_count=1, extracted_at=datetime(2024, 1, 1)),
	)
	scraper = MagicMock(scrape=AsyncMock(return_value=scraped))
	monkeypatch.setattr("docserver.server.scraper", scraper)

	await mcp_client.call_tool(
		"scrape-website",
		{
			"url": "https://example.com",
			"options": {
				"followLinks": True,
				"maxDepth": 2,
				"extractMainContent": True,
				"removeNavigation": True,
				"includeImages": True,
			},
		},
	)

	_, options = scraper.scrape.await_args.args
	assert options == ScrapingOptions(
		follow_links=True,
		max_depth=2,
		extract_main_content=True,
		remove_navigation=True,
		include_images=True,
	)


@pytest.mark.asyncio
async def test_scrape_website_unknown_option(mcp_client: Client, monkeypatch):
	scraper = MagicMock(scrape=AsyncMock())
	monkeypatch.setattr("docserver.server.scraper", scraper)

	with pytest.raises(ToolError):
		await mcp_client.call_tool("scrape-website", {"url": "https://example.com", "options": {"followLink": True}})
	scraper.scrape.assert_not_awaited()
