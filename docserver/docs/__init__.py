"""Docs: documentation lookup and website scraping backends.

Usage as library:
    from docserver.docs import DocumentationCatalog, WebsiteScraper

    catalog = DocumentationCatalog()
    await catalog.initialize()
    topics = catalog.search_topics("layout")

    result = await WebsiteScraper().scrape("https://example.com")
"""

from docserver.docs.catalog import DocumentationCatalog
from docserver.docs.scraper import WebsiteScraper

__all__ = [
    "DocumentationCatalog",
    "WebsiteScraper",
]
