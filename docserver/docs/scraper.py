"""Website scraper for the scrape-website tool.

Fetches pages with httpx and extracts readable text with BeautifulSoup:
1. Fetch the start URL (depth 1), honoring robots.txt when configured
2. Optionally strip navigation and narrow to the main content region
3. Optionally follow same-origin links up to max_depth
4. Join all pages into one document and truncate to max_content_length
"""

import logging
from datetime import datetime
from urllib.parse import urljoin, urlparse
from urllib.robotparser import RobotFileParser

import httpx
from bs4 import BeautifulSoup

from docserver.settings import doc_settings
from docserver.types import ScrapingMetadata, ScrapingOptions, ScrapingResult, TransientError

logger = logging.getLogger(__name__)

NAVIGATION_SELECTORS = "nav, header, footer, aside, .nav, .menu"
MAIN_CONTENT_SELECTORS = ("main", "#main", ".content")
PAGE_SEPARATOR = "\n\n---\n\n"


def count_words(text: str) -> int:
    return len(text.split())


def detect_language(soup: BeautifulSoup) -> str:
    """Read the document language from <html lang="...">."""
    html = soup.find("html")
    lang = html.get("lang") if html is not None else None
    if isinstance(lang, str) and lang.strip():
        return lang.strip().split("-")[0].lower()
    return "unknown"


def extract_text(soup: BeautifulSoup, options: ScrapingOptions) -> str:
    """Extract page text according to the scraping options."""
    if options.remove_navigation:
        for element in soup.select(NAVIGATION_SELECTORS):
            element.decompose()

    root = None
    if options.extract_main_content:
        for selector in MAIN_CONTENT_SELECTORS:
            root = soup.select_one(selector)
            if root is not None:
                break
    if root is None:
        root = soup.body or soup

    return root.get_text(separator="\n", strip=True)


def image_urls(soup: BeautifulSoup, page_url: str) -> list[str]:
    return [urljoin(page_url, img["src"]) for img in soup.find_all("img", src=True) if img["src"]]


def internal_links(soup: BeautifulSoup, page_url: str, origin: str) -> list[str]:
    """Same-origin links on a page, anchors excluded, order preserved."""
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if not href or href.startswith("#"):
            continue
        absolute = urljoin(page_url, href).split("#")[0]
        if absolute.startswith(origin) and absolute not in links:
            links.append(absolute)
    return links


def truncate(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + f"\n\n... (truncated, {len(content)} characters total)"


class WebsiteScraper:
    """Scrapes websites into plain text.

    Args:
        client: Optional httpx client (tests inject one with a MockTransport).
            When omitted, a client is created per scrape and closed afterwards.
    """

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=doc_settings.timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": doc_settings.scraping_user_agent},
        )

    async def _fetch(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        """GET a URL, retrying transport errors up to max_retries times."""
        attempts = doc_settings.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = await client.get(url)
                response.raise_for_status()
                return response
            except httpx.TransportError as e:
                if attempt == attempts:
                    raise
                logger.warning(f"Fetch attempt {attempt}/{attempts} failed for {url}: {type(e).__name__}: {e}")
        raise AssertionError("unreachable")

    async def _allowed_by_robots(self, client: httpx.AsyncClient, url: str, cache: dict[str, RobotFileParser]) -> bool:
        """Check robots.txt for the URL's origin. Unreachable robots.txt allows everything."""
        parsed = urlparse(url)
        origin = f"{parsed.scheme}://{parsed.netloc}"
        parser = cache.get(origin)
        if parser is None:
            parser = RobotFileParser()
            try:
                response = await client.get(f"{origin}/robots.txt")
                lines = response.text.splitlines() if response.status_code == 200 else []
            except httpx.HTTPError as e:
                logger.warning(f"Could not check robots.txt for {url}: {e}")
                lines = []
            parser.parse(lines)
            cache[origin] = parser
        return parser.can_fetch(doc_settings.scraping_user_agent, url)

    async def scrape(self, url: str, options: ScrapingOptions | None = None) -> ScrapingResult:
        """Scrape a website and return its text content.

        Args:
            url: Absolute http(s) URL to start from
            options: Scraping options (defaults: single page, full body text)

        Returns:
            ScrapingResult with joined page content and metadata

        Raises:
            TransientError: If any page fetch fails
        """
        options = options or ScrapingOptions()
        max_depth = options.max_depth or doc_settings.max_depth
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise TransientError(f"Failed to scrape {url}: not an http(s) URL")
        origin = f"{parsed.scheme}://{parsed.netloc}"

        visited: set[str] = set()
        links_collected: list[str] = []
        pages: list[str] = []
        robots: dict[str, RobotFileParser] = {}
        title = ""
        language = "unknown"

        async def scrape_page(client: httpx.AsyncClient, page_url: str, depth: int) -> None:
            nonlocal title, language
            if depth > max_depth or page_url in visited:
                return
            visited.add(page_url)

            if doc_settings.respect_robots and not await self._allowed_by_robots(client, page_url, robots):
                logger.info(f"robots.txt disallows: {page_url}")
                return

            logger.info(f"Scraping (depth={depth}): {page_url}")
            response = await self._fetch(client, page_url)
            soup = BeautifulSoup(response.text, "html.parser")

            if depth == 1:
                title = soup.title.get_text(strip=True) if soup.title else ""
                language = detect_language(soup)

            # Links are collected before navigation is stripped
            links = internal_links(soup, page_url, origin) if options.follow_links and depth < max_depth else []
            images = image_urls(soup, page_url) if options.include_images else []

            text = extract_text(soup, options)
            if images:
                text += "\n\nImages:\n" + "\n".join(f"- {src}" for src in images)
            pages.append(f"[{page_url}]\n{text}")

            for link in links:
                if link not in links_collected:
                    links_collected.append(link)
                await scrape_page(client, link, depth + 1)

        client = self._client or self._new_client()
        try:
            await scrape_page(client, url, 1)
        except httpx.HTTPError as e:
            logger.error(f"Scrape failed for {url}: {e}")
            raise TransientError(f"Failed to scrape {url}: {type(e).__name__}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

        content = PAGE_SEPARATOR.join(pages)
        return ScrapingResult(
            url=url,
            title=title,
            content=truncate(content, doc_settings.max_content_length),
            metadata=ScrapingMetadata(
                word_count=count_words(content),
                extracted_at=datetime.now(),
                content_type="text/html",
                language=language,
            ),
            links=links_collected if options.follow_links else None,
        )
